import logging
import os
from dataclasses import dataclass, field

logger = logging.getLogger(__name__)


class ConfigError(Exception):
    pass


def get_optional_env(name: str, default: str) -> str:
    return os.environ.get(name, default)


@dataclass
class ClientConfig:
    api_url: str = field(
        default_factory=lambda: get_optional_env("COLLOQUY_API_URL", "http://localhost:3000")
    )
    token: str | None = field(default_factory=lambda: os.environ.get("COLLOQUY_API_TOKEN") or None)
    state_path: str = field(
        default_factory=lambda: get_optional_env("COLLOQUY_STATE_PATH", "~/.colloquy/state.json")
    )
    request_timeout: float = 120.0

    @classmethod
    def from_env(cls) -> "ClientConfig":
        config = cls()
        timeout = os.environ.get("COLLOQUY_REQUEST_TIMEOUT")
        if timeout:
            try:
                config.request_timeout = float(timeout)
            except ValueError as e:
                raise ConfigError(f"COLLOQUY_REQUEST_TIMEOUT must be a number, got {timeout!r}") from e
        return config

    def validate(self) -> None:
        if not self.api_url.startswith(("http://", "https://")):
            raise ConfigError(f"api_url must be an http(s) URL, got {self.api_url!r}")
        if self.request_timeout <= 0:
            raise ConfigError("request_timeout must be > 0")
        if not self.state_path:
            raise ConfigError("state_path must not be empty")
        logger.debug("Configuration validated successfully")
