import logging
from pathlib import Path

from common.jsonio import atomic_write_json, load_json

logger = logging.getLogger(__name__)


class ClientState:
    """Small JSON file remembering client choices across launches."""

    def __init__(self, path: str | Path):
        self.path = Path(path).expanduser()

    def _read(self) -> dict:
        try:
            return load_json(self.path) or {}
        except OSError as e:
            logger.warning(f"Could not read client state {self.path}: {e}")
            return {}

    @property
    def last_chat_id(self) -> str | None:
        value = self._read().get("last_chat_id")
        return value if isinstance(value, str) and value else None

    def remember_chat(self, chat_id: str) -> None:
        data = self._read()
        if data.get("last_chat_id") == chat_id:
            return
        data["last_chat_id"] = chat_id
        try:
            atomic_write_json(self.path, data)
        except OSError as e:
            logger.warning(f"Could not persist last chat id: {e}")

    def forget_chat(self) -> None:
        data = self._read()
        if data.pop("last_chat_id", None) is None:
            return
        try:
            atomic_write_json(self.path, data)
        except OSError as e:
            logger.warning(f"Could not clear last chat id: {e}")
