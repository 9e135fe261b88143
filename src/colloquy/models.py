from datetime import datetime, timezone
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field


Role = Literal["user", "assistant"]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def parse_timestamp(value: Any) -> datetime:
    if isinstance(value, datetime):
        return value
    if not isinstance(value, str) or not value:
        return utc_now()
    try:
        if value.endswith("Z"):
            value = value[:-1] + "+00:00"
        return datetime.fromisoformat(value)
    except ValueError:
        return utc_now()


class TemporaryId(BaseModel):
    """Locally generated id of a message the server has not confirmed yet."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["temporary"] = "temporary"
    sequence: int

    def __str__(self) -> str:
        return f"temp-{self.sequence}"


class PersistedId(BaseModel):
    """Stable server key of a confirmed message."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["persisted"] = "persisted"
    key: str

    def __str__(self) -> str:
        return self.key


MessageId = TemporaryId | PersistedId


class Message(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: MessageId = Field(discriminator="kind")
    content: str
    role: Role
    created_at: datetime = Field(default_factory=utc_now)
    metadata: dict[str, Any] | None = None
    pending: bool = False

    @property
    def is_temporary(self) -> bool:
        return isinstance(self.id, TemporaryId)

    @classmethod
    def from_wire(cls, data: dict[str, Any]) -> "Message":
        return cls(
            id=PersistedId(key=str(data["id"])),
            content=data.get("content") or "",
            role=data.get("role", "assistant"),
            created_at=parse_timestamp(data.get("createdAt")),
            metadata=data.get("metadata") or None,
        )


class Session(BaseModel):
    id: str
    title: str = ""
    last_message: str | None = None
    updated_at: datetime = Field(default_factory=utc_now)

    @classmethod
    def from_wire(cls, data: dict[str, Any]) -> "Session":
        return cls(
            id=str(data["id"]),
            title=data.get("title") or "",
            last_message=data.get("lastMessage"),
            updated_at=parse_timestamp(data.get("updatedAt") or data.get("createdAt")),
        )


class Exchange(BaseModel):
    user: Message
    assistant: Message

    @classmethod
    def from_wire(cls, data: dict[str, Any]) -> "Exchange":
        user = dict(data["userMessage"], role="user")
        assistant = dict(data["assistantMessage"], role="assistant")
        return cls(user=Message.from_wire(user), assistant=Message.from_wire(assistant))
