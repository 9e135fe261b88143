import itertools
import logging
from typing import Any, Iterable

from common.events import EventEmitter, TimelineChanged
from colloquy.api import ChatService
from colloquy.errors import NotFound, PendingMessageError
from colloquy.models import Message, MessageId, TemporaryId

logger = logging.getLogger(__name__)


class MessageTimeline:
    """Ordered messages of the active session.

    Besides ``load`` and ``append_optimistic_user`` the list is only changed
    through the reconciliation engine via ``replace_all``.
    """

    def __init__(self, service: ChatService, events: EventEmitter | None = None):
        self.service = service
        self.events = events or EventEmitter()
        self.session_id: str | None = None
        # False until the server's record for session_id has been adopted
        self.loaded = False
        self._messages: list[Message] = []
        self._sequence = itertools.count(1)

    @property
    def messages(self) -> tuple[Message, ...]:
        return tuple(self._messages)

    def __len__(self) -> int:
        return len(self._messages)

    def is_empty(self) -> bool:
        return not self._messages

    def is_known_empty(self, session_id: str | None) -> bool:
        """True only when session_id is on screen, loaded, and has no messages."""
        if session_id is None or self.session_id != session_id:
            return False
        return self.loaded and not self._messages

    def index_of(self, message_id: MessageId) -> int | None:
        for idx, message in enumerate(self._messages):
            if message.id == message_id:
                return idx
        return None

    def find(self, message_id: MessageId) -> Message | None:
        idx = self.index_of(message_id)
        return None if idx is None else self._messages[idx]

    def pending_placeholder(self) -> Message | None:
        for message in self._messages:
            if message.is_temporary and message.pending:
                return message
        return None

    def reset(self, session_id: str | None = None, loaded: bool = True) -> None:
        """Clear the list. ``loaded=False`` marks the content as not yet fetched."""
        self.session_id = session_id
        self.loaded = loaded and session_id is not None
        self.replace_all([])

    async def load(self, session_id: str) -> list[Message]:
        self.session_id = session_id
        self.loaded = False
        try:
            messages = await self.service.list_messages(session_id)
        except NotFound:
            if self.session_id == session_id:
                self.replace_all([])
            raise

        if self.session_id != session_id:
            logger.info(f"Dropping stale timeline load for {session_id}")
            return messages
        self.loaded = True
        self.replace_all(messages)
        logger.debug(f"Loaded {len(messages)} messages for {session_id}")
        return messages

    def append_optimistic_user(self, content: str) -> Message:
        existing = self.pending_placeholder()
        if existing is not None:
            raise PendingMessageError(f"Message {existing.id} is still awaiting confirmation")
        message = Message(
            id=TemporaryId(sequence=next(self._sequence)),
            content=content,
            role="user",
            pending=True,
        )
        self.replace_all([*self._messages, message])
        return message

    def replace_all(self, messages: Iterable[Message]) -> None:
        self._messages = list(messages)
        self.events.emit(TimelineChanged(session_id=self.session_id, messages=self.messages))

    def sources(self) -> list[dict[str, Any]]:
        """Citation sources of assistant replies, first occurrence wins."""
        seen: set[str] = set()
        out: list[dict[str, Any]] = []
        for message in self._messages:
            if message.role != "assistant" or not message.metadata:
                continue
            for source in message.metadata.get("sources") or []:
                if not isinstance(source, dict):
                    continue
                key = str(source.get("index") or source.get("title") or "")
                if not key or key in seen:
                    continue
                seen.add(key)
                out.append(source)
        return out
