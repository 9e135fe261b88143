import asyncio
import itertools

from common.events import Notification
from colloquy.errors import NotFound
from colloquy.models import Exchange, Message, PersistedId, Session, utc_now


def object_key(n: int) -> str:
    return f"{n:024x}"


class FakeChatService:
    """In-memory backend. ``hold()`` parks send/edit until ``release()``."""

    def __init__(self):
        self.chats: dict[str, Session] = {}
        self.messages: dict[str, list[Message]] = {}
        self.calls: list[tuple] = []
        self.failures: dict[str, Exception] = {}
        self.entered = asyncio.Event()
        self._gate: asyncio.Event | None = None
        self._keys = itertools.count(1)

    def next_key(self) -> str:
        return object_key(next(self._keys))

    def add_chat(self, title: str = "", pairs: int = 0) -> str:
        chat_id = f"chat-{self.next_key()[-4:]}"
        self.chats = {chat_id: Session(id=chat_id, title=title), **self.chats}
        self.messages[chat_id] = []
        for i in range(pairs):
            self._append_pair(chat_id, f"question {i + 1}")
        return chat_id

    def _append_pair(self, chat_id: str, content: str) -> Exchange:
        user = Message(id=PersistedId(key=self.next_key()), content=content, role="user")
        assistant = Message(
            id=PersistedId(key=self.next_key()),
            content=f"answer to {content}",
            role="assistant",
            metadata={"sources": [{"index": "law-1", "title": "Закон"}]},
        )
        self.messages[chat_id].extend([user, assistant])
        session = self.chats[chat_id]
        if not session.title:
            self.chats[chat_id] = session.model_copy(update={"title": content[:40]})
        return Exchange(user=user, assistant=assistant)

    def hold(self) -> None:
        self._gate = asyncio.Event()
        self.entered = asyncio.Event()

    def release(self) -> None:
        if self._gate is not None:
            self._gate.set()

    async def _call(self, name: str, *args) -> None:
        self.calls.append((name, *args))
        if name in ("send_message", "edit_message"):
            self.entered.set()
            if self._gate is not None:
                await self._gate.wait()
        error = self.failures.get(name)
        if error is not None:
            raise error

    def _require(self, chat_id: str) -> None:
        if chat_id not in self.chats:
            raise NotFound(f"chat {chat_id} not found", status_code=404)

    async def list_sessions(self) -> list[Session]:
        await self._call("list_sessions")
        return list(self.chats.values())

    async def create_session(self) -> Session:
        await self._call("create_session")
        chat_id = self.add_chat()
        return self.chats[chat_id]

    async def delete_session(self, session_id: str) -> None:
        await self._call("delete_session", session_id)
        self._require(session_id)
        del self.chats[session_id]
        del self.messages[session_id]

    async def list_messages(self, session_id: str) -> list[Message]:
        await self._call("list_messages", session_id)
        self._require(session_id)
        return list(self.messages[session_id])

    async def send_message(self, session_id: str, content: str) -> Exchange:
        await self._call("send_message", session_id, content)
        self._require(session_id)
        return self._append_pair(session_id, content)

    async def edit_message(self, session_id: str, message_id: PersistedId, content: str) -> Exchange:
        await self._call("edit_message", session_id, message_id, content)
        self._require(session_id)
        self._drop_pair(session_id, message_id)
        return self._append_pair(session_id, content)

    async def delete_message(self, session_id: str, message_id: PersistedId) -> None:
        await self._call("delete_message", session_id, message_id)
        self._require(session_id)
        self._drop_pair(session_id, message_id)

    def _drop_pair(self, session_id: str, message_id: PersistedId) -> None:
        stored = self.messages[session_id]
        idx = next((i for i, m in enumerate(stored) if m.id == message_id), None)
        if idx is None:
            raise NotFound(f"message {message_id} not found", status_code=404)
        start, end = idx, idx + 1
        if stored[idx].role == "user" and end < len(stored) and stored[end].role == "assistant":
            end += 1
        elif stored[idx].role == "assistant" and idx > 0 and stored[idx - 1].role == "user":
            start -= 1
        del stored[start:end]

    def called(self, name: str) -> list[tuple]:
        return [c for c in self.calls if c[0] == name]


class EventLog:
    def __init__(self):
        self.events: list = []

    def __call__(self, event) -> None:
        self.events.append(event)

    @property
    def notifications(self) -> list[Notification]:
        return [e for e in self.events if isinstance(e, Notification)]


_fixture_keys = itertools.count(10_000)


def user_message(content: str, key: str | None = None) -> Message:
    return Message(
        id=PersistedId(key=key or object_key(next(_fixture_keys))),
        content=content,
        role="user",
    )


def assistant_message(content: str, key: str | None = None) -> Message:
    return Message(
        id=PersistedId(key=key or object_key(next(_fixture_keys))),
        content=content,
        role="assistant",
        created_at=utc_now(),
    )


