import logging
from typing import Any, Callable

from common.events import Event, EventEmitter
from colloquy.api import ChatAPI, ChatService
from colloquy.client_state import ClientState
from colloquy.config import ClientConfig
from colloquy.editing import EditController
from colloquy.lifecycle import LifecyclePolicy
from colloquy.models import Message, MessageId, Session
from colloquy.reconcile import ReconciliationEngine
from colloquy.requests import RequestCoordinator
from colloquy.sessions import SessionStore
from colloquy.timeline import MessageTimeline

logger = logging.getLogger(__name__)


class ChatController:
    """Single entry point for a chat front end.

    Owns one timeline, one catalog and the request slots. Front ends read the
    properties and subscribe to events; they never mutate state directly.
    """

    def __init__(
        self,
        service: ChatService,
        client_state: ClientState | None = None,
        events: EventEmitter | None = None,
    ):
        self.service = service
        self.events = events or EventEmitter()
        self.timeline = MessageTimeline(service, self.events)
        self.engine = ReconciliationEngine(self.timeline)
        self.sessions = SessionStore(service, self.timeline, client_state, self.events)
        self.coordinator = RequestCoordinator(
            service, self.sessions, self.timeline, self.engine, self.events
        )
        self.editing = EditController(self.coordinator, self.timeline, self.engine, self.events)
        self.lifecycle = LifecyclePolicy(
            service,
            self.sessions,
            self.timeline,
            self.engine,
            self.coordinator,
            self.editing,
            self.events,
        )

    @classmethod
    def from_config(cls, config: ClientConfig) -> "ChatController":
        return cls(ChatAPI(config), ClientState(config.state_path))

    async def aclose(self) -> None:
        close = getattr(self.service, "aclose", None)
        if close is not None:
            await close()

    async def __aenter__(self) -> "ChatController":
        return self

    async def __aexit__(self, *exc_info) -> None:
        self.coordinator.cancel()
        await self.aclose()

    def subscribe(self, callback: Callable[[Event], None]) -> Callable[[], None]:
        return self.events.subscribe(callback)

    @property
    def chats(self) -> list[Session]:
        return list(self.sessions.sessions)

    @property
    def messages(self) -> tuple[Message, ...]:
        return self.timeline.messages

    @property
    def current_chat_id(self) -> str | None:
        return self.sessions.active_id

    @property
    def is_loading(self) -> bool:
        return self.coordinator.is_busy()

    @property
    def editing_id(self) -> MessageId | None:
        return self.editing.editing_id

    def sources(self) -> list[dict[str, Any]]:
        return self.timeline.sources()

    async def restore(self) -> Session | None:
        return await self.lifecycle.restore()

    async def refresh(self) -> bool:
        return await self.sessions.refresh()

    async def create_chat(self) -> Session | None:
        return await self.lifecycle.create_session()

    async def select_chat(self, chat_id: str) -> bool:
        return await self.lifecycle.switch_to(chat_id)

    async def delete_chat(self, chat_id: str) -> bool:
        self.coordinator.cancel(chat_id)
        return await self.sessions.delete_session(chat_id)

    async def send(self, content: str, chat_id: str | None = None) -> bool:
        return await self.coordinator.send(content, chat_id)

    def stop(self) -> bool:
        return self.coordinator.cancel()

    def begin_edit(self, message_id: MessageId) -> None:
        self.editing.begin_edit(message_id)

    def cancel_edit(self) -> None:
        self.editing.cancel_edit()

    async def submit_edit(self, message_id: MessageId, content: str) -> bool:
        return await self.editing.submit_edit(message_id, content)

    async def discard(self, message_id: MessageId, chat_id: str | None = None) -> bool:
        if self.editing.editing_id == message_id:
            self.editing.cancel_edit()
        return await self.lifecycle.discard(message_id, chat_id)
