import logging

from common.events import EventEmitter, Notification, SessionsChanged
from colloquy.api import ChatService
from colloquy.client_state import ClientState
from colloquy.errors import ChatError, Unauthorized, user_message
from colloquy.models import Session
from colloquy.timeline import MessageTimeline

logger = logging.getLogger(__name__)


class SessionStore:
    """Catalog of chats plus the pointer to the active one."""

    def __init__(
        self,
        service: ChatService,
        timeline: MessageTimeline,
        client_state: ClientState | None = None,
        events: EventEmitter | None = None,
    ):
        self.service = service
        self.timeline = timeline
        self.client_state = client_state
        self.events = events or timeline.events
        self.sessions: list[Session] = []
        self.active_id: str | None = None

    @property
    def active(self) -> Session | None:
        return self.get(self.active_id) if self.active_id else None

    def get(self, session_id: str) -> Session | None:
        for session in self.sessions:
            if session.id == session_id:
                return session
        return None

    def set_active(self, session_id: str | None) -> None:
        self.active_id = session_id
        self._changed()

    def remember(self, session_id: str) -> None:
        if self.client_state is not None:
            self.client_state.remember_chat(session_id)

    def forget(self, session_id: str) -> None:
        if self.client_state is not None and self.client_state.last_chat_id == session_id:
            self.client_state.forget_chat()

    async def list_sessions(self) -> list[Session]:
        self.sessions = await self.service.list_sessions()
        if self.active_id and self.get(self.active_id) is None:
            logger.info(f"Active chat {self.active_id} is no longer listed")
            self.active_id = None
            self.timeline.reset()
        self._changed()
        return self.sessions

    async def create_session(self) -> Session:
        if self.timeline.is_known_empty(self.active_id):
            session = self.get(self.active_id) or Session(id=self.active_id)
            self.remember(session.id)
            logger.debug(f"Reusing empty chat {session.id}")
            return session

        session = await self.service.create_session()
        self.sessions = [session, *(s for s in self.sessions if s.id != session.id)]
        self.active_id = session.id
        self.timeline.reset(session.id)
        self.remember(session.id)
        self._changed()
        logger.info(f"Created chat {session.id}", extra={"chat_id": session.id})
        return session

    async def delete_session(self, session_id: str) -> bool:
        try:
            await self.service.delete_session(session_id)
        except Unauthorized:
            raise
        except ChatError as e:
            logger.warning(f"Failed to delete chat {session_id}: {e}")
            self.events.emit(Notification(user_message(e, "Неуспешно изтриване на чат")))
            return False

        if self.active_id == session_id:
            self.active_id = None
            self.timeline.reset()
        self.forget(session_id)
        logger.info(f"Deleted chat {session_id}", extra={"chat_id": session_id})
        await self.refresh()
        return True

    async def refresh(self) -> bool:
        """Reload the catalog, reporting failures instead of raising them."""
        try:
            await self.list_sessions()
        except Unauthorized:
            raise
        except ChatError as e:
            logger.warning(f"Failed to refresh chat list: {e}")
            self.events.emit(Notification(user_message(e, "Неуспешно зареждане на чатовете")))
            return False
        return True

    def _changed(self) -> None:
        self.events.emit(SessionsChanged(sessions=tuple(self.sessions), active_id=self.active_id))
