import logging

from common.events import EventEmitter, Notification
from colloquy.api import ChatService
from colloquy.editing import EditController
from colloquy.errors import ChatError, NotFound, Unauthorized, user_message
from colloquy.models import MessageId, PersistedId, Session
from colloquy.reconcile import ReconciliationEngine
from colloquy.requests import RequestCoordinator
from colloquy.sessions import SessionStore
from colloquy.timeline import MessageTimeline

logger = logging.getLogger(__name__)

CHAT_NOT_FOUND = "Чатът не е намерен."
DISCARD_FAILED = "Неуспешно изтриване на съобщение"
CREATE_FAILED = "Неуспешно създаване на чат"
LOAD_FAILED = "Неуспешно зареждане на чата"


class LifecyclePolicy:
    """Creation, switching and cleanup of chats.

    A chat with no messages is abandoned: it is deleted as soon as the user
    moves away from it, and reused instead of creating another one.
    """

    def __init__(
        self,
        service: ChatService,
        sessions: SessionStore,
        timeline: MessageTimeline,
        engine: ReconciliationEngine,
        coordinator: RequestCoordinator,
        editing: EditController,
        events: EventEmitter | None = None,
    ):
        self.service = service
        self.sessions = sessions
        self.timeline = timeline
        self.engine = engine
        self.coordinator = coordinator
        self.editing = editing
        self.events = events or timeline.events

    async def create_session(self) -> Session | None:
        try:
            return await self.sessions.create_session()
        except Unauthorized:
            raise
        except ChatError as e:
            self._report(e, CREATE_FAILED)
            return None

    async def discard(
        self, message_id: MessageId, session_id: str | None = None, reopen: bool = True
    ) -> bool:
        sid = session_id or self.sessions.active_id
        if sid is None:
            return False

        self.coordinator.cancel(sid)
        if self.timeline.session_id == sid:
            self.engine.remove_pair(message_id)

        try:
            if isinstance(message_id, PersistedId):
                await self.service.delete_message(sid, message_id)
            remaining = await self.service.list_messages(sid)
        except Unauthorized:
            raise
        except NotFound as e:
            logger.warning(f"Chat {sid} vanished while discarding {message_id}: {e}")
            if self.timeline.session_id == sid:
                self.timeline.reset()
            await self.sessions.refresh()
            return False
        except ChatError as e:
            self._report(e, DISCARD_FAILED)
            return False

        if remaining:
            if self.timeline.session_id == sid:
                self.engine.replace(remaining)
            return True

        was_active = self.sessions.active_id == sid
        logger.info(f"Chat {sid} is empty after discard, removing it")
        if await self.sessions.delete_session(sid) and was_active and reopen:
            await self.create_session()
        return True

    async def switch_to(self, target_id: str) -> bool:
        current = self.sessions.active_id

        if self.editing.active and current:
            await self.discard(self.editing.editing_id, current, reopen=False)
            self.editing.cancel_edit()
            current = self.sessions.active_id

        if current and current != target_id and self.timeline.is_known_empty(current):
            try:
                await self.service.delete_session(current)
                logger.info(f"Removed abandoned chat {current}", extra={"chat_id": current})
            except Unauthorized:
                raise
            except ChatError as e:
                logger.warning(f"Could not remove abandoned chat {current}: {e}", extra={"chat_id": current})
            await self.sessions.refresh()

        self.sessions.set_active(target_id)
        self.timeline.reset(target_id, loaded=False)
        try:
            await self.timeline.load(target_id)
        except Unauthorized:
            raise
        except NotFound:
            logger.warning(f"Chat {target_id} not found", extra={"chat_id": target_id})
            self.events.emit(Notification(CHAT_NOT_FOUND))
            await self.sessions.refresh()
            return False
        except ChatError as e:
            self._report(e, LOAD_FAILED)
            return False

        self.sessions.remember(target_id)
        return True

    async def restore(self) -> Session | None:
        """Open the remembered chat, else the most recent one, else a new one."""
        await self.sessions.list_sessions()
        remembered = self.sessions.client_state.last_chat_id if self.sessions.client_state else None

        if remembered and self.sessions.get(remembered):
            target = remembered
        elif self.sessions.sessions:
            target = self.sessions.sessions[0].id
        else:
            return await self.create_session()

        if await self.switch_to(target):
            return self.sessions.get(target)
        return None

    def _report(self, error: ChatError, fallback: str) -> None:
        logger.error(f"{fallback}: {error}")
        self.events.emit(Notification(user_message(error, fallback)))
