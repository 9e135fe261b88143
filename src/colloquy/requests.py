import asyncio
import logging
from dataclasses import dataclass, field
from typing import Awaitable, Literal, TypeVar

from common.events import EventEmitter, Notification, PendingChanged
from colloquy.api import ChatService
from colloquy.errors import ChatError, InvalidInput, RequestCancelled, Unauthorized, user_message
from colloquy.models import Exchange, Message, PersistedId, TemporaryId
from colloquy.reconcile import ReconciliationEngine
from colloquy.sessions import SessionStore
from colloquy.timeline import MessageTimeline

logger = logging.getLogger(__name__)

T = TypeVar("T")

OperationKind = Literal["send", "edit"]

SEND_FAILED = "Неуспешно изпращане на съобщение"
EDIT_FAILED = "Неуспешна редакция"


class SlotBusy(ChatError):
    pass


@dataclass(eq=False)
class PendingOperation:
    session_id: str
    kind: OperationKind
    placeholder: TemporaryId | None = None
    task: asyncio.Future | None = field(default=None, repr=False)
    cancelled: bool = False


class RequestSlot:
    """Holds at most one in-flight operation for one session."""

    def __init__(self, session_id: str):
        self.session_id = session_id
        self.current: PendingOperation | None = None

    @property
    def busy(self) -> bool:
        return self.current is not None

    def claim(self, kind: OperationKind) -> PendingOperation:
        if self.current is not None:
            raise SlotBusy(f"{self.current.kind} already in flight for {self.session_id}")
        self.current = PendingOperation(session_id=self.session_id, kind=kind)
        return self.current

    def release(self, op: PendingOperation) -> None:
        if self.current is op:
            self.current = None

    def cancel(self) -> PendingOperation | None:
        op, self.current = self.current, None
        if op is None:
            return None
        op.cancelled = True
        if op.task is not None and not op.task.done():
            op.task.cancel()
        return op

    async def run(self, op: PendingOperation, call: Awaitable[T]) -> T:
        op.task = asyncio.ensure_future(call)
        try:
            return await op.task
        except asyncio.CancelledError:
            if op.cancelled:
                raise RequestCancelled(f"{op.kind} cancelled") from None
            raise
        finally:
            self.release(op)


class RequestCoordinator:
    def __init__(
        self,
        service: ChatService,
        sessions: SessionStore,
        timeline: MessageTimeline,
        engine: ReconciliationEngine,
        events: EventEmitter | None = None,
    ):
        self.service = service
        self.sessions = sessions
        self.timeline = timeline
        self.engine = engine
        self.events = events or timeline.events
        self._slots: dict[str, RequestSlot] = {}
        self._creating = False

    def _slot(self, session_id: str) -> RequestSlot:
        slot = self._slots.get(session_id)
        if slot is None:
            slot = self._slots[session_id] = RequestSlot(session_id)
        return slot

    def is_busy(self, session_id: str | None = None) -> bool:
        sid = session_id or self.sessions.active_id
        if sid is None:
            return self._creating
        slot = self._slots.get(sid)
        return bool(slot and slot.busy)

    def pending(self, session_id: str | None = None) -> PendingOperation | None:
        sid = session_id or self.sessions.active_id
        slot = self._slots.get(sid) if sid else None
        return slot.current if slot else None

    def cancel(self, session_id: str | None = None) -> bool:
        sid = session_id or self.sessions.active_id
        slot = self._slots.get(sid) if sid else None
        op = slot.cancel() if slot else None
        if op is None:
            return False
        logger.info(f"Cancelled {op.kind} in {op.session_id}", extra={"chat_id": op.session_id})
        if op.placeholder is not None and self.timeline.session_id == op.session_id:
            self.engine.release(op.placeholder)
        self.events.emit(PendingChanged(session_id=op.session_id))
        return True

    async def send(self, content: str, session_id: str | None = None) -> bool:
        content = (content or "").strip()
        if not content:
            raise InvalidInput("Message content is empty")
        if session_id is not None and session_id != self.sessions.active_id:
            raise InvalidInput(f"Chat {session_id} is not the active chat")

        sid = self.sessions.active_id
        if sid is not None and self.is_busy(sid):
            logger.debug(f"Ignoring send in {sid}: an operation is pending")
            return False

        if sid is None:
            if self._creating:
                logger.debug("Ignoring send: a chat is still being created")
                return False
            self._creating = True
            try:
                sid = (await self.sessions.create_session()).id
            except Unauthorized:
                raise
            except ChatError as e:
                self._report(e, SEND_FAILED)
                return False
            finally:
                self._creating = False
            if self.is_busy(sid):
                return False

        first_exchange = self.timeline.is_empty()
        op = self._slot(sid).claim("send")
        return await self._issue(
            op,
            content,
            lambda: self.service.send_message(sid, content),
            refresh_title=first_exchange,
            fallback=SEND_FAILED,
        )

    async def edit(self, message_id: PersistedId, content: str) -> bool:
        content = (content or "").strip()
        if not content:
            raise InvalidInput("Message content is empty")
        sid = self.sessions.active_id
        if sid is None:
            return False
        if self.is_busy(sid):
            logger.debug(f"Ignoring edit in {sid}: an operation is pending")
            return False

        op = self._slot(sid).claim("edit")
        self.engine.remove_pair(message_id)
        return await self._issue(
            op,
            content,
            lambda: self.service.edit_message(sid, message_id, content),
            refresh_title=False,
            fallback=EDIT_FAILED,
        )

    async def _issue(self, op: PendingOperation, content: str, call, refresh_title: bool, fallback: str) -> bool:
        slot = self._slot(op.session_id)
        try:
            placeholder = self.timeline.append_optimistic_user(content)
        except ChatError:
            slot.release(op)
            raise
        op.placeholder = placeholder.id
        self.events.emit(PendingChanged(session_id=op.session_id, kind=op.kind))

        try:
            exchange: Exchange = await slot.run(op, call())
        except RequestCancelled:
            logger.debug(f"{op.kind} in {op.session_id} ended by cancellation")
            return False
        except Unauthorized:
            self._settle(op, placeholder)
            raise
        except ChatError as e:
            if op.cancelled:
                return False
            self._settle(op, placeholder)
            self._report(e, fallback)
            return False

        if op.cancelled or self.timeline.session_id != op.session_id:
            logger.info(f"Ignoring stale {op.kind} completion for {op.session_id}", extra={"chat_id": op.session_id})
            self.events.emit(PendingChanged(session_id=op.session_id))
            return False

        self.engine.reconcile_send(placeholder.id, exchange.user, exchange.assistant)
        self.events.emit(PendingChanged(session_id=op.session_id))
        if refresh_title:
            await self.sessions.refresh()
        return True

    def _settle(self, op: PendingOperation, placeholder: Message) -> None:
        if self.timeline.session_id == op.session_id:
            self.engine.release(placeholder.id)
        self.events.emit(PendingChanged(session_id=op.session_id))

    def _report(self, error: ChatError, fallback: str) -> None:
        logger.error(f"{fallback}: {error}")
        self.events.emit(Notification(user_message(error, fallback)))
