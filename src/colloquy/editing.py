import logging

from common.events import EditingChanged, EventEmitter
from colloquy.errors import InvalidInput, NotFound
from colloquy.models import MessageId, PersistedId
from colloquy.reconcile import ReconciliationEngine
from colloquy.requests import RequestCoordinator
from colloquy.timeline import MessageTimeline

logger = logging.getLogger(__name__)


class EditController:
    """Viewing -> Editing(message_id) -> Viewing.

    Only one message can be edited at a time, and never while another
    request for the session is in flight.
    """

    def __init__(
        self,
        coordinator: RequestCoordinator,
        timeline: MessageTimeline,
        engine: ReconciliationEngine,
        events: EventEmitter | None = None,
    ):
        self.coordinator = coordinator
        self.timeline = timeline
        self.engine = engine
        self.events = events or timeline.events
        self.editing_id: MessageId | None = None

    @property
    def active(self) -> bool:
        return self.editing_id is not None

    def begin_edit(self, message_id: MessageId) -> None:
        message = self.timeline.find(message_id)
        if message is None:
            raise NotFound(f"Message {message_id} is not in the timeline")
        if message.role != "user":
            raise InvalidInput("Only user messages can be edited")
        self.coordinator.cancel()
        self._set(message_id)

    def cancel_edit(self) -> None:
        self._set(None)

    async def submit_edit(self, message_id: MessageId, new_content: str) -> bool:
        if not (new_content or "").strip():
            raise InvalidInput("Message content is empty")
        # Submitted edits are ordinary requests from here on.
        self._set(None)
        if self.timeline.find(message_id) is None:
            logger.warning(f"Edited message {message_id} disappeared")
            return False

        if isinstance(message_id, PersistedId):
            return await self.coordinator.edit(message_id, new_content)

        # Never reached the server, so resend instead of editing.
        self.coordinator.cancel()
        self.engine.remove_pair(message_id)
        return await self.coordinator.send(new_content)

    def _set(self, message_id: MessageId | None) -> None:
        if self.editing_id == message_id:
            return
        self.editing_id = message_id
        self.events.emit(EditingChanged(message_id=message_id))
