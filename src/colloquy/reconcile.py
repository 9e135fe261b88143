import logging
from typing import Iterable

from colloquy.models import Message, MessageId, TemporaryId
from colloquy.timeline import MessageTimeline

logger = logging.getLogger(__name__)


class ReconciliationEngine:
    def __init__(self, timeline: MessageTimeline):
        self.timeline = timeline

    def reconcile_send(self, temp_id: TemporaryId, user: Message, assistant: Message) -> list[Message]:
        """Swap the placeholder for the confirmed user message, then append the reply."""
        messages = list(self.timeline.messages)
        idx = self.timeline.index_of(temp_id)
        if idx is None:
            logger.debug(f"Placeholder {temp_id} is gone, appending confirmed pair")
            known = {m.id for m in messages}
            messages.extend(m for m in (user, assistant) if m.id not in known)
        else:
            messages[idx] = user
            messages.append(assistant)
        self.timeline.replace_all(messages)
        return messages

    def remove_pair(self, target_id: MessageId) -> list[Message]:
        messages = list(self.timeline.messages)
        idx = self.timeline.index_of(target_id)
        if idx is None:
            return messages

        target = messages.pop(idx)
        if target.role == "user":
            if idx < len(messages) and messages[idx].role == "assistant":
                messages.pop(idx)
        elif idx > 0 and messages[idx - 1].role == "user":
            messages.pop(idx - 1)

        self.timeline.replace_all(messages)
        return messages

    def release(self, temp_id: TemporaryId) -> None:
        """Keep an unconfirmed placeholder on screen without blocking new sends."""
        idx = self.timeline.index_of(temp_id)
        if idx is None:
            return
        messages = list(self.timeline.messages)
        if not messages[idx].pending:
            return
        messages[idx] = messages[idx].model_copy(update={"pending": False})
        self.timeline.replace_all(messages)

    def replace(self, messages: Iterable[Message]) -> list[Message]:
        adopted = list(messages)
        self.timeline.replace_all(adopted)
        return adopted
