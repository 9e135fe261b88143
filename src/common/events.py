from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, TypeAlias

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class SessionsChanged:
    sessions: tuple[Any, ...]
    active_id: str | None = None


@dataclass(frozen=True, slots=True)
class TimelineChanged:
    session_id: str | None
    messages: tuple[Any, ...] = field(default_factory=tuple)


@dataclass(frozen=True, slots=True)
class PendingChanged:
    session_id: str
    kind: str | None = None


@dataclass(frozen=True, slots=True)
class EditingChanged:
    message_id: Any | None = None


@dataclass(frozen=True, slots=True)
class Notification:
    message: str
    title: str = "Грешка"
    variant: str = "destructive"


Event: TypeAlias = (
    SessionsChanged | TimelineChanged | PendingChanged | EditingChanged | Notification
)
EventCallback: TypeAlias = Callable[[Event], None]


class EventEmitter:
    def __init__(self, callback: EventCallback | None = None):
        self._callbacks: list[EventCallback] = []
        if callback is not None:
            self._callbacks.append(callback)

    def subscribe(self, callback: EventCallback) -> Callable[[], None]:
        self._callbacks.append(callback)

        def unsubscribe() -> None:
            if callback in self._callbacks:
                self._callbacks.remove(callback)

        return unsubscribe

    def emit(self, event: Event) -> None:
        for callback in list(self._callbacks):
            try:
                callback(event)
            except Exception:
                # A broken subscriber must not abort a state transition.
                logger.exception(f"Event subscriber failed on {type(event).__name__}")
