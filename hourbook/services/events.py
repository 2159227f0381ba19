"""Timer notifications for UI and tray listeners."""
import inspect
import logging
from enum import Enum
from typing import Any, Callable, Optional

logger = logging.getLogger(__name__)


class TimerEvent(str, Enum):
    """Signals emitted by the timer service."""

    TIMER_STARTED = "timer_started"
    TIMER_STOPPED = "timer_stopped"
    ACTIVE_TIMER_CHANGED = "active_timer_changed"


class EventBus:
    """Fire-and-forget publisher; a failing receiver never affects the caller."""

    def __init__(self) -> None:
        self._receivers: dict[TimerEvent, list[Callable[..., Any]]] = {}

    def subscribe(self, event: TimerEvent, receiver: Callable[..., Any]) -> None:
        receivers = self._receivers.setdefault(event, [])
        if receiver not in receivers:
            receivers.append(receiver)

    def unsubscribe(self, event: TimerEvent, receiver: Callable[..., Any]) -> None:
        receivers = self._receivers.get(event, [])
        if receiver in receivers:
            receivers.remove(receiver)

    async def publish(self, event: TimerEvent, entry: Optional[Any] = None) -> None:
        for receiver in list(self._receivers.get(event, [])):
            try:
                result = receiver(event=event, entry=entry)
                if inspect.isawaitable(result):
                    await result
            except Exception:
                logger.exception("Receiver %r failed handling %s", receiver, event.value)


# Shared bus for the running application
timer_events = EventBus()
