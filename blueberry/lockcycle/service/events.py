"""Run and cycle events.

Every event is kept in a bounded history for the status surface and fanned
out to subscribed handlers.
"""
from collections import deque
from typing import Any, Callable

from loguru import logger

from ..durations import now_ms
from ..types import LockCycleEvent

logger = logger.bind(module="lockcycle.events")

EventHandler = Callable[[LockCycleEvent], None]

# How many events the history keeps
EVENT_HISTORY = 100


class EventTypes:
    """Event type names."""

    # Run lifecycle
    RUN_STARTED = "run.started"
    RUN_STOPPED = "run.stopped"
    RUN_FINISHED = "run.finished"
    RUN_FAILED = "run.failed"

    # Cycles
    CYCLE_STARTED = "cycle.started"
    CYCLE_COMPLETED = "cycle.completed"


class EventEmitter:
    """Records lock cycle events and forwards them to subscribers.

    A failing subscriber is logged and skipped; it never reaches the cycle
    loop that emitted the event.
    """

    def __init__(self, history: int = EVENT_HISTORY):
        self._handlers: list[EventHandler] = []
        self._history: deque[LockCycleEvent] = deque(maxlen=history)

    def add_handler(self, handler: EventHandler) -> None:
        self._handlers.append(handler)

    def remove_handler(self, handler: EventHandler) -> None:
        if handler in self._handlers:
            self._handlers.remove(handler)

    def recent(self, limit: int) -> list[LockCycleEvent]:
        """Newest `limit` events, oldest first."""
        if limit <= 0:
            return []
        return list(self._history)[-limit:]

    def emit(self, event: LockCycleEvent) -> None:
        self._history.append(event)
        logger.debug(f"[BlueBerry] Event {event.type} ({event.run_id})")
        for handler in list(self._handlers):
            try:
                handler(event)
            except Exception as e:
                logger.error(f"[BlueBerry] Event handler for {event.type} failed: {e}")


def emit_run_event(
    emitter: EventEmitter,
    event_type: str,
    run_id: str,
    payload: dict[str, Any] | None = None,
) -> LockCycleEvent:
    """Build a timestamped event for a run and emit it."""
    event = LockCycleEvent(
        type=event_type,
        run_id=run_id,
        timestamp_ms=now_ms(),
        payload=payload or {},
    )
    emitter.emit(event)
    return event
