"""State management for the lock cycle service.

Contains dependency injection and runtime state management.
"""
import asyncio
import random
from dataclasses import dataclass, field
from typing import Callable

from ...config import Settings
from ..commands import CommandExecutor
from ..notifier import Notifier
from ..secret_store import SecretStore
from ..types import CycleMode, SchedulerPhase

ConfigSource = Callable[[], Settings]


class CancelToken:
    """Cooperative cancellation handle owned by one run."""

    def __init__(self):
        self._cancelled = False

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    @property
    def active(self) -> bool:
        return not self._cancelled

    def cancel(self) -> None:
        self._cancelled = True


@dataclass(eq=False)
class PendingTimer:
    """A scheduled wake-up and the future the sleeper waits on."""
    handle: asyncio.TimerHandle
    waiter: asyncio.Future

    def cancel(self) -> None:
        self.handle.cancel()
        if not self.waiter.done():
            self.waiter.set_result(False)


@dataclass
class RunSession:
    """One run, from a successful start() until stop or completion."""
    run_id: str
    secret: str
    mode: CycleMode
    started_at_ms: int
    # Cycles left before the final lock; None when not counting
    remaining_cycles: int | None = None
    token: CancelToken = field(default_factory=CancelToken)

    @property
    def active(self) -> bool:
        return self.token.active


@dataclass
class SchedulerServiceDeps:
    """Dependencies for the lock cycle service.

    This allows for dependency injection of external services.
    """
    executor: CommandExecutor
    secret_store: SecretStore
    notifier: Notifier
    config_source: ConfigSource = Settings.from_env
    rng: random.Random = field(default_factory=random.Random)


@dataclass
class SchedulerServiceState:
    """Runtime state of the lock cycle service."""
    phase: SchedulerPhase = SchedulerPhase.IDLE
    session: RunSession | None = None
    loop_task: asyncio.Task | None = None
    pending_timers: set[PendingTimer] = field(default_factory=set)
    cycles_completed: int = 0
    last_error: str | None = None

    # Loop tasks released by stop() that have not finished yet
    background_tasks: set[asyncio.Task] = field(default_factory=set)

    # Serializes start() calls
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)

    @property
    def active(self) -> bool:
        return self.session is not None and self.session.active

    def cancel_pending_timers(self) -> int:
        """Resolve every pending sleep immediately and clear the set."""
        timers = list(self.pending_timers)
        for timer in timers:
            timer.cancel()
        self.pending_timers.clear()
        return len(timers)

    def reset(self) -> None:
        """Reset run state to initial values."""
        self.phase = SchedulerPhase.IDLE
        self.session = None
        self.loop_task = None
