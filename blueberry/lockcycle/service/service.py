"""Main BlueBerry service class.

This is the entry point for all lock cycle operations:
- start/stop/dispose of a run
- secret management
- status and event subscription
"""
from __future__ import annotations

import asyncio
import random
from typing import Any, Callable
from uuid import uuid4

from loguru import logger

from ...config import Settings
from ..actions import ActionSequencer
from ..binaries import BinaryGate, required_binaries
from ..commands import CommandExecutor
from ..devices import DeviceEnumerator, InputAccessController
from ..durations import now_ms
from ..notifier import NotificationLog, Notifier
from ..secret_store import SECRET_KEY, MemorySecretStore, SecretStore
from ..types import CommandError, CycleMode, SchedulerPhase, SchedulerStatus
from .events import EventEmitter, EventTypes, emit_run_event
from .state import ConfigSource, RunSession, SchedulerServiceDeps, SchedulerServiceState
from . import timer

logger = logger.bind(module="lockcycle.service")


class BlueBerryService:
    """Lifecycle manager for the session-lock cycling scheduler.

    A run is started by start() once the required programs, the secret and the
    interval settings check out. It ends on stop()/dispose(), when its duration
    or cycle count is used up, or when a lock/unlock command fails.
    """

    def __init__(
        self,
        secret_store: SecretStore | None = None,
        notifier: Notifier | None = None,
        executor: CommandExecutor | None = None,
        config_source: ConfigSource = Settings.from_env,
        rng: random.Random | None = None,
    ):
        """Initialize the service.

        Args:
            secret_store: Where the unlock secret lives (in memory by default)
            notifier: Surface for operator messages
            executor: Runs external programs
            config_source: Called for fresh settings at start and every cycle
            rng: Random source for lock intervals
        """
        executor = executor or CommandExecutor()
        self.deps = SchedulerServiceDeps(
            executor=executor,
            secret_store=secret_store or MemorySecretStore(),
            notifier=notifier or NotificationLog(),
            config_source=config_source,
            rng=rng or random.Random(),
        )
        self.state = SchedulerServiceState()
        self.events = EventEmitter()

        self.gate = BinaryGate(executor)
        self.devices = DeviceEnumerator(executor)
        self.access = InputAccessController(executor)
        self.actions = ActionSequencer(executor)

    @property
    def active(self) -> bool:
        return self.state.active

    # ============== Secret ==============

    async def resolve_secret(self) -> str | None:
        secret = await self.deps.secret_store.get(SECRET_KEY)
        if secret is None:
            return None
        return secret.strip() or None

    async def set_secret(self, value: str | None = None) -> bool:
        """Store the unlock secret, prompting the operator when no value is given.

        Returns:
            True if a secret was stored
        """
        if value is None:
            value = await self.deps.notifier.request_secret("Enter your password")
        if not value or not value.strip():
            return False

        await self.deps.secret_store.store(SECRET_KEY, value.strip())
        self.deps.notifier.info("Password updated securely.")
        return True

    async def clear_secret(self) -> None:
        await self.deps.secret_store.delete(SECRET_KEY)
        self.deps.notifier.info("BlueBerry secret has been cleared.")

    # ============== Lifecycle ==============

    async def start(self) -> bool:
        """Start a run.

        Returns:
            True if a run was started, False if one is already active or a
            precondition failed
        """
        async with self.state.lock:
            if self.state.active:
                logger.warning("[BlueBerry] Already running")
                return False
            return await self._start_locked()

    async def _start_locked(self) -> bool:
        notifier = self.deps.notifier
        config = self.deps.config_source()
        dry_run = config.dry_run
        self.deps.executor.dry_run = dry_run

        try:
            mode = CycleMode(config.mode)
        except ValueError:
            notifier.error(
                f"BlueBerry cannot start: Unknown mode '{config.mode}'. "
                f"Use 'duration' or 'cycles'."
            )
            return False

        check = await self.gate.check(required_binaries(mode))
        if not check.all_present and not dry_run:
            notifier.error(
                f"BlueBerry cannot start: Missing required system binaries: "
                f"{', '.join(check.missing)}. Please install them first."
            )
            return False

        secret = await self.resolve_secret()
        if not secret:
            notifier.error(
                "BlueBerry cannot start: Secret is not set. "
                "Please set your password to continue."
            )
            if await self.set_secret():
                notifier.info("Secret set! Please start BlueBerry again.")
            return False

        validation = timer.validate_config(config, mode)
        if not validation.valid:
            notifier.error(
                f"BlueBerry cannot start: {validation.error}. Please check your settings."
            )
            return False

        remaining = None
        if mode == CycleMode.CYCLES and config.stop_after_cycles > 0:
            remaining = config.stop_after_cycles

        session = RunSession(
            run_id=f"run_{uuid4().hex[:12]}",
            secret=secret,
            mode=mode,
            started_at_ms=now_ms(),
            remaining_cycles=remaining,
        )
        self.state.session = session
        self.state.phase = SchedulerPhase.RUNNING
        self.state.cycles_completed = 0
        self.state.last_error = None

        summary = self._describe(config, mode)
        if dry_run:
            logger.info("========================================")
            logger.info("[BlueBerry] Starting in DRY-RUN mode")
            logger.info(f"[BlueBerry] {summary}")
            logger.info("========================================")
            logger.info("[BlueBerry] Initial lock")

        # Initial lock only, no display or input device changes
        try:
            await self.actions.lock_screen()
        except CommandError as e:
            self.end_run(session, EventTypes.RUN_FAILED, f"BlueBerry cannot start: {e}", error=True)
            return False

        if not session.active:
            return False

        task = asyncio.create_task(timer.cycle_loop(self, session), name=session.run_id)
        self.state.loop_task = task
        self.state.background_tasks.add(task)
        task.add_done_callback(self.state.background_tasks.discard)

        emit_run_event(self.events, EventTypes.RUN_STARTED, session.run_id, {"mode": mode.value})
        notifier.info(f"BlueBerry started{' (DRY-RUN)' if dry_run else ''}. {summary}.")
        return True

    @staticmethod
    def _describe(config: Settings, mode: CycleMode) -> str:
        if mode == CycleMode.CYCLES:
            limit = config.stop_after_cycles or "unlimited"
            return (
                f"Will run {limit} cycles of {config.nap_time_s:g}s locked "
                f"and {config.weak_time_s:g}s unlocked"
            )
        return (
            f"Will run for {config.duration} with "
            f"{config.lock_interval_min}-{config.lock_interval_max} intervals"
        )

    def _halt(self) -> int:
        """Cancel the current run without waiting for it.

        Returns:
            Number of pending timers that were cancelled
        """
        session = self.state.session
        if session is not None:
            session.token.cancel()
        cleared = self.state.cancel_pending_timers()
        self.state.reset()
        return cleared

    def end_run(
        self,
        session: RunSession,
        event_type: str,
        message: str,
        error: bool = False,
    ) -> None:
        """End a run from inside the cycle loop and tell the operator why.

        Does nothing if the session is no longer the current run.
        """
        if self.state.session is not session:
            return

        self._halt()
        if error:
            self.state.last_error = message
            self.deps.notifier.error(message)
        else:
            self.deps.notifier.info(message)
        emit_run_event(self.events, event_type, session.run_id, {"message": message})

    async def stop(self) -> None:
        """Stop the current run.

        Pending sleeps resolve immediately; an action sequence already in
        flight finishes on its own. Safe to call repeatedly.
        """
        logger.info("[BlueBerry] Stop requested")
        session = self.state.session
        had_loop = self.state.loop_task is not None and not self.state.loop_task.done()

        cleared = self._halt()
        logger.info(f"[BlueBerry] Cleared {cleared} active timeout(s)")
        if had_loop:
            logger.info("[BlueBerry] Loop task is running but we're not waiting for it")

        if session is None:
            return

        logger.info("[BlueBerry] Stopped successfully")
        emit_run_event(self.events, EventTypes.RUN_STOPPED, session.run_id)
        self.deps.notifier.info("BlueBerry is stopped.")

    async def dispose(self) -> None:
        await self.stop()

    # ============== Status & Events ==============

    def status(self) -> SchedulerStatus:
        session = self.state.session
        return SchedulerStatus(
            phase=self.state.phase,
            active=self.state.active,
            mode=session.mode if session else None,
            dry_run=self.deps.executor.dry_run,
            run_id=session.run_id if session else None,
            started_at_ms=session.started_at_ms if session else None,
            elapsed_ms=now_ms() - session.started_at_ms if session else 0,
            cycles_completed=self.state.cycles_completed,
            pending_timers=len(self.state.pending_timers),
            last_error=self.state.last_error,
        )

    def on_event(self, handler: Callable[[Any], None]) -> None:
        """Register an event handler."""
        self.events.add_handler(handler)

    def off_event(self, handler: Callable[[Any], None]) -> None:
        """Unregister an event handler."""
        self.events.remove_handler(handler)
