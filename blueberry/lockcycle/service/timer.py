"""Cycle loop for the lock cycle service.

Runs lock/unlock cycles until the run is stopped, its duration expires or
its cycle count is used up.
"""
import asyncio
from enum import Enum
from typing import TYPE_CHECKING

from loguru import logger

from ...config import Settings
from ..durations import (
    format_duration_ms,
    now_ms,
    parse_duration,
    random_lock_interval,
    validate_hold_times,
    validate_lock_intervals,
)
from ..types import (
    CommandError,
    CycleMode,
    DeviceClass,
    IntervalValidation,
    SchedulerPhase,
)
from .events import EventTypes, emit_run_event
from .state import CancelToken, PendingTimer, RunSession

if TYPE_CHECKING:
    from .service import BlueBerryService

logger = logger.bind(module="lockcycle.timer")

# Unlocked hold in duration mode
UNLOCK_HOLD_MS = 500


class CycleOutcome(str, Enum):
    """How a single cycle ended."""
    CONTINUE = "continue"   # Cycle completed, run another one
    STOPPED = "stopped"     # Run was cancelled at a checkpoint
    ABORTED = "aborted"     # Secret disappeared before the cycle started
    FINISHED = "finished"   # This cycle ended the run


# ============== Configuration ==============

def validate_config(config: Settings, mode: CycleMode) -> IntervalValidation:
    """Validate the interval settings used by the given mode."""
    if mode == CycleMode.CYCLES:
        return validate_hold_times(config.nap_time_s * 1000, config.weak_time_s * 1000)
    return validate_lock_intervals(
        parse_duration(config.lock_interval_min),
        parse_duration(config.lock_interval_max),
    )


def lock_interval_ms(service: "BlueBerryService", config: Settings, mode: CycleMode) -> float:
    if mode == CycleMode.CYCLES:
        return config.nap_time_s * 1000
    return random_lock_interval(
        parse_duration(config.lock_interval_min),
        parse_duration(config.lock_interval_max),
        service.deps.rng,
    )


def unlock_hold_ms(config: Settings, mode: CycleMode) -> float:
    if mode == CycleMode.CYCLES:
        return config.weak_time_s * 1000
    return UNLOCK_HOLD_MS


# ============== Sleeping ==============

def _fire(waiter: asyncio.Future) -> None:
    if not waiter.done():
        waiter.set_result(True)


async def sleep(service: "BlueBerryService", token: CancelToken, ms: float) -> bool:
    """Sleep for ms, waking early if the run is stopped.

    Returns:
        True if the run is still active after waking
    """
    # stop() may land while an action is in flight; never arm a timer after it
    if not token.active:
        return False

    loop = asyncio.get_running_loop()
    waiter = loop.create_future()
    handle = loop.call_later(max(0.0, ms) / 1000.0, _fire, waiter)
    timer = PendingTimer(handle, waiter)
    service.state.pending_timers.add(timer)
    try:
        await waiter
    finally:
        handle.cancel()
        service.state.pending_timers.discard(timer)
    return token.active


# ============== Cycles ==============

async def check_termination(
    service: "BlueBerryService",
    session: RunSession,
    config: Settings,
) -> bool:
    """Run the terminal action if the run is used up.

    Returns:
        True if the run was ended
    """
    if session.mode == CycleMode.DURATION:
        duration_ms = parse_duration(config.duration)
        if now_ms() - session.started_at_ms < duration_ms:
            return False

        service.state.phase = SchedulerPhase.TERMINATING
        logger.info(f"[BlueBerry] Duration of {config.duration} expired. Logging out...")
        await service.actions.terminate_session()
        service.end_run(
            session,
            EventTypes.RUN_FINISHED,
            f"BlueBerry finished after {config.duration}. Logged out.",
        )
        return True

    if session.remaining_cycles != 0:
        return False

    service.state.phase = SchedulerPhase.TERMINATING
    logger.info("[BlueBerry] Cycle limit reached. Final lock...")
    await service.actions.lock_phase()
    service.end_run(
        session,
        EventTypes.RUN_FINISHED,
        f"BlueBerry finished after {service.state.cycles_completed} cycles.",
    )
    return True


async def run_cycle(service: "BlueBerryService", session: RunSession) -> CycleOutcome:
    """Run one lock -> hold -> unlock -> hold cycle."""
    secret = await service.resolve_secret()
    if not secret or not session.active:
        return CycleOutcome.ABORTED if session.active else CycleOutcome.STOPPED

    # Configuration is re-read every cycle, it may change while running
    config = service.deps.config_source()
    dry_run = config.dry_run
    service.deps.executor.dry_run = dry_run

    validation = validate_config(config, session.mode)
    if not validation.valid:
        logger.error(f"[BlueBerry] Lock interval validation failed: {validation.error}")
        service.end_run(
            session,
            EventTypes.RUN_FAILED,
            f"BlueBerry stopped: {validation.error}. Please check your settings.",
            error=True,
        )
        return CycleOutcome.FINISHED

    if await check_termination(service, session, config):
        return CycleOutcome.FINISHED

    service.state.phase = SchedulerPhase.RUNNING
    interval_ms = lock_interval_ms(service, config, session.mode)
    hold_ms = unlock_hold_ms(config, session.mode)

    if dry_run:
        logger.info("[BlueBerry] ===== New cycle started =====")
        logger.info(f"[BlueBerry] Next lock in {format_duration_ms(interval_ms)}")
    emit_run_event(
        service.events,
        EventTypes.CYCLE_STARTED,
        session.run_id,
        {"lock_interval_ms": interval_ms},
    )

    devices = await service.devices.enumerate()
    if dry_run:
        mice = [str(d.id) for d in devices if d.device_class == DeviceClass.POINTER]
        keyboards = [str(d.id) for d in devices if d.device_class == DeviceClass.KEYBOARD]
        logger.info(f"[BlueBerry] Found {len(mice)} mouse(s): {', '.join(mice)}")
        logger.info(f"[BlueBerry] Found {len(keyboards)} keyboard(s): {', '.join(keyboards)}")

    await service.actions.lock_phase()

    if dry_run:
        logger.info(f"[BlueBerry] Sleeping for {format_duration_ms(interval_ms)}...")
    if not await sleep(service, session.token, interval_ms):
        return CycleOutcome.STOPPED

    service.actions.force_display_off()
    await service.access.disable(devices)
    await service.actions.unlock_phase(secret)

    if dry_run:
        logger.info(f"[BlueBerry] Unlocked for {format_duration_ms(hold_ms)}...")
    if not await sleep(service, session.token, hold_ms):
        return CycleOutcome.STOPPED

    service.actions.force_display_off()
    await service.access.enable(devices)

    service.state.cycles_completed += 1
    if session.remaining_cycles is not None:
        session.remaining_cycles -= 1

    if dry_run:
        logger.info("[BlueBerry] ===== Cycle completed =====")
    emit_run_event(
        service.events,
        EventTypes.CYCLE_COMPLETED,
        session.run_id,
        {"cycles_completed": service.state.cycles_completed},
    )

    return CycleOutcome.CONTINUE if session.active else CycleOutcome.STOPPED


async def cycle_loop(service: "BlueBerryService", session: RunSession) -> None:
    """Main loop of a run.

    Exits when a cycle reports anything other than CONTINUE. A failing
    lock or unlock command ends the run with an error notification, and so
    does any other error escaping a cycle.
    """
    logger.info(f"[BlueBerry] Cycle loop started ({session.run_id})")

    outcome = CycleOutcome.STOPPED
    try:
        while session.active:
            outcome = await run_cycle(service, session)
            if outcome != CycleOutcome.CONTINUE:
                break
            service.state.phase = SchedulerPhase.RESCHEDULED

        if outcome == CycleOutcome.ABORTED:
            service.end_run(
                session,
                EventTypes.RUN_STOPPED,
                "BlueBerry stopped: secret is no longer set.",
            )
    except (CommandError, OSError) as e:
        logger.error(f"[BlueBerry] Cycle failed: {e}")
        service.end_run(
            session,
            EventTypes.RUN_FAILED,
            f"BlueBerry stopped: {e}",
            error=True,
        )
        return
    except Exception as e:
        logger.error(f"[BlueBerry] Cycle loop error: {e}")
        service.end_run(
            session,
            EventTypes.RUN_FAILED,
            f"BlueBerry stopped unexpectedly: {e}",
            error=True,
        )
        return
    finally:
        # The run never outlives its loop, even when the task is cancelled
        service.end_run(session, EventTypes.RUN_STOPPED, "BlueBerry is stopped.")

    logger.info(f"[BlueBerry] Cycle loop stopped ({session.run_id}, {outcome.value})")
