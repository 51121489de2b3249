"""End-to-end tests for the lock cycle service in dry-run mode."""
import asyncio

import pytest

from blueberry.lockcycle import BlueBerryService, MemorySecretStore
from blueberry.lockcycle.secret_store import SECRET_KEY
from blueberry.lockcycle.service.events import EventTypes
from blueberry.lockcycle.types import CommandError, CycleMode, SchedulerPhase

from conftest import SECRET, RecordingExecutor, make_settings


async def wait_for_timer(service: BlueBerryService, timeout: float = 2.0) -> None:
    """Wait until the cycle loop is suspended in a sleep."""
    async def _poll():
        while not service.state.pending_timers:
            await asyncio.sleep(0.005)
    await asyncio.wait_for(_poll(), timeout)


async def finish(service: BlueBerryService, task: asyncio.Task, timeout: float = 10.0) -> None:
    await asyncio.wait_for(task, timeout)
    await service.actions.drain_detached()


# ============== start() preconditions ==============

@pytest.mark.asyncio
async def test_start_without_secret_prompts_and_does_not_run(executor, notifier, config):
    service = BlueBerryService(
        secret_store=MemorySecretStore(),
        notifier=notifier,
        executor=executor,
        config_source=config,
    )

    assert await service.start() is False

    assert not service.active
    assert service.state.session is None
    assert service.state.loop_task is None
    assert notifier.prompts == ["Enter your password"]
    assert any("Secret is not set" in e for e in notifier.errors)
    assert executor.count("ft_lock") == 0


@pytest.mark.asyncio
async def test_start_stores_prompted_secret_but_still_refuses(executor, config):
    from conftest import RecordingNotifier

    notifier = RecordingNotifier(secret_reply="  s3cret  ")
    store = MemorySecretStore()
    service = BlueBerryService(
        secret_store=store, notifier=notifier, executor=executor, config_source=config
    )

    assert await service.start() is False
    assert await store.get(SECRET_KEY) == "s3cret"
    assert "Secret set! Please start BlueBerry again." in notifier.infos
    assert not service.active


@pytest.mark.asyncio
async def test_blank_secret_counts_as_missing(executor, notifier, config):
    service = BlueBerryService(
        secret_store=MemorySecretStore({SECRET_KEY: "   "}),
        notifier=notifier,
        executor=executor,
        config_source=config,
    )
    assert await service.start() is False
    assert not service.active


@pytest.mark.asyncio
async def test_start_rejects_invalid_intervals(service, config, notifier, executor, tmp_path):
    config.settings = make_settings(tmp_path, lock_interval_min="20m", lock_interval_max="10m")

    assert await service.start() is False

    assert not service.active
    assert any("cannot be greater than maximum" in e for e in notifier.errors)
    assert executor.count("ft_lock") == 0


@pytest.mark.asyncio
async def test_start_rejects_unknown_mode(service, config, notifier, tmp_path):
    config.settings = make_settings(tmp_path, mode="weekly")

    assert await service.start() is False
    assert any("Unknown mode" in e for e in notifier.errors)


@pytest.mark.asyncio
async def test_start_aborts_when_binaries_missing(notifier, secret_store, tmp_path):
    class NoBinariesExecutor(RecordingExecutor):
        async def output(self, program, args=None):
            self.calls.append([program, *(args or [])])
            raise CommandError(program, args, 1, "")

    executor = NoBinariesExecutor()
    settings = make_settings(tmp_path, dry_run=False)
    service = BlueBerryService(
        secret_store=secret_store,
        notifier=notifier,
        executor=executor,
        config_source=lambda: settings,
    )

    assert await service.start() is False

    assert not service.active
    assert len(notifier.errors) == 1
    assert "Missing required system binaries" in notifier.errors[0]
    for name in ["ft_lock", "xdotool", "xset", "xinput", "loginctl"]:
        assert name in notifier.errors[0]
    assert executor.count("ft_lock") == 0


@pytest.mark.asyncio
async def test_start_while_active_is_noop(service, executor):
    assert await service.start() is True
    task = service.state.loop_task

    assert await service.start() is False
    assert service.state.loop_task is task
    assert executor.count("ft_lock") <= 2

    await service.stop()
    await finish(service, task)


# ============== Cycles ==============

@pytest.mark.asyncio
async def test_start_performs_initial_lock_and_runs_first_cycle(service, executor, notifier):
    events = []
    service.on_event(events.append)

    assert await service.start() is True
    assert executor.calls[0] == ["ft_lock"]
    assert service.active
    assert service.status().mode == CycleMode.DURATION
    assert "BlueBerry started (DRY-RUN)" in notifier.infos[-1]

    await wait_for_timer(service)
    assert executor.count("xinput", "list") == 2
    assert executor.count("ft_lock") == 2
    assert [e.type for e in events] == [EventTypes.RUN_STARTED, EventTypes.CYCLE_STARTED]

    task = service.state.loop_task
    await service.stop()
    await finish(service, task)


@pytest.mark.asyncio
async def test_stop_during_locked_hold_skips_rest_of_cycle(service, executor, notifier):
    await service.start()
    task = service.state.loop_task
    await wait_for_timer(service)
    calls_before = list(executor.calls)

    await service.stop()

    assert len(service.state.pending_timers) == 0
    assert service.state.loop_task is None
    assert not service.active
    assert service.status().phase == SchedulerPhase.IDLE
    assert notifier.infos[-1] == "BlueBerry is stopped."

    await finish(service, task, timeout=1.0)
    new_calls = [c for c in executor.calls[len(calls_before):] if c[0] != "xset"]
    assert new_calls == []
    assert executor.count("xdotool", "type", SECRET) == 0
    assert not any(c[:2] == ["xinput", "disable"] for c in executor.calls)
    assert not any(c[:2] == ["xinput", "enable"] for c in executor.calls)


@pytest.mark.asyncio
async def test_stop_and_dispose_are_idempotent(service, notifier):
    await service.stop()
    await service.dispose()
    assert notifier.infos == []

    await service.start()
    task = service.state.loop_task
    await wait_for_timer(service)

    await asyncio.gather(service.stop(), service.stop(), service.dispose())
    await service.stop()
    await service.dispose()

    assert notifier.infos.count("BlueBerry is stopped.") == 1
    assert len(service.state.pending_timers) == 0
    await finish(service, task, timeout=1.0)


@pytest.mark.asyncio
async def test_duration_expiry_terminates_session_once(service, config, executor, notifier, tmp_path):
    config.settings = make_settings(
        tmp_path, duration="2s", lock_interval_min="0.01s", lock_interval_max="0.01s"
    )
    loop = asyncio.get_running_loop()
    started = loop.time()

    assert await service.start() is True
    task = service.state.loop_task
    await finish(service, task)

    assert loop.time() - started >= 2.0
    assert executor.count("loginctl", "terminate-session", "c54") == 1
    assert not service.active
    assert service.status().cycles_completed >= 1
    assert "BlueBerry finished after 2s. Logged out." in notifier.infos


@pytest.mark.asyncio
async def test_cycle_count_runs_exact_cycles_then_final_lock(service, config, executor, notifier, tmp_path):
    config.settings = make_settings(
        tmp_path, mode="cycles", nap_time_s=0.01, weak_time_s=0.01, stop_after_cycles=3
    )

    assert await service.start() is True
    task = service.state.loop_task
    await finish(service, task)

    assert executor.count("xdotool", "type", SECRET) == 3
    assert executor.count("xdotool", "key", "Return") == 3
    assert executor.count("xinput", "enable", "9") == 3
    # initial lock + two per cycle + final lock
    assert executor.count("ft_lock") == 1 + 3 * 2 + 1
    awaited = [c for c in executor.calls if c[0] != "xset"]
    assert awaited[-1] == ["ft_lock"]
    assert awaited[-2] == ["xinput", "enable", "10"]
    assert not any(c[0] == "loginctl" for c in executor.calls)

    status = service.status()
    assert not status.active
    assert status.cycles_completed == 3
    assert "BlueBerry finished after 3 cycles." in notifier.infos


@pytest.mark.asyncio
async def test_invalid_config_mid_run_stops_with_reason(service, config, executor, notifier, tmp_path):
    assert await service.start() is True
    task = service.state.loop_task

    # The loop reads configuration when its first cycle begins
    config.settings = make_settings(tmp_path, lock_interval_min="40m", lock_interval_max="45m")
    await finish(service, task)

    assert not service.active
    assert any(
        "BlueBerry stopped: Minimum lock interval exceeds 30 minutes limit" in e
        for e in notifier.errors
    )
    assert service.status().last_error is not None
    assert executor.count("xinput", "list") == 0


@pytest.mark.asyncio
async def test_unlock_failure_ends_run_with_error(notifier, secret_store, tmp_path):
    executor = RecordingExecutor(fail={"xdotool": CommandError("xdotool", ["type"], None, "no X")})
    settings = make_settings(tmp_path, lock_interval_min="0.01s", lock_interval_max="0.01s")
    service = BlueBerryService(
        secret_store=secret_store,
        notifier=notifier,
        executor=executor,
        config_source=lambda: settings,
    )
    failures = []
    service.on_event(lambda e: failures.append(e) if e.type == EventTypes.RUN_FAILED else None)

    assert await service.start() is True
    task = service.state.loop_task
    await finish(service, task)

    assert not service.active
    assert len(service.state.pending_timers) == 0
    assert any("BlueBerry stopped: xdotool" in e for e in notifier.errors)
    assert len(failures) == 1
    assert not any(c[:2] == ["xinput", "enable"] for c in executor.calls)


@pytest.mark.asyncio
async def test_cleared_secret_ends_run_before_next_cycle(service, config, executor, notifier, tmp_path):
    config.settings = make_settings(
        tmp_path, mode="cycles", nap_time_s=0.01, weak_time_s=0.01
    )
    await service.start()
    task = service.state.loop_task
    await service.clear_secret()
    await finish(service, task)

    assert not service.active
    assert executor.count("ft_lock") == 1
    assert "BlueBerry stopped: secret is no longer set." in notifier.infos


@pytest.mark.asyncio
async def test_set_and_clear_secret(service, secret_store, notifier):
    assert await service.set_secret("  new-pass ") is True
    assert await secret_store.get(SECRET_KEY) == "new-pass"

    assert await service.set_secret("   ") is False
    assert await secret_store.get(SECRET_KEY) == "new-pass"

    await service.clear_secret()
    assert await secret_store.get(SECRET_KEY) is None
    assert notifier.infos == ["Password updated securely.", "BlueBerry secret has been cleared."]


@pytest.mark.asyncio
async def test_stop_during_unlocked_hold_leaves_devices_alone(service, config, executor, tmp_path):
    config.settings = make_settings(tmp_path, mode="cycles", nap_time_s=0.01, weak_time_s=60)
    await service.start()
    task = service.state.loop_task

    async def _unlocked():
        while not (executor.count("xdotool", "type", SECRET) == 1 and service.state.pending_timers):
            await asyncio.sleep(0.005)
    await asyncio.wait_for(_unlocked(), 2.0)
    await service.actions.drain_detached()
    calls_before = len(executor.calls)

    await service.stop()
    await finish(service, task, timeout=1.0)

    assert executor.calls[calls_before:] == []
    assert not any(c[:2] == ["xinput", "enable"] for c in executor.calls)
    assert service.status().cycles_completed == 0


@pytest.mark.asyncio
async def test_stop_while_lock_in_flight_arms_no_timer(notifier, secret_store, tmp_path):
    release = asyncio.Event()

    class SlowLockExecutor(RecordingExecutor):
        async def run(self, program, args=None, sensitive=False):
            result = await super().run(program, args, sensitive)
            # The first in-cycle lock blocks until released
            if program == "ft_lock" and self.count("ft_lock") == 2:
                await release.wait()
            return result

    executor = SlowLockExecutor()
    settings = make_settings(tmp_path)
    service = BlueBerryService(
        secret_store=secret_store,
        notifier=notifier,
        executor=executor,
        config_source=lambda: settings,
    )
    await service.start()
    task = service.state.loop_task

    async def _locking():
        while executor.count("ft_lock") < 2:
            await asyncio.sleep(0.005)
    await asyncio.wait_for(_locking(), 2.0)

    await service.stop()
    release.set()
    await finish(service, task, timeout=1.0)

    assert task.done()
    assert len(service.state.pending_timers) == 0
    assert service.status().pending_timers == 0
    assert not any(c[:2] == ["xinput", "disable"] for c in executor.calls)


@pytest.mark.asyncio
async def test_unexpected_loop_error_clears_run(executor, notifier, secret_store, tmp_path):
    settings = make_settings(tmp_path)
    reads = []

    def flaky_config():
        reads.append(1)
        if len(reads) == 2:
            raise RuntimeError("settings unreadable")
        return settings

    service = BlueBerryService(
        secret_store=secret_store,
        notifier=notifier,
        executor=executor,
        config_source=flaky_config,
    )

    assert await service.start() is True
    await finish(service, service.state.loop_task)

    assert not service.active
    assert service.state.session is None
    assert any("settings unreadable" in e for e in notifier.errors)

    # A fresh run can start once the failed one is cleared
    assert await service.start() is True
    task = service.state.loop_task
    await service.stop()
    await finish(service, task, timeout=1.0)
