"""Lock and unlock action sequences.

A half-cycle is an ordered run of external commands. Display power-off calls
are cosmetic: they run as detached tasks and their failures are collected in a
diagnostics sink instead of failing the cycle.
"""
import asyncio
from collections import deque
from typing import Any, Coroutine

from loguru import logger

from .commands import CommandExecutor, LOCK_CMD, LOGINCTL_CMD, XDOTOOL_CMD, XSET_CMD
from .types import CommandError

logger = logger.bind(module="lockcycle.actions")

DISPLAY_OFF_ARGS = ["dpms", "force", "off"]
CONFIRM_KEY = "Return"


class ActionSequencer:
    """Runs the lock phase, the unlock phase and the session termination."""

    def __init__(self, executor: CommandExecutor, max_diagnostics: int = 50):
        self.executor = executor
        self.diagnostics: deque[str] = deque(maxlen=max_diagnostics)
        self._detached: set[asyncio.Task] = set()

    # ============== Detached tasks ==============

    def detach(self, coro: Coroutine[Any, Any, Any], name: str) -> asyncio.Task:
        """Start a task nobody awaits; record its failure if it has one."""
        task = asyncio.create_task(coro, name=name)
        self._detached.add(task)
        task.add_done_callback(self._on_detached_done)
        return task

    def _on_detached_done(self, task: asyncio.Task) -> None:
        self._detached.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            message = f"{task.get_name()} failed: {error}"
            self.diagnostics.append(message)
            logger.debug(f"[BlueBerry] {message}")

    @property
    def detached_count(self) -> int:
        return len(self._detached)

    async def drain_detached(self) -> None:
        """Wait for outstanding detached tasks (used at teardown and in tests)."""
        if self._detached:
            await asyncio.gather(*list(self._detached), return_exceptions=True)

    # ============== Actions ==============

    async def lock_screen(self) -> None:
        await self.executor.run(LOCK_CMD)

    def force_display_off(self) -> asyncio.Task:
        return self.detach(self.executor.run(XSET_CMD, DISPLAY_OFF_ARGS), "display-off")

    async def lock_phase(self) -> None:
        await self.lock_screen()
        self.force_display_off()

    async def unlock_phase(self, secret: str) -> None:
        # Re-trigger the locker so the typed secret lands in its prompt
        await self.lock_screen()
        await self.executor.run(XDOTOOL_CMD, ["type", secret], sensitive=True)
        self.force_display_off()
        await self.executor.run(XDOTOOL_CMD, ["key", CONFIRM_KEY])
        self.force_display_off()

    # ============== Session ==============

    async def current_session_id(self) -> str | None:
        """First session id reported by `loginctl list-sessions`."""
        try:
            output = await self.executor.output(
                LOGINCTL_CMD, ["list-sessions", "--no-legend"]
            )
        except CommandError as e:
            logger.error(f"[BlueBerry] Error executing loginctl: {e}")
            return None

        logger.info(f'[BlueBerry] loginctl output: "{output}"')

        for line in output.splitlines():
            parts = line.split()
            if parts:
                logger.info(f"[BlueBerry] Found session ID: {parts[0]}")
                return parts[0]

        logger.error("[BlueBerry] No session found in loginctl output")
        return None

    async def terminate_session(self) -> bool:
        """Terminate the current login session.

        Returns:
            True if a terminate command was issued
        """
        session_id = await self.current_session_id()
        if not session_id:
            logger.error("Could not get session ID for logout")
            return False

        logger.info(f"[BlueBerry] Terminating session: {session_id}")
        await self.executor.run(LOGINCTL_CMD, ["terminate-session", session_id])
        return True
