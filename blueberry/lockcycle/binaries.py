"""Availability gate for the external programs a lock cycle needs."""
from loguru import logger

from .commands import (
    CommandExecutor,
    LOCK_CMD,
    LOGINCTL_CMD,
    WHICH_CMD,
    XDOTOOL_CMD,
    XINPUT_CMD,
    XSET_CMD,
)
from .types import BinaryCheckResult, CommandError, CycleMode

logger = logger.bind(module="lockcycle.binaries")

BASE_BINARIES = (LOCK_CMD, XDOTOOL_CMD, XSET_CMD, XINPUT_CMD)


def required_binaries(mode: CycleMode) -> list[str]:
    """Programs a run in the given mode invokes."""
    if mode == CycleMode.DURATION:
        return [*BASE_BINARIES, LOGINCTL_CMD]
    return list(BASE_BINARIES)


class BinaryGate:
    """Probes the host for required programs with the `which` locator.

    A successful real check is remembered for the lifetime of the gate.
    Dry-run checks always pass and are never remembered.
    """

    def __init__(self, executor: CommandExecutor):
        self.executor = executor
        self._checked: set[str] = set()

    @property
    def checked(self) -> bool:
        return bool(self._checked)

    async def binary_exists(self, name: str) -> bool:
        if self.executor.dry_run:
            self.executor.log_command(WHICH_CMD, [name])
            return True

        try:
            result = await self.executor.output(WHICH_CMD, [name])
        except CommandError:
            return False
        return len(result.strip()) > 0

    async def check(self, binaries: list[str]) -> BinaryCheckResult:
        """Report which of the given programs are missing."""
        if not self.executor.dry_run and set(binaries) <= self._checked:
            return BinaryCheckResult(all_present=True)

        missing = []
        for name in binaries:
            if not await self.binary_exists(name):
                missing.append(name)

        result = BinaryCheckResult(all_present=not missing, missing=missing)
        if result.all_present and not self.executor.dry_run:
            self._checked.update(binaries)
            logger.debug(f"Required binaries present: {', '.join(binaries)}")
        return result
