"""Command executor for the external programs driven by a lock cycle.

Runs programs with argument vectors (never through a shell). In dry-run mode
every invocation is replaced by a log line and, for listing queries, a fixed
mock output so the rest of the pipeline can run without touching the host.
"""
import asyncio
import os

from loguru import logger

from .types import CommandError

logger = logger.bind(module="lockcycle.commands")

LOCK_CMD = "ft_lock"
XDOTOOL_CMD = "xdotool"
XSET_CMD = "xset"
XINPUT_CMD = "xinput"
LOGINCTL_CMD = "loginctl"
WHICH_CMD = "which"

MASK = "****"

MOCK_XINPUT_LIST = (
    "⎡ Virtual core pointer                    \tid=2\t[master pointer  (3)]\n"
    "⎜   ↳ Virtual core XTEST pointer              \tid=4\t[slave  pointer  (2)]\n"
    "⎜   ↳ Logitech USB Mouse                       \tid=9\t[slave  pointer  (2)]\n"
    "⎣ Virtual core keyboard                   \tid=3\t[master keyboard (2)]\n"
    "    ↳ Virtual core XTEST keyboard             \tid=5\t[slave  keyboard (3)]\n"
    "    ↳ AT Translated Set 2 wired keyboard      \tid=10\t[slave  keyboard (3)]"
)

MOCK_LOGINCTL_SESSIONS = "c54 103457 abennar seat0"


def mask_args(args: list[str]) -> list[str]:
    """Replace the trailing argument, which carries the secret, with a mask."""
    if not args:
        return []
    return [*args[:-1], MASK]


def render_command(program: str, args: list[str], sensitive: bool = False) -> str:
    """Render a command line for logs, masking the secret argument when sensitive."""
    shown = mask_args(args) if sensitive else args
    return " ".join([program, *shown])


def mock_output(program: str, args: list[str]) -> str:
    """Deterministic output returned for an output query in dry-run mode."""
    if program == XINPUT_CMD and args[:1] == ["list"]:
        return MOCK_XINPUT_LIST
    if program == LOGINCTL_CMD and args[:2] == ["list-sessions", "--no-legend"]:
        return MOCK_LOGINCTL_SESSIONS
    return ""


class CommandExecutor:
    """Runs external programs, or narrates them when dry_run is set.

    The dry_run flag is refreshed by the scheduler from configuration at the
    start of every cycle.
    """

    def __init__(self, dry_run: bool = False):
        self.dry_run = dry_run

    def log_command(self, program: str, args: list[str], sensitive: bool = False) -> None:
        logger.info(f"[BlueBerry] Would execute: {render_command(program, args, sensitive)}")

    async def run(
        self,
        program: str,
        args: list[str] | None = None,
        sensitive: bool = False,
    ) -> int | None:
        """Run a program and wait for it to exit.

        Args:
            program: Program name resolved through PATH
            args: Argument vector
            sensitive: Mask the last argument in logs and errors

        Returns:
            Exit status (0 in dry-run mode)

        Raises:
            CommandError: If the program could not be spawned
        """
        args = list(args or [])
        if self.dry_run:
            self.log_command(program, args, sensitive)
            return 0

        try:
            process = await asyncio.create_subprocess_exec(
                program,
                *args,
                env=os.environ.copy(),
            )
        except OSError as e:
            raise CommandError(program, mask_args(args) if sensitive else args, None, str(e)) from e

        returncode = await process.wait()
        if returncode != 0:
            logger.warning(
                f"[BlueBerry] {render_command(program, args, sensitive)} exited with code {returncode}"
            )
        return returncode

    async def output(self, program: str, args: list[str] | None = None) -> str:
        """Run a program and capture its standard output.

        Raises:
            CommandError: If the program could not be spawned or exited non-zero
        """
        args = list(args or [])
        if self.dry_run:
            self.log_command(program, args)
            return mock_output(program, args)

        try:
            process = await asyncio.create_subprocess_exec(
                program,
                *args,
                env=os.environ.copy(),
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            raise CommandError(program, args, None, str(e)) from e

        stdout, stderr = await process.communicate()
        if process.returncode != 0:
            raise CommandError(
                program,
                args,
                process.returncode,
                stderr.decode(errors="replace"),
            )
        return stdout.decode(errors="replace")
