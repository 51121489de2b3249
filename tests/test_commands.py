"""Tests for the command executor and its dry-run projection."""
import pytest

from blueberry.lockcycle.commands import (
    MOCK_LOGINCTL_SESSIONS,
    MOCK_XINPUT_LIST,
    CommandExecutor,
    mock_output,
    render_command,
)
from blueberry.lockcycle.types import CommandError


def test_render_command_masks_sensitive_arguments():
    assert render_command("xdotool", ["key", "Return"]) == "xdotool key Return"
    assert render_command("xdotool", ["type", "hunter2"], sensitive=True) == "xdotool type ****"
    assert render_command("xdotool", [], sensitive=True) == "xdotool"


def test_mock_output_per_query():
    assert mock_output("xinput", ["list"]) == MOCK_XINPUT_LIST
    assert mock_output("loginctl", ["list-sessions", "--no-legend"]) == MOCK_LOGINCTL_SESSIONS
    assert mock_output("loginctl", ["list-sessions"]) == ""
    assert mock_output("which", ["xset"]) == ""


@pytest.mark.asyncio
async def test_dry_run_logs_instead_of_executing(log_messages):
    executor = CommandExecutor(dry_run=True)

    assert await executor.run("xset", ["dpms", "force", "off"]) == 0
    assert await executor.output("xinput", ["list"]) == MOCK_XINPUT_LIST

    assert "[BlueBerry] Would execute: xset dpms force off" in log_messages
    assert "[BlueBerry] Would execute: xinput list" in log_messages


@pytest.mark.asyncio
async def test_dry_run_never_logs_the_secret(log_messages):
    executor = CommandExecutor(dry_run=True)
    await executor.run("xdotool", ["type", "hunter2"], sensitive=True)

    assert not any("hunter2" in m for m in log_messages)
    assert "[BlueBerry] Would execute: xdotool type ****" in log_messages


@pytest.mark.asyncio
async def test_output_captures_stdout():
    executor = CommandExecutor()
    assert (await executor.output("echo", ["hello"])).strip() == "hello"


@pytest.mark.asyncio
async def test_output_raises_on_nonzero_exit():
    executor = CommandExecutor()
    with pytest.raises(CommandError) as exc_info:
        await executor.output("sh", ["-c", "echo boom >&2; exit 3"])
    assert exc_info.value.returncode == 3
    assert "boom" in str(exc_info.value)


@pytest.mark.asyncio
async def test_run_returns_exit_status():
    executor = CommandExecutor()
    assert await executor.run("true") == 0
    assert await executor.run("false") == 1


@pytest.mark.asyncio
async def test_missing_program_raises_command_error():
    executor = CommandExecutor()
    with pytest.raises(CommandError):
        await executor.run("blueberry-no-such-program")
    with pytest.raises(CommandError):
        await executor.output("blueberry-no-such-program")


@pytest.mark.asyncio
async def test_spawn_failure_masks_the_secret_argument():
    executor = CommandExecutor()
    with pytest.raises(CommandError) as exc_info:
        await executor.run("blueberry-no-such-program", ["type", "hunter2"], sensitive=True)
    assert exc_info.value.args_list == ["type", "****"]
