"""Core type definitions for the lock cycle system.

This module defines:
- Cycle modes and scheduler phases
- Device types produced by enumeration
- Validation and gate results
- Event and status types
- Exceptions raised by the command layer
"""
from dataclasses import dataclass, field
from enum import Enum
from typing import Any


# ============== Modes & Phases ==============

class CycleMode(str, Enum):
    """Which configuration schema bounds a run."""
    DURATION = "duration"   # Wall-clock duration with randomized lock intervals
    CYCLES = "cycles"       # Fixed nap/weak times and a cycle count


class SchedulerPhase(str, Enum):
    """Phase of the cycle scheduler state machine."""
    IDLE = "idle"
    RUNNING = "running"
    RESCHEDULED = "rescheduled"
    TERMINATING = "terminating"


# ============== Devices ==============

class DeviceClass(str, Enum):
    """Class of an input device reported by the device listing."""
    POINTER = "pointer"
    KEYBOARD = "keyboard"


@dataclass(frozen=True)
class Device:
    """An input device found during one cycle's enumeration."""
    id: int
    device_class: DeviceClass


# ============== Validation ==============

class IntervalViolation(str, Enum):
    """Specific reason a lock interval configuration is rejected."""
    MIN_EXCEEDS_CEILING = "min_exceeds_ceiling"
    MAX_EXCEEDS_CEILING = "max_exceeds_ceiling"
    MIN_GREATER_THAN_MAX = "min_greater_than_max"
    NEGATIVE_HOLD_TIME = "negative_hold_time"


@dataclass
class IntervalValidation:
    """Result of validating a lock interval configuration."""
    valid: bool = True
    violation: IntervalViolation | None = None
    error: str = ""

    @classmethod
    def ok(cls) -> "IntervalValidation":
        return cls()

    @classmethod
    def fail(cls, violation: IntervalViolation, error: str) -> "IntervalValidation":
        return cls(valid=False, violation=violation, error=error)


@dataclass
class BinaryCheckResult:
    """Result of probing the host for the required programs."""
    all_present: bool
    missing: list[str] = field(default_factory=list)


# ============== Events ==============

@dataclass
class LockCycleEvent:
    """Event emitted by the lock cycle service."""
    type: str
    run_id: str
    timestamp_ms: int
    payload: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.type,
            "run_id": self.run_id,
            "timestamp_ms": self.timestamp_ms,
            "payload": self.payload,
        }


# ============== Status ==============

@dataclass
class SchedulerStatus:
    """Snapshot of the lock cycle service."""
    phase: SchedulerPhase = SchedulerPhase.IDLE
    active: bool = False
    mode: CycleMode | None = None
    dry_run: bool = False
    run_id: str | None = None
    started_at_ms: int | None = None
    elapsed_ms: int = 0
    cycles_completed: int = 0
    pending_timers: int = 0
    last_error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "phase": self.phase.value,
            "active": self.active,
            "mode": self.mode.value if self.mode else None,
            "dry_run": self.dry_run,
            "run_id": self.run_id,
            "started_at_ms": self.started_at_ms,
            "elapsed_ms": self.elapsed_ms,
            "cycles_completed": self.cycles_completed,
            "pending_timers": self.pending_timers,
            "last_error": self.last_error,
        }


# ============== Errors ==============

class BlueBerryError(Exception):
    """Base class for lock cycle errors."""


class CommandError(BlueBerryError):
    """An external program could not be run or exited with an error."""

    def __init__(
        self,
        program: str,
        args: list[str] | None = None,
        returncode: int | None = None,
        stderr: str = "",
    ):
        self.program = program
        self.args_list = list(args or [])
        self.returncode = returncode
        self.stderr = stderr
        detail = stderr.strip() or f"Command exited with code {returncode}"
        super().__init__(f"{program}: {detail}")
