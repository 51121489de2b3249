"""Session-lock cycling scheduler.

This module provides:
- Duration parsing and lock interval validation
- Input device enumeration and access control
- Lock/unlock action sequences with a dry-run projection
- An asyncio cycle loop with cooperative cancellation
"""
# Core types
from .types import (
    CycleMode,
    SchedulerPhase,
    DeviceClass,
    Device,
    IntervalViolation,
    IntervalValidation,
    BinaryCheckResult,
    LockCycleEvent,
    SchedulerStatus,
    BlueBerryError,
    CommandError,
)

# Duration utilities
from .durations import (
    parse_duration,
    format_duration_ms,
    validate_lock_intervals,
    random_lock_interval,
    now_ms,
    MAX_LOCK_INTERVAL_MS,
)

# Collaborators
from .commands import CommandExecutor
from .devices import parse_device_ids
from .notifier import Notifier, NotificationLog
from .secret_store import SecretStore, MemorySecretStore, JsonSecretStore

# Service
from .service import BlueBerryService

__all__ = [
    # Core types
    "CycleMode",
    "SchedulerPhase",
    "DeviceClass",
    "Device",
    "IntervalViolation",
    "IntervalValidation",
    "BinaryCheckResult",
    "LockCycleEvent",
    "SchedulerStatus",
    "BlueBerryError",
    "CommandError",
    # Duration utilities
    "parse_duration",
    "format_duration_ms",
    "validate_lock_intervals",
    "random_lock_interval",
    "now_ms",
    "MAX_LOCK_INTERVAL_MS",
    # Collaborators
    "CommandExecutor",
    "parse_device_ids",
    "Notifier",
    "NotificationLog",
    "SecretStore",
    "MemorySecretStore",
    "JsonSecretStore",
    # Service
    "BlueBerryService",
]
