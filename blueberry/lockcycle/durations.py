"""Duration parsing and lock interval utilities.

Parses "<number><unit>" strings, validates lock intervals against the safety
ceiling and draws randomized lock-hold intervals.
"""
import random
import re
import time

from loguru import logger

from .types import IntervalValidation, IntervalViolation

logger = logger.bind(module="lockcycle.durations")

MS_PER_SECOND = 1000
MS_PER_MINUTE = 60 * MS_PER_SECOND
MS_PER_HOUR = 60 * MS_PER_MINUTE

# Fallback for malformed duration strings
DEFAULT_DURATION_MS = float(MS_PER_HOUR)

# Hard safety cap on a single lock-hold interval
MAX_LOCK_INTERVAL_MS = 30 * MS_PER_MINUTE

_UNIT_FACTORS = {
    "h": MS_PER_HOUR,
    "m": MS_PER_MINUTE,
    "s": MS_PER_SECOND,
}

_DURATION_RE = re.compile(r"^(\d+(?:\.\d*)?|\.\d+)([hms])$", re.IGNORECASE)


def now_ms() -> int:
    """Get current timestamp in milliseconds."""
    return int(time.time() * 1000)


def parse_duration(duration: str) -> float:
    """Parse a duration string like "1h", "30m", "90s" or "1.5h".

    Args:
        duration: Number immediately followed by a unit letter (h, m or s)

    Returns:
        Duration in milliseconds, or one hour when the string is malformed
    """
    match = _DURATION_RE.match((duration or "").strip())
    if not match:
        logger.error(f'Invalid duration format: "{duration}". Using default 1 hour.')
        return DEFAULT_DURATION_MS

    value = float(match.group(1))
    unit = match.group(2).lower()
    return value * _UNIT_FACTORS[unit]


def format_duration_ms(ms: float) -> str:
    """Render milliseconds as a short human string, e.g. "12.50 min"."""
    if ms >= MS_PER_MINUTE:
        return f"{ms / MS_PER_MINUTE:.2f} min"
    if ms >= MS_PER_SECOND:
        return f"{ms / MS_PER_SECOND:.2f} s"
    return f"{ms:.0f} ms"


def validate_lock_intervals(
    min_ms: float,
    max_ms: float,
    ceiling_ms: float = MAX_LOCK_INTERVAL_MS,
) -> IntervalValidation:
    """Validate a lock interval range.

    Args:
        min_ms: Minimum lock-hold interval in ms
        max_ms: Maximum lock-hold interval in ms
        ceiling_ms: Largest allowed value for either bound

    Returns:
        Valid result, or the first violation found
    """
    ceiling_min = ceiling_ms / MS_PER_MINUTE

    if min_ms > ceiling_ms:
        return IntervalValidation.fail(
            IntervalViolation.MIN_EXCEEDS_CEILING,
            f"Minimum lock interval exceeds {ceiling_min:g} minutes limit",
        )

    if max_ms > ceiling_ms:
        return IntervalValidation.fail(
            IntervalViolation.MAX_EXCEEDS_CEILING,
            f"Maximum lock interval exceeds {ceiling_min:g} minutes limit",
        )

    if min_ms > max_ms:
        return IntervalValidation.fail(
            IntervalViolation.MIN_GREATER_THAN_MAX,
            f"Minimum lock interval ({min_ms:.0f}ms) cannot be greater than maximum ({max_ms:.0f}ms)",
        )

    return IntervalValidation.ok()


def validate_hold_times(nap_ms: float, weak_ms: float) -> IntervalValidation:
    """Validate the fixed hold times used in cycle-count mode."""
    if nap_ms < 0 or weak_ms < 0:
        return IntervalValidation.fail(
            IntervalViolation.NEGATIVE_HOLD_TIME,
            "Nap and weak times must not be negative",
        )
    return IntervalValidation.ok()


def random_lock_interval(
    min_ms: float,
    max_ms: float,
    rng: random.Random | None = None,
) -> float:
    """Draw a lock-hold interval uniformly from [min_ms, max_ms].

    Returns min_ms exactly when both bounds are equal.
    """
    if min_ms == max_ms:
        return min_ms
    rng = rng or random
    return rng.uniform(min_ms, max_ms)
