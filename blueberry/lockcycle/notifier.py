"""User-facing notifications for the lock cycle service."""
import time
from collections import deque
from dataclasses import dataclass
from typing import Any, Protocol

from loguru import logger

logger = logger.bind(module="lockcycle.notifier")


class Notifier(Protocol):
    """Protocol for the surface that shows messages to the operator."""

    def info(self, message: str) -> None:
        ...

    def error(self, message: str) -> None:
        ...

    def debug(self, message: str) -> None:
        ...

    async def request_secret(self, message: str) -> str | None:
        """Ask the operator for the secret; None if they decline."""
        ...


@dataclass
class Notification:
    level: str
    message: str
    timestamp_ms: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "level": self.level,
            "message": self.message,
            "timestamp_ms": self.timestamp_ms,
        }


class NotificationLog:
    """Logs notifications and keeps the recent ones for display.

    Headless: request_secret never prompts, the operator sets the secret
    through the command surface instead.
    """

    def __init__(self, max_items: int = 100):
        self._items: deque[Notification] = deque(maxlen=max_items)

    def _record(self, level: str, message: str) -> None:
        self._items.append(Notification(level, message, int(time.time() * 1000)))

    def info(self, message: str) -> None:
        logger.info(message)
        self._record("info", message)

    def error(self, message: str) -> None:
        logger.error(message)
        self._record("error", message)

    def debug(self, message: str) -> None:
        logger.debug(message)

    async def request_secret(self, message: str) -> str | None:
        self._record("prompt", message)
        return None

    def recent(self, limit: int = 20) -> list[Notification]:
        if limit <= 0:
            return []
        return list(self._items)[-limit:]
