"""Secret persistence for the unlock credential.

The credential is an opaque string; no encryption is applied here. The JSON
store keeps the file readable only by its owner.
"""
import asyncio
import json
import os
from pathlib import Path
from typing import Protocol

from loguru import logger

logger = logger.bind(module="lockcycle.secret_store")

SECRET_KEY = "blueberry-secret"


class SecretStore(Protocol):
    """Protocol for named secret storage."""

    async def get(self, key: str) -> str | None:
        ...

    async def store(self, key: str, value: str) -> None:
        ...

    async def delete(self, key: str) -> None:
        ...


class MemorySecretStore:
    """In-process secret storage, lost on exit."""

    def __init__(self, initial: dict[str, str] | None = None):
        self._values: dict[str, str] = dict(initial or {})

    async def get(self, key: str) -> str | None:
        return self._values.get(key)

    async def store(self, key: str, value: str) -> None:
        self._values[key] = value

    async def delete(self, key: str) -> None:
        self._values.pop(key, None)


class JsonSecretStore:
    """Secret storage in a JSON file with owner-only permissions."""

    def __init__(self, json_path: str | Path):
        """Initialize JSON secret store.

        Args:
            json_path: Path to JSON file for storage
        """
        self.json_path = Path(json_path).expanduser()
        self._lock = asyncio.Lock()

    def _read(self) -> dict[str, str]:
        if not self.json_path.exists():
            return {}
        try:
            with open(self.json_path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.error(f"Failed to read secrets from {self.json_path}: {e}")
            return {}
        if not isinstance(data, dict):
            return {}
        return {k: v for k, v in data.items() if isinstance(v, str)}

    def _write(self, data: dict[str, str]) -> None:
        self.json_path.parent.mkdir(parents=True, exist_ok=True)

        # Write atomically (write to temp, then rename)
        temp_path = self.json_path.with_suffix(".tmp")
        fd = os.open(temp_path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            json.dump(data, f)
        temp_path.replace(self.json_path)

    async def get(self, key: str) -> str | None:
        async with self._lock:
            return self._read().get(key)

    async def store(self, key: str, value: str) -> None:
        async with self._lock:
            data = self._read()
            data[key] = value
            self._write(data)
            logger.debug(f"Stored secret {key} in {self.json_path}")

    async def delete(self, key: str) -> None:
        async with self._lock:
            data = self._read()
            if data.pop(key, None) is not None:
                self._write(data)
                logger.debug(f"Deleted secret {key} from {self.json_path}")
