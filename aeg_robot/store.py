"""Persistent key/value storage for small JSON blobs."""

from __future__ import annotations

import asyncio
import json
import logging
from pathlib import Path
from typing import Any, Protocol

_LOGGER = logging.getLogger(__name__)


class BlobStore(Protocol):
    """Asynchronous storage of JSON-serializable values by key."""

    async def async_get(self, key: str) -> Any | None:
        """Return the value stored under a key, or None if absent."""

    async def async_set(self, key: str, value: Any) -> None:
        """Store a value under a key, replacing any previous value."""


class JSONFileStore:
    """Store all values in a single JSON file."""

    def __init__(self, path: str | Path) -> None:
        self._path = Path(path)
        self._lock = asyncio.Lock()

    async def async_get(self, key: str) -> Any | None:
        async with self._lock:
            data = await asyncio.to_thread(self._read)
        return data.get(key)

    async def async_set(self, key: str, value: Any) -> None:
        async with self._lock:
            data = await asyncio.to_thread(self._read)
            data[key] = value
            await asyncio.to_thread(self._write, data)
        _LOGGER.debug("Saved %s to %s", key[:8], self._path)

    def _read(self) -> dict[str, Any]:
        if not self._path.exists():
            return {}
        with self._path.open(encoding="utf-8") as file:
            data = json.load(file)
        if not isinstance(data, dict):
            msg = f"Unexpected contents of {self._path}"
            raise ValueError(msg)
        return data

    def _write(self, data: dict[str, Any]) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        temp_path = self._path.with_suffix(self._path.suffix + ".tmp")
        with temp_path.open("w", encoding="utf-8") as file:
            json.dump(data, file, indent=2)
        temp_path.replace(self._path)
