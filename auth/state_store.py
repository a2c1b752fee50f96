"""Short-lived keyed storage for in-flight authorization handshakes.

Every entry carries an absolute expiry. ``pop`` is the only way to read an
entry and removes it in the same step, so a state value can be redeemed at
most once; expired entries read as absent.
"""

from __future__ import annotations

import asyncio
import time
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Callable

from auth.files import read_json_object, write_json_atomic


class StateStore(ABC):
    @abstractmethod
    async def put(self, key: str, value: dict, ttl_seconds: int) -> None:
        raise NotImplementedError

    @abstractmethod
    async def pop(self, key: str) -> dict | None:
        raise NotImplementedError


class MemoryStateStore(StateStore):
    def __init__(self, *, clock: Callable[[], float] = time.time) -> None:
        self._clock = clock
        self._entries: dict[str, tuple[float, dict]] = {}

    async def put(self, key: str, value: dict, ttl_seconds: int) -> None:
        self._prune()
        self._entries[key] = (self._clock() + ttl_seconds, value)

    async def pop(self, key: str) -> dict | None:
        entry = self._entries.pop(key, None)
        if entry is None:
            return None
        expires_at, value = entry
        if self._clock() >= expires_at:
            return None
        return value

    def __len__(self) -> int:
        self._prune()
        return len(self._entries)

    def _prune(self) -> None:
        now = self._clock()
        expired = [key for key, (expires_at, _) in self._entries.items() if expires_at <= now]
        for key in expired:
            del self._entries[key]


class FileStateStore(StateStore):
    def __init__(
        self,
        path: str | Path = ".oauth_state.json",
        *,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._path = Path(path)
        self._clock = clock
        self._lock = asyncio.Lock()

    async def put(self, key: str, value: dict, ttl_seconds: int) -> None:
        async with self._lock:
            entries = self._live_entries()
            entries[key] = {"expires_at": self._clock() + ttl_seconds, "value": value}
            self._write_all(entries)

    async def pop(self, key: str) -> dict | None:
        async with self._lock:
            entries = self._live_entries()
            entry = entries.pop(key, None)
            self._write_all(entries)
        if entry is None:
            return None
        return entry["value"]

    def _live_entries(self) -> dict[str, dict]:
        now = self._clock()
        return {
            key: entry
            for key, entry in self._read_all().items()
            if isinstance(entry, dict) and entry.get("expires_at", 0) > now
        }

    def _read_all(self) -> dict[str, dict]:
        return read_json_object(self._path, "State store")

    def _write_all(self, payload: dict[str, dict]) -> None:
        write_json_atomic(self._path, payload)
