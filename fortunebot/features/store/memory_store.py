"""
In-process key-value store for development and tests.

Not shared between workers; state is lost on restart.
"""
import time
from typing import Callable, Dict, Optional, Tuple


class MemoryKeyValueStore:
    """Dict-backed implementation of the KeyValueStore protocol."""

    def __init__(self, time_fn: Callable[[], float] = time.monotonic):
        self.time_fn = time_fn
        self._data: Dict[str, Tuple[str, Optional[float]]] = {}

    def _live(self, key: str) -> Optional[str]:
        entry = self._data.get(key)
        if entry is None:
            return None
        value, expires_at = entry
        if expires_at is not None and expires_at <= self.time_fn():
            self._data.pop(key, None)
            return None
        return value

    async def get(self, key: str) -> Optional[str]:
        return self._live(key)

    async def set(self, key: str, value: str, ex: Optional[int] = None) -> None:
        expires_at = self.time_fn() + ex if ex else None
        self._data[key] = (value, expires_at)

    async def delete(self, key: str) -> None:
        self._data.pop(key, None)

    async def close(self) -> None:
        self._data.clear()

    def keys(self):
        """Live keys (testing/diagnostics only)."""
        return [key for key in list(self._data) if self._live(key) is not None]
