"""Best-effort result cache for citation matches.

Keys hash the serialized emotional signal plus a prefix of the message.
Values are serialized match JSON. A failing cache never fails a request:
reads and writes that raise are logged and treated as misses.
"""

import asyncio
import hashlib
import json
import threading
import time
from typing import Protocol

from evidence_engine.core.logging import get_logger
from evidence_engine.core.schemas_citation import EmotionalSignal

logger = get_logger(__name__)

CITATION_PREFIX = "citation:"
HYBRID_PREFIX = "hybrid:"


class MatchCache(Protocol):
    """Key/value cache with per-entry TTL."""

    def get(self, key: str) -> str | None: ...

    def set(self, key: str, value: str, ttl_seconds: int) -> None: ...


def cache_key(prefix: str, message: str, signal: EmotionalSignal, key_chars: int = 50) -> str:
    """Stable key for a (signal, message prefix) pair."""
    payload = json.dumps(signal.model_dump(mode="json"), sort_keys=True) + message[:key_chars]
    return prefix + hashlib.sha256(payload.encode("utf-8")).hexdigest()


class InMemoryTTLCache:
    """Thread-safe in-process cache; entries expire on a monotonic clock."""

    def __init__(self, clock=time.monotonic):
        self._entries: dict[str, tuple[float, str]] = {}
        self._lock = threading.Lock()
        self._clock = clock

    def get(self, key: str) -> str | None:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            expires_at, value = entry
            if self._clock() >= expires_at:
                del self._entries[key]
                return None
            return value

    def set(self, key: str, value: str, ttl_seconds: int) -> None:
        with self._lock:
            now = self._clock()
            expired = [k for k, (expires_at, _) in self._entries.items() if now >= expires_at]
            for k in expired:
                del self._entries[k]
            self._entries[key] = (now + ttl_seconds, value)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()


async def read_cached(cache: MatchCache | None, key: str) -> str | None:
    """Cache lookup that degrades to a miss on any cache error."""
    if cache is None:
        return None
    try:
        return await asyncio.to_thread(cache.get, key)
    except Exception as e:
        logger.warning(f"Match cache read failed, recomputing: {e}")
        return None


async def write_cached(cache: MatchCache | None, key: str, value: str, ttl_seconds: int) -> None:
    """Cache write that logs and drops any cache error."""
    if cache is None:
        return
    try:
        await asyncio.to_thread(cache.set, key, value, ttl_seconds)
    except Exception as e:
        logger.warning(f"Match cache write failed: {e}")
