from __future__ import annotations

"""TTL result cache and single-flight deduplication for query results."""

import asyncio
import hashlib
import json
import threading
import time
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Generic, TypeVar

from hybrid_rag.rag.errors import TransientServiceError

DEFAULT_TTL_SECONDS = 3600.0
RESULT_TTL_SECONDS = 1800.0

T = TypeVar("T")


def build_cache_key(question: str, max_results: int, include_metadata: bool) -> str:
    """Derive a deterministic cache key from the request exactly as received."""
    payload = json.dumps(
        {
            "question": question,
            "max_results": max_results,
            "include_metadata": bool(include_metadata),
        },
        sort_keys=True,
        separators=(",", ":"),
    )
    return "query_" + hashlib.sha256(payload.encode("utf-8")).hexdigest()


@dataclass(frozen=True)
class CacheEntry:
    key: str
    value: Any
    expires_at: float


@dataclass
class ResultCache:
    """Thread-safe in-memory cache with per-entry expiry."""
    default_ttl: float = DEFAULT_TTL_SECONDS
    clock: Callable[[], float] = time.monotonic
    _entries: dict[str, CacheEntry] = field(default_factory=dict, init=False, repr=False)
    _lock: threading.Lock = field(default_factory=threading.Lock, init=False, repr=False)
    _hits: int = field(default=0, init=False)
    _misses: int = field(default=0, init=False)

    def get(self, key: str) -> Any | None:
        """Return the cached value, or None when absent or expired."""
        with self._lock:
            entry = self._entries.get(key)
            if entry is not None and entry.expires_at <= self.clock():
                del self._entries[key]
                entry = None
            if entry is None:
                self._misses += 1
                return None
            self._hits += 1
            return entry.value

    def put(self, key: str, value: Any, ttl_seconds: float | None = None) -> None:
        """Store a value for ``ttl_seconds`` (default TTL when omitted)."""
        ttl = self.default_ttl if ttl_seconds is None else ttl_seconds
        with self._lock:
            self._entries[key] = CacheEntry(key=key, value=value, expires_at=self.clock() + ttl)

    def invalidate_all(self) -> None:
        """Drop every entry."""
        with self._lock:
            self._entries.clear()

    def stats(self) -> dict[str, int]:
        """Return entry count and hit/miss counters."""
        with self._lock:
            now = self.clock()
            live = sum(1 for entry in self._entries.values() if entry.expires_at > now)
            return {"keys": live, "hits": self._hits, "misses": self._misses}

    def __len__(self) -> int:
        return self.stats()["keys"]


@dataclass
class SingleFlight(Generic[T]):
    """Collapses concurrent computations for the same key into one."""
    _pending: dict[str, asyncio.Future] = field(default_factory=dict, init=False, repr=False)

    async def run(self, key: str, factory: Callable[[], Awaitable[T]]) -> tuple[T, bool]:
        """Run ``factory`` once per key; concurrent callers share its outcome.

        Returns the value and whether it was shared from another caller's
        in-flight computation.
        """
        pending = self._pending.get(key)
        if pending is not None:
            return await asyncio.shield(pending), True
        future: asyncio.Future = asyncio.get_running_loop().create_future()
        self._pending[key] = future
        try:
            value = await factory()
        except asyncio.CancelledError:
            # followers fail like any other error instead of being cancelled
            self._fail(future, TransientServiceError("in-flight computation was cancelled"))
            raise
        except Exception as exc:
            self._fail(future, exc)
            raise
        else:
            future.set_result(value)
            return value, False
        finally:
            self._pending.pop(key, None)

    @staticmethod
    def _fail(future: asyncio.Future, exc: BaseException) -> None:
        future.set_exception(exc)
        # mark retrieved so a failure nobody awaited does not warn
        future.exception()

    def in_flight(self) -> int:
        return len(self._pending)
