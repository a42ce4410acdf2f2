"""
Time-bounded read cache with in-flight request deduplication.

TtlCache stores successful fetch results for a fixed TTL and collapses
concurrent misses for the same key onto a single underlying fetch.

Example:
    >>> cache = TtlCache(ttl=60.0)
    >>> profile = await cache.get_or_fetch(("profile", "alice.near"), fetch_profile)

Invariants:
    - At most one outstanding fetch per key; all waiters share its result
    - Failures are never cached; the next call fetches again
    - A waiter being cancelled never cancels the shared fetch
    - A fetch that was pending when its key was invalidated does not
      write its result back

Keys are tuples whose second element is the account id they are scoped
to, which is what invalidate() matches on.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Generic, Hashable, Optional, Tuple, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

CacheKey = Tuple[Hashable, ...]


@dataclass
class CacheEntry(Generic[T]):
    """A cached value and when it was fetched (cache clock seconds)."""

    value: T
    fetched_at: float


def _consume_result(task: asyncio.Task) -> None:
    # Keeps asyncio from warning when every waiter went away before a failure.
    if not task.cancelled():
        task.exception()


class TtlCache(Generic[T]):
    """Per-instance TTL cache with in-flight deduplication.

    Attributes:
        ttl: Entry lifetime in seconds
        name: Label used in log messages
    """

    def __init__(
        self,
        ttl: float,
        *,
        name: str = "cache",
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """Initialize cache.

        Args:
            ttl: Entry lifetime in seconds
            name: Label for log messages
            clock: Monotonic time source (injectable for tests)
        """
        self.ttl = ttl
        self.name = name
        self._clock = clock
        self._entries: Dict[CacheKey, CacheEntry[T]] = {}
        self._pending: Dict[CacheKey, asyncio.Task] = {}
        self._lock = asyncio.Lock()

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: CacheKey) -> bool:
        entry = self._entries.get(key)
        return entry is not None and not self._expired(entry)

    def _expired(self, entry: CacheEntry[T]) -> bool:
        return self._clock() - entry.fetched_at >= self.ttl

    @property
    def pending_count(self) -> int:
        """Number of fetches currently in flight."""
        return len(self._pending)

    async def get_or_fetch(self, key: CacheKey, fetch: Callable[[], Awaitable[T]]) -> T:
        """Return the cached value for key, fetching it on a miss.

        Args:
            key: Cache key; key[1] is the scoping account id
            fetch: Zero-argument coroutine factory producing the value

        Returns:
            Cached or freshly fetched value

        Raises:
            Whatever fetch raises (not cached)
        """
        async with self._lock:
            entry = self._entries.get(key)
            if entry is not None:
                if not self._expired(entry):
                    logger.debug(f"{self.name} hit: {key}")
                    return entry.value
                del self._entries[key]

            task = self._pending.get(key)
            if task is None:
                logger.debug(f"{self.name} miss: {key}")
                task = asyncio.ensure_future(self._run(key, fetch))
                task.add_done_callback(_consume_result)
                self._pending[key] = task
            else:
                logger.debug(f"{self.name} joining in-flight fetch: {key}")

        return await asyncio.shield(task)

    async def _run(self, key: CacheKey, fetch: Callable[[], Awaitable[T]]) -> T:
        me = asyncio.current_task()
        try:
            value = await fetch()
        except BaseException:
            async with self._lock:
                if self._pending.get(key) is me:
                    del self._pending[key]
            raise

        async with self._lock:
            if self._pending.get(key) is me:
                del self._pending[key]
                self._entries[key] = CacheEntry(value=value, fetched_at=self._clock())
        return value

    def get(self, key: CacheKey) -> Optional[T]:
        """Return a live cached value without fetching."""
        entry = self._entries.get(key)
        if entry is None or self._expired(entry):
            return None
        return entry.value

    async def invalidate(self, account_id: str) -> int:
        """Drop every entry and pending registration scoped to account_id.

        Returns:
            Number of cached entries removed
        """
        async with self._lock:
            stale = [k for k in self._entries if len(k) > 1 and k[1] == account_id]
            for key in stale:
                del self._entries[key]
            for key in [k for k in self._pending if len(k) > 1 and k[1] == account_id]:
                del self._pending[key]
        if stale:
            logger.debug(f"{self.name} invalidated {len(stale)} entries for {account_id}")
        return len(stale)

    async def clear(self) -> None:
        """Drop all entries and forget in-flight fetches."""
        async with self._lock:
            self._entries.clear()
            self._pending.clear()

    def stats(self) -> Dict[str, Any]:
        return {"name": self.name, "entries": len(self._entries), "pending": len(self._pending)}
