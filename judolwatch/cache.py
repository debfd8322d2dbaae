"""Query cache for the domain listing.

Provides stale-while-revalidate semantics keyed by the full QueryKey:
- Fresh entries are served without a network call
- Stale entries are served immediately while one background refresh runs
- Expired entries are evicted lazily on the next lookup
- Concurrent lookups for the same key share one in-flight fetch
"""

from __future__ import annotations

import asyncio
import logging
import time
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional

from .models import DomainSummary, PageResult, QueryKey

logger = logging.getLogger(__name__)

Fetcher = Callable[[QueryKey], Awaitable[PageResult]]
Subscriber = Callable[[QueryKey, PageResult], None]


class EntryState(str, Enum):
    """Lifecycle state of a cache entry."""

    FRESH = "fresh"
    STALE = "stale"
    FETCHING = "fetching"
    ERROR = "error"  # Background refresh failed; stale data still held


class CacheEntry:
    """Cached page for one key. Data is replaced wholesale, never mutated."""

    __slots__ = ("key", "data", "fetched_at", "state", "error")

    def __init__(
        self,
        key: QueryKey,
        data: Optional[PageResult],
        fetched_at: float,
        state: EntryState,
        error: Optional[BaseException] = None,
    ):
        self.key = key
        self.data = data
        self.fetched_at = fetched_at
        self.state = state
        self.error = error

    def age(self, now: float) -> float:
        return now - self.fetched_at


class QueryCache:
    """
    Request cache for paged domain queries.

    Usage:
        cache = QueryCache(domain_service.list_domains)

        page = await cache.resolve(QueryKey(search="slot", page=2))
        cache.subscribe(lambda key, page: print(key, page.total))
    """

    def __init__(
        self,
        fetcher: Fetcher,
        stale_seconds: float = 300,
        evict_seconds: float = 1800,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Initialize the query cache.

        Args:
            fetcher: Coroutine function issuing the network request for a key
            stale_seconds: Age after which an entry is served stale and refreshed
            evict_seconds: Age after which an entry is dropped
            clock: Monotonic time source (seconds)
        """
        if stale_seconds >= evict_seconds:
            raise ValueError("stale_seconds must be lower than evict_seconds")
        self._fetcher = fetcher
        self.stale_seconds = stale_seconds
        self.evict_seconds = evict_seconds
        self._clock = clock

        self._entries: Dict[QueryKey, CacheEntry] = {}
        self._inflight: Dict[QueryKey, asyncio.Task] = {}
        self._subscribers: List[Subscriber] = []
        self.fetch_count = 0

    # ------------------------------------------------------------------
    # Lookup
    # ------------------------------------------------------------------

    def _lookup(self, key: QueryKey, now: float) -> Optional[CacheEntry]:
        """Return the entry for key, evicting it if it outlived the window."""
        entry = self._entries.get(key)
        if entry is None:
            return None
        if entry.data is not None and entry.age(now) >= self.evict_seconds:
            logger.debug("Evicting expired cache entry for %s", key)
            del self._entries[key]
            return None
        return entry

    def peek(self, key: QueryKey) -> Optional[PageResult]:
        """Cached data for key without triggering any fetch."""
        entry = self._lookup(key, self._clock())
        return entry.data if entry else None

    def state_of(self, key: QueryKey) -> Optional[EntryState]:
        entry = self._entries.get(key)
        return entry.state if entry else None

    def is_fetching(self, key: QueryKey) -> bool:
        return key in self._inflight

    async def resolve(self, key: QueryKey, *, force: bool = False) -> PageResult:
        """
        Resolve a page for key.

        Args:
            key: Full query key
            force: Skip cached data and wait for a fresh fetch

        Returns:
            Cached, placeholder (stale) or freshly fetched page

        Raises:
            Whatever the fetcher raised, to the callers waiting on that fetch,
            or a recorded background-refresh failure to the next caller.
        """
        now = self._clock()
        entry = self._lookup(key, now)

        if entry is not None and entry.data is not None and not force:
            if entry.state == EntryState.ERROR and entry.error is not None:
                error = entry.error
                entry.error = None
                entry.state = EntryState.STALE
                raise error

            if entry.state == EntryState.FRESH and entry.age(now) < self.stale_seconds:
                return entry.data

            # Stale: serve placeholder data, refresh once in the background.
            if entry.state == EntryState.FRESH:
                entry.state = EntryState.STALE
            self._revalidate(key)
            return entry.data

        task = self._inflight.get(key)
        if task is None:
            task = self._start_fetch(key, background=False)
        # Shield: a caller moving on must not cancel the shared fetch.
        return await asyncio.shield(task)

    # ------------------------------------------------------------------
    # Fetching
    # ------------------------------------------------------------------

    def _revalidate(self, key: QueryKey) -> None:
        if key in self._inflight:
            return
        logger.debug("Revalidating stale entry for %s", key)
        self._start_fetch(key, background=True)

    def _start_fetch(self, key: QueryKey, *, background: bool) -> asyncio.Task:
        entry = self._entries.get(key)
        previous_state = entry.state if entry else None
        if entry is None:
            self._entries[key] = CacheEntry(key, None, 0.0, EntryState.FETCHING)
        elif not background:
            entry.state = EntryState.FETCHING

        self.fetch_count += 1
        task = asyncio.ensure_future(
            self._run_fetch(key, previous_state, background=background)
        )
        self._inflight[key] = task

        def _done(t: asyncio.Task) -> None:
            if self._inflight.get(key) is t:
                del self._inflight[key]
            if t.cancelled():
                return
            exc = t.exception()
            if exc is not None and background:
                logger.debug("Background refresh failed for %s: %s", key, exc)

        task.add_done_callback(_done)
        return task

    async def _run_fetch(
        self,
        key: QueryKey,
        previous_state: Optional[EntryState],
        *,
        background: bool,
    ) -> PageResult:
        previous = self._entries.get(key)
        try:
            data = await self._fetcher(key)
        except asyncio.CancelledError:
            self._restore_after_failure(key, previous, previous_state, None)
            raise
        except Exception as e:
            self._restore_after_failure(key, previous, previous_state, e if background else None)
            raise

        self._entries[key] = CacheEntry(key, data, self._clock(), EntryState.FRESH)
        self._notify(key, data)
        return data

    def _restore_after_failure(
        self,
        key: QueryKey,
        previous: Optional[CacheEntry],
        previous_state: Optional[EntryState],
        background_error: Optional[BaseException],
    ) -> None:
        entry = self._entries.get(key)
        if entry is None:
            return
        if entry.data is None:
            # Nothing worth keeping; the next caller retries.
            del self._entries[key]
            return
        if background_error is not None:
            entry.state = EntryState.ERROR
            entry.error = background_error
        elif entry is previous and previous_state is not None:
            if previous_state in (EntryState.FETCHING, EntryState.ERROR):
                previous_state = EntryState.STALE
            entry.state = previous_state

    # ------------------------------------------------------------------
    # Subscribers
    # ------------------------------------------------------------------

    def subscribe(self, callback: Subscriber) -> None:
        """Register a callback invoked with (key, page) after each write."""
        if callback not in self._subscribers:
            self._subscribers.append(callback)

    def unsubscribe(self, callback: Subscriber) -> None:
        if callback in self._subscribers:
            self._subscribers.remove(callback)

    def _notify(self, key: QueryKey, data: PageResult) -> None:
        for callback in list(self._subscribers):
            try:
                callback(key, data)
            except Exception as e:  # pragma: no cover - subscriber bug
                logger.warning("Cache subscriber failed for %s: %s", key, e)

    # ------------------------------------------------------------------
    # Maintenance
    # ------------------------------------------------------------------

    def invalidate(self, key: Optional[QueryKey] = None) -> None:
        """Mark one entry (or all entries) stale so the next lookup refreshes."""
        targets = [self._entries.get(key)] if key is not None else list(self._entries.values())
        for entry in targets:
            if entry is not None and entry.state == EntryState.FRESH:
                entry.state = EntryState.STALE

    def update_items(
        self,
        predicate: Callable[[DomainSummary], bool],
        transform: Callable[[DomainSummary], DomainSummary],
    ) -> int:
        """
        Patch matching summaries in every cached page.

        Keeps list views coherent after a local mutation without a refetch.
        Entries keep their fetched_at so normal revalidation still applies.

        Returns:
            Number of summaries patched
        """
        patched = 0
        for key, entry in list(self._entries.items()):
            if entry.data is None:
                continue
            changed = False
            items = []
            for item in entry.data.items:
                if predicate(item):
                    items.append(transform(item))
                    changed = True
                    patched += 1
                else:
                    items.append(item)
            if not changed:
                continue
            data = PageResult(items=tuple(items), total=entry.data.total)
            self._entries[key] = CacheEntry(key, data, entry.fetched_at, entry.state, entry.error)
            self._notify(key, data)
        return patched

    def clear(self) -> None:
        """Drop every cached entry (in-flight fetches still complete)."""
        self._entries.clear()

    async def aclose(self) -> None:
        """Cancel outstanding fetches."""
        tasks = list(self._inflight.values())
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._inflight.clear()

    def stats(self) -> Dict[str, Any]:
        """Get cache statistics."""
        counts = {state.value: 0 for state in EntryState}
        for entry in self._entries.values():
            counts[entry.state.value] += 1
        return {
            "entries": len(self._entries),
            "inflight": len(self._inflight),
            "fetches": self.fetch_count,
            "stale_seconds": self.stale_seconds,
            "evict_seconds": self.evict_seconds,
            **counts,
        }
