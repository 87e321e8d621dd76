"""Query cache for TaskFlow views.

An explicit cache service owned by the data layer. Entries are keyed by tuples
(see `taskflow.sync.keys`) and remember the fetcher that produced them, so an
invalidation can re-run it.

Every entry carries a generation counter that is bumped on each write. A fetch
only lands if the generation it started under is still current; an optimistic
write therefore supersedes any in-flight fetch for the same view and a stale
response can never clobber it. Callers waiting on a superseded fetch are
answered by whatever replaced it, never by an empty entry.

All methods must be called from the event loop thread.
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, List, Optional

from taskflow.sync.keys import CacheKey, key_matches

logger = logging.getLogger(__name__)

Fetcher = Callable[[], Awaitable[Any]]
Updater = Callable[[CacheKey, Any], Any]
Snapshot = Dict[CacheKey, Any]


@dataclass
class CacheEntry:
    """State of one cached view."""
    data: Any = None
    has_data: bool = False
    stale: bool = True
    updated_at: Optional[float] = None
    error: Optional[Exception] = None
    fetcher: Optional[Fetcher] = None
    in_flight: Optional[asyncio.Task] = None
    generation: int = 0


def _copy(data: Any) -> Any:
    # Lists are copied shallowly; cached items are never mutated in place.
    return list(data) if isinstance(data, list) else data


class QueryCache:
    """Keyed view cache with snapshot/restore and prefix invalidation."""

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._entries: Dict[CacheKey, CacheEntry] = {}
        self._clock = clock

    def keys(self, prefix: CacheKey = ()) -> List[CacheKey]:
        return [key for key in self._entries if key_matches(key, prefix)]

    def __contains__(self, key: CacheKey) -> bool:
        return key in self._entries

    def read(self, key: CacheKey) -> Any:
        """Cached data for key, or None."""
        entry = self._entries.get(key)
        return entry.data if entry is not None and entry.has_data else None

    def is_stale(self, key: CacheKey) -> bool:
        entry = self._entries.get(key)
        return entry is None or entry.stale

    def error(self, key: CacheKey) -> Optional[Exception]:
        """Error of the last failed fetch for key, if any."""
        entry = self._entries.get(key)
        return entry.error if entry is not None else None

    def write(self, key: CacheKey, data: Any) -> None:
        """Store data for key and supersede any in-flight fetch."""
        entry = self._entries.setdefault(key, CacheEntry())
        entry.generation += 1
        entry.in_flight = None
        entry.data = data
        entry.has_data = True
        entry.stale = False
        entry.error = None
        entry.updated_at = self._clock()

    def update_matching(self, prefix: CacheKey, updater: Updater) -> List[CacheKey]:
        """Apply updater(key, data) to every entry under prefix that holds data.

        The updater returns the new data, or the very same object to leave the
        entry untouched. Returns the keys that were written.
        """
        written = []
        for key in self.keys(prefix):
            entry = self._entries[key]
            if not entry.has_data:
                continue
            new_data = updater(key, entry.data)
            if new_data is not entry.data:
                self.write(key, new_data)
                written.append(key)
        return written

    def snapshot(self, prefix: CacheKey = ()) -> Snapshot:
        """Capture the data of every entry under prefix."""
        return {
            key: _copy(self._entries[key].data)
            for key in self.keys(prefix)
            if self._entries[key].has_data
        }

    def restore(self, snapshot: Snapshot) -> None:
        """Write a snapshot back.

        Keys removed since the snapshot was taken (a torn-down view, a signed-out
        session) are skipped.
        """
        for key, data in snapshot.items():
            if key in self._entries:
                self.write(key, _copy(data))

    def cancel(self, prefix: CacheKey = ()) -> None:
        """Supersede in-flight fetches under prefix; their results are discarded."""
        for key in self.keys(prefix):
            entry = self._entries[key]
            if entry.in_flight is not None:
                entry.generation += 1
                entry.in_flight = None
                logger.debug(f"Superseded in-flight fetch for {key}")

    def remove(self, prefix: CacheKey = ()) -> None:
        """Drop every entry under prefix."""
        for key in self.keys(prefix):
            entry = self._entries.pop(key)
            entry.generation += 1
            entry.in_flight = None

    def clear(self) -> None:
        self.remove(())

    async def fetch(self, key: CacheKey, fetcher: Fetcher, stale_time: Optional[float] = None) -> Any:
        """Return cached data for key, running fetcher when missing or stale.

        Concurrent callers share one in-flight fetch. Without stale_time, data
        stays fresh until invalidated.
        """
        entry = self._entries.setdefault(key, CacheEntry())
        entry.fetcher = fetcher
        if entry.has_data and not entry.stale:
            if stale_time is None or self._clock() - entry.updated_at < stale_time:
                return entry.data
        return await self._start_fetch(key, entry)

    async def invalidate(self, prefix: CacheKey = ()) -> None:
        """Mark entries under prefix stale and re-fetch those with a fetcher.

        A fetch already in flight may have read pre-change data, so it is
        superseded by a fresh one. Fetch failures are recorded on the entry and
        logged; they are not raised from here.
        """
        refetches = []
        for key in self.keys(prefix):
            entry = self._entries[key]
            entry.stale = True
            if entry.fetcher is None:
                continue
            if entry.in_flight is not None:
                entry.generation += 1
                entry.in_flight = None
            refetches.append(self._start_fetch(key, entry))
        if refetches:
            await asyncio.gather(*refetches, return_exceptions=True)

    def _start_fetch(self, key: CacheKey, entry: CacheEntry) -> asyncio.Task:
        if entry.in_flight is not None and not entry.in_flight.done():
            return entry.in_flight
        task = asyncio.get_running_loop().create_task(self._run_fetch(key, entry, entry.generation))
        entry.in_flight = task
        return task

    def _superseded(self, key: CacheKey, entry: CacheEntry, generation: int) -> bool:
        return self._entries.get(key) is not entry or entry.generation != generation

    async def _follow(self, key: CacheKey) -> Any:
        """Answer a superseded fetch's callers from whatever replaced it.

        That is the fetch now in flight, the data written since, or a new fetch
        when the entry still has nothing to show.
        """
        current = self._entries[key]
        if current.in_flight is not None and not current.in_flight.done():
            return await asyncio.shield(current.in_flight)
        if current.has_data:
            return current.data
        return await asyncio.shield(self._start_fetch(key, current))

    async def _run_fetch(self, key: CacheKey, entry: CacheEntry, generation: int) -> Any:
        try:
            data = await entry.fetcher()
        except Exception as e:
            if self._superseded(key, entry, generation):
                logger.debug(f"Superseded fetch for {key} failed: {type(e).__name__}")
                if key not in self._entries:
                    raise
                return await self._follow(key)
            entry.in_flight = None
            entry.error = e
            logger.warning(f"Fetch for {key} failed: {type(e).__name__}: {str(e)}")
            raise

        if self._superseded(key, entry, generation):
            logger.debug(f"Discarded superseded fetch result for {key}")
            if key not in self._entries:
                # View dropped while loading; the caller still gets what was read
                return data
            return await self._follow(key)

        entry.in_flight = None
        entry.data = data
        entry.has_data = True
        entry.stale = False
        entry.error = None
        entry.updated_at = self._clock()
        return data
