"""
Query cache — keyed, TTL-aware store of fetched task lists.

Entry lifecycle:
    idle -> fetching -> fresh -> stale -> fetching -> fresh ...
    fetching -> error, error -> fetching

- Entries go stale after `stale_time` or on `invalidate()`.
- Entries with no subscribers are evicted `gc_time` after the last one left,
  never while a fetch for the key is running.
- Concurrent fetches for one key share the in-flight task. `force=True`
  starts a superseding fetch.
- Every fetch and every direct write takes a sequence number. A fetch result
  older than the data already in the entry is dropped, so a slow response
  can never overwrite a newer one.
- On error the last good data stays in place.

The cache is the only shared mutable state on the client. Everything else
changes entries through the methods below.
"""

import asyncio
import logging
import time
from typing import Awaitable, Callable, Optional

from tasktrack.errors import GatewayError, TaskTrackError, TransientNetworkError
from tasktrack.models.task import Task

logger = logging.getLogger(__name__)

IDLE = "idle"
FETCHING = "fetching"
FRESH = "fresh"
STALE = "stale"
ERROR = "error"

DEFAULT_STALE_TIME_S = 5 * 60.0
DEFAULT_GC_TIME_S = 10 * 60.0
DEFAULT_READ_RETRY = 1

QueryKey = tuple[str, ...]
Fetcher = Callable[[], Awaitable[list[Task]]]
Listener = Callable[["CacheEntry"], None]


def tasks_key(owner_id: str) -> QueryKey:
    """Query key for every task of one owner."""
    return ("tasks", owner_id)


class CacheEntry:
    __slots__ = (
        "key", "data", "fetched_at", "state", "error",
        "fetcher", "listeners", "idle_since", "holds",
        "inflight", "fetch_seq", "data_seq", "invalidated_seq",
    )

    def __init__(self, key: QueryKey, fetcher: Optional[Fetcher], now: float):
        self.key = key
        self.data: Optional[list[Task]] = None
        self.fetched_at: Optional[float] = None
        self.state = IDLE
        self.error: Optional[TaskTrackError] = None
        self.fetcher = fetcher
        self.listeners: list[Listener] = []
        self.idle_since: Optional[float] = now
        self.holds = 0
        self.inflight: Optional[asyncio.Task[None]] = None
        self.fetch_seq = 0
        self.data_seq = 0
        self.invalidated_seq = 0

    @property
    def is_fetching(self) -> bool:
        return self.inflight is not None and not self.inflight.done()

    @property
    def unconfirmed(self) -> bool:
        """True while an optimistic write to this entry is waiting on the server."""
        return self.holds > 0

    def __repr__(self) -> str:
        size = None if self.data is None else len(self.data)
        return f"CacheEntry(key={self.key!r}, state={self.state!r}, size={size})"


class QueryCache:
    def __init__(
        self,
        stale_time: float = DEFAULT_STALE_TIME_S,
        gc_time: float = DEFAULT_GC_TIME_S,
        retry: int = DEFAULT_READ_RETRY,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.stale_time = stale_time
        self.gc_time = gc_time
        self.retry = retry
        self._clock = clock
        self._entries: dict[QueryKey, CacheEntry] = {}
        self._seq = 0
        self._gc_task: Optional[asyncio.Task[None]] = None

    # ---- reads ----

    def get(self, key: QueryKey) -> Optional[CacheEntry]:
        entry = self._entries.get(key)
        if entry is not None:
            self._age(entry)
        return entry

    def get_data(self, key: QueryKey) -> Optional[list[Task]]:
        entry = self.get(key)
        return None if entry is None else entry.data

    def snapshot(self, key: QueryKey) -> Optional[list[Task]]:
        data = self.get_data(key)
        return None if data is None else list(data)

    def keys(self) -> list[QueryKey]:
        return list(self._entries)

    # ---- fetching ----

    async def fetch(self, key: QueryKey, fetcher: Optional[Fetcher] = None, *, force: bool = False) -> CacheEntry:
        """Make sure `key` has current data and return its entry.

        Fresh entries return immediately unless `force` is set. A fetch already
        running for the key is joined instead of duplicated.
        """
        entry = self._entry(key, fetcher)
        self._age(entry)
        if entry.is_fetching and not force:
            await asyncio.shield(entry.inflight)  # type: ignore[arg-type]
            return entry
        if entry.state == FRESH and not force:
            return entry
        task = self._start_fetch(entry)
        await asyncio.shield(task)
        return entry

    def subscribe(self, key: QueryKey, listener: Listener, fetcher: Optional[Fetcher] = None) -> Callable[[], None]:
        """Attach a listener; kicks off a background fetch when the entry needs one.

        Must be called from inside a running event loop. Returns a cleanup function.
        """
        entry = self._entry(key, fetcher)
        entry.listeners.append(listener)
        entry.idle_since = None
        self._age(entry)
        if not entry.is_fetching and entry.state in (IDLE, STALE, ERROR):
            self._start_fetch(entry)

        def remove() -> None:
            try:
                entry.listeners.remove(listener)
            except ValueError:
                return
            if not entry.listeners:
                entry.idle_since = self._clock()
        return remove

    def _entry(self, key: QueryKey, fetcher: Optional[Fetcher]) -> CacheEntry:
        entry = self._entries.get(key)
        if entry is None:
            entry = CacheEntry(key, fetcher, self._clock())
            self._entries[key] = entry
        elif fetcher is not None:
            entry.fetcher = fetcher
        if entry.fetcher is None:
            raise ValueError(f"No fetcher registered for query {key!r}")
        return entry

    def _start_fetch(self, entry: CacheEntry) -> "asyncio.Task[None]":
        seq = self._next_seq()
        entry.fetch_seq = seq
        entry.state = FETCHING
        entry.inflight = asyncio.get_running_loop().create_task(self._run_fetch(entry, seq))
        logger.debug("Fetching %r (seq=%d)", entry.key, seq)
        self._notify(entry)
        return entry.inflight

    async def _run_fetch(self, entry: CacheEntry, seq: int) -> None:
        attempts = 1 + max(self.retry, 0)
        try:
            for attempt in range(attempts):
                try:
                    data = await entry.fetcher()  # type: ignore[misc]
                except TransientNetworkError as e:
                    if attempt + 1 < attempts:
                        logger.debug("Retrying %r after transient failure: %s", entry.key, e)
                        continue
                    self._fetch_failed(entry, seq, e)
                    return
                except TaskTrackError as e:
                    self._fetch_failed(entry, seq, e)
                    return
                except Exception as e:
                    logger.exception("Fetcher for %r raised", entry.key)
                    self._fetch_failed(entry, seq, GatewayError(f"Unexpected failure: {e}"))
                    return
                self._fetch_succeeded(entry, seq, data)
                return
        finally:
            if entry.fetch_seq == seq:
                entry.inflight = None
                if not entry.listeners and entry.idle_since is None:
                    entry.idle_since = self._clock()

    def _fetch_succeeded(self, entry: CacheEntry, seq: int, data: list[Task]) -> None:
        latest = entry.fetch_seq == seq
        if seq < entry.data_seq:
            logger.debug("Dropping superseded response for %r (seq=%d < %d)", entry.key, seq, entry.data_seq)
            if latest:
                entry.state = STALE
                self._notify(entry)
            return
        entry.data = list(data)
        entry.data_seq = seq
        entry.fetched_at = self._clock()
        entry.error = None
        if latest:
            entry.state = FRESH if seq > entry.invalidated_seq else STALE
        self._notify(entry)

    def _fetch_failed(self, entry: CacheEntry, seq: int, error: TaskTrackError) -> None:
        if entry.fetch_seq != seq:
            return
        logger.warning("Fetch for %r failed: %s", entry.key, error)
        entry.state = ERROR
        entry.error = error
        self._notify(entry)

    # ---- writes ----

    def set_data(self, key: QueryKey, data: list[Task]) -> bool:
        """Replace cached data for an existing entry. Returns False if there is none."""
        entry = self._entries.get(key)
        if entry is None or entry.data is None:
            return False
        entry.data = list(data)
        entry.data_seq = self._next_seq()
        self._notify(entry)
        return True

    def restore(self, key: QueryKey, snapshot: Optional[list[Task]]) -> None:
        """Put back exactly what `snapshot()` returned earlier."""
        entry = self._entries.get(key)
        if entry is None:
            return
        entry.data = None if snapshot is None else list(snapshot)
        entry.data_seq = self._next_seq()
        self._notify(entry)

    def hold(self, key: QueryKey) -> None:
        entry = self._entries.get(key)
        if entry is not None:
            entry.holds += 1

    def release(self, key: QueryKey) -> None:
        entry = self._entries.get(key)
        if entry is not None and entry.holds > 0:
            entry.holds -= 1

    def invalidate(self, key: QueryKey) -> None:
        """Mark stale now. Fetches already running will land stale too."""
        entry = self._entries.get(key)
        if entry is None:
            return
        entry.invalidated_seq = self._next_seq()
        if entry.state == FRESH:
            entry.state = STALE
        self._notify(entry)

    def remove(self, key: QueryKey) -> None:
        entry = self._entries.pop(key, None)
        if entry is not None and entry.is_fetching:
            entry.inflight.cancel()  # type: ignore[union-attr]

    def clear(self) -> None:
        for key in list(self._entries):
            self.remove(key)

    # ---- freshness and eviction ----

    def _age(self, entry: CacheEntry) -> None:
        if entry.state != FRESH or entry.fetched_at is None:
            return
        if self._clock() - entry.fetched_at >= self.stale_time:
            entry.state = STALE
            logger.debug("%r went stale", entry.key)

    def collect_garbage(self) -> list[QueryKey]:
        """Evict entries idle for longer than gc_time. Returns evicted keys."""
        now = self._clock()
        evicted = []
        for key, entry in list(self._entries.items()):
            if entry.listeners or entry.is_fetching or entry.holds:
                continue
            if entry.idle_since is not None and now - entry.idle_since >= self.gc_time:
                del self._entries[key]
                evicted.append(key)
        if evicted:
            logger.debug("Evicted %d idle cache entries", len(evicted))
        return evicted

    def start(self, interval: Optional[float] = None) -> None:
        """Start the periodic eviction sweep on the running loop."""
        if self._gc_task is None:
            self._gc_task = asyncio.get_running_loop().create_task(self._gc_loop(interval or self.gc_time / 2))

    async def _gc_loop(self, interval: float) -> None:
        while True:
            await asyncio.sleep(interval)
            self.collect_garbage()

    async def close(self) -> None:
        if self._gc_task is not None:
            self._gc_task.cancel()
            try:
                await self._gc_task
            except asyncio.CancelledError:
                pass
            self._gc_task = None
        self.clear()

    # ---- internals ----

    def _next_seq(self) -> int:
        self._seq += 1
        return self._seq

    def _notify(self, entry: CacheEntry) -> None:
        for listener in list(entry.listeners):
            try:
                listener(entry)
            except Exception:
                logger.exception("Cache listener for %r failed", entry.key)
