from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, replace
from enum import Enum
from typing import Awaitable, Callable, Generic, TypeVar

from noteshelf.domain.entities import NoteRecord
from noteshelf.domain.exceptions import RemoteError
from noteshelf.domain.ports import RemoteNoteService

logger = logging.getLogger("noteshelf.cache")

T = TypeVar("T")


class Freshness(str, Enum):
    FRESH = "fresh"
    STALE = "stale"
    LOADING = "loading"
    ERROR = "error"


@dataclass(frozen=True)
class CacheSnapshot:
    records: tuple[NoteRecord, ...] = ()
    freshness: Freshness = Freshness.STALE
    error: RemoteError | None = None
    fetched_at: float | None = None
    generation: int = 0


class SingleFlight(Generic[T]):
    """Collapses concurrent calls for the same key into one running task."""

    def __init__(self) -> None:
        self._calls: dict[str, asyncio.Task[T]] = {}

    def in_flight(self, key: str) -> bool:
        return key in self._calls

    async def do(self, key: str, fn: Callable[[], Awaitable[T]]) -> T:
        task = self._calls.get(key)
        if task is None:

            async def run() -> T:
                try:
                    return await fn()
                finally:
                    if self._calls.get(key) is task:
                        del self._calls[key]

            task = asyncio.ensure_future(run())
            self._calls[key] = task
        # A joiner giving up must not cancel the shared call.
        return await asyncio.shield(task)


SnapshotListener = Callable[[CacheSnapshot], None]


class CollectionCache:
    """Local view of the whole notes collection.

    The record tuple is only ever replaced wholesale by a refresh. Failed
    refreshes keep the last good records and carry the error in the snapshot.
    """

    def __init__(
        self,
        service: RemoteNoteService,
        *,
        key: str = "/notes",
        stale_after_s: float = 0.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.service = service
        self.key = key
        self.stale_after_s = stale_after_s
        self._clock = clock
        self._flight: SingleFlight[CacheSnapshot] = SingleFlight()
        self._snapshot = CacheSnapshot()
        self._generation = 0
        # Remote writes reported so far, and how many had landed when the
        # in-flight fetch was issued.
        self._writes = 0
        self._fetch_writes = 0
        self._listeners: list[SnapshotListener] = []

    @property
    def has_loaded(self) -> bool:
        return self._snapshot.fetched_at is not None

    def get(self) -> CacheSnapshot:
        snap = self._snapshot
        if (
            snap.freshness is Freshness.FRESH
            and self.stale_after_s > 0
            and snap.fetched_at is not None
            and self._clock() - snap.fetched_at > self.stale_after_s
        ):
            return replace(snap, freshness=Freshness.STALE)
        return snap

    def find(self, note_id: int) -> NoteRecord | None:
        for record in self._snapshot.records:
            if record.id == note_id:
                return record
        return None

    def subscribe(self, listener: SnapshotListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def invalidate(self) -> None:
        if self._snapshot.freshness is Freshness.FRESH:
            self._publish(replace(self._snapshot, freshness=Freshness.STALE))

    def record_write(self) -> int:
        """Note that a remote write completed; returns its marker."""
        self._writes += 1
        return self._writes

    async def refresh(self) -> CacheSnapshot:
        if self._flight.in_flight(self.key):
            logger.debug("cache_refresh_joined", extra={"key": self.key})
        else:
            self._fetch_writes = self._writes
        return await self._flight.do(self.key, self._fetch)

    async def invalidate_and_refresh(self, after_write: int | None = None) -> CacheSnapshot:
        """Mark stale and refetch.

        With ``after_write`` the result is guaranteed to come from a fetch
        issued after that write: an older in-flight fetch is allowed to settle
        and one shared follow-up fetch is made.
        """
        self.invalidate()
        if after_write is not None:
            while self._flight.in_flight(self.key) and self._fetch_writes < after_write:
                logger.debug("cache_refresh_deferred", extra={"key": self.key, "after_write": after_write})
                await self._flight.do(self.key, self._fetch)
        return await self.refresh()

    async def ensure_fresh(self) -> CacheSnapshot:
        snap = self.get()
        if snap.freshness is Freshness.FRESH:
            return snap
        return await self.refresh()

    async def _fetch(self) -> CacheSnapshot:
        self._generation += 1
        generation = self._generation
        previous = self._snapshot
        self._publish(replace(previous, freshness=Freshness.LOADING))
        start = self._clock()

        try:
            records = await self.service.list_notes()
        except Exception as e:
            error = e if isinstance(e, RemoteError) else RemoteError("refresh_failed", detail=repr(e))
            if error is not e:
                error.__cause__ = e
            logger.warning(
                "cache_refresh_failed",
                extra={"key": self.key, "generation": generation, "reason": error.reason},
            )
            snap = replace(self._snapshot, freshness=Freshness.ERROR, error=error)
        else:
            snap = CacheSnapshot(
                records=tuple(records),
                freshness=Freshness.FRESH,
                error=None,
                fetched_at=self._clock(),
                generation=generation,
            )
            logger.info(
                "cache_refresh",
                extra={
                    "key": self.key,
                    "generation": generation,
                    "count": len(snap.records),
                    "ms": (self._clock() - start) * 1000.0,
                },
            )

        self._publish(snap)
        return snap

    def _publish(self, snap: CacheSnapshot) -> None:
        self._snapshot = snap
        for listener in list(self._listeners):
            try:
                listener(snap)
            except Exception:
                logger.exception("cache_listener_failed", extra={"key": self.key})
