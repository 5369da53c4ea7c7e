"""
Deduplicated Chunk Prefetching.

The PrefetchCoordinator sits between readers and a ContentSource. It keeps
recently used chunks in a BoundedCache and warms the chunks after the
current one in the background, making sure the same chunk is never being
prefetched twice at the same time.

Keys:
    A chunk is identified by make_key(content_id, index) -> "content-index".
    The same string names the cache slot and the in-flight marker.

In-Flight Set:
    Membership in the in-flight set is the only coordination signal between
    duplicate requesters. The rules that make deduplication correct:

        1. A key is added before its fetch task is created.
        2. A key is removed after its fetch has settled, success or error,
           in a ``finally`` block.
        3. prefetch() skips any key that is cached or in flight.

    Because everything runs on one event loop, rules 1-3 are enough: no
    other task can run between the membership check and the add.

Direct Requests:
    fetch_chunk() returns cached chunks immediately. If the chunk is being
    prefetched it polls, poll_attempts times every poll_interval_s, for the
    key to leave the in-flight set and then re-checks the cache. When the
    wait expires (or the prefetch failed) it fetches the chunk directly.
    That fallback fetch is not registered as in flight, so under heavy
    contention a chunk can be fetched twice; this is accepted in exchange
    for never failing a reader because a prefetch is slow.

Failure Handling:
    - fetch_chunk(): source errors propagate to the caller.
    - prefetch(): a failed chunk is reported to the diagnostic sink as a
      PrefetchFailure and otherwise ignored; the other chunks of the batch
      are still cached. In-flight prefetches are never cancelled.

Example:
    coordinator = PrefetchCoordinator(source)
    text = await coordinator.fetch_chunk("moby-dick", 5)
    await coordinator.prefetch("moby-dick", 5, count=3)   # warms 6, 7, 8
"""
from __future__ import annotations

import asyncio
from typing import Awaitable, Callable, List, Optional, Protocol, Set

from reader_speech.cache.bounded import BoundedCache
from reader_speech.content.source import ContentSource
from reader_speech.core.config import Defaults
from reader_speech.core.logging import debug, get_logger, verbose, warn
from reader_speech.core.metrics import metrics
from reader_speech.errors import PrefetchFailure
from reader_speech.utils.timeit import timeit

_LOG = get_logger("reader-speech.prefetch")


def make_key(content_id: str, index: int) -> str:
    """Serialize (content_id, index) into the cache / in-flight key."""
    return f"{content_id}-{index}"


class DiagnosticSink(Protocol):
    """
    Receiver of best-effort warnings.

    Implementations must not raise.
    """

    def warning(self, message: str, failure: Optional[PrefetchFailure] = None) -> None:
        ...


class LoggingDiagnosticSink:
    """DiagnosticSink writing to the reader-speech log."""

    def warning(self, message: str, failure: Optional[PrefetchFailure] = None) -> None:
        if failure is not None:
            warn(_LOG, message, code=failure.code, **failure.details)
        else:
            warn(_LOG, message)


class PrefetchCoordinator:
    """
    Cache-backed chunk access with deduplicated background prefetch.

    Attributes:
        source: Where chunks come from.
        cache: BoundedCache of chunk texts keyed by make_key().
        poll_interval_s: Delay between in-flight checks in fetch_chunk().
        poll_attempts: Number of in-flight checks before fetching directly.
    """

    def __init__(
        self,
        source: ContentSource,
        cache: Optional[BoundedCache[str, str]] = None,
        sink: Optional[DiagnosticSink] = None,
        poll_interval_s: float = Defaults.PREFETCH_POLL_INTERVAL_MS / 1000.0,
        poll_attempts: int = Defaults.PREFETCH_POLL_ATTEMPTS,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        """
        Args:
            source: Content source for cache misses.
            cache: Chunk cache; a new one of the default capacity if omitted.
            sink: Receiver of prefetch failure warnings.
            poll_interval_s: Delay between in-flight checks.
            poll_attempts: In-flight checks before the direct fetch.
            sleep: Awaitable delay function (injectable for tests).
        """
        self.source = source
        self.cache: BoundedCache[str, str] = (
            cache if cache is not None
            else BoundedCache(capacity=Defaults.CACHE_CHUNK_CAPACITY, name="chunks")
        )
        self.sink: DiagnosticSink = sink or LoggingDiagnosticSink()
        self.poll_interval_s = poll_interval_s
        self.poll_attempts = poll_attempts
        self._sleep = sleep
        self._in_flight: Set[str] = set()

    @property
    def in_flight(self) -> frozenset[str]:
        """Snapshot of the keys currently being prefetched."""
        return frozenset(self._in_flight)

    def is_in_flight(self, content_id: str, index: int) -> bool:
        return make_key(content_id, index) in self._in_flight

    async def fetch_chunk(self, content_id: str, index: int) -> str:
        """
        Return one chunk, from cache, a finishing prefetch, or the source.

        Raises:
            NotFoundError: The chunk does not exist upstream.
            ContentUnavailableError: The source failed.
        """
        key = make_key(content_id, index)

        cached = self.cache.get(key)
        if cached is not None:
            return cached

        if key in self._in_flight:
            await self._wait_for_in_flight(key)
            cached = self.cache.get(key)
            if cached is not None:
                return cached
            verbose(_LOG, "in_flight_fallback", key=key)

        return await self._fetch_and_store(content_id, index, key)

    async def _wait_for_in_flight(self, key: str) -> None:
        attempts = 0
        while key in self._in_flight and attempts < self.poll_attempts:
            await self._sleep(self.poll_interval_s)
            attempts += 1
        debug(_LOG, "in_flight_wait", key=key, attempts=attempts, settled=key not in self._in_flight)

    async def _fetch_and_store(self, content_id: str, index: int, key: str) -> str:
        with timeit("fetch") as t:
            text = await self.source.fetch_chunk(content_id, index)
        self.cache.set(key, text)
        verbose(_LOG, "fetched", key=key, chars=len(text), seconds=round(t.seconds, 4))
        return text

    async def prefetch(self, content_id: str, from_index: int, count: int = Defaults.PREFETCH_COUNT) -> None:
        """
        Warm chunks from_index+1 .. from_index+count.

        Chunks already cached or in flight are skipped. Returns once every
        fetch started by this call has settled. Never raises because of a
        chunk failure; failures go to the diagnostic sink.
        """
        tasks: List[asyncio.Task] = []

        for offset in range(1, count + 1):
            index = from_index + offset
            key = make_key(content_id, index)

            if self.cache.has(key) or key in self._in_flight:
                metrics.record_prefetch("skipped")
                debug(_LOG, "prefetch_skip", key=key)
                continue

            # Registered before the task exists, so a concurrent caller
            # can never start a second fetch for this key.
            self._in_flight.add(key)
            tasks.append(asyncio.create_task(self._prefetch_one(content_id, index, key)))

        metrics.set_inflight(len(self._in_flight))
        if tasks:
            await asyncio.gather(*tasks)

    async def _prefetch_one(self, content_id: str, index: int, key: str) -> None:
        try:
            await self._fetch_and_store(content_id, index, key)
            metrics.record_prefetch("ok")
        except Exception as e:
            metrics.record_prefetch("failed")
            failure = PrefetchFailure(
                f"Failed to preload chunk {index}",
                details={"key": key, "error": str(e)},
            )
            self._report(f"prefetch_failed chunk={index}", failure)
        finally:
            self._in_flight.discard(key)
            metrics.set_inflight(len(self._in_flight))

    def _report(self, message: str, failure: PrefetchFailure) -> None:
        try:
            self.sink.warning(message, failure)
        except Exception as e:
            debug(_LOG, "sink_error", error=str(e))

    def clear(self) -> int:
        """
        Empty the chunk cache.

        In-flight prefetches are left alone; they will repopulate their
        slots when they settle.

        Returns:
            Number of cache entries removed.
        """
        return self.cache.clear()
