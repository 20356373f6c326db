import itertools
import logging
import queue
import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass

import numpy as np

from globetiles.config import MAX_CONCURRENT_FETCHES
from globetiles.decode import PillowDecoder, TileDecoder
from globetiles.errors import TileFetchError, TransportError
from globetiles.tile_source import TileSource
from globetiles.tile_utils import TileId

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FetchResult:
    '''Outcome of one fetch attempt, posted to the completion queue'''
    tile_id: TileId
    attempt: int
    image: np.ndarray | None = None
    error: TileFetchError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass
class _Job:
    priority: float
    seq: int
    tile_id: TileId
    attempt: int


class TileFetcher:
    '''Fetch/decode pipeline: resolves tile ids to decoded images off the frame thread

    Remarks
    -------
    - Queued jobs are kept sorted by priority (lower runs first)
    - At most `max_concurrent` jobs run at once; the rest wait in the queue
    - At most one queued or running job per tile id
    - Every started job posts exactly one FetchResult to `results`, which
      only the owner of the tile cache reads (see `drain`)
    '''

    def __init__(self, source: TileSource, decoder: TileDecoder | None = None,
                 max_concurrent: int = MAX_CONCURRENT_FETCHES, executor=None):
        '''
        Parameters
        ----------
        source : TileSource
            Where tile bytes come from
        decoder : TileDecoder
            Turns tile bytes into image arrays, Pillow by default
        max_concurrent : int
            Jobs allowed to run at the same time
        executor : concurrent.futures.Executor
            Worker pool; a ThreadPoolExecutor owned by this fetcher if None
        '''
        if max_concurrent < 1:
            raise ValueError("max_concurrent must be >= 1")
        self.source = source
        self.decoder = decoder if decoder is not None else PillowDecoder()
        self.max_concurrent = max_concurrent

        self._owns_executor = executor is None
        if executor is None:
            executor = ThreadPoolExecutor(max_workers=max_concurrent,
                                          thread_name_prefix='tile-fetch')
        self.executor = executor

        self.pending = []   # queued _Jobs, sorted by (priority, seq)
        self.queued = {}    # tile_id -> queued _Job
        self.active = {}    # tile_id -> attempt of the running job
        self.results = queue.Queue()
        self.running = True

        self._seq = itertools.count()
        self._lock = threading.Lock()
        self._idle = threading.Condition(self._lock)

    # ------------------------ public API ------------------------

    def submit(self, tile_id: TileId, attempt: int, priority: float = 0) -> bool:
        """Queue a tile fetch.

        Parameters
        ----------
        tile_id : TileId
            Tile to fetch
        attempt : int
            Caller's attempt number, echoed back in the FetchResult
        priority : float
            Lower values start first

        Returns
        -------
        accepted : bool
            False if the tile is already queued or running, or the fetcher
            has been shut down
        """
        with self._lock:
            if not self.running:
                return False
            if tile_id in self.queued or tile_id in self.active:
                return False
            job = _Job(priority, next(self._seq), tile_id, attempt)
            self.queued[tile_id] = job
            self.pending.append(job)
            self._sort_pending()
        self._dispatch_next()
        return True

    def reprioritize(self, tile_id: TileId, priority: float) -> bool:
        '''Move a queued job; no effect once it has started'''
        with self._lock:
            job = self.queued.get(tile_id)
            if job is None:
                return False
            if job.priority != priority:
                job.priority = priority
                self._sort_pending()
            return True

    def cancel(self, tile_id: TileId) -> bool:
        '''Drop a queued job. Running jobs are never interrupted.'''
        with self._lock:
            job = self.queued.pop(tile_id, None)
            if job is None:
                return False
            self.pending.remove(job)
            self._notify_if_idle()
            return True

    def is_busy(self, tile_id: TileId) -> bool:
        with self._lock:
            return tile_id in self.queued or tile_id in self.active

    def drain(self) -> list[FetchResult]:
        '''All results posted so far, without blocking'''
        out = []
        while True:
            try:
                out.append(self.results.get_nowait())
            except queue.Empty:
                return out

    def wait_idle(self, timeout: float | None = None) -> bool:
        '''Block until nothing is queued or running'''
        with self._idle:
            return self._idle.wait_for(lambda: not self.pending and not self.active, timeout)

    @property
    def pending_count(self) -> int:
        with self._lock:
            return len(self.pending)

    @property
    def active_count(self) -> int:
        with self._lock:
            return len(self.active)

    def reset(self) -> list[TileId]:
        '''Drop every queued job, returning their tile ids'''
        with self._lock:
            dropped = [job.tile_id for job in self.pending]
            self.pending.clear()
            self.queued.clear()
            self._notify_if_idle()
        return dropped

    def shutdown(self, wait: bool = True) -> None:
        """Cleanly stop the worker pool and pending operations."""
        with self._lock:
            self.running = False
            self.pending.clear()
            self.queued.clear()
        if self._owns_executor:
            self.executor.shutdown(wait=wait)
        self.source.close()
        logger.debug("tile fetcher shut down")

    # ------------------------ private helpers ------------------------

    def _sort_pending(self) -> None:
        self.pending.sort(key=lambda job: (job.priority, job.seq))

    def _notify_if_idle(self) -> None:
        # caller holds the lock
        if not self.pending and not self.active:
            self._idle.notify_all()

    def _dispatch_next(self) -> None:
        """If any workers are available, start downloads"""
        with self._lock:
            jobs = []
            while self.running and self.pending and len(self.active) < self.max_concurrent:
                job = self.pending.pop(0)
                del self.queued[job.tile_id]
                self.active[job.tile_id] = job.attempt
                jobs.append(job)

        for job in jobs:
            try:
                self.executor.submit(self._run, job.tile_id, job.attempt)
            except RuntimeError:
                # executor already shut down
                logger.debug("executor refused tile %s attempt %d", job.tile_id, job.attempt)
                result = FetchResult(job.tile_id, job.attempt,
                                     error=TransportError("executor shut down", job.tile_id))
                with self._lock:
                    self.active.pop(job.tile_id, None)
                    self.results.put(result)
                    self._notify_if_idle()

    def _run(self, tile_id: TileId, attempt: int) -> None:
        """Worker body: fetch, decode, post the result, start the next job"""
        try:
            data = self.source.fetch(tile_id)
            image = self.decoder.decode(data)
            result = FetchResult(tile_id, attempt, image=image)
        except TileFetchError as e:
            if e.tile_id is None:
                e.tile_id = tile_id
            logger.debug("tile %s attempt %d failed: %s", tile_id, attempt, e)
            result = FetchResult(tile_id, attempt, error=e)
        except Exception as e:
            logger.exception("unexpected error fetching tile %s", tile_id)
            result = FetchResult(tile_id, attempt,
                                 error=TransportError(f"unexpected error: {e!r}", tile_id))

        with self._lock:
            self.active.pop(tile_id, None)
            self.results.put(result)
            self._notify_if_idle()
        self._dispatch_next()
