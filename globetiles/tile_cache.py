import enum
import itertools
import logging
from dataclasses import dataclass

import numpy as np

from globetiles.config import CACHE_CAPACITY, MAX_RETRIES, RETRY_COOLDOWN_FRAMES
from globetiles.errors import TileFetchError
from globetiles.tile_fetcher import TileFetcher
from globetiles.tile_utils import TileId

logger = logging.getLogger(__name__)


class TileState(enum.Enum):
    PENDING = 'pending'
    READY = 'ready'
    FAILED = 'failed'
    UNAVAILABLE = 'unavailable'


@dataclass(frozen=True)
class TileStatus:
    '''Read-only snapshot of a cache entry, handed out to callers'''
    tile_id: TileId
    state: TileState
    image: np.ndarray | None = None
    last_used_frame: int = -1
    failures: int = 0
    reason: str | None = None

    @property
    def ready(self) -> bool:
        return self.state is TileState.READY


@dataclass
class CacheEntry:
    tile_id: TileId
    created: int
    state: TileState = TileState.PENDING
    image: np.ndarray | None = None
    attempt: int = 0
    last_used_frame: int = -1
    requested_frame: int = -1
    failed_frame: int = -1
    reason: str | None = None
    in_flight: bool = False

    def snapshot(self, failures: int = 0) -> TileStatus:
        return TileStatus(self.tile_id, self.state, self.image,
                          self.last_used_frame, failures, self.reason)


class TileCache:
    """Bounded set of resident tiles, fed by a TileFetcher

    Remarks
    -------
    - Owned by the frame thread: every method here runs on it. Fetch
      completions reach the cache only through `TileFetcher.results`,
      drained by `apply_completions`.
    - At most one fetch per tile id is ever outstanding
    - Entries move PENDING -> READY or PENDING -> FAILED once per attempt;
      FAILED entries are retried after a cooldown that doubles per failure
    - Tiles that fail for good (bad data, missing, or too many retries)
      are remembered as UNAVAILABLE for the rest of the session
    - Queued and running fetches pin their entries; they are never evicted
    """

    def __init__(self, fetcher: TileFetcher, capacity: int = CACHE_CAPACITY,
                 max_retries: int = MAX_RETRIES,
                 retry_cooldown_frames: int = RETRY_COOLDOWN_FRAMES):
        if capacity < 1:
            raise ValueError("capacity must be >= 1")
        self.fetcher = fetcher
        self.capacity = capacity
        self.max_retries = max_retries
        self.retry_cooldown_frames = retry_cooldown_frames

        self.entries = {}        # TileId -> CacheEntry
        self.failures = {}       # TileId -> failure count this session
        self.last_failure = {}   # TileId -> (frame, reason) of the latest retryable failure
        self.unavailable = {}    # TileId -> reason
        self.frame_number = 0

        self._created = itertools.count()
        self._attempts = itertools.count(1)
        self.fetches_started = 0
        self.evictions = 0
        self.discarded_results = 0

    def __len__(self):
        return len(self.entries)

    def __contains__(self, tile_id):
        return tile_id in self.entries

    # ------------------------ frame API ------------------------

    def begin_frame(self, frame_number: int) -> int:
        '''Advance the frame clock and apply finished fetches'''
        self.frame_number = frame_number
        return self.apply_completions()

    def request(self, tile_id: TileId, priority: float = 0,
                frame_number: int | None = None) -> TileStatus:
        """Current state of a tile, starting a fetch when needed.

        Parameters
        ----------
        tile_id : TileId
            Tile wanted this frame
        priority : float
            Fetch priority, lower first
        frame_number : int | None
            Frame of the request, defaults to the current frame

        Returns
        -------
        status : TileStatus
            Snapshot taken after any fetch was queued
        """
        frame = self.frame_number if frame_number is None else frame_number

        reason = self.unavailable.get(tile_id)
        if reason is not None:
            return TileStatus(tile_id, TileState.UNAVAILABLE,
                              failures=self.failures.get(tile_id, 0), reason=reason)

        entry = self.entries.get(tile_id)
        if entry is None:
            entry = CacheEntry(tile_id, created=next(self._created))
            self.entries[tile_id] = entry
            last = self.last_failure.get(tile_id)
            if last is not None:
                # evicted while failed; its cooldown still runs
                entry.state = TileState.FAILED
                entry.failed_frame, entry.reason = last
            if last is None or self._cooldown_over(entry, frame):
                self._start_fetch(entry, priority)
        elif entry.state is TileState.PENDING:
            # attach to the outstanding fetch
            self.fetcher.reprioritize(tile_id, priority)
        elif entry.state is TileState.FAILED and self._cooldown_over(entry, frame):
            logger.debug("retrying tile %s (failure %d)", tile_id, self.failures.get(tile_id, 0))
            self._start_fetch(entry, priority)

        entry.requested_frame = frame
        # a refused fetch may already have made the tile unavailable
        return self.status(tile_id)

    def mark_used(self, tile_id: TileId, frame_number: int | None = None) -> None:
        '''Record that a tile was wanted in `frame_number`'''
        entry = self.entries.get(tile_id)
        if entry is None:
            return
        entry.last_used_frame = self.frame_number if frame_number is None else frame_number

    def evict_if_needed(self, frame_number: int | None = None) -> list[TileId]:
        """Evict least recently used entries until the cache fits its capacity

        Never evicts entries whose fetch is still queued or running, or
        entries requested or used in `frame_number`. A fetch that finished
        but was not applied yet does not pin its entry; the late result is
        discarded. With `capacity >= max_tiles_per_frame + max_concurrent`
        the pinned entries always fit.

        Returns
        -------
        evicted : list[TileId]
            Evicted tiles, oldest first
        """
        frame = self.frame_number if frame_number is None else frame_number
        excess = len(self.entries) - self.capacity
        if excess <= 0:
            return []

        candidates = [e for e in self.entries.values()
                      if not (e.in_flight and self.fetcher.is_busy(e.tile_id))
                      and e.last_used_frame != frame
                      and e.requested_frame != frame]
        candidates.sort(key=lambda e: (e.last_used_frame, e.created))

        evicted = []
        for entry in candidates[:excess]:
            del self.entries[entry.tile_id]
            entry.image = None
            evicted.append(entry.tile_id)
        self.evictions += len(evicted)

        if evicted:
            logger.debug("evicted %d tiles, %d resident", len(evicted), len(self.entries))
        if len(self.entries) > self.capacity:
            logger.debug("cache over capacity (%d > %d); remaining entries are pinned",
                         len(self.entries), self.capacity)
        return evicted

    def cancel_unused(self, frame_number: int | None = None) -> list[TileId]:
        '''Cancel queued fetches for tiles not wanted in `frame_number`'''
        frame = self.frame_number if frame_number is None else frame_number
        cancelled = []
        for entry in list(self.entries.values()):
            if entry.state is not TileState.PENDING:
                continue
            if entry.last_used_frame == frame or entry.requested_frame == frame:
                continue
            if self.fetcher.cancel(entry.tile_id):
                del self.entries[entry.tile_id]
                cancelled.append(entry.tile_id)
        if cancelled:
            logger.debug("cancelled %d queued fetches", len(cancelled))
        return cancelled

    def apply_completions(self) -> int:
        '''Apply every finished fetch; returns how many changed an entry'''
        applied = 0
        for result in self.fetcher.drain():
            entry = self.entries.get(result.tile_id)
            if (entry is None or entry.attempt != result.attempt
                    or entry.state is not TileState.PENDING):
                self.discarded_results += 1
                logger.debug("discarding stale result for tile %s", result.tile_id)
                continue

            entry.in_flight = False
            if result.ok:
                image = result.image
                if isinstance(image, np.ndarray):
                    image.flags.writeable = False
                entry.state = TileState.READY
                entry.image = image
                entry.reason = None
                self.failures.pop(result.tile_id, None)
                self.last_failure.pop(result.tile_id, None)
            else:
                self._record_failure(entry, result.error)
            applied += 1
        return applied

    # ------------------------ queries ------------------------

    def status(self, tile_id: TileId) -> TileStatus | None:
        if tile_id in self.unavailable:
            return TileStatus(tile_id, TileState.UNAVAILABLE,
                              failures=self.failures.get(tile_id, 0),
                              reason=self.unavailable[tile_id])
        entry = self.entries.get(tile_id)
        if entry is None:
            return None
        return entry.snapshot(self.failures.get(tile_id, 0))

    def ready_image(self, tile_id: TileId) -> np.ndarray | None:
        entry = self.entries.get(tile_id)
        if entry is None or entry.state is not TileState.READY:
            return None
        return entry.image

    def stats(self) -> dict:
        counts = {state.value: 0 for state in TileState}
        for entry in self.entries.values():
            counts[entry.state.value] += 1
        counts[TileState.UNAVAILABLE.value] = len(self.unavailable)
        counts.update({
            'resident': len(self.entries),
            'capacity': self.capacity,
            'fetches_started': self.fetches_started,
            'evictions': self.evictions,
            'discarded_results': self.discarded_results,
            'queued': self.fetcher.pending_count,
            'running': self.fetcher.active_count,
        })
        return counts

    def reset(self) -> None:
        """Forget every tile that has no fetch running.

        Queued fetches are dropped; running ones keep their entries and
        complete normally.
        """
        self.fetcher.reset()
        self.entries = {k: e for k, e in self.entries.items()
                        if e.in_flight and self.fetcher.is_busy(k)}
        self.failures.clear()
        self.last_failure.clear()
        self.unavailable.clear()

    # ------------------------ private helpers ------------------------

    def _cooldown_over(self, entry: CacheEntry, frame: int) -> bool:
        failures = max(self.failures.get(entry.tile_id, 1), 1)
        cooldown = self.retry_cooldown_frames * 2 ** (failures - 1)
        return frame - entry.failed_frame >= cooldown

    def _start_fetch(self, entry: CacheEntry, priority: float) -> None:
        entry.attempt = next(self._attempts)
        entry.state = TileState.PENDING
        entry.image = None
        entry.reason = None
        entry.in_flight = True
        if self.fetcher.submit(entry.tile_id, entry.attempt, priority):
            self.fetches_started += 1
        else:
            # fetcher shut down or still busy with an older attempt
            self._record_failure(entry, TileFetchError("fetch not accepted", entry.tile_id))

    def _record_failure(self, entry: CacheEntry, error: TileFetchError) -> None:
        tile_id = entry.tile_id
        entry.in_flight = False
        entry.image = None
        count = self.failures.get(tile_id, 0) + 1
        self.failures[tile_id] = count
        reason = error.reason if isinstance(error, TileFetchError) else str(error)

        if not getattr(error, 'retryable', True) or count > self.max_retries:
            del self.entries[tile_id]
            self.last_failure.pop(tile_id, None)
            self.unavailable[tile_id] = reason
            logger.warning("tile %s unavailable after %d failure(s): %s", tile_id, count, reason)
            return

        entry.state = TileState.FAILED
        entry.failed_frame = self.frame_number
        entry.reason = reason
        self.last_failure[tile_id] = (self.frame_number, reason)
        logger.info("tile %s failed (%d/%d): %s", tile_id, count, self.max_retries + 1, reason)
