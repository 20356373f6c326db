import logging
import time
from dataclasses import dataclass, field

from globetiles.bounds import GeoBoundingBox, accumulate_bounds
from globetiles.camera import Camera
from globetiles.config import GlobeConfig
from globetiles.decode import PillowDecoder, TileDecoder
from globetiles.geometry import Sphere, probe, surface_distance
from globetiles.tile_cache import TileCache, TileState
from globetiles.tile_fetcher import TileFetcher
from globetiles.tile_source import TileSource, make_tile_source
from globetiles.tile_utils import TileId, count_tiles_for_bounds, tiles_for_bounds

logger = logging.getLogger(__name__)


@dataclass
class FrameResult:
    """What the renderer gets for one frame

    Attributes
    ----------
    frame_number : int
        1 for the first frame
    level : int
        Detail level chosen for the frame
    bounds : GeoBoundingBox
        Visible region
    ready : list[(TileId, np.ndarray)]
        Decoded tiles, highest priority first
    pending : list[TileId]
        Tiles still loading, for placeholder drawing
    unavailable : list[TileId]
        Tiles given up on for the session
    dropped : int
        Indexed tiles cut by the per-frame budget
    evicted : list[TileId]
        Tiles evicted at the end of the frame
    """
    frame_number: int
    level: int
    bounds: GeoBoundingBox
    ready: list = field(default_factory=list)
    pending: list = field(default_factory=list)
    unavailable: list = field(default_factory=list)
    dropped: int = 0
    evicted: list = field(default_factory=list)

    @property
    def tile_ids(self) -> list[TileId]:
        return [tile_id for tile_id, _ in self.ready]


class FrameOrchestrator:
    """Runs the per-frame tile pass

    probe rays -> bounds -> detail level -> tile ids -> cache requests ->
    ready tiles to the renderer -> cancel/evict

    Holds no state between frames beyond the cache and the frame counter,
    and never waits on a fetch.
    """

    def __init__(self, config: GlobeConfig, cache: TileCache,
                 sphere: Sphere | None = None, renderer=None):
        '''
        Parameters
        ----------
        config : GlobeConfig
            Capacity and LOD settings
        cache : TileCache
            Tile residency, with its fetcher
        sphere : Sphere
            Globe, from the config radius if None
        renderer : callable(FrameResult) | None
            Receives every frame's result
        '''
        self.config = config
        self.cache = cache
        self.sphere = sphere if sphere is not None else config.sphere()
        self.renderer = renderer
        self.lod = config.lod_selector()
        self.frame_number = 0

    @classmethod
    def from_config(cls, config: GlobeConfig, source: TileSource | None = None,
                    decoder: TileDecoder | None = None, renderer=None,
                    executor=None) -> 'FrameOrchestrator':
        '''Wire source, fetcher and cache together from one config'''
        if source is None:
            source = make_tile_source(config)
        fetcher = TileFetcher(source,
                              decoder if decoder is not None else PillowDecoder(),
                              max_concurrent=config.max_concurrent_fetches,
                              executor=executor)
        cache = TileCache(fetcher,
                          capacity=config.cache_capacity,
                          max_retries=config.max_retries,
                          retry_cooldown_frames=config.retry_cooldown_frames)
        return cls(config, cache, renderer=renderer)

    def run_frame(self, rays, distance: float) -> FrameResult:
        """One frame of tile selection.

        Parameters
        ----------
        rays : iterable[Ray]
            Camera corner rays
        distance : float
            Camera distance to the globe surface

        Returns
        -------
        result : FrameResult
            Also passed to the renderer, if one is set
        """
        start = time.perf_counter()
        self.frame_number += 1
        frame = self.frame_number
        self.cache.begin_frame(frame)

        coords = probe(rays, self.sphere)
        bounds = accumulate_bounds(coords)
        level = self.lod.select(distance)

        budget = self.config.max_tiles_per_frame
        tiles = tiles_for_bounds(bounds, level, limit=budget)
        dropped = count_tiles_for_bounds(bounds, level) - len(tiles)
        if dropped:
            logger.debug("frame %d: %d tiles over budget dropped", frame, dropped)

        result = FrameResult(frame, level, bounds, dropped=dropped)
        for priority, tile_id in enumerate(tiles):
            status = self.cache.request(tile_id, priority)
            self.cache.mark_used(tile_id, frame)
            if status.state is TileState.READY:
                result.ready.append((tile_id, status.image))
            elif status.state is TileState.UNAVAILABLE:
                result.unavailable.append(tile_id)
            else:
                result.pending.append(tile_id)

        if self.renderer is not None:
            self.renderer(result)

        self.cache.cancel_unused(frame)
        result.evicted = self.cache.evict_if_needed(frame)

        logger.debug("frame %d: level %d, %d hits, %d ready, %d pending, %.2f ms",
                     frame, level, len(coords), len(result.ready), len(result.pending),
                     (time.perf_counter() - start) * 1e3)
        return result

    def run_camera_frame(self, camera: Camera) -> FrameResult:
        '''`run_frame` with rays and distance taken from a camera'''
        return self.run_frame(camera.corner_rays(),
                              surface_distance(camera.position, self.sphere))

    def shutdown(self, wait: bool = True) -> None:
        self.cache.fetcher.shutdown(wait=wait)
