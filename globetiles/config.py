from dataclasses import dataclass, fields

from globetiles.coord_utils import EARTH_RADIUS
from globetiles.errors import ConfigError
from globetiles.geometry import Sphere
from globetiles.lod import LodSelector

# ----------------- Config -----------------

TILE_URL = "https://tile.openstreetmap.org/{z}/{x}/{y}.png"  # common XYZ server (y top origin)
BLUE_MARBLE_URL = "http://s3.amazonaws.com/com.modestmaps.bluemarble/{z}-r{y}-c{x}.jpg"
TILE_ROOT = "./cache"
USER_AGENT = "globetiles/0.1 (tile viewer)"

DOWNLOAD_TIMEOUT = 10  # seconds

BASE_DETAIL_LEVEL = 3
MAX_DETAIL_LEVEL = 9
MAX_TILES_PER_FRAME = 96
CACHE_CAPACITY = 512
MAX_CONCURRENT_FETCHES = 4
MAX_RETRIES = 3
RETRY_COOLDOWN_FRAMES = 30
FRAME_INTERVAL_MS = 33

# (altitude above the surface in meters, level used below that altitude)
LOD_THRESHOLDS = (
    (8_000_000, 4),
    (5_000_000, 5),
    (3_000_000, 6),
    (2_000_000, 7),
    (1_000_000, 8),
    (400_000, 9),
)

SOURCE_KINDS = ('remote', 'local')


@dataclass
class GlobeConfig:
    """Capacity and tile source settings for the tile subsystem

    Attributes
    ----------
    max_detail_level : int
        Finest level ever requested
    base_detail_level : int
        Level used when the camera has not crossed any LOD threshold
    lod_thresholds : tuple
        (distance, level) pairs, see `globetiles.lod.LodSelector`
    max_tiles_per_frame : int
        Indexed tiles beyond this count are dropped for the frame
    cache_capacity : int
        Resident entry count above which the cache evicts
    max_concurrent_fetches : int
        Fetches allowed to run at once; the rest wait in the queue
    max_retries : int
        Retries after a transport failure before a tile is given up on
    retry_cooldown_frames : int
        Frames to wait before the first retry; doubles on every failure
    fetch_timeout : float
        Seconds before a remote fetch is abandoned
    source : str
        'remote' (HTTP, url_template) or 'local' (directory, tile_root)
    """
    max_detail_level: int = MAX_DETAIL_LEVEL
    base_detail_level: int = BASE_DETAIL_LEVEL
    lod_thresholds: tuple = LOD_THRESHOLDS
    max_tiles_per_frame: int = MAX_TILES_PER_FRAME
    cache_capacity: int = CACHE_CAPACITY
    max_concurrent_fetches: int = MAX_CONCURRENT_FETCHES
    max_retries: int = MAX_RETRIES
    retry_cooldown_frames: int = RETRY_COOLDOWN_FRAMES
    fetch_timeout: float = DOWNLOAD_TIMEOUT
    source: str = 'remote'
    url_template: str = TILE_URL
    tile_root: str = TILE_ROOT
    user_agent: str = USER_AGENT
    earth_radius: float = EARTH_RADIUS
    frame_interval_ms: int = FRAME_INTERVAL_MS

    def __post_init__(self):
        self.lod_thresholds = tuple(tuple(pair) for pair in self.lod_thresholds)
        self.validate()

    @classmethod
    def from_dict(cls, values: dict) -> 'GlobeConfig':
        '''Build a config from a plain dict; None values keep the default'''
        known = {f.name for f in fields(cls)}
        unknown = set(values) - known
        if unknown:
            raise ConfigError(f"unknown config keys: {', '.join(sorted(unknown))}")
        return cls(**{k: v for k, v in values.items() if v is not None})

    def validate(self) -> None:
        '''Raise ConfigError on the first inconsistent value'''
        if self.max_detail_level < 0:
            raise ConfigError("max_detail_level must be >= 0")
        if not 0 <= self.base_detail_level <= self.max_detail_level:
            raise ConfigError("base_detail_level must be within [0, max_detail_level]")
        if self.max_tiles_per_frame < 1:
            raise ConfigError("max_tiles_per_frame must be >= 1")
        if self.max_concurrent_fetches < 1:
            raise ConfigError("max_concurrent_fetches must be >= 1")
        if self.cache_capacity < self.max_tiles_per_frame + self.max_concurrent_fetches:
            # one frame's tiles plus fetches still running from older frames
            raise ConfigError("cache_capacity must be >= max_tiles_per_frame + max_concurrent_fetches")
        if self.max_retries < 0:
            raise ConfigError("max_retries must be >= 0")
        if self.retry_cooldown_frames < 0:
            raise ConfigError("retry_cooldown_frames must be >= 0")
        if self.fetch_timeout <= 0:
            raise ConfigError("fetch_timeout must be > 0")
        if self.earth_radius <= 0:
            raise ConfigError("earth_radius must be > 0")
        if self.frame_interval_ms < 1:
            raise ConfigError("frame_interval_ms must be >= 1")
        if self.source not in SOURCE_KINDS:
            raise ConfigError(f"source must be one of {SOURCE_KINDS}, got {self.source!r}")
        if self.source == 'remote':
            for key in ('{z}', '{x}', '{y}'):
                if key not in self.url_template:
                    raise ConfigError(f"url_template must include {key}")
        # Threshold shape is checked by the selector itself
        self.lod_selector()

    def lod_selector(self):
        try:
            return LodSelector(self.lod_thresholds,
                               max_level=self.max_detail_level,
                               base_level=self.base_detail_level)
        except ValueError as e:
            raise ConfigError(str(e)) from e

    def sphere(self):
        return Sphere((0.0, 0.0, 0.0), self.earth_radius)
