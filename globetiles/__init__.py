from globetiles.bounds import BoundsAccumulator, GeoBoundingBox, accumulate_bounds
from globetiles.camera import Camera
from globetiles.config import GlobeConfig
from globetiles.coord_utils import GeoCoordinate, ecef_to_geo
from globetiles.decode import PillowDecoder, TileDecoder
from globetiles.errors import (ConfigError, GlobeTilesError, TileDecodeError,
                               TileFetchError, TileNotFoundError, TransportError)
from globetiles.frame import FrameOrchestrator, FrameResult
from globetiles.geometry import Ray, Sphere, intersect_sphere, probe, surface_distance
from globetiles.lod import LodSelector
from globetiles.tile_cache import TileCache, TileState, TileStatus
from globetiles.tile_fetcher import FetchResult, TileFetcher
from globetiles.tile_source import LocalTileSource, RemoteTileSource, TileSource, make_tile_source
from globetiles.tile_utils import TileId, tile_bounds, tiles_for_bounds

__version__ = '0.1.0'
