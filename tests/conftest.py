import os
import threading
from concurrent.futures import Future

os.environ.setdefault("QT_QPA_PLATFORM", "offscreen")

import numpy as np
import pytest

from globetiles.coord_utils import EARTH_RADIUS, spherical_to_ecef
from globetiles.decode import TileDecoder
from globetiles.errors import TileDecodeError, TileNotFoundError
from globetiles.geometry import Ray, Sphere
from globetiles.tile_source import TileSource


class DeferredExecutor:
    """Executor that runs nothing until told to

    Lets tests decide when fetches run, so pipeline and cache behavior is
    deterministic.
    """

    def __init__(self):
        self.calls = []
        self.closed = False

    def submit(self, fn, *args, **kwargs):
        if self.closed:
            raise RuntimeError("cannot schedule new futures after shutdown")
        future = Future()
        self.calls.append((future, fn, args, kwargs))
        return future

    def run_next(self) -> bool:
        if not self.calls:
            return False
        future, fn, args, kwargs = self.calls.pop(0)
        future.set_result(fn(*args, **kwargs))
        return True

    def run_all(self) -> int:
        count = 0
        while self.run_next():
            count += 1
        return count

    def shutdown(self, wait=True):
        self.closed = True


class FakeTileSource(TileSource):
    """In-memory tile source

    `tiles` maps TileId -> bytes or an exception instance to raise.
    Tiles not in the map return b'tile' unless `missing_is_error` is set.
    """

    def __init__(self, tiles=None, missing_is_error=False):
        self.tiles = dict(tiles or {})
        self.missing_is_error = missing_is_error
        self.fetches = []
        self.closed = False
        self._lock = threading.Lock()

    def fetch(self, tile_id):
        with self._lock:
            self.fetches.append(tile_id)
        value = self.tiles.get(tile_id)
        if isinstance(value, Exception):
            raise value
        if value is None:
            if self.missing_is_error:
                raise TileNotFoundError("missing", tile_id)
            return b'tile'
        return value

    def fetch_count(self, tile_id):
        return self.fetches.count(tile_id)

    def close(self):
        self.closed = True


class FakeDecoder(TileDecoder):
    '''Turns any bytes into a 2x2 image; b"bad" fails to decode'''

    def decode(self, data):
        if data == b'bad':
            raise TileDecodeError("bad tile")
        return np.full((2, 2, 3), len(data) % 256, dtype=np.uint8)


def ray_to(lat, lon, radius=EARTH_RADIUS):
    '''Ray from twice the radius straight down onto (lat, lon)'''
    origin = np.array(spherical_to_ecef(lat, lon, 2 * radius))
    return Ray(origin, -origin)


@pytest.fixture
def executor():
    return DeferredExecutor()


@pytest.fixture
def source():
    return FakeTileSource()


@pytest.fixture
def decoder():
    return FakeDecoder()


@pytest.fixture
def earth():
    return Sphere((0.0, 0.0, 0.0), EARTH_RADIUS)
