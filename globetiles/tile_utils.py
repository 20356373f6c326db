import heapq
import math
import os
from typing import NamedTuple

import numpy as np

from globetiles.bounds import GeoBoundingBox
from globetiles.coord_utils import GeoCoordinate, wrap_lon

#-------------------------------------------------------
# TILE UTILITIES
#-------------------------------------------------------
# XYZ (OSM / Web Mercator) tiling:
#   - level z has 2**z columns and 2**z rows
#   - column 0 starts at lon -180 and increases east
#   - row 0 starts at lat +MAX_LAT and increases south
#   - latitudes past +/-MAX_LAT fall into the first/last row
#-------------------------------------------------------

MAX_LAT = math.degrees(math.atan(math.sinh(math.pi)))  # 85.0511...


class TileId(NamedTuple):
    '''One tile of the pyramid: detail level, row (y), column (x)'''
    level: int
    row: int
    col: int

    def __str__(self):
        return f'{self.level}/{self.col}/{self.row}'


def clamp(a, b, c):
    return max(b, min(c, a))


def _lon_to_x(lon: float, level: int) -> float:
    '''Fractional column coordinate of a longitude'''
    return (lon + 180.0) / 360.0 * 2 ** level


def _lat_to_y(lat: float, level: int) -> float:
    '''Fractional row coordinate of a latitude'''
    lat_rad = np.radians(clamp(lat, -MAX_LAT, MAX_LAT))
    return float((1.0 - np.arcsinh(np.tan(lat_rad)) / np.pi) / 2.0 * 2 ** level)


def lon_to_col(lon: float, level: int) -> int:
    n = 2 ** level
    return clamp(int(math.floor(_lon_to_x(lon, level))), 0, n - 1)


def lat_to_row(lat: float, level: int) -> int:
    n = 2 ** level
    return clamp(int(math.floor(_lat_to_y(lat, level))), 0, n - 1)


def latlon_to_tile(lat: float, lon: float, level: int) -> TileId:
    """Convert lat/lon to the tile that contains it

    Parameters
    ----------
    lat : float
        latitude in degrees
    lon : float
        longitude in degrees
    level : int
        detail level

    Returns
    -------
    tile_id : TileId
    """
    return TileId(level, lat_to_row(lat, level), lon_to_col(wrap_lon(lon), level))


def col_to_lon(col: float, level: int) -> float:
    '''West edge longitude of a column'''
    return col / 2 ** level * 360.0 - 180.0


def row_to_lat(row: float, level: int) -> float:
    '''North edge latitude of a row'''
    n = 2 ** level
    lat_rad = np.arctan(np.sinh(np.pi * (1 - 2 * row / n)))
    return float(np.degrees(lat_rad))


def tile_bounds(tile_id: TileId) -> GeoBoundingBox:
    '''Geographic footprint of a tile'''
    level, row, col = tile_id
    return GeoBoundingBox(min_lat=row_to_lat(row + 1, level),
                          max_lat=row_to_lat(row, level),
                          min_lon=col_to_lon(col, level),
                          max_lon=col_to_lon(col + 1, level))


def tile_center(tile_id: TileId) -> GeoCoordinate:
    level, row, col = tile_id
    return GeoCoordinate(row_to_lat(row + 0.5, level), col_to_lon(col + 0.5, level))


def parent(tile_id: TileId) -> TileId | None:
    '''Tile one level coarser whose footprint holds this one'''
    level, row, col = tile_id
    if level == 0:
        return None
    return TileId(level - 1, row // 2, col // 2)


def children(tile_id: TileId) -> list[TileId]:
    level, row, col = tile_id
    return [TileId(level + 1, 2 * row + dr, 2 * col + dc)
            for dr in (0, 1) for dc in (0, 1)]


def tile_path(root: str, tile_id: TileId, ext: str = 'png') -> str:
    '''Tile index to path where it should be in a {z}/{x}/{y} directory tree'''
    level, row, col = tile_id
    return os.path.join(root, str(level), str(col), f"{row}.{ext}")


def _index_range(lo: float, hi: float, n: int) -> range:
    """Integer cells covering [lo, hi] in fractional cell units

    A max edge that lands exactly on a cell boundary does not pull in the
    next cell, but the range is never empty.
    """
    first = clamp(int(math.floor(lo)), 0, n - 1)
    last = clamp(int(math.ceil(hi)) - 1, 0, n - 1)
    return range(first, max(first, last) + 1)


def _col_ranges(box: GeoBoundingBox, level: int) -> list[range]:
    n = 2 ** level
    if box.full_globe:
        return [range(n)]
    ranges = []
    for part in box.split():
        ranges.append(_index_range(_lon_to_x(part.min_lon, level),
                                   _lon_to_x(part.max_lon, level), n))
    return ranges


def _row_range(box: GeoBoundingBox, level: int) -> range:
    n = 2 ** level
    if box.full_globe:
        return range(n)
    # rows grow southward
    return _index_range(_lat_to_y(box.max_lat, level), _lat_to_y(box.min_lat, level), n)


def _nearest_cells(center: float, n: int, count: int, allowed, wrap: bool) -> list[int]:
    """Allowed cells whose centers lie nearest `center`, walking outward

    Stops one step after `count` cells are found, so every allowed cell
    left out is strictly farther than each of the first `count` found.
    """
    first = int(math.floor(center))
    found = []
    seen = set()
    last_step = None
    step = 0
    while True:
        for cell in (first - step, first + step):
            if wrap:
                cell %= n
            elif not 0 <= cell < n:
                continue
            if cell in seen:
                continue
            seen.add(cell)
            if allowed(cell):
                found.append(cell)
        if last_step is None and len(found) >= count:
            last_step = step + 1
        if wrap:
            exhausted = 2 * step + 1 >= n
        else:
            exhausted = first - step <= 0 and first + step >= n - 1
        if step == last_step or exhausted:
            return found
        step += 1


def _column_count(ranges: list[range]) -> int:
    if len(ranges) == 1:
        return len(ranges[0])
    a, b = ranges
    overlap = max(0, min(a.stop, b.stop) - max(a.start, b.start))
    return len(a) + len(b) - overlap


def count_tiles_for_bounds(box: GeoBoundingBox, level: int) -> int:
    '''Number of tiles at `level` covering a bounding box'''
    if level < 0:
        raise ValueError(f"level must be >= 0, got {level}")
    return _column_count(_col_ranges(box, level)) * len(_row_range(box, level))


def tiles_for_bounds(box: GeoBoundingBox, level: int,
                     center: GeoCoordinate | None = None,
                     limit: int | None = None) -> list[TileId]:
    """Tiles at `level` that cover a bounding box, highest priority first

    Parameters
    ----------
    box : GeoBoundingBox
        Visible region; may span the antimeridian or be the whole globe
    level : int
        Detail level to tile at
    center : GeoCoordinate | None
        Point the priority order radiates from, default the box center
    limit : int | None
        Keep only this many highest-priority tiles. Only rows and columns
        near `center` are visited, so the cost follows `limit` rather
        than the number of tiles in the box.

    Returns
    -------
    tiles : list[TileId]
        Unique tiles ordered by distance (in tile units, with column wrap)
        from `center` to each tile center; ties by (row, col)
    """
    if level < 0:
        raise ValueError(f"level must be >= 0, got {level}")
    n = 2 ** level
    if center is None:
        center = box.center
    cx = _lon_to_x(wrap_lon(center[1]), level)
    cy = _lat_to_y(center[0], level)

    col_ranges = _col_ranges(box, level)
    rows = _row_range(box, level)

    def _priority(tile):
        dx = abs(tile.col + 0.5 - cx)
        dx = min(dx, n - dx)
        dy = tile.row + 0.5 - cy
        return (dx * dx + dy * dy, tile.row, tile.col)

    if limit is not None and limit <= 0:
        return []
    if limit is None or limit >= _column_count(col_ranges) * len(rows):
        cols = sorted({c for r in col_ranges for c in r})
        tiles = sorted((TileId(level, row, col) for row in rows for col in cols), key=_priority)
        return tiles if limit is None else tiles[:limit]

    # the best `limit` tiles use only the `limit` nearest columns and rows
    cols = _nearest_cells(cx, n, limit, lambda c: any(c in r for r in col_ranges), wrap=True)
    near_rows = _nearest_cells(cy, n, limit, rows.__contains__, wrap=False)
    candidates = (TileId(level, row, col) for row in near_rows for col in cols)
    return heapq.nsmallest(limit, candidates, key=_priority)
