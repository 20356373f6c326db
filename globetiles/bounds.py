from dataclasses import dataclass

from globetiles.coord_utils import GeoCoordinate, wrap_lon


@dataclass(frozen=True)
class GeoBoundingBox:
    """Latitude/longitude extent on the globe

    The longitude range runs east from `min_lon` to `max_lon`. When
    `min_lon > max_lon` the box spans the antimeridian.

    Attributes
    ----------
    min_lat, max_lat : float
        Latitude range in degrees, min_lat <= max_lat
    min_lon, max_lon : float
        Longitude range in degrees
    full_globe : bool
        Box covers every longitude and latitude
    """
    min_lat: float
    max_lat: float
    min_lon: float
    max_lon: float
    full_globe: bool = False

    def __post_init__(self):
        if not -90.0 <= self.min_lat <= self.max_lat <= 90.0:
            raise ValueError(f"bad latitude range: {self.min_lat}..{self.max_lat}")

    @classmethod
    def whole_globe(cls) -> 'GeoBoundingBox':
        return cls(-90.0, 90.0, -180.0, 180.0, full_globe=True)

    @property
    def crosses_antimeridian(self) -> bool:
        return not self.full_globe and self.min_lon > self.max_lon

    @property
    def lon_span(self) -> float:
        if self.full_globe:
            return 360.0
        return (self.max_lon - self.min_lon) % 360.0

    @property
    def center(self) -> GeoCoordinate:
        lat = 0.5 * (self.min_lat + self.max_lat)
        return GeoCoordinate(lat, wrap_lon(self.min_lon + 0.5 * self.lon_span))

    def contains(self, coord: GeoCoordinate) -> bool:
        lat, lon = coord
        if not self.min_lat <= lat <= self.max_lat:
            return False
        if self.full_globe:
            return True
        if self.crosses_antimeridian:
            return lon >= self.min_lon or lon <= self.max_lon
        return self.min_lon <= lon <= self.max_lon

    def split(self) -> list['GeoBoundingBox']:
        '''One box, or two when the antimeridian is crossed'''
        if not self.crosses_antimeridian:
            return [self]
        return [
            GeoBoundingBox(self.min_lat, self.max_lat, self.min_lon, 180.0),
            GeoBoundingBox(self.min_lat, self.max_lat, -180.0, self.max_lon),
        ]


def _lon_arc(lons: list[float]) -> tuple[float, float]:
    '''Smallest arc holding every longitude, as (start, end) going east'''
    lons = sorted(lons)
    # Wrap gap first so a tie keeps the box off the antimeridian
    best_gap = lons[0] + 360.0 - lons[-1]
    start, end = lons[0], lons[-1]
    for i in range(len(lons) - 1):
        gap = lons[i + 1] - lons[i]
        if gap > best_gap:
            best_gap = gap
            start, end = lons[i + 1], lons[i]
    return start, end


def accumulate_bounds(coords) -> GeoBoundingBox:
    """Fold geographic coordinates into the box that covers them

    Parameters
    ----------
    coords : iterable[GeoCoordinate]
        Zero to four ray hits from the geometry probe

    Returns
    -------
    box : GeoBoundingBox
        Smallest latitude range and shortest longitude arc holding every
        coordinate; the whole-globe box when `coords` is empty
    """
    coords = list(coords)
    if not coords:
        return GeoBoundingBox.whole_globe()

    lats = [c[0] for c in coords]
    min_lon, max_lon = _lon_arc([wrap_lon(c[1]) for c in coords])
    return GeoBoundingBox(min(lats), max(lats), min_lon, max_lon)


class BoundsAccumulator:
    '''Incremental form of `accumulate_bounds`'''

    def __init__(self):
        self._coords = []

    def add(self, coord: GeoCoordinate) -> None:
        self._coords.append(coord)

    def extend(self, coords) -> None:
        self._coords.extend(coords)

    def reset(self) -> None:
        self._coords.clear()

    def __len__(self):
        return len(self._coords)

    def result(self) -> GeoBoundingBox:
        return accumulate_bounds(self._coords)
