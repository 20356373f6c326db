from typing import NamedTuple

import numpy as np

EARTH_RADIUS = 6371000  # meters

#============================================================
# COORDINATE SYSTEM
#============================================================
# World space is ECEF-like on a perfect sphere:
#    - X-axis points to Prime Meridian (0°N, 0°E)
#    - Y-axis points to Bay of Bengal (0°N, 90°E)
#    - Z-axis points to North Pole (90°N)
# Longitudes are kept in (-180, 180].
#============================================================


def wrap_lon(lon: float) -> float:
    '''Normalize a longitude in degrees to (-180, 180]'''
    lon = float(lon) % 360.0
    if lon > 180.0:
        lon -= 360.0
    return lon


class GeoCoordinate(NamedTuple):
    """Latitude / longitude pair in degrees

    Build with `GeoCoordinate.of` to get range checking and longitude
    wrapping; the plain constructor trusts its inputs.
    """
    lat: float
    lon: float

    @classmethod
    def of(cls, lat: float, lon: float) -> 'GeoCoordinate':
        lat = float(lat)
        if not -90.0 <= lat <= 90.0:
            raise ValueError(f"latitude out of range: {lat}")
        return cls(lat, wrap_lon(lon))


def spherical_to_ecef(lat: float, lon: float, r: float) -> tuple[float, float, float]:
    """Convert spherical coordinates to ECEF

    Parameters
    ----------
    lat : float
        Latitude in degrees
    lon : float
        Longitude in degrees
    r : float
        Distance from Earth center

    Returns
    -------
    x : float
        ECEF x
    y : float
        ECEF y
    z : float
        ECEF z
    """
    lat_rad = np.radians(lat)
    lon_rad = np.radians(lon)

    x = r * np.cos(lat_rad) * np.cos(lon_rad)
    y = r * np.cos(lat_rad) * np.sin(lon_rad)
    z = r * np.sin(lat_rad)

    return float(x), float(y), float(z)


def lla_to_ecef(lat: float, lon: float, alt: float,
                earth_radius: float = EARTH_RADIUS) -> tuple[float, float, float]:
    """Convert latitude, longitude, altitude to ECEF coordinates

    Parameters
    ----------
    lat : float
        Latitude in Degrees
    lon : float
        Longitude in Degrees
    alt : float
        Altitude above earth surface in meters
    earth_radius : float
        Radius of the globe sphere in meters

    Returns
    -------
    x, y, z : float
        ECEF position
    """
    # Total distance from Earth center = radius + altitude
    return spherical_to_ecef(lat, lon, earth_radius + alt)


def ecef_to_geo(point, center=(0.0, 0.0, 0.0)) -> GeoCoordinate:
    """Convert a world-space point to the latitude/longitude above it

    Parameters
    ----------
    point : array-like
        [x, y, z] position, usually on the sphere surface
    center : array-like
        Sphere center the point is measured from

    Returns
    -------
    coord : GeoCoordinate
        lat = asin of the normalized up component, lon = atan2(y, x)
    """
    p = np.asarray(point, dtype=float) - np.asarray(center, dtype=float)
    norm = np.linalg.norm(p)
    if norm == 0:
        raise ValueError("point coincides with the sphere center")
    p = p / norm
    lat = np.degrees(np.arcsin(np.clip(p[2], -1.0, 1.0)))
    lon = np.degrees(np.arctan2(p[1], p[0]))
    return GeoCoordinate(float(lat), wrap_lon(lon))
