import numpy as np

from globetiles.coord_utils import GeoCoordinate, ecef_to_geo


class Ray:
    """Half-line in world space

    Attributes
    ----------
    origin : np.ndarray
        [x, y, z] start point (meters)
    direction : np.ndarray
        normalized [x, y, z] direction
    """

    __slots__ = ('origin', 'direction')

    def __init__(self, origin, direction):
        self.origin = np.asarray(origin, dtype=float).reshape(3)
        direction = np.asarray(direction, dtype=float).reshape(3)
        norm = np.linalg.norm(direction)
        if norm == 0:
            raise ValueError("ray direction must be non-zero")
        self.direction = direction / norm

    def point_at(self, t: float) -> np.ndarray:
        return self.origin + t * self.direction

    def __repr__(self):
        return f'Ray(origin={self.origin.tolist()}, direction={self.direction.tolist()})'


class Sphere:
    '''The globe: center and radius in world units'''

    __slots__ = ('center', 'radius')

    def __init__(self, center, radius: float):
        if radius <= 0:
            raise ValueError("sphere radius must be > 0")
        self.center = np.asarray(center, dtype=float).reshape(3)
        self.radius = float(radius)

    def contains(self, point) -> bool:
        return bool(np.linalg.norm(np.asarray(point, dtype=float) - self.center) < self.radius)

    def __repr__(self):
        return f'Sphere(center={self.center.tolist()}, radius={self.radius})'


def intersect_sphere(ray: Ray, sphere: Sphere) -> float | None:
    """
    Test if a ray hits the sphere.

    Parameters
    ----------
        ray: Ray
            ray in world space
        sphere: Sphere
            globe to test against

    Returns
    -------
        t: float | None
            distance along the ray to the visible surface point,
            None if the ray misses

    Remarks
    -------
    - Origin outside: nearer positive root
    - Origin inside: farther root (the surface seen from within)
    - Tangent rays produce a single root
    """
    oc = ray.origin - sphere.center
    a = np.dot(ray.direction, ray.direction)
    b = 2.0 * np.dot(oc, ray.direction)
    c = np.dot(oc, oc) - sphere.radius ** 2

    discriminant = b * b - 4 * a * c
    if discriminant < 0:
        return None

    sqrt_disc = np.sqrt(discriminant)
    t_near = (-b - sqrt_disc) / (2 * a)
    t_far = (-b + sqrt_disc) / (2 * a)

    if c < 0:
        # inside
        return float(t_far)
    if t_near >= 0:
        return float(t_near)
    if t_far >= 0:
        return float(t_far)
    return None


def intersect_point(ray: Ray, sphere: Sphere) -> np.ndarray | None:
    '''World-space hit point of a ray on the sphere, or None'''
    t = intersect_sphere(ray, sphere)
    if t is None:
        return None
    return ray.point_at(t)


def probe(rays, sphere: Sphere) -> list[GeoCoordinate]:
    """Intersect each ray with the globe and convert hits to lat/lon

    Parameters
    ----------
    rays : iterable[Ray]
        Usually the four camera corner rays
    sphere : Sphere
        Globe parameters

    Returns
    -------
    coords : list[GeoCoordinate]
        One coordinate per ray that hits, in ray order; rays that miss
        contribute nothing
    """
    coords = []
    for ray in rays:
        point = intersect_point(ray, sphere)
        if point is None:
            continue
        coords.append(ecef_to_geo(point, sphere.center))
    return coords


def surface_distance(position, sphere: Sphere) -> float:
    '''Distance from a point to the sphere surface, zero when inside'''
    d = np.linalg.norm(np.asarray(position, dtype=float) - sphere.center) - sphere.radius
    return float(max(d, 0.0))
