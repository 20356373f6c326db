import numpy as np

from globetiles.coord_utils import GeoCoordinate, ecef_to_geo, spherical_to_ecef
from globetiles.geometry import Ray, Sphere, intersect_point

# NDC corners: bottom-left, bottom-right, top-right, top-left
CORNERS = ((-1.0, -1.0), (1.0, -1.0), (1.0, 1.0), (-1.0, 1.0))


class Camera:
    """Pinhole camera in world (ECEF) space

    Attributes
    ----------
    position : np.ndarray
        Eye position in meters
    target : np.ndarray
        Point the camera looks at
    up : np.ndarray
        World up hint, Z (north) by default
    fov_deg : float
        Vertical field of view in degrees
    aspect : float
        Viewport width / height
    """

    def __init__(self, position, target=(0.0, 0.0, 0.0), up=(0.0, 0.0, 1.0),
                 fov_deg: float = 45.0, aspect: float = 1.0):
        self.position = np.asarray(position, dtype=float).reshape(3)
        self.target = np.asarray(target, dtype=float).reshape(3)
        self.up = np.asarray(up, dtype=float).reshape(3)
        self.fov_deg = fov_deg
        self.aspect = aspect
        if np.allclose(self.position, self.target):
            raise ValueError("camera position and target coincide")

    @classmethod
    def orbit(cls, lat: float, lon: float, distance: float,
              fov_deg: float = 45.0, aspect: float = 1.0) -> 'Camera':
        '''Camera `distance` meters from the globe center, above (lat, lon), looking at the center'''
        return cls(spherical_to_ecef(lat, lon, distance), fov_deg=fov_deg, aspect=aspect)

    def basis(self) -> tuple[np.ndarray, np.ndarray, np.ndarray]:
        '''forward, right, up unit vectors'''
        # Forward: from camera toward target
        forward = self.target - self.position
        forward = forward / np.linalg.norm(forward)

        # Right: cross product of forward and up
        right = np.cross(forward, self.up)
        if np.linalg.norm(right) < 0.001:
            # looking straight along the up hint
            right = np.array([1.0, 0.0, 0.0])
            right = right - np.dot(right, forward) * forward
            if np.linalg.norm(right) < 0.001:
                right = np.array([0.0, 1.0, 0.0])
        right = right / np.linalg.norm(right)

        # Up: cross product of right and forward
        up = np.cross(right, forward)
        up = up / np.linalg.norm(up)
        return forward, right, up

    def ray_through(self, ndc_x: float, ndc_y: float) -> Ray:
        """
        Ray from the eye through a point on the image plane.

        Parameters
        ----------
            ndc_x, ndc_y : float
                normalized device coordinates, -1..1, +y up

        Returns
        -------
            ray : Ray
                world-space ray
        """
        forward, right, up = self.basis()
        tan_half_fov = np.tan(np.radians(self.fov_deg) / 2.0)

        ray_cam_x = ndc_x * self.aspect * tan_half_fov
        ray_cam_y = ndc_y * tan_half_fov

        # Transform to world space
        direction = ray_cam_x * right + ray_cam_y * up + forward
        return Ray(self.position, direction)

    def corner_rays(self) -> list[Ray]:
        '''Rays through the four viewport corners'''
        return [self.ray_through(x, y) for x, y in CORNERS]

    def pick(self, ndc_x: float, ndc_y: float, sphere: Sphere) -> GeoCoordinate | None:
        '''Latitude/longitude under a screen point, None off the globe'''
        point = intersect_point(self.ray_through(ndc_x, ndc_y), sphere)
        if point is None:
            return None
        return ecef_to_geo(point, sphere.center)

    @staticmethod
    def pixel_to_ndc(x: float, y: float, width: float, height: float) -> tuple[float, float]:
        '''Widget pixel coordinates (origin top-left) to NDC'''
        ndc_x = (2.0 * x) / width - 1.0
        ndc_y = 1.0 - (2.0 * y) / height
        return ndc_x, ndc_y

    def __repr__(self):
        return (f'Camera(position={self.position.tolist()}, target={self.target.tolist()}, '
                f'fov_deg={self.fov_deg}, aspect={self.aspect})')
