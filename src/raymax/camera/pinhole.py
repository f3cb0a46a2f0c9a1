"""Pinhole camera model for primary ray generation.

The camera is given by a position, a viewing direction, an up vector and a
vertical field of view; the aspect ratio comes from the render's image size.
``setup_camera`` builds an orthonormal basis (u, v, w) on the Python side:
    - w: points backward, opposite the viewing direction
    - u: points right in the image plane
    - v: points up in the image plane

and stores the viewport in fields that ``get_ray`` reads inside kernels.
Image coordinates are normalized: u = 0 at the left edge, v = 0 at the
bottom edge.

Example:
    >>> camera = PinholeCamera(
    ...     position=(0.0, 0.0, 0.0),
    ...     direction=(0.0, 0.0, -1.0),
    ...     up=(0.0, 1.0, 0.0),
    ...     vfov=60.0,
    ... )
    >>> setup_camera(camera, aspect_ratio=4.0 / 3.0)
"""

import math
from dataclasses import dataclass
from typing import Any

import numpy as np
import taichi as ti

from raymax.core.ray import T_MAX, T_MIN, Ray, make_ray, vec3

# =============================================================================
# Camera Data Structures
# =============================================================================


@dataclass(frozen=True)
class PinholeCamera:
    """Configuration for a pinhole (perspective) camera.

    Attributes:
        position: Camera position in world space (x, y, z).
        direction: Viewing direction (need not be normalized).
        up: Approximate up vector; must not be parallel to direction.
        vfov: Vertical field of view in degrees, in (0, 180).
    """

    position: tuple[float, float, float] = (0.0, 0.0, 0.0)
    direction: tuple[float, float, float] = (0.0, 0.0, -1.0)
    up: tuple[float, float, float] = (0.0, 1.0, 0.0)
    vfov: float = 60.0

    def __post_init__(self) -> None:
        if not 0.0 < self.vfov < 180.0:
            raise ValueError(f"vfov must be in (0, 180) degrees, got {self.vfov}")
        d = np.asarray(self.direction, dtype=np.float64)
        up = np.asarray(self.up, dtype=np.float64)
        if np.linalg.norm(d) < 1e-12:
            raise ValueError("Camera direction must be non-zero")
        if np.linalg.norm(np.cross(d, up)) < 1e-9 * max(np.linalg.norm(d) * np.linalg.norm(up), 1e-30):
            raise ValueError("Camera up vector must not be parallel to the viewing direction")

    @classmethod
    def look_at(
        cls,
        lookfrom: tuple[float, float, float],
        lookat: tuple[float, float, float],
        vup: tuple[float, float, float] = (0.0, 1.0, 0.0),
        vfov: float = 60.0,
    ) -> "PinholeCamera":
        """Create a camera at ``lookfrom`` aimed at ``lookat``."""
        direction = tuple(float(b - a) for a, b in zip(lookfrom, lookat))
        return cls(position=tuple(lookfrom), direction=direction, up=tuple(vup), vfov=vfov)

    def basis(self) -> tuple[np.ndarray, np.ndarray, np.ndarray]:
        """Orthonormal camera basis (u right, v up, w backward)."""
        w = -np.asarray(self.direction, dtype=np.float64)
        w = w / np.linalg.norm(w)
        u = np.cross(np.asarray(self.up, dtype=np.float64), w)
        u = u / np.linalg.norm(u)
        v = np.cross(w, u)
        return u, v, w

    def to_dict(self) -> dict[str, Any]:
        return {
            "position": list(self.position),
            "direction": list(self.direction),
            "up": list(self.up),
            "vfov": self.vfov,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "PinholeCamera":
        return cls(
            position=tuple(data.get("position", (0.0, 0.0, 0.0))),
            direction=tuple(data.get("direction", (0.0, 0.0, -1.0))),
            up=tuple(data.get("up", (0.0, 1.0, 0.0))),
            vfov=float(data.get("vfov", 60.0)),
        )


# =============================================================================
# Taichi Fields for Camera State (GPU-accessible)
# =============================================================================

_camera_origin = ti.Vector.field(3, dtype=ti.f32, shape=())
_camera_u = ti.Vector.field(3, dtype=ti.f32, shape=())  # Right
_camera_v = ti.Vector.field(3, dtype=ti.f32, shape=())  # Up
_camera_w = ti.Vector.field(3, dtype=ti.f32, shape=())  # Backward

_viewport_horizontal = ti.Vector.field(3, dtype=ti.f32, shape=())
_viewport_vertical = ti.Vector.field(3, dtype=ti.f32, shape=())
_lower_left_corner = ti.Vector.field(3, dtype=ti.f32, shape=())


def setup_camera(camera: PinholeCamera, aspect_ratio: float) -> None:
    """Initialize camera state for rendering.

    The viewport is a virtual image plane at unit distance in front of the
    camera, sized from the field of view and aspect ratio.

    Args:
        camera: Camera configuration.
        aspect_ratio: Image width divided by height.

    Raises:
        ValueError: If aspect_ratio is not positive.
    """
    if aspect_ratio <= 0.0:
        raise ValueError(f"aspect_ratio must be positive, got {aspect_ratio}")

    theta = math.radians(camera.vfov)
    viewport_height = 2.0 * math.tan(theta / 2.0)
    viewport_width = aspect_ratio * viewport_height

    origin = np.asarray(camera.position, dtype=np.float64)
    u, v, w = camera.basis()

    horizontal = viewport_width * u
    vertical = viewport_height * v
    lower_left = origin - w - horizontal / 2.0 - vertical / 2.0

    _camera_origin[None] = origin.tolist()
    _camera_u[None] = u.tolist()
    _camera_v[None] = v.tolist()
    _camera_w[None] = w.tolist()
    _viewport_horizontal[None] = horizontal.tolist()
    _viewport_vertical[None] = vertical.tolist()
    _lower_left_corner[None] = lower_left.tolist()


# =============================================================================
# Ray Generation (Taichi-compatible, GPU-callable)
# =============================================================================


@ti.func
def get_ray(u: ti.f32, v: ti.f32) -> Ray:
    """Generate a camera ray through normalized image coordinates (u, v).

    Args:
        u: Horizontal coordinate in [0, 1] (left to right).
        v: Vertical coordinate in [0, 1] (bottom to top).

    Returns:
        A Ray from the camera position with a unit direction and the
        primary-ray interval [T_MIN, T_MAX].
    """
    point_on_viewport = (
        _lower_left_corner[None] + u * _viewport_horizontal[None] + v * _viewport_vertical[None]
    )
    origin = _camera_origin[None]
    return make_ray(origin, point_on_viewport - origin, T_MIN, T_MAX)


@ti.func
def get_camera_up() -> vec3:
    """The camera's unit up vector (v axis)."""
    return _camera_v[None]


def get_camera_info() -> dict[str, tuple[float, float, float]]:
    """Current camera state, for debugging and tests."""

    def _tuple(f) -> tuple[float, float, float]:
        vec = f[None]
        return (float(vec[0]), float(vec[1]), float(vec[2]))

    return {
        "origin": _tuple(_camera_origin),
        "u": _tuple(_camera_u),
        "v": _tuple(_camera_v),
        "w": _tuple(_camera_w),
        "horizontal": _tuple(_viewport_horizontal),
        "vertical": _tuple(_viewport_vertical),
        "lower_left": _tuple(_lower_left_corner),
    }
