"""Infinite plane primitive with ray-plane intersection.

A plane is defined by a point on it and its unit normal. The texture
coordinates of a hit are its offsets along a tangent frame built from the
normal, so checkered materials tile the plane with unit-sized periods.

Example:
    >>> from raymax.geometry.plane import Plane, hit_plane
    >>> floor = Plane(point=vec3(0, 0, 0), normal=vec3(0, 1, 0))
    >>> # Use hit_plane within a Taichi kernel
"""

import taichi as ti
import taichi.math as tm

from raymax.core.ray import build_onb_from_normal
from raymax.geometry.hit import HitRecord

vec3 = tm.vec3
vec2 = tm.vec2

# Rays closer than this to parallel with the plane never hit it
PARALLEL_EPSILON = 1e-8


@ti.dataclass
class Plane:
    """An infinite plane.

    Attributes:
        point: Any point on the plane (vec3).
        normal: Unit normal of the plane (vec3). Its side is the front face.
    """

    point: vec3
    normal: vec3


@ti.func
def hit_plane(
    ray_origin: vec3,
    ray_direction: vec3,
    plane: Plane,
    t_min: ti.f32,
    t_max: ti.f32,
) -> HitRecord:
    """Test for ray-plane intersection.

    Solves dot(normal, origin + t * direction - point) = 0 for t.

    Args:
        ray_origin: The starting point of the ray.
        ray_direction: The direction vector of the ray.
        plane: The plane to test.
        t_min: Minimum t value to consider a valid hit.
        t_max: Maximum t value to consider a valid hit.

    Returns:
        A HitRecord; ``hit`` is 0 for parallel rays and out-of-range hits.
    """
    denom = tm.dot(plane.normal, ray_direction)

    did_hit = 0
    hit_t = 0.0
    hit_point = vec3(0.0, 0.0, 0.0)
    hit_normal = vec3(0.0, 0.0, 0.0)
    is_front_face = 0
    hit_uv = vec2(0.0, 0.0)

    if ti.abs(denom) > PARALLEL_EPSILON:
        t = tm.dot(plane.point - ray_origin, plane.normal) / denom

        if t > t_min and t < t_max:
            did_hit = 1
            hit_t = t
            hit_point = ray_origin + t * ray_direction

            if denom > 0.0:
                is_front_face = 0
                hit_normal = -plane.normal
            else:
                is_front_face = 1
                hit_normal = plane.normal

            tangent, bitangent, _ = build_onb_from_normal(plane.normal)
            offset = hit_point - plane.point
            hit_uv = vec2(tm.dot(offset, tangent), tm.dot(offset, bitangent))

    return HitRecord(
        hit=did_hit,
        t=hit_t,
        point=hit_point,
        normal=hit_normal,
        geo_normal=hit_normal,
        front_face=is_front_face,
        uv=hit_uv,
    )
