"""Triangle primitive with Moller-Trumbore intersection.

Barycentric coordinates are accepted on the closed interval, so rays through
a shared edge or vertex hit both neighbouring triangles and the scene keeps
whichever was tested first. Degenerate (zero area) triangles have a
near-zero determinant for every ray and therefore never hit.

Example:
    >>> from raymax.geometry.triangle import Triangle, hit_triangle
    >>> tri = Triangle(v0=a, v1=b, v2=c, has_normals=0)
    >>> # Use hit_triangle within a Taichi kernel
"""

import taichi as ti
import taichi.math as tm

from raymax.geometry.hit import HitRecord

vec3 = tm.vec3
vec2 = tm.vec2

# Determinants below this are treated as parallel or degenerate
DET_EPSILON = 1e-8


@ti.dataclass
class Triangle:
    """A triangle with optional per-vertex normals.

    Attributes:
        v0, v1, v2: Vertices. The front face is the counter-clockwise side.
        n0, n1, n2: Vertex normals, used when ``has_normals`` is 1.
        has_normals: 1 to interpolate vertex normals for shading.
    """

    v0: vec3
    v1: vec3
    v2: vec3
    n0: vec3
    n1: vec3
    n2: vec3
    has_normals: ti.i32


@ti.func
def hit_triangle(
    ray_origin: vec3,
    ray_direction: vec3,
    tri: Triangle,
    t_min: ti.f32,
    t_max: ti.f32,
) -> HitRecord:
    """Test for ray-triangle intersection (Moller-Trumbore).

    Args:
        ray_origin: The starting point of the ray.
        ray_direction: The direction vector of the ray.
        tri: The triangle to test.
        t_min: Minimum t value to consider a valid hit.
        t_max: Maximum t value to consider a valid hit.

    Returns:
        A HitRecord whose ``uv`` holds the barycentric coordinates (u, v) of
        v1 and v2; both lie in [0, 1] with u + v <= 1.
    """
    edge1 = tri.v1 - tri.v0
    edge2 = tri.v2 - tri.v0
    pvec = tm.cross(ray_direction, edge2)
    det = tm.dot(edge1, pvec)

    did_hit = 0
    hit_t = 0.0
    hit_point = vec3(0.0, 0.0, 0.0)
    hit_normal = vec3(0.0, 0.0, 0.0)
    hit_geo_normal = vec3(0.0, 0.0, 0.0)
    is_front_face = 0
    hit_uv = vec2(0.0, 0.0)

    if ti.abs(det) > DET_EPSILON:
        inv_det = 1.0 / det
        tvec = ray_origin - tri.v0
        u = tm.dot(tvec, pvec) * inv_det

        if u >= 0.0 and u <= 1.0:
            qvec = tm.cross(tvec, edge1)
            v = tm.dot(ray_direction, qvec) * inv_det

            if v >= 0.0 and u + v <= 1.0:
                t = tm.dot(edge2, qvec) * inv_det

                if t > t_min and t < t_max:
                    did_hit = 1
                    hit_t = t
                    hit_point = ray_origin + t * ray_direction
                    hit_uv = vec2(u, v)

                    geo = tm.normalize(tm.cross(edge1, edge2))
                    shading = geo
                    if tri.has_normals == 1:
                        interpolated = (1.0 - u - v) * tri.n0 + u * tri.n1 + v * tri.n2
                        if tm.dot(interpolated, interpolated) > 1e-12:
                            shading = tm.normalize(interpolated)

                    if tm.dot(ray_direction, geo) > 0.0:
                        is_front_face = 0
                        geo = -geo
                    else:
                        is_front_face = 1

                    # Keep the shading normal on the same side as the geometry
                    if tm.dot(shading, geo) < 0.0:
                        shading = -shading

                    hit_geo_normal = geo
                    hit_normal = shading

    return HitRecord(
        hit=did_hit,
        t=hit_t,
        point=hit_point,
        normal=hit_normal,
        geo_normal=hit_geo_normal,
        front_face=is_front_face,
        uv=hit_uv,
    )
