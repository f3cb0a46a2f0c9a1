"""Sphere primitive with robust ray-sphere intersection.

The intersection uses the robust quadratic formula from Ray Tracing Gems to
avoid catastrophic cancellation when b^2 is nearly equal to 4ac.

Example:
    >>> from raymax.geometry.sphere import Sphere, hit_sphere
    >>> sphere = Sphere(center=vec3(0, 0, -5), radius=1.0)
    >>> # Use hit_sphere within a Taichi kernel
"""

import taichi as ti
import taichi.math as tm

from raymax.geometry.hit import HitRecord

vec3 = tm.vec3
vec2 = tm.vec2


@ti.dataclass
class Sphere:
    """A sphere defined by center point and radius.

    Attributes:
        center: The center point of the sphere (vec3).
        radius: The radius of the sphere. Zero or negative radii never hit.
    """

    center: vec3
    radius: ti.f32


@ti.func
def _solve_quadratic_robust(h: ti.f32, a: ti.f32, c: ti.f32, sqrt_d: ti.f32):
    """Solve a*t^2 + 2*h*t + c = 0 with a numerically stable formula.

    Args:
        h: Half of the linear coefficient.
        a: Quadratic coefficient.
        c: Constant term.
        sqrt_d: Square root of the discriminant (h^2 - a*c).

    Returns:
        Tuple of (t0, t1) where t0 <= t1.
    """
    sign_h = ti.select(h < 0.0, -1.0, 1.0)
    q = -(h + sign_h * sqrt_d)

    t0 = 0.0
    t1 = 0.0

    if ti.abs(q) < 1e-10:
        # Tangent ray, fall back to the textbook formula
        t0 = (-h - sqrt_d) / a
        t1 = (-h + sqrt_d) / a
    else:
        t0 = q / a
        t1 = c / q

    if t0 > t1:
        temp = t0
        t0 = t1
        t1 = temp

    return t0, t1


@ti.func
def sphere_uv(outward_normal: vec3) -> vec2:
    """Spherical texture coordinates of a point given its outward normal.

    Returns:
        (u, v) in [0, 1]: u around the y-axis, v from the bottom pole.
    """
    u = (ti.atan2(-outward_normal.z, outward_normal.x) + tm.pi) / (2.0 * tm.pi)
    v = ti.acos(tm.clamp(-outward_normal.y, -1.0, 1.0)) / tm.pi
    return vec2(u, v)


@ti.func
def hit_sphere(
    ray_origin: vec3,
    ray_direction: vec3,
    sphere: Sphere,
    t_min: ti.f32,
    t_max: ti.f32,
) -> HitRecord:
    """Test for ray-sphere intersection using the robust quadratic formula.

    The intersection is found by solving
        |ray_origin + t * ray_direction - center|^2 = radius^2
    written as a*t^2 + 2*h*t + c = 0 with
        a = dot(direction, direction)
        h = dot(direction, origin - center)
        c = dot(origin - center, origin - center) - radius^2

    The smaller root in (t_min, t_max) is taken, else the larger one.

    Args:
        ray_origin: The starting point of the ray.
        ray_direction: The direction vector of the ray.
        sphere: The sphere to test intersection against.
        t_min: Minimum t value to consider a valid hit.
        t_max: Maximum t value to consider a valid hit.

    Returns:
        A HitRecord. The normal is normalize(point - center) for hits from
        outside and its negation for hits from inside.
    """
    oc = ray_origin - sphere.center

    a = tm.dot(ray_direction, ray_direction)
    h = tm.dot(ray_direction, oc)
    c = tm.dot(oc, oc) - sphere.radius * sphere.radius

    discriminant = h * h - a * c

    # Taichi requires outer-scope declaration
    did_hit = 0
    hit_t = 0.0
    hit_point = vec3(0.0, 0.0, 0.0)
    hit_normal = vec3(0.0, 0.0, 0.0)
    is_front_face = 0
    hit_uv = vec2(0.0, 0.0)

    if sphere.radius > 0.0 and discriminant >= 0.0:
        sqrt_d = ti.sqrt(discriminant)
        t0, t1 = _solve_quadratic_robust(h, a, c, sqrt_d)

        t = t0
        valid = (t > t_min) and (t < t_max)

        if not valid:
            t = t1
            valid = (t > t_min) and (t < t_max)

        if valid:
            did_hit = 1
            hit_t = t
            hit_point = ray_origin + t * ray_direction

            outward_normal = tm.normalize(hit_point - sphere.center)
            hit_uv = sphere_uv(outward_normal)

            if tm.dot(ray_direction, outward_normal) > 0.0:
                is_front_face = 0
                hit_normal = -outward_normal
            else:
                is_front_face = 1
                hit_normal = outward_normal

    return HitRecord(
        hit=did_hit,
        t=hit_t,
        point=hit_point,
        normal=hit_normal,
        geo_normal=hit_normal,
        front_face=is_front_face,
        uv=hit_uv,
    )
