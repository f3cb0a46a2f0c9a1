"""Ray data structure, ray helpers and sampling helpers.

This module provides the Ray dataclass, reflection and offset helpers
used by the intersection and shading code, a counter-based hash for reproducible
sub-pixel jitter, and cosine-weighted hemisphere sampling for the path
tracer. All operations are Taichi functions for use inside kernels.

Example:
    >>> import raymax
    >>> raymax.init(arch=ti.cpu)
    >>> from raymax.core.ray import Ray, make_ray, vec3
    >>> # Inside a kernel:
    >>> # ray = make_ray(vec3(0, 0, 0), vec3(0, 0, -1), T_MIN, T_MAX)
"""

import taichi as ti
import taichi.math as tm

# Type alias for 3D vectors using Taichi's math module
vec3 = tm.vec3
vec2 = tm.vec2

# =============================================================================
# Ray Constants
# =============================================================================

# Offset applied to secondary ray origins to avoid self-intersection
RAY_EPSILON = 1e-4

# Valid parametric range for camera and secondary rays
T_MIN = 1e-4
T_MAX = 1e10


@ti.dataclass
class Ray:
    """A ray with origin, direction and valid parametric interval.

    Attributes:
        origin: The starting point of the ray (vec3).
        direction: The unit direction of the ray (vec3).
        t_min: Hits closer than this are ignored.
        t_max: Hits farther than this are ignored.
    """

    origin: vec3
    direction: vec3
    t_min: ti.f32
    t_max: ti.f32


@ti.func
def make_ray(origin: vec3, direction: vec3, t_min: ti.f32, t_max: ti.f32) -> Ray:
    """Create a ray with a normalized direction."""
    return Ray(origin=origin, direction=tm.normalize(direction), t_min=t_min, t_max=t_max)


@ti.func
def offset_ray_origin(point: vec3, geo_normal: vec3, direction: vec3) -> vec3:
    """Offset a ray origin to avoid self-intersection.

    Pushes the point along the geometric normal, toward the side the new
    ray travels into.

    Args:
        point: The surface point.
        geo_normal: The geometric surface normal.
        direction: The direction of the ray leaving the surface.

    Returns:
        The offset origin.
    """
    offset_dir = geo_normal
    if tm.dot(direction, geo_normal) < 0.0:
        offset_dir = -geo_normal
    return point + RAY_EPSILON * offset_dir


@ti.func
def reflect(incident: vec3, normal: vec3) -> vec3:
    """Reflect an incident vector about a normal.

    Args:
        incident: The incoming direction (pointing toward the surface).
        normal: The unit surface normal.

    Returns:
        The mirror direction.
    """
    return incident - 2.0 * tm.dot(incident, normal) * normal


@ti.func
def max_component(v: vec3) -> ti.f32:
    """Largest of the three components."""
    return tm.max(v.x, tm.max(v.y, v.z))


@ti.func
def near_zero(v: vec3) -> ti.i32:
    """Return 1 if all components are within 1e-8 of zero."""
    s = 1e-8
    return ti.abs(v.x) < s and ti.abs(v.y) < s and ti.abs(v.z) < s


# =============================================================================
# Counter-Based Random Numbers
# =============================================================================


@ti.func
def hash_u32(x: ti.u32) -> ti.u32:
    """Wang integer hash."""
    h = (x ^ ti.u32(61)) ^ (x >> ti.u32(16))
    h = h * ti.u32(9)
    h = h ^ (h >> ti.u32(4))
    h = h * ti.u32(668265261)
    h = h ^ (h >> ti.u32(15))
    return h


@ti.func
def hash_combine(a: ti.i32, b: ti.i32, c: ti.i32, d: ti.i32) -> ti.u32:
    """Hash four integers into one 32-bit value."""
    h = hash_u32(ti.cast(d, ti.u32))
    h = hash_u32(h + ti.cast(c, ti.u32))
    h = hash_u32(h + ti.cast(b, ti.u32))
    h = hash_u32(h + ti.cast(a, ti.u32))
    return h


@ti.func
def hash_to_unit(h: ti.u32) -> ti.f32:
    """Map a hash to a float in [0, 1) using its low 24 bits."""
    return ti.cast(h & ti.u32(16777215), ti.f32) / 16777216.0


@ti.func
def hash_uniform2(px: ti.i32, py: ti.i32, sample: ti.i32, seed: ti.i32) -> vec2:
    """Two reproducible uniform numbers in [0, 1) for a pixel sample.

    The result depends only on the arguments, so renders are identical no
    matter which thread or partition evaluates the pixel.
    """
    h0 = hash_combine(px, py, sample, seed)
    h1 = hash_u32(h0 + ti.u32(1013904223))
    return vec2(hash_to_unit(h0), hash_to_unit(h1))


# =============================================================================
# Random Sampling Utilities for Monte Carlo
# =============================================================================


@ti.func
def random_cosine_direction() -> vec3:
    """Generate a random direction with cosine-weighted distribution.

    The distribution has PDF = cos(theta) / pi.

    Returns:
        A random direction in the local coordinate frame (z-up).
    """
    r1 = ti.random(ti.f32)
    r2 = ti.random(ti.f32)
    phi = 2.0 * tm.pi * r1
    sqrt_r2 = ti.sqrt(r2)
    x = ti.cos(phi) * sqrt_r2
    y = ti.sin(phi) * sqrt_r2
    z = ti.sqrt(1.0 - r2)
    return vec3(x, y, z)


@ti.func
def build_onb_from_normal(normal: vec3):
    """Build an orthonormal basis with the normal as the z-axis.

    Args:
        normal: The unit normal.

    Returns:
        A tuple (tangent, bitangent, normal).
    """
    a = vec3(1.0, 0.0, 0.0)
    if ti.abs(normal.x) > 0.9:
        a = vec3(0.0, 1.0, 0.0)
    tangent = tm.normalize(tm.cross(a, normal))
    bitangent = tm.cross(normal, tangent)
    return tangent, bitangent, normal


@ti.func
def local_to_world(local_dir: vec3, tangent: vec3, bitangent: vec3, normal: vec3) -> vec3:
    """Transform a direction from a local z-up frame to world coordinates."""
    return local_dir.x * tangent + local_dir.y * bitangent + local_dir.z * normal


@ti.func
def sample_cosine_hemisphere(normal: vec3):
    """Cosine-weighted hemisphere sampling for diffuse surfaces.

    Args:
        normal: The surface normal defining the hemisphere orientation.

    Returns:
        A tuple of (direction, pdf) with pdf = cos(theta) / pi.
    """
    local_dir = random_cosine_direction()
    tangent, bitangent, n = build_onb_from_normal(normal)
    world_dir = local_to_world(local_dir, tangent, bitangent, n)
    pdf = tm.dot(world_dir, normal) / tm.pi
    return world_dir, pdf
