"""Axis-aligned bounding box utilities.

``hit_aabb`` is the slab test used by BVH traversal. It works with a
precomputed safe reciprocal direction that never contains infinities, so
axis-parallel rays produce large finite slab distances instead of NaNs.
"""

import numpy as np
import numpy.typing as npt
import taichi as ti
import taichi.math as tm

vec3 = tm.vec3

# Direction components smaller than this are clamped before inversion
INV_DIR_EPSILON = 1e-12


@ti.func
def safe_inverse(direction: vec3) -> vec3:
    """Component-wise 1 / direction with near-zero components clamped."""
    inv = vec3(0.0, 0.0, 0.0)
    for k in ti.static(range(3)):
        d = direction[k]
        if ti.abs(d) < INV_DIR_EPSILON:
            d = ti.select(d < 0.0, -INV_DIR_EPSILON, INV_DIR_EPSILON)
        inv[k] = 1.0 / d
    return inv


@ti.func
def hit_aabb(
    ray_origin: vec3,
    inv_direction: vec3,
    box_min: vec3,
    box_max: vec3,
    t_min: ti.f32,
    t_max: ti.f32,
):
    """Slab test of a ray against a box.

    Args:
        ray_origin: The starting point of the ray.
        inv_direction: Result of ``safe_inverse`` on the ray direction.
        box_min: Lower corner of the box.
        box_max: Upper corner of the box.
        t_min: Start of the ray interval.
        t_max: End of the ray interval; pass the closest hit so far to prune
            boxes that lie entirely behind it.

    Returns:
        A tuple (hit, t_enter): hit is 1 if the ray interval overlaps the box.
    """
    t0 = (box_min - ray_origin) * inv_direction
    t1 = (box_max - ray_origin) * inv_direction
    t_small = tm.min(t0, t1)
    t_big = tm.max(t0, t1)

    t_enter = tm.max(tm.max(t_small.x, t_small.y), tm.max(t_small.z, t_min))
    t_exit = tm.min(tm.min(t_big.x, t_big.y), tm.min(t_big.z, t_max))

    hit = 0
    if t_enter <= t_exit:
        hit = 1
    return hit, t_enter


def bounds_of_points(points: npt.ArrayLike) -> tuple[tuple[float, float, float], tuple[float, float, float]]:
    """Bounding box of a point set as ((min), (max)) tuples.

    Raises:
        ValueError: If ``points`` is empty.
    """
    p = np.asarray(points, dtype=np.float64).reshape(-1, 3)
    if p.shape[0] == 0:
        raise ValueError("Cannot compute the bounds of an empty point set")
    lo = p.min(axis=0)
    hi = p.max(axis=0)
    return (float(lo[0]), float(lo[1]), float(lo[2])), (float(hi[0]), float(hi[1]), float(hi[2]))
