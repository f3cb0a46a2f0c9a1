"""Per-pixel sampling and the partition render kernel.

Stratified mode averages ``samples_per_pixel`` radiance samples:
    - 1 sample: the ray goes through the pixel center.
    - N samples: the first k*k samples (k = floor(sqrt(N))) are jittered
      within the cells of a k x k grid over the pixel; the remaining
      N - k*k samples are jittered uniformly over the whole pixel.

Jitter comes from a hash of (pixel, sample index, seed), so a pixel's
camera rays do not depend on which thread or partition renders it.

Adaptive mode traces the four corners of the pixel box. When any two
corner colors are further apart than ``adaptive_threshold`` (Euclidean RGB
distance) and the box is above ``adaptive_max_depth``, the box is split
into four quarters that are sampled the same way; otherwise its color is
the mean of its corners. A pixel is the area-weighted sum of its leaf
boxes. The quadtree is walked in Morton order with a (level, index) pair
so no recursion is needed on the device.

Pixel (px, py) covers image coordinates u in [px, px + 1] / width and
v in [1 - (py + 1) / height, 1 - py / height]; row 0 is the top row.
"""

import numpy as np
import numpy.typing as npt
import taichi as ti
import taichi.math as tm

from raymax.camera.pinhole import get_ray
from raymax.core.config import RenderConfig, SamplingMode
from raymax.core.integrator import radiance, sanitize_color
from raymax.core.ray import hash_uniform2
from raymax.core.runtime import KERNEL_LOCK

vec3 = tm.vec3
vec2 = tm.vec2
ivec2 = tm.ivec2

_image_width = ti.field(dtype=ti.i32, shape=())
_image_height = ti.field(dtype=ti.i32, shape=())
_samples_per_pixel = ti.field(dtype=ti.i32, shape=())
_seed = ti.field(dtype=ti.i32, shape=())
_sampling = ti.field(dtype=ti.i32, shape=())
_adaptive_max_depth = ti.field(dtype=ti.i32, shape=())
_adaptive_threshold = ti.field(dtype=ti.f32, shape=())


def configure_sampler(config: RenderConfig) -> None:
    """Copy image size, sampling options and seed into the sampler fields."""
    _image_width[None] = config.image_width
    _image_height[None] = config.image_height
    _samples_per_pixel[None] = config.samples_per_pixel
    _seed[None] = config.seed
    _sampling[None] = int(config.sampling)
    _adaptive_max_depth[None] = config.adaptive_max_depth
    _adaptive_threshold[None] = config.adaptive_threshold


@ti.func
def trace_at(px: ti.i32, py: ti.i32, offset: vec2) -> vec3:
    """Radiance of the camera ray through ``offset`` within pixel (px, py)."""
    u = (ti.cast(px, ti.f32) + offset.x) / ti.cast(_image_width[None], ti.f32)
    v = 1.0 - (ti.cast(py, ti.f32) + offset.y) / ti.cast(_image_height[None], ti.f32)
    ray = get_ray(u, v)
    return sanitize_color(radiance(ray.origin, ray.direction))


# =============================================================================
# Stratified Sampling
# =============================================================================


@ti.func
def strata_per_axis(spp: ti.i32) -> ti.i32:
    """Largest k with k * k <= spp."""
    k = ti.cast(ti.floor(ti.sqrt(ti.cast(spp, ti.f32))), ti.i32)
    # Guard against float rounding on both sides
    if (k + 1) * (k + 1) <= spp:
        k += 1
    if k * k > spp:
        k -= 1
    return k


@ti.func
def sample_offset(px: ti.i32, py: ti.i32, s: ti.i32, spp: ti.i32, k: ti.i32) -> vec2:
    """Offset of sample ``s`` within pixel (px, py), in [0, 1)^2."""
    offset = vec2(0.5, 0.5)
    if spp > 1:
        jitter = hash_uniform2(px, py, s, _seed[None])
        if s < k * k:
            cell = vec2(ti.cast(s % k, ti.f32), ti.cast(s // k, ti.f32))
            offset = (cell + jitter) / ti.cast(k, ti.f32)
        else:
            offset = jitter
    return offset


@ti.func
def sample_pixel(px: ti.i32, py: ti.i32) -> vec3:
    """Average radiance of all samples of pixel (px, py).

    Args:
        px: Column, 0 at the left.
        py: Row, 0 at the top.

    Returns:
        The pixel color (linear RGB, non-negative and finite).
    """
    spp = _samples_per_pixel[None]
    k = strata_per_axis(spp)

    total = vec3(0.0, 0.0, 0.0)
    for s in range(spp):
        total += trace_at(px, py, sample_offset(px, py, s, spp, k))
    return total / ti.cast(spp, ti.f32)


# =============================================================================
# Adaptive Sampling
# =============================================================================


@ti.func
def morton_cell(index: ti.i32, level: ti.i32) -> ivec2:
    """Cell (x, y) of Morton ``index`` on a 2^level x 2^level grid."""
    ix = 0
    iy = 0
    for b in range(level):
        ix = ix | (((index >> (2 * b)) & 1) << b)
        iy = iy | (((index >> (2 * b + 1)) & 1) << b)
    return ivec2(ix, iy)


@ti.func
def corner_spread(c00: vec3, c10: vec3, c01: vec3, c11: vec3) -> ti.f32:
    """Largest RGB distance between any two of the four corner colors."""
    spread = tm.length(c00 - c10)
    spread = ti.max(spread, tm.length(c00 - c01))
    spread = ti.max(spread, tm.length(c00 - c11))
    spread = ti.max(spread, tm.length(c10 - c01))
    spread = ti.max(spread, tm.length(c10 - c11))
    spread = ti.max(spread, tm.length(c01 - c11))
    return spread


@ti.func
def adaptive_pixel(px: ti.i32, py: ti.i32) -> vec3:
    """Color of pixel (px, py) by recursive corner subdivision.

    Traces exactly four rays when the corners agree; at most
    4 * (4^(d+1) - 1) / 3 rays for ``adaptive_max_depth`` d.
    """
    max_level = _adaptive_max_depth[None]
    threshold = _adaptive_threshold[None]

    total = vec3(0.0, 0.0, 0.0)
    level = 0
    index = 0
    done = 0
    while done == 0:
        cell = morton_cell(index, level)
        size = 1.0 / ti.cast(1 << level, ti.f32)
        corner = vec2(ti.cast(cell.x, ti.f32), ti.cast(cell.y, ti.f32)) * size
        c00 = trace_at(px, py, corner)
        c10 = trace_at(px, py, corner + vec2(size, 0.0))
        c01 = trace_at(px, py, corner + vec2(0.0, size))
        c11 = trace_at(px, py, corner + vec2(size, size))

        if level < max_level and corner_spread(c00, c10, c01, c11) > threshold:
            # Descend into the first quarter of this box
            level += 1
            index *= 4
        else:
            total += 0.25 * (c00 + c10 + c01 + c11) * size * size
            # Climb past boxes whose last quarter is done
            while level > 0 and index % 4 == 3:
                index = index // 4
                level -= 1
            if level == 0:
                done = 1
            else:
                index += 1
    return total


# =============================================================================
# Partition Kernel
# =============================================================================


@ti.kernel
def _render_tile(x0: ti.i32, y0: ti.i32, out: ti.types.ndarray(dtype=ti.f32, ndim=3)):
    """Render the pixels of a partition into ``out`` of shape (h, w, 3)."""
    for j, i in ti.ndrange(out.shape[0], out.shape[1]):
        color = vec3(0.0, 0.0, 0.0)
        if _sampling[None] == int(SamplingMode.ADAPTIVE):
            color = adaptive_pixel(x0 + i, y0 + j)
        else:
            color = sample_pixel(x0 + i, y0 + j)
        for c in ti.static(range(3)):
            out[j, i, c] = color[c]


def render_partition(x0: int, y0: int, width: int, height: int) -> npt.NDArray[np.float32]:
    """Render a rectangle of pixels.

    The scene, camera, integrator and sampler must already be configured.

    Args:
        x0: Left column of the rectangle.
        y0: Top row of the rectangle.
        width: Number of columns.
        height: Number of rows.

    Returns:
        Pixel colors of shape (height, width, 3), row 0 at the top.
    """
    out = np.zeros((height, width, 3), dtype=np.float32)
    with KERNEL_LOCK:
        _render_tile(x0, y0, out)
    return out
