"""Diffuse (Lambertian) reflection.

The diffuse BRDF is kd / pi. With cosine-weighted hemisphere sampling the
cosine and pdf cancel, so a sampled bounce is weighted by kd alone:

    weight = (kd / pi) * cos(theta) / (cos(theta) / pi) = kd
"""

import taichi as ti
import taichi.math as tm

from raymax.core.ray import near_zero, sample_cosine_hemisphere

vec3 = tm.vec3


@ti.func
def sample_diffuse(kd: vec3, normal: vec3):
    """Sample a diffuse bounce.

    Args:
        kd: Diffuse reflectance.
        normal: Unit shading normal on the side of the incoming ray.

    Returns:
        A tuple (direction, weight) with weight = kd.
    """
    direction, _ = sample_cosine_hemisphere(normal)
    if near_zero(direction):
        direction = normal
    return tm.normalize(direction), kd
