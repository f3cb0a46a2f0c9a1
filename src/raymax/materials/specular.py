"""Phong specular reflection.

Two pieces are provided:
    - ``phong_highlight``: the view-dependent highlight term for a light
      direction, ks * max(0, r . v)^shininess with r the mirrored light
      direction. Both integrators use it for direct lighting.
    - ``sample_specular``: the path tracer's specular bounce. Directions are
      drawn from a cos^shininess lobe around the mirror direction; the
      sample is weighted by ks and discarded when it falls below the surface.

A shininess of 0 makes the highlight uniform and the lobe a uniform
hemisphere; large values approach a perfect mirror.
"""

import taichi as ti
import taichi.math as tm

from raymax.core.ray import build_onb_from_normal, local_to_world, reflect

vec3 = tm.vec3


@ti.func
def phong_highlight(ks: vec3, shininess: ti.f32, normal: vec3, to_light: vec3, to_viewer: vec3) -> vec3:
    """Phong highlight factor for one light direction.

    Args:
        ks: Specular reflectance.
        shininess: Phong exponent.
        normal: Unit shading normal.
        to_light: Unit direction from the surface toward the light.
        to_viewer: Unit direction from the surface toward the viewer.

    Returns:
        ks * max(0, dot(reflect(-to_light, normal), to_viewer))^shininess.
    """
    result = vec3(0.0, 0.0, 0.0)
    if ks.x > 0.0 or ks.y > 0.0 or ks.z > 0.0:
        r = reflect(-to_light, normal)
        cos_alpha = tm.dot(r, to_viewer)
        if cos_alpha > 0.0:
            result = ks * tm.pow(cos_alpha, shininess)
    return result


@ti.func
def sample_phong_lobe(axis: vec3, shininess: ti.f32) -> vec3:
    """Sample a direction with density proportional to cos^shininess about ``axis``."""
    r1 = ti.random(ti.f32)
    r2 = ti.random(ti.f32)
    cos_alpha = tm.pow(r1, 1.0 / (shininess + 1.0))
    sin_alpha = ti.sqrt(tm.max(0.0, 1.0 - cos_alpha * cos_alpha))
    phi = 2.0 * tm.pi * r2
    local_dir = vec3(ti.cos(phi) * sin_alpha, ti.sin(phi) * sin_alpha, cos_alpha)
    tangent, bitangent, n = build_onb_from_normal(axis)
    return tm.normalize(local_to_world(local_dir, tangent, bitangent, n))


@ti.func
def sample_specular(ks: vec3, shininess: ti.f32, incident_direction: vec3, normal: vec3):
    """Sample a specular bounce about the mirror direction.

    Args:
        ks: Specular reflectance.
        shininess: Phong exponent.
        incident_direction: Unit direction of the incoming ray.
        normal: Unit shading normal on the side of the incoming ray.

    Returns:
        A tuple (direction, weight, did_scatter); did_scatter is 0 when the
        sample points below the surface.
    """
    mirror = tm.normalize(reflect(incident_direction, normal))
    direction = sample_phong_lobe(mirror, shininess)
    did_scatter = 0
    weight = vec3(0.0, 0.0, 0.0)
    if tm.dot(direction, normal) > 0.0:
        did_scatter = 1
        weight = ks
    return direction, weight, did_scatter
