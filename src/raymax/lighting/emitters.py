"""Emissive primitives as area lights for the ray tracer.

Any top-level primitive whose material has ke > 0 is indexed here when the
scene is uploaded. The deterministic integrator lights a diffuse point with
each emitter analytically:

    L_reflected = kd * ke * F

where F is the emitter's projected solid angle seen from the point divided
by pi (1 for an emitter covering the whole hemisphere):

    - infinite plane: F = (1 + cos(theta)) / 2, theta between the normal and
      the direction toward the plane; one shadow ray along the
      perpendicular to the plane.
    - sphere: F = sin^2(alpha) * max(0, cos(theta)), alpha the half-angle of
      the sphere's cone; one shadow ray toward the nearest sphere point.
    - triangle: Lambert's polygon formula,
      F = (1 / 2pi) * sum_i beta_i * dot(n, gamma_i), clamped at 0; one
      shadow ray toward the centroid.

The path tracer needs none of this: it collects emission when a sampled
bounce hits an emitter.
"""

from collections.abc import Sequence

import numpy as np
import taichi as ti
import taichi.math as tm

from raymax.core.ray import offset_ray_origin
from raymax.materials.material import material_ke
from raymax.scene.intersection import (
    PrimitiveKind,
    prim_a,
    prim_b,
    prim_c,
    prim_kinds,
    prim_material_ids,
    visible,
)

vec3 = tm.vec3

MAX_EMITTERS = 64

emitter_primitives = ti.field(dtype=ti.i32, shape=MAX_EMITTERS)
num_emitters = ti.field(dtype=ti.i32, shape=())


def clear_emitters() -> None:
    num_emitters[None] = 0


def upload_emitters(primitive_ids: Sequence[int]) -> None:
    """Replace the list of emissive top-level primitives.

    Raises:
        RuntimeError: If more than MAX_EMITTERS emitters are given.
    """
    count = len(primitive_ids)
    if count > MAX_EMITTERS:
        raise RuntimeError(f"Maximum number of emissive primitives ({MAX_EMITTERS}) exceeded: {count}")
    ids = np.full(MAX_EMITTERS, -1, dtype=np.int32)
    ids[:count] = primitive_ids
    emitter_primitives.from_numpy(ids)
    num_emitters[None] = count


@ti.func
def _plane_factor(point: vec3, normal: vec3, geo_normal: vec3, plane_point: vec3, plane_normal: vec3) -> ti.f32:
    side = tm.dot(point - plane_point, plane_normal)
    factor = 0.0
    if ti.abs(side) > 1e-6:
        toward = -plane_normal
        if side < 0.0:
            toward = plane_normal
        # Shadow ray to the foot of the perpendicular on the plane
        target = point + ti.abs(side) * toward
        origin = offset_ray_origin(point, geo_normal, toward)
        if visible(origin, target) == 1:
            factor = 0.5 * (1.0 + tm.dot(normal, toward))
    return factor


@ti.func
def _sphere_factor(point: vec3, normal: vec3, geo_normal: vec3, center: vec3, radius: ti.f32) -> ti.f32:
    d = center - point
    dist = tm.length(d)
    factor = 0.0
    if dist > radius and radius > 0.0:
        axis = d / dist
        cos_theta = tm.dot(normal, axis)
        if cos_theta > 0.0:
            sin_alpha = radius / dist
            target = center - radius * axis
            origin = offset_ray_origin(point, geo_normal, axis)
            if visible(origin, target) == 1:
                factor = sin_alpha * sin_alpha * cos_theta
    return factor


@ti.func
def _edge_term(r0: vec3, r1: vec3, normal: vec3) -> ti.f32:
    """beta * dot(n, gamma) for one spherical polygon edge."""
    beta = ti.acos(tm.clamp(tm.dot(r0, r1), -1.0, 1.0))
    c = tm.cross(r0, r1)
    c_len = tm.length(c)
    term = 0.0
    if c_len > 1e-12:
        term = beta * tm.dot(normal, c / c_len)
    return term


@ti.func
def _triangle_factor(point: vec3, normal: vec3, geo_normal: vec3, v0: vec3, v1: vec3, v2: vec3) -> ti.f32:
    tri_normal = tm.cross(v1 - v0, v2 - v0)
    side = tm.dot(tri_normal, point - v0)
    factor = 0.0
    d0 = v0 - point
    d1 = v1 - point
    d2 = v2 - point
    l0 = tm.length(d0)
    l1 = tm.length(d1)
    l2 = tm.length(d2)
    if ti.abs(side) > 1e-12 and l0 > 1e-6 and l1 > 1e-6 and l2 > 1e-6:
        r0 = d0 / l0
        r1 = d1 / l1
        r2 = d2 / l2
        total = _edge_term(r0, r1, normal) + _edge_term(r1, r2, normal) + _edge_term(r2, r0, normal)
        # Winding seen from the point flips with the side it is on
        signed = -total
        if side < 0.0:
            signed = total
        f = signed / (2.0 * tm.pi)
        if f > 0.0:
            centroid = (v0 + v1 + v2) / 3.0
            to_centroid = tm.normalize(centroid - point)
            origin = offset_ray_origin(point, geo_normal, to_centroid)
            if visible(origin, centroid) == 1:
                factor = f
    return factor


@ti.func
def emitter_factor(e: ti.i32, point: vec3, normal: vec3, geo_normal: vec3) -> ti.f32:
    """Projected solid angle over pi of emitter ``e`` as seen from a point."""
    p = emitter_primitives[e]
    kind = prim_kinds[p]
    factor = 0.0
    if kind == int(PrimitiveKind.PLANE):
        factor = _plane_factor(point, normal, geo_normal, prim_a[p], prim_b[p])
    elif kind == int(PrimitiveKind.SPHERE):
        factor = _sphere_factor(point, normal, geo_normal, prim_a[p], prim_b[p].x)
    else:
        factor = _triangle_factor(point, normal, geo_normal, prim_a[p], prim_b[p], prim_c[p])
    return factor


@ti.func
def emitter_lighting(point: vec3, normal: vec3, geo_normal: vec3, kd: vec3, self_primitive: ti.i32) -> vec3:
    """Diffuse radiance reflected from all emitters except ``self_primitive``.

    Args:
        point: Surface point.
        normal: Unit shading normal facing the viewer.
        geo_normal: Unit geometric normal facing the viewer.
        kd: Diffuse reflectance at the point.
        self_primitive: Primitive the point lies on, -1 for mesh surfaces.

    Returns:
        sum over emitters of kd * ke * F.
    """
    result = vec3(0.0, 0.0, 0.0)
    if kd.x > 0.0 or kd.y > 0.0 or kd.z > 0.0:
        for e in range(num_emitters[None]):
            p = emitter_primitives[e]
            if p != self_primitive:
                ke = material_ke[prim_material_ids[p]]
                result += kd * ke * emitter_factor(e, point, normal, geo_normal)
    return result
