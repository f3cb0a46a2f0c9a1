"""Light sources and direct lighting.

Three explicit light kinds are supported:
    - PointLight: radiates from a position with inverse-square falloff and
      casts shadows.
    - DirectionalLight: parallel light from a direction, no falloff, casts
      shadows.
    - AmbientLight: constant kd-weighted term, unshadowed.

Intensity convention: a white diffuse surface facing a point light of
intensity I at distance d reflects radiance I / d^2, i.e. the diffuse
response is kd * I * cos(theta) / d^2. Both integrators call
``direct_lighting`` with this convention, so their direct illumination
agrees exactly.

Emissive primitives are area lights and are handled by
``raymax.lighting.emitters``.
"""

import math
from collections.abc import Sequence
from dataclasses import dataclass
from enum import IntEnum
from typing import Any

import numpy as np
import taichi as ti
import taichi.math as tm

from raymax.core.ray import T_MAX, offset_ray_origin
from raymax.materials.material import SurfaceInfo
from raymax.materials.specular import phong_highlight
from raymax.scene.intersection import SHADOW_EPSILON, occluded, visible

vec3 = tm.vec3

Color = tuple[float, float, float]
Vector3 = tuple[float, float, float]


class LightKind(IntEnum):
    """Tag of an explicit light source."""

    POINT = 0
    DIRECTIONAL = 1
    AMBIENT = 2


def _check_light(color: Sequence[float], intensity: float) -> None:
    if len(color) != 3 or any(not math.isfinite(c) or c < 0.0 for c in color):
        raise ValueError(f"Light color must be three non-negative finite values, got {tuple(color)}")
    if not math.isfinite(intensity) or intensity < 0.0:
        raise ValueError(f"Light intensity must be non-negative, got {intensity}")


@dataclass(frozen=True)
class PointLight:
    """A point light.

    Attributes:
        position: World-space position.
        color: Light color (R, G, B).
        intensity: Scalar multiplier of the color.
    """

    position: Vector3
    color: Color = (1.0, 1.0, 1.0)
    intensity: float = 1.0

    kind = LightKind.POINT

    def __post_init__(self) -> None:
        _check_light(self.color, self.intensity)


@dataclass(frozen=True)
class DirectionalLight:
    """A directional light.

    Attributes:
        direction: Direction the light travels in (from the light toward the
            scene). Need not be normalized but must be non-zero.
        color: Light color (R, G, B).
        intensity: Scalar multiplier of the color.
    """

    direction: Vector3
    color: Color = (1.0, 1.0, 1.0)
    intensity: float = 1.0

    kind = LightKind.DIRECTIONAL

    def __post_init__(self) -> None:
        _check_light(self.color, self.intensity)
        if math.sqrt(sum(c * c for c in self.direction)) < 1e-12:
            raise ValueError("DirectionalLight direction must be non-zero")


@dataclass(frozen=True)
class AmbientLight:
    """Uniform ambient light.

    Attributes:
        color: Light color (R, G, B).
        intensity: Scalar multiplier of the color.
    """

    color: Color = (1.0, 1.0, 1.0)
    intensity: float = 0.1

    kind = LightKind.AMBIENT

    def __post_init__(self) -> None:
        _check_light(self.color, self.intensity)


Light = PointLight | DirectionalLight | AmbientLight


def light_to_dict(light: Light) -> dict[str, Any]:
    data: dict[str, Any] = {"kind": light.kind.name.lower(), "color": list(light.color), "intensity": light.intensity}
    if isinstance(light, PointLight):
        data["position"] = list(light.position)
    elif isinstance(light, DirectionalLight):
        data["direction"] = list(light.direction)
    return data


def light_from_dict(data: dict[str, Any]) -> Light:
    """Build a light from ``light_to_dict`` output.

    Raises:
        ValueError: If the kind is unknown.
    """
    kind = str(data.get("kind", "point")).lower()
    color = tuple(data.get("color", (1.0, 1.0, 1.0)))
    if kind == "point":
        return PointLight(tuple(data["position"]), color, float(data.get("intensity", 1.0)))
    if kind == "directional":
        return DirectionalLight(tuple(data["direction"]), color, float(data.get("intensity", 1.0)))
    if kind == "ambient":
        return AmbientLight(color, float(data.get("intensity", 0.1)))
    raise ValueError(f"Unknown light kind: {kind!r}")


# =============================================================================
# Light Field Storage
# =============================================================================

MAX_LIGHTS = 64

light_kinds = ti.field(dtype=ti.i32, shape=MAX_LIGHTS)
# Position for point lights, unit travel direction for directional lights
light_vectors = ti.Vector.field(3, dtype=ti.f32, shape=MAX_LIGHTS)
# color * intensity
light_radiance = ti.Vector.field(3, dtype=ti.f32, shape=MAX_LIGHTS)
num_lights = ti.field(dtype=ti.i32, shape=())


def clear_lights() -> None:
    num_lights[None] = 0


def upload_lights(lights: Sequence[Light]) -> None:
    """Replace the device light table.

    Raises:
        RuntimeError: If more than MAX_LIGHTS lights are given.
    """
    count = len(lights)
    if count > MAX_LIGHTS:
        raise RuntimeError(f"Maximum number of lights ({MAX_LIGHTS}) exceeded: {count}")

    kinds = np.zeros(MAX_LIGHTS, dtype=np.int32)
    vectors = np.zeros((MAX_LIGHTS, 3), dtype=np.float32)
    radiance = np.zeros((MAX_LIGHTS, 3), dtype=np.float32)
    for i, light in enumerate(lights):
        kinds[i] = int(light.kind)
        radiance[i] = np.asarray(light.color, dtype=np.float64) * light.intensity
        if isinstance(light, PointLight):
            vectors[i] = light.position
        elif isinstance(light, DirectionalLight):
            d = np.asarray(light.direction, dtype=np.float64)
            vectors[i] = d / np.linalg.norm(d)

    light_kinds.from_numpy(kinds)
    light_vectors.from_numpy(vectors)
    light_radiance.from_numpy(radiance)
    num_lights[None] = count


# =============================================================================
# Direct Lighting
# =============================================================================


@ti.func
def sample_light(i: ti.i32, point: vec3):
    """Direction, distance and arriving irradiance color of light ``i``.

    Returns:
        A tuple (to_light, distance, irradiance). For ambient lights
        to_light is zero and irradiance is the unattenuated radiance.
    """
    kind = light_kinds[i]
    to_light = vec3(0.0, 0.0, 0.0)
    distance = T_MAX
    irradiance = light_radiance[i]
    if kind == int(LightKind.POINT):
        d = light_vectors[i] - point
        distance = tm.length(d)
        if distance > 1e-6:
            to_light = d / distance
            irradiance = irradiance / (distance * distance)
        else:
            irradiance = vec3(0.0, 0.0, 0.0)
    elif kind == int(LightKind.DIRECTIONAL):
        to_light = -light_vectors[i]
    return to_light, distance, irradiance


@ti.func
def direct_lighting(point: vec3, normal: vec3, geo_normal: vec3, to_viewer: vec3, surf: SurfaceInfo) -> vec3:
    """Reflected radiance due to all explicit lights.

    For ambient lights adds kd * L. For point and directional lights adds
    L * (kd * cos(theta) + phong highlight) when the light is above the
    surface and not occluded.

    Args:
        point: Surface point.
        normal: Unit shading normal facing the viewer.
        geo_normal: Unit geometric normal facing the viewer.
        to_viewer: Unit direction from the point toward the viewer.
        surf: Resolved material at the point.

    Returns:
        The reflected radiance toward the viewer.
    """
    result = vec3(0.0, 0.0, 0.0)
    for i in range(num_lights[None]):
        kind = light_kinds[i]
        if kind == int(LightKind.AMBIENT):
            result += surf.kd * light_radiance[i]
        else:
            to_light, distance, irradiance = sample_light(i, point)
            cos_theta = tm.dot(normal, to_light)
            if cos_theta > 0.0 and tm.dot(geo_normal, to_light) > 0.0:
                origin = offset_ray_origin(point, geo_normal, to_light)
                unblocked = 0
                if kind == int(LightKind.POINT):
                    unblocked = visible(origin, light_vectors[i])
                else:
                    unblocked = 1 - occluded(origin, to_light, SHADOW_EPSILON, T_MAX)
                if unblocked == 1:
                    highlight = phong_highlight(surf.ks, surf.shininess, normal, to_light, to_viewer)
                    result += irradiance * (surf.kd * cos_theta + highlight)
    return result
