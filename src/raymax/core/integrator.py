"""Light transport integrators.

Two models compute the radiance arriving along a camera ray:

    - Ray tracing (Whitted): deterministic. Each hit adds emission, direct
      lighting from every explicit light and analytic diffuse lighting from
      every emissive primitive; surfaces with ks > 0 continue along the
      mirror direction with the throughput scaled by ks.
    - Path tracing: Monte Carlo. Each hit adds emission and direct lighting
      from the explicit lights, then picks the diffuse or specular lobe with
      probability proportional to max(kd) and max(ks) and continues along a
      sampled direction. Area lights are found by the sampled bounces.
      Russian roulette terminates paths from ``rr_start_depth`` on.

Both run as loops over at most ``max_depth`` surface interactions with a
running throughput. Rays that escape return the background: a constant
color, or with ``sky`` enabled a white-to-blue gradient by the angle to the
camera's up vector.

Settings live in fields written by ``configure_integrator`` before a render.

Example:
    >>> import raymax
    >>> raymax.init(arch=ti.cpu)
    >>> from raymax.core.integrator import configure_integrator, radiance
    >>> configure_integrator(RenderConfig(integrator=IntegratorType.PATH_TRACE))
    >>> # Inside a kernel:
    >>> # color = radiance(ray.origin, ray.direction)
"""

import taichi as ti
import taichi.math as tm

from raymax.camera.pinhole import get_camera_up
from raymax.core.config import IntegratorType, RenderConfig
from raymax.core.ray import T_MAX, T_MIN, max_component, offset_ray_origin, reflect
from raymax.core.stats import PRIMARY, SECONDARY, count_ray
from raymax.lighting.emitters import emitter_lighting
from raymax.lighting.lights import direct_lighting
from raymax.materials.diffuse import sample_diffuse
from raymax.materials.material import get_surface
from raymax.materials.specular import sample_specular
from raymax.scene.intersection import intersect_scene

vec3 = tm.vec3

# =============================================================================
# Rendering Constants
# =============================================================================

# Russian roulette survival probability cap
MAX_RR_PROBABILITY = 0.95

# Sky gradient endpoints
SKY_ZENITH_COLOR = vec3(1.0, 1.0, 1.0)
SKY_HORIZON_COLOR = vec3(0.4, 0.6, 0.9)

# =============================================================================
# Integrator Settings
# =============================================================================

_integrator_type = ti.field(dtype=ti.i32, shape=())
_max_depth = ti.field(dtype=ti.i32, shape=())
_rr_start_depth = ti.field(dtype=ti.i32, shape=())
_background = ti.Vector.field(3, dtype=ti.f32, shape=())
_sky = ti.field(dtype=ti.i32, shape=())


def configure_integrator(config: RenderConfig) -> None:
    """Copy the integrator options of ``config`` into the settings fields."""
    _integrator_type[None] = int(config.integrator)
    _max_depth[None] = config.max_depth
    _rr_start_depth[None] = config.rr_start_depth
    _background[None] = [float(c) for c in config.background]
    _sky[None] = int(config.sky)


# =============================================================================
# Shared Helpers
# =============================================================================


@ti.func
def background_color(direction: vec3) -> vec3:
    """Radiance of a ray that escapes the scene."""
    result = _background[None]
    if _sky[None] == 1:
        s = ti.abs(tm.dot(tm.normalize(direction), get_camera_up()))
        result = SKY_ZENITH_COLOR * s + SKY_HORIZON_COLOR * (1.0 - s)
    return result


@ti.func
def sanitize_color(color: vec3) -> vec3:
    """Clamp negative channels to zero and replace NaN/Inf with zero."""
    result = tm.max(color, vec3(0.0, 0.0, 0.0))
    for c in ti.static(range(3)):
        if tm.isnan(result[c]) or tm.isinf(result[c]):
            result[c] = 0.0
    return result


@ti.func
def _count_bounce(bounce: ti.i32):
    if bounce == 0:
        count_ray(PRIMARY)
    else:
        count_ray(SECONDARY)


# =============================================================================
# Ray Tracing (Whitted)
# =============================================================================


@ti.func
def ray_trace_radiance(ray_origin: vec3, ray_direction: vec3) -> vec3:
    """Deterministic radiance along a ray.

    Args:
        ray_origin: Origin of the camera ray.
        ray_direction: Unit direction of the camera ray.

    Returns:
        The radiance arriving at the origin (RGB).
    """
    origin = ray_origin
    direction = ray_direction
    radiance = vec3(0.0, 0.0, 0.0)
    throughput = vec3(1.0, 1.0, 1.0)

    # Active flag for path continuation (Taichi doesn't support break in ti.func loops)
    active = 1

    for bounce in range(_max_depth[None]):
        if active == 1:
            _count_bounce(bounce)
            rec = intersect_scene(origin, direction, T_MIN, T_MAX)

            if rec.hit == 0:
                radiance += throughput * background_color(direction)
                active = 0
            else:
                surf = get_surface(rec.material_id, rec.uv)
                local = surf.ke
                local += direct_lighting(rec.point, rec.normal, rec.geo_normal, -direction, surf)
                local += emitter_lighting(rec.point, rec.normal, rec.geo_normal, surf.kd, rec.primitive_id)
                radiance += throughput * local

                active = 0
                if max_component(surf.ks) > 0.0:
                    reflected = tm.normalize(reflect(direction, rec.normal))
                    if tm.dot(reflected, rec.geo_normal) > 0.0:
                        throughput *= surf.ks
                        origin = offset_ray_origin(rec.point, rec.geo_normal, reflected)
                        direction = reflected
                        active = 1

    return radiance


# =============================================================================
# Path Tracing (Monte Carlo)
# =============================================================================


@ti.func
def path_trace_radiance(ray_origin: vec3, ray_direction: vec3) -> vec3:
    """One Monte Carlo estimate of the radiance along a ray.

    Args:
        ray_origin: Origin of the camera ray.
        ray_direction: Unit direction of the camera ray.

    Returns:
        The estimated radiance (RGB).
    """
    origin = ray_origin
    direction = ray_direction
    radiance = vec3(0.0, 0.0, 0.0)

    # Throughput (product of lobe weight / lobe probability along the path)
    throughput = vec3(1.0, 1.0, 1.0)
    active = 1

    for bounce in range(_max_depth[None]):
        if active == 1:
            _count_bounce(bounce)
            rec = intersect_scene(origin, direction, T_MIN, T_MAX)

            if rec.hit == 0:
                radiance += throughput * background_color(direction)
                active = 0
            else:
                surf = get_surface(rec.material_id, rec.uv)
                radiance += throughput * (
                    surf.ke + direct_lighting(rec.point, rec.normal, rec.geo_normal, -direction, surf)
                )

                p_diffuse = max_component(surf.kd)
                p_specular = max_component(surf.ks)
                p_total = p_diffuse + p_specular

                new_direction = vec3(0.0, 0.0, 0.0)
                weight = vec3(0.0, 0.0, 0.0)
                did_scatter = 0
                if p_total > 0.0:
                    if ti.random(ti.f32) * p_total < p_diffuse:
                        new_direction, weight = sample_diffuse(surf.kd, rec.normal)
                        weight *= p_total / p_diffuse
                        did_scatter = 1
                    else:
                        new_direction, weight, did_scatter = sample_specular(
                            surf.ks, surf.shininess, direction, rec.normal
                        )
                        weight *= p_total / p_specular
                    # Samples under the geometric surface carry no light
                    if tm.dot(new_direction, rec.geo_normal) <= 0.0:
                        did_scatter = 0

                if did_scatter == 0:
                    active = 0
                else:
                    throughput *= weight

                    # Russian roulette termination
                    if bounce >= _rr_start_depth[None]:
                        rr_prob = tm.min(max_component(throughput), MAX_RR_PROBABILITY)
                        if rr_prob <= 0.0 or ti.random(ti.f32) > rr_prob:
                            active = 0
                        else:
                            # Compensate for termination probability
                            throughput /= rr_prob

                    if active == 1:
                        origin = offset_ray_origin(rec.point, rec.geo_normal, new_direction)
                        direction = new_direction

    return radiance


@ti.func
def radiance(ray_origin: vec3, ray_direction: vec3) -> vec3:
    """Radiance along a camera ray using the configured integrator."""
    result = vec3(0.0, 0.0, 0.0)
    if _integrator_type[None] == int(IntegratorType.PATH_TRACE):
        result = path_trace_radiance(ray_origin, ray_direction)
    else:
        result = ray_trace_radiance(ray_origin, ray_direction)
    return result
