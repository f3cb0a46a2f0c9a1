"""Taichi-based ray tracer and path tracer.

This package renders images of 3D scenes by tracing rays from a pinhole
camera, with support for:
- Deterministic Whitted-style ray tracing (shadows, Phong highlights, mirrors)
- Monte Carlo path tracing with Russian roulette termination
- Planes, spheres, triangles and BVH-accelerated triangle meshes
- Point, directional, ambient and emissive area lights
- Tiled multi-threaded rendering with cancellation and progress reporting

Subpackages:
    core: Runtime setup, configuration, integrators, sampler and scheduler
    geometry: Shape primitives, bounding boxes, BVH construction and meshes
    materials: Diffuse/specular material model
    lighting: Light sources and emissive primitive sampling
    camera: Pinhole camera model
    scene: Immutable scene container, builder and device-side intersection
    preview: Tone mapping and PNG export

Taichi must be initialized (see ``raymax.init``) before importing modules
that declare fields, i.e. everything except ``raymax.core.config`` and
``raymax.geometry.bvh``.
"""

from raymax.core.runtime import init

__version__ = "0.1.0"

__all__ = ["init"]
