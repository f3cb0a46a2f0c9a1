"""Core rendering module.

Components:
    ray: Ray data structure, orthonormal bases and sampling helpers
    runtime: Taichi initialization, the kernel launch lock and the render lock
    config: Render configuration and validation
    integrator: Whitted ray tracing and Monte Carlo path tracing
    sampler: Stratified and adaptive per-pixel sampling and the tile kernel
    stats: Ray and intersection counters
    framebuffer: Output image with per-pixel write tracking
    scheduler: Partitioned multi-threaded render driver

Only the field-free modules are imported here. Import ``integrator``,
``sampler``, ``stats`` and ``scheduler`` directly after ``raymax.init()``.
"""

from .config import ConfigurationError, IntegratorType, PartitionMode, RenderConfig, SamplingMode
from .runtime import KERNEL_LOCK, RENDER_LOCK, init

__all__ = [
    "ConfigurationError",
    "IntegratorType",
    "PartitionMode",
    "RenderConfig",
    "SamplingMode",
    "KERNEL_LOCK",
    "RENDER_LOCK",
    "init",
]
