"""Taichi runtime setup shared by every raymax module.

Taichi runs a single program per process. Module-level fields are declared
when a module is first imported, so ``init`` must run before importing
anything that declares fields.

The scene, camera and sampler settings live in those process-wide fields,
so only one render may use them at a time: ``RENDER_LOCK`` is held by
``Renderer.render`` for the whole render and by the Python-scope scene
queries. Within a render, kernel launches from the worker threads are
serialized through ``KERNEL_LOCK``. The worker count therefore decides how
partitions are claimed and reported, not how much runs at once; compute
parallelism comes from Taichi running each partition kernel in parallel
over its pixels.

Example:
    >>> import raymax
    >>> raymax.init(arch=ti.cpu)
    >>> from raymax.core.scheduler import Renderer
"""

import logging
import threading

import taichi as ti

logger = logging.getLogger(__name__)

# Guards every kernel launch and every write to module-level fields
KERNEL_LOCK = threading.RLock()

# Held for a whole render; one scene is resident on the device at a time
RENDER_LOCK = threading.RLock()

_initialized = False


def init(arch=None, seed: int = 0, **kwargs) -> None:
    """Initialize the Taichi runtime for rendering.

    Args:
        arch: Taichi backend (``ti.cpu``, ``ti.gpu``, ...). Defaults to
            ``ti.gpu``, which falls back to the CPU when no GPU is present.
        seed: Seed for Taichi's per-thread random generators (path tracing).
        **kwargs: Extra options forwarded to ``ti.init``.
    """
    global _initialized

    if arch is None:
        arch = ti.gpu
    kwargs.setdefault("fast_math", False)
    kwargs.setdefault("default_fp", ti.f32)

    with KERNEL_LOCK:
        ti.init(arch=arch, random_seed=seed, **kwargs)
        _initialized = True
    logger.info("Taichi initialized (arch=%s, seed=%d)", arch, seed)


def is_initialized() -> bool:
    """Return True once ``init`` has been called in this process."""
    return _initialized
