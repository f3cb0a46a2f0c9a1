"""Ray and intersection counters collected during a render.

Kernels bump the counters with ``count_ray`` and ``count_test``; the
scheduler resets them before a render and reads them into a
``RenderStats`` afterwards.
"""

from dataclasses import dataclass

import taichi as ti

PRIMARY = 0
SECONDARY = 1
SHADOW = 2
SPHERE_TESTS = 3
PLANE_TESTS = 4
TRIANGLE_TESTS = 5
AABB_TESTS = 6
_NUM_COUNTERS = 7

_counts = ti.field(dtype=ti.i64, shape=_NUM_COUNTERS)


@dataclass(frozen=True)
class RenderStats:
    """Summary of one render.

    Attributes:
        primary_rays: Camera rays traced.
        secondary_rays: Reflection and bounce rays traced.
        shadow_rays: Visibility rays toward lights and emitters.
        sphere_tests: Ray-sphere intersection tests.
        plane_tests: Ray-plane intersection tests.
        triangle_tests: Ray-triangle tests, top-level and mesh triangles.
        aabb_tests: Ray-box tests while walking mesh BVHs.
        elapsed_seconds: Wall-clock duration of the render.
    """

    primary_rays: int = 0
    secondary_rays: int = 0
    shadow_rays: int = 0
    sphere_tests: int = 0
    plane_tests: int = 0
    triangle_tests: int = 0
    aabb_tests: int = 0
    elapsed_seconds: float = 0.0

    @property
    def total_rays(self) -> int:
        return self.primary_rays + self.secondary_rays + self.shadow_rays

    @property
    def total_tests(self) -> int:
        return self.sphere_tests + self.plane_tests + self.triangle_tests + self.aabb_tests

    @property
    def rays_per_second(self) -> float:
        if self.elapsed_seconds <= 0.0:
            return 0.0
        return self.total_rays / self.elapsed_seconds


@ti.func
def count_ray(kind: ti.template()):
    ti.atomic_add(_counts[kind], 1)


@ti.func
def count_test(kind: ti.template()):
    """Record one intersection test of the given kind (e.g. SPHERE_TESTS)."""
    ti.atomic_add(_counts[kind], 1)


def reset_counters() -> None:
    _counts.fill(0)


def read_counters(elapsed_seconds: float) -> RenderStats:
    counts = _counts.to_numpy()
    return RenderStats(
        primary_rays=int(counts[PRIMARY]),
        secondary_rays=int(counts[SECONDARY]),
        shadow_rays=int(counts[SHADOW]),
        sphere_tests=int(counts[SPHERE_TESTS]),
        plane_tests=int(counts[PLANE_TESTS]),
        triangle_tests=int(counts[TRIANGLE_TESTS]),
        aabb_tests=int(counts[AABB_TESTS]),
        elapsed_seconds=elapsed_seconds,
    )
