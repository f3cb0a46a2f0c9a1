"""Random sphere scene generator.

Produces a reproducible scene of randomly placed spheres in front of a
z-up camera, optionally enclosed by five planes. Ten materials are shared
by the spheres: white, glossy white, red, green, blue and five random
glossy materials, some of them checkered.

Example:
    >>> scene = generate_random_scene(num_spheres=50, seed=7, add_box=True)
    >>> len(scene.primitives)
    55
"""

import logging

import numpy as np

from raymax.camera.pinhole import PinholeCamera
from raymax.scene.scene import Scene, SceneBuilder

logger = logging.getLogger(__name__)

NUM_MATERIALS = 10

# Region the sphere centers are drawn from: x in [2, 5), y and z in [-2, 2)
SPHERE_REGION_MIN = (2.0, -2.0, -2.0)
SPHERE_REGION_MAX = (5.0, 2.0, 2.0)
SPHERE_RADIUS_RANGE = (0.2, 0.4)


def generate_random_scene(num_spheres: int = 100, seed: int | None = None, add_box: bool = False) -> Scene:
    """Generate a random sphere scene.

    Args:
        num_spheres: Number of spheres to place.
        seed: Seed for the random generator; None draws fresh entropy.
        add_box: Enclose the spheres with floor, ceiling, side and front
            planes.

    Returns:
        The built scene.

    Raises:
        ValueError: If num_spheres is negative.
    """
    if num_spheres < 0:
        raise ValueError(f"num_spheres must be non-negative, got {num_spheres}")

    rng = np.random.default_rng(seed)
    builder = SceneBuilder()
    logger.info("Generating scene with %d spheres and %d materials", num_spheres, NUM_MATERIALS)

    builder.add_point_light(position=(0.5, 2.5, 1.0), color=(1.0, 1.0, 1.0), intensity=5.0)
    builder.add_point_light(position=(0.5, -2.0, 0.0), color=(0.8, 0.3, 0.8), intensity=5.0)
    builder.add_ambient_light(color=(1.0, 1.0, 1.0), intensity=0.1)

    white = builder.add_material(kd=(1.0, 1.0, 1.0), shininess=10.0)
    glossy = builder.add_material(kd=(1.0, 1.0, 1.0), ks=(0.5, 0.5, 0.5), shininess=10.0)
    red = builder.add_material(kd=(1.0, 0.0, 0.0), shininess=10.0)
    green = builder.add_material(kd=(0.0, 1.0, 0.0), shininess=10.0)
    builder.add_material(kd=(0.0, 0.0, 1.0), shininess=10.0)
    for _ in range(NUM_MATERIALS - 5):
        builder.add_material(
            kd=tuple(rng.uniform(0.0, 1.0, 3)),
            ks=tuple(rng.uniform(0.0, 0.9, 3)),
            shininess=10.0,
            checkered=bool(rng.integers(0, 2) == 0),
        )

    builder.set_camera(
        PinholeCamera.look_at(
            lookfrom=(-3.0, 0.0, 0.0),
            lookat=(2.0, 0.0, 0.5),
            vup=(0.0, 0.0, 1.0),
            vfov=55.0,
        )
    )

    if add_box:
        builder.add_plane(point=(0.0, 0.0, -1.0), normal=(0.0, 0.0, 1.0), material_id=glossy)  # bottom
        builder.add_plane(point=(0.0, 0.0, 3.0), normal=(0.0, 0.0, -1.0), material_id=white)  # top
        builder.add_plane(point=(0.0, -3.0, 0.0), normal=(0.0, 1.0, 0.0), material_id=green)  # right
        builder.add_plane(point=(0.0, 3.0, 3.0), normal=(0.0, -1.0, 0.0), material_id=red)  # left
        builder.add_plane(point=(4.5, 0.0, 0.0), normal=(-1.0, 0.0, 0.0), material_id=white)  # front

    centers = rng.uniform(SPHERE_REGION_MIN, SPHERE_REGION_MAX, size=(num_spheres, 3))
    radii = rng.uniform(*SPHERE_RADIUS_RANGE, size=num_spheres)
    material_ids = rng.integers(0, NUM_MATERIALS, size=num_spheres)
    for center, radius, material_id in zip(centers, radii, material_ids):
        builder.add_sphere(center=tuple(center), radius=float(radius), material_id=int(material_id))

    return builder.build()
