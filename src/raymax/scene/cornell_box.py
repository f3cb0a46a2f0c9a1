"""Cornell box scene configuration.

The classic Cornell box test scene, built from the renderer's primitives:
- 5 infinite planes forming an open box (left, right, back, floor, ceiling)
- Left wall red, right wall green, back wall, floor and ceiling white
- A diffuse sphere and a mirror sphere on the floor
- A tall box as a rotated triangle mesh
- An emissive ceiling patch made of two triangles (area light)
- A point light below the ceiling and a dim ambient light

The box spans 0 to ``box_size`` on each axis with the camera outside the
open front looking toward +Z:
    - X-axis: left to right
    - Y-axis: floor to ceiling
    - Z-axis: front to back

Example:
    >>> import raymax
    >>> raymax.init(arch=ti.cpu)
    >>> from raymax.scene.cornell_box import create_cornell_box_scene
    >>> scene = create_cornell_box_scene()
    >>> len(scene.emitter_ids)
    2
"""

from dataclasses import dataclass

from raymax.camera.pinhole import PinholeCamera
from raymax.geometry.mesh import make_box
from raymax.scene.scene import Scene, SceneBuilder

# =============================================================================
# Cornell Box Parameters
# =============================================================================


@dataclass(frozen=True)
class CornellBoxParams:
    """Parameters for configuring a Cornell box scene.

    Attributes:
        light_intensity: Emitted radiance of the ceiling patch.
        light_color: RGB color of the ceiling patch and the point light.
        point_light_intensity: Intensity of the point light; 0 disables it.
        left_wall_color: RGB albedo of the left wall.
        right_wall_color: RGB albedo of the right wall.
        back_wall_color: RGB albedo of the back wall, floor and ceiling.

    Example:
        >>> custom = CornellBoxParams(
        ...     light_intensity=20.0,
        ...     light_color=(1.0, 0.9, 0.8),  # Warm light
        ... )
    """

    light_intensity: float = 15.0
    light_color: tuple[float, float, float] = (1.0, 1.0, 1.0)
    point_light_intensity: float = 60000.0
    left_wall_color: tuple[float, float, float] = (0.65, 0.05, 0.05)
    right_wall_color: tuple[float, float, float] = (0.12, 0.45, 0.15)
    back_wall_color: tuple[float, float, float] = (0.73, 0.73, 0.73)


# =============================================================================
# Cornell Box Constants
# =============================================================================

# Classic Cornell box dimensions (approximately 555x555x555 units)
BOX_SIZE = 555.0

# Classic ceiling light is about 130 x 105 units
LIGHT_WIDTH = 130.0
LIGHT_DEPTH = 105.0

DIFFUSE_SPHERE_ALBEDO = (0.73, 0.73, 0.73)
MIRROR_SPHERE_KS = (0.9, 0.9, 0.9)
MIRROR_SPHERE_SHININESS = 1000.0
BLOCK_ALBEDO = (0.73, 0.73, 0.73)

AMBIENT_INTENSITY = 0.02


# =============================================================================
# Cornell Box Factory
# =============================================================================


def create_cornell_box_scene(box_size: float = BOX_SIZE, params: CornellBoxParams | None = None) -> Scene:
    """Create a Cornell box scene.

    Args:
        box_size: The size of the box in each dimension. Lengths and the
            point light intensity scale with it.
        params: Optional light and wall colors. Defaults to
            ``CornellBoxParams()``.

    Returns:
        The built scene, including its camera.
    """
    if params is None:
        params = CornellBoxParams()

    s = box_size / BOX_SIZE
    builder = SceneBuilder()

    # =========================================================================
    # Materials
    # =========================================================================

    red_mat = builder.add_material(kd=params.left_wall_color)
    green_mat = builder.add_material(kd=params.right_wall_color)
    white_mat = builder.add_material(kd=params.back_wall_color)
    light_mat = builder.add_material(ke=tuple(c * params.light_intensity for c in params.light_color))
    diffuse_mat = builder.add_material(kd=DIFFUSE_SPHERE_ALBEDO, ks=(0.1, 0.1, 0.1), shininess=50.0)
    mirror_mat = builder.add_material(ks=MIRROR_SPHERE_KS, shininess=MIRROR_SPHERE_SHININESS)
    block_mat = builder.add_material(kd=BLOCK_ALBEDO)

    # =========================================================================
    # Walls (normals face into the box)
    # =========================================================================

    builder.add_plane(point=(0.0, 0.0, 0.0), normal=(1.0, 0.0, 0.0), material_id=red_mat)
    builder.add_plane(point=(box_size, 0.0, 0.0), normal=(-1.0, 0.0, 0.0), material_id=green_mat)
    builder.add_plane(point=(0.0, 0.0, box_size), normal=(0.0, 0.0, -1.0), material_id=white_mat)
    builder.add_plane(point=(0.0, 0.0, 0.0), normal=(0.0, 1.0, 0.0), material_id=white_mat)
    builder.add_plane(point=(0.0, box_size, 0.0), normal=(0.0, -1.0, 0.0), material_id=white_mat)

    # =========================================================================
    # Area Light (two triangles just below the ceiling, facing down)
    # =========================================================================

    x0 = (box_size - LIGHT_WIDTH * s) / 2.0
    x1 = x0 + LIGHT_WIDTH * s
    z0 = (box_size - LIGHT_DEPTH * s) / 2.0
    z1 = z0 + LIGHT_DEPTH * s
    y = box_size - 1.0 * s
    builder.add_triangle((x0, y, z0), (x1, y, z0), (x1, y, z1), material_id=light_mat)
    builder.add_triangle((x0, y, z0), (x1, y, z1), (x0, y, z1), material_id=light_mat)

    # =========================================================================
    # Spheres and Block
    # =========================================================================

    radius = 80.0 * s
    builder.add_sphere(center=(box_size * 0.27, radius, box_size * 0.3), radius=radius, material_id=diffuse_mat)
    builder.add_sphere(center=(box_size * 0.73, radius, box_size * 0.3), radius=radius, material_id=mirror_mat)

    half = 82.5 * s
    block = make_box((-half, 0.0, -half), (half, 330.0 * s, half)).rotated(ry=15.0)
    builder.add_mesh(block.translated((box_size * 0.35, 0.0, box_size * 0.68)), material_id=block_mat)

    # =========================================================================
    # Lights and Camera
    # =========================================================================

    if params.point_light_intensity > 0.0:
        builder.add_point_light(
            position=(box_size * 0.5, box_size * 0.9, box_size * 0.4),
            color=params.light_color,
            intensity=params.point_light_intensity * s * s,
        )
    builder.add_ambient_light(intensity=AMBIENT_INTENSITY)

    builder.set_camera(
        PinholeCamera(
            position=(box_size / 2.0, box_size / 2.0, -800.0 * s),
            direction=(0.0, 0.0, 1.0),
            up=(0.0, 1.0, 0.0),
            vfov=40.0,
        )
    )
    return builder.build()


def get_cornell_box_bounds(box_size: float = BOX_SIZE) -> tuple[tuple[float, float, float], tuple[float, float, float]]:
    """Interior bounds of the box as (min, max)."""
    return (0.0, 0.0, 0.0), (box_size, box_size, box_size)
