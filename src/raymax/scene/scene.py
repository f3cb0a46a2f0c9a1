"""Immutable scene container and its builder.

A ``SceneBuilder`` collects materials, primitives, meshes, lights and the
camera, then ``build()`` freezes them into a ``Scene``. A scene never
changes after it is built, so the renderer's worker threads share it
without locking.

Device storage holds one scene at a time. ``upload_scene`` copies a scene
into the material, primitive, mesh, light and emitter fields; uploading the
scene that is already resident is a no-op.

Example:
    >>> import raymax
    >>> raymax.init(arch=ti.cpu)
    >>> from raymax.scene.scene import SceneBuilder
    >>> builder = SceneBuilder()
    >>> red = builder.add_material(kd=(0.8, 0.1, 0.1))
    >>> builder.add_sphere(center=(0, 0, -5), radius=1.0, material_id=red)
    >>> builder.add_point_light(position=(0, 5, -5), intensity=25.0)
    >>> scene = builder.build()
    >>> scene.intersect((0, 0, 0), (0, 0, -1)).t
    4.0
"""

import logging
from dataclasses import dataclass, field
from typing import Any

import numpy as np

from raymax.camera.pinhole import PinholeCamera
from raymax.core.ray import T_MAX
from raymax.core.runtime import KERNEL_LOCK, RENDER_LOCK
from raymax.geometry.mesh import Mesh
from raymax.lighting.emitters import MAX_EMITTERS, clear_emitters, upload_emitters
from raymax.lighting.lights import (
    AmbientLight,
    DirectionalLight,
    Light,
    PointLight,
    clear_lights,
    light_from_dict,
    light_to_dict,
    upload_lights,
)
from raymax.materials.material import Material, clear_materials, upload_materials
from raymax.scene.intersection import (
    HitInfo,
    clear_scene,
    query_closest_hit,
    query_visible,
    upload_meshes,
    upload_primitives,
)
from raymax.scene.primitives import (
    PlaneInfo,
    Primitive,
    SphereInfo,
    TriangleInfo,
    primitive_from_dict,
)

logger = logging.getLogger(__name__)

Vector3 = tuple[float, float, float]
Color = tuple[float, float, float]


@dataclass(frozen=True, eq=False)
class MeshInstance:
    """A mesh placed in the scene with a single material."""

    mesh: Mesh
    material_id: int = 0

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "v0": self.mesh.v0.tolist(),
            "v1": self.mesh.v1.tolist(),
            "v2": self.mesh.v2.tolist(),
            "material": self.material_id,
            "leaf_size": self.mesh.leaf_size,
            "method": self.mesh.method,
        }
        if self.mesh.has_normals:
            data["normals"] = [self.mesh.n0.tolist(), self.mesh.n1.tolist(), self.mesh.n2.tolist()]
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "MeshInstance":
        normals = data.get("normals") or (None, None, None)
        mesh = Mesh.from_triangles(
            data["v0"],
            data["v1"],
            data["v2"],
            *normals,
            leaf_size=int(data.get("leaf_size", 4)),
            method=data.get("method", "sah"),
        )
        return cls(mesh, int(data.get("material", 0)))


# =============================================================================
# Scene
# =============================================================================


@dataclass(frozen=True, eq=False)
class Scene:
    """Read-only description of everything a render needs.

    Every primitive and mesh must reference an entry of ``materials``.

    Attributes:
        camera: The viewpoint.
        materials: Material table; primitives and meshes index into it.
        lights: Explicit light sources.
        primitives: Top-level planes, spheres and triangles.
        meshes: Triangle meshes with their materials.

    Raises:
        ValueError: If a primitive or mesh references a missing material.
    """

    camera: PinholeCamera = field(default_factory=PinholeCamera)
    materials: tuple[Material, ...] = ()
    lights: tuple[Light, ...] = ()
    primitives: tuple[Primitive, ...] = ()
    meshes: tuple[MeshInstance, ...] = ()

    def __post_init__(self) -> None:
        count = len(self.materials)
        for i, prim in enumerate(self.primitives):
            if not 0 <= prim.material_id < count:
                raise ValueError(f"Primitive {i} has invalid material_id: {prim.material_id}")
        for i, instance in enumerate(self.meshes):
            if not 0 <= instance.material_id < count:
                raise ValueError(f"Mesh {i} has invalid material_id: {instance.material_id}")

    @property
    def emitter_ids(self) -> tuple[int, ...]:
        """Indices of top-level primitives with an emissive material."""
        return tuple(
            i for i, prim in enumerate(self.primitives) if self.materials[prim.material_id].is_emissive
        )

    @property
    def triangle_count(self) -> int:
        """Mesh triangles plus top-level triangles."""
        tris = sum(isinstance(p, TriangleInfo) for p in self.primitives)
        return tris + sum(m.mesh.triangle_count for m in self.meshes)

    def intersect(
        self,
        origin: Vector3,
        direction: Vector3,
        t_min: float = 1e-4,
        t_max: float = T_MAX,
        accelerate: bool = True,
    ) -> HitInfo | None:
        """Find the closest surface along a ray.

        Args:
            origin: Ray origin.
            direction: Ray direction; normalized before tracing, so ``t`` is
                a distance.
            t_min: Hits closer than this are ignored.
            t_max: Hits farther than this are ignored.
            accelerate: Traverse mesh BVHs (True) or test every triangle.

        Returns:
            The closest hit, or None when the ray escapes.
        """
        with RENDER_LOCK, KERNEL_LOCK:
            upload_scene(self)
            return query_closest_hit(origin, direction, t_min, t_max, accelerate)

    def visible(self, a: Vector3, b: Vector3) -> bool:
        """True if nothing blocks the segment between two points."""
        with RENDER_LOCK, KERNEL_LOCK:
            upload_scene(self)
            return query_visible(a, b)

    def to_dict(self) -> dict[str, Any]:
        return {
            "camera": self.camera.to_dict(),
            "materials": [m.to_dict() for m in self.materials],
            "lights": [light_to_dict(light) for light in self.lights],
            "primitives": [p.to_dict() for p in self.primitives],
            "meshes": [m.to_dict() for m in self.meshes],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Scene":
        return SceneBuilder.from_dict(data).build()


# =============================================================================
# Scene Builder
# =============================================================================


class SceneBuilder:
    """Accumulates scene contents and produces an immutable ``Scene``.

    Every ``add_*`` method returns the index of the new entry. Geometry must
    reference a material that was added before it.

    Example:
        >>> builder = SceneBuilder()
        >>> white = builder.add_material(kd=(0.73, 0.73, 0.73))
        >>> builder.add_plane(point=(0, 0, 0), normal=(0, 1, 0), material_id=white)
        0
        >>> scene = builder.build()
    """

    def __init__(self) -> None:
        self.camera = PinholeCamera()
        self.materials: list[Material] = []
        self.lights: list[Light] = []
        self.primitives: list[Primitive] = []
        self.meshes: list[MeshInstance] = []

    def _check_material(self, material_id: int) -> None:
        if not 0 <= material_id < len(self.materials):
            raise ValueError(f"Invalid material_id: {material_id}")

    # =========================================================================
    # Materials
    # =========================================================================

    def add_material(
        self,
        kd: Color = (0.0, 0.0, 0.0),
        ks: Color = (0.0, 0.0, 0.0),
        ke: Color = (0.0, 0.0, 0.0),
        shininess: float = 0.0,
        checkered: bool = False,
    ) -> int:
        """Add a material.

        Returns:
            The material id.

        Raises:
            ValueError: If a color component or the shininess is negative.
        """
        return self.add_material_object(Material(kd, ks, ke, shininess, checkered))

    def add_material_object(self, material: Material) -> int:
        self.materials.append(material)
        return len(self.materials) - 1

    # =========================================================================
    # Geometry
    # =========================================================================

    def _add_primitive(self, primitive: Primitive) -> int:
        self._check_material(primitive.material_id)
        self.primitives.append(primitive)
        return len(self.primitives) - 1

    def add_plane(self, point: Vector3, normal: Vector3, material_id: int) -> int:
        """Add an infinite plane.

        Raises:
            ValueError: If the normal is zero or material_id is invalid.
        """
        return self._add_primitive(PlaneInfo(point, normal, material_id))

    def add_sphere(self, center: Vector3, radius: float, material_id: int) -> int:
        """Add a sphere.

        Raises:
            ValueError: If the radius is negative or material_id is invalid.
        """
        return self._add_primitive(SphereInfo(center, radius, material_id))

    def add_triangle(
        self,
        v0: Vector3,
        v1: Vector3,
        v2: Vector3,
        material_id: int,
        normals: tuple[Vector3, Vector3, Vector3] | None = None,
    ) -> int:
        """Add a single triangle, optionally with vertex normals.

        Raises:
            ValueError: If material_id is invalid.
        """
        if normals is None:
            return self._add_primitive(TriangleInfo(v0, v1, v2, material_id))
        n0, n1, n2 = normals
        return self._add_primitive(TriangleInfo(v0, v1, v2, material_id, n0, n1, n2))

    def add_mesh(self, mesh: Mesh, material_id: int) -> int:
        """Add a triangle mesh with one material.

        Raises:
            ValueError: If material_id is invalid.
        """
        self._check_material(material_id)
        self.meshes.append(MeshInstance(mesh, material_id))
        return len(self.meshes) - 1

    # =========================================================================
    # Lights and Camera
    # =========================================================================

    def add_light(self, light: Light) -> int:
        self.lights.append(light)
        return len(self.lights) - 1

    def add_point_light(self, position: Vector3, color: Color = (1.0, 1.0, 1.0), intensity: float = 1.0) -> int:
        return self.add_light(PointLight(tuple(position), tuple(color), intensity))

    def add_directional_light(
        self, direction: Vector3, color: Color = (1.0, 1.0, 1.0), intensity: float = 1.0
    ) -> int:
        return self.add_light(DirectionalLight(tuple(direction), tuple(color), intensity))

    def add_ambient_light(self, color: Color = (1.0, 1.0, 1.0), intensity: float = 0.1) -> int:
        return self.add_light(AmbientLight(tuple(color), intensity))

    def set_camera(self, camera: PinholeCamera) -> None:
        self.camera = camera

    # =========================================================================
    # Build and Serialization
    # =========================================================================

    def build(self) -> Scene:
        """Freeze the current contents into a ``Scene``.

        The builder can keep being used; later additions do not affect
        scenes already built.
        """
        scene = Scene(
            camera=self.camera,
            materials=tuple(self.materials),
            lights=tuple(self.lights),
            primitives=tuple(self.primitives),
            meshes=tuple(self.meshes),
        )
        logger.debug(
            "Built scene: %d materials, %d primitives, %d meshes, %d lights",
            len(scene.materials),
            len(scene.primitives),
            len(scene.meshes),
            len(scene.lights),
        )
        return scene

    def to_dict(self) -> dict[str, Any]:
        return self.build().to_dict()

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "SceneBuilder":
        """Create a builder from a plain-dict scene description.

        The layout matches ``Scene.to_dict``: ``camera``, ``materials``,
        ``lights``, ``primitives`` and ``meshes`` keys, all optional.

        Raises:
            ValueError: If an entry is malformed or references an unknown
                material.
        """
        builder = cls()
        if "camera" in data:
            builder.set_camera(PinholeCamera.from_dict(data["camera"]))
        for m in data.get("materials", []):
            builder.add_material_object(Material.from_dict(m))
        for light in data.get("lights", []):
            builder.add_light(light_from_dict(light))
        for p in data.get("primitives", []):
            builder._add_primitive(primitive_from_dict(p))
        for m in data.get("meshes", []):
            instance = MeshInstance.from_dict(m)
            builder.add_mesh(instance.mesh, instance.material_id)
        return builder


# =============================================================================
# Device Upload
# =============================================================================

_resident_scene: Scene | None = None


def upload_scene(scene: Scene) -> None:
    """Make ``scene`` the scene that kernels trace against.

    Does nothing when ``scene`` is already resident. Callers outside a
    render hold ``RENDER_LOCK`` so a running render keeps its scene.

    Raises:
        RuntimeError: If the scene exceeds a device storage capacity.
    """
    global _resident_scene

    with KERNEL_LOCK:
        if scene is _resident_scene:
            return
        emitters = scene.emitter_ids
        if len(emitters) > MAX_EMITTERS:
            raise RuntimeError(f"Maximum number of emissive primitives ({MAX_EMITTERS}) exceeded: {len(emitters)}")

        # Forget the old scene first so a failed upload is retried
        _resident_scene = None
        upload_materials(scene.materials)
        upload_primitives([p.to_record() for p in scene.primitives])
        upload_meshes([(m.mesh, m.material_id) for m in scene.meshes])
        upload_lights(scene.lights)
        upload_emitters(emitters)
        _resident_scene = scene

    logger.debug(
        "Uploaded scene: %d primitives, %d meshes (%d triangles), %d lights, %d emitters",
        len(scene.primitives),
        len(scene.meshes),
        int(np.sum([m.mesh.triangle_count for m in scene.meshes])),
        len(scene.lights),
        len(emitters),
    )


def clear_device_scene() -> None:
    """Empty all device scene storage."""
    global _resident_scene

    with RENDER_LOCK, KERNEL_LOCK:
        clear_materials()
        clear_scene()
        clear_lights()
        clear_emitters()
        _resident_scene = None
