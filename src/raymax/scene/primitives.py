"""Top-level scene primitives.

Planes, spheres and single triangles are described by small frozen
dataclasses. Each references a material by its index in the scene's material
table and converts itself into the flat ``PrimitiveRecord`` that
``upload_primitives`` stores on the device.

This module declares no Taichi fields.
"""

import math
from dataclasses import dataclass
from typing import Any

import numpy as np

from raymax.scene.intersection import PrimitiveKind, PrimitiveRecord

Vector3 = tuple[float, float, float]


def _vector(name: str, value: Any) -> Vector3:
    values = tuple(float(c) for c in value)
    if len(values) != 3 or not all(math.isfinite(c) for c in values):
        raise ValueError(f"{name} must be three finite floats, got {value!r}")
    return values


def _unit(name: str, value: Any) -> Vector3:
    v = np.asarray(_vector(name, value), dtype=np.float64)
    norm = np.linalg.norm(v)
    if norm < 1e-12:
        raise ValueError(f"{name} must be non-zero")
    return tuple(float(c) for c in v / norm)


@dataclass(frozen=True)
class PlaneInfo:
    """Infinite plane through ``point`` with unit ``normal``."""

    point: Vector3
    normal: Vector3
    material_id: int = 0

    kind = PrimitiveKind.PLANE

    def __post_init__(self) -> None:
        object.__setattr__(self, "point", _vector("point", self.point))
        object.__setattr__(self, "normal", _unit("normal", self.normal))

    def to_record(self) -> PrimitiveRecord:
        return PrimitiveRecord(self.kind, self.material_id, self.point, self.normal)

    def to_dict(self) -> dict[str, Any]:
        return {"type": "plane", "point": list(self.point), "normal": list(self.normal), "material": self.material_id}


@dataclass(frozen=True)
class SphereInfo:
    """Sphere with ``center`` and ``radius``.

    A radius of zero is accepted and never hit.
    """

    center: Vector3
    radius: float
    material_id: int = 0

    kind = PrimitiveKind.SPHERE

    def __post_init__(self) -> None:
        object.__setattr__(self, "center", _vector("center", self.center))
        if not math.isfinite(self.radius) or self.radius < 0.0:
            raise ValueError(f"radius must be finite and non-negative, got {self.radius}")
        object.__setattr__(self, "radius", float(self.radius))

    def to_record(self) -> PrimitiveRecord:
        return PrimitiveRecord(self.kind, self.material_id, self.center, (self.radius, 0.0, 0.0))

    def to_dict(self) -> dict[str, Any]:
        return {"type": "sphere", "center": list(self.center), "radius": self.radius, "material": self.material_id}


@dataclass(frozen=True)
class TriangleInfo:
    """A single triangle with optional per-vertex normals.

    The front face is the side the counter-clockwise winding
    (v0, v1, v2) faces.
    """

    v0: Vector3
    v1: Vector3
    v2: Vector3
    material_id: int = 0
    n0: Vector3 | None = None
    n1: Vector3 | None = None
    n2: Vector3 | None = None

    kind = PrimitiveKind.TRIANGLE

    def __post_init__(self) -> None:
        for name in ("v0", "v1", "v2"):
            object.__setattr__(self, name, _vector(name, getattr(self, name)))
        normals = (self.n0, self.n1, self.n2)
        given = [n is not None for n in normals]
        if any(given) and not all(given):
            raise ValueError("Vertex normals must be given for all three vertices or none")
        if all(given):
            for name in ("n0", "n1", "n2"):
                object.__setattr__(self, name, _unit(name, getattr(self, name)))

    @property
    def has_normals(self) -> bool:
        return self.n0 is not None

    def to_record(self) -> PrimitiveRecord:
        return PrimitiveRecord(
            self.kind, self.material_id, self.v0, self.v1, self.v2, self.n0, self.n1, self.n2
        )

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "type": "triangle",
            "vertices": [list(self.v0), list(self.v1), list(self.v2)],
            "material": self.material_id,
        }
        if self.has_normals:
            data["normals"] = [list(self.n0), list(self.n1), list(self.n2)]
        return data


Primitive = PlaneInfo | SphereInfo | TriangleInfo


def primitive_from_dict(data: dict[str, Any]) -> Primitive:
    """Build a primitive from ``to_dict`` output.

    Raises:
        ValueError: If the type is unknown or a field is malformed.
    """
    kind = str(data.get("type", "")).lower()
    material_id = int(data.get("material", 0))
    if kind == "plane":
        return PlaneInfo(tuple(data["point"]), tuple(data["normal"]), material_id)
    if kind == "sphere":
        return SphereInfo(tuple(data["center"]), float(data["radius"]), material_id)
    if kind == "triangle":
        v0, v1, v2 = (tuple(v) for v in data["vertices"])
        normals = data.get("normals")
        if normals is None:
            return TriangleInfo(v0, v1, v2, material_id)
        n0, n1, n2 = (tuple(n) for n in normals)
        return TriangleInfo(v0, v1, v2, material_id, n0, n1, n2)
    raise ValueError(f"Unknown primitive type: {kind!r}")
