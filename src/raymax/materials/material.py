"""Surface material model and its device-side table.

Every surface carries one ``Material``:
    kd: diffuse reflectance color
    ks: specular reflectance color (Phong highlight and mirror weight)
    ke: emitted radiance; any top-level primitive with ke > 0 is an area light
    shininess: Phong exponent controlling highlight and lobe concentration
    checkered: darken kd to one third on alternating 1/4 cells of the
        surface (u, v) parameterization

Colors must be non-negative but may exceed 1. ``kd + ks <= 1`` is not
enforced.

The scene uploads its materials into the fixed-size fields below once per
render, and kernels look them up with ``get_surface``.
"""

import math
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any

import numpy as np
import taichi as ti
import taichi.math as tm

vec3 = tm.vec3
vec2 = tm.vec2

Color = tuple[float, float, float]

# Checker cells per unit of surface parameterization
CHECKER_FREQUENCY = 4.0
CHECKER_DARKEN = 1.0 / 3.0


def _validate_color(name: str, value: Sequence[float]) -> Color:
    if len(value) != 3:
        raise ValueError(f"{name} must have 3 components, got {len(value)}")
    color = (float(value[0]), float(value[1]), float(value[2]))
    for c in color:
        if not math.isfinite(c):
            raise ValueError(f"{name} components must be finite, got {color}")
        if c < 0.0:
            raise ValueError(f"{name} components must be non-negative, got {color}")
    return color


@dataclass(frozen=True)
class Material:
    """Surface appearance parameters.

    Attributes:
        kd: Diffuse reflectance (R, G, B).
        ks: Specular reflectance (R, G, B).
        ke: Emitted radiance (R, G, B).
        shininess: Phong exponent, 0 to ~1000.
        checkered: Apply the checker texture to kd.

    Raises:
        ValueError: If a color component or the shininess is negative or not
            finite.
    """

    kd: Color = (0.0, 0.0, 0.0)
    ks: Color = (0.0, 0.0, 0.0)
    ke: Color = (0.0, 0.0, 0.0)
    shininess: float = 0.0
    checkered: bool = False

    def __post_init__(self) -> None:
        object.__setattr__(self, "kd", _validate_color("kd", self.kd))
        object.__setattr__(self, "ks", _validate_color("ks", self.ks))
        object.__setattr__(self, "ke", _validate_color("ke", self.ke))
        if not math.isfinite(self.shininess) or self.shininess < 0.0:
            raise ValueError(f"shininess must be finite and non-negative, got {self.shininess}")
        object.__setattr__(self, "shininess", float(self.shininess))
        object.__setattr__(self, "checkered", bool(self.checkered))

    @property
    def is_emissive(self) -> bool:
        return max(self.ke) > 0.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "kd": list(self.kd),
            "ks": list(self.ks),
            "ke": list(self.ke),
            "shininess": self.shininess,
            "checkered": self.checkered,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Material":
        """Build a material; ``ks`` may be a scalar, as in older scene files."""
        ks = data.get("ks", (0.0, 0.0, 0.0))
        if isinstance(ks, (int, float)):
            ks = (float(ks),) * 3
        return cls(
            kd=tuple(data.get("kd", (0.0, 0.0, 0.0))),
            ks=tuple(ks),
            ke=tuple(data.get("ke", (0.0, 0.0, 0.0))),
            shininess=float(data.get("shininess", 0.0)),
            checkered=bool(data.get("checkered", False)),
        )


@ti.dataclass
class SurfaceInfo:
    """Material parameters resolved at a hit point (checker applied)."""

    kd: vec3
    ks: vec3
    ke: vec3
    shininess: ti.f32


# =============================================================================
# Material Field Storage
# =============================================================================

MAX_MATERIALS = 1024

material_kd = ti.Vector.field(3, dtype=ti.f32, shape=MAX_MATERIALS)
material_ks = ti.Vector.field(3, dtype=ti.f32, shape=MAX_MATERIALS)
material_ke = ti.Vector.field(3, dtype=ti.f32, shape=MAX_MATERIALS)
material_shininess = ti.field(dtype=ti.f32, shape=MAX_MATERIALS)
material_checkered = ti.field(dtype=ti.i32, shape=MAX_MATERIALS)
num_materials = ti.field(dtype=ti.i32, shape=())


def clear_materials() -> None:
    """Reset the material count to zero."""
    num_materials[None] = 0


def upload_materials(materials: Sequence[Material]) -> None:
    """Copy materials into the device table, replacing its contents.

    Args:
        materials: Materials indexed by material id.

    Raises:
        RuntimeError: If more than MAX_MATERIALS materials are given.
    """
    count = len(materials)
    if count > MAX_MATERIALS:
        raise RuntimeError(f"Maximum number of materials ({MAX_MATERIALS}) exceeded: {count}")

    kd = np.zeros((MAX_MATERIALS, 3), dtype=np.float32)
    ks = np.zeros((MAX_MATERIALS, 3), dtype=np.float32)
    ke = np.zeros((MAX_MATERIALS, 3), dtype=np.float32)
    shininess = np.zeros(MAX_MATERIALS, dtype=np.float32)
    checkered = np.zeros(MAX_MATERIALS, dtype=np.int32)
    for i, m in enumerate(materials):
        kd[i] = m.kd
        ks[i] = m.ks
        ke[i] = m.ke
        shininess[i] = m.shininess
        checkered[i] = int(m.checkered)

    material_kd.from_numpy(kd)
    material_ks.from_numpy(ks)
    material_ke.from_numpy(ke)
    material_shininess.from_numpy(shininess)
    material_checkered.from_numpy(checkered)
    num_materials[None] = count


# =============================================================================
# Device Lookup
# =============================================================================


@ti.func
def apply_checker(kd: vec3, uv: vec2) -> vec3:
    """Darken kd on alternating checker cells of the (u, v) parameterization."""
    cu = tm.fract(uv.x * CHECKER_FREQUENCY) > 0.5
    cv = tm.fract(uv.y * CHECKER_FREQUENCY) > 0.5
    result = kd
    if cu != cv:
        result = kd * CHECKER_DARKEN
    return result


@ti.func
def get_surface(material_id: ti.i32, uv: vec2) -> SurfaceInfo:
    """Resolve a material at a hit point.

    Args:
        material_id: Index into the material table.
        uv: Surface parameterization of the hit.

    Returns:
        The surface parameters; all zero for an invalid material id.
    """
    zero = vec3(0.0, 0.0, 0.0)
    result = SurfaceInfo(kd=zero, ks=zero, ke=zero, shininess=0.0)
    if 0 <= material_id < num_materials[None]:
        kd = material_kd[material_id]
        if material_checkered[material_id] == 1:
            kd = apply_checker(kd, uv)
        result = SurfaceInfo(
            kd=kd,
            ks=material_ks[material_id],
            ke=material_ke[material_id],
            shininess=material_shininess[material_id],
        )
    return result
