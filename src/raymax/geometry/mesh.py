"""Immutable triangle meshes with a prebuilt BVH.

A ``Mesh`` owns its triangles in leaf order (the order its BVH leaves
reference) as read-only float32 arrays. The hierarchy is built once, when
the mesh is created; transforms return new meshes.

Loading mesh files is left to the caller: ``Mesh.from_arrays`` accepts the
indexed vertex and face arrays a loader produces.

Example:
    >>> vertices = [(0, 0, 0), (1, 0, 0), (1, 1, 0), (0, 1, 0)]
    >>> faces = [(0, 1, 2), (0, 2, 3)]
    >>> mesh = Mesh.from_arrays(vertices, faces).rotated(ry=45.0)
    >>> mesh.triangle_count
    2
"""

import logging
import math
from dataclasses import dataclass

import numpy as np
import numpy.typing as npt

from raymax.geometry.bvh import DEFAULT_LEAF_SIZE, FlatBVH, SplitMethod, build_bvh

logger = logging.getLogger(__name__)


def _readonly(array: npt.NDArray) -> npt.NDArray:
    array.setflags(write=False)
    return array


def rotation_matrix(rx: float = 0.0, ry: float = 0.0, rz: float = 0.0) -> npt.NDArray[np.float64]:
    """Rotation about x, then y, then z. Angles are in degrees."""
    ax, ay, az = (math.radians(a) for a in (rx, ry, rz))
    cx, sx = math.cos(ax), math.sin(ax)
    cy, sy = math.cos(ay), math.sin(ay)
    cz, sz = math.cos(az), math.sin(az)
    rot_x = np.array([[1.0, 0.0, 0.0], [0.0, cx, -sx], [0.0, sx, cx]])
    rot_y = np.array([[cy, 0.0, sy], [0.0, 1.0, 0.0], [-sy, 0.0, cy]])
    rot_z = np.array([[cz, -sz, 0.0], [sz, cz, 0.0], [0.0, 0.0, 1.0]])
    return rot_z @ rot_y @ rot_x


@dataclass(frozen=True)
class Mesh:
    """A triangle mesh and its acceleration structure.

    Attributes:
        v0: First vertices in leaf order, shape (T, 3), float32.
        v1: Second vertices in leaf order, shape (T, 3), float32.
        v2: Third vertices in leaf order, shape (T, 3), float32.
        n0: Vertex normals for v0 or None when the mesh is flat shaded.
        n1: Vertex normals for v1 or None.
        n2: Vertex normals for v2 or None.
        bvh: Flattened BVH whose leaves index the arrays above directly.
        leaf_size: Leaf size the BVH was built with.
        method: Split method the BVH was built with.
    """

    v0: npt.NDArray[np.float32]
    v1: npt.NDArray[np.float32]
    v2: npt.NDArray[np.float32]
    n0: npt.NDArray[np.float32] | None
    n1: npt.NDArray[np.float32] | None
    n2: npt.NDArray[np.float32] | None
    bvh: FlatBVH
    leaf_size: int = DEFAULT_LEAF_SIZE
    method: SplitMethod = "sah"

    @classmethod
    def from_triangles(
        cls,
        v0: npt.ArrayLike,
        v1: npt.ArrayLike,
        v2: npt.ArrayLike,
        n0: npt.ArrayLike | None = None,
        n1: npt.ArrayLike | None = None,
        n2: npt.ArrayLike | None = None,
        leaf_size: int = DEFAULT_LEAF_SIZE,
        method: SplitMethod = "sah",
    ) -> "Mesh":
        """Create a mesh from per-triangle vertex arrays and build its BVH.

        Args:
            v0: First vertices, shape (T, 3).
            v1: Second vertices, shape (T, 3).
            v2: Third vertices, shape (T, 3).
            n0: Optional vertex normals matching v0. Either all three normal
                arrays are given or none.
            n1: Optional vertex normals matching v1.
            n2: Optional vertex normals matching v2.
            leaf_size: Maximum triangles per BVH leaf.
            method: BVH split method, "sah" or "median".

        Raises:
            ValueError: If the arrays are inconsistent.
        """
        a = np.asarray(v0, dtype=np.float64).reshape(-1, 3)
        b = np.asarray(v1, dtype=np.float64).reshape(-1, 3)
        c = np.asarray(v2, dtype=np.float64).reshape(-1, 3)

        normals = [n0, n1, n2]
        given = [n is not None for n in normals]
        if any(given) and not all(given):
            raise ValueError("Vertex normals must be given for all three vertices or none")

        bvh = build_bvh(a, b, c, leaf_size=leaf_size, method=method)
        order = bvh.order

        shaded: list[npt.NDArray[np.float32] | None] = [None, None, None]
        if all(given):
            for k, n in enumerate(normals):
                arr = np.asarray(n, dtype=np.float64).reshape(-1, 3)
                if arr.shape != a.shape:
                    raise ValueError(f"Normal array {k} has shape {arr.shape}, expected {a.shape}")
                shaded[k] = _readonly(arr[order].astype(np.float32))

        return cls(
            v0=_readonly(a[order].astype(np.float32)),
            v1=_readonly(b[order].astype(np.float32)),
            v2=_readonly(c[order].astype(np.float32)),
            n0=shaded[0],
            n1=shaded[1],
            n2=shaded[2],
            bvh=bvh,
            leaf_size=leaf_size,
            method=method,
        )

    @classmethod
    def from_arrays(
        cls,
        vertices: npt.ArrayLike,
        faces: npt.ArrayLike,
        normals: npt.ArrayLike | None = None,
        leaf_size: int = DEFAULT_LEAF_SIZE,
        method: SplitMethod = "sah",
    ) -> "Mesh":
        """Create a mesh from indexed vertices and faces.

        Faces that repeat a vertex position are malformed and skipped; the
        number skipped is logged.

        Args:
            vertices: Vertex positions, shape (V, 3).
            faces: Vertex indices per triangle, shape (F, 3).
            normals: Optional per-vertex normals, shape (V, 3).
            leaf_size: Maximum triangles per BVH leaf.
            method: BVH split method, "sah" or "median".

        Raises:
            ValueError: If a face index is out of range or shapes mismatch.
        """
        verts = np.asarray(vertices, dtype=np.float64).reshape(-1, 3)
        idx = np.asarray(faces, dtype=np.int64).reshape(-1, 3)

        if idx.size and (idx.min() < 0 or idx.max() >= verts.shape[0]):
            raise ValueError(f"Face indices must lie in [0, {verts.shape[0]})")

        a = verts[idx[:, 0]]
        b = verts[idx[:, 1]]
        c = verts[idx[:, 2]]

        malformed = (
            np.all(a == b, axis=1) | np.all(a == c, axis=1) | np.all(b == c, axis=1)
        )
        num_skipped = int(np.count_nonzero(malformed))
        if num_skipped:
            logger.warning("Skipped %d malformed triangles", num_skipped)
        keep = ~malformed

        n0 = n1 = n2 = None
        if normals is not None:
            norms = np.asarray(normals, dtype=np.float64).reshape(-1, 3)
            if norms.shape != verts.shape:
                raise ValueError(f"Normals have shape {norms.shape}, expected {verts.shape}")
            n0 = norms[idx[keep, 0]]
            n1 = norms[idx[keep, 1]]
            n2 = norms[idx[keep, 2]]

        mesh = cls.from_triangles(a[keep], b[keep], c[keep], n0, n1, n2, leaf_size=leaf_size, method=method)
        logger.debug("Created mesh with %d triangles (%d nodes)", mesh.triangle_count, mesh.node_count)
        return mesh

    # =========================================================================
    # Inspection
    # =========================================================================

    @property
    def triangle_count(self) -> int:
        return int(self.v0.shape[0])

    @property
    def node_count(self) -> int:
        return self.bvh.num_nodes

    @property
    def has_normals(self) -> bool:
        return self.n0 is not None

    @property
    def bounds(self) -> tuple[tuple[float, float, float], tuple[float, float, float]]:
        """Exact bounding box of the vertices as (min, max)."""
        if self.triangle_count == 0:
            return (0.0, 0.0, 0.0), (0.0, 0.0, 0.0)
        pts = np.concatenate([self.v0, self.v1, self.v2])
        lo = pts.min(axis=0)
        hi = pts.max(axis=0)
        return (float(lo[0]), float(lo[1]), float(lo[2])), (float(hi[0]), float(hi[1]), float(hi[2]))

    # =========================================================================
    # Transforms (each returns a new mesh with a rebuilt BVH)
    # =========================================================================

    def _transformed(self, matrix: npt.NDArray[np.float64], offset: npt.NDArray[np.float64]) -> "Mesh":
        def apply(points: npt.NDArray[np.float32]) -> npt.NDArray[np.float64]:
            return points.astype(np.float64) @ matrix.T + offset

        normals: list[npt.NDArray[np.float64] | None] = [None, None, None]
        if self.has_normals:
            # Normals transform with the inverse transpose
            normal_matrix = np.linalg.inv(matrix).T
            for k, n in enumerate((self.n0, self.n1, self.n2)):
                transformed = n.astype(np.float64) @ normal_matrix.T
                lengths = np.linalg.norm(transformed, axis=1, keepdims=True)
                normals[k] = transformed / np.maximum(lengths, 1e-12)

        return Mesh.from_triangles(
            apply(self.v0),
            apply(self.v1),
            apply(self.v2),
            normals[0],
            normals[1],
            normals[2],
            leaf_size=self.leaf_size,
            method=self.method,
        )

    def rotated(self, rx: float = 0.0, ry: float = 0.0, rz: float = 0.0) -> "Mesh":
        """Rotate about the origin by x, then y, then z angles in degrees."""
        return self._transformed(rotation_matrix(rx, ry, rz), np.zeros(3))

    def translated(self, offset: tuple[float, float, float]) -> "Mesh":
        return self._transformed(np.eye(3), np.asarray(offset, dtype=np.float64))

    def scaled(self, factor: float) -> "Mesh":
        """Uniformly scale about the origin.

        Raises:
            ValueError: If factor is not positive.
        """
        if factor <= 0.0:
            raise ValueError(f"Scale factor must be positive, got {factor}")
        return self._transformed(np.eye(3) * factor, np.zeros(3))


def make_box(
    lo: tuple[float, float, float],
    hi: tuple[float, float, float],
    method: SplitMethod = "sah",
) -> Mesh:
    """Axis-aligned box of twelve outward-facing triangles."""
    x0, y0, z0 = lo
    x1, y1, z1 = hi
    vertices = [
        (x0, y0, z0), (x1, y0, z0), (x1, y1, z0), (x0, y1, z0),
        (x0, y0, z1), (x1, y0, z1), (x1, y1, z1), (x0, y1, z1),
    ]
    faces = [
        (0, 2, 1), (0, 3, 2),  # z0
        (4, 5, 6), (4, 6, 7),  # z1
        (0, 1, 5), (0, 5, 4),  # y0
        (3, 7, 6), (3, 6, 2),  # y1
        (0, 4, 7), (0, 7, 3),  # x0
        (1, 2, 6), (1, 6, 5),  # x1
    ]
    return Mesh.from_arrays(vertices, faces, method=method)
