"""Bounding Volume Hierarchy construction for triangle meshes.

``build_bvh`` is a one-time pure function from triangle arrays to a
``FlatBVH``. Nodes are stored in depth-first pre-order: the left child of an
interior node directly follows it, and every node carries a ``skip`` index
pointing just past its subtree. A traversal can therefore walk the array
front to back, jumping to ``skip`` whenever a node's box is missed, without
keeping a stack.

Two split strategies are available:
    - "median": split the longest centroid axis at the median triangle.
    - "sah": binned surface area heuristic, falling back to the median split
      when the centroids cannot be separated.

This module declares no Taichi fields and works on NumPy arrays only.

Example:
    >>> bvh = build_bvh(v0, v1, v2, leaf_size=4, method="sah")
    >>> bvh.num_nodes, bvh.leaf_count
"""

import logging
from dataclasses import dataclass
from typing import Literal

import numpy as np
import numpy.typing as npt

logger = logging.getLogger(__name__)

SplitMethod = Literal["median", "sah"]

DEFAULT_LEAF_SIZE = 4
DEFAULT_SAH_BINS = 12

# Boxes are grown slightly so flat and thin boxes are still entered
_BOX_PADDING_ABS = 1e-5
_BOX_PADDING_REL = 1e-6


@dataclass(frozen=True)
class FlatBVH:
    """A BVH flattened into pre-order arrays.

    Attributes:
        node_min: Lower corners of node boxes, shape (N, 3), float32.
        node_max: Upper corners of node boxes, shape (N, 3), float32.
        node_skip: Index of the first node after each subtree, shape (N,).
        node_start: First triangle of each leaf in ``order``, shape (N,).
        node_count: Triangles in each leaf; 0 marks an interior node.
        order: Permutation from leaf-ordered triangle slots to the input
            triangle indices, shape (T,).
    """

    node_min: npt.NDArray[np.float32]
    node_max: npt.NDArray[np.float32]
    node_skip: npt.NDArray[np.int32]
    node_start: npt.NDArray[np.int32]
    node_count: npt.NDArray[np.int32]
    order: npt.NDArray[np.int64]

    @property
    def num_nodes(self) -> int:
        return int(self.node_skip.shape[0])

    @property
    def leaf_count(self) -> int:
        return int(np.count_nonzero(self.node_count))

    @property
    def bounds(self) -> tuple[tuple[float, float, float], tuple[float, float, float]]:
        """Bounding box of the whole hierarchy as (min, max)."""
        if self.num_nodes == 0:
            return (0.0, 0.0, 0.0), (0.0, 0.0, 0.0)
        lo = self.node_min[0]
        hi = self.node_max[0]
        return (float(lo[0]), float(lo[1]), float(lo[2])), (float(hi[0]), float(hi[1]), float(hi[2]))

    def depth(self) -> int:
        """Length of the longest root-to-leaf path (a lone leaf has depth 1)."""
        if self.num_nodes == 0:
            return 0
        best = 0
        # (node index, depth); children of an interior node i are i + 1 and skip[i + 1]
        stack = [(0, 1)]
        while stack:
            i, d = stack.pop()
            best = max(best, d)
            if self.node_count[i] == 0:
                left = i + 1
                stack.append((left, d + 1))
                stack.append((int(self.node_skip[left]), d + 1))
        return best


def _empty_bvh() -> FlatBVH:
    return FlatBVH(
        node_min=np.zeros((0, 3), dtype=np.float32),
        node_max=np.zeros((0, 3), dtype=np.float32),
        node_skip=np.zeros(0, dtype=np.int32),
        node_start=np.zeros(0, dtype=np.int32),
        node_count=np.zeros(0, dtype=np.int32),
        order=np.zeros(0, dtype=np.int64),
    )


def _surface_area(lo: npt.NDArray[np.float64], hi: npt.NDArray[np.float64]) -> float:
    extent = np.maximum(hi - lo, 0.0)
    return float(2.0 * (extent[0] * extent[1] + extent[1] * extent[2] + extent[2] * extent[0]))


def _median_split(centroids: npt.NDArray[np.float64], axis: int) -> tuple[npt.NDArray[np.bool_], int]:
    """Split at the median centroid along ``axis``; always non-empty on both sides."""
    count = centroids.shape[0]
    ranks = np.argsort(centroids[:, axis], kind="stable")
    mask = np.zeros(count, dtype=bool)
    mask[ranks[: count // 2]] = True
    return mask, count // 2


def _sah_split(
    centroids: npt.NDArray[np.float64],
    tri_min: npt.NDArray[np.float64],
    tri_max: npt.NDArray[np.float64],
    bins: int,
) -> npt.NDArray[np.bool_] | None:
    """Find the cheapest binned SAH split over all three axes.

    Returns:
        A mask selecting the left triangles, or None when no split separates
        the centroids.
    """
    c_lo = centroids.min(axis=0)
    c_hi = centroids.max(axis=0)
    extent = c_hi - c_lo

    best_cost = np.inf
    best_mask = None

    for axis in range(3):
        if extent[axis] <= 0.0:
            continue

        scaled = (centroids[:, axis] - c_lo[axis]) * (bins / extent[axis])
        bin_ids = np.minimum(scaled.astype(np.int64), bins - 1)

        counts = np.bincount(bin_ids, minlength=bins)
        bin_lo = np.full((bins, 3), np.inf)
        bin_hi = np.full((bins, 3), -np.inf)
        for b in range(bins):
            members = bin_ids == b
            if counts[b] > 0:
                bin_lo[b] = tri_min[members].min(axis=0)
                bin_hi[b] = tri_max[members].max(axis=0)

        for split in range(1, bins):
            n_left = int(counts[:split].sum())
            n_right = int(counts[split:].sum())
            if n_left == 0 or n_right == 0:
                continue
            left_lo = bin_lo[:split][counts[:split] > 0].min(axis=0)
            left_hi = bin_hi[:split][counts[:split] > 0].max(axis=0)
            right_lo = bin_lo[split:][counts[split:] > 0].min(axis=0)
            right_hi = bin_hi[split:][counts[split:] > 0].max(axis=0)
            cost = n_left * _surface_area(left_lo, left_hi) + n_right * _surface_area(right_lo, right_hi)
            if cost < best_cost:
                best_cost = cost
                best_mask = bin_ids < split

    return best_mask


def build_bvh(
    v0: npt.ArrayLike,
    v1: npt.ArrayLike,
    v2: npt.ArrayLike,
    leaf_size: int = DEFAULT_LEAF_SIZE,
    method: SplitMethod = "sah",
    bins: int = DEFAULT_SAH_BINS,
) -> FlatBVH:
    """Build a flattened BVH over a set of triangles.

    Args:
        v0: First vertices, shape (T, 3).
        v1: Second vertices, shape (T, 3).
        v2: Third vertices, shape (T, 3).
        leaf_size: Maximum triangles per leaf.
        method: Split strategy, "sah" or "median".
        bins: Number of centroid bins for the SAH split.

    Returns:
        The flattened hierarchy. Every triangle appears in exactly one leaf.

    Raises:
        ValueError: If the arrays have mismatched shapes or the options are
            invalid.
    """
    if leaf_size < 1:
        raise ValueError(f"leaf_size must be >= 1, got {leaf_size}")
    if method not in ("median", "sah"):
        raise ValueError(f"Unknown BVH split method: {method!r}")
    if bins < 2:
        raise ValueError(f"bins must be >= 2, got {bins}")

    a = np.asarray(v0, dtype=np.float64).reshape(-1, 3)
    b = np.asarray(v1, dtype=np.float64).reshape(-1, 3)
    c = np.asarray(v2, dtype=np.float64).reshape(-1, 3)
    if not (a.shape == b.shape == c.shape):
        raise ValueError(f"Vertex arrays must have equal shapes, got {a.shape}, {b.shape}, {c.shape}")

    num_tris = a.shape[0]
    if num_tris == 0:
        return _empty_bvh()

    tri_min = np.minimum(np.minimum(a, b), c)
    tri_max = np.maximum(np.maximum(a, b), c)
    centroids = (a + b + c) / 3.0
    order = np.arange(num_tris, dtype=np.int64)

    node_min: list[npt.NDArray[np.float64]] = []
    node_max: list[npt.NDArray[np.float64]] = []
    node_start: list[int] = []
    node_count: list[int] = []
    right_child: list[int] = []

    # Depth-first, left first, so nodes are created in pre-order.
    # Each entry is (start, end, parent index or -1 for the root / left children).
    stack = [(0, num_tris, -1)]
    while stack:
        start, end, parent = stack.pop()
        index = len(node_start)
        if parent >= 0:
            right_child[parent] = index

        members = order[start:end]
        node_min.append(tri_min[members].min(axis=0))
        node_max.append(tri_max[members].max(axis=0))
        right_child.append(-1)

        count = end - start
        if count <= leaf_size:
            node_start.append(start)
            node_count.append(count)
            continue

        mask = None
        if method == "sah":
            mask = _sah_split(centroids[members], tri_min[members], tri_max[members], bins)
        if mask is None:
            extent = centroids[members].max(axis=0) - centroids[members].min(axis=0)
            mask, _ = _median_split(centroids[members], int(np.argmax(extent)))

        n_left = int(np.count_nonzero(mask))
        order[start:end] = np.concatenate([members[mask], members[~mask]])

        node_start.append(0)
        node_count.append(0)

        # Pushed right first so the left child is created next
        stack.append((start + n_left, end, index))
        stack.append((start, start + n_left, -1))

    num_nodes = len(node_start)
    counts = np.asarray(node_count, dtype=np.int32)

    # Subtree sizes, children always have larger indices than their parent
    sizes = np.ones(num_nodes, dtype=np.int64)
    for i in range(num_nodes - 1, -1, -1):
        if counts[i] == 0:
            sizes[i] = 1 + sizes[i + 1] + sizes[right_child[i]]
    skip = (np.arange(num_nodes, dtype=np.int64) + sizes).astype(np.int32)

    lo = np.asarray(node_min)
    hi = np.asarray(node_max)
    pad = _BOX_PADDING_ABS + _BOX_PADDING_REL * np.maximum(np.abs(lo), np.abs(hi))

    bvh = FlatBVH(
        node_min=(lo - pad).astype(np.float32),
        node_max=(hi + pad).astype(np.float32),
        node_skip=skip,
        node_start=np.asarray(node_start, dtype=np.int32),
        node_count=counts,
        order=order,
    )
    for array in (bvh.node_min, bvh.node_max, bvh.node_skip, bvh.node_start, bvh.node_count, bvh.order):
        array.setflags(write=False)

    logger.debug(
        "Built %s BVH: %d triangles, %d nodes, %d leaves",
        method,
        num_tris,
        bvh.num_nodes,
        bvh.leaf_count,
    )
    return bvh
