"""Tests for BVH construction and traversal."""

import numpy as np
import pytest


def _random_triangles(count, seed=0, spread=10.0, size=0.5):
    rng = np.random.default_rng(seed)
    centers = rng.uniform(-spread, spread, size=(count, 3))
    v0 = centers + rng.uniform(-size, size, size=(count, 3))
    v1 = centers + rng.uniform(-size, size, size=(count, 3))
    v2 = centers + rng.uniform(-size, size, size=(count, 3))
    return v0, v1, v2


def _check_structure(bvh, v0, v1, v2, leaf_size):
    """Walk the flattened tree and check the layout invariants."""
    tri_min = np.minimum(np.minimum(v0, v1), v2)
    tri_max = np.maximum(np.maximum(v0, v1), v2)
    seen = []

    def visit(i):
        assert bvh.node_skip[i] > i
        if bvh.node_count[i] > 0:
            assert bvh.node_count[i] <= leaf_size
            assert bvh.node_skip[i] == i + 1
            members = bvh.order[bvh.node_start[i] : bvh.node_start[i] + bvh.node_count[i]]
            assert (tri_min[members] >= bvh.node_min[i] - 1e-6).all()
            assert (tri_max[members] <= bvh.node_max[i] + 1e-6).all()
            seen.extend(int(m) for m in members)
            return
        left = i + 1
        right = int(bvh.node_skip[left])
        assert bvh.node_skip[right] == bvh.node_skip[i]
        for child in (left, right):
            assert (bvh.node_min[child] >= bvh.node_min[i] - 1e-4).all()
            assert (bvh.node_max[child] <= bvh.node_max[i] + 1e-4).all()
            visit(child)

    visit(0)
    assert bvh.node_skip[0] == bvh.num_nodes
    assert sorted(seen) == list(range(v0.shape[0]))


class TestBuildBVH:
    """Tests for build_bvh."""

    @pytest.mark.parametrize("method", ["median", "sah"])
    @pytest.mark.parametrize("leaf_size", [1, 4])
    def test_structure(self, method, leaf_size):
        """Every triangle lands in exactly one leaf and boxes nest."""
        from raymax.geometry.bvh import build_bvh

        v0, v1, v2 = _random_triangles(200, seed=3)
        bvh = build_bvh(v0, v1, v2, leaf_size=leaf_size, method=method)
        _check_structure(bvh, v0, v1, v2, leaf_size)
        assert bvh.leaf_count >= 200 // leaf_size

    def test_single_leaf(self):
        from raymax.geometry.bvh import build_bvh

        v0, v1, v2 = _random_triangles(3)
        bvh = build_bvh(v0, v1, v2, leaf_size=4)
        assert bvh.num_nodes == 1
        assert bvh.leaf_count == 1
        assert bvh.depth() == 1

    def test_empty(self):
        from raymax.geometry.bvh import build_bvh

        bvh = build_bvh(np.zeros((0, 3)), np.zeros((0, 3)), np.zeros((0, 3)))
        assert bvh.num_nodes == 0
        assert bvh.depth() == 0

    def test_identical_centroids(self):
        """Coincident triangles still split down to the leaf size."""
        from raymax.geometry.bvh import build_bvh

        tri = np.array([[0.0, 0.0, 0.0]] * 10)
        v1 = tri + [1.0, 0.0, 0.0]
        v2 = tri + [0.0, 1.0, 0.0]
        bvh = build_bvh(tri, v1, v2, leaf_size=2, method="sah")
        _check_structure(bvh, tri, v1, v2, 2)

    def test_depth_is_logarithmic(self):
        from raymax.geometry.bvh import build_bvh

        v0, v1, v2 = _random_triangles(1024, seed=5)
        bvh = build_bvh(v0, v1, v2, leaf_size=4, method="median")
        # Median splits halve the set, so depth is about log2(1024 / 4) + 1
        assert bvh.depth() <= 10

    def test_bounds_cover_geometry(self):
        from raymax.geometry.bvh import build_bvh

        v0, v1, v2 = _random_triangles(50)
        lo, hi = build_bvh(v0, v1, v2).bounds
        pts = np.concatenate([v0, v1, v2])
        assert (pts.min(axis=0) >= np.array(lo) - 1e-4).all()
        assert (pts.max(axis=0) <= np.array(hi) + 1e-4).all()

    def test_arrays_are_read_only(self):
        from raymax.geometry.bvh import build_bvh

        bvh = build_bvh(*_random_triangles(20))
        with pytest.raises(ValueError):
            bvh.node_skip[0] = 5

    @pytest.mark.parametrize(
        "kwargs, message",
        [
            ({"leaf_size": 0}, "leaf_size"),
            ({"method": "octree"}, "split method"),
            ({"bins": 1}, "bins"),
        ],
    )
    def test_invalid_options(self, kwargs, message):
        from raymax.geometry.bvh import build_bvh

        with pytest.raises(ValueError, match=message):
            build_bvh(*_random_triangles(4), **kwargs)

    def test_mismatched_shapes(self):
        from raymax.geometry.bvh import build_bvh

        v0, v1, v2 = _random_triangles(4)
        with pytest.raises(ValueError, match="equal shapes"):
            build_bvh(v0, v1, v2[:3])


class TestBVHTraversal:
    """Device traversal must agree with a linear scan."""

    @pytest.mark.parametrize("method", ["median", "sah"])
    def test_matches_linear_scan(self, method):
        from raymax.geometry.mesh import Mesh
        from raymax.scene.scene import SceneBuilder

        v0, v1, v2 = _random_triangles(300, seed=11, spread=3.0)
        builder = SceneBuilder()
        mat = builder.add_material(kd=(0.5, 0.5, 0.5))
        builder.add_mesh(Mesh.from_triangles(v0, v1, v2, leaf_size=4, method=method), mat)
        scene = builder.build()

        rng = np.random.default_rng(2)
        hits = 0
        for _ in range(64):
            origin = tuple(rng.uniform(-8.0, 8.0, size=3))
            target = rng.uniform(-3.0, 3.0, size=3)
            direction = tuple(target - np.array(origin))
            fast = scene.intersect(origin, direction, accelerate=True)
            slow = scene.intersect(origin, direction, accelerate=False)
            assert (fast is None) == (slow is None)
            if fast is not None:
                hits += 1
                assert abs(fast.t - slow.t) < 1e-4
                assert fast.mesh_id == slow.mesh_id == 0
                assert fast.primitive_id == -1
        assert hits > 10

    def test_axis_parallel_rays(self):
        """Rays along coordinate axes traverse flat boxes without NaNs."""
        from raymax.geometry.mesh import make_box
        from raymax.scene.scene import SceneBuilder

        builder = SceneBuilder()
        mat = builder.add_material(kd=(0.5, 0.5, 0.5))
        builder.add_mesh(make_box((-1.0, -1.0, -1.0), (1.0, 1.0, 1.0)), mat)
        scene = builder.build()

        for axis in range(3):
            origin = [0.3, 0.2, 0.1]
            origin[axis] = 5.0
            direction = [0.0, 0.0, 0.0]
            direction[axis] = -1.0
            hit = scene.intersect(tuple(origin), tuple(direction))
            assert hit is not None
            assert abs(hit.t - 4.0) < 1e-4
            assert hit.front_face
            assert abs(hit.normal[axis] - 1.0) < 1e-5
