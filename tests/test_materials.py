"""Tests for the material model and its scattering functions."""

import math

import numpy as np
import pytest
import taichi as ti


class TestMaterial:
    """Tests for the Material dataclass."""

    def test_defaults(self):
        from raymax.materials.material import Material

        m = Material()
        assert m.kd == (0.0, 0.0, 0.0)
        assert not m.is_emissive
        assert not m.checkered

    def test_emissive(self):
        from raymax.materials.material import Material

        assert Material(ke=(0.0, 0.0, 2.0)).is_emissive

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"kd": (0.5, -0.1, 0.5)},
            {"ks": (0.5, 0.5)},
            {"ke": (float("nan"), 0.0, 0.0)},
            {"shininess": -1.0},
            {"shininess": float("inf")},
        ],
    )
    def test_invalid_values(self, kwargs):
        from raymax.materials.material import Material

        with pytest.raises(ValueError):
            Material(**kwargs)

    def test_colors_above_one_allowed(self):
        from raymax.materials.material import Material

        m = Material(kd=(0.9, 0.9, 0.9), ks=(0.5, 0.5, 0.5), ke=(15.0, 15.0, 15.0))
        assert m.ke == (15.0, 15.0, 15.0)

    def test_from_dict_scalar_ks(self):
        from raymax.materials.material import Material

        m = Material.from_dict({"kd": [0.2, 0.3, 0.4], "ks": 0.5, "shininess": 32})
        assert m.ks == (0.5, 0.5, 0.5)
        assert m.shininess == 32.0
        assert isinstance(m.shininess, float)

    def test_dict_round_trip(self):
        from raymax.materials.material import Material

        m = Material(kd=(0.1, 0.2, 0.3), ks=(0.4, 0.4, 0.4), shininess=100.0, checkered=True)
        assert Material.from_dict(m.to_dict()) == m


class TestMaterialTable:
    """Tests for uploading materials and resolving them in kernels."""

    def test_get_surface(self):
        from raymax.materials.material import Material, get_surface, upload_materials, vec2

        upload_materials([Material(kd=(0.9, 0.6, 0.3), ks=(0.1, 0.1, 0.1), shininess=8.0)])
        kd = ti.Vector.field(3, dtype=ti.f32, shape=2)
        shininess = ti.field(dtype=ti.f32, shape=())

        @ti.kernel
        def test_kernel():
            surf = get_surface(0, vec2(0.0, 0.0))
            kd[0] = surf.kd
            shininess[None] = surf.shininess
            # Out-of-range ids resolve to an all-zero surface
            kd[1] = get_surface(5, vec2(0.0, 0.0)).kd

        test_kernel()
        k = kd.to_numpy()
        np.testing.assert_allclose(k[0], [0.9, 0.6, 0.3], atol=1e-6)
        np.testing.assert_allclose(k[1], [0.0, 0.0, 0.0])
        assert abs(shininess[None] - 8.0) < 1e-6

    def test_checker_darkens_alternate_cells(self):
        from raymax.materials.material import CHECKER_DARKEN, Material, get_surface, upload_materials, vec2

        upload_materials([Material(kd=(0.9, 0.9, 0.9), checkered=True)])
        kd = ti.field(dtype=ti.f32, shape=3)

        @ti.kernel
        def test_kernel():
            kd[0] = get_surface(0, vec2(0.1, 0.1)).kd.x
            kd[1] = get_surface(0, vec2(0.2, 0.1)).kd.x
            kd[2] = get_surface(0, vec2(0.2, 0.2)).kd.x

        test_kernel()
        assert abs(kd[0] - 0.9) < 1e-6
        assert abs(kd[1] - 0.9 * CHECKER_DARKEN) < 1e-6
        assert abs(kd[2] - 0.9) < 1e-6

    def test_too_many_materials(self):
        from raymax.materials.material import MAX_MATERIALS, Material, upload_materials

        with pytest.raises(RuntimeError, match="Maximum number of materials"):
            upload_materials([Material()] * (MAX_MATERIALS + 1))


class TestDiffuse:
    """Tests for the Lambertian lobe."""

    def test_sample_diffuse_above_surface(self):
        from raymax.materials.diffuse import sample_diffuse, vec3

        n = 256
        dirs = ti.Vector.field(3, dtype=ti.f32, shape=n)
        weights = ti.Vector.field(3, dtype=ti.f32, shape=n)

        @ti.kernel
        def test_kernel():
            for i in range(n):
                d, w = sample_diffuse(vec3(0.5, 0.25, 0.125), vec3(0.0, 1.0, 0.0))
                dirs[i] = d
                weights[i] = w

        test_kernel()
        d = dirs.to_numpy()
        assert (d[:, 1] >= -1e-6).all()
        np.testing.assert_allclose(np.linalg.norm(d, axis=1), 1.0, atol=1e-5)
        np.testing.assert_allclose(weights.to_numpy(), np.tile([0.5, 0.25, 0.125], (n, 1)), atol=1e-7)


class TestSpecular:
    """Tests for the Phong highlight and lobe sampling."""

    def test_highlight_peaks_at_mirror_direction(self):
        from raymax.materials.specular import phong_highlight, vec3

        result = ti.field(dtype=ti.f32, shape=3)

        @ti.kernel
        def test_kernel():
            n = vec3(0.0, 1.0, 0.0)
            s = ti.sqrt(0.5)
            to_light = vec3(-s, s, 0.0)
            ks = vec3(0.5, 0.5, 0.5)
            result[0] = phong_highlight(ks, 10.0, n, to_light, vec3(s, s, 0.0)).x
            result[1] = phong_highlight(ks, 10.0, n, to_light, vec3(0.0, 1.0, 0.0)).x
            result[2] = phong_highlight(vec3(0.0, 0.0, 0.0), 10.0, n, to_light, vec3(s, s, 0.0)).x

        test_kernel()
        assert abs(result[0] - 0.5) < 1e-5
        # cos(45 deg)^10
        assert abs(result[1] - 0.5 * 0.5**5) < 1e-5
        assert result[2] == 0.0

    def test_high_shininess_samples_near_mirror(self):
        from raymax.materials.specular import sample_specular, vec3

        n = 128
        dirs = ti.Vector.field(3, dtype=ti.f32, shape=n)
        flags = ti.field(dtype=ti.i32, shape=n)

        @ti.kernel
        def test_kernel():
            s = ti.sqrt(0.5)
            for i in range(n):
                d, _, ok = sample_specular(vec3(0.9, 0.9, 0.9), 10000.0, vec3(s, -s, 0.0), vec3(0.0, 1.0, 0.0))
                dirs[i] = d
                flags[i] = ok

        test_kernel()
        d = dirs.to_numpy()
        mirror = np.array([math.sqrt(0.5), math.sqrt(0.5), 0.0])
        assert (d @ mirror > 0.99).all()
        assert (flags.to_numpy() == 1).all()

    def test_samples_below_surface_are_discarded(self):
        """Grazing incidence with a wide lobe yields some rejected samples."""
        from raymax.materials.specular import sample_specular, vec3

        n = 256
        flags = ti.field(dtype=ti.i32, shape=n)
        weights = ti.Vector.field(3, dtype=ti.f32, shape=n)

        @ti.kernel
        def test_kernel():
            for i in range(n):
                d, w, ok = sample_specular(vec3(0.5, 0.5, 0.5), 1.0, vec3(1.0, -0.05, 0.0), vec3(0.0, 1.0, 0.0))
                flags[i] = ok
                weights[i] = w

        test_kernel()
        f = flags.to_numpy()
        w = weights.to_numpy()
        assert 0 < f.sum() < n
        assert (w[f == 0] == 0.0).all()
        assert (w[f == 1] == 0.5).all()
