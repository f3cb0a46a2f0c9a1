"""Tests for explicit lights, direct lighting and emissive primitives."""

import math

import pytest
import taichi as ti


def _floor_scene(*lights, blocker=None, emitters=()):
    """A diffuse floor at y=0 with kd 0.5, plus optional blocker and emitters."""
    from raymax.scene.scene import SceneBuilder

    builder = SceneBuilder()
    floor = builder.add_material(kd=(0.5, 0.5, 0.5))
    builder.add_plane(point=(0.0, 0.0, 0.0), normal=(0.0, 1.0, 0.0), material_id=floor)
    if blocker is not None:
        dark = builder.add_material(kd=(0.0, 0.0, 0.0))
        builder.add_sphere(center=blocker, radius=0.25, material_id=dark)
    for add in emitters:
        add(builder)
    for light in lights:
        builder.add_light(light)
    return builder.build()


def _shade_floor_origin(scene, to_viewer=(0.0, 1.0, 0.0)):
    """Direct lighting at the floor origin, seen from above."""
    from raymax.core.ray import vec3
    from raymax.lighting.lights import direct_lighting
    from raymax.materials.material import get_surface, vec2
    from raymax.scene.scene import upload_scene

    upload_scene(scene)
    result = ti.Vector.field(3, dtype=ti.f32, shape=())
    vx, vy, vz = (float(c) for c in to_viewer)

    @ti.kernel
    def test_kernel():
        for _ in range(1):
            surf = get_surface(0, vec2(0.0, 0.0))
            n = vec3(0.0, 1.0, 0.0)
            result[None] = direct_lighting(vec3(0.0, 0.0, 0.0), n, n, vec3(vx, vy, vz), surf)

    test_kernel()
    return result[None]


class TestLightDefinitions:
    """Tests for light validation and serialization."""

    def test_negative_intensity(self):
        from raymax.lighting.lights import PointLight

        with pytest.raises(ValueError, match="intensity"):
            PointLight(position=(0.0, 1.0, 0.0), intensity=-1.0)

    def test_bad_color(self):
        from raymax.lighting.lights import AmbientLight

        with pytest.raises(ValueError, match="color"):
            AmbientLight(color=(1.0, -0.5, 1.0))

    def test_zero_direction(self):
        from raymax.lighting.lights import DirectionalLight

        with pytest.raises(ValueError, match="non-zero"):
            DirectionalLight(direction=(0.0, 0.0, 0.0))

    @pytest.mark.parametrize(
        "light_factory",
        [
            lambda m: m.PointLight((1.0, 2.0, 3.0), (0.5, 0.5, 1.0), 7.0),
            lambda m: m.DirectionalLight((0.0, -1.0, 0.0), intensity=2.0),
            lambda m: m.AmbientLight((0.2, 0.2, 0.2), 0.5),
        ],
    )
    def test_dict_round_trip(self, light_factory):
        from raymax.lighting import lights

        light = light_factory(lights)
        data = lights.light_to_dict(light)
        assert data["kind"] == light.kind.name.lower()
        assert lights.light_from_dict(data) == light

    def test_unknown_kind(self):
        from raymax.lighting.lights import light_from_dict

        with pytest.raises(ValueError, match="Unknown light kind"):
            light_from_dict({"kind": "spot"})

    def test_too_many_lights(self):
        from raymax.lighting.lights import MAX_LIGHTS, AmbientLight, upload_lights

        with pytest.raises(RuntimeError, match="Maximum number of lights"):
            upload_lights([AmbientLight()] * (MAX_LIGHTS + 1))


class TestDirectLighting:
    """Tests for direct_lighting."""

    def test_point_light_inverse_square(self):
        """kd * I * cos / d^2 = 0.5 * 8 * 1 / 4 = 1."""
        from raymax.lighting.lights import PointLight

        color = _shade_floor_origin(_floor_scene(PointLight((0.0, 2.0, 0.0), intensity=8.0)))
        for c in range(3):
            assert abs(color[c] - 1.0) < 1e-4

    def test_point_light_cosine(self):
        from raymax.lighting.lights import PointLight

        # Light at 45 degrees, distance sqrt(2): 0.5 * 4 * cos45 / 2
        color = _shade_floor_origin(_floor_scene(PointLight((1.0, 1.0, 0.0), intensity=4.0)))
        assert abs(color[0] - math.sqrt(0.5)) < 1e-4

    def test_point_light_below_surface(self):
        from raymax.lighting.lights import PointLight

        color = _shade_floor_origin(_floor_scene(PointLight((0.0, -2.0, 0.0), intensity=8.0)))
        assert color[0] == 0.0

    def test_shadowed_point_light(self):
        from raymax.lighting.lights import PointLight

        scene = _floor_scene(PointLight((0.0, 2.0, 0.0), intensity=8.0), blocker=(0.0, 1.0, 0.0))
        assert _shade_floor_origin(scene)[0] == 0.0

    def test_directional_light(self):
        from raymax.lighting.lights import DirectionalLight

        color = _shade_floor_origin(_floor_scene(DirectionalLight((0.0, -1.0, 0.0), (1.0, 0.5, 0.0), 2.0)))
        assert abs(color[0] - 1.0) < 1e-5
        assert abs(color[1] - 0.5) < 1e-5
        assert abs(color[2]) < 1e-6

    def test_directional_light_shadowed(self):
        from raymax.lighting.lights import DirectionalLight

        scene = _floor_scene(DirectionalLight((0.0, -1.0, 0.0), intensity=2.0), blocker=(0.0, 5.0, 0.0))
        assert _shade_floor_origin(scene)[0] == 0.0

    def test_ambient_ignores_occlusion(self):
        from raymax.lighting.lights import AmbientLight

        scene = _floor_scene(AmbientLight((1.0, 1.0, 1.0), 0.2), blocker=(0.0, 1.0, 0.0))
        assert abs(_shade_floor_origin(scene)[0] - 0.1) < 1e-6

    def test_lights_add_up(self):
        from raymax.lighting.lights import AmbientLight, PointLight

        scene = _floor_scene(PointLight((0.0, 2.0, 0.0), intensity=8.0), AmbientLight((1.0, 1.0, 1.0), 0.2))
        assert abs(_shade_floor_origin(scene)[0] - 1.1) < 1e-4


class TestEmitters:
    """Tests for analytic emitter lighting used by the ray tracer."""

    def _emitter_light(self, scene):
        from raymax.core.ray import vec3
        from raymax.lighting.emitters import emitter_lighting
        from raymax.scene.scene import upload_scene

        upload_scene(scene)
        result = ti.Vector.field(3, dtype=ti.f32, shape=())

        @ti.kernel
        def test_kernel():
            for _ in range(1):
                n = vec3(0.0, 1.0, 0.0)
                result[None] = emitter_lighting(vec3(0.0, 0.0, 0.0), n, n, vec3(1.0, 1.0, 1.0), -1)

        test_kernel()
        return result[None]

    def test_emissive_plane_fills_hemisphere(self):
        def add(builder):
            light = builder.add_material(ke=(2.0, 2.0, 2.0))
            builder.add_plane(point=(0.0, 2.0, 0.0), normal=(0.0, -1.0, 0.0), material_id=light)

        scene = _floor_scene(emitters=[add])
        assert scene.emitter_ids == (1,)
        assert abs(self._emitter_light(scene)[0] - 2.0) < 1e-5

    def test_emissive_sphere(self):
        """sin^2(alpha) * cos(theta) with sin(alpha) = r / d = 0.5."""

        def add(builder):
            light = builder.add_material(ke=(1.0, 1.0, 1.0))
            builder.add_sphere(center=(0.0, 2.0, 0.0), radius=1.0, material_id=light)

        assert abs(self._emitter_light(_floor_scene(emitters=[add]))[0] - 0.25) < 1e-5

    def test_emissive_sphere_below_horizon(self):
        def add(builder):
            light = builder.add_material(ke=(1.0, 1.0, 1.0))
            builder.add_sphere(center=(0.0, -3.0, 0.0), radius=1.0, material_id=light)

        assert self._emitter_light(_floor_scene(emitters=[add]))[0] == 0.0

    def test_huge_emissive_triangle_approaches_one(self):
        size = 1e4

        def add(builder):
            light = builder.add_material(ke=(1.0, 1.0, 1.0))
            builder.add_triangle((-size, 1.0, -size), (-size, 1.0, 3.0 * size), (3.0 * size, 1.0, -size), light)

        value = self._emitter_light(_floor_scene(emitters=[add]))[0]
        assert 0.95 < value < 1.01

    def test_blocked_emitter(self):
        def add(builder):
            light = builder.add_material(ke=(1.0, 1.0, 1.0))
            builder.add_sphere(center=(0.0, 4.0, 0.0), radius=1.0, material_id=light)

        scene = _floor_scene(blocker=(0.0, 1.5, 0.0), emitters=[add])
        assert self._emitter_light(scene)[0] == 0.0

    def test_blocked_emissive_plane(self):
        """An occluder between the point and the plane removes its light."""

        def add(builder):
            light = builder.add_material(ke=(2.0, 2.0, 2.0))
            builder.add_plane(point=(0.0, 2.0, 0.0), normal=(0.0, -1.0, 0.0), material_id=light)

        scene = _floor_scene(blocker=(0.0, 1.0, 0.0), emitters=[add])
        assert scene.emitter_ids == (2,)
        assert self._emitter_light(scene)[0] == 0.0

    def test_emissive_plane_blocker_off_axis(self):
        """Only the perpendicular is tested; an occluder beside it casts no shadow."""

        def add(builder):
            light = builder.add_material(ke=(2.0, 2.0, 2.0))
            builder.add_plane(point=(0.0, 2.0, 0.0), normal=(0.0, -1.0, 0.0), material_id=light)

        scene = _floor_scene(blocker=(1.0, 1.0, 0.0), emitters=[add])
        assert abs(self._emitter_light(scene)[0] - 2.0) < 1e-5
