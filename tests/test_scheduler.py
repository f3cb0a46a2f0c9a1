"""Tests for partitioning, the framebuffer and the threaded renderer."""

import threading

import numpy as np
import pytest


def _red_sphere_scene():
    """Red sphere at z=-5 lit from above, camera at the origin looking down -z."""
    from raymax.camera.pinhole import PinholeCamera
    from raymax.scene.scene import SceneBuilder

    builder = SceneBuilder()
    red = builder.add_material(kd=(1.0, 0.0, 0.0))
    builder.add_sphere((0.0, 0.0, -5.0), 1.0, red)
    builder.add_point_light((0.0, 5.0, 0.0), intensity=40.0)
    builder.add_ambient_light(intensity=0.05)
    builder.set_camera(PinholeCamera(position=(0.0, 0.0, 0.0), direction=(0.0, 0.0, -1.0), vfov=40.0))
    return builder.build()


# =============================================================================
# Partitions
# =============================================================================


class TestMakePartitions:
    """Tests for make_partitions."""

    @pytest.mark.parametrize("mode_name", ["tiles", "rows"])
    @pytest.mark.parametrize("size", [(10, 7), (1, 1), (33, 64)])
    def test_cover_every_pixel_once(self, mode_name, size):
        from raymax.core.config import PartitionMode
        from raymax.core.scheduler import make_partitions

        width, height = size
        coverage = np.zeros((height, width), dtype=np.int32)
        partitions = make_partitions(width, height, PartitionMode.parse(mode_name), tile_size=4)
        for index, p in enumerate(partitions):
            assert p.index == index
            assert p.width > 0 and p.height > 0
            coverage[p.y0 : p.y0 + p.height, p.x0 : p.x0 + p.width] += 1
        assert (coverage == 1).all()
        assert sum(p.pixel_count for p in partitions) == width * height

    def test_tile_counts(self):
        from raymax.core.config import PartitionMode
        from raymax.core.scheduler import make_partitions

        tiles = make_partitions(10, 7, PartitionMode.TILES, tile_size=4)
        assert len(tiles) == 6
        # Edge tiles are clipped
        assert (tiles[2].width, tiles[2].height) == (2, 4)
        assert (tiles[5].width, tiles[5].height) == (2, 3)

    def test_rows(self):
        from raymax.core.config import PartitionMode
        from raymax.core.scheduler import make_partitions

        rows = make_partitions(10, 7, PartitionMode.ROWS)
        assert len(rows) == 7
        assert all(p.width == 10 and p.height == 1 and p.y0 == i for i, p in enumerate(rows))

    @pytest.mark.parametrize("args", [(0, 5, 4), (5, 0, 4), (5, 5, 0)])
    def test_invalid(self, args):
        from raymax.core.config import PartitionMode
        from raymax.core.scheduler import make_partitions

        width, height, tile_size = args
        with pytest.raises(ValueError):
            make_partitions(width, height, PartitionMode.TILES, tile_size)


# =============================================================================
# Framebuffer
# =============================================================================


class TestFramebuffer:
    """Tests for Framebuffer region writes."""

    def test_write_region(self):
        from raymax.core.framebuffer import Framebuffer, RenderStatus

        fb = Framebuffer(4, 3)
        assert fb.status is RenderStatus.RUNNING
        fb.write_region(1, 1, np.ones((2, 2, 3), dtype=np.float32))
        assert fb.pixel(1, 1) == (1.0, 1.0, 1.0)
        assert fb.pixel(0, 0) == (0.0, 0.0, 0.0)
        assert fb.coverage == pytest.approx(4 / 12)
        assert fb.written_mask.sum() == 4
        assert not fb.complete

    def test_double_write_rejected(self):
        from raymax.core.framebuffer import Framebuffer

        fb = Framebuffer(4, 4)
        fb.write_region(0, 0, np.zeros((2, 2, 3), dtype=np.float32))
        with pytest.raises(RuntimeError, match="already written"):
            fb.write_region(1, 1, np.zeros((2, 2, 3), dtype=np.float32))

    def test_out_of_bounds_rejected(self):
        from raymax.core.framebuffer import Framebuffer

        fb = Framebuffer(4, 4)
        with pytest.raises(ValueError, match="exceeds"):
            fb.write_region(3, 0, np.zeros((1, 2, 3), dtype=np.float32))
        with pytest.raises(ValueError):
            fb.write_region(-1, 0, np.zeros((1, 1, 3), dtype=np.float32))

    def test_mark_partition_done_is_thread_safe(self):
        from raymax.core.framebuffer import Framebuffer

        fb = Framebuffer(1, 1)

        def bump():
            for _ in range(1000):
                fb.mark_partition_done()

        threads = [threading.Thread(target=bump) for _ in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        assert fb.partitions_completed == 4000

    def test_to_image(self):
        from raymax.core.framebuffer import Framebuffer

        fb = Framebuffer(2, 1)
        fb.write_region(0, 0, np.array([[[0.0, 0.5, 1.0], [2.0, 2.0, 2.0]]], dtype=np.float32))
        img = fb.to_image(gamma=1.0)
        assert img.dtype == np.uint8
        assert img.shape == (1, 2, 3)
        assert img[0, 0].tolist() == [0, 128, 255]
        assert img[0, 1].tolist() == [255, 255, 255]


# =============================================================================
# Renderer
# =============================================================================


class TestRenderer:
    """Tests for the threaded render driver."""

    def test_render_completes(self, render_config):
        from raymax.core.framebuffer import RenderStatus
        from raymax.core.scheduler import Renderer

        fb = Renderer().render(_red_sphere_scene(), render_config)
        assert fb.status is RenderStatus.COMPLETED
        assert fb.complete
        assert fb.coverage == 1.0
        assert fb.partitions_completed == fb.partitions_total == 4
        assert fb.pixels.shape == (12, 16, 3)

    def test_red_sphere_image(self):
        """The sphere fills the center in red; the corners show the background."""
        from raymax.core.config import RenderConfig
        from raymax.core.scheduler import render

        config = RenderConfig(image_width=21, image_height=21, thread_count=2, tile_size=8, background=(0.0, 0.0, 0.2))
        fb = render(_red_sphere_scene(), config)
        r, g, b = fb.pixel(10, 10)
        assert r > 0.1
        assert r > 3.0 * g and r > 3.0 * b
        np.testing.assert_allclose(fb.pixel(0, 0), (0.0, 0.0, 0.2), atol=1e-6)
        np.testing.assert_allclose(fb.pixel(20, 20), (0.0, 0.0, 0.2), atol=1e-6)
        # Lit from above: the upper half of the sphere is brighter
        assert fb.pixel(10, 7)[0] > fb.pixel(10, 13)[0]

    @pytest.mark.parametrize("threads, mode", [(4, "tiles"), (3, "rows"), (1, "rows")])
    def test_thread_count_does_not_change_image(self, threads, mode):
        from raymax.core.config import PartitionMode, RenderConfig
        from raymax.core.scheduler import render
        from raymax.scene.cornell_box import create_cornell_box_scene

        scene = create_cornell_box_scene()
        base = RenderConfig(image_width=24, image_height=18, samples_per_pixel=2, thread_count=1, tile_size=8)
        reference = render(scene, base).pixels
        other = render(
            scene, base.with_options(thread_count=threads, partition_mode=PartitionMode.parse(mode))
        ).pixels
        assert np.array_equal(reference, other)

    def test_progress_reports_every_partition(self, render_config):
        from raymax.core.scheduler import Renderer

        reports = []
        lock = threading.Lock()

        def progress(p):
            with lock:
                reports.append((p.partition.index, p.completed, p.total, p.fraction))

        fb = Renderer().render(_red_sphere_scene(), render_config, progress=progress)
        assert len(reports) == fb.partitions_total
        assert sorted(r[0] for r in reports) == list(range(fb.partitions_total))
        assert sorted(r[1] for r in reports) == list(range(1, fb.partitions_total + 1))
        assert max(r[3] for r in reports) == 1.0

    def test_cancel_from_progress_callback(self, render_config):
        """With one worker, cancelling after the first partition stops there."""
        from raymax.core.framebuffer import RenderStatus
        from raymax.core.scheduler import Renderer

        renderer = Renderer()
        seen = []

        def progress(p):
            seen.append(p.partition)
            renderer.cancel()

        config = render_config.with_options(thread_count=1)
        fb = renderer.render(_red_sphere_scene(), config, progress=progress)
        assert fb.status is RenderStatus.CANCELLED
        assert not fb.complete
        assert fb.partitions_completed == 1
        assert len(seen) == 1
        first = seen[0]
        expected = np.zeros((fb.height, fb.width), dtype=bool)
        expected[first.y0 : first.y0 + first.height, first.x0 : first.x0 + first.width] = True
        assert np.array_equal(fb.written_mask, expected)
        assert renderer.cancel_requested

    def test_cancel_with_several_workers(self, render_config):
        """Partitions already claimed finish; nothing new is claimed after cancel."""
        from raymax.core.config import PartitionMode
        from raymax.core.framebuffer import RenderStatus
        from raymax.core.scheduler import Renderer

        renderer = Renderer()
        lock = threading.Lock()
        seen = []
        at_cancel = []

        def progress(p):
            with lock:
                seen.append(p.partition)
                if not at_cancel:
                    at_cancel.append(p.framebuffer.partitions_completed)
                    renderer.cancel()

        config = render_config.with_options(thread_count=4, partition_mode=PartitionMode.ROWS)
        fb = renderer.render(_red_sphere_scene(), config, progress=progress)
        assert fb.partitions_total == 12
        assert fb.status is RenderStatus.CANCELLED
        assert fb.partitions_completed - at_cancel[0] <= config.thread_count
        assert fb.partitions_completed == len(seen)
        expected = np.zeros((fb.height, fb.width), dtype=bool)
        for p in seen:
            expected[p.y0 : p.y0 + p.height, p.x0 : p.x0 + p.width] = True
        assert np.array_equal(fb.written_mask, expected)
        # Completed rows hold rendered pixels, the rest stays black
        assert not fb.pixels[~expected].any()

    def test_renderer_reusable_after_cancel(self, render_config):
        from raymax.core.framebuffer import RenderStatus
        from raymax.core.scheduler import Renderer

        renderer = Renderer()
        renderer.cancel()
        fb = renderer.render(_red_sphere_scene(), render_config)
        assert fb.status is RenderStatus.COMPLETED
        assert not renderer.cancel_requested

    def test_invalid_config_renders_nothing(self):
        from raymax.core.config import ConfigurationError, RenderConfig
        from raymax.core.scheduler import Renderer

        calls = []
        with pytest.raises(ConfigurationError):
            Renderer().render(_red_sphere_scene(), RenderConfig(samples_per_pixel=0), progress=calls.append)
        assert calls == []

    def test_worker_error_is_raised(self, render_config):
        from raymax.core.scheduler import Renderer

        def progress(p):
            raise KeyError("progress failed")

        with pytest.raises(KeyError, match="progress failed"):
            Renderer().render(_red_sphere_scene(), render_config, progress=progress)

    def test_default_config(self):
        from raymax.core.scheduler import render

        fb = render(_red_sphere_scene())
        assert fb.pixels.shape == (240, 320, 3)
        assert fb.complete

    def test_stats(self, render_config):
        from raymax.core.scheduler import render

        fb = render(_red_sphere_scene(), render_config.with_options(samples_per_pixel=2))
        assert fb.stats.primary_rays == 16 * 12 * 2
        assert fb.stats.elapsed_seconds > 0.0
        assert fb.stats.rays_per_second > 0.0

    def test_concurrent_renders_do_not_mix(self):
        """Two renderers started together each produce their own image."""
        from raymax.camera.pinhole import PinholeCamera
        from raymax.core.config import RenderConfig
        from raymax.core.scheduler import Renderer
        from raymax.scene.scene import SceneBuilder

        builder = SceneBuilder()
        green = builder.add_material(kd=(0.0, 1.0, 0.0))
        builder.add_sphere((0.5, 0.0, -4.0), 1.0, green)
        builder.add_point_light((0.0, 5.0, 0.0), intensity=30.0)
        builder.set_camera(PinholeCamera(position=(0.0, 0.0, 0.0), direction=(0.0, 0.0, -1.0), vfov=50.0))
        jobs = {
            "red": (_red_sphere_scene(), RenderConfig(image_width=64, image_height=64, thread_count=2, tile_size=16)),
            "green": (builder.build(), RenderConfig(image_width=48, image_height=64, thread_count=3, tile_size=8)),
        }
        references = {name: Renderer().render(scene, config) for name, (scene, config) in jobs.items()}

        results = {}
        errors = []
        barrier = threading.Barrier(len(jobs))

        def run(name):
            scene, config = jobs[name]
            try:
                barrier.wait()
                results[name] = Renderer().render(scene, config)
            except Exception as e:
                errors.append(e)

        threads = [threading.Thread(target=run, args=(name,)) for name in jobs]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert errors == []
        for name, reference in references.items():
            fb = results[name]
            assert fb.complete
            assert np.array_equal(fb.pixels, reference.pixels)
            assert fb.stats.primary_rays == reference.stats.primary_rays == fb.width * fb.height

    def test_scene_query_waits_for_render(self, render_config):
        """A scene query from another thread sees its own scene, not the one being rendered."""
        from raymax.core.scheduler import Renderer
        from raymax.scene.scene import SceneBuilder

        builder = SceneBuilder()
        mat = builder.add_material(kd=(1.0, 1.0, 1.0))
        builder.add_plane((0.0, -2.0, 0.0), (0.0, 1.0, 0.0), mat)
        floor = builder.build()

        hits = []
        queries = []

        def query():
            hits.append(floor.intersect((0.0, 0.0, 0.0), (0.0, -1.0, 0.0)))

        def progress(p):
            if not queries:
                queries.append(threading.Thread(target=query))
                queries[0].start()

        fb = Renderer().render(_red_sphere_scene(), render_config.with_options(thread_count=1), progress=progress)
        queries[0].join()
        assert fb.complete
        assert fb.stats.primary_rays == fb.width * fb.height
        assert len(hits) == 1 and hits[0] is not None
        assert hits[0].t == pytest.approx(2.0, abs=1e-4)
