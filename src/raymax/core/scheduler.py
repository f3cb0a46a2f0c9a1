"""Partitioned multi-threaded render driver.

``Renderer.render`` splits the image into partitions (square tiles or full
rows), puts them on a queue and starts ``thread_count`` worker threads.
Each worker repeatedly claims a partition, renders it with the tile kernel,
copies the result into its own region of the framebuffer and reports
progress. ``Renderer.cancel`` stops workers from claiming further
partitions; partitions already claimed are finished.

Worker threads overlap partition bookkeeping and progress reporting; the
kernels themselves are serialized by ``KERNEL_LOCK`` and each one is
parallel over its pixels. Renders are serialized process-wide by
``RENDER_LOCK`` because the scene and settings are global device state.

Example:
    >>> import raymax
    >>> raymax.init(arch=ti.cpu)
    >>> from raymax.core.config import RenderConfig
    >>> from raymax.core.scheduler import Renderer
    >>> from raymax.scene.cornell_box import create_cornell_box_scene
    >>>
    >>> renderer = Renderer()
    >>> framebuffer = renderer.render(
    ...     create_cornell_box_scene(),
    ...     RenderConfig(image_width=160, image_height=120),
    ...     progress=lambda p: print(f"{p.completed}/{p.total}"),
    ... )
    >>> framebuffer.status
    <RenderStatus.COMPLETED: 'completed'>
"""

import logging
import queue
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass

from raymax.camera.pinhole import setup_camera
from raymax.core.config import PartitionMode, RenderConfig
from raymax.core.framebuffer import Framebuffer, RenderStatus
from raymax.core.integrator import configure_integrator
from raymax.core.runtime import KERNEL_LOCK, RENDER_LOCK
from raymax.core.sampler import configure_sampler, render_partition
from raymax.core.stats import read_counters, reset_counters
from raymax.scene.scene import Scene, upload_scene

logger = logging.getLogger(__name__)


# =============================================================================
# Partitions
# =============================================================================


@dataclass(frozen=True)
class Partition:
    """A rectangle of pixels rendered as one unit of work.

    Attributes:
        index: Position in the partition list.
        x0: Left column.
        y0: Top row.
        width: Number of columns.
        height: Number of rows.
    """

    index: int
    x0: int
    y0: int
    width: int
    height: int

    @property
    def pixel_count(self) -> int:
        return self.width * self.height


def make_partitions(
    width: int,
    height: int,
    mode: PartitionMode = PartitionMode.TILES,
    tile_size: int = 32,
) -> list[Partition]:
    """Split an image into disjoint partitions that cover every pixel.

    Args:
        width: Image width in pixels.
        height: Image height in pixels.
        mode: TILES for tile_size x tile_size squares (clipped at the right
            and bottom edges), ROWS for one partition per image row.
        tile_size: Edge length of square tiles.

    Returns:
        Partitions in row-major order.

    Raises:
        ValueError: If a dimension or the tile size is not positive.
    """
    if width < 1 or height < 1:
        raise ValueError(f"Image dimensions must be positive, got {width}x{height}")
    if tile_size < 1:
        raise ValueError(f"tile_size must be positive, got {tile_size}")

    partitions = []
    if mode == PartitionMode.ROWS:
        for y in range(height):
            partitions.append(Partition(len(partitions), 0, y, width, 1))
    else:
        for y0 in range(0, height, tile_size):
            for x0 in range(0, width, tile_size):
                w = min(tile_size, width - x0)
                h = min(tile_size, height - y0)
                partitions.append(Partition(len(partitions), x0, y0, w, h))
    return partitions


# =============================================================================
# Renderer
# =============================================================================


@dataclass(frozen=True)
class RenderProgress:
    """Progress report passed to the callback after each partition.

    Attributes:
        partition: The partition that was just written.
        completed: Partitions written so far, including this one.
        total: Partitions in the render.
        framebuffer: The framebuffer being filled.
    """

    partition: Partition
    completed: int
    total: int
    framebuffer: Framebuffer

    @property
    def fraction(self) -> float:
        return self.completed / self.total if self.total else 1.0


ProgressCallback = Callable[[RenderProgress], None]


class Renderer:
    """Renders scenes with a pool of worker threads.

    One render runs at a time per process, whichever renderer starts it: a
    second ``render`` call, from any thread or renderer, waits for the first
    to return. ``thread_count`` workers claim partitions concurrently but
    their kernel launches run one after another. ``cancel`` may be called
    from any thread, including from the progress callback; the callback must
    not start a render or query a scene, since the render holds the
    process-wide render lock on another thread.
    """

    def __init__(self) -> None:
        self._cancel_event = threading.Event()

    def cancel(self) -> None:
        """Stop the current render after the partitions already claimed."""
        self._cancel_event.set()

    @property
    def cancel_requested(self) -> bool:
        return self._cancel_event.is_set()

    def render(
        self,
        scene: Scene,
        config: RenderConfig,
        progress: ProgressCallback | None = None,
    ) -> Framebuffer:
        """Render a scene and block until finished or cancelled.

        Args:
            scene: The scene to render; its camera is used.
            config: Render options.
            progress: Optional callback invoked after each partition. It
                runs on a worker thread.

        Returns:
            The framebuffer, with status COMPLETED when every partition was
            rendered and CANCELLED otherwise.

        Raises:
            ConfigurationError: If the configuration is invalid; nothing is
                rendered.
            RuntimeError: If the scene exceeds device storage capacity.
        """
        config.validate()

        with RENDER_LOCK:
            self._cancel_event.clear()
            start = time.perf_counter()

            with KERNEL_LOCK:
                upload_scene(scene)
                setup_camera(scene.camera, config.aspect_ratio)
                configure_integrator(config)
                configure_sampler(config)
                reset_counters()

            partitions = make_partitions(
                config.image_width, config.image_height, config.partition_mode, config.tile_size
            )
            framebuffer = Framebuffer(config.image_width, config.image_height)
            framebuffer.partitions_total = len(partitions)

            work: queue.Queue[Partition] = queue.Queue()
            for partition in partitions:
                work.put(partition)

            logger.info(
                "Rendering %dx%d, %s, %s sampling, %d spp, depth %d: %d partitions on %d threads",
                config.image_width,
                config.image_height,
                config.integrator.name.lower(),
                config.sampling.name.lower(),
                config.samples_per_pixel,
                config.max_depth,
                len(partitions),
                config.thread_count,
            )

            errors: list[BaseException] = []
            threads = [
                threading.Thread(
                    target=self._worker,
                    args=(work, framebuffer, progress, errors),
                    name=f"raymax-worker-{i}",
                    daemon=True,
                )
                for i in range(config.thread_count)
            ]
            for t in threads:
                t.start()
            for t in threads:
                t.join()

            elapsed = time.perf_counter() - start
            with KERNEL_LOCK:
                framebuffer.stats = read_counters(elapsed)

            if errors:
                framebuffer.status = RenderStatus.CANCELLED
                raise errors[0]

            if framebuffer.partitions_completed == framebuffer.partitions_total:
                framebuffer.status = RenderStatus.COMPLETED
                stats = framebuffer.stats
                logger.info(
                    "Render completed in %.3fs: %d primary, %d secondary, %d shadow rays (%.0f rays/s)",
                    elapsed,
                    stats.primary_rays,
                    stats.secondary_rays,
                    stats.shadow_rays,
                    stats.rays_per_second,
                )
                logger.debug(
                    "Intersection tests: %d sphere, %d plane, %d triangle, %d box",
                    stats.sphere_tests,
                    stats.plane_tests,
                    stats.triangle_tests,
                    stats.aabb_tests,
                )
            else:
                framebuffer.status = RenderStatus.CANCELLED
                logger.warning(
                    "Render cancelled after %d of %d partitions (%.3fs)",
                    framebuffer.partitions_completed,
                    framebuffer.partitions_total,
                    elapsed,
                )
            return framebuffer

    def _worker(
        self,
        work: "queue.Queue[Partition]",
        framebuffer: Framebuffer,
        progress: ProgressCallback | None,
        errors: list[BaseException],
    ) -> None:
        while not self._cancel_event.is_set():
            try:
                partition = work.get_nowait()
            except queue.Empty:
                break
            try:
                tile = render_partition(partition.x0, partition.y0, partition.width, partition.height)
                framebuffer.write_region(partition.x0, partition.y0, tile)
                completed = framebuffer.mark_partition_done()
                logger.debug(
                    "Partition %d (%d, %d, %dx%d) done [%d/%d]",
                    partition.index,
                    partition.x0,
                    partition.y0,
                    partition.width,
                    partition.height,
                    completed,
                    framebuffer.partitions_total,
                )
                if progress is not None:
                    progress(RenderProgress(partition, completed, framebuffer.partitions_total, framebuffer))
            except Exception as e:
                logger.exception("Worker failed on partition %d", partition.index)
                errors.append(e)
                self._cancel_event.set()
                break


def render(scene: Scene, config: RenderConfig | None = None, progress: ProgressCallback | None = None) -> Framebuffer:
    """Render with a fresh ``Renderer``; ``config`` defaults to ``RenderConfig()``."""
    return Renderer().render(scene, config if config is not None else RenderConfig(), progress)
