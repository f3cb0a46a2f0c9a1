"""Render output buffer.

A ``Framebuffer`` holds the linear RGB result of a render as a float32
array of shape (height, width, 3), row 0 at the top, together with a mask of
the pixels written so far. Worker threads write disjoint rectangles; a
second write to any pixel raises ``RuntimeError``.
"""

import threading
from enum import Enum

import numpy as np
import numpy.typing as npt

from raymax.core.stats import RenderStats
from raymax.preview.export import image_to_uint8
from raymax.preview.tonemap import ToneMapMethod


class RenderStatus(Enum):
    """How a render ended."""

    RUNNING = "running"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class Framebuffer:
    """Output image of one render.

    Attributes:
        width: Image width in pixels.
        height: Image height in pixels.
        pixels: Linear RGB colors, shape (height, width, 3), float32.
        status: RUNNING while the render is in progress, then COMPLETED or
            CANCELLED.
        partitions_completed: Partitions written so far.
        partitions_total: Partitions the image was split into.
        stats: Ray counts and timing, set when the render ends.
    """

    def __init__(self, width: int, height: int) -> None:
        self.width = width
        self.height = height
        self.pixels = np.zeros((height, width, 3), dtype=np.float32)
        self._written = np.zeros((height, width), dtype=bool)
        self._count_lock = threading.Lock()
        self.status = RenderStatus.RUNNING
        self.partitions_completed = 0
        self.partitions_total = 0
        self.stats = RenderStats()

    def write_region(self, x0: int, y0: int, tile: npt.NDArray[np.float32]) -> None:
        """Copy a rendered rectangle into the image.

        Args:
            x0: Left column of the rectangle.
            y0: Top row of the rectangle.
            tile: Colors of shape (h, w, 3).

        Raises:
            ValueError: If the rectangle does not fit in the image.
            RuntimeError: If any pixel of the rectangle was already written.
        """
        h, w = tile.shape[0], tile.shape[1]
        if x0 < 0 or y0 < 0 or x0 + w > self.width or y0 + h > self.height:
            raise ValueError(
                f"Region ({x0}, {y0}, {w}x{h}) exceeds framebuffer ({self.width}x{self.height})"
            )
        region = (slice(y0, y0 + h), slice(x0, x0 + w))
        if self._written[region].any():
            raise RuntimeError(f"Pixels in region ({x0}, {y0}, {w}x{h}) were already written")
        self.pixels[region] = tile
        self._written[region] = True

    def mark_partition_done(self) -> int:
        """Increment the completed partition count and return the new value."""
        with self._count_lock:
            self.partitions_completed += 1
            return self.partitions_completed

    @property
    def written_mask(self) -> npt.NDArray[np.bool_]:
        """Copy of the per-pixel written flags, shape (height, width)."""
        return self._written.copy()

    @property
    def coverage(self) -> float:
        """Fraction of pixels written."""
        if self._written.size == 0:
            return 0.0
        return float(self._written.mean())

    @property
    def complete(self) -> bool:
        """True when the render finished and every pixel was written."""
        return self.status is RenderStatus.COMPLETED and bool(self._written.all())

    def pixel(self, x: int, y: int) -> tuple[float, float, float]:
        """Color of the pixel at column x, row y (row 0 at the top)."""
        r, g, b = self.pixels[y, x]
        return (float(r), float(g), float(b))

    def to_image(
        self,
        *,
        tone_map: ToneMapMethod = "none",
        gamma: float = 2.2,
        exposure: float = 1.0,
    ) -> npt.NDArray[np.uint8]:
        """Convert to an 8-bit RGB array for display or export.

        Args:
            tone_map: Tone mapping method ("none", "reinhard", or "exposure").
            gamma: Gamma correction value; 1.0 keeps linear values.
            exposure: Exposure value for exposure tone mapping.

        Returns:
            Array of shape (height, width, 3) with dtype uint8.
        """
        return image_to_uint8(self.pixels, tone_map=tone_map, gamma=gamma, exposure=exposure)
