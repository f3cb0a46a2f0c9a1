"""Image export utilities for rendered images.

Supported formats:
    - PNG (8-bit sRGB via Pillow)

Example:
    >>> from raymax.core.scheduler import render
    >>> from raymax.preview.export import save_png
    >>>
    >>> framebuffer = render(scene, config)
    >>> save_png(framebuffer, "output.png", tone_map="reinhard")
"""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING

import numpy as np
import numpy.typing as npt
from PIL import Image as PILImage

from raymax.preview.tonemap import ToneMapMethod, process_image_for_display

if TYPE_CHECKING:
    from raymax.core.framebuffer import Framebuffer


def image_to_uint8(
    image: npt.NDArray[np.float32],
    *,
    tone_map: ToneMapMethod = "none",
    gamma: float = 2.2,
    exposure: float = 1.0,
) -> npt.NDArray[np.uint8]:
    """Convert a linear float32 image to uint8 for display/export.

    Args:
        image: Linear HDR image array of shape (H, W, 3).
        tone_map: Tone mapping method ("none", "reinhard", or "exposure").
        gamma: Gamma correction value (2.2 for sRGB, 1.0 to keep linear).
        exposure: Exposure value for exposure tone mapping.

    Returns:
        8-bit image array of shape (H, W, 3) with dtype uint8.
    """
    processed = process_image_for_display(image, tone_map=tone_map, gamma=gamma, exposure=exposure)
    return (processed * 255.0 + 0.5).astype(np.uint8)


def save_png_from_array(
    image: npt.NDArray[np.float32],
    filepath: str | Path,
    *,
    tone_map: ToneMapMethod = "none",
    gamma: float = 2.2,
    exposure: float = 1.0,
) -> None:
    """Save a linear NumPy image as an 8-bit PNG.

    Args:
        image: Linear HDR image array of shape (H, W, 3).
        filepath: Output file path (should end in .png).
        tone_map: Tone mapping method ("none", "reinhard", or "exposure").
        gamma: Gamma correction value (2.2 for sRGB, 1.0 to keep linear).
        exposure: Exposure value for exposure tone mapping.
    """
    image_uint8 = image_to_uint8(image, tone_map=tone_map, gamma=gamma, exposure=exposure)
    PILImage.fromarray(image_uint8).save(filepath)


def save_png(
    framebuffer: Framebuffer,
    filepath: str | Path,
    *,
    tone_map: ToneMapMethod = "none",
    gamma: float = 2.2,
    exposure: float = 1.0,
) -> None:
    """Save a rendered framebuffer as an 8-bit PNG.

    Args:
        framebuffer: Result of a render.
        filepath: Output file path (should end in .png).
        tone_map: Tone mapping method ("none", "reinhard", or "exposure").
        gamma: Gamma correction value (2.2 for sRGB, 1.0 to keep linear).
        exposure: Exposure value for exposure tone mapping.
    """
    save_png_from_array(framebuffer.pixels, filepath, tone_map=tone_map, gamma=gamma, exposure=exposure)


def load_png(filepath: str | Path) -> npt.NDArray[np.uint8]:
    """Read a PNG back as a (H, W, 3) uint8 array."""
    with PILImage.open(filepath) as img:
        return np.asarray(img.convert("RGB"), dtype=np.uint8)


def compute_rmse(
    image_a: npt.NDArray[np.floating],
    image_b: npt.NDArray[np.floating],
) -> float:
    """Compute root mean squared error between two images.

    Raises:
        ValueError: If image shapes don't match.
    """
    if image_a.shape != image_b.shape:
        raise ValueError(f"Image shapes must match: {image_a.shape} vs {image_b.shape}")

    diff = image_a.astype(np.float64) - image_b.astype(np.float64)
    return float(np.sqrt(np.mean(diff**2)))
