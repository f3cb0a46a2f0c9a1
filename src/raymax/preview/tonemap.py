"""Tone mapping and gamma correction for rendered images.

Rendered colors are linear and unbounded. These NumPy helpers map them into
[0, 1] for 8-bit output:
    - Reinhard: c / (1 + c)
    - Exposure: 1 - exp(-c * exposure)
    - Gamma: c^(1 / gamma), 2.2 for sRGB displays
"""

from typing import Literal

import numpy as np
import numpy.typing as npt

# Type alias for tone mapping options
ToneMapMethod = Literal["none", "reinhard", "exposure"]


def tone_map_reinhard(image: npt.NDArray[np.float32]) -> npt.NDArray[np.float32]:
    """Apply Reinhard tone mapping: L / (1 + L).

    Args:
        image: Linear HDR image array of shape (H, W, 3).

    Returns:
        Tone mapped image in [0, 1) range.
    """
    image = np.maximum(image, 0.0)
    return (image / (1.0 + image)).astype(np.float32)


def tone_map_exposure(image: npt.NDArray[np.float32], exposure: float = 1.0) -> npt.NDArray[np.float32]:
    """Apply exposure-based tone mapping: 1 - exp(-c * exposure).

    Args:
        image: Linear HDR image array of shape (H, W, 3).
        exposure: Exposure value. Higher values brighten the image.

    Returns:
        Tone mapped image in [0, 1) range.

    Raises:
        ValueError: If exposure is not positive.
    """
    if exposure <= 0.0:
        raise ValueError(f"exposure must be positive, got {exposure}")
    image = np.maximum(image, 0.0)
    return (1.0 - np.exp(-image * exposure)).astype(np.float32)


def apply_gamma(image: npt.NDArray[np.float32], gamma: float = 2.2) -> npt.NDArray[np.float32]:
    """Apply gamma encoding for display.

    Args:
        image: Linear image array in [0, 1] range.
        gamma: Gamma value (2.2 for sRGB, 1.0 for none).

    Returns:
        Gamma encoded image.

    Raises:
        ValueError: If gamma is not positive.
    """
    if gamma <= 0.0:
        raise ValueError(f"gamma must be positive, got {gamma}")
    if gamma == 1.0:
        return image

    # Clamp to [0, 1] before gamma to avoid NaN from negative values
    image = np.clip(image, 0.0, 1.0)
    return np.power(image, 1.0 / gamma).astype(np.float32)


def process_image_for_display(
    image: npt.NDArray[np.float32],
    tone_map: ToneMapMethod = "none",
    gamma: float = 2.2,
    exposure: float = 1.0,
) -> npt.NDArray[np.float32]:
    """Tone map, gamma encode and clamp an image to [0, 1].

    Non-finite values are treated as zero.

    Args:
        image: Linear HDR image array of shape (H, W, 3).
        tone_map: Tone mapping method ("none", "reinhard", or "exposure").
        gamma: Gamma correction value.
        exposure: Exposure value for exposure tone mapping.

    Returns:
        Processed image in [0, 1] range, float32.

    Raises:
        ValueError: If the tone mapping method is unknown.
    """
    result = np.nan_to_num(np.asarray(image, dtype=np.float32), nan=0.0, posinf=0.0, neginf=0.0)

    if tone_map == "reinhard":
        result = tone_map_reinhard(result)
    elif tone_map == "exposure":
        result = tone_map_exposure(result, exposure)
    elif tone_map != "none":
        raise ValueError(f"Unknown tone mapping method: {tone_map}")

    result = apply_gamma(result, gamma)
    return np.clip(result, 0.0, 1.0).astype(np.float32)
