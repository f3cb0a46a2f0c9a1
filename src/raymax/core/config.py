"""Render configuration and validation.

A ``RenderConfig`` is an immutable bundle of the options that drive one
render: integrator choice, sampling, recursion depth, image size and
parallelism. ``validate`` collects every problem and raises a single
``ConfigurationError`` so the scheduler can reject a bad configuration
before any work is started.

This module declares no Taichi fields and can be imported before
``raymax.init()``.

Example:
    >>> config = RenderConfig.from_dict({
    ...     "integrator": "path-trace",
    ...     "samples-per-pixel": 64,
    ...     "image-width": 320,
    ...     "image-height": 240,
    ... })
    >>> config.validate()
"""

import math
import os
from dataclasses import dataclass, field, fields, replace
from enum import IntEnum
from typing import Any

# Maximum supported image dimensions, matching the camera and tile limits
MAX_IMAGE_WIDTH = 2048
MAX_IMAGE_HEIGHT = 2048

# Upper bounds that keep a single pixel's work finite
MAX_SAMPLES_PER_PIXEL = 1 << 16
MAX_DEPTH_LIMIT = 1024

# Deepest pixel subdivision for adaptive sampling (4^depth boxes per pixel)
MAX_ADAPTIVE_DEPTH = 6


class ConfigurationError(ValueError):
    """Raised when a render configuration is invalid.

    Attributes:
        problems: Every validation failure found, in field order.
    """

    def __init__(self, problems: list[str]) -> None:
        self.problems = list(problems)
        super().__init__("Invalid render configuration: " + "; ".join(self.problems))


class IntegratorType(IntEnum):
    """Light transport model used to compute pixel radiance."""

    RAY_TRACE = 0
    PATH_TRACE = 1

    @classmethod
    def parse(cls, value: "IntegratorType | str | int") -> "IntegratorType":
        """Convert a name such as ``"ray-trace"`` or ``"path_trace"`` to a member.

        Raises:
            ValueError: If the value names no integrator.
        """
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            key = value.strip().lower().replace("-", "_")
            aliases = {"ray_trace": cls.RAY_TRACE, "whitted": cls.RAY_TRACE, "path_trace": cls.PATH_TRACE}
            if key in aliases:
                return aliases[key]
            raise ValueError(f"Unknown integrator: {value!r}")
        return cls(value)


class PartitionMode(IntEnum):
    """How the image is split into independently rendered partitions."""

    TILES = 0
    ROWS = 1

    @classmethod
    def parse(cls, value: "PartitionMode | str | int") -> "PartitionMode":
        """Convert ``"tiles"``, ``"rows"`` or ``"lines"`` to a member.

        Raises:
            ValueError: If the value names no partition mode.
        """
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            key = value.strip().lower()
            aliases = {"tiles": cls.TILES, "tile": cls.TILES, "rows": cls.ROWS, "lines": cls.ROWS}
            if key in aliases:
                return aliases[key]
            raise ValueError(f"Unknown partition mode: {value!r}")
        return cls(value)


class SamplingMode(IntEnum):
    """How sub-pixel sample positions are chosen."""

    STRATIFIED = 0
    ADAPTIVE = 1

    @classmethod
    def parse(cls, value: "SamplingMode | str | int") -> "SamplingMode":
        """Convert ``"stratified"`` or ``"adaptive"`` to a member.

        Raises:
            ValueError: If the value names no sampling mode.
        """
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            key = value.strip().lower()
            aliases = {"stratified": cls.STRATIFIED, "jittered": cls.STRATIFIED, "adaptive": cls.ADAPTIVE}
            if key in aliases:
                return aliases[key]
            raise ValueError(f"Unknown sampling mode: {value!r}")
        return cls(value)


def _default_thread_count() -> int:
    return os.cpu_count() or 1


@dataclass(frozen=True)
class RenderConfig:
    """Options for a single render.

    Attributes:
        integrator: Ray tracing (deterministic) or path tracing (stochastic).
        samples_per_pixel: Sub-pixel samples averaged into each pixel.
        max_depth: Maximum number of surface interactions along a path.
        image_width: Output width in pixels.
        image_height: Output height in pixels.
        thread_count: Number of worker threads claiming partitions.
        tile_size: Edge length in pixels of square partitions.
        partition_mode: Square tiles or full image rows.
        rr_start_depth: Bounce index from which path tracing applies
            Russian roulette.
        background: Radiance returned for rays that escape the scene.
        sky: Replace the background with a white-to-blue gradient.
        seed: Seed for sub-pixel jitter.
        sampling: Stratified jitter with ``samples_per_pixel`` samples, or
            adaptive corner sampling, which ignores ``samples_per_pixel``
            and splits a pixel box into four while its corner colors differ.
        adaptive_max_depth: Deepest subdivision level of adaptive sampling.
        adaptive_threshold: Largest RGB distance between two corners of a
            box that is left unsplit.
    """

    integrator: IntegratorType = IntegratorType.RAY_TRACE
    samples_per_pixel: int = 1
    max_depth: int = 5
    image_width: int = 320
    image_height: int = 240
    thread_count: int = field(default_factory=_default_thread_count)
    tile_size: int = 32
    partition_mode: PartitionMode = PartitionMode.TILES
    rr_start_depth: int = 3
    background: tuple[float, float, float] = (0.0, 0.0, 0.0)
    sky: bool = False
    seed: int = 0
    sampling: SamplingMode = SamplingMode.STRATIFIED
    adaptive_max_depth: int = 2
    adaptive_threshold: float = 0.3

    @property
    def aspect_ratio(self) -> float:
        """Width divided by height."""
        return self.image_width / self.image_height

    def validate(self) -> None:
        """Check every option.

        Raises:
            ConfigurationError: Listing all invalid options.
        """
        problems = []

        if not isinstance(self.integrator, IntegratorType):
            problems.append(f"integrator must be an IntegratorType, got {self.integrator!r}")
        if not isinstance(self.partition_mode, PartitionMode):
            problems.append(f"partition_mode must be a PartitionMode, got {self.partition_mode!r}")
        if not isinstance(self.sampling, SamplingMode):
            problems.append(f"sampling must be a SamplingMode, got {self.sampling!r}")

        positive = {
            "samples_per_pixel": (self.samples_per_pixel, MAX_SAMPLES_PER_PIXEL),
            "max_depth": (self.max_depth, MAX_DEPTH_LIMIT),
            "image_width": (self.image_width, MAX_IMAGE_WIDTH),
            "image_height": (self.image_height, MAX_IMAGE_HEIGHT),
            "thread_count": (self.thread_count, None),
            "tile_size": (self.tile_size, None),
        }
        for name, (value, upper) in positive.items():
            if not _is_int(value) or value < 1:
                problems.append(f"{name} must be a positive integer, got {value!r}")
            elif upper is not None and value > upper:
                problems.append(f"{name} ({value}) exceeds maximum supported ({upper})")

        if not _is_int(self.rr_start_depth) or self.rr_start_depth < 0:
            problems.append(f"rr_start_depth must be a non-negative integer, got {self.rr_start_depth!r}")
        if not _is_int(self.seed):
            problems.append(f"seed must be an integer, got {self.seed!r}")
        if not _is_int(self.adaptive_max_depth) or not 0 <= self.adaptive_max_depth <= MAX_ADAPTIVE_DEPTH:
            problems.append(
                f"adaptive_max_depth must be an integer in [0, {MAX_ADAPTIVE_DEPTH}], got {self.adaptive_max_depth!r}"
            )
        if not _is_number(self.adaptive_threshold) or not (
            math.isfinite(self.adaptive_threshold) and self.adaptive_threshold >= 0.0
        ):
            problems.append(f"adaptive_threshold must be a finite non-negative number, got {self.adaptive_threshold!r}")

        if not _is_color(self.background):
            problems.append(f"background must be three finite non-negative floats, got {self.background!r}")

        if problems:
            raise ConfigurationError(problems)

    def with_options(self, **changes: Any) -> "RenderConfig":
        """Return a copy with some options replaced."""
        return replace(self, **changes)

    def to_dict(self) -> dict[str, Any]:
        """Serialize to a dictionary using the hyphenated option names."""
        result: dict[str, Any] = {}
        for f in fields(self):
            value = getattr(self, f.name)
            if f.name == "integrator":
                value = value.name.lower().replace("_", "-")
            elif f.name == "partition_mode":
                value = value.name.lower()
            elif f.name == "sampling":
                value = value.name.lower()
            elif f.name == "background":
                value = list(value)
            result[f.name.replace("_", "-")] = value
        return result

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "RenderConfig":
        """Build a configuration from a dictionary of options.

        Keys may use hyphens (``samples-per-pixel``) or underscores.
        Missing keys take their defaults.

        Raises:
            ConfigurationError: If a key is unknown or a value cannot be
                converted.
        """
        known = {f.name for f in fields(cls)}
        kwargs: dict[str, Any] = {}
        problems = []

        for key, value in data.items():
            name = key.replace("-", "_")
            if name not in known:
                problems.append(f"unknown option {key!r}")
                continue
            try:
                if name == "integrator":
                    value = IntegratorType.parse(value)
                elif name == "partition_mode":
                    value = PartitionMode.parse(value)
                elif name == "sampling":
                    value = SamplingMode.parse(value)
                elif name == "adaptive_threshold":
                    value = float(value)
                elif name == "background":
                    value = tuple(float(c) for c in value)
                elif name == "sky":
                    value = bool(value)
            except (TypeError, ValueError) as e:
                problems.append(f"{key}: {e}")
                continue
            kwargs[name] = value

        if problems:
            raise ConfigurationError(problems)
        return cls(**kwargs)


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _is_color(value: Any) -> bool:
    if not isinstance(value, (tuple, list)) or len(value) != 3:
        return False
    try:
        return all(math.isfinite(float(c)) and float(c) >= 0.0 for c in value)
    except (TypeError, ValueError):
        return False
