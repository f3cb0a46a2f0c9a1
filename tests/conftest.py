"""Pytest configuration for raymax tests.

Taichi must be initialized once per session, before any raymax module that
declares fields is imported; test modules therefore import raymax modules
inside the test functions.
"""

import pytest
import taichi as ti


@pytest.fixture(scope="session", autouse=True)
def init_taichi_session():
    """Initialize Taichi once for the entire test session.

    Using session scope prevents multiple ti.init() calls which can cause
    segmentation faults due to Taichi runtime conflicts.
    """
    import raymax

    raymax.init(arch=ti.cpu, seed=42)
    yield


@pytest.fixture(autouse=True)
def clear_device_scene():
    """Empty device scene storage around each test."""
    from raymax.scene.scene import clear_device_scene as _clear

    _clear()
    yield
    _clear()


@pytest.fixture
def render_config():
    """Small ray tracing configuration for fast renders."""
    from raymax.core.config import RenderConfig

    return RenderConfig(image_width=16, image_height=12, samples_per_pixel=1, max_depth=3, thread_count=2, tile_size=8)
