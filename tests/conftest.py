"""Pytest configuration for lumen tests.

This module provides shared fixtures for all test modules, including
Taichi initialization which must happen once per session.
"""

import pytest
import taichi as ti


@pytest.fixture(scope="session", autouse=True)
def init_taichi_session():
    """Initialize Taichi once for the entire test session.

    Using session scope prevents multiple ti.init() calls, which would
    invalidate the module-level fields declared by the package.
    """
    ti.init(arch=ti.cpu, default_fp=ti.f64, random_seed=42)
    yield


@pytest.fixture(autouse=True)
def clear_all_scene_data():
    """Clear the shape, entity and image tables around each test.

    This ensures tests are isolated from each other.
    """
    # Import here to ensure Taichi is initialized first
    from src.lumen.core.integrator import clear_render_target
    from src.lumen.scene.intersection import clear_scene
    from src.lumen.scene.manager import _reset_active_scene

    def _clear_all():
        clear_scene()
        _reset_active_scene()
        clear_render_target()

    _clear_all()

    yield

    _clear_all()
