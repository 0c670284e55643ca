"""Pytest configuration and shared fixtures for Lightmap Baker tests."""

from __future__ import annotations

import logging
import sys
from pathlib import Path

import numpy as np
import pytest


# Add project root to path so imports work
PROJECT_ROOT = Path(__file__).parent.parent
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))


def pytest_configure(config: pytest.Config) -> None:
    """Configure logging for tests."""
    logging.basicConfig(
        level=logging.INFO,
        format="%(name)s [%(levelname)s] %(message)s",
    )


@pytest.fixture
def fast_opts():
    """Small lightmaps and sample budgets so end-to-end bakes stay quick."""
    from bake_engine.constants import BakeOpts

    return BakeOpts(
        lightmap_pix_per_m=4.0,
        max_samples=9,
        min_samples=0,
        target_error=0.05,
        indirect_depth=1,
        num_workers=2,
    )


@pytest.fixture
def unit_quad_mesh():
    """Upward-facing 1×1 m quad in the y = 0 plane, UVs covering [0, 1]²."""
    from scene_ingestion.synthetic_scene import quad_mesh

    return quad_mesh(
        origin=(0.0, 0.0, 0.0),
        edge_u=(1.0, 0.0, 0.0),
        edge_v=(0.0, 0.0, 1.0),
        normal=(0.0, 1.0, 0.0),
    )


@pytest.fixture
def white() -> np.ndarray:
    return np.ones(3)
