"""
Shared fixtures for the test suite.

Run with: pytest tests/ -v
"""
import numpy as np
import pytest
from shapely.geometry import box

from fakes import make_image


@pytest.fixture
def ramp_image():
    """4x4 single-band image holding 0..15 in row-major order."""
    return make_image({"value": np.arange(16, dtype=float).reshape(4, 4)})


@pytest.fixture
def full_region():
    """Region covering the whole 4x4 unit grid."""
    return box(0, 0, 4, 4)


@pytest.fixture
def landsat_dn_image():
    """2x2 Landsat-like image in raw digital numbers with a QA band."""
    return make_image({
        "SR_B4": [[10000.0, 10000.0], [10000.0, 10000.0]],
        "SR_B5": [[20000.0, 25000.0], [30000.0, 0.0]],
        "ST_B10": [[44000.0, 44500.0], [45000.0, 45500.0]],
        "QA_PIXEL": [[0.0, 8.0], [32.0, 1.0]],
    })
