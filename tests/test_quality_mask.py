"""
Tests for QA bitmask filtering.

Run with: pytest tests/test_quality_mask.py -v
"""

import numpy as np
import pytest

from data_processing.errors import MissingBandError
from data_processing.quality_mask import bitmask_validity, mask
from fakes import make_image


class TestBitmaskValidity:
    """Test bit test evaluation."""

    def test_cloud_and_shadow_bits(self):
        """Bits 3 (shadow) and 5 (cloud) must both be clear."""
        qa = np.array([0, 8, 32, 1, 40])
        valid = bitmask_validity(qa, [(3, 0), (5, 0)])
        assert valid.tolist() == [True, False, False, True, False]

    def test_required_one(self):
        """A test can require a bit to be set."""
        qa = np.array([0, 1, 3])
        assert bitmask_validity(qa, [(0, 1)]).tolist() == [False, True, True]

    def test_non_finite_qa_is_invalid(self):
        """NaN QA values fail."""
        qa = np.array([0.0, np.nan])
        assert bitmask_validity(qa, [(3, 0)]).tolist() == [True, False]

    def test_required_value_must_be_bit(self):
        """Required values other than 0/1 are rejected."""
        with pytest.raises(ValueError):
            bitmask_validity(np.array([0]), [(3, 2)])


class TestMask:
    """Test applying QA masks to images."""

    def test_landsat_mask(self, landsat_dn_image):
        """Shadow and cloud pixels become invalid; bit 0 is ignored."""
        masked = mask(landsat_dn_image, "QA_PIXEL", [(3, 0), (5, 0)])
        assert masked.mask.tolist() == [[True, False], [False, True]]

    def test_idempotent(self, landsat_dn_image):
        """Applying the same tests twice equals applying them once."""
        once = mask(landsat_dn_image, "QA_PIXEL")
        twice = mask(once, "QA_PIXEL")
        assert np.array_equal(once.mask, twice.mask)

    def test_existing_mask_kept(self):
        """Pixels already invalid stay invalid."""
        img = make_image({"v": [[np.nan, 1.0]], "QA_PIXEL": [[0.0, 0.0]]})
        assert mask(img, "QA_PIXEL").mask.tolist() == [[False, True]]

    def test_values_untouched(self, landsat_dn_image):
        """Masking changes validity only."""
        masked = mask(landsat_dn_image, "QA_PIXEL")
        assert np.array_equal(masked.band("ST_B10"), landsat_dn_image.band("ST_B10"))

    def test_missing_qa_band(self, ramp_image):
        """A missing QA band raises MissingBandError."""
        with pytest.raises(MissingBandError):
            mask(ramp_image, "QA_PIXEL")
