"""
Tests for zonal statistics, the memoizing reducer and histograms.

Run with: pytest tests/test_zonal_stats.py -v
"""

import warnings

import numpy as np
import pytest
from rasterio.transform import from_origin
from shapely.geometry import box

from data_processing.errors import EmptyRegionError
from data_processing.zonal_stats import (
    ZonalReducer,
    frequency_histogram,
    reduce_region,
    sample_region,
    zonal_stats,
)
from fakes import make_image


class TestReduceRegion:
    """Test scalar reductions over a region."""

    def test_full_region(self, ramp_image, full_region):
        """All four statistics over every pixel."""
        stats = zonal_stats(ramp_image, full_region, nominal_scale=1)
        values = np.arange(16, dtype=float)
        assert stats.mean == pytest.approx(7.5)
        assert stats.std_dev == pytest.approx(np.std(values))
        assert stats.min == 0.0
        assert stats.max == 15.0

    def test_statistic_names(self, ramp_image, full_region):
        """reduce_region uses mean/stdDev/min/max."""
        assert reduce_region(ramp_image, full_region, "max", 1) == 15.0
        assert reduce_region(ramp_image, full_region, "stdDev", 1) == pytest.approx(np.std(np.arange(16)))

    def test_unknown_statistic(self, ramp_image, full_region):
        """Unsupported statistic names raise ValueError."""
        with pytest.raises(ValueError):
            reduce_region(ramp_image, full_region, "median", 1)

    def test_subregion(self, ramp_image):
        """Only pixels whose centre lies in the region count."""
        # Top-left 2x2 block: rows 0-1, cols 0-1
        assert reduce_region(ramp_image, box(0, 2, 2, 4), "mean", 1) == pytest.approx(2.5)

    def test_masked_pixels_excluded(self, full_region):
        """Masked pixels affect neither sum nor count."""
        values = np.arange(16, dtype=float).reshape(4, 4)
        mask = np.ones((4, 4), bool)
        mask[3, 3] = False
        img = make_image({"v": values}, mask=mask)
        stats = zonal_stats(img, full_region, 1)
        assert stats.max == 14.0
        assert stats.mean == pytest.approx(np.arange(15).mean())

    def test_nan_pixels_excluded(self, full_region):
        """Non-finite values never enter a statistic."""
        values = np.arange(16, dtype=float).reshape(4, 4)
        values[0, 0] = np.nan
        img = make_image({"v": values}, mask=np.ones((4, 4), bool))
        assert zonal_stats(img, full_region, 1).min == 1.0

    def test_coarser_scale(self, ramp_image, full_region):
        """A scale of 2 reads one pixel per 2x2 cell."""
        values = sample_region(ramp_image, full_region, nominal_scale=2)
        assert sorted(values.tolist()) == [5.0, 7.0, 13.0, 15.0]

    def test_region_outside_raster(self, ramp_image):
        """A region off the raster raises EmptyRegionError."""
        with pytest.raises(EmptyRegionError):
            reduce_region(ramp_image, box(10, 10, 12, 12), "mean", 1)

    def test_region_fully_masked(self, full_region):
        """A region with only masked pixels raises EmptyRegionError."""
        img = make_image({"v": np.ones((4, 4))}, mask=np.zeros((4, 4), bool))
        with pytest.raises(EmptyRegionError):
            zonal_stats(img, full_region, 1)

    def test_multiband_needs_band(self, landsat_dn_image):
        """Multi-band rasters require an explicit band."""
        region = box(0, 0, 2, 2)
        with pytest.raises(ValueError):
            zonal_stats(landsat_dn_image, region, 1)
        assert reduce_region(landsat_dn_image, region, "min", 1, band="SR_B4") == 10000.0

    def test_geographic_raster(self):
        """Scales in metres are converted to degrees for lon/lat rasters."""
        img = make_image(
            {"v": np.arange(16, dtype=float).reshape(4, 4)},
            transform=from_origin(77.0, 28.04, 0.01, 0.01),
            crs="EPSG:4326",
        )
        region = box(77.0, 28.0, 77.04, 28.04)
        assert reduce_region(img, region, "mean", nominal_scale=1113.2) == pytest.approx(7.5)


class TestConstantRegion:
    """Test statistics of a region holding one repeated value."""

    def test_constant_non_dyadic_value(self):
        """A constant 31.7 region has exactly zero spread and an exact mean."""
        img = make_image({"LST": np.full((40, 40), 31.7)})
        stats = zonal_stats(img, box(0, 0, 40, 40), nominal_scale=1)
        assert stats.std_dev == 0.0
        assert stats.mean == 31.7
        assert stats.min == stats.max == 31.7

    def test_no_affine_deprecation_warnings(self, ramp_image, full_region):
        """Grid composition does not trigger affine deprecation warnings."""
        with warnings.catch_warnings():
            warnings.filterwarnings("error", message=".*matmul.*")
            assert zonal_stats(ramp_image, full_region, nominal_scale=2).max == 15.0


class TestMaxPixels:
    """Test deterministic thinning under a pixel budget."""

    def test_exact_budget(self, ramp_image, full_region):
        """Thinning keeps exactly max_pixels evenly spaced cells."""
        values = sample_region(ramp_image, full_region, 1, max_pixels=4)
        assert values.tolist() == [0.0, 5.0, 10.0, 15.0]

    def test_deterministic(self, ramp_image, full_region):
        """Identical inputs give identical results."""
        first = reduce_region(ramp_image, full_region, "mean", 1, max_pixels=5)
        second = reduce_region(ramp_image, full_region, "mean", 1, max_pixels=5)
        assert first == second

    def test_invalid_budget(self, ramp_image, full_region):
        """max_pixels below 1 is rejected."""
        with pytest.raises(ValueError):
            sample_region(ramp_image, full_region, 1, max_pixels=0)


class TestZonalReducer:
    """Test the memoizing reducer."""

    def test_statistics_share_one_sample(self, ramp_image, full_region):
        """Different statistics of the same region are served from one cache entry."""
        reducer = ZonalReducer()
        assert reducer.reduce(ramp_image, full_region, "min", 1) == 0.0
        assert reducer.reduce(ramp_image, full_region, "max", 1) == 15.0
        assert len(reducer) == 1

    def test_distinct_keys(self, ramp_image, full_region):
        """Scale and geometry are part of the key."""
        reducer = ZonalReducer()
        reducer.stats(ramp_image, full_region, 1)
        reducer.stats(ramp_image, full_region, 2)
        reducer.stats(ramp_image, box(0, 2, 2, 4), 1)
        assert len(reducer) == 3

    def test_empty_region_not_cached(self, ramp_image):
        """Failures propagate and leave no entry."""
        reducer = ZonalReducer()
        with pytest.raises(EmptyRegionError):
            reducer.stats(ramp_image, box(10, 10, 12, 12), 1)
        assert len(reducer) == 0


class TestFrequencyHistogram:
    """Test class histograms."""

    def test_categorical(self, full_region):
        """Each distinct class is a bucket."""
        classes = np.array([[1, 1, 2, 2]] * 4, dtype=float)
        hist = frequency_histogram(make_image({"lcz": classes}), full_region, 1, max_buckets=17)
        assert hist == {1.0: 8, 2.0: 8}

    def test_bucketed(self, ramp_image, full_region):
        """More distinct values than buckets fall into equal-width bins."""
        hist = frequency_histogram(ramp_image, full_region, 1, max_buckets=4)
        assert len(hist) == 4
        assert sum(hist.values()) == 16
        assert min(hist) == 0.0
