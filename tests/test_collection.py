"""
Tests for raster collections and temporal compositing.

Run with: pytest tests/test_collection.py -v
"""

from datetime import date, datetime, timedelta, timezone

import numpy as np
import pytest
from rasterio.transform import from_origin
from shapely.geometry import box

from data_processing.collection import RasterCollection, select_bands, temporal_aggregate
from data_processing.errors import EmptyCollectionError, MissingBandError
from fakes import make_image


def dated(value, day, mask=None):
    return make_image(
        {"a": np.full((2, 2), value), "b": np.full((2, 2), -value)},
        mask=mask,
        timestamp=datetime(2022, 5, day),
    )


@pytest.fixture
def collection():
    return RasterCollection("TEST/A", (dated(1.0, 1), dated(2.0, 10), dated(100.0, 20)))


class TestFilters:
    """Test date and bounds filtering."""

    def test_filter_date_end_exclusive(self, collection):
        """Start is inclusive, end is exclusive."""
        filtered = collection.filter_date("2022-05-01", "2022-05-20")
        assert [img.timestamp.day for img in filtered] == [1, 10]

    def test_filter_date_accepts_dates(self, collection):
        """Plain date objects work as bounds."""
        filtered = collection.filter_date(date(2022, 5, 2), date(2022, 6, 1))
        assert len(filtered) == 2

    def test_filter_date_utc_strings(self, collection):
        """ISO bounds with a trailing Z or a UTC offset compare as naive UTC."""
        filtered = collection.filter_date("2022-05-01T00:00:00Z", "2022-05-20T00:00:00+00:00")
        assert [img.timestamp.day for img in filtered] == [1, 10]

    def test_filter_date_aware_timestamps(self):
        """Timezone-aware acquisition times are converted to UTC before comparing."""
        ist = timezone(timedelta(hours=5, minutes=30))
        early = make_image({"a": [[1.0]]}, timestamp=datetime(2022, 5, 1, 3, 0, tzinfo=ist))
        late = make_image({"a": [[2.0]]}, timestamp=datetime(2022, 5, 10, tzinfo=timezone.utc))
        coll = RasterCollection("TEST/TZ", (early, late))
        # 03:00 IST is 21:30 UTC on the previous day
        assert coll.filter_date("2022-05-01", "2022-05-31").images == (late,)
        assert len(coll.filter_date("2022-04-30", "2022-05-31")) == 2

    def test_filter_date_drops_undated(self):
        """Images without a timestamp never pass a date filter."""
        coll = RasterCollection("TEST/B", (make_image({"a": [[1.0]]}),))
        assert len(coll.filter_date("2000-01-01", "2100-01-01")) == 0

    def test_filter_bounds(self):
        """Only images whose footprint intersects the region are kept."""
        near = make_image({"a": np.ones((2, 2))})
        far = make_image({"a": np.ones((2, 2))}, transform=from_origin(100, 102, 1, 1))
        coll = RasterCollection("TEST/C", (near, far))
        kept = coll.filter_bounds(box(0.5, 0.5, 1.5, 1.5))
        assert kept.images == (near,)

    def test_select_bands(self, collection):
        """Band selection applies to every image."""
        selected = select_bands(collection, "a")
        assert all(img.band_names == ("a",) for img in selected)


class TestAggregate:
    """Test per-pixel temporal composites."""

    def test_median_ignores_masked_observations(self):
        """Masked observations do not contribute to the median."""
        mask = np.array([[True, True], [True, False]])
        coll = RasterCollection("TEST/D", (dated(1.0, 1), dated(2.0, 2), dated(100.0, 3, mask=mask)))
        composite = coll.aggregate("median")
        assert composite.band("a")[0, 0] == 2.0
        assert composite.band("a")[1, 1] == 1.5

    def test_mean(self, collection):
        """Mean composite averages every band."""
        composite = temporal_aggregate(collection, "mean")
        assert composite.band("a")[0, 0] == pytest.approx(103.0 / 3)
        assert composite.band("b")[0, 0] == pytest.approx(-103.0 / 3)

    def test_pixel_masked_everywhere_stays_invalid(self):
        """A pixel invalid in every image is invalid in the composite."""
        mask = np.array([[True, False], [True, True]])
        coll = RasterCollection("TEST/E", (dated(1.0, 1, mask=mask), dated(3.0, 2, mask=mask)))
        composite = coll.aggregate("mean")
        assert not composite.mask[0, 1]
        assert np.isnan(composite.band("a")[0, 1])
        assert composite.band("a")[0, 0] == 2.0

    def test_empty_collection(self):
        """Aggregating nothing raises EmptyCollectionError."""
        with pytest.raises(EmptyCollectionError):
            RasterCollection("TEST/F").aggregate()

    def test_unknown_statistic(self, collection):
        """Only mean and median are supported."""
        with pytest.raises(ValueError):
            collection.aggregate("mode")

    def test_grid_mismatch(self):
        """Images on different grids cannot be composited."""
        other = make_image({"a": np.ones((3, 3)), "b": np.ones((3, 3))})
        with pytest.raises(ValueError):
            RasterCollection("TEST/G", (dated(1.0, 1), other)).aggregate()

    def test_band_mismatch(self):
        """Images missing a band of the first image are rejected."""
        other = make_image({"a": np.ones((2, 2))})
        with pytest.raises(MissingBandError):
            RasterCollection("TEST/H", (dated(1.0, 1), other)).aggregate()
