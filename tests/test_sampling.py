"""
Tests for random candidate point sampling.

Run with: pytest tests/test_sampling.py -v
"""

import pytest
from shapely.geometry import LineString, Polygon, box

from data_processing.sampling import random_points


class TestRandomPoints:
    """Test uniform rejection sampling inside a polygon."""

    def test_count_and_containment(self):
        """Exactly count points, all inside the region."""
        region = Polygon([(0, 0), (10, 0), (0, 10)])
        points = random_points(region, 70, seed=1)
        assert len(points) == 70
        assert all(region.contains(p) for p in points)

    def test_seed_is_reproducible(self):
        """The same seed yields the same points."""
        region = box(77.2, 28.2, 77.75, 28.61)
        first = random_points(region, 10, seed=42)
        second = random_points(region, 10, seed=42)
        assert [(p.x, p.y) for p in first] == [(p.x, p.y) for p in second]

    def test_zero_count(self):
        """Zero points is a valid request."""
        assert random_points(box(0, 0, 1, 1), 0) == []

    def test_negative_count(self):
        """Negative counts are rejected."""
        with pytest.raises(ValueError):
            random_points(box(0, 0, 1, 1), -1)

    def test_zero_area_region(self):
        """Regions without area cannot hold points."""
        with pytest.raises(ValueError):
            random_points(LineString([(0, 0), (1, 1)]), 5)
