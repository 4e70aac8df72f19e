"""
Time-stamped raster collections and temporal compositing.
"""
import logging
from dataclasses import dataclass
from datetime import date, datetime
from typing import Callable, Iterator, Optional, Sequence, Tuple, Union

import numpy as np
import pandas as pd

from utils.gis_utils import GEOGRAPHIC_CRS, reproject_geometry

from .errors import EmptyCollectionError, MissingBandError
from .raster import RasterImage

logger = logging.getLogger(__name__)

AGGREGATES = ("mean", "median")

DateLike = Union[date, datetime, str]


def as_datetime(value: DateLike) -> datetime:
    """
    Naive UTC datetime from a date, datetime or ISO 8601 string.

    Strings may carry a trailing ``Z`` or a UTC offset; aware values are
    converted to UTC and stripped of their timezone so they compare with
    naive bounds.
    """
    if isinstance(value, date) and not isinstance(value, datetime):
        return datetime(value.year, value.month, value.day)
    ts = pd.Timestamp(value)
    if ts.tzinfo is not None:
        ts = ts.tz_convert(None)
    return ts.to_pydatetime()


@dataclass(frozen=True)
class RasterCollection:
    """Ordered sequence of images sharing a nominal band schema."""

    collection_id: str
    images: Tuple[RasterImage, ...] = ()

    def __post_init__(self):
        object.__setattr__(self, "images", tuple(self.images))

    def __len__(self) -> int:
        return len(self.images)

    def __iter__(self) -> Iterator[RasterImage]:
        return iter(self.images)

    def _with_images(self, images) -> "RasterCollection":
        return RasterCollection(self.collection_id, tuple(images))

    def filter_date(self, start: DateLike, end: DateLike) -> "RasterCollection":
        """Keep images with ``start <= timestamp < end``; undated images are dropped."""
        start_dt, end_dt = as_datetime(start), as_datetime(end)
        return self._with_images(
            img for img in self.images
            if img.timestamp is not None and start_dt <= as_datetime(img.timestamp) < end_dt
        )

    def filter_bounds(self, geometry) -> "RasterCollection":
        """Keep images whose footprint intersects a lon/lat geometry."""
        kept = []
        for img in self.images:
            region = geometry
            if img.crs is not None:
                region = reproject_geometry(geometry, GEOGRAPHIC_CRS, img.crs)
            if img.footprint().intersects(region):
                kept.append(img)
        return self._with_images(kept)

    def select(self, patterns: Union[str, Sequence[str]]) -> "RasterCollection":
        return self._with_images(img.select(patterns) for img in self.images)

    def map(self, fn: Callable[[RasterImage], RasterImage]) -> "RasterCollection":
        return self._with_images(fn(img) for img in self.images)

    def aggregate(self, statistic: str = "median") -> RasterImage:
        """
        Composite the collection into one image, pixel by pixel.

        Only valid observations contribute; a composite pixel is valid when at
        least one image was valid there.

        Args:
            statistic: 'mean' or 'median'.

        Returns:
            RasterImage: composite on the grid of the first image.
        """
        if statistic not in AGGREGATES:
            raise ValueError(f"Unsupported temporal aggregate '{statistic}', expected one of {AGGREGATES}")
        if not self.images:
            raise EmptyCollectionError(f"Collection '{self.collection_id}' has no images to aggregate")

        first = self.images[0]
        for img in self.images[1:]:
            if img.shape != first.shape or img.transform != first.transform:
                raise ValueError(
                    f"Images in '{self.collection_id}' do not share a grid; reproject before compositing"
                )
            missing = [b for b in first.band_names if b not in img.bands]
            if missing:
                raise MissingBandError(missing[0], img.band_names)

        masks = np.stack([img.mask for img in self.images])
        composite_mask = masks.any(axis=0)
        reducer = np.ma.mean if statistic == "mean" else np.ma.median

        bands = {}
        for name in first.band_names:
            stack = np.ma.masked_array(
                np.stack([img.bands[name] for img in self.images]),
                mask=~masks,
            )
            bands[name] = np.ma.filled(reducer(stack, axis=0).astype(np.float64), np.nan)

        logger.debug(f"Aggregated {len(self.images)} images of '{self.collection_id}' with {statistic}")
        return RasterImage(
            bands=bands,
            mask=composite_mask,
            transform=first.transform,
            crs=first.crs,
            properties={"collection_id": self.collection_id, "aggregate": statistic},
        )


def select_bands(collection: RasterCollection, patterns: Union[str, Sequence[str]]) -> RasterCollection:
    return collection.select(patterns)


def temporal_aggregate(collection: RasterCollection, statistic: str = "median") -> RasterImage:
    return collection.aggregate(statistic)


def date_range_bounds(date_range: Optional[Tuple[DateLike, DateLike]]) -> Optional[Tuple[datetime, datetime]]:
    if date_range is None:
        return None
    start, end = date_range
    return as_datetime(start), as_datetime(end)
