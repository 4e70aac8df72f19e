"""
Raster collection adapters.

The engine only depends on the ``RasterSource`` protocol. ``GeoTiffCatalog``
serves collections from a directory tree of GeoTIFFs, one file per image:

    <root>/COPERNICUS/S5P/NRTI/L3_NO2/2022-05-03.tif
    <root>/LANDSAT/LC08/C02/T1_L2/20220512_LC08_147040.tif
"""
import logging
import re
from datetime import datetime
from pathlib import Path
from typing import List, Optional, Protocol, Tuple

import numpy as np
import rasterio
from rasterio.warp import transform_bounds
from shapely.geometry import box

from utils.gis_utils import GEOGRAPHIC_CRS

from .collection import DateLike, RasterCollection, as_datetime, date_range_bounds
from .errors import CollectionNotFoundError
from .raster import RasterImage

logger = logging.getLogger(__name__)

DATE_TAG = "ACQUISITION_DATE"
_DATE_PREFIX = re.compile(r"^(\d{4}-\d{2}-\d{2}|\d{8})")


class RasterSource(Protocol):
    """Anything that can hand out raster collections by id."""

    def fetch(
        self,
        collection_id: str,
        date_range: Optional[Tuple[DateLike, DateLike]] = None,
        bounds=None,
    ) -> RasterCollection:
        """Return the collection filtered to ``date_range`` (end exclusive) and lon/lat ``bounds``."""


def parse_timestamp(path: Path, tags: dict) -> Optional[datetime]:
    """Acquisition time from the ``ACQUISITION_DATE`` tag, else a date prefix in the filename."""
    if tags.get(DATE_TAG):
        return as_datetime(tags[DATE_TAG])
    match = _DATE_PREFIX.match(path.stem)
    if match is None:
        return None
    text = match.group(1)
    return datetime.strptime(text, "%Y-%m-%d" if "-" in text else "%Y%m%d")


def read_geotiff(path: Path, timestamp: Optional[datetime] = None) -> RasterImage:
    """
    Read a GeoTIFF into a RasterImage.

    Band names come from band descriptions (``B1``..``Bn`` when unset) and
    validity from the dataset mask, so nodata and alpha are honoured.
    """
    with rasterio.open(path) as src:
        data = src.read().astype(np.float64)
        valid = src.dataset_mask() > 0
        names = [desc or f"B{i + 1}" for i, desc in enumerate(src.descriptions)]
        return RasterImage(
            bands=dict(zip(names, data)),
            mask=valid,
            transform=src.transform,
            crs=src.crs.to_string() if src.crs else None,
            timestamp=timestamp,
            properties={"source": str(path)},
        )


class GeoTiffCatalog:
    """Directory-backed RasterSource."""

    def __init__(self, root):
        self.root = Path(root)

    def collection_dir(self, collection_id: str) -> Path:
        return self.root.joinpath(*collection_id.strip("/").split("/"))

    def fetch(
        self,
        collection_id: str,
        date_range: Optional[Tuple[DateLike, DateLike]] = None,
        bounds=None,
    ) -> RasterCollection:
        directory = self.collection_dir(collection_id)
        if not directory.is_dir():
            raise CollectionNotFoundError(f"No collection '{collection_id}' under {self.root}")

        window = date_range_bounds(date_range)
        images: List[RasterImage] = []
        for path in sorted({*directory.glob("*.tif"), *directory.glob("*.TIF")}):
            with rasterio.open(path) as src:
                timestamp = parse_timestamp(path, src.tags())
                footprint = src.bounds
                if src.crs is not None:
                    footprint = transform_bounds(src.crs, GEOGRAPHIC_CRS, *src.bounds)

            if window is not None and (timestamp is None or not window[0] <= timestamp < window[1]):
                continue
            if bounds is not None and not box(*footprint).intersects(bounds):
                continue
            images.append(read_geotiff(path, timestamp))

        images.sort(key=lambda img: (img.timestamp is None, img.timestamp or datetime.min))
        logger.info(f"Fetched {len(images)} images from '{collection_id}'")
        return RasterCollection(collection_id, tuple(images))
