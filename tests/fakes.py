"""
In-memory stand-ins for raster sources and samplers used across the tests.
"""
import numpy as np
from rasterio.transform import from_origin

from data_processing.collection import RasterCollection
from data_processing.errors import CollectionNotFoundError
from data_processing.raster import IndicatorRaster, RasterImage


def make_image(bands, mask=None, transform=None, crs=None, timestamp=None):
    """
    Image on a unit grid: pixel (r, c) covers x in [c, c+1] and y in [H-r-1, H-r].
    """
    bands = {name: np.asarray(values, dtype=float) for name, values in bands.items()}
    height = next(iter(bands.values())).shape[0]
    if transform is None:
        transform = from_origin(0, height, 1, 1)
    return RasterImage.from_arrays(bands, mask=mask, transform=transform, crs=crs, timestamp=timestamp)


def make_indicator(values, name="X", mask=None, transform=None, crs=None):
    values = np.asarray(values, dtype=float)
    like = make_image({name: values}, transform=transform, crs=crs)
    if mask is None:
        mask = np.isfinite(values)
    return IndicatorRaster.from_array(name, values, mask, like=like)


class InMemorySource:
    """RasterSource over a dict of ready-made collections."""

    def __init__(self, collections):
        self.collections = {
            cid: c if isinstance(c, RasterCollection) else RasterCollection(cid, tuple(c))
            for cid, c in collections.items()
        }
        self.calls = []

    def fetch(self, collection_id, date_range=None, bounds=None):
        self.calls.append(collection_id)
        if collection_id not in self.collections:
            raise CollectionNotFoundError(f"No collection '{collection_id}'")
        collection = self.collections[collection_id]
        if date_range is not None:
            collection = collection.filter_date(*date_range)
        if bounds is not None:
            collection = collection.filter_bounds(bounds)
        return collection


class FixedSampler:
    """Sampler returning predetermined points regardless of region."""

    def __init__(self, points):
        self.points = list(points)
        self.requests = []

    def __call__(self, region, count, seed=None):
        self.requests.append((count, seed))
        return self.points[:count]
