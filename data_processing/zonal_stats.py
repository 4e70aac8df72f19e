"""
Zonal statistics: scalar aggregates of a raster's valid pixels inside a region.

The raster is sampled on a grid of ``nominal_scale`` cells anchored at the
raster origin. A cell belongs to the region when its centre does, and reads
the raster pixel under that centre. Masked, non-finite and off-raster cells
are excluded from both sum and count.
"""
import logging
import math
import threading
from dataclasses import dataclass
from typing import Dict, Optional

import numpy as np
from rasterio.features import geometry_mask
from rasterio.transform import Affine

from utils.gis_utils import GEOGRAPHIC_CRS, latlon_to_pixel, reproject_geometry, scale_to_crs_units

from .errors import EmptyRegionError
from .raster import RasterImage

logger = logging.getLogger(__name__)

STATISTICS = ("mean", "stdDev", "min", "max")
DEFAULT_MAX_PIXELS = int(1e9)


@dataclass(frozen=True)
class ZonalStats:
    mean: float
    std_dev: float
    min: float
    max: float

    @classmethod
    def from_values(cls, values: np.ndarray) -> "ZonalStats":
        lo, hi = float(np.min(values)), float(np.max(values))
        if lo == hi:
            # Constant sample: exact mean and zero spread, free of summation error
            return cls(mean=lo, std_dev=0.0, min=lo, max=hi)
        return cls(
            mean=float(np.mean(values)),
            std_dev=float(np.std(values)),
            min=lo,
            max=hi,
        )

    def get(self, statistic: str) -> float:
        return self.to_dict()[statistic]

    def to_dict(self) -> Dict[str, float]:
        return {"mean": self.mean, "stdDev": self.std_dev, "min": self.min, "max": self.max}


def _resolve_band(raster: RasterImage, band: Optional[str]) -> np.ndarray:
    if band is not None:
        return raster.band(band)
    if len(raster.bands) != 1:
        raise ValueError(
            f"Raster has {len(raster.bands)} bands ({', '.join(raster.band_names)}); pass band= to choose one"
        )
    return raster.bands[raster.band_names[0]]


def _region_in_raster_crs(raster: RasterImage, geometry):
    if raster.crs is None:
        return geometry
    return reproject_geometry(geometry, GEOGRAPHIC_CRS, raster.crs)


def _thin(count: int, max_pixels: int) -> np.ndarray:
    """Evenly spaced, order-preserving selection of ``max_pixels`` out of ``count`` indices."""
    return np.linspace(0, count - 1, num=max_pixels, dtype=np.int64)


def sample_region(
    raster: RasterImage,
    geometry,
    nominal_scale: float,
    max_pixels: int = DEFAULT_MAX_PIXELS,
    band: Optional[str] = None,
) -> np.ndarray:
    """
    Valid raster values sampled inside ``geometry``.

    Args:
        raster: Image to sample. Multi-band images need ``band``.
        geometry: Shapely geometry, lon/lat (or native units for rasters without CRS).
        nominal_scale: Sampling cell size in metres.
        max_pixels: Upper bound on sampled cells; larger regions are thinned
            deterministically to exactly this many cells.
        band: Band to sample.

    Returns:
        np.ndarray: 1-D array of valid values, never empty.

    Raises:
        EmptyRegionError: if no valid pixel falls inside the region.
    """
    if nominal_scale <= 0:
        raise ValueError(f"nominal_scale must be positive, got {nominal_scale}")
    if max_pixels < 1:
        raise ValueError(f"max_pixels must be at least 1, got {max_pixels}")

    values = _resolve_band(raster, band)
    region = _region_in_raster_crs(raster, geometry)
    if region.is_empty:
        raise EmptyRegionError("Region geometry is empty")

    scale = scale_to_crs_units(nominal_scale, raster.crs)
    fx = scale / abs(raster.transform.a)
    fy = scale / abs(raster.transform.e)
    grid = raster.transform @ Affine.scale(fx, fy)
    grid_h = math.ceil(raster.height / fy)
    grid_w = math.ceil(raster.width / fx)

    # Window of the sampling grid covering the region's bounds
    minx, miny, maxx, maxy = region.bounds
    r_a, c_a = latlon_to_pixel(maxy, minx, grid)
    r_b, c_b = latlon_to_pixel(miny, maxx, grid)
    row0, row1 = max(0, min(r_a, r_b)), min(grid_h, max(r_a, r_b) + 1)
    col0, col1 = max(0, min(c_a, c_b)), min(grid_w, max(c_a, c_b) + 1)
    if row0 >= row1 or col0 >= col1:
        raise EmptyRegionError("Region does not overlap the raster footprint")

    inside = geometry_mask(
        [region],
        out_shape=(row1 - row0, col1 - col0),
        transform=grid @ Affine.translation(col0, row0),
        invert=True,
    )
    rows, cols = np.nonzero(inside)
    if rows.size > max_pixels:
        keep = _thin(rows.size, max_pixels)
        logger.debug(f"Thinning {rows.size} sample cells to {max_pixels}")
        rows, cols = rows[keep], cols[keep]

    # Sample cell centre -> raster pixel
    pix_r = np.floor((rows + row0 + 0.5) * fy).astype(np.int64)
    pix_c = np.floor((cols + col0 + 0.5) * fx).astype(np.int64)
    on_raster = (pix_r < raster.height) & (pix_c < raster.width)
    pix_r, pix_c = pix_r[on_raster], pix_c[on_raster]

    sampled = values[pix_r, pix_c]
    valid = raster.mask[pix_r, pix_c] & np.isfinite(sampled)
    if not valid.any():
        raise EmptyRegionError(
            f"No valid pixels inside region at scale {nominal_scale} ({rows.size} cells sampled)"
        )
    return sampled[valid]


def zonal_stats(
    raster: RasterImage,
    geometry,
    nominal_scale: float,
    max_pixels: int = DEFAULT_MAX_PIXELS,
    band: Optional[str] = None,
) -> ZonalStats:
    """All four statistics from a single sample of the region."""
    return ZonalStats.from_values(sample_region(raster, geometry, nominal_scale, max_pixels, band))


def reduce_region(
    raster: RasterImage,
    geometry,
    statistic: str,
    nominal_scale: float,
    max_pixels: int = DEFAULT_MAX_PIXELS,
    band: Optional[str] = None,
) -> float:
    """
    Reduce a raster to one scalar over a region.

    Args:
        statistic: One of 'mean', 'stdDev' (population), 'min', 'max'.

    Raises:
        EmptyRegionError: if the region holds no valid pixel.
    """
    if statistic not in STATISTICS:
        raise ValueError(f"Unknown statistic '{statistic}', expected one of {STATISTICS}")
    return zonal_stats(raster, geometry, nominal_scale, max_pixels, band).get(statistic)


class ZonalReducer:
    """
    Memoizing front end to the reducer, scoped to one pipeline run.

    Results are keyed by raster identity, geometry WKB, scale, pixel budget
    and band; the raster is held by the cache so its identity stays unique.
    EmptyRegionError is not cached.
    """

    def __init__(self, max_pixels: int = DEFAULT_MAX_PIXELS):
        self.max_pixels = max_pixels
        self._cache: Dict[tuple, tuple] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        return len(self._cache)

    def stats(self, raster: RasterImage, geometry, nominal_scale: float, band: Optional[str] = None) -> ZonalStats:
        key = (id(raster), geometry.wkb, float(nominal_scale), self.max_pixels, band)
        with self._lock:
            hit = self._cache.get(key)
        if hit is not None:
            return hit[1]
        result = zonal_stats(raster, geometry, nominal_scale, self.max_pixels, band)
        with self._lock:
            self._cache[key] = (raster, result)
        return result

    def reduce(self, raster: RasterImage, geometry, statistic: str, nominal_scale: float, band: Optional[str] = None) -> float:
        if statistic not in STATISTICS:
            raise ValueError(f"Unknown statistic '{statistic}', expected one of {STATISTICS}")
        return self.stats(raster, geometry, nominal_scale, band).get(statistic)


def frequency_histogram(
    raster: RasterImage,
    geometry,
    nominal_scale: float,
    max_buckets: int,
    max_pixels: int = DEFAULT_MAX_PIXELS,
    band: Optional[str] = None,
) -> Dict[float, int]:
    """
    Pixel-count histogram of a (typically categorical) raster over a region.

    With at most ``max_buckets`` distinct values, every value is its own
    bucket. Otherwise values fall into ``max_buckets`` equal-width buckets
    keyed by their lower edge.
    """
    values = sample_region(raster, geometry, nominal_scale, max_pixels, band)
    classes, counts = np.unique(values, return_counts=True)
    if classes.size <= max_buckets:
        return {float(c): int(n) for c, n in zip(classes, counts)}
    counts, edges = np.histogram(values, bins=max_buckets)
    return {float(edge): int(n) for edge, n in zip(edges[:-1], counts)}
