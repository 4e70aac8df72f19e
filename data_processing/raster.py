"""
Immutable raster values shared by every processing step.

A RasterImage is a stack of named 2-D bands on one grid plus a single
per-pixel validity mask. Every transform returns a new image; arrays are
copied on construction and flagged read-only.
"""
import re
from dataclasses import dataclass, field
from datetime import datetime
from types import MappingProxyType
from typing import Dict, Iterable, Mapping, Optional, Sequence, Tuple, Union

import numpy as np
from rasterio.transform import Affine, array_bounds
from shapely.geometry import box

from .errors import MissingBandError


def _frozen(array, dtype) -> np.ndarray:
    out = np.array(array, dtype=dtype, copy=True)
    out.setflags(write=False)
    return out


def match_bands(band_names: Iterable[str], patterns: Union[str, Sequence[str]]) -> Tuple[str, ...]:
    """
    Return the band names matching any of the regex patterns (full match).

    Order follows ``band_names``; each band is listed once.
    """
    if isinstance(patterns, str):
        patterns = [patterns]
    compiled = [re.compile(p) for p in patterns]
    return tuple(name for name in band_names if any(c.fullmatch(name) for c in compiled))


@dataclass(frozen=True, eq=False)
class RasterImage:
    """A multi-band raster with a per-pixel validity mask."""

    bands: Mapping[str, np.ndarray]
    mask: np.ndarray
    transform: Affine = field(default_factory=Affine.identity)
    crs: Optional[str] = None
    timestamp: Optional[datetime] = None
    properties: Mapping[str, object] = field(default_factory=dict)

    def __post_init__(self):
        if not self.bands:
            raise ValueError("RasterImage needs at least one band")
        mask = _frozen(self.mask, bool)
        bands = {}
        for name, values in self.bands.items():
            arr = _frozen(values, np.float64)
            if arr.ndim != 2:
                raise ValueError(f"Band '{name}' must be 2-D, got {arr.ndim}-D")
            if arr.shape != mask.shape:
                raise ValueError(
                    f"Band '{name}' shape {arr.shape} does not match mask shape {mask.shape}"
                )
            bands[name] = arr
        object.__setattr__(self, "bands", MappingProxyType(bands))
        object.__setattr__(self, "mask", mask)
        object.__setattr__(self, "properties", MappingProxyType(dict(self.properties)))

    @classmethod
    def from_arrays(cls, bands: Mapping[str, np.ndarray], mask: Optional[np.ndarray] = None, **kwargs) -> "RasterImage":
        """Build an image, defaulting to a mask that marks finite pixels valid."""
        if mask is None:
            stacked = np.stack([np.asarray(v, dtype=np.float64) for v in bands.values()])
            mask = np.isfinite(stacked).all(axis=0)
        return cls(bands=bands, mask=mask, **kwargs)

    @property
    def band_names(self) -> Tuple[str, ...]:
        return tuple(self.bands)

    @property
    def shape(self) -> Tuple[int, int]:
        return self.mask.shape

    @property
    def height(self) -> int:
        return self.mask.shape[0]

    @property
    def width(self) -> int:
        return self.mask.shape[1]

    def band(self, name: str) -> np.ndarray:
        try:
            return self.bands[name]
        except KeyError:
            raise MissingBandError(name, self.band_names) from None

    def footprint(self):
        """Grid extent as a shapely box in the raster's own coordinates."""
        west, south, east, north = array_bounds(self.height, self.width, self.transform)
        return box(west, south, east, north)

    def _derive(self, bands: Mapping[str, np.ndarray], mask: Optional[np.ndarray] = None) -> "RasterImage":
        return RasterImage(
            bands=bands,
            mask=self.mask if mask is None else mask,
            transform=self.transform,
            crs=self.crs,
            timestamp=self.timestamp,
            properties=self.properties,
        )

    def select(self, patterns: Union[str, Sequence[str]]) -> "RasterImage":
        """Keep only bands matching ``patterns``; a pattern matching nothing is an error."""
        if isinstance(patterns, str):
            patterns = [patterns]
        selected = []
        for pattern in patterns:
            matched = match_bands(self.band_names, pattern)
            if not matched:
                raise MissingBandError(pattern, self.band_names)
            selected.extend(name for name in matched if name not in selected)
        return self._derive({name: self.bands[name] for name in selected})

    def with_bands(self, new_bands: Mapping[str, np.ndarray]) -> "RasterImage":
        """Add bands, replacing any existing band of the same name."""
        merged: Dict[str, np.ndarray] = dict(self.bands)
        merged.update(new_bands)
        return self._derive(merged)

    def rename(self, mapping: Mapping[str, str]) -> "RasterImage":
        for old in mapping:
            self.band(old)
        return self._derive({mapping.get(name, name): values for name, values in self.bands.items()})

    def update_mask(self, validity: np.ndarray) -> "RasterImage":
        """AND ``validity`` into the existing mask."""
        validity = np.asarray(validity, dtype=bool)
        if validity.shape != self.shape:
            raise ValueError(f"Mask shape {validity.shape} does not match raster shape {self.shape}")
        return self._derive(self.bands, self.mask & validity)


@dataclass(frozen=True, eq=False)
class IndicatorRaster(RasterImage):
    """Single-band raster produced by the index engine, tagged with a name and unit."""

    name: str = ""
    unit: str = ""

    def __post_init__(self):
        super().__post_init__()
        if len(self.bands) != 1:
            raise ValueError(f"IndicatorRaster '{self.name}' must have exactly one band")

    @classmethod
    def from_array(cls, name: str, values: np.ndarray, mask: np.ndarray, like: RasterImage, unit: str = "") -> "IndicatorRaster":
        """
        Wrap ``values`` on the grid of ``like``.

        Invalid pixels are stored as NaN so exported rasters never carry
        meaningless numbers where the mask says no data.
        """
        mask = np.asarray(mask, dtype=bool)
        values = np.where(mask, values, np.nan)
        return cls(
            bands={name: values},
            mask=mask,
            transform=like.transform,
            crs=like.crs,
            timestamp=like.timestamp,
            properties=like.properties,
            name=name,
            unit=unit,
        )

    @property
    def values(self) -> np.ndarray:
        return self.bands[self.band_names[0]]
