"""
Physical indices derived from corrected, quality-masked imagery.

Every function here is pure: it returns a new IndicatorRaster whose mask is
the AND of its inputs' masks plus the numeric guards of the formula. Per-pixel
degeneracies (zero denominators, log of non-positive values) become invalid
pixels; they never raise.

References:
    Sobrino, J.A., Jiménez-Muñoz, J.C., & Paolini, L. (2004). Land surface
        temperature retrieval from LANDSAT TM 5. RSE, 90(4), 434-440.
    Zhang, Y., Odeh, I.O.A., & Han, C. (2009). Bi-temporal characterization
        of land surface temperature in relation to impervious surface area,
        NDVI and NDBI. (UTFVI)
"""
import logging
import warnings
from dataclasses import dataclass
from typing import Dict, Optional

import numpy as np

from .errors import DegenerateStatisticError, EmptyRegionError, IndicatorChainError
from .raster import IndicatorRaster, RasterImage
from .zonal_stats import DEFAULT_MAX_PIXELS, ZonalReducer

logger = logging.getLogger(__name__)

# Linear NDVI-threshold emissivity model
EMISSIVITY_SLOPE = 0.004
EMISSIVITY_INTERCEPT = 0.986

# Single-channel LST: emitted radiance wavelength (Landsat 8 band 10) and rho = h*c/sigma
EMITTED_WAVELENGTH = 0.00115
RHO = 0.48359547432

KELVIN_OFFSET = 273.15


def kelvin_to_celsius(kelvin):
    return kelvin - KELVIN_OFFSET


def _single(raster: RasterImage) -> np.ndarray:
    if isinstance(raster, IndicatorRaster):
        return raster.values
    if len(raster.bands) != 1:
        raise ValueError(f"Expected a single-band raster, got bands {raster.band_names}")
    return raster.bands[raster.band_names[0]]


def ndvi(image: RasterImage, nir_band: str = "SR_B5", red_band: str = "SR_B4") -> IndicatorRaster:
    """
    Normalized Difference Vegetation Index.

    Formula:
        NDVI = (NIR - Red) / (NIR + Red)

    Pixels with NIR + Red == 0 are invalid. Valid results outside [-1, 1]
    can only come from negative reflectance (a correction artefact) and are
    invalidated too.

    Raises:
        MissingBandError: if either band is absent.
    """
    nir = image.band(nir_band)
    red = image.band(red_band)
    denominator = nir + red
    with np.errstate(divide="ignore", invalid="ignore"):
        values = (nir - red) / denominator
    valid = image.mask & (denominator != 0) & np.isfinite(values) & (np.abs(values) <= 1.0)
    return IndicatorRaster.from_array("NDVI", values, valid, like=image)


def vegetation_fraction(ndvi_raster: IndicatorRaster, ndvi_min: float, ndvi_max: float) -> IndicatorRaster:
    """
    Fractional vegetation cover.

    Formula:
        FV = ((NDVI - NDVI_min) / (NDVI_max - NDVI_min))^2

    ``ndvi_min``/``ndvi_max`` are AOI-wide statistics. A degenerate AOI
    (max == min) masks every pixel and warns with DegenerateStatisticError.
    """
    values = _single(ndvi_raster)
    spread = ndvi_max - ndvi_min
    if spread == 0:
        warnings.warn(
            DegenerateStatisticError(f"NDVI_max == NDVI_min == {ndvi_min}; vegetation fraction undefined"),
            stacklevel=2,
        )
        return IndicatorRaster.from_array("FV", np.full(values.shape, np.nan), np.zeros(values.shape, bool), like=ndvi_raster)

    with np.errstate(invalid="ignore"):
        fv = ((values - ndvi_min) / spread) ** 2
    valid = ndvi_raster.mask & np.isfinite(fv)
    return IndicatorRaster.from_array("FV", fv, valid, like=ndvi_raster)


def emissivity(fv: IndicatorRaster) -> IndicatorRaster:
    """Land surface emissivity: EM = FV * 0.004 + 0.986."""
    values = _single(fv) * EMISSIVITY_SLOPE + EMISSIVITY_INTERCEPT
    valid = fv.mask & np.isfinite(values)
    return IndicatorRaster.from_array("EM", values, valid, like=fv)


def land_surface_temperature(thermal: RasterImage, em: IndicatorRaster, thermal_band: Optional[str] = None) -> IndicatorRaster:
    """
    Land surface temperature in degrees Celsius.

    Formula:
        LST = Tb / (1 + (0.00115 * Tb / 0.48359547432) * ln(EM)) - 273.15

    ``thermal`` carries brightness temperature Tb in Kelvin (a corrected
    thermal band). Pixels with EM <= 0 or a zero denominator are invalid.
    """
    tb = thermal.band(thermal_band) if thermal_band else _single(thermal)
    em_values = _single(em)
    positive = em_values > 0
    with np.errstate(divide="ignore", invalid="ignore"):
        log_em = np.log(np.where(positive, em_values, np.nan))
        denominator = 1 + (EMITTED_WAVELENGTH * (tb / RHO)) * log_em
        values = tb / denominator - KELVIN_OFFSET
    valid = thermal.mask & em.mask & positive & (denominator != 0) & np.isfinite(values)
    return IndicatorRaster.from_array("LST", values, valid, like=em, unit="celsius")


def urban_heat_island(lst: IndicatorRaster, lst_mean: float, lst_std: float) -> IndicatorRaster:
    """
    Urban Heat Island index, the per-pixel LST z-score.

    Formula:
        UHI = (LST - mean_LST) / std_LST

    A zero AOI standard deviation masks every pixel and warns.
    """
    values = _single(lst)
    if lst_std == 0:
        warnings.warn(
            DegenerateStatisticError("AOI LST standard deviation is 0; UHI undefined"),
            stacklevel=2,
        )
        return IndicatorRaster.from_array("UHI", np.full(values.shape, np.nan), np.zeros(values.shape, bool), like=lst)
    uhi = (values - lst_mean) / lst_std
    valid = lst.mask & np.isfinite(uhi)
    return IndicatorRaster.from_array("UHI", uhi, valid, like=lst)


def utfvi(lst: IndicatorRaster, lst_mean: float) -> IndicatorRaster:
    """
    Urban Thermal Field Variance Index.

    Formula:
        UTFVI = (LST - mean_LST) / LST

    Pixels where LST == 0 are invalid.
    """
    values = _single(lst)
    nonzero = values != 0
    with np.errstate(divide="ignore", invalid="ignore"):
        index = (values - lst_mean) / values
    valid = lst.mask & nonzero & np.isfinite(index)
    return IndicatorRaster.from_array("UTFVI", index, valid, like=lst)


@dataclass(frozen=True)
class LandsatBands:
    nir: str = "SR_B5"
    red: str = "SR_B4"
    thermal: str = "ST_B10"


@dataclass(frozen=True)
class IndicatorSet:
    """The derived indicator chain plus the AOI statistics that normalized it."""

    rasters: Dict[str, IndicatorRaster]
    normalization: Dict[str, float]

    def __getitem__(self, name: str) -> IndicatorRaster:
        return self.rasters[name]


def _aoi_statistic(reducer: ZonalReducer, raster: IndicatorRaster, aoi, statistic: str, scale: float) -> float:
    try:
        return reducer.reduce(raster, aoi, statistic, scale)
    except EmptyRegionError as e:
        raise IndicatorChainError(
            f"AOI-wide {statistic} of {raster.name} failed, cannot derive dependent indicators: {e}"
        ) from e


def derive_indicators(
    image: RasterImage,
    aoi,
    bands: LandsatBands = LandsatBands(),
    nominal_scale: float = 30,
    max_pixels: int = DEFAULT_MAX_PIXELS,
    reducer: Optional[ZonalReducer] = None,
) -> IndicatorSet:
    """
    Run NDVI -> FV -> EM -> LST -> UHI/UTFVI over a composite.

    Args:
        image: Corrected and quality-masked composite.
        aoi: Region used for the normalization statistics.
        bands: Band names for NIR, red and thermal.
        nominal_scale: Scale (m) of the AOI reductions.
        max_pixels: Pixel budget of each AOI reduction.
        reducer: Optional run-scoped reducer to share memoized statistics.

    Raises:
        MissingBandError: if a required band is absent.
        IndicatorChainError: if an AOI normalization statistic has no valid pixels.
    """
    reducer = reducer or ZonalReducer(max_pixels)

    ndvi_raster = ndvi(image, bands.nir, bands.red)
    ndvi_min = _aoi_statistic(reducer, ndvi_raster, aoi, "min", nominal_scale)
    ndvi_max = _aoi_statistic(reducer, ndvi_raster, aoi, "max", nominal_scale)
    logger.info(f"NDVI range over AOI: {ndvi_min:.3f} .. {ndvi_max:.3f}")

    fv = vegetation_fraction(ndvi_raster, ndvi_min, ndvi_max)
    em = emissivity(fv)
    lst = land_surface_temperature(image, em, thermal_band=bands.thermal)

    lst_mean = _aoi_statistic(reducer, lst, aoi, "mean", nominal_scale)
    lst_std = _aoi_statistic(reducer, lst, aoi, "stdDev", nominal_scale)
    logger.info(f"LST over AOI: mean {lst_mean:.2f}C, std {lst_std:.2f}C")

    rasters = {
        "NDVI": ndvi_raster,
        "FV": fv,
        "EM": em,
        "LST": lst,
        "UHI": urban_heat_island(lst, lst_mean, lst_std),
        "UTFVI": utfvi(lst, lst_mean),
    }
    normalization = {"ndvi_min": ndvi_min, "ndvi_max": ndvi_max, "lst_mean": lst_mean, "lst_std": lst_std}
    return IndicatorSet(rasters=rasters, normalization=normalization)
