"""Exception taxonomy for the raster analytics engine."""


class RasterAnalyticsError(Exception):
    """Base class for all raster analytics failures."""


class MissingBandError(RasterAnalyticsError, KeyError):
    """A required band is absent from a raster."""

    def __init__(self, band: str, available=()):
        self.band = band
        self.available = tuple(available)
        super().__init__(band)

    def __str__(self) -> str:
        return f"Band '{self.band}' not found (available: {', '.join(self.available) or 'none'})"


class EmptyRegionError(RasterAnalyticsError):
    """A zonal statistic was requested over a region with zero valid pixels."""


class EmptyCollectionError(RasterAnalyticsError):
    """A collection has no images left to aggregate."""


class CollectionNotFoundError(RasterAnalyticsError):
    """The raster source does not know the requested collection id."""


class IndicatorChainError(RasterAnalyticsError):
    """An AOI-wide normalization statistic could not be computed."""


class DegenerateStatisticError(RasterAnalyticsError, RuntimeWarning):
    """
    A normalization denominator collapsed (e.g. NDVI_max == NDVI_min).

    Issued through ``warnings.warn``; the affected pixels are masked instead
    of aborting the raster computation.
    """
