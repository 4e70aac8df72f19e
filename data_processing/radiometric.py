"""
Radiometric correction: raw digital numbers to physical units.
"""
import logging
import re
from dataclasses import dataclass
from typing import Mapping, Sequence, Tuple, Union

from .raster import RasterImage

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BandCorrection:
    """Linear ``value * scale + offset`` applied to bands whose name matches ``pattern``."""

    pattern: str
    scale: float
    offset: float = 0.0

    def matches(self, band_name: str) -> bool:
        return re.fullmatch(self.pattern, band_name) is not None


# Landsat 8/9 Collection 2 Level 2 scale factors (USGS product guide)
LANDSAT_C2_L2_CORRECTIONS = (
    BandCorrection(r"SR_B.", 0.0000275, -0.2),   # surface reflectance
    BandCorrection(r"ST_B.*", 0.00341802, 149.0),  # surface temperature, Kelvin
)

CorrectionsLike = Union[
    Sequence[BandCorrection],
    Sequence[Tuple[str, float, float]],
    Mapping[str, Tuple[float, float]],
]


def as_corrections(band_corrections: CorrectionsLike) -> Tuple[BandCorrection, ...]:
    """Normalize the accepted configuration shapes into BandCorrection objects."""
    if isinstance(band_corrections, Mapping):
        return tuple(BandCorrection(p, s, o) for p, (s, o) in band_corrections.items())
    return tuple(
        c if isinstance(c, BandCorrection) else BandCorrection(*c)
        for c in band_corrections
    )


def correct(image: RasterImage, band_corrections: CorrectionsLike) -> RasterImage:
    """
    Apply per-band scale/offset corrections.

    Each band is rewritten by the first correction whose pattern matches its
    full name. Bands matching no pattern pass through unchanged, and a
    pattern matching no band is simply unused.

    Args:
        image (RasterImage): Raw image (left untouched).
        band_corrections: Ordered corrections, as BandCorrection objects,
            ``(pattern, scale, offset)`` tuples or a ``{pattern: (scale, offset)}`` mapping.

    Returns:
        RasterImage: New image with the same grid and mask.
    """
    corrections = as_corrections(band_corrections)
    corrected = {}
    for name, values in image.bands.items():
        rule = next((c for c in corrections if c.matches(name)), None)
        if rule is not None:
            corrected[name] = values * rule.scale + rule.offset

    if corrected:
        logger.debug(f"Corrected bands: {', '.join(corrected)}")
    return image.with_bands(corrected)
