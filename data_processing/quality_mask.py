"""
Quality masking from bit-packed QA bands.
"""
from typing import Sequence, Tuple

import numpy as np

from .raster import RasterImage

# Landsat Collection 2 QA_PIXEL: bit 3 = cloud shadow, bit 5 = cloud
LANDSAT_QA_BAND = "QA_PIXEL"
LANDSAT_CLOUD_BIT_TESTS: Tuple[Tuple[int, int], ...] = ((3, 0), (5, 0))


def bitmask_validity(qa: np.ndarray, bit_tests: Sequence[Tuple[int, int]]) -> np.ndarray:
    """
    Evaluate bit tests on an integer QA array.

    A pixel passes when ``(qa >> bit) & 1 == required`` for every test.
    Non-finite QA values fail every test.
    """
    qa = np.asarray(qa)
    finite = np.isfinite(qa) if np.issubdtype(qa.dtype, np.floating) else np.ones(qa.shape, dtype=bool)
    qa_int = np.where(finite, qa, 0).astype(np.int64)

    valid = finite.copy()
    for bit, required in bit_tests:
        if required not in (0, 1):
            raise ValueError(f"Bit test for bit {bit} must require 0 or 1, got {required}")
        valid &= ((qa_int >> int(bit)) & 1) == required
    return valid


def mask(image: RasterImage, qa_band: str, bit_tests: Sequence[Tuple[int, int]] = LANDSAT_CLOUD_BIT_TESTS) -> RasterImage:
    """
    Mask pixels failing the QA bit tests.

    The new validity is ANDed into the image's existing mask, so applying
    the same tests again leaves the mask unchanged.

    Raises:
        MissingBandError: if ``qa_band`` is not in the image.
    """
    qa = image.band(qa_band)
    return image.update_mask(bitmask_validity(qa, bit_tests))
