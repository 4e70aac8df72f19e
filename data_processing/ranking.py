"""
Multi-criteria ranking of candidate sites.

Each candidate point gets a feature vector (the mean of every indicator over
a buffer around it). Points are then ordered by a cascade of stable sorts,
one per sort key in the order given, so the LAST key is the primary axis and
each earlier key only breaks ties left by the keys after it.
"""
import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field, replace
from types import MappingProxyType
from typing import Dict, List, Mapping, Optional, Sequence, Tuple, Union

from shapely.geometry import Point

from utils.gis_utils import buffer_point_meters

from .collection import RasterCollection
from .errors import EmptyRegionError
from .raster import RasterImage
from .zonal_stats import DEFAULT_MAX_PIXELS, ZonalReducer

logger = logging.getLogger(__name__)

DIRECTIONS = {"asc": True, "ascending": True, "desc": False, "descending": False}


@dataclass(frozen=True)
class SortKey:
    indicator: str
    ascending: bool = True

    @classmethod
    def parse(cls, value: Union["SortKey", Tuple[str, Union[str, bool]]]) -> "SortKey":
        """Accept a SortKey, ``(name, 'asc'|'desc')`` or ``(name, ascending_bool)``."""
        if isinstance(value, SortKey):
            return value
        name, direction = value
        if isinstance(direction, bool):
            return cls(name, direction)
        try:
            return cls(name, DIRECTIONS[str(direction).lower()])
        except KeyError:
            raise ValueError(f"Sort direction for '{name}' must be 'asc' or 'desc', got {direction!r}") from None

    @property
    def direction(self) -> str:
        return "asc" if self.ascending else "desc"


@dataclass(frozen=True, eq=False)
class IndicatorSpec:
    """
    Where one feature comes from.

    ``source`` is a raster, or a collection that is composited with
    ``aggregate`` before any point is scored.
    """

    source: Union[RasterImage, RasterCollection]
    nominal_scale: float
    band: Optional[str] = None
    aggregate: str = "mean"

    def resolve(self) -> RasterImage:
        if isinstance(self.source, RasterCollection):
            return self.source.aggregate(self.aggregate)
        return self.source


@dataclass(frozen=True, eq=False)
class CandidatePoint:
    """A scored site: point geometry, immutable feature vector and rank (0 until ranked)."""

    geometry: Point
    features: Mapping[str, float] = field(default_factory=dict)
    rank: int = 0
    index: int = 0

    def __post_init__(self):
        object.__setattr__(self, "features", MappingProxyType(dict(self.features)))

    def to_dict(self) -> Dict:
        return {
            "rank": self.rank,
            "lon": self.geometry.x,
            "lat": self.geometry.y,
            "label": f"Location {self.rank}: {self.geometry.y}, {self.geometry.x}",
            "features": dict(self.features),
        }


def _as_point(value) -> Point:
    if isinstance(value, Point):
        return value
    x, y = value
    return Point(float(x), float(y))


def _as_spec(value) -> IndicatorSpec:
    if isinstance(value, IndicatorSpec):
        return value
    source, scale = value
    return IndicatorSpec(source=source, nominal_scale=scale)


def cascade_sort(candidates: Sequence[CandidatePoint], sort_keys: Sequence[SortKey]) -> List[CandidatePoint]:
    """
    Apply one stable sort per key, in the order given.

    Python's sort is stable for ``reverse=True`` as well, so each pass only
    reorders within groups that the passes after it leave tied.
    """
    ordered = list(candidates)
    for key in sort_keys:
        ordered.sort(key=lambda c, name=key.indicator: c.features[name], reverse=not key.ascending)
    return ordered


def _score_point(
    index: int,
    point: Point,
    rasters: Mapping[str, Tuple[RasterImage, IndicatorSpec]],
    buffer: float,
    geodesic: bool,
    reducer: ZonalReducer,
) -> Optional[CandidatePoint]:
    region = buffer_point_meters(point, buffer) if geodesic else point.buffer(buffer)
    features = {}
    for name, (raster, spec) in rasters.items():
        try:
            features[name] = reducer.reduce(raster, region, "mean", spec.nominal_scale, band=spec.band)
        except EmptyRegionError as e:
            logger.warning(f"Excluding point {index} ({point.x:.5f}, {point.y:.5f}): no valid {name} pixels ({e})")
            return None
    return CandidatePoint(geometry=point, features=features, index=index)


def rank(
    points: Sequence[Union[Point, Tuple[float, float]]],
    indicator_specs: Mapping[str, Union[IndicatorSpec, Tuple[object, float]]],
    buffer: float,
    sort_keys: Sequence[Union[SortKey, Tuple[str, Union[str, bool]]]],
    top_k: int,
    geodesic: bool = False,
    max_workers: Optional[int] = None,
    max_pixels: int = DEFAULT_MAX_PIXELS,
    reducer: Optional[ZonalReducer] = None,
) -> List[CandidatePoint]:
    """
    Score candidate points and return the top ``top_k`` by cascading sort.

    Args:
        points: Point geometries or ``(x, y)`` pairs.
        indicator_specs: ``{name: IndicatorSpec}`` or ``{name: (raster_or_collection, scale)}``.
        buffer: Radius of the region around each point; metres when
            ``geodesic`` is True, otherwise the geometry's own units.
        sort_keys: Ordered ``(indicator, direction)`` keys. The last key dominates.
        top_k: Number of points to return.
        geodesic: Buffer lon/lat points by a true metric radius.
        max_workers: Thread pool size for per-point scoring.
        max_pixels: Pixel budget per zonal reduction.
        reducer: Optional run-scoped reducer.

    Returns:
        List[CandidatePoint]: ``min(top_k, scorable points)`` points with 1-based ranks.
    """
    if top_k < 0:
        raise ValueError(f"top_k must be non-negative, got {top_k}")
    keys = [SortKey.parse(k) for k in sort_keys]
    specs = {name: _as_spec(value) for name, value in indicator_specs.items()}
    unknown = [k.indicator for k in keys if k.indicator not in specs]
    if unknown:
        raise ValueError(f"Sort keys reference unknown indicators: {', '.join(unknown)}")

    reducer = reducer or ZonalReducer(max_pixels)
    rasters = {name: (spec.resolve(), spec) for name, spec in specs.items()}
    geometries = [_as_point(p) for p in points]

    logger.info(f"Scoring {len(geometries)} candidate points on {len(rasters)} indicators")
    with ThreadPoolExecutor(max_workers=max_workers) as pool:
        scored = list(pool.map(
            lambda item: _score_point(item[0], item[1], rasters, buffer, geodesic, reducer),
            enumerate(geometries),
        ))

    candidates = [c for c in scored if c is not None]
    excluded = len(scored) - len(candidates)
    if excluded:
        logger.warning(f"{excluded} of {len(scored)} points could not be scored and were excluded")

    ordered = cascade_sort(candidates, keys)[:top_k]
    return [replace(c, rank=i + 1) for i, c in enumerate(ordered)]
