"""
Per-run analysis configuration.

A run is fully described by a RunConfig value: the AOI, the date range, the
Landsat processing settings, the auxiliary layers, and the sampling and
ranking parameters. It is loaded once and passed explicitly to every step.
"""
import json
import logging
from dataclasses import dataclass, field
from datetime import date
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

import geopandas as gpd
from shapely.geometry import Polygon

from data_processing.radiometric import LANDSAT_C2_L2_CORRECTIONS, BandCorrection, as_corrections
from data_processing.ranking import SortKey
from utils.gis_utils import GEOGRAPHIC_CRS, validate_coordinates

logger = logging.getLogger(__name__)


class ConfigError(ValueError):
    """The run configuration is incomplete or inconsistent."""


@dataclass(frozen=True)
class LandsatSettings:
    collection_id: str = "LANDSAT/LC08/C02/T1_L2"
    corrections: Tuple[BandCorrection, ...] = LANDSAT_C2_L2_CORRECTIONS
    qa_band: str = "QA_PIXEL"
    bit_tests: Tuple[Tuple[int, int], ...] = ((3, 0), (5, 0))
    nir_band: str = "SR_B5"
    red_band: str = "SR_B4"
    thermal_band: str = "ST_B10"
    composite: str = "median"
    scale: float = 30


@dataclass(frozen=True)
class LayerSettings:
    """An auxiliary indicator layer fetched directly from a collection."""

    name: str
    collection_id: str
    band: str
    scale: float = 1000
    aggregate: str = "mean"
    unit: str = ""
    # None: no date filter; "run": the run's date range; or an explicit (start, end)
    dates: Optional[Any] = "run"
    time_series: bool = False
    histogram_buckets: Optional[int] = None
    histogram_scale: Optional[float] = None


@dataclass(frozen=True)
class RankedIndicator:
    name: str
    source: str
    scale: float


@dataclass(frozen=True)
class SamplingSettings:
    count: int = 70
    buffer: float = 1000
    seed: Optional[int] = None


@dataclass(frozen=True)
class RankingSettings:
    indicators: Tuple[RankedIndicator, ...]
    sort_keys: Tuple[SortKey, ...]
    top_k: int = 10


@dataclass(frozen=True)
class RunConfig:
    aoi: Polygon
    start_date: date
    end_date: date
    landsat: LandsatSettings = field(default_factory=LandsatSettings)
    layers: Tuple[LayerSettings, ...] = ()
    sampling: SamplingSettings = field(default_factory=SamplingSettings)
    ranking: Optional[RankingSettings] = None
    max_pixels: int = int(1e9)

    @property
    def date_range(self) -> Tuple[date, date]:
        return self.start_date, self.end_date

    def layer_dates(self, layer: LayerSettings) -> Optional[Tuple[date, date]]:
        if layer.dates is None:
            return None
        if layer.dates == "run":
            return self.date_range
        start, end = layer.dates
        return date.fromisoformat(str(start)), date.fromisoformat(str(end))


DEFAULT_RUN_CONFIG: Dict[str, Any] = {
    "aoi": [
        [77.2090, 28.6139],
        [77.2090, 28.2000],
        [77.7500, 28.2000],
        [77.7500, 28.6139],
    ],
    "start_date": "2022-05-01",
    "end_date": "2022-12-31",
    "landsat": {"collection_id": "LANDSAT/LC08/C02/T1_L2", "scale": 30},
    "layers": [
        {"name": "NO2", "collection_id": "COPERNICUS/S5P/NRTI/L3_NO2",
         "band": "NO2_column_number_density", "unit": "mol/m^2", "time_series": True},
        {"name": "NDVI_GIMMS", "collection_id": "NASA/GIMMS/3GV0", "band": "ndvi",
         "dates": ["2013-06-01", "2013-12-31"], "time_series": True},
        {"name": "Population", "collection_id": "CIESIN/GPWv411/GPW_Population_Density",
         "band": "population_density", "unit": "persons/km^2", "dates": None, "time_series": True},
        {"name": "Urbanization", "collection_id": "RUB/RUBCLIM/LCZ/global_lcz_map/latest",
         "band": "LCZ_Filter", "aggregate": "median", "dates": None,
         "histogram_buckets": 17, "histogram_scale": 40},
        {"name": "CO", "collection_id": "COPERNICUS/S5P/OFFL/L3_CO",
         "band": "CO_column_number_density", "scale": 1113.2, "unit": "mol/m^2", "time_series": True},
    ],
    "sampling": {"count": 70, "buffer": 1000},
    "ranking": {
        "indicators": [
            {"name": "LST", "source": "LST", "scale": 30},
            {"name": "NO2", "source": "NO2", "scale": 1000},
            {"name": "NDVI", "source": "NDVI_GIMMS", "scale": 1000},
            {"name": "Population", "source": "Population", "scale": 1000},
            {"name": "Urbanization", "source": "Urbanization", "scale": 1000},
            {"name": "CO", "source": "CO", "scale": 1113.2},
        ],
        "sort_keys": [
            ["LST", "desc"],
            ["NO2", "desc"],
            ["NDVI", "asc"],
            ["Population", "desc"],
            ["Urbanization", "desc"],
            ["CO", "desc"],
        ],
        "top_k": 10,
    },
    "max_pixels": 1e9,
}


def parse_aoi(value) -> Polygon:
    """
    AOI from a list of ``[lon, lat]`` vertices or a path to a vector file.

    Vector files are read with geopandas, reprojected to lon/lat and
    dissolved into one geometry.
    """
    if isinstance(value, (str, Path)):
        frame = gpd.read_file(value)
        if frame.empty:
            raise ConfigError(f"AOI file {value} has no features")
        if frame.crs is not None:
            frame = frame.to_crs(GEOGRAPHIC_CRS)
        return frame.geometry.union_all()

    # GeoJSON-style nesting [[[lon, lat], ...]] is accepted as well
    vertices = value[0] if value and isinstance(value[0][0], (list, tuple)) else value
    if len(vertices) < 3:
        raise ConfigError(f"AOI needs at least 3 vertices, got {len(vertices)}")
    for lon, lat in vertices:
        if not validate_coordinates(lat, lon):
            raise ConfigError(f"AOI vertex ({lon}, {lat}) is not a valid lon/lat pair")
    polygon = Polygon([(float(lon), float(lat)) for lon, lat in vertices])
    if not polygon.is_valid or polygon.area == 0:
        raise ConfigError("AOI polygon is invalid or has zero area")
    return polygon


def _landsat(raw: Dict[str, Any]) -> LandsatSettings:
    raw = dict(raw)
    if "corrections" in raw:
        raw["corrections"] = as_corrections(raw["corrections"])
    if "bit_tests" in raw:
        raw["bit_tests"] = tuple((int(b), int(v)) for b, v in raw["bit_tests"])
    return LandsatSettings(**raw)


def _layer(raw: Dict[str, Any]) -> LayerSettings:
    raw = dict(raw)
    if isinstance(raw.get("dates"), list):
        raw["dates"] = tuple(raw["dates"])
    return LayerSettings(**raw)


def _ranking(raw: Dict[str, Any], sources: set) -> RankingSettings:
    indicators = tuple(RankedIndicator(**item) for item in raw["indicators"])
    for indicator in indicators:
        if indicator.source not in sources:
            raise ConfigError(f"Ranked indicator '{indicator.name}' uses unknown source '{indicator.source}'")
    names = {i.name for i in indicators}
    try:
        sort_keys = tuple(SortKey.parse(tuple(k)) for k in raw["sort_keys"])
    except ValueError as e:
        raise ConfigError(str(e)) from e
    for key in sort_keys:
        if key.indicator not in names:
            raise ConfigError(f"Sort key '{key.indicator}' is not a ranked indicator")
    top_k = int(raw.get("top_k", 10))
    if top_k < 0:
        raise ConfigError(f"top_k must be non-negative, got {top_k}")
    return RankingSettings(indicators=indicators, sort_keys=sort_keys, top_k=top_k)


DERIVED_INDICATORS = ("NDVI", "FV", "EM", "LST", "UHI", "UTFVI")


def build_run_config(raw: Dict[str, Any]) -> RunConfig:
    """Validate a plain dict and turn it into a RunConfig."""
    try:
        return _build(raw)
    except TypeError as e:
        # dataclass constructors reject unknown or missing keys with TypeError
        raise ConfigError(f"Malformed run config: {e}") from e


def _build(raw: Dict[str, Any]) -> RunConfig:
    try:
        start = date.fromisoformat(raw["start_date"])
        end = date.fromisoformat(raw["end_date"])
        aoi = parse_aoi(raw["aoi"])
    except KeyError as e:
        raise ConfigError(f"Missing required setting: {e.args[0]}") from e
    if end <= start:
        raise ConfigError(f"end_date {end} must be after start_date {start}")

    layers = tuple(_layer(item) for item in raw.get("layers", ()))
    layer_names = [layer.name for layer in layers]
    clashes = set(layer_names) & set(DERIVED_INDICATORS)
    if clashes or len(set(layer_names)) != len(layer_names):
        raise ConfigError(f"Layer names must be unique and distinct from derived indicators: {layer_names}")

    ranking = None
    if raw.get("ranking"):
        ranking = _ranking(raw["ranking"], set(DERIVED_INDICATORS) | set(layer_names))

    sampling = SamplingSettings(**raw.get("sampling", {}))
    if sampling.count < 0 or sampling.buffer <= 0:
        raise ConfigError("sampling.count must be >= 0 and sampling.buffer > 0")

    return RunConfig(
        aoi=aoi,
        start_date=start,
        end_date=end,
        landsat=_landsat(raw.get("landsat", {})),
        layers=layers,
        sampling=sampling,
        ranking=ranking,
        max_pixels=int(raw.get("max_pixels", 1e9)),
    )


def load_run_config(path=None) -> RunConfig:
    """
    Load a run config JSON file; without a path the built-in defaults are used.

    Top-level keys in the file override the defaults.
    """
    raw = dict(DEFAULT_RUN_CONFIG)
    if path is not None:
        with open(path, 'r') as f:
            raw.update(json.load(f))
        logger.info(f"Loaded run config from {path}")
    return build_run_config(raw)
