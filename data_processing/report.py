"""
Run report: the plain data handed to the display layer, and its files.
"""
import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Mapping, Optional

import geopandas as gpd
import numpy as np
import pandas as pd
import rasterio

from utils.gis_utils import GEOGRAPHIC_CRS

from .ranking import CandidatePoint
from .raster import IndicatorRaster
from .zonal_stats import ZonalStats

logger = logging.getLogger(__name__)

NODATA = -9999
REPORT_FILENAME = "run_report.json"
SITES_FILENAME = "top_sites.geojson"


@dataclass
class PipelineReport:
    """Everything one pipeline run produces for reporting."""

    aoi_stats: Dict[str, ZonalStats]
    candidates: List[CandidatePoint]
    normalization: Dict[str, float] = field(default_factory=dict)
    time_series: Dict[str, pd.Series] = field(default_factory=dict)
    histograms: Dict[str, Dict[float, int]] = field(default_factory=dict)
    sort_keys: List[Dict[str, str]] = field(default_factory=list)
    sampled_points: int = 0
    indicators: Dict[str, IndicatorRaster] = field(default_factory=dict, repr=False)

    def to_dict(self) -> Dict:
        return {
            "aoi_statistics": {name: stats.to_dict() for name, stats in self.aoi_stats.items()},
            "normalization": dict(self.normalization),
            "sort_keys": list(self.sort_keys),
            "sampled_points": self.sampled_points,
            "scored_points": len(self.candidates),
            "top_sites": [c.to_dict() for c in self.candidates],
            "time_series": {name: series_records(s) for name, s in self.time_series.items()},
            "histograms": {
                name: [{"bucket": k, "count": v} for k, v in hist.items()]
                for name, hist in self.histograms.items()
            },
        }


def series_records(series: pd.Series) -> List[Dict]:
    return [
        {"date": pd.Timestamp(ts).date().isoformat(), "value": float(value)}
        for ts, value in series.items()
    ]


def ranked_sites_frame(candidates: List[CandidatePoint]) -> gpd.GeoDataFrame:
    """Ranked sites as a GeoDataFrame, one column per feature."""
    rows = [{"rank": c.rank, **c.features} for c in candidates]
    return gpd.GeoDataFrame(
        pd.DataFrame(rows),
        geometry=[c.geometry for c in candidates],
        crs=GEOGRAPHIC_CRS,
    )


def write_indicator_geotiff(raster: IndicatorRaster, output_path) -> Path:
    """Save an indicator as float32 GeoTIFF with -9999 nodata."""
    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    profile = {
        'driver': 'GTiff',
        'height': raster.height,
        'width': raster.width,
        'count': 1,
        'dtype': 'float32',
        'crs': raster.crs,
        'transform': raster.transform,
        'nodata': NODATA,
        'compress': 'lzw',
    }
    data = np.where(raster.mask, raster.values, NODATA).astype('float32')
    with rasterio.open(output_path, 'w', **profile) as dst:
        dst.write(data, 1)
        dst.set_band_description(1, raster.name)
        if raster.unit:
            dst.update_tags(1, unit=raster.unit)
    return output_path


def write_report(report: PipelineReport, output_dir, indicators: Optional[Mapping[str, IndicatorRaster]] = None) -> Dict[str, Path]:
    """
    Write the report JSON, the ranked sites GeoJSON and indicator GeoTIFFs.

    Returns:
        Dict[str, Path]: written files by kind.
    """
    output_dir = Path(output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)
    written = {}

    report_path = output_dir / REPORT_FILENAME
    with open(report_path, 'w') as f:
        json.dump(report.to_dict(), f, indent=2)
    written["report"] = report_path

    sites_path = output_dir / SITES_FILENAME
    sites_path.write_text(ranked_sites_frame(report.candidates).to_json())
    written["sites"] = sites_path

    for name, raster in (indicators if indicators is not None else report.indicators).items():
        written[name] = write_indicator_geotiff(raster, output_dir / f"{name.lower()}.tif")

    logger.info(f"Saved run report to {report_path}")
    return written
