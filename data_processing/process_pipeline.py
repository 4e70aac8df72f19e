import argparse
import logging
import sys
from pathlib import Path
from typing import Callable, Dict, List, Optional

import pandas as pd

from config.config import Config
from config.run_config import LayerSettings, RunConfig, load_run_config

from .collection import RasterCollection
from .errors import EmptyCollectionError, EmptyRegionError, IndicatorChainError
from .indices import LandsatBands, derive_indicators, kelvin_to_celsius
from .quality_mask import mask
from .radiometric import correct
from .ranking import IndicatorSpec, rank
from .raster import IndicatorRaster, RasterImage
from .report import PipelineReport, write_report
from .sampling import random_points
from .sources import GeoTiffCatalog, RasterSource
from .zonal_stats import ZonalReducer, ZonalStats, frequency_histogram, sample_region

logger = logging.getLogger(__name__)

Sampler = Callable[..., List]


# ============================================
# HELPER FUNCTIONS
# ============================================

def landsat_scenes(run_config: RunConfig, source: RasterSource) -> RasterCollection:
    """Corrected, cloud-masked Landsat scenes over the AOI and date range."""
    settings = run_config.landsat
    scenes = source.fetch(settings.collection_id, run_config.date_range, run_config.aoi)
    logger.info(f"  {len(scenes)} Landsat scenes in range")
    return (
        scenes
        .map(lambda img: correct(img, settings.corrections))
        .map(lambda img: mask(img, settings.qa_band, settings.bit_tests))
    )


def region_time_series(
    collection: RasterCollection,
    region,
    band: str,
    nominal_scale: float,
    max_pixels: int,
    convert: Optional[Callable] = None,
) -> pd.Series:
    """
    Per-image regional mean, indexed by acquisition time.

    Images without a timestamp or without valid pixels in the region are
    left out of the series.
    """
    index, values = [], []
    for img in collection:
        if img.timestamp is None:
            continue
        try:
            stats = ZonalStats.from_values(sample_region(img, region, nominal_scale, max_pixels, band))
        except EmptyRegionError:
            logger.debug(f"  No valid {band} pixels on {img.timestamp:%Y-%m-%d}, skipped")
            continue
        index.append(img.timestamp)
        values.append(convert(stats.mean) if convert else stats.mean)
    return pd.Series(values, index=pd.DatetimeIndex(index, name="date"), name=band, dtype=float)


def layer_indicator(layer: LayerSettings, collection: RasterCollection) -> IndicatorRaster:
    composite = collection.select(layer.band).aggregate(layer.aggregate)
    return IndicatorRaster.from_array(
        layer.name, composite.band(layer.band), composite.mask, like=composite, unit=layer.unit
    )


def aoi_statistics(indicators: Dict[str, RasterImage], scales: Dict[str, float], aoi, reducer: ZonalReducer) -> Dict[str, ZonalStats]:
    stats = {}
    for name, raster in indicators.items():
        try:
            stats[name] = reducer.stats(raster, aoi, scales[name])
        except EmptyRegionError as e:
            logger.warning(f"  No AOI statistics for {name}: {e}")
            continue
        logger.info(f"  {name}: mean={stats[name].mean:.4g} std={stats[name].std_dev:.4g}")
    return stats


# ============================================
# PIPELINE
# ============================================

def run_complete_pipeline(
    run_config: RunConfig,
    source: RasterSource,
    sampler: Sampler = random_points,
    output_dir=None,
    max_workers: Optional[int] = None,
) -> PipelineReport:
    """
    Derive indicators, summarize them over the AOI and rank sampled sites.

    Args:
        run_config: Explicit settings for this run.
        source: Raster collection adapter.
        sampler: ``sampler(region, count, seed)`` returning candidate points.
        output_dir: When set, the report, sites and indicator rasters are written here.
        max_workers: Thread pool size for per-point scoring.

    Returns:
        PipelineReport: AOI statistics, ranked sites, time series and histograms.

    Raises:
        IndicatorChainError: if the AOI normalization of the Landsat chain fails.
        MissingBandError: if a required band is absent.
    """
    logger.info("🚀 Starting heat site ranking pipeline")
    aoi = run_config.aoi
    reducer = ZonalReducer(run_config.max_pixels)
    settings = run_config.landsat

    # STEP 1: LANDSAT COMPOSITE
    logger.info("STEP 1: Landsat composite")
    scenes = landsat_scenes(run_config, source)
    try:
        composite = scenes.aggregate(settings.composite)
    except EmptyCollectionError as e:
        raise IndicatorChainError(f"No Landsat scenes for the AOI and date range: {e}") from e

    # STEP 2: DERIVED INDICATORS
    logger.info("STEP 2: NDVI / FV / EM / LST / UHI / UTFVI")
    bands = LandsatBands(nir=settings.nir_band, red=settings.red_band, thermal=settings.thermal_band)
    derived = derive_indicators(composite, aoi, bands, settings.scale, run_config.max_pixels, reducer)

    indicators: Dict[str, RasterImage] = dict(derived.rasters)
    scales = {name: settings.scale for name in indicators}
    time_series: Dict[str, pd.Series] = {
        "LST": region_time_series(
            scenes, aoi, settings.thermal_band, settings.scale, run_config.max_pixels, convert=kelvin_to_celsius
        ),
    }
    histograms = {}

    # STEP 3: AUXILIARY LAYERS
    logger.info("STEP 3: Auxiliary layers")
    for layer in run_config.layers:
        try:
            collection = source.fetch(layer.collection_id, run_config.layer_dates(layer), aoi)
            indicators[layer.name] = layer_indicator(layer, collection)
        except EmptyCollectionError as e:
            logger.warning(f"  Skipping layer {layer.name}: {e}")
            continue
        scales[layer.name] = layer.scale
        if layer.time_series:
            time_series[layer.name] = region_time_series(
                collection, aoi, layer.band, layer.scale, run_config.max_pixels
            )
        if layer.histogram_buckets:
            try:
                histograms[layer.name] = frequency_histogram(
                    indicators[layer.name], aoi, layer.histogram_scale or layer.scale,
                    layer.histogram_buckets, run_config.max_pixels,
                )
            except EmptyRegionError as e:
                logger.warning(f"  No histogram for {layer.name}: {e}")

    # STEP 4: AOI SUMMARY
    logger.info("STEP 4: AOI statistics")
    aoi_stats = aoi_statistics(indicators, scales, aoi, reducer)

    # STEP 5: SITE RANKING
    candidates, sort_keys, sampled = [], [], 0
    if run_config.ranking is not None:
        logger.info("STEP 5: Site ranking")
        ranking = run_config.ranking
        missing = [i.source for i in ranking.indicators if i.source not in indicators]
        if missing:
            raise IndicatorChainError(f"Ranking needs unavailable indicators: {', '.join(missing)}")
        sampling = run_config.sampling
        points = sampler(aoi, sampling.count, sampling.seed)
        sampled = len(points)
        specs = {i.name: IndicatorSpec(indicators[i.source], i.scale) for i in ranking.indicators}
        candidates = rank(
            points, specs, sampling.buffer, ranking.sort_keys, ranking.top_k,
            geodesic=True, max_workers=max_workers, max_pixels=run_config.max_pixels, reducer=reducer,
        )
        sort_keys = [{"indicator": k.indicator, "direction": k.direction} for k in ranking.sort_keys]
        for c in candidates:
            logger.info(f"  #{c.rank}: {c.geometry.y:.5f}, {c.geometry.x:.5f}")

    report = PipelineReport(
        aoi_stats=aoi_stats,
        candidates=candidates,
        normalization=derived.normalization,
        time_series=time_series,
        histograms=histograms,
        sort_keys=sort_keys,
        sampled_points=sampled,
        indicators=derived.rasters,
    )

    if output_dir is not None:
        write_report(report, output_dir)

    logger.info("✅ PIPELINE COMPLETED SUCCESSFULLY!")
    return report


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Rank candidate sites by environmental indicators")
    parser.add_argument("--config", default=Config.RUN_CONFIG_PATH, help="Run config JSON (defaults built in)")
    parser.add_argument("--catalog", default=str(Config.CATALOG_DIR), help="GeoTIFF catalog root")
    parser.add_argument("--output", default=str(Config.PROCESSED_DATA_DIR), help="Output directory")
    args = parser.parse_args(argv)

    logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(levelname)s - %(message)s')
    Config.ensure_directories()

    try:
        run_config = load_run_config(args.config)
        run_complete_pipeline(
            run_config,
            GeoTiffCatalog(args.catalog),
            output_dir=Path(args.output),
            max_workers=Config.RANKING_MAX_WORKERS,
        )
    except Exception as e:
        logger.error(f"❌ PIPELINE FAILED: {str(e)}")
        raise
    return 0


if __name__ == "__main__":
    sys.exit(main())
