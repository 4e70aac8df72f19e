"""
Data Processing Package.

This package holds the raster analytics engine and the ranking pipeline.
Modules:
- raster.py / collection.py: Band-named images and dated image collections
- sources.py: GeoTIFF catalog adapter
- radiometric.py / quality_mask.py: Scale/offset correction and QA bit masking
- indices.py: NDVI, FV, EM, LST, UHI and UTFVI
- zonal_stats.py: Region reductions and histograms
- sampling.py / ranking.py: Candidate points and cascading multi-key ranking
- report.py / process_pipeline.py: End-to-end run and its outputs
"""
