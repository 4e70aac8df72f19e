"""
API endpoints for the Heat Site Ranking service.

This package contains the Flask Blueprints serving the latest run report:
- Indicators (AOI statistics, time series, histograms)
- Sites (ranked candidate locations)
"""
