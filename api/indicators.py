import logging
from flask import Blueprint, jsonify

from .report_store import load_report

# Create Blueprint
indicators_bp = Blueprint('indicators', __name__)

# Setup logging
logger = logging.getLogger(__name__)


@indicators_bp.route('/indicators/summary', methods=['GET'])
def get_indicators_summary():
    """
    AOI-wide statistics for every indicator of the latest run.

    Returns:
        JSON: {"indicators": {"LST": {"mean": .., "stdDev": .., "min": .., "max": ..}, ...},
               "normalization": {...}}
    """
    try:
        report = load_report()
        if report is None:
            return jsonify({'error': 'Run report not found'}), 404

        return jsonify({
            'indicators': report.get('aoi_statistics', {}),
            'normalization': report.get('normalization', {}),
        })
    except Exception as e:
        logger.error(f"Error in get_indicators_summary: {e}")
        return jsonify({'error': 'Internal server error'}), 500


@indicators_bp.route('/indicators/<name>/statistics', methods=['GET'])
def get_indicator_statistics(name):
    """AOI statistics of one indicator."""
    try:
        report = load_report()
        if report is None:
            return jsonify({'error': 'Run report not found'}), 404

        stats = report.get('aoi_statistics', {}).get(name)
        if stats is None:
            return jsonify({'error': f'No statistics for indicator {name}'}), 404

        return jsonify({'indicator': name, **stats})
    except Exception as e:
        logger.error(f"Error in get_indicator_statistics: {e}")
        return jsonify({'error': 'Internal server error'}), 500


@indicators_bp.route('/indicators/<name>/time-series', methods=['GET'])
def get_indicator_time_series(name):
    """
    Regional mean over time, for chart widgets.

    Returns:
        JSON: {"indicator": str, "points": [{"date": "YYYY-MM-DD", "value": float}, ...]}
    """
    try:
        report = load_report()
        if report is None:
            return jsonify({'error': 'Run report not found'}), 404

        series = report.get('time_series', {}).get(name)
        if series is None:
            return jsonify({'error': f'No time series for indicator {name}'}), 404

        return jsonify({'indicator': name, 'points': series})
    except Exception as e:
        logger.error(f"Error in get_indicator_time_series: {e}")
        return jsonify({'error': 'Internal server error'}), 500


@indicators_bp.route('/indicators/<name>/histogram', methods=['GET'])
def get_indicator_histogram(name):
    """Class frequency histogram over the AOI (e.g. urbanization classes)."""
    try:
        report = load_report()
        if report is None:
            return jsonify({'error': 'Run report not found'}), 404

        histogram = report.get('histograms', {}).get(name)
        if histogram is None:
            return jsonify({'error': f'No histogram for indicator {name}'}), 404

        return jsonify({'indicator': name, 'buckets': histogram})
    except Exception as e:
        logger.error(f"Error in get_indicator_histogram: {e}")
        return jsonify({'error': 'Internal server error'}), 500
