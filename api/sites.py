import logging
from flask import Blueprint, jsonify, request

from .report_store import load_report

# Create Blueprint
sites_bp = Blueprint('sites', __name__)

# Setup logging
logger = logging.getLogger(__name__)


@sites_bp.route('/sites/top', methods=['GET'])
def get_top_sites():
    """
    Ranked candidate sites of the latest run.

    Query Params: limit (default: all ranked sites, 1-100)

    Returns:
        JSON: {"sites": [{"rank", "lat", "lon", "label", "features"}, ...],
               "sort_keys": [...], "sampled_points": int, "scored_points": int}
    """
    try:
        report = load_report()
        if report is None:
            return jsonify({'error': 'Run report not found'}), 404

        sites = report.get('top_sites', [])
        limit = request.args.get('limit')
        if limit is not None:
            try:
                limit = int(limit)
            except ValueError:
                return jsonify({'error': 'Limit must be an integer'}), 400
            if limit < 1 or limit > 100:
                return jsonify({'error': 'Limit must be between 1 and 100'}), 400
            sites = sites[:limit]

        return jsonify({
            'sites': sites,
            'sort_keys': report.get('sort_keys', []),
            'sampled_points': report.get('sampled_points', 0),
            'scored_points': report.get('scored_points', 0),
        })
    except Exception as e:
        logger.error(f"Error in get_top_sites: {e}")
        return jsonify({'error': 'Internal server error'}), 500


@sites_bp.route('/sites/geojson', methods=['GET'])
def get_sites_geojson():
    """Ranked sites as a GeoJSON FeatureCollection for map layers."""
    try:
        report = load_report()
        if report is None:
            return jsonify({'error': 'Run report not found'}), 404

        features = [
            {
                'type': 'Feature',
                'geometry': {'type': 'Point', 'coordinates': [site['lon'], site['lat']]},
                'properties': {'rank': site['rank'], 'label': site['label'], **site['features']},
            }
            for site in report.get('top_sites', [])
        ]
        return jsonify({'type': 'FeatureCollection', 'features': features})
    except Exception as e:
        logger.error(f"Error in get_sites_geojson: {e}")
        return jsonify({'error': 'Internal server error'}), 500
