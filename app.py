import os
import logging
import datetime
from pathlib import Path
from flask import Flask, jsonify
from flask_cors import CORS
from config.config import Config

# Import Blueprints
from api.indicators import indicators_bp
from api.sites import sites_bp

# Configure logging
logging.basicConfig(
    level=logging.DEBUG if Config.DEBUG else logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

SERVICE_NAME = 'Heat Site Ranking API'
VERSION = '1.0.0'


def create_app(test_config=None):
    """
    Create and configure the Flask application.

    Args:
        test_config: Optional mapping applied over Config (e.g. REPORT_PATH for tests).
    """
    app = Flask(__name__)

    # Load configuration
    app.config.from_object(Config)
    app.config['REPORT_PATH'] = str(Config.report_path())
    if test_config:
        app.config.update(test_config)

    # Configure CORS
    CORS(app, resources={r"/api/*": {"origins": app.config['CORS_ORIGINS']}})

    # Register Blueprints
    app.register_blueprint(indicators_bp, url_prefix='/api')
    app.register_blueprint(sites_bp, url_prefix='/api')

    # Routes
    @app.route('/api/health', methods=['GET'])
    def health_check():
        """Health check with route listing."""
        routes = [str(rule) for rule in app.url_map.iter_rules()]

        return jsonify({
            'status': 'healthy',
            'service': SERVICE_NAME,
            'version': VERSION,
            'routes': sorted(routes)
        })

    @app.route('/api/info', methods=['GET'])
    def api_info():
        """Return API information and data status."""
        output_dir = Path(app.config['REPORT_PATH']).parent

        # Check files
        files_status = {
            "run_report_json": Path(app.config['REPORT_PATH']).exists(),
            "top_sites_geojson": (output_dir / "top_sites.geojson").exists(),
            "lst_raster": (output_dir / "lst.tif").exists(),
            "ndvi_raster": (output_dir / "ndvi.tif").exists(),
        }

        return jsonify({
            'name': SERVICE_NAME,
            'version': VERSION,
            'description': 'Ranks candidate sites by heat, vegetation, pollution and population indicators',
            'data_status': files_status,
            'last_updated': datetime.datetime.now().isoformat()
        })

    # Error handlers
    @app.errorhandler(404)
    def not_found_error(error):
        return jsonify({'error': 'Resource not found'}), 404

    @app.errorhandler(500)
    def internal_error(error):
        logger.error(f"Server Error: {error}")
        return jsonify({'error': 'Internal server error'}), 500

    return app


app = create_app()

if __name__ == '__main__':
    Config.ensure_directories()
    port = int(os.getenv('PORT', 5000))

    logger.info(f"Starting server on port {port} with debug={Config.DEBUG}")
    app.run(host='0.0.0.0', port=port, debug=Config.DEBUG)
