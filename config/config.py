import os
from pathlib import Path

from dotenv import load_dotenv

# Environment variables from .env must be in place before Config reads them
load_dotenv()


class Config:
    """Base config."""
    # Base paths
    BASE_DIR = Path(__file__).resolve().parent.parent
    DATA_DIR = Path(os.getenv('THERMAL_ATLAS_DATA_DIR', BASE_DIR / 'data'))

    # Data subdirectories
    RAW_DATA_DIR = DATA_DIR / 'raw'
    CATALOG_DIR = Path(os.getenv('RASTER_CATALOG_DIR', RAW_DATA_DIR / 'catalog'))
    PROCESSED_DATA_DIR = DATA_DIR / 'processed'

    # Pipeline
    RUN_CONFIG_PATH = os.getenv('RUN_CONFIG_PATH')
    REPORT_FILENAME = 'run_report.json'
    RANKING_MAX_WORKERS = int(os.getenv('RANKING_MAX_WORKERS', '4'))

    # CORS
    CORS_ORIGINS = os.getenv('CORS_ORIGINS', 'http://localhost:5173').split(',')

    # Flask settings
    DEBUG = os.getenv('FLASK_DEBUG') == 'True'
    TESTING = False

    @classmethod
    def report_path(cls) -> Path:
        return cls.PROCESSED_DATA_DIR / cls.REPORT_FILENAME

    @staticmethod
    def ensure_directories():
        """Ensure all data directories exist."""
        dirs = [Config.RAW_DATA_DIR, Config.CATALOG_DIR, Config.PROCESSED_DATA_DIR]
        for d in dirs:
            d.mkdir(parents=True, exist_ok=True)
