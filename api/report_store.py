import json
from pathlib import Path
from typing import Dict, Optional

from flask import current_app


def report_path() -> Path:
    return Path(current_app.config['REPORT_PATH'])


def load_report() -> Optional[Dict]:
    """Latest run report, or None when no run has been written yet."""
    path = report_path()
    if not path.exists():
        return None
    with open(path, 'r') as f:
        return json.load(f)
