# config.py
import os


def _env(name, default):
    value = os.getenv(name)
    return default if value in (None, "") else value


# MongoDB
MONGO_URI = _env("HEATMAP_MONGO_URI", "mongodb://localhost:27017")
DB_NAME = _env("HEATMAP_DB_NAME", "campus_heatmap")
REPORTS_COLLECTION = _env("HEATMAP_REPORTS_COLLECTION", "location_reports")
STORE_TIMEOUT_MS = int(_env("HEATMAP_STORE_TIMEOUT_MS", 5000))

# Retention / decay
RETENTION_WINDOW_SECONDS = float(_env("HEATMAP_RETENTION_SECONDS", 300))
SWEEP_INTERVAL_SECONDS = float(_env("HEATMAP_SWEEP_INTERVAL_SECONDS", 10))

# Reports
DEFAULT_WEIGHT = 1.0

# Default camera for consumers (UCSB campus)
MAP_CENTER = (34.4140, -119.8489)
MAP_ZOOM = 15.0

# Optional GeoJSON output file for the heat layer
HEATMAP_OUTPUT_PATH = _env("HEATMAP_OUTPUT_PATH", None)

# API Configuration
API_HOST = _env("HEATMAP_API_HOST", "0.0.0.0")
API_PORT = int(_env("HEATMAP_API_PORT", 8000))

# Logging
DEBUG_MODE = str(_env("HEATMAP_DEBUG", "false")).lower() in ("1", "true", "yes")
LOG_FORMAT = "[%(asctime)s] %(levelname)s: %(message)s"
