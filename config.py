"""
Field Route Reporter configuration.

API endpoints, rendering constants, and credentials loaded from .env.
"""

import os
from pathlib import Path

from dotenv import load_dotenv

load_dotenv()

# --- Paths ---
PROJECT_ROOT = Path(__file__).parent
DATA_DIR = PROJECT_ROOT / "data"
SETTINGS_PATH = DATA_DIR / "settings.json"

# --- API Keys ---
TELEGRAM_BOT_TOKEN = os.getenv("TELEGRAM_BOT_TOKEN", "")
TELEGRAM_CHAT_ID = os.getenv("TELEGRAM_CHAT_ID", "")
GOOGLE_MAPS_API_KEY = os.getenv("GOOGLE_MAPS_API_KEY", "")

# --- Telegram Bot API ---
TELEGRAM_API_URL = "https://api.telegram.org"
TELEGRAM_TIMEOUT = 60  # seconds, uploads can be large
TELEGRAM_MEDIA_GROUP_LIMIT = 10  # max items per sendMediaGroup call

# --- Google Static Maps (satellite tier) ---
STATIC_MAPS_URL = "https://maps.googleapis.com/maps/api/staticmap"
STATIC_MAPS_REQUEST_SIZE = 512  # requested at scale=2 -> 1024px
STATIC_MAPS_TIMEOUT = 15

# --- OSM tiles (mosaic tier) ---
TILE_URL_TEMPLATE = "https://tile.openstreetmap.org/{z}/{x}/{y}.png"
TILE_USER_AGENT = os.getenv("TILE_USER_AGENT", "field-route-reporter/0.1 (tile-fetch)")
TILE_TIMEOUT = 10
TILE_RATE_LIMIT = 20  # requests per second across all workers
TILE_WORKERS = 8
TILE_SIZE = 256

# --- Summary image ---
SUMMARY_IMAGE_SIZE = 1024
JPEG_QUALITY = 90
MAP_PADDING_PX = 200  # per side, for optimal zoom
MAX_ZOOM = 19
FALLBACK_ZOOM = 15
SATELLITE_DARKEN_ALPHA = 77  # ~30% black overlay
NAME_MAX_CHARS = 25

# --- Location capture ---
LOCATION_TIMEOUT_S = 30
NOMINAL_ACCURACY_M = 5.0  # accuracy recorded for points placed by dragging
BOOTSTRAP_ZOOM = 18
FLY_DURATION_S = 1.5

# --- Report defaults ---
DEFAULT_DOCUMENT_NAME = "MT Field Work"
DEFAULT_DOCUMENT_DESCRIPTION = "Field Work Record"

# --- Logging ---
LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
