"""
Configuration module for the Match Screenshot Recognition service.
Centralizes all constants and environment-based settings.
"""

import os
import secrets
from pathlib import Path
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()

# Base paths
BASE_DIR = Path(__file__).resolve().parent
UPLOAD_FOLDER = BASE_DIR / "uploads"
OCR_DEBUG_FOLDER = BASE_DIR / "ocr_debug"

# Flask configuration
class FlaskConfig:
    """Flask application configuration."""
    SECRET_KEY = os.getenv("SECRET_KEY", secrets.token_hex(32))
    UPLOAD_FOLDER = str(UPLOAD_FOLDER)
    MAX_CONTENT_LENGTH = int(os.getenv("MAX_UPLOAD_SIZE_MB", 20)) * 1024 * 1024
    DEBUG = os.getenv("FLASK_DEBUG", "false").lower() == "true"
    HOST = os.getenv("FLASK_HOST", "0.0.0.0")
    PORT = int(os.getenv("FLASK_PORT", 5000))


# Allowed file extensions for upload
ALLOWED_EXTENSIONS = {"png", "jpg", "jpeg", "webp", "bmp"}


# Highlighted player row detection (HSV segmentation)
class RowLocatorConfig:
    """Tuned for the results screen of one game HUD; keep values for parity."""
    GREEN_HSV_LOWER = (40, 60, 60)
    GREEN_HSV_UPPER = (85, 255, 255)
    MORPH_KERNEL = 3
    # Table band, excludes the banner and footer chrome
    BAND_TOP = 0.22
    BAND_BOTTOM = 0.80
    MAX_X_FRACTION = 0.55
    MIN_AREA = 120
    MIN_HEIGHT = 8
    MAX_HEIGHT = 40
    MIN_ASPECT = 1.2
    MAX_ASPECT = 12.0
    # score = area * AREA_WEIGHT + width * WIDTH_WEIGHT - |y - ROW_CENTER * H| * Y_PENALTY
    AREA_WEIGHT = 1.0
    WIDTH_WEIGHT = 2.0
    Y_PENALTY = 0.1
    ROW_CENTER = 0.40
    CROP_MULTIPLIER = 3.0
    CROP_MIN = 32
    CROP_MAX = 90
    CROP_ABOVE_BIAS = 0.45


# Row localizer worker process
class WorkerConfig:
    """Worker process timing."""
    INIT_TIMEOUT = float(os.getenv("CV_INIT_TIMEOUT", 15.0))
    RESPONSE_TIMEOUT = float(os.getenv("CV_RESPONSE_TIMEOUT", 30.0))
    POLL_INTERVAL = 0.05
    START_METHOD = os.getenv("CV_WORKER_START_METHOD", "spawn")


# OCR configuration
class OCRConfig:
    """Local OCR passes over the results screen."""
    ENGINE = os.getenv("OCR_ENGINE", "tesseract")
    TESSERACT_LANG = os.getenv("TESSERACT_LANG", "eng+rus")
    RESULT_WHITELIST = (
        "ABCDEFGHIJKLMNOPQRSTUVWXYZ"
        "ÉÈÊËÀÂÎÏÔÛÙÜÇÄÖÜß"
        "АБВГДЕЖЗИЙКЛМНОПРСТУФХЦЧШЩЫЬЭЮЯ"
    )
    # Label letters must survive for the labelled-token parser
    MATCH_ID_WHITELIST = (
        "ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz0123456789:#-"
        "КОДМАТЧкодматч"
    )
    STAT_WHITELIST = "0123456789/%.,"
    # (x, y, w, h) fractions, tightest first
    RESULT_REGIONS = (
        (0.25, 0.0, 0.5, 0.18),
        (0.20, 0.0, 0.6, 0.22),
        (0.15, 0.0, 0.7, 0.25),
        (0.00, 0.0, 1.0, 0.20),
    )
    RESULT_THRESHOLDS = (120, 135, 150)
    RESULT_UPSCALE = 2.0
    MATCH_ID_UPSCALE = 2.4
    MATCH_ID_THRESHOLD = 140
    MATCH_ID_HEIGHT = 0.45
    STAT_THRESHOLD = int(os.getenv("STAT_THRESHOLD", 135))
    UPLOAD_MAX_SIDE = 1280
    DEBUG_SAVE = os.getenv("OCR_DEBUG_SAVE", "false").lower() == "true"


# Remote OCR (stat line)
class RemoteOCRConfig:
    """OCR.space settings; disabled when no API key is configured."""
    API_KEY = os.getenv("OCR_SPACE_API_KEY", "")
    ENDPOINT = os.getenv("OCR_SPACE_ENDPOINT", "https://api.ocr.space/parse/image")
    LANGUAGE = os.getenv("OCR_SPACE_LANGUAGE", "eng")
    TIMEOUT = float(os.getenv("OCR_SPACE_TIMEOUT", 20.0))
    CACHE_TTL_MS = int(os.getenv("OCR_SPACE_CACHE_TTL_MS", 60000))


# Request deduplication cache
class CacheConfig:
    """Failure cooldowns by upstream failure class."""
    DEFAULT_TTL_MS = 1500
    RATE_LIMIT_COOLDOWN_MS = 8000
    SERVER_ERROR_COOLDOWN_MS = 3000
    OTHER_COOLDOWN_MS = 1500


# Logging configuration
class LogConfig:
    """Logging settings."""
    LEVEL = os.getenv("LOG_LEVEL", "INFO")
    FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
    FILE = os.getenv("LOG_FILE", None)  # None = console only


# Cleanup configuration
class CleanupConfig:
    """File cleanup settings."""
    UPLOAD_MAX_AGE_HOURS = int(os.getenv("UPLOAD_MAX_AGE_HOURS", 24))
    DEBUG_MAX_FILES = int(os.getenv("OCR_DEBUG_MAX_FILES", 500))
    AUTO_CLEANUP = os.getenv("AUTO_CLEANUP", "true").lower() == "true"
