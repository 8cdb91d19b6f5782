"""
Centralized configuration loader.

Reads the ENVIRONMENT env-var and merges the correct environment module
(config_prod or config_local) into a single settings namespace.

Usage:
    from configs.config import get_config
    cfg = get_config()
    print(cfg.ELEVENLABS_BASE_URL)
"""

import os
import importlib
import logging
from types import SimpleNamespace

logger = logging.getLogger(__name__)

# ── Environment detection ────────────────────────────────────────────────
ENVIRONMENT = os.getenv("ENVIRONMENT", "production")

# ── Shared constants (environment-independent) ───────────────────────────

# ElevenLabs dubbing service
ELEVENLABS_API_KEY = os.getenv("ELEVENLABS_API_KEY", "")
ELEVENLABS_BASE_URL = os.getenv("ELEVENLABS_BASE_URL", "https://api.elevenlabs.io")
ELEVENLABS_CONNECT_TIMEOUT_SECONDS = 10.0
ELEVENLABS_TIMEOUT_SECONDS = 120.0

# Request defaults
DEFAULT_SOURCE_LANG = "en"
DEFAULT_TARGET_LANG = "es"
DEFAULT_TRANSCRIPT_FORMAT = "srt"
TRANSCRIPT_FORMATS = frozenset({"srt", "webvtt"})
TRANSCRIPT_LANGUAGES = frozenset({"source", "target"})

# Uploads
MAX_UPLOAD_SIZE = 100 * 1024 * 1024  # 100 MB

ALLOWED_EXTENSIONS = frozenset({
    ".webm", ".ogg", ".oga", ".wav", ".mp3", ".m4a", ".aac", ".flac",
    ".mp4", ".mov", ".mkv",
})

CORS_METHODS = ["GET", "POST", "OPTIONS"]
CORS_HEADERS = [
    "Accept",
    "Accept-Language",
    "Content-Type",
    "Origin",
    "X-Requested-With",
    "X-Request-ID",
]
EXPOSE_HEADERS = ["Content-Disposition", "X-Request-ID"]

# Logging
LOG_FILE_APP = "app.log"
LOG_FILE_ERRORS = "errors.log"
LOG_MAX_BYTES = 5 * 1024 * 1024  # 5 MB
LOG_BACKUP_COUNT = 5

# Translation client
RELAY_URL = os.getenv("RELAY_URL", "http://localhost:8000")
POLL_INTERVAL_SECONDS = 3.0
EXPECTED_DURATION_FALLBACK_SECONDS = 10.0
CLIENT_TIMEOUT_SECONDS = 60.0
TERMINAL_STATUSES = frozenset({"done", "dubbed"})
FAILED_STATUSES = frozenset({"failed"})


# ── Config loader ────────────────────────────────────────────────────────

_config_cache = None


def get_config() -> SimpleNamespace:
    """
    Return a merged configuration namespace.

    Environment-specific values from config_local or config_prod
    override the shared defaults defined above.
    """
    global _config_cache
    if _config_cache is not None:
        return _config_cache

    # Start with all module-level constants
    base = {
        key: value
        for key, value in globals().items()
        if key.isupper() and not key.startswith("_")
    }

    # Overlay environment-specific settings
    env_module_name = (
        "configs.config_local" if ENVIRONMENT == "development"
        else "configs.config_prod"
    )
    try:
        env_module = importlib.import_module(env_module_name)
        for key in dir(env_module):
            if key.isupper():
                base[key] = getattr(env_module, key)
        logger.info("Loaded configuration from %s", env_module_name)
    except ImportError:
        logger.warning(
            "Environment config '%s' not found; using shared defaults.",
            env_module_name,
        )

    _config_cache = SimpleNamespace(**base)
    return _config_cache
