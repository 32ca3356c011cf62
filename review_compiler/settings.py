"""
Environment configuration.

Entry points call load_dotenv() before reading these, so values may come
from a .env file as well as the process environment.
"""

import os

DEFAULT_ENCODING = "UTF-8"
DEFAULT_LOG_FORMAT = "%(levelname)s: %(message)s"


def log_level() -> str:
    """Logging level name for the CLI and API entry points."""
    return os.getenv("REVIEW_COMPILER_LOG_LEVEL", "INFO").upper()


def validation_cache_enabled() -> bool:
    return os.getenv("REVIEW_COMPILER_VALIDATION_CACHE", "true").lower() == "true"


def validation_cache_size() -> int:
    """Entry cap of the validation cache (cleared entirely once reached)."""
    return int(os.getenv("REVIEW_COMPILER_VALIDATION_CACHE_SIZE", "1000"))
