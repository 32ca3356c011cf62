"""
Reusable validation checks shared by all mappers.

Each require_* helper raises ConfigValidationError with a message naming the
offending field. The module also owns the secret-masking helpers and the
process-wide validation cache.
"""

import hashlib
import logging
import re
import threading
from typing import Any, Callable, Dict, Optional

from review_compiler import settings
from review_compiler.errors import ConfigValidationError

logger = logging.getLogger(__name__)

MASKED_VALUE = "******"

HTTP_URL_PATTERN = re.compile(r"^https?://.*", re.IGNORECASE)

_SENSITIVE_PATTERNS = [
    (re.compile(r"password=[^;&]*"), "password=***"),
    (re.compile(r"pwd=[^;&]*"), "pwd=***"),
    (re.compile(r"api[_-]?key=[^&]*"), "api_key=***"),
    (re.compile(r"token=[^&]*"), "token=***"),
    (re.compile(r"authorization[\"']?\s*[:=]\s*[\"']?[^\"',\s]*", re.IGNORECASE), "authorization=***"),
]


def _fail(message: str) -> None:
    logger.error("Validation failed: %s", message)
    raise ConfigValidationError(message)


def null_or_blank(value: Optional[str]) -> bool:
    return value is None or not value.strip()


def not_null_or_blank(value: Optional[str]) -> bool:
    return not null_or_blank(value)


def safe_trim(value: Optional[str]) -> Optional[str]:
    return value.strip() if value is not None else None


def require_non_null(value: Any, field_name: str) -> None:
    if value is None:
        _fail(f"{field_name} cannot be null")


def require_non_blank(value: Optional[str], field_name: str) -> None:
    if null_or_blank(value):
        _fail(f"{field_name} is required but not provided")


def require_pattern(value: Optional[str], pattern: re.Pattern, field_name: str) -> None:
    require_non_blank(value, field_name)
    if not pattern.match(value.strip()):
        _fail(f"{field_name} does not match required pattern: {mask_sensitive_info(value)}")


def require_valid_http_url(url: Optional[str], field_name: str) -> None:
    require_pattern(url, HTTP_URL_PATTERN, field_name)


def require_valid_jdbc_url(url: Optional[str], field_name: str) -> None:
    require_non_blank(url, field_name)
    if not url.strip().lower().startswith("jdbc:"):
        _fail(f"{field_name} must start with 'jdbc:' - provided: {mask_sensitive_info(url)}")


def require_in_range(value: Optional[int], minimum: int, maximum: int, field_name: str) -> None:
    """Inclusive range check; None is rejected."""
    if value is None:
        _fail(f"{field_name} cannot be null")
    if value < minimum or value > maximum:
        _fail(f"{field_name} must be between {minimum} and {maximum}, but was: {value}")


def require(condition: bool, message: str) -> None:
    if not condition:
        _fail(message)


def mask_sensitive_info(value: Optional[str]) -> Optional[str]:
    """Mask passwords, tokens, API keys and authorization values for logging."""
    if value is None:
        return None
    masked = value
    for pattern, replacement in _SENSITIVE_PATTERNS:
        masked = pattern.sub(replacement, masked)
    return masked


def mask_secret(value: Optional[str]) -> Optional[str]:
    """Replace a secret with a fixed placeholder, keeping None as None."""
    return None if value is None else MASKED_VALUE


class ValidationCache:
    """
    Bounded map of check outcomes keyed by (mapper, field, value hash).

    Only booleans are stored, never the validated values. Once the cap is
    reached the whole map is cleared. A miss just repeats the check.
    """

    def __init__(self, max_size: Optional[int] = None, enabled: Optional[bool] = None):
        self._max_size = max_size
        self._enabled = enabled
        self._entries: Dict[str, bool] = {}
        self._lock = threading.Lock()

    @property
    def enabled(self) -> bool:
        if self._enabled is None:
            return settings.validation_cache_enabled()
        return self._enabled

    @enabled.setter
    def enabled(self, value: Optional[bool]) -> None:
        self._enabled = value

    @property
    def max_size(self) -> int:
        if self._max_size is None:
            return settings.validation_cache_size()
        return self._max_size

    @staticmethod
    def make_key(mapper_name: str, field_name: str, value: Any) -> str:
        if value is None:
            value_hash = "null"
        else:
            value_hash = hashlib.sha256(str(value).encode("utf-8")).hexdigest()
        return f"{mapper_name}.{field_name}:{value_hash}"

    def is_valid(self, key: str) -> bool:
        with self._lock:
            return self._entries.get(key, False)

    def put(self, key: str, valid: bool) -> None:
        with self._lock:
            if len(self._entries) >= self.max_size:
                logger.debug("Validation cache size limit reached, clearing cache")
                self._entries.clear()
            self._entries[key] = valid

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


validation_cache = ValidationCache()


def cached_check(mapper_name: str, field_name: str, value: Any, check: Callable[[], None]) -> None:
    """Run check() unless the same (mapper, field, value) already passed."""
    if not validation_cache.enabled:
        check()
        return

    key = ValidationCache.make_key(mapper_name, field_name, value)
    if validation_cache.is_valid(key):
        logger.debug("Validation of %s.%s served from cache", mapper_name, field_name)
        return

    try:
        check()
    except ConfigValidationError:
        validation_cache.put(key, False)
        raise
    validation_cache.put(key, True)
