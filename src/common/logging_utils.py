"""Logging helpers: setup, structured context and redaction.

Log records carry structured fields through ``extra=extra_context(...)`` so
handlers that understand them (JSON formatters, test capture) can pick them
up, while the default text format stays short.
"""
from __future__ import annotations

import logging
import os
import re
import time
import urllib.parse
from typing import Any, Dict, Optional

from constants import Constants

_SENSITIVE_KEYS = ("token", "auth", "password", "secret", "key")
_REDACTED = "[REDACTED]"


def configure_logging(level: Optional[str] = None) -> None:
    """Configure the root logger once with the project format.

    Level precedence: explicit ``level``, then ``SHRINKWRAP_LOG_LEVEL``,
    then INFO.
    """
    level_name = (level or os.environ.get(Constants.ENV_LOG_LEVEL) or "INFO").upper()
    level_value = getattr(logging, level_name, logging.INFO)
    root = logging.getLogger()
    if not root.handlers:
        logging.basicConfig(format=Constants.LOG_FORMAT)
    root.setLevel(level_value)


def is_debug_enabled(logger: logging.Logger) -> bool:
    """Return True when DEBUG records from ``logger`` would be emitted."""
    return logger.isEnabledFor(logging.DEBUG)


def extra_context(**fields: Any) -> Dict[str, Any]:
    """Build the ``extra`` mapping for a structured log record.

    ``None`` values are dropped so call sites can pass optional fields
    unconditionally.
    """
    return {key: value for key, value in fields.items() if value is not None}


def redact(text: str) -> str:
    """Mask ``key=value`` pairs whose key looks like a credential."""
    pattern = r"(?i)\b(\w*(?:%s)\w*)=([^&\s]+)" % "|".join(_SENSITIVE_KEYS)
    return re.sub(pattern, lambda m: f"{m.group(1)}={_REDACTED}", text)


def safe_url(url: str) -> str:
    """Return ``url`` with userinfo and credential-like query values redacted."""
    try:
        parts = urllib.parse.urlsplit(url)
    except ValueError:
        return redact(url)
    netloc = parts.netloc
    if "@" in netloc:
        netloc = f"{_REDACTED}@{netloc.rsplit('@', 1)[1]}"
    return urllib.parse.urlunsplit(
        (parts.scheme, netloc, parts.path, redact(parts.query), parts.fragment)
    )


class Timer:
    """Context manager measuring wall-clock duration in milliseconds."""

    def __init__(self) -> None:
        self._start = 0.0
        self._end: Optional[float] = None

    def __enter__(self) -> "Timer":
        self._start = time.perf_counter()
        self._end = None
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self._end = time.perf_counter()

    def duration_ms(self) -> int:
        """Elapsed milliseconds, measured up to now while still running."""
        end = self._end if self._end is not None else time.perf_counter()
        return int((end - self._start) * 1000)
