"""Centralized logging helpers.

Every module logs through ``logging.getLogger(__name__)``; this module only
configures the root logger and offers small helpers for structured DEBUG
traces (``extra=extra_context(...)``) so call sites stay uniform.
"""
from __future__ import annotations

import logging
import os
import time
import urllib.parse
from typing import Any, Dict, Optional

from constants import Constants


def configure_logging(level: Optional[str] = None) -> None:
    """Configure the root logger once.

    The level comes from the ``level`` argument, then the
    ``NUGET2UNITY_LOG_LEVEL`` environment variable, then INFO.
    """
    level_name = (level or os.environ.get(Constants.LOG_LEVEL_ENV) or "INFO").upper()
    level_value = getattr(logging, level_name, logging.INFO)

    root = logging.getLogger()
    if not root.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(Constants.LOG_FORMAT))
        root.addHandler(handler)
    root.setLevel(level_value)


def add_file_handler(path: str) -> logging.Handler:
    """Mirror all log records into ``path``."""
    file_handler = logging.FileHandler(path, encoding="utf-8")
    file_handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s %(message)s"))
    logging.getLogger().addHandler(file_handler)
    return file_handler


def extra_context(**fields: Any) -> Dict[str, Any]:
    """Build an ``extra=`` mapping, dropping unset fields."""
    return {key: value for key, value in fields.items() if value is not None}


def is_debug_enabled(logger: logging.Logger) -> bool:
    """Return True when DEBUG records from ``logger`` would be emitted."""
    return logger.isEnabledFor(logging.DEBUG)


def safe_url(url: str) -> str:
    """Strip credentials, query and fragment so URLs are safe to log."""
    try:
        parts = urllib.parse.urlsplit(url)
    except ValueError:
        return "<invalid-url>"
    netloc = parts.hostname or ""
    if parts.port:
        netloc = f"{netloc}:{parts.port}"
    return urllib.parse.urlunsplit((parts.scheme, netloc, parts.path, "", ""))


class Timer:
    """Context manager measuring elapsed wall time."""

    def __init__(self):
        self._start = 0.0
        self._end: Optional[float] = None

    def __enter__(self) -> "Timer":
        self._start = time.perf_counter()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self._end = time.perf_counter()

    def duration_ms(self) -> int:
        end = self._end if self._end is not None else time.perf_counter()
        return int((end - self._start) * 1000)
