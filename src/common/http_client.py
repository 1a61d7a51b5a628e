"""Shared HTTP helpers used by the NuGet registry client.

Encapsulates common request/timeout/retry handling so registry modules avoid
duplicating try/except blocks. Metadata requests are cached in memory for
``Constants.HTTP_CACHE_TTL_SEC``; package downloads are streamed and never
cached here (the on-disk package folder is their cache).
"""
from __future__ import annotations

import json
import logging
import threading
import time
from typing import Any, Dict, Iterator, Optional, Tuple

import requests

from constants import Constants
from common.logging_utils import extra_context, is_debug_enabled, safe_url, Timer

logger = logging.getLogger(__name__)


# Simple in-memory cache for HTTP responses, shared by worker threads
_http_cache: Dict[str, Tuple[Any, float]] = {}
_http_cache_lock = threading.Lock()


def _get_cache_key(method: str, url: str, headers: Optional[Dict[str, str]] = None) -> str:
    """Generate cache key from request parameters."""
    headers_str = str(sorted(headers.items())) if headers else ""
    return f"{method}:{url}:{headers_str}"


def _is_cache_valid(cache_entry: Tuple[Any, float]) -> bool:
    """Check if cache entry is still valid."""
    _, cached_time = cache_entry
    return time.time() - cached_time < Constants.HTTP_CACHE_TTL_SEC


def clear_cache() -> None:
    """Drop all cached responses."""
    with _http_cache_lock:
        _http_cache.clear()


def _backoff(attempt: int) -> None:
    if attempt + 1 < Constants.HTTP_RETRY_MAX:
        time.sleep(Constants.HTTP_RETRY_BASE_DELAY_SEC * (2 ** attempt))


def robust_get(
    url: str,
    *,
    headers: Optional[Dict[str, str]] = None,
    **kwargs: Any
) -> Tuple[int, Dict[str, str], str]:
    """Perform GET request with timeout, retries, and caching with DEBUG traces.

    Returns:
        Tuple of (status_code, headers_dict, body_text). A status code of 0
        means every attempt failed at the transport level.
    """
    cache_key = _get_cache_key('GET', url, headers)
    safe_target = safe_url(url)

    with _http_cache_lock:
        entry = _http_cache.get(cache_key)
    if entry is not None and _is_cache_valid(entry):
        cached_data, _ = entry
        if is_debug_enabled(logger):
            logger.debug(
                "HTTP cache hit",
                extra=extra_context(
                    event="cache_hit",
                    component="http_client",
                    action="GET",
                    target=safe_target
                )
            )
        return cached_data

    last_exception = None

    for attempt in range(Constants.HTTP_RETRY_MAX):
        with Timer() as t:
            try:
                if is_debug_enabled(logger):
                    logger.debug(
                        "HTTP request",
                        extra=extra_context(
                            event="http_request",
                            component="http_client",
                            action="GET",
                            target=safe_target,
                            attempt=attempt + 1
                        )
                    )

                response = requests.get(
                    url,
                    timeout=Constants.REQUEST_TIMEOUT,
                    headers=headers,
                    **kwargs
                )

                if response.status_code >= 500:
                    last_exception = f"HTTP {response.status_code}"
                    _backoff(attempt)
                    continue

                cache_data = (response.status_code, dict(response.headers), response.text)
                with _http_cache_lock:
                    _http_cache[cache_key] = (cache_data, time.time())

                if is_debug_enabled(logger):
                    logger.debug(
                        "HTTP response ok",
                        extra=extra_context(
                            event="http_response",
                            component="http_client",
                            action="GET",
                            outcome="success",
                            status_code=response.status_code,
                            duration_ms=t.duration_ms(),
                            target=safe_target
                        )
                    )
                return cache_data

            except requests.Timeout:
                last_exception = "timeout"
                if is_debug_enabled(logger):
                    logger.debug(
                        "HTTP timeout",
                        extra=extra_context(
                            event="http_exception",
                            component="http_client",
                            action="GET",
                            outcome="timeout",
                            attempt=attempt + 1,
                            target=safe_target
                        )
                    )
                _backoff(attempt)
                continue
            except requests.RequestException as exc:
                last_exception = str(exc)
                if is_debug_enabled(logger):
                    logger.debug(
                        "HTTP request exception",
                        extra=extra_context(
                            event="http_exception",
                            component="http_client",
                            action="GET",
                            outcome="request_exception",
                            attempt=attempt + 1,
                            target=safe_target
                        )
                    )
                _backoff(attempt)
                continue

    logger.warning("GET %s failed after %d attempts: %s", safe_target, Constants.HTTP_RETRY_MAX, last_exception)
    return 0, {}, f"Request failed after {Constants.HTTP_RETRY_MAX} attempts: {last_exception}"


def get_json(
    url: str,
    *,
    headers: Optional[Dict[str, str]] = None,
    **kwargs: Any
) -> Tuple[int, Dict[str, str], Optional[Any]]:
    """Perform GET request and parse JSON response with DEBUG traces.

    Args:
        url: Target URL
        headers: Optional request headers
        **kwargs: Additional requests.get parameters

    Returns:
        Tuple of (status_code, headers_dict, parsed_json_or_none)
    """
    status_code, response_headers, text = robust_get(url, headers=headers, **kwargs)

    if status_code == 200 and text:
        try:
            return status_code, response_headers, json.loads(text)
        except json.JSONDecodeError:
            if is_debug_enabled(logger):
                logger.debug(
                    "JSON decode error",
                    extra=extra_context(
                        event="parse",
                        component="http_client",
                        action="get_json",
                        outcome="json_decode_error",
                        status_code=status_code,
                        target=safe_url(url)
                    )
                )
            return status_code, response_headers, None

    return status_code, response_headers, None


def stream_get(url: str, *, chunk_size: int = Constants.DOWNLOAD_CHUNK_SIZE) -> Iterator[bytes]:
    """Stream a binary resource, retrying the connection before the first byte.

    Raises:
        requests.RequestException: when every attempt fails or the server
            answers with a non-200 status.
    """
    safe_target = safe_url(url)
    last_exception: Optional[Exception] = None

    for attempt in range(Constants.HTTP_RETRY_MAX):
        try:
            response = requests.get(url, timeout=Constants.REQUEST_TIMEOUT, stream=True)
        except requests.RequestException as exc:
            last_exception = exc
            _backoff(attempt)
            continue

        if response.status_code >= 500:
            response.close()
            last_exception = requests.HTTPError(f"HTTP {response.status_code} for {safe_target}")
            _backoff(attempt)
            continue

        if response.status_code != 200:
            response.close()
            raise requests.HTTPError(f"HTTP {response.status_code} for {safe_target}")

        if is_debug_enabled(logger):
            logger.debug(
                "HTTP stream opened",
                extra=extra_context(
                    event="http_response",
                    component="http_client",
                    action="GET",
                    outcome="streaming",
                    status_code=response.status_code,
                    target=safe_target,
                    attempt=attempt + 1
                )
            )
        with response:
            yield from response.iter_content(chunk_size=chunk_size)
        return

    raise requests.RequestException(
        f"Download of {safe_target} failed after {Constants.HTTP_RETRY_MAX} attempts: {last_exception}"
    )
