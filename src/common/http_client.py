"""Shared HTTP helpers used by registry clients.

Encapsulates retry, timeout and decoding error handling so the registry
client only deals with registry semantics. Failures are raised as the
``common.errors`` taxonomy instead of exiting, because a single failed
package must not take the whole resolution down.
"""
from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Optional, Tuple

import aiohttp

from constants import Constants
from common.errors import HTTPStatusError, NetworkError, ParseError, RequestTimeoutError
from common.logging_utils import extra_context, is_debug_enabled, safe_url, Timer

logger = logging.getLogger(__name__)


async def _fetch_text(
    session: aiohttp.ClientSession, url: str, **kwargs: Any
) -> Tuple[int, str]:
    """Perform one GET and return (status, body)."""
    async with session.get(url, **kwargs) as response:
        return response.status, await response.text()


def decode_json(name: str, url: str, status_code: int, text: str) -> Any:
    """Validate the status code and decode a JSON body.

    Raises:
        HTTPStatusError: for any status other than 200.
        ParseError: when the body is not valid JSON.
    """
    if status_code != 200:
        logger.warning(
            "HTTP non-200 for %s (%s)",
            name,
            status_code,
            extra=extra_context(
                event="http_response",
                component="http_client",
                outcome="handled_non_200",
                status_code=status_code,
                target=safe_url(url),
            ),
        )
        raise HTTPStatusError(name, status_code)
    try:
        return json.loads(text)
    except ValueError as exc:
        if is_debug_enabled(logger):
            logger.debug(
                "JSON decode error",
                extra=extra_context(
                    event="parse",
                    component="http_client",
                    action="get_json",
                    outcome="json_decode_error",
                    status_code=status_code,
                    target=safe_url(url),
                ),
            )
        raise ParseError(name, f"Failed to parse the JSON response for {name}: {exc}") from exc


async def get_json(
    session: aiohttp.ClientSession,
    url: str,
    *,
    name: str,
    context: str = "npm",
    attempts: int = Constants.HTTP_RETRY_MAX,
    retry_delay: Optional[float] = None,
    **kwargs: Any,
) -> Any:
    """GET ``url`` and return its decoded JSON body, retrying transport failures.

    Args:
        session: Open aiohttp session.
        url: Target URL.
        name: Package name the request is made for; attached to raised errors.
        context: Human-readable source tag for logs.
        attempts: Maximum number of transport attempts.
        retry_delay: Base delay between attempts (linear backoff).
        **kwargs: Passed through to ``session.get``.

    Returns:
        The decoded JSON document.

    Raises:
        NetworkError: all attempts failed at the transport level.
        RequestTimeoutError: all attempts failed and the last one timed out.
        HTTPStatusError: the registry answered with a non-200 status.
        ParseError: the body is not JSON.
    """
    delay = Constants.HTTP_RETRY_BASE_DELAY_SEC if retry_delay is None else retry_delay
    safe_target = safe_url(url)
    last_exception: Optional[BaseException] = None

    for attempt in range(1, max(1, attempts) + 1):
        with Timer() as timer:
            if is_debug_enabled(logger):
                logger.debug(
                    "HTTP request",
                    extra=extra_context(
                        event="http_request",
                        component="http_client",
                        action="GET",
                        target=safe_target,
                        context=context,
                        attempt=attempt,
                    ),
                )
            try:
                status_code, text = await _fetch_text(session, url, **kwargs)
            except (asyncio.TimeoutError, aiohttp.ClientError) as exc:
                last_exception = exc
                if is_debug_enabled(logger):
                    logger.debug(
                        "HTTP request exception",
                        extra=extra_context(
                            event="http_exception",
                            component="http_client",
                            action="GET",
                            outcome="timeout" if isinstance(exc, asyncio.TimeoutError) else "request_exception",
                            attempt=attempt,
                            target=safe_target,
                        ),
                    )
            else:
                if is_debug_enabled(logger):
                    logger.debug(
                        "HTTP response",
                        extra=extra_context(
                            event="http_response",
                            component="http_client",
                            action="GET",
                            status_code=status_code,
                            duration_ms=timer.duration_ms(),
                            target=safe_target,
                            context=context,
                        ),
                    )
                return decode_json(name, url, status_code, text)
        if attempt < attempts and delay:
            await asyncio.sleep(delay * attempt)

    logger.error("%s request for %s failed after %s attempts: %s", context, name, attempts, last_exception)
    if isinstance(last_exception, asyncio.TimeoutError):
        raise RequestTimeoutError(name, f"{context} request for {name} timed out") from last_exception
    raise NetworkError(name, f"{context} connection error for {name}: {last_exception}") from last_exception
