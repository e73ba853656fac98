"""
Shared outbound HTTP retry for community providers.

Retries HTTP 429, 5xx and transport-level failures (connect errors, timeouts)
with exponential backoff: delay = min(max_delay, base_delay * 2 ** attempt).
Any other status is returned to the caller immediately. Other httpx errors
(e.g. an undecodable body) are not retried and yield None.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable

import httpx

logger = logging.getLogger(__name__)

MAX_ATTEMPTS = 3
RETRY_BASE_DELAY_S = 0.2
RETRY_MAX_DELAY_S = 2.0


def is_retryable_status(status_code: int) -> bool:
    return status_code == 429 or status_code >= 500


def backoff_delay(attempt: int, base_delay: float = RETRY_BASE_DELAY_S, max_delay: float = RETRY_MAX_DELAY_S) -> float:
    return min(max_delay, base_delay * (2 ** attempt))


async def request_with_retry(
    client: httpx.AsyncClient,
    method: str,
    url: str,
    *,
    label: str = "upstream",
    max_attempts: int = MAX_ATTEMPTS,
    base_delay: float = RETRY_BASE_DELAY_S,
    max_delay: float = RETRY_MAX_DELAY_S,
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    **kwargs: Any,
) -> httpx.Response | None:
    """
    Issue a request, retrying retryable failures.

    Returns the final response (which may still be a non-2xx status), or None
    when every attempt failed at the transport level or the request raised
    any other httpx error.
    """
    response: httpx.Response | None = None
    for attempt in range(max_attempts):
        try:
            response = await client.request(method, url, **kwargs)
        except httpx.TransportError as exc:
            if attempt < max_attempts - 1:
                wait = backoff_delay(attempt, base_delay, max_delay)
                logger.warning(
                    "%s transport error (%s), retrying in %.2fs (%d/%d)",
                    label, type(exc).__name__, wait, attempt + 1, max_attempts,
                )
                await sleep(wait)
                continue
            logger.warning("%s transport error after %d attempts: %s", label, max_attempts, exc)
            return None
        except httpx.HTTPError as exc:
            logger.warning("%s request failed (%s): %s", label, type(exc).__name__, exc)
            return None

        if not is_retryable_status(response.status_code):
            return response

        if attempt < max_attempts - 1:
            wait = backoff_delay(attempt, base_delay, max_delay)
            logger.warning(
                "%s HTTP %d, retrying in %.2fs (%d/%d)",
                label, response.status_code, wait, attempt + 1, max_attempts,
            )
            await sleep(wait)

    return response
