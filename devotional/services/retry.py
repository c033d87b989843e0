"""Retry logic with exponential backoff for LLM API calls.

Three outcomes are told apart:

- HTTP 429: the upstream asks us to slow down. Retried, waiting the
  server's ``Retry-After`` hint when present, else the current backoff.
- Transport failure (connection reset, timeout): retried on the local
  backoff schedule; the original exception is re-raised once exhausted.
- Any other non-2xx: the upstream rejected the request. Not retried.
"""

import asyncio
import logging
from typing import Awaitable, Callable

import httpx
import openai

from devotional.config import settings
from devotional.errors import UpstreamError

logger = logging.getLogger(__name__)

TRANSPORT_ERRORS = (httpx.TransportError, openai.APIConnectionError)

RequestFn = Callable[[], Awaitable[httpx.Response]]
BackoffCallback = Callable[[int, float], None]


def parse_retry_after(value: str | None) -> float | None:
    """Seconds from a ``Retry-After`` header, or None when absent or unparseable."""
    if not value:
        return None
    try:
        seconds = float(value.strip())
    except ValueError:
        return None
    if seconds < 0:
        return None
    return seconds


def _body_preview(response: httpx.Response, limit: int = 200) -> str:
    try:
        return response.text[:limit]
    except httpx.ResponseNotRead:
        return ""


async def call_with_retry(
    request_fn: RequestFn,
    max_retries: int = settings.devotional_max_retries,
    initial_delay: float = settings.devotional_initial_retry_delay_seconds,
    *,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    on_backoff: BackoffCallback | None = None,
    label: str = "LLM request",
) -> httpx.Response:
    """Run ``request_fn`` until it succeeds, fails terminally, or retries run out.

    Args:
        request_fn: Zero-argument coroutine function performing one HTTP call.
            Non-2xx responses must be returned, not raised.
        max_retries: Retries allowed after the first attempt.
        initial_delay: First backoff delay in seconds; doubled after each wait.
        sleep: Awaitable sleep, injectable for tests.
        on_backoff: Called with (attempt, wait_seconds) before each wait.
        label: Name used in log lines.

    Returns:
        The first 2xx response.

    Raises:
        UpstreamError: Non-retryable status, or 429 after retries are exhausted.
        httpx.TransportError / openai.APIConnectionError: Transport failure
            after retries are exhausted.
    """
    delay = initial_delay
    attempt = 0

    while True:
        try:
            response = await request_fn()
        except TRANSPORT_ERRORS as exc:
            if attempt >= max_retries:
                logger.error("%s failed after %d attempts: %s", label, attempt + 1, exc)
                raise
            attempt += 1
            wait = delay
            logger.warning(
                "%s transport error (%s). Retry %d/%d in %.1fs",
                label,
                exc.__class__.__name__,
                attempt,
                max_retries,
                wait,
            )
        else:
            if response.is_success:
                return response

            if response.status_code != 429:
                logger.error("%s rejected with HTTP %d", label, response.status_code)
                raise UpstreamError(response.status_code, _body_preview(response))

            if attempt >= max_retries:
                logger.error("%s still rate limited after %d attempts", label, attempt + 1)
                raise UpstreamError(429, _body_preview(response))

            attempt += 1
            hint = parse_retry_after(response.headers.get("retry-after"))
            wait = hint if hint is not None else delay
            logger.warning(
                "%s rate limited by upstream. Retry %d/%d in %.1fs",
                label,
                attempt,
                max_retries,
                wait,
            )

        if on_backoff is not None:
            on_backoff(attempt, wait)
        await sleep(wait)
        delay *= 2
