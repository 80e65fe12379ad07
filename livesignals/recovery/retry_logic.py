#!/usr/bin/env python3
"""
LiveSignals Retry Logic
=======================

Exponential backoff for upstream HTTP calls. Transport errors and transient
statuses (5xx, 429) are retried up to the attempt cap; every other status is
handed back to the caller on the first attempt.
"""

import asyncio
import json
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, Optional

import aiohttp

from ..config.settings import RetrySettings
from ..utils.exceptions import UpstreamError, ErrorCode
from ..utils.logging import get_logger_for_component


@dataclass
class RetryConfig:
    """Configuration for retry behavior."""
    max_attempts: int = 3
    status_base_delay: float = 1.5          # Base delay after 5xx/429 (seconds)
    status_max_delay: float = 7.0
    transport_base_delay: float = 0.9       # Base delay after a transport error
    transport_max_delay: float = 5.0
    max_retry_after: float = 60.0
    exponential_base: float = 2.0

    retry_on_exceptions: tuple = (aiohttp.ClientError, asyncio.TimeoutError)

    @classmethod
    def from_settings(cls, settings: RetrySettings) -> "RetryConfig":
        return cls(
            max_attempts=settings.max_attempts,
            status_base_delay=settings.status_base_delay,
            status_max_delay=settings.status_max_delay,
            transport_base_delay=settings.transport_base_delay,
            transport_max_delay=settings.transport_max_delay,
            max_retry_after=settings.max_retry_after,
        )

    def should_retry_status(self, status: int) -> bool:
        return status == 429 or 500 <= status <= 599

    def status_delay(self, attempt: int, retry_after: Optional[str] = None) -> float:
        """Delay after a transient status on the given zero-based attempt."""
        seconds = _parse_retry_after(retry_after)
        if seconds > 0:
            return min(seconds, self.max_retry_after)
        return min(self.status_base_delay * (self.exponential_base ** attempt), self.status_max_delay)

    def transport_delay(self, attempt: int) -> float:
        """Delay after a transport error on the given zero-based attempt."""
        return min(self.transport_base_delay * (self.exponential_base ** attempt), self.transport_max_delay)


def _parse_retry_after(value: Optional[str]) -> float:
    if not value:
        return 0.0
    try:
        return float(value.strip())
    except ValueError:
        return 0.0


def decode_body(content: bytes, charset: Optional[str]) -> str:
    """Decode with the declared charset (UTF-8 when absent or unknown).

    Undecodable bytes become U+FFFD; the raw bytes stay on
    ``UpstreamResponse.content`` for parsers that sniff their own encoding.
    """
    try:
        return content.decode(charset or "utf-8", errors="replace")
    except LookupError:
        return content.decode("utf-8", errors="replace")


@dataclass
class UpstreamResponse:
    """Fully-read upstream response, detached from its connection."""
    status: int
    headers: Dict[str, str] = field(default_factory=dict)
    body: str = ""
    url: str = ""
    content: bytes = b""

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300

    def header(self, name: str) -> Optional[str]:
        return self.headers.get(name.lower())

    def json(self) -> Any:
        return json.loads(self.body)


async def fetch_with_backoff(
    session: aiohttp.ClientSession,
    url: str,
    *,
    method: str = "GET",
    config: Optional[RetryConfig] = None,
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    **request_kwargs,
) -> UpstreamResponse:
    """Issue an HTTP request, retrying transient failures with backoff.

    Args:
        session: aiohttp session used for the request
        url: Target URL
        method: HTTP method
        config: Retry configuration (defaults to the client preset)
        sleep: Awaitable sleep used between attempts
        **request_kwargs: Passed through to ``session.request``

    Returns:
        The first non-retryable response (2xx, 3xx or 4xx other than 429)

    Raises:
        UpstreamError: When every attempt hit a transport error or transient status
    """
    config = config or RetryConfig()
    logger = get_logger_for_component("retry")

    last_status: Optional[int] = None
    last_error: Optional[BaseException] = None

    for attempt in range(config.max_attempts):
        is_last = attempt == config.max_attempts - 1
        try:
            async with session.request(method, url, **request_kwargs) as response:
                content = await response.read()
                result = UpstreamResponse(
                    status=response.status,
                    headers={k.lower(): v for k, v in response.headers.items()},
                    body=decode_body(content, response.charset),
                    url=url,
                    content=content,
                )
        except config.retry_on_exceptions as e:
            last_error = e
            last_status = None
            logger.debug(
                f"Attempt {attempt + 1}/{config.max_attempts} for {url} failed: {type(e).__name__}: {e}"
            )
            if not is_last:
                await sleep(config.transport_delay(attempt))
            continue

        if not config.should_retry_status(result.status):
            return result

        last_status = result.status
        last_error = None
        logger.debug(f"Attempt {attempt + 1}/{config.max_attempts} for {url} returned {result.status}")
        if not is_last:
            await sleep(config.status_delay(attempt, result.header("retry-after")))

    if last_status is not None:
        message = f"Upstream returned {last_status} after {config.max_attempts} attempts: {url}"
        error_code = ErrorCode.UPSTREAM_TRANSIENT
    else:
        message = f"Network error after {config.max_attempts} attempts: {url}: {last_error}"
        error_code = ErrorCode.UPSTREAM_NETWORK_ERROR

    logger.warning(message)
    raise UpstreamError(
        message,
        url=url,
        status=last_status,
        error_code=error_code,
        recoverable=True,
    )
