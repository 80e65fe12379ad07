"""
LiveSignals Conditional Upstream Cache
======================================

Per-URL cache of upstream bodies with their ``ETag``/``Last-Modified``
validators. Requests are revalidated with ``If-None-Match`` and
``If-Modified-Since``; a 304 re-confirms the stored record and any failure
falls back to it when one exists.
"""

import hashlib
import time
from typing import Callable, Dict, Optional

import aiohttp
from pydantic import ValidationError as PydanticValidationError

from .kv_store import KeyValueStore
from ..models import CachedUpstreamRecord
from ..recovery.retry_logic import RetryConfig, fetch_with_backoff
from ..utils.exceptions import StorageError, UpstreamError, ErrorCode
from ..utils.logging import get_logger_for_component


def upstream_cache_key(url: str) -> str:
    """Store key for a URL: ``upstream:`` plus the SHA-1 hex digest."""
    return "upstream:" + hashlib.sha1(url.encode("utf-8")).hexdigest()


class UpstreamCache:
    """Conditional GET cache in front of a key-value store."""

    def __init__(
        self,
        session: aiohttp.ClientSession,
        store: Optional[KeyValueStore],
        retry_config: Optional[RetryConfig] = None,
        ttl_seconds: float = 6 * 60 * 60,
        clock: Callable[[], float] = time.time,
    ):
        """Initialize the cache.

        Args:
            session: aiohttp session for upstream requests
            store: Backing store; None disables caching and only fetches
            retry_config: Retry policy for upstream requests
            ttl_seconds: Store TTL of each record
            clock: Time source in epoch seconds
        """
        self.session = session
        self.store = store
        self.retry_config = retry_config or RetryConfig()
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self.logger = get_logger_for_component("upstream_cache")

    def _load(self, key: str) -> Optional[CachedUpstreamRecord]:
        if self.store is None:
            return None
        try:
            raw = self.store.get(key)
        except StorageError:
            return None
        if not raw:
            return None
        try:
            return CachedUpstreamRecord.model_validate_json(raw)
        except PydanticValidationError:
            self.logger.warning(f"Ignoring corrupt upstream record {key}")
            return None

    def _save(self, key: str, record: CachedUpstreamRecord) -> None:
        if self.store is None:
            return
        try:
            self.store.put(
                key,
                record.model_dump_json(by_alias=True, exclude_none=True),
                ttl_seconds=self.ttl_seconds,
            )
        except StorageError as e:
            self.logger.warning(f"Failed to store upstream record {key}: {e}")

    async def fetch(self, url: str, headers: Optional[Dict[str, str]] = None) -> CachedUpstreamRecord:
        """Fetch ``url`` through the conditional cache.

        Args:
            url: Upstream URL
            headers: Extra request headers (e.g. GitHub ``Accept``)

        Returns:
            Fresh, revalidated or stale record

        Raises:
            UpstreamError: When the fetch fails and nothing is cached
        """
        key = upstream_cache_key(url)
        cached = self._load(key)

        request_headers = dict(headers or {})
        if cached and cached.etag:
            request_headers["If-None-Match"] = cached.etag
        if cached and cached.last_modified:
            request_headers["If-Modified-Since"] = cached.last_modified

        try:
            response = await fetch_with_backoff(
                self.session, url, config=self.retry_config, headers=request_headers
            )
        except UpstreamError as e:
            if cached:
                self.logger.warning(f"Serving stale record for {url}: {e}")
                return cached
            raise

        if response.status == 304 and cached:
            # Refresh the store TTL only; content and updated_at are unchanged.
            self._save(key, cached)
            return cached

        if response.ok:
            record = CachedUpstreamRecord(
                body=response.body,
                content_type=response.header("content-type") or "text/plain; charset=utf-8",
                etag=response.header("etag") or (cached.etag if cached else None),
                last_modified=response.header("last-modified") or (cached.last_modified if cached else None),
                updated_at=int(self._clock() * 1000),
            )
            self._save(key, record)
            return record

        if cached:
            self.logger.warning(f"Upstream returned {response.status} for {url}; serving stale record")
            return cached

        raise UpstreamError(
            f"Upstream fetch failed for {url} ({response.status})",
            url=url,
            status=response.status,
            error_code=ErrorCode.UPSTREAM_TERMINAL,
            recoverable=False,
        )
