"""
Source Fetcher
==============

Collects raw items from GitHub releases and RSS/Atom blogs.

Relay mode asks the relay worker for both listings concurrently. When either
relay call fails the fetcher drops to direct mode, which queries the GitHub
REST API and each feed (through a CORS proxy prefix) on its own. Every
upstream call goes through the retry policy and a single failing source only
empties that source.
"""

import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator, List, Optional
from urllib.parse import quote

import aiohttp
from pydantic import ValidationError as PydanticValidationError

from .feed_normalizer import FeedNormalizer
from ..config.feed_config import normalize_feed_url
from ..config.settings import LiveSignalsSettings, get_settings
from ..models import RawItem
from ..processing.pre_filter import RelevanceFilter
from ..recovery.retry_logic import RetryConfig, fetch_with_backoff
from ..utils.exceptions import UpstreamError, ErrorCode
from ..utils.http import create_session
from ..utils.logging import get_logger_for_component, PerformanceLogger
from ..utils.validators import HostAllowlist, hosts_of, is_valid_github_repo


GITHUB_API_BASE = "https://api.github.com"
GITHUB_ACCEPT = "application/vnd.github+json"


class SourceFetcher:
    """Fetches, normalizes and ranks public content items."""

    def __init__(
        self,
        settings: Optional[LiveSignalsSettings] = None,
        session: Optional[aiohttp.ClientSession] = None,
        retry_config: Optional[RetryConfig] = None,
        normalizer: Optional[FeedNormalizer] = None,
        relevance_filter: Optional[RelevanceFilter] = None,
    ):
        """Initialize source fetcher.

        Args:
            settings: Application settings (defaults to global settings)
            session: Shared aiohttp session; one is created per call when omitted
            retry_config: Retry policy (defaults to the client preset)
            normalizer: Feed normalizer
            relevance_filter: Dedup and relevance filter
        """
        self.settings = settings or get_settings()
        self._session = session
        self.retry_config = retry_config or RetryConfig.from_settings(self.settings.retry.client)
        self.normalizer = normalizer or FeedNormalizer(max_content=self.settings.summarization.prompt_content_limit)
        self.relevance_filter = relevance_filter or RelevanceFilter()
        self.logger = get_logger_for_component("source_fetcher")

        self.trusted_feeds = HostAllowlist(
            hosts_of(normalize_feed_url(url) for url in self.settings.feeds.blog_feeds)
        )

    @asynccontextmanager
    async def _get_session(self) -> AsyncIterator[aiohttp.ClientSession]:
        if self._session is not None:
            yield self._session
            return
        async with create_session(timeout=self.settings.limits.request_timeout) as session:
            yield session

    @property
    def github_repos(self) -> List[str]:
        repos = []
        for repo in self.settings.feeds.github_repos:
            if is_valid_github_repo(repo):
                repos.append(repo)
            else:
                self.logger.warning(f"Skipping invalid GitHub repository identifier: {repo!r}")
        return repos

    def feed_urls(self, require_trusted: bool = False) -> List[str]:
        urls = []
        for url in self.settings.feeds.blog_feeds:
            normalized = normalize_feed_url(url)
            if require_trusted and not self.trusted_feeds.is_trusted(normalized):
                self.logger.warning(f"Skipping untrusted feed URL: {normalized}")
                continue
            urls.append(normalized)
        return urls

    async def fetch_public_content_feeds(self, max_items: Optional[int] = None) -> List[RawItem]:
        """Fetch every configured source and return ranked items.

        Args:
            max_items: Result size cap (defaults to ``feeds.max_items``)

        Returns:
            Deduplicated, relevance-filtered items, newest first
        """
        limit = max_items if max_items is not None else self.settings.feeds.max_items

        async with self._get_session() as session:
            relay = self.settings.feeds.relay_base_url
            if relay:
                try:
                    with PerformanceLogger(self.logger, "relay fetch", relay=relay):
                        items = await self._fetch_from_relay(session, relay)
                    return self.relevance_filter.normalize_and_sort(items, limit)
                except Exception as e:
                    self.logger.warning(
                        f"Relay endpoints failed, falling back to direct sources: {e}"
                    )

            with PerformanceLogger(self.logger, "direct fetch"):
                items = await self._fetch_direct(session)
            return self.relevance_filter.normalize_and_sort(items, limit)

    # Relay mode

    async def _fetch_from_relay(self, session: aiohttp.ClientSession, relay: str) -> List[RawItem]:
        base = relay.rstrip("/")
        repos = quote(",".join(self.github_repos), safe="")
        feeds = quote(",".join(self.feed_urls(require_trusted=True)), safe="")

        # Both listings settle before the first failure is raised.
        results = await asyncio.gather(
            self._fetch_relay_items(session, f"{base}/github-releases?repos={repos}"),
            self._fetch_relay_items(session, f"{base}/rss-feed?urls={feeds}"),
            return_exceptions=True,
        )
        for result in results:
            if isinstance(result, BaseException):
                raise result
        github_items, rss_items = results
        return github_items + rss_items

    async def _fetch_relay_items(self, session: aiohttp.ClientSession, url: str) -> List[RawItem]:
        try:
            response = await fetch_with_backoff(session, url, config=self.retry_config)
        except UpstreamError as e:
            raise UpstreamError(
                f"Relay endpoint unreachable: {url}",
                url=url,
                status=e.status,
                error_code=ErrorCode.RELAY_UNAVAILABLE,
            ) from e

        if not response.ok:
            raise UpstreamError(
                f"Relay endpoint failed ({response.status})",
                url=url,
                status=response.status,
                error_code=ErrorCode.RELAY_UNAVAILABLE,
            )

        try:
            payload = response.json()
        except ValueError as e:
            raise UpstreamError(
                f"Relay endpoint returned invalid JSON: {e}",
                url=url,
                status=response.status,
                error_code=ErrorCode.RELAY_UNAVAILABLE,
            ) from e

        raw_items = payload.get("items") if isinstance(payload, dict) else None
        if not isinstance(raw_items, list):
            return []

        items = []
        for raw in raw_items:
            try:
                items.append(RawItem.model_validate(raw))
            except PydanticValidationError:
                self.logger.debug(f"Dropping malformed relay item from {url}")
        return items

    # Direct mode

    async def _fetch_direct(self, session: aiohttp.ClientSession) -> List[RawItem]:
        github_result, rss_result = await asyncio.gather(
            self._fetch_github_direct(session),
            self._fetch_rss_direct(session),
            return_exceptions=True,
        )

        items: List[RawItem] = []
        for label, result in (("GitHub", github_result), ("RSS", rss_result)):
            if isinstance(result, BaseException):
                self.logger.warning(f"{label} direct fetch failed: {result}")
                continue
            items.extend(result)
        return items

    async def _fetch_github_direct(self, session: aiohttp.ClientSession) -> List[RawItem]:
        rows = await asyncio.gather(*(self._fetch_repo(session, repo) for repo in self.github_repos))
        return [item for row in rows for item in row]

    async def _fetch_repo(self, session: aiohttp.ClientSession, repo: str) -> List[RawItem]:
        url = f"{GITHUB_API_BASE}/repos/{repo}/releases?per_page=1"
        try:
            response = await fetch_with_backoff(
                session, url, config=self.retry_config, headers={"Accept": GITHUB_ACCEPT}
            )
            if not response.ok:
                self.logger.warning(f"GitHub releases for {repo} returned {response.status}")
                return []
            return self.normalizer.parse_github_releases(response.json(), repo)
        except Exception as e:
            self.logger.warning(f"GitHub releases fetch failed for {repo}: {e}")
            return []

    async def _fetch_rss_direct(self, session: aiohttp.ClientSession) -> List[RawItem]:
        rows = await asyncio.gather(*(self._fetch_feed(session, url) for url in self.feed_urls()))
        return [item for row in rows for item in row]

    def proxied_url(self, feed_url: str) -> str:
        prefix = self.settings.feeds.cors_proxy_url
        if not prefix:
            return feed_url
        return f"{prefix}{quote(feed_url, safe='')}"

    async def _fetch_feed(self, session: aiohttp.ClientSession, feed_url: str) -> List[RawItem]:
        try:
            response = await fetch_with_backoff(session, self.proxied_url(feed_url), config=self.retry_config)
            if not response.ok:
                self.logger.warning(f"Feed {feed_url} returned {response.status}")
                return []
            items = self.normalizer.parse_feed(response.content, feed_url)
            return items[: self.settings.feeds.items_per_feed]
        except Exception as e:
            self.logger.warning(f"RSS fetch failed for {feed_url}: {e}")
            return []
