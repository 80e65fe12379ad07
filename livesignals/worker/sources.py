"""
Worker-side source aggregation for ``/github-releases`` and ``/rss-feed``.

Upstream bodies go through the conditional cache; a failing repo or feed
contributes nothing instead of failing the listing.
"""

import asyncio
import json
from typing import List, Optional, Sequence

import aiohttp

from ..ingestion.feed_normalizer import FeedNormalizer
from ..models import RawItem
from ..recovery.retry_logic import RetryConfig, fetch_with_backoff
from ..storage.upstream_cache import UpstreamCache
from ..utils.exceptions import UpstreamError
from ..utils.logging import get_logger_for_component


GITHUB_GRAPHQL_URL = "https://api.github.com/graphql"
GITHUB_API_BASE = "https://api.github.com"


def build_releases_query(repos: Sequence[str]) -> str:
    """GraphQL query fetching the latest release of each repo under ``r{index}`` aliases."""
    aliases = []
    for index, repo in enumerate(repos):
        owner, name = repo.split("/", 1)
        aliases.append(
            f'r{index}: repository(owner: "{owner}", name: "{name}") '
            "{ releases(first: 1, orderBy: {field: CREATED_AT, direction: DESC}) "
            "{ nodes { name tagName description publishedAt url } } }"
        )
    return "query FeedReleases { " + "\n".join(aliases) + " }"


class WorkerSources:
    """Fetches GitHub releases and RSS/Atom feeds for the relay endpoints."""

    def __init__(
        self,
        session: aiohttp.ClientSession,
        upstream_cache: UpstreamCache,
        normalizer: Optional[FeedNormalizer] = None,
        github_token: Optional[str] = None,
        retry_config: Optional[RetryConfig] = None,
        items_per_feed: int = 4,
    ):
        self.session = session
        self.upstream_cache = upstream_cache
        self.normalizer = normalizer or FeedNormalizer(max_content=2500)
        self.github_token = github_token
        self.retry_config = retry_config or RetryConfig()
        self.items_per_feed = items_per_feed
        self.logger = get_logger_for_component("worker_sources")

    async def fetch_github_releases(self, repos: Sequence[str]) -> List[RawItem]:
        """Latest release per repo, via GraphQL when a token is set, else REST."""
        if self.github_token:
            items = await self._fetch_graphql(repos)
            if items is not None:
                return items

        rows = await asyncio.gather(*(self._fetch_rest(repo) for repo in repos))
        return [item for item in rows if item is not None]

    async def _fetch_graphql(self, repos: Sequence[str]) -> Optional[List[RawItem]]:
        try:
            response = await fetch_with_backoff(
                self.session,
                GITHUB_GRAPHQL_URL,
                method="POST",
                config=self.retry_config,
                json={"query": build_releases_query(repos)},
                headers={"Authorization": f"Bearer {self.github_token}"},
            )
        except UpstreamError as e:
            self.logger.warning(f"GitHub GraphQL unavailable, using REST: {e}")
            return None

        if not response.ok:
            self.logger.warning(f"GitHub GraphQL returned {response.status}, using REST")
            return None

        try:
            payload = response.json()
        except ValueError:
            return None
        data = payload.get("data") if isinstance(payload, dict) else None
        if not data:
            self.logger.warning("GitHub GraphQL response had no data, using REST")
            return None
        return self.normalizer.parse_github_graphql(data, repos)

    async def _fetch_rest(self, repo: str) -> Optional[RawItem]:
        url = f"{GITHUB_API_BASE}/repos/{repo}/releases?per_page=1"
        try:
            record = await self.upstream_cache.fetch(url, headers={"Accept": "application/vnd.github+json"})
            releases = json.loads(record.body)
            items = self.normalizer.parse_github_releases(releases[:1] if isinstance(releases, list) else [],
                                                          repo, id_prefix="gh-rest")
        except Exception as e:
            self.logger.warning(f"GitHub releases unavailable for {repo}: {e}")
            return None
        return items[0] if items else None

    async def fetch_rss_feeds(self, urls: Sequence[str]) -> List[RawItem]:
        rows = await asyncio.gather(*(self._fetch_feed(url) for url in urls))
        return [item for row in rows for item in row]

    async def _fetch_feed(self, url: str) -> List[RawItem]:
        try:
            record = await self.upstream_cache.fetch(url)
            return self.normalizer.parse_feed(record.body, url)[: self.items_per_feed]
        except Exception as e:
            self.logger.warning(f"Feed unavailable: {url}: {e}")
            return []
