"""
Feed Normalizer
===============

Turns upstream payloads into RawItem records:

- RSS ``item`` and Atom ``entry`` documents parsed with feedparser
- GitHub REST release listings and GraphQL release lookups
- Plain-text cleaning (tags stripped, a fixed entity set decoded,
  whitespace collapsed) with content truncation
"""

import re
import warnings
import xml.sax
from typing import Any, Dict, List, Optional, Sequence, Union

import feedparser
from bs4 import BeautifulSoup, MarkupResemblesLocatorWarning

from ..models import RawItem
from ..utils.logging import get_logger_for_component
from ..utils.validators import source_label


# Only these entities are decoded; anything else is left as-is.
_ENTITIES = {
    "&nbsp;": " ",
    "&amp;": "&",
    "&quot;": '"',
    "&#39;": "'",
}
_ENTITY_PATTERN = re.compile("|".join(re.escape(e) for e in _ENTITIES), re.IGNORECASE)

_WHITESPACE = re.compile(r"\s+")


def clean_text(value: Optional[str]) -> str:
    """Strip HTML tags, decode the fixed entity set and collapse whitespace."""
    if not value:
        return ""
    text = value
    if "<" in text:
        with warnings.catch_warnings():
            warnings.simplefilter("ignore", MarkupResemblesLocatorWarning)
            text = BeautifulSoup(text, "html.parser").get_text(" ")
    text = _ENTITY_PATTERN.sub(lambda m: _ENTITIES[m.group(0).lower()], text)
    return _WHITESPACE.sub(" ", text).strip()


class FeedNormalizer:
    """Normalizes RSS/Atom documents and GitHub release payloads."""

    def __init__(self, max_content: int = 2500):
        self.max_content = max_content
        self.logger = get_logger_for_component("feed_normalizer")

    def parse_feed(self, document: Union[str, bytes], feed_url: str,
                   max_content: Optional[int] = None) -> List[RawItem]:
        """Parse an RSS or Atom document.

        Args:
            document: Raw document; pass bytes so the XML prolog encoding is honored
            feed_url: URL the document was fetched from (drives the source label)
            max_content: Content truncation bound, defaults to the instance bound

        Returns:
            Items in document order, or an empty list for malformed XML
        """
        limit = max_content if max_content is not None else self.max_content
        # feedparser re-encodes text input as UTF-8, overriding any prolog encoding
        headers = {"content-type": "application/xml; charset=utf-8"} if isinstance(document, str) else None
        parsed = feedparser.parse(document, response_headers=headers)

        if parsed.bozo and isinstance(parsed.get("bozo_exception"), xml.sax.SAXException):
            self.logger.warning(
                f"Malformed feed document from {feed_url}: {parsed.bozo_exception}"
            )
            return []

        source = source_label(feed_url)
        is_atom = (parsed.get("version") or "").startswith("atom")
        prefix = "atom" if is_atom else "rss"

        items = []
        for index, entry in enumerate(parsed.entries):
            raw_title = (entry.get("title") or "").strip() or "Untitled"
            if is_atom:
                link = entry.get("link") or entry.get("id") or ""
                published = dict.get(entry, "updated") or dict.get(entry, "published")
            else:
                link = entry.get("link") or ""
                published = dict.get(entry, "published")

            items.append(
                RawItem(
                    id=f"{prefix}-{source}-{index}-{raw_title[:24]}",
                    title=clean_text(raw_title),
                    content=clean_text(self._entry_body(entry))[:limit],
                    url=clean_text(link),
                    source=source,
                    published_at=published.strip() if published else None,
                    kind="blog-post",
                )
            )

        self.logger.debug(f"Parsed {len(items)} {prefix} entries from {feed_url}")
        return items

    @staticmethod
    def _entry_body(entry: Dict[str, Any]) -> str:
        summary = entry.get("summary")
        if summary:
            return summary
        for block in entry.get("content") or []:
            value = block.get("value")
            if value:
                return value
        return ""

    def parse_github_releases(self, payload: Any, repo: str, id_prefix: str = "gh") -> List[RawItem]:
        """Convert a REST ``/repos/{repo}/releases`` JSON array into items.

        Args:
            payload: Decoded JSON (non-list payloads yield no items)
            repo: ``owner/name`` repository identifier
            id_prefix: Id namespace (``gh`` client side, ``gh-rest`` in the worker)
        """
        if not isinstance(payload, list):
            return []

        items = []
        for release in payload:
            if not isinstance(release, dict):
                continue
            tag_name = release.get("tag_name") or ""
            items.append(
                RawItem(
                    id=f"{id_prefix}-{repo}-{release.get('id')}",
                    title=f"{repo}: {release.get('name') or tag_name}",
                    content=(release.get("body") or tag_name)[: self.max_content],
                    url=release.get("html_url") or "",
                    source=f"github.com/{repo}",
                    published_at=release.get("published_at"),
                    kind="github-release",
                )
            )
        return items

    def parse_github_graphql(self, data: Dict[str, Any], repos: Sequence[str]) -> List[RawItem]:
        """Convert an aliased GraphQL release lookup (``r0``, ``r1`` ...) into items."""
        items = []
        for index, repo in enumerate(repos):
            repository = data.get(f"r{index}") or {}
            nodes = (repository.get("releases") or {}).get("nodes") or []
            if not nodes:
                continue
            node = nodes[0] or {}
            items.append(
                RawItem(
                    id=f"gh-graphql-{repo}",
                    title=f"{repo}: {node.get('name') or node.get('tagName') or 'release'}",
                    content=str(node.get("description") or node.get("tagName") or "")[: self.max_content],
                    url=str(node.get("url") or f"https://github.com/{repo}"),
                    source=f"github.com/{repo}",
                    published_at=str(node.get("publishedAt") or ""),
                    kind="github-release",
                )
            )
        return items
