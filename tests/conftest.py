"""
PyTest Configuration and Fixtures
=================================

Shared fixtures and configuration for LiveSignals tests.

HTTP is never performed for real: ``FakeSession`` stands in for
``aiohttp.ClientSession`` and serves canned responses per (method, URL).
"""

import json
import os
from types import SimpleNamespace
from typing import Any, Dict, List, Optional, Tuple

import aiohttp
import pytest

# Set test environment variables before any imports
os.environ["LIVESIGNALS_CACHE__STORE_PATH"] = ""
os.environ["LIVESIGNALS_LOGGING__FILE_PATH"] = ""
os.environ["LIVESIGNALS_FEEDS__RELAY_BASE_URL"] = ""
os.environ["LIVESIGNALS_DEBUG"] = "true"


# ============================================================================
# Fake HTTP
# ============================================================================


class FakeResponse:
    """Minimal stand-in for ``aiohttp.ClientResponse``."""

    def __init__(self, status: int = 200, body: Any = "", headers: Dict[str, str] = None):
        self.status = status
        if isinstance(body, bytes):
            self._content = body
        else:
            self._content = (body if isinstance(body, str) else json.dumps(body)).encode("utf-8")
        self.headers = headers or {}

    @property
    def charset(self) -> Optional[str]:
        content_type = next((v for k, v in self.headers.items() if k.lower() == "content-type"), "")
        for param in content_type.split(";")[1:]:
            name, _, value = param.strip().partition("=")
            if name.lower() == "charset":
                return value.strip('"') or None
        return None

    async def read(self) -> bytes:
        return self._content

    async def text(self) -> str:
        return self._content.decode(self.charset or "utf-8")

    async def __aenter__(self) -> "FakeResponse":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> bool:
        return False


class FakeSession:
    """Routes requests to queued outcomes keyed by (method, url).

    Each outcome is a FakeResponse or an exception instance. Outcomes are
    consumed in order and the last one repeats.
    """

    def __init__(self):
        self.routes: Dict[Tuple[str, str], List[Any]] = {}
        self.calls: List[SimpleNamespace] = []

    def add(self, url: str, *outcomes, method: str = "GET") -> "FakeSession":
        self.routes[(method.upper(), url)] = list(outcomes)
        return self

    def request(self, method: str, url: str, **kwargs):
        self.calls.append(SimpleNamespace(method=method.upper(), url=url, kwargs=kwargs))
        queue = self.routes.get((method.upper(), url))
        if not queue:
            raise aiohttp.ClientConnectionError(f"No route for {method} {url}")
        outcome = queue.pop(0) if len(queue) > 1 else queue[0]
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome

    def calls_to(self, url: str) -> List[SimpleNamespace]:
        return [call for call in self.calls if call.url == url]


@pytest.fixture
def fake_session():
    return FakeSession()


# ============================================================================
# Settings and stores
# ============================================================================


@pytest.fixture
def settings():
    """Isolated settings: in-memory caches, no log file, direct mode."""
    from livesignals.config.settings import (
        LiveSignalsSettings, CacheSettings, LoggingSettings, FeedSettings,
    )

    return LiveSignalsSettings(
        cache=CacheSettings(store_path=None),
        logging=LoggingSettings(file_path=None, console_logging=False),
        feeds=FeedSettings(
            github_repos=["microsoft/autogen", "vercel/ai"],
            blog_feeds=["https://github.blog/feed/", "https://blog.cloudflare.com/tag/ai/"],
            relay_base_url=None,
        ),
    )


@pytest.fixture
def fast_retry():
    """Client retry policy with zero delays."""
    from livesignals.recovery.retry_logic import RetryConfig

    return RetryConfig(
        max_attempts=3,
        status_base_delay=0.0,
        status_max_delay=0.0,
        transport_base_delay=0.0,
        transport_max_delay=0.0,
    )


@pytest.fixture
def memory_store():
    from livesignals.storage.kv_store import InMemoryStore

    return InMemoryStore()


@pytest.fixture
def closing_store():
    """In-memory store recording whether ``close()`` was called."""
    from livesignals.storage.kv_store import InMemoryStore

    class ClosingStore(InMemoryStore):
        closed = False

        def close(self) -> None:
            self.closed = True

    return ClosingStore()


# ============================================================================
# Sample data
# ============================================================================


RSS_DOCUMENT = """<?xml version="1.0" encoding="UTF-8"?>
<rss version="2.0">
  <channel>
    <title>Engineering Blog</title>
    <link>https://github.blog/</link>
    <item>
      <title>Scaling inference on Kubernetes</title>
      <link>https://github.blog/2024-01-02-scaling-inference/</link>
      <description>&lt;p&gt;We cut p99 latency by 40%&amp;nbsp;with request batching. More below.&lt;/p&gt;</description>
      <pubDate>Tue, 02 Jan 2024 10:00:00 GMT</pubDate>
    </item>
    <item>
      <title>Company picnic photos</title>
      <link>https://github.blog/2024-01-03-picnic/</link>
      <description>Sunny weather and sandwiches.</description>
      <pubDate>Wed, 03 Jan 2024 10:00:00 GMT</pubDate>
    </item>
  </channel>
</rss>
"""

ATOM_DOCUMENT = """<?xml version="1.0" encoding="utf-8"?>
<feed xmlns="http://www.w3.org/2005/Atom">
  <title>Research</title>
  <id>tag:research.example,2024:feed</id>
  <updated>2024-03-01T12:00:00Z</updated>
  <entry>
    <title>Observability for agents</title>
    <link href="https://blog.research.google/agents-observability"/>
    <id>tag:research.example,2024:1</id>
    <updated>2024-03-01T12:00:00Z</updated>
    <published>2024-02-01T00:00:00Z</published>
    <summary>Tracing agent runs end to end with OpenTelemetry.</summary>
  </entry>
</feed>
"""

# Encoding declared only in the XML prolog, as many older blogs serve it
LATIN1_RSS_DOCUMENT = """<?xml version="1.0" encoding="ISO-8859-1"?>
<rss version="2.0">
  <channel>
    <title>Café Engineering</title>
    <item>
      <title>Kubernetes café release notes</title>
      <link>https://latin.example/posts/1</link>
      <description>Résumé of the backend API changes.</description>
      <pubDate>Mon, 04 Mar 2024 10:00:00 GMT</pubDate>
    </item>
  </channel>
</rss>
""".encode("iso-8859-1")

GITHUB_RELEASES = [
    {
        "id": 101,
        "name": "v0.4.0",
        "tag_name": "v0.4.0",
        "html_url": "https://github.com/microsoft/autogen/releases/tag/v0.4.0",
        "body": "New agent runtime and tool calling improvements.",
        "published_at": "2024-02-10T08:00:00Z",
    }
]


@pytest.fixture
def rss_document():
    return RSS_DOCUMENT


@pytest.fixture
def atom_document():
    return ATOM_DOCUMENT


@pytest.fixture
def latin1_rss_document():
    return LATIN1_RSS_DOCUMENT


@pytest.fixture
def github_releases():
    return json.loads(json.dumps(GITHUB_RELEASES))


@pytest.fixture
def make_item():
    """Factory for RawItem instances with sensible defaults."""
    from livesignals.models import RawItem

    def _make(**overrides) -> RawItem:
        data = {
            "id": "rss-example.com-0-Item",
            "title": "Kubernetes backend release notes",
            "content": "This release improves API latency for backend services running on Kubernetes.",
            "url": "https://example.com/posts/1",
            "source": "example.com",
            "published_at": "2024-01-02T00:00:00Z",
            "kind": "blog-post",
        }
        data.update(overrides)
        return RawItem(**data)

    return _make
