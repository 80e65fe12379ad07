"""
LiveSignals Data Models
=======================

Pydantic value objects flowing through the pipeline. Wire names follow the
relay worker's JSON (camelCase) while Python attributes stay snake_case.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import List, Literal, Optional, Dict, Any

from pydantic import BaseModel, ConfigDict, Field, field_validator


ItemKind = Literal["blog-post", "github-release"]


class ProviderName(str, Enum):
    """Summary providers in chain order."""
    BROWSER_AI = "browser-ai"
    APPLE_INTELLIGENCE = "apple-intelligence"
    CLOUDFLARE_WORKER = "cloudflare-worker"
    FALLBACK = "fallback"


class RawItem(BaseModel):
    """A feed-sourced content unit before AI enrichment."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    id: str = Field(..., description="Deterministic id from source, index and title prefix")
    title: str = Field(default="", description="Item title")
    content: str = Field(default="", description="Plain-text content")
    url: str = Field(default="", description="Canonical link; dedup key")
    source: str = Field(default="", description="Source label (hostname or github.com/owner/name)")
    published_at: Optional[str] = Field(default=None, alias="publishedAt", description="Upstream timestamp text")
    kind: ItemKind = Field(..., description="blog-post or github-release")

    @field_validator("title", "content", "url", "source", mode="before")
    @classmethod
    def coerce_text(cls, v):
        """Upstream JSON may carry nulls where text is expected."""
        return "" if v is None else str(v)

    @property
    def dedup_key(self) -> str:
        return self.url.strip().lower()

    def to_wire(self) -> Dict[str, Any]:
        """Serialize with wire (camelCase) names, dropping unset timestamps."""
        return self.model_dump(by_alias=True, exclude_none=True, mode="json")


class SummaryFields(BaseModel):
    """Output of the summarization chain for one item."""

    model_config = ConfigDict(frozen=True)

    tldr: str
    importance: str
    tags: List[str] = Field(default_factory=list, max_length=4)
    provider: ProviderName


class ProcessedItem(RawItem):
    """A RawItem enriched with AI-or-fallback summary fields."""

    tldr: str
    importance: str
    tags: List[str] = Field(default_factory=list, max_length=4)
    provider: ProviderName
    processed_at: str = Field(..., alias="processedAt")

    @classmethod
    def from_summary(cls, item: RawItem, summary: SummaryFields,
                     processed_at: Optional[datetime] = None) -> "ProcessedItem":
        """Combine a raw item and its summary into a processed item."""
        stamp = processed_at or datetime.now(timezone.utc)
        return cls(
            **item.model_dump(),
            tldr=summary.tldr,
            importance=summary.importance,
            tags=list(summary.tags),
            provider=summary.provider,
            processed_at=stamp.isoformat().replace("+00:00", "Z"),
        )


class CachedUpstreamRecord(BaseModel):
    """Stored upstream response with its HTTP validators."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    etag: Optional[str] = None
    last_modified: Optional[str] = Field(default=None, alias="lastModified")
    body: str
    content_type: str = Field(default="text/plain; charset=utf-8", alias="contentType")
    updated_at: int = Field(..., alias="updatedAt", description="Epoch milliseconds of the last 2xx fetch")


class ClientCachePayload(BaseModel):
    """Client-side cached result set."""

    timestamp: float = Field(..., description="Epoch seconds when the items were written")
    items: List[ProcessedItem]

    def is_fresh(self, now: float, ttl_seconds: float) -> bool:
        return now - self.timestamp < ttl_seconds
