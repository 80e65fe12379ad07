"""
Dedup & Relevance Filter
========================

Deduplicates fetched items by URL, drops incomplete and off-topic posts using
a fixed keyword list, and ranks what remains newest first.
"""

from dataclasses import dataclass
from typing import Dict, List, Optional

from ..models import RawItem
from ..utils.logging import get_logger_for_component
from ..utils.validators import parse_timestamp


RELEVANCE_KEYWORDS = (
    "ai", "agent", "llm", "model", "inference", "observability", "telemetry",
    "backend", "api", "runtime", "deploy", "cloud", "security", "architecture",
    "engineering", "developer", "typescript", "javascript", "python", "release",
    "dotnet", ".net", "c#", "f#", "asp.net", "aspnet", "azure", "microsoft",
    "visual studio", "vs code", "nuget", "entity framework", "ef core", "blazor",
    "maui", "xaml", "winui", "wpf", "signalr", "minimal api", "web api",
    "kestrel", "azure functions", "app service", "azure container apps", "aks",
    "kubernetes", "docker", "helm", "microservices", "distributed systems",
    "distributed tracing", "opentelemetry", "sre", "devops", "ci/cd",
    "github actions", "gitops", "platform engineering", "reliability",
    "performance", "latency", "throughput", "scalability", "resilience",
    "fault tolerance", "incident", "postmortem", "secure by default",
    "threat modeling", "identity", "entra", "oauth", "zero trust",
    "data engineering", "vector database", "rag", "prompt engineering",
    "evaluation", "benchmark", "inference optimization", "quantization",
    "fine-tuning", "tool calling", "multi-agent", "orchestration", "sdk",
    "api management", "message queue", "event-driven", "event sourcing",
    "postgres", "sql server", "cosmos db", "redis", "cache", "grpc", "rest",
    "graphql", "webassembly", "edge", "serverless",
)


@dataclass
class FilterStats:
    """Counters from one normalize_and_sort pass."""
    received: int = 0
    duplicates: int = 0
    incomplete: int = 0
    irrelevant: int = 0
    returned: int = 0


class RelevanceFilter:
    """Keyword relevance gate plus URL dedup and recency ranking.

    Matching is a plain lowercase substring test, so short keywords such as
    ``ai`` also hit inside longer words.
    """

    def __init__(self, keywords=RELEVANCE_KEYWORDS):
        self.keywords = tuple(k.lower() for k in keywords)
        self.logger = get_logger_for_component("pre_filter")
        self.last_stats = FilterStats()

    def is_relevant(self, item: RawItem) -> bool:
        if item.kind == "github-release":
            return True
        text = f"{item.title} {item.content}".lower()
        return any(keyword in text for keyword in self.keywords)

    @staticmethod
    def _supersedes(incoming: RawItem, existing: RawItem) -> bool:
        incoming_ts = parse_timestamp(incoming.published_at)
        if incoming_ts is None:
            return False
        existing_ts = parse_timestamp(existing.published_at)
        return existing_ts is None or incoming_ts > existing_ts

    def dedupe(self, items: List[RawItem]) -> List[RawItem]:
        """Keep one item per normalized URL, preferring the later timestamp.

        Ties and unparseable timestamps keep the first item seen. Items with
        an empty key are dropped.
        """
        deduped: Dict[str, RawItem] = {}
        for item in items:
            key = item.dedup_key
            if not key:
                continue
            existing = deduped.get(key)
            if existing is None:
                deduped[key] = item
                continue
            self.last_stats.duplicates += 1
            if self._supersedes(item, existing):
                deduped[key] = item
        return list(deduped.values())

    @staticmethod
    def sort_key(item: RawItem):
        ts = parse_timestamp(item.published_at)
        return (ts is None, -(ts or 0.0))

    def normalize_and_sort(self, items: List[RawItem], max_items: int) -> List[RawItem]:
        """Dedup, filter and rank items, returning at most ``max_items``.

        Args:
            items: Items from every source, in fetch order
            max_items: Result size cap

        Returns:
            Items in non-increasing timestamp order, unparseable dates last
        """
        self.last_stats = FilterStats(received=len(items))

        kept = []
        for item in self.dedupe(items):
            if not item.title or not item.url:
                self.last_stats.incomplete += 1
                continue
            if not self.is_relevant(item):
                self.last_stats.irrelevant += 1
                continue
            kept.append(item)

        ranked = sorted(kept, key=self.sort_key)[:max(max_items, 0)]
        self.last_stats.returned = len(ranked)

        self.logger.debug(
            f"Filtered {len(items)} items down to {len(ranked)}",
            extra={
                "duplicates": self.last_stats.duplicates,
                "incomplete": self.last_stats.incomplete,
                "irrelevant": self.last_stats.irrelevant,
            },
        )
        return ranked


def normalize_and_sort(items: List[RawItem], max_items: int,
                       relevance_filter: Optional[RelevanceFilter] = None) -> List[RawItem]:
    """Module-level convenience over ``RelevanceFilter.normalize_and_sort``."""
    return (relevance_filter or RelevanceFilter()).normalize_and_sort(items, max_items)
