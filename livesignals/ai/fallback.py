"""
Deterministic summaries used when no AI provider produced usable output.
"""

import re

from ..ingestion.feed_normalizer import clean_text
from ..models import ProviderName, RawItem, SummaryFields


TAG_PATTERNS = (
    ("Observability", re.compile(r"observability|monitor|trace|telemetry")),
    ("ML Infra", re.compile(r"model|llm|inference|training|agent")),
    ("Backend", re.compile(r"api|backend|service|runtime")),
    ("Security", re.compile(r"security|auth|risk|policy")),
)

_SENTENCE = re.compile(r"(.+?[.!?])(\s|$)")


def first_sentence(value: str, max_length: int = 180) -> str:
    """First sentence within the first ``max_length`` characters, else the whole slice."""
    sliced = value[:max_length]
    match = _SENTENCE.search(sliced)
    return (match.group(1) if match else sliced).strip()


class FallbackSummarizer:
    """Always-succeeding heuristic summarizer."""

    def build_tldr(self, item: RawItem) -> str:
        title = clean_text(item.title or "New engineering update")
        content = clean_text(item.content or "")
        if len(content) >= 40:
            return f"{title}. {first_sentence(content, 180)}"
        return f"{title}. Open the full post for details."

    def build_importance(self, item: RawItem) -> str:
        source = item.source or "trusted source"
        return f"Published by {source}; worth a quick skim if this aligns with your current stack or roadmap."

    def derive_tags(self, item: RawItem):
        text = f"{item.title} {item.content}".lower()
        return [tag for tag, pattern in TAG_PATTERNS if pattern.search(text)][:4]

    def summarize(self, item: RawItem) -> SummaryFields:
        return SummaryFields(
            tldr=self.build_tldr(item),
            importance=self.build_importance(item),
            tags=self.derive_tags(item),
            provider=ProviderName.FALLBACK,
        )
