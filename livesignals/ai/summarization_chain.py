"""
Summarization Chain
===================

Tries summary providers in a fixed order and parses the first successful
output into summary fields. Providers that are unavailable or error are
skipped; when none succeeds, or the winning output cannot be parsed, the
item gets a deterministic fallback summary. ``process_content`` never raises.
"""

import json
import re
from typing import Any, List, Optional

import aiohttp

from .fallback import FallbackSummarizer
from .providers.base import SummaryProvider
from .providers.edge_provider import EdgeInferenceProvider
from .providers.on_device import (
    LanguageModelProvider,
    LocalLanguageModel,
    PlatformIntelligenceProvider,
)
from ..config.settings import LiveSignalsSettings
from ..models import ProviderName, RawItem, SummaryFields
from ..utils.logging import get_logger_for_component


PROMPT_TEMPLATE = """Analyze this content:
Title: {title}
Source: {source}
Body: {body}

Return a JSON object with:
1. "tldr": (1-2 sentences)
2. "importance": (1 sentence explanation)
3. "tags": (Array of up to 4 short categories like "Observability", "ML Infra", "Backend")

JSON ONLY. NO MARKDOWN."""

_FENCE = re.compile(r"```json|```")
_JSON_OBJECT = re.compile(r"\{[\s\S]*\}")


class SummarizationChain:
    """Cascading provider chain ending in the deterministic fallback."""

    def __init__(self, providers: List[SummaryProvider],
                 fallback: Optional[FallbackSummarizer] = None,
                 prompt_content_limit: int = 5000):
        """Initialize the chain.

        Args:
            providers: Providers in priority order
            fallback: Deterministic summarizer used when the chain gives up
            prompt_content_limit: Max content characters placed in the prompt
        """
        self.providers = list(providers)
        self.fallback = fallback or FallbackSummarizer()
        self.prompt_content_limit = prompt_content_limit
        self.logger = get_logger_for_component("summarization_chain")

    @classmethod
    def from_settings(cls, settings: LiveSignalsSettings,
                      session: Optional[aiohttp.ClientSession] = None,
                      language_model_runtime: Any = None,
                      platform_api: Any = None) -> "SummarizationChain":
        """Build the standard chain: on-device, platform, edge.

        A configured ``summarization.local_model_url`` supplies the on-device
        runtime when none is passed in.
        """
        runtime = language_model_runtime
        if runtime is None and settings.summarization.local_model_url and session is not None:
            runtime = LocalLanguageModel(
                session,
                settings.summarization.local_model_url,
                model=settings.summarization.local_model_name,
            )

        providers = [
            LanguageModelProvider(runtime),
            PlatformIntelligenceProvider(platform_api),
            EdgeInferenceProvider(session, settings.get_summarize_endpoint()),
        ]
        return cls(providers, prompt_content_limit=settings.summarization.prompt_content_limit)

    def build_prompt(self, item: RawItem) -> str:
        return PROMPT_TEMPLATE.format(
            title=item.title,
            source=item.source,
            body=item.content[: self.prompt_content_limit],
        )

    async def process_content(self, item: RawItem) -> SummaryFields:
        """Summarize one item.

        Args:
            item: Item to summarize

        Returns:
            Summary fields from the first successful provider, or fallback fields
        """
        prompt = self.build_prompt(item)

        for provider in self.providers:
            try:
                if not await provider.is_available():
                    self.logger.debug(f"Skipping unavailable provider {provider.name.value}")
                    continue
                result = await provider.attempt(item, prompt)
            except Exception as e:
                self.logger.warning(f"Provider {provider.name.value} raised for {item.id}: {e}")
                continue

            if result.success and result.text is not None:
                return self.parse_response(result.text, provider.name, item)

            self.logger.warning(
                f"Provider {provider.name.value} failed for {item.id}: {result.error_message}"
            )

        self.logger.debug(f"No provider produced a summary for {item.id}, using fallback")
        return self.fallback.summarize(item)

    def parse_response(self, text: str, provider: ProviderName, item: RawItem) -> SummaryFields:
        """Parse model output into summary fields.

        Any failure to recover a JSON object sends the whole item to the
        deterministic fallback.
        """
        normalized = _FENCE.sub("", text.strip())
        match = _JSON_OBJECT.search(normalized)
        candidate = match.group(0) if match else normalized

        try:
            data = json.loads(candidate)
        except ValueError:
            self.logger.warning(f"Unparseable {provider.value} output for {item.id}, using fallback")
            return self.fallback.summarize(item)

        if not isinstance(data, dict):
            self.logger.warning(f"Non-object {provider.value} output for {item.id}, using fallback")
            return self.fallback.summarize(item)

        tags = data.get("tags")
        if isinstance(tags, list):
            tags = [str(tag).strip() for tag in tags]
            tags = [tag for tag in tags if tag][:4]
        else:
            tags = []

        return SummaryFields(
            tldr=self._clean_sentence(data.get("tldr"), self.fallback.build_tldr(item)),
            importance=self._clean_sentence(data.get("importance"), self.fallback.build_importance(item)),
            tags=tags,
            provider=provider,
        )

    @staticmethod
    def _clean_sentence(value: Any, fallback: str) -> str:
        if not isinstance(value, str):
            return fallback
        trimmed = value.strip()
        return trimmed or fallback
