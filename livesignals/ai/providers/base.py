"""
Base Summary Provider Interface
===============================

Abstract base class and result model for the summary providers tried, in
order, by the summarization chain.
"""

import json
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Optional

from ...models import ProviderName, RawItem


@dataclass
class AIResult:
    """Raw text produced by one provider attempt."""
    success: bool
    text: Optional[str] = None
    provider: Optional[str] = None
    model_used: Optional[str] = None
    processing_time_ms: Optional[int] = None
    error_message: Optional[str] = None


def normalize_model_output(raw: Any) -> str:
    """Reduce a model runtime's output to text.

    Strings pass through; mappings yield their ``response``, ``output`` or
    ``text`` string field; anything else is dumped as JSON.
    """
    if isinstance(raw, str):
        return raw
    if isinstance(raw, dict):
        for field in ("response", "output", "text"):
            if isinstance(raw.get(field), str):
                return raw[field]
    try:
        return json.dumps(raw)
    except (TypeError, ValueError):
        return str(raw)


class SummaryProvider(ABC):
    """A capability-typed summarization attempt with a skip precondition."""

    name: ProviderName

    @abstractmethod
    async def is_available(self) -> bool:
        """Check whether the provider can be attempted at all.

        Returns:
            False when the capability is absent; the chain skips the provider
        """

    @abstractmethod
    async def attempt(self, item: RawItem, prompt: str) -> AIResult:
        """Run the prompt for one item.

        Implementations return an error result rather than raising.
        """

    def _create_success_result(self, text: str, started_at: Optional[float] = None,
                               model_used: Optional[str] = None) -> AIResult:
        elapsed = int((time.monotonic() - started_at) * 1000) if started_at is not None else None
        return AIResult(
            success=True,
            text=text,
            provider=self.name.value,
            model_used=model_used,
            processing_time_ms=elapsed,
        )

    def _create_error_result(self, error_message: str) -> AIResult:
        return AIResult(
            success=False,
            provider=self.name.value,
            error_message=error_message,
        )

    def __str__(self) -> str:
        return f"{self.__class__.__name__}({self.name.value})"
