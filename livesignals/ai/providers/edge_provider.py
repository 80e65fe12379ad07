"""
Edge inference provider: POSTs prompts to the relay worker's ``/summarize``.
"""

import json
import time
from typing import Optional

import aiohttp

from .base import AIResult, SummaryProvider
from ...models import ProviderName, RawItem
from ...recovery.retry_logic import RetryConfig, fetch_with_backoff
from ...utils.exceptions import UpstreamError
from ...utils.logging import get_logger_for_component


class EdgeInferenceProvider(SummaryProvider):
    """Summarization through the relay worker (``cloudflare-worker``)."""

    name = ProviderName.CLOUDFLARE_WORKER

    def __init__(self, session: Optional[aiohttp.ClientSession], endpoint: Optional[str],
                 retry_config: Optional[RetryConfig] = None):
        """Initialize edge provider.

        Args:
            session: aiohttp session for the summarize call
            endpoint: Summarize endpoint; empty disables the provider
            retry_config: Retry policy (single attempt by default)
        """
        self.session = session
        self.endpoint = endpoint or ""
        self.retry_config = retry_config or RetryConfig(max_attempts=1)
        self.logger = get_logger_for_component("edge_inference")

    async def is_available(self) -> bool:
        return bool(self.endpoint) and self.session is not None

    async def attempt(self, item: RawItem, prompt: str) -> AIResult:
        started = time.monotonic()
        payload = {
            "prompt": prompt,
            "title": item.title,
            "content": item.content,
            "url": item.url,
        }

        try:
            response = await fetch_with_backoff(
                self.session, self.endpoint, method="POST",
                config=self.retry_config, json=payload,
            )
        except UpstreamError as e:
            return self._create_error_result(f"Worker request failed: {e}")

        if not response.ok:
            return self._create_error_result(f"Worker request failed ({response.status})")

        try:
            data = response.json()
        except ValueError as e:
            return self._create_error_result(f"Worker returned invalid JSON: {e}")

        model = data.get("model") if isinstance(data, dict) else None
        if isinstance(data, dict) and isinstance(data.get("response"), str):
            return self._create_success_result(data["response"], started, model_used=model)

        body = data.get("response") if isinstance(data, dict) and data.get("response") is not None else data
        return self._create_success_result(json.dumps(body), started, model_used=model)
