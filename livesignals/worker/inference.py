"""
Worker Inference
================

Model inference behind the relay worker's ``/summarize`` endpoint. A binding
runs one model; ``run_with_model_fallback`` walks the configured model ids in
priority order until one answers.
"""

import json
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional, Sequence, Tuple

import aiohttp

from ..recovery.retry_logic import RetryConfig, fetch_with_backoff
from ..utils.exceptions import AIError, UpstreamError, ErrorCode
from ..utils.logging import get_logger_for_component


CLOUDFLARE_API_BASE = "https://api.cloudflare.com/client/v4"

DEFAULT_SUMMARIZE_PROMPT = """Analyze this content:
Title: {title}
Body: {body}

Return JSON with:
1. "tldr" (1-2 sentences)
2. "importance" (1 sentence)
3. "tags" (Array of 3-4 concise categories)

JSON only."""

logger = get_logger_for_component("inference")


def build_default_prompt(title: Optional[str], content: Optional[str], limit: int = 6000) -> str:
    """Prompt used when a summarize request carries no prompt of its own."""
    return DEFAULT_SUMMARIZE_PROMPT.format(title=title or "Untitled", body=(content or "")[:limit])


class InferenceBinding(ABC):
    """A model runner keyed by model id."""

    @abstractmethod
    async def run(self, model: str, inputs: Dict[str, Any]) -> Any:
        """Run ``model`` on ``inputs``.

        Raises:
            AIError: If the model produced no result
        """


class CloudflareAIBinding(InferenceBinding):
    """Workers AI over the Cloudflare REST API (``/ai/run/{model}``)."""

    def __init__(self, session: aiohttp.ClientSession, account_id: str, api_token: str,
                 retry_config: Optional[RetryConfig] = None):
        self.session = session
        self.account_id = account_id
        self.api_token = api_token
        self.retry_config = retry_config or RetryConfig()

    async def run(self, model: str, inputs: Dict[str, Any]) -> Any:
        url = f"{CLOUDFLARE_API_BASE}/accounts/{self.account_id}/ai/run/{model}"
        try:
            response = await fetch_with_backoff(
                self.session, url, method="POST", config=self.retry_config,
                json=inputs, headers={"Authorization": f"Bearer {self.api_token}"},
            )
        except UpstreamError as e:
            raise AIError(f"Workers AI unreachable for {model}: {e}", provider=model) from e

        if not response.ok:
            raise AIError(f"Workers AI returned {response.status} for {model}", provider=model)

        try:
            payload = response.json()
        except ValueError as e:
            raise AIError(
                f"Workers AI returned invalid JSON for {model}",
                provider=model,
                error_code=ErrorCode.AI_INVALID_RESPONSE,
            ) from e

        if isinstance(payload, dict) and "result" in payload:
            if payload.get("success") is False:
                raise AIError(f"Workers AI reported failure for {model}: {payload.get('errors')}", provider=model)
            return payload["result"]
        return payload


def _result_text(result: Any) -> str:
    if isinstance(result, str):
        return result
    if isinstance(result, dict) and isinstance(result.get("response"), str):
        return result["response"]
    return json.dumps(result)


async def run_with_model_fallback(binding: InferenceBinding, models: Sequence[str],
                                  prompt: str) -> Tuple[str, str]:
    """Try each model in order and return ``(model, text)`` from the first success.

    Raises:
        AIError: AI_MODELS_EXHAUSTED when every model failed
    """
    last_error: Optional[Exception] = None

    for model in models:
        try:
            result = await binding.run(model, {"prompt": prompt})
            return model, _result_text(result)
        except Exception as e:
            last_error = e
            logger.warning(f"Model {model} failed, trying next: {e}")

    raise AIError(
        f"No Workers AI model produced a response: {last_error}" if last_error
        else "No Workers AI model produced a response",
        error_code=ErrorCode.AI_MODELS_EXHAUSTED,
        recoverable=False,
    )
