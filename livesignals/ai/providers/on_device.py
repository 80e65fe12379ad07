"""
On-Device Providers
===================

Providers backed by a language model running next to the pipeline:

- ``LanguageModelProvider`` drives a language model runtime exposing
  ``availability()`` or ``capabilities()``, ``create(system_prompt=...)`` and a
  session ``prompt(text)``
- ``PlatformIntelligenceProvider`` drives a platform API exposing
  ``summarize(prompt)``
- ``LocalLanguageModel`` is a runtime for a local Ollama-compatible server

Runtime methods may be plain or coroutine functions.
"""

import inspect
import time
from typing import Any, Dict, Optional

import aiohttp

from .base import AIResult, SummaryProvider, normalize_model_output
from ...models import ProviderName, RawItem
from ...recovery.retry_logic import RetryConfig, fetch_with_backoff
from ...utils.exceptions import AIError, UpstreamError, ErrorCode
from ...utils.logging import get_logger_for_component


SYSTEM_PROMPT = "You are a software engineering analyst. Return only JSON."

UNAVAILABLE_STATES = ("unavailable", "no")


async def _resolve(value: Any) -> Any:
    if inspect.isawaitable(value):
        return await value
    return value


def _has_method(obj: Any, name: str) -> bool:
    return obj is not None and callable(getattr(obj, name, None))


class LanguageModelProvider(SummaryProvider):
    """On-device language model runtime (``browser-ai``)."""

    name = ProviderName.BROWSER_AI

    def __init__(self, runtime: Any = None, system_prompt: str = SYSTEM_PROMPT):
        self.runtime = runtime
        self.system_prompt = system_prompt
        self.logger = get_logger_for_component("language_model")

    async def is_available(self) -> bool:
        if self.runtime is None:
            return False
        try:
            if _has_method(self.runtime, "availability"):
                state = await _resolve(self.runtime.availability())
                if state in UNAVAILABLE_STATES:
                    return False
            elif _has_method(self.runtime, "capabilities"):
                capabilities = await _resolve(self.runtime.capabilities())
                available = (
                    capabilities.get("available") if isinstance(capabilities, dict)
                    else getattr(capabilities, "available", None)
                )
                if available == "no":
                    return False
        except Exception as e:
            self.logger.debug(f"Language model availability check failed: {e}")
            return False
        return _has_method(self.runtime, "create")

    async def attempt(self, item: RawItem, prompt: str) -> AIResult:
        started = time.monotonic()
        try:
            session = await _resolve(self.runtime.create(system_prompt=self.system_prompt))
            output = await _resolve(session.prompt(prompt))
        except Exception as e:
            self.logger.warning(f"Language model prompt failed for {item.id}: {e}")
            return self._create_error_result(str(e))
        return self._create_success_result(normalize_model_output(output), started)


class PlatformIntelligenceProvider(SummaryProvider):
    """Platform summarization API (``apple-intelligence``)."""

    name = ProviderName.APPLE_INTELLIGENCE

    def __init__(self, api: Any = None):
        self.api = api
        self.logger = get_logger_for_component("platform_intelligence")

    async def is_available(self) -> bool:
        return _has_method(self.api, "summarize")

    async def attempt(self, item: RawItem, prompt: str) -> AIResult:
        started = time.monotonic()
        try:
            output = await _resolve(self.api.summarize(prompt))
        except Exception as e:
            self.logger.warning(f"Platform summarize failed for {item.id}: {e}")
            return self._create_error_result(str(e))
        return self._create_success_result(normalize_model_output(output), started)


class LocalModelSession:
    """Prompt session bound to one system prompt on a local model server."""

    def __init__(self, runtime: "LocalLanguageModel", system_prompt: Optional[str]):
        self.runtime = runtime
        self.system_prompt = system_prompt

    async def prompt(self, text: str) -> Dict[str, Any]:
        payload = {
            "model": self.runtime.model,
            "prompt": text,
            "stream": False,
        }
        if self.system_prompt:
            payload["system"] = self.system_prompt

        url = f"{self.runtime.base_url}/api/generate"
        response = await fetch_with_backoff(
            self.runtime.session, url, method="POST",
            config=self.runtime.retry_config, json=payload,
        )
        if not response.ok:
            raise AIError(
                f"Local model returned {response.status}",
                provider=ProviderName.BROWSER_AI.value,
                error_code=ErrorCode.AI_PROCESSING_ERROR,
            )
        try:
            return response.json()
        except ValueError as e:
            raise AIError(
                f"Local model returned invalid JSON: {e}",
                provider=ProviderName.BROWSER_AI.value,
                error_code=ErrorCode.AI_INVALID_RESPONSE,
            ) from e


class LocalLanguageModel:
    """Language model runtime for an Ollama-compatible HTTP server.

    ``availability()`` reports ``"available"`` when the configured model is
    listed by ``/api/tags`` and ``"unavailable"`` otherwise, including when the
    server cannot be reached.
    """

    def __init__(self, session: aiohttp.ClientSession, base_url: str, model: str = "llama3.2",
                 retry_config: Optional[RetryConfig] = None):
        self.session = session
        self.base_url = base_url.rstrip("/")
        self.model = model
        self.retry_config = retry_config or RetryConfig(max_attempts=1)
        self.logger = get_logger_for_component("local_model")

    async def availability(self) -> str:
        try:
            response = await fetch_with_backoff(
                self.session, f"{self.base_url}/api/tags", config=self.retry_config
            )
            if not response.ok:
                return "unavailable"
            models = response.json().get("models") or []
        except (UpstreamError, ValueError, AttributeError) as e:
            self.logger.debug(f"Local model server unavailable: {e}")
            return "unavailable"

        for entry in models:
            name = entry.get("name", "") if isinstance(entry, dict) else str(entry)
            if name == self.model or name.split(":")[0] == self.model:
                return "available"
        return "unavailable"

    async def create(self, system_prompt: Optional[str] = None) -> LocalModelSession:
        return LocalModelSession(self, system_prompt)
