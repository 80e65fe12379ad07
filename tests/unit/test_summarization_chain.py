"""
Unit tests for the summarization chain, its providers and the fallback summarizer.
"""

import json
from unittest.mock import AsyncMock, Mock

import pytest

from livesignals.ai.fallback import FallbackSummarizer, first_sentence
from livesignals.ai.providers.base import AIResult, SummaryProvider, normalize_model_output
from livesignals.ai.providers.edge_provider import EdgeInferenceProvider
from livesignals.ai.providers.on_device import (
    LanguageModelProvider,
    LocalLanguageModel,
    PlatformIntelligenceProvider,
    SYSTEM_PROMPT,
)
from livesignals.ai.summarization_chain import SummarizationChain
from livesignals.models import ProviderName
from tests.conftest import FakeResponse

EDGE_URL = "https://relay.example.dev/summarize"
GOOD_JSON = json.dumps({
    "tldr": " Batching cut latency. ",
    "importance": "Cheaper inference.",
    "tags": ["ML Infra", " Backend ", "", "Performance", "Cost", "Extra"],
})


class StubProvider(SummaryProvider):
    """Provider returning canned results."""

    def __init__(self, name, available=True, result=None, error=None):
        self.name = name
        self.available = available
        self.result = result
        self.error = error
        self.attempts = 0

    async def is_available(self):
        return self.available

    async def attempt(self, item, prompt):
        self.attempts += 1
        if self.error:
            raise self.error
        return self.result


def _ok(text):
    return AIResult(success=True, text=text)


class TestSummarizationChain:

    @pytest.mark.asyncio
    async def test_all_unavailable_uses_fallback(self, make_item):
        providers = [StubProvider(name, available=False) for name in (
            ProviderName.BROWSER_AI, ProviderName.APPLE_INTELLIGENCE, ProviderName.CLOUDFLARE_WORKER,
        )]
        chain = SummarizationChain(providers)

        summary = await chain.process_content(make_item())

        assert summary.provider == ProviderName.FALLBACK
        assert all(p.attempts == 0 for p in providers)

    @pytest.mark.asyncio
    async def test_first_success_wins(self, make_item):
        first = StubProvider(ProviderName.BROWSER_AI, available=False)
        second = StubProvider(ProviderName.APPLE_INTELLIGENCE, result=_ok(GOOD_JSON))
        third = StubProvider(ProviderName.CLOUDFLARE_WORKER, result=_ok(GOOD_JSON))

        summary = await SummarizationChain([first, second, third]).process_content(make_item())

        assert summary.provider == ProviderName.APPLE_INTELLIGENCE
        assert summary.tldr == "Batching cut latency."
        assert summary.tags == ["ML Infra", "Backend", "Performance", "Cost"]
        assert third.attempts == 0

    @pytest.mark.asyncio
    async def test_failed_and_raising_providers_are_skipped(self, make_item):
        failing = StubProvider(ProviderName.BROWSER_AI, result=AIResult(success=False, error_message="boom"))
        raising = StubProvider(ProviderName.APPLE_INTELLIGENCE, error=RuntimeError("kaput"))
        edge = StubProvider(ProviderName.CLOUDFLARE_WORKER, result=_ok(GOOD_JSON))

        summary = await SummarizationChain([failing, raising, edge]).process_content(make_item())

        assert summary.provider == ProviderName.CLOUDFLARE_WORKER

    @pytest.mark.asyncio
    async def test_unparseable_output_goes_to_fallback(self, make_item):
        provider = StubProvider(ProviderName.BROWSER_AI, result=_ok("not json"))

        summary = await SummarizationChain([provider]).process_content(make_item())

        assert summary.provider == ProviderName.FALLBACK

    @pytest.mark.asyncio
    async def test_fenced_json_is_parsed(self, make_item):
        text = "Sure!\n```json\n" + GOOD_JSON + "\n```"
        provider = StubProvider(ProviderName.BROWSER_AI, result=_ok(text))

        summary = await SummarizationChain([provider]).process_content(make_item())

        assert summary.provider == ProviderName.BROWSER_AI
        assert summary.importance == "Cheaper inference."

    def test_blank_fields_fall_back_per_field(self, make_item):
        chain = SummarizationChain([])
        item = make_item()

        summary = chain.parse_response('{"tldr": "  ", "importance": 7, "tags": "x"}',
                                       ProviderName.CLOUDFLARE_WORKER, item)

        assert summary.provider == ProviderName.CLOUDFLARE_WORKER
        assert summary.tldr == chain.fallback.build_tldr(item)
        assert summary.importance == chain.fallback.build_importance(item)
        assert summary.tags == []

    def test_non_object_json_goes_to_fallback(self, make_item):
        summary = SummarizationChain([]).parse_response("[1, 2]", ProviderName.BROWSER_AI, make_item())
        assert summary.provider == ProviderName.FALLBACK

    def test_prompt_truncates_body(self, make_item):
        chain = SummarizationChain([], prompt_content_limit=10)
        prompt = chain.build_prompt(make_item(content="x" * 50, source="github.blog"))

        assert "Body: " + "x" * 10 + "\n" in prompt
        assert "Source: github.blog" in prompt
        assert prompt.endswith("JSON ONLY. NO MARKDOWN.")

    def test_from_settings_orders_providers(self, settings):
        chain = SummarizationChain.from_settings(settings, session=Mock())

        assert [p.name for p in chain.providers] == [
            ProviderName.BROWSER_AI, ProviderName.APPLE_INTELLIGENCE, ProviderName.CLOUDFLARE_WORKER,
        ]


class TestLanguageModelProvider:

    @pytest.mark.asyncio
    async def test_missing_runtime_is_unavailable(self):
        assert await LanguageModelProvider(None).is_available() is False

    @pytest.mark.asyncio
    @pytest.mark.parametrize("state,expected", [
        ("available", True), ("downloadable", True), ("unavailable", False), ("no", False),
    ])
    async def test_availability_states(self, state, expected):
        runtime = Mock()
        runtime.availability = AsyncMock(return_value=state)
        assert await LanguageModelProvider(runtime).is_available() is expected

    @pytest.mark.asyncio
    async def test_capabilities_no_is_unavailable(self):
        runtime = Mock(spec=["capabilities", "create"])
        runtime.capabilities = Mock(return_value={"available": "no"})
        assert await LanguageModelProvider(runtime).is_available() is False

    @pytest.mark.asyncio
    async def test_attempt_uses_system_prompt(self, make_item):
        session = Mock()
        session.prompt = AsyncMock(return_value=GOOD_JSON)
        runtime = Mock()
        runtime.availability = Mock(return_value="available")
        runtime.create = AsyncMock(return_value=session)

        result = await LanguageModelProvider(runtime).attempt(make_item(), "PROMPT")

        assert result.success
        assert result.text == GOOD_JSON
        runtime.create.assert_awaited_once_with(system_prompt=SYSTEM_PROMPT)
        session.prompt.assert_awaited_once_with("PROMPT")

    @pytest.mark.asyncio
    async def test_attempt_errors_become_results(self, make_item):
        runtime = Mock()
        runtime.create = Mock(side_effect=RuntimeError("no GPU"))

        result = await LanguageModelProvider(runtime).attempt(make_item(), "PROMPT")

        assert not result.success
        assert "no GPU" in result.error_message


class TestPlatformIntelligenceProvider:

    @pytest.mark.asyncio
    async def test_requires_summarize(self):
        assert await PlatformIntelligenceProvider(None).is_available() is False
        assert await PlatformIntelligenceProvider(Mock(spec=[])).is_available() is False

    @pytest.mark.asyncio
    async def test_non_string_output_is_normalized(self, make_item):
        api = Mock()
        api.summarize = Mock(return_value={"response": GOOD_JSON})

        result = await PlatformIntelligenceProvider(api).attempt(make_item(), "PROMPT")

        assert result.success
        assert result.text == GOOD_JSON


class TestEdgeInferenceProvider:

    @pytest.mark.asyncio
    async def test_unavailable_without_endpoint(self, fake_session):
        assert await EdgeInferenceProvider(fake_session, "").is_available() is False
        assert await EdgeInferenceProvider(None, EDGE_URL).is_available() is False

    @pytest.mark.asyncio
    async def test_string_response(self, fake_session, make_item):
        fake_session.add(EDGE_URL, FakeResponse(200, {"response": GOOD_JSON, "model": "m1"}), method="POST")
        provider = EdgeInferenceProvider(fake_session, EDGE_URL)

        result = await provider.attempt(make_item(), "PROMPT")

        assert result.success
        assert result.text == GOOD_JSON
        assert result.model_used == "m1"
        sent = fake_session.calls_to(EDGE_URL)[0].kwargs["json"]
        assert sent["prompt"] == "PROMPT"
        assert sent["url"] == "https://example.com/posts/1"

    @pytest.mark.asyncio
    async def test_object_response_is_dumped(self, fake_session, make_item):
        fake_session.add(EDGE_URL, FakeResponse(200, {"response": {"tldr": "x"}}), method="POST")

        result = await EdgeInferenceProvider(fake_session, EDGE_URL).attempt(make_item(), "PROMPT")

        assert json.loads(result.text) == {"tldr": "x"}

    @pytest.mark.asyncio
    @pytest.mark.parametrize("outcome", [FakeResponse(503, "down"), FakeResponse(400, "bad")])
    async def test_failures_become_error_results(self, fake_session, make_item, outcome):
        fake_session.add(EDGE_URL, outcome, method="POST")

        result = await EdgeInferenceProvider(fake_session, EDGE_URL).attempt(make_item(), "PROMPT")

        assert not result.success
        assert "Worker request failed" in result.error_message


class TestLocalLanguageModel:

    @pytest.mark.asyncio
    async def test_availability_matches_model_family(self, fake_session):
        fake_session.add("http://localhost:11434/api/tags",
                         FakeResponse(200, {"models": [{"name": "llama3.2:latest"}]}))
        runtime = LocalLanguageModel(fake_session, "http://localhost:11434/", model="llama3.2")

        assert await runtime.availability() == "available"

    @pytest.mark.asyncio
    async def test_unreachable_server_is_unavailable(self, fake_session):
        runtime = LocalLanguageModel(fake_session, "http://localhost:11434")
        assert await runtime.availability() == "unavailable"

    @pytest.mark.asyncio
    async def test_prompt_posts_generate(self, fake_session):
        url = "http://localhost:11434/api/generate"
        fake_session.add(url, FakeResponse(200, {"response": GOOD_JSON}), method="POST")
        runtime = LocalLanguageModel(fake_session, "http://localhost:11434", model="llama3.2")

        session = await runtime.create(system_prompt=SYSTEM_PROMPT)
        output = await session.prompt("PROMPT")

        assert normalize_model_output(output) == GOOD_JSON
        payload = fake_session.calls_to(url)[0].kwargs["json"]
        assert payload == {"model": "llama3.2", "prompt": "PROMPT", "stream": False, "system": SYSTEM_PROMPT}


class TestFallbackSummarizer:

    def test_long_content_uses_first_sentence(self, make_item):
        item = make_item(title="Faster builds", content="We rewrote the cache layer. It is now 3x faster.")

        assert FallbackSummarizer().build_tldr(item) == "Faster builds. We rewrote the cache layer."

    def test_short_content_uses_generic_tail(self, make_item):
        item = make_item(title="Tiny", content="Short.")
        assert FallbackSummarizer().build_tldr(item) == "Tiny. Open the full post for details."

    def test_importance_names_source(self, make_item):
        item = make_item(source="github.blog")
        assert FallbackSummarizer().build_importance(item).startswith("Published by github.blog;")

    def test_tags_follow_pattern_order(self, make_item):
        item = make_item(title="Monitoring the inference API", content="New security policy.")
        assert FallbackSummarizer().derive_tags(item) == ["Observability", "ML Infra", "Backend", "Security"]

    def test_summary_provider_is_fallback(self, make_item):
        assert FallbackSummarizer().summarize(make_item()).provider == ProviderName.FALLBACK

    def test_first_sentence_without_terminator(self):
        assert first_sentence("no terminator here" * 20, 30) == ("no terminator here" * 20)[:30].strip()
