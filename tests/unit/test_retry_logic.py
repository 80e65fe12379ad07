"""
Unit tests for the upstream retry policy.
"""

import asyncio

import aiohttp
import pytest

from livesignals.config.settings import RetryProfiles
from livesignals.recovery.retry_logic import RetryConfig, UpstreamResponse, decode_body, fetch_with_backoff
from livesignals.utils.exceptions import ErrorCode, UpstreamError
from tests.conftest import FakeResponse

URL = "https://api.github.com/repos/vercel/ai/releases?per_page=1"


class TestRetryConfig:
    """Delay computation for both presets."""

    def test_client_preset_delays(self):
        config = RetryConfig.from_settings(RetryProfiles().client)

        assert config.status_delay(0) == pytest.approx(1.5)
        assert config.status_delay(1) == pytest.approx(3.0)
        assert config.status_delay(3) == pytest.approx(7.0)
        assert config.transport_delay(0) == pytest.approx(0.9)
        assert config.transport_delay(5) == pytest.approx(5.0)

    def test_worker_preset_delays(self):
        config = RetryConfig.from_settings(RetryProfiles().worker)

        assert config.status_delay(0) == pytest.approx(1.2)
        assert config.status_delay(4) == pytest.approx(5.0)
        assert config.transport_delay(4) == pytest.approx(4.5)

    def test_retry_after_header_wins(self):
        config = RetryConfig()
        assert config.status_delay(0, "4") == pytest.approx(4.0)
        assert config.status_delay(0, "0") == pytest.approx(1.5)
        assert config.status_delay(0, "soon") == pytest.approx(1.5)
        assert config.status_delay(0, "3600") == pytest.approx(config.max_retry_after)

    @pytest.mark.parametrize("status,expected", [
        (500, True), (503, True), (429, True),
        (200, False), (304, False), (404, False), (403, False),
    ])
    def test_retryable_statuses(self, status, expected):
        assert RetryConfig().should_retry_status(status) is expected


class TestFetchWithBackoff:
    """Retry loop behavior against a fake session."""

    @pytest.mark.asyncio
    async def test_transient_failures_then_success(self, fake_session, fast_retry):
        fake_session.add(
            URL,
            FakeResponse(503),
            aiohttp.ClientConnectionError("reset"),
            FakeResponse(200, "[]", {"ETag": '"abc"'}),
        )

        response = await fetch_with_backoff(fake_session, URL, config=fast_retry)

        assert response.ok
        assert response.status == 200
        assert response.header("etag") == '"abc"'
        assert len(fake_session.calls_to(URL)) == 3

    @pytest.mark.asyncio
    async def test_client_error_is_not_retried(self, fake_session, fast_retry):
        fake_session.add(URL, FakeResponse(404, "missing"))

        response = await fetch_with_backoff(fake_session, URL, config=fast_retry)

        assert response.status == 404
        assert not response.ok
        assert len(fake_session.calls_to(URL)) == 1

    @pytest.mark.asyncio
    async def test_exhaustion_raises_recoverable_upstream_error(self, fake_session, fast_retry):
        fake_session.add(URL, FakeResponse(502))

        with pytest.raises(UpstreamError) as exc_info:
            await fetch_with_backoff(fake_session, URL, config=fast_retry)

        assert exc_info.value.status == 502
        assert exc_info.value.recoverable is True
        assert exc_info.value.error_code == ErrorCode.UPSTREAM_TRANSIENT
        assert len(fake_session.calls_to(URL)) == 3

    @pytest.mark.asyncio
    async def test_transport_exhaustion(self, fake_session, fast_retry):
        fake_session.add(URL, asyncio.TimeoutError())

        with pytest.raises(UpstreamError) as exc_info:
            await fetch_with_backoff(fake_session, URL, config=fast_retry)

        assert exc_info.value.status is None
        assert exc_info.value.error_code == ErrorCode.UPSTREAM_NETWORK_ERROR

    @pytest.mark.asyncio
    async def test_no_sleep_after_final_attempt(self, fake_session):
        fake_session.add(URL, FakeResponse(500))
        delays = []

        async def record_sleep(seconds):
            delays.append(seconds)

        with pytest.raises(UpstreamError):
            await fetch_with_backoff(fake_session, URL, config=RetryConfig(), sleep=record_sleep)

        assert delays == [pytest.approx(1.5), pytest.approx(3.0)]

    @pytest.mark.asyncio
    async def test_retry_after_header_used_for_sleep(self, fake_session):
        fake_session.add(URL, FakeResponse(429, "", {"Retry-After": "2"}), FakeResponse(200, "ok"))
        delays = []

        async def record_sleep(seconds):
            delays.append(seconds)

        response = await fetch_with_backoff(fake_session, URL, config=RetryConfig(), sleep=record_sleep)

        assert response.body == "ok"
        assert delays == [pytest.approx(2.0)]


def test_upstream_response_json():
    response = UpstreamResponse(status=200, body='{"items": []}')
    assert response.json() == {"items": []}
    assert response.header("missing") is None


class TestBodyDecoding:

    def test_declared_charset_is_used(self):
        assert decode_body("café".encode("iso-8859-1"), "iso-8859-1") == "café"

    def test_undecodable_bytes_are_replaced(self):
        assert decode_body(b"caf\xe9", None) == "caf\ufffd"

    def test_unknown_charset_falls_back_to_utf8(self):
        assert decode_body("café".encode("utf-8"), "x-no-such-charset") == "café"

    @pytest.mark.asyncio
    async def test_non_utf8_body_without_charset_does_not_raise(self, fake_session, fast_retry,
                                                                latin1_rss_document):
        fake_session.add(URL, FakeResponse(200, latin1_rss_document, {"Content-Type": "application/rss+xml"}))

        response = await fetch_with_backoff(fake_session, URL, config=fast_retry)

        assert response.ok
        assert response.content == latin1_rss_document
        assert "\ufffd" in response.body
