"""
Tests for TokenProber: request shape, classification, log redaction, verdict cache.
"""
import json
import logging
from typing import List

import httpx
import pytest

from token_gate.domain.tokens import Verdict, truncate_token
from token_gate.service.prober import PROBE_PAYLOAD, TokenProber, classify_response
from tests.conftest import COMPLETIONS_URL, LONG_TOKEN, FakeClock, completion_ok, mock_client


class TestRequestShape:
    @pytest.mark.asyncio
    async def test_posts_minimal_completion_with_bearer(self) -> None:
        seen: List[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return completion_ok(request)

        async with mock_client(handler) as client:
            assert await TokenProber(client, COMPLETIONS_URL).probe(LONG_TOKEN) is Verdict.usable

        req = seen[0]
        assert req.method == "POST"
        assert str(req.url) == COMPLETIONS_URL
        assert req.headers["Authorization"] == f"Bearer {LONG_TOKEN}"
        assert req.headers["Content-Type"] == "application/json"
        assert json.loads(req.content) == {
            "model": "text-ada-001",
            "prompt": "This is a test",
            "max_tokens": 5,
        }
        assert json.loads(req.content) == PROBE_PAYLOAD


class TestClassification:
    @pytest.mark.parametrize(
        "response, expected",
        [
            (httpx.Response(200, json={"choices": [{"text": "x"}]}), Verdict.usable),
            (httpx.Response(200, json={"choices": []}), Verdict.unusable),
            (httpx.Response(200, json={"error": {"message": "quota"}}), Verdict.unusable),
            (httpx.Response(200, json={"choices": None}), Verdict.unusable),
            (httpx.Response(200, json=[{"choices": [1]}]), Verdict.unusable),
            (httpx.Response(200, text="<html>not json</html>"), Verdict.unusable),
            (httpx.Response(401, json={"choices": [{"text": "x"}]}), Verdict.unusable),
            (httpx.Response(429, json={"error": "rate limited"}), Verdict.unusable),
        ],
    )
    def test_classify_response(self, response: httpx.Response, expected: Verdict) -> None:
        assert classify_response(response) is expected

    @pytest.mark.asyncio
    async def test_transport_error_is_unusable(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("timed out", request=request)

        async with mock_client(handler) as client:
            assert await TokenProber(client, COMPLETIONS_URL).probe(LONG_TOKEN) is Verdict.unusable

    @pytest.mark.asyncio
    async def test_same_response_same_verdict(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={"choices": []})

        async with mock_client(handler) as client:
            prober = TokenProber(client, COMPLETIONS_URL)
            first = await prober.probe(LONG_TOKEN)
            second = await prober.probe(LONG_TOKEN)
        assert first is second is Verdict.unusable

    @pytest.mark.asyncio
    async def test_timeout_passed_per_request(self) -> None:
        seen: List[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return completion_ok(request)

        async with mock_client(handler) as client:
            await TokenProber(client, COMPLETIONS_URL, timeout=1.5).probe(LONG_TOKEN)
        assert seen[0].extensions["timeout"]["read"] == 1.5


class TestLogging:
    @pytest.mark.asyncio
    async def test_logs_truncated_token_with_verdict(self, caplog: pytest.LogCaptureFixture) -> None:
        caplog.set_level(logging.INFO, logger="service.prober")
        async with mock_client(completion_ok) as client:
            await TokenProber(client, COMPLETIONS_URL).probe(LONG_TOKEN)

        records = [r for r in caplog.records if r.getMessage() == "token.probe"]
        assert len(records) == 1
        assert records[0].token == truncate_token(LONG_TOKEN)
        assert records[0].available is True
        assert all(LONG_TOKEN not in str(r.__dict__) for r in caplog.records)


class TestVerdictCache:
    @pytest.mark.asyncio
    async def test_verdict_reused_within_ttl(self, clock: FakeClock) -> None:
        seen: List[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return completion_ok(request)

        async with mock_client(handler) as client:
            prober = TokenProber(client, COMPLETIONS_URL, verdict_ttl=60, clock=clock)
            assert await prober.probe("sk-a") is Verdict.usable
            clock.advance(59)
            assert await prober.probe("sk-a") is Verdict.usable
            assert len(seen) == 1

            clock.advance(1)
            await prober.probe("sk-a")
            assert len(seen) == 2

    @pytest.mark.asyncio
    async def test_cache_is_per_token(self, clock: FakeClock) -> None:
        seen: List[str] = []

        def handler(request: httpx.Request) -> httpx.Response:
            token = request.headers["Authorization"].removeprefix("Bearer ")
            seen.append(token)
            if token == "sk-good":
                return completion_ok(request)
            return httpx.Response(401, json={"error": "invalid key"})

        async with mock_client(handler) as client:
            prober = TokenProber(client, COMPLETIONS_URL, verdict_ttl=60, clock=clock)
            assert await prober.probe("sk-good") is Verdict.usable
            assert await prober.probe("sk-bad") is Verdict.unusable
            assert await prober.probe("sk-bad") is Verdict.unusable
        assert seen == ["sk-good", "sk-bad"]

    @pytest.mark.asyncio
    async def test_no_ttl_never_caches(self) -> None:
        seen: List[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return completion_ok(request)

        async with mock_client(handler) as client:
            prober = TokenProber(client, COMPLETIONS_URL)
            await prober.probe("sk-a")
            await prober.probe("sk-a")
        assert len(seen) == 2

    @pytest.mark.asyncio
    async def test_expired_verdicts_are_dropped(self, clock: FakeClock) -> None:
        async with mock_client(completion_ok) as client:
            prober = TokenProber(client, COMPLETIONS_URL, verdict_ttl=60, clock=clock)
            await prober.probe("sk-a")
            clock.advance(30)
            await prober.probe("sk-b")
            assert prober.cached_tokens == {"sk-a", "sk-b"}

            clock.advance(30)
            await prober.probe("sk-c")
        # sk-a left the provider list and is never asked for again.
        assert prober.cached_tokens == {"sk-b", "sk-c"}
