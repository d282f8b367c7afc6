"""
Shared fakes for token_gate tests.

HTTP is faked with httpx.MockTransport; the resolver tests use the small
in-process source/prober doubles below so probe timing is controllable.
"""
from __future__ import annotations

import asyncio
from collections.abc import Callable
from typing import Dict, List, Optional, Tuple

import httpx
import pytest

from token_gate.config import Settings
from token_gate.domain.access import build_allow_set
from token_gate.domain.tokens import Verdict

PROVIDER_URL = "https://tokens.test/api.txt"
UPSTREAM_HOST = "upstream.test"
COMPLETIONS_URL = f"https://{UPSTREAM_HOST}/v1/completions"

# 51 characters, shaped like a real key.
LONG_TOKEN = "sk-" + "A1b2C3d4E5" * 4 + "f6G7h8I9j0"


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, now: float = 1000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class StaticSource:
    """Candidate source returning a fixed sequence of lists, one per cycle."""

    def __init__(self, *batches: List[str]) -> None:
        self._batches = list(batches) or [[]]
        self.fetched_at: List[float] = []

    async def fetch_candidates(self) -> List[str]:
        self.fetched_at.append(asyncio.get_running_loop().time())
        if len(self._batches) > 1:
            return list(self._batches.pop(0))
        return list(self._batches[0])


class DelayedProber:
    """Prober double: each token sleeps for its delay, then returns its verdict."""

    def __init__(self, plan: Dict[str, Tuple[float, Verdict]]) -> None:
        self.plan = plan
        self.calls: List[str] = []
        self.finished: List[Tuple[str, float]] = []

    async def probe(self, token: str) -> Verdict:
        self.calls.append(token)
        delay, verdict = self.plan.get(token, (0.0, Verdict.unusable))
        await asyncio.sleep(delay)
        self.finished.append((token, asyncio.get_running_loop().time()))
        return verdict

    def finished_tokens(self) -> List[str]:
        return [t for t, _ in self.finished]


class FakeResolver:
    """Resolver double returning a fixed result and counting calls."""

    def __init__(self, token: Optional[str]) -> None:
        self.token = token
        self.calls = 0

    async def resolve(self) -> Optional[str]:
        self.calls += 1
        return self.token

    async def aclose(self) -> None:
        return None


def mock_client(handler: Callable[[httpx.Request], httpx.Response]) -> httpx.AsyncClient:
    """AsyncClient whose every request is answered by `handler`."""
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


def completion_ok(request: httpx.Request) -> httpx.Response:
    return httpx.Response(200, json={"choices": [{"text": " ok"}]})


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def settings() -> Settings:
    """Settings pointing at the fake provider/upstream, with access code "abc"."""
    return Settings(
        free_token_provider=PROVIDER_URL,
        token_response_cache_seconds=0,
        access_codes=build_allow_set(["abc"]),
        base_url=UPSTREAM_HOST,
    )
