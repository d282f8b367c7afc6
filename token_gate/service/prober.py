from __future__ import annotations

import time
from collections.abc import Callable
from typing import Any

import httpx

from ..domain.tokens import Verdict, truncate_token
from ..logging_conf import get_logger

logger = get_logger("service.prober")

# Smallest request that still exercises the key; keeps quota impact negligible.
PROBE_PAYLOAD: dict[str, Any] = {
    "model": "text-ada-001",
    "prompt": "This is a test",
    "max_tokens": 5,
}


def classify_response(response: httpx.Response) -> Verdict:
    """Usable iff 2xx and the JSON object carries a non-empty `choices` list."""
    if not response.is_success:
        return Verdict.unusable
    try:
        data = response.json()
    except ValueError:
        return Verdict.unusable
    if not isinstance(data, dict):
        return Verdict.unusable
    choices = data.get("choices")
    if isinstance(choices, list) and choices:
        return Verdict.usable
    return Verdict.unusable


class TokenProber:
    """Classify one candidate token with a single synthetic completion call.

    probe() never raises: transport errors, non-2xx answers and malformed
    bodies all come back as Verdict.unusable. When `verdict_ttl` is positive
    a verdict is reused for that many seconds; each probe only ever writes
    the entry for its own token, so concurrent probes need no lock.
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        url: str,
        *,
        timeout: float | None = None,
        verdict_ttl: float = 0.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._client = client
        self._url = url
        self._timeout = timeout
        self._verdict_ttl = verdict_ttl
        self._clock = clock
        self._verdicts: dict[str, tuple[float, Verdict]] = {}
        self._swept_at = clock()

    @property
    def cached_tokens(self) -> frozenset[str]:
        return frozenset(self._verdicts)

    def _evict_expired(self) -> None:
        # Tokens that leave the provider list are never looked up again.
        # One sweep per TTL bounds the map to about two TTLs of tokens.
        now = self._clock()
        if now - self._swept_at < self._verdict_ttl:
            return
        self._swept_at = now
        for token in [t for t, (at, _) in self._verdicts.items() if now - at >= self._verdict_ttl]:
            del self._verdicts[token]

    def _cached(self, token: str) -> Verdict | None:
        if self._verdict_ttl <= 0:
            return None
        self._evict_expired()
        hit = self._verdicts.get(token)
        if hit is None:
            return None
        checked_at, verdict = hit
        if self._clock() - checked_at >= self._verdict_ttl:
            del self._verdicts[token]
            return None
        return verdict

    async def _request(self, token: str) -> Verdict:
        kwargs: dict[str, Any] = {}
        if self._timeout is not None:
            kwargs["timeout"] = self._timeout
        try:
            r = await self._client.post(
                self._url,
                headers={
                    "Authorization": f"Bearer {token}",
                    "Content-Type": "application/json",
                },
                json=PROBE_PAYLOAD,
                **kwargs,
            )
        except httpx.HTTPError as e:
            logger.debug(
                "token.probe_error",
                extra={
                    "event": "token_probe_error",
                    "token": truncate_token(token),
                    "error": str(e) or type(e).__name__,
                },
            )
            return Verdict.unusable
        return classify_response(r)

    async def probe(self, token: str) -> Verdict:
        verdict = self._cached(token)
        cached = verdict is not None
        if verdict is None:
            verdict = await self._request(token)
            if self._verdict_ttl > 0:
                self._verdicts[token] = (self._clock(), verdict)
        logger.info(
            "token.probe",
            extra={
                "event": "token_probe",
                "token": truncate_token(token),
                "available": verdict.is_usable,
                "cached": cached,
            },
        )
        return verdict
