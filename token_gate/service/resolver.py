"""Token pool resolution: fetch candidates, probe them, pick one.

Two policies share the `resolve() -> str | None` interface:

- RaceResolver: shuffle, probe everything at once, take the first usable
  token. "None available" is only reported after every probe has settled.
- PoolResolver: merge with the usable set kept from the last cycle, probe
  everything, wait for all, choose at random among the usable ones and
  keep them for next time. Cycles on one instance never overlap.
"""
from __future__ import annotations

import asyncio
import random
from typing import Protocol

import httpx

from ..config import ResolutionPolicy, Settings
from ..domain.tokens import Verdict, truncate_token
from ..logging_conf import get_logger
from .fetcher import TokenSourceFetcher
from .prober import TokenProber

__all__ = [
    "CandidateSource",
    "Prober",
    "TokenResolver",
    "RaceResolver",
    "PoolResolver",
    "build_resolver",
]

logger = get_logger("service.resolver")


class CandidateSource(Protocol):
    async def fetch_candidates(self) -> list[str]: ...


class Prober(Protocol):
    async def probe(self, token: str) -> Verdict: ...


class TokenResolver(Protocol):
    async def resolve(self) -> str | None: ...

    async def aclose(self) -> None: ...


async def _probe_safely(prober: Prober, token: str) -> Verdict:
    # A broken prober must not take the whole cycle down with it.
    try:
        return await prober.probe(token)
    except Exception:
        logger.exception(
            "token.probe_crashed",
            extra={"event": "token_probe_crashed", "token": truncate_token(token)},
        )
        return Verdict.unusable


def _distinct(tokens: list[str]) -> list[str]:
    return list(dict.fromkeys(tokens))


class RaceResolver:
    """First usable token wins; losing probes run to completion unobserved."""

    def __init__(
        self,
        source: CandidateSource,
        prober: Prober,
        *,
        rng: random.Random | None = None,
    ) -> None:
        self._source = source
        self._prober = prober
        self._rng = rng or random.Random()
        self._stragglers: set[asyncio.Task[tuple[str, Verdict]]] = set()

    async def _probe_token(self, token: str) -> tuple[str, Verdict]:
        return token, await _probe_safely(self._prober, token)

    async def resolve(self) -> str | None:
        candidates = _distinct(await self._source.fetch_candidates())
        if not candidates:
            logger.info("token.none_available", extra={"event": "token_none_available", "probed": 0})
            return None
        self._rng.shuffle(candidates)

        tasks = [asyncio.create_task(self._probe_token(t)) for t in candidates]
        winner: str | None = None
        try:
            for fut in asyncio.as_completed(tasks):
                token, verdict = await fut
                if verdict.is_usable:
                    winner = token
                    break
        finally:
            pending = {t for t in tasks if not t.done()}
            for task in pending:
                self._stragglers.add(task)
                task.add_done_callback(self._stragglers.discard)

        if winner is None:
            logger.info(
                "token.none_available",
                extra={"event": "token_none_available", "probed": len(candidates)},
            )
            return None
        logger.info(
            "token.resolved",
            extra={
                "event": "token_resolved",
                "policy": ResolutionPolicy.race.value,
                "token": truncate_token(winner),
                "probed": len(candidates),
                "outstanding": len(pending),
            },
        )
        return winner

    async def aclose(self) -> None:
        """Wait for probes still running from earlier cycles."""
        if self._stragglers:
            await asyncio.gather(*list(self._stragglers), return_exceptions=True)


class PoolResolver:
    """Probe every candidate, choose at random, retain the usable set."""

    def __init__(
        self,
        source: CandidateSource,
        prober: Prober,
        *,
        rng: random.Random | None = None,
    ) -> None:
        self._source = source
        self._prober = prober
        self._rng = rng or random.Random()
        self._retained: list[str] = []
        self._lock = asyncio.Lock()

    @property
    def retained(self) -> tuple[str, ...]:
        """Usable tokens kept from the last completed cycle."""
        return tuple(self._retained)

    async def _probe_into(self, pool: dict[str, Verdict], token: str) -> None:
        pool[token] = await _probe_safely(self._prober, token)

    async def resolve(self) -> str | None:
        async with self._lock:
            candidates = await self._source.fetch_candidates()
            if not candidates:
                logger.info("token.none_available", extra={"event": "token_none_available", "probed": 0})
                return None

            pool: dict[str, Verdict] = {
                t: Verdict.unusable for t in _distinct([*self._retained, *candidates])
            }
            await asyncio.gather(*(self._probe_into(pool, t) for t in list(pool)))

            usable = [t for t, v in pool.items() if v.is_usable]
            self._retained = usable
            if not usable:
                logger.info(
                    "token.none_available",
                    extra={"event": "token_none_available", "probed": len(pool)},
                )
                return None
            token = self._rng.choice(usable)
            logger.info(
                "token.resolved",
                extra={
                    "event": "token_resolved",
                    "policy": ResolutionPolicy.pool.value,
                    "token": truncate_token(token),
                    "probed": len(pool),
                    "usable": len(usable),
                },
            )
            return token

    async def aclose(self) -> None:
        return None


def build_resolver(settings: Settings, client: httpx.AsyncClient) -> TokenResolver:
    """Wire fetcher, prober and the configured policy onto a shared client."""
    fetcher = TokenSourceFetcher(
        client,
        settings.free_token_provider,
        cache_ttl=settings.token_response_cache_seconds,
        strict=settings.strict_token_format,
    )
    if settings.policy is ResolutionPolicy.pool:
        prober = TokenProber(
            client,
            settings.completions_url,
            timeout=settings.probe_timeout_seconds,
            verdict_ttl=settings.token_validity_seconds,
        )
        return PoolResolver(fetcher, prober)
    prober = TokenProber(
        client,
        settings.completions_url,
        timeout=settings.probe_timeout_seconds,
    )
    return RaceResolver(fetcher, prober)
