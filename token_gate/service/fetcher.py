from __future__ import annotations

import time
from collections.abc import Callable

import httpx

from ..domain.tokens import parse_candidates
from ..logging_conf import get_logger

logger = get_logger("service.fetcher")


class TokenSourceFetcher:
    """Pull the newline-delimited candidate list from the free-token provider.

    A successful body is kept for `cache_ttl` seconds so that back-to-back
    resolution cycles do not hit the provider again. Failures are never
    cached and never raised: they come back as an empty list.
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        url: str,
        *,
        cache_ttl: float = 0.0,
        strict: bool = True,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._client = client
        self._url = url
        self._cache_ttl = cache_ttl
        self._strict = strict
        self._clock = clock
        self._cached_body: str | None = None
        self._cached_at = 0.0

    @property
    def url(self) -> str:
        return self._url

    def _cache_hit(self) -> str | None:
        if self._cached_body is None or self._cache_ttl <= 0:
            return None
        if self._clock() - self._cached_at >= self._cache_ttl:
            self._cached_body = None
            return None
        return self._cached_body

    async def _fetch_body(self) -> str | None:
        cached = self._cache_hit()
        if cached is not None:
            return cached
        try:
            r = await self._client.get(self._url)
            r.raise_for_status()
            body = r.text
        except (httpx.HTTPError, UnicodeDecodeError) as e:
            logger.warning(
                "token.fetch_failed",
                extra={"event": "token_fetch_failed", "url": self._url, "error": str(e)},
            )
            return None
        if self._cache_ttl > 0:
            self._cached_body = body
            self._cached_at = self._clock()
        return body

    async def fetch_candidates(self) -> list[str]:
        body = await self._fetch_body()
        if not body:
            if body is not None:
                logger.warning(
                    "token.fetch_empty",
                    extra={"event": "token_fetch_empty", "url": self._url},
                )
            return []
        candidates = parse_candidates(body, strict=self._strict)
        logger.info(
            "token.fetched",
            extra={"event": "token_fetched", "url": self._url, "count": len(candidates)},
        )
        return candidates
