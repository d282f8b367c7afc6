"""Environment-driven settings for the gate.

Durations in the environment are milliseconds (TOKEN_RESPONSE_CACHE_TIME,
TOKEN_VALIDITY_TIME) except PROBE_TIMEOUT, which is seconds. Settings
store everything in seconds.
"""
from __future__ import annotations

import os
from collections.abc import Mapping
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict

from .domain.access import build_allow_set

__all__ = [
    "DEFAULT_FREE_TOKEN_PROVIDER",
    "GATED_PATHS",
    "ResolutionPolicy",
    "Settings",
    "get_settings",
]

DEFAULT_FREE_TOKEN_PROVIDER = "https://freeopenai.xyz/api.txt"
DEFAULT_RESPONSE_CACHE_MS = 5 * 60 * 1000
DEFAULT_VALIDITY_MS = 60 * 60 * 1000

# Request paths the gate applies to; everything else passes untouched.
GATED_PATHS = frozenset({"/api/openai", "/api/chat-stream"})


class ResolutionPolicy(str, Enum):
    race = "race"  # first usable probe wins
    pool = "pool"  # probe all, choose at random, retain usable set


class Settings(BaseModel):
    model_config = ConfigDict(frozen=True)

    free_token_provider: str = DEFAULT_FREE_TOKEN_PROVIDER
    token_response_cache_seconds: float = DEFAULT_RESPONSE_CACHE_MS / 1000
    token_validity_seconds: float = DEFAULT_VALIDITY_MS / 1000
    openai_api_key: Optional[str] = None
    access_codes: frozenset[str] = frozenset()
    protocol: str = "https"
    base_url: str = "api.openai.com"
    policy: ResolutionPolicy = ResolutionPolicy.race
    strict_token_format: bool = True
    probe_timeout_seconds: Optional[float] = None
    log_level: str = "INFO"

    @property
    def completions_url(self) -> str:
        return f"{self.protocol}://{self.base_url}/v1/completions"

    def upstream_url(self, path: str) -> str:
        return f"{self.protocol}://{self.base_url}/{path.lstrip('/')}"


def _ms_from_env(env: Mapping[str, str], name: str, default: int) -> float:
    raw = env.get(name)
    if not raw:
        return default / 1000
    try:
        val = int(raw, 10)
    except ValueError as e:
        raise ValueError(f"{name} must be an integer number of milliseconds") from e
    if val < 0:
        raise ValueError(f"{name} must be >= 0")
    return val / 1000


def _choice_from_env(env: Mapping[str, str], name: str, choices: tuple[str, ...], default: str) -> str:
    val = (env.get(name) or default).strip().lower()
    if val not in choices:
        raise ValueError(f"{name} must be one of {', '.join(choices)}")
    return val


def get_probe_timeout_from_env(env: Mapping[str, str]) -> float | None:
    """Return PROBE_TIMEOUT in seconds, or None to keep the client default."""
    raw = env.get("PROBE_TIMEOUT")
    if not raw:
        return None
    try:
        val = float(raw)
    except ValueError as e:
        raise ValueError("PROBE_TIMEOUT must be a number of seconds") from e
    if val <= 0:
        raise ValueError("PROBE_TIMEOUT must be > 0")
    return val


def get_log_level_from_env(env: Mapping[str, str]) -> str:
    return _choice_from_env(
        env, "LOG_LEVEL", ("debug", "info", "warning", "error", "critical"), "info"
    ).upper()


def get_settings(env: Mapping[str, str] | None = None) -> Settings:
    """Build settings from the environment (os.environ by default).

    Raises:
        ValueError: if a variable holds a value of the wrong shape.
    """
    env = os.environ if env is None else env
    policy = _choice_from_env(env, "TOKEN_POLICY", ("race", "pool"), "race")
    token_format = _choice_from_env(env, "TOKEN_FORMAT", ("strict", "loose"), "strict")
    return Settings(
        free_token_provider=env.get("FREE_TOKEN_PROVIDER") or DEFAULT_FREE_TOKEN_PROVIDER,
        token_response_cache_seconds=_ms_from_env(
            env, "TOKEN_RESPONSE_CACHE_TIME", DEFAULT_RESPONSE_CACHE_MS
        ),
        token_validity_seconds=_ms_from_env(env, "TOKEN_VALIDITY_TIME", DEFAULT_VALIDITY_MS),
        openai_api_key=env.get("OPENAI_API_KEY") or None,
        access_codes=build_allow_set((env.get("CODE") or "").split(",")),
        protocol=env.get("PROTOCOL") or "https",
        base_url=env.get("BASE_URL") or "api.openai.com",
        policy=ResolutionPolicy(policy),
        strict_token_format=token_format == "strict",
        probe_timeout_seconds=get_probe_timeout_from_env(env),
        log_level=get_log_level_from_env(env),
    )
