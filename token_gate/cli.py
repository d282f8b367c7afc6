#!/usr/bin/env python3
"""Run one resolution cycle from the command line.

Steps:
- load settings from the environment (flags override)
- fetch the candidate list and probe it with the chosen policy
- log a compact summary and exit 0 if a usable token was found, else 1
"""
from __future__ import annotations

import argparse
import asyncio
import sys

import httpx

from .config import ResolutionPolicy, get_settings
from .domain.tokens import truncate_token
from .logging_conf import get_logger, setup_logging
from .service.resolver import build_resolver

logger = get_logger("cli")


def parse_args(argv: list[str]) -> argparse.Namespace:
    """Parse CLI arguments for the resolution check."""
    parser = argparse.ArgumentParser(description="Check the free-token pool for a usable key")
    parser.add_argument("--provider", default=None, help="candidate list URL (FREE_TOKEN_PROVIDER)")
    parser.add_argument(
        "--policy",
        choices=[p.value for p in ResolutionPolicy],
        default=None,
        help="resolution policy (TOKEN_POLICY)",
    )
    parser.add_argument("--timeout", type=float, default=None, help="per-probe timeout in seconds")
    return parser.parse_args(argv)


async def run_check(args: argparse.Namespace) -> int:
    settings = get_settings()
    setup_logging(settings.log_level)
    overrides: dict[str, object] = {}
    if args.provider:
        overrides["free_token_provider"] = args.provider
    if args.policy:
        overrides["policy"] = ResolutionPolicy(args.policy)
    if args.timeout is not None:
        overrides["probe_timeout_seconds"] = args.timeout
    if overrides:
        settings = settings.model_copy(update=overrides)

    async with httpx.AsyncClient() as client:
        resolver = build_resolver(settings, client)
        token = await resolver.resolve()
        await resolver.aclose()

    logger.info(
        "check.summary",
        extra={
            "event": "check_summary",
            "provider": settings.free_token_provider,
            "policy": settings.policy.value,
            "found": token is not None,
            "token": truncate_token(token) if token else None,
        },
    )
    return 0 if token else 1


def main(argv: list[str] | None = None) -> None:
    args = parse_args(sys.argv[1:] if argv is None else argv)
    raise SystemExit(asyncio.run(run_check(args)))


if __name__ == "__main__":
    main()
