from __future__ import annotations

import re
from enum import Enum

__all__ = [
    "Verdict",
    "TRUNCATE_HEAD",
    "TRUNCATE_TAIL",
    "truncate_token",
    "parse_candidates",
]

# Visible characters kept on each side of a logged token.
TRUNCATE_HEAD = 15
TRUNCATE_TAIL = 10

# Provider lists carry keys like "sk-AbC123"; anything else is noise.
_STRICT_TOKEN_RE = re.compile(r"\w+-\w+", re.ASCII)


class Verdict(str, Enum):
    usable = "usable"
    unusable = "unusable"

    @property
    def is_usable(self) -> bool:
        return self is Verdict.usable


def truncate_token(token: str) -> str:
    """Return a log-safe form of a bearer token.

    Tokens of at least TRUNCATE_HEAD + TRUNCATE_TAIL characters keep their
    first 15 and last 10 characters around "...". Shorter tokens keep only
    their first third, so the full value never reaches the logs.
    """
    if len(token) >= TRUNCATE_HEAD + TRUNCATE_TAIL:
        return f"{token[:TRUNCATE_HEAD]}...{token[-TRUNCATE_TAIL:]}"
    return f"{token[: len(token) // 3]}..."


def parse_candidates(text: str, *, strict: bool = True) -> list[str]:
    """Split a newline-delimited provider body into candidate tokens.

    Lines are stripped and blanks dropped. In strict mode only `word-word`
    shaped entries survive; other lines are skipped silently. Order is kept
    and duplicates are not removed here.
    """
    out: list[str] = []
    for line in text.splitlines():
        token = line.strip()
        if not token:
            continue
        if strict and not _STRICT_TOKEN_RE.fullmatch(token):
            continue
        out.append(token)
    return out
