from __future__ import annotations

import hashlib
from collections.abc import Iterable

__all__ = [
    "hash_access_code",
    "build_allow_set",
    "is_code_allowed",
]


def hash_access_code(code: str | None) -> str:
    """Return the hex MD5 digest of a raw access code.

    A missing code hashes like the empty string, which never matches a
    configured code because blanks are dropped from the allow-set.
    """
    return hashlib.md5((code or "").encode("utf-8")).hexdigest().strip()


def build_allow_set(raw_codes: Iterable[str]) -> frozenset[str]:
    """Hash raw codes into the allow-set; blank entries are ignored."""
    return frozenset(hash_access_code(c.strip()) for c in raw_codes if c.strip())


def is_code_allowed(code: str | None, allow_set: frozenset[str]) -> bool:
    """True when no allow-set is configured or the hashed code is a member."""
    if not allow_set:
        return True
    return hash_access_code(code) in allow_set
