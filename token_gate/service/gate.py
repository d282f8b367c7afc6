from __future__ import annotations

from ..domain.access import is_code_allowed
from ..logging_conf import get_logger
from .resolver import TokenResolver

__all__ = [
    "GateError",
    "AccessDeniedError",
    "NoCredentialError",
    "authorize",
]

logger = get_logger("service.gate")


# ------------------------
# Errors
# ------------------------
class GateError(PermissionError):
    """Base class for requests the gate refuses.

    The `code` attribute lets the API map errors to stable payloads.
    """

    code: str = "gate_rejected"


class AccessDeniedError(GateError):
    code = "need_access_code"


class NoCredentialError(GateError):
    code = "empty_api_key"


# ------------------------
# Use-case
# ------------------------
async def authorize(
    *,
    access_code: str | None,
    user_token: str | None,
    access_codes: frozenset[str],
    static_key: str | None,
    resolver: TokenResolver,
) -> str | None:
    """Decide what credential a gated request goes out with.

    Returns the system token to inject, or None when the caller brought
    their own token and the request should pass through untouched.

    Raises:
        AccessDeniedError: allow-set configured, code not in it, no user token.
        NoCredentialError: no user token, no static key, pool has nothing usable.
    """
    if user_token:
        logger.info("auth.user_token", extra={"event": "auth_user_token"})
        return None

    if not is_code_allowed(access_code, access_codes):
        logger.info(
            "auth.reject",
            extra={"event": "auth_reject", "reason": AccessDeniedError.code},
        )
        raise AccessDeniedError("access code missing or not recognised")

    if static_key:
        logger.info("auth.system_token", extra={"event": "auth_system_token", "source": "static"})
        return static_key

    token = await resolver.resolve()
    if not token:
        logger.info(
            "auth.reject",
            extra={"event": "auth_reject", "reason": NoCredentialError.code},
        )
        raise NoCredentialError("no usable api key available")

    logger.info("auth.system_token", extra={"event": "auth_system_token", "source": "pool"})
    return token
