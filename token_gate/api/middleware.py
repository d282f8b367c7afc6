from __future__ import annotations

import time
from collections.abc import Awaitable, Callable
from uuid import uuid4

from fastapi import Request, Response, status
from fastapi.responses import JSONResponse
from starlette.datastructures import MutableHeaders

from ..config import GATED_PATHS, Settings
from ..logging_conf import bind_request_id, get_logger, reset_request_id
from ..service.gate import AccessDeniedError, GateError, NoCredentialError, authorize
from .models import AccessCodeRequired, EmptyApiKey

logger = get_logger("api.gate")
access_logger = get_logger("api.access")

ACCESS_CODE_HEADER = "access-code"
TOKEN_HEADER = "token"
REQUEST_ID_HEADER = "X-Request-ID"

CallNext = Callable[[Request], Awaitable[Response]]


async def log_request(request: Request, call_next: CallNext) -> Response:
    """Bind a correlation id for the request and log its start and end.

    The id comes from X-Request-ID when the client sends one and is echoed
    back on the response. Logs emitted while the gate resolves a token
    carry the same id.
    """
    request_id = request.headers.get(REQUEST_ID_HEADER) or uuid4().hex
    bound = bind_request_id(request_id)
    started = time.perf_counter()
    try:
        access_logger.info(
            "request.start",
            extra={"event": "request_start", "method": request.method, "path": request.url.path},
        )
        try:
            response = await call_next(request)
        except Exception:
            access_logger.exception(
                "request.error", extra={"event": "request_error", "path": request.url.path}
            )
            raise
        response.headers[REQUEST_ID_HEADER] = request_id
        access_logger.info(
            "request.end",
            extra={
                "event": "request_end",
                "status_code": response.status_code,
                "elapsed_ms": round((time.perf_counter() - started) * 1000.0, 2),
            },
        )
        return response
    finally:
        reset_request_id(bound)


def _rejection(exc: GateError) -> JSONResponse:
    if isinstance(exc, AccessDeniedError):
        body = AccessCodeRequired()
    elif isinstance(exc, NoCredentialError):
        body = EmptyApiKey()
    else:  # pragma: no cover
        raise exc
    return JSONResponse(status_code=status.HTTP_401_UNAUTHORIZED, content=body.model_dump())


async def gate_request(request: Request, call_next: CallNext) -> Response:
    """Reject or credential a request on a gated path.

    On success only the `token` header is rewritten; the rest of the
    request reaches the route as it arrived.
    """
    if request.url.path not in GATED_PATHS:
        return await call_next(request)

    settings: Settings = request.app.state.settings
    try:
        token = await authorize(
            access_code=request.headers.get(ACCESS_CODE_HEADER),
            user_token=request.headers.get(TOKEN_HEADER),
            access_codes=settings.access_codes,
            static_key=settings.openai_api_key,
            resolver=request.app.state.resolver,
        )
    except GateError as exc:
        logger.info(
            "gate.rejected",
            extra={"event": "gate_rejected", "path": request.url.path, "code": exc.code},
        )
        return _rejection(exc)

    if token is not None:
        # Routes build their own Request from the scope, so they see this header.
        MutableHeaders(scope=request.scope)[TOKEN_HEADER] = token
    return await call_next(request)
