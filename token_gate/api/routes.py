from __future__ import annotations

import httpx
from fastapi import APIRouter, HTTPException, Request, Response, status
from fastapi.responses import StreamingResponse
from starlette.background import BackgroundTask

from ..config import Settings
from ..logging_conf import get_logger
from .middleware import TOKEN_HEADER

router = APIRouter()
logger = get_logger("api")

CHAT_COMPLETIONS_PATH = "v1/chat/completions"


def _upstream_headers(request: Request) -> dict[str, str]:
    return {
        "Authorization": f"Bearer {request.headers.get(TOKEN_HEADER, '')}",
        "Content-Type": "application/json",
    }


@router.post("/api/openai", summary="Forward a request to the upstream API")
async def forward_openai(request: Request) -> Response:
    """Relay the body to the upstream path named in the `path` header."""
    path = request.headers.get("path")
    if not path:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"error_code": "missing_path", "error_message": "path header is required"},
        )
    settings: Settings = request.app.state.settings
    client: httpx.AsyncClient = request.app.state.client
    try:
        r = await client.post(
            settings.upstream_url(path),
            headers=_upstream_headers(request),
            content=await request.body(),
        )
    except httpx.HTTPError as e:
        logger.warning("upstream.error", extra={"event": "upstream_error", "path": path, "error": str(e)})
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail={"error_code": "upstream_unreachable", "error_message": str(e)},
        )
    return Response(
        content=r.content,
        status_code=r.status_code,
        media_type=r.headers.get("content-type", "application/json"),
    )


@router.post("/api/chat-stream", summary="Stream a chat completion from the upstream API")
async def chat_stream(request: Request) -> StreamingResponse:
    """Relay a streaming chat completion as it arrives.

    Upstream content-encoding is undone here, so the relayed bytes are plain.
    """
    settings: Settings = request.app.state.settings
    client: httpx.AsyncClient = request.app.state.client
    upstream = client.build_request(
        "POST",
        settings.upstream_url(CHAT_COMPLETIONS_PATH),
        headers=_upstream_headers(request),
        content=await request.body(),
    )
    try:
        r = await client.send(upstream, stream=True)
    except httpx.HTTPError as e:
        logger.warning(
            "upstream.error",
            extra={"event": "upstream_error", "path": CHAT_COMPLETIONS_PATH, "error": str(e)},
        )
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail={"error_code": "upstream_unreachable", "error_message": str(e)},
        )
    return StreamingResponse(
        r.aiter_bytes(),
        status_code=r.status_code,
        media_type=r.headers.get("content-type", "text/event-stream"),
        background=BackgroundTask(r.aclose),
    )
