"""FastAPI app factory: request logging, credential gate, health and proxy routes."""
from __future__ import annotations

import os

import httpx
from fastapi import FastAPI
from fastapi.responses import JSONResponse

from .api import gate_request, log_request
from .api import router as api_router
from .config import Settings, get_settings
from .logging_conf import get_logger, setup_logging
from .service.resolver import TokenResolver, build_resolver

logger = get_logger("app")


def create_app(
    settings: Settings | None = None,
    *,
    client: httpx.AsyncClient | None = None,
    resolver: TokenResolver | None = None,
) -> FastAPI:
    """Build the app around one shared httpx client and one resolver.

    An injected client stays open on shutdown; one created here is closed.
    """
    settings = settings or get_settings()
    setup_logging(settings.log_level)
    owns_client = client is None
    client = client or httpx.AsyncClient()
    resolver = resolver or build_resolver(settings, client)

    app = FastAPI(title="Token Gate", version=os.getenv("APP_VERSION", "0.1.0"))
    app.state.settings = settings
    app.state.client = client
    app.state.resolver = resolver

    @app.on_event("startup")
    async def _on_startup() -> None:
        logger.info(
            "startup",
            extra={
                "event": "startup",
                "policy": settings.policy.value,
                "static_key": bool(settings.openai_api_key),
                "access_codes": len(settings.access_codes),
            },
        )

    @app.on_event("shutdown")
    async def _on_shutdown() -> None:
        await resolver.aclose()
        if owns_client:
            await client.aclose()
        logger.info("shutdown", extra={"event": "shutdown"})

    # Last registered runs outermost: the request id is bound before the gate runs.
    app.middleware("http")(gate_request)
    app.middleware("http")(log_request)

    @app.get("/health", summary="Liveness/readiness check")
    async def health() -> JSONResponse:
        return JSONResponse(content={"ok": True})

    app.include_router(api_router)
    return app


# ASGI entrypoint for uvicorn: `uvicorn token_gate.main:app --port 8000`
app = create_app()
