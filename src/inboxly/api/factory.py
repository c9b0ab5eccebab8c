"""FastAPI application factory."""

from fastapi import FastAPI, Request, Response

from inboxly.observability.correlation import (
    CORRELATION_ID_HEADER,
    accept_correlation_id,
    reset_correlation_id,
    set_correlation_id,
)

from .routers import public
from .routes import conversations, me


def create_app() -> FastAPI:
    """Create the inbox API app with correlation-id middleware and routes."""
    app = FastAPI(
        title="Inboxly",
        docs_url=None,
        redoc_url=None,
    )

    @app.middleware("http")
    async def correlation_id_middleware(request: Request, call_next) -> Response:
        cid = accept_correlation_id(request.headers.get(CORRELATION_ID_HEADER))
        token = set_correlation_id(cid)
        try:
            response = await call_next(request)
            response.headers[CORRELATION_ID_HEADER] = cid
            return response
        finally:
            reset_correlation_id(token)

    app.include_router(public.router)
    app.include_router(me.router)
    app.include_router(conversations.router)

    return app
