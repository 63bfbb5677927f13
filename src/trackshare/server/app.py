"""FastAPI application factory for the Trackshare API."""

from __future__ import annotations

import uuid
from contextlib import AsyncExitStack, asynccontextmanager
from typing import TYPE_CHECKING

import structlog
from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from trackshare.config import AppConfig
from trackshare.server.tracks import create_tracks_router
from trackshare.server.users import create_users_router

if TYPE_CHECKING:
    from trackshare.backend.adapter import BackendAdapter
    from trackshare.backend.client import BackendClient

log = structlog.get_logger(__name__)


def create_app(
    adapter: BackendAdapter,
    config: AppConfig | None = None,
    *,
    client: BackendClient | None = None,
) -> FastAPI:
    """Build the API application around an already constructed *adapter*.

    When *client* is given its connection is opened and closed with the
    application's lifespan.
    """
    config = config or AppConfig()

    @asynccontextmanager
    async def lifespan(app: FastAPI):  # noqa: ARG001, ANN001
        async with AsyncExitStack() as stack:
            if client is not None:
                await stack.enter_async_context(client)
            log.info("app_started", backend_configured=config.is_backend_configured())
            yield
        log.info("app_stopped")

    app = FastAPI(title="trackshare", docs_url=None, redoc_url=None, lifespan=lifespan)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.server.cors_origins,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def log_requests(request: Request, call_next):  # noqa: ANN001, ANN202
        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(request_id=uuid.uuid4().hex[:12])
        response = await call_next(request)
        log.info(
            "request_finished",
            method=request.method,
            path=request.url.path,
            status=response.status_code,
        )
        return response

    # -- error shapes -----------------------------------------------------------

    @app.exception_handler(RequestValidationError)
    async def validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:  # noqa: ARG001
        return JSONResponse(
            {
                "success": False,
                "error": {"message": "Invalid request body", "issues": jsonable_encoder(exc.errors())},
            },
            status_code=400,
        )

    @app.exception_handler(StarletteHTTPException)
    async def http_error(request: Request, exc: StarletteHTTPException) -> JSONResponse:  # noqa: ARG001
        return JSONResponse(
            {"success": False, "error": {"message": exc.detail, "status": exc.status_code}},
            status_code=exc.status_code,
            headers=exc.headers,
        )

    # -- routes -----------------------------------------------------------------

    app.include_router(create_tracks_router(adapter), prefix="/tracks", tags=["tracks"])
    app.include_router(create_users_router(adapter), prefix="/users", tags=["users"])

    @app.get("/", response_class=PlainTextResponse)
    async def index() -> str:
        return "Hello Hono!"

    @app.get("/health")
    async def health() -> dict:
        return {"status": "healthy"}

    return app
