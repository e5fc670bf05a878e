"""FastAPI application entry point."""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import UTC, datetime

import uvicorn
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from starlette.exceptions import HTTPException as StarletteHTTPException

from vis_render.config import DeliveryMode, Settings, get_settings
from vis_render.engine import MatplotlibRenderEngine, RenderEnginePort
from vis_render.errors import (
    PayloadTooLargeError,
    RenderServiceError,
    failure_response,
    http_exception_handler,
    render_service_error_handler,
    unhandled_error_handler,
)
from vis_render.lifecycle import LifecycleServer, ServiceLifecycle, process_uptime
from vis_render.observability import configure_logging, log_request_event, new_request_id
from vis_render.schemas import HealthResponse
from vis_render.services import RenderService, build_delivery
from vis_render.store import FileArtifactStore

logger = logging.getLogger(__name__)

BODY_TOO_LARGE_MESSAGE = "Request body too large"


def _utc_timestamp() -> str:
    return datetime.now(UTC).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def _declared_length(request: Request) -> int | None:
    raw = request.headers.get("content-length")
    if raw is None:
        return None
    try:
        return int(raw)
    except ValueError:
        return None


async def read_limited_body(request: Request, limit: int) -> bytes:
    """Read the request body, stopping once more than ``limit`` bytes arrive."""
    received = bytearray()
    async for chunk in request.stream():
        received.extend(chunk)
        if len(received) > limit:
            raise PayloadTooLargeError(BODY_TOO_LARGE_MESSAGE)
    return bytes(received)


def log_startup_banner(settings: Settings) -> None:
    public_host = "localhost" if settings.host == "0.0.0.0" else settings.host
    logger.info("Chart render server is running on http://%s:%s", settings.host, settings.port)
    logger.info("   - Image Mode: %s", settings.image_mode)
    logger.info("   - Health Check: http://%s:%s/health", public_host, settings.port)
    logger.info("   - Render Endpoint: http://%s:%s/render", public_host, settings.port)


def create_app(
    settings: Settings | None = None,
    *,
    engine: RenderEnginePort | None = None,
    store: FileArtifactStore | None = None,
    lifecycle: ServiceLifecycle | None = None,
) -> FastAPI:
    """Build the service app around one immutable settings object."""
    settings = settings or get_settings()
    engine = engine or MatplotlibRenderEngine(
        width=settings.chart_width,
        height=settings.chart_height,
        dpi=settings.chart_dpi,
    )
    lifecycle = lifecycle or ServiceLifecycle(on_listening=lambda: log_startup_banner(settings))
    if settings.delivery_mode is DeliveryMode.STORED:
        store = store or FileArtifactStore.from_settings(settings)
    else:
        store = None
    render_service = RenderService(
        engine=engine,
        delivery=build_delivery(settings, store),
        max_concurrent_renders=settings.max_concurrent_renders,
    )

    @asynccontextmanager
    async def lifespan(_: FastAPI) -> AsyncIterator[None]:
        if store is not None:
            store.ensure_directory()
        lifecycle.app_ready()
        yield
        await lifecycle.drain()

    app = FastAPI(
        title="Chart Render Server",
        description="Renders GPT-Vis style chart descriptions to PNG images",
        version="0.1.0",
        lifespan=lifespan,
        docs_url=None,
        redoc_url=None,
        openapi_url=None,
    )

    @app.middleware("http")
    async def body_limit_middleware(request: Request, call_next):
        """Reject bodies whose declared size exceeds the configured limit."""
        declared = _declared_length(request)
        if declared is not None and declared > settings.body_limit_bytes:
            return failure_response(413, BODY_TOO_LARGE_MESSAGE)
        return await call_next(request)

    @app.middleware("http")
    async def request_context_middleware(request: Request, call_next):
        """Attach a request id, track in-flight work and log request bounds."""
        request.state.request_id = request.headers.get("X-Request-Id") or new_request_id()
        lifecycle.tracker.enter()
        try:
            log_request_event(
                logger,
                level=logging.DEBUG,
                message="Request started.",
                request=request,
                component="api",
                operation="request_started",
                method=request.method,
            )
            response = await call_next(request)
            log_request_event(
                logger,
                level=logging.DEBUG,
                message="Request completed.",
                request=request,
                component="api",
                operation="request_completed",
                status_code=response.status_code,
                method=request.method,
            )
            return response
        finally:
            lifecycle.tracker.exit()

    @app.middleware("http")
    async def unhandled_error_middleware(request: Request, call_next):
        """Keep the failure envelope for anything that escapes a handler."""
        try:
            return await call_next(request)
        except Exception as exc:
            return await unhandled_error_handler(request, exc)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_allow_origins,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(RenderServiceError, render_service_error_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)

    @app.get("/health")
    async def health() -> dict[str, object]:
        """Liveness probe."""
        return HealthResponse(status="ok", timestamp=_utc_timestamp(), uptime=process_uptime()).model_dump()

    @app.post("/render")
    async def render(request: Request) -> JSONResponse:
        """Render a chart description to an inline data URI or a stored link."""
        body = await read_limited_body(request, settings.body_limit_bytes)
        outcome = await render_service.handle(body, request_id=request.state.request_id)
        return JSONResponse(status_code=outcome.status_code, content=outcome.response.to_wire())

    if store is not None:
        app.mount(
            settings.url_prefix or "/",
            StaticFiles(directory=store.directory, check_dir=False),
            name="images",
        )

    return app


def run_server(settings: Settings | None = None) -> int:
    """Serve until a termination signal; return the process exit status."""
    settings = settings or get_settings()
    configure_logging(settings.log_level)
    lifecycle = ServiceLifecycle(on_listening=lambda: log_startup_banner(settings))
    try:
        app = create_app(settings, lifecycle=lifecycle)
    except Exception:
        logger.exception("Failed to start server")
        lifecycle.mark_failed("startup failed")
        return 1

    config = uvicorn.Config(
        app,
        host=settings.host,
        port=settings.port,
        lifespan="on",
        log_config=None,
        timeout_graceful_shutdown=None,
    )
    server = LifecycleServer(config, lifecycle=lifecycle)
    try:
        server.run()
    except SystemExit:
        # uvicorn exits the process when it cannot bind.
        logger.error("Failed to start server: could not bind %s:%s", settings.host, settings.port)
        lifecycle.mark_failed("bind failed")
        return 1
    if not server.started:
        logger.error("Failed to start server")
        lifecycle.mark_failed("startup failed")
        return 1
    logger.info("Server closed")
    return 0


app = create_app()


if __name__ == "__main__":
    raise SystemExit(run_server())
