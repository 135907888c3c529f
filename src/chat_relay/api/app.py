"""FastAPI application factory and configuration.

Main application entry point with lifespan management, middleware,
exception handlers and router registration.
"""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from datetime import UTC, datetime

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from chat_relay import __version__
from chat_relay.api.chat import router as chat_router
from chat_relay.models.schemas import ErrorResponse, HealthResponse
from chat_relay.relay.config import RelayConfig, get_relay_config
from chat_relay.relay.engine import RelayEngine
from chat_relay.relay.errors import RelayError, UpstreamError
from chat_relay.relay.upstream import UpstreamClient

logger = logging.getLogger(__name__)


def log_environment_check(config: RelayConfig) -> None:
    """Log which parts of the configuration are present."""
    logger.info("Environment check:")
    logger.info(f"- AI_GATEWAY_API_KEY: {'set' if config.has_api_key else 'MISSING'}")
    logger.info(f"- AI_MODEL: {config.default_model}")
    logger.info(f"- Upstream: {config.base_url}")
    logger.info(f"- Stream protocol: {config.stream_protocol}")


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None]:
    """Manage application startup and shutdown lifecycle.

    Args:
        app: The FastAPI application instance.

    Yields:
        Control to the application while it runs.
    """
    config: RelayConfig = app.state.config
    logger.info("Starting Chat Relay API...")
    log_environment_check(config)
    if config.strict_startup:
        config.require_api_key()
    yield
    logger.info("Shutting down Chat Relay API...")
    await app.state.relay_engine.upstream_client.aclose()


async def relay_error_handler(request: Request, exc: RelayError) -> JSONResponse:
    """Render relay errors raised before streaming as structured responses."""
    body = ErrorResponse(error=exc.code, detail=exc.detail)
    if isinstance(exc, UpstreamError):
        body.upstream_status = exc.upstream_status
    return JSONResponse(
        status_code=exc.status_code,
        content=body.model_dump(exclude_none=True),
    )


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception(f"Chat API error: {exc}")
    return JSONResponse(
        status_code=500,
        content=ErrorResponse(error="internal_error", detail=str(exc) or "Unknown error").model_dump(
            exclude_none=True
        ),
    )


def create_app(
    config: RelayConfig | None = None,
    upstream_client: UpstreamClient | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        config: Relay configuration. Loaded from environment if not provided.
        upstream_client: Upstream client. Built from ``config`` if not provided.

    Returns:
        Configured FastAPI application instance.
    """
    config = config or get_relay_config()
    upstream_client = upstream_client or UpstreamClient(config)

    application = FastAPI(
        title="Chat Relay API",
        description=(
            "Streaming completion relay for browser chat clients. Normalizes chat "
            "requests, forwards them to an OpenAI-compatible provider and streams "
            "the incremental output back in order."
        ),
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )
    application.state.config = config
    application.state.relay_engine = RelayEngine(config, upstream_client)

    application.add_middleware(
        CORSMiddleware,
        allow_origins=list(config.cors_origins),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["X-Request-ID"],
    )

    application.add_exception_handler(RelayError, relay_error_handler)
    application.add_exception_handler(Exception, unhandled_error_handler)

    application.include_router(chat_router)

    @application.get("/api/health", response_model=HealthResponse)
    async def health_check() -> HealthResponse:
        """Report liveness with the current server time."""
        return HealthResponse(status="ok", timestamp=datetime.now(UTC))

    return application


app = create_app()
