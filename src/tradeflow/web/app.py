"""FastAPI application for the deployment engine.

Creates the FastAPI app with:
- Lifespan context manager that builds the DeploymentEngine from config
- An exception handler mapping engine errors to HTTP responses
- A request validation handler reporting malformed bodies as InvalidArgument
- The API router

Usage:
    from tradeflow.web.app import create_app

    app = create_app()
    # Run with: uvicorn.run(app, host="127.0.0.1", port=8000)
"""

from __future__ import annotations

from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from tradeflow import __version__
from tradeflow.config import format_validation_errors
from tradeflow.core.errors import (
    ConsistencyViolation,
    InvalidArgument,
    MalformedOutput,
    MissingTemplateToken,
    SchemaLoadFailure,
    TradeflowError,
)
from tradeflow.core.logging import get_logger
from tradeflow.engine.deployment import DeploymentEngine

logger = get_logger(__name__)

# Most specific first; unknown engine errors fall through to 500
ERROR_STATUS: list[tuple[type[TradeflowError], int]] = [
    (InvalidArgument, 400),
    (ConsistencyViolation, 409),
    (MissingTemplateToken, 422),
    (MalformedOutput, 422),
    (SchemaLoadFailure, 503),
]


def status_for(error: TradeflowError) -> int:
    for error_type, status in ERROR_STATUS:
        if isinstance(error, error_type):
            return status
    return 500


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Build the engine on startup unless one was injected.

    A config error is logged and leaves the engine unset, so the health
    endpoint still answers and deploy calls return 503.
    """
    from tradeflow.config import get_config
    from tradeflow.core.errors import ConfigLoadError, ConfigValidationError

    if app.state.engine is None:
        try:
            app.state.engine = DeploymentEngine(get_config())
        except (ConfigLoadError, ConfigValidationError) as e:
            logger.error("config_load_failed", error=str(e))

    if app.state.engine is not None:
        logger.info(
            "engine_ready",
            schema_store=app.state.engine.config.schemas.path,
            template_dir=app.state.engine.config.templates.path,
        )

    yield


async def handle_engine_error(request: Request, exc: TradeflowError) -> JSONResponse:
    status = status_for(exc)
    payload: dict[str, object] = {"error": type(exc).__name__, "message": str(exc)}

    if isinstance(exc, ConsistencyViolation):
        payload["classification_orphans"] = exc.classification_orphans
        payload["label_orphans"] = exc.label_orphans
        payload["duplicate_paths"] = exc.duplicate_paths
    elif isinstance(exc, MissingTemplateToken):
        payload["tokens"] = exc.tokens

    if status >= 500:
        logger.error("request_failed", path=request.url.path, error_type=type(exc).__name__)
    return JSONResponse(status_code=status, content=payload)


async def handle_request_validation_error(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Report a body that fails DeployRequest parsing as a 400 InvalidArgument."""
    message = "Invalid deployment request:\n" + format_validation_errors(exc)
    logger.warning("request_rejected", path=request.url.path, error_type="InvalidArgument")
    return JSONResponse(
        status_code=400,
        content={"error": InvalidArgument.__name__, "message": message},
    )


def create_app(engine: DeploymentEngine | None = None) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        engine: Pre-built engine (tests, embedding callers). When None the
            lifespan builds one from get_config().

    Returns:
        Configured FastAPI instance
    """
    from tradeflow.web.routes import api_router

    app = FastAPI(
        title="Tradeflow",
        description="Builds deployable email-automation configurations",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.engine = engine

    app.add_exception_handler(TradeflowError, handle_engine_error)
    app.add_exception_handler(RequestValidationError, handle_request_validation_error)
    app.include_router(api_router)

    return app
