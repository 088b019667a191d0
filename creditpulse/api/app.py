"""FastAPI application factory.

Every response carries the request's correlation id in the
``X-Correlation-Id`` header (generated when the client sends none), and every
JSON body, errors included, echoes it as ``correlation_id``. Error bodies are
``{"error": <code>, "correlation_id": ...}``; server-side failures never
include detail.
"""

from __future__ import annotations

import logging
import uuid
from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response

from creditpulse import __version__
from creditpulse.api.deps import database_path
from creditpulse.api.routes import gateway_router, runs_router, scores_router
from creditpulse.config.schema import CreditPulseConfig
from creditpulse.errors import CreditPulseError
from creditpulse.storage.database import MEMORY, Database
from creditpulse.storage.migrations import ensure_schema
from creditpulse.tokens.broker import TokenBroker
from creditpulse.tokens.checker import TokenChecker

logger = logging.getLogger(__name__)

ALLOWED_METHODS = ["GET", "POST", "OPTIONS"]
PREFLIGHT_MAX_AGE = 86400


def _cors_headers(config: CreditPulseConfig) -> dict[str, str]:
    return {
        "Access-Control-Allow-Origin": config.api.allowed_origin,
        "Access-Control-Allow-Headers": (
            f"Content-Type, Authorization, {config.api.correlation_header}"
        ),
        "Access-Control-Allow-Methods": ", ".join(ALLOWED_METHODS),
        "Access-Control-Max-Age": str(PREFLIGHT_MAX_AGE),
        "Vary": "Origin",
    }


def _error_response(
    request: Request, status_code: int, payload: dict[str, Any]
) -> JSONResponse:
    correlation_id = getattr(request.state, "correlation_id", None)
    return JSONResponse(
        status_code=status_code,
        content={**payload, "correlation_id": correlation_id},
    )


# ---------------------------------------------------------------------------
# Lifespan: schema check and nonce sweeper
# ---------------------------------------------------------------------------

@asynccontextmanager
async def lifespan(app: FastAPI):
    config: CreditPulseConfig = app.state.config
    checker: TokenChecker = app.state.checker

    with Database(database_path(config)) as db:
        version = ensure_schema(db)
    logger.info("API starting (schema v%d, demo_mode=%s)",
                version, config.checker.demo_mode_enabled)
    if config.checker.demo_mode_enabled:
        logger.warning("Demo token mode is ENABLED; unsigned requests will be admitted")

    checker.nonces.start(config.checker.sweep_interval_seconds)
    yield
    checker.nonces.stop()
    logger.info("API stopped")


# ---------------------------------------------------------------------------
# Factory
# ---------------------------------------------------------------------------

def create_app(
    config: CreditPulseConfig | None = None,
    *,
    broker: TokenBroker | None = None,
    checker: TokenChecker | None = None,
) -> FastAPI:
    config = config or CreditPulseConfig()
    if config.database.path == MEMORY:
        # Requests each open their own connection.
        raise ValueError("database.path must be a file to serve the API, not :memory:")

    app = FastAPI(
        title="creditpulse",
        description="Explainable credit scoring with token-gated access.",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.config = config
    app.state.broker = broker or TokenBroker(config.broker)
    app.state.checker = checker or TokenChecker(config.checker, config.broker)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=[config.api.allowed_origin],
        allow_credentials=False,
        allow_methods=ALLOWED_METHODS,
        allow_headers=["Content-Type", "Authorization", config.api.correlation_header],
        expose_headers=[config.api.correlation_header],
    )

    cors_headers = _cors_headers(config)
    header = config.api.correlation_header

    @app.middleware("http")
    async def correlation_and_preflight(request: Request, call_next):
        correlation_id = request.headers.get(header) or str(uuid.uuid4())
        request.state.correlation_id = correlation_id

        if request.method == "OPTIONS":
            response = Response(status_code=204, headers=cors_headers)
        else:
            try:
                response = await call_next(request)
            except Exception:
                logger.exception(
                    "Unhandled error on %s %s (correlation_id=%s)",
                    request.method, request.url.path, correlation_id,
                )
                response = JSONResponse(
                    status_code=500,
                    content={"error": "internal_error", "correlation_id": correlation_id},
                    headers={"Access-Control-Allow-Origin": config.api.allowed_origin},
                )
        response.headers[header] = correlation_id
        return response

    @app.exception_handler(CreditPulseError)
    async def handle_creditpulse_error(request: Request, exc: CreditPulseError):
        if exc.http_status >= 500:
            logger.error(
                "%s on %s (correlation_id=%s): %s",
                exc.code, request.url.path, request.state.correlation_id, exc,
            )
        else:
            logger.info("%s on %s: %s", exc.code, request.url.path, exc)
        return _error_response(request, exc.http_status, exc.to_payload())

    @app.exception_handler(RequestValidationError)
    async def handle_request_validation(request: Request, exc: RequestValidationError):
        errors = exc.errors()
        field = None
        if errors:
            loc = [str(p) for p in errors[0].get("loc", ()) if p not in ("body", "query")]
            field = ".".join(loc) or None
        payload: dict[str, Any] = {"error": "validation_error"}
        if field:
            payload["field"] = field
        return _error_response(request, 400, payload)

    app.include_router(scores_router)
    app.include_router(runs_router)
    app.include_router(gateway_router)
    return app
