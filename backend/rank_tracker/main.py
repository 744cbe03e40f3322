from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
import hmac
import logging

from fastapi import FastAPI, HTTPException, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, Response

from rank_tracker.api.response import exception_envelope
from rank_tracker.api.v1.router import build_api_router
from rank_tracker.core.config import Settings, get_settings
from rank_tracker.core.http_middleware import ObservabilityMiddleware
from rank_tracker.core.logging_config import configure_logging
from rank_tracker.core.metrics import render_metrics
from rank_tracker.db.redis_client import get_redis_client

logger = logging.getLogger("rank_tracker.api")


def _error_response(request: Request, status_code: int, message: str, code: str, details: dict | None = None) -> JSONResponse:
    payload = exception_envelope(request=request, status_code=status_code, message=message, code=code, details=details)
    return JSONResponse(status_code=status_code, content=payload)


async def _on_http_exception(request: Request, exc: HTTPException) -> JSONResponse:
    detail = exc.detail
    if isinstance(detail, dict):
        message = detail.get("message") if isinstance(detail.get("message"), str) else "Request failed"
        return _error_response(request, exc.status_code, message, f"http_{exc.status_code}", detail)
    message = detail if isinstance(detail, str) else "Request failed"
    return _error_response(request, exc.status_code, message, f"http_{exc.status_code}")


async def _on_validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
    return _error_response(request, 422, "Validation failed", "validation_error", {"errors": jsonable_encoder(exc.errors())})


async def _on_unhandled_error(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled API error", extra={"error_code": exc.__class__.__name__})
    return _error_response(request, 500, "Internal server error", "internal_server_error")


def _register_metrics_route(app: FastAPI, settings: Settings) -> None:
    token = settings.metrics_token.strip()

    @app.get("/metrics", include_in_schema=False)
    async def metrics(request: Request) -> Response:
        supplied = request.headers.get("X-Metrics-Token", "")
        if token and not hmac.compare_digest(supplied, token):
            return JSONResponse(status_code=403, content={"message": "Forbidden", "reason_code": "metrics_forbidden"})
        body, content_type = render_metrics()
        return Response(content=body, media_type=content_type)


def create_app(settings: Settings | None = None) -> FastAPI:
    settings = settings or get_settings()
    configure_logging(log_level=settings.log_level, app_env=settings.app_env)

    @asynccontextmanager
    async def lifespan(_: FastAPI) -> AsyncIterator[None]:
        if settings.app_env.lower() not in {"test", "local"}:
            # Refuse to start without Redis outside local and test runs.
            get_redis_client()
        logger.info("Rank tracker API started in %s mode", settings.app_env)
        yield

    app = FastAPI(title=settings.app_name, lifespan=lifespan)
    app.add_middleware(ObservabilityMiddleware)
    app.include_router(build_api_router(), prefix=settings.api_v1_prefix)
    app.add_exception_handler(HTTPException, _on_http_exception)
    app.add_exception_handler(RequestValidationError, _on_validation_error)
    app.add_exception_handler(Exception, _on_unhandled_error)
    if settings.metrics_enabled:
        _register_metrics_route(app, settings)
    return app


app = create_app()
