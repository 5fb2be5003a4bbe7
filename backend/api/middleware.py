"""
API middleware stack.

- Request ID injection (X-Request-ID header)
- Structured request/response logging
- Domain error, validation error and global exception handlers
- CORS configuration
- In-memory rate limiting
"""
from __future__ import annotations

import time
import uuid

from fastapi import FastAPI, Request, Response
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.orm.exc import StaleDataError
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint

from shared.config import get_settings
from shared.errors import Conflict, DomainError
from shared.utils.logging import bind_request, get_logger, unbind_request

logger = get_logger(__name__)

RATE_LIMIT_WINDOW_S = 60
UNLOGGED_PATHS = ("/health", "/healthz", "/metrics", "/ready")


class RequestIDMiddleware(BaseHTTPMiddleware):
    """Injects a unique X-Request-ID header into every request/response."""

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        request_id = request.headers.get("x-request-id") or uuid.uuid4().hex[:16]
        request.state.request_id = request_id
        bind_request(request_id)
        try:
            response = await call_next(request)
        finally:
            unbind_request()
        response.headers["X-Request-ID"] = request_id
        return response


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Logs structured request/response information."""

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        start = time.monotonic()
        request_id = getattr(request.state, "request_id", "unknown")

        path = request.url.path
        if path in UNLOGGED_PATHS:
            return await call_next(request)

        try:
            response = await call_next(request)
            duration_ms = round((time.monotonic() - start) * 1000, 2)

            logger.info(
                "http_request",
                method=request.method,
                path=path,
                status=response.status_code,
                duration_ms=duration_ms,
                request_id=request_id,
                client=request.client.host if request.client else "unknown",
            )

            return response

        except Exception as exc:
            duration_ms = round((time.monotonic() - start) * 1000, 2)
            logger.error(
                "http_request_error",
                method=request.method,
                path=path,
                duration_ms=duration_ms,
                request_id=request_id,
                error=str(exc),
                exc_info=True,
            )
            raise


def setup_exception_handlers(app: FastAPI) -> None:
    """Register domain and global exception handlers."""

    @app.exception_handler(DomainError)
    async def domain_error_handler(request: Request, exc: DomainError) -> JSONResponse:
        if exc.status_code >= 403:
            logger.info(
                "request_rejected",
                path=request.url.path,
                error=exc.code,
                message=exc.message,
                request_id=getattr(request.state, "request_id", "unknown"),
            )
        return JSONResponse(status_code=exc.status_code, content=jsonable_encoder(exc.to_dict()))

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        errors = [
            {"field": ".".join(str(p) for p in err.get("loc", ())[1:]), "message": err.get("msg", "")}
            for err in exc.errors()
        ]
        return JSONResponse(
            status_code=400,
            content={"error": "validation_error", "message": "Request validation failed", "errors": errors},
        )

    @app.exception_handler(StaleDataError)
    async def stale_data_handler(request: Request, exc: StaleDataError) -> JSONResponse:
        err = Conflict("The match was modified by another request; reload and retry")
        logger.warning(
            "optimistic_lock_conflict",
            path=request.url.path,
            request_id=getattr(request.state, "request_id", "unknown"),
        )
        return JSONResponse(status_code=err.status_code, content=err.to_dict())

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        request_id = getattr(request.state, "request_id", "unknown")
        logger.error(
            "unhandled_exception",
            path=request.url.path,
            error=str(exc),
            request_id=request_id,
            exc_info=True,
        )
        return JSONResponse(
            status_code=500,
            content={
                "error": "internal_server_error",
                "message": "An unexpected error occurred",
                "request_id": request_id,
            },
        )

    @app.exception_handler(404)
    async def not_found_handler(request: Request, exc: Exception) -> JSONResponse:
        detail = getattr(exc, "detail", None)
        return JSONResponse(
            status_code=404,
            content={
                "error": "not_found",
                "message": detail if isinstance(detail, str) and detail != "Not Found" else "Resource not found",
            },
        )


class RateLimitMiddleware(BaseHTTPMiddleware):
    """Simple in-memory sliding-window rate limiter per client IP."""

    def __init__(self, app: FastAPI, rpm: int = 120) -> None:
        super().__init__(app)
        self._rpm = rpm
        self._buckets: dict[str, list[float]] = {}

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        path = request.url.path
        if path in UNLOGGED_PATHS or self._rpm <= 0:
            return await call_next(request)

        client_ip = request.client.host if request.client else "unknown"
        now = time.monotonic()
        window = self._buckets.setdefault(client_ip, [])

        window[:] = [t for t in window if now - t < RATE_LIMIT_WINDOW_S]

        if len(window) >= self._rpm:
            return JSONResponse(
                status_code=429,
                content={"error": "rate_limit_exceeded", "message": f"Max {self._rpm} requests per minute"},
                headers={"Retry-After": str(RATE_LIMIT_WINDOW_S)},
            )

        window.append(now)

        response = await call_next(request)
        response.headers["X-RateLimit-Limit"] = str(self._rpm)
        response.headers["X-RateLimit-Remaining"] = str(max(0, self._rpm - len(window)))
        return response


def setup_cors(app: FastAPI) -> None:
    """Configure CORS middleware."""
    settings = get_settings()
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=False,
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=["*"],
        expose_headers=["X-Request-ID", "X-RateLimit-Limit", "X-RateLimit-Remaining"],
    )


def setup_middleware(app: FastAPI) -> None:
    """Apply all middleware to the FastAPI app in the correct order."""
    settings = get_settings()
    # 1. CORS (must be outermost for preflight)
    setup_cors(app)
    # 2. Rate limiting
    app.add_middleware(RateLimitMiddleware, rpm=settings.rate_limit_rpm)
    # 3. Request ID
    app.add_middleware(RequestIDMiddleware)
    # 4. Request logging
    app.add_middleware(RequestLoggingMiddleware)
    # 5. Exception handlers
    setup_exception_handlers(app)
