"""API middleware: CORS, request logging, and error handling.

Starlette middleware is a stack, last added runs first.  ``main.py`` adds
:class:`ErrorHandlingMiddleware` before :class:`RequestLoggingMiddleware`,
so the request flow is::

    Client -> RequestLogging -> ErrorHandling -> route handler

and the logging middleware sees the final status code even when a domain
error was turned into a JSON error body.
"""

from __future__ import annotations

import time

import structlog
from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint

from plansearch.api.schemas import ErrorResponse
from plansearch.utils.errors import (
    DocumentNotFoundError,
    DocumentValidationError,
    InvalidStatusTransition,
    PlanSearchError,
    TransientExternalError,
)
from plansearch.utils.logging import get_logger

_logger: structlog.BoundLogger = get_logger(__name__)

# Most specific first.
_STATUS_BY_ERROR: tuple[tuple[type[PlanSearchError], int], ...] = (
    (DocumentValidationError, 400),
    (DocumentNotFoundError, 404),
    (InvalidStatusTransition, 409),
    (TransientExternalError, 502),
)


def status_for(exc: PlanSearchError) -> int:
    """HTTP status code for a domain error."""
    for error_type, status_code in _STATUS_BY_ERROR:
        if isinstance(exc, error_type):
            return status_code
    return 500


# ---------------------------------------------------------------------------
# CORS
# ---------------------------------------------------------------------------


def configure_cors(app: FastAPI, *, allowed_origins: list[str] | None = None) -> None:
    """Add CORS middleware to the FastAPI application.

    Parameters
    ----------
    app:
        The FastAPI application instance.
    allowed_origins:
        Explicit list of allowed origins.  Defaults to ``["*"]`` for
        development; pass the deployed origins in production.
    """
    origins = allowed_origins or ["*"]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )


# ---------------------------------------------------------------------------
# Request Logging
# ---------------------------------------------------------------------------


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Log every HTTP request with method, path, status code, and duration."""

    async def dispatch(
        self,
        request: Request,
        call_next: RequestResponseEndpoint,
    ) -> Response:
        start = time.perf_counter()
        response: Response | None = None

        try:
            response = await call_next(request)
            return response
        finally:
            duration_ms = round((time.perf_counter() - start) * 1000, 2)
            status_code = response.status_code if response else 500
            _logger.info(
                "http_request",
                method=request.method,
                path=str(request.url.path),
                status=status_code,
                duration_ms=duration_ms,
            )


# ---------------------------------------------------------------------------
# Error Handling
# ---------------------------------------------------------------------------


class ErrorHandlingMiddleware(BaseHTTPMiddleware):
    """Turn ``PlanSearchError`` subclasses into JSON :class:`ErrorResponse` bodies.

    Validation errors map to 400, unknown documents to 404, refused status
    transitions to 409, external provider failures to 502 and everything
    else to 500.  Provider names and tracebacks stay in the server log.
    """

    async def dispatch(
        self,
        request: Request,
        call_next: RequestResponseEndpoint,
    ) -> Response:
        try:
            return await call_next(request)
        except PlanSearchError as exc:
            status_code = status_for(exc)
            log = _logger.warning if status_code < 500 else _logger.error
            log(
                "application_error",
                error_type=type(exc).__name__,
                message=exc.message,
                provider=exc.provider_name,
                path=str(request.url.path),
                status=status_code,
            )
            body = ErrorResponse(
                error=type(exc).__name__,
                detail=exc.message,
            )
            return JSONResponse(
                status_code=status_code,
                content=body.model_dump(),
            )
