"""
Error taxonomy for the audit log engine and its HTTP mapping.

- InvalidFilter: caller input that failed validation (400, names the field)
- QueryFailed / ExportFailed: the store could not answer; the client only ever
  sees the generic message, the driver error is logged server side (503)
"""

import logging
import traceback

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class AuditError(Exception):
    status_code = 500
    message = "internal error"

    def __init__(self, message: str | None = None):
        super().__init__(message or self.message)
        self.message = message or self.message


class InvalidFilter(AuditError, ValueError):
    status_code = 400

    def __init__(self, field: str, message: str):
        super().__init__(message)
        self.field = field


class QueryFailed(AuditError):
    status_code = 503
    message = "could not complete query"


class ExportFailed(AuditError):
    status_code = 503
    message = "could not complete export"


def register_exception_handlers(app: FastAPI) -> None:
    """Register the audit error handlers plus a generic catch-all."""

    @app.exception_handler(InvalidFilter)
    async def invalid_filter_handler(request: Request, exc: InvalidFilter):
        return JSONResponse(
            status_code=exc.status_code,
            content={"detail": exc.message, "field": exc.field},
        )

    @app.exception_handler(AuditError)
    async def audit_error_handler(request: Request, exc: AuditError):
        return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        logger.error(
            "Unhandled exception on %s %s:\n%s",
            request.method,
            request.url.path,
            traceback.format_exc(),
        )
        return JSONResponse(
            status_code=500,
            content={
                "detail": "Internal Server Error",
                "message": "An unexpected error occurred. Please try again later.",
            },
        )
