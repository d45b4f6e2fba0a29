import logging
from typing import Any, Dict, Optional

from fastapi import Request, status
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException

from sitecraft.platform.response import api_response


class SiteCraftError(Exception):
    """Base class for every error raised by the analysis pipeline."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str, context: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.context = context or {}


# ── Caller-facing (Intake) ──────────────────────

class ValidationError(SiteCraftError):
    status_code = status.HTTP_400_BAD_REQUEST


class QuotaExceededError(SiteCraftError):
    status_code = status.HTTP_429_TOO_MANY_REQUESTS


class AnalysisNotFoundError(SiteCraftError):
    status_code = status.HTTP_404_NOT_FOUND


# ── Pipeline ────────────────────────────────────

class FetchFailure(SiteCraftError):
    """Asset capture failed; fatal to the whole analysis."""


class AnalyzerFailure(SiteCraftError):
    """A single module failed; siblings are unaffected."""


class AnalyzerTimeout(AnalyzerFailure):
    pass


class PersistenceError(SiteCraftError):
    """Status store could not be reached or the write failed."""


class QueueError(SiteCraftError):
    """Broker rejected or could not accept a task."""


class AssetNotFound(SiteCraftError):
    status_code = status.HTTP_404_NOT_FOUND


class TaskPayloadError(SiteCraftError):
    """A queue message did not match any known task shape."""


def add_exception_handlers(app):
    @app.exception_handler(SiteCraftError)
    async def sitecraft_exception_handler(request: Request, exc: SiteCraftError):
        if exc.status_code >= 500:
            logging.exception(f"Pipeline error: {exc}")
        return api_response(
            message=exc.message,
            status_code=exc.status_code,
            data=exc.context or None,
        )

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        return api_response(message=str(exc.detail) or "Error", status_code=exc.status_code)

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        return api_response(
            message="Validation failed",
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            data={"errors": exc.errors()},
        )

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception):
        logging.exception(f"Unhandled exception: {exc}")
        return api_response(
            message="Internal server error",
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        )
