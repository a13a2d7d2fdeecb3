"""
Error taxonomy shared by the storage layer, the pipelines and the HTTP layer.

Every error carries a stable machine-readable ``code`` and the HTTP status the
API reports it with. ``register_exception_handlers`` renders them as

    {"success": false, "error": {"code": "...", "message": "..."}}
"""

import logging
import traceback

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

logger = logging.getLogger(__name__)


class AppError(Exception):
    """Base class for operational errors raised by the service."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    code: str = "INTERNAL_ERROR"

    def __init__(self, message: str, status_code: int = None, code: str = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        if code is not None:
            self.code = code


class ValidationError(AppError):
    status_code = status.HTTP_400_BAD_REQUEST
    code = "VALIDATION_ERROR"


class NotFoundError(AppError):
    status_code = status.HTTP_404_NOT_FOUND
    code = "NOT_FOUND"


class ConflictError(AppError):
    status_code = status.HTTP_409_CONFLICT
    code = "CONFLICT"


class InternalError(AppError):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    code = "INTERNAL_ERROR"


class ProcessingError(AppError):
    """The PDF could not be read or a page could not be rendered."""

    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY
    code = "PROCESSING_ERROR"


class UploadError(AppError):
    status_code = status.HTTP_400_BAD_REQUEST
    code = "UPLOAD_ERROR"


class LengthRequiredError(AppError):
    status_code = status.HTTP_411_LENGTH_REQUIRED
    code = "LENGTH_REQUIRED"


class UnauthorizedError(AppError):
    status_code = status.HTTP_401_UNAUTHORIZED
    code = "UNAUTHORIZED"


def _request_context(request: Request) -> dict:
    return {
        "id": getattr(request.state, "request_id", None),
        "method": request.method,
        "url": str(request.url),
    }


def _error_body(code: str, message: str, extra: dict = None) -> dict:
    error = {"code": code, "message": message}
    if extra:
        error.update(extra)
    return {"success": False, "error": error}


def register_exception_handlers(app: FastAPI, development: bool) -> None:
    """Install the handlers that turn exceptions into the error envelope."""

    @app.exception_handler(AppError)
    async def handle_app_error(request: Request, exc: AppError):
        logger.warning(f"Handled operational error {exc.code}: {exc.message} ({_request_context(request)})")
        extra = None
        if development:
            extra = {"stack": "".join(traceback.format_exception(exc))}
        return JSONResponse(
            status_code=exc.status_code,
            content=_error_body(exc.code, exc.message, extra),
        )

    @app.exception_handler(RequestValidationError)
    async def handle_request_validation(request: Request, exc: RequestValidationError):
        first = exc.errors()[0] if exc.errors() else {}
        location = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
        message = first.get("msg", "Invalid request")
        if location:
            message = f"{location}: {message}"
        logger.warning(f"Request validation error: {message} ({_request_context(request)})")
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content=_error_body("VALIDATION_ERROR", message),
        )

    @app.exception_handler(StarletteHTTPException)
    async def handle_http_exception(request: Request, exc: StarletteHTTPException):
        if exc.status_code == status.HTTP_404_NOT_FOUND:
            code = "NOT_FOUND"
            message = f"Route {request.method} {request.url.path} not found"
        else:
            code = "HTTP_ERROR"
            message = str(exc.detail)
        return JSONResponse(
            status_code=exc.status_code,
            content=_error_body(code, message),
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(Exception)
    async def handle_unexpected(request: Request, exc: Exception):
        logger.error(f"❌ Unexpected error ({_request_context(request)})", exc_info=exc)
        extra = None
        if development:
            extra = {
                "originalMessage": str(exc),
                "stack": "".join(traceback.format_exception(exc)),
            }
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content=_error_body("INTERNAL_ERROR", "An internal server error occurred", extra),
        )
