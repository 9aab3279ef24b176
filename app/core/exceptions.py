"""
Application error taxonomy.

Services raise these errors; the handlers registered in ``register_exception_handlers``
turn every one of them into a ``{"message": ...}`` JSON body at the request boundary.
"""
import logging

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import OperationalError
from starlette.exceptions import HTTPException as StarletteHTTPException

logger = logging.getLogger(__name__)


class AppError(Exception):
    """Base class for errors that map to an HTTP status."""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_message = "Internal server error"

    def __init__(self, message: str = None, status_code: int = None):
        self.message = message or self.default_message
        if status_code is not None:
            self.status_code = status_code
        super().__init__(self.message)


class ValidationError(AppError):
    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "Invalid request"


class DuplicateKeyError(AppError):
    """Unique constraint violation on a business key."""

    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "Duplicate value"

    def __init__(self, field: str, message: str = None):
        self.field = field
        super().__init__(message or f"{field} already exists")


class NotFoundError(AppError):
    status_code = status.HTTP_404_NOT_FOUND
    default_message = "Not found"


class AuthenticationError(AppError):
    status_code = status.HTTP_401_UNAUTHORIZED
    default_message = "Authentication required"


class AuthorizationError(AppError):
    status_code = status.HTTP_403_FORBIDDEN
    default_message = "Insufficient permissions"


class SelfModificationError(AuthorizationError):
    """An administrator tried to deactivate or delete their own account."""

    status_code = status.HTTP_400_BAD_REQUEST


class InvoiceNumberFormatError(AppError):
    """The stored invoice numbers cannot be continued."""

    default_message = "Cannot derive the next invoice number"


class InvoiceNumberConflictError(AppError):
    """Invoice number allocation kept colliding; the client may retry."""

    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    default_message = "Could not allocate an invoice number, please retry"


class RenderError(AppError):
    default_message = "PDF renderer unavailable"


class DatabaseUnavailableError(AppError):
    default_message = "Database connection error"


def _format_validation_errors(exc: RequestValidationError) -> str:
    parts = []
    for error in exc.errors():
        location = ".".join(str(part) for part in error.get("loc", ()) if part != "body")
        message = error.get("msg", "Invalid value")
        parts.append(f"{location}: {message}" if location else message)
    return ", ".join(parts) or "Invalid request"


def register_exception_handlers(app: FastAPI) -> None:
    """Attach the JSON ``{message}`` handlers to the application."""

    @app.exception_handler(AppError)
    async def app_error_handler(request: Request, exc: AppError):
        if exc.status_code >= 500:
            logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
        return JSONResponse(status_code=exc.status_code, content={"message": exc.message})

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"message": _format_validation_errors(exc)},
        )

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        return JSONResponse(
            status_code=exc.status_code,
            content={"message": str(exc.detail)},
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(OperationalError)
    async def database_error_handler(request: Request, exc: OperationalError):
        logger.error(f"Database unavailable during {request.method} {request.url.path}: {exc}")
        return JSONResponse(
            status_code=DatabaseUnavailableError.status_code,
            content={"message": DatabaseUnavailableError.default_message},
        )

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception):
        logger.exception(f"Unhandled error on {request.method} {request.url.path}")
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"message": "Internal server error"},
        )
