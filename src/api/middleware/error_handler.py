"""Error handling middleware for FastAPI

Every error response has the same JSON shape::

    {"statusCode": 500, "error": "Internal Server Error",
     "message": "...", "requestId": "..."}
"""

import traceback
from http import HTTPStatus
from typing import Any, Dict, Optional

import structlog
from fastapi import Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from ...utils.config_loader import get_settings
from .logging import REQUEST_ID_HEADER, get_request_id

logger = structlog.get_logger(__name__)


def error_body(
    request: Request,
    status_code: int,
    message: str,
    details: Optional[Any] = None,
) -> Dict[str, Any]:
    """Build the JSON body shared by all error responses

    Args:
        request: FastAPI request object
        status_code: HTTP status code
        message: Human readable message
        details: Optional extra details

    Returns:
        Error response body
    """
    body = {
        "statusCode": status_code,
        "error": HTTPStatus(status_code).phrase,
        "message": message,
        "requestId": get_request_id(request),
    }
    if details is not None:
        body["details"] = jsonable_encoder(details)
    return body


class ErrorHandlingMiddleware:
    """Turns unhandled exceptions into JSON error responses"""

    def __init__(self):
        """Initialize error handling middleware"""
        self.settings = get_settings()

        # Error type mappings
        self.error_mappings = {
            "ServerSelectionTimeoutError": status.HTTP_503_SERVICE_UNAVAILABLE,
            "ConnectionError": status.HTTP_503_SERVICE_UNAVAILABLE,
            "NotImplementedError": status.HTTP_501_NOT_IMPLEMENTED,
        }

    @property
    def include_traceback(self) -> bool:
        return self.settings.debug

    async def __call__(self, request: Request, call_next):
        """Process request through error handling middleware

        Args:
            request: FastAPI request object
            call_next: Next middleware/endpoint in chain

        Returns:
            Response from next middleware/endpoint or error response
        """
        try:
            return await call_next(request)
        except Exception as e:
            return self.handle_exception(request, e)

    def handle_exception(self, request: Request, exc: Exception) -> JSONResponse:
        """Log an unhandled exception and build its response"""
        exception_type = type(exc).__name__
        status_code = self.error_mappings.get(
            exception_type, status.HTTP_500_INTERNAL_SERVER_ERROR
        )
        formatted = "".join(
            traceback.format_exception(type(exc), exc, exc.__traceback__)
        )

        logger.error(
            "Unhandled exception occurred",
            request_id=get_request_id(request),
            method=request.method,
            path=request.url.path,
            status_code=status_code,
            error_type=exception_type,
            error_message=str(exc),
            traceback=formatted if self.include_traceback else None,
        )

        details = {"traceback": formatted} if self.include_traceback else None
        return JSONResponse(
            status_code=status_code,
            content=error_body(request, status_code, str(exc), details),
            headers={REQUEST_ID_HEADER: get_request_id(request)},
        )


# Custom exception handlers


async def http_exception_handler(
    request: Request, exc: StarletteHTTPException
) -> JSONResponse:
    """Global HTTP exception handler

    Unknown routes get a ``Route <METHOD>:<path> not found`` message.
    """
    if exc.status_code == status.HTTP_404_NOT_FOUND and exc.detail == "Not Found":
        message = f"Route {request.method}:{request.url.path} not found"
    elif isinstance(exc.detail, str):
        message = exc.detail
    else:
        message = HTTPStatus(exc.status_code).phrase

    logger.warning(
        "HTTP exception occurred",
        request_id=get_request_id(request),
        method=request.method,
        path=request.url.path,
        status_code=exc.status_code,
        error_message=message,
    )

    details = exc.detail if not isinstance(exc.detail, str) else None
    return JSONResponse(
        status_code=exc.status_code,
        content=error_body(request, exc.status_code, message, details),
        headers=getattr(exc, "headers", None),
    )


async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Global validation exception handler"""
    errors = exc.errors()
    message = "; ".join(
        f"{'.'.join(str(part) for part in error.get('loc', ()))}: {error.get('msg', '')}"
        for error in errors
    )

    logger.warning(
        "Request validation failed",
        request_id=get_request_id(request),
        method=request.method,
        path=request.url.path,
        error_count=len(errors),
    )

    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content=error_body(request, status.HTTP_400_BAD_REQUEST, message, errors),
    )


# Middleware instance
error_handling_middleware = ErrorHandlingMiddleware()
