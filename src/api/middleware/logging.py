"""Request logging middleware

Logs one event when a request comes in and one when it completes, tagged
with a request ID that is echoed back in the ``X-Request-ID`` header.
"""

import time
import uuid
from typing import Any, Dict

import structlog
from fastapi import Request, Response

logger = structlog.get_logger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"


class RequestLoggingMiddleware:
    """Request logging middleware with request IDs and response timing"""

    def __init__(self):
        """Initialize request logging middleware"""
        # Probes are polled constantly, keep them out of the logs
        self.exclude_paths = {
            "/health",
            "/health/ready",
            "/health/live",
        }

    async def __call__(self, request: Request, call_next):
        """Process request through logging middleware

        Args:
            request: FastAPI request object
            call_next: Next middleware/endpoint in chain

        Returns:
            Response from next middleware/endpoint
        """
        request_id = request.headers.get(REQUEST_ID_HEADER) or str(uuid.uuid4())
        request.state.request_id = request_id

        start_time = time.perf_counter()
        request_info = self._extract_request_info(request, request_id)
        excluded = self._should_exclude_path(request.url.path)

        if not excluded:
            logger.info("incoming request", **request_info)

        try:
            response = await call_next(request)
        except Exception as e:
            logger.error(
                "request failed",
                **request_info,
                error=str(e),
                error_type=type(e).__name__,
                response_time=self._elapsed_ms(start_time),
            )
            raise

        response.headers[REQUEST_ID_HEADER] = request_id

        if not excluded:
            logger.info(
                "request completed",
                **request_info,
                **self._extract_response_info(response),
                response_time=self._elapsed_ms(start_time),
            )

        return response

    def _extract_request_info(self, request: Request, request_id: str) -> Dict[str, Any]:
        """Extract request information for logging"""
        return {
            "request_id": request_id,
            "method": request.method,
            "url": request.url.path,
            "client_ip": request.client.host if request.client else "unknown",
            "user_agent": request.headers.get("user-agent", ""),
        }

    def _extract_response_info(self, response: Response) -> Dict[str, Any]:
        return {
            "status_code": response.status_code,
            "content_type": response.headers.get("content-type", ""),
        }

    @staticmethod
    def _elapsed_ms(start_time: float) -> float:
        return round((time.perf_counter() - start_time) * 1000, 2)

    def _should_exclude_path(self, path: str) -> bool:
        """Check if path should be excluded from request logging"""
        return path.rstrip("/") in self.exclude_paths


def get_request_id(request: Request) -> str:
    """Get the request ID assigned by the middleware"""
    return getattr(request.state, "request_id", None) or str(uuid.uuid4())


# Middleware instance
request_logging_middleware = RequestLoggingMiddleware()
