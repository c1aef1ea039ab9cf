"""FastAPI middleware for request/response logging and correlation."""

import time
import uuid
from typing import Callable

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp

from subscription_manager.logging_config import bind_context, clear_context, get_logger

logger = get_logger(__name__)

# Path segment -> context key for the id that follows it
PATH_CONTEXT_KEYS = {
    "subscriptions": "subscription_id",
    "users": "user_id",
    "plan": "plan_id",
}
# Action segments that sit between the collection and the id (or stand alone)
ACTION_SEGMENTS = {"cancel", "upgrade", "downgrade", "sync"}


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Logs each request with a correlation id and its duration.

    Features:
    - Generates unique request_id for each request
    - Logs request method, path, client IP
    - Logs response status code and duration
    - Binds request_id to all logs within request context
    """

    def __init__(self, app: ASGIApp, include_request_details: bool = True):
        super().__init__(app)
        self.include_request_details = include_request_details

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = request.headers.get("x-request-id") or str(uuid.uuid4())
        bind_context(request_id=request_id)

        if self.include_request_details:
            logger.info(
                "request_started",
                method=request.method,
                path=request.url.path,
                query_params=str(request.query_params) if request.query_params else None,
                client_host=request.client.host if request.client else "unknown",
                user_agent=request.headers.get("user-agent"),
            )
        else:
            logger.info("request_started", method=request.method, path=request.url.path)

        start_time = time.time()

        try:
            response = await call_next(request)

            duration_ms = (time.time() - start_time) * 1000
            logger.info(
                "request_completed",
                method=request.method,
                path=request.url.path,
                status_code=response.status_code,
                duration_ms=round(duration_ms, 2),
            )
            response.headers["X-Request-ID"] = request_id
            return response

        except Exception as exc:
            duration_ms = (time.time() - start_time) * 1000
            logger.error(
                "request_failed",
                method=request.method,
                path=request.url.path,
                duration_ms=round(duration_ms, 2),
                error=str(exc),
                error_type=type(exc).__name__,
                exc_info=True,
            )
            raise

        finally:
            clear_context()


def path_context(path: str) -> dict[str, str]:
    """Extract ids from a request path for the logging context.

    Examples:
        >>> path_context("/subscriptions/cancel/sub_123")
        {'subscription_id': 'sub_123'}
        >>> path_context("/users/u1")
        {'user_id': 'u1'}
    """
    parts = [p for p in path.split("/") if p]
    context: dict[str, str] = {}
    for index, part in enumerate(parts):
        key = PATH_CONTEXT_KEYS.get(part)
        if key is None:
            continue
        rest = parts[index + 1:]
        if rest and rest[0] in ACTION_SEGMENTS:
            rest = rest[1:]
        if rest:
            context[key] = rest[0]
    return context


class ContextMiddleware(BaseHTTPMiddleware):
    """Binds subscription, user and plan ids found in the path to the logging context."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        context = path_context(request.url.path)
        if context:
            bind_context(**context)
        return await call_next(request)
