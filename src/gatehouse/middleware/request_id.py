"""Request ID middleware — unique ID per request for log correlation.

Learn: Every request gets an id, either from the incoming X-Request-ID
header or freshly generated. It is bound to structlog's contextvars so
every auth log line for that request (login_failed, provider_linked, …)
carries it, and echoed in the response header so a user-reported failure
can be found in the logs.
"""

import uuid

import structlog
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response


class RequestIdMiddleware(BaseHTTPMiddleware):
    """Generate and propagate a unique request ID."""

    async def dispatch(self, request: Request, call_next) -> Response:
        request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())

        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(
            request_id=request_id, path=request.url.path
        )

        response: Response = await call_next(request)
        response.headers["X-Request-ID"] = request_id
        return response
