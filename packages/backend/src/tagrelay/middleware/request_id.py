"""Request ID middleware — unique ID per request for tracing.

Learn: Every request gets an ID, either from the incoming X-Request-ID
header (for distributed tracing) or a generated UUID. Incoming IDs are
only trusted if they look like an ID — anything long or containing odd
characters is replaced, so a client can't inject junk into our logs.
The ID, method and path are bound to structlog's contextvars so they
appear in every log entry written while handling the request
(including "dispatcher.broadcast" for a producer item).
"""

import re
import uuid

import structlog
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

REQUEST_ID_HEADER = "X-Request-ID"
_VALID_REQUEST_ID = re.compile(r"^[A-Za-z0-9._:-]{1,128}$")


class RequestIdMiddleware(BaseHTTPMiddleware):
    """Generate and propagate a unique request ID."""

    async def dispatch(self, request: Request, call_next) -> Response:
        incoming = request.headers.get(REQUEST_ID_HEADER, "")
        request_id = incoming if _VALID_REQUEST_ID.match(incoming) else str(uuid.uuid4())

        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(
            request_id=request_id,
            method=request.method,
            path=request.url.path,
        )

        response: Response = await call_next(request)
        response.headers[REQUEST_ID_HEADER] = request_id
        return response
