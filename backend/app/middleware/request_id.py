"""
FloraLens Backend - Request ID Middleware
===========================================

What:  Assigns an ID to each incoming request and returns it in X-Request-ID.
How:   Reuses the client's X-Request-ID header or generates a short UUID,
       stores it on request.state, and echoes it in the response header.
Who:   Applied to every request via Starlette middleware.
When:  First middleware in the chain.

The ID lives on request.state only. get_request_context() copies it into
the RequestContext handed to services, so nothing reads it from globals.
"""

import uuid

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

REQUEST_ID_HEADER = "X-Request-ID"


def get_request_id(request: Request) -> str:
    """The current request's ID, or "" when the middleware did not run."""
    return getattr(request.state, "request_id", "")


class RequestIDMiddleware(BaseHTTPMiddleware):
    """
    Behavior:
        1. Use the client's X-Request-ID header when present
        2. Otherwise generate an 8-char UUID prefix
        3. Store it on request.state
        4. Add it to the response headers
    """

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        rid = request.headers.get(REQUEST_ID_HEADER) or str(uuid.uuid4())[:8]
        request.state.request_id = rid

        response = await call_next(request)
        response.headers[REQUEST_ID_HEADER] = rid
        return response
