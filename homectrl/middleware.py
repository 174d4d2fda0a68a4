"""Request-ID middleware for home-ctrl.

Assigns every request a fresh ULID, binds it into the logging context for the
duration of the request (so every log line carries ``request_id``), and echoes
it back in the ``X-Request-ID`` response header.
"""

from __future__ import annotations

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from homectrl.constants import REQUEST_ID_HEADER
from homectrl.utils.logger import clear_request_id, set_request_id
from homectrl.utils.ulid import generate_ulid


class RequestIDMiddleware(BaseHTTPMiddleware):
    """Tag each request/response pair with a ULID request id."""

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        request_id = generate_ulid()
        request.state.request_id = request_id
        set_request_id(request_id)
        try:
            response = await call_next(request)
        finally:
            clear_request_id()
        response.headers[REQUEST_ID_HEADER] = request_id
        return response
