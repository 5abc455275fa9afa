"""HTTP middleware binding per-request context."""
from __future__ import annotations

from typing import Callable
from uuid import uuid4

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from blob.core.context import bind_context

REQUEST_ID_HEADER = "X-Request-Id"
USER_ID_HEADER = "X-User-Id"


class RequestContextMiddleware(BaseHTTPMiddleware):
    """Assign or echo a request id and expose it to handlers, traces and log records.

    A caller-supplied ``X-User-Id`` header is bound for logging only; handlers
    still take the acting user from the request payload.
    """

    async def dispatch(self, request: Request, call_next: Callable[[Request], Response]) -> Response:  # type: ignore[override]
        request_id = request.headers.get(REQUEST_ID_HEADER) or str(uuid4())
        request.state.request_id = request_id

        with bind_context(request_id=request_id, user_id=request.headers.get(USER_ID_HEADER)):
            response = await call_next(request)

        response.headers[REQUEST_ID_HEADER] = request_id
        return response
