from __future__ import annotations

import logging
import re
import time
from contextvars import ContextVar
from uuid import uuid4

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

request_id_ctx_var: ContextVar[str | None] = ContextVar("request_id", default=None)
principal_ctx_var: ContextVar[str | None] = ContextVar("principal", default=None)
logger = logging.getLogger("timeclock.request")

# Client supplied ids end up in log lines; anything else is replaced.
_VALID_ID = re.compile(r"^[A-Za-z0-9._-]{1,64}$")
# Event streams stay open until the tab closes; their duration says nothing.
_UNLOGGED_PREFIXES = ("/live/", "/static/")


class RequestIdMiddleware(BaseHTTPMiddleware):
    """Correlate logs for one request and record how it ended."""

    def __init__(self, app, header_name: str = "X-Request-ID") -> None:  # type: ignore[override]
        super().__init__(app)
        self.header_name = header_name

    def _request_id(self, request: Request) -> str:
        supplied = request.headers.get(self.header_name, "")
        return supplied if _VALID_ID.match(supplied) else uuid4().hex

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        request_id = self._request_id(request)
        request.state.request_id = request_id
        id_token = request_id_ctx_var.set(request_id)
        principal_token = principal_ctx_var.set(None)
        started = time.perf_counter()
        try:
            response = await call_next(request)
        finally:
            principal_ctx_var.reset(principal_token)
            request_id_ctx_var.reset(id_token)
        response.headers[self.header_name] = request_id
        path = request.url.path
        if path.startswith(_UNLOGGED_PREFIXES):
            return response

        elapsed = round((time.perf_counter() - started) * 1000, 2)
        response.headers.setdefault("X-Response-Time", f"{elapsed:.2f}ms")
        # Sync routes run in a worker thread, so the principal comes back on request.state.
        principal = getattr(request.state, "principal", None)
        fields = {"method": request.method, "path": path, "status": response.status_code, "duration_ms": elapsed}
        if principal:
            fields["principal"] = principal
        level = logging.WARNING if response.status_code >= 500 else logging.INFO
        logger.log(level, "request.completed", extra={"extra_data": fields})
        return response
