from __future__ import annotations

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

CONTENT_SECURITY_POLICY = (
    "default-src 'self'; img-src 'self' https: data:; base-uri 'self'; "
    "form-action 'self'; frame-ancestors 'none'; object-src 'none';"
)


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Baseline browser hardening headers; HSTS only when served over HTTPS."""

    def __init__(self, app, *, https_only: bool = False) -> None:  # type: ignore[override]
        super().__init__(app)
        self.https_only = https_only

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        response = await call_next(request)
        if self.https_only:
            response.headers.setdefault("Strict-Transport-Security", "max-age=31536000; includeSubDomains")
        response.headers.setdefault("X-Content-Type-Options", "nosniff")
        response.headers.setdefault("X-Frame-Options", "DENY")
        response.headers.setdefault("Referrer-Policy", "same-origin")
        response.headers.setdefault("Content-Security-Policy", CONTENT_SECURITY_POLICY)
        return response
