from __future__ import annotations

import logging
from typing import Any
from urllib.parse import quote

from fastapi import Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, PlainTextResponse, RedirectResponse
from starlette import status
from starlette.exceptions import HTTPException as StarletteHTTPException

from .notices import notify

logger = logging.getLogger(__name__)

GENERIC_STORE_MESSAGE = "Something went wrong. Please try again."
SUBSCRIPTION_MESSAGE = "Live updates stopped. Please refresh the page."
# Spelled out: the starlette constant name changed between releases.
UNPROCESSABLE = 422


class TimeclockError(Exception):
    """Base class for every error the application reports to a user."""

    code = "error"
    status_code = status.HTTP_400_BAD_REQUEST

    def __init__(self, message: str, *, code: str | None = None, details: Any | None = None) -> None:
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code
        self.details = details


class ValidationFailed(TimeclockError):
    code = "validation_error"
    status_code = UNPROCESSABLE


class ClockStateError(TimeclockError):
    code = "clock_state"
    status_code = status.HTTP_409_CONFLICT


class NotFound(TimeclockError):
    code = "not_found"
    status_code = status.HTTP_404_NOT_FOUND


class StoreError(TimeclockError):
    code = "store_unavailable"
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE

    def __init__(self, message: str = GENERIC_STORE_MESSAGE, **kwargs: Any) -> None:
        super().__init__(message, **kwargs)


class StoreConflict(StoreError):
    code = "store_conflict"
    status_code = status.HTTP_409_CONFLICT


class SubscriptionError(TimeclockError):
    code = "subscription_error"
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE

    def __init__(self, message: str = SUBSCRIPTION_MESSAGE, **kwargs: Any) -> None:
        super().__init__(message, **kwargs)


# Provider codes follow the "auth/<reason>" convention of hosted identity services.
AUTH_ERROR_MESSAGES: dict[str, str] = {
    "auth/email-already-in-use": "This email is already in use. Try logging in.",
    "auth/invalid-email": "Invalid email address format.",
    "auth/weak-password": "Password should be at least {min_length} characters.",
    "auth/user-not-found": "Invalid email or password.",
    "auth/wrong-password": "Invalid email or password.",
    "auth/operation-not-allowed": "Email/password sign-up is disabled.",
    "auth/missing-credentials": "Email and password cannot be empty.",
    "auth/password-too-long": "Password cannot be longer than 72 bytes.",
}

AUTH_ERROR_STATUS: dict[str, int] = {
    "auth/email-already-in-use": status.HTTP_409_CONFLICT,
    "auth/invalid-email": UNPROCESSABLE,
    "auth/weak-password": UNPROCESSABLE,
    "auth/operation-not-allowed": status.HTTP_403_FORBIDDEN,
    "auth/missing-credentials": UNPROCESSABLE,
    "auth/password-too-long": UNPROCESSABLE,
}


class AuthError(TimeclockError):
    """Authentication failure carrying a provider-style ``auth/...`` code."""

    status_code = status.HTTP_401_UNAUTHORIZED

    def __init__(self, code: str, *, min_length: int = 6) -> None:
        template = AUTH_ERROR_MESSAGES.get(code)
        message = template.format(min_length=min_length) if template else f"Authentication error: {code}"
        super().__init__(message, code=code)
        self.status_code = AUTH_ERROR_STATUS.get(code, status.HTTP_401_UNAUTHORIZED)


class ErrorEnvelope(JSONResponse):
    def __init__(
        self,
        *,
        status_code: int,
        code: str,
        message: str,
        details: Any | None = None,
        headers: dict[str, str] | None = None,
    ) -> None:
        payload: dict[str, Any] = {"code": code, "message": message}
        if details is not None:
            payload["details"] = details
        super().__init__(payload, status_code=status_code, headers=headers)


def _is_api(request: Request) -> bool:
    return request.url.path.startswith("/api")


async def timeclock_exception_handler(request: Request, exc: TimeclockError):
    if isinstance(exc, StoreError):
        logger.warning("store.failure", extra={"extra_data": {"path": request.url.path, "code": exc.code}})
    if _is_api(request):
        return ErrorEnvelope(status_code=exc.status_code, code=exc.code, message=exc.message, details=exc.details)
    # HTML routes handle expected errors themselves; anything reaching here goes home with a notice.
    target = "/login" if isinstance(exc, AuthError) else "/"
    if request.url.path == target:
        return PlainTextResponse(exc.message, status_code=exc.status_code)
    notify(request, exc.message, level="error")
    return RedirectResponse(url=target, status_code=status.HTTP_303_SEE_OTHER)


async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    if exc.status_code == status.HTTP_401_UNAUTHORIZED:
        accept = (request.headers.get("accept") or "").lower()
        path = request.url.path
        if "text/html" in accept and not _is_api(request) and not path.startswith("/login"):
            return RedirectResponse(url=f"/login?next={quote(path)}", status_code=status.HTTP_302_FOUND)
    detail = exc.detail
    message = detail if isinstance(detail, str) else "Error"
    details = detail if isinstance(detail, dict) else None
    return ErrorEnvelope(status_code=exc.status_code, code="http_error", message=message, details=details, headers=exc.headers)


async def validation_exception_handler(request: Request, exc: RequestValidationError):
    return ErrorEnvelope(
        status_code=UNPROCESSABLE,
        code="validation_error",
        message="Validation failed",
        details={"errors": jsonable_encoder(exc.errors())},
    )
