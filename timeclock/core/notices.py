"""Session-backed modal notices.

Every user-facing message (success, validation failure, store failure) goes
through ``notify`` and is rendered once by the next page as a modal dialog.
Destructive actions render ``confirm.html`` through the same modal instead.
"""

from __future__ import annotations

from typing import TypedDict

from starlette.requests import Request

NOTICE_KEY = "notice"


class Notice(TypedDict):
    message: str
    level: str


def notify(request: Request, message: str, *, level: str = "info") -> None:
    if "session" not in request.scope:
        return
    request.session[NOTICE_KEY] = {"message": message, "level": level}


def pop_notice(request: Request) -> Notice | None:
    if "session" not in request.scope:
        return None
    raw = request.session.pop(NOTICE_KEY, None)
    if not isinstance(raw, dict) or not raw.get("message"):
        return None
    return Notice(message=str(raw["message"]), level=str(raw.get("level") or "info"))
