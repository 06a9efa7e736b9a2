from __future__ import annotations

from fastapi import HTTPException, Request, status

from ..services.identity import Identity

SESSION_UID = "uid"
SESSION_EMAIL = "email"


def session_uid(request: Request) -> str | None:
    if "session" not in request.scope:
        return None
    uid = request.session.get(SESSION_UID)
    return uid if isinstance(uid, str) and uid else None


def is_logged_in(request: Request) -> bool:
    return session_uid(request) is not None


def start_session(request: Request, identity: Identity) -> None:
    request.session.clear()
    request.session[SESSION_UID] = identity.uid
    request.session[SESSION_EMAIL] = identity.email


def end_session(request: Request) -> None:
    request.session.clear()


def require_ui_session(request: Request) -> str:
    """Gate for UI routes: a session created by the login flow is required.

    The 401 is turned into a redirect to ``/login`` by the HTTP exception
    handler for browser requests.
    """
    uid = session_uid(request)
    if uid is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Login required")
    return uid
