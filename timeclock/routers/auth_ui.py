from __future__ import annotations

from fastapi import APIRouter, Depends, Form, Request
from fastapi.responses import HTMLResponse, RedirectResponse

from ..core.errors import AuthError, StoreError
from ..core.jinja import render
from ..core.notices import Notice, notify
from ..deps.auth import get_services
from ..deps.ui_auth import end_session, is_logged_in, session_uid, start_session
from ..services.container import AppServices

router = APIRouter()


def _safe_next(target: str | None) -> str:
    # Local paths only; "//host" would leave the site.
    if not target or not target.startswith("/") or target.startswith("//"):
        return "/"
    return target


def _auth_form(request: Request, template: str, *, next: str, email: str = "", error: Exception | None = None):
    notice = Notice(message=getattr(error, "message", str(error)), level="error") if error else None
    status_code = getattr(error, "status_code", 200) if error else 200
    context = {"next": _safe_next(next), "email": email}
    if notice is not None:
        context["notice"] = notice
    return render(request, template, context, status_code=status_code)


@router.get("/login", response_class=HTMLResponse)
def login_page(request: Request, next: str = "/"):
    if is_logged_in(request):
        return RedirectResponse(url=_safe_next(next), status_code=302)
    return _auth_form(request, "login.html", next=next)


@router.post("/login", response_class=HTMLResponse)
def login_submit(
    request: Request,
    email: str = Form(""),
    password: str = Form(""),
    next: str = Form("/"),
    services: AppServices = Depends(get_services),
):
    try:
        identity = services.identity.authenticate(email, password)
    except (AuthError, StoreError) as exc:
        return _auth_form(request, "login.html", next=next, email=email, error=exc)
    start_session(request, identity)
    return RedirectResponse(url=_safe_next(next), status_code=303)


@router.get("/signup", response_class=HTMLResponse)
def signup_page(request: Request, next: str = "/"):
    if is_logged_in(request):
        return RedirectResponse(url=_safe_next(next), status_code=302)
    return _auth_form(request, "signup.html", next=next)


@router.post("/signup", response_class=HTMLResponse)
def signup_submit(
    request: Request,
    email: str = Form(""),
    password: str = Form(""),
    next: str = Form("/"),
    services: AppServices = Depends(get_services),
):
    try:
        identity = services.identity.register(email, password)
    except (AuthError, StoreError) as exc:
        return _auth_form(request, "signup.html", next=next, email=email, error=exc)
    start_session(request, identity)
    notify(request, "Welcome! Create a project to start tracking time.", level="success")
    return RedirectResponse(url=_safe_next(next), status_code=303)


@router.post("/logout")
def logout(request: Request, services: AppServices = Depends(get_services)):
    uid = session_uid(request)
    if uid is not None:
        services.identity.deauthenticate(uid)
    end_session(request)
    notify(request, "You have been signed out.")
    return RedirectResponse(url="/login", status_code=303)
