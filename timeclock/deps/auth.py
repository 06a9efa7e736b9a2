"""Request dependencies: who is asking, and which store slice they may touch."""

from __future__ import annotations

from dataclasses import dataclass
from zoneinfo import ZoneInfo

from fastapi import Depends, Header, HTTPException, Request, status
from fastapi.security.utils import get_authorization_scheme_param

from ..core.security import InvalidToken
from ..middlewares import principal_ctx_var
from ..services.container import AppServices
from ..services.identity import Identity
from ..services.profiles import get_profile, viewer_tz
from ..services.records import Profile
from ..store.base import UserStore
from .ui_auth import end_session, session_uid


@dataclass(frozen=True)
class Viewer:
    """Everything a page or API call needs about the signed-in user."""

    identity: Identity
    store: UserStore
    profile: Profile | None
    tz: ZoneInfo
    scheme: str


def get_services(request: Request) -> AppServices:
    return request.app.state.services


def _unauthorized(detail: str = "Authorization required") -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


def _set_principal(request: Request, identity: Identity, scheme: str) -> None:
    principal = f"{scheme}:{identity.uid}"
    principal_ctx_var.set(principal)
    request.state.principal = principal
    request.state.identity = identity


def resolve_identity(
    request: Request,
    authorization: str | None = Header(default=None, alias="Authorization"),
    services: AppServices = Depends(get_services),
) -> tuple[Identity, str]:
    """Browser session first, then a bearer access token."""
    uid = session_uid(request)
    if uid is not None:
        identity = services.identity.lookup(uid)
        if identity is not None:
            _set_principal(request, identity, "session")
            return identity, "session"
        # Account vanished; drop the stale cookie.
        end_session(request)

    if authorization:
        scheme, credentials = get_authorization_scheme_param(authorization)
        if scheme.lower() == "bearer" and credentials:
            try:
                claims = services.tokens.verify(credentials)
            except InvalidToken as exc:
                raise _unauthorized(str(exc)) from exc
            identity = services.identity.lookup(claims.sub)
            if identity is None:
                raise _unauthorized("Unknown account")
            request.state.token_claims = claims
            _set_principal(request, identity, "jwt")
            return identity, "jwt"

    raise _unauthorized()


def get_viewer(
    resolved: tuple[Identity, str] = Depends(resolve_identity),
    services: AppServices = Depends(get_services),
) -> Viewer:
    identity, scheme = resolved
    store = services.user_store(identity.uid)
    profile = get_profile(store)
    return Viewer(
        identity=identity,
        store=store,
        profile=profile,
        tz=viewer_tz(profile, services.settings.TZ),
        scheme=scheme,
    )


def get_user_store(viewer: Viewer = Depends(get_viewer)) -> UserStore:
    return viewer.store
