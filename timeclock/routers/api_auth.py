from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Request, status

from ..core.security import REFRESH, InvalidToken
from ..deps.auth import Viewer, get_services, get_viewer
from ..deps.ui_auth import end_session
from ..schemas.auth import CredentialsRequest, RefreshRequest, TokenResponse
from ..services.container import AppServices
from ..services.identity import Identity

router = APIRouter(prefix="/api/v1/auth", tags=["auth"])


def _tokens_for(services: AppServices, identity: Identity) -> TokenResponse:
    pair = services.tokens.issue(identity.uid, email=identity.email)
    return TokenResponse(**pair.model_dump(), uid=identity.uid)


@router.post("/signup", response_model=TokenResponse, status_code=201, summary="Create an account and issue JWTs")
def signup(payload: CredentialsRequest, services: AppServices = Depends(get_services)):
    identity = services.identity.register(payload.email, payload.password)
    return _tokens_for(services, identity)


@router.post("/token", response_model=TokenResponse, summary="Exchange email and password for JWTs")
def exchange_token(payload: CredentialsRequest, services: AppServices = Depends(get_services)):
    identity = services.identity.authenticate(payload.email, payload.password)
    return _tokens_for(services, identity)


@router.post("/refresh", response_model=TokenResponse, summary="Trade a refresh token for a new pair")
def refresh_token(payload: RefreshRequest, services: AppServices = Depends(get_services)):
    try:
        claims = services.tokens.verify(payload.refresh_token, kind=REFRESH)
    except InvalidToken as exc:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=str(exc)) from exc
    identity = services.identity.lookup(claims.sub)
    if identity is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unknown account")
    return _tokens_for(services, identity)


@router.post("/logout", summary="Sign out and stop live updates")
def logout(request: Request, viewer: Viewer = Depends(get_viewer), services: AppServices = Depends(get_services)):
    services.identity.deauthenticate(viewer.identity.uid)
    if viewer.scheme == "session":
        end_session(request)
    return {"status": "signed_out"}
