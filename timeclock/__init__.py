"""Application factory: configuration, services, middleware and routers."""

from __future__ import annotations

from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles
from sqlalchemy.engine import Engine
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.middleware.sessions import SessionMiddleware

from .core.config import AppSettings, get_settings
from .core.errors import (
    TimeclockError,
    http_exception_handler,
    timeclock_exception_handler,
    validation_exception_handler,
)
from .middlewares import RequestIdMiddleware, SecurityHeadersMiddleware
from .services.container import AppServices


def create_app(*, settings: AppSettings | None = None, engine: Engine | None = None) -> FastAPI:
    settings = settings or get_settings()
    services = AppServices.build(settings, engine)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        services.start()
        try:
            yield
        finally:
            services.close()

    app = FastAPI(title=settings.APP_NAME, lifespan=lifespan)
    app.state.services = services
    app.state.settings = settings

    app.mount("/static", StaticFiles(directory=str(settings.STATIC_DIR)), name="static")

    # Later additions wrap earlier ones: CORS outermost, then the session cookie.
    app.add_middleware(SecurityHeadersMiddleware, https_only=settings.SESSION_HTTPS_ONLY)
    app.add_middleware(RequestIdMiddleware)
    app.add_middleware(
        SessionMiddleware,
        secret_key=settings.APP_SECRET,
        session_cookie=settings.SESSION_COOKIE_NAME,
        max_age=settings.SESSION_MAX_AGE,
        same_site="lax",
        https_only=settings.SESSION_HTTPS_ONLY,
    )
    if settings.allowed_origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=settings.allowed_origins,
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )

    app.add_exception_handler(TimeclockError, timeclock_exception_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)

    from .routers import api_auth, api_projects, auth_ui, live, ui

    app.include_router(auth_ui.router)
    app.include_router(ui.router)
    app.include_router(api_auth.router)
    app.include_router(api_projects.router)
    app.include_router(live.router)

    @app.get("/health", tags=["meta"])
    async def health() -> dict[str, bool]:
        return {"ok": True}

    return app


__all__ = ["create_app"]
