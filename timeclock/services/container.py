"""Per-application service wiring with an explicit start/stop lifecycle."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker

from ..core.config import AppSettings
from ..core.security import TokenIssuer
from ..db.migrate import run_migrations
from ..db.session import init_schema, make_engine, make_session_factory
from ..store.base import UserStore
from ..store.sql import SqlDocumentStore
from ..store.subscriptions import Subscription, SubscriptionHub
from .identity import SIGNED_IN, SIGNED_OUT, IdentityEvent, LocalIdentityProvider
from .profiles import ensure_profile

logger = logging.getLogger(__name__)


@dataclass
class AppServices:
    settings: AppSettings
    engine: Engine
    session_factory: sessionmaker
    hub: SubscriptionHub
    store: SqlDocumentStore
    identity: LocalIdentityProvider
    tokens: TokenIssuer
    _listeners: list[Subscription] = field(default_factory=list)

    @classmethod
    def build(cls, settings: AppSettings, engine: Engine | None = None) -> "AppServices":
        engine = engine or make_engine(settings.database_url)
        session_factory = make_session_factory(engine)
        hub = SubscriptionHub()
        return cls(
            settings=settings,
            engine=engine,
            session_factory=session_factory,
            hub=hub,
            store=SqlDocumentStore(session_factory, hub),
            identity=LocalIdentityProvider(
                session_factory,
                min_password_length=settings.AUTH_MIN_PASSWORD_LENGTH,
                allow_signup=settings.AUTH_ALLOW_SIGNUP,
                bcrypt_rounds=settings.BCRYPT_ROUNDS,
            ),
            tokens=TokenIssuer.from_settings(settings),
        )

    def user_store(self, uid: str) -> UserStore:
        return UserStore(self.store, uid)

    def _on_identity_change(self, event: IdentityEvent) -> None:
        uid = event.identity.uid
        if event.kind == SIGNED_IN:
            ensure_profile(self.user_store(uid), event.identity.email, default_tz=self.settings.TZ)
        elif event.kind == SIGNED_OUT:
            cancelled = self.hub.cancel_owner(uid)
            logger.info("subscriptions.cancelled", extra={"extra_data": {"uid": uid, "count": cancelled}})

    def start(self) -> None:
        init_schema(self.engine)
        run_migrations(self.engine, default_tz=self.settings.TZ)
        self._listeners.append(self.identity.on_change(self._on_identity_change))
        logger.info("services.started", extra={"extra_data": {"database": self.engine.url.render_as_string()}})

    def close(self) -> None:
        for subscription in self._listeners:
            subscription.cancel()
        self._listeners.clear()
        self.identity.close()
        self.hub.close()
        self.engine.dispose()
        logger.info("services.stopped")
