"""Identity provider: who is signed in.

The view layer only sees ``IdentityProvider``. ``LocalIdentityProvider``
keeps email/password accounts in the ``accounts`` table with bcrypt hashes
and reports failures with hosted-provider style ``auth/...`` codes.
Listeners registered through ``on_change`` hear every sign-in and sign-out;
the application uses that to create profiles and to tear down live
subscriptions.
"""

from __future__ import annotations

import logging
import re
import threading
from dataclasses import dataclass
from typing import Callable, Protocol

import bcrypt
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from ..core.errors import AuthError, StoreError
from ..models.account import Account
from ..store.base import new_document_id
from ..store.subscriptions import Subscription
from .timecalc import to_iso, utcnow

logger = logging.getLogger(__name__)

EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
BCRYPT_MAX_BYTES = 72

SIGNED_IN = "signed_in"
SIGNED_OUT = "signed_out"


@dataclass(frozen=True)
class Identity:
    uid: str
    email: str


@dataclass(frozen=True)
class IdentityEvent:
    kind: str  # signed_in | signed_out
    identity: Identity


IdentityListener = Callable[[IdentityEvent], None]


class IdentityProvider(Protocol):
    def register(self, email: str, password: str) -> Identity: ...

    def authenticate(self, email: str, password: str) -> Identity: ...

    def deauthenticate(self, uid: str) -> None: ...

    def lookup(self, uid: str) -> Identity | None: ...

    def on_change(self, listener: IdentityListener) -> Subscription: ...


def normalize_email(email: str | None) -> str:
    return (email or "").strip().lower()


class LocalIdentityProvider:
    def __init__(
        self,
        session_factory: sessionmaker,
        *,
        min_password_length: int = 6,
        allow_signup: bool = True,
        bcrypt_rounds: int = 12,
    ) -> None:
        self._session_factory = session_factory
        self.min_password_length = min_password_length
        self.allow_signup = allow_signup
        self.bcrypt_rounds = bcrypt_rounds
        self._lock = threading.Lock()
        self._listeners: set[Subscription] = set()

    # ---- listeners

    def on_change(self, listener: IdentityListener) -> Subscription:
        subscription = Subscription(listener, listener, detach=self._detach)
        with self._lock:
            self._listeners.add(subscription)
        return subscription

    def _detach(self, subscription: Subscription) -> None:
        with self._lock:
            self._listeners.discard(subscription)

    def _emit(self, kind: str, identity: Identity) -> None:
        with self._lock:
            listeners = list(self._listeners)
        event = IdentityEvent(kind, identity)
        for subscription in listeners:
            subscription.deliver(event)

    # ---- credentials

    def _check_credentials(self, email: str, password: str) -> None:
        if not email or not password:
            raise AuthError("auth/missing-credentials")
        if not EMAIL_RE.match(email):
            raise AuthError("auth/invalid-email")

    def _hash(self, password: str) -> str:
        return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt(rounds=self.bcrypt_rounds)).decode("utf-8")

    @staticmethod
    def _verify(password: str, password_hash: str) -> bool:
        encoded = password.encode("utf-8")
        if len(encoded) > BCRYPT_MAX_BYTES:
            return False
        try:
            return bcrypt.checkpw(encoded, password_hash.encode("utf-8"))
        except ValueError:
            logger.warning("identity.bad_hash")
            return False

    # ---- IdentityProvider

    def register(self, email: str, password: str) -> Identity:
        email = normalize_email(email)
        password = password or ""
        self._check_credentials(email, password)
        if not self.allow_signup:
            raise AuthError("auth/operation-not-allowed")
        if len(password) < self.min_password_length:
            raise AuthError("auth/weak-password", min_length=self.min_password_length)
        if len(password.encode("utf-8")) > BCRYPT_MAX_BYTES:
            raise AuthError("auth/password-too-long")
        now = to_iso(utcnow())
        account = Account(
            uid=new_document_id(),
            email=email,
            password_hash=self._hash(password),
            created_at=now,
            last_sign_in_at=now,
        )
        try:
            with self._session_factory() as db:
                db.add(account)
                db.commit()
        except IntegrityError as exc:
            raise AuthError("auth/email-already-in-use") from exc
        except SQLAlchemyError as exc:
            logger.exception("identity.store_failure", extra={"extra_data": {"action": "register"}})
            raise StoreError() from exc
        identity = Identity(uid=account.uid, email=email)
        logger.info("identity.registered", extra={"extra_data": {"uid": identity.uid}})
        self._emit(SIGNED_IN, identity)
        return identity

    def authenticate(self, email: str, password: str) -> Identity:
        email = normalize_email(email)
        password = password or ""
        self._check_credentials(email, password)
        try:
            with self._session_factory() as db:
                account = db.execute(select(Account).where(Account.email == email)).scalar_one_or_none()
                if account is None:
                    raise AuthError("auth/user-not-found")
                if not self._verify(password, account.password_hash):
                    logger.info("identity.rejected", extra={"extra_data": {"uid": account.uid}})
                    raise AuthError("auth/wrong-password")
                account.last_sign_in_at = to_iso(utcnow())
                db.commit()
                identity = Identity(uid=account.uid, email=account.email)
        except SQLAlchemyError as exc:
            logger.exception("identity.store_failure", extra={"extra_data": {"action": "authenticate"}})
            raise StoreError() from exc
        logger.info("identity.signed_in", extra={"extra_data": {"uid": identity.uid}})
        self._emit(SIGNED_IN, identity)
        return identity

    def lookup(self, uid: str) -> Identity | None:
        try:
            with self._session_factory() as db:
                account = db.get(Account, uid)
                return Identity(uid=account.uid, email=account.email) if account is not None else None
        except SQLAlchemyError as exc:
            logger.exception("identity.store_failure", extra={"extra_data": {"action": "lookup"}})
            raise StoreError() from exc

    def deauthenticate(self, uid: str) -> None:
        identity = self.lookup(uid)
        if identity is None:
            return
        logger.info("identity.signed_out", extra={"extra_data": {"uid": uid}})
        self._emit(SIGNED_OUT, identity)

    def close(self) -> None:
        with self._lock:
            listeners = list(self._listeners)
        for subscription in listeners:
            subscription.discard()
