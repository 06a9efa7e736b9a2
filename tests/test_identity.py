"""Local email/password identity provider and profiles."""

import os
import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

os.environ.setdefault("DB_URL", "sqlite://")

from timeclock.core.errors import AuthError, ValidationFailed
from timeclock.db.session import init_schema, make_engine, make_session_factory
from timeclock.services.identity import SIGNED_IN, SIGNED_OUT, LocalIdentityProvider
from timeclock.services.profiles import ensure_profile, get_profile, update_profile, viewer_tz
from timeclock.store import SqlDocumentStore, UserStore


@pytest.fixture()
def session_factory():
    engine = make_engine("sqlite://")
    init_schema(engine)
    try:
        yield make_session_factory(engine)
    finally:
        engine.dispose()


@pytest.fixture()
def provider(session_factory):
    return LocalIdentityProvider(session_factory, bcrypt_rounds=4)


def auth_code(excinfo):
    return excinfo.value.code


def test_register_then_authenticate(provider):
    created = provider.register("Ada@Example.com ", "secret1")
    assert created.email == "ada@example.com"
    signed_in = provider.authenticate("ada@example.com", "secret1")
    assert signed_in == created
    assert provider.lookup(created.uid) == created


def test_bad_credentials(provider):
    provider.register("ada@example.com", "secret1")
    with pytest.raises(AuthError) as excinfo:
        provider.authenticate("ada@example.com", "wrong-one")
    assert auth_code(excinfo) == "auth/wrong-password"
    assert excinfo.value.message == "Invalid email or password."
    with pytest.raises(AuthError) as excinfo:
        provider.authenticate("nobody@example.com", "secret1")
    assert auth_code(excinfo) == "auth/user-not-found"
    assert excinfo.value.message == "Invalid email or password."


@pytest.mark.parametrize(
    "email,password,code,message",
    [
        ("", "secret1", "auth/missing-credentials", "Email and password cannot be empty."),
        ("ada@example.com", "", "auth/missing-credentials", "Email and password cannot be empty."),
        ("not-an-email", "secret1", "auth/invalid-email", "Invalid email address format."),
        ("ada@example.com", "short", "auth/weak-password", "Password should be at least 6 characters."),
    ],
)
def test_registration_validation(provider, email, password, code, message):
    with pytest.raises(AuthError) as excinfo:
        provider.register(email, password)
    assert auth_code(excinfo) == code
    assert excinfo.value.message == message


def test_duplicate_email(provider):
    provider.register("ada@example.com", "secret1")
    with pytest.raises(AuthError) as excinfo:
        provider.register("ADA@example.com", "another1")
    assert auth_code(excinfo) == "auth/email-already-in-use"
    assert excinfo.value.status_code == 409


def test_signup_can_be_disabled(session_factory):
    provider = LocalIdentityProvider(session_factory, bcrypt_rounds=4, allow_signup=False)
    with pytest.raises(AuthError) as excinfo:
        provider.register("ada@example.com", "secret1")
    assert auth_code(excinfo) == "auth/operation-not-allowed"


def test_listeners_hear_sign_in_and_sign_out_until_cancelled(provider):
    events = []
    subscription = provider.on_change(lambda event: events.append((event.kind, event.identity.email)))
    identity = provider.register("ada@example.com", "secret1")
    provider.authenticate("ada@example.com", "secret1")
    provider.deauthenticate(identity.uid)
    assert events == [
        (SIGNED_IN, "ada@example.com"),
        (SIGNED_IN, "ada@example.com"),
        (SIGNED_OUT, "ada@example.com"),
    ]
    subscription.cancel()
    provider.authenticate("ada@example.com", "secret1")
    assert len(events) == 3


def test_profile_is_created_once_and_validated(session_factory):
    store = UserStore(SqlDocumentStore(session_factory), "uid-1")
    assert get_profile(store) is None
    profile = ensure_profile(store, "ada@example.com", default_tz="America/Chicago")
    assert profile.email == "ada@example.com"
    assert profile.timezone == "America/Chicago"
    assert ensure_profile(store, "other@example.com", default_tz="UTC") == profile

    updated = update_profile(store, first_name=" Ada ", last_name="Lovelace", timezone="Europe/London")
    assert updated.display_name == "Ada Lovelace"
    assert viewer_tz(updated, "UTC").key == "Europe/London"
    with pytest.raises(ValidationFailed):
        update_profile(store, timezone="Mars/Olympus")
    with pytest.raises(ValidationFailed):
        update_profile(store, photo_url="ftp://example.com/me.png")
    assert get_profile(store).timezone == "Europe/London"
    assert viewer_tz(None, "America/Chicago").key == "America/Chicago"
