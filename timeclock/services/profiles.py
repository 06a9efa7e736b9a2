from __future__ import annotations

import logging
from zoneinfo import ZoneInfo

from ..core.errors import NotFound, StoreConflict, ValidationFailed
from ..store.base import PROFILE, UserStore
from .records import Profile
from .timecalc import is_valid_tz, resolve_tz

logger = logging.getLogger(__name__)

FIELD_MAX_LENGTH = 200


def get_profile(store: UserStore) -> Profile | None:
    doc = store.read_one(PROFILE, store.owner_id)
    return Profile.from_document(doc) if doc is not None else None


def ensure_profile(store: UserStore, email: str, *, default_tz: str) -> Profile:
    """Return the owner's profile, creating it on first sign-in."""
    existing = get_profile(store)
    if existing is not None:
        return existing
    try:
        store.create(PROFILE, {"email": email, "timezone": default_tz}, doc_id=store.owner_id)
    except StoreConflict:
        # A parallel sign-in created it first.
        pass
    else:
        logger.info("profile.created", extra={"extra_data": {"uid": store.owner_id}})
    profile = get_profile(store)
    if profile is None:
        raise NotFound("Profile not found.")
    return profile


def _clean(value: str | None, label: str) -> str:
    cleaned = (value or "").strip()
    if len(cleaned) > FIELD_MAX_LENGTH:
        raise ValidationFailed(f"{label} cannot be longer than {FIELD_MAX_LENGTH} characters.")
    return cleaned


def update_profile(
    store: UserStore,
    *,
    first_name: str | None = None,
    last_name: str | None = None,
    photo_url: str | None = None,
    timezone: str | None = None,
) -> Profile:
    """Apply the provided fields; ``None`` leaves a field unchanged."""
    if get_profile(store) is None:
        raise NotFound("Profile not found.")
    partial: dict[str, str] = {}
    if first_name is not None:
        partial["firstName"] = _clean(first_name, "First name")
    if last_name is not None:
        partial["lastName"] = _clean(last_name, "Last name")
    if photo_url is not None:
        url = _clean(photo_url, "Photo URL")
        if url and not url.startswith(("https://", "http://")):
            raise ValidationFailed("Photo URL must start with http:// or https://.")
        partial["photoURL"] = url
    if timezone is not None:
        zone = timezone.strip()
        if not is_valid_tz(zone):
            raise ValidationFailed(f"Unknown time zone: {zone or '(empty)'}.")
        partial["timezone"] = zone
    if partial:
        store.update(PROFILE, store.owner_id, partial)
    profile = get_profile(store)
    if profile is None:
        raise NotFound("Profile not found.")
    return profile


def viewer_tz(profile: Profile | None, fallback: str) -> ZoneInfo:
    return resolve_tz(profile.timezone if profile else None, fallback=fallback)
