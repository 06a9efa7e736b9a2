"""Time entry reads, manual edits and deletion."""

from __future__ import annotations

import logging
from datetime import datetime, tzinfo
from typing import Any

from ..core.errors import NotFound, ValidationFailed
from ..store.base import TIME_ENTRIES, Snapshot, UserStore
from .records import TimeEntry
from .timecalc import local_date_key, to_iso

logger = logging.getLogger(__name__)

NOTES_MAX_LENGTH = 2000


def entry_document(
    project_id: str,
    clock_in: datetime,
    clock_out: datetime | None,
    tz: tzinfo,
    notes: str = "",
) -> dict[str, Any]:
    """Persisted shape of an entry; ``date`` is always derived from ``clock_in``."""
    return {
        "projectId": project_id,
        "clockInTime": to_iso(clock_in),
        "clockOutTime": to_iso(clock_out) if clock_out is not None else None,
        "date": local_date_key(clock_in, tz),
        "notes": notes,
    }


def entries_from_snapshot(snapshot: Snapshot) -> list[TimeEntry]:
    entries = [TimeEntry.from_document(doc) for doc in snapshot]
    entries.sort(key=lambda entry: entry.clock_in, reverse=True)
    return entries


def list_entries(store: UserStore, project_id: str | None = None) -> list[TimeEntry]:
    """Entries newest first, for one project or across all of them."""
    where = {"projectId": project_id} if project_id else None
    return entries_from_snapshot(store.query(TIME_ENTRIES, where=where))


def get_entry(store: UserStore, entry_id: str, *, project_id: str | None = None) -> TimeEntry:
    doc = store.read_one(TIME_ENTRIES, entry_id)
    if doc is None:
        raise NotFound("Time entry not found.")
    entry = TimeEntry.from_document(doc)
    if project_id is not None and entry.project_id != project_id:
        raise NotFound("Time entry not found.")
    return entry


def _clean_notes(notes: str | None) -> str:
    cleaned = (notes or "").strip()
    if len(cleaned) > NOTES_MAX_LENGTH:
        raise ValidationFailed(f"Notes cannot be longer than {NOTES_MAX_LENGTH} characters.")
    return cleaned


def edit_entry(
    store: UserStore,
    entry_id: str,
    *,
    clock_in: datetime | None,
    clock_out: datetime | None,
    tz: tzinfo,
    notes: str | None = None,
    project_id: str | None = None,
) -> TimeEntry:
    """Replace an entry's times (and optionally notes) after validating them.

    Nothing is written unless every check passes, so a rejected edit leaves
    the stored entry untouched.
    """
    entry = get_entry(store, entry_id, project_id=project_id)
    if clock_in is None:
        raise ValidationFailed("Clock-in time cannot be empty.")
    if clock_out is not None and clock_out < clock_in:
        raise ValidationFailed("Clock-out time cannot be before clock-in time.")
    if clock_out is None and entry.clock_out is not None:
        others = list_entries(store, entry.project_id)
        if any(other.id != entry.id and other.is_open for other in others):
            raise ValidationFailed("Another session is already open for this project.")
    new_notes = entry.notes if notes is None else _clean_notes(notes)
    document = entry_document(entry.project_id, clock_in, clock_out, tz, new_notes)
    store.update(TIME_ENTRIES, entry.id, {key: value for key, value in document.items() if key != "projectId"})
    logger.info("entry.updated", extra={"extra_data": {"entry_id": entry.id, "project_id": entry.project_id}})
    return get_entry(store, entry.id)


def delete_entry(store: UserStore, entry_id: str, *, project_id: str | None = None) -> None:
    entry = get_entry(store, entry_id, project_id=project_id)
    store.delete(TIME_ENTRIES, entry.id)
    logger.info("entry.deleted", extra={"extra_data": {"entry_id": entry.id, "project_id": entry.project_id}})
