"""Clock-in/out state machine.

The state is never stored: it is read off the entry collection each time,
so editing or deleting entries can never leave a stale "clocked in" flag
behind.
"""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass
from datetime import datetime, tzinfo
from typing import Iterable

from ..core.errors import ClockStateError, StoreConflict, ValidationFailed
from ..store.base import TIME_ENTRIES, UserStore
from .aggregation import current_open_entry
from .entries import entry_document, get_entry, list_entries
from .projects import get_project
from .records import TimeEntry
from .timecalc import to_iso, utcnow

logger = logging.getLogger(__name__)

ALREADY_CLOCKED_IN = "You are already clocked in for this project."
NOT_CLOCKED_IN = "You are not currently clocked in for this project."


class ClockState(str, enum.Enum):
    CLOCKED_OUT = "clocked_out"
    CLOCKED_IN = "clocked_in"


@dataclass(frozen=True)
class ClockStatus:
    state: ClockState
    open_entry: TimeEntry | None = None

    @property
    def clocked_in(self) -> bool:
        return self.state is ClockState.CLOCKED_IN


def derive_status(entries: Iterable[TimeEntry], project_id: str) -> ClockStatus:
    entry = current_open_entry(entries, project_id)
    if entry is None:
        return ClockStatus(ClockState.CLOCKED_OUT)
    return ClockStatus(ClockState.CLOCKED_IN, entry)


def project_status(store: UserStore, project_id: str) -> ClockStatus:
    return derive_status(list_entries(store, project_id), project_id)


def clock_in(store: UserStore, project_id: str, *, tz: tzinfo, now: datetime | None = None) -> TimeEntry:
    """ClockedOut -> ClockedIn: open a new entry for ``project_id``."""
    project = get_project(store, project_id)
    if project_status(store, project.id).clocked_in:
        raise ClockStateError(ALREADY_CLOCKED_IN)
    started = now or utcnow()
    try:
        entry_id = store.create(TIME_ENTRIES, entry_document(project.id, started, None, tz))
    except StoreConflict as exc:
        # Another request opened an entry between our read and this write.
        raise ClockStateError(ALREADY_CLOCKED_IN) from exc
    logger.info("clock.in", extra={"extra_data": {"project_id": project.id, "entry_id": entry_id}})
    return get_entry(store, entry_id)


def clock_out(store: UserStore, project_id: str, *, now: datetime | None = None) -> TimeEntry:
    """ClockedIn -> ClockedOut: close the open entry for ``project_id``."""
    project = get_project(store, project_id)
    status = project_status(store, project.id)
    if not status.clocked_in or status.open_entry is None:
        raise ClockStateError(NOT_CLOCKED_IN)
    entry = status.open_entry
    stopped = now or utcnow()
    if stopped < entry.clock_in:
        raise ValidationFailed("Clock-out time cannot be before clock-in time.")
    store.update(TIME_ENTRIES, entry.id, {"clockOutTime": to_iso(stopped)})
    logger.info("clock.out", extra={"extra_data": {"project_id": project.id, "entry_id": entry.id}})
    return get_entry(store, entry.id)
