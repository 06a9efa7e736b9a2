"""Clock-in/out transitions against a real store."""

import os
import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path
from zoneinfo import ZoneInfo

import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

os.environ.setdefault("DB_URL", "sqlite://")

from timeclock.core.errors import ClockStateError, NotFound, ValidationFailed
from timeclock.db.session import init_schema, make_engine, make_session_factory
from timeclock.services import clock
from timeclock.services.clock import ALREADY_CLOCKED_IN, NOT_CLOCKED_IN, ClockState, ClockStatus
from timeclock.services.entries import list_entries
from timeclock.services.projects import create_project
from timeclock.store import SqlDocumentStore, UserStore

CHI = ZoneInfo("America/Chicago")


@pytest.fixture()
def store():
    engine = make_engine("sqlite://")
    init_schema(engine)
    backend = SqlDocumentStore(make_session_factory(engine))
    try:
        yield UserStore(backend, "owner-1")
    finally:
        engine.dispose()


@pytest.fixture()
def project(store):
    return create_project(store, "Website")


def test_clock_in_opens_an_entry(store, project):
    entry = clock.clock_in(store, project.id, tz=CHI)
    assert entry.is_open
    assert entry.project_id == project.id
    status = clock.project_status(store, project.id)
    assert status.state is ClockState.CLOCKED_IN
    assert status.open_entry.id == entry.id


def test_clock_in_twice_is_rejected_and_changes_nothing(store, project):
    first = clock.clock_in(store, project.id, tz=CHI)
    with pytest.raises(ClockStateError) as excinfo:
        clock.clock_in(store, project.id, tz=CHI)
    assert excinfo.value.message == ALREADY_CLOCKED_IN == "You are already clocked in for this project."
    entries = list_entries(store, project.id)
    assert entries == [first]


def test_clock_out_closes_the_open_entry(store, project):
    start = datetime(2024, 1, 15, 15, 0, tzinfo=timezone.utc)
    clock.clock_in(store, project.id, tz=CHI, now=start)
    closed = clock.clock_out(store, project.id, now=datetime(2024, 1, 15, 16, 30, tzinfo=timezone.utc))
    assert not closed.is_open
    assert closed.clock_out - closed.clock_in == timedelta(hours=1, minutes=30)
    assert clock.project_status(store, project.id).state is ClockState.CLOCKED_OUT


def test_clock_out_without_open_entry_is_rejected(store, project):
    with pytest.raises(ClockStateError) as excinfo:
        clock.clock_out(store, project.id)
    assert excinfo.value.message == NOT_CLOCKED_IN == "You are not currently clocked in for this project."


def test_clock_out_before_clock_in_is_rejected(store, project):
    clock.clock_in(store, project.id, tz=CHI, now=datetime(2024, 1, 15, 15, 0, tzinfo=timezone.utc))
    with pytest.raises(ValidationFailed):
        clock.clock_out(store, project.id, now=datetime(2024, 1, 15, 14, 0, tzinfo=timezone.utc))
    assert clock.project_status(store, project.id).clocked_in


def test_unknown_project(store):
    with pytest.raises(NotFound):
        clock.clock_in(store, "nope", tz=CHI)
    with pytest.raises(NotFound):
        clock.clock_out(store, "nope")


def test_date_key_is_local_clock_in_day(store, project):
    # 05:50 UTC on the 16th is 23:50 on the 15th in Chicago.
    entry = clock.clock_in(store, project.id, tz=CHI, now=datetime(2024, 1, 16, 5, 50, tzinfo=timezone.utc))
    assert entry.date == "2024-01-15"


def test_projects_clock_independently(store, project):
    other = create_project(store, "Garden")
    clock.clock_in(store, project.id, tz=CHI)
    clock.clock_in(store, other.id, tz=CHI)
    assert clock.project_status(store, project.id).clocked_in
    assert clock.project_status(store, other.id).clocked_in


def test_racing_clock_in_is_caught_by_the_store(store, project, monkeypatch):
    clock.clock_in(store, project.id, tz=CHI)
    # Simulate a second request that read the entries before the first one wrote.
    monkeypatch.setattr(clock, "project_status", lambda store, project_id: ClockStatus(ClockState.CLOCKED_OUT))
    with pytest.raises(ClockStateError) as excinfo:
        clock.clock_in(store, project.id, tz=CHI)
    assert excinfo.value.message == ALREADY_CLOCKED_IN
    assert len(list_entries(store, project.id)) == 1
