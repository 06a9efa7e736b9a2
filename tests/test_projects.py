"""Tests for project lifecycle and cascade deletion."""

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

from timeclock.core.errors import NotFound, ValidationFailed
from timeclock.db.session import init_schema, make_engine, make_session_factory
from timeclock.services import clock, projects
from timeclock.services.entries import list_entries
from timeclock.store import SqlDocumentStore, UserStore

CHI = ZoneInfo("America/Chicago")


@pytest.fixture()
def backend():
    engine = make_engine("sqlite://")
    init_schema(engine)
    try:
        yield SqlDocumentStore(make_session_factory(engine))
    finally:
        engine.dispose()


@pytest.fixture()
def store(backend):
    return UserStore(backend, "owner-1")


def test_create_trims_and_rejects_blank_names(store):
    project = projects.create_project(store, "  Office build  ")
    assert project.name == "Office build"
    assert project.created_at.endswith("Z")
    with pytest.raises(ValidationFailed):
        projects.create_project(store, "   ")


def test_list_is_newest_first(store, monkeypatch):
    base = datetime(2024, 5, 1, tzinfo=timezone.utc)
    ticks = iter(range(3))
    monkeypatch.setattr(projects, "utcnow", lambda: base + timedelta(minutes=next(ticks)))
    for name in ("First", "Second", "Third"):
        projects.create_project(store, name)
    assert [project.name for project in projects.list_projects(store)] == ["Third", "Second", "First"]


def test_rename(store):
    project = projects.create_project(store, "Draft")
    renamed = projects.rename_project(store, project.id, "Final")
    assert renamed.name == "Final"
    assert projects.get_project(store, project.id).name == "Final"
    with pytest.raises(ValidationFailed):
        projects.rename_project(store, project.id, "")
    with pytest.raises(NotFound):
        projects.rename_project(store, "missing", "Name")


def test_delete_cascades_to_entries_only_of_that_project(store):
    doomed = projects.create_project(store, "Doomed")
    kept = projects.create_project(store, "Kept")
    start = datetime(2024, 1, 15, 15, tzinfo=timezone.utc)
    for offset in range(2):
        clock.clock_in(store, doomed.id, tz=CHI, now=start + timedelta(days=offset))
        clock.clock_out(store, doomed.id, now=start + timedelta(days=offset, hours=1))
    clock.clock_in(store, doomed.id, tz=CHI, now=start + timedelta(days=3))
    clock.clock_in(store, kept.id, tz=CHI, now=start)

    assert projects.delete_project(store, doomed.id) == 3
    with pytest.raises(NotFound):
        projects.get_project(store, doomed.id)
    assert list_entries(store, doomed.id) == []
    assert len(list_entries(store, kept.id)) == 1


def test_projects_are_private_to_their_owner(backend, store):
    project = projects.create_project(store, "Mine")
    intruder = UserStore(backend, "owner-2")
    assert projects.list_projects(intruder) == []
    with pytest.raises(NotFound):
        projects.delete_project(intruder, project.id)
    assert projects.get_project(store, project.id).name == "Mine"
