"""SQL document store: scoping, batches and live subscriptions."""

import asyncio
import os
import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

os.environ.setdefault("DB_URL", "sqlite://")

from timeclock.core.errors import NotFound, StoreConflict, StoreError, SubscriptionError
from timeclock.db.session import init_schema, make_engine, make_session_factory
from timeclock.store import (
    PROJECTS,
    TIME_ENTRIES,
    SnapshotStream,
    SqlDocumentStore,
    UserStore,
)


@pytest.fixture()
def backend():
    engine = make_engine("sqlite://")
    init_schema(engine)
    store = SqlDocumentStore(make_session_factory(engine))
    try:
        yield store
    finally:
        store.hub.close()
        engine.dispose()


@pytest.fixture()
def alice(backend):
    return UserStore(backend, "alice")


@pytest.fixture()
def bob(backend):
    return UserStore(backend, "bob")


def test_documents_are_scoped_to_their_owner(alice, bob):
    project_id = alice.create(PROJECTS, {"name": "Garden", "createdAt": "2024-01-01T00:00:00.000Z"})
    assert alice.read_one(PROJECTS, project_id).get("name") == "Garden"
    assert bob.read_one(PROJECTS, project_id) is None
    assert len(bob.query(PROJECTS)) == 0
    with pytest.raises(NotFound):
        bob.update(PROJECTS, project_id, {"name": "Stolen"})


def test_query_filters_null_and_orders(alice):
    alice.create(TIME_ENTRIES, {"projectId": "p1", "clockInTime": "2024-01-01T09:00:00.000Z", "date": "2024-01-01"})
    alice.create(
        TIME_ENTRIES,
        {
            "projectId": "p1",
            "clockInTime": "2024-01-02T09:00:00.000Z",
            "clockOutTime": "2024-01-02T10:00:00.000Z",
            "date": "2024-01-02",
        },
    )
    open_entries = alice.query(TIME_ENTRIES, where={"projectId": "p1", "clockOutTime": None})
    assert [doc.get("date") for doc in open_entries] == ["2024-01-01"]
    ordered = alice.query(TIME_ENTRIES, order_by="clockInTime", descending=True)
    assert [doc.get("date") for doc in ordered] == ["2024-01-02", "2024-01-01"]


def test_second_open_entry_for_a_project_is_a_conflict(alice):
    alice.create(TIME_ENTRIES, {"projectId": "p1", "clockInTime": "2024-01-01T09:00:00.000Z", "date": "2024-01-01"})
    with pytest.raises(StoreConflict):
        alice.create(TIME_ENTRIES, {"projectId": "p1", "clockInTime": "2024-01-01T10:00:00.000Z", "date": "2024-01-01"})
    # A different project is unaffected.
    alice.create(TIME_ENTRIES, {"projectId": "p2", "clockInTime": "2024-01-01T10:00:00.000Z", "date": "2024-01-01"})
    assert len(alice.query(TIME_ENTRIES)) == 2


def test_batch_is_all_or_nothing(alice):
    batch = alice.batch()
    batch.create(PROJECTS, {"name": "Kept out", "createdAt": "2024-01-01T00:00:00.000Z"})
    batch.update(PROJECTS, "missing", {"name": "x"})
    with pytest.raises(NotFound):
        batch.commit()
    assert len(alice.query(PROJECTS)) == 0


def test_unknown_fields_are_rejected(alice):
    with pytest.raises(ValueError):
        alice.create(PROJECTS, {"name": "x", "createdAt": "2024-01-01T00:00:00.000Z", "colour": "red"})


def test_subscribe_delivers_current_then_full_snapshots(alice):
    seen = []
    query = alice.make_query(PROJECTS)
    subscription = alice.subscribe(query, seen.append)
    assert len(seen) == 1 and len(seen[0]) == 0

    alice.create(PROJECTS, {"name": "One", "createdAt": "2024-01-01T00:00:00.000Z"})
    alice.create(PROJECTS, {"name": "Two", "createdAt": "2024-01-02T00:00:00.000Z"})
    assert [len(snapshot) for snapshot in seen] == [0, 1, 2]
    assert seen[2].version > seen[1].version

    subscription.cancel()
    alice.create(PROJECTS, {"name": "Three", "createdAt": "2024-01-03T00:00:00.000Z"})
    assert len(seen) == 3


def test_cancel_is_idempotent_and_notifies_once(backend, alice):
    cancelled = []
    subscription = alice.subscribe(alice.make_query(PROJECTS), lambda snapshot: None, on_cancel=lambda: cancelled.append(1))
    assert backend.hub.count("alice") == 1
    subscription.cancel()
    subscription.cancel()
    assert cancelled == [1]
    assert not subscription.active
    assert backend.hub.count("alice") == 0


def test_writes_only_reach_the_owners_subscribers(alice, bob):
    seen = []
    alice.subscribe(alice.make_query(PROJECTS), seen.append)
    bob.create(PROJECTS, {"name": "Bob's", "createdAt": "2024-01-01T00:00:00.000Z"})
    assert len(seen) == 1


def test_foreign_query_is_refused(alice, bob):
    with pytest.raises(PermissionError):
        bob.subscribe(alice.make_query(PROJECTS), lambda snapshot: None)


def test_cancel_owner_tears_down_every_subscription(backend, alice, bob):
    alice.subscribe(alice.make_query(PROJECTS), lambda snapshot: None)
    alice.subscribe(alice.make_query(TIME_ENTRIES), lambda snapshot: None)
    bob.subscribe(bob.make_query(PROJECTS), lambda snapshot: None)
    assert backend.hub.cancel_owner("alice") == 2
    assert backend.hub.count("alice") == 0
    assert backend.hub.count("bob") == 1


def test_refresh_failure_reports_subscription_error(backend, alice):
    errors = []
    subscription = alice.subscribe(alice.make_query(PROJECTS), lambda snapshot: None, on_error=errors.append)

    def broken_fetch(query):
        raise StoreError()

    backend.hub.publish("alice", [PROJECTS], broken_fetch)
    assert len(errors) == 1
    assert isinstance(errors[0], SubscriptionError)
    assert errors[0].message == "Live updates stopped. Please refresh the page."
    assert not subscription.active
    assert backend.hub.count("alice") == 0


def test_failing_handler_does_not_starve_other_subscribers(alice):
    seen = []

    def explode(snapshot):
        if len(snapshot):
            raise RuntimeError("boom")

    alice.subscribe(alice.make_query(PROJECTS), explode)
    alice.subscribe(alice.make_query(PROJECTS), seen.append)
    alice.create(PROJECTS, {"name": "One", "createdAt": "2024-01-01T00:00:00.000Z"})
    assert [len(snapshot) for snapshot in seen] == [0, 1]


def test_snapshot_stream_is_lazy_and_restartable(backend, alice):
    stream = SnapshotStream(alice.subscribe, alice.make_query(PROJECTS))
    assert backend.hub.count("alice") == 0

    async def take_two():
        iterator = stream.__aiter__()
        first = await iterator.__anext__()
        await asyncio.to_thread(alice.create, PROJECTS, {"name": "Live", "createdAt": "2024-01-01T00:00:00.000Z"})
        second = await iterator.__anext__()
        assert backend.hub.count("alice") == 1
        await iterator.aclose()
        return len(first), len(second)

    assert asyncio.run(take_two()) == (0, 1)
    assert backend.hub.count("alice") == 0

    async def take_one():
        async for snapshot in stream:
            return len(snapshot)

    assert asyncio.run(take_one()) == 1
    assert backend.hub.count("alice") == 0


def test_snapshot_stream_ends_on_sign_out(backend, alice):
    stream = SnapshotStream(alice.subscribe, alice.make_query(PROJECTS))

    async def consume():
        received = 0
        async for _snapshot in stream:
            received += 1
            if received == 1:
                await asyncio.to_thread(backend.hub.cancel_owner, "alice")
        return received

    assert asyncio.run(consume()) == 1
