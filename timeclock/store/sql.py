"""SQLAlchemy implementation of the document store.

Each collection maps onto one table; document fields map onto columns
through ``_COLLECTIONS``. Every operation runs in its own session and
transaction, failures are logged and surfaced as ``StoreError`` (no retry),
and committed writes are published to the subscription hub.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from types import MappingProxyType
from typing import Any, Callable, Mapping

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from ..core.errors import NotFound, StoreConflict, StoreError, SubscriptionError
from ..models.profile import Profile
from ..models.project import Project
from ..models.time_entry import TimeEntry
from .base import PROFILE, PROJECTS, TIME_ENTRIES, Document, Query, Snapshot, WriteOp, new_document_id
from .subscriptions import Subscription, SubscriptionHub

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class _Collection:
    model: type
    fields: Mapping[str, str]  # document field -> model attribute
    defaults: Mapping[str, Any]

    def column(self, field_name: str):
        try:
            return getattr(self.model, self.fields[field_name])
        except KeyError:
            raise ValueError(f"unknown field {field_name!r} for {self.model.__tablename__}") from None


_COLLECTIONS: dict[str, _Collection] = {
    PROFILE: _Collection(
        model=Profile,
        fields={
            "firstName": "first_name",
            "lastName": "last_name",
            "email": "email",
            "photoURL": "photo_url",
            "timezone": "timezone",
        },
        defaults={"firstName": "", "lastName": "", "email": "", "photoURL": "", "timezone": None},
    ),
    PROJECTS: _Collection(
        model=Project,
        fields={"name": "name", "createdAt": "created_at"},
        defaults={},
    ),
    TIME_ENTRIES: _Collection(
        model=TimeEntry,
        fields={
            "projectId": "project_id",
            "clockInTime": "clock_in_time",
            "clockOutTime": "clock_out_time",
            "date": "date",
            "notes": "notes",
        },
        defaults={"clockOutTime": None, "notes": ""},
    ),
}


def _collection(name: str) -> _Collection:
    try:
        return _COLLECTIONS[name]
    except KeyError:
        raise ValueError(f"unknown collection {name!r}") from None


def _to_document(table: _Collection, row: Any) -> Document:
    data = {field_name: getattr(row, attr) for field_name, attr in table.fields.items()}
    return Document(id=row.id, data=MappingProxyType(data))


class SqlDocumentStore:
    """``DocumentStore`` backed by a SQLAlchemy ``sessionmaker``."""

    def __init__(self, session_factory: sessionmaker, hub: SubscriptionHub | None = None) -> None:
        self._session_factory = session_factory
        self.hub = hub or SubscriptionHub()

    # ---- helpers

    def _run(self, action: str, fn: Callable[[Session], Any]) -> Any:
        try:
            with self._session_factory() as db:
                result = fn(db)
                db.commit()
                return result
        except _Missing as exc:
            raise NotFound("That record no longer exists.", details={"collection": exc.collection, "id": exc.doc_id}) from exc
        except IntegrityError as exc:
            logger.warning("store.conflict", extra={"extra_data": {"action": action}})
            raise StoreConflict(details={"action": action}) from exc
        except SQLAlchemyError as exc:
            logger.exception("store.failure", extra={"extra_data": {"action": action}})
            raise StoreError(details={"action": action}) from exc

    def _fetch(self, db: Session, owner_id: str, table: _Collection, doc_id: str):
        row = db.get(table.model, doc_id)
        if row is None or row.owner_id != owner_id:
            return None
        return row

    def _apply(self, db: Session, owner_id: str, op: WriteOp) -> None:
        table = _collection(op.collection)
        if op.kind == "create":
            values = {**table.defaults, **op.data}
            row = table.model(id=op.doc_id, owner_id=owner_id)
            _assign(table, row, values)
            db.add(row)
            db.flush()
            return
        row = self._fetch(db, owner_id, table, op.doc_id)
        if row is None:
            # Deleting an already-deleted document is a no-op, as in hosted stores.
            if op.kind == "delete":
                return
            raise _Missing(op.collection, op.doc_id)
        if op.kind == "update":
            _assign(table, row, op.data)
        elif op.kind == "delete":
            db.delete(row)
        else:
            raise ValueError(f"unknown write kind {op.kind!r}")
        db.flush()

    def _publish(self, owner_id: str, collections: set[str]) -> None:
        self.hub.publish(owner_id, collections, self.query)

    # ---- DocumentStore

    def create(self, owner_id: str, collection: str, data: Mapping[str, Any], *, doc_id: str | None = None) -> str:
        doc_id = doc_id or new_document_id()
        self.commit(owner_id, [WriteOp("create", collection, doc_id, dict(data))])
        return doc_id

    def read_one(self, owner_id: str, collection: str, doc_id: str) -> Document | None:
        table = _collection(collection)

        def _read(db: Session) -> Document | None:
            row = self._fetch(db, owner_id, table, doc_id)
            return _to_document(table, row) if row is not None else None

        return self._run(f"read:{collection}", _read)

    def update(self, owner_id: str, collection: str, doc_id: str, partial: Mapping[str, Any]) -> None:
        self.commit(owner_id, [WriteOp("update", collection, doc_id, dict(partial))])

    def delete(self, owner_id: str, collection: str, doc_id: str) -> None:
        self.commit(owner_id, [WriteOp("delete", collection, doc_id)])

    def commit(self, owner_id: str, ops: list[WriteOp]) -> None:
        """Apply ``ops`` atomically; subscribers see one snapshot per collection."""

        def _write(db: Session) -> None:
            for op in ops:
                self._apply(db, owner_id, op)

        self._run("write:" + ",".join(sorted({op.collection for op in ops})), _write)
        self._publish(owner_id, {op.collection for op in ops})

    def query(self, query: Query) -> Snapshot:
        table = _collection(query.collection)

        def _select(db: Session) -> Snapshot:
            stmt = select(table.model).where(table.model.owner_id == query.owner_id)
            for field_name, value in query.where:
                column = table.column(field_name)
                stmt = stmt.where(column.is_(None) if value is None else column == value)
            if query.order_by:
                column = table.column(query.order_by)
                stmt = stmt.order_by(column.desc() if query.descending else column.asc(), table.model.id)
            else:
                stmt = stmt.order_by(table.model.id)
            rows = db.execute(stmt).scalars().all()
            return Snapshot(
                query=query,
                documents=tuple(_to_document(table, row) for row in rows),
                version=self.hub.version(query.owner_id, query.collection),
            )

        return self._run(f"query:{query.collection}", _select)

    def subscribe(
        self,
        query: Query,
        handler: Callable[[Snapshot], None],
        *,
        on_error: Callable[[Exception], None] | None = None,
        on_cancel: Callable[[], None] | None = None,
    ) -> Subscription:
        """Register ``handler`` and deliver the current snapshot immediately."""
        _collection(query.collection)
        subscription = self.hub.register(query, handler, on_error=on_error, on_cancel=on_cancel)
        try:
            initial = self.query(query)
        except StoreError as exc:
            subscription.discard()
            raise SubscriptionError() from exc
        subscription.deliver(initial)
        return subscription


class _Missing(Exception):
    """Raised inside a transaction so the whole batch rolls back."""

    def __init__(self, collection: str, doc_id: str) -> None:
        super().__init__(f"{collection}/{doc_id} does not exist")
        self.collection = collection
        self.doc_id = doc_id


def _assign(table: _Collection, row: Any, data: Mapping[str, Any]) -> None:
    for field_name, value in data.items():
        if field_name not in table.fields:
            raise ValueError(f"unknown document field {field_name!r}")
        setattr(row, table.fields[field_name], value)
