"""Document store contract.

The application never talks to tables directly. Views and services hold a
``UserStore``: a handle on a ``DocumentStore`` scoped to one signed-in owner,
exposing the operations a hosted document database offers (create, read one,
update, delete, query, live subscription and atomic batches). Documents are
plain mappings using the persisted field names (``projectId``,
``clockInTime`` ...).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Callable, Iterator, Mapping, Protocol
from uuid import uuid4

PROFILE = "profile"
PROJECTS = "projects"
TIME_ENTRIES = "timeEntries"

COLLECTIONS = (PROFILE, PROJECTS, TIME_ENTRIES)


def new_document_id() -> str:
    return uuid4().hex


@dataclass(frozen=True)
class Document:
    id: str
    data: Mapping[str, Any]

    def get(self, key: str, default: Any = None) -> Any:
        return self.data.get(key, default)


@dataclass(frozen=True)
class Query:
    """Equality filters plus an optional ordering over one owner's collection."""

    owner_id: str
    collection: str
    where: tuple[tuple[str, Any], ...] = ()
    order_by: str | None = None
    descending: bool = False


@dataclass(frozen=True)
class Snapshot:
    """Full result of a query at one point in time."""

    query: Query
    documents: tuple[Document, ...]
    version: int = 0

    def __iter__(self) -> Iterator[Document]:
        return iter(self.documents)

    def __len__(self) -> int:
        return len(self.documents)


@dataclass(frozen=True)
class WriteOp:
    kind: str  # create | update | delete
    collection: str
    doc_id: str
    data: Mapping[str, Any] = field(default_factory=dict)


SnapshotHandler = Callable[[Snapshot], None]
ErrorHandler = Callable[[Exception], None]


class DocumentStore(Protocol):
    def create(self, owner_id: str, collection: str, data: Mapping[str, Any], *, doc_id: str | None = None) -> str: ...

    def read_one(self, owner_id: str, collection: str, doc_id: str) -> Document | None: ...

    def update(self, owner_id: str, collection: str, doc_id: str, partial: Mapping[str, Any]) -> None: ...

    def delete(self, owner_id: str, collection: str, doc_id: str) -> None: ...

    def query(self, query: Query) -> Snapshot: ...

    def commit(self, owner_id: str, ops: list[WriteOp]) -> None: ...

    def subscribe(
        self,
        query: Query,
        handler: SnapshotHandler,
        *,
        on_error: ErrorHandler | None = None,
        on_cancel: Callable[[], None] | None = None,
    ): ...


class WriteBatch:
    """Collects writes and applies them in a single transaction on ``commit``."""

    def __init__(self, store: DocumentStore, owner_id: str) -> None:
        self._store = store
        self._owner_id = owner_id
        self._ops: list[WriteOp] = []
        self._committed = False

    def create(self, collection: str, data: Mapping[str, Any], *, doc_id: str | None = None) -> str:
        doc_id = doc_id or new_document_id()
        self._ops.append(WriteOp("create", collection, doc_id, MappingProxyType(dict(data))))
        return doc_id

    def update(self, collection: str, doc_id: str, partial: Mapping[str, Any]) -> None:
        self._ops.append(WriteOp("update", collection, doc_id, MappingProxyType(dict(partial))))

    def delete(self, collection: str, doc_id: str) -> None:
        self._ops.append(WriteOp("delete", collection, doc_id))

    def commit(self) -> None:
        if self._committed:
            raise RuntimeError("batch already committed")
        self._committed = True
        if self._ops:
            self._store.commit(self._owner_id, list(self._ops))

    def __len__(self) -> int:
        return len(self._ops)

    def __enter__(self) -> "WriteBatch":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        if exc_type is None and not self._committed:
            self.commit()


class UserStore:
    """A ``DocumentStore`` bound to one owner; what routes and services receive."""

    def __init__(self, store: DocumentStore, owner_id: str) -> None:
        self.store = store
        self.owner_id = owner_id

    def create(self, collection: str, data: Mapping[str, Any], *, doc_id: str | None = None) -> str:
        return self.store.create(self.owner_id, collection, data, doc_id=doc_id)

    def read_one(self, collection: str, doc_id: str) -> Document | None:
        return self.store.read_one(self.owner_id, collection, doc_id)

    def update(self, collection: str, doc_id: str, partial: Mapping[str, Any]) -> None:
        self.store.update(self.owner_id, collection, doc_id, partial)

    def delete(self, collection: str, doc_id: str) -> None:
        self.store.delete(self.owner_id, collection, doc_id)

    def make_query(
        self,
        collection: str,
        *,
        where: Mapping[str, Any] | None = None,
        order_by: str | None = None,
        descending: bool = False,
    ) -> Query:
        return Query(
            owner_id=self.owner_id,
            collection=collection,
            where=tuple(sorted((where or {}).items())),
            order_by=order_by,
            descending=descending,
        )

    def query(self, collection: str, **kwargs: Any) -> Snapshot:
        return self.store.query(self.make_query(collection, **kwargs))

    def subscribe(
        self,
        query: Query,
        handler: SnapshotHandler,
        *,
        on_error: ErrorHandler | None = None,
        on_cancel: Callable[[], None] | None = None,
    ):
        if query.owner_id != self.owner_id:
            raise PermissionError("query belongs to another owner")
        return self.store.subscribe(query, handler, on_error=on_error, on_cancel=on_cancel)

    def batch(self) -> WriteBatch:
        return WriteBatch(self.store, self.owner_id)
