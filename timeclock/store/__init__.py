from __future__ import annotations

from .base import (
    COLLECTIONS,
    PROFILE,
    PROJECTS,
    TIME_ENTRIES,
    Document,
    DocumentStore,
    Query,
    Snapshot,
    UserStore,
    WriteBatch,
)
from .sql import SqlDocumentStore
from .subscriptions import SnapshotStream, Subscription, SubscriptionHub

__all__ = [
    "COLLECTIONS",
    "PROFILE",
    "PROJECTS",
    "TIME_ENTRIES",
    "Document",
    "DocumentStore",
    "Query",
    "Snapshot",
    "SnapshotStream",
    "SqlDocumentStore",
    "Subscription",
    "SubscriptionHub",
    "UserStore",
    "WriteBatch",
]
