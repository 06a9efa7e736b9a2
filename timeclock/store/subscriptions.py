"""Live query subscriptions.

A ``Subscription`` is the cancellable handle returned by
``DocumentStore.subscribe``. The ``SubscriptionHub`` owns every live handle:
after each committed write the store asks the hub to re-run the affected
queries and hand each subscriber a complete snapshot. There is no merging of
partial updates, so a subscriber always renders the latest full state.

Sync routes write from threadpool workers, so the registry is lock guarded
and each subscription serializes delivery against cancellation: once
``cancel()`` returns, its handler is never called again.
"""

from __future__ import annotations

import asyncio
import logging
import threading
from collections import defaultdict
from typing import Any, AsyncIterator, Callable, Iterable

from ..core.errors import StoreError, SubscriptionError
from .base import ErrorHandler, Query, Snapshot, SnapshotHandler

logger = logging.getLogger(__name__)

_CLOSED = object()


class Subscription:
    def __init__(
        self,
        key: Any,
        handler: Callable[[Any], None],
        *,
        on_error: ErrorHandler | None = None,
        on_cancel: Callable[[], None] | None = None,
        detach: Callable[["Subscription"], None] | None = None,
    ) -> None:
        self.key = key
        self._handler = handler
        self._on_error = on_error
        self._on_cancel = on_cancel
        self._detach = detach
        self._lock = threading.RLock()
        self._active = True

    @property
    def active(self) -> bool:
        return self._active

    @property
    def query(self) -> Query:
        return self.key

    def deliver(self, payload: Any) -> bool:
        with self._lock:
            if not self._active:
                return False
            try:
                self._handler(payload)
            except Exception:
                # A failing subscriber must not starve the others sharing this write.
                logger.exception("subscription.handler_failed")
            return True

    def fail(self, exc: Exception) -> None:
        """Report ``exc`` to the error handler and stop; there is no resubscribe."""
        with self._lock:
            if not self._active:
                return
            self._active = False
            if self._on_error is not None:
                try:
                    self._on_error(exc)
                except Exception:
                    logger.exception("subscription.error_handler_failed")
        self._release()

    def cancel(self) -> None:
        with self._lock:
            if not self._active:
                return
            self._active = False
            if self._on_cancel is not None:
                try:
                    self._on_cancel()
                except Exception:
                    logger.exception("subscription.cancel_handler_failed")
        self._release()

    def discard(self) -> None:
        """Deactivate without notifying any handler."""
        with self._lock:
            self._active = False
        self._release()

    def _release(self) -> None:
        if self._detach is not None:
            self._detach(self)
            self._detach = None

    def __enter__(self) -> "Subscription":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.cancel()


class SubscriptionHub:
    """Registry of live query subscriptions keyed by ``(owner, collection)``."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._subscriptions: dict[tuple[str, str], set[Subscription]] = defaultdict(set)
        self._versions: dict[tuple[str, str], int] = defaultdict(int)
        self._closed = False

    def version(self, owner_id: str, collection: str) -> int:
        with self._lock:
            return self._versions[(owner_id, collection)]

    def register(
        self,
        query: Query,
        handler: SnapshotHandler,
        *,
        on_error: ErrorHandler | None = None,
        on_cancel: Callable[[], None] | None = None,
    ) -> Subscription:
        subscription = Subscription(query, handler, on_error=on_error, on_cancel=on_cancel, detach=self._discard)
        with self._lock:
            if self._closed:
                raise SubscriptionError("Live updates are shut down.")
            self._subscriptions[(query.owner_id, query.collection)].add(subscription)
        return subscription

    def _discard(self, subscription: Subscription) -> None:
        query = subscription.query
        with self._lock:
            bucket = self._subscriptions.get((query.owner_id, query.collection))
            if bucket is not None:
                bucket.discard(subscription)
                if not bucket:
                    del self._subscriptions[(query.owner_id, query.collection)]

    def count(self, owner_id: str | None = None) -> int:
        with self._lock:
            return sum(
                len(bucket)
                for (owner, _collection), bucket in self._subscriptions.items()
                if owner_id is None or owner == owner_id
            )

    def _matching(self, owner_id: str, collection: str) -> list[Subscription]:
        with self._lock:
            return list(self._subscriptions.get((owner_id, collection), ()))

    def publish(self, owner_id: str, collections: Iterable[str], fetch: Callable[[Query], Snapshot]) -> None:
        """Re-run every live query on the written collections and deliver the results."""
        for collection in set(collections):
            with self._lock:
                self._versions[(owner_id, collection)] += 1
            results: dict[Query, Snapshot | Exception] = {}
            for subscription in self._matching(owner_id, collection):
                if not subscription.active:
                    continue
                query = subscription.query
                if query not in results:
                    try:
                        results[query] = fetch(query)
                    except StoreError as exc:
                        results[query] = exc
                outcome = results[query]
                if isinstance(outcome, Exception):
                    subscription.fail(SubscriptionError())
                else:
                    subscription.deliver(outcome)

    def cancel_owner(self, owner_id: str) -> int:
        """Tear down every subscription held for ``owner_id`` (sign-out)."""
        with self._lock:
            doomed = [
                subscription
                for (owner, _collection), bucket in self._subscriptions.items()
                if owner == owner_id
                for subscription in bucket
            ]
        for subscription in doomed:
            subscription.cancel()
        return len(doomed)

    def close(self) -> None:
        with self._lock:
            self._closed = True
            doomed = [subscription for bucket in self._subscriptions.values() for subscription in bucket]
        for subscription in doomed:
            subscription.cancel()


class SnapshotStream:
    """Lazy, restartable async sequence of snapshots for one query.

    Nothing is subscribed until iteration starts, and every ``async for``
    opens its own subscription which is cancelled when the loop exits. The
    stream ends when the subscription is torn down elsewhere (sign-out,
    shutdown) and raises ``SubscriptionError`` if the store fails.
    """

    def __init__(self, subscribe: Callable[..., Subscription], query: Query) -> None:
        self._subscribe = subscribe
        self.query = query

    def __aiter__(self) -> AsyncIterator[Snapshot]:
        return self._iterate()

    async def _iterate(self) -> AsyncIterator[Snapshot]:
        loop = asyncio.get_running_loop()
        queue: asyncio.Queue = asyncio.Queue()

        def push(item: Any) -> None:
            if not loop.is_closed():
                loop.call_soon_threadsafe(queue.put_nowait, item)

        subscription = await asyncio.to_thread(
            self._subscribe,
            self.query,
            push,
            on_error=push,
            on_cancel=lambda: push(_CLOSED),
        )
        try:
            while True:
                item = await queue.get()
                if item is _CLOSED:
                    return
                if isinstance(item, Exception):
                    raise item
                yield item
        finally:
            subscription.cancel()
