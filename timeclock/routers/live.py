"""Server-sent events carrying full collection snapshots."""

from __future__ import annotations

import json
import logging

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import StreamingResponse

from ..core.errors import SubscriptionError
from ..deps.auth import Viewer, get_viewer
from ..store.base import COLLECTIONS, TIME_ENTRIES, Snapshot
from ..store.subscriptions import SnapshotStream

logger = logging.getLogger(__name__)

router = APIRouter(tags=["live"])


def _event(name: str, payload: dict) -> str:
    return f"event: {name}\ndata: {json.dumps(payload, separators=(',', ':'), default=str)}\n\n"


def _snapshot_payload(snapshot: Snapshot) -> dict:
    return {
        "collection": snapshot.query.collection,
        "version": snapshot.version,
        "documents": [{"id": doc.id, **doc.data} for doc in snapshot],
    }


@router.get("/live/{collection}")
async def live_collection(
    collection: str,
    request: Request,
    project_id: str | None = None,
    viewer: Viewer = Depends(get_viewer),
):
    if collection not in COLLECTIONS:
        raise HTTPException(status_code=404, detail="Unknown collection")
    where = {"projectId": project_id} if project_id and collection == TIME_ENTRIES else None
    stream = SnapshotStream(viewer.store.subscribe, viewer.store.make_query(collection, where=where))
    uid = viewer.identity.uid

    async def events():
        logger.info("live.opened", extra={"extra_data": {"uid": uid, "collection": collection}})
        try:
            async for snapshot in stream:
                if await request.is_disconnected():
                    break
                yield _event("snapshot", _snapshot_payload(snapshot))
        except SubscriptionError as exc:
            yield _event("error", {"message": exc.message})
        finally:
            logger.info("live.closed", extra={"extra_data": {"uid": uid, "collection": collection}})

    return StreamingResponse(
        events(),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
    )
