"""Project lifecycle: create, rename, cascade delete."""

from __future__ import annotations

import logging

from ..core.errors import NotFound, ValidationFailed
from ..store.base import PROJECTS, TIME_ENTRIES, Snapshot, UserStore
from .records import Project
from .timecalc import to_iso, utcnow

logger = logging.getLogger(__name__)

NAME_MAX_LENGTH = 200


def _clean_name(name: str | None) -> str:
    cleaned = (name or "").strip()
    if not cleaned:
        raise ValidationFailed("Project name cannot be empty.")
    if len(cleaned) > NAME_MAX_LENGTH:
        raise ValidationFailed(f"Project name cannot be longer than {NAME_MAX_LENGTH} characters.")
    return cleaned


def projects_from_snapshot(snapshot: Snapshot) -> list[Project]:
    return [Project.from_document(doc) for doc in snapshot]


def list_projects(store: UserStore) -> list[Project]:
    return projects_from_snapshot(store.query(PROJECTS, order_by="createdAt", descending=True))


def get_project(store: UserStore, project_id: str) -> Project:
    doc = store.read_one(PROJECTS, project_id)
    if doc is None:
        raise NotFound("Project not found.")
    return Project.from_document(doc)


def create_project(store: UserStore, name: str | None) -> Project:
    cleaned = _clean_name(name)
    project_id = store.create(PROJECTS, {"name": cleaned, "createdAt": to_iso(utcnow())})
    logger.info("project.created", extra={"extra_data": {"project_id": project_id}})
    return get_project(store, project_id)


def rename_project(store: UserStore, project_id: str, name: str | None) -> Project:
    cleaned = _clean_name(name)
    project = get_project(store, project_id)
    store.update(PROJECTS, project.id, {"name": cleaned})
    return get_project(store, project.id)


def delete_project(store: UserStore, project_id: str) -> int:
    """Delete a project and every time entry referencing it in one batch.

    Returns the number of entries removed.
    """
    project = get_project(store, project_id)
    entries = store.query(TIME_ENTRIES, where={"projectId": project.id})
    with store.batch() as batch:
        for doc in entries:
            batch.delete(TIME_ENTRIES, doc.id)
        batch.delete(PROJECTS, project.id)
    logger.info(
        "project.deleted",
        extra={"extra_data": {"project_id": project.id, "entries_deleted": len(entries)}},
    )
    return len(entries)
