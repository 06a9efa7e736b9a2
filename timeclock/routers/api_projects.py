from __future__ import annotations

from fastapi import APIRouter, Depends

from ..core.errors import ValidationFailed
from ..deps.auth import Viewer, get_user_store, get_viewer
from ..schemas.entry import EntryOut, EntryUpdate
from ..schemas.profile import ProfileOut, ProfileUpdate
from ..schemas.project import ClockStatusOut, ProjectCreate, ProjectOut, ProjectUpdate
from ..schemas.summary import (
    DayTotalOut,
    MonthTotalOut,
    OverviewOut,
    ProjectShareOut,
    ProjectTotalsOut,
    WeekTotalOut,
)
from ..services import clock, entries, profiles, projects
from ..services.aggregation import filter_by_date
from ..services.records import Project
from ..services.summary import local_today, overview, project_summary
from ..services.timecalc import parse_date_key, to_iso
from ..store.base import UserStore

router = APIRouter(prefix="/api/v1", tags=["projects"])


def _project_to_schema(project: Project) -> ProjectOut:
    return ProjectOut(id=project.id, name=project.name, created_at=project.created_at)


def _status_to_schema(project_id: str, status: clock.ClockStatus) -> ClockStatusOut:
    entry = status.open_entry
    return ClockStatusOut(
        project_id=project_id,
        state=status.state,
        open_entry_id=entry.id if entry else None,
        clocked_in_since=to_iso(entry.clock_in) if entry else None,
    )


@router.get("/projects", response_model=list[ProjectOut])
def api_list_projects(store: UserStore = Depends(get_user_store)):
    return [_project_to_schema(project) for project in projects.list_projects(store)]


@router.post("/projects", response_model=ProjectOut, status_code=201)
def api_create_project(payload: ProjectCreate, store: UserStore = Depends(get_user_store)):
    return _project_to_schema(projects.create_project(store, payload.name))


@router.get("/projects/{project_id}", response_model=ProjectOut)
def api_get_project(project_id: str, store: UserStore = Depends(get_user_store)):
    return _project_to_schema(projects.get_project(store, project_id))


@router.patch("/projects/{project_id}", response_model=ProjectOut)
def api_rename_project(project_id: str, payload: ProjectUpdate, store: UserStore = Depends(get_user_store)):
    return _project_to_schema(projects.rename_project(store, project_id, payload.name))


@router.delete("/projects/{project_id}")
def api_delete_project(project_id: str, store: UserStore = Depends(get_user_store)):
    removed = projects.delete_project(store, project_id)
    return {"status": "deleted", "entries_deleted": removed}


@router.get("/projects/{project_id}/status", response_model=ClockStatusOut)
def api_clock_status(project_id: str, store: UserStore = Depends(get_user_store)):
    project = projects.get_project(store, project_id)
    return _status_to_schema(project.id, clock.project_status(store, project.id))


@router.post("/projects/{project_id}/clock-in", response_model=EntryOut, status_code=201)
def api_clock_in(project_id: str, viewer: Viewer = Depends(get_viewer)):
    return EntryOut.from_entry(clock.clock_in(viewer.store, project_id, tz=viewer.tz))


@router.post("/projects/{project_id}/clock-out", response_model=EntryOut)
def api_clock_out(project_id: str, store: UserStore = Depends(get_user_store)):
    return EntryOut.from_entry(clock.clock_out(store, project_id))


@router.get("/projects/{project_id}/entries", response_model=list[EntryOut])
def api_list_entries(project_id: str, date: str | None = None, viewer: Viewer = Depends(get_viewer)):
    project = projects.get_project(viewer.store, project_id)
    items = entries.list_entries(viewer.store, project.id)
    if date:
        items = filter_by_date(items, date, viewer.tz)
    return [EntryOut.from_entry(entry) for entry in items]


@router.patch("/projects/{project_id}/entries/{entry_id}", response_model=EntryOut)
def api_edit_entry(project_id: str, entry_id: str, payload: EntryUpdate, viewer: Viewer = Depends(get_viewer)):
    current = entries.get_entry(viewer.store, entry_id, project_id=project_id)
    given = payload.model_fields_set
    updated = entries.edit_entry(
        viewer.store,
        entry_id,
        clock_in=payload.clock_in_time if "clock_in_time" in given else current.clock_in,
        clock_out=payload.clock_out_time if "clock_out_time" in given else current.clock_out,
        notes=payload.notes,
        tz=viewer.tz,
        project_id=project_id,
    )
    return EntryOut.from_entry(updated)


@router.delete("/projects/{project_id}/entries/{entry_id}")
def api_delete_entry(project_id: str, entry_id: str, store: UserStore = Depends(get_user_store)):
    entries.delete_entry(store, entry_id, project_id=project_id)
    return {"status": "deleted"}


@router.get("/projects/{project_id}/totals", response_model=ProjectTotalsOut)
def api_project_totals(project_id: str, date: str | None = None, viewer: Viewer = Depends(get_viewer)):
    """Per-project totals; the week and month figures contain ``date`` (default today)."""
    project = projects.get_project(viewer.store, project_id)
    anchor = parse_date_key(date)
    if date and anchor is None:
        raise ValidationFailed("Dates must be given as YYYY-MM-DD.")
    summary = project_summary(
        entries.list_entries(viewer.store, project.id), project.id, viewer.tz, anchor or local_today(viewer.tz)
    )
    return ProjectTotalsOut(
        project_id=project.id,
        timezone=viewer.tz.key,
        week_start=summary.week_start,
        week_ms=summary.week_ms,
        month=summary.month.strftime("%Y-%m"),
        month_ms=summary.month_ms,
        daily=[DayTotalOut(date=item.date, total_ms=item.total_ms) for item in summary.daily],
        weekly=[WeekTotalOut(week_start=item.week_start, total_ms=item.total_ms) for item in summary.weekly],
        monthly=[MonthTotalOut(month=item.key, total_ms=item.total_ms) for item in summary.monthly],
    )


@router.get("/totals", response_model=OverviewOut)
def api_all_totals(viewer: Viewer = Depends(get_viewer)):
    result = overview(
        entries.list_entries(viewer.store),
        projects.list_projects(viewer.store),
        viewer.tz,
        local_today(viewer.tz),
    )
    return OverviewOut(
        timezone=viewer.tz.key,
        week_start=result.week_start,
        week_ms=result.week_ms,
        month_ms=result.month_ms,
        projects=[
            ProjectShareOut(project_id=item.project.id, name=item.project.name, total_ms=item.total_ms)
            for item in result.projects
        ],
    )


@router.get("/profile", response_model=ProfileOut)
def api_get_profile(viewer: Viewer = Depends(get_viewer)):
    profile = viewer.profile or profiles.ensure_profile(
        viewer.store, viewer.identity.email, default_tz=viewer.tz.key
    )
    return ProfileOut.model_validate(profile, from_attributes=True)


@router.patch("/profile", response_model=ProfileOut)
def api_update_profile(payload: ProfileUpdate, store: UserStore = Depends(get_user_store)):
    updated = profiles.update_profile(store, **payload.model_dump(exclude_unset=True))
    return ProfileOut.model_validate(updated, from_attributes=True)
