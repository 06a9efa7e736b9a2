"""HTML pages and form actions. Every route requires a browser session."""

from __future__ import annotations

import calendar
from dataclasses import dataclass
from datetime import date, timedelta
from urllib.parse import urlencode
from zoneinfo import available_timezones

from fastapi import APIRouter, Depends, Form, Request
from fastapi.responses import HTMLResponse, RedirectResponse

from ..core.config import settings
from ..core.errors import TimeclockError
from ..core.jinja import render
from ..core.notices import notify
from ..deps.auth import Viewer, get_viewer
from ..deps.ui_auth import require_ui_session
from ..services import clock, entries, profiles, projects
from ..services.aggregation import daily_totals, filter_by_date, month_bounds, range_total
from ..services.summary import local_today, overview, project_summary
from ..services.timecalc import parse_date_key, parse_local_input, parse_month_key, to_local_input
from ..store.base import TIME_ENTRIES

router = APIRouter(dependencies=[Depends(require_ui_session)])

# Monday-first, matching the weekly totals.
_CALENDAR = calendar.Calendar(firstweekday=0)


@dataclass(frozen=True)
class CalendarDay:
    day: date
    key: str
    in_month: bool
    total_ms: int
    is_today: bool
    is_selected: bool


def _see_other(url: str) -> RedirectResponse:
    return RedirectResponse(url=url, status_code=303)


def _detail_url(project_id: str, **params: str | None) -> str:
    query = urlencode({key: value for key, value in params.items() if value})
    return f"/projects/{project_id}" + (f"?{query}" if query else "")


def _month_grid(month: date, totals: dict[str, int], today: date, selected: date | None) -> list[list[CalendarDay]]:
    return [
        [
            CalendarDay(
                day=day,
                key=day.isoformat(),
                in_month=day.month == month.month,
                total_ms=totals.get(day.isoformat(), 0),
                is_today=day == today,
                is_selected=day == selected,
            )
            for day in week
        ]
        for week in _CALENDAR.monthdatescalendar(month.year, month.month)
    ]


def _shift_month(month: date, delta: int) -> date:
    if delta < 0:
        return (month - timedelta(days=1)).replace(day=1)
    return (month + timedelta(days=32)).replace(day=1)


# ---- projects


@router.get("/", response_class=HTMLResponse)
def index_page(request: Request, viewer: Viewer = Depends(get_viewer)):
    items = projects.list_projects(viewer.store)
    all_entries = entries.list_entries(viewer.store)
    open_ids = {entry.project_id for entry in all_entries if entry.is_open}
    context = {
        "projects": items,
        "open_ids": open_ids,
        "overview": overview(all_entries, items, viewer.tz, local_today(viewer.tz)),
        "profile": viewer.profile,
        "tz": viewer.tz,
        "live_url": f"/live/{TIME_ENTRIES}",
    }
    return render(request, "projects.html", context)


@router.get("/projects", response_class=HTMLResponse)
def projects_page(request: Request, viewer: Viewer = Depends(get_viewer)):
    return index_page(request, viewer)


@router.post("/projects")
def create_project_action(request: Request, name: str = Form(""), viewer: Viewer = Depends(get_viewer)):
    try:
        project = projects.create_project(viewer.store, name)
    except TimeclockError as exc:
        notify(request, exc.message, level="error")
        return _see_other("/")
    notify(request, f"Project \"{project.name}\" created.", level="success")
    return _see_other("/")


@router.get("/projects/{project_id}", response_class=HTMLResponse)
def project_detail_page(
    request: Request,
    project_id: str,
    month: str | None = None,
    date: str | None = None,
    viewer: Viewer = Depends(get_viewer),
):
    project = projects.get_project(viewer.store, project_id)
    tz = viewer.tz
    today = local_today(tz)
    items = entries.list_entries(viewer.store, project.id)
    selected = parse_date_key(date)
    shown_month = parse_month_key(month) or (selected.replace(day=1) if selected else today.replace(day=1))
    if selected is not None:
        anchor = selected
    elif shown_month == today.replace(day=1):
        anchor = today
    else:
        anchor = shown_month
    day_totals = {item.date: item.total_ms for item in daily_totals(items, tz)}
    if selected is not None:
        listed = filter_by_date(items, selected.isoformat(), tz)
    else:
        listed = items[: settings.ENTRY_LIST_LIMIT]
    context = {
        "project": project,
        "status": clock.derive_status(items, project.id),
        "summary": project_summary(items, project.id, tz, anchor),
        "month": shown_month,
        "month_key": shown_month.strftime("%Y-%m"),
        "month_ms": range_total(items, project.id, *month_bounds(shown_month, tz)),
        "prev_month": _shift_month(shown_month, -1).strftime("%Y-%m"),
        "next_month": _shift_month(shown_month, 1).strftime("%Y-%m"),
        "weeks": _month_grid(shown_month, day_totals, today, selected),
        "weekday_names": [calendar.day_abbr[index] for index in _CALENDAR.iterweekdays()],
        "selected": selected,
        "entries": listed,
        "entry_count": len(items),
        "tz": tz,
        "live_url": f"/live/{TIME_ENTRIES}?project_id={project.id}",
    }
    return render(request, "project_detail.html", context)


@router.post("/projects/{project_id}/rename")
def rename_project_action(
    request: Request,
    project_id: str,
    name: str = Form(""),
    viewer: Viewer = Depends(get_viewer),
):
    try:
        project = projects.rename_project(viewer.store, project_id, name)
    except TimeclockError as exc:
        notify(request, exc.message, level="error")
        return _see_other(_detail_url(project_id))
    notify(request, f"Project renamed to \"{project.name}\".", level="success")
    return _see_other(_detail_url(project.id))


@router.get("/projects/{project_id}/delete", response_class=HTMLResponse)
def delete_project_confirm(request: Request, project_id: str, viewer: Viewer = Depends(get_viewer)):
    project = projects.get_project(viewer.store, project_id)
    context = {
        "title": "Delete project",
        "message": f"Delete \"{project.name}\" and all of its time entries? This cannot be undone.",
        "action": f"/projects/{project.id}/delete",
        "cancel_url": _detail_url(project.id),
        "confirm_label": "Delete project",
    }
    return render(request, "confirm.html", context)


@router.post("/projects/{project_id}/delete")
def delete_project_action(request: Request, project_id: str, viewer: Viewer = Depends(get_viewer)):
    try:
        project = projects.get_project(viewer.store, project_id)
        projects.delete_project(viewer.store, project.id)
    except TimeclockError as exc:
        notify(request, exc.message, level="error")
        return _see_other("/")
    notify(request, f"Project \"{project.name}\" deleted.", level="success")
    return _see_other("/")


# ---- clock


@router.post("/projects/{project_id}/clock-in")
def clock_in_action(request: Request, project_id: str, viewer: Viewer = Depends(get_viewer)):
    try:
        clock.clock_in(viewer.store, project_id, tz=viewer.tz)
    except TimeclockError as exc:
        notify(request, exc.message, level="error")
    return _see_other(_detail_url(project_id))


@router.post("/projects/{project_id}/clock-out")
def clock_out_action(request: Request, project_id: str, viewer: Viewer = Depends(get_viewer)):
    try:
        clock.clock_out(viewer.store, project_id)
    except TimeclockError as exc:
        notify(request, exc.message, level="error")
    return _see_other(_detail_url(project_id))


# ---- entries


@router.get("/projects/{project_id}/entries/{entry_id}/edit", response_class=HTMLResponse)
def edit_entry_page(request: Request, project_id: str, entry_id: str, viewer: Viewer = Depends(get_viewer)):
    project = projects.get_project(viewer.store, project_id)
    entry = entries.get_entry(viewer.store, entry_id, project_id=project.id)
    context = {
        "project": project,
        "entry": entry,
        "clock_in_value": to_local_input(entry.clock_in, viewer.tz),
        "clock_out_value": to_local_input(entry.clock_out, viewer.tz),
        "tz": viewer.tz,
    }
    return render(request, "entry_edit.html", context)


@router.post("/projects/{project_id}/entries/{entry_id}/edit")
def edit_entry_action(
    request: Request,
    project_id: str,
    entry_id: str,
    clock_in: str = Form(""),
    clock_out: str = Form(""),
    notes: str = Form(""),
    viewer: Viewer = Depends(get_viewer),
):
    edit_url = f"/projects/{project_id}/entries/{entry_id}/edit"
    try:
        start = parse_local_input(clock_in, viewer.tz)
        stop = parse_local_input(clock_out, viewer.tz)
    except ValueError:
        notify(request, "Enter dates and times as YYYY-MM-DDTHH:MM.", level="error")
        return _see_other(edit_url)
    try:
        entry = entries.edit_entry(
            viewer.store,
            entry_id,
            clock_in=start,
            clock_out=stop,
            notes=notes,
            tz=viewer.tz,
            project_id=project_id,
        )
    except TimeclockError as exc:
        notify(request, exc.message, level="error")
        return _see_other(edit_url)
    notify(request, "Time entry updated.", level="success")
    return _see_other(_detail_url(project_id, date=entry.date))


@router.get("/projects/{project_id}/entries/{entry_id}/delete", response_class=HTMLResponse)
def delete_entry_confirm(request: Request, project_id: str, entry_id: str, viewer: Viewer = Depends(get_viewer)):
    entry = entries.get_entry(viewer.store, entry_id, project_id=project_id)
    context = {
        "title": "Delete time entry",
        "message": f"Delete the time entry from {entry.date}? This cannot be undone.",
        "action": f"/projects/{project_id}/entries/{entry.id}/delete",
        "cancel_url": _detail_url(project_id, date=entry.date),
        "confirm_label": "Delete entry",
    }
    return render(request, "confirm.html", context)


@router.post("/projects/{project_id}/entries/{entry_id}/delete")
def delete_entry_action(request: Request, project_id: str, entry_id: str, viewer: Viewer = Depends(get_viewer)):
    try:
        entries.delete_entry(viewer.store, entry_id, project_id=project_id)
    except TimeclockError as exc:
        notify(request, exc.message, level="error")
    else:
        notify(request, "Time entry deleted.", level="success")
    return _see_other(_detail_url(project_id))


# ---- profile


@router.get("/profile", response_class=HTMLResponse)
def profile_page(request: Request, viewer: Viewer = Depends(get_viewer)):
    profile = viewer.profile or profiles.ensure_profile(
        viewer.store, viewer.identity.email, default_tz=settings.TZ
    )
    context = {
        "profile": profile,
        "timezones": sorted(available_timezones()),
        "current_tz": viewer.tz.key,
    }
    return render(request, "profile.html", context)


@router.post("/profile")
def profile_action(
    request: Request,
    first_name: str = Form(""),
    last_name: str = Form(""),
    photo_url: str = Form(""),
    timezone: str = Form(""),
    viewer: Viewer = Depends(get_viewer),
):
    try:
        profiles.update_profile(
            viewer.store,
            first_name=first_name,
            last_name=last_name,
            photo_url=photo_url,
            timezone=timezone or viewer.tz.key,
        )
    except TimeclockError as exc:
        notify(request, exc.message, level="error")
    else:
        notify(request, "Profile saved.", level="success")
    return _see_other("/profile")
