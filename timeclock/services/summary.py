"""Bundles of totals for one project or for all of them, as pages show them."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, tzinfo
from typing import Sequence

from .aggregation import (
    DayTotal,
    MonthTotal,
    ProjectTotal,
    WeekTotal,
    daily_totals,
    month_bounds,
    monthly_totals,
    project_totals,
    range_total,
    week_bounds,
    week_start,
    weekly_totals,
)
from .records import Project, TimeEntry
from .timecalc import utcnow


def local_today(tz: tzinfo, now: datetime | None = None) -> date:
    return (now or utcnow()).astimezone(tz).date()


@dataclass(frozen=True)
class ProjectSummary:
    daily: list[DayTotal]
    weekly: list[WeekTotal]
    monthly: list[MonthTotal]
    week_start: date
    week_ms: int
    month: date
    month_ms: int


@dataclass(frozen=True)
class Overview:
    week_start: date
    week_ms: int
    month_ms: int
    projects: list[ProjectTotal]


def project_summary(entries: Sequence[TimeEntry], project_id: str, tz: tzinfo, anchor: date) -> ProjectSummary:
    """Full breakdowns plus the week and month containing ``anchor``."""
    own = [entry for entry in entries if entry.project_id == project_id]
    return ProjectSummary(
        daily=daily_totals(own, tz),
        weekly=weekly_totals(own, tz),
        monthly=monthly_totals(own, tz),
        week_start=week_start(anchor),
        week_ms=range_total(own, project_id, *week_bounds(anchor, tz)),
        month=anchor.replace(day=1),
        month_ms=range_total(own, project_id, *month_bounds(anchor, tz)),
    )


def overview(entries: Sequence[TimeEntry], projects: Sequence[Project], tz: tzinfo, today: date) -> Overview:
    """This week's and this month's time across every project, plus each project's share of the week."""
    week_range = week_bounds(today, tz)
    return Overview(
        week_start=week_start(today),
        week_ms=range_total(entries, None, *week_range),
        month_ms=range_total(entries, None, *month_bounds(today, tz)),
        projects=project_totals(entries, projects, *week_range),
    )
