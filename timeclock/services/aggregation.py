"""Time totals over an in-memory set of time entries.

Everything here is a pure function of its arguments: entries come from the
latest store snapshot, calendars are computed in the viewer's zone, and open
entries (no clock-out yet) contribute nothing to any sum.
"""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, tzinfo
from typing import Iterable, Sequence

from .records import Project, TimeEntry
from .timecalc import local_date_key

ONE_MS = timedelta(milliseconds=1)


@dataclass(frozen=True)
class DayTotal:
    date: str
    total_ms: int


@dataclass(frozen=True)
class WeekTotal:
    week_start: date
    total_ms: int


@dataclass(frozen=True)
class MonthTotal:
    year: int
    month: int
    total_ms: int

    @property
    def key(self) -> str:
        return f"{self.year:04d}-{self.month:02d}"


@dataclass(frozen=True)
class ProjectTotal:
    project: Project
    total_ms: int


def duration_ms(entry: TimeEntry) -> int:
    if entry.clock_out is None:
        return 0
    return (entry.clock_out - entry.clock_in) // ONE_MS


def entry_local_date(entry: TimeEntry, tz: tzinfo) -> date:
    return entry.clock_in.astimezone(tz).date()


def group_by_local_date(entries: Iterable[TimeEntry], tz: tzinfo) -> dict[str, list[TimeEntry]]:
    grouped: dict[str, list[TimeEntry]] = defaultdict(list)
    for entry in entries:
        grouped[local_date_key(entry.clock_in, tz)].append(entry)
    return dict(grouped)


def daily_totals(entries: Iterable[TimeEntry], tz: tzinfo) -> list[DayTotal]:
    grouped = group_by_local_date(entries, tz)
    totals = [DayTotal(key, sum(duration_ms(entry) for entry in day)) for key, day in grouped.items()]
    return sorted(totals, key=lambda item: item.date, reverse=True)


def week_start(day: date) -> date:
    """The Monday at or before ``day``."""
    return day - timedelta(days=day.weekday())


def weekly_totals(entries: Iterable[TimeEntry], tz: tzinfo) -> list[WeekTotal]:
    buckets: dict[date, int] = defaultdict(int)
    for entry in entries:
        if entry.clock_out is None:
            continue
        buckets[week_start(entry_local_date(entry, tz))] += duration_ms(entry)
    return [WeekTotal(start, total) for start, total in sorted(buckets.items(), reverse=True)]


def monthly_totals(entries: Iterable[TimeEntry], tz: tzinfo) -> list[MonthTotal]:
    buckets: dict[tuple[int, int], int] = defaultdict(int)
    for entry in entries:
        if entry.clock_out is None:
            continue
        local = entry_local_date(entry, tz)
        buckets[(local.year, local.month)] += duration_ms(entry)
    return [MonthTotal(year, month, total) for (year, month), total in sorted(buckets.items(), reverse=True)]


def current_open_entry(entries: Iterable[TimeEntry], project_id: str) -> TimeEntry | None:
    # More than one match means the store let a duplicate through; the first one wins.
    for entry in entries:
        if entry.project_id == project_id and entry.clock_out is None:
            return entry
    return None


def filter_by_date(entries: Iterable[TimeEntry], date_key: str, tz: tzinfo) -> list[TimeEntry]:
    return [entry for entry in entries if local_date_key(entry.clock_in, tz) == date_key]


def range_total(entries: Iterable[TimeEntry], project_id: str | None, start: datetime, end: datetime) -> int:
    """Completed milliseconds with clock-in in ``[start, end)``; ``None`` means every project."""
    return sum(
        duration_ms(entry)
        for entry in entries
        if (project_id is None or entry.project_id == project_id) and start <= entry.clock_in < end
    )


def local_midnight(day: date, tz: tzinfo) -> datetime:
    return datetime.combine(day, time.min, tzinfo=tz)


def week_bounds(anchor: date, tz: tzinfo) -> tuple[datetime, datetime]:
    start = week_start(anchor)
    return local_midnight(start, tz), local_midnight(start + timedelta(days=7), tz)


def month_bounds(anchor: date, tz: tzinfo) -> tuple[datetime, datetime]:
    first = anchor.replace(day=1)
    following = (first + timedelta(days=32)).replace(day=1)
    return local_midnight(first, tz), local_midnight(following, tz)


def project_totals(
    entries: Sequence[TimeEntry],
    projects: Iterable[Project],
    start: datetime,
    end: datetime,
) -> list[ProjectTotal]:
    """Per-project completed time in ``[start, end)``, largest first."""
    totals = [ProjectTotal(project, range_total(entries, project.id, start, end)) for project in projects]
    return sorted(totals, key=lambda item: (-item.total_ms, item.project.name.lower()))
