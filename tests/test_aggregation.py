"""Totals over in-memory entries: grouping, week/month buckets and ranges."""

import os
import sys
from datetime import date, datetime, timedelta, timezone
from pathlib import Path
from zoneinfo import ZoneInfo

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

os.environ.setdefault("DB_URL", "sqlite://")

from timeclock.services.aggregation import (
    current_open_entry,
    daily_totals,
    duration_ms,
    filter_by_date,
    group_by_local_date,
    month_bounds,
    monthly_totals,
    project_totals,
    range_total,
    week_bounds,
    weekly_totals,
)
from timeclock.services.clock import ClockState, derive_status
from timeclock.services.records import Project, TimeEntry
from timeclock.services.timecalc import format_duration, local_date_key

CHI = ZoneInfo("America/Chicago")
HOUR = 3_600_000


def local(year, month, day, hour=0, minute=0):
    return datetime(year, month, day, hour, minute, tzinfo=CHI)


def make_entry(entry_id, start, end=None, project_id="p1"):
    return TimeEntry(
        id=entry_id,
        project_id=project_id,
        clock_in=start,
        clock_out=end,
        date=local_date_key(start, CHI),
    )


def sample_entries():
    return [
        make_entry("a", local(2024, 1, 15, 9), local(2024, 1, 15, 10, 30)),
        make_entry("b", local(2024, 1, 15, 14), local(2024, 1, 15, 15)),
        make_entry("c", local(2024, 1, 17, 8), local(2024, 1, 17, 12)),
        make_entry("d", local(2024, 1, 22, 9), local(2024, 1, 22, 9, 45), project_id="p2"),
        make_entry("e", local(2024, 2, 1, 13), local(2024, 2, 1, 14)),
        make_entry("f", local(2024, 2, 2, 9)),
    ]


def test_duration_is_zero_for_open_entries():
    assert duration_ms(make_entry("x", local(2024, 1, 15, 9))) == 0
    assert duration_ms(make_entry("y", local(2024, 1, 15, 9), local(2024, 1, 15, 9, 1))) == 60_000


def test_two_sessions_on_one_day_add_up():
    entries = [
        make_entry("a", local(2024, 1, 15, 9), local(2024, 1, 15, 10)),
        make_entry("b", local(2024, 1, 15, 14), local(2024, 1, 15, 15)),
    ]
    totals = daily_totals(entries, CHI)
    assert [(item.date, item.total_ms) for item in totals] == [("2024-01-15", 7_200_000)]


def test_session_crossing_midnight_belongs_to_clock_in_day():
    entry = make_entry("late", local(2024, 1, 15, 23, 50), local(2024, 1, 16, 0, 10))
    assert entry.date == "2024-01-15"
    assert duration_ms(entry) == 20 * 60_000
    totals = daily_totals([entry], CHI)
    assert [(item.date, item.total_ms) for item in totals] == [("2024-01-15", 1_200_000)]


def test_grouping_uses_local_date_not_utc_slice():
    # 20:00 in Chicago is 02:00 UTC the next day.
    entry = make_entry("evening", local(2024, 1, 15, 20), local(2024, 1, 15, 21))
    assert entry.clock_in.astimezone(timezone.utc).date().isoformat() == "2024-01-16"
    assert list(group_by_local_date([entry], CHI)) == ["2024-01-15"]
    assert filter_by_date([entry], "2024-01-15", CHI) == [entry]
    assert filter_by_date([entry], "2024-01-16", CHI) == []


def test_daily_totals_partition_closed_durations():
    entries = sample_entries()
    daily_sum = sum(item.total_ms for item in daily_totals(entries, CHI))
    closed_sum = sum(duration_ms(entry) for entry in entries if entry.clock_out is not None)
    assert daily_sum == closed_sum


def test_daily_totals_are_descending_and_list_open_days():
    totals = daily_totals(sample_entries(), CHI)
    keys = [item.date for item in totals]
    assert keys == sorted(keys, reverse=True)
    assert totals[0].date == "2024-02-02"
    assert totals[0].total_ms == 0


def test_weekly_buckets_start_on_monday_and_skip_open_entries():
    totals = weekly_totals(sample_entries(), CHI)
    assert all(item.week_start.weekday() == 0 for item in totals)
    by_week = {item.week_start: item.total_ms for item in totals}
    assert by_week[date(2024, 1, 15)] == int(2.5 * HOUR) + 4 * HOUR
    assert by_week[date(2024, 1, 22)] == 45 * 60_000
    # Feb 1 is a Thursday; the open Feb 2 session adds nothing.
    assert by_week[date(2024, 1, 29)] == HOUR
    assert [item.week_start for item in totals] == sorted(by_week, reverse=True)


def test_week_boundary_is_monday_midnight_local():
    sunday_night = make_entry("sun", local(2024, 1, 21, 23, 30), local(2024, 1, 21, 23, 59))
    monday_morning = make_entry("mon", local(2024, 1, 22, 0, 0), local(2024, 1, 22, 0, 30))
    by_week = {item.week_start: item.total_ms for item in weekly_totals([sunday_night, monday_morning], CHI)}
    assert by_week == {date(2024, 1, 15): 29 * 60_000, date(2024, 1, 22): 30 * 60_000}


def test_monthly_totals():
    totals = monthly_totals(sample_entries(), CHI)
    assert [(item.key, item.total_ms) for item in totals] == [
        ("2024-02", HOUR),
        ("2024-01", int(2.5 * HOUR) + 4 * HOUR + 45 * 60_000),
    ]


def test_totals_are_idempotent():
    entries = sample_entries()
    assert daily_totals(entries, CHI) == daily_totals(entries, CHI)
    assert weekly_totals(entries, CHI) == weekly_totals(entries, CHI)
    assert monthly_totals(entries, CHI) == monthly_totals(entries, CHI)


def test_open_entry_is_found_and_state_is_clocked_in():
    first = make_entry("first", local(2024, 1, 15, 9), local(2024, 1, 15, 10))
    second = make_entry("second", local(2024, 1, 15, 11))
    assert current_open_entry([first, second], "p1") is second
    status = derive_status([first, second], "p1")
    assert status.state is ClockState.CLOCKED_IN
    assert status.open_entry is second
    assert derive_status([first], "p1").state is ClockState.CLOCKED_OUT
    assert current_open_entry([second], "other") is None


def test_range_total_per_project_and_across_projects():
    entries = sample_entries()
    start, end = local(2024, 1, 15), local(2024, 1, 29)
    assert range_total(entries, "p1", start, end) == int(2.5 * HOUR) + 4 * HOUR
    assert range_total(entries, "p2", start, end) == 45 * 60_000
    assert range_total(entries, None, start, end) == int(2.5 * HOUR) + 4 * HOUR + 45 * 60_000
    # End is exclusive.
    assert range_total(entries, "p2", start, local(2024, 1, 22, 9)) == 0


def test_week_and_month_bounds():
    start, end = week_bounds(date(2024, 1, 17), CHI)
    assert (start.date(), end.date()) == (date(2024, 1, 15), date(2024, 1, 22))
    assert start.hour == 0 and start.tzinfo is CHI
    start, end = month_bounds(date(2024, 12, 9), CHI)
    assert (start.date(), end.date()) == (date(2024, 12, 1), date(2025, 1, 1))
    start, end = month_bounds(date(2024, 2, 29), CHI)
    assert end - start == timedelta(days=29)


def test_project_totals_orders_by_time_spent():
    projects = [Project("p1", "Alpha", ""), Project("p2", "Beta", ""), Project("p3", "Gamma", "")]
    totals = project_totals(sample_entries(), projects, local(2024, 1, 22), local(2024, 1, 29))
    assert [(item.project.id, item.total_ms) for item in totals] == [("p2", 45 * 60_000), ("p1", 0), ("p3", 0)]


def test_format_duration():
    assert format_duration(5_400_000) == "1h 30m 0s"
    assert format_duration(0) == "0h 0m 0s"
    assert format_duration(-1) == "N/A"
