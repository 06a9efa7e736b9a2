"""Small idempotent migrations run at startup after ``create_all``."""

from __future__ import annotations

import logging
from typing import Iterable

from sqlalchemy import inspect, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError

from ..services.timecalc import local_date_key, parse_iso, resolve_tz

logger = logging.getLogger(__name__)

# Additive only. Columns introduced after the first release of each table.
NEEDED_COLUMNS: dict[str, dict[str, str]] = {
    "time_entries": {"notes": "TEXT DEFAULT '' NOT NULL"},
    "profiles": {"timezone": "TEXT"},
}

OPEN_ENTRY_INDEX = "ux_time_entries_open"


def _column_names(engine: Engine, table: str) -> set[str]:
    inspector = inspect(engine)
    if not inspector.has_table(table):
        return set()
    return {column["name"] for column in inspector.get_columns(table)}


def _add_column(engine: Engine, table: str, col_def: str) -> None:
    with engine.begin() as conn:
        conn.execute(text(f"ALTER TABLE {table} ADD COLUMN {col_def}"))


def _create_index_if_not_exists(
    engine: Engine,
    table: str,
    name: str,
    cols: Iterable[str],
    *,
    unique: bool = False,
    where: str | None = None,
) -> None:
    cols_sql = ", ".join(cols)
    unique_sql = "UNIQUE " if unique else ""
    where_sql = f" WHERE {where}" if where else ""
    with engine.begin() as conn:
        conn.execute(text(f"CREATE {unique_sql}INDEX IF NOT EXISTS {name} ON {table} ({cols_sql}){where_sql}"))


def rekey_entry_dates(engine: Engine, default_tz: str) -> int:
    """Recompute every entry's ``date`` from its clock-in in the owner's zone.

    Rows written under the old convention carry the UTC calendar date, which
    is wrong for late-evening sessions west of Greenwich. Returns the number
    of rows changed.
    """
    with engine.connect() as conn:
        rows = conn.execute(
            text(
                "SELECT e.id, e.clock_in_time, e.date, p.timezone "
                "FROM time_entries e LEFT JOIN profiles p ON p.id = e.owner_id"
            )
        ).all()
    changes: list[dict[str, str]] = []
    for entry_id, clock_in_time, current, zone in rows:
        try:
            clock_in = parse_iso(clock_in_time)
        except ValueError:
            logger.warning("migrate.bad_timestamp", extra={"extra_data": {"entry_id": entry_id}})
            continue
        if clock_in is None:
            continue
        key = local_date_key(clock_in, resolve_tz(zone, fallback=default_tz))
        if key != current:
            changes.append({"id": entry_id, "date": key})
    if changes:
        with engine.begin() as conn:
            conn.execute(text("UPDATE time_entries SET date = :date WHERE id = :id"), changes)
    return len(changes)


def run_migrations(engine: Engine, *, default_tz: str = "UTC") -> None:
    for table, needed in NEEDED_COLUMNS.items():
        existing = _column_names(engine, table)
        if not existing:
            # Table absent; create_all builds it fresh.
            continue
        for name, col_def in needed.items():
            if name not in existing:
                _add_column(engine, table, f"{name} {col_def}")
                logger.info("migrate.column_added", extra={"extra_data": {"table": table, "column": name}})

    if not _column_names(engine, "time_entries"):
        return

    try:
        _create_index_if_not_exists(
            engine,
            "time_entries",
            OPEN_ENTRY_INDEX,
            ["owner_id", "project_id"],
            unique=True,
            where="clock_out_time IS NULL",
        )
    except IntegrityError:
        # Legacy data already holds two open entries for one project; leave it to the owner to fix.
        logger.warning("migrate.open_index_skipped")

    changed = rekey_entry_dates(engine, default_tz)
    if changed:
        logger.info("migrate.dates_rekeyed", extra={"extra_data": {"rows": changed}})
