from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, field_validator

from ..services.aggregation import duration_ms
from ..services.records import TimeEntry
from ..services.timecalc import to_iso


class EntryOut(BaseModel):
    id: str
    project_id: str
    clock_in_time: str
    clock_out_time: Optional[str] = None
    date: str
    notes: str = ""
    duration_ms: int = 0

    @classmethod
    def from_entry(cls, entry: TimeEntry) -> "EntryOut":
        return cls(
            id=entry.id,
            project_id=entry.project_id,
            clock_in_time=to_iso(entry.clock_in),
            clock_out_time=to_iso(entry.clock_out) if entry.clock_out else None,
            date=entry.date,
            notes=entry.notes,
            duration_ms=duration_ms(entry),
        )


class EntryUpdate(BaseModel):
    """Partial update. Omitted fields keep their stored value; an explicit
    ``clock_out_time: null`` re-opens the entry."""

    clock_in_time: Optional[datetime] = None
    clock_out_time: Optional[datetime] = None
    notes: Optional[str] = None

    @field_validator("clock_in_time", "clock_out_time")
    @classmethod
    def require_offset(cls, value: Optional[datetime]) -> Optional[datetime]:
        if value is not None and value.tzinfo is None:
            raise ValueError("timestamp must include a UTC offset")
        return value
