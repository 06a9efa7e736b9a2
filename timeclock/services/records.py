"""Typed views over store documents."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from ..store.base import Document
from .timecalc import parse_iso


@dataclass(frozen=True)
class Project:
    id: str
    name: str
    created_at: str

    @classmethod
    def from_document(cls, doc: Document) -> "Project":
        return cls(id=doc.id, name=doc.get("name") or "", created_at=doc.get("createdAt") or "")


@dataclass(frozen=True)
class TimeEntry:
    id: str
    project_id: str
    clock_in: datetime
    clock_out: datetime | None
    date: str
    notes: str = ""

    @property
    def is_open(self) -> bool:
        return self.clock_out is None

    @classmethod
    def from_document(cls, doc: Document) -> "TimeEntry":
        clock_in = parse_iso(doc.get("clockInTime"))
        if clock_in is None:
            raise ValueError(f"time entry {doc.id} has no clock-in time")
        return cls(
            id=doc.id,
            project_id=doc.get("projectId") or "",
            clock_in=clock_in,
            clock_out=parse_iso(doc.get("clockOutTime")),
            date=doc.get("date") or "",
            notes=doc.get("notes") or "",
        )


@dataclass(frozen=True)
class Profile:
    id: str
    first_name: str = ""
    last_name: str = ""
    email: str = ""
    photo_url: str = ""
    timezone: str | None = None

    @property
    def display_name(self) -> str:
        full = f"{self.first_name} {self.last_name}".strip()
        return full or self.email

    @classmethod
    def from_document(cls, doc: Document) -> "Profile":
        return cls(
            id=doc.id,
            first_name=doc.get("firstName") or "",
            last_name=doc.get("lastName") or "",
            email=doc.get("email") or "",
            photo_url=doc.get("photoURL") or "",
            timezone=doc.get("timezone") or None,
        )
