from __future__ import annotations

from sqlalchemy import Column, Index, String, Text, text

from ..db.session import Base


class TimeEntry(Base):
    """A clocked session. ``clock_out_time`` is NULL while the session is open."""

    __tablename__ = "time_entries"

    id = Column(String(32), primary_key=True)
    owner_id = Column(String(32), nullable=False, index=True)
    project_id = Column(String(32), nullable=False, index=True)
    clock_in_time = Column(Text, nullable=False)
    clock_out_time = Column(Text, nullable=True)
    # Local calendar date of clock_in_time in the owner's zone (YYYY-MM-DD).
    date = Column(Text, nullable=False, index=True)
    notes = Column(Text, nullable=False, default="")

    __table_args__ = (
        # At most one open entry per project per owner.
        Index(
            "ux_time_entries_open",
            "owner_id",
            "project_id",
            unique=True,
            sqlite_where=text("clock_out_time IS NULL"),
            postgresql_where=text("clock_out_time IS NULL"),
        ),
    )


__all__ = ["TimeEntry"]
