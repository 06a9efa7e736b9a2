"""SQLAlchemy model for the projects a user clocks time against."""

from __future__ import annotations

from sqlalchemy import Column, String, Text

from ..db.session import Base


class Project(Base):
    __tablename__ = "projects"

    id = Column(String(32), primary_key=True)
    owner_id = Column(String(32), nullable=False, index=True)
    name = Column(Text, nullable=False)
    created_at = Column(Text, nullable=False)


__all__ = ["Project"]
