from __future__ import annotations

from sqlalchemy import Column, String, Text

from ..db.session import Base


class Profile(Base):
    """One row per user; the document id is the owner's uid."""

    __tablename__ = "profiles"

    id = Column(String(32), primary_key=True)
    owner_id = Column(String(32), nullable=False, index=True)
    first_name = Column(Text, nullable=False, default="")
    last_name = Column(Text, nullable=False, default="")
    email = Column(Text, nullable=False, default="")
    photo_url = Column(Text, nullable=False, default="")
    timezone = Column(Text, nullable=True)


__all__ = ["Profile"]
