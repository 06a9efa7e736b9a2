"""Credentials table behind ``LocalIdentityProvider``."""

from __future__ import annotations

from sqlalchemy import Column, String, Text

from ..db.session import Base


class Account(Base):
    __tablename__ = "accounts"

    uid = Column(String(32), primary_key=True)
    email = Column(Text, nullable=False, unique=True, index=True)
    password_hash = Column(Text, nullable=False)
    created_at = Column(Text, nullable=False)
    last_sign_in_at = Column(Text, nullable=True)


__all__ = ["Account"]
