"""Pydantic schemas that describe project payloads for the API."""

from __future__ import annotations

from pydantic import BaseModel

from ..services.clock import ClockState


class ProjectCreate(BaseModel):
    name: str


class ProjectUpdate(BaseModel):
    name: str


class ProjectOut(BaseModel):
    id: str
    name: str
    created_at: str

    class Config:
        from_attributes = True


class ClockStatusOut(BaseModel):
    project_id: str
    state: ClockState
    open_entry_id: str | None = None
    clocked_in_since: str | None = None
