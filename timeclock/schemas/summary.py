"""Totals payloads. All durations are milliseconds."""

from __future__ import annotations

from datetime import date

from pydantic import BaseModel, Field


class DayTotalOut(BaseModel):
    date: str
    total_ms: int


class WeekTotalOut(BaseModel):
    week_start: date
    total_ms: int


class MonthTotalOut(BaseModel):
    month: str
    total_ms: int


class ProjectTotalsOut(BaseModel):
    project_id: str
    timezone: str
    week_start: date
    week_ms: int
    month: str
    month_ms: int
    daily: list[DayTotalOut] = Field(default_factory=list)
    weekly: list[WeekTotalOut] = Field(default_factory=list)
    monthly: list[MonthTotalOut] = Field(default_factory=list)


class ProjectShareOut(BaseModel):
    project_id: str
    name: str
    total_ms: int


class OverviewOut(BaseModel):
    timezone: str
    week_start: date
    week_ms: int
    month_ms: int
    projects: list[ProjectShareOut] = Field(default_factory=list)
