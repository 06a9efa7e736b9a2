from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, Field


class ProfileOut(BaseModel):
    id: str
    first_name: str = ""
    last_name: str = ""
    email: str = ""
    photo_url: str = ""
    timezone: Optional[str] = None

    class Config:
        from_attributes = True


class ProfileUpdate(BaseModel):
    first_name: Optional[str] = Field(default=None, alias="firstName")
    last_name: Optional[str] = Field(default=None, alias="lastName")
    photo_url: Optional[str] = Field(default=None, alias="photoURL")
    timezone: Optional[str] = None

    model_config = {"populate_by_name": True}
