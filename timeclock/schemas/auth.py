from __future__ import annotations

from pydantic import BaseModel


class CredentialsRequest(BaseModel):
    email: str
    password: str

    model_config = {
        "json_schema_extra": {
            "example": {"email": "ada@example.com", "password": "correct horse"}
        }
    }


class TokenResponse(BaseModel):
    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    expires_in: int
    uid: str | None = None

    model_config = {
        "json_schema_extra": {
            "example": {
                "access_token": "<jwt>",
                "refresh_token": "<jwt>",
                "token_type": "bearer",
                "expires_in": 900,
                "uid": "3f2b9c0d6a7e4f1b8c5d2e9a0b1c4d7e",
            }
        }
    }


class RefreshRequest(BaseModel):
    refresh_token: str

    model_config = {
        "json_schema_extra": {
            "example": {"refresh_token": "<jwt>"}
        }
    }
