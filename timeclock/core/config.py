from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

PACKAGE_DIR = Path(__file__).resolve().parent.parent


class AppSettings(BaseSettings):
    """Environment-driven application configuration."""

    model_config = SettingsConfigDict(
        env_file=(".env", ".env.local"),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    APP_NAME: str = "Timeclock"
    DATA_DIR: Path = Field(default_factory=lambda: Path.cwd() / "data")
    TEMPLATES_DIR: Path = PACKAGE_DIR / "templates"
    STATIC_DIR: Path = PACKAGE_DIR / "static"
    TZ: str = "America/Chicago"

    DB_URL: str = Field(default="", validation_alias=AliasChoices("DB_URL", "DATABASE_URL"))

    APP_SECRET: str = "dev-insecure-secret-change-me"
    SESSION_COOKIE_NAME: str = "tc_session"
    SESSION_MAX_AGE: int = 60 * 60 * 24 * 30
    SESSION_HTTPS_ONLY: bool = False

    JWT_SECRET: str = "change-me"
    JWT_ACCESS_TTL_MIN: int = 15
    JWT_REFRESH_TTL_DAYS: int = 7
    ALLOWED_ORIGINS: str = ""

    AUTH_ALLOW_SIGNUP: bool = True
    AUTH_MIN_PASSWORD_LENGTH: int = 6
    BCRYPT_ROUNDS: int = 12

    ENTRY_LIST_LIMIT: int = 10
    LOG_LEVEL: str = "INFO"
    METRICS_ENABLED: bool = True

    HOST: str = "0.0.0.0"
    PORT: int = 8089

    @property
    def database_url(self) -> str:
        return self.DB_URL or f"sqlite:///{self.DATA_DIR / 'timeclock.db'}"

    @field_validator("TZ")
    @classmethod
    def validate_tz(cls, value: str) -> str:
        try:
            ZoneInfo(value)
        except (ZoneInfoNotFoundError, ValueError) as exc:
            raise ValueError(f"Unknown time zone: {value!r}") from exc
        return value

    @field_validator("BCRYPT_ROUNDS")
    @classmethod
    def validate_rounds(cls, value: int) -> int:
        if not 4 <= value <= 31:
            raise ValueError("BCRYPT_ROUNDS must be between 4 and 31")
        return value

    @property
    def allowed_origins(self) -> list[str]:
        return [item.strip() for item in self.ALLOWED_ORIGINS.split(",") if item.strip()]


@lru_cache(maxsize=1)
def get_settings() -> AppSettings:
    settings = AppSettings()
    if not settings.DB_URL:
        settings.DATA_DIR.mkdir(parents=True, exist_ok=True)
    return settings


settings = get_settings()
