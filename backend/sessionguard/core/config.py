"""Application configuration loaded from environment variables."""

from __future__ import annotations

import datetime as dt
from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict

BASE_DIR = Path(__file__).resolve().parents[2]
DEFAULT_JWT_SECRET = "change-me"


class Settings(BaseSettings):
    APP_NAME: str = "SessionGuard"
    ENV: str = "development"

    DATABASE_URL: str = "sqlite:///./sessionguard.db"

    JWT_SECRET: str = DEFAULT_JWT_SECRET
    JWT_ALGORITHM: str = "HS256"
    JWT_ISSUER: str = "sessionguard"
    JWT_AUDIENCE: str = "sessionguard-api"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 15
    REFRESH_TOKEN_EXPIRE_DAYS: int = 30
    LOG_LEVEL: str = "INFO"

    # rotation policy
    REFRESH_GRACE_SECONDS: int = 30
    REFRESH_USED_RETENTION_MARGIN_SECONDS: int = 60
    REVOKED_RETENTION_HOURS: int = 24

    TOKEN_PURGE_ENABLED: bool = True
    TOKEN_PURGE_INTERVAL_SECONDS: int = 300
    TOKEN_PURGE_STARTUP_DELAY_SECONDS: int = 10

    CORS_ORIGINS: str = "http://localhost:3000"
    # google identity assertions (first login only)
    GOOGLE_CLIENT_ID: str = ""
    GOOGLE_TOKENINFO_URL: str = "https://oauth2.googleapis.com/tokeninfo"

    # client-side refresh coordination
    CLIENT_REFRESH_LOOKAHEAD_SECONDS: int = 60
    CLIENT_REFRESH_TIMEOUT_SECONDS: float = 10.0

    model_config = SettingsConfigDict(env_file=str(BASE_DIR / ".env"), env_file_encoding="utf-8")

    @property
    def cors_origins(self) -> list[str]:
        return [origin.strip() for origin in self.CORS_ORIGINS.split(",") if origin.strip()]

    @property
    def access_token_ttl(self) -> dt.timedelta:
        return dt.timedelta(minutes=self.ACCESS_TOKEN_EXPIRE_MINUTES)

    @property
    def refresh_token_ttl(self) -> dt.timedelta:
        return dt.timedelta(days=self.REFRESH_TOKEN_EXPIRE_DAYS)

    @property
    def refresh_grace_period(self) -> dt.timedelta:
        return dt.timedelta(seconds=self.REFRESH_GRACE_SECONDS)

    @property
    def used_retention_margin(self) -> dt.timedelta:
        return dt.timedelta(seconds=self.REFRESH_USED_RETENTION_MARGIN_SECONDS)

    @property
    def revoked_retention(self) -> dt.timedelta:
        return dt.timedelta(hours=self.REVOKED_RETENTION_HOURS)

    def validate_runtime_security(self) -> None:
        if self.ENV == "development":
            return
        if not self.JWT_SECRET.strip() or self.JWT_SECRET == DEFAULT_JWT_SECRET:
            raise RuntimeError("JWT_SECRET must be set outside development")
        if self.REFRESH_GRACE_SECONDS < 0:
            raise RuntimeError("REFRESH_GRACE_SECONDS must not be negative")


settings = Settings()
