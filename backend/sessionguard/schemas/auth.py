"""Auth-related request and response schemas."""

from __future__ import annotations

import datetime as dt
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator

from sessionguard.core.sanitize import clean_token

MAX_TOKEN_LEN = 4096


class TokenPairResponse(BaseModel):
    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    expires_in: int


class TokenRefreshRequest(BaseModel):
    refresh_token: str = Field(min_length=1, max_length=MAX_TOKEN_LEN)

    @field_validator("refresh_token", mode="before")
    @classmethod
    def normalize_refresh_token(cls, value: str) -> str:
        return clean_token(value)


class IdentityLoginRequest(BaseModel):
    id_token: str = Field(min_length=1, max_length=MAX_TOKEN_LEN)

    @field_validator("id_token", mode="before")
    @classmethod
    def normalize_id_token(cls, value: str) -> str:
        return clean_token(value)


class LogoutRequest(BaseModel):
    refresh_token: str = Field(default="", max_length=MAX_TOKEN_LEN)

    @field_validator("refresh_token", mode="before")
    @classmethod
    def normalize_refresh_token(cls, value: str) -> str:
        return clean_token(value)


class UserOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    email: str
    name: str
    created_at: dt.datetime


class MessageResponse(BaseModel):
    message: str
    revoked: int | None = None
