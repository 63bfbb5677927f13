"""Request body schemas for the HTTP API."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, EmailStr, Field

from trackshare.models import TrackId


class _CamelModel(BaseModel):
    """Accepts camelCase keys on the wire, snake_case in Python."""

    model_config = ConfigDict(populate_by_name=True)


# ---------------------------------------------------------------------------
# Tracks
# ---------------------------------------------------------------------------


class SongSearch(_CamelModel):
    search_query: str = Field(alias="searchQuery")
    tags: list[str] | None = None


class SongTempUpload(BaseModel):
    """Details sent before any media is uploaded."""

    name: str
    tags: list[str]


class TrackFinalize(BaseModel):
    id: TrackId


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------


class UserCreate(_CamelModel):
    email: EmailStr
    password: str
    confirm_password: str = Field(alias="confirmPassword")
    username: str


class UserSignIn(BaseModel):
    email: EmailStr
    password: str


class UserOTPVerify(BaseModel):
    email: EmailStr
    otp: str = Field(min_length=6, max_length=6)


class UserRefreshToken(_CamelModel):
    refresh_token: str = Field(alias="refreshToken")
