"""Pydantic models for records owned by the hosted backend."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

# Columns returned by search results and single-track reads.
TRACK_SUMMARY_COLUMNS = "id,name,tags,uploaded_at,length,cover_path"
TRACK_DETAIL_COLUMNS = "id,name,tags,uploaded_at,cover_path,uploader_id,length"

# Row ids are whatever the table generates: uuid text or a serial integer.
TrackId = str | int


class TrackSummary(BaseModel):
    """Public fields of an exposed track, as listed in search results."""

    id: TrackId
    name: str
    tags: list[str] = Field(default_factory=list)
    uploaded_at: datetime | None = None
    length: float | None = None
    cover_path: str | None = None


class Track(TrackSummary):
    """A single exposed track joined with its uploader's username."""

    uploader_id: str | None = None
    username: str | None = None


class Profile(BaseModel):
    """The service's own user record, keyed by the auth user id."""

    id: str
    email: str
    username: str


class AuthUser(BaseModel):
    """A user as known to the auth subsystem."""

    model_config = ConfigDict(extra="allow")

    id: str
    email: str | None = None
    identities: list[dict] | None = None
    created_at: datetime | None = None


class Session(BaseModel):
    """Tokens issued by the auth subsystem.

    Undeclared fields (``provider_token``, user metadata, ...) are kept so the
    session reaches callers as the backend issued it.
    """

    model_config = ConfigDict(extra="allow")

    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    expires_in: int | None = None
    expires_at: int | None = None
    user: AuthUser | None = None
