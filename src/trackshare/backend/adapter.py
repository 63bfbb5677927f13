"""Domain operations over the hosted backend.

Every public coroutine returns a plain dict: ``{"success": True, ...}`` on
success or ``{"success": False, "error": {...}}`` on failure.  Backend errors
are converted to data here; only :meth:`BackendAdapter.get_user_from_token`
lets a :class:`BackendError` escape.
"""

from __future__ import annotations

import re
import uuid
from pathlib import Path

import structlog

from trackshare.audio import read_duration
from trackshare.backend.client import BackendClient, BackendError, contains, eq, text_search
from trackshare.config import AppConfig
from trackshare.models import (
    TRACK_DETAIL_COLUMNS,
    TRACK_SUMMARY_COLUMNS,
    AuthUser,
    Profile,
    Session,
    Track,
    TrackId,
    TrackSummary,
)
from trackshare.schemas import SongTempUpload, UserCreate, UserOTPVerify, UserRefreshToken, UserSignIn

log = structlog.get_logger(__name__)

_TRACKS = "tracks"
_PROFILES = "profiles"
_MIN_PASSWORD_LENGTH = 8
_SEPARATORS = re.compile(r"[\s,]+")


def create_search_string(query: str) -> str:
    """Turn free text into an OR query: ``"foo  bar,baz"`` -> ``"foo | bar | baz"``."""
    return " | ".join(_SEPARATORS.split(query.strip()))


def _failure(message: str, status: int) -> dict:
    return {"success": False, "error": {"message": message, "status": status}}


def _backend_failure(err: BackendError) -> dict:
    return {"success": False, "error": err.to_dict()}


def _object_name(filename: str) -> str:
    """Random storage name that keeps the uploaded file's extension."""
    return f"{uuid.uuid4().hex}{Path(filename).suffix}"


class BackendAdapter:
    """Track and user operations built on a shared :class:`BackendClient`."""

    def __init__(self, client: BackendClient, config: AppConfig | None = None) -> None:
        self._client = client
        self._config = config or AppConfig()

    # -- helpers --------------------------------------------------------------

    async def _lookup_username(self, user_id: str | None) -> str | None:
        if not user_id:
            return None
        try:
            row = await self._client.select(
                _PROFILES,
                "username",
                filters={"id": eq(user_id)},
                single=True,
            )
        except BackendError as err:
            log.warning("profile_lookup_failed", user_id=user_id, status=err.status)
            return None
        return row.get("username")

    async def _augment(self, session: Session) -> dict:
        """Attach the owner's username to a freshly issued session."""
        username = await self._lookup_username(session.user.id if session.user else None)
        return {**session.model_dump(mode="json"), "username": username}

    async def _exists(self, table: str, column: str, value: str) -> bool:
        rows = await self._client.select(table, "id", filters={column: eq(value)}, limit=1)
        return bool(rows)

    # -- tracks: reads --------------------------------------------------------

    async def search_songs(self, search_query: str, tags: list[str] | None = None) -> dict:
        if not search_query:
            return {"error": {"message": "Search query wasn't found!", "status": 400}}

        filters = {
            "fts": text_search(create_search_string(search_query)),
            "exposed": eq(True),
        }
        if tags:
            filters["tags"] = contains(tags)

        try:
            rows = await self._client.select(_TRACKS, TRACK_SUMMARY_COLUMNS, filters=filters)
        except BackendError as err:
            status = int(err.code) if err.code and err.code.isdigit() else err.status
            return {"success": False, "error": {"message": err.message, "status": status}}

        songs = [TrackSummary.model_validate(row).model_dump(mode="json") for row in rows]
        return {"success": True, "songs": songs}

    async def get_song(self, track_id: TrackId) -> dict:
        try:
            row = await self._client.select(
                _TRACKS,
                TRACK_DETAIL_COLUMNS,
                filters={"id": eq(track_id), "exposed": eq(True)},
                limit=1,
                single=True,
            )
        except BackendError as err:
            return _backend_failure(err)

        username = await self._lookup_username(row.get("uploader_id"))
        track = Track.model_validate({**row, "username": username})
        return {"success": True, "track": track.model_dump(mode="json")}

    async def get_song_audio(self, track_id: TrackId) -> dict:
        try:
            row = await self._client.select(
                _TRACKS,
                "audio_path",
                filters={"id": eq(track_id), "exposed": eq(True)},
                limit=1,
                single=True,
            )
        except BackendError as err:
            return _backend_failure(err)

        audio_path = row.get("audio_path")
        if not audio_path:
            return _failure("Track has no audio uploaded!", 404)

        backend = self._config.backend
        try:
            url = await self._client.create_signed_url(backend.audio_bucket, audio_path, backend.signed_url_ttl)
        except BackendError as err:
            error = err.to_dict()
            error["message"] = f"Could not sign audio URL: {err.message}"
            return {"success": False, "error": error}
        return {"success": True, "audioUrl": url}

    # -- tracks: upload flow --------------------------------------------------

    async def upload_song_details(self, user: AuthUser, details: SongTempUpload) -> dict:
        """Create a draft (unexposed) track owned by *user*."""
        username = await self._lookup_username(user.id)
        row = {
            "name": details.name,
            "tags": details.tags,
            "fts": f"{username or ''} {details.name}".strip(),
            "uploader_id": user.id,
            "exposed": False,
        }
        try:
            rows = await self._client.insert(_TRACKS, row, returning="id")
        except BackendError as err:
            return _backend_failure(err)

        track_id = rows[0]["id"]
        log.info("track_draft_created", track_id=track_id, uploader_id=user.id)
        return {"success": True, "id": track_id}

    async def upload_track_audio(
        self,
        track_id: TrackId | None,
        filename: str,
        data: bytes,
        content_type: str | None = None,
    ) -> dict:
        """Store the audio object and record its path and duration on the track.

        Re-uploading replaces both values; the previous object is left in
        storage.
        """
        if not track_id:
            return _failure("Id wasn't found!", 400)

        duration = read_duration(data, filename)
        if duration is None:
            return _failure("Could not read audio metadata!", 422)

        try:
            path = await self._client.upload(
                self._config.backend.audio_bucket,
                _object_name(filename),
                data,
                content_type=content_type or "application/octet-stream",
            )
            await self._client.update(
                _TRACKS,
                {"length": duration, "audio_path": path},
                filters={"id": eq(track_id)},
            )
        except BackendError as err:
            return _backend_failure(err)

        log.info("track_audio_uploaded", track_id=track_id, path=path, length=duration)
        return {"success": True}

    async def upload_track_cover_image(
        self,
        track_id: TrackId | None,
        filename: str,
        data: bytes,
        content_type: str | None = None,
    ) -> dict:
        if not track_id:
            return _failure("Id wasn't found!", 400)

        try:
            path = await self._client.upload(
                self._config.backend.cover_bucket,
                _object_name(filename),
                data,
                content_type=content_type or "application/octet-stream",
            )
            await self._client.update(
                _TRACKS,
                {"cover_path": path},
                filters={"id": eq(track_id)},
            )
        except BackendError as err:
            return _backend_failure(err)

        log.info("track_cover_uploaded", track_id=track_id, path=path)
        return {"success": True}

    async def finalize_track_upload(self, user: AuthUser, track_id: TrackId | None) -> dict:
        """Expose a draft track.  Only the uploader may finalize it.

        This is stricter than a bare update on the id: when no row matches
        both the id and the caller (unknown id or someone else's track) the
        result is a 404 failure rather than a silent success.
        """
        if not track_id:
            return _failure("Id wasn't found!", 400)

        owned = {"id": eq(track_id), "uploader_id": eq(user.id)}
        try:
            if self._config.upload.require_audio_on_finalize:
                rows = await self._client.select(_TRACKS, "id,audio_path", filters=owned, limit=1)
                if rows and not rows[0].get("audio_path"):
                    return _failure("Upload the track's audio before finalizing!", 409)
            updated = await self._client.update(
                _TRACKS,
                {"exposed": True},
                filters=owned,
                returning="id",
            )
        except BackendError as err:
            return _backend_failure(err)

        if not updated:
            return _failure("Track not found!", 404)

        log.info("track_exposed", track_id=track_id, uploader_id=user.id)
        return {"success": True, "id": track_id}

    # -- users ----------------------------------------------------------------

    async def create_user(self, details: UserCreate) -> dict:
        """Sign up an auth user and create the matching profile.

        The email and username pre-checks only give early feedback; two
        concurrent sign-ups can both pass them and the backend's unique
        constraints decide.
        """
        if details.password != details.confirm_password:
            return _failure("Unverified password!", 400)
        if len(details.password) < _MIN_PASSWORD_LENGTH:
            return _failure("Password isn't long enough", 422)

        try:
            if await self._exists(_PROFILES, "email", details.email):
                return _failure("The user already exists in the system, please login!", 400)
            if await self._exists(_PROFILES, "username", details.username):
                return _failure("The username is taken already, try a different username!", 400)
        except BackendError as err:
            return _backend_failure(err)

        try:
            user = await self._client.sign_up(details.email, details.password)
        except BackendError as err:
            if not err.is_duplicate_key:
                return _backend_failure(err)
            log.warning("signup_duplicate_key_tolerated", email=details.email, code=err.code)
            user = None

        # An empty identity list is how the auth service reports an email that
        # is already registered.
        if user is None or user.identities == []:
            return {"success": False}

        try:
            profile = Profile(id=user.id, email=details.email, username=details.username)
            await self._client.insert(_PROFILES, profile.model_dump(), returning="id")
        except BackendError as err:
            log.warning("profile_create_failed", user_id=user.id, status=err.status)
            await self._delete_orphan(user.id)
            return _backend_failure(err)

        log.info("user_created", user_id=user.id, username=details.username)
        return {"success": True}

    async def _delete_orphan(self, user_id: str) -> None:
        try:
            await self._client.delete_user(user_id)
        except BackendError as err:
            log.error("orphan_cleanup_failed", user_id=user_id, status=err.status, error=err.message)

    async def validate_otp(self, details: UserOTPVerify) -> dict:
        try:
            session = await self._client.verify_otp(details.email, details.otp)
        except BackendError as err:
            return _backend_failure(err)
        return {"success": True, "session": await self._augment(session)}

    async def sign_in_to_user(self, details: UserSignIn) -> dict:
        try:
            session = await self._client.sign_in_with_password(details.email, details.password)
        except BackendError as err:
            return _backend_failure(err)
        return {"success": True, "session": await self._augment(session)}

    async def get_access_token_from_refresh(self, details: UserRefreshToken) -> dict:
        try:
            session = await self._client.refresh_session(details.refresh_token)
        except BackendError as err:
            return _backend_failure(err)
        return {"success": True, "session": await self._augment(session)}

    async def get_user_from_token(self, access_token: str) -> AuthUser:
        """Resolve a bearer token; raises :class:`BackendError` when invalid."""
        return await self._client.get_user(access_token)
