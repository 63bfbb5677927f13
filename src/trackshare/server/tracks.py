"""Track search, playback and upload routes.  Every route needs a bearer token."""

from __future__ import annotations

from typing import TYPE_CHECKING

import structlog
from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from starlette.datastructures import UploadFile

from trackshare.models import AuthUser
from trackshare.schemas import SongSearch, SongTempUpload, TrackFinalize
from trackshare.server.auth import make_current_user
from trackshare.server.responses import json_result, missing_file

if TYPE_CHECKING:
    from trackshare.backend.adapter import BackendAdapter

log = structlog.get_logger(__name__)


async def _read_upload(request: Request, field: str) -> tuple[str | None, UploadFile | None]:
    """Pull the track id and the named file out of a multipart body."""
    form = await request.form()
    upload = form.get(field)
    track_id = form.get("id")
    return (
        track_id if isinstance(track_id, str) else None,
        upload if isinstance(upload, UploadFile) else None,
    )


def create_tracks_router(adapter: BackendAdapter) -> APIRouter:
    """Build the router mounted under ``/tracks``."""
    current_user = make_current_user(adapter)
    router = APIRouter(dependencies=[Depends(current_user)])

    # -- reads ------------------------------------------------------------------

    @router.post("/search")
    async def search(body: SongSearch) -> JSONResponse:
        return json_result(await adapter.search_songs(body.search_query, body.tags or []))

    @router.get("/{track_id}/audio")
    async def track_audio(track_id: str) -> JSONResponse:
        return json_result(await adapter.get_song_audio(track_id))

    @router.get("/{track_id}")
    async def track(track_id: str) -> JSONResponse:
        return json_result(await adapter.get_song(track_id))

    # -- upload flow: details -> audio / cover -> finalize ----------------------

    @router.post("/upload/details")
    async def upload_details(
        body: SongTempUpload,
        user: AuthUser = Depends(current_user),
    ) -> JSONResponse:
        return json_result(await adapter.upload_song_details(user, body))

    @router.post("/upload/audio")
    async def upload_audio(request: Request) -> JSONResponse:
        track_id, upload = await _read_upload(request, "audio")
        if upload is None:
            log.info("upload_file_missing", field="audio")
            return missing_file()
        result = await adapter.upload_track_audio(
            track_id,
            upload.filename or "",
            await upload.read(),
            upload.content_type,
        )
        return json_result(result)

    @router.post("/upload/cover")
    async def upload_cover(request: Request) -> JSONResponse:
        track_id, upload = await _read_upload(request, "cover")
        if upload is None:
            log.info("upload_file_missing", field="cover")
            return missing_file()
        result = await adapter.upload_track_cover_image(
            track_id,
            upload.filename or "",
            await upload.read(),
            upload.content_type,
        )
        return json_result(result)

    @router.post("/upload/finalize")
    async def upload_finalize(
        body: TrackFinalize,
        user: AuthUser = Depends(current_user),
    ) -> JSONResponse:
        return json_result(await adapter.finalize_track_upload(user, body.id))

    return router
