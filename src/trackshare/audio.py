"""Audio metadata extraction for uploaded tracks."""

from __future__ import annotations

import io

import structlog
from mutagen import File as MutagenFile
from mutagen import MutagenError

log = structlog.get_logger(__name__)


def read_duration(data: bytes, filename: str = "") -> float | None:
    """Return the duration in seconds of an in-memory audio file.

    *filename* only helps mutagen pick a format; the bytes decide.  Returns
    None when the data is not a recognised audio format.
    """
    buf = io.BytesIO(data)
    buf.name = filename
    try:
        audio = MutagenFile(buf)
    except MutagenError as exc:
        log.info("audio_metadata_unreadable", filename=filename, error=str(exc))
        return None
    if audio is None or audio.info is None:
        return None
    return float(audio.info.length)
