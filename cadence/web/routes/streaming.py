"""
Streaming Routes for Cadence.

Provides `GET /tracks/play/{track_id}`: range-aware playback of a catalog
track, optionally through the transcode cache.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from pathlib import Path
from typing import TYPE_CHECKING

from fastapi import APIRouter, HTTPException, Request
from fastapi.responses import StreamingResponse

from cadence.core import TranscodeError
from cadence.streaming.server import open_stream

if TYPE_CHECKING:
    from cadence.core.library import MusicLibrary
    from cadence.streaming.transcoder import TranscodeCache

logger = logging.getLogger(__name__)

router = APIRouter(tags=["streaming"])

# References set during route registration
_music_library: MusicLibrary | None = None
_transcode_cache: TranscodeCache | None = None
_transcode_sources: frozenset[str] = frozenset({"flac"})
_transcode_target: str = "mp3"


def register_streaming_routes(
    app,
    music_library: MusicLibrary,
    transcode_cache: TranscodeCache | None = None,
    *,
    transcode_sources: Iterable[str] = ("flac",),
    transcode_target: str = "mp3",
) -> None:
    """
    Register streaming routes with the FastAPI app.

    Args:
        app: FastAPI application instance
        music_library: MusicLibrary for track lookup
        transcode_cache: Optional TranscodeCache; without it `?transcode` is ignored
        transcode_sources: Source extensions (without dot) eligible for transcoding
        transcode_target: Output format of transcoded streams
    """
    global _music_library, _transcode_cache, _transcode_sources, _transcode_target
    _music_library = music_library
    _transcode_cache = transcode_cache
    _transcode_sources = frozenset(s.lower().lstrip(".") for s in transcode_sources)
    _transcode_target = transcode_target
    app.include_router(router)


@router.get("/tracks/play/{track_id}")
async def play_track(
    request: Request,
    track_id: int,
    transcode: bool = False,
) -> StreamingResponse:
    """
    Stream a track's audio.

    Without a Range header the whole file is sent with 200; with a valid
    `bytes=` range the exact slice is sent with 206. A malformed range is
    ignored.

    Raises:
        HTTPException: 404 for unknown tracks or missing files, 502 when
            transcoding fails.
    """
    if _music_library is None:
        raise HTTPException(status_code=503, detail="Library not initialized")

    track = await _music_library.get_track_by_id(track_id)
    if track is None:
        raise HTTPException(status_code=404, detail=f"Track not found: {track_id}")

    file_path = Path(track.path)
    if not file_path.is_file():
        raise HTTPException(status_code=404, detail=f"File not found: {file_path}")

    if (
        transcode
        and _transcode_cache is not None
        and file_path.suffix.lower().lstrip(".") in _transcode_sources
    ):
        try:
            file_path = await _transcode_cache.transcode(track, _transcode_target)
        except TranscodeError as e:
            logger.error("Transcoding failed for track %d: %s", track_id, e)
            raise HTTPException(status_code=502, detail=f"Transcoding failed: {e}") from e

    try:
        plan = open_stream(file_path, request.headers.get("range"))
    except FileNotFoundError as e:
        raise HTTPException(status_code=404, detail=f"File not found: {file_path}") from e

    return StreamingResponse(
        plan.body(),
        status_code=plan.status_code,
        media_type=plan.content_type,
        headers=plan.headers,
    )
