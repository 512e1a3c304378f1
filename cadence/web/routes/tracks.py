"""
Track Listing Routes for Cadence.

Provides `GET /tracks`: a paged view of the catalog, filterable by genre,
artist and album, so clients can discover the ids that
`GET /tracks/play/{track_id}` streams.
"""

from __future__ import annotations

import dataclasses
import logging
from typing import TYPE_CHECKING, Any

from fastapi import APIRouter, HTTPException

if TYPE_CHECKING:
    from cadence.core.library import MusicLibrary

logger = logging.getLogger(__name__)

router = APIRouter(tags=["tracks"])

DEFAULT_LIMIT = 20
MAX_LIMIT = 500

# Reference set during route registration
_music_library: MusicLibrary | None = None


def register_track_routes(app, music_library: MusicLibrary) -> None:
    """
    Register track listing routes with the FastAPI app.

    Args:
        app: FastAPI application instance
        music_library: MusicLibrary to list tracks from
    """
    global _music_library
    _music_library = music_library
    app.include_router(router)


@router.get("/tracks")
async def list_tracks(
    skip: int = 0,
    limit: int = DEFAULT_LIMIT,
    sort: str | None = None,
    genre: int | None = None,
    artist: int | None = None,
    album: int | None = None,
) -> dict[str, Any]:
    """
    List catalog tracks.

    `sort` names a field (`created_at`, `title`, `artist`, `year`, `number`,
    `duration`, `plays`, `id`); prefix it with "-" for descending order.
    The default is newest first, or track number order when filtering by
    album. `artist` matches any credited artist of a track.

    Raises:
        HTTPException: 400 for out-of-range paging or an unknown sort field.
    """
    if _music_library is None:
        raise HTTPException(status_code=503, detail="Library not initialized")
    if skip < 0:
        raise HTTPException(status_code=400, detail="skip must be >= 0")
    if not 0 < limit <= MAX_LIMIT:
        raise HTTPException(status_code=400, detail=f"limit must be between 1 and {MAX_LIMIT}")

    try:
        page = await _music_library.list_tracks(
            skip=skip,
            limit=limit,
            sort=sort,
            genre_id=genre,
            artist_id=artist,
            album_id=album,
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e

    return {
        "data": [dataclasses.asdict(track) for track in page.tracks],
        "metadata": {
            "skip": skip,
            "limit": limit,
            "sort": sort,
            "genre": genre,
            "artist": artist,
            "album": album,
        },
        "total": page.total,
    }
