"""
Track registration: the last step of the ingestion pipeline.

Registration is create-only. A path that is already in the catalog is
reported as `already_exists` and left untouched; re-tagging a file does not
update its row.
"""

from __future__ import annotations

import logging
import sqlite3
from collections.abc import Sequence
from dataclasses import dataclass
from enum import Enum
from pathlib import Path

from cadence.core import ResolutionError
from cadence.core.db.models import AlbumRow, ArtistRow, GenreRow, NewTrack, TrackRow, normalize_name
from cadence.core.library_db import LibraryDb
from cadence.core.scanner import TrackTags

logger = logging.getLogger(__name__)

ARTIST_SEPARATOR = ", "


class RegisterOutcome(Enum):
    CREATED = "created"
    ALREADY_EXISTS = "already_exists"


@dataclass(frozen=True, slots=True)
class RegisterResult:
    outcome: RegisterOutcome
    track: TrackRow | None = None

    @property
    def created(self) -> bool:
        return self.outcome is RegisterOutcome.CREATED


class TrackRegistrar:
    def __init__(self, db: LibraryDb) -> None:
        self._db = db

    async def is_registered(self, path: Path | str) -> bool:
        """Cheap existence check used to skip known files before extraction."""
        return await self._db.track_exists(str(path))

    async def register_track(
        self,
        path: Path | str,
        tags: TrackTags,
        artists: Sequence[ArtistRow],
        album: AlbumRow,
        genre: GenreRow | None = None,
    ) -> RegisterResult:
        """
        Persist a track for `path` unless one already exists.

        `artists` must be non-empty and ordered; the display string and the
        link table both follow that order.
        """
        key = str(path)
        if await self._db.track_exists(key):
            return RegisterResult(RegisterOutcome.ALREADY_EXISTS)
        if not artists:
            raise ValueError("register_track requires at least one artist")

        new = NewTrack(
            path=key,
            title=normalize_name(tags.title),
            artist=ARTIST_SEPARATOR.join(a.name for a in artists),
            album_id=album.id,
            artist_ids=tuple(a.id for a in artists),
            genre_id=genre.id if genre is not None else None,
            track_no=tags.track_number,
            duration=tags.duration,
            lossless=tags.lossless,
            year=tags.year,
            file_size=tags.file_size,
        )
        try:
            track_id = await self._db.insert_track(new)
            track = await self._db.get_track_by_id(track_id)
        except sqlite3.DatabaseError as e:
            raise ResolutionError(f"track {key!r}: {type(e).__name__}: {e}") from e

        logger.debug("Registered track %d: %s", track_id, key)
        return RegisterResult(RegisterOutcome.CREATED, track)
