"""
DB models (DTOs) and small normalization helpers.

This module is intentionally lightweight:
- No DB connection knowledge
- No SQL
- Pure dataclasses + helper functions
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone


@dataclass(frozen=True, slots=True)
class ArtistRow:
    """Artist record as stored in SQLite."""

    id: int
    name: str
    picture: str | None
    created_at: str


@dataclass(frozen=True, slots=True)
class AlbumRow:
    """Album record as stored in SQLite."""

    id: int
    name: str
    artist_id: int
    year: int
    picture: str | None
    created_at: str


@dataclass(frozen=True, slots=True)
class GenreRow:
    """Genre record as stored in SQLite."""

    id: int
    name: str


@dataclass(frozen=True, slots=True)
class TrackRow:
    """
    Canonical track record as stored in SQLite.

    Notes:
    - `path` is the stable unique identifier for a local file.
    - `artist` is the denormalized display string; `artist_ids` keeps the
      ordered references from the `track_artists` link table.
    """

    id: int
    path: str
    title: str
    artist: str
    album_id: int
    genre_id: int | None
    track_no: int
    duration: float
    lossless: bool
    year: int
    file_size: int
    plays: int
    last_play: str | None
    created_at: str
    updated_at: str
    artist_ids: tuple[int, ...] = ()


@dataclass(frozen=True, slots=True)
class NewTrack:
    """
    Input record used by the track registrar.

    Everything except `path` has already been resolved: `album_id` and
    `artist_ids` point at existing rows.
    """

    path: str
    title: str
    artist: str
    album_id: int
    artist_ids: tuple[int, ...]
    genre_id: int | None = None
    track_no: int = 1
    duration: float = 0.0
    lossless: bool = False
    year: int = 0
    file_size: int = 0


@dataclass(frozen=True, slots=True)
class ScanReport:
    """Summary of one ingestion run. Only the latest report is kept."""

    started_at: str
    finished_at: str
    seconds: float
    tracks: int
    albums: int
    artists: int
    size_bytes: int
    mount: str | None
    added: int = 0
    skipped: int = 0
    failed: int = 0


def utcnow() -> str:
    """Timestamp format used for every created_at/updated_at column."""
    return datetime.now(timezone.utc).isoformat()


def normalize_name(value: str | None) -> str:
    """
    Canonical form used for deduplicating artist, album and genre names.

    Lower-cases the text, collapses runs of whitespace, and upper-cases the
    first letter of every word: "  the   BEATLES " -> "The Beatles".
    Unlike `str.title()`, letters after apostrophes stay lower-case.
    """
    if not value:
        return ""
    return " ".join(word[:1].upper() + word[1:] for word in value.lower().split())
