"""
SQLite catalog for Cadence: artists, albums, genres, tracks and the scan report.

`LibraryDb` offers exact-match lookups, inserts and counts per entity. It
holds no find-or-create policy (see `cadence.core.resolver`) and no HTTP
concerns. SQL lives in `cadence.core.db.queries_*`, row types in
`cadence.core.db.models`, migrations in `cadence.core.db.schema`.
"""

from __future__ import annotations

import contextlib
from pathlib import Path
from typing import AsyncIterator

import aiosqlite

from cadence.core.db import queries_albums, queries_artists, queries_meta, queries_tracks
from cadence.core.db.models import (
    AlbumRow,
    ArtistRow,
    GenreRow,
    NewTrack,
    ScanReport,
    TrackRow,
    utcnow,
)
from cadence.core.db.schema import ensure_schema as ensure_schema_sql

__all__ = [
    "LibraryDb",
    "AlbumRow",
    "ArtistRow",
    "GenreRow",
    "NewTrack",
    "ScanReport",
    "TrackRow",
]


class LibraryDb:
    """
    Async access layer for the music catalog.

    Usage:
        db = LibraryDb("cadence.db")
        await db.open()
        await db.ensure_schema()
        ... queries ...
        await db.close()

    One connection, no pool. Callers serialize writers; the library build
    lock does this for ingestion and removal.
    """

    def __init__(self, db_path: str | Path) -> None:
        self._db_path = str(db_path)
        self._conn: aiosqlite.Connection | None = None

    @property
    def is_open(self) -> bool:
        return self._conn is not None

    async def open(self) -> None:
        if self._conn is not None:
            return
        self._conn = await aiosqlite.connect(self._db_path)
        self._conn.row_factory = aiosqlite.Row

        await self._conn.execute("PRAGMA foreign_keys = ON;")
        await self._conn.execute("PRAGMA journal_mode = WAL;")
        await self._conn.execute("PRAGMA synchronous = NORMAL;")
        await self._conn.execute("PRAGMA temp_store = MEMORY;")

    async def close(self) -> None:
        if self._conn is None:
            return
        await self._conn.close()
        self._conn = None

    def _require_conn(self) -> aiosqlite.Connection:
        if self._conn is None:
            raise RuntimeError("LibraryDb is not open. Call await db.open() first.")
        return self._conn

    async def ensure_schema(self) -> None:
        """Create or migrate schema to current version."""
        await ensure_schema_sql(self._require_conn())

    async def commit(self) -> None:
        await self._require_conn().commit()

    @contextlib.asynccontextmanager
    async def savepoint(self, name: str) -> AsyncIterator[None]:
        """
        Run a block of writes atomically.

        On any exception the block's writes are rolled back and the exception
        propagates. `name` must be a constant identifier, never user input.
        """
        conn = self._require_conn()
        await conn.execute(f"SAVEPOINT {name};")
        try:
            yield
        except BaseException:
            await conn.execute(f"ROLLBACK TO SAVEPOINT {name};")
            await conn.execute(f"RELEASE SAVEPOINT {name};")
            raise
        await conn.execute(f"RELEASE SAVEPOINT {name};")

    # ===========================================================================
    # Artists
    # ===========================================================================

    async def get_artist_by_id(self, artist_id: int) -> ArtistRow | None:
        return await queries_artists.get_artist_by_id(self._require_conn(), artist_id)

    async def get_artist_by_name(self, name: str) -> ArtistRow | None:
        return await queries_artists.get_artist_by_name(self._require_conn(), name)

    async def create_artist(self, name: str, *, picture: str | None = None) -> ArtistRow:
        return await queries_artists.create_artist(
            self._require_conn(), name=name, picture=picture, created_at=utcnow()
        )

    async def count_artists(self) -> int:
        return await queries_artists.count_artists(self._require_conn())

    # ===========================================================================
    # Albums
    # ===========================================================================

    async def get_album_by_id(self, album_id: int) -> AlbumRow | None:
        return await queries_albums.get_album_by_id(self._require_conn(), album_id)

    async def get_album_by_key(self, name: str, artist_id: int) -> AlbumRow | None:
        return await queries_albums.get_album_by_key(self._require_conn(), name, artist_id)

    async def create_album(self, name: str, artist_id: int, year: int) -> AlbumRow:
        return await queries_albums.create_album(
            self._require_conn(), name=name, artist_id=artist_id, year=year, created_at=utcnow()
        )

    async def set_album_picture(self, album_id: int, picture: str) -> None:
        await queries_albums.set_album_picture(self._require_conn(), album_id, picture)

    async def count_albums(self) -> int:
        return await queries_albums.count_albums(self._require_conn())

    # ===========================================================================
    # Genres
    # ===========================================================================

    async def get_genre_by_name(self, name: str) -> GenreRow | None:
        return await queries_meta.get_genre_by_name(self._require_conn(), name)

    async def create_genre(self, name: str) -> GenreRow:
        return await queries_meta.create_genre(self._require_conn(), name)

    async def count_genres(self) -> int:
        return await queries_meta.count_genres(self._require_conn())

    # ===========================================================================
    # Tracks
    # ===========================================================================

    async def get_track_by_id(self, track_id: int) -> TrackRow | None:
        return await queries_tracks.get_track_by_id(self._require_conn(), track_id)

    async def get_track_by_path(self, path: str) -> TrackRow | None:
        return await queries_tracks.get_track_by_path(self._require_conn(), path)

    async def track_exists(self, path: str) -> bool:
        return await queries_tracks.track_exists(self._require_conn(), path)

    async def insert_track(self, track: NewTrack) -> int:
        return await queries_tracks.insert_track(self._require_conn(), track, now=utcnow())

    async def delete_track_by_path(self, path: str) -> int | None:
        return await queries_tracks.delete_track_by_path(self._require_conn(), path)

    async def list_tracks(
        self,
        *,
        skip: int = 0,
        limit: int = 20,
        sort: str | None = None,
        genre_id: int | None = None,
        artist_id: int | None = None,
        album_id: int | None = None,
    ) -> list[TrackRow]:
        return await queries_tracks.list_tracks(
            self._require_conn(),
            skip=skip,
            limit=limit,
            sort=sort,
            genre_id=genre_id,
            artist_id=artist_id,
            album_id=album_id,
        )

    async def count_tracks(
        self,
        *,
        genre_id: int | None = None,
        artist_id: int | None = None,
        album_id: int | None = None,
    ) -> int:
        return await queries_tracks.count_tracks(
            self._require_conn(), genre_id=genre_id, artist_id=artist_id, album_id=album_id
        )

    # ===========================================================================
    # Scan report
    # ===========================================================================

    async def get_scan_report(self) -> ScanReport | None:
        return await queries_meta.get_scan_report(self._require_conn())

    async def save_scan_report(self, report: ScanReport) -> None:
        """Replace the latest scan report and commit."""
        async with self.savepoint("scan_report_sp"):
            await queries_meta.save_scan_report(self._require_conn(), report)
        await self.commit()
