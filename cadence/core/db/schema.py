"""
Catalog schema and its migrations.

The schema version is stored in `PRAGMA user_version`. Each migration step
upgrades by exactly one version; there are no downgrades.
"""

from __future__ import annotations

from typing import Final

import aiosqlite

# Current catalog version; every bump needs a matching step in `migrate()`.
SCHEMA_VERSION: Final[int] = 2


async def ensure_schema(conn: aiosqlite.Connection) -> None:
    """
    Bring a catalog up to `SCHEMA_VERSION`.

    A fresh database gets every table; an older one is migrated in place. A
    database from a newer release is refused.
    """
    cursor = await conn.execute("PRAGMA user_version;")
    row = await cursor.fetchone()
    current = int(row[0]) if row is not None else 0

    if current > SCHEMA_VERSION:
        raise RuntimeError(
            f"Database schema version {current} is newer than supported {SCHEMA_VERSION}."
        )

    if current == SCHEMA_VERSION:
        return

    await migrate(conn, from_version=current, to_version=SCHEMA_VERSION)
    await conn.execute(f"PRAGMA user_version = {SCHEMA_VERSION};")
    await conn.commit()


async def migrate(conn: aiosqlite.Connection, *, from_version: int, to_version: int) -> None:
    """Apply migration steps from `from_version` up to `to_version`."""
    # v0 -> v1: catalog tables
    if from_version == 0 and to_version >= 1:
        await conn.execute(
            """
            CREATE TABLE IF NOT EXISTS artists (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                name TEXT NOT NULL UNIQUE,
                picture TEXT,
                created_at TEXT NOT NULL
            )
            """
        )

        await conn.execute(
            """
            CREATE TABLE IF NOT EXISTS albums (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                name TEXT NOT NULL,
                artist_id INTEGER NOT NULL REFERENCES artists(id),
                year INTEGER NOT NULL DEFAULT 0,
                picture TEXT,
                created_at TEXT NOT NULL,
                UNIQUE(name, artist_id)
            )
            """
        )
        await conn.execute("CREATE INDEX IF NOT EXISTS idx_albums_artist_id ON albums(artist_id);")

        await conn.execute(
            """
            CREATE TABLE IF NOT EXISTS genres (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                name TEXT NOT NULL UNIQUE
            )
            """
        )

        await conn.execute(
            """
            CREATE TABLE IF NOT EXISTS tracks (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                path TEXT NOT NULL UNIQUE,

                title TEXT NOT NULL DEFAULT '',
                artist TEXT NOT NULL DEFAULT '',
                album_id INTEGER NOT NULL REFERENCES albums(id),
                genre_id INTEGER REFERENCES genres(id),

                track_no INTEGER NOT NULL DEFAULT 1,
                duration REAL NOT NULL DEFAULT 0,
                lossless INTEGER NOT NULL DEFAULT 0,
                year INTEGER NOT NULL DEFAULT 0,
                file_size INTEGER NOT NULL DEFAULT 0,

                plays INTEGER NOT NULL DEFAULT 0,
                last_play TEXT,

                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL
            )
            """
        )
        await conn.execute("CREATE INDEX IF NOT EXISTS idx_tracks_album_id ON tracks(album_id);")
        await conn.execute("CREATE INDEX IF NOT EXISTS idx_tracks_genre_id ON tracks(genre_id);")
        await conn.execute("CREATE INDEX IF NOT EXISTS idx_tracks_title ON tracks(title);")

        # Ordered artist references; position 0 is the presumptive album artist.
        await conn.execute(
            """
            CREATE TABLE IF NOT EXISTS track_artists (
                track_id INTEGER NOT NULL REFERENCES tracks(id) ON DELETE CASCADE,
                artist_id INTEGER NOT NULL REFERENCES artists(id),
                position INTEGER NOT NULL,
                PRIMARY KEY (track_id, artist_id)
            )
            """
        )
        await conn.execute(
            "CREATE INDEX IF NOT EXISTS idx_track_artists_artist ON track_artists(artist_id);"
        )
        await conn.commit()
        from_version = 1

    # v1 -> v2: single-slot scan report
    if from_version == 1 and to_version >= 2:
        await conn.execute(
            """
            CREATE TABLE IF NOT EXISTS scan_report (
                id INTEGER PRIMARY KEY CHECK (id = 1),
                started_at TEXT NOT NULL,
                finished_at TEXT NOT NULL,
                seconds REAL NOT NULL,
                tracks INTEGER NOT NULL,
                albums INTEGER NOT NULL,
                artists INTEGER NOT NULL,
                size_bytes INTEGER NOT NULL,
                mount TEXT,
                added INTEGER NOT NULL DEFAULT 0,
                skipped INTEGER NOT NULL DEFAULT 0,
                failed INTEGER NOT NULL DEFAULT 0
            )
            """
        )
        await conn.commit()
        from_version = 2
