"""
Album-related DB queries.

Albums are unique per (normalized name, primary artist id). The artist id is
always set: tracks without an artist tag resolve to the "Unknown Artist"
sentinel before an album is looked up.
"""

from __future__ import annotations

import aiosqlite

from cadence.core.db.models import AlbumRow

_COLUMNS = "id, name, artist_id, year, picture, created_at"


def _row_to_album(row: aiosqlite.Row) -> AlbumRow:
    return AlbumRow(
        id=int(row["id"]),
        name=row["name"],
        artist_id=int(row["artist_id"]),
        year=int(row["year"]),
        picture=row["picture"],
        created_at=row["created_at"],
    )


async def get_album_by_id(conn: aiosqlite.Connection, album_id: int) -> AlbumRow | None:
    cursor = await conn.execute(
        f"SELECT {_COLUMNS} FROM albums WHERE id = ?;",
        (int(album_id),),
    )
    row = await cursor.fetchone()
    return _row_to_album(row) if row is not None else None


async def get_album_by_key(
    conn: aiosqlite.Connection, name: str, artist_id: int
) -> AlbumRow | None:
    cursor = await conn.execute(
        f"SELECT {_COLUMNS} FROM albums WHERE name = ? AND artist_id = ?;",
        (name, int(artist_id)),
    )
    row = await cursor.fetchone()
    return _row_to_album(row) if row is not None else None


async def create_album(
    conn: aiosqlite.Connection,
    *,
    name: str,
    artist_id: int,
    year: int,
    created_at: str,
) -> AlbumRow:
    cursor = await conn.execute(
        "INSERT INTO albums (name, artist_id, year, created_at) VALUES (?, ?, ?, ?);",
        (name, int(artist_id), int(year), created_at),
    )
    return AlbumRow(
        id=int(cursor.lastrowid),
        name=name,
        artist_id=int(artist_id),
        year=int(year),
        picture=None,
        created_at=created_at,
    )


async def set_album_picture(conn: aiosqlite.Connection, album_id: int, picture: str) -> None:
    await conn.execute(
        "UPDATE albums SET picture = ? WHERE id = ?;",
        (picture, int(album_id)),
    )


async def count_albums(conn: aiosqlite.Connection) -> int:
    cursor = await conn.execute("SELECT COUNT(*) AS c FROM albums;")
    row = await cursor.fetchone()
    return int(row["c"]) if row is not None else 0
