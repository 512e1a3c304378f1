"""
Artist-related DB queries.

Design:
- Functions are *pure DB helpers*: they take an open `aiosqlite.Connection`
  and return row DTOs.
- These functions assume `conn.row_factory = aiosqlite.Row`.
- Lookups are exact matches; callers pass names that are already normalized
  (see `cadence.core.db.models.normalize_name`).

Important:
- Do NOT interpolate user input into SQL.
"""

from __future__ import annotations

import aiosqlite

from cadence.core.db.models import ArtistRow

_COLUMNS = "id, name, picture, created_at"


def _row_to_artist(row: aiosqlite.Row) -> ArtistRow:
    return ArtistRow(
        id=int(row["id"]),
        name=row["name"],
        picture=row["picture"],
        created_at=row["created_at"],
    )


async def get_artist_by_id(conn: aiosqlite.Connection, artist_id: int) -> ArtistRow | None:
    cursor = await conn.execute(
        f"SELECT {_COLUMNS} FROM artists WHERE id = ?;",
        (int(artist_id),),
    )
    row = await cursor.fetchone()
    return _row_to_artist(row) if row is not None else None


async def get_artist_by_name(conn: aiosqlite.Connection, name: str) -> ArtistRow | None:
    cursor = await conn.execute(
        f"SELECT {_COLUMNS} FROM artists WHERE name = ?;",
        (name,),
    )
    row = await cursor.fetchone()
    return _row_to_artist(row) if row is not None else None


async def create_artist(
    conn: aiosqlite.Connection,
    *,
    name: str,
    picture: str | None,
    created_at: str,
) -> ArtistRow:
    cursor = await conn.execute(
        "INSERT INTO artists (name, picture, created_at) VALUES (?, ?, ?);",
        (name, picture, created_at),
    )
    return ArtistRow(
        id=int(cursor.lastrowid),
        name=name,
        picture=picture,
        created_at=created_at,
    )


async def count_artists(conn: aiosqlite.Connection) -> int:
    cursor = await conn.execute("SELECT COUNT(*) AS c FROM artists;")
    row = await cursor.fetchone()
    return int(row["c"]) if row is not None else 0
