"""
Track-related DB queries.

Tracks are create-only from the ingestion side: there is an insert and a
delete, but no update of tag-derived columns. Play statistics (`plays`,
`last_play`) are owned by the playback layer.
"""

from __future__ import annotations

import aiosqlite

from cadence.core.db.models import NewTrack, TrackRow

_COLUMNS = """
    id, path, title, artist, album_id, genre_id,
    track_no, duration, lossless, year, file_size,
    plays, last_play, created_at, updated_at
"""


async def _artist_ids_for(conn: aiosqlite.Connection, track_id: int) -> tuple[int, ...]:
    cursor = await conn.execute(
        "SELECT artist_id FROM track_artists WHERE track_id = ? ORDER BY position ASC;",
        (int(track_id),),
    )
    rows = await cursor.fetchall()
    return tuple(int(r["artist_id"]) for r in rows)


async def _row_to_track(conn: aiosqlite.Connection, row: aiosqlite.Row) -> TrackRow:
    track_id = int(row["id"])
    return TrackRow(
        id=track_id,
        path=row["path"],
        title=row["title"],
        artist=row["artist"],
        album_id=int(row["album_id"]),
        genre_id=int(row["genre_id"]) if row["genre_id"] is not None else None,
        track_no=int(row["track_no"]),
        duration=float(row["duration"]),
        lossless=bool(row["lossless"]),
        year=int(row["year"]),
        file_size=int(row["file_size"]),
        plays=int(row["plays"]),
        last_play=row["last_play"],
        created_at=row["created_at"],
        updated_at=row["updated_at"],
        artist_ids=await _artist_ids_for(conn, track_id),
    )


async def get_track_by_id(conn: aiosqlite.Connection, track_id: int) -> TrackRow | None:
    cursor = await conn.execute(
        f"SELECT {_COLUMNS} FROM tracks WHERE id = ?;",
        (int(track_id),),
    )
    row = await cursor.fetchone()
    return await _row_to_track(conn, row) if row is not None else None


async def get_track_by_path(conn: aiosqlite.Connection, path: str) -> TrackRow | None:
    cursor = await conn.execute(
        f"SELECT {_COLUMNS} FROM tracks WHERE path = ?;",
        (path,),
    )
    row = await cursor.fetchone()
    return await _row_to_track(conn, row) if row is not None else None


async def track_exists(conn: aiosqlite.Connection, path: str) -> bool:
    cursor = await conn.execute("SELECT 1 FROM tracks WHERE path = ? LIMIT 1;", (path,))
    return await cursor.fetchone() is not None


async def insert_track(conn: aiosqlite.Connection, track: NewTrack, *, now: str) -> int:
    """
    Insert a new track and its ordered artist links. Returns the track id.

    Raises `sqlite3.IntegrityError` if the path is already registered.
    """
    cursor = await conn.execute(
        """
        INSERT INTO tracks(
            path, title, artist, album_id, genre_id,
            track_no, duration, lossless, year, file_size,
            created_at, updated_at
        ) VALUES (
            :path, :title, :artist, :album_id, :genre_id,
            :track_no, :duration, :lossless, :year, :file_size,
            :now, :now
        )
        """,
        {
            "path": track.path,
            "title": track.title,
            "artist": track.artist,
            "album_id": int(track.album_id),
            "genre_id": int(track.genre_id) if track.genre_id is not None else None,
            "track_no": int(track.track_no),
            "duration": float(track.duration),
            "lossless": 1 if track.lossless else 0,
            "year": int(track.year),
            "file_size": int(track.file_size),
            "now": now,
        },
    )
    track_id = int(cursor.lastrowid)

    for position, artist_id in enumerate(track.artist_ids):
        await conn.execute(
            """
            INSERT OR IGNORE INTO track_artists (track_id, artist_id, position)
            VALUES (?, ?, ?)
            """,
            (track_id, int(artist_id), position),
        )

    return track_id


async def delete_track_by_path(conn: aiosqlite.Connection, path: str) -> int | None:
    """Delete a track by path. Returns the deleted track id, or None if unknown."""
    cursor = await conn.execute("SELECT id FROM tracks WHERE path = ?;", (path,))
    row = await cursor.fetchone()
    if row is None:
        return None
    track_id = int(row["id"])
    await conn.execute("DELETE FROM track_artists WHERE track_id = ?;", (track_id,))
    await conn.execute("DELETE FROM tracks WHERE id = ?;", (track_id,))
    return track_id


# ---------------------------------------------------------------------------
# Listing: filters, sorting, paging
# ---------------------------------------------------------------------------

# Sort keys accepted by `list_tracks`; a leading "-" means descending.
TRACK_SORT_COLUMNS: dict[str, str] = {
    "created_at": "created_at",
    "title": "title COLLATE NOCASE",
    "artist": "artist COLLATE NOCASE",
    "year": "year",
    "number": "track_no",
    "duration": "duration",
    "plays": "plays",
    "id": "id",
}

DEFAULT_TRACK_SORT = "-created_at"
ALBUM_TRACK_SORT = "number"


def tracks_order_clause(sort: str) -> str:
    """
    Return an ORDER BY clause for a sort key such as "title" or "-year".

    Raises `ValueError` for unknown keys. The id tie-breaker keeps paging
    stable when many rows share the sort value.
    """
    descending = sort.startswith("-")
    key = sort[1:] if descending else sort
    column = TRACK_SORT_COLUMNS.get(key)
    if column is None:
        raise ValueError(f"Unknown sort field: {key!r}")
    direction = "DESC" if descending else "ASC"
    return f"ORDER BY {column} {direction}, id {direction}"


def _track_filters(
    *,
    genre_id: int | None,
    artist_id: int | None,
    album_id: int | None,
) -> tuple[str, list[int]]:
    clauses: list[str] = []
    params: list[int] = []
    if genre_id is not None:
        clauses.append("genre_id = ?")
        params.append(int(genre_id))
    if album_id is not None:
        clauses.append("album_id = ?")
        params.append(int(album_id))
    if artist_id is not None:
        # Any credited artist matches, not only the first.
        clauses.append(
            "EXISTS (SELECT 1 FROM track_artists ta"
            " WHERE ta.track_id = tracks.id AND ta.artist_id = ?)"
        )
        params.append(int(artist_id))
    where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
    return where, params


async def list_tracks(
    conn: aiosqlite.Connection,
    *,
    skip: int = 0,
    limit: int = 20,
    sort: str | None = None,
    genre_id: int | None = None,
    artist_id: int | None = None,
    album_id: int | None = None,
) -> list[TrackRow]:
    """
    List tracks matching every given filter.

    Without an explicit `sort`, tracks of one album come in track-number
    order and everything else newest first.
    """
    if sort is None:
        sort = ALBUM_TRACK_SORT if album_id is not None else DEFAULT_TRACK_SORT
    order_clause = tracks_order_clause(sort)
    where, params = _track_filters(genre_id=genre_id, artist_id=artist_id, album_id=album_id)
    cursor = await conn.execute(
        f"""
        SELECT {_COLUMNS} FROM tracks
        {where}
        {order_clause}
        LIMIT ? OFFSET ?;
        """,
        (*params, int(limit), int(skip)),
    )
    rows = await cursor.fetchall()
    return [await _row_to_track(conn, r) for r in rows]


async def count_tracks(
    conn: aiosqlite.Connection,
    *,
    genre_id: int | None = None,
    artist_id: int | None = None,
    album_id: int | None = None,
) -> int:
    where, params = _track_filters(genre_id=genre_id, artist_id=artist_id, album_id=album_id)
    cursor = await conn.execute(f"SELECT COUNT(*) AS c FROM tracks {where};", params)
    row = await cursor.fetchone()
    return int(row["c"]) if row is not None else 0
