"""
Meta-related DB queries.

This module contains queries for:
- Genres
- The scan report (a single well-known row, id = 1)

Important:
- Do NOT interpolate user input into SQL.
"""

from __future__ import annotations

import aiosqlite

from cadence.core.db.models import GenreRow, ScanReport

# ---------------------------------------------------------------------------
# Genres
# ---------------------------------------------------------------------------


async def get_genre_by_name(conn: aiosqlite.Connection, name: str) -> GenreRow | None:
    cursor = await conn.execute("SELECT id, name FROM genres WHERE name = ?;", (name,))
    row = await cursor.fetchone()
    if row is None:
        return None
    return GenreRow(id=int(row["id"]), name=row["name"])


async def create_genre(conn: aiosqlite.Connection, name: str) -> GenreRow:
    cursor = await conn.execute("INSERT INTO genres (name) VALUES (?);", (name,))
    return GenreRow(id=int(cursor.lastrowid), name=name)


async def count_genres(conn: aiosqlite.Connection) -> int:
    cursor = await conn.execute("SELECT COUNT(*) AS c FROM genres;")
    row = await cursor.fetchone()
    return int(row["c"]) if row else 0


# ---------------------------------------------------------------------------
# Scan report
# ---------------------------------------------------------------------------

SCAN_REPORT_ID = 1


async def get_scan_report(conn: aiosqlite.Connection) -> ScanReport | None:
    cursor = await conn.execute(
        """
        SELECT started_at, finished_at, seconds, tracks, albums, artists,
               size_bytes, mount, added, skipped, failed
        FROM scan_report
        WHERE id = ?
        """,
        (SCAN_REPORT_ID,),
    )
    row = await cursor.fetchone()
    if row is None:
        return None
    return ScanReport(
        started_at=row["started_at"],
        finished_at=row["finished_at"],
        seconds=float(row["seconds"]),
        tracks=int(row["tracks"]),
        albums=int(row["albums"]),
        artists=int(row["artists"]),
        size_bytes=int(row["size_bytes"]),
        mount=row["mount"],
        added=int(row["added"]),
        skipped=int(row["skipped"]),
        failed=int(row["failed"]),
    )


async def save_scan_report(conn: aiosqlite.Connection, report: ScanReport) -> None:
    """Write `report` into the single report slot, replacing the previous run."""
    await conn.execute(
        """
        INSERT INTO scan_report (
            id, started_at, finished_at, seconds, tracks, albums, artists,
            size_bytes, mount, added, skipped, failed
        ) VALUES (
            :id, :started_at, :finished_at, :seconds, :tracks, :albums, :artists,
            :size_bytes, :mount, :added, :skipped, :failed
        )
        ON CONFLICT(id) DO UPDATE SET
            started_at  = excluded.started_at,
            finished_at = excluded.finished_at,
            seconds     = excluded.seconds,
            tracks      = excluded.tracks,
            albums      = excluded.albums,
            artists     = excluded.artists,
            size_bytes  = excluded.size_bytes,
            mount       = excluded.mount,
            added       = excluded.added,
            skipped     = excluded.skipped,
            failed      = excluded.failed
        """,
        {
            "id": SCAN_REPORT_ID,
            "started_at": report.started_at,
            "finished_at": report.finished_at,
            "seconds": float(report.seconds),
            "tracks": int(report.tracks),
            "albums": int(report.albums),
            "artists": int(report.artists),
            "size_bytes": int(report.size_bytes),
            "mount": report.mount,
            "added": int(report.added),
            "skipped": int(report.skipped),
            "failed": int(report.failed),
        },
    )
