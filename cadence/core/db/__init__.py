"""
Internal DB subpackage for Cadence.

This package splits the catalog store into focused units (models,
schema/migrations, and query groups) while keeping `LibraryDb` as the single
public interface that the rest of the codebase imports.

Re-exports here are primarily for convenience inside the `core` package.
External code should import `LibraryDb` from `cadence.core.library_db`.
"""

from __future__ import annotations

# Models / DTOs
from .models import AlbumRow, ArtistRow, GenreRow, NewTrack, ScanReport, TrackRow

# Schema / migrations
from .schema import ensure_schema, migrate

__all__ = [
    # models
    "ArtistRow",
    "AlbumRow",
    "GenreRow",
    "TrackRow",
    "NewTrack",
    "ScanReport",
    # schema
    "ensure_schema",
    "migrate",
]
