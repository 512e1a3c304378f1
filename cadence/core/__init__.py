"""
Core domain package.

This package contains the ingestion pipeline and catalog logic, independent of
any UI layer (web, CLI, etc.). Consumers should import from the specific
module they need (e.g. `cadence.core.library`).

The exception hierarchy lives here so every layer can catch domain errors
without importing the modules that raise them.
"""

from __future__ import annotations

__all__: list[str] = [
    "CoreError",
    "NotFoundError",
    "MusicLibraryError",
    "ExtractionError",
    "ResolutionError",
    "TranscodeError",
    "RangeParseError",
    "BuildInProgressError",
]


class CoreError(Exception):
    """Base class for core-layer exceptions."""


class NotFoundError(CoreError):
    """Raised when an entity (track/album/artist/etc.) cannot be found."""


class MusicLibraryError(CoreError):
    """Raised for misuse of the library facade (not initialized, no music root)."""


class ExtractionError(CoreError):
    """A file could not be parsed or carries no tag data."""


class ResolutionError(CoreError):
    """A catalog lookup or create failed while resolving an entity."""


class TranscodeError(CoreError):
    """The conversion pipeline failed; the cache path was left clean."""


class RangeParseError(CoreError):
    """A client Range header is malformed or cannot be satisfied."""


class BuildInProgressError(CoreError):
    """A build was requested while another build holds the library lock."""
