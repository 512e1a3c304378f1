from __future__ import annotations

import asyncio
import logging
import os
import time
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass
from pathlib import Path
from typing import IO

from cadence.core import (
    BuildInProgressError,
    ExtractionError,
    MusicLibraryError,
    ResolutionError,
)
from cadence.core.db.models import ScanReport, TrackRow, utcnow
from cadence.core.library_db import LibraryDb
from cadence.core.registrar import RegisterOutcome, TrackRegistrar
from cadence.core.resolver import AlbumArtEnricher, ArtistPictureProvider, EntityResolver
from cadence.core.scanner import (
    DEFAULT_AUDIO_EXTENSIONS,
    ScanConfig,
    TrackTags,
    extract_tags,
    iter_audio_files,
)

logger = logging.getLogger(__name__)

Extractor = Callable[[Path], TrackTags]
TrackEvictor = Callable[[int], Awaitable[None]]

ALBUM_ART_DIR = "album-art"
TRANSCODE_DIR = "transcode"
ERROR_LOG_NAME = "error_log.txt"

# Log a progress line every N files on large builds.
_PROGRESS_EVERY = 100


@dataclass
class ScanStatus:
    """Status of a running or completed build."""

    is_running: bool = False
    progress: float = 0.0  # 0.0 to 1.0
    current: int = 0
    total: int = 0
    current_path: str = ""
    added: int = 0
    skipped: int = 0
    errors: int = 0
    last_report: ScanReport | None = None


@dataclass(frozen=True, slots=True)
class LibraryCounts:
    tracks: int
    albums: int
    artists: int
    genres: int


@dataclass(frozen=True, slots=True)
class TrackPage:
    tracks: list[TrackRow]
    total: int


class MusicLibrary:
    """
    High-level facade for the Cadence music library.

    Owns the ingestion pipeline (extract -> resolve -> register) and the
    build lock that serializes every catalog mutation. Read helpers are thin
    pass-throughs to `LibraryDb` for the HTTP layer.

    Dependencies:
    - `LibraryDb` for persistence
    - `scanner.extract_tags` (or an injected extractor) for tag data
    - `EntityResolver` / `TrackRegistrar` for catalog writes
    """

    def __init__(
        self,
        *,
        db: LibraryDb,
        cache_root: Path,
        music_root: Path | None = None,
        error_log: Path | None = None,
        extensions: Iterable[str] = DEFAULT_AUDIO_EXTENSIONS,
        extractor: Extractor = extract_tags,
        picture_provider: ArtistPictureProvider | None = None,
        album_enricher: AlbumArtEnricher | None = None,
        evict_track: TrackEvictor | None = None,
    ) -> None:
        self._db = db
        self._cache_root = cache_root
        self._music_root = music_root
        self._error_log = error_log or cache_root / ERROR_LOG_NAME
        self._extensions = frozenset(e.lower() for e in extensions)
        self._extractor = extractor
        self._evict_track = evict_track

        self._resolver = EntityResolver(
            db,
            art_dir=cache_root / ALBUM_ART_DIR,
            picture_provider=picture_provider,
            album_enricher=album_enricher,
        )
        self._registrar = TrackRegistrar(db)

        self._build_lock = asyncio.Lock()
        self._initialized = False
        self._scan_status = ScanStatus()

    @property
    def initialized(self) -> bool:
        return self._initialized

    @property
    def music_root(self) -> Path | None:
        return self._music_root

    @property
    def cache_root(self) -> Path:
        return self._cache_root

    @property
    def extensions(self) -> frozenset[str]:
        return self._extensions

    @property
    def scan_status(self) -> ScanStatus:
        return self._scan_status

    @property
    def is_building(self) -> bool:
        return self._build_lock.locked()

    def set_track_evictor(self, evict_track: TrackEvictor | None) -> None:
        """Hook called with a track id after the track is removed from the catalog."""
        self._evict_track = evict_track

    async def initialize(self) -> None:
        """
        Prepare the library for use.

        Contract:
        - `LibraryDb` must already be open.
        - schema/migrations are ensured here for convenience.
        """
        if not self._db.is_open:
            raise MusicLibraryError(
                "LibraryDb is not open. Open it before initializing MusicLibrary."
            )

        await self._db.ensure_schema()
        self._scan_status.last_report = await self._db.get_scan_report()
        self._initialized = True

    # ---- Ingestion ----

    async def sync(self, root: Path | None = None) -> ScanReport:
        """
        Walk the music root and build every allow-listed file found.

        Raises `BuildInProgressError` if a build is already running.
        """
        self._require_initialized()
        scan_root = root or self._music_root
        if scan_root is None:
            raise MusicLibraryError("No root provided and no music_root configured.")
        if self.is_building:
            raise BuildInProgressError("A library build is already running.")

        config = ScanConfig(root=scan_root, extensions=self._extensions)
        paths = [p async for p in iter_audio_files(config)]
        logger.info("Found %d audio files under %s", len(paths), scan_root)
        return await self.build(paths)

    async def build(self, paths: Iterable[Path | str], *, wait: bool = False) -> ScanReport:
        """
        Ingest `paths` in order and persist a new scan report.

        Known paths are skipped without extraction. Per-file failures are
        logged, appended to the error log and counted; they never abort the
        build. Any other exception aborts the build and propagates.

        With `wait=False` a running build makes this raise
        `BuildInProgressError` immediately; with `wait=True` the call queues
        behind it.
        """
        self._require_initialized()
        if not wait and self._build_lock.locked():
            raise BuildInProgressError("A library build is already running.")

        async with self._build_lock:
            return await self._run_build([Path(p) for p in paths])

    async def _run_build(self, paths: list[Path]) -> ScanReport:
        await asyncio.to_thread(self._ensure_cache_dirs)

        started_at = utcnow()
        t0 = time.monotonic()
        status = ScanStatus(
            is_running=True,
            total=len(paths),
            last_report=self._scan_status.last_report,
        )
        self._scan_status = status
        size_bytes = 0

        logger.info("Starting library build: %d files", len(paths))
        try:
            with open(self._error_log, "a", encoding="utf-8") as error_log:
                for index, path in enumerate(paths, start=1):
                    status.current = index
                    status.current_path = str(path)
                    status.progress = index / len(paths)

                    try:
                        outcome = await self._ingest(path)
                    except (ExtractionError, ResolutionError, OSError) as e:
                        status.errors += 1
                        logger.warning("Failed to ingest %s: %s: %s", path, type(e).__name__, e)
                        _write_error(error_log, path, e)
                        continue

                    if outcome is RegisterOutcome.CREATED:
                        status.added += 1
                    else:
                        status.skipped += 1
                    size_bytes += _file_size(path)

                    if index % _PROGRESS_EVERY == 0:
                        logger.info("Build progress: %d/%d", index, len(paths))

            finished_at = utcnow()
            report = ScanReport(
                started_at=started_at,
                finished_at=finished_at,
                seconds=round(time.monotonic() - t0, 3),
                tracks=await self._db.count_tracks(),
                albums=await self._db.count_albums(),
                artists=await self._db.count_artists(),
                size_bytes=size_bytes,
                mount=str(self._music_root) if self._music_root else None,
                added=status.added,
                skipped=status.skipped,
                failed=status.errors,
            )
            await self._db.save_scan_report(report)
            status.last_report = report
        finally:
            status.is_running = False
            status.current_path = ""

        logger.info(
            "Build complete in %.2fs: %d added, %d skipped, %d failed (%d tracks total)",
            report.seconds,
            report.added,
            report.skipped,
            report.failed,
            report.tracks,
        )
        return report

    async def _ingest(self, path: Path) -> RegisterOutcome:
        if await self._registrar.is_registered(path):
            return RegisterOutcome.ALREADY_EXISTS

        tags = await asyncio.to_thread(self._extractor, path)

        # One savepoint per file: a failure leaves no orphan artists, albums
        # or album art files.
        try:
            async with self._db.savepoint("ingest_file"):
                artists = await self._resolver.resolve_artists(tags.artists)
                album = await self._resolver.resolve_album(
                    tags.album, artists[0], tags.year, tags.picture
                )
                genre = await self._resolver.resolve_genre(tags.genre) if tags.genre else None
                result = await self._registrar.register_track(path, tags, artists, album, genre)
        except BaseException:
            self._resolver.discard_new_art()
            raise
        self._resolver.accept_new_art()
        await self._db.commit()
        return result.outcome

    def _ensure_cache_dirs(self) -> None:
        for d in (self._cache_root, self._cache_root / ALBUM_ART_DIR, self._cache_root / TRANSCODE_DIR):
            d.mkdir(parents=True, exist_ok=True)
        self._error_log.parent.mkdir(parents=True, exist_ok=True)

    # ---- Removal ----

    async def remove_path(self, path: Path | str) -> bool:
        """
        Forget a file that disappeared from disk.

        Deletes the track row (and its artist links) under the build lock, then
        evicts cached transcodes. Artists, albums and genres are kept even if
        nothing references them anymore. Returns False for unknown paths.
        """
        self._require_initialized()
        async with self._build_lock:
            async with self._db.savepoint("remove_track"):
                track_id = await self._db.delete_track_by_path(str(path))
            await self._db.commit()

        if track_id is None:
            logger.debug("Removed path was not in the catalog: %s", path)
            return False

        logger.info("Removed track %d: %s", track_id, path)
        if self._evict_track is not None:
            await self._evict_track(track_id)
        return True

    # ---- Read helpers ----

    async def get_track_by_id(self, track_id: int) -> TrackRow | None:
        self._require_initialized()
        return await self._db.get_track_by_id(track_id)

    async def get_track_by_path(self, path: Path | str) -> TrackRow | None:
        self._require_initialized()
        return await self._db.get_track_by_path(str(path))

    async def list_tracks(
        self,
        *,
        skip: int = 0,
        limit: int = 20,
        sort: str | None = None,
        genre_id: int | None = None,
        artist_id: int | None = None,
        album_id: int | None = None,
    ) -> TrackPage:
        """
        One page of the catalog plus the number of tracks matching the filters.

        `sort` is a field name from `TRACK_SORT_COLUMNS`, prefixed with "-"
        for descending order. Raises `ValueError` for unknown fields.
        """
        self._require_initialized()
        tracks = await self._db.list_tracks(
            skip=skip,
            limit=limit,
            sort=sort,
            genre_id=genre_id,
            artist_id=artist_id,
            album_id=album_id,
        )
        total = await self._db.count_tracks(
            genre_id=genre_id, artist_id=artist_id, album_id=album_id
        )
        return TrackPage(tracks=tracks, total=total)

    async def get_scan_report(self) -> ScanReport | None:
        self._require_initialized()
        return await self._db.get_scan_report()

    async def counts(self) -> LibraryCounts:
        self._require_initialized()
        return LibraryCounts(
            tracks=await self._db.count_tracks(),
            albums=await self._db.count_albums(),
            artists=await self._db.count_artists(),
            genres=await self._db.count_genres(),
        )

    def _require_initialized(self) -> None:
        if not self._initialized:
            raise MusicLibraryError(
                "MusicLibrary is not initialized. Call await MusicLibrary.initialize() first."
            )


def _write_error(stream: IO[str], path: Path, error: BaseException) -> None:
    stream.write(f"{path}\n")
    stream.write(f"[ERROR]: {type(error).__name__}: {error}\n\n")
    stream.flush()


def _file_size(path: Path) -> int:
    try:
        return os.stat(path).st_size
    except OSError:
        return 0
