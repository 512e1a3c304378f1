"""
Tests for cadence.core.library and the catalog layers beneath it.

These tests verify:
- LibraryDb schema creation and find/create/count operations
- EntityResolver find-or-create deduplication and side effects
- TrackRegistrar create-only semantics
- MusicLibrary builds: skipping, per-file failure containment, the error log,
  the scan report, and the build lock
"""

from __future__ import annotations

import asyncio
import sqlite3
import threading
from collections.abc import Callable
from pathlib import Path

import pytest

from cadence.core import (
    BuildInProgressError,
    ExtractionError,
    MusicLibraryError,
    ResolutionError,
)
from cadence.core.db.models import AlbumRow, ArtistRow, NewTrack, ScanReport, normalize_name
from cadence.core.library import MusicLibrary
from cadence.core.library_db import LibraryDb
from cadence.core.registrar import RegisterOutcome, TrackRegistrar
from cadence.core.resolver import UNKNOWN_ALBUM, UNKNOWN_ARTIST, EntityResolver
from cadence.core.scanner import TrackTags

# =============================================================================
# Helpers
# =============================================================================


def write_audio(root: Path, name: str, size: int = 100) -> Path:
    """Create a placeholder file; the fake extractor never parses it."""
    path = root / name
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(b"\0" * size)
    return path


def fake_extractor(
    entries: dict[str, TrackTags | Exception],
    calls: list[Path] | None = None,
) -> Callable[[Path], TrackTags]:
    """Extractor keyed by file name; exceptions in `entries` are raised."""

    def _extract(path: Path) -> TrackTags:
        if calls is not None:
            calls.append(path)
        entry = entries[path.name]
        if isinstance(entry, Exception):
            raise entry
        return entry

    return _extract


def tags(
    path: str,
    title: str = "Song",
    artists: tuple[str, ...] = ("Artist",),
    album: str = "Album",
    **kwargs,
) -> TrackTags:
    return TrackTags(path=Path(path), title=title, artists=artists, album=album, **kwargs)


@pytest.fixture
async def db() -> LibraryDb:
    """Create an in-memory database for testing."""
    db = LibraryDb(":memory:")
    await db.open()
    await db.ensure_schema()
    yield db
    await db.close()


# =============================================================================
# LibraryDb Tests
# =============================================================================


class TestLibraryDb:
    """Tests for the database layer."""

    async def test_open_close(self) -> None:
        """Test basic open/close lifecycle."""
        db = LibraryDb(":memory:")
        assert not db.is_open

        await db.open()
        assert db.is_open

        await db.close()
        assert not db.is_open

    async def test_closed_db_raises(self) -> None:
        db = LibraryDb(":memory:")
        with pytest.raises(RuntimeError):
            await db.count_tracks()

    async def test_ensure_schema_creates_empty_catalog(self, db: LibraryDb) -> None:
        assert await db.count_tracks() == 0
        assert await db.count_albums() == 0
        assert await db.count_artists() == 0
        assert await db.count_genres() == 0
        assert await db.get_scan_report() is None

    async def test_ensure_schema_is_idempotent(self, db: LibraryDb) -> None:
        await db.create_artist("Artist")
        await db.commit()
        await db.ensure_schema()
        assert await db.count_artists() == 1

    async def test_create_and_find_artist(self, db: LibraryDb) -> None:
        created = await db.create_artist("Daft Punk", picture="http://img/dp.jpg")
        found = await db.get_artist_by_name("Daft Punk")

        assert found == created
        assert found.picture == "http://img/dp.jpg"
        assert await db.get_artist_by_id(created.id) == created
        assert await db.get_artist_by_name("daft punk") is None

    async def test_artist_name_is_unique(self, db: LibraryDb) -> None:
        await db.create_artist("Daft Punk")
        with pytest.raises(sqlite3.IntegrityError):
            await db.create_artist("Daft Punk")

    async def test_album_unique_per_artist(self, db: LibraryDb) -> None:
        a = await db.create_artist("A")
        b = await db.create_artist("B")
        await db.create_album("Greatest Hits", a.id, 2000)
        await db.create_album("Greatest Hits", b.id, 2001)

        with pytest.raises(sqlite3.IntegrityError):
            await db.create_album("Greatest Hits", a.id, 2002)
        assert await db.count_albums() == 2

    async def test_insert_track_keeps_artist_order(self, db: LibraryDb) -> None:
        a = await db.create_artist("A")
        b = await db.create_artist("B")
        album = await db.create_album("Album", b.id, 0)

        track_id = await db.insert_track(
            NewTrack(
                path="/music/x.mp3",
                title="X",
                artist="B, A",
                album_id=album.id,
                artist_ids=(b.id, a.id),
                duration=12.5,
                lossless=True,
            )
        )
        row = await db.get_track_by_id(track_id)

        assert row is not None
        assert row.artist_ids == (b.id, a.id)
        assert row.duration == 12.5
        assert row.lossless is True
        assert row.plays == 0
        assert await db.get_track_by_path("/music/x.mp3") == row
        assert await db.track_exists("/music/x.mp3")

    async def test_delete_track_by_path(self, db: LibraryDb) -> None:
        artist = await db.create_artist("A")
        album = await db.create_album("Album", artist.id, 0)
        track_id = await db.insert_track(
            NewTrack(path="/m/a.mp3", title="T", artist="A", album_id=album.id, artist_ids=(artist.id,))
        )

        assert await db.delete_track_by_path("/m/a.mp3") == track_id
        assert await db.delete_track_by_path("/m/a.mp3") is None
        assert await db.get_track_by_id(track_id) is None
        # Albums and artists are not garbage-collected.
        assert await db.count_albums() == 1
        assert await db.count_artists() == 1

    async def test_savepoint_rolls_back_on_error(self, db: LibraryDb) -> None:
        with pytest.raises(ValueError):
            async with db.savepoint("t"):
                await db.create_artist("Ghost")
                raise ValueError("boom")
        assert await db.get_artist_by_name("Ghost") is None

        async with db.savepoint("t"):
            await db.create_artist("Kept")
        await db.commit()
        assert await db.get_artist_by_name("Kept") is not None

    async def test_scan_report_has_a_single_slot(self, db: LibraryDb) -> None:
        first = ScanReport("t0", "t1", 1.0, 1, 1, 1, 10, "/music", added=1)
        second = ScanReport("t2", "t3", 2.0, 5, 2, 3, 50, "/music", added=4, skipped=1, failed=2)

        await db.save_scan_report(first)
        await db.save_scan_report(second)

        assert await db.get_scan_report() == second


# =============================================================================
# Normalization Tests
# =============================================================================


class TestNormalizeName:
    """Tests for the name canonicalization used by all entity lookups."""

    @pytest.mark.parametrize(
        ("raw", "expected"),
        [
            ("the beatles", "The Beatles"),
            ("  THE   BEATLES ", "The Beatles"),
            ("AC/DC", "Ac/dc"),
            ("guns n' roses", "Guns N' Roses"),
            ("", ""),
            (None, ""),
        ],
    )
    def test_normalize_name(self, raw: str | None, expected: str) -> None:
        assert normalize_name(raw) == expected


# =============================================================================
# EntityResolver Tests
# =============================================================================


class FakePictureProvider:
    def __init__(self, picture: str | None = None, error: Exception | None = None) -> None:
        self.picture = picture
        self.error = error
        self.calls: list[str] = []

    async def artist_picture(self, name: str) -> str | None:
        self.calls.append(name)
        if self.error is not None:
            raise self.error
        return self.picture


class FakeEnricher:
    def __init__(self, error: Exception | None = None) -> None:
        self.error = error
        self.calls: list[tuple[AlbumRow, ArtistRow]] = []

    async def enrich_album(self, album: AlbumRow, artist: ArtistRow) -> None:
        self.calls.append((album, artist))
        if self.error is not None:
            raise self.error


class TestEntityResolver:
    """Tests for find-or-create resolution of artists, albums and genres."""

    @pytest.fixture
    def resolver(self, db: LibraryDb, tmp_path: Path) -> EntityResolver:
        return EntityResolver(db, art_dir=tmp_path / "album-art")

    async def test_resolve_artists_keeps_order(self, resolver: EntityResolver) -> None:
        artists = await resolver.resolve_artists(["Zed", "alpha", "Mid"])
        assert [a.name for a in artists] == ["Zed", "Alpha", "Mid"]

    async def test_resolve_artists_deduplicates_by_normalized_name(
        self, db: LibraryDb, resolver: EntityResolver
    ) -> None:
        first = await resolver.resolve_artists(["the beatles"])
        second = await resolver.resolve_artists(["  THE BEATLES "])

        assert first[0].id == second[0].id
        assert first[0].name == "The Beatles"
        assert await db.count_artists() == 1

    async def test_resolve_artists_collapses_spellings_within_one_call(
        self, resolver: EntityResolver
    ) -> None:
        artists = await resolver.resolve_artists(["Daft Punk", "daft  punk"])
        assert len(artists) == 1

    async def test_empty_artist_list_resolves_to_sentinel(
        self, db: LibraryDb, resolver: EntityResolver
    ) -> None:
        first = await resolver.resolve_artists([])
        second = await resolver.resolve_artists(())

        assert [a.name for a in first] == [UNKNOWN_ARTIST]
        assert first == second
        assert await db.count_artists() == 1

    async def test_album_keyed_by_name_and_primary_artist(
        self, db: LibraryDb, resolver: EntityResolver
    ) -> None:
        (a,) = await resolver.resolve_artists(["A"])
        (b,) = await resolver.resolve_artists(["B"])

        one = await resolver.resolve_album("greatest hits", a, 1999)
        again = await resolver.resolve_album("GREATEST HITS", a, 2005)
        other = await resolver.resolve_album("Greatest Hits", b, 2001)

        assert one.id == again.id
        assert one.year == 1999
        assert one.id != other.id
        assert await db.count_albums() == 2

    async def test_empty_album_name_resolves_to_sentinel(self, resolver: EntityResolver) -> None:
        (artist,) = await resolver.resolve_artists(["A"])
        album = await resolver.resolve_album("", artist)
        assert album.name == UNKNOWN_ALBUM

    async def test_album_picture_written_to_cache(
        self, db: LibraryDb, resolver: EntityResolver, tmp_path: Path
    ) -> None:
        (artist,) = await resolver.resolve_artists(["A"])
        album = await resolver.resolve_album("Album", artist, 2000, b"\x89PNGdata")

        art_file = tmp_path / "album-art" / str(album.id)
        assert art_file.read_bytes() == b"\x89PNGdata"
        assert album.picture == str(album.id)
        stored = await db.get_album_by_id(album.id)
        assert stored is not None and stored.picture == str(album.id)

    async def test_existing_album_ignores_new_picture(
        self, resolver: EntityResolver, tmp_path: Path
    ) -> None:
        (artist,) = await resolver.resolve_artists(["A"])
        album = await resolver.resolve_album("Album", artist, 2000, b"first")
        await resolver.resolve_album("Album", artist, 2000, b"second")

        assert (tmp_path / "album-art" / str(album.id)).read_bytes() == b"first"

    async def test_discard_new_art_only_removes_unaccepted_files(
        self, resolver: EntityResolver, tmp_path: Path
    ) -> None:
        (artist,) = await resolver.resolve_artists(["A"])
        kept = await resolver.resolve_album("Kept", artist, 0, b"kept")
        resolver.accept_new_art()
        dropped = await resolver.resolve_album("Dropped", artist, 0, b"dropped")

        resolver.discard_new_art()

        assert (tmp_path / "album-art" / str(kept.id)).exists()
        assert not (tmp_path / "album-art" / str(dropped.id)).exists()

    async def test_enricher_called_only_without_picture(
        self, db: LibraryDb, tmp_path: Path
    ) -> None:
        enricher = FakeEnricher()
        resolver = EntityResolver(db, art_dir=tmp_path / "art", album_enricher=enricher)
        (artist,) = await resolver.resolve_artists(["A"])

        await resolver.resolve_album("With Art", artist, 0, b"img")
        bare = await resolver.resolve_album("Bare", artist, 0)
        await resolver.resolve_album("Bare", artist, 0)

        assert [(album.id, a.id) for album, a in enricher.calls] == [(bare.id, artist.id)]

    async def test_enricher_failure_is_not_fatal(self, db: LibraryDb, tmp_path: Path) -> None:
        resolver = EntityResolver(
            db, art_dir=tmp_path / "art", album_enricher=FakeEnricher(RuntimeError("offline"))
        )
        (artist,) = await resolver.resolve_artists(["A"])
        album = await resolver.resolve_album("Album", artist)
        assert album.picture is None

    async def test_picture_provider_sets_artist_picture(
        self, db: LibraryDb, tmp_path: Path
    ) -> None:
        provider = FakePictureProvider("http://img/a.jpg")
        resolver = EntityResolver(db, art_dir=tmp_path / "art", picture_provider=provider)

        (artist,) = await resolver.resolve_artists(["A"])
        await resolver.resolve_artists(["A"])

        assert artist.picture == "http://img/a.jpg"
        # Only consulted on creation.
        assert provider.calls == ["A"]

    async def test_picture_provider_failure_creates_artist_without_picture(
        self, db: LibraryDb, tmp_path: Path
    ) -> None:
        provider = FakePictureProvider(error=ConnectionError("no network"))
        resolver = EntityResolver(db, art_dir=tmp_path / "art", picture_provider=provider)

        (artist,) = await resolver.resolve_artists(["A"])

        assert artist.picture is None
        assert await db.get_artist_by_name("A") is not None

    async def test_resolve_genre_deduplicates(self, db: LibraryDb, resolver: EntityResolver) -> None:
        rock = await resolver.resolve_genre("rock")
        again = await resolver.resolve_genre("ROCK ")
        assert rock == again
        assert rock.name == "Rock"
        assert await db.count_genres() == 1

    async def test_database_errors_become_resolution_errors(
        self, db: LibraryDb, resolver: EntityResolver
    ) -> None:
        # A fresh in-memory connection has no tables at all.
        await db.close()
        await db.open()
        with pytest.raises(ResolutionError):
            await resolver.resolve_genre("Jazz")


# =============================================================================
# TrackRegistrar Tests
# =============================================================================


class TestTrackRegistrar:
    """Tests for create-only track registration."""

    async def test_register_then_already_exists(self, db: LibraryDb, tmp_path: Path) -> None:
        resolver = EntityResolver(db, art_dir=tmp_path / "art")
        registrar = TrackRegistrar(db)
        artists = await resolver.resolve_artists(["B", "A"])
        album = await resolver.resolve_album("Album", artists[0])
        genre = await resolver.resolve_genre("Pop")
        t = tags("/m/a.mp3", title="hello   WORLD", track_number=3, duration=61.0, year=2010)

        first = await registrar.register_track("/m/a.mp3", t, artists, album, genre)
        second = await registrar.register_track("/m/a.mp3", t, artists, album, genre)

        assert first.outcome is RegisterOutcome.CREATED
        assert first.created
        assert second.outcome is RegisterOutcome.ALREADY_EXISTS
        assert second.track is None

        track = first.track
        assert track is not None
        assert track.title == "Hello World"
        assert track.artist == "B, A"
        assert track.artist_ids == tuple(a.id for a in artists)
        assert track.album_id == album.id
        assert track.genre_id == genre.id
        assert track.track_no == 3
        assert track.year == 2010
        assert await db.count_tracks() == 1

    async def test_register_without_artists_is_rejected(self, db: LibraryDb, tmp_path: Path) -> None:
        resolver = EntityResolver(db, art_dir=tmp_path / "art")
        artists = await resolver.resolve_artists(["A"])
        album = await resolver.resolve_album("Album", artists[0])
        with pytest.raises(ValueError):
            await TrackRegistrar(db).register_track("/m/a.mp3", tags("/m/a.mp3"), [], album)


# =============================================================================
# MusicLibrary Tests
# =============================================================================


class TestMusicLibrary:
    """Tests for the MusicLibrary facade and its batch builder."""

    @pytest.fixture
    def music(self, tmp_path: Path) -> Path:
        root = tmp_path / "music"
        root.mkdir()
        return root

    @pytest.fixture
    def cache(self, tmp_path: Path) -> Path:
        return tmp_path / "cache"

    async def make_library(
        self,
        db: LibraryDb,
        cache: Path,
        music: Path,
        extractor: Callable[[Path], TrackTags],
        **kwargs,
    ) -> MusicLibrary:
        library = MusicLibrary(
            db=db, cache_root=cache, music_root=music, extractor=extractor, **kwargs
        )
        await library.initialize()
        return library

    async def test_requires_initialize(self, db: LibraryDb, tmp_path: Path) -> None:
        library = MusicLibrary(db=db, cache_root=tmp_path)
        with pytest.raises(MusicLibraryError):
            await library.build([])

    async def test_initialize_requires_open_db(self, tmp_path: Path) -> None:
        library = MusicLibrary(db=LibraryDb(":memory:"), cache_root=tmp_path)
        with pytest.raises(MusicLibraryError):
            await library.initialize()

    async def test_build_creates_cache_layout(
        self, db: LibraryDb, cache: Path, music: Path
    ) -> None:
        library = await self.make_library(db, cache, music, fake_extractor({}))
        await library.build([])

        assert (cache / "album-art").is_dir()
        assert (cache / "transcode").is_dir()

    async def test_build_ingests_and_reports(
        self, db: LibraryDb, cache: Path, music: Path
    ) -> None:
        a = write_audio(music, "a.mp3", 100)
        b = write_audio(music, "b.flac", 250)
        extractor = fake_extractor(
            {
                "a.mp3": tags(str(a), artists=("X", "Y"), genre="Rock"),
                "b.flac": tags(str(b), artists=("Y",), album="Other", lossless=True),
            }
        )
        library = await self.make_library(db, cache, music, extractor)

        report = await library.build([a, b])

        assert report.added == 2
        assert report.skipped == 0
        assert report.failed == 0
        assert report.tracks == 2
        assert report.albums == 2
        assert report.size_bytes == 350
        assert report.mount == str(music)
        assert report.seconds >= 0
        assert await library.get_scan_report() == report
        assert library.scan_status.last_report == report
        assert library.scan_status.is_running is False

    async def test_build_skips_known_paths_without_extracting(
        self, db: LibraryDb, cache: Path, music: Path
    ) -> None:
        a = write_audio(music, "a.mp3")
        calls: list[Path] = []
        library = await self.make_library(
            db, cache, music, fake_extractor({"a.mp3": tags(str(a))}, calls)
        )

        await library.build([a])
        report = await library.build([a])

        assert calls == [a]
        assert report.added == 0
        assert report.skipped == 1
        assert report.tracks == 1
        assert await db.count_artists() == 1
        assert await db.count_albums() == 1

    async def test_corrupt_file_is_logged_and_skipped(
        self, db: LibraryDb, cache: Path, music: Path
    ) -> None:
        good = write_audio(music, "good.mp3")
        bad = write_audio(music, "bad.mp3")
        extractor = fake_extractor(
            {
                "bad.mp3": ExtractionError("no metadata found"),
                "good.mp3": tags(str(good)),
            }
        )
        library = await self.make_library(db, cache, music, extractor)

        report = await library.build([bad, good])

        assert report.added == 1
        assert report.failed == 1
        assert library.scan_status.errors == 1
        assert await db.get_track_by_path(str(bad)) is None

        log = (cache / "error_log.txt").read_text(encoding="utf-8")
        assert log == f"{bad}\n[ERROR]: ExtractionError: no metadata found\n\n"

    async def test_error_log_is_appended_across_builds(
        self, db: LibraryDb, cache: Path, music: Path
    ) -> None:
        bad = write_audio(music, "bad.mp3")
        library = await self.make_library(
            db, cache, music, fake_extractor({"bad.mp3": ExtractionError("broken")})
        )

        await library.build([bad])
        await library.build([bad])

        log = (cache / "error_log.txt").read_text(encoding="utf-8")
        assert log.count("[ERROR]: ExtractionError: broken") == 2

    async def test_failed_file_leaves_no_partial_entities(
        self, db: LibraryDb, cache: Path, music: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        a = write_audio(music, "a.mp3")
        library = await self.make_library(
            db, cache, music, fake_extractor({"a.mp3": tags(str(a), artists=("New",), genre="Jazz")})
        )

        async def broken_genre(name: str):
            raise ResolutionError("genre table unavailable")

        monkeypatch.setattr(library._resolver, "resolve_genre", broken_genre)
        report = await library.build([a])

        assert report.failed == 1
        assert await db.count_artists() == 0
        assert await db.count_albums() == 0
        assert await db.count_tracks() == 0

    async def test_failed_file_leaves_no_album_art(
        self, db: LibraryDb, cache: Path, music: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        a = write_audio(music, "a.mp3")
        b = write_audio(music, "b.mp3")
        extractor = fake_extractor(
            {
                "a.mp3": tags(str(a), album="Covered", picture=b"stale art"),
                "b.mp3": tags(str(b), album="Bare"),
            }
        )
        library = await self.make_library(db, cache, music, extractor)
        real_register = library._registrar.register_track

        async def broken_register(*args, **kwargs):
            raise ResolutionError("track table unavailable")

        monkeypatch.setattr(library._registrar, "register_track", broken_register)
        report = await library.build([a])

        assert report.failed == 1
        assert list((cache / "album-art").iterdir()) == []

        # The rolled-back album id is handed out again.
        monkeypatch.setattr(library._registrar, "register_track", real_register)
        await library.build([b])
        track = await library.get_track_by_path(b)
        assert track is not None
        album = await db.get_album_by_id(track.album_id)
        assert album is not None and album.picture is None
        assert not (cache / "album-art" / str(album.id)).exists()

    async def test_committed_album_art_is_kept(
        self, db: LibraryDb, cache: Path, music: Path
    ) -> None:
        a = write_audio(music, "a.mp3")
        library = await self.make_library(
            db, cache, music, fake_extractor({"a.mp3": tags(str(a), picture=b"art")})
        )

        await library.build([a])

        track = await library.get_track_by_path(a)
        assert track is not None
        assert (cache / "album-art" / str(track.album_id)).read_bytes() == b"art"

    async def test_missing_file_is_counted_as_failure(
        self, db: LibraryDb, cache: Path, music: Path
    ) -> None:
        gone = music / "gone.mp3"
        library = await self.make_library(
            db, cache, music, fake_extractor({"gone.mp3": FileNotFoundError(2, "No such file")})
        )

        report = await library.build([gone])

        assert report.failed == 1
        assert "FileNotFoundError" in (cache / "error_log.txt").read_text(encoding="utf-8")

    async def test_unexpected_error_aborts_build_and_releases_lock(
        self, db: LibraryDb, cache: Path, music: Path
    ) -> None:
        a = write_audio(music, "a.mp3")
        b = write_audio(music, "b.mp3")
        library = await self.make_library(
            db,
            cache,
            music,
            fake_extractor({"a.mp3": RuntimeError("catalog gone"), "b.mp3": tags(str(b))}),
        )

        with pytest.raises(RuntimeError):
            await library.build([a])

        assert library.is_building is False
        assert library.scan_status.is_running is False
        report = await library.build([b])
        assert report.added == 1

    async def test_concurrent_manual_build_is_rejected(
        self, db: LibraryDb, cache: Path, music: Path
    ) -> None:
        a = write_audio(music, "a.mp3")
        b = write_audio(music, "b.mp3")
        gate = threading.Event()

        def slow_extract(path: Path) -> TrackTags:
            gate.wait(timeout=5)
            return tags(str(path))

        library = await self.make_library(db, cache, music, slow_extract)
        first = asyncio.create_task(library.build([a]))
        while not library.is_building:
            await asyncio.sleep(0.01)

        with pytest.raises(BuildInProgressError):
            await library.build([b])

        gate.set()
        report = await first
        assert report.added == 1
        assert await db.get_track_by_path(str(b)) is None

    async def test_waiting_build_queues_behind_running_build(
        self, db: LibraryDb, cache: Path, music: Path
    ) -> None:
        a = write_audio(music, "a.mp3")
        b = write_audio(music, "b.mp3")
        gate = threading.Event()

        def slow_extract(path: Path) -> TrackTags:
            gate.wait(timeout=5)
            return tags(str(path), title=path.stem)

        library = await self.make_library(db, cache, music, slow_extract)
        first = asyncio.create_task(library.build([a]))
        while not library.is_building:
            await asyncio.sleep(0.01)
        second = asyncio.create_task(library.build([b], wait=True))

        gate.set()
        r1, r2 = await asyncio.gather(first, second)

        assert r1.tracks == 1
        assert r2.tracks == 2

    async def test_sync_walks_music_root(self, db: LibraryDb, cache: Path, music: Path) -> None:
        write_audio(music, "one.mp3")
        write_audio(music, "sub/two.FLAC")
        write_audio(music, "cover.jpg")

        def extract(path: Path) -> TrackTags:
            return tags(str(path), title=path.stem)

        library = await self.make_library(db, cache, music, extract)
        report = await library.sync()

        assert report.added == 2
        assert await db.count_tracks() == 2

    async def test_sync_without_root_fails(self, db: LibraryDb, cache: Path) -> None:
        library = MusicLibrary(db=db, cache_root=cache, extractor=fake_extractor({}))
        await library.initialize()
        with pytest.raises(MusicLibraryError):
            await library.sync()

    async def test_remove_path_deletes_track_and_evicts(
        self, db: LibraryDb, cache: Path, music: Path
    ) -> None:
        a = write_audio(music, "a.mp3")
        evicted: list[int] = []

        async def evict(track_id: int) -> None:
            evicted.append(track_id)

        library = await self.make_library(
            db, cache, music, fake_extractor({"a.mp3": tags(str(a))}), evict_track=evict
        )
        await library.build([a])
        track = await library.get_track_by_path(a)
        assert track is not None

        assert await library.remove_path(a) is True
        assert await library.remove_path(a) is False

        assert await library.get_track_by_id(track.id) is None
        assert evicted == [track.id]
        counts = await library.counts()
        assert counts.tracks == 0
        assert counts.albums == 1
        assert counts.artists == 1

    async def test_removed_then_readded_file_is_ingested_again(
        self, db: LibraryDb, cache: Path, music: Path
    ) -> None:
        a = write_audio(music, "a.mp3")
        library = await self.make_library(db, cache, music, fake_extractor({"a.mp3": tags(str(a))}))

        await library.build([a])
        await library.remove_path(a)
        report = await library.build([a])

        assert report.added == 1
        assert report.albums == 1
