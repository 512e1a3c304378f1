"""
Entity resolution: turn extracted tag names into persisted catalog rows.

Artists, albums and genres all follow the same find-or-create policy:

1. normalize the incoming spec (title-case names),
2. derive the uniqueness key,
3. look the key up, and create the row only if it is absent.

`FindOrCreate` implements that once; `EntityResolver` wires it up for the
three entity kinds and adds the side effects that only happen on first
sight (artist picture lookup, album art persistence).

Find-then-create is not atomic on its own. It is safe here because every
writer runs under the library build lock and processes files one at a time.
The UNIQUE constraints in the schema back this up: a violation surfaces as
`ResolutionError` instead of a duplicate row.
"""

from __future__ import annotations

import asyncio
import dataclasses
import logging
import sqlite3
from collections.abc import Awaitable, Callable, Hashable, Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import Generic, Protocol, TypeVar

from cadence.core import ResolutionError
from cadence.core.db.models import AlbumRow, ArtistRow, GenreRow, normalize_name
from cadence.core.library_db import LibraryDb

logger = logging.getLogger(__name__)

UNKNOWN_ARTIST = "Unknown Artist"
UNKNOWN_ALBUM = "Unknown Album"

S = TypeVar("S")
R = TypeVar("R")
K = TypeVar("K", bound=Hashable)


class ArtistPictureProvider(Protocol):
    """External source of artist pictures (e.g. a streaming-service search)."""

    async def artist_picture(self, name: str) -> str | None: ...


class AlbumArtEnricher(Protocol):
    """External collaborator that finds art for albums created without any."""

    async def enrich_album(self, album: AlbumRow, artist: ArtistRow) -> None: ...


@dataclass(frozen=True, slots=True)
class ArtistSpec:
    name: str


@dataclass(frozen=True, slots=True)
class AlbumSpec:
    name: str
    artist_id: int
    year: int = 0
    picture: bytes | None = None


@dataclass(frozen=True, slots=True)
class GenreSpec:
    name: str


class FindOrCreate(Generic[S, K, R]):
    """
    Generic find-or-create over one entity kind.

    Args:
        kind: Entity name used in logs and errors.
        normalize: Maps a raw spec to its canonical form.
        key: Extracts the uniqueness key from a normalized spec.
        find: Looks a key up in the catalog.
        create: Persists a normalized spec and returns the new row.
    """

    def __init__(
        self,
        kind: str,
        *,
        normalize: Callable[[S], S],
        key: Callable[[S], K],
        find: Callable[[K], Awaitable[R | None]],
        create: Callable[[S], Awaitable[R]],
    ) -> None:
        self.kind = kind
        self._normalize = normalize
        self._key = key
        self._find = find
        self._create = create

    async def __call__(self, spec: S) -> R:
        normalized = self._normalize(spec)
        key = self._key(normalized)
        try:
            existing = await self._find(key)
            if existing is not None:
                return existing
            created = await self._create(normalized)
        except sqlite3.DatabaseError as e:
            raise ResolutionError(f"{self.kind} {key!r}: {type(e).__name__}: {e}") from e
        logger.debug("Created %s %r", self.kind, key)
        return created


class EntityResolver:
    """
    Resolves tag data to Artist/Album/Genre rows, creating them on first sight.

    Args:
        db: Open catalog store.
        art_dir: Directory where embedded album art is written (`<cache>/album-art`).
        picture_provider: Optional artist picture source. Failures are logged
            and the artist is created without a picture.
        album_enricher: Optional collaborator invoked for new albums that
            have no embedded art.
    """

    def __init__(
        self,
        db: LibraryDb,
        *,
        art_dir: Path,
        picture_provider: ArtistPictureProvider | None = None,
        album_enricher: AlbumArtEnricher | None = None,
    ) -> None:
        self._db = db
        self._art_dir = art_dir
        self._picture_provider = picture_provider
        self._album_enricher = album_enricher
        # Art files written since the last accept_new_art()/discard_new_art().
        self._new_art: list[Path] = []

        self._artists: FindOrCreate[ArtistSpec, str, ArtistRow] = FindOrCreate(
            "artist",
            normalize=lambda s: ArtistSpec(normalize_name(s.name) or UNKNOWN_ARTIST),
            key=lambda s: s.name,
            find=db.get_artist_by_name,
            create=self._create_artist,
        )
        self._albums: FindOrCreate[AlbumSpec, tuple[str, int], AlbumRow] = FindOrCreate(
            "album",
            normalize=lambda s: dataclasses.replace(s, name=normalize_name(s.name) or UNKNOWN_ALBUM),
            key=lambda s: (s.name, s.artist_id),
            find=lambda k: db.get_album_by_key(*k),
            create=self._create_album,
        )
        self._genres: FindOrCreate[GenreSpec, str, GenreRow] = FindOrCreate(
            "genre",
            normalize=lambda s: GenreSpec(normalize_name(s.name)),
            key=lambda s: s.name,
            find=db.get_genre_by_name,
            create=lambda s: db.create_genre(s.name),
        )

    async def resolve_artists(self, names: Sequence[str]) -> list[ArtistRow]:
        """
        Resolve artist names in order. The first result is the presumptive
        album artist; an empty input yields the "Unknown Artist" sentinel.
        """
        if not names:
            names = [UNKNOWN_ARTIST]

        artists: list[ArtistRow] = []
        seen: set[int] = set()
        for name in names:
            artist = await self._artists(ArtistSpec(name))
            # Two spellings can normalize to the same artist.
            if artist.id in seen:
                continue
            seen.add(artist.id)
            artists.append(artist)
        return artists

    async def resolve_album(
        self,
        name: str,
        primary_artist: ArtistRow,
        year: int = 0,
        picture: bytes | None = None,
    ) -> AlbumRow:
        """Find or create the album keyed by (normalized name, primary artist)."""
        return await self._albums(AlbumSpec(name, primary_artist.id, year, picture))

    async def resolve_genre(self, name: str) -> GenreRow:
        return await self._genres(GenreSpec(name))

    def accept_new_art(self) -> None:
        """Keep the art written so far: the albums referencing it were committed."""
        self._new_art.clear()

    def discard_new_art(self) -> None:
        """
        Delete art written since the last accept.

        Called when the enclosing savepoint rolls back. Album ids are reused
        after a rollback, so a leftover file would be picked up by an
        unrelated album.
        """
        for path in self._new_art:
            path.unlink(missing_ok=True)
            logger.debug("Discarded album art %s", path)
        self._new_art.clear()

    async def _create_artist(self, spec: ArtistSpec) -> ArtistRow:
        picture = await self._fetch_artist_picture(spec.name)
        artist = await self._db.create_artist(spec.name, picture=picture)
        logger.info("New artist: %s", artist.name)
        return artist

    async def _fetch_artist_picture(self, name: str) -> str | None:
        if self._picture_provider is None or name == UNKNOWN_ARTIST:
            return None
        try:
            return await self._picture_provider.artist_picture(name)
        except Exception as e:  # noqa: BLE001 - a missing picture never blocks ingestion
            logger.warning("Artist picture lookup failed for %s: %s", name, e)
            return None

    async def _create_album(self, spec: AlbumSpec) -> AlbumRow:
        album = await self._db.create_album(spec.name, spec.artist_id, spec.year)
        logger.info("New album: %s (artist id %d)", album.name, album.artist_id)

        picture = spec.picture
        if picture:
            filename = str(album.id)
            try:
                await asyncio.to_thread(self._write_art, filename, picture)
            except OSError as e:
                raise ResolutionError(f"album art for {album.name!r}: {e}") from e
            await self._db.set_album_picture(album.id, filename)
            return dataclasses.replace(album, picture=filename)

        if self._album_enricher is not None:
            artist = await self._db.get_artist_by_id(album.artist_id)
            if artist is not None:
                try:
                    await self._album_enricher.enrich_album(album, artist)
                except Exception as e:  # noqa: BLE001 - enrichment is best effort
                    logger.warning("Album art enrichment failed for %s: %s", album.name, e)
        return album

    def _write_art(self, filename: str, data: bytes) -> None:
        self._art_dir.mkdir(parents=True, exist_ok=True)
        path = self._art_dir / filename
        self._new_art.append(path)
        path.write_bytes(data)
