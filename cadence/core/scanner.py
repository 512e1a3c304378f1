from __future__ import annotations

import asyncio
import base64
import logging
import re
from collections.abc import AsyncIterator, Iterable
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from mutagen import File as mutagen_file
from mutagen.aiff import AIFF
from mutagen.flac import FLAC, Picture
from mutagen.id3 import ID3
from mutagen.monkeysaudio import MonkeysAudio
from mutagen.mp4 import MP4
from mutagen.wave import WAVE
from mutagen.wavpack import WavPack

from cadence.core import ExtractionError

logger = logging.getLogger(__name__)


DEFAULT_AUDIO_EXTENSIONS: frozenset[str] = frozenset({".mp3", ".flac", ".m4a"})

_LOSSLESS_CONTAINERS = (FLAC, WAVE, AIFF, WavPack, MonkeysAudio)

# Artist tags often pack several people into one value: "A & B, C".
_ARTIST_SEPARATORS = re.compile(r"[,&]")

# Lookup order per field: ID3 frame, Vorbis comment names, MP4 atom.
_TAG_KEYS: dict[str, tuple[str, ...]] = {
    "title": ("TIT2", "title", "TITLE", "©nam"),
    "artist": ("TPE1", "artists", "ARTISTS", "artist", "ARTIST", "©ART"),
    "album": ("TALB", "album", "ALBUM", "©alb"),
    "genre": ("TCON", "genre", "GENRE", "©gen"),
    "track_number": ("TRCK", "tracknumber", "TRACKNUMBER", "trkn"),
    "year": ("TDRC", "TYER", "date", "DATE", "YEAR", "©day"),
}


@dataclass(frozen=True, slots=True)
class ScanConfig:
    """Configuration for walking a music folder."""

    root: Path
    extensions: frozenset[str] = DEFAULT_AUDIO_EXTENSIONS
    follow_symlinks: bool = False


@dataclass(frozen=True, slots=True)
class TrackTags:
    """
    Normalized tag data extracted from one audio file.

    Missing fields carry their documented defaults, so consumers never have
    to special-case `None` for the basic fields.
    """

    path: Path
    title: str = ""
    artists: tuple[str, ...] = ()
    album: str = ""
    genre: str | None = None
    year: int = 0
    track_number: int = 1
    duration: float = 0.0
    lossless: bool = False
    file_size: int = 0
    picture: bytes | None = None


def _clean_str(value: str | None) -> str | None:
    if value is None:
        return None
    s = value.strip()
    return s if s else None


def _as_text_list(value: Any) -> list[str]:
    """Flatten any mutagen value (frame, list, bytes, str) into a list of strings."""
    if value is None:
        return []
    if isinstance(value, list | tuple):
        out: list[str] = []
        for v in value:
            out.extend(_as_text_list(v))
        return out
    if isinstance(value, bytes):
        return [value.decode("utf-8", errors="replace")]
    if isinstance(value, str):
        return [value]
    text = getattr(value, "text", None)
    if text is not None:
        return _as_text_list(text)
    return [str(value)]


def _first_text(value: Any) -> str | None:
    """First non-blank string in a mutagen value, or None."""
    if value is None:
        return None

    if isinstance(value, (list, tuple)):
        if not value:
            return None
        return _first_text(value[0])

    text = getattr(value, "text", None)
    if text is not None:
        return _first_text(text)

    return _clean_str(str(value))


def _parse_int_maybe(value: Any) -> int | None:
    # "3", "3/12", ["3/12"] and MP4 trkn pairs [(3, 12)] all yield 3.
    s = _first_text(value)
    if not s:
        return None

    if "/" in s:
        s = s.split("/", 1)[0].strip()

    try:
        return int(s)
    except ValueError:
        return None


def _parse_year_maybe(value: Any) -> int | None:
    # First four-digit run: "1999", "1999-01-01", "1999/2000".
    s = _first_text(value)
    if not s:
        return None

    match = re.search(r"\d{4}", s)
    if match is None:
        return None
    year = int(match.group(0))
    return year if 1000 <= year <= 3000 else None


def _parse_genre(value: Any) -> str | None:
    # ID3 TCON frames resolve numeric references like "(17)" via `.genres`.
    genres = getattr(value, "genres", None)
    if genres:
        return _clean_str(genres[0])
    return _first_text(value)


def split_artist_names(value: Any) -> tuple[str, ...]:
    """
    Split artist tag values into an ordered list of candidate names.

    Every value is split on ',' and '&', tokens are trimmed, empty tokens are
    dropped, and case-insensitive repeats are removed (first spelling wins).

        "A & B, C"        -> ("A", "B", "C")
        ["A, B", "b", ""] -> ("A", "B")
    """
    seen: set[str] = set()
    names: list[str] = []
    for item in _as_text_list(value):
        for token in _ARTIST_SEPARATORS.split(item):
            name = token.strip()
            if not name:
                continue
            key = " ".join(name.casefold().split())
            if key in seen:
                continue
            seen.add(key)
            names.append(name)
    return tuple(names)


def _tags_get(tags: Any, keys: Iterable[str]) -> Any:
    if not tags:
        return None
    for k in keys:
        try:
            if k in tags:
                return tags.get(k)
        except ValueError:
            # Vorbis comments reject non-ASCII keys such as MP4's "©nam".
            continue
    return None


def _is_lossless(audio: Any) -> bool:
    if isinstance(audio, _LOSSLESS_CONTAINERS):
        return True
    codec = getattr(getattr(audio, "info", None), "codec", None)
    return isinstance(codec, str) and codec.lower() == "alac"


def _first_picture(audio: Any) -> bytes | None:
    """Return the embedded cover image, preferring the ID3 front cover."""
    if isinstance(audio, MP4):
        covers = audio.tags.get("covr") if audio.tags else None
        return bytes(covers[0]) if covers else None

    if isinstance(audio, FLAC):
        return audio.pictures[0].data if audio.pictures else None

    tags = audio.tags
    if isinstance(tags, ID3):
        frames = tags.getall("APIC")
        if not frames:
            return None
        cover = next((f for f in frames if f.type == 3), frames[0])
        return cover.data

    # Vorbis comments (ogg, opus) carry base64 FLAC picture blocks.
    raw = _tags_get(tags, ("metadata_block_picture", "METADATA_BLOCK_PICTURE"))
    if raw:
        try:
            return Picture(base64.b64decode(raw[0])).data
        except Exception as e:  # noqa: BLE001 - a broken picture never fails the file
            logger.debug("Unreadable embedded picture: %s", e)
    return None


def extract_tags(path: Path) -> TrackTags:
    """
    Extract normalized tag data using mutagen.

    Raises `ExtractionError` when the file cannot be parsed or carries no
    embedded tags. This function is synchronous and touches nothing but the
    file; callers on the event loop run it via `asyncio.to_thread`.
    """
    try:
        audio = mutagen_file(path)
        size = path.stat().st_size
    except Exception as e:  # noqa: BLE001 - mutagen raises many unrelated types
        raise ExtractionError(f"{type(e).__name__}: {e}") from e

    if audio is None:
        raise ExtractionError("unsupported or unreadable audio file")

    tags = getattr(audio, "tags", None)
    if not tags:
        raise ExtractionError("no metadata found")

    duration = 0.0
    length = getattr(getattr(audio, "info", None), "length", None)
    if isinstance(length, (int, float)) and length > 0:
        duration = float(length)

    def field(name: str) -> Any:
        return _tags_get(tags, _TAG_KEYS[name])

    title = _first_text(field("title")) or ""
    artists = split_artist_names(field("artist"))
    album = _first_text(field("album")) or ""
    genre = _parse_genre(field("genre"))
    track_number = _parse_int_maybe(field("track_number"))
    year = _parse_year_maybe(field("year"))

    return TrackTags(
        path=path,
        title=title,
        artists=artists,
        album=album,
        genre=genre,
        year=year or 0,
        track_number=track_number or 1,
        duration=duration,
        lossless=_is_lossless(audio),
        file_size=size,
        picture=_first_picture(audio),
    )


async def iter_audio_files(config: ScanConfig) -> AsyncIterator[Path]:
    """
    Yield allow-listed audio files under `config.root`, sorted case-insensitively.

    The tree is walked in a worker thread. Only the extension is checked here;
    unreadable files fail later, at extraction.
    """
    root = config.root
    if not root.exists():
        raise FileNotFoundError(root)
    if not root.is_dir():
        raise NotADirectoryError(root)

    extensions = {ext.lower() for ext in config.extensions}

    def _walk() -> list[Path]:
        paths: list[Path] = []
        for p in root.rglob("*"):
            try:
                if not config.follow_symlinks and p.is_symlink():
                    continue
                if not p.is_file():
                    continue
                if p.suffix.lower() not in extensions:
                    continue
                paths.append(p)
            except OSError:
                continue
        paths.sort(key=lambda p: str(p).lower())
        return paths

    paths = await asyncio.to_thread(_walk)
    for p in paths:
        yield p
