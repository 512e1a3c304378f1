"""
Range-aware byte streaming for audio files.

`open_stream()` turns a file and an optional `Range` header into a
`StreamPlan`: status code, headers and the byte window to send. The body is
produced by `iter_file_range()`, an async generator that reads fixed-size
chunks and always closes the file, including when the client disconnects
and the generator is closed early.

Only single `bytes=` ranges are honoured. A header that cannot be parsed or
satisfied does not fail the request; the whole file is served with 200.
"""

from __future__ import annotations

import logging
import os
from collections.abc import AsyncIterator
from dataclasses import dataclass
from pathlib import Path

from cadence.core import RangeParseError

logger = logging.getLogger(__name__)

# Buffer size for streaming (64KB chunks)
STREAM_CHUNK_SIZE = 65536

DEFAULT_CONTENT_TYPE = "audio/mp3"

_CONTENT_TYPES = {
    ".mp3": "audio/mpeg",
    ".flac": "audio/flac",
    ".ogg": "audio/ogg",
    ".opus": "audio/opus",
    ".wav": "audio/wav",
    ".aiff": "audio/aiff",
    ".aif": "audio/aiff",
    ".m4a": "audio/mp4",
    ".m4b": "audio/mp4",
    ".aac": "audio/aac",
}


def get_content_type(path: Path) -> str:
    """Get the MIME type for an audio file from its extension."""
    return _CONTENT_TYPES.get(path.suffix.lower(), DEFAULT_CONTENT_TYPE)


def parse_range_header(range_header: str, file_size: int) -> tuple[int, int]:
    """
    Parse an HTTP Range header into an inclusive (start, end) byte window.

    Supported forms:
        bytes=START-END   exact window; END past the file is clamped
        bytes=START-      from START to the last byte
        bytes=-N          the last N bytes

    Raises:
        RangeParseError: For malformed headers, multiple ranges, and ranges
            that select no bytes of the file.
    """
    value = range_header.strip()
    unit, sep, spec = value.partition("=")
    if not sep or unit.strip().lower() != "bytes":
        raise RangeParseError(f"Unsupported range unit: {range_header!r}")

    spec = spec.strip()
    if "," in spec:
        raise RangeParseError("Multiple ranges are not supported")

    first, dash, last = spec.partition("-")
    if not dash:
        raise RangeParseError(f"Malformed range: {range_header!r}")
    first, last = first.strip(), last.strip()

    try:
        if not first:
            # Suffix range: "-500" means last 500 bytes
            suffix_len = int(last)
            if suffix_len <= 0 or file_size == 0:
                raise RangeParseError(f"Unsatisfiable range: {range_header!r}")
            return max(0, file_size - suffix_len), file_size - 1

        start = int(first)
        end = int(last) if last else file_size - 1
    except ValueError as e:
        raise RangeParseError(f"Malformed range: {range_header!r}") from e

    if start < 0 or end < start:
        raise RangeParseError(f"Malformed range: {range_header!r}")
    if start >= file_size:
        raise RangeParseError(f"Unsatisfiable range: {range_header!r}")

    return start, min(end, file_size - 1)


@dataclass(frozen=True, slots=True)
class StreamPlan:
    """What to send for one request: status, byte window and headers."""

    path: Path
    status_code: int
    start: int
    end: int  # inclusive; -1 for an empty file
    file_size: int
    content_type: str

    @property
    def content_length(self) -> int:
        return self.end - self.start + 1

    @property
    def headers(self) -> dict[str, str]:
        headers = {
            "Accept-Ranges": "bytes",
            "Content-Length": str(self.content_length),
        }
        if self.status_code == 206:
            headers["Content-Range"] = f"bytes {self.start}-{self.end}/{self.file_size}"
        return headers

    def body(self, chunk_size: int = STREAM_CHUNK_SIZE) -> AsyncIterator[bytes]:
        return iter_file_range(self.path, self.start, self.content_length, chunk_size=chunk_size)


def open_stream(path: Path, range_header: str | None = None) -> StreamPlan:
    """
    Plan the response for streaming `path`.

    Raises:
        FileNotFoundError: If the file does not exist.
    """
    file_size = os.stat(path).st_size
    content_type = get_content_type(path)

    if range_header:
        try:
            start, end = parse_range_header(range_header, file_size)
        except RangeParseError as e:
            logger.debug("Ignoring Range header for %s: %s", path.name, e)
        else:
            return StreamPlan(path, 206, start, end, file_size, content_type)

    return StreamPlan(path, 200, 0, file_size - 1, file_size, content_type)


async def iter_file_range(
    path: Path,
    start: int,
    length: int,
    *,
    chunk_size: int = STREAM_CHUNK_SIZE,
) -> AsyncIterator[bytes]:
    """Yield `length` bytes of `path` starting at `start`, in chunks."""
    f = open(path, "rb")
    try:
        f.seek(start)
        remaining = length
        while remaining > 0:
            chunk = f.read(min(chunk_size, remaining))
            if not chunk:
                break
            yield chunk
            remaining -= len(chunk)
    finally:
        f.close()
