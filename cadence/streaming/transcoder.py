"""
Transcode cache: convert a track to a target format once and reuse the file.

Outputs live at `<cache>/transcode/<track id>.<format>`. A conversion runs
one external command (sox by default) that writes `<output>.part`; the part
file is renamed into place only after a clean exit, so a cached path is
never a truncated file.

Rules map a target format to a command line template:

    [sox] $FILE$ -t mp3 $OUTPUT$

- `[binary]` resolves from `third_party/bin/` first, then the system PATH.
- `$FILE$` is the source file, `$OUTPUT$` the partial output path.
- Templates are split with shlex before substitution, so paths containing
  spaces stay single arguments.

Concurrent requests for the same (track, format) share one conversion.
"""

from __future__ import annotations

import asyncio
import logging
import os
import re
import shlex
import shutil
from collections.abc import Mapping
from pathlib import Path

from cadence.core import TranscodeError
from cadence.core.db.models import TrackRow

logger = logging.getLogger(__name__)

THIRD_PARTY_BIN = Path(__file__).parent.parent.parent / "third_party" / "bin"

TRANSCODE_DIR = "transcode"
PART_SUFFIX = ".part"

DEFAULT_TIMEOUT_SECONDS = 300.0

DEFAULT_RULES: dict[str, str] = {
    "mp3": "[sox] $FILE$ -t mp3 -C 320 $OUTPUT$",
    "ogg": "[sox] $FILE$ -t ogg $OUTPUT$",
    "wav": "[sox] $FILE$ -t wav $OUTPUT$",
    "flac": "[sox] $FILE$ -t flac $OUTPUT$",
}

_BINARY_PLACEHOLDER = re.compile(r"\[([\w.-]+)\]")

# Keep stderr excerpts in errors and logs short.
_STDERR_TAIL = 500


def resolve_binary(name: str) -> Path | None:
    """
    Resolve a binary name to its full path.

    Searches in order:
    1. third_party/bin/ directory
    2. System PATH
    """
    for ext in ["", ".exe"]:
        bin_path = THIRD_PARTY_BIN / f"{name}{ext}"
        if bin_path.exists():
            return bin_path

    system_path = shutil.which(name)
    if system_path:
        return Path(system_path)

    return None


def build_command(template: str, source: Path, output: Path) -> list[str]:
    """
    Expand a rule template into an argv list.

    Raises:
        TranscodeError: If the template is empty or its binary is not found.
    """
    args = shlex.split(template)
    if not args:
        raise TranscodeError("Empty transcode command")

    match = _BINARY_PLACEHOLDER.fullmatch(args[0])
    if match:
        binary = resolve_binary(match.group(1))
        if binary is None:
            raise TranscodeError(f"Binary not found: {match.group(1)}")
        args[0] = str(binary)

    return [arg.replace("$FILE$", str(source)).replace("$OUTPUT$", str(output)) for arg in args]


class TranscodeCache:
    """
    On-demand conversion with a filesystem cache and in-flight dedup.

    Args:
        cache_root: Cache directory; outputs go to `<cache_root>/transcode`.
        rules: Target format -> command template. Merged over `DEFAULT_RULES`.
        timeout: Upper bound for one conversion, in seconds.
    """

    def __init__(
        self,
        cache_root: Path,
        *,
        rules: Mapping[str, str] | None = None,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
    ) -> None:
        self._dir = cache_root / TRANSCODE_DIR
        self._rules = {**DEFAULT_RULES, **{k.lower(): v for k, v in (rules or {}).items()}}
        self._timeout = timeout
        self._in_flight: dict[tuple[int, str], asyncio.Future[Path]] = {}
        self._tasks: set[asyncio.Task[None]] = set()

    @property
    def directory(self) -> Path:
        return self._dir

    @property
    def in_flight(self) -> int:
        return len(self._in_flight)

    def cache_path(self, track_id: int, target_format: str) -> Path:
        return self._dir / f"{track_id}.{_normalize_format(target_format)}"

    async def transcode(self, track: TrackRow, target_format: str = "mp3") -> Path:
        """
        Return the cached conversion of `track`, producing it if needed.

        Raises:
            TranscodeError: If the conversion fails for any reason. No partial
                file is left at the cache path.
        """
        fmt = _normalize_format(target_format)
        output = self.cache_path(track.id, fmt)
        if output.exists():
            return output

        key = (track.id, fmt)
        future = self._in_flight.get(key)
        if future is None:
            future = asyncio.get_running_loop().create_future()
            # Failures with no waiter left must not warn as "never retrieved".
            future.add_done_callback(lambda f: f.cancelled() or f.exception())
            self._in_flight[key] = future
            task = asyncio.create_task(self._run(key, Path(track.path), output, future))
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)
        else:
            logger.debug("Joining in-flight transcode of track %d to %s", track.id, fmt)

        return await asyncio.shield(future)

    async def evict(self, track_id: int) -> int:
        """Delete every cached output for a track. Returns the number of files removed."""

        def _evict() -> int:
            removed = 0
            if not self._dir.is_dir():
                return 0
            for path in self._dir.glob(f"{track_id}.*"):
                try:
                    path.unlink()
                    removed += 1
                except FileNotFoundError:
                    continue
            return removed

        removed = await asyncio.to_thread(_evict)
        if removed:
            logger.debug("Evicted %d cached transcodes for track %d", removed, track_id)
        return removed

    async def aclose(self) -> None:
        """Cancel running conversions (server shutdown). Every waiter gets `TranscodeError`."""
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)

        # A task cancelled before its first step never reaches _run's handlers.
        for future in self._in_flight.values():
            if not future.done():
                future.set_exception(TranscodeError("Transcode cancelled"))
        self._in_flight.clear()

    async def _run(
        self,
        key: tuple[int, str],
        source: Path,
        output: Path,
        future: asyncio.Future[Path],
    ) -> None:
        try:
            await self._convert(source, output, key[1])
        except TranscodeError as e:
            logger.warning("Transcode of track %d to %s failed: %s", key[0], key[1], e)
            future.set_exception(e)
        except Exception as e:
            logger.exception("Transcode of track %d to %s crashed", key[0], key[1])
            future.set_exception(TranscodeError(f"{type(e).__name__}: {e}"))
        except asyncio.CancelledError:
            future.set_exception(TranscodeError("Transcode cancelled"))
            raise
        else:
            future.set_result(output)
        finally:
            self._in_flight.pop(key, None)

    async def _convert(self, source: Path, output: Path, fmt: str) -> None:
        template = self._rules.get(fmt)
        if template is None:
            raise TranscodeError(f"No transcode rule for format {fmt!r}")
        if not source.is_file():
            raise TranscodeError(f"Source file not found: {source}")

        partial = output.with_name(output.name + PART_SUFFIX)
        argv = build_command(template, source, partial)
        logger.info("[TRANSCODE] Starting: %s -> %s", source.name, output.name)

        try:
            output.parent.mkdir(parents=True, exist_ok=True)
            await self._exec(argv, source)
            if not partial.exists():
                raise TranscodeError(f"{Path(argv[0]).name} produced no output")
            os.replace(partial, output)
        except OSError as e:
            partial.unlink(missing_ok=True)
            raise TranscodeError(f"{type(e).__name__}: {e}") from e
        except BaseException:
            partial.unlink(missing_ok=True)
            raise

        logger.info("[TRANSCODE] Complete: %s", output.name)

    async def _exec(self, argv: list[str], source: Path) -> None:
        proc = await asyncio.create_subprocess_exec(
            *argv,
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.DEVNULL,
            stderr=asyncio.subprocess.PIPE,
        )
        try:
            _, stderr = await asyncio.wait_for(proc.communicate(), timeout=self._timeout)
        except TimeoutError:
            raise TranscodeError(
                f"Transcode of {source.name} timed out after {self._timeout:g}s"
            ) from None
        finally:
            if proc.returncode is None:
                proc.kill()
                await proc.wait()

        if proc.returncode != 0:
            detail = stderr.decode("utf-8", errors="replace").strip()[-_STDERR_TAIL:]
            raise TranscodeError(
                f"{Path(argv[0]).name} exited with status {proc.returncode}"
                + (f": {detail}" if detail else "")
            )


def _normalize_format(target_format: str) -> str:
    return target_format.lower().lstrip(".")
