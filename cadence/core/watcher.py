"""
Change watcher: turn filesystem events under the music root into batched
library builds.

The watchdog observer runs in its own thread. Its handler does nothing but
convert events into `PathAdded` / `PathRemoved` / `PathModified` messages and
post them onto an asyncio queue. A single consumer task on the event loop
owns all debounce state:

    Idle --add--> Accumulating --quiet for debounce window--> Building --> Idle

Every add restarts the window. When it elapses, the pending files are
ordered by ctime (oldest first), handed to `MusicLibrary.build(wait=True)` in
a separate task, and the consumer immediately starts a fresh cycle. A build
that starts while another is running queues behind the library lock.
"""

from __future__ import annotations

import asyncio
import logging
import os
import time
from collections.abc import Iterable
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

if TYPE_CHECKING:
    from watchdog.observers.api import BaseObserver

    from cadence.core.library import MusicLibrary

logger = logging.getLogger(__name__)

DEFAULT_DEBOUNCE_SECONDS = 3.0


@dataclass(frozen=True, slots=True)
class PathAdded:
    path: Path


@dataclass(frozen=True, slots=True)
class PathRemoved:
    path: Path


@dataclass(frozen=True, slots=True)
class PathModified:
    """A write to a file; only matters while the file is still pending."""

    path: Path


WatchMessage = PathAdded | PathRemoved | PathModified


class WatcherPhase(Enum):
    IDLE = "idle"
    ACCUMULATING = "accumulating"
    BUILDING = "building"


@dataclass
class WatcherState:
    """Debounce state. Mutated only by the watcher's consumer task."""

    pending: dict[Path, os.stat_result] = field(default_factory=dict)
    total_bytes: int = 0
    deadline: float | None = None

    def add(self, path: Path, stat: os.stat_result, *, now: float, window: float) -> None:
        previous = self.pending.get(path)
        if previous is not None:
            self.total_bytes -= previous.st_size
        self.pending[path] = stat
        self.total_bytes += stat.st_size
        self.deadline = now + window

    def discard(self, path: Path) -> bool:
        stat = self.pending.pop(path, None)
        if stat is None:
            return False
        self.total_bytes -= stat.st_size
        if not self.pending:
            self.deadline = None
        return True

    def remaining(self, now: float) -> float | None:
        """Seconds until the window closes, or None when nothing is pending."""
        if self.deadline is None:
            return None
        return max(0.0, self.deadline - now)

    def drain(self) -> list[Path]:
        """Return pending paths oldest-ctime first (ties by path) and reset."""
        ordered = sorted(self.pending.items(), key=lambda kv: (kv[1].st_ctime, str(kv[0])))
        self.pending.clear()
        self.total_bytes = 0
        self.deadline = None
        return [path for path, _ in ordered]


class LibraryEventHandler(FileSystemEventHandler):
    """
    Watchdog handler. Runs on the observer thread; only forwards messages.

    Moves are reported as a removal of the source and an addition of the
    destination. A file closed after writing is reported as added again, so a
    copy that outlives the debounce window is retried once it completes.
    Modifications only keep a pending file's window open.
    """

    def __init__(self, watcher: LibraryWatcher, extensions: Iterable[str]) -> None:
        super().__init__()
        self._watcher = watcher
        self._extensions = {ext.lower() for ext in extensions}

    def on_created(self, event: FileSystemEvent) -> None:
        if not event.is_directory:
            self._post(PathAdded, event.src_path)

    def on_closed(self, event: FileSystemEvent) -> None:
        if not event.is_directory:
            self._post(PathAdded, event.src_path)

    def on_modified(self, event: FileSystemEvent) -> None:
        if not event.is_directory:
            self._post(PathModified, event.src_path)

    def on_deleted(self, event: FileSystemEvent) -> None:
        if not event.is_directory:
            self._post(PathRemoved, event.src_path)

    def on_moved(self, event: FileSystemEvent) -> None:
        if event.is_directory:
            return
        self._post(PathRemoved, event.src_path)
        self._post(PathAdded, event.dest_path)

    def _post(self, message: type[WatchMessage], raw: str | bytes) -> None:
        path = _as_path(raw)
        if path.suffix.lower() in self._extensions:
            self._watcher.post(message(path))


def _as_path(raw: str | bytes) -> Path:
    if isinstance(raw, bytes):
        raw = raw.decode("utf-8", errors="replace")
    return Path(raw)


class LibraryWatcher:
    """
    Watches a music root and feeds debounced batches into a `MusicLibrary`.

    Usage:
        watcher = LibraryWatcher(library, music_root, debounce_seconds=3.0)
        await watcher.start()
        ...
        await watcher.stop()
    """

    def __init__(
        self,
        library: MusicLibrary,
        root: Path,
        *,
        extensions: Iterable[str] | None = None,
        debounce_seconds: float = DEFAULT_DEBOUNCE_SECONDS,
    ) -> None:
        self._library = library
        self._root = root
        self._extensions = frozenset(extensions if extensions is not None else library.extensions)
        self._debounce = debounce_seconds

        self._state = WatcherState()
        self._queue: asyncio.Queue[WatchMessage] | None = None
        self._loop: asyncio.AbstractEventLoop | None = None
        self._consumer: asyncio.Task[None] | None = None
        self._observer: BaseObserver | None = None
        self._tasks: set[asyncio.Task[None]] = set()
        self._builds: set[asyncio.Task[None]] = set()

    @property
    def running(self) -> bool:
        return self._consumer is not None and not self._consumer.done()

    @property
    def state(self) -> WatcherState:
        return self._state

    @property
    def phase(self) -> WatcherPhase:
        if self._state.pending:
            return WatcherPhase.ACCUMULATING
        if self._builds:
            return WatcherPhase.BUILDING
        return WatcherPhase.IDLE

    async def start(self) -> None:
        if self.running:
            return
        if not self._root.is_dir():
            raise NotADirectoryError(self._root)

        self._loop = asyncio.get_running_loop()
        self._queue = asyncio.Queue()
        self._consumer = asyncio.create_task(self._consume(), name="library-watcher")

        observer = Observer()
        observer.schedule(
            LibraryEventHandler(self, self._extensions), str(self._root), recursive=True
        )
        observer.start()
        self._observer = observer
        logger.info("Watching %s (debounce %.1fs)", self._root, self._debounce)

    async def stop(self) -> None:
        """Stop observing and cancel pending work. Safe to call more than once."""
        if self._observer is not None:
            observer, self._observer = self._observer, None
            observer.stop()
            await asyncio.to_thread(observer.join)

        if self._consumer is not None:
            self._consumer.cancel()
            try:
                await self._consumer
            except asyncio.CancelledError:
                pass
            self._consumer = None

        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        self._state = WatcherState()
        logger.info("Stopped watching %s", self._root)

    def post(self, message: WatchMessage) -> None:
        """Thread-safe: enqueue a message for the consumer task."""
        if self._loop is None or self._queue is None:
            return
        self._loop.call_soon_threadsafe(self._queue.put_nowait, message)

    async def wait_for_builds(self) -> None:
        """Wait until every build started so far has finished."""
        while self._builds:
            await asyncio.gather(*list(self._builds), return_exceptions=True)

    async def _consume(self) -> None:
        assert self._queue is not None
        while True:
            timeout = self._state.remaining(time.monotonic())
            try:
                if timeout is None:
                    message = await self._queue.get()
                else:
                    message = await asyncio.wait_for(self._queue.get(), timeout)
            except TimeoutError:
                self._flush()
                continue
            self._handle(message)

    def _handle(self, message: WatchMessage) -> None:
        if isinstance(message, PathAdded):
            self._queue_path(message.path)
        elif isinstance(message, PathModified):
            # Still being written: restart the window with the new size.
            if message.path in self._state.pending:
                self._queue_path(message.path)
        else:
            logger.info("File removed: %s", message.path)
            if self._state.discard(message.path):
                return
            self._spawn(self._remove(message.path))

    def _queue_path(self, path: Path) -> None:
        try:
            stat = os.stat(path)
        except OSError as e:
            logger.debug("Ignoring vanished file %s: %s", path, e)
            return
        self._state.add(path, stat, now=time.monotonic(), window=self._debounce)
        logger.debug("Queued %s (%d pending)", path, len(self._state.pending))

    def _flush(self) -> None:
        total = self._state.total_bytes
        paths = self._state.drain()
        if not paths:
            return
        logger.info("Detected %d new files (%d bytes), starting build", len(paths), total)
        task = self._spawn(self._build(paths))
        self._builds.add(task)
        task.add_done_callback(self._builds.discard)

    def _spawn(self, coro) -> asyncio.Task[None]:
        task = asyncio.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _build(self, paths: list[Path]) -> None:
        try:
            await self._library.build(paths, wait=True)
        except Exception:
            logger.exception("Library build for %d watched files failed", len(paths))

    async def _remove(self, path: Path) -> None:
        try:
            await self._library.remove_path(path)
        except Exception:
            logger.exception("Failed to remove %s from the library", path)
