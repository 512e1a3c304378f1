"""
Cadence Server - Main Server Module

This module contains the CadenceServer class that wires the catalog, the
ingestion pipeline, the change watcher, the transcode cache and the web
server together and manages their lifecycle.
"""

import asyncio
import logging
import signal

from cadence.config import CadenceConfig
from cadence.core.library import MusicLibrary
from cadence.core.library_db import LibraryDb
from cadence.core.watcher import LibraryWatcher
from cadence.streaming.transcoder import TranscodeCache
from cadence.web.server import WebServer

logger = logging.getLogger(__name__)


class CadenceServer:
    """
    Owns every long-lived Cadence component:

    - The SQLite catalog (`LibraryDb`)
    - The music library facade and its build lock (`MusicLibrary`)
    - A watchdog-based change watcher on the music root
    - The transcode cache
    - The HTTP server (FastAPI + uvicorn)

    Startup order is catalog -> library -> optional initial sync -> watcher
    -> web; shutdown runs in reverse and closes the catalog last.
    """

    def __init__(self, config: CadenceConfig) -> None:
        self.config = config

        self.library_db = LibraryDb(config.library_db_path)

        self.transcode_cache = TranscodeCache(
            config.cache_root,
            rules=config.transcode_rules,
            timeout=config.transcode_timeout,
        )

        self.music_library = MusicLibrary(
            db=self.library_db,
            cache_root=config.cache_root,
            music_root=config.music_root,
            error_log=config.error_log_path,
            extensions=config.extensions,
            evict_track=self._evict_track,
        )

        self.watcher: LibraryWatcher | None = None
        self.web_server: WebServer | None = None

        self._running = False
        self._shutdown_event: asyncio.Event | None = None
        self._sync_task: asyncio.Task[None] | None = None

    async def _evict_track(self, track_id: int) -> None:
        await self.transcode_cache.evict(track_id)

    async def open_library(self) -> None:
        """Open the catalog and initialize the library (no watcher, no web)."""
        self.config.cache_root.mkdir(parents=True, exist_ok=True)
        self.config.library_db_path.parent.mkdir(parents=True, exist_ok=True)
        await self.library_db.open()
        await self.music_library.initialize()

    async def start(self) -> None:
        """Open the catalog, then bring up the watcher and the HTTP server."""
        logger.info("Starting Cadence server on %s:%d", self.config.host, self.config.port)

        self._running = True
        self._shutdown_event = asyncio.Event()

        await self.open_library()

        music_root = self.config.music_root
        if music_root is None:
            logger.warning("No music root configured; library sync and watching are disabled")
        else:
            if self.config.scan_on_startup:
                self._sync_task = asyncio.create_task(self._initial_sync())

            if self.config.watch:
                self.watcher = LibraryWatcher(
                    self.music_library,
                    music_root,
                    extensions=self.config.extensions,
                    debounce_seconds=self.config.debounce_seconds,
                )
                try:
                    await self.watcher.start()
                except OSError as e:
                    # Watching is optional; the server still streams and syncs on demand.
                    logger.warning("Could not watch %s: %s", music_root, e)
                    self.watcher = None

        self.web_server = WebServer(
            music_library=self.music_library,
            transcode_cache=self.transcode_cache,
            transcode_sources=self.config.transcode_sources,
            transcode_target=self.config.transcode_target,
        )
        await self.web_server.start(host=self.config.host, port=self.config.port)

        logger.info("Cadence server started successfully")

    async def _initial_sync(self) -> None:
        try:
            await self.music_library.sync()
        except Exception:
            logger.exception("Initial library sync failed")

    async def stop(self) -> None:
        """Tear components down in reverse start order. Idempotent."""
        if not self._running:
            return

        logger.info("Stopping Cadence server...")
        self._running = False

        if self.web_server:
            await self.web_server.stop()

        if self.watcher:
            await self.watcher.stop()

        if self._sync_task is not None and not self._sync_task.done():
            self._sync_task.cancel()
            await asyncio.gather(self._sync_task, return_exceptions=True)

        await self.transcode_cache.aclose()

        # Nothing may touch the catalog after this.
        await self.library_db.close()

        if self._shutdown_event:
            self._shutdown_event.set()

        logger.info("Cadence server stopped")

    async def run(self) -> None:
        """Start, then block until SIGINT/SIGTERM and stop."""
        await self.start()

        loop = asyncio.get_running_loop()

        def request_shutdown() -> None:
            logger.info("Shutdown signal received")
            if self._shutdown_event:
                self._shutdown_event.set()

        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(sig, request_shutdown)
            except NotImplementedError:
                # Windows event loops have no signal handlers.
                pass

        try:
            if self._shutdown_event:
                await self._shutdown_event.wait()
        finally:
            await self.stop()

    @property
    def is_running(self) -> bool:
        return self._running
