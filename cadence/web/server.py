"""
HTTP front end for Cadence.

`create_app()` assembles the FastAPI application from the route modules;
`WebServer` owns one app and runs it under uvicorn as a background task of
the server's event loop.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterable
from typing import TYPE_CHECKING

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from cadence import __version__
from cadence.web.routes.library import register_library_routes
from cadence.web.routes.streaming import register_streaming_routes
from cadence.web.routes.tracks import register_track_routes

if TYPE_CHECKING:
    from cadence.core.library import MusicLibrary
    from cadence.streaming.transcoder import TranscodeCache

logger = logging.getLogger(__name__)

DEFAULT_HOST = "0.0.0.0"
DEFAULT_PORT = 4000


def create_app(
    music_library: MusicLibrary,
    transcode_cache: TranscodeCache | None = None,
    *,
    transcode_sources: Iterable[str] = ("flac",),
    transcode_target: str = "mp3",
) -> FastAPI:
    """Build the FastAPI app with listing, playback, library and health routes."""
    app = FastAPI(
        title="Cadence",
        description="Self-hosted music library and streaming server",
        version=__version__,
    )
    # Players and web UIs fetch streams cross-origin.
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.get("/health")
    async def health() -> dict[str, str]:
        return {"status": "ok", "server": "cadence"}

    register_library_routes(app, music_library)
    register_track_routes(app, music_library)
    register_streaming_routes(
        app,
        music_library,
        transcode_cache,
        transcode_sources=transcode_sources,
        transcode_target=transcode_target,
    )
    return app


class WebServer:
    """
    Runs the Cadence app with uvicorn.

    The app exists as soon as the object does, so tests drive `server.app`
    through an ASGI transport without binding a socket.
    """

    def __init__(
        self,
        music_library: MusicLibrary,
        transcode_cache: TranscodeCache | None = None,
        *,
        transcode_sources: Iterable[str] = ("flac",),
        transcode_target: str = "mp3",
    ) -> None:
        self.music_library = music_library
        self.transcode_cache = transcode_cache
        self.app = create_app(
            music_library,
            transcode_cache,
            transcode_sources=transcode_sources,
            transcode_target=transcode_target,
        )

        self.host = DEFAULT_HOST
        self.port = DEFAULT_PORT
        self._uvicorn: uvicorn.Server | None = None
        self._task: asyncio.Task[None] | None = None

    @property
    def is_serving(self) -> bool:
        return self._task is not None and not self._task.done()

    async def start(self, host: str = DEFAULT_HOST, port: int = DEFAULT_PORT) -> None:
        """Bind and serve in the background; returns once the task is scheduled."""
        self.host, self.port = host, port
        self._uvicorn = uvicorn.Server(
            uvicorn.Config(self.app, host=host, port=port, log_level="warning", access_log=False)
        )
        self._task = asyncio.create_task(self._uvicorn.serve(), name="cadence-http")
        logger.info("HTTP server listening on http://%s:%d", host, port)

    async def stop(self) -> None:
        """Ask uvicorn to exit and wait for in-flight responses to finish."""
        server, self._uvicorn = self._uvicorn, None
        task, self._task = self._task, None
        if server is not None:
            server.should_exit = True
        if task is not None:
            await task
        logger.info("HTTP server stopped")
