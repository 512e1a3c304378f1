"""
Web Routes Package.

This package contains FastAPI route modules:
- library: Sync and scan reporting (/library/*)
- streaming: Audio playback (/tracks/play/*)
- tracks: Catalog listing (/tracks)
"""

from cadence.web.routes.library import register_library_routes
from cadence.web.routes.streaming import register_streaming_routes
from cadence.web.routes.tracks import register_track_routes

__all__ = [
    "register_library_routes",
    "register_streaming_routes",
    "register_track_routes",
]
