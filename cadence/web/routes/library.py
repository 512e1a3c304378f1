"""
Library Routes for Cadence.

Provides:
- POST /library/sync: walk the music root and ingest new files
- GET /library/status: build progress
- GET /library/scan: latest scan report
"""

from __future__ import annotations

import dataclasses
import logging
from typing import TYPE_CHECKING, Any

from fastapi import APIRouter, HTTPException

from cadence.core import BuildInProgressError, MusicLibraryError

if TYPE_CHECKING:
    from cadence.core.library import MusicLibrary

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/library", tags=["library"])

# Reference set during route registration
_music_library: MusicLibrary | None = None


def register_library_routes(app, music_library: MusicLibrary) -> None:
    """
    Register library routes with the FastAPI app.

    Args:
        app: FastAPI application instance
        music_library: MusicLibrary to sync and report on
    """
    global _music_library
    _music_library = music_library
    app.include_router(router)


def _require_library() -> MusicLibrary:
    if _music_library is None:
        raise HTTPException(status_code=503, detail="Library not initialized")
    return _music_library


@router.post("/sync")
async def sync_library() -> dict[str, Any]:
    """Run a full sync of the music root and return the resulting scan report."""
    library = _require_library()
    try:
        report = await library.sync()
    except BuildInProgressError as e:
        raise HTTPException(status_code=409, detail=str(e)) from e
    except (MusicLibraryError, FileNotFoundError, NotADirectoryError) as e:
        raise HTTPException(status_code=400, detail=str(e)) from e
    return dataclasses.asdict(report)


@router.get("/status")
async def library_status() -> dict[str, Any]:
    """Current build progress and catalog counts."""
    library = _require_library()
    status = library.scan_status
    counts = await library.counts()
    return {
        "is_running": status.is_running,
        "progress": status.progress,
        "current": status.current,
        "total": status.total,
        "current_path": status.current_path,
        "added": status.added,
        "skipped": status.skipped,
        "errors": status.errors,
        "counts": dataclasses.asdict(counts),
    }


@router.get("/scan")
async def latest_scan() -> dict[str, Any]:
    """Latest scan report."""
    library = _require_library()
    report = await library.get_scan_report()
    if report is None:
        raise HTTPException(status_code=404, detail="No scan has completed yet")
    return dataclasses.asdict(report)
