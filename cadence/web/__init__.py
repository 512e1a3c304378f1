"""
Cadence Web Layer.

Components:
- create_app: FastAPI application with all routes
- WebServer: runs that app under uvicorn
"""

from cadence.web.server import WebServer, create_app

__all__ = [
    "WebServer",
    "create_app",
]
