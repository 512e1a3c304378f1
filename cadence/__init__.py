"""
Cadence - a self-hosted music library and streaming server.

Cadence indexes a directory tree of audio files into a normalized catalog
(artists, albums, genres, tracks), keeps it current while files come and go,
and serves the indexed audio over HTTP with seek and transcode support.
"""

__version__ = "0.1.0"
__author__ = "Cadence Contributors"
__license__ = "GPL-2.0"

from cadence.server import CadenceServer

__all__ = ["CadenceServer", "__version__"]
