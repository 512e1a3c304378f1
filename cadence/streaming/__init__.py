"""
Streaming module for Cadence.

Components:
    TranscodeCache: On-demand conversion with a filesystem cache.
    open_stream / iter_file_range: Range-aware byte streaming.
"""

from cadence.streaming.server import StreamPlan, iter_file_range, open_stream, parse_range_header
from cadence.streaming.transcoder import TranscodeCache

__all__ = [
    "StreamPlan",
    "TranscodeCache",
    "iter_file_range",
    "open_stream",
    "parse_range_header",
]
