"""
WebSocket handlers package for live query metrics.

This package provides:
- Helpers: client message parsing
- Session: per-viewer rolling window and history ownership
- Streaming: the live metrics WebSocket loop
"""

# Helper utilities
from .helpers import (
    _clean_str,
    _parse_variant_dict,
)

# Sessions
from .session import (
    SessionRegistry,
    ViewerSession,
)

# Streaming
from .streaming import stream_viewer

__all__ = [
    # Helpers
    "_clean_str",
    "_parse_variant_dict",
    # Sessions
    "SessionRegistry",
    "ViewerSession",
    # Streaming
    "stream_viewer",
]
