"""Data models for block placement."""

from .placement import (
    BatchLoadError,
    PlacementRequest,
    PropertyOverride,
    load_requests,
    parse_requests,
)

__all__ = [
    'BatchLoadError',
    'PlacementRequest',
    'PropertyOverride',
    'load_requests',
    'parse_requests',
]
