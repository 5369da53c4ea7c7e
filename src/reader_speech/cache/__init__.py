"""
Chunk caching and read-ahead.

    - bounded.py: Fixed-capacity recency cache
    - prefetch.py: Deduplicated prefetch coordinator over a ContentSource
"""
from .bounded import BoundedCache, CacheEntry
from .prefetch import DiagnosticSink, LoggingDiagnosticSink, PrefetchCoordinator, make_key

__all__ = [
    "BoundedCache",
    "CacheEntry",
    "DiagnosticSink",
    "LoggingDiagnosticSink",
    "PrefetchCoordinator",
    "make_key",
]
