"""
reader-speech Services Layer.

The application-facing layer: it owns the caches, the prefetcher and the
playback controller and exposes the operations the UI calls.

Components:
    - reader_service.py: ReaderService composition root
    - validators.py: Input validation functions
"""
from .reader_service import ReaderService, build_content_source
from .validators import (
    validate_chunk_request,
    validate_content_id,
    validate_text,
    validate_voice_params,
)

__all__ = [
    "ReaderService",
    "build_content_source",
    "validate_chunk_request",
    "validate_content_id",
    "validate_text",
    "validate_voice_params",
]
