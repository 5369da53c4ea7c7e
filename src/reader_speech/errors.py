"""
Error Codes and Exceptions.

Propagation rules:
    - NotFoundError / ContentUnavailableError: raised by content sources and
      surfaced to whoever asked for the chunk directly. Never swallowed.
    - PrefetchFailure: built only to describe a background fetch failure to
      the diagnostic sink. Never raised to callers of prefetch().
    - EngineError: the speech engine rejected an utterance or failed while
      speaking. Raised to whoever started playback; the controller is back
      in Idle by the time it is seen.
    - InvalidInputError: validator rejections.

The bounded cache and the text transform pipeline raise none of these.
"""
from __future__ import annotations

from typing import Any, Dict, Optional


class ErrorCode:
    """Machine-readable error codes carried by ReaderError.code."""
    NOT_FOUND = "NOT_FOUND"                       # Chunk or book absent upstream
    CONTENT_UNAVAILABLE = "CONTENT_UNAVAILABLE"   # Transport / server failure
    PREFETCH_FAILED = "PREFETCH_FAILED"           # Background fetch failed
    ENGINE_ERROR = "ENGINE_ERROR"                 # Speech engine failure
    INVALID_INPUT = "INVALID_INPUT"               # Validator rejection
    INTERNAL_ERROR = "INTERNAL_ERROR"


class ReaderError(Exception):
    """
    Base exception for reader-speech errors.

    Attributes:
        message: Human-readable error message.
        code: Error code from ErrorCode.
        details: Optional dictionary with additional context.
    """
    def __init__(self, message: str, code: str = ErrorCode.INTERNAL_ERROR, details: Optional[Dict] = None):
        self.message = message
        self.code = code
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        """Error payload for JSON output."""
        result: Dict[str, Any] = {
            "ok": False,
            "error": self.code,
            "message": self.message,
        }
        if self.details:
            result["details"] = self.details
        return result


class NotFoundError(ReaderError):
    """The requested chunk or book does not exist upstream."""
    def __init__(self, message: str, details: Optional[Dict] = None):
        super().__init__(message, ErrorCode.NOT_FOUND, details)


class ContentUnavailableError(ReaderError):
    """The content source could not be reached or answered with an error."""
    def __init__(self, message: str, details: Optional[Dict] = None):
        super().__init__(message, ErrorCode.CONTENT_UNAVAILABLE, details)


class PrefetchFailure(ReaderError):
    """A background chunk fetch failed. Reported, never raised."""
    def __init__(self, message: str, details: Optional[Dict] = None):
        super().__init__(message, ErrorCode.PREFETCH_FAILED, details)


class EngineError(ReaderError):
    """The speech engine rejected or aborted an utterance."""
    def __init__(self, message: str, details: Optional[Dict] = None):
        super().__init__(message, ErrorCode.ENGINE_ERROR, details)


class InvalidInputError(ReaderError):
    """Input rejected by a validator."""
    def __init__(self, message: str, details: Optional[Dict] = None):
        super().__init__(message, ErrorCode.INVALID_INPUT, details)
