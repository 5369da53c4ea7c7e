"""
Input Validation for the Reader Service.

Validation happens at the service boundary so that bad input is rejected
with a clear message before any fetch or engine call.

Validation Rules:
    - Text: required (non-blank), max 100000 characters
    - Content id: required, max 200 characters, no path separators
    - Chunk index: integer >= 0
    - Rate: 0.1 - 10.0
    - Pitch: 0.0 - 2.0
    - Volume: 0.0 - 1.0

All validators raise InvalidInputError whose details carry a ``field``
name and a machine-readable ``reason`` (REQUIRED, TOO_LONG, OUT_OF_RANGE,
INVALID).

Usage:
    from reader_speech.services.validators import validate_chunk_request

    content_id, index = validate_chunk_request(content_id, index)
"""
from __future__ import annotations

from typing import Optional, Tuple

from reader_speech.core.logging import get_logger, warn
from reader_speech.errors import InvalidInputError
from reader_speech.speech.engine import VoiceParams

_LOG = get_logger("reader-speech.validators")

MAX_TEXT_CHARS = 100_000
MAX_CONTENT_ID_CHARS = 200

RATE_RANGE = (0.1, 10.0)
PITCH_RANGE = (0.0, 2.0)
VOLUME_RANGE = (0.0, 1.0)


def _reject(field: str, reason: str, message: str, **details) -> InvalidInputError:
    warn(_LOG, "validation_failed", field=field, reason=reason)
    return InvalidInputError(message, details={"field": field, "reason": reason, **details})


def validate_text(text: str, max_length: int = MAX_TEXT_CHARS) -> str:
    """
    Validate text to be spoken.

    Returns:
        The text unchanged (whitespace is meaningful to the pipeline).

    Raises:
        InvalidInputError: If blank or too long.
    """
    if not text or not text.strip():
        raise _reject("text", "REQUIRED", "Text is required")
    if len(text) > max_length:
        raise _reject(
            "text", "TOO_LONG",
            f"Text exceeds maximum length ({len(text)} > {max_length})",
            length=len(text),
        )
    return text


def validate_content_id(content_id: str) -> str:
    if not content_id or not str(content_id).strip():
        raise _reject("content_id", "REQUIRED", "Content id is required")
    content_id = str(content_id).strip()
    if len(content_id) > MAX_CONTENT_ID_CHARS:
        raise _reject("content_id", "TOO_LONG", "Content id is too long")
    if "/" in content_id or "\\" in content_id:
        raise _reject("content_id", "INVALID", f"Invalid content id: {content_id!r}")
    return content_id


def validate_chunk_request(content_id: str, index: int) -> Tuple[str, int]:
    """
    Validate a (content_id, chunk index) pair.

    Raises:
        InvalidInputError: Blank id or negative / non-integer index.
    """
    content_id = validate_content_id(content_id)
    if isinstance(index, bool) or not isinstance(index, int):
        raise _reject("index", "INVALID", f"Chunk index must be an integer, got {index!r}")
    if index < 0:
        raise _reject("index", "OUT_OF_RANGE", f"Chunk index must be >= 0, got {index}")
    return content_id, index


def _check_range(field: str, value: float, bounds: Tuple[float, float]) -> float:
    lo, hi = bounds
    if not (lo <= value <= hi):
        raise _reject(
            field, "OUT_OF_RANGE",
            f"{field} must be between {lo} and {hi}, got {value}",
            value=value,
        )
    return float(value)


def validate_voice_params(
    base: VoiceParams,
    voice: Optional[str] = None,
    rate: Optional[float] = None,
    pitch: Optional[float] = None,
    volume: Optional[float] = None,
) -> VoiceParams:
    """
    Apply and validate a partial voice parameter update.

    Args:
        base: Current parameters; unspecified fields are kept.

    Returns:
        New VoiceParams.

    Raises:
        InvalidInputError: A value is out of range.
    """
    return VoiceParams(
        voice=base.voice if voice is None else str(voice),
        rate=base.rate if rate is None else _check_range("rate", rate, RATE_RANGE),
        pitch=base.pitch if pitch is None else _check_range("pitch", pitch, PITCH_RANGE),
        volume=base.volume if volume is None else _check_range("volume", volume, VOLUME_RANGE),
    )
