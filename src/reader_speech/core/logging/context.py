"""
Logging Context and Configuration State.

Trace IDs:
    A ContextVar carries a short trace id so that every line logged while
    handling one page change or one playback session can be correlated.
    asyncio copies the context into each task, so background prefetch
    tasks inherit the trace id of the page change that scheduled them.

Configuration State:
    Module-level variables hold the resolved level and the logging section
    of the settings file.

Environment Variables:
    - READER_SPEECH_SETTINGS: Settings file path (default config/settings.yaml)
    - READER_SPEECH_LOG_LEVEL: Override log level (1-4 or name)
    - READER_SPEECH_LOG_DIR: Directory for JSONL output
    - READER_SPEECH_JSONL_FILE: JSONL filename
"""
from __future__ import annotations

import os
from contextvars import ContextVar
from typing import Any, Dict

from .levels import LEVEL_NAMES, LogLevel

_trace_id: ContextVar[str] = ContextVar("trace_id", default="-")

_configured: bool = False
_log_config: Dict[str, Any] = {}
_current_level: LogLevel = LogLevel.NORMAL


def get_trace_id() -> str:
    """Trace id of the current context, "-" outside of one."""
    return _trace_id.get()


def set_trace_id(tid: str) -> None:
    """Set the trace id for the current context (and tasks created from it)."""
    _trace_id.set(tid)


def get_level() -> LogLevel:
    return _current_level


def set_level(level: LogLevel) -> None:
    global _current_level
    _current_level = level


def get_level_name() -> str:
    return LEVEL_NAMES.get(int(_current_level), "NORMAL")


def is_configured() -> bool:
    return _configured


def set_configured(value: bool) -> None:
    global _configured
    _configured = value


def get_log_config() -> Dict[str, Any]:
    return _log_config


def set_log_config(config: Dict[str, Any]) -> None:
    global _log_config
    _log_config = config


def read_logging_config() -> Dict[str, Any]:
    """
    Resolve the logging section from the settings file and environment.

    Priority (highest first): environment variables, the ``logging``
    section of the settings file, defaults. A missing or unreadable
    settings file is not an error here; logging must come up regardless.

    Returns:
        Dictionary with keys among level, log_dir, jsonl_file,
        rotate_max_bytes, rotate_backup_count.
    """
    cfg: Dict[str, Any] = {}

    settings_path = os.getenv("READER_SPEECH_SETTINGS", "config/settings.yaml")
    try:
        from reader_speech.core.config import load_settings
        settings = load_settings(settings_path)
        cfg.update(settings.raw.get("logging", {}) or {})
    except Exception:
        # Settings file missing or invalid - use defaults
        pass

    if os.getenv("READER_SPEECH_LOG_LEVEL"):
        cfg["level"] = os.environ["READER_SPEECH_LOG_LEVEL"]
    if os.getenv("READER_SPEECH_LOG_DIR"):
        cfg["log_dir"] = os.environ["READER_SPEECH_LOG_DIR"]
    if os.getenv("READER_SPEECH_JSONL_FILE"):
        cfg["jsonl_file"] = os.environ["READER_SPEECH_JSONL_FILE"]

    return cfg
