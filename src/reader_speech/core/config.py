"""
Configuration Management for reader-speech.

This module provides centralized configuration handling with:
    - Default values (Defaults class)
    - Dataclass-based configuration sections
    - YAML file loading with environment variable overrides
    - Validation with meaningful error messages

Configuration Hierarchy (highest priority first):
    1. Environment variables (READER_SPEECH_CONTENT_URL, READER_SPEECH_ENGINE, ...)
    2. YAML config file (config/settings.yaml)
    3. Defaults class values

Example settings.yaml:
    cache:
      chunk_capacity: 50
      book_capacity: 20

    prefetch:
      count: 3
      poll_interval_ms: 100
      poll_attempts: 10

    playback:
      engine: simulated
      rate: 1.0

    logging:
      level: 2  # NORMAL
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict
import os
import yaml


class ConfigValidationError(Exception):
    """
    Raised when configuration validation fails.

    Thrown when a configuration value is outside acceptable bounds
    or of the wrong type.
    """
    pass


class Defaults:
    """
    Centralized default configuration values.

    Sections:
        - Cache: chunk and book cache capacities
        - Prefetch: read-ahead count and in-flight polling
        - Content: where chunks come from
        - Playback: engine, base voice parameters, progress timer
        - Logging: level and preview length
    """

    # ─────────────────────────────────────────────────────────────────────────
    # Cache Settings
    # ─────────────────────────────────────────────────────────────────────────
    CACHE_CHUNK_CAPACITY = 50       # Cached page/section texts
    CACHE_BOOK_CAPACITY = 20        # Cached book metadata records

    # ─────────────────────────────────────────────────────────────────────────
    # Prefetch Settings
    # ─────────────────────────────────────────────────────────────────────────
    PREFETCH_COUNT = 3              # Chunks warmed ahead of the current one
    PREFETCH_POLL_INTERVAL_MS = 100 # Delay between in-flight checks
    PREFETCH_POLL_ATTEMPTS = 10     # Checks before falling back to a direct fetch

    # ─────────────────────────────────────────────────────────────────────────
    # Content Source
    # ─────────────────────────────────────────────────────────────────────────
    CONTENT_BASE_URL = ""           # HTTP source when set
    CONTENT_ROOT_DIR = ""           # Directory source when set
    CONTENT_TIMEOUT_S = 10.0        # HTTP request timeout

    # ─────────────────────────────────────────────────────────────────────────
    # Playback
    # ─────────────────────────────────────────────────────────────────────────
    PLAYBACK_ENGINE = "simulated"           # simulated | pyttsx3
    PLAYBACK_VOICE = ""                     # Engine voice name ("" = engine default)
    PLAYBACK_RATE = 1.0
    PLAYBACK_PITCH = 1.0
    PLAYBACK_VOLUME = 1.0
    PLAYBACK_PROGRESS_INTERVAL_MS = 100     # Progress timer period
    PLAYBACK_SECONDS_PER_CHAR = 0.06        # Speech-time estimate at rate 1.0
    PLAYBACK_WORDS_PER_MINUTE = 200         # Reading-time estimate
    PLAYBACK_PROSODY_MARKUP = True          # Send break/emphasis markup to the engine

    # ─────────────────────────────────────────────────────────────────────────
    # Logging
    # ─────────────────────────────────────────────────────────────────────────
    LOGGING_TEXT_PREVIEW_CHARS = 80
    LOGGING_LEVEL = 2                       # 1=MINIMAL, 2=NORMAL, 3=VERBOSE, 4=DEBUG


@dataclass
class CacheConfig:
    """Capacities of the in-memory chunk and book caches."""
    chunk_capacity: int = Defaults.CACHE_CHUNK_CAPACITY
    book_capacity: int = Defaults.CACHE_BOOK_CAPACITY


@dataclass
class PrefetchConfig:
    """
    Read-ahead configuration.

    A direct request for a chunk that is currently being prefetched waits
    up to poll_attempts * poll_interval_ms before fetching it itself.
    """
    count: int = Defaults.PREFETCH_COUNT
    poll_interval_ms: int = Defaults.PREFETCH_POLL_INTERVAL_MS
    poll_attempts: int = Defaults.PREFETCH_POLL_ATTEMPTS

    @property
    def poll_interval_s(self) -> float:
        return self.poll_interval_ms / 1000.0


@dataclass
class ContentConfig:
    """Content source selection. base_url wins over root_dir when both are set."""
    base_url: str = Defaults.CONTENT_BASE_URL
    root_dir: str = Defaults.CONTENT_ROOT_DIR
    timeout_s: float = Defaults.CONTENT_TIMEOUT_S


@dataclass
class PlaybackConfig:
    """
    Speech playback configuration.

    rate/pitch/volume are the base voice parameters; emotion detection
    multiplies them per utterance.
    """
    engine: str = Defaults.PLAYBACK_ENGINE
    voice: str = Defaults.PLAYBACK_VOICE
    rate: float = Defaults.PLAYBACK_RATE
    pitch: float = Defaults.PLAYBACK_PITCH
    volume: float = Defaults.PLAYBACK_VOLUME
    progress_interval_ms: int = Defaults.PLAYBACK_PROGRESS_INTERVAL_MS
    seconds_per_char: float = Defaults.PLAYBACK_SECONDS_PER_CHAR
    words_per_minute: int = Defaults.PLAYBACK_WORDS_PER_MINUTE
    prosody_markup: bool = Defaults.PLAYBACK_PROSODY_MARKUP

    @property
    def progress_interval_s(self) -> float:
        return self.progress_interval_ms / 1000.0


@dataclass
class LoggingConfig:
    """
    Logging configuration.

    Log levels:
        1 = MINIMAL: Startup, shutdown, critical errors only
        2 = NORMAL: Page changes, playback lifecycle (default)
        3 = VERBOSE: Cache evictions, prefetch detail, per-stage timing
        4 = DEBUG: Word boundaries, timer ticks
    """
    text_preview_chars: int = Defaults.LOGGING_TEXT_PREVIEW_CHARS
    level: int = Defaults.LOGGING_LEVEL


@dataclass
class ReaderConfig:
    """
    Validated configuration for ReaderService.

    Usage:
        settings = load_settings("config/settings.yaml")
        config = ReaderConfig.from_settings(settings)
        print(config.cache.chunk_capacity)
    """
    cache: CacheConfig = field(default_factory=CacheConfig)
    prefetch: PrefetchConfig = field(default_factory=PrefetchConfig)
    content: ContentConfig = field(default_factory=ContentConfig)
    playback: PlaybackConfig = field(default_factory=PlaybackConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    @classmethod
    def from_settings(cls, settings: "Settings") -> "ReaderConfig":
        """
        Create ReaderConfig from Settings with validation.

        Args:
            settings: Raw Settings object loaded from YAML.

        Returns:
            Validated ReaderConfig instance.

        Raises:
            ConfigValidationError: If any value fails validation.
        """
        raw = settings.raw

        # ─────────────────────────────────────────────────────────────────────
        # Cache configuration
        # ─────────────────────────────────────────────────────────────────────
        cache_raw = raw.get("cache", {}) or {}
        cache = CacheConfig(
            chunk_capacity=int(cache_raw.get("chunk_capacity", Defaults.CACHE_CHUNK_CAPACITY)),
            book_capacity=int(cache_raw.get("book_capacity", Defaults.CACHE_BOOK_CAPACITY)),
        )
        cls._validate_positive("cache.chunk_capacity", cache.chunk_capacity)
        cls._validate_positive("cache.book_capacity", cache.book_capacity)

        # ─────────────────────────────────────────────────────────────────────
        # Prefetch configuration
        # ─────────────────────────────────────────────────────────────────────
        prefetch_raw = raw.get("prefetch", {}) or {}
        prefetch = PrefetchConfig(
            count=int(prefetch_raw.get("count", Defaults.PREFETCH_COUNT)),
            poll_interval_ms=int(prefetch_raw.get("poll_interval_ms", Defaults.PREFETCH_POLL_INTERVAL_MS)),
            poll_attempts=int(prefetch_raw.get("poll_attempts", Defaults.PREFETCH_POLL_ATTEMPTS)),
        )
        cls._validate_non_negative("prefetch.count", prefetch.count)
        cls._validate_positive("prefetch.poll_interval_ms", prefetch.poll_interval_ms)
        cls._validate_non_negative("prefetch.poll_attempts", prefetch.poll_attempts)

        # ─────────────────────────────────────────────────────────────────────
        # Content source (environment variables take precedence)
        # ─────────────────────────────────────────────────────────────────────
        content_raw = raw.get("content", {}) or {}
        content = ContentConfig(
            base_url=os.getenv("READER_SPEECH_CONTENT_URL")
                or str(content_raw.get("base_url", Defaults.CONTENT_BASE_URL) or ""),
            root_dir=os.getenv("READER_SPEECH_CONTENT_DIR")
                or str(content_raw.get("root_dir", Defaults.CONTENT_ROOT_DIR) or ""),
            timeout_s=float(content_raw.get("timeout_s", Defaults.CONTENT_TIMEOUT_S)),
        )
        cls._validate_positive("content.timeout_s", content.timeout_s)

        # ─────────────────────────────────────────────────────────────────────
        # Playback configuration
        # ─────────────────────────────────────────────────────────────────────
        playback_raw = raw.get("playback", {}) or {}
        playback = PlaybackConfig(
            engine=os.getenv("READER_SPEECH_ENGINE")
                or str(playback_raw.get("engine", Defaults.PLAYBACK_ENGINE)),
            voice=str(playback_raw.get("voice", Defaults.PLAYBACK_VOICE) or ""),
            rate=float(playback_raw.get("rate", Defaults.PLAYBACK_RATE)),
            pitch=float(playback_raw.get("pitch", Defaults.PLAYBACK_PITCH)),
            volume=float(playback_raw.get("volume", Defaults.PLAYBACK_VOLUME)),
            progress_interval_ms=int(playback_raw.get("progress_interval_ms", Defaults.PLAYBACK_PROGRESS_INTERVAL_MS)),
            seconds_per_char=float(playback_raw.get("seconds_per_char", Defaults.PLAYBACK_SECONDS_PER_CHAR)),
            words_per_minute=int(playback_raw.get("words_per_minute", Defaults.PLAYBACK_WORDS_PER_MINUTE)),
            prosody_markup=bool(playback_raw.get("prosody_markup", Defaults.PLAYBACK_PROSODY_MARKUP)),
        )
        cls._validate_range("playback.rate", playback.rate, 0.1, 10.0)
        cls._validate_range("playback.pitch", playback.pitch, 0.0, 2.0)
        cls._validate_range("playback.volume", playback.volume, 0.0, 1.0)
        cls._validate_positive("playback.progress_interval_ms", playback.progress_interval_ms)
        cls._validate_positive("playback.seconds_per_char", playback.seconds_per_char)
        cls._validate_positive("playback.words_per_minute", playback.words_per_minute)

        # ─────────────────────────────────────────────────────────────────────
        # Logging configuration
        # ─────────────────────────────────────────────────────────────────────
        logging_raw = raw.get("logging", {}) or {}
        log_level_raw = logging_raw.get("level", Defaults.LOGGING_LEVEL)

        # Handle string log levels (e.g., "INFO", "DEBUG")
        if isinstance(log_level_raw, str):
            level_map = {
                "MINIMAL": 1, "1": 1,
                "NORMAL": 2, "INFO": 2, "2": 2,
                "VERBOSE": 3, "3": 3,
                "DEBUG": 4, "TRACE": 4, "4": 4,
            }
            log_level = level_map.get(log_level_raw.upper(), Defaults.LOGGING_LEVEL)
        else:
            log_level = int(log_level_raw)

        logging_cfg = LoggingConfig(
            text_preview_chars=int(logging_raw.get("text_preview_chars", Defaults.LOGGING_TEXT_PREVIEW_CHARS)),
            level=log_level,
        )
        cls._validate_non_negative("logging.text_preview_chars", logging_cfg.text_preview_chars)
        cls._validate_range("logging.level", logging_cfg.level, 1, 4)

        return cls(
            cache=cache,
            prefetch=prefetch,
            content=content,
            playback=playback,
            logging=logging_cfg,
        )

    @staticmethod
    def _validate_positive(name: str, value: int | float) -> None:
        """Validate that a value is positive (> 0)."""
        if value <= 0:
            raise ConfigValidationError(f"{name} must be positive, got {value}")

    @staticmethod
    def _validate_non_negative(name: str, value: int | float) -> None:
        """Validate that a value is non-negative (>= 0)."""
        if value < 0:
            raise ConfigValidationError(f"{name} must be non-negative, got {value}")

    @staticmethod
    def _validate_range(name: str, value: int | float, min_val: int | float, max_val: int | float) -> None:
        """Validate that a value is within a range [min_val, max_val]."""
        if not (min_val <= value <= max_val):
            raise ConfigValidationError(f"{name} must be between {min_val} and {max_val}, got {value}")


@dataclass(frozen=True)
class Settings:
    """
    Immutable settings container loaded from YAML.

    This is the raw settings object before validation. Use
    get_reader_config() to get a validated ReaderConfig.

    Attributes:
        raw: Dictionary of raw configuration values.
    """
    raw: Dict[str, Any]

    def get_reader_config(self) -> ReaderConfig:
        """
        Get validated ReaderConfig from these settings.

        Raises:
            ConfigValidationError: If validation fails.
        """
        return ReaderConfig.from_settings(self)


def load_settings(path: str = "config/settings.yaml") -> Settings:
    """
    Load settings from a YAML configuration file.

    Args:
        path: Path to the YAML configuration file.

    Returns:
        Settings object with loaded configuration.

    Raises:
        FileNotFoundError: If the settings file doesn't exist.
    """
    p = Path(path)
    if not p.exists():
        raise FileNotFoundError(f"settings file not found: {p.resolve()}")

    with p.open("r", encoding="utf-8") as f:
        raw: Dict[str, Any] = yaml.safe_load(f) or {}

    return Settings(raw=raw)
