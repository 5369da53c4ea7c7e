"""
ReaderService - Reading and Read-Aloud Facade.

This module provides ReaderService, the composition root that owns the
caches, the prefetch coordinator, the transform pipeline and the playback
controller. The UI layer talks only to this class.

Architecture:
    change_page -> PrefetchCoordinator.fetch_chunk -> (cache | source)
                +-> background prefetch of the next N chunks
    read_aloud  -> change_page -> PlaybackController.start -> engine

Key Components:
    - Book cache: BoundedCache of Book metadata (capacity 20)
    - Chunk cache: BoundedCache of chunk texts inside the coordinator (50)
    - PrefetchCoordinator: deduplicated read-ahead
    - PlaybackController: single-session speech with word highlighting

Lifetime:
    One ReaderService per process, built by the application (from_settings
    or the constructor) and closed with aclose(). There is no module-level
    instance.

Example:
    >>> settings = Settings(raw={"content": {"root_dir": "books"}})
    >>> service = ReaderService.from_settings(settings)
    >>> text = await service.change_page("moby-dick", 0)
    >>> session = service.start_speaking(text, on_word_boundary=print)
    >>> await session.wait()
    >>> await service.aclose()
"""
from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Callable, Dict, List, Optional, Set

from reader_speech.cache.bounded import BoundedCache
from reader_speech.cache.prefetch import DiagnosticSink, PrefetchCoordinator
from reader_speech.content.source import Book, ContentSource, DirectoryContentSource, HttpContentSource
from reader_speech.core.config import ConfigValidationError, ContentConfig, ReaderConfig, Settings
from reader_speech.core.logging import get_logger, info, set_trace_id, success, verbose
from reader_speech.services.validators import (
    validate_chunk_request,
    validate_content_id,
    validate_text,
    validate_voice_params,
)
from reader_speech.speech.engine import SpeechEngine, VoiceParams, get_engine
from reader_speech.speech.playback import (
    EndCallback,
    PlaybackController,
    PlaybackState,
    ProgressCallback,
    SessionOutcome,
    UtteranceSession,
    WordBoundaryCallback,
    estimate_duration,
)
from reader_speech.speech.rules import RULES_VERSION
from reader_speech.speech.transform import TextTransformPipeline
from reader_speech.speech.voices import MIN_VOICE_SCORE, VoiceInfo, rank_voices

_LOG = get_logger("reader-speech.service")


def build_content_source(content: ContentConfig) -> ContentSource:
    """
    Create the configured content source.

    base_url wins over root_dir when both are set.

    Raises:
        ConfigValidationError: Neither is set.
    """
    if content.base_url:
        return HttpContentSource(content.base_url, timeout_s=content.timeout_s)
    if content.root_dir:
        return DirectoryContentSource(content.root_dir)
    raise ConfigValidationError("content.base_url or content.root_dir must be set")


class ReaderService:
    """
    Book reading with cached, prefetched chunks and read-aloud playback.

    Attributes:
        config: Validated configuration.
        source: Content source shared by both caches.
        books: Book metadata cache.
        coordinator: Chunk cache and prefetcher.
        controller: Playback controller.
        voice_params: Base voice parameters for new utterances.
    """

    def __init__(
        self,
        source: ContentSource,
        engine: SpeechEngine,
        config: Optional[ReaderConfig] = None,
        sink: Optional[DiagnosticSink] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        """
        Args:
            source: Where books and chunks come from.
            engine: Speech engine; owned and closed by this service.
            config: Validated configuration (defaults if omitted).
            sink: Receiver of prefetch failure warnings (log by default).
            sleep: Delay used while waiting for in-flight prefetches.
        """
        self.config = config or ReaderConfig()
        self.source = source

        # ─────────────────────────────────────────────────────────────────────
        # Caches
        # ─────────────────────────────────────────────────────────────────────
        self.books: BoundedCache[str, Book] = BoundedCache(
            capacity=self.config.cache.book_capacity, name="books"
        )
        self.coordinator = PrefetchCoordinator(
            source,
            cache=BoundedCache(capacity=self.config.cache.chunk_capacity, name="chunks"),
            sink=sink,
            poll_interval_s=self.config.prefetch.poll_interval_s,
            poll_attempts=self.config.prefetch.poll_attempts,
            sleep=sleep,
        )

        # ─────────────────────────────────────────────────────────────────────
        # Speech
        # ─────────────────────────────────────────────────────────────────────
        playback = self.config.playback
        # Engines that cannot parse markup would read the tags aloud
        self.pipeline = TextTransformPipeline(
            prosody_markup=playback.prosody_markup and engine.capabilities.markup
        )
        self.controller = PlaybackController(
            engine,
            pipeline=self.pipeline,
            progress_interval_s=playback.progress_interval_s,
            seconds_per_char=playback.seconds_per_char,
            text_preview_chars=self.config.logging.text_preview_chars,
        )
        self.voice_params = VoiceParams(
            voice=playback.voice,
            rate=playback.rate,
            pitch=playback.pitch,
            volume=playback.volume,
        )

        self._background: Set[asyncio.Task] = set()

    @classmethod
    def from_settings(cls, settings: Settings, engine: Optional[SpeechEngine] = None) -> "ReaderService":
        """
        Build a service from raw settings.

        Raises:
            ConfigValidationError: Invalid settings or no content source.
        """
        config = settings.get_reader_config()
        source = build_content_source(config.content)
        service = cls(source, engine or get_engine(config.playback.engine), config)
        success(
            _LOG,
            "service_ready",
            source=type(source).__name__,
            engine=service.engine.name,
            rules=RULES_VERSION,
        )
        return service

    # =========================================================================
    # Properties
    # =========================================================================

    @property
    def engine(self) -> SpeechEngine:
        return self.controller.engine

    @property
    def state(self) -> PlaybackState:
        return self.controller.state

    # =========================================================================
    # Content
    # =========================================================================

    async def get_book(self, content_id: str) -> Book:
        """
        Book metadata, cached.

        Raises:
            InvalidInputError: Blank content id.
            NotFoundError: Unknown book.
            ContentUnavailableError: Source failure.
        """
        content_id = validate_content_id(content_id)
        cached = self.books.get(content_id)
        if cached is not None:
            return cached
        book = await self.source.fetch_book(content_id)
        self.books.set(content_id, book)
        return book

    async def get_chunk(self, content_id: str, index: int) -> str:
        """
        Text of one chunk, from cache or the source.

        Raises:
            InvalidInputError: Blank id or negative index.
            NotFoundError: The chunk does not exist.
            ContentUnavailableError: Source failure.
        """
        content_id, index = validate_chunk_request(content_id, index)
        return await self.coordinator.fetch_chunk(content_id, index)

    async def prefetch(self, content_id: str, from_index: int, count: Optional[int] = None) -> None:
        """Warm the chunks after ``from_index``. Never raises for fetch failures."""
        content_id, from_index = validate_chunk_request(content_id, from_index)
        await self.coordinator.prefetch(
            content_id, from_index, self.config.prefetch.count if count is None else count
        )

    async def change_page(self, content_id: str, index: int) -> str:
        """
        Load the chunk for a page change and warm the following ones.

        The prefetch runs in the background; this returns as soon as the
        requested chunk is available.
        """
        set_trace_id(f"page-{content_id}-{index}")
        text = await self.get_chunk(content_id, index)
        if self.config.prefetch.count > 0:
            self._spawn(self.coordinator.prefetch(content_id, index, self.config.prefetch.count))
        info(_LOG, "page_change", content_id=content_id, index=index, chars=len(text))
        return text

    def clear_cache(self) -> int:
        """
        Empty the book and chunk caches.

        Returns:
            Number of entries removed.
        """
        removed = self.books.clear() + self.coordinator.clear()
        info(_LOG, "cache_cleared", removed=removed)
        return removed

    def _spawn(self, coro: Awaitable[Any]) -> asyncio.Task:
        task = asyncio.ensure_future(coro)
        self._background.add(task)
        task.add_done_callback(self._background.discard)
        return task

    # =========================================================================
    # Speech
    # =========================================================================

    def start_speaking(
        self,
        text: str,
        on_word_boundary: Optional[WordBoundaryCallback] = None,
        on_end: Optional[EndCallback] = None,
        on_progress: Optional[ProgressCallback] = None,
    ) -> UtteranceSession:
        """
        Speak ``text`` with the current voice parameters.

        Replaces any utterance in progress.

        Raises:
            InvalidInputError: Blank or oversized text.
            EngineError: The engine rejected the utterance.
        """
        text = validate_text(text)
        return self.controller.start(
            text,
            self.voice_params,
            on_word_boundary=on_word_boundary,
            on_end=on_end,
            on_progress=on_progress,
        )

    async def speak(
        self,
        text: str,
        on_word_boundary: Optional[WordBoundaryCallback] = None,
        on_progress: Optional[ProgressCallback] = None,
    ) -> SessionOutcome:
        """Speak ``text`` and wait until it ends, is cancelled or fails."""
        session = self.start_speaking(text, on_word_boundary=on_word_boundary, on_progress=on_progress)
        return await session.wait()

    async def read_aloud(
        self,
        content_id: str,
        index: int,
        on_word_boundary: Optional[WordBoundaryCallback] = None,
        on_end: Optional[EndCallback] = None,
        on_progress: Optional[ProgressCallback] = None,
    ) -> UtteranceSession:
        """Turn to a page and start speaking it."""
        text = await self.change_page(content_id, index)
        return self.start_speaking(text, on_word_boundary, on_end, on_progress)

    def stop_speaking(self) -> None:
        self.controller.stop()

    def pause_speaking(self) -> None:
        self.controller.pause()

    def resume_speaking(self) -> None:
        self.controller.resume()

    def estimate_duration(self, text: str) -> int:
        """Reading time of ``text`` in whole seconds."""
        return estimate_duration(text, self.config.playback.words_per_minute)

    def update_audio_settings(
        self,
        voice: Optional[str] = None,
        rate: Optional[float] = None,
        pitch: Optional[float] = None,
        volume: Optional[float] = None,
    ) -> VoiceParams:
        """
        Change the base voice parameters for the next utterance.

        Raises:
            InvalidInputError: A value is out of range.
        """
        self.voice_params = validate_voice_params(
            self.voice_params, voice=voice, rate=rate, pitch=pitch, volume=volume
        )
        verbose(_LOG, "audio_settings", **vars(self.voice_params))
        return self.voice_params

    def available_voices(self, min_score: int = MIN_VOICE_SCORE) -> List[VoiceInfo]:
        """Engine voices worth offering, best first."""
        return rank_voices(self.engine.list_voices(), min_score=min_score)

    # =========================================================================
    # Status / shutdown
    # =========================================================================

    def stats(self) -> Dict[str, Any]:
        """
        Service status for diagnostics.

        Returns a dictionary with cache statistics, prefetch state,
        playback state and the active rule table version.
        """
        return {
            "chunks": self.coordinator.cache.stats(),
            "books": self.books.stats(),
            "in_flight": len(self.coordinator.in_flight),
            "background_tasks": len(self._background),
            "state": self.state.value,
            "paused": self.controller.paused,
            "engine": self.engine.name,
            "voice": {
                "voice": self.voice_params.voice,
                "rate": self.voice_params.rate,
                "pitch": self.voice_params.pitch,
                "volume": self.voice_params.volume,
            },
            "rules_version": RULES_VERSION,
        }

    async def wait_background(self) -> None:
        """Wait for every scheduled background prefetch to settle."""
        while self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)

    async def aclose(self) -> None:
        """Stop speech, let background prefetches settle, release resources."""
        self.stop_speaking()
        await self.wait_background()
        await self.engine.aclose()
        await self.source.aclose()
        info(_LOG, "service_closed")
