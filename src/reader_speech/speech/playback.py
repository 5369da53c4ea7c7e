"""
Playback Controller.

Owns the single active utterance session and turns engine notifications
into word-boundary and progress events for the UI layer.

State Machine:
    IDLE --start()--> SPEAKING --engine end----> ENDED     --> IDLE
                               --stop()/start()-> CANCELLED --> IDLE
                               --engine error--> FAILED    --> IDLE

    At most one session exists. start() while SPEAKING first cancels the
    current session (the engine's cancel() is called exactly once for it),
    then starts the new one.

Word Tracking:
    The transformed text is split into words before markup is added. Each
    engine boundary notification is paired with the next word:

        {word: words[cursor], start_offset: char_index,
         end_offset: char_index + len(word)}

    Notifications past the last word are dropped and counted
    (reader_word_boundaries_dropped_total); engines and the tokenizer do
    not always agree on what a word is.

Progress:
    Engines without native timing get an estimate timer. The estimate is
    len(spoken text) * seconds_per_char / rate; the timer ticks every
    progress_interval_s until the estimate is reached or the session ends,
    and is cancelled on every exit path. Ticks do not advance while paused.

Notifications from a session that is no longer current are ignored, so a
late "end" from a cancelled utterance can never end its successor.

Example:
    controller = PlaybackController(get_engine("simulated"))
    session = controller.start("Call me Ishmael.", on_word_boundary=print)
    outcome = await session.wait()
"""
from __future__ import annotations

import asyncio
import itertools
import math
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, List, Optional

from reader_speech.core.config import Defaults
from reader_speech.core.logging import debug, error, get_logger, info, set_trace_id, verbose
from reader_speech.core.metrics import metrics
from reader_speech.errors import EngineError
from reader_speech.speech.engine import SpeechEngine, UtteranceCallbacks, VoiceParams
from reader_speech.speech.transform import TextTransformPipeline, TransformResult, split_into_words

_LOG = get_logger("reader-speech.playback")


class PlaybackState(str, Enum):
    IDLE = "idle"
    SPEAKING = "speaking"


class SessionOutcome(str, Enum):
    """How a session left SPEAKING."""
    ENDED = "ended"
    CANCELLED = "cancelled"
    FAILED = "failed"


@dataclass(frozen=True)
class WordBoundaryEvent:
    """
    One highlighted word.

    Attributes:
        word: The word from the transformed text.
        start_offset: Engine-reported character offset.
        end_offset: start_offset + len(word).
        index: Position of the word in the session's word list.
    """
    word: str
    start_offset: int
    end_offset: int
    index: int


WordBoundaryCallback = Callable[[WordBoundaryEvent], None]
EndCallback = Callable[[SessionOutcome], None]
ProgressCallback = Callable[[float], None]


def estimate_duration(text: str, words_per_minute: int = Defaults.PLAYBACK_WORDS_PER_MINUTE) -> int:
    """
    Reading time of ``text`` in whole seconds (rounded up).

    Example:
        >>> estimate_duration("word " * 200)
        60
    """
    words = len(split_into_words(text))
    return math.ceil(words / words_per_minute * 60)


def estimate_speech_seconds(
    text: str,
    rate: float = Defaults.PLAYBACK_RATE,
    seconds_per_char: float = Defaults.PLAYBACK_SECONDS_PER_CHAR,
) -> float:
    """Spoken duration estimate used by the progress timer."""
    if rate <= 0:
        rate = Defaults.PLAYBACK_RATE
    return len(text) * seconds_per_char / rate


_session_ids = itertools.count(1)


class UtteranceSession:
    """
    One start() call, from submission to its outcome.

    Attributes:
        id: Process-unique session number.
        source_text: Text given to start().
        transformed: Pipeline output; words are its stage-3 tokens.
        params: Voice parameters submitted to the engine (base x emotion).
        cursor: Index of the next word to highlight.
        started_at: time.monotonic() at submission.
        estimated_duration_s: Progress estimate in seconds.
        elapsed_s: Seconds of progress reported so far.
        outcome: None while speaking.
        error: Engine failure for FAILED sessions.
    """

    def __init__(
        self,
        source_text: str,
        transformed: TransformResult,
        params: VoiceParams,
        estimated_duration_s: float,
    ):
        self.id = next(_session_ids)
        self.source_text = source_text
        self.transformed = transformed
        self.params = params
        self.cursor = 0
        self.started_at = time.monotonic()
        self.estimated_duration_s = estimated_duration_s
        self.elapsed_s = 0.0
        self.outcome: Optional[SessionOutcome] = None
        self.error: Optional[BaseException] = None
        self.timer_task: Optional[asyncio.Task] = None
        self.callbacks = _SessionCallbacks(None, None, None)
        self._done = asyncio.Event()

    @property
    def words(self) -> List[str]:
        return self.transformed.words

    @property
    def done(self) -> bool:
        return self.outcome is not None

    async def wait(self) -> SessionOutcome:
        """
        Wait for the session to end.

        Returns:
            ENDED or CANCELLED.

        Raises:
            EngineError: The engine failed the utterance.
        """
        await self._done.wait()
        if self.outcome is SessionOutcome.FAILED:
            if isinstance(self.error, EngineError):
                raise self.error
            raise EngineError(
                f"Speech engine failed: {self.error}",
                details={"session": self.id},
            ) from self.error
        if self.outcome is None:
            raise RuntimeError(f"session {self.id} signalled done without an outcome")
        return self.outcome

    def __repr__(self) -> str:
        return (
            f"UtteranceSession(id={self.id}, words={len(self.words)}, "
            f"cursor={self.cursor}, outcome={self.outcome})"
        )


class PlaybackController:
    """
    Single-session speech playback.

    Must be used from the event loop thread; start() schedules work on the
    running loop.

    Attributes:
        engine: The speech engine driven by this controller.
        pipeline: Text transform applied to every utterance.
        progress_interval_s: Estimate timer period.
        seconds_per_char: Speech-time estimate at rate 1.0.
    """

    def __init__(
        self,
        engine: SpeechEngine,
        pipeline: Optional[TextTransformPipeline] = None,
        progress_interval_s: float = Defaults.PLAYBACK_PROGRESS_INTERVAL_MS / 1000.0,
        seconds_per_char: float = Defaults.PLAYBACK_SECONDS_PER_CHAR,
        text_preview_chars: int = Defaults.LOGGING_TEXT_PREVIEW_CHARS,
    ):
        self.engine = engine
        self.pipeline = pipeline or TextTransformPipeline(prosody_markup=engine.capabilities.markup)
        self.progress_interval_s = progress_interval_s
        self.seconds_per_char = seconds_per_char
        self.text_preview_chars = text_preview_chars
        self._session: Optional[UtteranceSession] = None
        self._paused = False

    @property
    def state(self) -> PlaybackState:
        return PlaybackState.SPEAKING if self._session is not None else PlaybackState.IDLE

    @property
    def current_session(self) -> Optional[UtteranceSession]:
        return self._session

    @property
    def paused(self) -> bool:
        return self._paused

    def start(
        self,
        text: str,
        params: VoiceParams = VoiceParams(),
        on_word_boundary: Optional[WordBoundaryCallback] = None,
        on_end: Optional[EndCallback] = None,
        on_progress: Optional[ProgressCallback] = None,
    ) -> UtteranceSession:
        """
        Start speaking ``text``, replacing any current session.

        Args:
            text: Raw chunk text; transformed here.
            params: Base voice parameters; emotion factors are applied.
            on_word_boundary: Called with a WordBoundaryEvent per word.
            on_end: Called once with the session outcome.
            on_progress: Called with elapsed seconds on each timer tick.

        Returns:
            The new UtteranceSession.

        Raises:
            EngineError: The engine rejected the utterance. The controller
                is IDLE again when this is raised.
        """
        # on_end of a replaced session may itself call start()
        while self._session is not None:
            self._finish(self._session, SessionOutcome.CANCELLED, cancel_engine=True)

        if self._paused:
            # A new utterance must not start on a paused engine
            self._paused = False
            self.engine.resume()

        result = self.pipeline.transform(text)
        spoken_params = result.expressive.apply(params)
        session = UtteranceSession(
            source_text=text,
            transformed=result,
            params=spoken_params,
            estimated_duration_s=estimate_speech_seconds(
                result.spoken_text, spoken_params.rate, self.seconds_per_char
            ),
        )
        session.callbacks = _SessionCallbacks(on_word_boundary, on_end, on_progress)
        self._session = session
        set_trace_id(f"utt-{session.id}")

        engine_callbacks = UtteranceCallbacks(
            on_word_boundary=lambda char_index: self._on_boundary(session, char_index),
            on_end=lambda: self._finish(session, SessionOutcome.ENDED),
            on_error=lambda exc: self._finish(session, SessionOutcome.FAILED, exc=exc),
        )

        try:
            self.engine.speak(result.speech_text, spoken_params, engine_callbacks)
        except Exception as e:
            self._finish(session, SessionOutcome.FAILED, exc=e)
            if isinstance(e, EngineError):
                raise
            raise EngineError(
                f"Speech engine rejected utterance: {e}",
                details={"engine": self.engine.name},
            ) from e

        if not self.engine.capabilities.native_timing and not session.done:
            session.timer_task = asyncio.get_running_loop().create_task(self._run_progress(session))

        info(
            _LOG,
            "speak",
            session=session.id,
            words=len(session.words),
            emotion=result.expressive.emotion,
            rate=round(spoken_params.rate, 3),
            estimate_s=round(session.estimated_duration_s, 2),
            preview=text[: self.text_preview_chars],
        )
        return session

    async def speak(
        self,
        text: str,
        params: VoiceParams = VoiceParams(),
        on_word_boundary: Optional[WordBoundaryCallback] = None,
        on_end: Optional[EndCallback] = None,
        on_progress: Optional[ProgressCallback] = None,
    ) -> SessionOutcome:
        """start() and wait for the outcome."""
        session = self.start(text, params, on_word_boundary, on_end, on_progress)
        return await session.wait()

    def stop(self) -> None:
        """Cancel the current session, if any. Safe to call repeatedly."""
        if self._session is not None:
            self._finish(self._session, SessionOutcome.CANCELLED, cancel_engine=True)

    def pause(self) -> None:
        if self.engine.capabilities.pause:
            self.engine.pause()
        self._paused = True
        verbose(_LOG, "pause", speaking=self._session is not None)

    def resume(self) -> None:
        if self.engine.capabilities.pause:
            self.engine.resume()
        self._paused = False
        verbose(_LOG, "resume", speaking=self._session is not None)

    def _on_boundary(self, session: UtteranceSession, char_index: int) -> None:
        if self._session is not session:
            return

        if session.cursor >= len(session.words):
            metrics.inc_dropped_boundaries()
            debug(_LOG, "boundary_dropped", session=session.id, char_index=char_index)
            return

        word = session.words[session.cursor]
        event = WordBoundaryEvent(
            word=word,
            start_offset=char_index,
            end_offset=char_index + len(word),
            index=session.cursor,
        )
        session.cursor += 1
        debug(_LOG, "boundary", session=session.id, word=word, offset=char_index)
        session.callbacks.emit(session.callbacks.on_word_boundary, event)

    async def _run_progress(self, session: UtteranceSession) -> None:
        while session.elapsed_s < session.estimated_duration_s:
            await asyncio.sleep(self.progress_interval_s)
            if self._paused:
                continue
            session.elapsed_s = min(
                session.elapsed_s + self.progress_interval_s, session.estimated_duration_s
            )
            debug(_LOG, "tick", session=session.id, elapsed=round(session.elapsed_s, 3))
            if self._session is session:
                session.callbacks.emit(session.callbacks.on_progress, session.elapsed_s)

    def _finish(
        self,
        session: UtteranceSession,
        outcome: SessionOutcome,
        exc: Optional[BaseException] = None,
        cancel_engine: bool = False,
    ) -> None:
        if session.done:
            return

        if self._session is session:
            self._session = None
            if cancel_engine:
                self.engine.cancel()

        if session.timer_task is not None and not session.timer_task.done():
            session.timer_task.cancel()

        session.outcome = outcome
        session.error = exc
        session._done.set()
        metrics.record_session(outcome.value)

        seconds = round(time.monotonic() - session.started_at, 3)
        if outcome is SessionOutcome.FAILED:
            error(_LOG, "speak_failed", session=session.id, error=str(exc), seconds=seconds)
        else:
            info(_LOG, f"speak_{outcome.value}", session=session.id, words_spoken=session.cursor, seconds=seconds)

        session.callbacks.emit(session.callbacks.on_end, outcome)


class _SessionCallbacks:
    """UI callbacks of the current session; a failing callback is logged."""

    def __init__(
        self,
        on_word_boundary: Optional[WordBoundaryCallback],
        on_end: Optional[EndCallback],
        on_progress: Optional[ProgressCallback],
    ):
        self.on_word_boundary = on_word_boundary
        self.on_end = on_end
        self.on_progress = on_progress

    @staticmethod
    def emit(callback: Optional[Callable[[Any], None]], value: Any) -> None:
        if callback is None:
            return
        try:
            callback(value)
        except Exception as e:
            error(_LOG, "callback_failed", callback=getattr(callback, "__name__", repr(callback)), error=str(e))
