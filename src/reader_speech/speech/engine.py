"""
Speech Engine Base Class and Factory.

This module provides:
    - VoiceParams: voice name plus rate / pitch / volume
    - EngineCapabilities: what an engine can report or do
    - UtteranceCallbacks: the notifications an engine delivers per utterance
    - SpeechEngine: abstract base class for all engines
    - get_engine(): factory creating an engine by name

Engine Contract:
    speak() starts one utterance and returns immediately. From then on the
    engine reports progress through the UtteranceCallbacks it was given:

        on_word_boundary(char_index)   a word starts at char_index of the
                                       submitted text
        on_end()                       the utterance finished normally
        on_error(exc)                  the utterance failed mid-way

    Callbacks must be invoked on the event loop thread. Engines driven by a
    worker thread marshal them with loop.call_soon_threadsafe().

    speak() raises EngineError if the engine rejects the utterance outright.
    cancel() stops the current utterance; no further callbacks are owed for
    it. pause()/resume() are no-ops on engines without pause support.

Supported Engines:
    - simulated: asyncio-timed boundaries, no audio (tests, dry runs)
    - pyttsx3: operating system voices via pyttsx3 (optional extra)

Implementing a New Engine:
    1. Create engines/<name>_engine.py
    2. Inherit from SpeechEngine
    3. Implement speak() and cancel()
    4. Register it in _create_engine()
"""
from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Any, Callable, List, Optional

from reader_speech.core.config import Defaults
from reader_speech.core.logging import get_logger
from reader_speech.speech.voices import VoiceInfo


@dataclass(frozen=True)
class VoiceParams:
    """
    Voice selection and prosody for one utterance.

    Attributes:
        voice: Engine voice name or id ("" = engine default).
        rate: Speaking rate multiplier (1.0 = normal).
        pitch: Pitch multiplier (1.0 = normal).
        volume: Volume, 0.0 - 1.0.
    """
    voice: str = Defaults.PLAYBACK_VOICE
    rate: float = Defaults.PLAYBACK_RATE
    pitch: float = Defaults.PLAYBACK_PITCH
    volume: float = Defaults.PLAYBACK_VOLUME

    def scaled(self, pitch: float = 1.0, rate: float = 1.0, volume: float = 1.0) -> "VoiceParams":
        """Component-wise product with the given factors."""
        return replace(
            self,
            pitch=self.pitch * pitch,
            rate=self.rate * rate,
            volume=self.volume * volume,
        )


@dataclass(frozen=True)
class EngineCapabilities:
    """
    Describes what a speech engine supports.

    Attributes:
        word_boundaries: Emits on_word_boundary notifications.
        native_timing: Reports its own progress; no estimate timer needed.
        pause: Supports pause()/resume().
        markup: Understands break/emphasis/prosody tags.
    """
    word_boundaries: bool
    native_timing: bool
    pause: bool
    markup: bool


@dataclass
class UtteranceCallbacks:
    """Notification targets for one utterance."""
    on_word_boundary: Callable[[int], None]
    on_end: Callable[[], None]
    on_error: Callable[[BaseException], None]


class SpeechEngine:
    """
    Abstract base class for speech engines.

    Attributes:
        name: Engine identifier ("simulated", "pyttsx3").
        capabilities: EngineCapabilities describing supported features.
        logger: Logger instance for this engine.
    """
    name: str = "base"
    capabilities: EngineCapabilities = EngineCapabilities(
        word_boundaries=False,
        native_timing=False,
        pause=False,
        markup=False,
    )

    def __init__(self) -> None:
        self.logger = get_logger(f"reader-speech.engine.{self.name}")

    def speak(self, text: str, params: VoiceParams, callbacks: UtteranceCallbacks) -> None:
        """
        Start speaking ``text``.

        Raises:
            EngineError: The engine rejected the utterance.
            NotImplementedError: If not overridden.
        """
        raise NotImplementedError

    def cancel(self) -> None:
        """Stop the current utterance, if any."""
        raise NotImplementedError

    def pause(self) -> None:
        pass

    def resume(self) -> None:
        pass

    def list_voices(self) -> List[VoiceInfo]:
        return []

    async def aclose(self) -> None:
        """Release engine resources."""


# =============================================================================
# Engine Factory
# =============================================================================

def _normalize_engine_type(engine_type: str) -> str:
    """
    Normalize engine type aliases.

    Maps:
        - "sim", "fake" -> "simulated"
        - "system", "os" -> "pyttsx3"
    """
    aliases = {
        "sim": "simulated",
        "fake": "simulated",
        "system": "pyttsx3",
        "os": "pyttsx3",
    }
    key = engine_type.strip().lower()
    return aliases.get(key, key)


def _create_engine(engine_type: str, **kwargs: Any) -> SpeechEngine:
    """
    Create a speech engine instance.

    Uses lazy imports so optional engine dependencies are only loaded when
    selected.

    Raises:
        ValueError: If engine_type is unknown.
    """
    if engine_type == "simulated":
        from reader_speech.speech.engines.simulated import SimulatedSpeechEngine
        return SimulatedSpeechEngine(**kwargs)

    if engine_type == "pyttsx3":
        from reader_speech.speech.engines.pyttsx3_engine import Pyttsx3SpeechEngine
        return Pyttsx3SpeechEngine(**kwargs)

    raise ValueError(f"Unknown engine type: {engine_type}")


def get_engine(engine_type: Optional[str] = None, **kwargs: Any) -> SpeechEngine:
    """
    Create a speech engine by name.

    Every call returns a new instance; the composition root owns it.

    Args:
        engine_type: Engine name or alias (default: "simulated").
        **kwargs: Passed to the engine constructor.
    """
    return _create_engine(_normalize_engine_type(engine_type or Defaults.PLAYBACK_ENGINE), **kwargs)
