"""
pyttsx3 Speech Engine.

Speaks through the operating system's voices (SAPI5, NSSpeechSynthesizer,
eSpeak) using pyttsx3. Install with: pip install reader-speech[system]

Threading:
    pyttsx3's runAndWait() blocks, so each utterance runs in a worker
    thread. Word and end notifications arrive on that thread and are handed
    to the event loop with loop.call_soon_threadsafe(); callbacks never run
    off the loop thread.

    A new pyttsx3 engine is created for each utterance. Reusing one driver
    across threads is unreliable on macOS.

Parameters:
    rate    multiplied onto BASE_WORDS_PER_MINUTE (pyttsx3 rate is in wpm)
    volume  passed through (0.0 - 1.0)
    pitch   not supported by pyttsx3, ignored
    voice   matched against voice id first, then as a name substring
"""
from __future__ import annotations

import asyncio
import threading
from typing import Any, List, Optional

from reader_speech.core.logging import debug, warn
from reader_speech.errors import EngineError
from reader_speech.speech.engine import EngineCapabilities, SpeechEngine, UtteranceCallbacks, VoiceParams
from reader_speech.speech.voices import VoiceInfo

BASE_WORDS_PER_MINUTE = 200


def _import_pyttsx3() -> Any:
    try:
        import pyttsx3
    except ImportError as e:
        raise EngineError(
            "pyttsx3 not installed. Run: pip install reader-speech[system]"
        ) from e
    return pyttsx3


def _select_voice(driver: Any, wanted: str) -> Optional[str]:
    voices = driver.getProperty("voices") or []
    for voice in voices:
        if voice.id == wanted:
            return voice.id
    for voice in voices:
        if wanted.lower() in str(voice.name).lower():
            return voice.id
    return None


def _voice_lang(voice: Any) -> str:
    languages = getattr(voice, "languages", None) or []
    if not languages:
        return ""
    lang = languages[0]
    if isinstance(lang, bytes):
        # eSpeak reports b"\x05en-us"
        lang = lang.decode("utf-8", errors="ignore").lstrip("\x05")
    lang = str(lang).replace("_", "-")
    head, _, tail = lang.partition("-")
    return f"{head.lower()}-{tail.upper()}" if tail else head.lower()


class Pyttsx3SpeechEngine(SpeechEngine):
    """
    Operating system speech through pyttsx3.

    Example:
        engine = Pyttsx3SpeechEngine()
        controller = PlaybackController(engine)
        await controller.speak("Call me Ishmael.")
    """
    name = "pyttsx3"
    capabilities = EngineCapabilities(
        word_boundaries=True,
        native_timing=False,
        pause=False,
        markup=False,
    )

    def __init__(self) -> None:
        super().__init__()
        self._pyttsx3 = _import_pyttsx3()
        self._lock = threading.Lock()
        self._driver: Any = None
        self._generation = 0
        self._future: Optional[asyncio.Future] = None

    def speak(self, text: str, params: VoiceParams, callbacks: UtteranceCallbacks) -> None:
        loop = asyncio.get_running_loop()
        with self._lock:
            self._generation += 1
            generation = self._generation
        self._future = loop.run_in_executor(
            None, self._run, text, params, callbacks, loop, generation
        )

    def _current(self, generation: int) -> bool:
        with self._lock:
            return generation == self._generation

    def _post(self, loop: asyncio.AbstractEventLoop, generation: int, fn: Any, *args: Any) -> None:
        if self._current(generation):
            loop.call_soon_threadsafe(fn, *args)

    def _run(
        self,
        text: str,
        params: VoiceParams,
        callbacks: UtteranceCallbacks,
        loop: asyncio.AbstractEventLoop,
        generation: int,
    ) -> None:
        try:
            driver = self._pyttsx3.init()
            driver.setProperty("rate", int(BASE_WORDS_PER_MINUTE * params.rate))
            driver.setProperty("volume", max(0.0, min(1.0, params.volume)))
            if params.voice:
                voice_id = _select_voice(driver, params.voice)
                if voice_id:
                    driver.setProperty("voice", voice_id)
                else:
                    warn(self.logger, "voice_not_found", voice=params.voice)

            def on_word(name: Any, location: int, length: int) -> None:
                debug(self.logger, "boundary", offset=location, length=length)
                self._post(loop, generation, callbacks.on_word_boundary, location)

            driver.connect("started-word", on_word)

            with self._lock:
                if generation != self._generation:
                    return
                self._driver = driver

            driver.say(text)
            driver.runAndWait()
            driver.stop()
        except Exception as e:
            self._post(loop, generation, callbacks.on_error, e)
            return
        finally:
            with self._lock:
                if generation == self._generation:
                    self._driver = None

        self._post(loop, generation, callbacks.on_end)

    def cancel(self) -> None:
        with self._lock:
            self._generation += 1
            driver = self._driver
            self._driver = None
        if driver is not None:
            driver.stop()

    def list_voices(self) -> List[VoiceInfo]:
        driver = self._pyttsx3.init()
        voices = driver.getProperty("voices") or []
        return [
            VoiceInfo(id=str(v.id), name=str(v.name), lang=_voice_lang(v), local=True)
            for v in voices
        ]

    async def aclose(self) -> None:
        self.cancel()
        if self._future is not None:
            await asyncio.gather(self._future, return_exceptions=True)
