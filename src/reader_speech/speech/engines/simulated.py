"""
Simulated Speech Engine.

Produces no audio. Each utterance is an asyncio task that walks the
submitted text and reports a word boundary for every word, optionally
waiting ``word_interval_s`` between words, then reports the end.

Markup tags (<break .../>, <emphasis>, ...) are skipped: boundaries are
reported for the spoken words only, at their offsets in the submitted text.

Used by the CLI for dry playback and by tests. Every utterance is recorded
in ``spoken`` and every cancel() call is counted in ``cancel_calls``.
"""
from __future__ import annotations

import asyncio
import re
from typing import List, Optional

from reader_speech.core.logging import debug
from reader_speech.errors import EngineError
from reader_speech.speech.engine import EngineCapabilities, SpeechEngine, UtteranceCallbacks, VoiceParams
from reader_speech.speech.voices import VoiceInfo

_TAG_RE = re.compile(r"<[^>]*>")
_TOKEN_RE = re.compile(r"\S+")

_VOICES = [
    VoiceInfo("sim-en-us", "Simulated Studio (en-US)", "en-US"),
    VoiceInfo("sim-en-gb", "Simulated (en-GB)", "en-GB"),
    VoiceInfo("sim-de", "Simulated (de-DE)", "de-DE", local=False),
]


def word_offsets(text: str) -> List[int]:
    """Start offsets of the spoken words of ``text``, markup excluded."""
    blanked = _TAG_RE.sub(lambda m: " " * len(m.group(0)), text)
    return [m.start() for m in _TOKEN_RE.finditer(blanked)]


class SimulatedSpeechEngine(SpeechEngine):
    """
    Timer-driven engine for tests and dry runs.

    Attributes:
        word_interval_s: Delay before each word boundary.
        spoken: (text, params) of every accepted utterance.
        cancel_calls: Number of cancel() calls.
    """
    name = "simulated"
    capabilities = EngineCapabilities(
        word_boundaries=True,
        native_timing=False,
        pause=True,
        markup=True,
    )

    def __init__(self, word_interval_s: float = 0.0):
        super().__init__()
        self.word_interval_s = word_interval_s
        self.spoken: List[tuple[str, VoiceParams]] = []
        self.cancel_calls = 0
        self._task: Optional[asyncio.Task] = None
        self._running: Optional[asyncio.Event] = None

    def speak(self, text: str, params: VoiceParams, callbacks: UtteranceCallbacks) -> None:
        if params.volume < 0:
            raise EngineError("volume must be non-negative", details={"volume": params.volume})

        self.spoken.append((text, params))
        # Bound to the running loop on first use
        if self._running is None:
            self._running = asyncio.Event()
        self._running.set()
        self._task = asyncio.get_running_loop().create_task(self._run(text, callbacks, self._running))

    async def _run(self, text: str, callbacks: UtteranceCallbacks, running: asyncio.Event) -> None:
        for offset in word_offsets(text):
            if self.word_interval_s > 0:
                await asyncio.sleep(self.word_interval_s)
            await running.wait()
            debug(self.logger, "boundary", offset=offset)
            callbacks.on_word_boundary(offset)
        await running.wait()
        callbacks.on_end()

    def cancel(self) -> None:
        self.cancel_calls += 1
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self._task = None
        if self._running is not None:
            self._running.set()

    def pause(self) -> None:
        if self._running is not None:
            self._running.clear()

    def resume(self) -> None:
        if self._running is not None:
            self._running.set()

    def list_voices(self) -> List[VoiceInfo]:
        return list(_VOICES)

    async def aclose(self) -> None:
        self.cancel()
