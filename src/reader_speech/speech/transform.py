"""
Text Transform Pipeline.

Turns raw chunk text into what the speech engine is given, plus the
expressive parameters detected for it. The transform is a pure function of
(text, RuleSet): no randomness, no state carried between calls.

Stages (strictly ordered):
    1. Dictionary substitution    whole-word, case-sensitive
    2. Pronunciation rules        in table order, chained
    3. Word spacing               " word " around \\w+ runs, collapse whitespace
    4. Prosody markup             break / emphasis / prosody tags

Emotion detection runs separately on the RAW text, not on any stage output.

Word tracking uses the stage-3 text. Markup is never tokenized, so tags
cannot be mistaken for spoken words.

The transform is not idempotent: running it on its own output inserts
further pauses and markup. Callers always transform raw text exactly once.

Example:
    >>> pipeline = TextTransformPipeline()
    >>> result = pipeline.transform('Dr. Smith said: "genre"')
    >>> result.spoken_text
    'Doctor Smith said : " zhawn · ruh "'
    >>> result.expressive.emotion
    'neutral'
"""
from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Dict, List, TYPE_CHECKING

from reader_speech.core.logging import debug, get_logger
from reader_speech.speech.rules import DEFAULT_RULES, RuleSet
from reader_speech.utils.timeit import timeit

if TYPE_CHECKING:
    from reader_speech.speech.engine import VoiceParams

_LOG = get_logger("reader-speech.transform")

_WORD_RE = re.compile(r"(\w+)")
_WS_RE = re.compile(r"\s+")

# Prosody markup, applied in this order
_SENTENCE_BREAK = re.compile(r"([.!?]) ")
_CLAUSE_BREAK = re.compile(r"([,;:]) ")
_EMPHASIS = re.compile(r"\*([^*]+)\*")
_QUESTION = re.compile(r"\?")


def split_into_words(text: str) -> List[str]:
    """Whitespace tokens of ``text``, empty tokens dropped."""
    return [w for w in _WS_RE.split(text) if w]


def add_prosody_markup(text: str) -> str:
    """
    Insert engine markup into stage-3 text.

    Long break after . ! ?, short break after , ; :, <emphasis> around
    *spans*, raised pitch on every question mark.
    """
    s = _SENTENCE_BREAK.sub(r'\1 <break time="1s"/> ', text)
    s = _CLAUSE_BREAK.sub(r'\1 <break time="0.5s"/> ', s)
    s = _EMPHASIS.sub(r"<emphasis>\1</emphasis>", s)
    s = _QUESTION.sub('<prosody pitch="high">?</prosody>', s)
    return s


@dataclass(frozen=True)
class ExpressiveParams:
    """
    Multipliers detected from the raw text.

    Neutral (no rule matched) is 1.0 for every factor.
    """
    emotion: str = "neutral"
    pitch_factor: float = 1.0
    rate_factor: float = 1.0
    volume_factor: float = 1.0

    def apply(self, base: "VoiceParams") -> "VoiceParams":
        """
        Component-wise product with the caller's base parameters.

        No clamping: engines clamp to their own supported ranges.
        """
        return base.scaled(
            pitch=self.pitch_factor,
            rate=self.rate_factor,
            volume=self.volume_factor,
        )


NEUTRAL = ExpressiveParams()


@dataclass(frozen=True)
class TransformResult:
    """
    Output of TextTransformPipeline.transform().

    Attributes:
        spoken_text: Stage-3 text (what is said, without markup).
        speech_text: What is submitted to the engine (stage 4, or stage 3
            when markup is disabled).
        words: Whitespace tokens of spoken_text, used for word tracking.
        expressive: Emotion multipliers detected on the raw text.
        timings: Per-stage durations in seconds.
    """
    spoken_text: str
    speech_text: str
    words: List[str]
    expressive: ExpressiveParams = NEUTRAL
    timings: Dict[str, float] = field(default_factory=dict, compare=False)


class TextTransformPipeline:
    """
    Deterministic raw text -> speech text transform.

    Attributes:
        rules: The rule tables in use.
        prosody_markup: Whether stage 4 runs.
    """

    def __init__(self, rules: RuleSet = DEFAULT_RULES, prosody_markup: bool = True):
        self.rules = rules
        self.prosody_markup = prosody_markup

    def apply_dictionary(self, text: str) -> str:
        s = text
        for entry in self.rules.dictionary:
            s = entry.pattern.sub(entry.replacement, s)
        return s

    def apply_pronunciation(self, text: str) -> str:
        s = text
        for rule in self.rules.pronunciation:
            s = rule.apply(s)
        return s

    @staticmethod
    def normalize_spacing(text: str) -> str:
        s = _WORD_RE.sub(r" \1 ", text).strip()
        return _WS_RE.sub(" ", s)

    def preprocess(self, text: str) -> str:
        """Stages 1-3: the text that is actually spoken."""
        return self.normalize_spacing(self.apply_pronunciation(self.apply_dictionary(text)))

    def detect_emotion(self, raw_text: str) -> ExpressiveParams:
        """First matching emotion rule on the raw text, else neutral."""
        for rule in self.rules.emotions:
            if rule.pattern.search(raw_text):
                return ExpressiveParams(
                    emotion=rule.name,
                    pitch_factor=rule.pitch_factor,
                    rate_factor=rule.rate_factor,
                    volume_factor=rule.volume_factor,
                )
        return NEUTRAL

    def transform(self, raw_text: str) -> TransformResult:
        """
        Run the full pipeline.

        Args:
            raw_text: Chunk text as it came from the content source.

        Returns:
            TransformResult. Never raises for str input.
        """
        timings: Dict[str, float] = {}

        with timeit("preprocess") as t:
            spoken = self.preprocess(raw_text)
        timings["preprocess"] = t.seconds

        with timeit("emotion") as t:
            expressive = self.detect_emotion(raw_text)
        timings["emotion"] = t.seconds

        with timeit("markup") as t:
            speech = add_prosody_markup(spoken) if self.prosody_markup else spoken
        timings["markup"] = t.seconds

        words = split_into_words(spoken)
        debug(
            _LOG,
            "transformed",
            chars_in=len(raw_text),
            chars_out=len(speech),
            words=len(words),
            emotion=expressive.emotion,
            rules=self.rules.version,
        )
        return TransformResult(
            spoken_text=spoken,
            speech_text=speech,
            words=words,
            expressive=expressive,
            timings=timings,
        )


_DEFAULT_PIPELINE = TextTransformPipeline()


def transform(raw_text: str) -> TransformResult:
    """Transform with the default rule tables and markup enabled."""
    return _DEFAULT_PIPELINE.transform(raw_text)
