"""
Text-to-speech transformation and playback.

    - rules.py: Versioned dictionary, pronunciation and emotion tables
    - transform.py: Deterministic text transform pipeline
    - engine.py: SpeechEngine interface, VoiceParams, engine factory
    - voices.py: Voice quality ranking
    - playback.py: Single-session playback controller
"""
from .engine import EngineCapabilities, SpeechEngine, UtteranceCallbacks, VoiceParams, get_engine
from .playback import (
    PlaybackController,
    PlaybackState,
    SessionOutcome,
    UtteranceSession,
    WordBoundaryEvent,
    estimate_duration,
    estimate_speech_seconds,
)
from .rules import DEFAULT_RULES, RULES_VERSION, RuleSet
from .transform import ExpressiveParams, TextTransformPipeline, TransformResult, transform
from .voices import VoiceInfo, rank_voices, score_voice

__all__ = [
    "DEFAULT_RULES",
    "RULES_VERSION",
    "EngineCapabilities",
    "ExpressiveParams",
    "PlaybackController",
    "PlaybackState",
    "RuleSet",
    "SessionOutcome",
    "SpeechEngine",
    "TextTransformPipeline",
    "TransformResult",
    "UtteranceCallbacks",
    "UtteranceSession",
    "VoiceInfo",
    "VoiceParams",
    "WordBoundaryEvent",
    "estimate_duration",
    "estimate_speech_seconds",
    "get_engine",
    "rank_voices",
    "score_voice",
    "transform",
]
