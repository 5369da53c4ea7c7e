"""
Voice Quality Ranking.

Engines expose many voices of very uneven quality. rank_voices() keeps the
ones worth offering and orders them best first using name and language
heuristics:

    local voice                         +2
    "premium" / "enhanced" in name      +3 each
    "neural" in name                    +4
    English (lang starts with "en-")    +2
    en-US or en-GB                      +1 more
    "clear" / "studio" / "professional" +2 each

Voices scoring below the minimum (2) are dropped. Ties keep engine order.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, List

MIN_VOICE_SCORE = 2

_NAME_BONUSES = (
    ("premium", 3),
    ("enhanced", 3),
    ("neural", 4),
    ("clear", 2),
    ("studio", 2),
    ("professional", 2),
)


@dataclass(frozen=True)
class VoiceInfo:
    """
    A voice offered by a speech engine.

    Attributes:
        id: Engine-specific identifier passed back in VoiceParams.voice.
        name: Display name.
        lang: BCP 47 language tag ("en-US"), may be empty.
        local: Synthesized on this machine rather than by a remote service.
    """
    id: str
    name: str
    lang: str = ""
    local: bool = True


def score_voice(voice: VoiceInfo) -> int:
    score = 0
    if voice.local:
        score += 2

    name = voice.name.lower()
    for marker, bonus in _NAME_BONUSES:
        if marker in name:
            score += bonus

    if voice.lang.startswith("en-"):
        score += 2
        if voice.lang in ("en-US", "en-GB"):
            score += 1
    return score


def rank_voices(voices: Iterable[VoiceInfo], min_score: int = MIN_VOICE_SCORE) -> List[VoiceInfo]:
    """
    Voices scoring at least ``min_score``, best first.

    Example:
        >>> rank_voices([VoiceInfo("a", "Basic", "fr-FR", local=False),
        ...              VoiceInfo("b", "Samantha (Enhanced)", "en-US")])
        [VoiceInfo(id='b', name='Samantha (Enhanced)', lang='en-US', local=True)]
    """
    scored = [(score_voice(v), v) for v in voices]
    kept = [(s, v) for s, v in scored if s >= min_score]
    kept.sort(key=lambda sv: sv[0], reverse=True)
    return [v for _, v in kept]
