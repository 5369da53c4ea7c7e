"""
Speech Rule Tables.

The transform pipeline is driven entirely by the ordered tables in this
module. Order is part of the data:

    - DICTIONARY: applied first, whole-word and case-sensitive
    - PRONUNCIATION_RULES: applied in list order, each sees the output of
      the previous one
    - EMOTION_RULES: scanned in list order, first match wins

Reordering any table changes the pipeline's output, so the tables are
versioned. RULES_VERSION must be bumped whenever an entry is added,
removed, edited or moved.

Example:
    >>> from reader_speech.speech.rules import DEFAULT_RULES
    >>> DEFAULT_RULES.dictionary[0].word
    'SQL'
"""
from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Pattern, Tuple

# Bump on any change to the tables below
RULES_VERSION = "v1"


@dataclass(frozen=True)
class DictionaryEntry:
    """Exact whole-word token and its spoken replacement."""
    word: str
    replacement: str

    @property
    def pattern(self) -> Pattern[str]:
        return re.compile(r"\b" + re.escape(self.word) + r"\b")


@dataclass(frozen=True)
class PronunciationRule:
    """
    Regex rewrite applied to the whole text.

    Attributes:
        pattern: Compiled matcher.
        replacement: re.sub replacement (may use group references).
    """
    pattern: Pattern[str]
    replacement: str

    def apply(self, text: str) -> str:
        return self.pattern.sub(self.replacement, text)


@dataclass(frozen=True)
class EmotionRule:
    """
    Emotion matcher with the multipliers applied to the base voice.

    Attributes:
        name: Emotion label ("excited", "sad", ...).
        pattern: Compiled matcher, searched in the raw text.
        pitch_factor: Pitch multiplier.
        rate_factor: Rate multiplier.
        volume_factor: Volume multiplier.
    """
    name: str
    pattern: Pattern[str]
    pitch_factor: float
    rate_factor: float
    volume_factor: float


def _rule(pattern: str, replacement: str) -> PronunciationRule:
    return PronunciationRule(re.compile(pattern), replacement)


# ─────────────────────────────────────────────────────────────────────────────
# Dictionary: technical terms spelled out the way they are said
# ─────────────────────────────────────────────────────────────────────────────
DICTIONARY: Tuple[DictionaryEntry, ...] = (
    DictionaryEntry("SQL", "S.Q.L."),
    DictionaryEntry("MySQL", "My S.Q.L."),
    DictionaryEntry("nginx", "engine x"),
    DictionaryEntry("JSON", "Jason"),
    DictionaryEntry("API", "A.P.I."),
    DictionaryEntry("GUI", "G.U.I."),
    DictionaryEntry("CLI", "C.L.I."),
    DictionaryEntry("AWS", "A.W.S."),
    DictionaryEntry("DNS", "D.N.S."),
    DictionaryEntry("URL", "U.R.L."),
    DictionaryEntry("YAML", "Yam·el"),
    DictionaryEntry("JWT", "J.W.T."),
    DictionaryEntry("GraphQL", "Graph·Q.L."),
    DictionaryEntry("OAuth", "O·Auth"),
)


# ─────────────────────────────────────────────────────────────────────────────
# Pronunciation rules: titles, hard words, then pauses
# ─────────────────────────────────────────────────────────────────────────────
PRONUNCIATION_RULES: Tuple[PronunciationRule, ...] = (
    # Titles
    _rule(r"Mr\.", "Mister"),
    _rule(r"Mrs\.", "Misses"),
    _rule(r"Dr\.", "Doctor"),
    _rule(r"Prof\.", "Professor"),
    # Commonly mispronounced words (plain substrings, case-sensitive)
    _rule("genre", "zhawn·ruh"),
    _rule("epitome", "eh·pit·oh·mee"),
    _rule("paradigm", "pair·uh·dime"),
    _rule("albeit", "all·be·it"),
    _rule("cache", "cash"),
    _rule("facade", "fuh·saad"),
    _rule("segue", "seg·way"),
    _rule("subtle", "sut·tl"),
    _rule("queue", "kyoo"),
    _rule("regex", "redge·ex"),
    _rule("kubectl", "kube·control"),
    _rule("webpack", "web·pack"),
    # Pauses: sentence ends, then parentheticals
    _rule(r"([.!?]) ", r"\1... "),
    _rule(r"\(([^)]+)\)", r"... \1 ..."),
)


# ─────────────────────────────────────────────────────────────────────────────
# Emotion rules: first match wins
# ─────────────────────────────────────────────────────────────────────────────
EMOTION_RULES: Tuple[EmotionRule, ...] = (
    EmotionRule("excited", re.compile(r"[!]{2,}|[?!]+|AMAZING|WONDERFUL|EXCITED", re.IGNORECASE), 1.3, 1.2, 1.0),
    EmotionRule("sad", re.compile(r"\b(?:sad|crying|tears|weeping|sorrow)\b", re.IGNORECASE), 0.8, 0.9, 0.8),
    EmotionRule("angry", re.compile(r"\b(?:angry|furious|rage|mad)\b|[!]{3,}", re.IGNORECASE), 1.2, 1.3, 1.2),
    EmotionRule("whisper", re.compile(r"\b(?:whispered|quietly|softly)\b", re.IGNORECASE), 1.0, 0.8, 0.6),
)


@dataclass(frozen=True)
class RuleSet:
    """
    One consistent set of tables for the pipeline.

    Tests and callers with their own vocabulary build a RuleSet instead of
    patching the module tables.
    """
    dictionary: Tuple[DictionaryEntry, ...] = DICTIONARY
    pronunciation: Tuple[PronunciationRule, ...] = PRONUNCIATION_RULES
    emotions: Tuple[EmotionRule, ...] = EMOTION_RULES
    version: str = field(default=RULES_VERSION)


DEFAULT_RULES = RuleSet()
