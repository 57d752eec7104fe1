"""Scoring strategies for spoken attempts.

``evaluate`` never raises: it runs after transcription already succeeded, so
every input (including an empty transcript) maps to a score and feedback.
"""

from __future__ import annotations

import json
import math
import re
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Sequence

PHRASE_REACTION = "phrase-reaction"
STRUCTURAL = "structural"
FUZZY_SIMILARITY = "fuzzy-similarity"

_CATEGORY_ALIASES = {
    "onpitch": PHRASE_REACTION,
    "on-pitch": PHRASE_REACTION,
    "phrase-reaction": PHRASE_REACTION,
    "phrase_reaction": PHRASE_REACTION,
    "interview": STRUCTURAL,
    "structural": STRUCTURAL,
}

_PUNCTUATION = re.compile(r"[^\w\s]|_")
_WHITESPACE = re.compile(r"\s+")
_SENTENCE_END = re.compile(r"[.!?]+")
MIN_SENTENCE_CHARS = 4


@dataclass(slots=True)
class EvaluationInput:
    category: str
    target_text: str
    transcript: str
    expected_phrases: List[str] = field(default_factory=list)
    variations: List[str] = field(default_factory=list)
    latency_ms: int = 0
    max_latency_ms: int = 1500
    keyword: str = ""
    duration_sec: float = 0.0


@dataclass(slots=True)
class ScoreResult:
    score: int
    feedback: str
    matched_text: Optional[str] = None
    sentence_count: Optional[int] = None
    structure_score: Optional[int] = None


def normalize(text: str) -> str:
    """Lowercase, drop punctuation/underscores and collapse whitespace."""
    lowered = (text or "").lower()
    stripped = _PUNCTUATION.sub("", lowered)
    return _WHITESPACE.sub(" ", stripped).strip()


def levenshtein(a: str, b: str) -> int:
    if a == b:
        return 0
    if not a:
        return len(b)
    if not b:
        return len(a)
    previous = list(range(len(b) + 1))
    for i, char_a in enumerate(a, start=1):
        current = [i]
        for j, char_b in enumerate(b, start=1):
            cost = 0 if char_a == char_b else 1
            current.append(
                min(
                    previous[j - 1] + cost,
                    current[j - 1] + 1,
                    previous[j] + 1,
                )
            )
        previous = current
    return previous[-1]


def similarity(target: str, actual: str) -> float:
    longest = max(len(target), len(actual))
    if longest == 0:
        return 0.0
    return max(0.0, 100.0 * (1 - levenshtein(target, actual) / longest))


def resolve_category(category: str | None) -> str:
    key = (category or "").strip().lower()
    return _CATEGORY_ALIASES.get(key, FUZZY_SIMILARITY)


def evaluate(data: EvaluationInput) -> ScoreResult:
    if not normalize(data.transcript):
        return ScoreResult(score=0, feedback="No speech detected.")
    strategy = _STRATEGIES[resolve_category(data.category)]
    return strategy(data)


def score_phrase_reaction(data: EvaluationInput) -> ScoreResult:
    candidates = [phrase for phrase in data.expected_phrases if normalize(phrase)]
    if not candidates and normalize(data.target_text):
        candidates = [data.target_text]
    if not candidates:
        return ScoreResult(score=0, feedback="No targets defined.")

    heard = normalize(data.transcript)
    matched = next((phrase for phrase in candidates if normalize(phrase) in heard), None)
    if matched is None:
        expected = ", ".join(f'"{phrase.strip()}"' for phrase in candidates)
        return ScoreResult(score=30, feedback=f"Not quite. Expected one of: {expected}")
    if data.latency_ms <= data.max_latency_ms:
        return ScoreResult(
            score=100,
            feedback=f"Great reaction! Answered in {data.latency_ms} ms.",
            matched_text=matched,
        )
    return ScoreResult(
        score=70,
        feedback=(
            f"Right phrase, but too slow: {data.latency_ms} ms "
            f"(max allowed {data.max_latency_ms} ms)."
        ),
        matched_text=matched,
    )


def split_sentences(text: str) -> List[str]:
    fragments = (chunk.strip() for chunk in _SENTENCE_END.split(text or ""))
    return [chunk for chunk in fragments if len(chunk) >= MIN_SENTENCE_CHARS]


def score_structural(data: EvaluationInput) -> ScoreResult:
    count = len(split_sentences(data.transcript))
    bonus = 10 if data.duration_sec > 10 else 0
    structure_score = min(100, 30 * count + bonus)
    if count >= 2:
        score, feedback = 80, f"Good structure! You used {count} sentences."
    else:
        score, feedback = 40, "Expand your answer with more than one sentence."
    return ScoreResult(
        score=score,
        feedback=feedback,
        sentence_count=count,
        structure_score=structure_score,
    )


def score_fuzzy(data: EvaluationInput) -> ScoreResult:
    heard = normalize(data.transcript)
    candidates = [text for text in [data.target_text, *data.variations] if normalize(text)]
    if not candidates:
        return ScoreResult(score=0, feedback="No targets defined.")

    best = 0.0
    best_match: Optional[str] = None
    for candidate in candidates:
        value = similarity(normalize(candidate), heard)
        if value > best:
            best = value
            best_match = candidate

    score = _round_half_up(best)
    keyword_note = ""
    if data.keyword and normalize(data.keyword):
        if normalize(data.keyword) not in heard:
            keyword_note = f' (Keyword missing: "{data.keyword}")'
            if score > 80:
                score -= 10
        elif score < 90:
            score += 5
    score = min(100, max(0, score))

    if score < 50:
        feedback = "Try again!"
    elif score < 80:
        feedback = "Good, but can be better!"
    else:
        feedback = "Excellent!"
    return ScoreResult(score=score, feedback=feedback + keyword_note, matched_text=best_match)


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


_STRATEGIES: Dict[str, Callable[[EvaluationInput], ScoreResult]] = {
    PHRASE_REACTION: score_phrase_reaction,
    STRUCTURAL: score_structural,
    FUZZY_SIMILARITY: score_fuzzy,
}


def parse_phrases(raw: str | Sequence[str] | None) -> List[str]:
    """Accept a JSON-ish list, or a string separated by newlines, ``|`` or commas."""
    if raw is None:
        return []
    if not isinstance(raw, str):
        return [str(item).strip() for item in raw if str(item).strip()]
    text = raw.strip()
    if not text:
        return []
    if text.startswith("["):
        try:
            data = json.loads(text)
        except json.JSONDecodeError:
            data = None
        if isinstance(data, list):
            return [str(item).strip() for item in data if str(item).strip()]
    for separator in ("\n", "|", ","):
        if separator in text:
            return [part.strip() for part in text.split(separator) if part.strip()]
    return [text]


__all__ = [
    "EvaluationInput",
    "FUZZY_SIMILARITY",
    "PHRASE_REACTION",
    "STRUCTURAL",
    "ScoreResult",
    "evaluate",
    "levenshtein",
    "normalize",
    "parse_phrases",
    "resolve_category",
    "similarity",
    "split_sentences",
]
