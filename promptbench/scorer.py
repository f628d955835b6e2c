"""Response scorer — heuristic insights and confidence from raw completion text.

The confidence value is a heuristic based on length, list structure and a
handful of analytical keywords. It is not a calibrated probability.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field

MAX_INSIGHTS = 5
MIN_PARAGRAPH_CHARS = 50

BASE_CONFIDENCE = 0.5
MAX_CONFIDENCE = 0.95
LENGTH_BONUSES = ((500, 0.1), (1000, 0.1))
STRUCTURE_BONUS = 0.1
KEYWORD_BONUS = 0.05
ANALYTICAL_KEYWORDS = ("analysis", "insight", "pattern", "recommendation", "conclusion")

_BULLET = re.compile(r"^(?:[-*]|\d+\.)")
_MARKER = re.compile(r"^(?:[-*]\s*|\d+\.\s*)")
_BLANK_LINE = re.compile(r"\r?\n\s*\r?\n")


@dataclass
class ScoreResult:
    insights: list[str] = field(default_factory=list)
    confidence: float = BASE_CONFIDENCE


def extract_insights(response: str) -> list[str]:
    """Bullet/numbered lines with the marker stripped, up to five.

    Without any list lines, falls back to paragraphs longer than 50 characters.
    """
    text = response or ""
    insights = []
    for line in text.split("\n"):
        trimmed = line.strip()
        if trimmed and _BULLET.match(trimmed):
            insights.append(_MARKER.sub("", trimmed, count=1))

    if not insights:
        paragraphs = (p.strip() for p in _BLANK_LINE.split(text))
        return [p for p in paragraphs if len(p) > MIN_PARAGRAPH_CHARS][:MAX_INSIGHTS]

    return insights[:MAX_INSIGHTS]


def calculate_confidence(response: str) -> float:
    text = response or ""
    confidence = BASE_CONFIDENCE

    for threshold, bonus in LENGTH_BONUSES:
        if len(text) > threshold:
            confidence += bonus

    if "\n" in text or "-" in text or "1." in text:
        confidence += STRUCTURE_BONUS

    lowered = text.lower()
    confidence += KEYWORD_BONUS * sum(1 for kw in ANALYTICAL_KEYWORDS if kw in lowered)

    return round(min(max(confidence, 0.0), MAX_CONFIDENCE), 2)


def score_response(response: str) -> ScoreResult:
    """Score a completion. Pure and deterministic; empty text scores 0.5 with no insights."""
    return ScoreResult(
        insights=extract_insights(response),
        confidence=calculate_confidence(response),
    )
