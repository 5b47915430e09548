"""Deterministic keyword scoring and confidence fusion.

Matching logic:
    - Every rule keyword found (case-insensitive substring) in the subject or
      body adds :data:`KEYWORD_WEIGHT`.
    - Every rule mention found the same way adds :data:`MENTION_WEIGHT`.
    - The sum is capped at 1.0.

Fusion:
    ``combined = keyword * 0.3 + llm * 0.7``. Both inputs are already within
    [0, 1], so the result is too. The threshold comparison is inclusive.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import List

from .models import FilterRule, Message

KEYWORD_WEIGHT = 0.3
MENTION_WEIGHT = 0.4

KEYWORD_FUSION_WEIGHT = 0.3
LLM_FUSION_WEIGHT = 0.7

NO_MATCH_REASON = "No keyword matches"


@dataclass(frozen=True)
class KeywordScore:
    """Keyword/mention score for one (message, rule) pair."""

    confidence: float
    reason: str
    matched_keywords: List[str] = field(default_factory=list)
    matched_mentions: List[str] = field(default_factory=list)


def _contains(message: Message, needle: str) -> bool:
    needle_lower = needle.lower()
    return needle_lower in message.subject.lower() or needle_lower in message.body.lower()


def score_keywords(message: Message, rule: FilterRule) -> KeywordScore:
    """Score a message against the rule's keywords and mentions.

    Blank entries are ignored.

    Args:
        message: Message to score.
        rule: Rule providing keywords and mentions.

    Returns:
        KeywordScore: Capped confidence and a human-readable reason.
    """
    matched_keywords = [k for k in rule.keywords if k.strip() and _contains(message, k)]
    matched_mentions = [m for m in rule.mentions if m.strip() and _contains(message, m)]

    confidence = KEYWORD_WEIGHT * len(matched_keywords) + MENTION_WEIGHT * len(
        matched_mentions
    )
    confidence = min(confidence, 1.0)

    parts = [f"keyword '{k}'" for k in matched_keywords]
    parts.extend(f"mention of '{m}'" for m in matched_mentions)
    reason = f"Found {', '.join(parts)}" if parts else NO_MATCH_REASON

    return KeywordScore(
        confidence=confidence,
        reason=reason,
        matched_keywords=matched_keywords,
        matched_mentions=matched_mentions,
    )


def combine_confidence(keyword_confidence: float, llm_confidence: float) -> float:
    """Fuse keyword and LLM confidence with fixed 30/70 weights."""
    return keyword_confidence * KEYWORD_FUSION_WEIGHT + llm_confidence * LLM_FUSION_WEIGHT


def meets_threshold(combined: float, rule: FilterRule) -> bool:
    """Return True when ``combined`` reaches the rule's threshold (inclusive)."""
    return combined >= rule.confidence_threshold
