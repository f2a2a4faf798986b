"""
Relevance scoring for related-topic candidates
----------------------------------------------
A candidate topic name is scored against the main topic it was found for.
The score doubles as the edge weight in the knowledge graph, so it must
always land inside a fixed range and must never raise.

Two scorers:
  • simple_relevance       — substring heuristic, range [1, 10]
  • RelationScorer.score   — substring + length + word count + position
                             + tie-breaking jitter, range [4, 10]

RelationScorer.score_unique() scores a whole response for one main topic
and guarantees that no two candidates share a score (2-decimal precision).
"""
from __future__ import annotations

import logging
from typing import Protocol

import numpy as np

log = logging.getLogger(__name__)

SCORE_MIN = 4.0
SCORE_MAX = 10.0
SIMPLE_MIN = 1.0
SIMPLE_MAX = 10.0

_BASE = 5.0
_SUBSTRING_BONUS = 3.0
_LENGTH_DIVISOR = 15.0
_LENGTH_CAP = 3.0
_WORD_BONUS = 0.5
_WORD_CAP = 2.0
_POSITION_SPAN = 20.0
_JITTER = 0.5
_STEP = 0.01


class RandomSource(Protocol):
    def random(self) -> float: ...


def simple_relevance(candidate: str, main_topic: str) -> float:
    """8 when the candidate mentions the main topic, else 5 (clamped to [1, 10])."""
    try:
        similarity = 8.0 if main_topic.lower() in candidate.lower() else 5.0
        return min(SIMPLE_MAX, max(SIMPLE_MIN, similarity))
    except Exception as exc:
        log.error("simple_relevance failed for %r / %r: %s", candidate, main_topic, exc)
        return 5.0


class RelationScorer:
    """
    Positional relevance scorer with jitter for tie-breaking.

    Parameters
    ----------
    rng : anything with a ``random() -> float`` method in [0, 1).
          Defaults to ``np.random.default_rng()``; pass a seeded generator
          (or a stub) for reproducible scores.
    """

    __slots__ = ("_rng",)

    def __init__(self, rng: RandomSource | None = None) -> None:
        self._rng = rng if rng is not None else np.random.default_rng()

    def score(self, candidate: str, main_topic: str, position: int) -> float:
        """Score one candidate.  Falls back to ``5 + position * 0.01`` on error."""
        try:
            score = _BASE
            if main_topic.lower() in candidate.lower():
                score += _SUBSTRING_BONUS
            # longer names are presumed more specific
            score += min(len(candidate) / _LENGTH_DIVISOR, _LENGTH_CAP)
            score += min(len(candidate.split()) * _WORD_BONUS, _WORD_CAP)
            # the service lists the closest topics first
            score += 1.0 - position / _POSITION_SPAN
            score += float(self._rng.random()) * _JITTER
            return float(np.clip(score, SCORE_MIN, SCORE_MAX))
        except Exception as exc:
            log.error("score failed for %r / %r at %d: %s", candidate, main_topic, position, exc)
            return _BASE + position * _STEP

    def score_unique(
        self,
        candidates: list[str],
        main_topic: str,
        max_attempts: int = 5,
    ) -> list[float]:
        """
        Score every candidate so that no two rounded scores are equal.

        Each candidate is re-scored up to *max_attempts* times while its
        score collides with an earlier one; after that it is perturbed by
        ``position * 0.01`` and nudged down in 0.01 steps (wrapping inside
        [4, 10]) until free.
        """
        taken: set[float] = set()
        scores: list[float] = []
        for position, name in enumerate(candidates):
            value = round(self.score(name, main_topic, position), 2)
            attempt = 1
            while value in taken and attempt < max_attempts:
                value = round(self.score(name, main_topic, position), 2)
                attempt += 1
            if value in taken:
                value = _perturb(value, position, taken)
            log.debug("scored %r for %r -> %.2f", name, main_topic, value)
            taken.add(value)
            scores.append(value)
        return scores


def _perturb(value: float, position: int, taken: set[float]) -> float:
    value = round(min(SCORE_MAX, max(SCORE_MIN, value + position * _STEP)), 2)
    slots = int(round((SCORE_MAX - SCORE_MIN) / _STEP)) + 1
    for _ in range(slots):
        if value not in taken:
            return value
        value = round(value - _STEP, 2)
        if value < SCORE_MIN:
            value = SCORE_MAX
    return value
