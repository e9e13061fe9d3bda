"""L2 heuristic scoring.

Criteria are free-form labels authored with the agent (``"professional
tone"``, ``"empathy"``, ``"conciseness"``...). A criterion is matched to a
scorer when its lowercased name contains one of the scorer's keywords; the
first registered match wins and anything unmatched scores ``0.7``.
"""

from __future__ import annotations

import logging
import re
from typing import Callable, List, Optional, Sequence, Tuple

from relayworks_ai.core.errors import EvalError

from ..schemas.domain import L2Result

logger = logging.getLogger(__name__)

UNKNOWN_CRITERION_SCORE = 0.7

Scorer = Callable[[str], float]


def clamp(score: float) -> float:
    return max(0.0, min(1.0, score))


def score_professional(content: str) -> float:
    score = 0.7
    if re.search(r"\b(thank|appreciate|pleased|happy to)\b", content, re.IGNORECASE):
        score += 0.1
    if re.search(r"best regards|sincerely|regards", content, re.IGNORECASE):
        score += 0.1
    if re.search(r"!!+", content):
        score -= 0.1
    if re.search(r"\b(lol|omg|btw)\b", content, re.IGNORECASE):
        score -= 0.2
    return score


def score_empathy(content: str) -> float:
    score = 0.5
    if re.search(r"understand|sorry|apologize|appreciate", content, re.IGNORECASE):
        score += 0.2
    if re.search(r"frustrating|difficult|challenging", content, re.IGNORECASE):
        score += 0.1
    if re.search(r"help|assist|support", content, re.IGNORECASE):
        score += 0.1
    return score


def score_conciseness(content: str) -> float:
    words = len(content.split())
    if words < 50:
        return 0.6
    if words <= 200:
        return 1.0
    if words <= 300:
        return 0.8
    if words <= 500:
        return 0.6
    return 0.4


def score_clarity(content: str) -> float:
    score = 0.7
    if "\n\n" in content:
        score += 0.1
    if re.search(r"^\d+\.|^-|^\*", content, re.MULTILINE):
        score += 0.1
    words = content.split()
    # long average word length reads as jargon
    if words and len(content) / len(words) > 7:
        score -= 0.1
    return score


class CriteriaRegistry:
    """Ordered keyword -> scorer table for L2 criteria."""

    def __init__(self) -> None:
        self._scorers: List[Tuple[Tuple[str, ...], Scorer]] = []

    def register(self, keywords: Sequence[str], scorer: Scorer) -> None:
        self._scorers.append((tuple(k.lower() for k in keywords), scorer))

    def resolve(self, criterion: str) -> Optional[Scorer]:
        name = criterion.lower()
        for keywords, scorer in self._scorers:
            if any(k in name for k in keywords):
                return scorer
        return None

    def score(self, criterion: str, content: str) -> float:
        scorer = self.resolve(criterion)
        if scorer is None:
            logger.debug(f"No L2 scorer for criterion '{criterion}', using {UNKNOWN_CRITERION_SCORE}")
            return UNKNOWN_CRITERION_SCORE
        try:
            return clamp(scorer(content))
        except Exception as exc:
            raise EvalError(
                f"L2 scorer for '{criterion}' raised: {exc}",
                code="eval_scorer_failed",
                context={"criterion": criterion},
            ) from exc


def default_criteria_registry() -> CriteriaRegistry:
    registry = CriteriaRegistry()
    registry.register(("professional",), score_professional)
    registry.register(("empathetic", "empathy"), score_empathy)
    registry.register(("concise",), score_conciseness)
    registry.register(("clear", "clarity"), score_clarity)
    return registry


def run_l2(content: str, criteria: Sequence[str], registry: Optional[CriteriaRegistry] = None) -> L2Result:
    """Score ``content`` on every criterion; the overall score is the mean."""
    if not criteria:
        return L2Result(score=1.0, breakdown={})
    reg = registry or default_criteria_registry()
    scores = [reg.score(c, content) for c in criteria]
    breakdown = dict(zip(criteria, scores))
    overall = sum(scores) / len(scores)
    return L2Result(score=clamp(overall), breakdown=breakdown)
