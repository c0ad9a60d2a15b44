"""
Aggregation + selection — from per-member scores to one ranked winner.

Aggregation:
  total[option] = sum(score[u] * multiplier[u]) / sum(multiplier[u])

  A multiplier-weighted mean, so totals stay in [0, 1] whatever the
  multiplier magnitudes. A zero multiplier sum falls back to the plain mean.

Exclusion:
  An option vetoed by any member is excluded from winner consideration for
  the whole group. It stays in the rankings (excluded=True, vetoed_by=...)
  for diagnostics.

Selection:
  winner = max total among non-excluded options; ties -> higher rating
  (rated beats unrated), then lexical option id. Never random.
  alternatives = remaining non-excluded options, descending, each with a
  "why" bucketed on the percentage-point gap to the winner.
  Every option excluded -> NoViableOption.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Iterable

import numpy as np

from services.decision.config import Settings, settings as default_settings
from services.decision.constraints.types import Option
from services.decision.errors import NoViableOption
from services.decision.explanation.generator import ExplanationGenerator, gap_points
from services.decision.scoring.option_scorer import ScoreMatrix
from services.decision.scoring.types import UserScore

logger = logging.getLogger(__name__)

# Totals closer than this are treated as tied.
_TIE_DIGITS = 9


# ---------------------------------------------------------------------------
# Result types
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class OptionRanking:
    """Group-level standing of one option."""
    option: Option
    total_score: float
    user_scores: tuple[UserScore, ...]
    vetoed_by: tuple[str, ...] = ()

    @property
    def excluded(self) -> bool:
        return bool(self.vetoed_by)

    def score_for(self, user_id: str) -> UserScore | None:
        for us in self.user_scores:
            if us.user_id == user_id:
                return us
        return None

    def to_dict(self) -> dict[str, Any]:
        return {
            "optionId": self.option.id,
            "totalScore": round(self.total_score, 4),
            "excluded": self.excluded,
            "vetoedBy": list(self.vetoed_by),
            "perUserScores": [us.to_dict() for us in self.user_scores],
        }


@dataclass(frozen=True)
class Alternative:
    """A runner-up option and why it lost."""
    option: Option
    score: float
    why: str
    gap_points: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "option": self.option.to_dict(),
            "score": round(self.score, 4),
            "why": self.why,
        }


@dataclass(frozen=True)
class Selection:
    winner: OptionRanking
    alternatives: tuple[Alternative, ...]


def selection_key(ranking: OptionRanking) -> tuple[float, float, str]:
    """Sort key: best first. Rated options beat unrated ones on a tie."""
    rating = ranking.option.rating
    return (
        -round(ranking.total_score, _TIE_DIGITS),
        -(rating if rating is not None else -1.0),
        ranking.option.id,
    )


# ---------------------------------------------------------------------------
# Aggregation
# ---------------------------------------------------------------------------

class AggregationEngine:
    """
    Combines per-member scores into one ranked list of options.

    Usage:
        rankings = AggregationEngine().rank(matrix, options)
        rankings[0]  # best option, excluded ones included for diagnostics
    """

    @staticmethod
    def aggregate(user_scores: Iterable[UserScore]) -> float:
        """Multiplier-weighted mean of member scores, in [0, 1]."""
        user_scores = list(user_scores)
        if not user_scores:
            return 0.0
        scores = np.array([us.score for us in user_scores], dtype=np.float64)
        weights = np.array([us.influence_multiplier for us in user_scores], dtype=np.float64)
        weight_total = float(np.sum(weights))
        if weight_total <= 0.0:
            # Degenerate: every multiplier is zero -> unweighted mean.
            return float(np.mean(scores))
        total = float(np.dot(scores, weights)) / weight_total
        return max(0.0, min(1.0, total))

    def rank(self, matrix: ScoreMatrix, options: Iterable[Option]) -> list[OptionRanking]:
        """Every option, best first. Excluded options sort after viable ones."""
        rankings: list[OptionRanking] = []
        for option in options:
            user_scores = tuple(matrix.get(option.id, ()))
            vetoed_by = tuple(us.user_id for us in user_scores if us.vetoed)
            rankings.append(
                OptionRanking(
                    option=option,
                    total_score=self.aggregate(user_scores),
                    user_scores=user_scores,
                    vetoed_by=vetoed_by,
                )
            )
        rankings.sort(key=lambda r: (r.excluded, selection_key(r)))
        return rankings


# ---------------------------------------------------------------------------
# Selection
# ---------------------------------------------------------------------------

class Selector:
    """Picks the winner and annotated alternatives from ranked options."""

    def __init__(
        self,
        config: Settings | None = None,
        explainer: ExplanationGenerator | None = None,
    ) -> None:
        self._settings = config or default_settings
        self._explainer = explainer or ExplanationGenerator(self._settings)

    def select(self, rankings: list[OptionRanking]) -> Selection:
        viable = sorted((r for r in rankings if not r.excluded), key=selection_key)
        if not viable:
            logger.info("No viable option: all %d options vetoed", len(rankings))
            raise NoViableOption(rankings)

        winner = viable[0]
        runners_up = viable[1:]
        limit = self._settings.max_alternatives
        if limit is not None:
            runners_up = runners_up[:limit]

        alternatives = tuple(
            Alternative(
                option=r.option,
                score=r.total_score,
                why=self._explainer.explain_alternative(r.total_score, winner.total_score),
                gap_points=gap_points(winner.total_score, r.total_score),
            )
            for r in runners_up
        )
        logger.info(
            "Selected option=%s total=%.3f viable=%d excluded=%d",
            winner.option.id,
            winner.total_score,
            len(viable),
            len(rankings) - len(viable),
        )
        return Selection(winner=winner, alternatives=alternatives)
