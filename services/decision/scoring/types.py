"""Per-(member, option) score records produced by OptionScorer."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True)
class ScoreBreakdown:
    """Sub-scores, each in [0.0, 1.0]."""
    budget_score: float
    location_score: float
    preference_score: float
    dietary_score: float
    must_have_score: float = 1.0
    """Diagnostic only: not part of the weighted score."""

    def to_dict(self) -> dict[str, float]:
        return {
            "budgetScore": round(self.budget_score, 4),
            "locationScore": round(self.location_score, 4),
            "preferenceScore": round(self.preference_score, 4),
            "dietaryScore": round(self.dietary_score, 4),
            "mustHaveScore": round(self.must_have_score, 4),
        }


VETOED_BREAKDOWN = ScoreBreakdown(
    budget_score=0.0,
    location_score=0.0,
    preference_score=0.0,
    dietary_score=0.0,
    must_have_score=0.0,
)


@dataclass(frozen=True)
class UserScore:
    """How well one option serves one member. Recomputed every run."""
    user_id: str
    option_id: str
    score: float
    breakdown: ScoreBreakdown
    influence_multiplier: float = 1.0
    vetoed: bool = False
    veto_reason: str | None = None
    """'deal_breaker:<token>' or 'dietary:<requirement>' when vetoed."""

    def to_dict(self) -> dict[str, Any]:
        return {
            "userId": self.user_id,
            "optionId": self.option_id,
            "score": round(self.score, 4),
            "breakdown": self.breakdown.to_dict(),
            "influenceMultiplier": round(self.influence_multiplier, 4),
            "vetoed": self.vetoed,
            "vetoReason": self.veto_reason,
        }
