"""
OptionScorer — scores one option for one member.

Veto check (short-circuits to score=0, vetoed=True):
  - any deal-breaker token is one of the option's tags, or
  - a dietary requirement is not among the option's tags, or the tags name
    an ingredient that violates the requirement (e.g. vegan + cheese)

Sub-scores, each in [0.0, 1.0]:
  budgetScore      1.0 inside [min, max]. Above max: linear decay reaching 0
                   once the price is 50% of the budget span past max. Below
                   min: tolerated down to min * (1 - 0.5), then linear decay
                   to 0 at price 0. No price -> neutral 0.7.
  locationScore    1.0 inside maxDistance, linear decay reaching 0 at
                   maxDistance * 1.5. No member constraint -> 1.0 when the
                   option has location info. Precomputed option distance
                   wins; great-circle distance needs coordinates on both
                   sides; anything unmeasurable -> 0.7.
  preferenceScore  matched / declared preferences, floored at 0.2; zero
                   matches -> 0.2; no preferences declared -> 0.5.
  dietaryScore     1.0 (anything else is a veto).

score = weighted mean with weights {budget 0.35, location 0.25,
preference 0.30, dietary 0.10}.

Determinism guarantee:
  Pure function of (constraint, option, multiplier). No hidden state, no
  randomness.
"""

from __future__ import annotations

import logging
import math
from typing import Iterable, Mapping

from services.decision.config import Settings, settings as default_settings
from services.decision.constraints.types import BudgetRange, Constraint, Option
from services.decision.scoring.geo import haversine_km
from services.decision.scoring.types import VETOED_BREAKDOWN, ScoreBreakdown, UserScore

logger = logging.getLogger(__name__)

# Ingredient tags that break a dietary requirement even when the option
# advertises the requirement itself.
DIETARY_VIOLATIONS: dict[str, frozenset[str]] = {
    "vegetarian": frozenset({"meat", "chicken", "beef", "pork", "fish"}),
    "vegan": frozenset({"meat", "dairy", "eggs", "cheese", "milk"}),
    "gluten-free": frozenset({"bread", "pasta", "wheat"}),
    "dairy-free": frozenset({"cheese", "milk", "cream", "butter"}),
    "nut-free": frozenset({"nuts", "peanuts", "almonds"}),
    "halal": frozenset({"pork", "alcohol"}),
    "kosher": frozenset({"pork", "shellfish"}),
}

# Matrix of scores: option_id -> one UserScore per member, in constraint order.
ScoreMatrix = dict[str, list[UserScore]]


def _clamp(value: float) -> float:
    return max(0.0, min(1.0, value))


class OptionScorer:
    """
    Scores (member, option) pairs.

    Usage:
        scorer = OptionScorer()
        us = scorer.score(constraint, option, influence_multiplier=1.5)
        if us.vetoed:
            ...
    """

    def __init__(self, config: Settings | None = None) -> None:
        self._settings = config or default_settings
        s = self._settings
        self._weights = (s.weight_budget, s.weight_location, s.weight_preference, s.weight_dietary)
        self._weight_total = sum(self._weights)

    # ------------------------------------------------------------------
    # Veto
    # ------------------------------------------------------------------

    def veto_reason(self, constraint: Constraint, option: Option) -> str | None:
        """Return why this member cannot accept the option, or None."""
        for token in sorted(constraint.deal_breakers):
            if token in option.tags:
                return f"deal_breaker:{token}"
        for requirement in sorted(constraint.dietary_requirements):
            if requirement not in option.tags:
                return f"dietary:{requirement}"
            if DIETARY_VIOLATIONS.get(requirement, frozenset()) & option.tags:
                return f"dietary:{requirement}"
        return None

    # ------------------------------------------------------------------
    # Sub-scores
    # ------------------------------------------------------------------

    def budget_score(self, price: float | None, budget: BudgetRange) -> float:
        if price is None:
            return self._settings.neutral_score
        if budget.contains(price):
            return 1.0

        fraction = self._settings.budget_decay_span_fraction
        if price > budget.max:
            deviation = price - budget.max
            span = budget.span
            tolerance = fraction * span if span > 0 else fraction * budget.max
            if tolerance <= 0:
                return 0.0
            return _clamp(1.0 - deviation / tolerance)

        # Below the floor: cheaper than expected is tolerated down to
        # min * (1 - fraction), then decays linearly to 0 at a price of 0.
        grace_floor = budget.min * (1.0 - min(fraction, 1.0))
        if price >= grace_floor:
            return 1.0
        return _clamp(price / grace_floor)

    def location_score(self, constraint: Constraint, option: Option) -> float:
        neutral = self._settings.neutral_score
        wanted = constraint.location
        if wanted is None:
            return 1.0 if option.has_location_info else neutral

        if option.distance_km is not None:
            distance = option.distance_km
        elif option.location is not None and wanted.origin is not None:
            distance = haversine_km(wanted.origin, option.location)
        else:
            return neutral

        limit = wanted.max_distance_km
        if distance <= limit:
            return 1.0
        tolerance = limit * self._settings.location_decay_fraction
        if tolerance <= 0:
            return 0.0
        return _clamp(1.0 - (distance - limit) / tolerance)

    def preference_score(self, preferences: frozenset[str], tags: frozenset[str]) -> float:
        if not preferences:
            return self._settings.no_preferences_score
        floor = self._settings.no_preference_match_score
        matches = len(preferences & tags)
        if matches == 0:
            return floor
        return _clamp(max(floor, matches / len(preferences)))

    @staticmethod
    def must_have_score(must_haves: frozenset[str], option: Option) -> float:
        if not must_haves:
            return 1.0
        name = option.name.lower()
        matched = sum(1 for mh in must_haves if mh in option.tags or mh in name)
        return matched / len(must_haves)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def score(
        self,
        constraint: Constraint,
        option: Option,
        influence_multiplier: float = 1.0,
    ) -> UserScore:
        """Score one option for one member."""
        reason = self.veto_reason(constraint, option)
        if reason is not None:
            logger.debug(
                "Veto: user=%s option=%s reason=%s",
                constraint.user_id,
                option.id,
                reason,
            )
            return UserScore(
                user_id=constraint.user_id,
                option_id=option.id,
                score=0.0,
                breakdown=VETOED_BREAKDOWN,
                influence_multiplier=influence_multiplier,
                vetoed=True,
                veto_reason=reason,
            )

        breakdown = ScoreBreakdown(
            budget_score=self.budget_score(option.price, constraint.budget),
            location_score=self.location_score(constraint, option),
            preference_score=self.preference_score(constraint.preferences, option.tags),
            dietary_score=1.0,
            must_have_score=self.must_have_score(constraint.must_haves, option),
        )
        parts = (
            breakdown.budget_score,
            breakdown.location_score,
            breakdown.preference_score,
            breakdown.dietary_score,
        )
        weighted = math.fsum(w * p for w, p in zip(self._weights, parts))
        total = _clamp(weighted / self._weight_total)

        logger.debug(
            "Score: user=%s option=%s score=%.4f budget=%.2f location=%.2f pref=%.2f",
            constraint.user_id,
            option.id,
            total,
            breakdown.budget_score,
            breakdown.location_score,
            breakdown.preference_score,
        )
        return UserScore(
            user_id=constraint.user_id,
            option_id=option.id,
            score=total,
            breakdown=breakdown,
            influence_multiplier=influence_multiplier,
        )

    def score_matrix(
        self,
        constraints: Iterable[Constraint],
        options: Iterable[Option],
        multipliers: Mapping[str, float] | None = None,
    ) -> ScoreMatrix:
        """Score every (member, option) pair. Members missing from multipliers get 1.0."""
        constraints = list(constraints)
        multipliers = multipliers or {}
        return {
            option.id: [
                self.score(c, option, multipliers.get(c.user_id, 1.0))
                for c in constraints
            ]
            for option in options
        }
