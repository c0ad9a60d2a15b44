"""
Explanation Generator — plain-language reasoning for a finished decision.

Pure formatting over a finalized winner and fairness snapshot. Every
function tolerates missing optional fields (no breakdown, no rating, no
multiplier, plain dicts from storage) and degrades by omitting the sentence
it cannot support; none of them raise on partial input.

Decision reasoning, in order (each sentence independently true):
  1. overall satisfaction percentage
  2. members within budget          budgetScore > 0.8
  3. members with convenient location locationScore > 0.7   (only if > 0)
  4. members whose preferences matched preferenceScore > 0.5 (only if > 0)
  5. members whose influence was boosted multiplier > 1.1    (only if > 0)
  6. rating callout                 rating >= 4.0

Alternative gap buckets (percentage points behind the winner):
  < 5   very close second choice
  < 15  solid alternative
  else  lower satisfaction
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Iterable

from services.decision.config import Settings, settings as default_settings

if TYPE_CHECKING:
    from services.decision.engine import DecisionResult


def _get(obj: Any, attr: str, key: str | None = None, default: Any = None) -> Any:
    """Read attr from a dataclass or key (camelCase) from a mapping."""
    if obj is None:
        return default
    if isinstance(obj, dict):
        return obj.get(key or attr, default)
    return getattr(obj, attr, default)


def _percent(fraction: float) -> int:
    # Half rounds up, matching how the UI renders percentages.
    return int(math.floor(fraction * 100 + 0.5))


def gap_points(winner_score: float, alternative_score: float) -> int:
    """Percentage-point gap between the winner and an alternative."""
    return _percent(winner_score - alternative_score)


def _plural(count: int, word: str = "member") -> str:
    return f"{count} {word}" if count == 1 else f"{count} {word}s"


@dataclass(frozen=True)
class CompromiseNote:
    type: str
    message: str
    count: int

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.type, "message": self.message, "count": self.count}


@dataclass(frozen=True)
class DecisionSummary:
    title: str
    summary: str
    confidence: str
    recommendation: str
    reasoning: tuple[str, ...]

    def to_dict(self) -> dict[str, Any]:
        return {
            "title": self.title,
            "summary": self.summary,
            "confidence": self.confidence,
            "recommendation": self.recommendation,
            "reasoning": list(self.reasoning),
        }


class ExplanationGenerator:
    """Formats decision, fairness and alternative explanations."""

    def __init__(self, config: Settings | None = None) -> None:
        self._settings = config or default_settings

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _user_scores(winner: Any) -> list[Any]:
        return list(_get(winner, "user_scores", "userScores", default=None) or [])

    @staticmethod
    def _count_sub_above(user_scores: Iterable[Any], attr: str, key: str, threshold: float) -> int:
        count = 0
        for us in user_scores:
            value = _get(_get(us, "breakdown"), attr, key)
            if value is not None and value > threshold:
                count += 1
        return count

    # ------------------------------------------------------------------
    # Decision reasoning
    # ------------------------------------------------------------------

    def generate_decision_reasoning(self, winner: Any, group_size: int | None = None) -> list[str]:
        s = self._settings
        user_scores = self._user_scores(winner)
        size = group_size if group_size is not None else len(user_scores)
        reasoning: list[str] = []

        total = _get(winner, "total_score", "totalScore")
        if total is not None:
            reasoning.append(
                f"This option scores {_percent(total)}% overall satisfaction across all members"
            )

        if size > 0:
            within_budget = self._count_sub_above(
                user_scores, "budget_score", "budgetScore", s.reasoning_budget_threshold
            )
            reasoning.append(f"Within budget for {within_budget}/{size} members")

        convenient = self._count_sub_above(
            user_scores, "location_score", "locationScore", s.reasoning_location_threshold
        )
        if convenient > 0:
            reasoning.append(f"Convenient location for {_plural(convenient)}")

        matched = self._count_sub_above(
            user_scores, "preference_score", "preferenceScore", s.reasoning_preference_threshold
        )
        if matched > 0:
            reasoning.append(f"Matches preferences of {_plural(matched)}")

        boosted = 0
        for us in user_scores:
            multiplier = _get(us, "influence_multiplier", "influenceMultiplier")
            if multiplier is not None and multiplier > s.reasoning_boost_threshold:
                boosted += 1
        if boosted > 0:
            reasoning.append(f"Prioritized {boosted} member(s) who rarely get their preferences")

        rating = _get(_get(winner, "option"), "rating")
        if rating is not None and rating >= s.reasoning_rating_threshold:
            reasoning.append(f"Highly rated option ({rating:.1f}/5.0 stars)")

        return reasoning

    # ------------------------------------------------------------------
    # Fairness standing
    # ------------------------------------------------------------------

    def explain_fairness(self, metrics: Any) -> str | None:
        """One member's fairness standing in a low / high / balanced tone."""
        s = self._settings
        score = _get(metrics, "current_fairness_score", "currentFairnessScore")
        if score is None:
            return None
        multiplier = _get(metrics, "influence_multiplier", "influenceMultiplier")
        pct = _percent(score)

        if score < s.fairness_low_threshold:
            text = f"You rarely get your preferences ({pct}% satisfaction)."
            if multiplier is not None:
                text += f" Your influence has been increased to {multiplier:.1f}x to ensure fairness."
        elif score > s.fairness_high_threshold:
            text = f"You often get your preferences ({pct}% satisfaction)."
            if multiplier is not None:
                text += (
                    f" Your influence has been slightly reduced to {multiplier:.1f}x "
                    "to keep the group balanced."
                )
        else:
            text = f"You have a balanced fairness score ({pct}% satisfaction)."
            if multiplier is not None:
                text += f" Your influence is normal at {multiplier:.1f}x."
        return text

    # ------------------------------------------------------------------
    # Alternatives
    # ------------------------------------------------------------------

    def explain_alternative(self, alternative_score: float, winner_score: float) -> str:
        """Why an alternative lost, bucketed on its gap to the winner."""
        s = self._settings
        gap = gap_points(winner_score, alternative_score)
        if gap < s.very_close_gap_points:
            return f"Very close second choice ({gap}% difference). Consider this if plans change."
        if gap < s.solid_gap_points:
            return f"Solid alternative with {gap}% lower satisfaction. Good backup option."
        return f"Alternative option with {gap}% lower overall satisfaction."

    # ------------------------------------------------------------------
    # Compromise notes on the winner
    # ------------------------------------------------------------------

    def explain_compromises(self, winner: Any) -> list[CompromiseNote]:
        s = self._settings
        user_scores = self._user_scores(winner)
        notes: list[CompromiseNote] = []

        unsatisfied = sum(
            1
            for us in user_scores
            if _get(us, "score") is not None and _get(us, "score") < s.compromise_note_threshold
        )
        if unsatisfied:
            notes.append(
                CompromiseNote(
                    "partial_satisfaction",
                    f"{unsatisfied} member(s) had to compromise on this decision",
                    unsatisfied,
                )
            )

        def partial(attr: str, key: str) -> int:
            count = 0
            for us in user_scores:
                value = _get(_get(us, "breakdown"), attr, key)
                if value is not None and 0.0 < value < s.compromise_subscore_threshold:
                    count += 1
            return count

        budget = partial("budget_score", "budgetScore")
        if budget:
            notes.append(
                CompromiseNote("budget", "Some members are slightly outside their ideal budget range", budget)
            )
        location = partial("location_score", "locationScore")
        if location:
            notes.append(
                CompromiseNote("location", "Some members have a longer travel distance than preferred", location)
            )

        missing = 0
        for us in user_scores:
            value = _get(_get(us, "breakdown"), "must_have_score", "mustHaveScore")
            if value is not None and value < 1.0:
                missing += 1
        if missing:
            notes.append(
                CompromiseNote("must_haves", f"{missing} member(s) are missing at least one must-have", missing)
            )
        return notes

    # ------------------------------------------------------------------
    # Summary
    # ------------------------------------------------------------------

    def summarize(self, result: "DecisionResult") -> DecisionSummary:
        rate = result.satisfaction_rate
        if rate >= 0.8:
            confidence = "high"
        elif rate >= 0.6:
            confidence = "medium"
        else:
            confidence = "low"

        if rate >= 0.7:
            recommendation = "Strongly recommended for the group"
        elif rate >= 0.5:
            recommendation = "Acceptable choice with some compromises"
        else:
            recommendation = "Consider reviewing constraints - no great match found"

        return DecisionSummary(
            title=f"Decision: {result.selected_option.name}",
            summary=(
                f"This option best satisfies the group with {_percent(rate)}% "
                "overall satisfaction."
            ),
            confidence=confidence,
            recommendation=recommendation,
            reasoning=tuple(result.reasoning),
        )
