"""
Fairness Tracker — rolling per-member satisfaction and influence multipliers.

Core algorithm:
  After each completed decision, for every member:
    fairness' = alpha * realized_satisfaction + (1 - alpha) * fairness
  with alpha = 0.3 (recency-weighted).

  realized_satisfaction is the member's own score for the selected option.

Influence multiplier (read by the aggregator on the next decision):
  fairness < 0.4          multiplier = 1 + (0.4 - fairness) / 0.4, clamped [1.0, 2.0]
  fairness > 0.7          multiplier = 1 - (fairness - 0.7) / 0.6, clamped [0.5, 1.0]
  otherwise               multiplier = 1.0

  Members who rarely get their way are boosted; members who usually get
  their way are dampened.

Commit model:
  The tracker owns a private copy of the fairness state. The engine only
  calls propose_outcomes(), which returns FairnessUpdate deltas without
  touching state. The caller persists the DecisionResult first and then
  commits the deltas with apply(). record_outcome() is the single-member
  compute-and-commit shortcut; calling it twice for one decision
  double-counts history.

Determinism guarantee:
  Same state + same outcomes -> same output. No external calls, no randomness.
"""

from __future__ import annotations

import copy
import logging
import math
from dataclasses import dataclass, field, replace
from typing import Annotated, Any, Iterable, Mapping

import numpy as np
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from services.decision.config import Settings, settings as default_settings
from services.decision.constraints.normalizer import UnitFloat, field_errors
from services.decision.errors import InvalidInput
from services.decision.scoring.types import UserScore

logger = logging.getLogger(__name__)

# Trend needs at least this many recent outcomes.
_MIN_TREND_POINTS = 3

# Second-half vs first-half mean difference that counts as a trend.
_TREND_DELTA = 0.1

STATUS_NEEDS_BOOST = "needs_boost"
STATUS_NEEDS_BALANCE = "needs_balance"
STATUS_BALANCED = "balanced"


# ---------------------------------------------------------------------------
# Data structures
# ---------------------------------------------------------------------------

@dataclass
class FairnessMetrics:
    """Per-member fairness record, long-lived across a group's decisions."""
    user_id: str
    current_fairness_score: float = 0.5
    influence_multiplier: float = 1.0
    decisions_participated: int = 0
    times_preferences_met: int = 0
    times_sacrificed: int = 0
    recent_satisfaction: tuple[float, ...] = ()

    @property
    def recent_average(self) -> float:
        if not self.recent_satisfaction:
            return 0.5
        return sum(self.recent_satisfaction) / len(self.recent_satisfaction)

    @property
    def recent_trend(self) -> str:
        recent = self.recent_satisfaction
        if len(recent) < _MIN_TREND_POINTS:
            return "neutral"
        half = len(recent) // 2
        first = sum(recent[:half]) / half
        second = sum(recent[half:]) / (len(recent) - half)
        if second > first + _TREND_DELTA:
            return "improving"
        if second < first - _TREND_DELTA:
            return "declining"
        return "neutral"

    def to_dict(self) -> dict[str, Any]:
        return {
            "userId": self.user_id,
            "currentFairnessScore": round(self.current_fairness_score, 4),
            "influenceMultiplier": round(self.influence_multiplier, 4),
            "decisionsParticipated": self.decisions_participated,
            "timesPreferencesMet": self.times_preferences_met,
            "timesSacrificed": self.times_sacrificed,
            "recentSatisfaction": [round(s, 4) for s in self.recent_satisfaction],
        }

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> "FairnessMetrics":
        return cls(
            user_id=d["userId"],
            current_fairness_score=d.get("currentFairnessScore", 0.5),
            influence_multiplier=d.get("influenceMultiplier", 1.0),
            decisions_participated=d.get("decisionsParticipated", 0),
            times_preferences_met=d.get("timesPreferencesMet", 0),
            times_sacrificed=d.get("timesSacrificed", 0),
            recent_satisfaction=tuple(d.get("recentSatisfaction", ())),
        )


@dataclass
class FairnessState:
    """
    Complete fairness state for a group.

    Serializable to/from the group's fairness record.
    """
    members: dict[str, FairnessMetrics] = field(default_factory=dict)
    total_decisions: int = 0
    last_decision_id: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "members": {uid: m.to_dict() for uid, m in sorted(self.members.items())},
            "totalDecisions": self.total_decisions,
            "lastDecisionId": self.last_decision_id,
        }

    @classmethod
    def from_dict(cls, d: dict[str, Any] | None) -> "FairnessState":
        if not d:
            return cls()
        members = {
            uid: FairnessMetrics.from_dict({"userId": uid, **data})
            for uid, data in d.get("members", {}).items()
        }
        return cls(
            members=members,
            total_decisions=d.get("totalDecisions", 0),
            last_decision_id=d.get("lastDecisionId"),
        )


@dataclass(frozen=True)
class FairnessUpdate:
    """One member's fairness delta for one completed decision."""
    user_id: str
    realized_satisfaction: float
    before: FairnessMetrics
    after: FairnessMetrics

    @property
    def multiplier_delta(self) -> float:
        return self.after.influence_multiplier - self.before.influence_multiplier

    def to_dict(self) -> dict[str, Any]:
        return {
            "userId": self.user_id,
            "realizedSatisfaction": round(self.realized_satisfaction, 4),
            "fairnessScoreBefore": round(self.before.current_fairness_score, 4),
            "fairnessScoreAfter": round(self.after.current_fairness_score, 4),
            "multiplierBefore": round(self.before.influence_multiplier, 4),
            "multiplierAfter": round(self.after.influence_multiplier, 4),
        }


@dataclass(frozen=True)
class FairnessStatus:
    status: str
    message: str
    multiplier: float


_RECOMMENDATIONS = {
    STATUS_NEEDS_BOOST: (
        "Your preferences haven't been prioritized recently. "
        "The next decision will give more weight to your constraints."
    ),
    STATUS_NEEDS_BALANCE: (
        "You've been getting your preferences often. To keep things fair, "
        "your influence will be slightly reduced in the next decision."
    ),
    STATUS_BALANCED: (
        "Your fairness score is balanced. "
        "The algorithm treats your input equally with others."
    ),
}


@dataclass(frozen=True)
class FairnessInsight:
    """Member-facing summary of where they stand before the next decision."""
    user_id: str
    total_decisions: int
    fairness_score: float
    status: str
    message: str
    recommendation: str
    recent_trend: str
    recent_average_score: float
    next_decision_influence: float

    def to_dict(self) -> dict[str, Any]:
        return {
            "userId": self.user_id,
            "totalDecisions": self.total_decisions,
            "fairnessScore": round(self.fairness_score, 4),
            "status": self.status,
            "message": self.message,
            "recommendation": self.recommendation,
            "recentTrend": self.recent_trend,
            "recentAverageScore": round(self.recent_average_score, 4),
            "nextDecisionInfluence": round(self.next_decision_influence, 4),
        }


@dataclass(frozen=True)
class GroupBalance:
    is_balanced: bool
    average_fairness: float
    standard_deviation: float
    most_favored: str | None
    least_favored: str | None
    total_members: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "isBalanced": self.is_balanced,
            "averageFairness": round(self.average_fairness, 4),
            "standardDeviation": round(self.standard_deviation, 4),
            "mostFavoredUser": self.most_favored,
            "leastFavoredUser": self.least_favored,
            "totalUsers": self.total_members,
        }


class _RawFairnessEntry(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    current_fairness_score: UnitFloat | None = Field(default=None, alias="currentFairnessScore")
    influence_multiplier: Annotated[float, Field(ge=0.0, allow_inf_nan=False)] | None = Field(
        default=None, alias="influenceMultiplier"
    )
    decisions_participated: int = Field(default=0, alias="decisionsParticipated", ge=0)
    times_preferences_met: int = Field(default=0, alias="timesPreferencesMet", ge=0)
    times_sacrificed: int = Field(default=0, alias="timesSacrificed", ge=0)
    recent_satisfaction: list[UnitFloat] = Field(default_factory=list, alias="recentSatisfaction")


# ---------------------------------------------------------------------------
# Tracker
# ---------------------------------------------------------------------------

class FairnessTracker:
    """
    Reads and updates per-member fairness for one group.

    Usage:
        tracker = FairnessTracker.from_snapshot({"user-1": {"currentFairnessScore": 0.2}})
        tracker.get_multiplier("user-1")   # 1.5

        # after the DecisionResult is durably stored:
        tracker.apply(result.fairness_updates, decision_id=result.decision_id)
    """

    def __init__(
        self,
        state: FairnessState | None = None,
        config: Settings | None = None,
    ) -> None:
        self._settings = config or default_settings
        self._state = copy.deepcopy(state) if state is not None else FairnessState()

    @classmethod
    def from_snapshot(
        cls,
        snapshot: Mapping[str, Any] | None,
        config: Settings | None = None,
    ) -> "FairnessTracker":
        """
        Build a tracker from the {userId -> {currentFairnessScore, influenceMultiplier}}
        snapshot handed to the engine. A supplied multiplier is trusted (clamped to
        bounds); a missing one is derived from the fairness score.
        """
        tracker = cls(config=config)
        errors = []
        for user_id, raw in sorted((snapshot or {}).items()):
            try:
                entry = _RawFairnessEntry.model_validate(raw)
            except ValidationError as exc:
                errors.extend(field_errors(exc, f"fairnessSnapshot.{user_id}"))
                continue
            tracker._state.members[str(user_id)] = tracker._from_entry(str(user_id), entry)
        if errors:
            raise InvalidInput(errors)
        return tracker

    def _from_entry(self, user_id: str, entry: _RawFairnessEntry) -> FairnessMetrics:
        s = self._settings
        score = (
            entry.current_fairness_score
            if entry.current_fairness_score is not None
            else s.default_fairness_score
        )
        if entry.influence_multiplier is not None:
            multiplier = self._clamp_multiplier(entry.influence_multiplier)
        else:
            multiplier = self.derive_multiplier(score)
        window = s.recent_history_window
        return FairnessMetrics(
            user_id=user_id,
            current_fairness_score=score,
            influence_multiplier=multiplier,
            decisions_participated=entry.decisions_participated,
            times_preferences_met=entry.times_preferences_met,
            times_sacrificed=entry.times_sacrificed,
            recent_satisfaction=tuple(entry.recent_satisfaction[-window:]),
        )

    # ------------------------------------------------------------------
    # Multiplier derivation
    # ------------------------------------------------------------------

    def _clamp_multiplier(self, value: float) -> float:
        return max(self._settings.multiplier_min, min(self._settings.multiplier_max, value))

    def derive_multiplier(self, fairness_score: float) -> float:
        """Map a fairness score to an influence multiplier."""
        s = self._settings
        low, high = s.fairness_low_threshold, s.fairness_high_threshold
        if fairness_score < low:
            boost = 1.0 + (low - fairness_score) / low * (s.multiplier_max - 1.0)
            return max(1.0, min(s.multiplier_max, boost))
        if fairness_score > high:
            damp = 1.0 - (fairness_score - high) / (1.0 - high) * (1.0 - s.multiplier_min)
            return max(s.multiplier_min, min(1.0, damp))
        return 1.0

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def metrics(self, user_id: str) -> FairnessMetrics:
        """Current metrics for a member (neutral defaults when unseen)."""
        existing = self._state.members.get(user_id)
        if existing is not None:
            return replace(existing)
        score = self._settings.default_fairness_score
        return FairnessMetrics(
            user_id=user_id,
            current_fairness_score=score,
            influence_multiplier=self.derive_multiplier(score),
        )

    def get_multiplier(self, user_id: str) -> float:
        return self.metrics(user_id).influence_multiplier

    def multipliers(self, user_ids: Iterable[str]) -> dict[str, float]:
        return {uid: self.get_multiplier(uid) for uid in user_ids}

    def snapshot(self) -> FairnessState:
        """Deep copy of the tracker's state, safe to persist or mutate."""
        return copy.deepcopy(self._state)

    def status(self, user_id: str) -> FairnessStatus:
        m = self.metrics(user_id)
        s = self._settings
        if m.current_fairness_score < s.fairness_low_threshold:
            return FairnessStatus(
                STATUS_NEEDS_BOOST,
                "This member rarely gets their preferences - their voice will be amplified",
                m.influence_multiplier,
            )
        if m.current_fairness_score > s.fairness_high_threshold:
            return FairnessStatus(
                STATUS_NEEDS_BALANCE,
                "This member often gets their preferences - their influence will be slightly reduced",
                m.influence_multiplier,
            )
        return FairnessStatus(
            STATUS_BALANCED,
            "This member has a balanced fairness score",
            m.influence_multiplier,
        )

    def insight(self, user_id: str) -> FairnessInsight:
        """Status, recommendation and recent history for one member."""
        m = self.metrics(user_id)
        status = self.status(user_id)
        return FairnessInsight(
            user_id=user_id,
            total_decisions=m.decisions_participated,
            fairness_score=m.current_fairness_score,
            status=status.status,
            message=status.message,
            recommendation=_RECOMMENDATIONS[status.status],
            recent_trend=m.recent_trend,
            recent_average_score=m.recent_average,
            next_decision_influence=status.multiplier,
        )

    def group_balance(self) -> GroupBalance:
        """Spread of fairness scores across every tracked member."""
        members = sorted(self._state.members.values(), key=lambda m: m.user_id)
        if not members:
            return GroupBalance(
                is_balanced=True,
                average_fairness=0.5,
                standard_deviation=0.0,
                most_favored=None,
                least_favored=None,
                total_members=0,
            )
        scores = np.array([m.current_fairness_score for m in members], dtype=np.float64)
        std = float(np.std(scores))
        # members is sorted by id, so ties resolve to the lexically first member.
        most = max(members, key=lambda m: m.current_fairness_score)
        least = min(members, key=lambda m: m.current_fairness_score)
        return GroupBalance(
            is_balanced=std < self._settings.balanced_std_threshold,
            average_fairness=float(np.mean(scores)),
            standard_deviation=std,
            most_favored=most.user_id,
            least_favored=least.user_id,
            total_members=len(members),
        )

    # ------------------------------------------------------------------
    # Updates
    # ------------------------------------------------------------------

    def compute_update(self, user_id: str, realized_satisfaction: float) -> FairnessUpdate:
        """Compute (without committing) one member's update for a finished decision."""
        if math.isnan(realized_satisfaction) or not 0.0 <= realized_satisfaction <= 1.0:
            raise ValueError(
                f"realized_satisfaction must be in [0, 1], got {realized_satisfaction!r}"
            )
        s = self._settings
        before = self.metrics(user_id)
        score = s.fairness_alpha * realized_satisfaction + (1.0 - s.fairness_alpha) * before.current_fairness_score
        met = realized_satisfaction >= s.preferences_met_threshold
        window = s.recent_history_window
        after = FairnessMetrics(
            user_id=user_id,
            current_fairness_score=score,
            influence_multiplier=self.derive_multiplier(score),
            decisions_participated=before.decisions_participated + 1,
            times_preferences_met=before.times_preferences_met + (1 if met else 0),
            times_sacrificed=before.times_sacrificed + (0 if met else 1),
            recent_satisfaction=(before.recent_satisfaction + (realized_satisfaction,))[-window:],
        )
        return FairnessUpdate(
            user_id=user_id,
            realized_satisfaction=realized_satisfaction,
            before=before,
            after=after,
        )

    def propose_outcomes(self, user_scores: Iterable[UserScore]) -> list[FairnessUpdate]:
        """Deltas for every member of a decision, using each member's own winner score."""
        return [self.compute_update(us.user_id, us.score) for us in user_scores]

    def apply(
        self,
        updates: Iterable[FairnessUpdate],
        decision_id: str | None = None,
    ) -> None:
        """
        Commit precomputed deltas for one decision.

        Each update must have been computed against the current state; an
        update whose 'before' no longer matches (already applied, or the
        member changed since) is rejected and nothing is committed. A batch
        holds at most one update per member.
        """
        updates = list(updates)
        seen: set[str] = set()
        for update in updates:
            if update.user_id in seen:
                raise ValueError(f"Duplicate fairness update for member {update.user_id!r}")
            seen.add(update.user_id)
            if self.metrics(update.user_id) != update.before:
                raise ValueError(f"Stale fairness update for member {update.user_id!r}")

        for update in updates:
            self._state.members[update.user_id] = replace(update.after)
            logger.debug(
                "Fairness update: user=%s satisfaction=%.2f score=%.3f->%.3f multiplier=%.2f->%.2f",
                update.user_id,
                update.realized_satisfaction,
                update.before.current_fairness_score,
                update.after.current_fairness_score,
                update.before.influence_multiplier,
                update.after.influence_multiplier,
            )
        if updates:
            self._state.total_decisions += 1
            self._state.last_decision_id = decision_id
            logger.info(
                "Committed fairness updates: decision=%s members=%d",
                decision_id,
                len(updates),
            )

    def record_outcome(self, user_id: str, realized_satisfaction: float) -> FairnessUpdate:
        """Compute and commit one member's outcome. Not deduplicated."""
        update = self.compute_update(user_id, realized_satisfaction)
        self._state.members[user_id] = replace(update.after)
        return update
