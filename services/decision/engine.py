"""
Decision engine — resolves one group decision end to end.

Pipeline (pure, synchronous, no I/O):
  1. Normalize constraints and options (InvalidConstraint / InvalidOption)
  2. Refuse to run on zero constraints or zero options (InsufficientData)
  3. Score every (member, option) pair, weighted by fairness multipliers
  4. Aggregate into rankings; select winner + alternatives (NoViableOption)
  5. Detect conflicts and generate compromises
  6. Build reasoning
  7. Propose (not commit) fairness updates

The engine never mutates the FairnessTracker it reads. The caller stores
the DecisionResult, then commits result.fairness_updates with
tracker.apply(). Discarding a result before commit is always safe.

The caller also guarantees at most one run per decision at a time.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Mapping, Sequence

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from services.decision.config import Settings, settings as default_settings
from services.decision.constraints.normalizer import ConstraintNormalizer, coerce_id, field_errors
from services.decision.constraints.types import Constraint, Option
from services.decision.errors import InsufficientData, InvalidInput
from services.decision.explanation.generator import ExplanationGenerator
from services.decision.group.aggregation import (
    AggregationEngine,
    Alternative,
    OptionRanking,
    Selector,
)
from services.decision.group.compromise import Compromise, CompromiseGenerator
from services.decision.group.conflict_detector import Conflict, ConflictDetector
from services.decision.group.fairness import FairnessTracker, FairnessUpdate
from services.decision.scoring.option_scorer import OptionScorer
from services.decision.scoring.types import UserScore

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Request / result
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class DecisionRequest:
    """One decision's inputs. Raw dicts are accepted and normalized on resolve."""
    decision_id: str
    constraints: Sequence[Constraint | Mapping[str, Any]]
    options: Sequence[Option | Mapping[str, Any]]
    fairness_snapshot: Mapping[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class DecisionResult:
    """Outcome of one aggregation run. Immutable; a re-run builds a new one."""
    decision_id: str
    selected_option: Option
    total_score: float
    satisfaction_rate: float
    algorithm_score: float
    satisfied_members: int
    user_scores: tuple[UserScore, ...]
    alternatives: tuple[Alternative, ...]
    reasoning: tuple[str, ...]
    conflicts: tuple[Conflict, ...]
    compromises: tuple[Compromise, ...]
    rankings: tuple[OptionRanking, ...]
    fairness_updates: tuple[FairnessUpdate, ...]

    def to_dict(self) -> dict[str, Any]:
        return {
            "decisionId": self.decision_id,
            "selectedOption": self.selected_option.to_dict(),
            "totalScore": round(self.total_score, 4),
            "satisfactionRate": round(self.satisfaction_rate, 4),
            "algorithmScore": round(self.algorithm_score, 4),
            "satisfiedMembers": self.satisfied_members,
            "userScores": [us.to_dict() for us in self.user_scores],
            "alternatives": [a.to_dict() for a in self.alternatives],
            "reasoning": list(self.reasoning),
            "conflicts": [c.to_dict() for c in self.conflicts],
            "compromises": [c.to_dict() for c in self.compromises],
            "scoringDetails": [r.to_dict() for r in self.rankings],
            "fairnessUpdates": [u.to_dict() for u in self.fairness_updates],
        }


class _RawDecisionRequest(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    decision_id: str = Field(alias="decisionId", min_length=1)
    options: list[Any] = Field(default_factory=list)
    constraints: list[Any] = Field(default_factory=list)
    fairness_snapshot: dict[str, Any] = Field(default_factory=dict, alias="fairnessSnapshot")

    @field_validator("decision_id", mode="before")
    @classmethod
    def coerce_decision_id(cls, v: Any) -> Any:
        return coerce_id(v)


# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------

class DecisionEngine:
    """
    Orchestrates normalizer, scorer, aggregator, detectors and explainer.

    Injected collaborators keep this testable; all default to instances
    built from the same Settings.

    Usage:
        engine = DecisionEngine()
        result = engine.resolve_payload(payload)
        store(result.to_dict())
        tracker.apply(result.fairness_updates, decision_id=result.decision_id)
    """

    def __init__(
        self,
        config: Settings | None = None,
        normalizer: ConstraintNormalizer | None = None,
        scorer: OptionScorer | None = None,
        aggregator: AggregationEngine | None = None,
        selector: Selector | None = None,
        detector: ConflictDetector | None = None,
        compromiser: CompromiseGenerator | None = None,
        explainer: ExplanationGenerator | None = None,
    ) -> None:
        self._settings = config or default_settings
        self._normalizer = normalizer or ConstraintNormalizer(self._settings)
        self._scorer = scorer or OptionScorer(self._settings)
        self._aggregator = aggregator or AggregationEngine()
        self._explainer = explainer or ExplanationGenerator(self._settings)
        self._selector = selector or Selector(self._settings, self._explainer)
        self._detector = detector or ConflictDetector(self._settings)
        self._compromiser = compromiser or CompromiseGenerator(self._settings, self._scorer)

    @staticmethod
    def parse_request(payload: Mapping[str, Any]) -> DecisionRequest:
        """Validate the envelope of a raw {decisionId, options, constraints, fairnessSnapshot} payload."""
        try:
            raw = _RawDecisionRequest.model_validate(payload)
        except ValidationError as exc:
            raise InvalidInput(field_errors(exc)) from None
        return DecisionRequest(
            decision_id=raw.decision_id,
            constraints=raw.constraints,
            options=raw.options,
            fairness_snapshot=raw.fairness_snapshot,
        )

    def resolve_payload(
        self,
        payload: Mapping[str, Any],
        tracker: FairnessTracker | None = None,
    ) -> DecisionResult:
        return self.resolve(self.parse_request(payload), tracker)

    def resolve(
        self,
        request: DecisionRequest,
        tracker: FairnessTracker | None = None,
    ) -> DecisionResult:
        """
        Run one decision.

        Args:
            request:  decision inputs.
            tracker:  fairness state to weight by. Built from
                      request.fairness_snapshot when omitted. Read only.

        Raises:
            InvalidConstraint / InvalidOption / InvalidInput, InsufficientData,
            NoViableOption.
        """
        if not request.constraints or not request.options:
            raise InsufficientData(len(request.constraints), len(request.options))

        constraints = self._normalizer.normalize_many(request.constraints)
        options = self._normalizer.normalize_options(request.options)
        if tracker is None:
            tracker = FairnessTracker.from_snapshot(request.fairness_snapshot, self._settings)

        logger.info(
            "Resolving decision=%s members=%d options=%d",
            request.decision_id,
            len(constraints),
            len(options),
        )

        multipliers = tracker.multipliers(c.user_id for c in constraints)
        matrix = self._scorer.score_matrix(constraints, options, multipliers)
        rankings = self._aggregator.rank(matrix, options)
        selection = self._selector.select(rankings)
        winner = selection.winner

        conflicts = self._detector.detect(matrix, options)
        compromises = self._compromiser.generate(conflicts, rankings, constraints)
        reasoning = self._explainer.generate_decision_reasoning(winner, len(constraints))
        updates = tracker.propose_outcomes(winner.user_scores)

        satisfied = sum(
            1 for us in winner.user_scores if us.score >= self._settings.support_threshold
        )
        result = DecisionResult(
            decision_id=request.decision_id,
            selected_option=winner.option,
            total_score=winner.total_score,
            satisfaction_rate=winner.total_score,
            algorithm_score=winner.total_score,
            satisfied_members=satisfied,
            user_scores=winner.user_scores,
            alternatives=selection.alternatives,
            reasoning=tuple(reasoning),
            conflicts=tuple(conflicts),
            compromises=tuple(compromises),
            rankings=tuple(rankings),
            fairness_updates=tuple(updates),
        )
        logger.info(
            "Decision resolved: decision=%s option=%s total=%.3f conflicts=%d compromises=%d",
            request.decision_id,
            winner.option.id,
            winner.total_score,
            len(conflicts),
            len(compromises),
        )
        return result
