"""
Conflict detector tests.

Validates:
  - reciprocal rule: each side scores the other's favorite below 0.5
  - severity: veto -> high, budget -> medium, preference only -> low
  - members disagreeing over the same pair of options merge into one conflict
  - no conflict when favorites agree or either side can live with the other
  - determinism: same matrix -> same conflicts
"""

from __future__ import annotations

from services.decision.group.conflict_detector import (
    SEVERITY_HIGH,
    SEVERITY_LOW,
    SEVERITY_MEDIUM,
)
from services.decision.tests.helpers.factories import make_constraint, make_option


def _detect(scorer, detector, constraints, options):
    return detector.detect(scorer.score_matrix(constraints, options), options)


# ---------------------------------------------------------------------------
# Detection
# ---------------------------------------------------------------------------

class TestDetection:

    def test_favorites(self, scorer, detector, split_constraints, split_options):
        matrix = scorer.score_matrix(split_constraints, split_options)
        assert detector.favorites(matrix, split_options) == {
            "user-alice": "sushi-bar",
            "user-bob": "steakhouse",
        }

    def test_budget_split_is_medium(self, scorer, detector, split_constraints, split_options):
        conflicts = _detect(scorer, detector, split_constraints, split_options)
        assert len(conflicts) == 1
        conflict = conflicts[0]
        assert conflict.id == "conflict-sushi-bar-vs-steakhouse"
        assert conflict.severity == SEVERITY_MEDIUM
        assert conflict.option_ids == ("sushi-bar", "steakhouse")
        assert conflict.description == (
            'Members are split between "Sushi Bar" and "Steakhouse", and the price '
            "pushes one side outside their budget"
        )
        assert [p.to_dict() for p in conflict.participants] == [
            {"userId": "user-alice", "preference": 'prefers "Sushi Bar"'},
            {"userId": "user-bob", "preference": 'prefers "Steakhouse"'},
        ]

    def test_veto_split_is_high(self, scorer, detector, split_options):
        constraints = [
            make_constraint("user-alice", budget=(10, 20), preferences={"sushi"}),
            make_constraint("user-bob", budget=(50, 80), preferences={"steak"}, deal_breakers={"sushi"}),
        ]
        conflicts = _detect(scorer, detector, constraints, split_options)
        assert [c.severity for c in conflicts] == [SEVERITY_HIGH]

    def test_preference_split_is_low(self, scorer, detector):
        constraints = [
            make_constraint("user-alice", preferences={"sushi"}, origin=(0.0, 0.0), max_distance=5),
            make_constraint("user-bob", preferences={"steak"}, origin=(0.0, 1.0), max_distance=5),
        ]
        options = [
            make_option("sushi-bar", name="Sushi Bar", tags={"sushi"}, at=(0.0, 0.0)),
            make_option("steakhouse", name="Steakhouse", tags={"steak"}, at=(0.0, 1.0)),
        ]
        conflicts = _detect(scorer, detector, constraints, options)
        assert len(conflicts) == 1
        assert conflicts[0].severity == SEVERITY_LOW
        assert conflicts[0].description.endswith("on preferences")

    def test_pairs_over_same_options_merge(self, scorer, detector, split_options):
        constraints = [
            make_constraint("user-alice", budget=(10, 20), preferences={"sushi"}),
            make_constraint("user-bob", budget=(50, 80), preferences={"steak"}),
            make_constraint("user-carol", budget=(10, 20), preferences={"sushi"}),
            make_constraint("user-dave", budget=(50, 80), preferences={"steak"}),
        ]
        conflicts = _detect(scorer, detector, constraints, split_options)
        assert len(conflicts) == 1
        assert conflicts[0].user_ids == ("user-alice", "user-bob", "user-carol", "user-dave")


# ---------------------------------------------------------------------------
# Non-conflicts
# ---------------------------------------------------------------------------

class TestNoConflict:

    def test_shared_favorite(self, scorer, detector, split_options):
        constraints = [
            make_constraint("user-alice", budget=(10, 20), preferences={"sushi"}),
            make_constraint("user-carol", budget=(5, 15), preferences={"sushi"}),
        ]
        assert _detect(scorer, detector, constraints, split_options) == []

    def test_one_side_can_live_with_the_other(self, scorer, detector, split_options):
        # bob's budget covers sushi, so his score for it stays above 0.5
        constraints = [
            make_constraint("user-alice", budget=(10, 20), preferences={"sushi"}),
            make_constraint("user-bob", budget=(5, 80), preferences={"steak"}),
        ]
        assert _detect(scorer, detector, constraints, split_options) == []

    def test_single_member(self, scorer, detector, split_options):
        constraints = [make_constraint("user-alice", preferences={"sushi"})]
        assert _detect(scorer, detector, constraints, split_options) == []


class TestDeterminism:

    def test_same_matrix_same_conflicts(self, scorer, detector, split_constraints, split_options):
        matrix = scorer.score_matrix(split_constraints, split_options)
        first = detector.detect(matrix, split_options)
        second = detector.detect(matrix, split_options)
        assert first == second
        assert [c.to_dict() for c in first] == [c.to_dict() for c in second]
