"""
Option scorer tests.

Validates:
  - budget scoring inside, above and below the range (two-budget scenario)
  - location scoring: inside, decaying, unmeasurable, great-circle fallback
  - preference scoring floors
  - vetoes: deal-breakers, missing dietary tags, violating ingredients
  - weighted score and score bounds over a grid of inputs
  - determinism: same input -> same output
"""

from __future__ import annotations

import math

import pytest

from services.decision.scoring.geo import haversine_km
from services.decision.constraints.types import BudgetRange, GeoPoint
from services.decision.tests.helpers.factories import make_constraint, make_option


# ---------------------------------------------------------------------------
# Budget
# ---------------------------------------------------------------------------

class TestBudgetScore:

    def test_price_inside_both_ranges(self, scorer):
        """Budgets [10,20] and [15,30], price 18 -> both 1.0."""
        assert scorer.budget_score(18, BudgetRange(10, 20)) == 1.0
        assert scorer.budget_score(18, BudgetRange(15, 30)) == 1.0

    def test_cheap_price_tolerated_for_low_floor_only(self, scorer):
        """Price 5: [10,20] tolerates it, [15,30] decays below 1.0."""
        assert scorer.budget_score(5, BudgetRange(10, 20)) == pytest.approx(1.0)
        second = scorer.budget_score(5, BudgetRange(15, 30))
        assert second < 1.0
        assert second == pytest.approx(5 / 7.5)

    def test_above_max_decays_over_half_span(self, scorer):
        budget = BudgetRange(10, 20)
        assert scorer.budget_score(22, budget) == pytest.approx(0.6)
        assert scorer.budget_score(25, budget) == pytest.approx(0.0)
        assert scorer.budget_score(40, budget) == 0.0

    def test_empty_span_decays_relative_to_max(self, scorer):
        assert scorer.budget_score(25, BudgetRange(20, 20)) == pytest.approx(0.5)

    def test_zero_budget_is_zero_above(self, scorer):
        assert scorer.budget_score(5, BudgetRange(0, 0)) == 0.0

    def test_unbounded_budget_accepts_anything(self, scorer):
        assert scorer.budget_score(1_000_000, BudgetRange()) == 1.0

    def test_missing_price_is_neutral(self, scorer):
        assert scorer.budget_score(None, BudgetRange(10, 20)) == pytest.approx(0.7)


# ---------------------------------------------------------------------------
# Location
# ---------------------------------------------------------------------------

class TestLocationScore:

    def _member(self):
        return make_constraint("u1", origin=(0.0, 0.0), max_distance=5)

    def test_inside_max_distance(self, scorer):
        assert scorer.location_score(self._member(), make_option(distance=3)) == 1.0

    def test_linear_decay_past_max(self, scorer):
        assert scorer.location_score(self._member(), make_option(distance=6)) == pytest.approx(0.6)
        assert scorer.location_score(self._member(), make_option(distance=7.5)) == pytest.approx(0.0)

    def test_unmeasurable_option_is_neutral(self, scorer):
        assert scorer.location_score(self._member(), make_option()) == pytest.approx(0.7)

    def test_no_member_constraint(self, scorer):
        member = make_constraint("u1")
        assert scorer.location_score(member, make_option(distance=40)) == 1.0
        assert scorer.location_score(member, make_option()) == pytest.approx(0.7)

    def test_great_circle_used_without_precomputed_distance(self, scorer):
        # ~111 km per degree of longitude at the equator
        far = make_option(at=(0.0, 1.0))
        near = make_option(at=(0.0, 0.01))
        assert scorer.location_score(self._member(), far) == 0.0
        assert scorer.location_score(self._member(), near) == 1.0

    def test_member_without_origin_uses_precomputed_distance(self, scorer):
        member = make_constraint("u1", max_distance=5)
        assert scorer.location_score(member, make_option(distance=3)) == 1.0
        assert scorer.location_score(member, make_option(distance=6)) == pytest.approx(0.6)

    def test_member_without_origin_cannot_measure_coordinates(self, scorer):
        member = make_constraint("u1", max_distance=5)
        assert scorer.location_score(member, make_option(at=(0.0, 0.0))) == pytest.approx(0.7)

    def test_haversine_known_distance(self):
        paris = GeoPoint(48.8566, 2.3522)
        london = GeoPoint(51.5074, -0.1278)
        assert haversine_km(paris, london) == pytest.approx(343.5, abs=2.0)
        assert haversine_km(paris, paris) == pytest.approx(0.0)


# ---------------------------------------------------------------------------
# Preferences and must-haves
# ---------------------------------------------------------------------------

class TestPreferenceScore:

    def test_full_match(self, scorer):
        assert scorer.preference_score(frozenset({"sushi"}), frozenset({"sushi", "cheap"})) == 1.0

    def test_partial_match_fraction(self, scorer):
        assert scorer.preference_score(frozenset({"sushi", "ramen"}), frozenset({"sushi"})) == 0.5

    def test_zero_match_floor(self, scorer):
        assert scorer.preference_score(frozenset({"sushi"}), frozenset({"steak"})) == pytest.approx(0.2)

    def test_fraction_never_below_floor(self, scorer):
        prefs = frozenset({"a", "b", "c", "d", "e", "f"})
        assert scorer.preference_score(prefs, frozenset({"a"})) == pytest.approx(0.2)

    def test_no_preferences_declared(self, scorer):
        assert scorer.preference_score(frozenset(), frozenset({"sushi"})) == pytest.approx(0.5)

    def test_must_have_matches_tags_or_name(self, scorer):
        option = make_option("o1", name="Sunny Patio Cafe", tags={"parking"})
        assert scorer.must_have_score(frozenset({"parking", "patio"}), option) == 1.0
        plain = make_option("o2", name="Cafe", tags={"parking"})
        assert scorer.must_have_score(frozenset({"parking", "patio"}), plain) == 0.5


# ---------------------------------------------------------------------------
# Vetoes
# ---------------------------------------------------------------------------

class TestVeto:

    def test_deal_breaker_tag_vetoes(self, scorer):
        us = scorer.score(make_constraint("u1", deal_breakers={"seafood"}), make_option(tags={"seafood"}))
        assert us.vetoed
        assert us.score == 0.0
        assert us.veto_reason == "deal_breaker:seafood"
        assert us.breakdown.budget_score == 0.0

    def test_missing_dietary_tag_vetoes(self, scorer):
        """Option not tagged nut-free while the member requires it -> veto."""
        us = scorer.score(make_constraint("u1", dietary={"nut-free"}), make_option(tags={"thai"}))
        assert us.vetoed
        assert us.score == 0.0
        assert us.veto_reason == "dietary:nut-free"

    def test_violating_ingredient_vetoes_even_when_tagged(self, scorer):
        us = scorer.score(make_constraint("u1", dietary={"vegan"}), make_option(tags={"vegan", "cheese"}))
        assert us.vetoed
        assert us.veto_reason == "dietary:vegan"

    def test_satisfied_dietary_requirement_passes(self, scorer):
        us = scorer.score(make_constraint("u1", dietary={"vegan"}), make_option(tags={"vegan", "tofu"}))
        assert not us.vetoed
        assert us.breakdown.dietary_score == 1.0

    def test_deal_breaker_reported_in_sorted_order(self, scorer):
        member = make_constraint("u1", deal_breakers={"loud", "crowded"})
        us = scorer.score(member, make_option(tags={"loud", "crowded"}))
        assert us.veto_reason == "deal_breaker:crowded"

    def test_deal_breaker_does_not_match_name(self, scorer):
        member = make_constraint("u1", deal_breakers={"steak"})
        assert not scorer.score(member, make_option("o1", name="Steak Frites", tags={"french"})).vetoed


# ---------------------------------------------------------------------------
# Weighted score
# ---------------------------------------------------------------------------

class TestWeightedScore:

    def test_weighted_mean(self, scorer):
        member = make_constraint("u1", budget=(10, 20), preferences={"sushi"})
        us = scorer.score(member, make_option(price=15, tags={"sushi"}))
        # 0.35*1 + 0.25*0.7 + 0.30*1 + 0.10*1
        assert us.score == pytest.approx(0.925)
        assert us.breakdown.location_score == pytest.approx(0.7)

    def test_multiplier_recorded_but_not_applied(self, scorer):
        member = make_constraint("u1", preferences={"sushi"})
        option = make_option(price=15, tags={"sushi"})
        plain = scorer.score(member, option)
        boosted = scorer.score(member, option, influence_multiplier=1.5)
        assert boosted.score == plain.score
        assert boosted.influence_multiplier == 1.5

    def test_must_have_is_diagnostic_only(self, scorer):
        option = make_option(price=15, tags={"sushi"})
        without = scorer.score(make_constraint("u1"), option)
        missing = scorer.score(make_constraint("u1", must_haves={"patio"}), option)
        assert missing.breakdown.must_have_score == 0.0
        assert missing.score == without.score

    def test_scores_bounded_over_grid(self, scorer):
        budgets = [(0, 0), (0, math.inf), (10, 20), (20, 20), (50, 80)]
        prices = [None, 0, 5, 15, 20, 25, 100]
        distances = [None, 0, 4, 6, 100]
        for low, high in budgets:
            member = make_constraint("u1", budget=(low, high), preferences={"a", "b"},
                                     origin=(0.0, 0.0), max_distance=5)
            for price in prices:
                for distance in distances:
                    us = scorer.score(member, make_option(price=price, tags={"a"}, distance=distance))
                    assert 0.0 <= us.score <= 1.0
                    for part in us.breakdown.to_dict().values():
                        assert 0.0 <= part <= 1.0

    def test_deterministic(self, scorer):
        member = make_constraint("u1", budget=(10, 20), preferences={"sushi", "ramen"},
                                 origin=(1.0, 1.0), max_distance=3)
        option = make_option(price=21, tags={"ramen"}, at=(1.01, 1.02))
        assert scorer.score(member, option) == scorer.score(member, option)


# ---------------------------------------------------------------------------
# Matrix
# ---------------------------------------------------------------------------

class TestScoreMatrix:

    def test_matrix_shape_and_member_order(self, scorer, split_constraints, split_options):
        matrix = scorer.score_matrix(split_constraints, split_options, {"user-bob": 1.5})
        assert list(matrix) == ["sushi-bar", "steakhouse"]
        row = matrix["steakhouse"]
        assert [us.user_id for us in row] == ["user-alice", "user-bob"]
        assert row[0].influence_multiplier == 1.0
        assert row[1].influence_multiplier == 1.5

    def test_split_scenario_scores(self, scorer, split_constraints, split_options):
        matrix = scorer.score_matrix(split_constraints, split_options)
        alice_sushi, bob_sushi = matrix["sushi-bar"]
        alice_steak, bob_steak = matrix["steakhouse"]
        assert alice_sushi.score == pytest.approx(0.925)
        assert alice_steak.score == pytest.approx(0.335)
        assert bob_steak.score == pytest.approx(0.925)
        assert bob_sushi.score == pytest.approx(0.475)
