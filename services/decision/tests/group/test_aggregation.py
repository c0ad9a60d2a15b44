"""
Aggregation and selection tests.

Validates:
  - multiplier-weighted mean, zero-multiplier fallback, empty input
  - veto absoluteness: a vetoed option never wins, stays in diagnostics
  - tie-break chain: total -> rating (rated beats unrated) -> option id
  - alternative gap buckets (close / solid / lower)
  - NoViableOption when every option is vetoed
"""

from __future__ import annotations

import pytest

from services.decision.config import Settings
from services.decision.errors import NoViableOption
from services.decision.group.aggregation import AggregationEngine, OptionRanking, Selector
from services.decision.tests.helpers.factories import (
    make_constraint,
    make_option,
    make_user_score,
)


def _ranking(option_id: str, total: float, rating: float | None = None, vetoed_by=()) -> OptionRanking:
    return OptionRanking(
        option=make_option(option_id, rating=rating),
        total_score=total,
        user_scores=(),
        vetoed_by=tuple(vetoed_by),
    )


# ---------------------------------------------------------------------------
# Aggregation
# ---------------------------------------------------------------------------

class TestAggregate:

    def test_weighted_mean(self):
        scores = [make_user_score("a", 0.9, multiplier=1.0), make_user_score("b", 0.3, multiplier=2.0)]
        # (0.9 * 1 + 0.3 * 2) / 3
        assert AggregationEngine.aggregate(scores) == pytest.approx(0.5)

    def test_equal_multipliers_is_plain_mean(self):
        scores = [make_user_score("a", 0.8), make_user_score("b", 0.4)]
        assert AggregationEngine.aggregate(scores) == pytest.approx(0.6)

    def test_zero_multiplier_sum_falls_back_to_mean(self):
        scores = [make_user_score("a", 0.8, multiplier=0.0), make_user_score("b", 0.4, multiplier=0.0)]
        assert AggregationEngine.aggregate(scores) == pytest.approx(0.6)

    def test_empty_is_zero(self):
        assert AggregationEngine.aggregate([]) == 0.0

    def test_boosted_member_swings_the_ranking(self, scorer, aggregator, split_constraints, split_options):
        even = aggregator.rank(scorer.score_matrix(split_constraints, split_options), split_options)
        assert even[0].option.id == "sushi-bar"
        boosted = aggregator.rank(
            scorer.score_matrix(split_constraints, split_options, {"user-bob": 2.0}),
            split_options,
        )
        assert boosted[0].option.id == "steakhouse"


# ---------------------------------------------------------------------------
# Vetoes
# ---------------------------------------------------------------------------

class TestVetoAbsoluteness:

    def test_vetoed_option_never_selected(self, scorer, aggregator, selector):
        constraints = [make_constraint(uid, preferences={"steak"}) for uid in ("a", "b", "d", "e", "f")]
        constraints.insert(2, make_constraint("c", deal_breakers={"steak"}))
        options = [
            make_option("steakhouse", price=20, tags={"steak"}, rating=5.0),
            make_option("diner", price=20, tags={"burgers"}, rating=3.0),
        ]
        rankings = aggregator.rank(scorer.score_matrix(constraints, options), options)
        steak = next(r for r in rankings if r.option.id == "steakhouse")
        diner = next(r for r in rankings if r.option.id == "diner")
        assert steak.total_score > diner.total_score
        assert steak.excluded
        assert steak.vetoed_by == ("c",)
        assert rankings[-1] is steak

        selection = selector.select(rankings)
        assert selection.winner.option.id == "diner"
        assert selection.alternatives == ()

    def test_all_vetoed_raises(self, scorer, aggregator, selector):
        """Only option lacks the nut-free tag a member needs -> NoViableOption."""
        constraints = [make_constraint("a"), make_constraint("b", dietary={"nut-free"})]
        options = [make_option("thai", price=10, tags={"thai"})]
        rankings = aggregator.rank(scorer.score_matrix(constraints, options), options)
        with pytest.raises(NoViableOption) as exc_info:
            selector.select(rankings)
        assert exc_info.value.vetoes() == {"thai": ["b"]}
        assert "relax a deal-breaker or add options" in str(exc_info.value)


# ---------------------------------------------------------------------------
# Tie-breaks
# ---------------------------------------------------------------------------

class TestTieBreaks:

    def test_higher_rating_wins_tie(self, selector):
        selection = selector.select([_ranking("a", 0.7, rating=3.0), _ranking("b", 0.7, rating=4.0)])
        assert selection.winner.option.id == "b"

    def test_rated_beats_unrated(self, selector):
        selection = selector.select([_ranking("a", 0.7), _ranking("b", 0.7, rating=1.0)])
        assert selection.winner.option.id == "b"

    def test_lexical_id_last(self, selector):
        selection = selector.select([_ranking("zeta", 0.7), _ranking("alpha", 0.7)])
        assert selection.winner.option.id == "alpha"

    def test_float_noise_counts_as_tie(self, selector):
        selection = selector.select(
            [_ranking("a", 0.7 + 1e-12), _ranking("b", 0.7, rating=4.0)]
        )
        assert selection.winner.option.id == "b"


# ---------------------------------------------------------------------------
# Alternatives
# ---------------------------------------------------------------------------

class TestAlternatives:

    def test_very_close_second_choice(self, selector):
        """Winner 0.82, alternative 0.79 -> 3 point gap."""
        selection = selector.select([_ranking("win", 0.82), _ranking("alt", 0.79)])
        alt = selection.alternatives[0]
        assert alt.gap_points == 3
        assert alt.why == "Very close second choice (3% difference). Consider this if plans change."

    def test_solid_alternative(self, selector):
        selection = selector.select([_ranking("win", 0.9), _ranking("alt", 0.8)])
        assert selection.alternatives[0].why == (
            "Solid alternative with 10% lower satisfaction. Good backup option."
        )

    def test_distant_alternative(self, selector):
        selection = selector.select([_ranking("win", 0.9), _ranking("alt", 0.7)])
        assert selection.alternatives[0].why == "Alternative option with 20% lower overall satisfaction."

    def test_alternatives_descending_and_excluding_vetoed(self, selector):
        selection = selector.select([
            _ranking("b", 0.5),
            _ranking("vetoed", 0.95, vetoed_by=["u1"]),
            _ranking("a", 0.9),
            _ranking("c", 0.7),
        ])
        assert selection.winner.option.id == "a"
        assert [alt.option.id for alt in selection.alternatives] == ["c", "b"]

    def test_max_alternatives_limit(self, explainer):
        selector = Selector(Settings(max_alternatives=1), explainer)
        selection = selector.select([_ranking("a", 0.9), _ranking("b", 0.8), _ranking("c", 0.7)])
        assert [alt.option.id for alt in selection.alternatives] == ["b"]

    def test_alternative_to_dict(self, selector):
        selection = selector.select([_ranking("win", 0.82), _ranking("alt", 0.79)])
        d = selection.alternatives[0].to_dict()
        assert set(d) == {"option", "score", "why"}
        assert d["option"]["id"] == "alt"
