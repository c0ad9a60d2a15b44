"""
Shared fixtures for the decision engine test suite.

Provides:
- Settings built from defaults
- One instance of each engine component wired to those settings
- The two-member split scenario (conflicting favorites) as canonical records
"""

import os

import pytest

os.environ.setdefault("ENVIRONMENT", "development")

from services.decision.config import Settings
from services.decision.constraints.normalizer import ConstraintNormalizer
from services.decision.engine import DecisionEngine
from services.decision.explanation.generator import ExplanationGenerator
from services.decision.group.aggregation import AggregationEngine, Selector
from services.decision.group.compromise import CompromiseGenerator
from services.decision.group.conflict_detector import ConflictDetector
from services.decision.group.fairness import FairnessTracker
from services.decision.scoring.option_scorer import OptionScorer
from services.decision.tests.helpers.factories import make_constraint, make_option


@pytest.fixture
def config() -> Settings:
    return Settings()


@pytest.fixture
def normalizer(config) -> ConstraintNormalizer:
    return ConstraintNormalizer(config)


@pytest.fixture
def scorer(config) -> OptionScorer:
    return OptionScorer(config)


@pytest.fixture
def tracker(config) -> FairnessTracker:
    return FairnessTracker(config=config)


@pytest.fixture
def aggregator() -> AggregationEngine:
    return AggregationEngine()


@pytest.fixture
def explainer(config) -> ExplanationGenerator:
    return ExplanationGenerator(config)


@pytest.fixture
def selector(config, explainer) -> Selector:
    return Selector(config, explainer)


@pytest.fixture
def detector(config) -> ConflictDetector:
    return ConflictDetector(config)


@pytest.fixture
def compromiser(config, scorer) -> CompromiseGenerator:
    return CompromiseGenerator(config, scorer)


@pytest.fixture
def engine(config) -> DecisionEngine:
    return DecisionEngine(config)


# ---------------------------------------------------------------------------
# Split scenario: alice wants cheap sushi, bob wants expensive steak
# ---------------------------------------------------------------------------

@pytest.fixture
def split_constraints():
    return [
        make_constraint("user-alice", budget=(10, 20), preferences={"sushi"}),
        make_constraint("user-bob", budget=(50, 80), preferences={"steak"}),
    ]


@pytest.fixture
def split_options():
    return [
        make_option("sushi-bar", name="Sushi Bar", price=10, tags={"sushi"}),
        make_option("steakhouse", name="Steakhouse", price=60, tags={"steak"}),
    ]
