# group package — fairness tracking, aggregation, conflicts and compromises
from services.decision.group.aggregation import (
    AggregationEngine,
    Alternative,
    OptionRanking,
    Selection,
    Selector,
)
from services.decision.group.compromise import Compromise, CompromiseGenerator, CompromiseRule, RULES
from services.decision.group.conflict_detector import Conflict, ConflictDetector, ConflictParticipant
from services.decision.group.fairness import (
    FairnessInsight,
    FairnessMetrics,
    FairnessState,
    FairnessTracker,
    FairnessUpdate,
    GroupBalance,
)

__all__ = [
    "AggregationEngine",
    "Alternative",
    "Compromise",
    "CompromiseGenerator",
    "CompromiseRule",
    "Conflict",
    "ConflictDetector",
    "ConflictParticipant",
    "FairnessInsight",
    "FairnessMetrics",
    "FairnessState",
    "FairnessTracker",
    "FairnessUpdate",
    "GroupBalance",
    "OptionRanking",
    "RULES",
    "Selection",
    "Selector",
]
