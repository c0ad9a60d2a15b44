# explanation package — plain-language reasoning for decisions and fairness
from services.decision.explanation.generator import (
    CompromiseNote,
    DecisionSummary,
    ExplanationGenerator,
    gap_points,
)

__all__ = [
    "CompromiseNote",
    "DecisionSummary",
    "ExplanationGenerator",
    "gap_points",
]
