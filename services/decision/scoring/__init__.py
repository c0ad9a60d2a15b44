# scoring package — per-member option scoring and vetoes
from services.decision.scoring.option_scorer import DIETARY_VIOLATIONS, OptionScorer, ScoreMatrix
from services.decision.scoring.types import ScoreBreakdown, UserScore

__all__ = [
    "DIETARY_VIOLATIONS",
    "OptionScorer",
    "ScoreBreakdown",
    "ScoreMatrix",
    "UserScore",
]
