# decision package — group decision resolution engine
from services.decision.engine import DecisionEngine, DecisionRequest, DecisionResult
from services.decision.errors import (
    DecisionEngineError,
    FieldError,
    InsufficientData,
    InvalidConstraint,
    InvalidInput,
    InvalidOption,
    NoViableOption,
)

__all__ = [
    "DecisionEngine",
    "DecisionEngineError",
    "DecisionRequest",
    "DecisionResult",
    "FieldError",
    "InsufficientData",
    "InvalidConstraint",
    "InvalidInput",
    "InvalidOption",
    "NoViableOption",
]
