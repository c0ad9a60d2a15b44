# constraints package — canonical records and the normalizer that builds them
from services.decision.constraints.normalizer import ConstraintNormalizer
from services.decision.constraints.types import (
    BudgetRange,
    Constraint,
    GeoPoint,
    LocationConstraint,
    Option,
)

__all__ = [
    "BudgetRange",
    "Constraint",
    "ConstraintNormalizer",
    "GeoPoint",
    "LocationConstraint",
    "Option",
]
