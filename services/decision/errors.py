"""
Error taxonomy for the decision engine.

  InvalidInput       malformed constraint/option records (re-prompt the submitter)
  InsufficientData   zero constraints or zero options (caller error)
  NoViableOption     every option vetoed by some member (terminal for this run)

Internal numeric degeneracies are handled with neutral fallbacks and never
surface as exceptions.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True)
class FieldError:
    """One violated field in a raw submission."""
    field: str
    message: str

    def to_dict(self) -> dict[str, str]:
        return {"field": self.field, "message": self.message}


class DecisionEngineError(Exception):
    """Base class for every error the engine reports."""


class InvalidInput(DecisionEngineError):
    """A raw record failed validation. Lists every violated field."""

    kind = "input"

    def __init__(self, errors: list[FieldError]) -> None:
        self.errors = list(errors)
        fields = ", ".join(e.field for e in self.errors) or "<unknown>"
        super().__init__(f"Invalid {self.kind}: {fields}")

    def to_dict(self) -> dict[str, Any]:
        return {
            "error": type(self).__name__,
            "errors": [e.to_dict() for e in self.errors],
        }


class InvalidConstraint(InvalidInput):
    kind = "constraint"


class InvalidOption(InvalidInput):
    kind = "option"


class InsufficientData(DecisionEngineError):
    """Zero constraints or zero options were supplied."""

    def __init__(self, constraint_count: int, option_count: int) -> None:
        self.constraint_count = constraint_count
        self.option_count = option_count
        super().__init__(
            f"Engine needs at least one constraint and one option "
            f"(got {constraint_count} constraints, {option_count} options)"
        )


class NoViableOption(DecisionEngineError):
    """Every option was vetoed by at least one member."""

    message = "No option satisfies all hard constraints; relax a deal-breaker or add options."

    def __init__(self, rankings: list[Any] | None = None) -> None:
        self.rankings = list(rankings or [])
        super().__init__(self.message)

    def vetoes(self) -> dict[str, list[str]]:
        """option_id -> user_ids that vetoed it."""
        return {r.option.id: list(r.vetoed_by) for r in self.rankings}
