"""
ConstraintNormalizer — validates raw submissions into canonical records.

Raw constraint and option payloads arrive in the camelCase shape the
constraint-collection service produces. Validation runs through pydantic so
that every violated field is collected in one pass; the resulting
ValidationError is re-raised as InvalidConstraint / InvalidOption listing
each offending field path (e.g. "constraints[1].budget.max").

Canonicalization rules:
  - budget bounds default to {0, +inf}; weight defaults to 0.8 (Settings)
  - string sets are stripped, lower-cased and deduplicated
  - empty / whitespace-only tokens are dropped
  - a location without maxDistance carries no constraint and is dropped
  - a location may omit its coordinates; only precomputed option
    distances can then be scored against it

A submission is either fully normalized or rejected; there is no partial
result.
"""

from __future__ import annotations

import logging
import math
from typing import Annotated, Any, Iterable

from pydantic import (
    BaseModel,
    BeforeValidator,
    ConfigDict,
    Field,
    ValidationError,
    field_validator,
    model_validator,
)

from services.decision.config import Settings, settings as default_settings
from services.decision.constraints.types import (
    BudgetRange,
    Constraint,
    GeoPoint,
    LocationConstraint,
    Option,
)
from services.decision.errors import FieldError, InvalidConstraint, InvalidOption

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Field coercion helpers
# ---------------------------------------------------------------------------

def _coerce_tokens(value: Any) -> list[str]:
    if value is None:
        return []
    if isinstance(value, str):
        value = [value]
    if not isinstance(value, (list, tuple, set, frozenset)):
        raise ValueError("expected a list of strings")
    tokens: list[str] = []
    for item in value:
        if not isinstance(item, str):
            raise ValueError("expected a list of strings")
        token = item.strip().lower()
        if token and token not in tokens:
            tokens.append(token)
    return tokens


def coerce_id(value: Any) -> Any:
    if isinstance(value, int) and not isinstance(value, bool):
        return str(value)
    if isinstance(value, str):
        return value.strip()
    return value


TokenSet = Annotated[frozenset[str], BeforeValidator(_coerce_tokens)]
NonNegFloat = Annotated[float, Field(ge=0.0, allow_inf_nan=False)]
UnitFloat = Annotated[float, Field(ge=0.0, le=1.0, allow_inf_nan=False)]
Latitude = Annotated[float, Field(ge=-90.0, le=90.0, allow_inf_nan=False)]
Longitude = Annotated[float, Field(ge=-180.0, le=180.0, allow_inf_nan=False)]
Rating = Annotated[float, Field(ge=0.0, le=5.0, allow_inf_nan=False)]


# ---------------------------------------------------------------------------
# Raw payload models
# ---------------------------------------------------------------------------

class _RawBudget(BaseModel):
    model_config = ConfigDict(extra="ignore")

    min: NonNegFloat | None = None
    max: Annotated[float, Field(ge=0.0)] | None = None
    weight: UnitFloat | None = None

    @field_validator("max")
    @classmethod
    def max_must_be_a_number(cls, v: float | None) -> float | None:
        if v is not None and math.isnan(v):
            raise ValueError("must be a number")
        return v

    @model_validator(mode="after")
    def bounds_must_be_ordered(self) -> "_RawBudget":
        low = 0.0 if self.min is None else self.min
        high = math.inf if self.max is None else self.max
        if low > high:
            raise ValueError("budget.min must not exceed budget.max")
        return self


class _RawGeoPoint(BaseModel):
    model_config = ConfigDict(extra="ignore")

    latitude: Latitude
    longitude: Longitude


class _RawLocation(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    latitude: Latitude | None = None
    longitude: Longitude | None = None
    max_distance: NonNegFloat | None = Field(default=None, alias="maxDistance")

    @model_validator(mode="after")
    def coordinates_come_in_pairs(self) -> "_RawLocation":
        if (self.latitude is None) != (self.longitude is None):
            raise ValueError("latitude and longitude must be given together")
        return self


class _RawConstraint(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    user_id: str = Field(alias="userId", min_length=1)
    budget: _RawBudget | None = None
    preferences: TokenSet = frozenset()
    dietary_requirements: TokenSet = Field(default=frozenset(), alias="dietaryRequirements")
    must_haves: TokenSet = Field(default=frozenset(), alias="mustHaves")
    deal_breakers: TokenSet = Field(default=frozenset(), alias="dealBreakers")
    location: _RawLocation | None = None

    @field_validator("user_id", mode="before")
    @classmethod
    def coerce_user_id(cls, v: Any) -> Any:
        return coerce_id(v)


class _RawOption(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    id: str = Field(min_length=1)
    name: str = Field(min_length=1)
    price: NonNegFloat | None = None
    tags: TokenSet = frozenset()
    rating: Rating | None = None
    location: _RawGeoPoint | None = None
    distance: NonNegFloat | None = None

    @field_validator("id", "name", mode="before")
    @classmethod
    def coerce_text(cls, v: Any) -> Any:
        return coerce_id(v)


# ---------------------------------------------------------------------------
# Error translation
# ---------------------------------------------------------------------------

_VALUE_ERROR_PREFIX = "Value error, "


def field_errors(exc: ValidationError, prefix: str = "") -> list[FieldError]:
    """Flatten a pydantic ValidationError into dotted/indexed field paths."""
    errors: list[FieldError] = []
    for err in exc.errors():
        path = prefix
        for part in err["loc"]:
            if isinstance(part, int):
                path = f"{path}[{part}]"
            else:
                path = f"{path}.{part}" if path else str(part)
        message = err["msg"]
        if message.startswith(_VALUE_ERROR_PREFIX):
            message = message[len(_VALUE_ERROR_PREFIX):]
        errors.append(FieldError(field=path or "<root>", message=message))
    return errors


# ---------------------------------------------------------------------------
# Normalizer
# ---------------------------------------------------------------------------

class ConstraintNormalizer:
    """
    Turns raw constraint and option payloads into canonical records.

    Usage:
        normalizer = ConstraintNormalizer()
        constraint = normalizer.normalize({"userId": "u1", "preferences": ["Sushi "]})
        constraint.preferences  # frozenset({"sushi"})
    """

    def __init__(self, config: Settings | None = None) -> None:
        self._settings = config or default_settings

    # -- constraints ---------------------------------------------------------

    def normalize(self, raw: Any, *, path: str = "") -> Constraint:
        """Validate one submission. Raises InvalidConstraint listing every bad field."""
        if isinstance(raw, Constraint):
            return raw
        try:
            parsed = _RawConstraint.model_validate(raw)
        except ValidationError as exc:
            raise InvalidConstraint(field_errors(exc, path)) from None
        return self._to_constraint(parsed)

    def normalize_many(self, raws: Iterable[Any]) -> list[Constraint]:
        """
        Validate every submission for a decision.

        Errors from all submissions are collected before raising, and a
        second submission for the same userId is rejected.
        """
        constraints: list[Constraint] = []
        errors: list[FieldError] = []
        seen: set[str] = set()
        for i, raw in enumerate(raws):
            path = f"constraints[{i}]"
            try:
                constraint = self.normalize(raw, path=path)
            except InvalidConstraint as exc:
                errors.extend(exc.errors)
                continue
            if constraint.user_id in seen:
                errors.append(FieldError(f"{path}.userId", f"duplicate submission for {constraint.user_id!r}"))
                continue
            seen.add(constraint.user_id)
            constraints.append(constraint)

        if errors:
            logger.info("Rejected constraint submissions: %d field errors", len(errors))
            raise InvalidConstraint(errors)
        return constraints

    def _to_constraint(self, raw: _RawConstraint) -> Constraint:
        budget = raw.budget
        location = None
        if raw.location is not None and raw.location.max_distance is not None:
            origin = None
            if raw.location.latitude is not None:
                origin = GeoPoint(raw.location.latitude, raw.location.longitude)
            location = LocationConstraint(
                origin=origin,
                max_distance_km=raw.location.max_distance,
            )
        constraint = Constraint(
            user_id=raw.user_id,
            budget=BudgetRange(
                min=budget.min if budget and budget.min is not None else 0.0,
                max=budget.max if budget and budget.max is not None else math.inf,
                weight=(
                    budget.weight
                    if budget and budget.weight is not None
                    else self._settings.default_budget_weight
                ),
            ),
            preferences=raw.preferences,
            dietary_requirements=raw.dietary_requirements,
            must_haves=raw.must_haves,
            deal_breakers=raw.deal_breakers,
            location=location,
        )
        logger.debug(
            "Normalized constraint: user=%s prefs=%d dietary=%d deal_breakers=%d",
            constraint.user_id,
            len(constraint.preferences),
            len(constraint.dietary_requirements),
            len(constraint.deal_breakers),
        )
        return constraint

    # -- options -------------------------------------------------------------

    def normalize_option(self, raw: Any, *, path: str = "") -> Option:
        """Validate one option record. Raises InvalidOption listing every bad field."""
        if isinstance(raw, Option):
            return raw
        try:
            parsed = _RawOption.model_validate(raw)
        except ValidationError as exc:
            raise InvalidOption(field_errors(exc, path)) from None
        return Option(
            id=parsed.id,
            name=parsed.name,
            price=parsed.price,
            tags=parsed.tags,
            rating=parsed.rating,
            location=(
                GeoPoint(parsed.location.latitude, parsed.location.longitude)
                if parsed.location is not None
                else None
            ),
            distance_km=parsed.distance,
        )

    def normalize_options(self, raws: Iterable[Any]) -> list[Option]:
        options: list[Option] = []
        errors: list[FieldError] = []
        seen: set[str] = set()
        for i, raw in enumerate(raws):
            path = f"options[{i}]"
            try:
                option = self.normalize_option(raw, path=path)
            except InvalidOption as exc:
                errors.extend(exc.errors)
                continue
            if option.id in seen:
                errors.append(FieldError(f"{path}.id", f"duplicate option id {option.id!r}"))
                continue
            seen.add(option.id)
            options.append(option)

        if errors:
            logger.info("Rejected option records: %d field errors", len(errors))
            raise InvalidOption(errors)
        return options
