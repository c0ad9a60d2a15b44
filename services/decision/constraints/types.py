"""
Canonical constraint and option records.

These are the only shapes the scorer, aggregator and detectors consume.
Raw submissions are turned into them by ConstraintNormalizer; nothing
downstream re-validates. All records are frozen: a decision run works on an
immutable snapshot.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Any


def _finite_or_none(value: float) -> float | None:
    return value if math.isfinite(value) else None


@dataclass(frozen=True)
class BudgetRange:
    """Inclusive price window plus how much the member cares about it."""
    min: float = 0.0
    max: float = math.inf
    weight: float = 0.8

    @property
    def span(self) -> float:
        return self.max - self.min

    def contains(self, price: float) -> bool:
        return self.min <= price <= self.max

    def to_dict(self) -> dict[str, Any]:
        return {
            "min": self.min,
            "max": _finite_or_none(self.max),
            "weight": self.weight,
        }


@dataclass(frozen=True)
class GeoPoint:
    latitude: float
    longitude: float

    def to_dict(self) -> dict[str, float]:
        return {"latitude": self.latitude, "longitude": self.longitude}


@dataclass(frozen=True)
class LocationConstraint:
    """Where a member starts from and how far (km) they are willing to go."""
    origin: GeoPoint | None
    max_distance_km: float

    def to_dict(self) -> dict[str, Any]:
        origin = self.origin.to_dict() if self.origin else {"latitude": None, "longitude": None}
        return {**origin, "maxDistance": self.max_distance_km}


@dataclass(frozen=True)
class Constraint:
    """One member's requirements for a single decision."""
    user_id: str
    budget: BudgetRange = field(default_factory=BudgetRange)
    preferences: frozenset[str] = frozenset()
    dietary_requirements: frozenset[str] = frozenset()
    must_haves: frozenset[str] = frozenset()
    deal_breakers: frozenset[str] = frozenset()
    location: LocationConstraint | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "userId": self.user_id,
            "budget": self.budget.to_dict(),
            "preferences": sorted(self.preferences),
            "dietaryRequirements": sorted(self.dietary_requirements),
            "mustHaves": sorted(self.must_haves),
            "dealBreakers": sorted(self.deal_breakers),
            "location": self.location.to_dict() if self.location else None,
        }


@dataclass(frozen=True)
class Option:
    """A candidate the group can pick. Immutable for the life of a decision."""
    id: str
    name: str
    price: float | None = None
    tags: frozenset[str] = frozenset()
    rating: float | None = None
    location: GeoPoint | None = None
    distance_km: float | None = None
    """Precomputed distance; wins over great-circle distance when set."""

    @property
    def has_location_info(self) -> bool:
        return self.location is not None or self.distance_km is not None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "price": self.price,
            "tags": sorted(self.tags),
            "rating": self.rating,
            "location": self.location.to_dict() if self.location else None,
            "distance": self.distance_km,
        }
