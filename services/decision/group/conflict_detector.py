"""
Conflict Detector — finds members whose favorite options are mutually unacceptable.

Detection logic:
  Each member's favorite is their argmax option (ties -> rating, then id).
  A pair of members (u, v) conflicts when:
    favorite[u] != favorite[v], and
    score(u, favorite[v]) < 0.5 and score(v, favorite[u]) < 0.5

  Pairs that disagree over the same two options are merged into one
  conflict, so independent sub-groups surface as separate conflicts.

Severity:
  high    a reciprocal pair is vetoed (deal-breaker / dietary rule)
  medium  a reciprocal budgetScore < 0.5
  low     pure preference mismatch

Determinism guarantee:
  Members are visited in constraint order, options in input order.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Iterable

from services.decision.config import Settings, settings as default_settings
from services.decision.constraints.types import Option
from services.decision.scoring.option_scorer import ScoreMatrix
from services.decision.scoring.types import UserScore

logger = logging.getLogger(__name__)

SEVERITY_LOW = "low"
SEVERITY_MEDIUM = "medium"
SEVERITY_HIGH = "high"

BLOCKER_VETO = "veto"
BLOCKER_BUDGET = "budget"
BLOCKER_PREFERENCE = "preference"

_DESCRIPTIONS = {
    SEVERITY_HIGH: (
        'Members are split between "{a}" and "{b}", and a deal-breaker or '
        "dietary rule rules one side out"
    ),
    SEVERITY_MEDIUM: (
        'Members are split between "{a}" and "{b}", and the price pushes one '
        "side outside their budget"
    ),
    SEVERITY_LOW: 'Members are split between "{a}" and "{b}" on preferences',
}


# ---------------------------------------------------------------------------
# Result types
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ConflictParticipant:
    user_id: str
    preference: str
    """Human-readable: which option this member wants."""
    preferred_option_id: str

    def to_dict(self) -> dict[str, str]:
        return {"userId": self.user_id, "preference": self.preference}


@dataclass(frozen=True)
class Conflict:
    id: str
    description: str
    severity: str
    participants: tuple[ConflictParticipant, ...]
    option_ids: tuple[str, str]
    blockers: frozenset[str]

    @property
    def user_ids(self) -> tuple[str, ...]:
        return tuple(p.user_id for p in self.participants)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "description": self.description,
            "severity": self.severity,
            "participants": [p.to_dict() for p in self.participants],
            "optionIds": list(self.option_ids),
        }


@dataclass
class _Cluster:
    option_ids: tuple[str, str]
    members: list[str]
    blockers: set[str]


# ---------------------------------------------------------------------------
# Detector
# ---------------------------------------------------------------------------

def favorite_key(us: UserScore, option: Option) -> tuple[float, float, str]:
    rating = option.rating if option.rating is not None else -1.0
    return (-us.score, -rating, option.id)


class ConflictDetector:
    """
    Detects irreconcilable favorites within a group.

    Usage:
        conflicts = ConflictDetector().detect(matrix, options)
        for c in conflicts:
            print(c.severity, c.description)
    """

    def __init__(self, config: Settings | None = None) -> None:
        self._settings = config or default_settings

    def favorites(self, matrix: ScoreMatrix, options: Iterable[Option]) -> dict[str, str]:
        """user_id -> id of the option that member scores highest."""
        best: dict[str, tuple[tuple[float, float, str], str]] = {}
        for option in options:
            for us in matrix.get(option.id, ()):
                key = favorite_key(us, option)
                current = best.get(us.user_id)
                if current is None or key < current[0]:
                    best[us.user_id] = (key, option.id)
        return {uid: option_id for uid, (_, option_id) in best.items()}

    def _pair_blockers(self, a: UserScore, b: UserScore) -> set[str]:
        if a.vetoed or b.vetoed:
            return {BLOCKER_VETO}
        threshold = self._settings.budget_conflict_threshold
        if a.breakdown.budget_score < threshold or b.breakdown.budget_score < threshold:
            return {BLOCKER_BUDGET}
        return {BLOCKER_PREFERENCE}

    def detect(self, matrix: ScoreMatrix, options: Iterable[Option]) -> list[Conflict]:
        options = list(options)
        by_id = {o.id: o for o in options}
        position = {o.id: i for i, o in enumerate(options)}
        favorites = self.favorites(matrix, options)

        # score lookup: (user_id, option_id) -> UserScore
        lookup: dict[tuple[str, str], UserScore] = {
            (us.user_id, option_id): us
            for option_id, scores in matrix.items()
            for us in scores
        }
        first_scores = matrix.get(options[0].id, []) if options else []
        user_order = [us.user_id for us in first_scores]

        floor = self._settings.conflict_score_floor
        clusters: dict[tuple[str, str], _Cluster] = {}
        for i, u in enumerate(user_order):
            for v in user_order[i + 1:]:
                fav_u, fav_v = favorites[u], favorites[v]
                if fav_u == fav_v:
                    continue
                u_on_v = lookup[(u, fav_v)]
                v_on_u = lookup[(v, fav_u)]
                if u_on_v.score >= floor or v_on_u.score >= floor:
                    continue

                pair = tuple(sorted((fav_u, fav_v), key=position.__getitem__))
                cluster = clusters.setdefault(pair, _Cluster(pair, [], set()))
                for uid in (u, v):
                    if uid not in cluster.members:
                        cluster.members.append(uid)
                cluster.blockers |= self._pair_blockers(u_on_v, v_on_u)
                logger.debug(
                    "Conflict pair: %s (%s) vs %s (%s) reciprocal=%.2f/%.2f",
                    u, fav_u, v, fav_v, u_on_v.score, v_on_u.score,
                )

        conflicts: list[Conflict] = []
        for pair in sorted(clusters, key=lambda p: (position[p[0]], position[p[1]])):
            cluster = clusters[pair]
            severity = self._severity(cluster.blockers)
            a, b = (by_id[oid] for oid in pair)
            members = sorted(cluster.members, key=user_order.index)
            conflicts.append(
                Conflict(
                    id=f"conflict-{a.id}-vs-{b.id}",
                    description=_DESCRIPTIONS[severity].format(a=a.name, b=b.name),
                    severity=severity,
                    participants=tuple(
                        ConflictParticipant(
                            user_id=uid,
                            preference=f'prefers "{by_id[favorites[uid]].name}"',
                            preferred_option_id=favorites[uid],
                        )
                        for uid in members
                    ),
                    option_ids=pair,
                    blockers=frozenset(cluster.blockers),
                )
            )

        if conflicts:
            logger.info(
                "Detected %d conflict(s): %s",
                len(conflicts),
                ", ".join(f"{c.id}={c.severity}" for c in conflicts),
            )
        return conflicts

    @staticmethod
    def _severity(blockers: set[str]) -> str:
        if BLOCKER_VETO in blockers:
            return SEVERITY_HIGH
        if BLOCKER_BUDGET in blockers:
            return SEVERITY_MEDIUM
        return SEVERITY_LOW
