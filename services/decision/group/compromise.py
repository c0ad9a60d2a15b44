"""
Compromise Generator — heuristic remediation for detected conflicts.

Not search-optimal. Each conflict is run through a fixed rule table, in
order; every rule whose condition matches contributes one compromise, so
output order is the table order:

  1. split_difference   an option every participant scores above the floor
                        (0.5). Best = highest minimum participant score, then
                        higher group total, then option id.
  2. budget_extension   a participant's budgetScore < 0.5 blocks the other
                        side's favorite. Suggests the smallest budget
                        relaxation that lifts it (ties -> the member who
                        weights budget least, then member order).
  3. rotate             both favorites are viable: take one now and the other
                        next time. The side whose members carry the higher
                        mean influence multiplier goes first.

supportCount = members whose score for the compromise option is >= 0.6
(for budget_extension, scored with the relaxed budget).

difficulty = low  if supportCount == group size
             medium if supportCount is a strict majority
             high otherwise
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from typing import Any, Callable, Iterable

from services.decision.config import Settings, settings as default_settings
from services.decision.constraints.types import Constraint, Option
from services.decision.group.aggregation import OptionRanking, selection_key
from services.decision.group.conflict_detector import Conflict
from services.decision.scoring.option_scorer import OptionScorer
from services.decision.scoring.types import UserScore

logger = logging.getLogger(__name__)

TYPE_SPLIT = "split_difference"
TYPE_BUDGET = "budget_extension"
TYPE_ROTATE = "rotate"

DIFFICULTY_LOW = "low"
DIFFICULTY_MEDIUM = "medium"
DIFFICULTY_HIGH = "high"


# ---------------------------------------------------------------------------
# Types
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Compromise:
    id: str
    type: str
    suggestion: str
    support_count: int
    difficulty: str
    option_id: str
    conflict_id: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "type": self.type,
            "suggestion": self.suggestion,
            "supportCount": self.support_count,
            "difficulty": self.difficulty,
            "optionId": self.option_id,
            "conflictId": self.conflict_id,
        }


@dataclass(frozen=True)
class _Match:
    option_id: str
    params: dict[str, Any]
    support_count: int


@dataclass
class _Context:
    """Everything a rule may look at for one scoring run."""
    settings: Settings
    scorer: OptionScorer
    rankings: dict[str, OptionRanking]
    constraints: dict[str, Constraint]
    user_order: list[str]

    @property
    def group_size(self) -> int:
        return len(self.user_order)

    def option(self, option_id: str) -> Option:
        return self.rankings[option_id].option

    def score(self, user_id: str, option_id: str) -> UserScore:
        us = self.rankings[option_id].score_for(user_id)
        if us is None:
            raise KeyError(f"No score for user={user_id} option={option_id}")
        return us

    def support(self, scores: Iterable[UserScore]) -> int:
        return sum(1 for us in scores if us.score >= self.settings.support_threshold)


@dataclass(frozen=True)
class CompromiseRule:
    """condition -> {type, template}. The condition returns None when it does not apply."""
    type: str
    template: str
    condition: Callable[[Conflict, _Context], _Match | None]


def _money(amount: float) -> str:
    if float(amount).is_integer():
        return f"${amount:,.0f}"
    return f"${amount:,.2f}"


# ---------------------------------------------------------------------------
# Rule conditions
# ---------------------------------------------------------------------------

def _split_the_difference(conflict: Conflict, ctx: _Context) -> _Match | None:
    floor = ctx.settings.compromise_floor
    best: tuple[tuple[float, float, str], OptionRanking] | None = None
    for ranking in ctx.rankings.values():
        if ranking.excluded:
            continue
        scores = [ctx.score(uid, ranking.option.id).score for uid in conflict.user_ids]
        lowest = min(scores)
        if lowest <= floor:
            continue
        key = (-lowest, -ranking.total_score, ranking.option.id)
        if best is None or key < best[0]:
            best = (key, ranking)
    if best is None:
        return None
    ranking = best[1]
    return _Match(
        option_id=ranking.option.id,
        params={"option": ranking.option.name, "floor": round(floor * 100)},
        support_count=ctx.support(ranking.user_scores),
    )


def _budget_extension(conflict: Conflict, ctx: _Context) -> _Match | None:
    threshold = ctx.settings.budget_conflict_threshold
    candidates = []
    for participant in conflict.participants:
        constraint = ctx.constraints[participant.user_id]
        for option_id in conflict.option_ids:
            if option_id == participant.preferred_option_id:
                continue
            us = ctx.score(participant.user_id, option_id)
            price = ctx.option(option_id).price
            if us.vetoed or price is None or us.breakdown.budget_score >= threshold:
                continue
            budget = constraint.budget
            if price > budget.max:
                relaxed, bound, old = replace(budget, max=price), "cap", budget.max
            else:
                relaxed, bound, old = replace(budget, min=price), "minimum", budget.min
            candidates.append(
                (
                    (abs(price - old), budget.weight, ctx.user_order.index(participant.user_id), option_id),
                    participant.user_id,
                    option_id,
                    relaxed,
                    bound,
                    old,
                    price,
                )
            )
    if not candidates:
        return None

    _, user_id, option_id, relaxed, bound, old, new = min(candidates, key=lambda c: c[0])
    option = ctx.option(option_id)
    original = ctx.score(user_id, option_id)
    rescored = ctx.scorer.score(
        replace(ctx.constraints[user_id], budget=relaxed),
        option,
        original.influence_multiplier,
    )
    scores = [
        rescored if us.user_id == user_id else us
        for us in ctx.rankings[option_id].user_scores
    ]
    return _Match(
        option_id=option_id,
        params={
            "user": user_id,
            "bound": bound,
            "old": _money(old),
            "new": _money(new),
            "option": option.name,
        },
        support_count=ctx.support(scores),
    )


def _rotate(conflict: Conflict, ctx: _Context) -> _Match | None:
    rankings = [ctx.rankings[oid] for oid in conflict.option_ids]
    if any(r.excluded for r in rankings):
        return None

    def side_priority(ranking: OptionRanking) -> tuple[float, tuple[float, float, str]]:
        side = [p.user_id for p in conflict.participants if p.preferred_option_id == ranking.option.id]
        multipliers = [ctx.score(uid, ranking.option.id).influence_multiplier for uid in side]
        mean = sum(multipliers) / len(multipliers) if multipliers else 0.0
        return (-mean, selection_key(ranking))

    now, later = sorted(rankings, key=side_priority)
    deferred = sum(1 for p in conflict.participants if p.preferred_option_id == later.option.id)
    return _Match(
        option_id=now.option.id,
        params={"now": now.option.name, "later": later.option.name, "deferred": deferred},
        support_count=ctx.support(now.user_scores),
    )


RULES: tuple[CompromiseRule, ...] = (
    CompromiseRule(
        type=TYPE_SPLIT,
        template='Meet in the middle with "{option}": everyone in this disagreement scores it above {floor}%',
        condition=_split_the_difference,
    ),
    CompromiseRule(
        type=TYPE_BUDGET,
        template='Stretch {user}\'s budget {bound} from {old} to {new} so "{option}" fits',
        condition=_budget_extension,
    ),
    CompromiseRule(
        type=TYPE_ROTATE,
        template=(
            'Take turns: go with "{now}" this time and "{later}" next time; '
            'the {deferred} member(s) who prefer "{later}" get priority in the next decision'
        ),
        condition=_rotate,
    ),
)


# ---------------------------------------------------------------------------
# Generator
# ---------------------------------------------------------------------------

class CompromiseGenerator:
    """
    Runs every conflict through the rule table.

    Usage:
        compromises = CompromiseGenerator().generate(conflicts, rankings, constraints)
    """

    def __init__(
        self,
        config: Settings | None = None,
        scorer: OptionScorer | None = None,
        rules: tuple[CompromiseRule, ...] = RULES,
    ) -> None:
        self._settings = config or default_settings
        self._scorer = scorer or OptionScorer(self._settings)
        self._rules = rules

    def difficulty(self, support_count: int, group_size: int) -> str:
        if group_size > 0 and support_count >= group_size:
            return DIFFICULTY_LOW
        if support_count * 2 > group_size:
            return DIFFICULTY_MEDIUM
        return DIFFICULTY_HIGH

    def generate(
        self,
        conflicts: Iterable[Conflict],
        rankings: Iterable[OptionRanking],
        constraints: Iterable[Constraint],
    ) -> list[Compromise]:
        constraints = list(constraints)
        ctx = _Context(
            settings=self._settings,
            scorer=self._scorer,
            rankings={r.option.id: r for r in rankings},
            constraints={c.user_id: c for c in constraints},
            user_order=[c.user_id for c in constraints],
        )

        compromises: list[Compromise] = []
        for conflict in conflicts:
            for rule in self._rules:
                match = rule.condition(conflict, ctx)
                logger.debug(
                    "Compromise rule %s on %s: %s",
                    rule.type,
                    conflict.id,
                    "matched" if match else "skipped",
                )
                if match is None:
                    continue
                compromises.append(
                    Compromise(
                        id=f"{conflict.id}-{rule.type}",
                        type=rule.type,
                        suggestion=rule.template.format(**match.params),
                        support_count=match.support_count,
                        difficulty=self.difficulty(match.support_count, ctx.group_size),
                        option_id=match.option_id,
                        conflict_id=conflict.id,
                    )
                )
        return compromises
