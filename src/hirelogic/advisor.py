"""Relaxation advisor.

Turns a constraint plus its field's strategy into concrete suggestions, and
ranks the suggestions for a whole diagnosis. Generation and ranking are pure.
`measure_suggestions` is the one async step: it asks the count oracle how
many candidates each suggestion would unlock and re-ranks by that.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, replace
from typing import Any, Callable, Iterable, List, Mapping, Optional, Sequence

from hirelogic.diagnosis import CountOracle, checked_count
from hirelogic.model.constraints import DecomposedConstraintSet, TestableConstraint
from hirelogic.state import SkillRequirement, format_number
from hirelogic.strategies import (
    DEFAULT_STRATEGIES,
    DerivedOverride,
    EnumExpand,
    NumericStep,
    RelaxationStrategy,
    Remove,
    SkillRelaxation,
)

logger = logging.getLogger(__name__)

CEILING_OPERATORS = ("<=", "<")
FLOOR_OPERATORS = (">=", ">", "BETWEEN")


@dataclass(frozen=True, slots=True)
class RelaxationSuggestion:
    """One way to loosen one constraint.

    Attributes:
        constraint_id: The constraint this suggestion relaxes
        strategy: KIND of the strategy that produced it
        action: What to do ("step", "expand", "remove", "override",
            "lower-proficiency", "move-to-preferred", "remove-skill")
        suggested_field: Request field to change
        suggested_value: New value for that field (None means clear it)
        rationale: Human-readable explanation
        skill: Skill id, only for skill relaxations
        rule_id: Rule to override, only for derived overrides
        resulting_matches: Candidates matched with this suggestion applied and
            every other constraint kept (None until measured)
    """

    constraint_id: str
    strategy: str
    action: str
    suggested_field: str
    suggested_value: Any
    rationale: str
    skill: Optional[str] = None
    rule_id: Optional[str] = None
    resulting_matches: Optional[int] = None


def _join(value: Any) -> str:
    if isinstance(value, (tuple, list, frozenset, set)):
        return ", ".join(str(v) for v in value)
    if isinstance(value, float):
        return format_number(value)
    return str(value)


def _numeric_step(c: TestableConstraint, s: NumericStep) -> List[RelaxationSuggestion]:
    if c.operator in CEILING_OPERATORS:
        current, steps, rounding = c.value, s.steps_up, math.ceil
    elif c.operator in FLOOR_OPERATORS:
        # A BETWEEN range relaxes its lower bound
        current = c.value[0] if c.operator == "BETWEEN" else c.value
        steps, rounding = s.steps_down, math.floor
    else:
        logger.debug("No numeric direction for operator '%s' on %s", c.operator, c.id)
        return []

    out: List[RelaxationSuggestion] = []
    seen: set[int] = set()
    for multiplier in steps:
        # Round first so float noise (1.2 * 100000) cannot push ceil one step too far
        suggested = rounding(round(current * multiplier, 6))
        if rounding is math.floor:
            suggested = max(suggested, 0)
        if suggested == current or suggested in seen:
            continue
        seen.add(suggested)
        out.append(
            RelaxationSuggestion(
                constraint_id=c.id,
                strategy=s.KIND,
                action="step",
                suggested_field=s.suggested_field,
                suggested_value=suggested,
                rationale=s.rationale_template.format(
                    current=format_number(current), suggested=suggested
                ),
            )
        )
    return out


def _enum_expand(c: TestableConstraint, s: EnumExpand) -> List[RelaxationSuggestion]:
    current = c.value if isinstance(c.value, (tuple, list)) else (c.value,)
    positions = [s.ordered_values.index(v) for v in current if v in s.ordered_values]
    if not positions:
        return []
    edge = max(positions)

    out: List[RelaxationSuggestion] = []
    for step in range(1, s.max_expansion + 1):
        if edge + step >= len(s.ordered_values):
            break
        added = s.ordered_values[edge + 1 : edge + step + 1]
        expanded = tuple(v for v in s.ordered_values if v in current or v in added)
        boundary = s.ordered_values[edge + step]
        out.append(
            RelaxationSuggestion(
                constraint_id=c.id,
                strategy=s.KIND,
                action="expand",
                suggested_field=s.suggested_field,
                suggested_value=boundary,
                rationale=s.rationale_template.format(
                    current=s.ordered_values[edge],
                    expanded=", ".join(expanded),
                    suggested=boundary,
                ),
            )
        )
    return out


def _remove(c: TestableConstraint, s: Remove) -> List[RelaxationSuggestion]:
    return [
        RelaxationSuggestion(
            constraint_id=c.id,
            strategy=s.KIND,
            action="remove",
            suggested_field=s.suggested_field,
            suggested_value=None,
            rationale=s.rationale_template.format(current=_join(c.value)),
        )
    ]


def _derived_override(c: TestableConstraint, s: DerivedOverride) -> List[RelaxationSuggestion]:
    if c.rule_id is None:
        return []
    return [
        RelaxationSuggestion(
            constraint_id=c.id,
            strategy=s.KIND,
            action="override",
            suggested_field=s.suggested_field,
            suggested_value=c.rule_id,
            rationale=s.rationale_template.format(rule_id=c.rule_id, display_value=c.rule_id),
            rule_id=c.rule_id,
        )
    ]


def _skill_relaxation(c: TestableConstraint, s: SkillRelaxation) -> List[RelaxationSuggestion]:
    req = c.value
    if not isinstance(req, SkillRequirement):
        return []
    out: List[RelaxationSuggestion] = []

    current = req.min_proficiency
    if current in s.proficiency_order:
        idx = s.proficiency_order.index(current)
        if idx + 1 < len(s.proficiency_order):
            lower = s.proficiency_order[idx + 1]
            out.append(
                RelaxationSuggestion(
                    constraint_id=c.id,
                    strategy=s.KIND,
                    action="lower-proficiency",
                    suggested_field="required_skills",
                    suggested_value=SkillRequirement(req.skill, lower),
                    rationale=s.lower_proficiency_template.format(
                        skill=req.skill, current=current, suggested=lower
                    ),
                    skill=req.skill,
                )
            )

    fill = {"skill": req.skill, "current": current or "any", "suggested": ""}
    out.append(
        RelaxationSuggestion(
            constraint_id=c.id,
            strategy=s.KIND,
            action="move-to-preferred",
            suggested_field="preferred_skills",
            suggested_value=req,
            rationale=s.move_to_preferred_template.format(**fill),
            skill=req.skill,
        )
    )
    out.append(
        RelaxationSuggestion(
            constraint_id=c.id,
            strategy=s.KIND,
            action="remove-skill",
            suggested_field="required_skills",
            suggested_value=None,
            rationale=s.remove_template.format(**fill),
            skill=req.skill,
        )
    )
    return out


_GENERATORS = {
    NumericStep: _numeric_step,
    EnumExpand: _enum_expand,
    Remove: _remove,
    DerivedOverride: _derived_override,
    SkillRelaxation: _skill_relaxation,
}


def suggest(
    constraint: TestableConstraint, strategy: Optional[RelaxationStrategy]
) -> List[RelaxationSuggestion]:
    """Generate suggestions for one constraint; an empty list when none apply."""
    if strategy is None:
        return []
    try:
        generate = _GENERATORS[type(strategy)]
    except KeyError as e:
        raise TypeError(f"Not a relaxation strategy: {strategy!r}") from e
    return generate(constraint, strategy)


def strategy_for(
    constraint: TestableConstraint,
    strategies: Optional[Mapping[str, RelaxationStrategy]] = None,
) -> Optional[RelaxationStrategy]:
    table = DEFAULT_STRATEGIES if strategies is None else strategies
    return table.get(constraint.field)


def explain_conflict(conflict: Sequence[TestableConstraint]) -> str:
    """Plain-language explanation of one minimal conflict set."""
    names = [c.description for c in conflict]
    if len(names) == 1:
        return f'The constraint "{names[0]}" alone is too restrictive.'
    joined = ", ".join(names[:-1]) + f" and {names[-1]}"
    return f"The combination of {joined} is too restrictive."


def rank_suggestions(
    conflicts: Sequence[Sequence[TestableConstraint]],
    strategies: Optional[Mapping[str, RelaxationStrategy]] = None,
    constraint_order: Optional[Iterable[str]] = None,
) -> List[RelaxationSuggestion]:
    """Suggestions for every constraint in `conflicts`, best first.

    Constraints appearing in more conflict sets rank higher, since relaxing
    them resolves more of the diagnosis; ties keep constraint order, then
    generation order.
    """
    hits: dict[str, int] = {}
    members: dict[str, TestableConstraint] = {}
    for conflict in conflicts:
        for c in conflict:
            hits[c.id] = hits.get(c.id, 0) + 1
            members.setdefault(c.id, c)

    order = list(constraint_order) if constraint_order is not None else list(members)
    position = {cid: i for i, cid in enumerate(order)}

    ranked: List[tuple[int, int, int, RelaxationSuggestion]] = []
    for cid, c in members.items():
        for n, suggestion in enumerate(suggest(c, strategy_for(c, strategies))):
            ranked.append((-hits[cid], position.get(cid, len(position)), n, suggestion))
    ranked.sort(key=lambda item: item[:3])
    return [item[3] for item in ranked]


def relax_constraint(
    constraint: TestableConstraint,
    suggestion: RelaxationSuggestion,
    strategies: Optional[Mapping[str, RelaxationStrategy]] = None,
) -> Optional[TestableConstraint]:
    """`constraint` as it is tested once `suggestion` is applied.

    Returns None when the suggestion drops the constraint (remove, override,
    move-to-preferred, remove-skill).
    """
    if suggestion.action == "step":
        if constraint.operator == "BETWEEN":
            return replace(constraint, value=(suggestion.suggested_value, constraint.value[1]))
        return replace(constraint, value=suggestion.suggested_value)
    if suggestion.action == "lower-proficiency":
        return replace(constraint, value=suggestion.suggested_value)
    if suggestion.action == "expand":
        strategy = strategy_for(constraint, strategies)
        if constraint.operator != "IN" or not isinstance(strategy, EnumExpand):
            return replace(constraint, value=suggestion.suggested_value)
        order = strategy.ordered_values
        current = constraint.value
        if not isinstance(current, (tuple, list)):
            current = (current,)
        edge = max(order.index(v) for v in current if v in order)
        boundary = order.index(suggestion.suggested_value)
        widened = tuple(
            v for i, v in enumerate(order) if v in current or edge < i <= boundary
        )
        return replace(constraint, value=widened)
    return None


async def measure_suggestions(
    decomposed: DecomposedConstraintSet,
    oracle_factory: Callable[[DecomposedConstraintSet], CountOracle],
    suggestions: Sequence[RelaxationSuggestion],
    strategies: Optional[Mapping[str, RelaxationStrategy]] = None,
) -> List[RelaxationSuggestion]:
    """Count the candidates each suggestion unlocks and re-rank by that count.

    Each suggestion is tested against the whole decomposition with only its
    own constraint relaxed or dropped. Suggestions that still match nobody
    are discarded. The rest are sorted by `resulting_matches`, highest first;
    ties keep their incoming order.

    Raises:
        OracleError: on any oracle failure; nothing partial is returned.
    """
    measured: List[RelaxationSuggestion] = []
    for suggestion in suggestions:
        target = decomposed.by_id[suggestion.constraint_id]
        relaxed = relax_constraint(target, suggestion, strategies)
        variant = DecomposedConstraintSet(
            tuple(
                c if c.id != target.id else relaxed
                for c in decomposed
                if c.id != target.id or relaxed is not None
            )
        )
        matches = await checked_count(oracle_factory(variant), variant.ids)
        logger.debug(
            "%s (%s) -> %d match(es)", suggestion.constraint_id, suggestion.action, matches
        )
        if matches == 0:
            continue
        measured.append(replace(suggestion, resulting_matches=matches))

    measured.sort(key=lambda s: -s.resulting_matches)
    logger.info(
        "Measured %d suggestion(s); %d unlock at least one candidate",
        len(suggestions),
        len(measured),
    )
    return measured
