"""Relaxation strategies.

Each constraint field maps to exactly one strategy shape:

- NumericStep:      scale a numeric bound by fixed multipliers
- EnumExpand:       widen an ordered enum set by up to N positions
- Remove:           drop the requirement
- DerivedOverride:  switch off the inference rule that produced the constraint
- SkillRelaxation:  lower proficiency, move to preferred, or remove a skill

Rationale templates use `{placeholder}` substitution; the placeholders each
shape accepts are listed in its PLACEHOLDERS and checked at construction.
"""

from __future__ import annotations

from dataclasses import dataclass
from string import Formatter
from typing import ClassVar, Mapping, Union

from hirelogic.state import PROFICIENCY_ORDER, START_TIMELINE_ORDER, ResolvedRequest

__all__ = [
    "StrategyConfigError",
    "NumericStep",
    "EnumExpand",
    "Remove",
    "DerivedOverride",
    "SkillRelaxation",
    "RelaxationStrategy",
    "STRATEGY_KINDS",
    "DEFAULT_STRATEGIES",
]


class StrategyConfigError(ValueError):
    """Raised when a relaxation strategy is malformed."""


def _check_template(kind: str, template: str, allowed: frozenset[str]) -> None:
    if not isinstance(template, str) or not template:
        raise StrategyConfigError(f"{kind}: rationale template must be a non-empty string")
    try:
        names = {name for _, name, _, _ in Formatter().parse(template) if name is not None}
    except ValueError as e:
        raise StrategyConfigError(f"{kind}: malformed template {template!r}: {e}") from e
    unknown = names - allowed
    if unknown:
        raise StrategyConfigError(
            f"{kind}: unknown placeholder(s) {sorted(unknown)} in {template!r}; "
            f"allowed: {sorted(allowed)}"
        )


_REQUEST_FIELDS = frozenset(ResolvedRequest.__dataclass_fields__)


def _check_field(kind: str, name: str) -> None:
    if name not in _REQUEST_FIELDS:
        raise StrategyConfigError(
            f"{kind}: suggested_field '{name}' is not a request field; "
            f"expected one of {sorted(_REQUEST_FIELDS)}"
        )


def _multipliers(kind: str, name: str, values) -> tuple[float, ...]:
    out = tuple(values or ())
    for v in out:
        if isinstance(v, bool) or not isinstance(v, (int, float)) or v <= 0:
            raise StrategyConfigError(f"{kind}: {name} must hold positive numbers, got {v!r}")
    return tuple(float(v) for v in out)


@dataclass(frozen=True, slots=True)
class NumericStep:
    KIND: ClassVar[str] = "numeric-step"
    PLACEHOLDERS: ClassVar[frozenset[str]] = frozenset({"current", "suggested"})

    steps_down: tuple[float, ...]
    steps_up: tuple[float, ...]
    rationale_template: str
    suggested_field: str

    def __post_init__(self):
        object.__setattr__(self, "steps_down", _multipliers(self.KIND, "steps_down", self.steps_down))
        object.__setattr__(self, "steps_up", _multipliers(self.KIND, "steps_up", self.steps_up))
        if not self.steps_down and not self.steps_up:
            raise StrategyConfigError(f"{self.KIND}: needs steps_down or steps_up")
        _check_template(self.KIND, self.rationale_template, self.PLACEHOLDERS)
        _check_field(self.KIND, self.suggested_field)


@dataclass(frozen=True, slots=True)
class EnumExpand:
    KIND: ClassVar[str] = "enum-expand"
    PLACEHOLDERS: ClassVar[frozenset[str]] = frozenset({"current", "expanded", "suggested"})

    ordered_values: tuple[str, ...]
    max_expansion: int
    rationale_template: str
    suggested_field: str

    def __post_init__(self):
        object.__setattr__(self, "ordered_values", tuple(self.ordered_values))
        if len(set(self.ordered_values)) != len(self.ordered_values) or not self.ordered_values:
            raise StrategyConfigError(f"{self.KIND}: ordered_values must be non-empty and unique")
        if not isinstance(self.max_expansion, int) or self.max_expansion < 1:
            raise StrategyConfigError(f"{self.KIND}: max_expansion must be a positive integer")
        _check_template(self.KIND, self.rationale_template, self.PLACEHOLDERS)
        _check_field(self.KIND, self.suggested_field)


@dataclass(frozen=True, slots=True)
class Remove:
    KIND: ClassVar[str] = "remove"
    PLACEHOLDERS: ClassVar[frozenset[str]] = frozenset({"current"})

    rationale_template: str
    suggested_field: str

    def __post_init__(self):
        _check_template(self.KIND, self.rationale_template, self.PLACEHOLDERS)
        _check_field(self.KIND, self.suggested_field)


@dataclass(frozen=True, slots=True)
class DerivedOverride:
    KIND: ClassVar[str] = "derived-override"
    PLACEHOLDERS: ClassVar[frozenset[str]] = frozenset({"rule_id", "display_value"})

    rationale_template: str
    suggested_field: str = "overridden_rule_ids"

    def __post_init__(self):
        _check_template(self.KIND, self.rationale_template, self.PLACEHOLDERS)
        _check_field(self.KIND, self.suggested_field)


@dataclass(frozen=True, slots=True)
class SkillRelaxation:
    KIND: ClassVar[str] = "skill-relaxation"
    PLACEHOLDERS: ClassVar[frozenset[str]] = frozenset({"skill", "current", "suggested"})

    # Most to least demanding
    proficiency_order: tuple[str, ...]
    lower_proficiency_template: str
    move_to_preferred_template: str
    remove_template: str

    def __post_init__(self):
        object.__setattr__(self, "proficiency_order", tuple(self.proficiency_order))
        if not set(self.proficiency_order) <= set(PROFICIENCY_ORDER):
            raise StrategyConfigError(
                f"{self.KIND}: proficiency_order must only use {PROFICIENCY_ORDER}"
            )
        for t in (
            self.lower_proficiency_template,
            self.move_to_preferred_template,
            self.remove_template,
        ):
            _check_template(self.KIND, t, self.PLACEHOLDERS)


RelaxationStrategy = Union[NumericStep, EnumExpand, Remove, DerivedOverride, SkillRelaxation]

STRATEGY_KINDS: dict[str, type] = {
    cls.KIND: cls for cls in (NumericStep, EnumExpand, Remove, DerivedOverride, SkillRelaxation)
}

# Field identity -> strategy. yearsExperience has none: seniority is requested
# as a level but tested as a years range, so stepping the years has no request
# field to land in and a lower level is not a superset of a higher one.
DEFAULT_STRATEGIES: Mapping[str, RelaxationStrategy] = {
    "salary": NumericStep(
        steps_down=(0.8, 0.6),
        steps_up=(1.2, 1.5),
        rationale_template="Increase budget from ${current} to ${suggested}",
        suggested_field="max_budget",
    ),
    "startTimeline": EnumExpand(
        ordered_values=START_TIMELINE_ORDER,
        max_expansion=2,
        rationale_template="Expand start timeline to include {expanded}",
        suggested_field="required_max_start_time",
    ),
    "timezone": Remove(
        rationale_template="Remove timezone restriction (currently: {current})",
        suggested_field="required_timezone",
    ),
    "requiredDomains": Remove(
        rationale_template="Remove {current} domain requirement",
        suggested_field="required_domains",
    ),
    "derivedSkills": DerivedOverride(
        rationale_template="Override inference rule: {display_value}",
    ),
    "requiredSkills": SkillRelaxation(
        proficiency_order=("expert", "proficient", "learning"),
        lower_proficiency_template="Lower {skill} proficiency from {current} to {suggested}",
        move_to_preferred_template="Move {skill} from required to preferred",
        remove_template="Remove {skill} requirement",
    ),
}
