"""
Minimal rule contracts.

- ConditionTree: `All` / `Any` / `Leaf` predicates over the fact context.
- RuleEffect: what a rule concludes (target field, value, boost strength).
- RuleSpec: metadata + condition + effect for a rule instance.

Everything is validated at construction time, so a malformed fact path or an
unknown operator fails when the rule base is loaded, never mid-inference.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Iterator, Optional, Union

from hirelogic.state import (
    SENIORITY_ORDER,
    START_TIMELINE_ORDER,
    ResolvedRequest,
    RuleKind,
    normalize_property_key,
)

__all__ = [
    "RuleConfigError",
    "MISSING",
    "OPERATORS",
    "All",
    "Any_",
    "Leaf",
    "ConditionTree",
    "RuleEffect",
    "RuleSpec",
    "validate_fact_path",
]


class RuleConfigError(ValueError):
    """Raised when a rule definition cannot be used."""


class _Missing:
    def __repr__(self) -> str:
        return "MISSING"


# Returned by fact resolution when a path has no value; every operator is false on it
MISSING: Any = _Missing()

_REQUEST_FIELDS = frozenset(ResolvedRequest.__dataclass_fields__)
_DERIVED_SETS = frozenset({"all_skills", "required_skills"})
_DERIVED_MAPS = frozenset({"required_properties", "preferred_properties"})


def _contains(container: Any, item: Any) -> bool:
    try:
        return item in container
    except TypeError:
        return False


def _compare(fn: Callable[[Any, Any], bool]) -> Callable[[Any, Any], bool]:
    def op(fact: Any, value: Any) -> bool:
        try:
            return fn(fact, value)
        except TypeError:
            return False

    return op


OPERATORS: dict[str, Callable[[Any, Any], bool]] = {
    "equal": lambda fact, value: fact == value,
    "not_equal": lambda fact, value: fact != value,
    "in": lambda fact, value: _contains(value, fact),
    "not_in": lambda fact, value: not _contains(value, fact),
    "contains": lambda fact, value: _contains(fact, value),
    "does_not_contain": lambda fact, value: not _contains(fact, value),
    "greater_than": _compare(lambda fact, value: fact > value),
    "greater_than_inclusive": _compare(lambda fact, value: fact >= value),
    "less_than": _compare(lambda fact, value: fact < value),
    "less_than_inclusive": _compare(lambda fact, value: fact <= value),
}


def validate_fact_path(path: str) -> tuple[str, ...]:
    """Split and check a dotted fact path, raising RuleConfigError if malformed.

    Accepted shapes:
        request.<request field>
        derived.all_skills | derived.required_skills
        derived.required_properties.<key> | derived.preferred_properties.<key>
    """
    if not isinstance(path, str) or not path:
        raise RuleConfigError(f"Fact path must be a non-empty string, got {path!r}")
    parts = tuple(path.split("."))
    if any(not p for p in parts):
        raise RuleConfigError(f"Malformed fact path '{path}': empty segment")

    root = parts[0]
    if root == "request":
        if len(parts) != 2 or parts[1] not in _REQUEST_FIELDS:
            raise RuleConfigError(
                f"Malformed fact path '{path}': expected request.<field>, "
                f"known fields: {', '.join(sorted(_REQUEST_FIELDS))}"
            )
    elif root == "derived":
        if len(parts) == 2 and parts[1] in _DERIVED_SETS:
            pass
        elif len(parts) == 3 and parts[1] in _DERIVED_MAPS:
            pass
        else:
            raise RuleConfigError(
                f"Malformed fact path '{path}': expected derived.all_skills, "
                "derived.required_skills or derived.<required|preferred>_properties.<key>"
            )
    else:
        raise RuleConfigError(
            f"Malformed fact path '{path}': root must be 'request' or 'derived'"
        )
    return parts


@dataclass(frozen=True, slots=True)
class Leaf:
    """Single comparison `fact <operator> value`."""

    fact: str
    operator: str
    value: Any = None

    def __post_init__(self):
        validate_fact_path(self.fact)
        if self.operator not in OPERATORS:
            raise RuleConfigError(
                f"Unknown operator '{self.operator}' on '{self.fact}'. "
                f"Known: {', '.join(sorted(OPERATORS))}"
            )
        if isinstance(self.value, list):
            object.__setattr__(self, "value", tuple(self.value))

    def evaluate(self, resolve: Callable[[str], Any]) -> bool:
        fact = resolve(self.fact)
        if fact is MISSING:
            return False
        return bool(OPERATORS[self.operator](fact, self.value))

    def satisfied_leaves(self, resolve: Callable[[str], Any]) -> Iterator[Leaf]:
        if self.evaluate(resolve):
            yield self


@dataclass(frozen=True, slots=True)
class All:
    conditions: tuple[ConditionTree, ...]

    def __post_init__(self):
        object.__setattr__(self, "conditions", tuple(self.conditions))
        if not self.conditions:
            raise RuleConfigError("'all' needs at least one condition")

    def evaluate(self, resolve: Callable[[str], Any]) -> bool:
        return all(c.evaluate(resolve) for c in self.conditions)

    def satisfied_leaves(self, resolve: Callable[[str], Any]) -> Iterator[Leaf]:
        for c in self.conditions:
            yield from c.satisfied_leaves(resolve)


@dataclass(frozen=True, slots=True)
class Any_:
    conditions: tuple[ConditionTree, ...]

    def __post_init__(self):
        object.__setattr__(self, "conditions", tuple(self.conditions))
        if not self.conditions:
            raise RuleConfigError("'any' needs at least one condition")

    def evaluate(self, resolve: Callable[[str], Any]) -> bool:
        return any(c.evaluate(resolve) for c in self.conditions)

    def satisfied_leaves(self, resolve: Callable[[str], Any]) -> Iterator[Leaf]:
        # Only the branches that actually hold explain why the rule fired
        for c in self.conditions:
            if c.evaluate(resolve):
                yield from c.satisfied_leaves(resolve)


ConditionTree = Union[All, Any_, Leaf]

# Property key -> the values an effect may set it to
_PROPERTY_VALUES = {
    "seniority_level": SENIORITY_ORDER,
    "max_start_time": START_TIMELINE_ORDER,
}


def _check_property_value(target_field: str, value: Any) -> None:
    key = normalize_property_key(target_field)
    allowed = _PROPERTY_VALUES.get(key)
    if allowed is not None:
        if not isinstance(value, str) or value not in allowed:
            raise RuleConfigError(
                f"'{value}' is not a valid {target_field}. Known: {', '.join(allowed)}"
            )
    elif key == "timezone":
        zones = (value,) if isinstance(value, str) else value
        if not isinstance(zones, tuple) or not zones or not all(
            isinstance(z, str) and z for z in zones
        ):
            raise RuleConfigError(
                f"{target_field} effects need a timezone name or a list of them, got {value!r}"
            )


@dataclass(frozen=True, slots=True)
class RuleEffect:
    """
    Conclusion of a rule.

    Attributes
    ----------
    kind:           FILTER (hard requirement) or BOOST (soft preference).
    target_field:   "derived_skills" or a required_*/preferred_* request field.
    target_value:   Skill ids for derived_skills, otherwise a scalar value.
    boost_strength: Weight in (0, 1] for boost rules on derived_skills.
    rationale:      Human-readable explanation.
    """

    kind: RuleKind
    target_field: str
    target_value: Any
    boost_strength: Optional[float] = None
    rationale: str = ""

    def __post_init__(self):
        try:
            object.__setattr__(self, "kind", RuleKind(self.kind))
        except ValueError as e:
            raise RuleConfigError(
                f"Unknown rule kind '{self.kind}'. Known: "
                f"{', '.join(k.value for k in RuleKind)}"
            ) from e

        if self.target_field == "derived_skills":
            values = self.target_value
            if isinstance(values, str):
                values = (values,)
            values = tuple(values or ())
            if not values or not all(isinstance(v, str) and v for v in values):
                raise RuleConfigError(
                    "derived_skills effects need a non-empty list of skill ids"
                )
            object.__setattr__(self, "target_value", values)
            if self.kind is RuleKind.BOOST:
                s = self.boost_strength
                if s is None or not 0 < float(s) <= 1:
                    raise RuleConfigError(
                        "boost effects on derived_skills need boost_strength in (0, 1]"
                    )
        elif self.target_field.startswith(("required_", "preferred_")):
            if self.target_field not in _REQUEST_FIELDS or self.target_field.endswith(
                ("_skills", "_domains")
            ):
                raise RuleConfigError(
                    f"Unknown target field '{self.target_field}'"
                )
            if self.target_value is None:
                raise RuleConfigError(f"Effect on '{self.target_field}' needs a value")
            if isinstance(self.target_value, list):
                object.__setattr__(self, "target_value", tuple(self.target_value))
            _check_property_value(self.target_field, self.target_value)
        else:
            raise RuleConfigError(
                f"Target field must be 'derived_skills' or a required_*/preferred_* "
                f"field, got '{self.target_field}'"
            )

    @property
    def is_skill_effect(self) -> bool:
        return self.target_field == "derived_skills"

    @property
    def property_key(self) -> str:
        return normalize_property_key(self.target_field)


@dataclass(frozen=True, slots=True)
class RuleSpec:
    """
    Declarative specification of an inference rule.

    Attributes
    ----------
    id:         Stable identifier (e.g., "scaling-requires-distributed").
    name:       Short display name.
    priority:   Higher runs earlier within a pass and wins scalar conflicts.
    when:       ConditionTree that must hold for the rule to fire.
    effect:     What the rule derives.
    enabled:    Disabled rules are never evaluated.
    """

    id: str
    name: str
    priority: int
    when: ConditionTree
    effect: RuleEffect
    enabled: bool = True

    def __post_init__(self):
        if not isinstance(self.id, str) or not self.id.strip():
            raise RuleConfigError("Rule id must be a non-empty string")
        if not isinstance(self.priority, int) or isinstance(self.priority, bool):
            raise RuleConfigError(f"Rule '{self.id}': priority must be an integer")
        if not isinstance(self.when, (All, Any_, Leaf)):
            raise RuleConfigError(f"Rule '{self.id}': 'when' must be a condition tree")

    @property
    def kind(self) -> RuleKind:
        return self.effect.kind

    def __repr__(self) -> str:
        return f"RuleSpec(id='{self.id}', priority={self.priority}, kind={self.kind.value})"
