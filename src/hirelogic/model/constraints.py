from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Iterable, Optional

from hirelogic.state import (
    SENIORITY_YEARS,
    START_TIMELINE_ORDER,
    FactContext,
    SkillRequirement,
    format_number,
)

__all__ = [
    "PROPERTY_OPERATORS",
    "RELATION_OPERATORS",
    "UnsupportedOperatorError",
    "TestableConstraint",
    "DecomposedConstraintSet",
    "decompose",
]

PROPERTY_OPERATORS = ("IN", ">=", "<=", "<", "=", "STARTS WITH", "BETWEEN")
RELATION_OPERATORS = ("HAS_SKILL", "HAS_DOMAIN")


class UnsupportedOperatorError(ValueError):
    """Raised when a constraint carries an operator nothing knows how to express."""

    def __init__(self, constraint_id: str, operator: str):
        self.constraint_id = constraint_id
        self.operator = operator
        known = ", ".join((*PROPERTY_OPERATORS, *RELATION_OPERATORS))
        super().__init__(
            f"Constraint '{constraint_id}' uses unsupported operator '{operator}'. Known: {known}"
        )


@dataclass(frozen=True, slots=True)
class TestableConstraint:
    """One independently removable requirement of a search.

    Attributes:
        id: Stable identifier, unique within a decomposition
        field: Field identity; the candidate property for property operators,
            and the key used to pick a relaxation strategy
        operator: One of PROPERTY_OPERATORS or RELATION_OPERATORS
        value: Operand; a tuple for IN, (min, max) for BETWEEN, a
            SkillRequirement for HAS_SKILL and a domain id for HAS_DOMAIN
        description: Human-readable summary
        rule_id: Originating inference rule for derived constraints
    """

    __test__ = False

    id: str
    field: str
    operator: str
    value: Any
    description: str
    rule_id: Optional[str] = None

    @property
    def is_derived(self) -> bool:
        return self.rule_id is not None


@dataclass(frozen=True, slots=True)
class DecomposedConstraintSet:
    """Ordered constraints of one request plus query assembly for any subset."""

    constraints: tuple[TestableConstraint, ...]
    by_id: dict[str, TestableConstraint] = field(init=False)

    def __post_init__(self):
        object.__setattr__(self, "constraints", tuple(self.constraints))
        by_id: dict[str, TestableConstraint] = {}
        for c in self.constraints:
            if c.id in by_id:
                raise ValueError(f"Duplicate constraint id '{c.id}'")
            by_id[c.id] = c
        object.__setattr__(self, "by_id", by_id)

    @property
    def ids(self) -> list[str]:
        return [c.id for c in self.constraints]

    def __len__(self) -> int:
        return len(self.constraints)

    def __iter__(self):
        return iter(self.constraints)

    def select(self, ids: Iterable[str]) -> list[TestableConstraint]:
        """Constraints whose id is in `ids`, in decomposition order."""
        wanted = set(ids)
        unknown = wanted - self.by_id.keys()
        if unknown:
            raise KeyError(f"Unknown constraint id(s): {', '.join(sorted(unknown))}")
        return [c for c in self.constraints if c.id in wanted]

    def build_query(self, ids: Iterable[str]) -> tuple[str, dict[str, Any]]:
        from hirelogic.model.build import build_query

        return build_query(self, ids)


def _seniority_constraint(level: str, rule_id: Optional[str]) -> TestableConstraint:
    min_years, max_years = SENIORITY_YEARS[level]
    if max_years is None:
        return TestableConstraint(
            id="seniority",
            field="yearsExperience",
            operator=">=",
            value=min_years,
            description=f"Seniority: {level} ({min_years}+ years)",
            rule_id=rule_id,
        )
    return TestableConstraint(
        id="seniority",
        field="yearsExperience",
        operator="BETWEEN",
        value=(min_years, max_years),
        description=f"Seniority: {level} ({min_years}-{max_years} years)",
        rule_id=rule_id,
    )


def decompose(ctx: FactContext) -> DecomposedConstraintSet:
    """Split a fact context into independently testable constraints.

    One constraint per requirement, in a fixed order: seniority, budget,
    start timeline, timezone, user skills, derived skills, domains. Derived
    constraints carry the rule that produced them.
    """
    derived = ctx.derived
    props = derived.required_properties
    prov = derived.required_property_provenance
    out: list[TestableConstraint] = []

    level = props.get("seniority_level")
    if level is not None:
        out.append(_seniority_constraint(level, ctx.first_rule_for(prov, "seniority_level")))

    budget = props.get("max_budget")
    if budget is not None:
        out.append(
            TestableConstraint(
                id="budget",
                field="salary",
                operator="<=",
                value=budget,
                description=f"Budget: salary at most {format_number(budget)}",
                rule_id=ctx.first_rule_for(prov, "max_budget"),
            )
        )

    max_start = props.get("max_start_time")
    if max_start is not None:
        allowed = START_TIMELINE_ORDER[: START_TIMELINE_ORDER.index(max_start) + 1]
        out.append(
            TestableConstraint(
                id="start_timeline",
                field="startTimeline",
                operator="IN",
                value=allowed,
                description=f"Start timeline: {max_start} or sooner",
                rule_id=ctx.first_rule_for(prov, "max_start_time"),
            )
        )

    timezones = props.get("timezone")
    if timezones:
        zones = (timezones,) if isinstance(timezones, str) else tuple(timezones)
        out.append(
            TestableConstraint(
                id="timezone",
                field="timezone",
                operator="IN",
                value=zones,
                description=f"Timezone: {', '.join(zones)}",
                rule_id=ctx.first_rule_for(prov, "timezone"),
            )
        )

    for req in ctx.request.required_skills:
        level_text = f" ({req.min_proficiency}+)" if req.min_proficiency else ""
        out.append(
            TestableConstraint(
                id=f"user_skill_{req.skill}",
                field="requiredSkills",
                operator="HAS_SKILL",
                value=req,
                description=f"Required skill: {req.skill}{level_text}",
            )
        )

    for skill in ctx.derived_required_skill_ids:
        rule_id = ctx.first_rule_for(derived.skill_provenance, skill)
        out.append(
            TestableConstraint(
                id=f"derived_skill_{skill}",
                field="derivedSkills",
                operator="HAS_SKILL",
                value=SkillRequirement(skill),
                description=f"Derived skill: {skill} (from {rule_id})",
                rule_id=rule_id,
            )
        )

    for domain in ctx.request.required_domains:
        out.append(
            TestableConstraint(
                id=f"domain_{domain}",
                field="requiredDomains",
                operator="HAS_DOMAIN",
                value=domain,
                description=f"Required domain: {domain}",
            )
        )

    return DecomposedConstraintSet(tuple(out))
