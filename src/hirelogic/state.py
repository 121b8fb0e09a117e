"""Module with dataclasses to hold the state for the main entities of the program"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Literal, Optional

__all__ = [
    "SENIORITY_ORDER",
    "START_TIMELINE_ORDER",
    "PROFICIENCY_ORDER",
    "TEAM_FOCUS_VALUES",
    "SENIORITY_YEARS",
    "USER_INPUT",
    "RuleKind",
    "OverrideScope",
    "SkillRequirement",
    "ResolvedRequest",
    "OverriddenRule",
    "PropertyConflict",
    "DerivedFacts",
    "InferenceTrace",
    "FactContext",
    "normalize_property_key",
    "proficiencies_at_or_above",
    "format_number",
]

SENIORITY_ORDER = ("junior", "mid", "senior", "staff", "principal")
START_TIMELINE_ORDER = (
    "immediate",
    "two_weeks",
    "one_month",
    "three_months",
    "six_months",
    "one_year",
)
PROFICIENCY_ORDER = ("learning", "proficient", "expert")
TEAM_FOCUS_VALUES = ("greenfield", "migration", "maintenance", "scaling")

# Years of experience per seniority level as (min, max); max is exclusive, None is open
SENIORITY_YEARS: dict[str, tuple[int, Optional[int]]] = {
    "junior": (0, 3),
    "mid": (3, 6),
    "senior": (6, 10),
    "staff": (10, None),
    "principal": (15, None),
}

# Provenance sentinel for values the user supplied directly
USER_INPUT = "user-input"

Proficiency = Literal["learning", "proficient", "expert"]


class RuleKind(str, Enum):
    """Whether a rule's conclusion is a hard requirement or a soft preference"""

    FILTER = "derived-filter"
    BOOST = "derived-boost"


class OverrideScope(str, Enum):
    FULL = "FULL"
    PARTIAL = "PARTIAL"


def normalize_property_key(field_name: str) -> str:
    """Strip the required_/preferred_ prefix from a request field name.

    `required_seniority_level` and `preferred_seniority_level` both map to
    `seniority_level`, which is the key used in the derived property maps.
    """
    for prefix in ("required_", "preferred_"):
        if field_name.startswith(prefix):
            return field_name[len(prefix) :]
    return field_name


def format_number(value: float) -> str:
    """Render whole numbers without a decimal part (120000.0 -> "120000")."""
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def proficiencies_at_or_above(level: str) -> tuple[str, ...]:
    """Return every proficiency level that satisfies a minimum of `level`."""
    if level not in PROFICIENCY_ORDER:
        raise ValueError(f"Proficiency must be one of {PROFICIENCY_ORDER}, got '{level}'")
    return PROFICIENCY_ORDER[PROFICIENCY_ORDER.index(level) :]


@dataclass(frozen=True, slots=True)
class SkillRequirement:
    """Class to represent a skill named in a request

    Attributes:
        skill: The skill identifier
        min_proficiency: Lowest acceptable proficiency, None accepts any level
    """

    skill: str
    min_proficiency: Optional[Proficiency] = None

    def __post_init__(self):
        if not isinstance(self.skill, str) or not self.skill:
            raise ValueError("Skill identifier must be a non-empty string")
        if self.min_proficiency is not None and self.min_proficiency not in PROFICIENCY_ORDER:
            raise ValueError(
                "Minimum proficiency must be one of 'learning', 'proficient', 'expert'"
            )


@dataclass(frozen=True, slots=True)
class ResolvedRequest:
    """Canonical in-memory representation of a search request.

    Skill and domain identifiers are already resolved; only the fields the
    reasoning core consumes are modelled here.

    Attributes:
        required_seniority_level / preferred_seniority_level: Seniority enum values
        required_skills / preferred_skills: Skill requirements
        required_max_start_time / preferred_max_start_time: Start timeline enum values
        required_timezone / preferred_timezone: Accepted timezones
        max_budget: Salary ceiling
        team_focus: Team focus enum value
        required_domains / preferred_domains: Business domain identifiers
        overridden_rule_ids: Inference rules the user asked to switch off
    """

    required_seniority_level: Optional[str] = None
    preferred_seniority_level: Optional[str] = None
    required_skills: tuple[SkillRequirement, ...] = ()
    preferred_skills: tuple[SkillRequirement, ...] = ()
    required_max_start_time: Optional[str] = None
    preferred_max_start_time: Optional[str] = None
    required_timezone: tuple[str, ...] = ()
    preferred_timezone: tuple[str, ...] = ()
    max_budget: Optional[float] = None
    team_focus: Optional[str] = None
    required_domains: tuple[str, ...] = ()
    preferred_domains: tuple[str, ...] = ()
    overridden_rule_ids: frozenset[str] = frozenset()

    def __post_init__(self):
        for name in ("required_seniority_level", "preferred_seniority_level"):
            value = getattr(self, name)
            if value is not None and value not in SENIORITY_ORDER:
                raise ValueError(f"{name} must be one of {SENIORITY_ORDER}, got '{value}'")
        for name in ("required_max_start_time", "preferred_max_start_time"):
            value = getattr(self, name)
            if value is not None and value not in START_TIMELINE_ORDER:
                raise ValueError(
                    f"{name} must be one of {START_TIMELINE_ORDER}, got '{value}'"
                )
        if self.team_focus is not None and self.team_focus not in TEAM_FOCUS_VALUES:
            raise ValueError(
                f"team_focus must be one of {TEAM_FOCUS_VALUES}, got '{self.team_focus}'"
            )
        if self.max_budget is not None and self.max_budget < 0:
            raise ValueError("max_budget must be non-negative")
        # Accept any iterable for the collection fields, store tuples
        for name in (
            "required_skills",
            "preferred_skills",
            "required_timezone",
            "preferred_timezone",
            "required_domains",
            "preferred_domains",
        ):
            object.__setattr__(self, name, tuple(getattr(self, name)))
        object.__setattr__(self, "overridden_rule_ids", frozenset(self.overridden_rule_ids))

    @property
    def user_skill_ids(self) -> frozenset[str]:
        return frozenset(
            s.skill for s in (*self.required_skills, *self.preferred_skills)
        )

    def explicit_properties(self, prefix: str) -> dict[str, Any]:
        """Return the set scalar/tuple fields starting with `prefix`, keyed by normalized name."""
        out: dict[str, Any] = {}
        for name in self.__dataclass_fields__:
            if not name.startswith(prefix) or name.endswith(("_skills", "_domains")):
                continue
            value = getattr(self, name)
            if value is None or value == ():
                continue
            out[normalize_property_key(name)] = value
        if prefix == "required_" and self.max_budget is not None:
            out["max_budget"] = self.max_budget
        return out


@dataclass(frozen=True, slots=True)
class OverriddenRule:
    """A rule that matched but did not contribute its conclusion.

    Attributes:
        rule_id: The rule that was overridden
        reason: "explicit", "implicit-field" or "implicit-skill"
        scope: FULL when nothing was applied, PARTIAL when some target skills were
        overridden_skills: Target skills the user already supplied (skill overrides only)
    """

    rule_id: str
    reason: str
    scope: OverrideScope = OverrideScope.FULL
    overridden_skills: tuple[str, ...] = ()


@dataclass(frozen=True, slots=True)
class PropertyConflict:
    """Two rules tried to assign different values to the same derived scalar."""

    key: str
    kept_rule_id: str
    kept_value: Any
    discarded_rule_id: str
    discarded_value: Any


@dataclass(slots=True)
class DerivedFacts:
    """The mutable `derived` section of the fact context.

    Provenance maps hold, per key, a list of rule-id chains. Chains are only
    ever appended (deduplicated), never replaced.
    """

    all_skills: set[str] = field(default_factory=set)
    required_skills: set[str] = field(default_factory=set)
    skill_boosts: dict[str, float] = field(default_factory=dict)
    required_properties: dict[str, Any] = field(default_factory=dict)
    preferred_properties: dict[str, Any] = field(default_factory=dict)
    skill_provenance: dict[str, list[list[str]]] = field(default_factory=dict)
    required_property_provenance: dict[str, list[list[str]]] = field(default_factory=dict)
    preferred_property_provenance: dict[str, list[list[str]]] = field(default_factory=dict)


@dataclass(slots=True)
class InferenceTrace:
    fired_rule_ids: list[str] = field(default_factory=list)
    overridden_rules: list[OverriddenRule] = field(default_factory=list)
    conflicts: list[PropertyConflict] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    iteration_count: int = 0
    reached_fixpoint: bool = False


@dataclass(slots=True)
class FactContext:
    """Request facts plus everything the rule engine derived from them."""

    request: ResolvedRequest
    derived: DerivedFacts = field(default_factory=DerivedFacts)
    trace: InferenceTrace = field(default_factory=InferenceTrace)

    @property
    def derived_required_skill_ids(self) -> list[str]:
        """Skills required by filter rules, excluding the user's own skills."""
        user = self.request.user_skill_ids
        return sorted(s for s in self.derived.required_skills if s not in user)

    @property
    def derived_skill_boosts(self) -> dict[str, float]:
        return dict(self.derived.skill_boosts)

    def first_rule_for(self, provenance: dict[str, list[list[str]]], key: str) -> Optional[str]:
        """Originating rule of `key`: last rule of its first non-user chain, if any."""
        for chain in provenance.get(key, []):
            rules = [r for r in chain if r != USER_INPUT]
            if rules:
                return rules[-1]
        return None
