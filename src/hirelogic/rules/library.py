from __future__ import annotations

from hirelogic.rules.base import All, Any_, Leaf, RuleEffect, RuleSpec
from hirelogic.state import RuleKind

SENIOR_PLUS = ("senior", "staff", "principal")


def _skills_filter(skills: list[str], rationale: str) -> RuleEffect:
    return RuleEffect(
        kind=RuleKind.FILTER,
        target_field="derived_skills",
        target_value=tuple(skills),
        rationale=rationale,
    )


def _skills_boost(skills: list[str], strength: float, rationale: str) -> RuleEffect:
    return RuleEffect(
        kind=RuleKind.BOOST,
        target_field="derived_skills",
        target_value=tuple(skills),
        boost_strength=strength,
        rationale=rationale,
    )


def _team_focus(value: str) -> Leaf:
    return Leaf("request.team_focus", "equal", value)


def _has_skill(skill: str) -> Leaf:
    return Leaf("derived.all_skills", "contains", skill)


# ---------- Filter rules (hard requirements) ----------

scaling_requires_distributed = RuleSpec(
    id="scaling-requires-distributed",
    name="Scaling Requires Distributed Systems",
    priority=50,
    when=All((_team_focus("scaling"),)),
    effect=_skills_filter(
        ["skill_distributed"],
        "Scaling work requires distributed systems expertise",
    ),
)

kubernetes_requires_containers = RuleSpec(
    id="kubernetes-requires-containers",
    name="Kubernetes Requires Container Knowledge",
    priority=40,
    when=All((_has_skill("skill_kubernetes"),)),
    effect=_skills_filter(
        ["skill_docker"],
        "Kubernetes expertise implies container fundamentals",
    ),
)

distributed_requires_observability = RuleSpec(
    id="distributed-requires-observability",
    name="Distributed Systems Require Observability",
    priority=40,
    when=All((_has_skill("skill_distributed"),)),
    effect=_skills_filter(
        ["skill_monitoring"],
        "Distributed systems need monitoring to be operated safely",
    ),
)

# ---------- Boost rules: first hop from the request ----------

principal_prefers_architecture = RuleSpec(
    id="principal-prefers-architecture",
    name="Principal Engineers Benefit From Architecture Skills",
    priority=50,
    when=All((Leaf("request.required_seniority_level", "in", ("principal",)),)),
    effect=_skills_boost(
        ["skill_system_design", "skill_architecture"],
        0.8,
        "Principal engineers typically need strong architecture skills",
    ),
)

greenfield_prefers_ambiguity_tolerance = RuleSpec(
    id="greenfield-prefers-ambiguity-tolerance",
    name="Greenfield Projects Prefer Ambiguity Tolerance",
    priority=50,
    when=All((_team_focus("greenfield"),)),
    effect=_skills_boost(
        ["skill_prototyping", "skill_requirements_analysis"],
        0.5,
        "Greenfield projects benefit from engineers comfortable with ambiguity",
    ),
)

greenfield_prefers_senior = RuleSpec(
    id="greenfield-prefers-senior",
    name="Greenfield Projects Prefer Senior Engineers",
    priority=50,
    when=All((_team_focus("greenfield"),)),
    effect=RuleEffect(
        kind=RuleKind.BOOST,
        target_field="preferred_seniority_level",
        target_value="senior",
        boost_strength=0.4,
        rationale="Greenfield projects often benefit from experienced engineers",
    ),
)

migration_prefers_documentation = RuleSpec(
    id="migration-prefers-documentation",
    name="Migration Projects Value Documentation Skills",
    priority=50,
    when=All((_team_focus("migration"),)),
    effect=_skills_boost(
        ["skill_documentation", "skill_legacy_systems"],
        0.5,
        "Migration projects need strong documentation and legacy system understanding",
    ),
)

scaling_prefers_observability = RuleSpec(
    id="scaling-prefers-observability",
    name="Scaling Benefits from Observability Skills",
    priority=50,
    when=All((_team_focus("scaling"),)),
    effect=_skills_boost(
        ["skill_observability", "skill_performance"],
        0.6,
        "Scaling benefits from observability and performance expertise",
    ),
)

maintenance_prefers_debugging = RuleSpec(
    id="maintenance-prefers-debugging",
    name="Maintenance Teams Value Debugging Skills",
    priority=50,
    when=All((_team_focus("maintenance"),)),
    effect=_skills_boost(
        ["skill_debugging", "skill_troubleshooting"],
        0.6,
        "Maintenance work requires strong debugging and troubleshooting skills",
    ),
)

# ---------- Boost rules: chains over derived facts ----------

senior_prefers_leadership = RuleSpec(
    id="senior-prefers-leadership",
    name="Senior+ Benefits from Leadership Skills",
    priority=35,
    # Fires from the user's required seniority or a rule-derived preferred one
    when=Any_(
        (
            Leaf("derived.required_properties.seniority_level", "in", SENIOR_PLUS),
            Leaf("derived.preferred_properties.seniority_level", "in", SENIOR_PLUS),
        )
    ),
    effect=_skills_boost(
        ["skill_mentorship", "skill_code_review", "skill_tech_leadership"],
        0.6,
        "Senior engineers often benefit from leadership abilities",
    ),
)

kubernetes_prefers_helm = RuleSpec(
    id="kubernetes-prefers-helm",
    name="Kubernetes Benefits from Helm Skills",
    priority=40,
    when=All((_has_skill("skill_kubernetes"),)),
    effect=_skills_boost(
        ["skill_helm", "skill_infrastructure_as_code"],
        0.5,
        "Kubernetes work benefits from Helm and IaC experience",
    ),
)

microservices_prefers_api_design = RuleSpec(
    id="microservices-prefers-api-design",
    name="Microservices Benefit from API Design Skills",
    priority=40,
    when=All((_has_skill("skill_microservices"),)),
    effect=_skills_boost(
        ["skill_api_design", "skill_rest", "skill_graphql"],
        0.5,
        "Microservices architecture benefits from strong API design skills",
    ),
)

distributed_prefers_tracing = RuleSpec(
    id="distributed-prefers-tracing",
    name="Distributed Systems Benefit from Tracing",
    priority=40,
    when=All((_has_skill("skill_distributed"),)),
    effect=_skills_boost(
        ["skill_tracing", "skill_logging"],
        0.5,
        "Distributed systems work benefits from tracing and logging skills",
    ),
)

# ---------- Boost rules: compound conditions ----------

senior_greenfield_prefers_ownership = RuleSpec(
    id="senior-greenfield-prefers-ownership",
    name="Senior Engineers on Greenfield Prefer Ownership",
    priority=30,
    when=All(
        (
            Leaf("request.required_seniority_level", "in", SENIOR_PLUS),
            _team_focus("greenfield"),
        )
    ),
    effect=_skills_boost(
        ["skill_ownership", "skill_decision_making"],
        0.7,
        "Senior engineers on greenfield projects benefit from ownership and "
        "decision-making skills",
    ),
)

senior_scaling_prefers_architecture = RuleSpec(
    id="senior-scaling-prefers-architecture",
    name="Senior Engineers Scaling Need Architecture",
    priority=30,
    when=All(
        (
            Leaf("request.required_seniority_level", "in", SENIOR_PLUS),
            _team_focus("scaling"),
        )
    ),
    effect=_skills_boost(
        ["skill_system_design", "skill_capacity_planning"],
        0.7,
        "Senior engineers working on scaling benefit from architecture and "
        "capacity planning",
    ),
)
