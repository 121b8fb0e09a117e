from __future__ import annotations

from typing import Dict, Iterable

from . import library as rules_lib
from .base import RuleConfigError, RuleSpec

RULES = [
    # ---------- Filter rules ----------
    rules_lib.scaling_requires_distributed,
    rules_lib.kubernetes_requires_containers,
    rules_lib.distributed_requires_observability,
    # ---------- First-hop boost rules ----------
    rules_lib.principal_prefers_architecture,
    rules_lib.greenfield_prefers_ambiguity_tolerance,
    rules_lib.greenfield_prefers_senior,
    rules_lib.migration_prefers_documentation,
    rules_lib.scaling_prefers_observability,
    rules_lib.maintenance_prefers_debugging,
    # ---------- Chain boost rules ----------
    rules_lib.senior_prefers_leadership,
    rules_lib.kubernetes_prefers_helm,
    rules_lib.microservices_prefers_api_design,
    rules_lib.distributed_prefers_tracing,
    # ---------- Compound boost rules ----------
    rules_lib.senior_greenfield_prefers_ownership,
    rules_lib.senior_scaling_prefers_architecture,
]

assert len({r.id for r in RULES}) == len(RULES), "Duplicate rule id in RULES"

# Map stable rule IDs -> rule spec from the RULES list
RULES_BY_ID: Dict[str, RuleSpec] = {r.id: r for r in RULES}


def list_rule_ids() -> list[str]:
    """Return the stable IDs for all registered rules."""
    return [r.id for r in RULES]


def get_rule(rule_id: str) -> RuleSpec:
    try:
        return RULES_BY_ID[rule_id]
    except KeyError as e:
        known = ", ".join(sorted(RULES_BY_ID))
        raise KeyError(f"Unknown rule id '{rule_id}'. Known: {known}") from e


def check_unique_ids(rules: Iterable[RuleSpec]) -> None:
    seen: set[str] = set()
    for r in rules:
        if r.id in seen:
            raise RuleConfigError(f"Duplicate rule id '{r.id}'")
        seen.add(r.id)


def evaluation_order(rules: Iterable[RuleSpec]) -> list[RuleSpec]:
    """Enabled rules by descending priority; ties keep declaration order."""
    return sorted((r for r in rules if r.enabled), key=lambda r: -r.priority)
