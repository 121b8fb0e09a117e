"""Forward-chaining rule engine.

`infer(request, rules)` seeds a fact context from the request, then runs
passes over the rules (descending priority, declaration order on ties) until
a pass produces no new derivation or `max_iterations` passes have run.

A rule fires when its condition holds against the current context, it is
not overridden by the user, and it has not already produced the same
derivation (same rule, same derivation chains). Effects are applied
immediately, so later rules in the same pass see them.

Scalar properties are first-wins: the first rule to derive a property in
evaluation order keeps it, and later rules with a different value are
recorded as conflicts. User-provided values are never replaced.
"""

from __future__ import annotations

import logging
from typing import Any, Iterable, List, Optional

from hirelogic.policy import DEFAULT_MAX_ITERATIONS, resolve_overrides
from hirelogic.rules import registry
from hirelogic.rules.base import MISSING, Leaf, RuleSpec
from hirelogic.state import (
    USER_INPUT,
    DerivedFacts,
    FactContext,
    OverriddenRule,
    OverrideScope,
    PropertyConflict,
    ResolvedRequest,
    RuleKind,
    SkillRequirement,
)

logger = logging.getLogger(__name__)

Chains = List[List[str]]


def initial_context(request: ResolvedRequest) -> FactContext:
    """Seed the derived facts with what the user supplied directly.

    Only required skills seed `all_skills`: chaining starts from hard
    requirements, not from soft preferences.
    """
    derived = DerivedFacts()
    for req in request.required_skills:
        derived.all_skills.add(req.skill)
        derived.skill_provenance[req.skill] = [[USER_INPUT]]

    for key, value in request.explicit_properties("required_").items():
        derived.required_properties[key] = value
        derived.required_property_provenance[key] = [[USER_INPUT]]
    for key, value in request.explicit_properties("preferred_").items():
        derived.preferred_properties[key] = value
        derived.preferred_property_provenance[key] = [[USER_INPUT]]

    return FactContext(request=request, derived=derived)


def resolve_fact(ctx: FactContext, path: str) -> Any:
    """Look up a dotted fact path; MISSING when the path has no value."""
    parts = path.split(".")
    if parts[0] == "request":
        value = getattr(ctx.request, parts[1], None)
        if value is None:
            return MISSING
        if isinstance(value, tuple) and value and isinstance(value[0], SkillRequirement):
            return tuple(s.skill for s in value)
        return value

    derived = ctx.derived
    if parts[1] == "all_skills":
        return frozenset(derived.all_skills)
    if parts[1] == "required_skills":
        return frozenset(derived.required_skills)
    props = getattr(derived, parts[1], None)
    if not isinstance(props, dict) or len(parts) != 3:
        return MISSING
    return props.get(parts[2], MISSING)


def _merge_chains(existing: Chains, new: Iterable[List[str]]) -> Chains:
    out = list(existing)
    for chain in new:
        if chain not in out:
            out.append(list(chain))
    return out


def _trigger_chains(leaf: Leaf, derived: DerivedFacts) -> Chains:
    parts = leaf.fact.split(".")
    if parts[0] != "derived":
        return []
    if parts[1] in ("all_skills", "required_skills"):
        if leaf.operator == "contains" and isinstance(leaf.value, str):
            return derived.skill_provenance.get(leaf.value, [])
        return []
    if parts[1] == "required_properties":
        return derived.required_property_provenance.get(parts[2], [])
    if parts[1] == "preferred_properties":
        return derived.preferred_property_provenance.get(parts[2], [])
    return []


def derivation_chains(rule: RuleSpec, ctx: FactContext) -> Chains:
    """Build the provenance chains for a firing of `rule`.

    Each satisfied condition on a derived fact contributes that fact's chains
    extended by this rule. The user-input sentinel is stripped, so a rule
    triggered only by request facts or user values gets `[[rule.id]]`.
    """
    chains: Chains = []
    for leaf in rule.when.satisfied_leaves(lambda p: resolve_fact(ctx, p)):
        for chain in _trigger_chains(leaf, ctx.derived):
            upstream = [r for r in chain if r != USER_INPUT]
            candidate = upstream + [rule.id]
            if candidate not in chains:
                chains.append(candidate)
    return chains or [[rule.id]]


class _Engine:
    def __init__(self, ctx: FactContext, rules: list[RuleSpec]):
        self.ctx = ctx
        self.rules = rules
        self.seen: set[tuple[str, tuple[tuple[str, ...], ...]]] = set()
        self.overridden: set[tuple[str, str]] = set()
        self.holders: dict[tuple[str, str], str] = {}
        self.fired: set[str] = set()

    def _record_override(self, rule: RuleSpec, record: OverriddenRule) -> None:
        key = (rule.id, record.reason)
        if key in self.overridden:
            return
        self.overridden.add(key)
        self.ctx.trace.overridden_rules.append(record)

    def run_pass(self, overrides: frozenset[str]) -> int:
        new_firings = 0
        for rule in self.rules:
            if not rule.when.evaluate(lambda p: resolve_fact(self.ctx, p)):
                continue
            if rule.id in overrides:
                self._record_override(rule, OverriddenRule(rule.id, "explicit"))
                continue

            chains = derivation_chains(rule, self.ctx)
            identity = (rule.id, tuple(sorted(tuple(c) for c in chains)))
            if identity in self.seen:
                continue
            self.seen.add(identity)
            new_firings += 1

            if rule.id not in self.fired:
                self.fired.add(rule.id)
                self.ctx.trace.fired_rule_ids.append(rule.id)

            if rule.effect.is_skill_effect:
                self._apply_skills(rule, chains)
            else:
                self._apply_property(rule, chains)
        return new_firings

    def _apply_skills(self, rule: RuleSpec, chains: Chains) -> None:
        derived = self.ctx.derived
        targets = list(rule.effect.target_value)

        if rule.kind is RuleKind.FILTER:
            user_skills = self.ctx.request.user_skill_ids
            skipped = tuple(s for s in targets if s in user_skills)
            if skipped:
                scope = OverrideScope.FULL if len(skipped) == len(targets) else OverrideScope.PARTIAL
                self._record_override(
                    rule,
                    OverriddenRule(rule.id, "implicit-skill", scope, skipped),
                )
                targets = [s for s in targets if s not in skipped]

        for skill in targets:
            derived.all_skills.add(skill)
            derived.skill_provenance[skill] = _merge_chains(
                derived.skill_provenance.get(skill, []), chains
            )
            if rule.kind is RuleKind.FILTER:
                derived.required_skills.add(skill)
            else:
                strength = float(rule.effect.boost_strength)
                derived.skill_boosts[skill] = max(derived.skill_boosts.get(skill, 0.0), strength)

    def _apply_property(self, rule: RuleSpec, chains: Chains) -> None:
        derived = self.ctx.derived
        key = rule.effect.property_key
        value = rule.effect.target_value
        if rule.kind is RuleKind.FILTER:
            container, props, provenance = (
                "required",
                derived.required_properties,
                derived.required_property_provenance,
            )
        else:
            container, props, provenance = (
                "preferred",
                derived.preferred_properties,
                derived.preferred_property_provenance,
            )

        user_value = getattr(self.ctx.request, rule.effect.target_field, None)
        user_owned = provenance.get(key) == [[USER_INPUT]]
        if (user_value is not None and user_value != ()) or user_owned:
            self._record_override(rule, OverriddenRule(rule.id, "implicit-field"))
            return

        if key not in props:
            props[key] = value
            provenance[key] = _merge_chains([], chains)
            self.holders[(container, key)] = rule.id
            return

        if props[key] == value:
            provenance[key] = _merge_chains(provenance[key], chains)
            return

        conflict = PropertyConflict(
            key=f"{container}.{key}",
            kept_rule_id=self.holders.get((container, key), USER_INPUT),
            kept_value=props[key],
            discarded_rule_id=rule.id,
            discarded_value=value,
        )
        self.ctx.trace.conflicts.append(conflict)
        logger.warning(
            "Rule '%s' wants %s=%r but '%s' already derived %r; keeping the first value",
            rule.id,
            conflict.key,
            value,
            conflict.kept_rule_id,
            conflict.kept_value,
        )


def infer(
    request: ResolvedRequest,
    rules: Optional[Iterable[RuleSpec]] = None,
    *,
    max_iterations: int = DEFAULT_MAX_ITERATIONS,
) -> FactContext:
    """Run forward chaining over `rules` (the built-in library when None).

    Parameters
    ----------
    request : ResolvedRequest
        The user's request with identifiers already resolved.
    rules : iterable of RuleSpec, optional
        Rule base to evaluate; defaults to the registered library.
    max_iterations : int
        Cap on passes. Reaching it is not an error: the context is returned
        as-is with `trace.reached_fixpoint == False` and a warning.

    Returns
    -------
    FactContext
        Request facts, derived facts with provenance, and the inference trace.
    """
    if max_iterations < 1:
        raise ValueError("max_iterations must be >= 1")

    rule_list = list(registry.RULES if rules is None else rules)
    registry.check_unique_ids(rule_list)
    ordered = registry.evaluation_order(rule_list)
    overrides = resolve_overrides(request.overridden_rule_ids, (r.id for r in rule_list))

    ctx = initial_context(request)
    engine = _Engine(ctx, ordered)

    for iteration in range(1, max_iterations + 1):
        ctx.trace.iteration_count = iteration
        if engine.run_pass(overrides) == 0:
            ctx.trace.reached_fixpoint = True
            break

    if not ctx.trace.reached_fixpoint:
        message = (
            f"Inference stopped after {max_iterations} passes without reaching a "
            "fixpoint; the rule base may contain a cycle"
        )
        ctx.trace.warnings.append(message)
        logger.warning(message)

    for c in ctx.trace.conflicts:
        ctx.trace.warnings.append(
            f"Conflicting values for {c.key}: kept {c.kept_value!r} from "
            f"'{c.kept_rule_id}', discarded {c.discarded_value!r} from '{c.discarded_rule_id}'"
        )

    logger.info(
        "Inference finished: %d pass(es), %d rule(s) fired, %d overridden, fixpoint=%s",
        ctx.trace.iteration_count,
        len(ctx.trace.fired_rule_ids),
        len(ctx.trace.overridden_rules),
        ctx.trace.reached_fixpoint,
    )
    return ctx
