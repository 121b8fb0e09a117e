"""Strict YAML policy loader.

A policy document may hold three top-level keys, all optional:

    settings:    see hirelogic.policy.Settings
    rules:       list of rule mappings
    strategies:  mapping of field identity -> strategy mapping

Rule mapping:
    id, name, priority (int), optional enabled (bool),
    when:   {all: [...]} | {any: [...]} | {fact, operator, value}
    effect: {kind, target_field, target_value, optional boost_strength, rationale}

Strategy mapping:
    kind: numeric-step | enum-expand | remove | derived-override | skill-relaxation
    plus that shape's constructor fields.

If the shape is wrong, we raise. Malformed fact paths and unknown operators
raise RuleConfigError while loading, so a bad rule never reaches inference.
"""

from __future__ import annotations

import warnings
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional

from yaml import safe_load

from hirelogic.policy import PolicyWarning, Settings, normalize_settings
from hirelogic.rules.base import All, Any_, ConditionTree, Leaf, RuleConfigError, RuleEffect, RuleSpec
from hirelogic.rules.registry import check_unique_ids
from hirelogic.strategies import (
    DEFAULT_STRATEGIES,
    STRATEGY_KINDS,
    RelaxationStrategy,
    StrategyConfigError,
)

_RULE_KEYS = frozenset({"id", "name", "priority", "enabled", "when", "effect"})


@dataclass(slots=True)
class Policy:
    settings: Settings = field(default_factory=Settings)
    rules: Optional[List[RuleSpec]] = None
    strategies: Dict[str, RelaxationStrategy] = field(
        default_factory=lambda: dict(DEFAULT_STRATEGIES)
    )


def condition_from_mapping(data: Any, where: str) -> ConditionTree:
    if not isinstance(data, dict):
        raise RuleConfigError(f"{where} must be a mapping, got {type(data).__name__}")
    if "all" in data or "any" in data:
        if len(data) != 1:
            raise RuleConfigError(f"{where} must hold exactly one of 'all' / 'any'")
        key = next(iter(data))
        items = data[key]
        if not isinstance(items, list):
            raise RuleConfigError(f"{where}.{key} must be a list")
        children = tuple(
            condition_from_mapping(item, f"{where}.{key}[{i}]") for i, item in enumerate(items)
        )
        return All(children) if key == "all" else Any_(children)

    if "fact" not in data or "operator" not in data:
        raise RuleConfigError(f"{where} must have 'fact' and 'operator' (or 'all' / 'any')")
    try:
        return Leaf(data["fact"], data["operator"], data.get("value"))
    except RuleConfigError as e:
        raise RuleConfigError(f"{where}: {e}") from e


def _enabled(item: dict, rid: str) -> bool:
    val = item.get("enabled", True)
    if not isinstance(val, bool):
        raise TypeError(f"Rule '{rid}': 'enabled' must be a boolean, got {type(val).__name__}.")
    return val


def rule_from_mapping(item: Any, idx: int) -> RuleSpec:
    where = f"rules[{idx}]"
    if not isinstance(item, dict) or "id" not in item:
        raise ValueError(f"{where} must be a mapping with at least the key 'id'.")
    rid = item["id"]
    if not isinstance(rid, str) or not rid.strip():
        raise ValueError(f"{where}.id must be a non-empty string.")
    for k in sorted(set(item) - _RULE_KEYS):
        warnings.warn(
            f"Ignoring unknown key '{k}' in rule '{rid}'",
            PolicyWarning,
            stacklevel=3,
        )
    for k in ("priority", "when", "effect"):
        if k not in item:
            raise ValueError(f"{where} ('{rid}') is missing '{k}'.")

    effect_data = item["effect"]
    if not isinstance(effect_data, dict):
        raise ValueError(f"{where}.effect must be a mapping.")
    try:
        effect = RuleEffect(
            kind=effect_data.get("kind"),
            target_field=effect_data.get("target_field", ""),
            target_value=effect_data.get("target_value"),
            boost_strength=effect_data.get("boost_strength"),
            rationale=effect_data.get("rationale", ""),
        )
        return RuleSpec(
            id=rid.strip(),
            name=str(item.get("name", rid)),
            priority=item["priority"],
            when=condition_from_mapping(item["when"], f"{where}.when"),
            effect=effect,
            enabled=_enabled(item, rid),
        )
    except RuleConfigError as e:
        raise RuleConfigError(f"Rule '{rid}': {e}") from e


def strategy_from_mapping(field_name: str, data: Any) -> RelaxationStrategy:
    if not isinstance(data, dict) or "kind" not in data:
        raise StrategyConfigError(f"strategies.{field_name} must be a mapping with a 'kind'.")
    kind = data["kind"]
    try:
        cls = STRATEGY_KINDS[kind]
    except KeyError as e:
        known = ", ".join(sorted(STRATEGY_KINDS))
        raise StrategyConfigError(
            f"strategies.{field_name}: unknown kind '{kind}'. Known: {known}"
        ) from e
    params = {k: v for k, v in data.items() if k != "kind"}
    try:
        return cls(**params)
    except TypeError as e:
        raise StrategyConfigError(f"strategies.{field_name}: {e}") from e


def parse_rules(rules_list: Any) -> List[RuleSpec]:
    if not isinstance(rules_list, list):
        raise ValueError("'rules' must be a list of rule mappings.")
    rules = [rule_from_mapping(item, idx) for idx, item in enumerate(rules_list)]
    check_unique_ids(rules)
    return rules


def parse_strategies(
    raw: Any, base: Optional[Mapping[str, RelaxationStrategy]] = None
) -> Dict[str, RelaxationStrategy]:
    """Strategies from the file layered over `base` (the defaults when None)."""
    if not isinstance(raw, dict):
        raise ValueError("'strategies' must be a mapping of field -> strategy.")
    table = dict(DEFAULT_STRATEGIES if base is None else base)
    for field_name, data in raw.items():
        table[str(field_name)] = strategy_from_mapping(str(field_name), data)
    return table


def load_policy(path: str | None) -> Policy:
    """Load settings, rules and strategies from the YAML file at `path`.

    If `path` is None, returns the built-in defaults (library rules are used
    when `rules` is None).
    """
    if path is None:
        return Policy()

    with open(path, "r", encoding="utf-8") as stream:
        parsed = safe_load(stream)

    if parsed is None:
        return Policy()
    if not isinstance(parsed, dict):
        raise ValueError("Policy file must be a mapping at the top level.")

    policy = Policy(settings=normalize_settings(parsed))
    if "rules" in parsed:
        policy.rules = parse_rules(parsed["rules"])
    if "strategies" in parsed:
        policy.strategies = parse_strategies(parsed["strategies"])
    return policy


def load_rules(path: str) -> List[RuleSpec]:
    """Load only the `rules` list; the file must contain one."""
    with open(path, "r", encoding="utf-8") as stream:
        parsed = safe_load(stream)

    if not isinstance(parsed, dict) or "rules" not in parsed:
        raise ValueError("Policy file must contain a top-level 'rules' list.")
    return parse_rules(parsed["rules"])
