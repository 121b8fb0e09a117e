"""Settings loader (YAML-only, strict).

Reads the optional top-level `settings:` mapping of a policy document:

    settings:
      max_iterations: 10
      max_sets: 3
      insufficient_threshold: 3
      parallel_blockers: false

Constraints/assumptions:
- **Only YAML** is supported.
- Values must have the documented types; anything else raises.
- Missing keys keep their defaults.
- Unknown keys are ignored and emit a warning.
- If `path` is None, the defaults are returned.
"""

from __future__ import annotations

import warnings
from dataclasses import dataclass, replace
from typing import Any, Dict, Iterable, Optional

from yaml import safe_load

DEFAULT_MAX_ITERATIONS = 10
DEFAULT_MAX_SETS = 3
DEFAULT_INSUFFICIENT_THRESHOLD = 3


class PolicyWarning(UserWarning):
    pass


@dataclass(frozen=True, slots=True)
class Settings:
    """Process-wide knobs for inference and diagnosis.

    Attributes:
        max_iterations: Cap on forward-chaining passes
        max_sets: Maximum number of minimal conflict sets to report
        insufficient_threshold: A subset is consistent when its count reaches this
        parallel_blockers: Run the secondary conflict search concurrently
    """

    max_iterations: int = DEFAULT_MAX_ITERATIONS
    max_sets: int = DEFAULT_MAX_SETS
    insufficient_threshold: int = DEFAULT_INSUFFICIENT_THRESHOLD
    parallel_blockers: bool = False

    def __post_init__(self):
        for name in ("max_iterations", "max_sets", "insufficient_threshold"):
            value = getattr(self, name)
            if not isinstance(value, int) or isinstance(value, bool):
                raise TypeError(f"Setting '{name}' must be an integer, got {value!r}")
            if value < 1:
                raise ValueError(f"Setting '{name}' must be >= 1, got {value}")
        if not isinstance(self.parallel_blockers, bool):
            raise TypeError("Setting 'parallel_blockers' must be a boolean")

    def with_overrides(self, **overrides: Optional[Any]) -> Settings:
        """Return a copy with every non-None keyword applied."""
        changes = {k: v for k, v in overrides.items() if v is not None}
        return replace(self, **changes) if changes else self


_SETTING_NAMES = ("max_iterations", "max_sets", "insufficient_threshold", "parallel_blockers")


def normalize_settings(data: Any) -> Settings:
    """Extract strict Settings from a parsed YAML document.

    - `settings:` is optional; when present it must be a mapping.
    - Unknown keys under `settings:` are ignored and emit a warning.
    """
    if data is None:
        return Settings()
    if not isinstance(data, dict):
        raise ValueError("Policy file must be a mapping at the top level.")
    raw = data.get("settings")
    if raw is None:
        return Settings()
    if not isinstance(raw, dict):
        raise ValueError("'settings' must be a mapping.")

    for k in sorted(k for k in raw if k not in _SETTING_NAMES):
        warnings.warn(
            f"Ignoring unknown setting: '{k}'",
            PolicyWarning,
            stacklevel=3,
        )

    known: Dict[str, Any] = {k: raw[k] for k in _SETTING_NAMES if k in raw}
    return Settings(**known)


def load_settings(path: str | None) -> Settings:
    """Load Settings from the YAML policy at `path`.

    If `path` is None, returns the defaults.
    """
    if path is None:
        return Settings()

    with open(path, "r", encoding="utf-8") as f:
        parsed = safe_load(f)
    return normalize_settings(parsed)


def resolve_overrides(
    overridden_rule_ids: Iterable[str], known_rule_ids: Iterable[str]
) -> frozenset[str]:
    """Keep only override ids that name a known rule.

    Unknown ids can never match a rule, so they are dropped with a warning.
    """
    known = set(known_rule_ids)
    requested = set(overridden_rule_ids)
    for rid in sorted(requested - known):
        warnings.warn(
            f"Ignoring override for unknown rule id: '{rid}'",
            PolicyWarning,
            stacklevel=3,
        )
    return frozenset(requested & known)
