"""Count oracles: async callables mapping a subset of constraint ids to a count.

- QueryOracle runs the Cypher count query for the subset through any async
  runner (a graph database session, a test double, ...).
- PoolOracle evaluates the same constraint semantics against an in-memory
  pandas candidate pool.
"""

from __future__ import annotations

from typing import Any, Awaitable, Callable, Dict

import pandas as pd

from hirelogic.model.constraints import (
    DecomposedConstraintSet,
    TestableConstraint,
    UnsupportedOperatorError,
)
from hirelogic.state import proficiencies_at_or_above

QueryRunner = Callable[[str, Dict[str, Any]], Awaitable[int]]


class QueryOracle:
    """Bind a decomposition to a query runner."""

    def __init__(self, decomposed: DecomposedConstraintSet, runner: QueryRunner):
        self.decomposed = decomposed
        self.runner = runner

    async def __call__(self, ids: frozenset[str]) -> int:
        query, params = self.decomposed.build_query(ids)
        return await self.runner(query, params)


def _column(pool: pd.DataFrame, c: TestableConstraint) -> pd.Series:
    if c.field not in pool.columns:
        raise KeyError(f"Candidate pool has no column '{c.field}' for constraint '{c.id}'")
    return pool[c.field]


def constraint_mask(pool: pd.DataFrame, c: TestableConstraint) -> pd.Series:
    """Boolean Series of the candidates satisfying one constraint."""
    op = c.operator
    if op == "HAS_SKILL":
        req = c.value
        levels = (
            frozenset(proficiencies_at_or_above(req.min_proficiency))
            if req.min_proficiency
            else None
        )
        return pool["skills"].map(
            lambda skills: req.skill in skills
            and (levels is None or skills[req.skill] in levels)
        ).astype(bool)
    if op == "HAS_DOMAIN":
        return pool["domains"].map(lambda domains: c.value in domains).astype(bool)

    if op == "IN":
        return _column(pool, c).isin(list(c.value))
    if op == ">=":
        return _column(pool, c) >= c.value
    if op == "<=":
        return _column(pool, c) <= c.value
    if op == "<":
        return _column(pool, c) < c.value
    if op == "=":
        return _column(pool, c) == c.value
    if op == "STARTS WITH":
        return _column(pool, c).astype(str).str.startswith(str(c.value))
    if op == "BETWEEN":
        low, high = c.value
        column = _column(pool, c)
        return (column >= low) & (column < high)
    raise UnsupportedOperatorError(c.id, op)


class PoolOracle:
    """Count matching rows of a candidate DataFrame.

    The pool needs a `skills` column of {skill: proficiency} dicts, a
    `domains` column of sets, and one column per property constraint field
    (`yearsExperience`, `salary`, `startTimeline`, `timezone`).
    """

    def __init__(self, pool: pd.DataFrame, decomposed: DecomposedConstraintSet):
        self.pool = pool
        self.decomposed = decomposed
        self._masks: Dict[str, pd.Series] = {}

    def _mask(self, cid: str) -> pd.Series:
        if cid not in self._masks:
            self._masks[cid] = constraint_mask(self.pool, self.decomposed.by_id[cid])
        return self._masks[cid]

    async def __call__(self, ids: frozenset[str]) -> int:
        self.decomposed.select(ids)  # validates ids
        mask = pd.Series(True, index=self.pool.index)
        for cid in ids:
            mask &= self._mask(cid)
        return int(mask.sum())
