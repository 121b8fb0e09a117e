"""Conflict diagnosis.

Given constraints whose conjunction matches too few candidates, find up to
`max_sets` minimal conflict sets: subsets that are insufficient together but
become sufficient when any single member is removed.

The search is QuickXplain over a count oracle. A subset is *consistent* when
the oracle reports at least `insufficient_threshold` matches. The first set
comes from QuickXplain over the full list; further sets come from removing
each member of the first set in turn (a hitting-set pass) and running
QuickXplain again on what remains.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Iterable, List, Optional, Sequence

from hirelogic.model.constraints import TestableConstraint
from hirelogic.policy import DEFAULT_INSUFFICIENT_THRESHOLD, DEFAULT_MAX_SETS

logger = logging.getLogger(__name__)

CountOracle = Callable[[frozenset[str]], Awaitable[int]]


class OracleError(RuntimeError):
    """The count oracle failed while testing `subset`; the diagnosis is aborted."""

    def __init__(self, subset: frozenset[str], message: str):
        self.subset = subset
        super().__init__(f"{message} (subset: {sorted(subset)})")


async def checked_count(oracle: CountOracle, ids: Iterable[str]) -> int:
    """Await `oracle` on `ids`, turning failures and bad counts into OracleError."""
    subset = frozenset(ids)
    try:
        result = await oracle(subset)
    except Exception as e:
        logger.error("Count oracle failed on %d constraint(s): %s", len(subset), e)
        raise OracleError(subset, f"Count oracle failed: {e}") from e
    if not isinstance(result, int) or isinstance(result, bool) or result < 0:
        raise OracleError(subset, f"Count oracle returned an invalid count {result!r}")
    return result


@dataclass(slots=True)
class DiagnosisResult:
    """Outcome of a diagnosis run.

    Attributes:
        minimal_conflict_sets: Distinct minimal conflict sets, each in input order
        oracle_call_count: Number of oracle invocations made
        full_set_consistent: True when no diagnosis was needed
        full_set_count: Oracle count for all constraints together (None if not queried)
    """

    minimal_conflict_sets: List[tuple[TestableConstraint, ...]] = field(default_factory=list)
    oracle_call_count: int = 0
    full_set_consistent: bool = False
    full_set_count: Optional[int] = None

    @property
    def conflict_ids(self) -> List[List[str]]:
        return [[c.id for c in s] for s in self.minimal_conflict_sets]


class _QuickXplain:
    def __init__(self, oracle: CountOracle, threshold: int):
        self.oracle = oracle
        self.threshold = threshold
        self.calls = 0

    async def count(self, ids: Iterable[str]) -> int:
        subset = frozenset(ids)
        self.calls += 1
        result = await checked_count(self.oracle, subset)
        logger.debug("Oracle call %d: %d constraint(s) -> %d", self.calls, len(subset), result)
        return result

    async def consistent(self, ids: Iterable[str]) -> bool:
        return await self.count(ids) >= self.threshold

    async def search(
        self, background: List[str], delta: List[str], candidates: List[str]
    ) -> Optional[List[str]]:
        if delta and not await self.consistent(background):
            return []
        if len(candidates) == 1:
            return list(candidates)
        if not candidates:
            return None

        mid = len(candidates) // 2
        left, right = candidates[:mid], candidates[mid:]

        right_result = await self.search(background + left, left, right)
        if right_result is None:
            return None
        left_result = await self.search(background + right_result, right_result, left)
        if left_result is None:
            return right_result
        return left_result + right_result

    async def blocker_pass(self, ids: List[str], blocker: str) -> Optional[List[str]]:
        """Minimal conflict among `ids` without `blocker`, None if that remainder is fine."""
        remaining = [i for i in ids if i != blocker]
        if not remaining or await self.consistent(remaining):
            return None
        return await self.search([], [], remaining)


def _signature(ids: Iterable[str]) -> tuple[str, ...]:
    return tuple(sorted(ids))


async def diagnose(
    constraints: Sequence[TestableConstraint],
    oracle: CountOracle,
    *,
    max_sets: int = DEFAULT_MAX_SETS,
    insufficient_threshold: int = DEFAULT_INSUFFICIENT_THRESHOLD,
    parallel: bool = False,
) -> DiagnosisResult:
    """Find up to `max_sets` distinct minimal conflict sets among `constraints`.

    Parameters
    ----------
    constraints : sequence of TestableConstraint
        Constraints in decomposition order; ids must be unique.
    oracle : async callable
        `await oracle(frozenset_of_ids)` returns the candidate count for that subset.
    max_sets : int
        Upper bound on the number of conflict sets returned.
    insufficient_threshold : int
        A subset is consistent when its count is at least this value.
    parallel : bool
        Run the per-blocker searches concurrently. Membership of the result is
        the same as the sequential run.

    Raises
    ------
    OracleError
        On any oracle failure; no partial result is returned.
    """
    if max_sets < 1:
        raise ValueError("max_sets must be >= 1")
    if insufficient_threshold < 1:
        raise ValueError("insufficient_threshold must be >= 1")

    constraints = list(constraints)
    ids = [c.id for c in constraints]
    if len(set(ids)) != len(ids):
        raise ValueError("Constraint ids must be unique")
    if not ids:
        return DiagnosisResult(full_set_consistent=True)

    qx = _QuickXplain(oracle, insufficient_threshold)
    logger.info("Diagnosing %d constraint(s), threshold=%d", len(ids), insufficient_threshold)

    full_count = await qx.count(ids)
    if full_count >= insufficient_threshold:
        logger.info("Full constraint set is consistent (%d matches); nothing to diagnose", full_count)
        return DiagnosisResult(
            oracle_call_count=qx.calls, full_set_consistent=True, full_set_count=full_count
        )

    if not await qx.consistent([]):
        # The pool itself is too small; no subset of constraints is to blame
        logger.warning("Even the unconstrained pool is below the threshold")
        return DiagnosisResult(oracle_call_count=qx.calls, full_set_count=full_count)

    first = await qx.search([], [], ids)
    found: List[List[str]] = [first] if first else []
    seen = {_signature(s) for s in found}

    if first and len(found) < max_sets:
        extras: Optional[List[Optional[List[str]]]] = None
        if parallel:
            try:
                async with asyncio.TaskGroup() as tg:
                    tasks = [tg.create_task(qx.blocker_pass(ids, b)) for b in first]
            except ExceptionGroup as eg:
                raise eg.exceptions[0]
            extras = [t.result() for t in tasks]

        for i, blocker in enumerate(first):
            if len(found) >= max_sets:
                break
            if extras is not None:
                extra = extras[i]
            else:
                extra = await qx.blocker_pass(ids, blocker)
            if not extra:
                continue
            sig = _signature(extra)
            if sig in seen:
                continue
            seen.add(sig)
            found.append(extra)

    order = {cid: i for i, cid in enumerate(ids)}
    by_id = {c.id: c for c in constraints}
    sets = [
        tuple(by_id[cid] for cid in sorted(s, key=order.__getitem__))
        for s in found[:max_sets]
    ]
    logger.info(
        "Found %d minimal conflict set(s) with %d oracle call(s)", len(sets), qx.calls
    )
    return DiagnosisResult(
        minimal_conflict_sets=sets, oracle_call_count=qx.calls, full_set_count=full_count
    )
