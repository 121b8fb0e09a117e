"""Diagnosis pipeline.

This module exposes two entry points:
  - advise(request, oracle_factory, ...): infer, decompose, diagnose and suggest
  - advise_excel(input_path, sheet_name, request, ..., save=False): same against a
    candidate pool loaded from Excel, optionally writing a report sheet back
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Iterable, List, Mapping, Optional

import hirelogic.state as state
from hirelogic.advisor import (
    RelaxationSuggestion,
    explain_conflict,
    measure_suggestions,
    rank_suggestions,
)
from hirelogic.diagnosis import CountOracle, DiagnosisResult, diagnose
from hirelogic.inference import infer
from hirelogic.io.excel import copy_excel_file, load_candidate_pool, save_report
from hirelogic.io.policy import load_policy
from hirelogic.model.constraints import DecomposedConstraintSet, decompose
from hirelogic.oracle import PoolOracle
from hirelogic.policy import Settings
from hirelogic.rules.base import RuleSpec
from hirelogic.strategies import RelaxationStrategy

logger = logging.getLogger(__name__)

OracleFactory = Callable[[DecomposedConstraintSet], CountOracle]

REPORT_SHEET = "Diagnosis"


@dataclass(slots=True)
class AdviceResult:
    context: state.FactContext
    decomposed: DecomposedConstraintSet
    diagnosis: DiagnosisResult
    suggestions: List[RelaxationSuggestion] = field(default_factory=list)
    explanations: List[str] = field(default_factory=list)

    @property
    def total_count(self) -> Optional[int]:
        return self.diagnosis.full_set_count

    @property
    def sparse(self) -> bool:
        return not self.diagnosis.full_set_consistent


async def advise(
    *,
    request: state.ResolvedRequest,
    oracle_factory: OracleFactory,
    rules: Optional[Iterable[RuleSpec]] = None,
    strategies: Optional[Mapping[str, RelaxationStrategy]] = None,
    settings: Optional[Settings] = None,
    max_sets: Optional[int] = None,
    insufficient_threshold: Optional[int] = None,
) -> AdviceResult:
    """Run the reasoning core end to end for one request.

    Keyword thresholds override the corresponding `settings` values. Each
    suggestion is counted against the pool through `oracle_factory` and the
    ones that unlock no candidate are dropped.
    """
    settings = (settings or Settings()).with_overrides(
        max_sets=max_sets, insufficient_threshold=insufficient_threshold
    )

    ctx = infer(request, rules, max_iterations=settings.max_iterations)
    decomposed = decompose(ctx)
    logger.info("Decomposed request into %d constraint(s): %s", len(decomposed), decomposed.ids)

    diagnosis = await diagnose(
        decomposed.constraints,
        oracle_factory(decomposed),
        max_sets=settings.max_sets,
        insufficient_threshold=settings.insufficient_threshold,
        parallel=settings.parallel_blockers,
    )

    result = AdviceResult(context=ctx, decomposed=decomposed, diagnosis=diagnosis)
    if diagnosis.minimal_conflict_sets:
        result.explanations = [explain_conflict(s) for s in diagnosis.minimal_conflict_sets]
        ranked = rank_suggestions(diagnosis.minimal_conflict_sets, strategies, decomposed.ids)
        result.suggestions = await measure_suggestions(
            decomposed, oracle_factory, ranked, strategies
        )
    return result


def report_rows(result: AdviceResult) -> List[List[Any]]:
    """Flatten an AdviceResult into rows for a spreadsheet report."""
    rows: List[List[Any]] = [["section", "item", "detail", "value"]]
    rows.append(["summary", "matches", "all constraints", result.total_count])
    rows.append(["summary", "oracle calls", "", result.diagnosis.oracle_call_count])
    for i, (conflict, text) in enumerate(
        zip(result.diagnosis.minimal_conflict_sets, result.explanations), start=1
    ):
        rows.append(["conflict", i, ", ".join(c.id for c in conflict), text])
    for i, s in enumerate(result.suggestions, start=1):
        value = s.suggested_value
        if isinstance(value, state.SkillRequirement):
            value = f"{value.skill}:{value.min_proficiency or 'any'}"
        rows.append(
            [
                "suggestion",
                i,
                f"{s.rationale} (matches: {s.resulting_matches})",
                f"{s.suggested_field}={value}",
            ]
        )
    for rule in result.context.trace.overridden_rules:
        rows.append(["overridden rule", rule.rule_id, rule.reason, rule.scope.value])
    return rows


def advise_excel(
    *,
    input_path: str,
    sheet_name: str,
    request: state.ResolvedRequest,
    policy_path: Optional[str] = None,
    save: bool = False,
) -> AdviceResult:
    """Load a candidate pool from Excel, diagnose the request against it, and
    optionally write the report into a copy of the workbook."""
    pool = load_candidate_pool(input_path, sheet_name)
    policy = load_policy(policy_path)

    result = asyncio.run(
        advise(
            request=request,
            oracle_factory=lambda decomposed: PoolOracle(pool, decomposed),
            rules=policy.rules,
            strategies=policy.strategies,
            settings=policy.settings,
        )
    )

    if save:
        output_path = copy_excel_file(input_path, "_diagnosis")
        save_report(output_path, REPORT_SHEET, report_rows(result))
        logger.info("Wrote diagnosis report to %s", output_path)

    return result
