"""
End-to-end tests for the diagnosis pipeline.
"""

import asyncio

import pandas as pd
from openpyxl import load_workbook

from hirelogic.oracle import PoolOracle
from hirelogic.pipeline import advise, advise_excel, report_rows
from hirelogic.state import ResolvedRequest, SkillRequirement

EXPECTED_CONFLICTS = [
    ["seniority", "budget"],
    ["budget", "timezone"],
    ["seniority", "user_skill_skill_kubernetes"],
]


def _advise(request, pool, **kwargs):
    return asyncio.run(
        advise(
            request=request,
            oracle_factory=lambda decomposed: PoolOracle(pool, decomposed),
            **kwargs,
        )
    )


class TestAdvise:
    """Inference, decomposition, diagnosis and advice together."""

    def test_sparse_request(self, candidate_pool, staff_kubernetes_request):
        """A staff engineer on a junior budget gets three conflicts and measured advice."""
        result = _advise(staff_kubernetes_request, candidate_pool)

        assert result.sparse
        assert result.total_count == 0
        assert result.decomposed.ids == [
            "seniority",
            "budget",
            "timezone",
            "user_skill_skill_kubernetes",
            "derived_skill_skill_docker",
        ]
        assert result.diagnosis.conflict_ids == EXPECTED_CONFLICTS
        assert len(result.explanations) == 3
        assert result.explanations[0].startswith("The combination of Seniority")

        # Only the 150k budget step unlocks anyone (c2) while seniority still applies
        (suggestion,) = result.suggestions
        assert suggestion.constraint_id == "budget"
        assert suggestion.suggested_field == "max_budget"
        assert suggestion.suggested_value == 150000
        assert suggestion.resulting_matches == 1

    def test_suggestions_ranked_by_matches(self, candidate_pool):
        """Suggestions are ordered by how many candidates they unlock."""
        request = ResolvedRequest(
            required_skills=(SkillRequirement("skill_kubernetes", "expert"),),
            required_timezone=("Eastern",),
            max_budget=100000,
        )
        result = _advise(request, candidate_pool)

        assert result.total_count == 1
        assert result.diagnosis.conflict_ids == [
            ["budget", "timezone"],
            ["timezone", "user_skill_skill_kubernetes"],
        ]
        assert [(s.constraint_id, s.action, s.resulting_matches) for s in result.suggestions] == [
            ("timezone", "remove", 3),
            ("budget", "step", 1),
            ("budget", "step", 1),
            ("user_skill_skill_kubernetes", "lower-proficiency", 1),
            ("user_skill_skill_kubernetes", "move-to-preferred", 1),
            ("user_skill_skill_kubernetes", "remove-skill", 1),
        ]

    def test_sufficient_request(self, candidate_pool):
        """Enough matches means no conflicts and no suggestions."""
        result = _advise(ResolvedRequest(max_budget=200000), candidate_pool)

        assert not result.sparse
        assert result.total_count == 6
        assert result.suggestions == []
        assert result.diagnosis.oracle_call_count == 1

    def test_threshold_override(self, candidate_pool):
        """Keyword thresholds take precedence over settings."""
        request = ResolvedRequest(required_timezone=("Pacific",))
        assert _advise(request, candidate_pool).sparse
        assert not _advise(request, candidate_pool, insufficient_threshold=1).sparse

    def test_max_sets(self, candidate_pool, staff_kubernetes_request):
        """max_sets caps the reported conflicts."""
        result = _advise(staff_kubernetes_request, candidate_pool, max_sets=1)
        assert result.diagnosis.conflict_ids == EXPECTED_CONFLICTS[:1]

    def test_report_rows(self, candidate_pool, staff_kubernetes_request):
        """The report lists a summary, the conflicts and the suggestions."""
        rows = report_rows(_advise(staff_kubernetes_request, candidate_pool))

        assert rows[0] == ["section", "item", "detail", "value"]
        assert rows[1] == ["summary", "matches", "all constraints", 0]
        sections = [r[0] for r in rows[1:]]
        assert sections.count("conflict") == 3
        assert sections.count("suggestion") == 1
        assert rows[3][2] == "seniority, budget"
        assert rows[-1] == [
            "suggestion",
            1,
            "Increase budget from $100000 to $150000 (matches: 1)",
            "max_budget=150000",
        ]


class TestAdviseExcel:
    """Running against a workbook."""

    def test_writes_report(self, tmp_path, candidate_rows, staff_kubernetes_request):
        """With save=True the report lands in a copy of the workbook."""
        path = tmp_path / "candidates.xlsx"
        pd.DataFrame(candidate_rows).to_excel(path, sheet_name="Pool", index=False)

        result = advise_excel(
            input_path=str(path),
            sheet_name="Pool",
            request=staff_kubernetes_request,
            save=True,
        )

        assert result.diagnosis.conflict_ids == EXPECTED_CONFLICTS
        report = load_workbook(tmp_path / "candidates_diagnosis.xlsx")
        assert "Diagnosis" in report.sheetnames
        assert report["Diagnosis"].cell(row=1, column=1).value == "section"

    def test_no_save(self, tmp_path, candidate_rows):
        """Without save nothing is written."""
        path = tmp_path / "candidates.xlsx"
        pd.DataFrame(candidate_rows).to_excel(path, sheet_name="Pool", index=False)

        advise_excel(input_path=str(path), sheet_name="Pool", request=ResolvedRequest())

        assert not (tmp_path / "candidates_diagnosis.xlsx").exists()
