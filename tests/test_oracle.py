"""
Tests for count oracles and candidate pool I/O.
"""

import asyncio

import pandas as pd
import pytest
from openpyxl import load_workbook

from hirelogic.io.excel import (
    copy_excel_file,
    load_candidate_pool,
    parse_domains,
    parse_skills,
    save_report,
)
from hirelogic.model.constraints import (
    DecomposedConstraintSet,
    TestableConstraint,
    UnsupportedOperatorError,
)
from hirelogic.oracle import PoolOracle, QueryOracle, constraint_mask
from hirelogic.state import SkillRequirement


@pytest.fixture
def decomposed():
    return DecomposedConstraintSet(
        (
            TestableConstraint("seniority", "yearsExperience", ">=", 10, "Seniority"),
            TestableConstraint("mid", "yearsExperience", "BETWEEN", (3, 6), "Mid"),
            TestableConstraint("budget", "salary", "<=", 100000, "Budget"),
            TestableConstraint("timezone", "timezone", "IN", ("Eastern", "Central"), "Timezone"),
            TestableConstraint(
                "k8s",
                "requiredSkills",
                "HAS_SKILL",
                SkillRequirement("skill_kubernetes", "expert"),
                "Kubernetes",
            ),
            TestableConstraint(
                "docker", "derivedSkills", "HAS_SKILL", SkillRequirement("skill_docker"), "Docker"
            ),
            TestableConstraint("fintech", "requiredDomains", "HAS_DOMAIN", "fintech", "Fintech"),
        )
    )


def _count(oracle, *ids):
    return asyncio.run(oracle(frozenset(ids)))


class TestPoolOracle:
    """Counting candidates in a DataFrame."""

    def test_empty_subset_counts_pool(self, candidate_pool, decomposed):
        """No constraints match everyone."""
        assert _count(PoolOracle(candidate_pool, decomposed)) == 6

    def test_property_constraints(self, candidate_pool, decomposed):
        """Comparisons, ranges and IN lists."""
        oracle = PoolOracle(candidate_pool, decomposed)
        assert _count(oracle, "seniority") == 3
        assert _count(oracle, "mid") == 3
        assert _count(oracle, "budget") == 3
        assert _count(oracle, "timezone") == 5
        assert _count(oracle, "seniority", "budget") == 0
        assert _count(oracle, "budget", "timezone") == 2

    def test_skill_proficiency(self, candidate_pool, decomposed):
        """A minimum proficiency excludes lower levels; no minimum accepts any."""
        oracle = PoolOracle(candidate_pool, decomposed)
        assert _count(oracle, "k8s") == 5
        assert _count(oracle, "docker") == 6
        assert _count(oracle, "seniority", "k8s") == 2

    def test_domains(self, candidate_pool, decomposed):
        """Domain membership."""
        assert _count(PoolOracle(candidate_pool, decomposed), "fintech") == 4

    def test_unknown_id(self, candidate_pool, decomposed):
        """Ids outside the decomposition are rejected."""
        with pytest.raises(KeyError):
            _count(PoolOracle(candidate_pool, decomposed), "nope")

    def test_unsupported_operator(self, candidate_pool):
        """Operators the pool cannot evaluate raise."""
        c = TestableConstraint("odd", "salary", "ROUGHLY", 1, "Odd")
        with pytest.raises(UnsupportedOperatorError):
            constraint_mask(candidate_pool, c)


class TestQueryOracle:
    """Counting through a query runner."""

    def test_runner_receives_query(self, decomposed):
        """The runner gets the built query and params for the subset."""
        seen = []

        async def runner(query, params):
            seen.append((query, params))
            return 7

        oracle = QueryOracle(decomposed, runner)
        assert _count(oracle, "budget") == 7
        query, params = seen[0]
        assert "e.salary <= $diag_2" in query
        assert params == {"diag_2": 100000}


class TestExcel:
    """Spreadsheet helpers."""

    def test_parse_skills(self):
        """Levels default to proficient."""
        assert parse_skills("skill_go:expert; skill_sql ;") == {
            "skill_go": "expert",
            "skill_sql": "proficient",
        }
        assert parse_skills(float("nan")) == {}

    def test_parse_skills_unknown_level(self):
        """Unknown proficiencies are rejected."""
        with pytest.raises(ValueError, match="guru"):
            parse_skills("skill_go:guru")

    def test_parse_domains(self):
        """Domains split on semicolons."""
        assert parse_domains("fintech; health") == frozenset({"fintech", "health"})
        assert parse_domains(None) == frozenset()

    def test_load_candidate_pool(self, tmp_path, candidate_rows):
        """Rows round-trip through a workbook with parsed skills."""
        path = tmp_path / "pool.xlsx"
        pd.DataFrame(candidate_rows).to_excel(path, sheet_name="Pool", index=False)

        pool = load_candidate_pool(str(path), "Pool")

        assert len(pool) == 6
        assert pool.loc[0, "skills"] == {"skill_kubernetes": "expert", "skill_docker": "proficient"}
        assert pool.loc[2, "domains"] == frozenset()

    def test_missing_column(self, tmp_path, candidate_rows):
        """Every pool column is required."""
        path = tmp_path / "pool.xlsx"
        pd.DataFrame(candidate_rows).drop(columns=["salary"]).to_excel(
            path, sheet_name="Pool", index=False
        )
        with pytest.raises(ValueError, match="salary"):
            load_candidate_pool(str(path), "Pool")

    def test_unknown_timeline(self, tmp_path, candidate_rows):
        """Start timelines must be known enum values."""
        candidate_rows[0]["startTimeline"] = "someday"
        path = tmp_path / "pool.xlsx"
        pd.DataFrame(candidate_rows).to_excel(path, sheet_name="Pool", index=False)
        with pytest.raises(ValueError, match="someday"):
            load_candidate_pool(str(path), "Pool")

    def test_save_report(self, tmp_path, candidate_rows):
        """The report goes into a copy; the original stays untouched."""
        path = tmp_path / "pool.xlsx"
        pd.DataFrame(candidate_rows).to_excel(path, sheet_name="Pool", index=False)

        copy = copy_excel_file(str(path), "_diagnosis")
        save_report(copy, "Diagnosis", [["section", "item"], ["summary", 3]])
        save_report(copy, "Diagnosis", [["section", "item"], ["summary", 4]])

        wb = load_workbook(copy)
        assert wb.sheetnames == ["Pool", "Diagnosis"]
        assert wb["Diagnosis"].cell(row=2, column=2).value == 4
        assert load_workbook(path).sheetnames == ["Pool"]
