"""
Pytest configuration and shared fixtures.
"""

from typing import Iterable, List

import pandas as pd
import pytest

from hirelogic.model.constraints import TestableConstraint
from hirelogic.state import ResolvedRequest, SkillRequirement


class ConflictFamilyOracle:
    """Synthetic count oracle.

    A subset is insufficient (count 0) when it contains any of the injected
    conflict sets, otherwise it matches `pool_size` candidates. Every call is
    recorded.
    """

    def __init__(self, conflicts: Iterable[Iterable[str]], pool_size: int = 10):
        self.conflicts = [frozenset(c) for c in conflicts]
        self.pool_size = pool_size
        self.calls: List[frozenset] = []

    def count(self, ids: Iterable[str]) -> int:
        subset = frozenset(ids)
        if any(c <= subset for c in self.conflicts):
            return 0
        return self.pool_size

    async def __call__(self, ids: frozenset) -> int:
        self.calls.append(ids)
        return self.count(ids)


def make_constraints(ids: Iterable[str]) -> List[TestableConstraint]:
    return [
        TestableConstraint(id=i, field="timezone", operator="=", value=i, description=f"Constraint {i}")
        for i in ids
    ]


@pytest.fixture
def conflict_oracle():
    """Factory for ConflictFamilyOracle instances."""
    return ConflictFamilyOracle


@pytest.fixture
def constraints_factory():
    return make_constraints


@pytest.fixture
def candidate_rows() -> List[dict]:
    """Raw candidate rows, skills/domains as spreadsheet strings."""
    return [
        {"id": "c1", "yearsExperience": 12, "salary": 160000, "startTimeline": "immediate",
         "timezone": "Eastern", "skills": "skill_kubernetes:expert; skill_docker:proficient",
         "domains": "fintech"},
        {"id": "c2", "yearsExperience": 11, "salary": 150000, "startTimeline": "two_weeks",
         "timezone": "Central", "skills": "skill_kubernetes:expert; skill_docker:expert",
         "domains": "fintech"},
        {"id": "c3", "yearsExperience": 14, "salary": 170000, "startTimeline": "one_month",
         "timezone": "Eastern", "skills": "skill_kubernetes:proficient; skill_docker:proficient",
         "domains": ""},
        {"id": "c4", "yearsExperience": 4, "salary": 90000, "startTimeline": "immediate",
         "timezone": "Eastern", "skills": "skill_kubernetes:expert; skill_docker:proficient",
         "domains": "fintech"},
        {"id": "c5", "yearsExperience": 5, "salary": 95000, "startTimeline": "two_weeks",
         "timezone": "Central", "skills": "skill_kubernetes:expert; skill_docker:learning",
         "domains": ""},
        {"id": "c6", "yearsExperience": 3, "salary": 80000, "startTimeline": "immediate",
         "timezone": "Pacific", "skills": "skill_kubernetes:expert; skill_docker:proficient",
         "domains": "fintech"},
    ]


@pytest.fixture
def candidate_pool(candidate_rows) -> pd.DataFrame:
    """In-memory pool with parsed skills and domains."""
    from hirelogic.io.excel import parse_domains, parse_skills

    df = pd.DataFrame(candidate_rows)
    df["skills"] = df["skills"].map(parse_skills)
    df["domains"] = df["domains"].map(parse_domains)
    return df


@pytest.fixture
def staff_kubernetes_request() -> ResolvedRequest:
    """Staff engineer on a 100k budget: too restrictive for the sample pool."""
    return ResolvedRequest(
        required_seniority_level="staff",
        required_skills=(SkillRequirement("skill_kubernetes", "expert"),),
        required_timezone=("Eastern", "Central"),
        max_budget=100000,
    )
