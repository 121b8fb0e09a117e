"""Query assembly for hirelogic.

Build a Cypher count query for any subset of a decomposition by:
  1) translating each selected constraint into a WHERE fragment with its own
     parameters, and
  2) joining the fragments with AND under a single `MATCH (e:Engineer)`.

Parameter names depend only on a constraint's position in the full
decomposition, so the same subset always yields the same text and params.
"""

from typing import Any, Callable, Dict, Iterable, Tuple

from hirelogic.model.constraints import (
    DecomposedConstraintSet,
    TestableConstraint,
    UnsupportedOperatorError,
)
from hirelogic.state import proficiencies_at_or_above

Fragment = Tuple[str, Dict[str, Any]]


def _comparison(op: str) -> Callable[[TestableConstraint, str], Fragment]:
    def build(c: TestableConstraint, p: str) -> Fragment:
        return f"e.{c.field} {op} ${p}", {p: c.value}

    return build


def _in(c: TestableConstraint, p: str) -> Fragment:
    return f"e.{c.field} IN ${p}", {p: list(c.value)}


def _between(c: TestableConstraint, p: str) -> Fragment:
    low, high = c.value
    return (
        f"e.{c.field} >= ${p}_min AND e.{c.field} < ${p}_max",
        {f"{p}_min": low, f"{p}_max": high},
    )


def _has_skill(c: TestableConstraint, p: str) -> Fragment:
    req = c.value
    if req.min_proficiency is None:
        return (
            f"EXISTS {{ MATCH (e)-[:HAS_SKILL]->(:Skill {{id: ${p}}}) }}",
            {p: req.skill},
        )
    return (
        f"EXISTS {{ MATCH (e)-[r:HAS_SKILL]->(:Skill {{id: ${p}}}) "
        f"WHERE r.proficiency IN ${p}_levels }}",
        {p: req.skill, f"{p}_levels": list(proficiencies_at_or_above(req.min_proficiency))},
    )


def _has_domain(c: TestableConstraint, p: str) -> Fragment:
    return (
        f"EXISTS {{ MATCH (e)-[:WORKED_IN]->(:BusinessDomain {{id: ${p}}}) }}",
        {p: c.value},
    )


FRAGMENT_BUILDERS: Dict[str, Callable[[TestableConstraint, str], Fragment]] = {
    "IN": _in,
    ">=": _comparison(">="),
    "<=": _comparison("<="),
    "<": _comparison("<"),
    "=": _comparison("="),
    "STARTS WITH": _comparison("STARTS WITH"),
    "BETWEEN": _between,
    "HAS_SKILL": _has_skill,
    "HAS_DOMAIN": _has_domain,
}


def build_fragment(constraint: TestableConstraint, param: str) -> Fragment:
    """Translate one constraint into a WHERE fragment and its parameters.

    Raises
    ------
    UnsupportedOperatorError
        When the operator has no fragment builder.
    """
    try:
        builder = FRAGMENT_BUILDERS[constraint.operator]
    except KeyError as e:
        raise UnsupportedOperatorError(constraint.id, constraint.operator) from e
    return builder(constraint, param)


def build_query(
    decomposed: DecomposedConstraintSet, ids: Iterable[str]
) -> Tuple[str, Dict[str, Any]]:
    """Build the count query for the constraints named by `ids`.

    Parameters
    ----------
    decomposed : DecomposedConstraintSet
        The full decomposition the ids refer to.
    ids : iterable of str
        Subset to include; unknown ids raise KeyError.

    Returns
    -------
    query : str
        Cypher text returning `resultCount`.
    params : Dict[str, Any]
        Query parameters keyed by name.
    """
    wanted = set(ids)
    decomposed.select(wanted)  # validates ids

    fragments: list[str] = []
    params: Dict[str, Any] = {}
    for index, c in enumerate(decomposed.constraints):
        if c.id not in wanted:
            continue
        text, p = build_fragment(c, f"diag_{index}")
        fragments.append(text)
        params.update(p)

    lines = ["MATCH (e:Engineer)"]
    if fragments:
        lines.append("WHERE " + "\n  AND ".join(fragments))
    lines.append("RETURN count(e) AS resultCount")
    return "\n".join(lines), params
