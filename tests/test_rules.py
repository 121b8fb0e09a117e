"""
Tests for rule contracts and the built-in rule registry.
"""

import pytest

from hirelogic.rules import registry
from hirelogic.rules.base import (
    MISSING,
    All,
    Any_,
    Leaf,
    RuleConfigError,
    RuleEffect,
    RuleSpec,
    validate_fact_path,
)
from hirelogic.state import RuleKind


def _skill_boost(strength=0.5):
    return RuleEffect(
        kind=RuleKind.BOOST,
        target_field="derived_skills",
        target_value=["skill_helm"],
        boost_strength=strength,
    )


class TestFactPaths:
    """Fact path validation happens when a condition is built."""

    @pytest.mark.parametrize(
        "path",
        [
            "request.team_focus",
            "request.required_skills",
            "derived.all_skills",
            "derived.required_skills",
            "derived.required_properties.seniority_level",
            "derived.preferred_properties.anything",
        ],
    )
    def test_valid_paths(self, path):
        """Known request fields and derived sections should be accepted."""
        assert validate_fact_path(path)[0] in ("request", "derived")

    @pytest.mark.parametrize(
        "path",
        [
            "",
            "request",
            "request.nope",
            "request..team_focus",
            "derived.boosts",
            "derived.required_properties",
            "candidate.salary",
        ],
    )
    def test_malformed_paths_raise(self, path):
        """Malformed paths should fail at construction, not at evaluation."""
        with pytest.raises(RuleConfigError):
            Leaf(path, "equal", "x")

    def test_unknown_operator_raises(self):
        """Unknown operators should be rejected when the leaf is built."""
        with pytest.raises(RuleConfigError, match="Unknown operator"):
            Leaf("request.team_focus", "approximately", "scaling")


class TestConditions:
    """Evaluation of condition trees."""

    def test_missing_fact_is_false(self):
        """Every operator, even negated ones, is false on a missing fact."""
        resolve = lambda path: MISSING  # noqa: E731
        assert not Leaf("request.team_focus", "equal", "scaling").evaluate(resolve)
        assert not Leaf("request.team_focus", "not_equal", "scaling").evaluate(resolve)
        assert not Leaf("derived.all_skills", "does_not_contain", "x").evaluate(resolve)

    def test_all_and_any(self):
        """All needs every child, Any needs one."""
        facts = {"request.team_focus": "scaling", "request.required_seniority_level": "mid"}
        resolve = lambda path: facts.get(path, MISSING)  # noqa: E731
        focus = Leaf("request.team_focus", "equal", "scaling")
        senior = Leaf("request.required_seniority_level", "in", ["senior", "staff"])

        assert not All((focus, senior)).evaluate(resolve)
        assert Any_((focus, senior)).evaluate(resolve)

    def test_any_reports_only_satisfied_branches(self):
        """Provenance only follows the branches that held."""
        facts = {"request.team_focus": "scaling"}
        resolve = lambda path: facts.get(path, MISSING)  # noqa: E731
        focus = Leaf("request.team_focus", "equal", "scaling")
        senior = Leaf("request.required_seniority_level", "equal", "senior")

        assert list(Any_((focus, senior)).satisfied_leaves(resolve)) == [focus]

    def test_list_values_become_tuples(self):
        """List operands are frozen so rules stay hashable."""
        leaf = Leaf("request.required_seniority_level", "in", ["senior", "staff"])
        assert leaf.value == ("senior", "staff")

    def test_type_mismatch_is_false(self):
        """Ordering comparisons across incompatible types do not raise."""
        resolve = lambda path: "senior"  # noqa: E731
        assert not Leaf("request.max_budget", "greater_than", 10).evaluate(resolve)

    def test_empty_group_raises(self):
        """An empty all/any group is a configuration error."""
        with pytest.raises(RuleConfigError):
            All(())


class TestRuleEffect:
    """Effect validation."""

    def test_boost_needs_strength(self):
        """Skill boosts without a strength in (0, 1] are rejected."""
        with pytest.raises(RuleConfigError):
            _skill_boost(strength=None)
        with pytest.raises(RuleConfigError):
            _skill_boost(strength=1.5)

    def test_unknown_kind(self):
        """Kinds outside filter/boost are rejected."""
        with pytest.raises(RuleConfigError, match="Unknown rule kind"):
            RuleEffect(kind="derived-maybe", target_field="derived_skills", target_value=["x"])

    def test_kind_accepts_string_value(self):
        """YAML-loaded kinds are coerced into RuleKind."""
        effect = RuleEffect(kind="derived-filter", target_field="derived_skills", target_value="x")
        assert effect.kind is RuleKind.FILTER
        assert effect.target_value == ("x",)

    def test_unknown_target_field(self):
        """Only derived_skills and required_/preferred_ scalar fields can be targeted."""
        with pytest.raises(RuleConfigError):
            RuleEffect(kind=RuleKind.FILTER, target_field="salary", target_value=1)
        with pytest.raises(RuleConfigError):
            RuleEffect(kind=RuleKind.FILTER, target_field="required_skills", target_value=["x"])

    def test_property_key(self):
        """Property effects are keyed without their required_/preferred_ prefix."""
        effect = RuleEffect(
            kind=RuleKind.BOOST,
            target_field="preferred_seniority_level",
            target_value="senior",
        )
        assert effect.property_key == "seniority_level"
        assert not effect.is_skill_effect

    @pytest.mark.parametrize(
        "target_field, target_value",
        [
            ("required_seniority_level", "ninja"),
            ("preferred_seniority_level", ["senior"]),
            ("required_max_start_time", "someday"),
            ("preferred_timezone", []),
            ("required_timezone", ["Eastern", 5]),
        ],
    )
    def test_property_value_checked(self, target_field, target_value):
        """Scalar effects must use a value the request field accepts."""
        with pytest.raises(RuleConfigError):
            RuleEffect(kind=RuleKind.BOOST, target_field=target_field, target_value=target_value)

    def test_timezone_value_forms(self):
        """A timezone effect takes one name or a list of names."""
        single = RuleEffect(
            kind=RuleKind.BOOST, target_field="preferred_timezone", target_value="Eastern"
        )
        several = RuleEffect(
            kind=RuleKind.BOOST,
            target_field="preferred_timezone",
            target_value=["Eastern", "Central"],
        )
        assert single.target_value == "Eastern"
        assert several.target_value == ("Eastern", "Central")

    def test_rule_priority_must_be_int(self):
        """Priority is an integer."""
        with pytest.raises(RuleConfigError):
            RuleSpec(
                id="r",
                name="r",
                priority="high",
                when=Leaf("request.team_focus", "equal", "scaling"),
                effect=_skill_boost(),
            )


class TestRegistry:
    """The built-in rule library."""

    def test_ids_are_unique(self):
        """Registered ids are unique and resolvable."""
        ids = registry.list_rule_ids()
        assert len(ids) == len(set(ids)) == 15
        assert registry.get_rule("kubernetes-requires-containers").kind is RuleKind.FILTER

    def test_unknown_id(self):
        """Unknown ids raise KeyError listing the known ones."""
        with pytest.raises(KeyError, match="Unknown rule id"):
            registry.get_rule("no-such-rule")

    def test_duplicates_rejected(self):
        """A rule base with repeated ids is a configuration error."""
        rule = registry.RULES[0]
        with pytest.raises(RuleConfigError, match="Duplicate"):
            registry.check_unique_ids([rule, rule])

    def test_evaluation_order(self):
        """Descending priority, declaration order on ties, disabled rules dropped."""
        when = Leaf("request.team_focus", "equal", "scaling")
        low = RuleSpec("low", "low", 10, when, _skill_boost())
        high_a = RuleSpec("high-a", "high-a", 50, when, _skill_boost())
        high_b = RuleSpec("high-b", "high-b", 50, when, _skill_boost())
        off = RuleSpec("off", "off", 99, when, _skill_boost(), enabled=False)

        ordered = registry.evaluation_order([low, high_a, off, high_b])
        assert [r.id for r in ordered] == ["high-a", "high-b", "low"]
