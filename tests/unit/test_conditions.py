"""
Unit tests for condition evaluation.
"""
import pytest

from workflow_engine.engine.conditions import evaluate_condition
from workflow_engine.engine.context import ExecutionContext
from workflow_engine.models.nodes import ConditionConfig


@pytest.fixture
def context() -> ExecutionContext:
    ctx = ExecutionContext.seeded({"daysSinceContact": "9", "subject": "Pricing question"})
    ctx.record("classify", {"classification": "Lead Inquiry", "confidence": 85})
    return ctx


def condition(field: str, operator: str, value) -> ConditionConfig:
    return ConditionConfig(field=field, operator=operator, value=value)


class TestOperators:
    """Each supported operator."""

    def test_equals(self, context):
        assert evaluate_condition(condition("{{classify.classification}}", "equals", "Lead Inquiry"), context)
        assert not evaluate_condition(condition("{{classify.classification}}", "equals", "lead inquiry"), context)

    def test_not_equals(self, context):
        assert evaluate_condition(condition("{{classify.classification}}", "not_equals", "Other"), context)

    def test_contains_is_case_sensitive(self, context):
        assert evaluate_condition(condition("{{trigger.subject}}", "contains", "Pricing"), context)
        assert not evaluate_condition(condition("{{trigger.subject}}", "contains", "pricing"), context)

    def test_numeric_comparisons(self, context):
        assert evaluate_condition(condition("{{trigger.daysSinceContact}}", "greater_than", "7"), context)
        assert not evaluate_condition(condition("{{trigger.daysSinceContact}}", "less_than", "7"), context)
        assert evaluate_condition(condition("{{classify.confidence}}", "greater_than", 80), context)

    def test_numeric_comparison_is_not_lexicographic(self, context):
        ctx = ExecutionContext.seeded({"n": "10"})
        assert evaluate_condition(condition("{{trigger.n}}", "greater_than", "9"), ctx)

    def test_value_is_compared_literally(self, context):
        warnings = []
        result = evaluate_condition(
            condition("{{trigger.daysSinceContact}}", "equals", "{{trigger.daysSinceContact}}"), context, warnings
        )
        assert result is False
        assert warnings == []
        assert evaluate_condition(condition("{{trigger.subject}}", "not_equals", "{{trigger.subject}}"), context)


class TestFailClosed:
    """Malformed comparisons evaluate to false and never raise."""

    def test_unparseable_number(self, context):
        warnings = []
        result = evaluate_condition(condition("{{trigger.subject}}", "greater_than", "5"), context, warnings)
        assert result is False
        assert warnings and "as numbers" in warnings[0]

    def test_nan_is_not_comparable(self, context):
        ctx = ExecutionContext.seeded({"n": "nan"})
        assert evaluate_condition(condition("{{trigger.n}}", "less_than", "5"), ctx) is False

    def test_unknown_operator(self, context):
        warnings = []
        bad = ConditionConfig.model_construct(field="{{trigger.subject}}", operator="matches", value="x")
        assert evaluate_condition(bad, context, warnings) is False
        assert warnings == ["Unknown operator: matches"]

    def test_unresolved_field_compares_as_empty(self, context):
        warnings = []
        result = evaluate_condition(condition("{{missing.value}}", "equals", ""), context, warnings)
        assert result is True
        assert warnings == ["Unresolved placeholder: {{missing.value}}"]

    def test_unresolved_numeric_operand(self, context):
        assert evaluate_condition(condition("{{missing.value}}", "greater_than", "0"), context) is False
