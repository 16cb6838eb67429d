"""
Unit tests for placeholder resolution.
"""
import pytest

from workflow_engine.engine.context import ExecutionContext
from workflow_engine.engine.templating import has_placeholders, lookup, resolve, resolve_config
from workflow_engine.models.nodes import CreateLeadConfig


@pytest.fixture
def context() -> ExecutionContext:
    ctx = ExecutionContext.seeded({"subject": "Demo request", "contactId": "c-1", "count": 3})
    ctx.record("classify", {"classification": "Lead Inquiry", "confidence": 92.0, "ok": True, "tags": ["a", "b"]})
    ctx.record("empty", None)
    return ctx


class TestResolve:
    """Placeholder substitution."""

    def test_trigger_and_node_paths(self, context):
        result = resolve("{{trigger.subject}} is {{classify.classification}}", context)
        assert result == "Demo request is Lead Inquiry"

    def test_adjacent_and_repeated_placeholders(self, context):
        result = resolve("{{trigger.contactId}}{{trigger.contactId}}-{{trigger.contactId}}", context)
        assert result == "c-1c-1-c-1"

    def test_whitespace_inside_braces(self, context):
        assert resolve("{{ trigger.subject }}", context) == "Demo request"

    def test_canonical_value_strings(self, context):
        assert resolve("{{classify.confidence}}", context) == "92"
        assert resolve("{{classify.ok}}", context) == "true"
        assert resolve("{{trigger.count}}", context) == "3"
        assert resolve("[{{empty}}]", context) == "[]"

    def test_list_index(self, context):
        assert resolve("{{classify.tags.1}}", context) == "b"

    def test_missing_path_becomes_empty_and_is_reported(self, context):
        unresolved = []
        result = resolve("Hi {{trigger.firstName}}!", context, unresolved)
        assert result == "Hi !"
        assert unresolved == ["trigger.firstName"]

    def test_unknown_node(self, context):
        assert resolve("{{nowhere.value}}", context) == ""

    def test_idempotent_once_resolved(self, context):
        once = resolve("{{trigger.subject}} / {{classify.classification}}", context)
        assert resolve(once, context) == once
        assert not has_placeholders(once)

    def test_non_strings_pass_through(self, context):
        assert resolve(42, context) == 42
        assert resolve(None, context) is None

    def test_plain_mapping_context(self):
        assert resolve("{{trigger.a}}", {"trigger": {"a": 1}}) == "1"


class TestLookup:
    """Dotted path lookup."""

    def test_whole_node_output(self, context):
        assert lookup("classify", context)["classification"] == "Lead Inquiry"

    def test_walk_into_scalar_is_missing(self, context):
        assert resolve("{{trigger.subject.length}}", context) == ""


class TestResolveConfig:
    """Resolution of typed node configurations."""

    def test_string_fields_resolved_and_warnings_collected(self, context):
        config = CreateLeadConfig(title="{{trigger.subject}}", contactId="{{trigger.contactId}}", description="{{x.y}}")
        resolved, warnings = resolve_config(config, context)

        assert resolved.title == "Demo request"
        assert resolved.contact_id == "c-1"
        assert resolved.description == ""
        assert warnings == ["Unresolved placeholder: {{x.y}}"]
        # The original configuration is left untouched.
        assert config.title == "{{trigger.subject}}"

    def test_excluded_fields_untouched(self, context):
        config = CreateLeadConfig(title="{{trigger.subject}}")
        resolved, _ = resolve_config(config, context, exclude=("title",))
        assert resolved.title == "{{trigger.subject}}"
