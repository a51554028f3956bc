# ============================================================================
# ORCHESTRATOR ENGINE TESTS
# ============================================================================
# STATUS: Tests - Step grouping, conditions, input templates
# PURPOSE: Verify the stateless helpers the orchestrator builds on
# CREATED: 19 OCT 2026
# ============================================================================
"""
Orchestrator Engine Tests

Run with:
    pytest tests/test_engine.py -v
"""

import pytest

from core.contracts import CorrelationIds
from core.models import ExecutionResult, WorkflowContext, WorkflowStep
from orchestrator.engine import (
    ConditionEvaluator,
    TemplateResolutionError,
    TemplateResolver,
    partition_steps,
    resolve_path,
)


def step(slug, parallel=None):
    return WorkflowStep(task_slug=slug, parallel=parallel)


@pytest.fixture
def variables():
    context = WorkflowContext(
        workflow_execution_id="wfx-1",
        workflow_id="new-listing",
        trigger_event="listing.created",
        trigger_data={"address": "1 Main St", "beds": 3, "photos": ["a.jpg", "b.jpg"], "rush": False},
        correlation=CorrelationIds(listing_id="L1"),
        shared={"listing_data": {"lat": 28.5, "lng": -81.3, "city": "Orlando"}},
        step_results={
            "enricher": ExecutionResult.success_result({"lat": 28.5}),
            "scheduler": ExecutionResult.failure_result("boom", error_code="X"),
        },
    )
    return context.to_template_dict()


# ============================================================================
# GROUPING
# ============================================================================

class TestPartitionSteps:

    def test_untagged_steps_are_singletons(self):
        groups = partition_steps([step("a"), step("b")])
        assert [g.slugs for g in groups] == [["a"], ["b"]]
        assert [g.index for g in groups] == [0, 1]

    def test_tagged_steps_group_at_first_appearance(self):
        groups = partition_steps([
            step("a"),
            step("b", "p1"),
            step("c"),
            step("d", "p1"),
            step("e", "p2"),
            step("f", "p2"),
        ])
        assert [g.slugs for g in groups] == [["a"], ["b", "d"], ["c"], ["e", "f"]]
        assert groups[1].tag == "p1"
        assert groups[0].tag is None

    def test_every_step_lands_in_exactly_one_group(self):
        steps = [step("a", "x"), step("b"), step("c", "x"), step("d", "y")]
        slugs = [s for g in partition_steps(steps) for s in g.slugs]
        assert sorted(slugs) == ["a", "b", "c", "d"]


# ============================================================================
# CONDITIONS
# ============================================================================

class TestConditionEvaluator:

    @pytest.mark.parametrize("condition,expected", [
        ("", True),
        ("true", True),
        ("false", False),
        ("trigger.data.beds > 2", True),
        ("trigger.data.beds >= 4", False),
        ("trigger.data.address == '1 Main St'", True),
        ("trigger.data.address != \"1 Main St\"", False),
        ("trigger.data.rush == false", True),
        ("correlation.listing_id == 'L1'", True),
        ("is_null(correlation.campaign_id)", True),
        ("is_not_null(shared.listing_data.lat)", True),
        ("is_not_null(trigger.data.photos.1)", True),
        ("is_not_null(trigger.data.photos.2)", False),
        ("steps.enricher.success", True),
        ("steps.scheduler.success == false", True),
        ("shared.listing_data.city in 'Orlando, Tampa'", True),
        ("trigger.data.address contains 'Main'", True),
        ("trigger.data.address starts_with '1 '", True),
        ("not trigger.data.rush", True),
        ("trigger.data.beds > 5 or shared.listing_data.city == 'Orlando'", True),
        ("trigger.data.beds > 2 and is_null(shared.listing_data.lat)", False),
        ("is_null(shared.missing.deep.path)", True),
        ("trigger.data.beds > shared.listing_data.city", False),
    ])
    def test_evaluate(self, variables, condition, expected):
        assert ConditionEvaluator().evaluate(condition, variables) is expected

    def test_and_binds_tighter_than_or(self, variables):
        evaluator = ConditionEvaluator()
        assert evaluator.evaluate("false and false or true", variables) is True
        assert evaluator.evaluate("true or false and false", variables) is True

    def test_resolve_path(self):
        data = {"output": {"items": [{"id": "x"}]}, "success": True}
        assert resolve_path(data, "output.items.0.id") == "x"
        assert resolve_path(data, "success") is True
        assert resolve_path(data, "output.missing") is None


# ============================================================================
# TEMPLATES
# ============================================================================

class TestTemplateResolver:

    def test_single_expression_keeps_type(self, variables):
        resolved = TemplateResolver().resolve(
            {
                "listing": "{{ shared.listing_data }}",
                "beds": "{{ trigger.data.beds }}",
                "photos": "{{ trigger.data.photos }}",
                "campaign": "{{ correlation.campaign_id }}",
            },
            variables,
        )
        assert resolved["listing"] == {"lat": 28.5, "lng": -81.3, "city": "Orlando"}
        assert resolved["beds"] == 3
        assert resolved["photos"] == ["a.jpg", "b.jpg"]
        assert resolved["campaign"] is None

    def test_mixed_text_renders_string(self, variables):
        resolved = TemplateResolver().resolve(
            {"headline": "New listing in {{ shared.listing_data.city }} ({{ trigger.data.beds }} beds)"},
            variables,
        )
        assert resolved["headline"] == "New listing in Orlando (3 beds)"

    def test_nested_values_and_literals(self, variables):
        resolved = TemplateResolver().resolve(
            {
                "video_urls": {"slideshow": "{{ steps['enricher'].output.lat }}"},
                "styles": ["professional", "{{ trigger.event }}"],
                "count": 2,
            },
            variables,
        )
        assert resolved == {
            "video_urls": {"slideshow": 28.5},
            "styles": ["professional", "listing.created"],
            "count": 2,
        }

    def test_dict_get_with_default(self, variables):
        resolved = TemplateResolver().resolve(
            {"services": "{{ trigger.data.get('services', []) }}"},
            variables,
        )
        assert resolved["services"] == []

    def test_undefined_raises(self, variables):
        resolver = TemplateResolver()
        with pytest.raises(TemplateResolutionError):
            resolver.resolve({"x": "{{ shared.nope }}"}, variables)
        with pytest.raises(TemplateResolutionError):
            resolver.resolve({"x": "Hello {{ trigger.data.nope }}"}, variables)

    def test_syntax_error_raises(self, variables):
        with pytest.raises(TemplateResolutionError):
            TemplateResolver().resolve({"x": "{{ shared. }}"}, variables)

    def test_has_templates(self):
        resolver = TemplateResolver()
        assert resolver.has_templates({"a": ["{{ x }}"]})
        assert not resolver.has_templates({"a": "plain", "b": 1})
