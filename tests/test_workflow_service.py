# ============================================================================
# WORKFLOW SERVICE TESTS
# ============================================================================
# STATUS: Tests - Workflow definition loading
# PURPOSE: Verify YAML loading, validation and lookup
# CREATED: 19 OCT 2026
# ============================================================================
"""
Workflow Service Tests

Run with:
    pytest tests/test_workflow_service.py -v
"""

from pathlib import Path

import pytest

from core.contracts import ErrorPolicy
from core.errors import NotFoundError
from core.models import WorkflowDefinition, WorkflowStep
from services import WorkflowService

BUNDLED = Path(__file__).parent.parent / "workflows"

VALID_YAML = """
workflow_id: tiny
name: Tiny
trigger_event: listing.created
steps:
  - task_slug: listing-data-enricher
  - task_slug: content-writer
    parallel: content
    required: false
"""


def definition(workflow_id="wf", event="listing.created", steps=None):
    return WorkflowDefinition(
        workflow_id=workflow_id,
        name=workflow_id,
        trigger_event=event,
        steps=steps if steps is not None else [WorkflowStep(task_slug="a")],
    )


class TestBundledWorkflows:

    def test_bundled_workflows_load(self):
        service = WorkflowService(workflows_dir=str(BUNDLED))

        assert service.load_all() == 2
        new_listing = service.get_or_raise("new-listing")
        post_delivery = service.get_or_raise("post-delivery")

        assert new_listing.trigger_event == "listing.created"
        assert new_listing.on_error == ErrorPolicy.CONTINUE
        assert new_listing.get_step("agent-welcome-notifier").required is True
        assert post_delivery.trigger_event == "qc.approved"
        assert post_delivery.get_step("video-creator").parallel == "content-gen"
        assert post_delivery.get_step("content-writer").parallel == "content-gen"

    def test_bundled_workflows_are_structurally_valid(self):
        service = WorkflowService(workflows_dir=str(BUNDLED))
        for workflow in service.list_all():
            assert workflow.validate_structure() == []


class TestLoading:

    def test_loads_yaml_directory(self, tmp_path):
        (tmp_path / "tiny.yaml").write_text(VALID_YAML)
        service = WorkflowService(workflows_dir=str(tmp_path))

        workflow = service.get("tiny")

        assert workflow is not None
        assert [s.task_slug for s in workflow.steps] == ["listing-data-enricher", "content-writer"]
        assert workflow.on_error == ErrorPolicy.STOP
        assert workflow.steps[1].required is False

    def test_bad_files_are_skipped(self, tmp_path):
        (tmp_path / "tiny.yaml").write_text(VALID_YAML)
        (tmp_path / "broken.yaml").write_text("workflow_id: [unterminated")
        (tmp_path / "list.yaml").write_text("- just\n- a list\n")
        (tmp_path / "empty_steps.yml").write_text(
            "workflow_id: empty\nname: Empty\ntrigger_event: x\nsteps: []\n"
        )
        (tmp_path / "missing_name.yaml").write_text("workflow_id: nameless\ntrigger_event: x\n")

        service = WorkflowService(workflows_dir=str(tmp_path))

        assert service.load_all() == 1
        assert [w.workflow_id for w in service.list_all()] == ["tiny"]

    def test_missing_directory(self, tmp_path):
        service = WorkflowService(workflows_dir=str(tmp_path / "nope"))
        assert service.load_all() == 0
        assert service.get("anything") is None

    def test_reload_drops_registered(self, tmp_path):
        (tmp_path / "tiny.yaml").write_text(VALID_YAML)
        service = WorkflowService(workflows_dir=str(tmp_path))
        service.register(definition("code-only"))

        assert service.reload() == 1
        assert service.get("code-only") is None
        assert service.get("tiny") is not None


class TestRegistration:

    def test_register_and_lookup(self, tmp_path):
        service = WorkflowService(workflows_dir=str(tmp_path))
        service.register(definition("one"))
        service.register(definition("two", event="qc.approved"))
        service.register(definition("three"))

        assert [w.workflow_id for w in service.list_for_event("listing.created")] == ["one", "three"]
        assert service.list_for_event("nothing") == []

    def test_last_registration_wins(self, tmp_path):
        service = WorkflowService(workflows_dir=str(tmp_path))
        service.register(definition("one"))
        service.register(definition("one", steps=[WorkflowStep(task_slug="b")]))

        assert service.get("one").steps[0].task_slug == "b"
        assert len(service.list_all()) == 1

    @pytest.mark.parametrize("steps", [
        [],
        [WorkflowStep(task_slug="a"), WorkflowStep(task_slug="a")],
        [WorkflowStep(task_slug="  ")],
    ])
    def test_invalid_definitions_rejected(self, tmp_path, steps):
        service = WorkflowService(workflows_dir=str(tmp_path))
        with pytest.raises(ValueError):
            service.register(definition("bad", steps=steps))

    def test_get_or_raise(self, tmp_path):
        service = WorkflowService(workflows_dir=str(tmp_path))
        with pytest.raises(NotFoundError):
            service.get_or_raise("ghost")

    def test_strategy_must_expose_method(self):
        with pytest.raises(ValueError):
            WorkflowStep(task_slug="a", predicate=object())
