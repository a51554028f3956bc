# ============================================================================
# WORKFLOW ORCHESTRATOR TESTS
# ============================================================================
# STATUS: Tests - Multi-step workflow execution
# PURPOSE: Verify grouping, policies, conditions, context flow and audit
# CREATED: 19 OCT 2026
# ============================================================================
"""
Workflow Orchestrator Tests

Covers:
1. End-to-end single-step run
2. stop / continue error policies
3. Skipped steps (declarative condition and predicate strategy)
4. Parallel groups and group-start snapshots
5. Input building (default, templates, mapper) and publish mappings
6. on_complete hooks (called for every result, failures swallowed)
7. Pre-run validation errors and bookkeeping failures
8. Pause / resume and record queries

Run with:
    pytest tests/test_orchestrator.py -v
"""

import asyncio
import json
from dataclasses import replace
from datetime import datetime, timezone

import pytest
from unittest.mock import AsyncMock, MagicMock

from core.contracts import (
    CorrelationIds,
    ErrorPolicy,
    ResourceKind,
    StepStatus,
    TriggerSource,
    WorkflowStatus,
)
from core.errors import (
    STEP_EXECUTION_ERROR,
    InvalidStatusError,
    NotFoundError,
    TriggerMismatchError,
    WorkflowCreateError,
)
from core.models import (
    ExecutionResult,
    WorkflowDefinition,
    WorkflowExecutionRecord,
    WorkflowStep,
    WorkflowTrigger,
)
from orchestrator import SKIPPED_OUTPUT, WorkflowOrchestrator
from repositories import create_memory_storage
from services import WorkflowService


# ============================================================================
# FIXTURES
# ============================================================================

@pytest.fixture
def storage():
    return create_memory_storage()


@pytest.fixture
def responses():
    """slug -> ExecutionResult or async callable(request) -> ExecutionResult."""
    return {}


@pytest.fixture
def executor(storage, responses):
    executor = MagicMock()
    executor.storage = storage
    counter = {"n": 0}

    async def execute_task(request):
        counter["n"] += 1
        response = responses.get(
            request.task_slug,
            ExecutionResult.success_result({"slug": request.task_slug}),
        )
        if callable(response):
            response = await response(request)
        return replace(response, execution_id=f"exec-{counter['n']}")

    executor.execute_task = AsyncMock(side_effect=execute_task)
    return executor


@pytest.fixture
def workflow_service(tmp_path):
    return WorkflowService(workflows_dir=str(tmp_path))


@pytest.fixture
def orchestrator(executor, workflow_service):
    return WorkflowOrchestrator(executor, workflow_service)


def define(workflow_service, steps, on_error=ErrorPolicy.STOP, workflow_id="wf", event="listing.created"):
    definition = WorkflowDefinition(
        workflow_id=workflow_id,
        name=workflow_id.title(),
        trigger_event=event,
        steps=steps,
        on_error=on_error,
    )
    workflow_service.register(definition)
    return definition


def trigger(data=None, event="listing.created", listing_id="L1"):
    return WorkflowTrigger(
        event=event,
        correlation=CorrelationIds(listing_id=listing_id),
        data=data or {},
    )


def invoked(executor):
    return [call.args[0].task_slug for call in executor.execute_task.await_args_list]


class Recorder:
    """on_complete strategy that remembers what it saw."""

    def __init__(self, fail=False):
        self.calls = []
        self.fail = fail

    async def on_complete(self, result, context):
        self.calls.append((result, dict(context.shared)))
        if self.fail:
            raise RuntimeError("hook exploded")


# ============================================================================
# END TO END
# ============================================================================

class TestEndToEnd:

    def test_single_step_workflow(self, orchestrator, workflow_service, responses, storage):
        define(workflow_service, [WorkflowStep(task_slug="enricher", required=True)])
        responses["enricher"] = ExecutionResult.success_result({"lat": 1, "lng": 2})

        result = asyncio.run(orchestrator.execute_workflow("wf", trigger()))

        assert result.status == WorkflowStatus.COMPLETED
        assert result.success
        assert result.completed_steps == 1
        assert result.total_steps == 1
        assert result.step_results["enricher"].output == {"lat": 1, "lng": 2}

        record = asyncio.run(storage.workflows.get(result.workflow_execution_id))
        assert record.status == WorkflowStatus.COMPLETED
        assert record.listing_id == "L1"
        assert record.current_step == 1
        assert record.completed_at is not None
        assert record.steps[0].status == StepStatus.COMPLETED
        assert record.steps[0].execution_id == "exec-1"
        assert record.context["enricher_output"] == {"lat": 1, "lng": 2}

    def test_step_requests_carry_workflow_identity(self, orchestrator, workflow_service, executor):
        define(workflow_service, [WorkflowStep(task_slug="enricher")])

        result = asyncio.run(orchestrator.execute_workflow("wf", trigger({"address": "1 Main St"})))

        request = executor.execute_task.await_args.args[0]
        assert request.trigger_source == TriggerSource.WORKFLOW
        assert request.triggered_by == f"workflow:{result.workflow_execution_id}"
        assert request.correlation.listing_id == "L1"
        assert request.input == {"address": "1 Main St"}


# ============================================================================
# ERROR POLICIES
# ============================================================================

class TestErrorPolicies:

    def test_stop_on_required_failure(self, orchestrator, workflow_service, executor, responses, storage):
        define(workflow_service, [
            WorkflowStep(task_slug="a", required=True),
            WorkflowStep(task_slug="b"),
        ])
        responses["a"] = ExecutionResult.failure_result("geocoder offline", error_code="EXTERNAL_SERVICE_ERROR")

        result = asyncio.run(orchestrator.execute_workflow("wf", trigger()))

        assert invoked(executor) == ["a"]
        assert result.status == WorkflowStatus.FAILED
        assert result.error == "Required step a failed: geocoder offline"
        assert result.completed_steps == 1

        record = asyncio.run(storage.workflows.get(result.workflow_execution_id))
        assert record.status == WorkflowStatus.FAILED
        assert record.error_message == result.error

    def test_stop_ignores_optional_failure(self, orchestrator, workflow_service, executor, responses):
        define(workflow_service, [
            WorkflowStep(task_slug="a", required=False),
            WorkflowStep(task_slug="b"),
        ])
        responses["a"] = ExecutionResult.failure_result("meh")

        result = asyncio.run(orchestrator.execute_workflow("wf", trigger()))

        assert invoked(executor) == ["a", "b"]
        assert result.status == WorkflowStatus.COMPLETED

    def test_continue_never_aborts(self, orchestrator, workflow_service, executor, responses):
        define(
            workflow_service,
            [
                WorkflowStep(task_slug="a", required=True),
                WorkflowStep(task_slug="b", required=True),
                WorkflowStep(task_slug="c"),
            ],
            on_error=ErrorPolicy.CONTINUE,
        )
        responses["a"] = ExecutionResult.failure_result("first")
        responses["b"] = ExecutionResult.failure_result("second")

        result = asyncio.run(orchestrator.execute_workflow("wf", trigger()))

        assert invoked(executor) == ["a", "b", "c"]
        assert result.status == WorkflowStatus.COMPLETED
        assert result.error is None
        assert result.completed_steps == 3

    def test_required_failure_in_group_stops_after_group(self, orchestrator, workflow_service, executor, responses):
        define(workflow_service, [
            WorkflowStep(task_slug="a", parallel="g"),
            WorkflowStep(task_slug="b", parallel="g"),
            WorkflowStep(task_slug="c"),
        ])
        responses["a"] = ExecutionResult.failure_result("broken")

        result = asyncio.run(orchestrator.execute_workflow("wf", trigger()))

        assert sorted(invoked(executor)) == ["a", "b"]
        assert result.completed_steps == 2
        assert result.status == WorkflowStatus.FAILED

    def test_unexpected_step_error_becomes_failure(self, orchestrator, workflow_service, executor):
        define(workflow_service, [WorkflowStep(task_slug="a", required=False)])
        executor.execute_task.side_effect = RuntimeError("executor crashed")

        result = asyncio.run(orchestrator.execute_workflow("wf", trigger()))

        assert result.status == WorkflowStatus.COMPLETED
        assert result.step_results["a"].error_code == STEP_EXECUTION_ERROR
        assert result.step_results["a"].error == "executor crashed"


# ============================================================================
# CONDITIONS
# ============================================================================

class TestSkippedSteps:

    def test_false_condition_skips_step(self, orchestrator, workflow_service, executor, storage):
        define(workflow_service, [
            WorkflowStep(task_slug="a", required=True, condition="trigger.data.beds > 10"),
            WorkflowStep(task_slug="b"),
        ])

        result = asyncio.run(orchestrator.execute_workflow("wf", trigger({"beds": 3})))

        assert invoked(executor) == ["b"]
        assert result.status == WorkflowStatus.COMPLETED
        assert result.completed_steps == 2
        skipped = result.step_results["a"]
        assert skipped.success
        assert skipped.output == SKIPPED_OUTPUT

        record = asyncio.run(storage.workflows.get(result.workflow_execution_id))
        statuses = {s.task_slug: s.status for s in record.steps}
        assert statuses == {"a": StepStatus.CANCELLED, "b": StepStatus.COMPLETED}
        assert "a_output" not in record.context

    def test_condition_sees_earlier_outputs(self, orchestrator, workflow_service, executor, responses):
        define(workflow_service, [
            WorkflowStep(task_slug="enricher"),
            WorkflowStep(task_slug="research", condition="is_not_null(shared.enricher_output.lat)"),
        ])

        asyncio.run(orchestrator.execute_workflow("wf", trigger()))
        assert invoked(executor) == ["enricher"]

        responses["enricher"] = ExecutionResult.success_result({"lat": 28.5})
        asyncio.run(orchestrator.execute_workflow("wf", trigger()))
        assert invoked(executor) == ["enricher", "enricher", "research"]

    def test_predicate_strategy(self, orchestrator, workflow_service, executor):
        class HasPhotos:
            async def evaluate(self, context):
                return len(context.trigger_data.get("photos", [])) >= 3

        define(workflow_service, [WorkflowStep(task_slug="video", predicate=HasPhotos())])

        asyncio.run(orchestrator.execute_workflow("wf", trigger({"photos": ["1", "2"]})))
        assert invoked(executor) == []

        asyncio.run(orchestrator.execute_workflow("wf", trigger({"photos": ["1", "2", "3"]})))
        assert invoked(executor) == ["video"]


# ============================================================================
# GROUPS AND CONTEXT
# ============================================================================

class TestGroupsAndContext:

    def test_interspersed_tags_all_run(self, orchestrator, workflow_service, executor):
        define(workflow_service, [
            WorkflowStep(task_slug="a"),
            WorkflowStep(task_slug="b", parallel="p1"),
            WorkflowStep(task_slug="c"),
            WorkflowStep(task_slug="d", parallel="p1"),
        ])

        result = asyncio.run(orchestrator.execute_workflow("wf", trigger()))

        order = invoked(executor)
        assert sorted(order) == ["a", "b", "c", "d"]
        assert order[0] == "a"
        assert set(order[1:3]) == {"b", "d"}
        assert order[3] == "c"
        assert result.completed_steps == 4

    def test_group_members_run_concurrently(self, orchestrator, workflow_service, responses):
        define(workflow_service, [
            WorkflowStep(task_slug="left", parallel="g"),
            WorkflowStep(task_slug="right", parallel="g"),
        ])
        started = []

        async def wait_for_both(request):
            started.append(request.task_slug)
            # Only completes if the sibling was launched before this one finished
            for _ in range(100):
                if len(started) == 2:
                    break
                await asyncio.sleep(0)
            return ExecutionResult.success_result({"saw": len(started)})

        responses["left"] = wait_for_both
        responses["right"] = wait_for_both

        result = asyncio.run(orchestrator.execute_workflow("wf", trigger()))

        assert result.step_results["left"].output == {"saw": 2}
        assert result.step_results["right"].output == {"saw": 2}

    def test_siblings_read_group_start_snapshot(self, orchestrator, workflow_service, executor, responses):
        define(workflow_service, [
            WorkflowStep(task_slug="a", parallel="g"),
            WorkflowStep(task_slug="b", parallel="g"),
            WorkflowStep(task_slug="c"),
        ])
        responses["a"] = ExecutionResult.success_result({"from": "a"})

        asyncio.run(orchestrator.execute_workflow("wf", trigger({"seed": 1})))

        inputs = {call.args[0].task_slug: call.args[0].input for call in executor.execute_task.await_args_list}
        assert inputs["b"] == {"seed": 1}
        assert inputs["c"]["a_output"] == {"from": "a"}
        assert inputs["c"]["b_output"] == {"slug": "b"}

    def test_template_inputs_and_publish(self, orchestrator, workflow_service, executor, responses):
        define(workflow_service, [
            WorkflowStep(
                task_slug="enricher",
                publish={"coordinates": "output.coords", "enriched": "success"},
            ),
            WorkflowStep(
                task_slug="research",
                inputs={
                    "listing_id": "{{ correlation.listing_id }}",
                    "coords": "{{ shared.coordinates }}",
                    "label": "Near {{ trigger.data.city }}",
                },
            ),
        ])
        responses["enricher"] = ExecutionResult.success_result({"coords": {"lat": 1, "lng": 2}})

        result = asyncio.run(orchestrator.execute_workflow("wf", trigger({"city": "Orlando"})))

        request = executor.execute_task.await_args.args[0]
        assert request.input == {
            "listing_id": "L1",
            "coords": {"lat": 1, "lng": 2},
            "label": "Near Orlando",
        }
        assert result.success

    def test_template_error_fails_step(self, orchestrator, workflow_service, executor):
        define(workflow_service, [
            WorkflowStep(task_slug="a", required=True, inputs={"x": "{{ shared.missing }}"}),
        ])

        result = asyncio.run(orchestrator.execute_workflow("wf", trigger()))

        assert invoked(executor) == []
        assert result.status == WorkflowStatus.FAILED
        assert result.step_results["a"].error_code == STEP_EXECUTION_ERROR

    def test_input_mapper_strategy(self, orchestrator, workflow_service, executor):
        class Mapper:
            async def build(self, context):
                return {"listing": context.correlation.listing_id, "n": len(context.shared)}

        define(workflow_service, [WorkflowStep(task_slug="a", input_mapper=Mapper())])

        asyncio.run(orchestrator.execute_workflow("wf", trigger({"x": 1, "y": 2})))

        assert executor.execute_task.await_args.args[0].input == {"listing": "L1", "n": 2}

    def test_failed_step_output_not_merged(self, orchestrator, workflow_service, executor, responses):
        define(
            workflow_service,
            [WorkflowStep(task_slug="a"), WorkflowStep(task_slug="b")],
            on_error=ErrorPolicy.CONTINUE,
        )
        responses["a"] = ExecutionResult.failure_result("no", output={"partial": True})

        asyncio.run(orchestrator.execute_workflow("wf", trigger()))

        assert "a_output" not in executor.execute_task.await_args.args[0].input


# ============================================================================
# HOOKS
# ============================================================================

class TestCompletionHooks:

    def test_called_for_every_result(self, orchestrator, workflow_service, responses):
        hook_a, hook_b, hook_c = Recorder(), Recorder(), Recorder()
        define(
            workflow_service,
            [
                WorkflowStep(task_slug="a", on_complete=hook_a),
                WorkflowStep(task_slug="b", condition="false", on_complete=hook_b),
                WorkflowStep(task_slug="c", on_complete=hook_c),
            ],
            on_error=ErrorPolicy.CONTINUE,
        )
        responses["c"] = ExecutionResult.failure_result("nope")

        asyncio.run(orchestrator.execute_workflow("wf", trigger()))

        assert hook_a.calls[0][0].success
        assert hook_a.calls[0][1]["a_output"] == {"slug": "a"}
        assert hook_b.calls[0][0].output == SKIPPED_OUTPUT
        assert not hook_c.calls[0][0].success

    def test_hook_can_write_shared_context(self, orchestrator, workflow_service, executor):
        class Publish:
            async def on_complete(self, result, context):
                if result.success:
                    context.shared["listing_data"] = result.output

        define(workflow_service, [
            WorkflowStep(task_slug="a", on_complete=Publish()),
            WorkflowStep(task_slug="b"),
        ])

        asyncio.run(orchestrator.execute_workflow("wf", trigger()))

        assert executor.execute_task.await_args.args[0].input["listing_data"] == {"slug": "a"}

    def test_saved_context_is_plain_json(self, orchestrator, workflow_service, storage):
        when = datetime(2026, 10, 19, 12, 30, tzinfo=timezone.utc)

        class Stash:
            async def on_complete(self, result, context):
                context.shared["delivered_at"] = when
                context.shared["strategy"] = Recorder()

        define(workflow_service, [WorkflowStep(task_slug="a", on_complete=Stash())])

        result = asyncio.run(orchestrator.execute_workflow("wf", trigger({"beds": 3})))

        record = asyncio.run(storage.workflows.get(result.workflow_execution_id))
        assert record.status == WorkflowStatus.COMPLETED
        assert record.context["delivered_at"] == when.isoformat()
        assert "strategy" not in record.context
        assert record.context["beds"] == 3
        json.dumps(record.context)

    def test_hook_failure_is_swallowed(self, orchestrator, workflow_service, executor):
        define(workflow_service, [
            WorkflowStep(task_slug="a", on_complete=Recorder(fail=True)),
            WorkflowStep(task_slug="b"),
        ])

        result = asyncio.run(orchestrator.execute_workflow("wf", trigger()))

        assert invoked(executor) == ["a", "b"]
        assert result.status == WorkflowStatus.COMPLETED


# ============================================================================
# VALIDATION AND BOOKKEEPING
# ============================================================================

class TestValidationAndBookkeeping:

    def test_unknown_workflow(self, orchestrator):
        with pytest.raises(NotFoundError):
            asyncio.run(orchestrator.execute_workflow("ghost", trigger()))

    def test_trigger_mismatch(self, orchestrator, workflow_service, executor):
        define(workflow_service, [WorkflowStep(task_slug="a")])

        with pytest.raises(TriggerMismatchError):
            asyncio.run(orchestrator.execute_workflow("wf", trigger(event="qc.approved")))
        assert invoked(executor) == []

    def test_record_create_failure(self, orchestrator, workflow_service, storage, executor):
        define(workflow_service, [WorkflowStep(task_slug="a")])
        storage.workflows.create = AsyncMock(side_effect=ConnectionError("db down"))

        with pytest.raises(WorkflowCreateError):
            asyncio.run(orchestrator.execute_workflow("wf", trigger()))
        assert invoked(executor) == []

    def test_progress_write_failures_do_not_abort(self, orchestrator, workflow_service, storage, executor):
        define(workflow_service, [WorkflowStep(task_slug="a"), WorkflowStep(task_slug="b")])
        storage.workflows.set_status = AsyncMock(side_effect=ConnectionError("db down"))
        storage.workflows.save_progress = AsyncMock(side_effect=ConnectionError("db down"))
        storage.workflows.finish = AsyncMock(side_effect=ConnectionError("db down"))

        result = asyncio.run(orchestrator.execute_workflow("wf", trigger()))

        assert invoked(executor) == ["a", "b"]
        assert result.status == WorkflowStatus.COMPLETED

    def test_trigger_event_runs_matching_workflows(self, orchestrator, workflow_service, executor):
        define(workflow_service, [WorkflowStep(task_slug="a")], workflow_id="one")
        define(workflow_service, [WorkflowStep(task_slug="b")], workflow_id="two")
        define(workflow_service, [WorkflowStep(task_slug="c")], workflow_id="other", event="qc.approved")

        results = asyncio.run(orchestrator.trigger_event(trigger()))

        assert [r.workflow_id for r in results] == ["one", "two"]
        assert invoked(executor) == ["a", "b"]


# ============================================================================
# RECORD OPERATIONS
# ============================================================================

class TestRecordOperations:

    def _record(self, storage, status, **fields):
        record = WorkflowExecutionRecord(
            definition_id="wf",
            name="Wf",
            trigger_event="listing.created",
            status=status,
            listing_id="L1",
            **fields,
        )
        asyncio.run(storage.workflows.create(record))
        return record

    def test_pause_running_workflow(self, orchestrator, storage):
        record = self._record(storage, WorkflowStatus.RUNNING)

        assert asyncio.run(orchestrator.pause_workflow(record.id)) is True
        assert asyncio.run(orchestrator.pause_workflow(record.id)) is False
        assert asyncio.run(storage.workflows.get(record.id)).status == WorkflowStatus.PAUSED

    def test_pause_finished_workflow(self, orchestrator, storage):
        record = self._record(storage, WorkflowStatus.COMPLETED)
        assert asyncio.run(orchestrator.pause_workflow(record.id)) is False

    def test_resume_runs_again_with_saved_context(self, orchestrator, workflow_service, storage, executor):
        define(workflow_service, [WorkflowStep(task_slug="a")])
        record = self._record(storage, WorkflowStatus.PAUSED, context={"address": "1 Main St"})

        result = asyncio.run(orchestrator.resume_workflow(record.id))

        assert result.success
        assert result.workflow_execution_id != record.id
        request = executor.execute_task.await_args.args[0]
        assert request.input == {"address": "1 Main St"}
        assert request.correlation.listing_id == "L1"
        assert asyncio.run(storage.workflows.get(record.id)).status == WorkflowStatus.PAUSED

    def test_resume_requires_paused(self, orchestrator, storage):
        record = self._record(storage, WorkflowStatus.FAILED)

        with pytest.raises(InvalidStatusError) as exc:
            asyncio.run(orchestrator.resume_workflow(record.id))
        assert "failed" in exc.value.message

    def test_resume_missing(self, orchestrator):
        with pytest.raises(NotFoundError):
            asyncio.run(orchestrator.resume_workflow("nope"))

    def test_get_workflow_execution(self, orchestrator, storage):
        record = self._record(storage, WorkflowStatus.RUNNING)
        assert asyncio.run(orchestrator.get_workflow_execution(record.id)).id == record.id
        assert asyncio.run(orchestrator.get_workflow_execution("nope")) is None

        storage.workflows.get = AsyncMock(side_effect=ConnectionError("db down"))
        assert asyncio.run(orchestrator.get_workflow_execution(record.id)) is None

    def test_workflows_for_resource(self, orchestrator, workflow_service, storage):
        define(workflow_service, [WorkflowStep(task_slug="a")])
        asyncio.run(orchestrator.execute_workflow("wf", trigger(listing_id="L7")))
        asyncio.run(orchestrator.execute_workflow("wf", trigger(listing_id="L8")))

        records = asyncio.run(orchestrator.get_workflows_for_resource(ResourceKind.LISTING, "L7"))
        assert [r.listing_id for r in records] == ["L7"]
        assert asyncio.run(orchestrator.get_workflows_for_resource(ResourceKind.CAMPAIGN, "L7")) == []

    def test_workflows_for_resource_swallows_storage_error(self, orchestrator, storage):
        storage.workflows.list_for_resource = AsyncMock(side_effect=ConnectionError("db down"))
        assert asyncio.run(orchestrator.get_workflows_for_resource(ResourceKind.LISTING, "L1")) == []
