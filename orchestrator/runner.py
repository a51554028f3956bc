# ============================================================================
# WORKFLOW ORCHESTRATOR
# ============================================================================
# STATUS: Core - Multi-step workflow execution
# PURPOSE: Run workflow definitions as ordered groups of task invocations
# CREATED: 19 OCT 2026
# ============================================================================
"""
Workflow Orchestrator

Runs a named workflow for a trigger:

1. Validate: definition exists, trigger event matches
2. Create the workflow audit record (pending), then mark it running
3. Partition steps into groups (shared `parallel` tag = one group)
4. For each group, in order:
   - launch every step concurrently; each evaluates its condition and
     builds its input from a snapshot taken at group start
   - merge successful outputs into shared context as "<slug>_output"
   - apply publish mappings and on_complete hooks in step order
   - stop if a required step failed and the policy is `stop`
   - persist progress
5. Write the final status once, whatever happened

Bookkeeping writes (mark running, progress, final write) never abort a
run: their failures are logged. Hook failures are logged and swallowed.
Under the `continue` policy a run always completes, even when required
steps fail.
"""

import asyncio
import logging
from typing import Any, Awaitable, Dict, List, Optional

from pydantic_core import PydanticSerializationError, to_jsonable_python

from core.contracts import (
    ErrorPolicy,
    PAUSABLE_STATUSES,
    ResourceKind,
    StepStatus,
    TriggerSource,
    WorkflowStatus,
)
from core.errors import (
    InvalidStatusError,
    NotFoundError,
    STEP_EXECUTION_ERROR,
    StorageError,
    TriggerMismatchError,
    UNKNOWN_ERROR,
    WorkflowCreateError,
)
from core.logging import log_checkpoint, log_context
from core.models import (
    ExecuteTaskRequest,
    ExecutionResult,
    WorkflowContext,
    WorkflowDefinition,
    WorkflowExecutionRecord,
    WorkflowExecutionStep,
    WorkflowResult,
    WorkflowStep,
    WorkflowTrigger,
)
from core.models.base import utc_now
from orchestrator.engine.evaluator import ConditionEvaluator, partition_steps, resolve_path
from orchestrator.engine.templates import TemplateResolver, get_resolver
from repositories.base import WorkflowExecutionStore
from services.workflow_service import WorkflowService
from worker.executor import TaskExecutor

logger = logging.getLogger(__name__)

SKIPPED_OUTPUT = {"skipped": True, "reason": "condition not met"}


class RequiredStepFailed(Exception):
    """Internal signal: a required step failed under the stop policy."""

    def __init__(self, task_slug: str, result: ExecutionResult):
        self.task_slug = task_slug
        self.result = result
        super().__init__(f"Required step {task_slug} failed: {result.error}")


class WorkflowOrchestrator:
    """
    Runs workflow definitions on top of a TaskExecutor.

    One instance can run many workflows concurrently; all per-run state
    lives in the WorkflowContext.
    """

    def __init__(
        self,
        executor: TaskExecutor,
        workflow_service: WorkflowService,
        workflow_store: Optional[WorkflowExecutionStore] = None,
        *,
        condition_evaluator: Optional[ConditionEvaluator] = None,
        template_resolver: Optional[TemplateResolver] = None,
    ):
        """
        Args:
            executor: Runs individual steps
            workflow_service: Source of workflow definitions
            workflow_store: Audit store (defaults to the executor's storage)
            condition_evaluator: Evaluates declarative step conditions
            template_resolver: Renders declarative step inputs
        """
        self.executor = executor
        self.workflow_service = workflow_service
        self.workflow_store = workflow_store or executor.storage.workflows
        self.conditions = condition_evaluator or ConditionEvaluator()
        self.templates = template_resolver or get_resolver()

    # ------------------------------------------------------------------
    # Running
    # ------------------------------------------------------------------

    async def execute_workflow(
        self,
        workflow_id: str,
        trigger: WorkflowTrigger,
    ) -> WorkflowResult:
        """
        Run a workflow to completion.

        Raises (before any step runs):
            NotFoundError: Unknown workflow id
            TriggerMismatchError: Trigger event differs from the definition
            WorkflowCreateError: Audit record could not be created

        Returns:
            WorkflowResult; once the run exists every outcome is reported here
        """
        definition = self.workflow_service.get(workflow_id)
        if definition is None:
            raise NotFoundError("Workflow", workflow_id)
        if trigger.event != definition.trigger_event:
            raise TriggerMismatchError(workflow_id, definition.trigger_event, trigger.event)

        record = WorkflowExecutionRecord(
            definition_id=definition.workflow_id,
            name=definition.name,
            trigger_event=trigger.event,
            status=WorkflowStatus.PENDING,
            listing_id=trigger.correlation.listing_id,
            campaign_id=trigger.correlation.campaign_id,
            context=dict(trigger.data),
        )
        try:
            await self.workflow_store.create(record)
        except Exception as e:
            logger.error(f"Failed to create workflow execution for {workflow_id}: {e}")
            raise WorkflowCreateError(workflow_id, e) from e

        context = WorkflowContext(
            workflow_execution_id=record.id,
            workflow_id=definition.workflow_id,
            trigger_event=trigger.event,
            trigger_data=dict(trigger.data),
            correlation=trigger.correlation,
            shared=dict(trigger.data),
        )

        with log_context(
            workflow_id=definition.workflow_id,
            workflow_execution_id=record.id,
            correlation_id=trigger.correlation.listing_id or trigger.correlation.campaign_id,
        ):
            return await self._run(definition, context, record)

    async def _run(
        self,
        definition: WorkflowDefinition,
        context: WorkflowContext,
        record: WorkflowExecutionRecord,
    ) -> WorkflowResult:
        store = self.workflow_store
        groups = partition_steps(definition.steps)
        audit: Dict[str, WorkflowExecutionStep] = {}
        status = WorkflowStatus.COMPLETED
        error: Optional[str] = None

        await self._absorb(
            "mark workflow running",
            store.set_status(record.id, WorkflowStatus.RUNNING),
        )
        log_checkpoint(
            "workflow_started",
            {"steps": len(definition.steps), "groups": len(groups)},
            logger=logger,
        )

        try:
            for group in groups:
                context.group_index = group.index
                snapshot = context.snapshot()
                variables = snapshot.to_template_dict()

                for step in group.steps:
                    audit[step.task_slug] = WorkflowExecutionStep(
                        task_slug=step.task_slug,
                        group_index=group.index,
                    )

                logger.debug(
                    f"Executing group {group.index + 1}/{len(groups)}: {group.slugs}"
                )
                results = await asyncio.gather(*(
                    self._run_step(step, snapshot, variables, context, audit[step.task_slug])
                    for step in group.steps
                ))
                context.current_step += len(group.steps)

                for step, result in zip(group.steps, results):
                    await self._settle_hooks(step, result, context, audit[step.task_slug])

                if definition.on_error == ErrorPolicy.STOP:
                    for step, result in zip(group.steps, results):
                        if step.required and not result.success:
                            raise RequiredStepFailed(step.task_slug, result)

                await self._absorb(
                    "save workflow progress",
                    store.save_progress(record.id, context.current_step, list(audit.values())),
                )

            logger.info(f"Workflow {definition.workflow_id} completed")

        except RequiredStepFailed as e:
            status = WorkflowStatus.FAILED
            error = str(e)
            logger.warning(f"Workflow {definition.workflow_id} stopped: {error}")

        except Exception as e:
            status = WorkflowStatus.FAILED
            error = f"{type(e).__name__}: {e}"
            logger.exception(f"Workflow {definition.workflow_id} failed unexpectedly")

        completed_at = utc_now()
        await self._absorb(
            "finish workflow",
            store.finish(
                record.id,
                status=status,
                current_step=context.current_step,
                steps=list(audit.values()),
                context=_json_safe(context.shared),
                error_message=error,
                completed_at=completed_at,
            ),
        )
        log_checkpoint(
            "workflow_finished",
            {"status": status.value, "completed_steps": context.current_step},
            logger=logger,
        )

        return WorkflowResult(
            workflow_execution_id=record.id,
            workflow_id=definition.workflow_id,
            status=status,
            completed_steps=context.current_step,
            total_steps=len(definition.steps),
            step_results=dict(context.step_results),
            error=error,
            started_at=record.created_at,
            completed_at=completed_at,
        )

    async def _run_step(
        self,
        step: WorkflowStep,
        snapshot: WorkflowContext,
        variables: Dict[str, Any],
        context: WorkflowContext,
        entry: WorkflowExecutionStep,
    ) -> ExecutionResult:
        """Run one step; never raises."""
        slug = step.task_slug
        entry.started_at = utc_now()

        with log_context(task_slug=slug):
            try:
                if not await self._should_run(step, snapshot, variables):
                    logger.debug(f"Skipping step {slug} (condition not met)")
                    entry.status = StepStatus.CANCELLED
                    entry.completed_at = utc_now()
                    result = ExecutionResult.success_result(dict(SKIPPED_OUTPUT))
                    context.step_results[slug] = result
                    return result

                step_input = await self._build_input(step, snapshot, variables)
                entry.status = StepStatus.RUNNING
                result = await self.executor.execute_task(ExecuteTaskRequest(
                    task_slug=slug,
                    trigger_source=TriggerSource.WORKFLOW,
                    input=step_input,
                    correlation=context.correlation,
                    triggered_by=f"workflow:{context.workflow_execution_id}",
                ))

            except Exception as e:
                logger.exception(f"Error executing step {slug}")
                result = ExecutionResult.failure_result(
                    str(e) or type(e).__name__,
                    error_code=STEP_EXECUTION_ERROR,
                )

            entry.execution_id = result.execution_id
            entry.status = StepStatus.COMPLETED if result.success else StepStatus.FAILED
            entry.output = result.output or None
            entry.error = result.error
            entry.completed_at = utc_now()

            context.step_results[slug] = result
            if result.success:
                context.shared[f"{slug}_output"] = result.output

            return result

    async def _should_run(
        self,
        step: WorkflowStep,
        snapshot: WorkflowContext,
        variables: Dict[str, Any],
    ) -> bool:
        if step.predicate is not None and not await step.predicate.evaluate(snapshot):
            return False
        if step.condition:
            return self.conditions.evaluate(step.condition, variables)
        return True

    async def _build_input(
        self,
        step: WorkflowStep,
        snapshot: WorkflowContext,
        variables: Dict[str, Any],
    ) -> Dict[str, Any]:
        if step.input_mapper is not None:
            return dict(await step.input_mapper.build(snapshot))
        if step.inputs is not None:
            return self.templates.resolve(step.inputs, variables)
        return dict(snapshot.shared)

    async def _settle_hooks(
        self,
        step: WorkflowStep,
        result: ExecutionResult,
        context: WorkflowContext,
        entry: WorkflowExecutionStep,
    ) -> None:
        """Apply publish mappings, then on_complete. Failures are swallowed."""
        ran = entry.status == StepStatus.COMPLETED
        if ran and step.publish:
            source = result.to_dict()
            for key, path in step.publish.items():
                value = resolve_path(source, path)
                if value is not None:
                    context.shared[key] = value

        if step.on_complete is not None:
            try:
                await step.on_complete.on_complete(result, context)
            except Exception as e:
                logger.error(f"Error in on_complete for {step.task_slug}: {e}")

    async def _absorb(self, operation: str, write: Awaitable[Any]) -> None:
        """Await a bookkeeping write; log instead of raising."""
        try:
            await write
        except Exception as e:
            logger.warning(f"Failed to {operation}: {e}")

    async def trigger_event(self, trigger: WorkflowTrigger) -> List[WorkflowResult]:
        """
        Run every workflow listening for the trigger's event, one after another.

        Workflows that cannot start are logged and skipped.
        """
        results = []
        for definition in self.workflow_service.list_for_event(trigger.event):
            try:
                results.append(await self.execute_workflow(definition.workflow_id, trigger))
            except (NotFoundError, TriggerMismatchError, WorkflowCreateError) as e:
                logger.error(f"Workflow {definition.workflow_id} did not start: {e}")
        if not results:
            logger.info(f"No workflows ran for event {trigger.event}")
        return results

    # ------------------------------------------------------------------
    # Record operations
    # ------------------------------------------------------------------

    async def get_workflow_execution(self, workflow_execution_id: str) -> Optional[WorkflowExecutionRecord]:
        """Fetch a workflow record; storage errors are logged and yield None."""
        try:
            return await self.workflow_store.get(workflow_execution_id)
        except Exception as e:
            logger.error(f"Failed to load workflow execution {workflow_execution_id}: {e}")
            return None

    async def pause_workflow(self, workflow_execution_id: str) -> bool:
        """
        Mark a pending or running workflow as paused.

        Advisory: a run already in progress keeps going and its final
        write still records the terminal status.

        Returns:
            True if the record changed, False otherwise
        """
        try:
            changed = await self.workflow_store.update_status_if(
                workflow_execution_id,
                WorkflowStatus.PAUSED,
                PAUSABLE_STATUSES,
            )
        except Exception as e:
            logger.error(f"Failed to pause workflow {workflow_execution_id}: {e}")
            return False
        logger.info(f"Pause workflow {workflow_execution_id}: changed={changed}")
        return changed

    async def resume_workflow(self, workflow_execution_id: str) -> WorkflowResult:
        """
        Re-run a paused workflow from the start with its saved context.

        Creates a new workflow record; the paused one is left as is.

        Raises:
            NotFoundError, InvalidStatusError, StorageError, and the
            pre-run errors of execute_workflow
        """
        try:
            record = await self.workflow_store.get(workflow_execution_id)
        except Exception as e:
            raise StorageError("get workflow execution", e) from e
        if record is None:
            raise NotFoundError("Workflow execution", workflow_execution_id)
        if record.status != WorkflowStatus.PAUSED:
            raise InvalidStatusError(
                "resume workflow",
                record.status.value,
                [WorkflowStatus.PAUSED.value],
            )

        logger.info(f"Resuming workflow {workflow_execution_id} ({record.definition_id})")
        return await self.execute_workflow(
            record.definition_id,
            WorkflowTrigger(
                event=record.trigger_event,
                correlation=record.correlation,
                data=dict(record.context),
            ),
        )

    async def get_workflows_for_resource(
        self,
        kind: ResourceKind,
        resource_id: str,
    ) -> List[WorkflowExecutionRecord]:
        """Runs for a listing or campaign, newest first; [] on storage error."""
        try:
            return await self.workflow_store.list_for_resource(kind, resource_id)
        except Exception as e:
            logger.error(f"Failed to list workflows for {kind.value} {resource_id}: {e}")
            return []


def _json_safe(data: Dict[str, Any]) -> Dict[str, Any]:
    """
    Shared context in its stored JSON form.

    Datetimes, enums and models are converted; values with no JSON form
    (strategy objects, etc.) are dropped.
    """
    safe = {}
    for key, value in data.items():
        try:
            safe[key] = to_jsonable_python(value)
        except (PydanticSerializationError, ValueError):
            logger.debug(f"Dropping non-JSON context value {key!r} ({type(value).__name__})")
    return safe


__all__ = [
    "WorkflowOrchestrator",
    "RequiredStepFailed",
    "SKIPPED_OUTPUT",
]
