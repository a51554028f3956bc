# ============================================================================
# TASK EXECUTOR
# ============================================================================
# STATUS: Core - Single task invocation engine
# PURPOSE: Run one task with audit trail, error mapping, cancel and retry
# CREATED: 19 OCT 2026
# ============================================================================
"""
Task Executor

Runs exactly one task invocation:

    audit row (running) -> resolve persisted task -> dispatch -> terminal update

Dispatch goes to the registered handler when there is one, otherwise to
the generative fallback: the task's instruction text plus a readable
rendering of the input is sent to the text client and the response is
parsed as JSON (falling back to {"text": raw}).

execute_task never raises. Failures become failed ExecutionResults with
a stable error code. Failure to write the terminal audit update is
logged and never replaces the result.
"""

import json
import logging
import re
import time
from dataclasses import replace
from typing import Any, Dict, Optional

from pydantic import ValidationError

from core.config.defaults import TaskConfigDefaults, get_defaults
from core.contracts import CANCELLABLE_STATUSES, ExecutionStatus
from core.errors import (
    EngineError,
    InactiveTaskError,
    InvalidInputError,
    InvalidStatusError,
    MissingInstructionError,
    NotFoundError,
    StorageError,
    STORAGE_ERROR,
    UNKNOWN_ERROR,
)
from core.logging import log_context
from core.models import (
    ExecuteTaskRequest,
    ExecutionRecord,
    ExecutionResult,
    merge_task_config,
)
from core.models.base import utc_now
from handlers.registry import ExecutionContext, TaskDefinition, TaskRegistry, invoke_handler
from infrastructure.llm import TextGenerator, parse_json_response
from infrastructure.notifications import Notifier
from repositories.base import Storage

logger = logging.getLogger(__name__)


# ============================================================================
# PROMPT RENDERING
# ============================================================================

_CAMEL_BOUNDARY = re.compile(r"([A-Z])")
_WHITESPACE = re.compile(r"\s+")


def humanize_key(key: str) -> str:
    """'listing_id' -> 'listing id', 'deliveryUrl' -> 'delivery url'."""
    label = _CAMEL_BOUNDARY.sub(r" \1", key.replace("_", " "))
    return _WHITESPACE.sub(" ", label).strip().lower()


def _format_scalar(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def render_input(data: Dict[str, Any]) -> str:
    """
    Render an input payload as labelled blocks for the model.

    Nested values become pretty-printed JSON under their label; scalars
    are rendered inline; None values are dropped. Blocks are separated by
    a blank line.
    """
    parts = []
    for key, value in data.items():
        if value is None:
            continue
        label = humanize_key(key)
        if isinstance(value, (dict, list)):
            parts.append(f"{label}:\n{json.dumps(value, indent=2, default=str)}")
        else:
            parts.append(f"{label}: {_format_scalar(value)}")
    return "\n\n".join(parts)


def build_prompt(instruction: str, data: Dict[str, Any]) -> str:
    return f"{instruction}\n\n{render_input(data)}"


def parse_generated_output(raw: str) -> Dict[str, Any]:
    """Parse a model response as a JSON object, else wrap it as text."""
    try:
        parsed = parse_json_response(raw)
    except ValueError:
        return {"text": raw}
    if isinstance(parsed, dict):
        return parsed
    return {"text": raw}


# ============================================================================
# EXECUTOR
# ============================================================================

class TaskExecutor:
    """
    Executes task invocations.

    Takes an ExecuteTaskRequest, resolves the task, runs it and returns
    an ExecutionResult.
    """

    def __init__(
        self,
        registry: TaskRegistry,
        storage: Storage,
        text_client: Optional[TextGenerator] = None,
        notifier: Optional[Notifier] = None,
        config_defaults: Optional[TaskConfigDefaults] = None,
    ):
        """
        Args:
            registry: Task definitions and cached persisted metadata
            storage: Audit stores (and business records for handlers)
            text_client: Generative text backend
            notifier: Email sender handed to handlers
            config_defaults: Lowest-precedence task config
        """
        self.registry = registry
        self.storage = storage
        self.text_client = text_client
        self.notifier = notifier
        self.config_defaults = config_defaults or get_defaults().task

    async def execute_task(self, request: ExecuteTaskRequest) -> ExecutionResult:
        """
        Execute a task.

        Args:
            request: What to run, with what input, on whose behalf

        Returns:
            ExecutionResult with success or failure (never raises)
        """
        start_time = time.monotonic()
        record = ExecutionRecord.from_request(request)

        try:
            await self.storage.executions.create(record)
        except Exception as e:
            error = StorageError("create execution", e)
            logger.error(f"Could not record execution for {request.task_slug}: {e}")
            return ExecutionResult.failure_result(error.message, error_code=STORAGE_ERROR)

        with log_context(
            execution_id=record.id,
            task_slug=request.task_slug,
            correlation_id=request.correlation.listing_id or request.correlation.campaign_id,
        ):
            logger.info(
                f"Executing task {request.task_slug}: "
                f"source={request.trigger_source.value}, by={request.triggered_by}"
            )

            try:
                result = await self._run(record.id, request)

            except EngineError as e:
                log = logger.warning if e.is_client_error else logger.error
                log(f"Task {request.task_slug} failed [{e.code}]: {e.message}")
                result = ExecutionResult.failure_result(e.message, error_code=e.code)

            except Exception as e:
                logger.exception(f"Task {request.task_slug} failed with exception")
                result = ExecutionResult.failure_result(
                    f"{type(e).__name__}: {e}"[:2000],
                    error_code=UNKNOWN_ERROR,
                )

            result = replace(result, execution_id=record.id)
            duration_ms = int((time.monotonic() - start_time) * 1000)
            await self._record_outcome(record.id, result, duration_ms)

            logger.info(
                f"Task {request.task_slug} {'completed' if result.success else 'failed'} "
                f"in {duration_ms}ms"
            )
            return result

    async def _run(self, execution_id: str, request: ExecuteTaskRequest) -> ExecutionResult:
        """Resolve the task and dispatch to handler or generative fallback."""
        slug = request.task_slug

        try:
            persisted = await self.registry.get_persisted(slug)
        except Exception as e:
            raise StorageError("load task", e) from e

        if persisted is None:
            raise NotFoundError("Task", slug)
        if not persisted.is_active:
            raise InactiveTaskError(slug)

        definition = self.registry.get(slug)
        config = merge_task_config(
            self.config_defaults,
            persisted.config,
            definition.config if definition else None,
        )
        system_prompt = persisted.system_prompt or (definition.system_prompt if definition else None)

        context = ExecutionContext(
            execution_id=execution_id,
            task_slug=slug,
            trigger_source=request.trigger_source,
            input=dict(request.input),
            config=config,
            correlation=request.correlation,
            triggered_by=request.triggered_by,
            payload=self._validate_input(definition, request.input),
            system_prompt=system_prompt,
            storage=self.storage,
            text_client=self.text_client,
            notifier=self.notifier,
        )

        if definition is not None and definition.execute is not None:
            return await invoke_handler(definition, context)

        if not system_prompt:
            raise MissingInstructionError(slug)

        generated = await context.generate(build_prompt(system_prompt, context.input))
        return ExecutionResult.success_result(
            parse_generated_output(generated.content),
            tokens_used=generated.tokens_used,
        )

    def _validate_input(self, definition: Optional[TaskDefinition], data: Dict[str, Any]):
        if definition is None or definition.input_model is None:
            return None
        try:
            return definition.input_model.model_validate(data)
        except ValidationError as e:
            fields = sorted({".".join(str(p) for p in err["loc"]) for err in e.errors()})
            raise InvalidInputError(
                f"Invalid input for {definition.slug}: {', '.join(fields)}",
                details={"errors": e.errors(include_url=False, include_context=False)},
            ) from e

    async def _record_outcome(
        self,
        execution_id: str,
        result: ExecutionResult,
        duration_ms: int,
    ) -> None:
        """Best-effort terminal update; failures are logged only."""
        try:
            changed = await self.storage.executions.finish(
                execution_id,
                status=ExecutionStatus.COMPLETED if result.success else ExecutionStatus.FAILED,
                output=result.output if result.success else (result.output or None),
                error_message=result.error,
                tokens_used=result.tokens_used,
                duration_ms=duration_ms,
                completed_at=utc_now(),
            )
        except Exception as e:
            logger.error(f"Failed to record outcome of execution {execution_id}: {e}")
            return
        if not changed:
            logger.warning(
                f"Execution {execution_id} was already finished or cancelled; outcome not recorded"
            )

    # ------------------------------------------------------------------
    # Record operations
    # ------------------------------------------------------------------

    async def get_execution(self, execution_id: str) -> ExecutionRecord:
        """
        Raises:
            NotFoundError: No such execution
            StorageError: The store could not be read
        """
        try:
            record = await self.storage.executions.get(execution_id)
        except Exception as e:
            raise StorageError("get execution", e) from e
        if record is None:
            raise NotFoundError("Execution", execution_id)
        return record

    async def cancel_execution(self, execution_id: str) -> ExecutionRecord:
        """
        Mark a pending or running execution as cancelled.

        Advisory only: an in-flight handler is not interrupted, but its
        eventual result is not recorded over the cancelled status.

        Raises:
            NotFoundError, InvalidStatusError, StorageError
        """
        allowed = [s.value for s in CANCELLABLE_STATUSES]
        record = await self.get_execution(execution_id)
        if record.status not in CANCELLABLE_STATUSES:
            raise InvalidStatusError("cancel execution", record.status.value, allowed)

        try:
            changed = await self.storage.executions.update_status_if(
                execution_id,
                ExecutionStatus.CANCELLED,
                CANCELLABLE_STATUSES,
            )
        except Exception as e:
            raise StorageError("cancel execution", e) from e

        if not changed:
            # Finished between the read and the conditional update
            current = await self.get_execution(execution_id)
            raise InvalidStatusError("cancel execution", current.status.value, allowed)

        logger.info(f"Execution {execution_id} cancelled")
        return await self.get_execution(execution_id)

    async def retry_execution(self, execution_id: str) -> ExecutionResult:
        """
        Re-run a failed execution as a new invocation.

        Raises:
            NotFoundError, InvalidStatusError, StorageError
        """
        record = await self.get_execution(execution_id)
        if record.status != ExecutionStatus.FAILED:
            raise InvalidStatusError(
                "retry execution",
                record.status.value,
                [ExecutionStatus.FAILED.value],
            )

        logger.info(f"Retrying execution {execution_id} ({record.task_slug})")
        return await self.execute_task(record.to_request())


__all__ = [
    "TaskExecutor",
    "humanize_key",
    "render_input",
    "build_prompt",
    "parse_generated_output",
]
