# ============================================================================
# TASK EXECUTOR TESTS
# ============================================================================
# STATUS: Tests - Single invocation, audit trail, cancel and retry
# PURPOSE: Verify dispatch, error mapping and bookkeeping guarantees
# CREATED: 19 OCT 2026
# ============================================================================
"""
Task Executor Tests

Covers:
1. Resolution failures (unknown, inactive) before any handler runs
2. Handler dispatch and error-code mapping
3. Generative fallback (prompt rendering, JSON/text parsing)
4. Config merge precedence
5. Audit bookkeeping failures never masking outcomes
6. Cancel and retry state rules

Run with:
    pytest tests/test_executor.py -v
"""

import asyncio
import json

import pytest
from pydantic import BaseModel
from unittest.mock import AsyncMock, MagicMock

from core.config.defaults import TaskConfigDefaults
from core.contracts import CorrelationIds, ExecutionStatus, TriggerSource
from core.errors import (
    EXTERNAL_SERVICE_ERROR,
    INACTIVE,
    INVALID_INPUT,
    MISSING_INSTRUCTION,
    NOT_FOUND,
    STORAGE_ERROR,
    UNKNOWN_ERROR,
    ExternalServiceError,
    InvalidStatusError,
    NotFoundError,
)
from core.models import ExecuteTaskRequest, ExecutionResult, PersistedTask, TaskConfig
from handlers.registry import TaskDefinition, TaskRegistry
from infrastructure.llm import GeneratedText
from repositories import create_memory_storage
from worker.executor import (
    TaskExecutor,
    build_prompt,
    humanize_key,
    parse_generated_output,
    render_input,
)


# ============================================================================
# FIXTURES
# ============================================================================

@pytest.fixture
def storage():
    return create_memory_storage()


@pytest.fixture
def registry(storage):
    return TaskRegistry(storage.tasks)


@pytest.fixture
def text_client():
    client = MagicMock()
    client.generate = AsyncMock(
        return_value=GeneratedText(content='{"headline": "Sunny bungalow"}', tokens_used=42, model="test")
    )
    return client


@pytest.fixture
def executor(registry, storage, text_client):
    return TaskExecutor(
        registry,
        storage,
        text_client=text_client,
        config_defaults=TaskConfigDefaults(
            max_tokens=1000, temperature=0.7, timeout_ms=30000, retry_attempts=1,
        ),
    )


def seed(storage, slug="demo", **fields):
    asyncio.run(storage.tasks.upsert(PersistedTask(slug=slug, name=slug.title(), **fields)))


def request(slug="demo", **fields) -> ExecuteTaskRequest:
    return ExecuteTaskRequest(task_slug=slug, **fields)


# ============================================================================
# PROMPT RENDERING
# ============================================================================

class TestPromptRendering:

    def test_humanize_key(self):
        assert humanize_key("listing_id") == "listing id"
        assert humanize_key("deliveryUrl") == "delivery url"
        assert humanize_key("agentEmail_address") == "agent email address"

    def test_render_input(self):
        rendered = render_input({
            "listingId": "L1",
            "beds": 3,
            "isRush": True,
            "notes": None,
            "features": ["pool", "garage"],
        })
        blocks = rendered.split("\n\n")

        assert blocks[0] == "listing id: L1"
        assert blocks[1] == "beds: 3"
        assert blocks[2] == "is rush: true"
        assert blocks[3] == "features:\n" + json.dumps(["pool", "garage"], indent=2)
        assert "notes" not in rendered

    def test_build_prompt_prefixes_instruction(self):
        assert build_prompt("Describe it.", {"city": "Orlando"}) == "Describe it.\n\ncity: Orlando"

    def test_parse_generated_output(self):
        assert parse_generated_output('{"a": 1}') == {"a": 1}
        assert parse_generated_output('```json\n{"a": 1}\n```') == {"a": 1}
        assert parse_generated_output("plain words") == {"text": "plain words"}
        assert parse_generated_output("[1, 2]") == {"text": "[1, 2]"}


# ============================================================================
# RESOLUTION
# ============================================================================

class TestResolution:

    def test_unknown_task_fails_without_handler(self, executor, registry, storage):
        handler = AsyncMock(return_value=ExecutionResult.success_result())
        registry.register(TaskDefinition(slug="ghost", name="Ghost", execute=handler))

        result = asyncio.run(executor.execute_task(request("ghost")))

        assert not result.success
        assert result.error_code == NOT_FOUND
        handler.assert_not_called()
        record = asyncio.run(storage.executions.get(result.execution_id))
        assert record.status == ExecutionStatus.FAILED
        assert record.error_message == "Task not found: ghost"

    def test_inactive_task_fails_before_handler(self, executor, registry, storage):
        seed(storage, is_active=False)
        handler = AsyncMock(return_value=ExecutionResult.success_result())
        registry.register(TaskDefinition(slug="demo", name="Demo", execute=handler))

        result = asyncio.run(executor.execute_task(request()))

        assert result.error_code == INACTIVE
        assert "not active" in result.error
        handler.assert_not_called()

    def test_task_store_error_maps_to_storage_error(self, registry, storage):
        storage.tasks.get = AsyncMock(side_effect=ConnectionError("gone"))
        executor = TaskExecutor(registry, storage, config_defaults=TaskConfigDefaults())

        result = asyncio.run(executor.execute_task(request()))

        assert result.error_code == STORAGE_ERROR


# ============================================================================
# HANDLER DISPATCH
# ============================================================================

class TestHandlerDispatch:

    def test_success_is_recorded(self, executor, registry, storage):
        seed(storage)

        async def handler(ctx):
            return ExecutionResult.success_result({"echo": ctx.input["value"]}, tokens_used=7)

        registry.register(TaskDefinition(slug="demo", name="Demo", execute=handler))

        result = asyncio.run(executor.execute_task(request(input={"value": 5})))

        assert result.success
        assert result.output == {"echo": 5}
        record = asyncio.run(storage.executions.get(result.execution_id))
        assert record.status == ExecutionStatus.COMPLETED
        assert record.output == {"echo": 5}
        assert record.tokens_used == 7
        assert record.duration_ms is not None
        assert record.completed_at is not None

    def test_handler_sees_context(self, executor, registry, storage):
        seed(storage, system_prompt="Persisted instructions")
        seen = {}

        async def handler(ctx):
            seen["ctx"] = ctx
            return {"ok": True}

        registry.register(TaskDefinition(slug="demo", name="Demo", execute=handler))
        correlation = CorrelationIds(listing_id="L1")

        result = asyncio.run(executor.execute_task(request(
            correlation=correlation,
            trigger_source=TriggerSource.WEBHOOK,
            triggered_by="hook",
        )))

        ctx = seen["ctx"]
        assert ctx.execution_id == result.execution_id
        assert ctx.correlation == correlation
        assert ctx.trigger_source == TriggerSource.WEBHOOK
        assert ctx.system_prompt == "Persisted instructions"
        assert ctx.storage is storage

    def test_engine_error_keeps_code(self, executor, registry, storage):
        seed(storage)

        async def handler(ctx):
            raise ExternalServiceError("Email", RuntimeError("smtp down"))

        registry.register(TaskDefinition(slug="demo", name="Demo", execute=handler))

        result = asyncio.run(executor.execute_task(request()))

        assert result.error_code == EXTERNAL_SERVICE_ERROR
        assert result.error == "Email failed: smtp down"

    def test_unexpected_exception_gets_generic_code(self, executor, registry, storage):
        seed(storage)

        async def handler(ctx):
            raise KeyError("missing")

        registry.register(TaskDefinition(slug="demo", name="Demo", execute=handler))

        result = asyncio.run(executor.execute_task(request()))

        assert result.error_code == UNKNOWN_ERROR
        assert result.error.startswith("KeyError")
        record = asyncio.run(storage.executions.get(result.execution_id))
        assert record.status == ExecutionStatus.FAILED

    def test_handler_failure_result_is_recorded_failed(self, executor, registry, storage):
        seed(storage)

        async def handler(ctx):
            return ExecutionResult.failure_result("no media", error_code="NO_MEDIA")

        registry.register(TaskDefinition(slug="demo", name="Demo", execute=handler))

        result = asyncio.run(executor.execute_task(request()))

        assert result.error_code == "NO_MEDIA"
        record = asyncio.run(storage.executions.get(result.execution_id))
        assert record.status == ExecutionStatus.FAILED
        assert record.error_message == "no media"

    def test_input_model_validation(self, executor, registry, storage):
        seed(storage)

        class Payload(BaseModel):
            listing_id: str
            beds: int

        handler = AsyncMock(return_value=ExecutionResult.success_result())
        registry.register(TaskDefinition(slug="demo", name="Demo", execute=handler, input_model=Payload))

        result = asyncio.run(executor.execute_task(request(input={"beds": "many"})))

        assert result.error_code == INVALID_INPUT
        assert "beds" in result.error
        assert "listing_id" in result.error
        handler.assert_not_called()


# ============================================================================
# GENERATIVE FALLBACK
# ============================================================================

class TestGenerativeFallback:

    def test_uses_persisted_instruction(self, executor, storage, text_client):
        seed(storage, system_prompt="Write a headline.")

        result = asyncio.run(executor.execute_task(request(input={"city": "Orlando"})))

        assert result.success
        assert result.output == {"headline": "Sunny bungalow"}
        assert result.tokens_used == 42
        prompt = text_client.generate.await_args.args[0]
        assert prompt == "Write a headline.\n\ncity: Orlando"

    def test_definition_instruction_when_persisted_has_none(self, executor, registry, storage, text_client):
        seed(storage)
        registry.register(TaskDefinition(slug="demo", name="Demo", system_prompt="From code."))

        asyncio.run(executor.execute_task(request()))

        assert text_client.generate.await_args.args[0].startswith("From code.")

    def test_plain_text_response(self, executor, storage, text_client):
        seed(storage, system_prompt="Say hi.")
        text_client.generate.return_value = GeneratedText(content="Hello there", tokens_used=2, model="m")

        result = asyncio.run(executor.execute_task(request()))

        assert result.output == {"text": "Hello there"}

    def test_missing_instruction(self, executor, storage, text_client):
        seed(storage)

        result = asyncio.run(executor.execute_task(request()))

        assert result.error_code == MISSING_INSTRUCTION
        text_client.generate.assert_not_called()

    def test_client_failure(self, executor, storage, text_client):
        seed(storage, system_prompt="Say hi.")
        text_client.generate.side_effect = RuntimeError("overloaded")

        result = asyncio.run(executor.execute_task(request()))

        assert result.error_code == EXTERNAL_SERVICE_ERROR
        assert "overloaded" in result.error

    def test_config_precedence(self, executor, registry, storage, text_client):
        seed(
            storage,
            system_prompt="Go.",
            config=TaskConfig(max_tokens=400, temperature=0.1, timeout_ms=5000),
        )
        registry.register(TaskDefinition(
            slug="demo",
            name="Demo",
            system_prompt="Go.",
            config=TaskConfig(max_tokens=800),
        ))

        asyncio.run(executor.execute_task(request()))

        kwargs = text_client.generate.await_args.kwargs
        assert kwargs["max_tokens"] == 800
        assert kwargs["temperature"] == 0.1
        assert kwargs["timeout_seconds"] == 5.0
        assert kwargs["max_retries"] == 1


# ============================================================================
# BOOKKEEPING
# ============================================================================

class TestBookkeeping:

    def test_create_failure_returns_without_running(self, executor, registry, storage):
        seed(storage)
        handler = AsyncMock(return_value=ExecutionResult.success_result())
        registry.register(TaskDefinition(slug="demo", name="Demo", execute=handler))
        storage.executions.create = AsyncMock(side_effect=ConnectionError("db down"))

        result = asyncio.run(executor.execute_task(request()))

        assert result.error_code == STORAGE_ERROR
        assert result.execution_id is None
        handler.assert_not_called()

    def test_finish_failure_does_not_mask_success(self, executor, registry, storage):
        seed(storage)

        async def handler(ctx):
            return {"done": True}

        registry.register(TaskDefinition(slug="demo", name="Demo", execute=handler))
        storage.executions.finish = AsyncMock(side_effect=ConnectionError("db down"))

        result = asyncio.run(executor.execute_task(request()))

        assert result.success
        assert result.output == {"done": True}


# ============================================================================
# CANCEL / RETRY
# ============================================================================

class TestCancelAndRetry:

    def _record(self, storage, status):
        from core.models import ExecutionRecord

        record = ExecutionRecord(
            task_slug="demo",
            trigger_source=TriggerSource.WEBHOOK,
            input={"value": 1},
            listing_id="L9",
            triggered_by="hook",
            status=status,
        )
        asyncio.run(storage.executions.create(record))
        return record

    @pytest.mark.parametrize("status", [ExecutionStatus.PENDING, ExecutionStatus.RUNNING])
    def test_cancel_allowed(self, executor, storage, status):
        record = self._record(storage, status)

        updated = asyncio.run(executor.cancel_execution(record.id))

        assert updated.status == ExecutionStatus.CANCELLED
        assert updated.completed_at is not None

    @pytest.mark.parametrize("status", [ExecutionStatus.COMPLETED, ExecutionStatus.FAILED])
    def test_cancel_rejected_names_status(self, executor, storage, status):
        record = self._record(storage, status)

        with pytest.raises(InvalidStatusError) as exc:
            asyncio.run(executor.cancel_execution(record.id))

        assert status.value in exc.value.message
        assert exc.value.details["current_status"] == status.value

    def test_cancel_lost_race(self, executor, storage):
        record = self._record(storage, ExecutionStatus.RUNNING)
        storage.executions.update_status_if = AsyncMock(return_value=False)

        with pytest.raises(InvalidStatusError):
            asyncio.run(executor.cancel_execution(record.id))

    def test_cancelled_execution_stays_cancelled(self, executor, registry, storage):
        seed(storage)

        async def handler(ctx):
            await executor.cancel_execution(ctx.execution_id)
            return {"ok": True}

        registry.register(TaskDefinition(slug="demo", name="Demo", execute=handler))

        result = asyncio.run(executor.execute_task(request()))

        assert result.success
        assert result.output == {"ok": True}
        record = asyncio.run(storage.executions.get(result.execution_id))
        assert record.status == ExecutionStatus.CANCELLED
        assert record.output is None

    def test_finish_skips_terminal_rows(self, storage):
        record = self._record(storage, ExecutionStatus.FAILED)

        changed = asyncio.run(storage.executions.finish(
            record.id,
            status=ExecutionStatus.COMPLETED,
            output={"late": True},
            error_message=None,
            tokens_used=None,
            duration_ms=5,
            completed_at=record.created_at,
        ))

        assert changed is False
        assert asyncio.run(storage.executions.get(record.id)).status == ExecutionStatus.FAILED

    def test_get_missing_execution(self, executor):
        with pytest.raises(NotFoundError):
            asyncio.run(executor.get_execution("nope"))

    def test_retry_only_from_failed(self, executor, storage):
        record = self._record(storage, ExecutionStatus.COMPLETED)

        with pytest.raises(InvalidStatusError) as exc:
            asyncio.run(executor.retry_execution(record.id))
        assert "completed" in exc.value.message

    def test_retry_preserves_request(self, executor, registry, storage):
        seed(storage)
        seen = []

        async def handler(ctx):
            seen.append(ctx)
            return {"ok": True}

        registry.register(TaskDefinition(slug="demo", name="Demo", execute=handler))
        record = self._record(storage, ExecutionStatus.FAILED)

        result = asyncio.run(executor.retry_execution(record.id))

        assert result.success
        assert result.execution_id != record.id
        ctx = seen[0]
        assert ctx.task_slug == "demo"
        assert ctx.trigger_source == TriggerSource.WEBHOOK
        assert ctx.input == {"value": 1}
        assert ctx.correlation.listing_id == "L9"
        assert ctx.triggered_by == "hook"
