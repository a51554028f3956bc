# ============================================================================
# TASK REGISTRY
# ============================================================================
# STATUS: Core - Task registration, lookup and persisted metadata access
# PURPOSE: Map task slugs to in-code definitions; cache persisted task rows
# CREATED: 19 OCT 2026
# ============================================================================
"""
Task Registry

Holds the in-code half of every task (handler, default instruction text,
default config, input model) and fronts the task store with a short-lived
read-through cache for the persisted half.

Design:
- One explicit TaskRegistry object, injected into the executor
- Registration is last-wins by slug, visible immediately
- Supports both sync and async handlers
- Tasks without a handler run through the generative fallback
- Persisted rows and metrics are cached with separate TTL windows;
  writes (set_active, update_config) go straight to the store and
  do not touch the cache, so readers may see stale values for one window
"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, List, Optional, Type, Union

from pydantic import BaseModel

from core.config.defaults import CacheDefaults, get_defaults
from core.contracts import CorrelationIds, ExecutionMode, TaskCategory, TriggerSource
from core.errors import ExternalServiceError
from core.models import (
    ExecutionResult,
    PersistedTask,
    TaskConfig,
    TaskFilter,
    TaskMetrics,
)
from core.models.base import utc_now
from infrastructure.cache import TTLCache
from infrastructure.llm import GeneratedText, TextGenerator
from infrastructure.notifications import Notifier
from repositories.base import Storage, TaskStore

logger = logging.getLogger(__name__)


# ============================================================================
# TASK TYPES
# ============================================================================

@dataclass(frozen=True)
class ExecutionContext:
    """
    Everything a handler needs for one invocation.

    Built by the executor; handlers must not keep it beyond the call.
    """
    execution_id: str
    task_slug: str
    trigger_source: TriggerSource
    input: Dict[str, Any]
    config: TaskConfig
    correlation: CorrelationIds = field(default_factory=CorrelationIds)
    triggered_by: Optional[str] = None
    payload: Optional[BaseModel] = None
    system_prompt: Optional[str] = None
    storage: Optional[Storage] = None
    text_client: Optional[TextGenerator] = None
    notifier: Optional[Notifier] = None

    async def generate(self, prompt: str) -> GeneratedText:
        """
        Call the text client with this invocation's merged config.

        Raises:
            ExternalServiceError: If no client is configured or the call fails
        """
        if self.text_client is None:
            raise ExternalServiceError(
                "AI Generation",
                RuntimeError("no text generation client configured"),
                retriable=False,
            )
        try:
            return await self.text_client.generate(
                prompt,
                max_tokens=self.config.max_tokens,
                temperature=self.config.temperature,
                model=self.config.model,
                timeout_seconds=self.config.timeout_seconds,
                max_retries=self.config.retry_attempts,
            )
        except Exception as e:
            raise ExternalServiceError("AI Generation", e) from e


# Handler function type
TaskHandler = Callable[
    [ExecutionContext],
    Union[ExecutionResult, Dict[str, Any], Awaitable[Union[ExecutionResult, Dict[str, Any]]]],
]


@dataclass
class TaskDefinition:
    """
    In-code half of a task.

    `execute` is optional: a definition without a handler relies on
    instruction text (its own system_prompt or the persisted one).
    """
    slug: str
    name: str
    category: TaskCategory = TaskCategory.OPERATIONS
    execution_mode: ExecutionMode = ExecutionMode.ASYNC
    description: str = ""
    system_prompt: Optional[str] = None
    config: Optional[TaskConfig] = None
    execute: Optional[TaskHandler] = None
    input_model: Optional[Type[BaseModel]] = None
    registered_at: datetime = field(default_factory=utc_now)

    @property
    def is_async(self) -> bool:
        return self.execute is not None and asyncio.iscoroutinefunction(self.execute)

    def to_persisted(self) -> PersistedTask:
        """Operator-managed row seeded from this definition."""
        return PersistedTask(
            slug=self.slug,
            name=self.name,
            description=self.description or None,
            category=self.category,
            execution_mode=self.execution_mode,
            system_prompt=self.system_prompt,
            config=self.config or TaskConfig(),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "slug": self.slug,
            "name": self.name,
            "category": self.category.value,
            "execution_mode": self.execution_mode.value,
            "description": self.description,
            "has_handler": self.execute is not None,
            "is_async": self.is_async,
            "input_model": self.input_model.__name__ if self.input_model else None,
            "registered_at": self.registered_at.isoformat(),
        }


# ============================================================================
# REGISTRY
# ============================================================================

class TaskRegistry:
    """Registry of task definitions plus cached persisted metadata."""

    def __init__(
        self,
        task_store: Optional[TaskStore] = None,
        *,
        cache: Optional[TTLCache] = None,
        cache_defaults: Optional[CacheDefaults] = None,
    ):
        """
        Args:
            task_store: Store for persisted rows (required for persisted lookups)
            cache: Cache instance; injectable for tests with a fake clock
            cache_defaults: TTL windows (defaults from environment)
        """
        self._definitions: Dict[str, TaskDefinition] = {}
        self._store = task_store
        self._cache = cache or TTLCache()
        self._ttl = cache_defaults or get_defaults().cache

    # ------------------------------------------------------------------
    # In-code definitions
    # ------------------------------------------------------------------

    def register(self, definition: TaskDefinition) -> TaskDefinition:
        """Insert or replace a definition by slug."""
        if definition.slug in self._definitions:
            logger.debug(f"Replacing task definition: {definition.slug}")
        self._definitions[definition.slug] = definition
        logger.debug(
            f"Registered task: {definition.slug} "
            f"(handler={'yes' if definition.execute else 'no'})"
        )
        return definition

    def task(
        self,
        slug: str,
        *,
        name: Optional[str] = None,
        category: TaskCategory = TaskCategory.OPERATIONS,
        execution_mode: ExecutionMode = ExecutionMode.ASYNC,
        description: str = "",
        system_prompt: Optional[str] = None,
        config: Optional[TaskConfig] = None,
        input_model: Optional[Type[BaseModel]] = None,
    ) -> Callable[[TaskHandler], TaskHandler]:
        """
        Decorator to register a handler function.

        Example:
            @registry.task("qc-assistant", category=TaskCategory.OPERATIONS)
            async def qc_assistant(ctx: ExecutionContext) -> ExecutionResult:
                return ExecutionResult.success_result({"issues": []})
        """
        def decorator(func: TaskHandler) -> TaskHandler:
            self.register(TaskDefinition(
                slug=slug,
                name=name or slug.replace("-", " ").title(),
                category=category,
                execution_mode=execution_mode,
                description=description,
                system_prompt=system_prompt,
                config=config,
                execute=func,
                input_model=input_model,
            ))
            return func

        return decorator

    def get(self, slug: str) -> Optional[TaskDefinition]:
        return self._definitions.get(slug)

    def unregister(self, slug: str) -> bool:
        return self._definitions.pop(slug, None) is not None

    def list_all(self) -> List[TaskDefinition]:
        return list(self._definitions.values())

    def clear(self) -> None:
        """
        Clear all definitions and cached rows.

        Primarily for testing.
        """
        self._definitions.clear()
        self._cache.clear()
        logger.debug("Cleared all task definitions")

    def __contains__(self, slug: str) -> bool:
        return slug in self._definitions

    # ------------------------------------------------------------------
    # Persisted metadata (cached)
    # ------------------------------------------------------------------

    def _require_store(self) -> TaskStore:
        if self._store is None:
            raise RuntimeError("TaskRegistry has no task store configured")
        return self._store

    async def get_persisted(self, slug: str) -> Optional[PersistedTask]:
        store = self._require_store()
        return await self._cache.get_or_fetch(
            f"task:{slug}",
            self._ttl.task_ttl_seconds,
            lambda: store.get(slug),
        )

    async def list_persisted(self, task_filter: Optional[TaskFilter] = None) -> List[PersistedTask]:
        store = self._require_store()
        task_filter = task_filter or TaskFilter()
        return await self._cache.get_or_fetch(
            f"tasks:{task_filter.cache_key()}",
            self._ttl.task_ttl_seconds,
            lambda: store.list_tasks(task_filter),
        )

    async def get_metrics(self, slug: Optional[str] = None) -> List[TaskMetrics]:
        store = self._require_store()
        return await self._cache.get_or_fetch(
            f"metrics:{slug or '*'}",
            self._ttl.metrics_ttl_seconds,
            lambda: store.get_metrics(slug),
        )

    async def seed_store(self) -> int:
        """
        Insert a persisted row for every definition the store lacks.

        Existing rows are left untouched so operator edits survive.

        Returns:
            Number of rows created
        """
        store = self._require_store()
        created = 0
        for definition in self._definitions.values():
            if await store.get(definition.slug) is None:
                await store.upsert(definition.to_persisted())
                created += 1
        logger.info(f"Seeded {created} task rows")
        return created

    async def set_active(self, slug: str, is_active: bool) -> bool:
        changed = await self._require_store().set_active(slug, is_active)
        logger.info(f"Task {slug} set active={is_active} (changed={changed})")
        return changed

    async def update_config(self, slug: str, patch: Dict[str, Any]) -> bool:
        changed = await self._require_store().update_config(slug, patch)
        logger.info(f"Task {slug} config updated: {sorted(patch)} (changed={changed})")
        return changed


# ============================================================================
# HANDLER INVOCATION
# ============================================================================

async def invoke_handler(
    definition: TaskDefinition,
    context: ExecutionContext,
) -> ExecutionResult:
    """
    Run a definition's handler.

    Sync handlers run in the default thread pool. A plain dict return
    value is treated as a successful output. Exceptions propagate to the
    caller, which owns error mapping.
    """
    handler = definition.execute
    if handler is None:
        raise ValueError(f"Task {definition.slug} has no handler")

    if asyncio.iscoroutinefunction(handler):
        result = await handler(context)
    else:
        loop = asyncio.get_running_loop()
        result = await loop.run_in_executor(None, handler, context)
        if asyncio.iscoroutine(result):
            result = await result

    if isinstance(result, dict):
        return ExecutionResult.success_result(result)
    if not isinstance(result, ExecutionResult):
        raise TypeError(
            f"Handler for {definition.slug} returned {type(result).__name__}, "
            f"expected ExecutionResult"
        )
    return result


# ============================================================================
# EXPORTS
# ============================================================================

__all__ = [
    "ExecutionContext",
    "TaskHandler",
    "TaskDefinition",
    "TaskRegistry",
    "invoke_handler",
]
