# ============================================================================
# TASK HANDLERS
# ============================================================================
# STATUS: Core - Task registration and built-in handlers
# PURPOSE: Task registry plus the hand-written tasks shipped with the engine
# CREATED: 19 OCT 2026
# ============================================================================
"""
Task Handlers

Usage:
    from handlers import TaskRegistry, register_builtin_tasks

    registry = TaskRegistry(storage.tasks)
    register_builtin_tasks(registry)

    @registry.task("qc-assistant")
    async def qc_assistant(ctx: ExecutionContext) -> ExecutionResult:
        return ExecutionResult.success_result({"issues": []})
"""

from typing import List

from handlers.registry import (
    ExecutionContext,
    TaskHandler,
    TaskDefinition,
    TaskRegistry,
    invoke_handler,
)
from handlers.definitions import BUILTIN_MODULES


def register_builtin_tasks(registry: TaskRegistry) -> List[TaskDefinition]:
    """Register every hand-written task on the given registry."""
    return [module.register(registry) for module in BUILTIN_MODULES]


__all__ = [
    "ExecutionContext",
    "TaskHandler",
    "TaskDefinition",
    "TaskRegistry",
    "invoke_handler",
    "register_builtin_tasks",
]
