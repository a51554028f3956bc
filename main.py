# ============================================================================
# LISTING AGENT ENGINE - MAIN
# ============================================================================
# STATUS: Core - Engine wiring and command line entry point
# PURPOSE: Build registry, executor and orchestrator over a storage backend
# CREATED: 19 OCT 2026
# ============================================================================
"""
Listing Agent Engine

Wires the engine together:

    storage -> TaskRegistry (+ built-in tasks) -> TaskExecutor
            -> WorkflowService (workflows/*.yaml) -> WorkflowOrchestrator

The engine is an in-process library; callers hold an Engine and call
executor/orchestrator methods directly.

Usage:
    python main.py init-schema [--dry-run]
    python main.py workflows
    python main.py run-task delivery-notifier '{"listingId": "L1", ...}' --memory
"""

import argparse
import asyncio
import json
import logging
import os
import sys
from dataclasses import dataclass
from typing import Any, Dict, Optional

from __version__ import __version__, BUILD_DATE
from core.contracts import TriggerSource
from core.logging import configure_logging
from core.models import ExecuteTaskRequest
from handlers import TaskRegistry, register_builtin_tasks
from infrastructure.llm import AnthropicTextGenerator, TextGenerator
from infrastructure.notifications import LoggingNotifier, Notifier
from orchestrator import WorkflowOrchestrator
from repositories import Storage, create_memory_storage, create_postgres_storage
from repositories.database import close_pool, init_pool
from repositories.schema import initialize_schema
from services import WorkflowService
from worker import TaskExecutor

logger = logging.getLogger(__name__)


@dataclass
class Engine:
    """Everything a caller needs to run tasks and workflows."""
    storage: Storage
    registry: TaskRegistry
    executor: TaskExecutor
    workflow_service: WorkflowService
    orchestrator: WorkflowOrchestrator


def build_engine(
    storage: Storage,
    text_client: Optional[TextGenerator] = None,
    notifier: Optional[Notifier] = None,
    workflows_dir: Optional[str] = None,
    register_builtins: bool = True,
) -> Engine:
    """
    Assemble an engine over the given storage.

    Args:
        storage: Store bundle (PostgreSQL or in-memory)
        text_client: Generative text backend; tasks that need it fail without one
        notifier: Email sender for hand-written tasks (defaults to logging)
        workflows_dir: Workflow YAML directory (defaults to WORKFLOWS_DIR or ./workflows)
        register_builtins: Register the hand-written tasks
    """
    registry = TaskRegistry(storage.tasks)
    if register_builtins:
        register_builtin_tasks(registry)

    executor = TaskExecutor(
        registry,
        storage,
        text_client=text_client,
        notifier=notifier if notifier is not None else LoggingNotifier(),
    )

    workflow_service = WorkflowService(workflows_dir or os.environ.get("WORKFLOWS_DIR"))
    count = workflow_service.load_all()

    orchestrator = WorkflowOrchestrator(executor, workflow_service)
    logger.info(
        f"Engine ready: {len(registry.list_all())} hand-written tasks, {count} workflows"
    )
    return Engine(
        storage=storage,
        registry=registry,
        executor=executor,
        workflow_service=workflow_service,
        orchestrator=orchestrator,
    )


def default_text_client() -> Optional[TextGenerator]:
    """Anthropic client from the environment, or None when no key is set."""
    try:
        return AnthropicTextGenerator.from_env()
    except RuntimeError as e:
        logger.warning(str(e))
        return None


async def create_engine(
    memory: bool = False,
    seed_tables: Optional[Dict[str, Any]] = None,
) -> Engine:
    """
    Build an engine with environment-driven collaborators.

    PostgreSQL unless `memory` is set; the caller closes the pool with
    close_pool() when done.
    """
    if memory:
        engine = build_engine(create_memory_storage(seed_tables), text_client=default_text_client())
        await engine.registry.seed_store()
        return engine

    pool = await init_pool()
    return build_engine(create_postgres_storage(pool), text_client=default_text_client())


# ============================================================================
# COMMAND LINE
# ============================================================================

async def _init_schema(args: argparse.Namespace) -> int:
    pool = await init_pool()
    try:
        applied = await initialize_schema(pool, dry_run=args.dry_run)
    finally:
        await close_pool()
    print(f"{'Would apply' if args.dry_run else 'Applied'} {applied} statements")
    return 0


async def _list_workflows(args: argparse.Namespace) -> int:
    service = WorkflowService(args.workflows_dir)
    service.load_all()
    for workflow in service.list_all():
        print(
            f"{workflow.workflow_id:<20} v{workflow.version}  "
            f"on={workflow.trigger_event:<18} steps={len(workflow.steps)}  "
            f"policy={workflow.on_error.value}"
        )
    return 0


async def _run_task(args: argparse.Namespace) -> int:
    try:
        payload = json.loads(args.input)
    except json.JSONDecodeError as e:
        print(f"ERROR: Invalid JSON input: {e}", file=sys.stderr)
        return 2

    engine = await create_engine(memory=args.memory)
    try:
        result = await engine.executor.execute_task(ExecuteTaskRequest(
            task_slug=args.slug,
            trigger_source=TriggerSource.MANUAL,
            input=payload,
            triggered_by="cli",
        ))
    finally:
        if not args.memory:
            await close_pool()

    print(json.dumps(result.to_dict(), indent=2, default=str))
    return 0 if result.success else 1


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(
        description=f"Listing agent engine v{__version__} ({BUILD_DATE})",
    )
    parser.add_argument("--log-level", default=None, help="Overrides LOG_LEVEL")
    sub = parser.add_subparsers(dest="command", required=True)

    schema = sub.add_parser("init-schema", help="Create engine tables and views")
    schema.add_argument("--dry-run", action="store_true", help="Print DDL without applying")
    schema.set_defaults(handler=_init_schema)

    workflows = sub.add_parser("workflows", help="List workflow definitions")
    workflows.add_argument("--workflows-dir", default=os.environ.get("WORKFLOWS_DIR"))
    workflows.set_defaults(handler=_list_workflows)

    run = sub.add_parser("run-task", help="Execute one task and print the result")
    run.add_argument("slug", help="Task slug")
    run.add_argument("input", nargs="?", default="{}", help="JSON input payload")
    run.add_argument("--memory", action="store_true", help="Use in-memory storage")
    run.set_defaults(handler=_run_task)

    args = parser.parse_args(argv)
    configure_logging(
        level=args.log_level,
        json_output=os.environ.get("LOG_FORMAT", "").lower() == "json",
    )
    logging.getLogger("httpx").setLevel(logging.WARNING)

    return asyncio.run(args.handler(args))


if __name__ == "__main__":
    sys.exit(main())
