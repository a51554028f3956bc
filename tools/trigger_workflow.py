#!/usr/bin/env python3
# ============================================================================
# CLI WORKFLOW TRIGGER TOOL
# ============================================================================
# STATUS: Tool - Fire workflow triggers in-process
# PURPOSE: Run a workflow (or every workflow for an event) from the shell
# CREATED: 19 OCT 2026
# ============================================================================
"""
Fire a workflow trigger against a locally built engine.

Usage:
    # Every workflow listening for the event
    python tools/trigger_workflow.py listing.created '{"address": "1 Main St", "beds": 3}' --listing-id L1

    # A single workflow
    python tools/trigger_workflow.py qc.approved '{"agent_email": "a@b.com"}' --workflow post-delivery

    # In-memory storage, no database needed
    python tools/trigger_workflow.py listing.created '{}' --listing-id L1 --memory

Requires:
    DATABASE_URL (or POSTGRES_* vars) unless --memory is given.
    ANTHROPIC_API_KEY for tasks that generate text.
"""

import argparse
import asyncio
import json
import os
import sys

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from core.contracts import CorrelationIds
from core.errors import EngineError
from core.logging import configure_logging
from core.models import WorkflowResult, WorkflowTrigger
from main import create_engine
from repositories.database import close_pool


def print_result(result: WorkflowResult) -> None:
    print(f"\n--- {result.workflow_id} ({result.workflow_execution_id}) ---")
    print(f"  status:    {result.status.value}")
    print(f"  steps:     {result.completed_steps}/{result.total_steps}")
    if result.error:
        print(f"  error:     {result.error}")
    for slug, step in result.step_results.items():
        state = "ok" if step.success else f"FAILED [{step.error_code}] {step.error}"
        print(f"  - {slug:<28} {state}")


async def run(args: argparse.Namespace, data: dict) -> int:
    trigger = WorkflowTrigger(
        event=args.event,
        correlation=CorrelationIds(listing_id=args.listing_id, campaign_id=args.campaign_id),
        data=data,
    )

    engine = await create_engine(memory=args.memory)
    try:
        if args.workflow:
            results = [await engine.orchestrator.execute_workflow(args.workflow, trigger)]
        else:
            results = await engine.orchestrator.trigger_event(trigger)
    except EngineError as e:
        print(f"ERROR [{e.code}]: {e.message}", file=sys.stderr)
        return 1
    finally:
        if not args.memory:
            await close_pool()

    if not results:
        print(f"No workflows listen for {args.event}")
        return 1

    for result in results:
        print_result(result)
    return 0 if all(r.success for r in results) else 1


def main():
    parser = argparse.ArgumentParser(
        description="Fire a workflow trigger in-process",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s listing.created '{"address": "1 Main St", "beds": 3}' --listing-id L1
  %(prog)s qc.approved '{"agent_email": "a@b.com"}' --workflow post-delivery --memory
        """,
    )
    parser.add_argument("event", help="Trigger event name, e.g. listing.created")
    parser.add_argument("data", nargs="?", default="{}", help="JSON trigger data")
    parser.add_argument("--workflow", "-w", help="Run only this workflow id")
    parser.add_argument("--listing-id", "-l", help="Correlated listing id")
    parser.add_argument("--campaign-id", help="Correlated campaign id")
    parser.add_argument(
        "--memory", "-m",
        action="store_true",
        help="Use in-memory storage instead of PostgreSQL",
    )

    args = parser.parse_args()

    try:
        data = json.loads(args.data)
    except json.JSONDecodeError as e:
        print(f"ERROR: Invalid JSON data: {e}", file=sys.stderr)
        sys.exit(2)
    if not isinstance(data, dict):
        print("ERROR: Trigger data must be a JSON object", file=sys.stderr)
        sys.exit(2)

    configure_logging()
    sys.exit(asyncio.run(run(args, data)))


if __name__ == "__main__":
    main()
