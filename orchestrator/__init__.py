# ============================================================================
# ORCHESTRATOR MODULE
# ============================================================================
# STATUS: Core - Workflow orchestration
# PURPOSE: Run multi-step workflows over the task executor
# CREATED: 19 OCT 2026
# ============================================================================
"""
Orchestrator Module

Usage:
    from orchestrator import WorkflowOrchestrator

    orchestrator = WorkflowOrchestrator(executor, workflow_service)
    result = await orchestrator.execute_workflow("new-listing", trigger)
"""

from .runner import WorkflowOrchestrator, RequiredStepFailed, SKIPPED_OUTPUT

__all__ = ["WorkflowOrchestrator", "RequiredStepFailed", "SKIPPED_OUTPUT"]
