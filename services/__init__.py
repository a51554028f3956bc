# ============================================================================
# SERVICES MODULE
# ============================================================================
# STATUS: Core - Workflow definition management
# PURPOSE: Workflow definition loading and lookup
# CREATED: 19 OCT 2026
# ============================================================================
"""
Services Module

Usage:
    from services import WorkflowService

    workflow_service = WorkflowService()
    workflow_service.load_all()
    definition = workflow_service.get_or_raise("new-listing")
"""

from .workflow_service import WorkflowService

__all__ = [
    "WorkflowService",
]
