# ============================================================================
# WORKFLOW SERVICE
# ============================================================================
# STATUS: Core - Workflow definition management
# PURPOSE: Load, register and look up workflow definitions
# CREATED: 19 OCT 2026
# ============================================================================
"""
Workflow Service

Loads workflow definitions from YAML files and provides lookup by id
and by trigger event. Definitions can also be registered in code, which
is how steps with strategy objects (predicate, input_mapper, on_complete)
are added.

Workflow files are stored in the workflows/ directory.
"""

import logging
from pathlib import Path
from typing import Dict, List, Optional

import yaml

from core.errors import NotFoundError
from core.models import WorkflowDefinition

logger = logging.getLogger(__name__)


class WorkflowService:
    """Service for loading and managing workflow definitions."""

    def __init__(self, workflows_dir: Optional[str] = None):
        """
        Initialize workflow service.

        Args:
            workflows_dir: Directory containing workflow YAML files.
                          Defaults to ./workflows/
        """
        if workflows_dir:
            self.workflows_dir = Path(workflows_dir)
        else:
            self.workflows_dir = Path(__file__).parent.parent / "workflows"

        self._cache: Dict[str, WorkflowDefinition] = {}
        self._loaded = False

    def load_all(self) -> int:
        """
        Load all workflow definitions from the workflows directory.

        Invalid files are logged and skipped.

        Returns:
            Number of workflows loaded
        """
        self._loaded = True

        if not self.workflows_dir.exists():
            logger.warning(f"Workflows directory not found: {self.workflows_dir}")
            return 0

        count = 0
        paths = sorted(self.workflows_dir.glob("*.yaml")) + sorted(self.workflows_dir.glob("*.yml"))
        for yaml_file in paths:
            try:
                workflow = self._load_yaml(yaml_file)
            except (OSError, ValueError, yaml.YAMLError) as e:
                logger.error(f"Failed to load {yaml_file}: {e}")
                continue
            self._cache[workflow.workflow_id] = workflow
            count += 1
            logger.info(f"Loaded workflow: {workflow.workflow_id} v{workflow.version}")

        logger.info(f"Loaded {count} workflows from {self.workflows_dir}")
        return count

    def get(self, workflow_id: str) -> Optional[WorkflowDefinition]:
        """
        Get a workflow definition by ID.

        Returns:
            WorkflowDefinition or None if not found
        """
        if not self._loaded:
            self.load_all()

        return self._cache.get(workflow_id)

    def get_or_raise(self, workflow_id: str) -> WorkflowDefinition:
        """
        Get a workflow definition, raising if not found.

        Raises:
            NotFoundError if workflow not found
        """
        workflow = self.get(workflow_id)
        if workflow is None:
            raise NotFoundError("Workflow", workflow_id)
        return workflow

    def list_all(self) -> List[WorkflowDefinition]:
        if not self._loaded:
            self.load_all()

        return list(self._cache.values())

    def list_for_event(self, event: str) -> List[WorkflowDefinition]:
        """Workflows whose trigger event matches, in registration order."""
        return [w for w in self.list_all() if w.trigger_event == event]

    def register(self, workflow: WorkflowDefinition) -> None:
        """
        Register a workflow definition (programmatic or tests).

        Replaces any definition with the same id.

        Raises:
            ValueError: If the definition fails structural validation
        """
        errors = workflow.validate_structure()
        if errors:
            raise ValueError(f"Invalid workflow {workflow.workflow_id}: {errors}")

        if workflow.workflow_id in self._cache:
            logger.debug(f"Replacing workflow: {workflow.workflow_id}")
        self._cache[workflow.workflow_id] = workflow
        logger.info(f"Registered workflow: {workflow.workflow_id}")

    def _load_yaml(self, path: Path) -> WorkflowDefinition:
        """
        Load a workflow from YAML file.

        Raises:
            ValueError: Invalid content (pydantic ValidationError is a ValueError)
        """
        with open(path) as f:
            data = yaml.safe_load(f)

        if not isinstance(data, dict):
            raise ValueError(f"Workflow file {path} must contain a mapping")

        workflow = WorkflowDefinition.model_validate(data)

        errors = workflow.validate_structure()
        if errors:
            raise ValueError(f"Invalid workflow in {path}: {errors}")

        return workflow

    def reload(self) -> int:
        """
        Reload all workflows from disk.

        Programmatically registered workflows are dropped.
        """
        self._cache.clear()
        self._loaded = False
        return self.load_all()
