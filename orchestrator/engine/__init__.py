# ============================================================================
# ORCHESTRATOR ENGINE
# ============================================================================
# STATUS: Core - Engine components
# PURPOSE: Step grouping, condition evaluation, input templates
# CREATED: 19 OCT 2026
# ============================================================================
"""
Orchestrator Engine Components

- templates: Jinja2-based resolution of step inputs
- evaluator: step grouping and condition evaluation
"""

from orchestrator.engine.templates import (
    TemplateResolver,
    TemplateResolutionError,
    get_resolver,
)
from orchestrator.engine.evaluator import (
    StepGroup,
    partition_steps,
    ConditionEvaluator,
    resolve_path,
)

__all__ = [
    # Templates
    "TemplateResolver",
    "TemplateResolutionError",
    "get_resolver",
    # Evaluator
    "StepGroup",
    "partition_steps",
    "ConditionEvaluator",
    "resolve_path",
]
