# ============================================================================
# TEMPLATE RESOLUTION ENGINE
# ============================================================================
# STATUS: Core - Template resolution with Jinja2
# PURPOSE: Resolve {{ }} expressions in workflow step inputs
# CREATED: 19 OCT 2026
# ============================================================================
"""
Template Resolution Engine

Resolves template expressions in step `inputs` mappings against the
workflow context.

Supported variables:
- {{ trigger.data.field }}         - Trigger payload
- {{ trigger.event }}              - Trigger event name
- {{ correlation.listing_id }}     - Correlation ids
- {{ shared.key }}                 - Shared workflow context
- {{ steps['slug'].output.field }} - Result of an earlier step
- {{ workflow.execution_id }}      - Run identity

A value that is a single expression keeps the type of what it resolves
to (dicts, lists, numbers, booleans, None); mixed text renders as a string.

Examples:
    inputs:
      listing_id: "{{ correlation.listing_id }}"
      listing: "{{ shared.listing_data }}"
      headline: "New listing in {{ shared.listing_data.city }}"
"""

import re
import logging
from typing import Any, Dict, Optional

from jinja2 import (
    BaseLoader,
    Environment,
    StrictUndefined,
    TemplateSyntaxError,
    Undefined,
    UndefinedError,
)

logger = logging.getLogger(__name__)

_SINGLE_EXPRESSION = re.compile(r"^\{\{\s*(.+?)\s*\}\}$", re.DOTALL)


class TemplateResolutionError(Exception):
    """Raised when template resolution fails."""
    pass


class TemplateResolver:
    """
    Jinja2-based template resolver for step inputs.

    Stateless after construction, can be reused across resolutions.
    """

    def __init__(self):
        self._env = Environment(
            loader=BaseLoader(),
            autoescape=False,
            undefined=StrictUndefined,
        )
        self._template_pattern = re.compile(r"\{\{.*?\}\}")

    def resolve(
        self,
        params: Dict[str, Any],
        context: Dict[str, Any],
    ) -> Dict[str, Any]:
        """
        Resolve all template expressions in a mapping.

        Args:
            params: Mapping containing template expressions
            context: Workflow template dict (WorkflowContext.to_template_dict())

        Returns:
            New dict with all templates resolved

        Raises:
            TemplateResolutionError: If a template cannot be resolved
        """
        return self._resolve_value(params, context)

    def _resolve_value(self, value: Any, context: Dict[str, Any]) -> Any:
        """Recursively resolve template expressions in a value."""
        if isinstance(value, str):
            return self._resolve_string(value, context)
        elif isinstance(value, dict):
            return {k: self._resolve_value(v, context) for k, v in value.items()}
        elif isinstance(value, list):
            return [self._resolve_value(item, context) for item in value]
        else:
            return value

    def _resolve_string(self, value: str, context: Dict[str, Any]) -> Any:
        """Resolve template expressions in a string value."""
        if "{{" not in value:
            return value

        # A lone expression returns the native value instead of its text
        match = _SINGLE_EXPRESSION.match(value.strip())
        if match and "{{" not in match.group(1) and "}}" not in match.group(1):
            try:
                expression = self._env.compile_expression(match.group(1), undefined_to_none=False)
                return _to_native(expression(**context))
            except (TemplateSyntaxError, UndefinedError) as e:
                raise TemplateResolutionError(f"Failed to resolve '{value}': {e}") from e

        try:
            template = self._env.from_string(value)
            return template.render(context)
        except (TemplateSyntaxError, UndefinedError) as e:
            raise TemplateResolutionError(f"Failed to resolve '{value}': {e}") from e

    def has_templates(self, params: Dict[str, Any]) -> bool:
        """Check if params contain any template expressions."""
        return self._check_for_templates(params)

    def _check_for_templates(self, value: Any) -> bool:
        if isinstance(value, str):
            return bool(self._template_pattern.search(value))
        elif isinstance(value, dict):
            return any(self._check_for_templates(v) for v in value.values())
        elif isinstance(value, list):
            return any(self._check_for_templates(item) for item in value)
        return False


def _to_native(value: Any) -> Any:
    """Undefined results raise; everything else passes through unchanged."""
    if isinstance(value, Undefined):
        value._fail_with_undefined_error()
    return value


# ============================================================================
# CONVENIENCE FUNCTIONS
# ============================================================================

_resolver: Optional[TemplateResolver] = None


def get_resolver() -> TemplateResolver:
    """Get shared template resolver instance."""
    global _resolver
    if _resolver is None:
        _resolver = TemplateResolver()
    return _resolver


# ============================================================================
# EXPORTS
# ============================================================================

__all__ = [
    "TemplateResolver",
    "TemplateResolutionError",
    "get_resolver",
]
