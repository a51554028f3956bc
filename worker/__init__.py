# ============================================================================
# WORKER MODULE
# ============================================================================
# STATUS: Core - Task execution
# PURPOSE: Single task invocation with audit trail
# CREATED: 19 OCT 2026
# ============================================================================
"""
Worker Module

- executor: TaskExecutor (execute, get, cancel, retry) and the prompt
  rendering used by the generative fallback
"""

from worker.executor import (
    TaskExecutor,
    humanize_key,
    render_input,
    build_prompt,
    parse_generated_output,
)

__all__ = [
    "TaskExecutor",
    "humanize_key",
    "render_input",
    "build_prompt",
    "parse_generated_output",
]
