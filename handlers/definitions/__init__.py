# ============================================================================
# HAND-WRITTEN TASKS
# ============================================================================
# STATUS: Handler Module - Built-in task definitions
# PURPOSE: Tasks whose logic does not fit a single generative call
# CREATED: 19 OCT 2026
# ============================================================================
"""
Hand-written Tasks

- delivery-notifier: delivery email with per-category usage tips
- care-task-generator: follow-up care task with a call script

Each module exposes `register(registry)`.
"""

from handlers.definitions import care_task_generator, delivery_notifier

BUILTIN_MODULES = (delivery_notifier, care_task_generator)

__all__ = ["BUILTIN_MODULES", "care_task_generator", "delivery_notifier"]
