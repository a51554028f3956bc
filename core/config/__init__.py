# ============================================================================
# CONFIGURATION MODULE
# ============================================================================
# STATUS: Core - Configuration and defaults
# PURPOSE: Centralized configuration management
# CREATED: 19 OCT 2026
# ============================================================================
"""
Configuration Module

Provides centralized configuration and defaults for the agent engine.
"""

from core.config.defaults import (
    TaskConfigDefaults,
    CacheDefaults,
    LLMDefaults,
    DatabaseDefaults,
    NotificationDefaults,
    Defaults,
    get_defaults,
    reset_defaults,
)

__all__ = [
    "TaskConfigDefaults",
    "CacheDefaults",
    "LLMDefaults",
    "DatabaseDefaults",
    "NotificationDefaults",
    "Defaults",
    "get_defaults",
    "reset_defaults",
]
