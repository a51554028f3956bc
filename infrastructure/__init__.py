# ============================================================================
# INFRASTRUCTURE MODULE
# ============================================================================
# STATUS: Infrastructure - External service boundaries
# PURPOSE: Text generation, outbound email and read-through caching
# CREATED: 19 OCT 2026
# ============================================================================
"""
Infrastructure module for the listing agent engine.

Provides:
- AnthropicTextGenerator: Generative text client used by the executor
- LoggingNotifier: Notifier that records email instead of sending it
- TTLCache: Async read-through cache for registry lookups
"""

from infrastructure.cache import CacheEntry, TTLCache
from infrastructure.llm import (
    AnthropicTextGenerator,
    GeneratedText,
    TextGenerator,
    parse_json_response,
)
from infrastructure.notifications import LoggingNotifier, Notifier, SentEmail

__all__ = [
    # Cache
    'CacheEntry',
    'TTLCache',
    # Text generation
    'AnthropicTextGenerator',
    'GeneratedText',
    'TextGenerator',
    'parse_json_response',
    # Notifications
    'LoggingNotifier',
    'Notifier',
    'SentEmail',
]
