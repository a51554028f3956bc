# ============================================================================
# CONFIGURATION DEFAULTS
# ============================================================================
# STATUS: Core - Default configuration values
# PURPOSE: Centralized defaults for task config, caching, LLM, database
# CREATED: 19 OCT 2026
# ============================================================================
"""
Configuration Defaults

Provides defaults for task execution, registry caching, the text
generation client and the database pool. Each group can be overridden
via environment variables.

Design:
- Immutable dataclasses for defaults
- Environment variable overrides
- Type-safe access
"""

import os
from dataclasses import dataclass, field
from typing import Optional


@dataclass(frozen=True)
class TaskConfigDefaults:
    """
    Lowest-precedence task configuration.

    Persisted task config overrides these; in-code definition config
    overrides both.
    """
    max_tokens: int = 1000
    temperature: float = 0.7
    timeout_ms: int = 30000
    retry_attempts: int = 1
    model: Optional[str] = None

    @classmethod
    def from_env(cls) -> "TaskConfigDefaults":
        """Create from environment variables."""
        return cls(
            max_tokens=int(os.getenv("TASK_MAX_TOKENS", 1000)),
            temperature=float(os.getenv("TASK_TEMPERATURE", 0.7)),
            timeout_ms=int(os.getenv("TASK_TIMEOUT_MS", 30000)),
            retry_attempts=int(os.getenv("TASK_RETRY_ATTEMPTS", 1)),
            model=os.getenv("TASK_MODEL") or None,
        )


@dataclass(frozen=True)
class CacheDefaults:
    """
    Registry read-through cache windows (seconds).

    Metrics change on every execution, so their window is shorter.
    """
    task_ttl_seconds: float = 60.0
    metrics_ttl_seconds: float = 15.0

    @classmethod
    def from_env(cls) -> "CacheDefaults":
        """Create from environment variables."""
        return cls(
            task_ttl_seconds=float(os.getenv("TASK_CACHE_TTL_SECONDS", 60)),
            metrics_ttl_seconds=float(os.getenv("METRICS_CACHE_TTL_SECONDS", 15)),
        )


@dataclass(frozen=True)
class LLMDefaults:
    """Defaults for the generative text client."""
    model: str = "claude-haiku-4-5-20251001"
    api_key: Optional[str] = field(default=None, repr=False)
    max_retries: int = 2

    @classmethod
    def from_env(cls) -> "LLMDefaults":
        """Create from environment variables."""
        return cls(
            model=os.getenv("LLM_MODEL", "claude-haiku-4-5-20251001"),
            api_key=os.getenv("ANTHROPIC_API_KEY") or None,
            max_retries=int(os.getenv("LLM_MAX_RETRIES", 2)),
        )


@dataclass(frozen=True)
class DatabaseDefaults:
    """Defaults for the PostgreSQL pool and schema."""
    schema: str = "public"
    pool_min_size: int = 1
    pool_max_size: int = 10

    @classmethod
    def from_env(cls) -> "DatabaseDefaults":
        """Create from environment variables."""
        return cls(
            schema=os.getenv("ENGINE_DB_SCHEMA", "public"),
            pool_min_size=int(os.getenv("DB_POOL_MIN_SIZE", 1)),
            pool_max_size=int(os.getenv("DB_POOL_MAX_SIZE", 10)),
        )


@dataclass(frozen=True)
class NotificationDefaults:
    """Addresses used by hand-written tasks that send email."""
    care_team_email: str = "care@example.com"
    support_email: str = "support@example.com"
    admin_base_url: str = "http://localhost:3000"

    @classmethod
    def from_env(cls) -> "NotificationDefaults":
        """Create from environment variables."""
        return cls(
            care_team_email=os.getenv("CARE_TEAM_EMAIL", "care@example.com"),
            support_email=os.getenv("SUPPORT_EMAIL", "support@example.com"),
            admin_base_url=os.getenv("ADMIN_BASE_URL", "http://localhost:3000").rstrip("/"),
        )


# ============================================================================
# GLOBAL DEFAULTS INSTANCE
# ============================================================================

@dataclass
class Defaults:
    """Container for all default configurations."""
    task: TaskConfigDefaults = field(default_factory=TaskConfigDefaults)
    cache: CacheDefaults = field(default_factory=CacheDefaults)
    llm: LLMDefaults = field(default_factory=LLMDefaults)
    database: DatabaseDefaults = field(default_factory=DatabaseDefaults)
    notifications: NotificationDefaults = field(default_factory=NotificationDefaults)

    @classmethod
    def from_env(cls) -> "Defaults":
        """Create all defaults from environment variables."""
        return cls(
            task=TaskConfigDefaults.from_env(),
            cache=CacheDefaults.from_env(),
            llm=LLMDefaults.from_env(),
            database=DatabaseDefaults.from_env(),
            notifications=NotificationDefaults.from_env(),
        )


_defaults: Optional[Defaults] = None


def get_defaults() -> Defaults:
    """Get global defaults instance."""
    global _defaults
    if _defaults is None:
        _defaults = Defaults.from_env()
    return _defaults


def reset_defaults() -> None:
    """Reset defaults (for testing)."""
    global _defaults
    _defaults = None


# ============================================================================
# EXPORTS
# ============================================================================

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
