"""
Type-safe configuration for steprail using Pydantic Settings.

Values are loaded from ``STEPRAIL_``-prefixed environment variables or a
``.env`` file and validated at import time.

Usage:
    from steprail.shared.config import config

    cap = config.default_max_iterations
"""
from typing import List

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class SteprailConfig(BaseSettings):
    """
    Central configuration for the workflow engine.

    Provides the runtime limits the interpreter enforces and the switches for
    behaviour that still awaits a product decision (suspend, custom code).
    """
    model_config = SettingsConfigDict(
        env_prefix="STEPRAIL_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        case_sensitive=False,
    )

    # ============================================================================
    # Logging
    # ============================================================================

    log_level: str = Field(default="INFO", description="Log level for steprail loggers")

    # ============================================================================
    # Interpreter limits
    # ============================================================================

    default_max_iterations: int = Field(
        default=100,
        ge=1,
        description="Loop safety cap used when a loop step does not declare maxIterations",
    )
    max_foreach_concurrency: int = Field(
        default=32,
        ge=1,
        description="Upper bound applied to any foreach concurrency value",
    )
    graph_recursion_headroom: int = Field(
        default=10,
        ge=1,
        description="Extra supersteps granted to the compiled rail graph beyond its step count",
    )

    # ============================================================================
    # Step behaviour
    # ============================================================================

    custom_code_enabled: bool = Field(
        default=True,
        description="If False, custom-code steps fail instead of executing user code",
    )
    custom_code_timeout_seconds: float = Field(
        default=30.0,
        gt=0,
        description="Maximum wall time for one custom-code step",
    )
    suspend_passthrough: bool = Field(
        default=False,
        description="If True, suspend steps complete immediately instead of pausing the run",
    )

    # ============================================================================
    # Readiness
    # ============================================================================

    no_auth_toolkits: List[str] = Field(
        default_factory=list,
        description="Toolkit slugs that never require a user connection",
    )
    internal_step_prefix: str = Field(
        default="__",
        min_length=1,
        description="Id prefix marking internal bookkeeping steps",
    )

    @field_validator("log_level")
    @classmethod
    def _normalize_level(cls, value: str) -> str:
        return value.upper()


# ============================================================================
# Global Config Instance
# ============================================================================

config = SteprailConfig()
