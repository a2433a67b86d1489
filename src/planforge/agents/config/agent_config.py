# src/planforge/agents/config/agent_config.py
import logging
import os
from enum import Enum
from typing import Any, ClassVar, Dict, Tuple

from pydantic import BaseModel, Field


class AgentState(str, Enum):
    """Defines the possible states of an agent controller."""

    IDLE = "idle"
    PLANNING = "planning"
    EXECUTING = "executing"


class EngineConfig(BaseModel):
    """Configuration settings for plan generation and execution."""

    model_id: str = Field(
        default="default", description="Model identifier passed to the completion service"
    )
    max_result_chars: int = Field(
        default=800,
        ge=1,
        description="Step results longer than this are summarized or truncated.",
    )
    default_estimated_time: int = Field(
        default=30, ge=1, description="Minutes used when a step has no valid estimate"
    )
    completion_timeout: float | None = Field(
        default=None,
        gt=0,
        description=(
            "Timeout in seconds for a single completion call. "
            "None means the call is never bounded."
        ),
    )
    auto_start: bool = Field(
        default=True,
        description="Start the first task immediately when a plan is confirmed.",
    )
    verbose: bool = Field(default=False, description="Enable detailed logging")

    _ENV_FIELDS: ClassVar[Tuple[str, ...]] = (
        "model_id",
        "max_result_chars",
        "default_estimated_time",
        "completion_timeout",
        "auto_start",
        "verbose",
    )

    @classmethod
    def from_env(cls, prefix: str = "PLANFORGE_", **overrides: Any) -> "EngineConfig":
        """Build a config from ``PLANFORGE_*`` environment variables.

        Explicit keyword overrides win over the environment. Values are
        validated (and coerced from strings) by pydantic.
        """
        values: Dict[str, Any] = {}
        for name in cls._ENV_FIELDS:
            raw = os.environ.get(f"{prefix}{name.upper()}")
            if raw is not None and raw != "":
                values[name] = raw
        values.update(overrides)
        return cls(**values)

    def configure_logging(self, logger_name: str = "planforge") -> logging.Logger:
        """Apply ``verbose`` to the package logger and return it."""
        logger = logging.getLogger(logger_name)
        if self.verbose:
            logger.setLevel(logging.DEBUG)
        return logger
