# src/planforge/agents/errors.py
"""
Error classes for the Planforge orchestration engine.

Input errors are raised before any completion call is made. Generation and
execution errors carry the raw model output (where there is one) so callers
can log or display it.
"""

from __future__ import annotations

from typing import Any, Dict, List


class OrchestrationError(Exception):
    """
    Base exception for all orchestration errors.

    Attributes:
        message: Error description
        raw_output: The raw completion output involved, if any
    """

    def __init__(self, message: str, *, raw_output: Any = None):
        super().__init__(message)
        self.raw_output = raw_output


class InvalidInputError(OrchestrationError, ValueError):
    """Raised when the goal text is empty after trimming."""


class InvalidIndexError(OrchestrationError, IndexError):
    """
    Raised when execution is requested with a start index outside the plan.

    Also raised for a plan with no steps at all.
    """

    def __init__(self, message: str, *, index: int | None = None, size: int = 0):
        super().__init__(message)
        self.index = index
        self.size = size


class JsonExtractionError(OrchestrationError):
    """
    Raised when no JSON payload can be extracted from a completion reply.

    This occurs when:
    - The reply has no fenced block and no ``{ ... }`` span
    - The extracted text is not valid JSON
    - The JSON is valid but is not an object
    """


class PlanValidationError(OrchestrationError):
    """
    Raised when a plan payload violates the plan contract.

    Example:
        # Second step has an empty "instructions" field
        PlanValidationError(
            "Step 2 has empty required field 'instructions'",
            field_errors=[{"field": "todos[1].instructions", "error": "empty"}],
        )
    """

    def __init__(
        self,
        message: str,
        *,
        raw_output: Any = None,
        field_errors: List[Dict[str, Any]] | None = None,
    ):
        super().__init__(message, raw_output=raw_output)
        self.field_errors = field_errors or []


class StepResultError(OrchestrationError):
    """Raised when a step reply does not satisfy the step-result contract."""

    def __init__(
        self,
        message: str,
        *,
        step_index: int | None = None,
        raw_output: Any = None,
        field_errors: List[Dict[str, Any]] | None = None,
    ):
        super().__init__(message, raw_output=raw_output)
        self.step_index = step_index
        self.field_errors = field_errors or []


class StepTimeoutError(OrchestrationError, TimeoutError):
    """Raised when a completion call exceeds ``EngineConfig.completion_timeout``."""

    def __init__(self, message: str, *, timeout: float | None = None):
        super().__init__(message)
        self.timeout = timeout


class SessionNotInitializedError(OrchestrationError):
    """Raised when the controller is used before ``initialize()``."""


class NoPendingPlanError(OrchestrationError):
    """Raised by ``confirm_plan`` when there is no plan awaiting confirmation."""


class TaskNotFoundError(OrchestrationError, KeyError):
    """Raised by ``AgentController.update_task`` for an unknown task id."""

    def __init__(self, task_id: str):
        super().__init__(f"Task with id '{task_id}' not found")
        self.task_id = task_id

    def __str__(self) -> str:
        return self.args[0]


class ActionCoordinatorMissingError(OrchestrationError):
    """Raised when a delegated action is requested without a coordinator."""
