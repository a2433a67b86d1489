# src/planforge/agents/task.py
"""
Task class for representing queued units of work.

Task = one confirmed plan step, tracked independently in the session's queue.
A Plan describes HOW a goal is broken down; Tasks are what the session
actually works through after the user confirms that plan.
"""

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Literal

from pydantic import BaseModel, ConfigDict, Field

Priority = Literal["high", "medium", "low"]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_task_id() -> str:
    return f"task_{uuid.uuid4().hex}"


class TaskStatus(str, Enum):
    """Lifecycle of a queued task."""

    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"


class Task(BaseModel):
    """
    Represents a queued task derived from a confirmed plan step.

    Example:
        ```python
        task = Task(title="Implement", goal="Write quicksort", session_id="s1")

        # Or from dictionary
        task = Task.from_dict({"title": "Implement", "session_id": "s1"})
        ```
    """

    model_config = ConfigDict(validate_assignment=True)

    id: str = Field(default_factory=new_task_id, description="Unique task identifier")
    title: str = Field(..., description="Short task title")
    description: str = Field(default="", description="What the task is about")
    goal: str = Field(default="", description="What must be achieved")
    status: TaskStatus = Field(default=TaskStatus.PENDING)
    priority: Priority = Field(default="medium")
    estimated_time: int | None = Field(default=None, description="Minutes")
    actual_time: int | None = Field(default=None, description="Minutes")
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
    completed_at: datetime | None = None
    result: str | None = None
    error: str | None = None
    session_id: str = Field(..., description="Owning session")

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Task":
        return cls(**data)

    def to_dict(self) -> Dict[str, Any]:
        return self.model_dump(mode="json")
