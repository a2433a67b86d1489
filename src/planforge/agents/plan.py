# src/planforge/agents/plan.py
"""
Plan classes for representing execution plans.

Plan = HOW a goal is broken down into steps. The wire format produced by the
completion service uses camelCase keys (``planName``, ``expectedResult``,
``estimatedTime``); models accept both the wire keys and the Python names.
"""

import uuid
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from planforge.agents.task import Priority


def new_plan_id() -> str:
    return f"plan_{uuid.uuid4().hex}"


class PlanStatus(str, Enum):
    """Lifecycle of a plan, from generation to completion."""

    DRAFT = "draft"
    PLANNING = "planning"
    READY = "ready"
    PENDING_CONFIRMATION = "pending_confirmation"
    CONFIRMED = "confirmed"
    EXECUTING = "executing"
    DONE = "done"
    ABORTED = "aborted"


class StepStatus(str, Enum):
    PENDING = "pending"
    DONE = "done"
    FAILED = "failed"


class PlanStep(BaseModel):
    """
    Represents a single step (todo) of a plan.

    Example:
        ```python
        step = PlanStep(
            title="Implement",
            description="Write the sorting function",
            instructions="Implement quicksort in sort.py",
            expectedResult="sort.py with a quicksort function",
        )
        ```
    """

    model_config = ConfigDict(populate_by_name=True, validate_assignment=True)

    title: str
    description: str
    instructions: str
    expected_result: str = Field(..., alias="expectedResult")
    priority: Priority = "medium"
    estimated_time: int = Field(default=30, ge=1, alias="estimatedTime")
    status: StepStatus = StepStatus.PENDING
    result_summary: Optional[str] = Field(default=None, alias="resultSummary")
    started_at: Optional[datetime] = Field(default=None, alias="startedAt")
    finished_at: Optional[datetime] = Field(default=None, alias="finishedAt")


class Plan(BaseModel):
    """
    Represents a generated plan with multiple steps.

    Example:
        ```python
        plan = Plan(
            planName="Sorting",
            description="Write and test a sorting function",
            goal="Write and test a sorting function",
            todos=[step_1, step_2],
        )
        len(plan)   # 2
        plan[0]     # step_1
        ```
    """

    model_config = ConfigDict(populate_by_name=True, validate_assignment=True)

    id: str = Field(default_factory=new_plan_id)
    plan_name: str = Field(..., alias="planName")
    description: str = ""
    goal: str = ""
    todos: List[PlanStep] = Field(..., min_length=1)
    status: PlanStatus = PlanStatus.DRAFT

    def __len__(self) -> int:
        """Return number of steps in the plan."""
        return len(self.todos)

    def __getitem__(self, index: int) -> PlanStep:
        """Allow indexing into plan steps."""
        return self.todos[index]

    def completed_steps(self) -> List[PlanStep]:
        return [t for t in self.todos if t.status == StepStatus.DONE]

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Plan":
        return cls.model_validate(data)

    def to_dict(self) -> Dict[str, Any]:
        """Convert the Plan to a wire-format dictionary."""
        return self.model_dump(mode="json", by_alias=True)


class TodoUpdate(BaseModel):
    done: bool = False
    notes: str = ""


class StepResult(BaseModel):
    """
    Structured reply expected from the completion service for one step.

    Only ``resultSummary`` is mandatory; the remaining keys default to empty.
    """

    model_config = ConfigDict(populate_by_name=True)

    result_summary: str = Field(..., min_length=1, alias="resultSummary")
    artifacts: List[str] = Field(default_factory=list)
    todo_update: TodoUpdate = Field(default_factory=TodoUpdate, alias="todoUpdate")
    errors: List[str] = Field(default_factory=list)
