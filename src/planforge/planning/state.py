"""
Externally tracked execution progress.

The executor reports the plan status and the index of the step to resume
from through a ``PlanStateStore``; ``ExecutionState`` is the in-memory one.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Protocol, Tuple, runtime_checkable

from planforge.agents.checkpoint import PLAN_COMPLETE
from planforge.agents.plan import PlanStatus


@runtime_checkable
class PlanStateStore(Protocol):
    def set_plan_status(self, status: PlanStatus) -> None:
        ...

    def set_current_step_index(self, index: int) -> None:
        ...


@dataclass
class ExecutionState:
    """In-memory ``PlanStateStore`` that also keeps a transition log."""

    plan_status: PlanStatus = PlanStatus.DRAFT
    current_step_index: int = 0
    history: List[Tuple[str, object]] = field(default_factory=list)

    def set_plan_status(self, status: PlanStatus) -> None:
        self.plan_status = PlanStatus(status)
        self.history.append(("status", self.plan_status))

    def set_current_step_index(self, index: int) -> None:
        self.current_step_index = index
        self.history.append(("index", index))

    @property
    def is_complete(self) -> bool:
        return self.current_step_index == PLAN_COMPLETE
