"""
Checkpoints — append-only records written after every executed step.

A checkpoint holds a value copy of the plan, taken at the moment it was
written, together with the step index execution should resume from.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import List, Optional, Protocol, Tuple, runtime_checkable

from pydantic import BaseModel, Field

from planforge.agents.plan import Plan
from planforge.agents.task import utcnow

PLAN_COMPLETE = -1


class PlanSnapshot(BaseModel):
    plan: Plan
    current_step_index: int = Field(..., ge=PLAN_COMPLETE)
    error: Optional[str] = None


class Checkpoint(BaseModel):
    """One progress record. ``step_index`` is the step it was written for."""

    id: str = Field(default_factory=lambda: f"cp_{uuid.uuid4().hex}")
    timestamp: datetime = Field(default_factory=utcnow)
    step_index: int
    description: str
    snapshot: PlanSnapshot

    @classmethod
    def capture(
        cls,
        plan: Plan,
        *,
        step_index: int,
        current_step_index: int,
        description: str,
        error: Optional[str] = None,
    ) -> "Checkpoint":
        """Build a checkpoint from a deep copy of *plan*."""
        return cls(
            step_index=step_index,
            description=description,
            snapshot=PlanSnapshot(
                plan=plan.model_copy(deep=True),
                current_step_index=current_step_index,
                error=error,
            ),
        )

    @property
    def is_error(self) -> bool:
        return self.snapshot.error is not None

    def restore(self) -> Tuple[Plan, int]:
        """Return ``(plan, current_step_index)`` to resume execution from."""
        return self.snapshot.plan.model_copy(deep=True), self.snapshot.current_step_index


@runtime_checkable
class CheckpointStore(Protocol):
    """Append-only checkpoint persistence."""

    async def create(self, checkpoint: Checkpoint) -> None:
        ...


class InMemoryCheckpointStore:
    """Keeps checkpoints in a list. Useful for tests and single-process use."""

    def __init__(self) -> None:
        self._checkpoints: List[Checkpoint] = []

    async def create(self, checkpoint: Checkpoint) -> None:
        self._checkpoints.append(checkpoint)

    def list(self) -> List[Checkpoint]:
        return list(self._checkpoints)

    def latest(self) -> Optional[Checkpoint]:
        return self._checkpoints[-1] if self._checkpoints else None

    def __len__(self) -> int:
        return len(self._checkpoints)
