"""Session models, task queue and errors for Planforge.

``AgentController`` lives in ``planforge.agents.controller``.
"""

from planforge.agents.cancellation import CancellationToken
from planforge.agents.checkpoint import (
    PLAN_COMPLETE,
    Checkpoint,
    CheckpointStore,
    InMemoryCheckpointStore,
    PlanSnapshot,
)
from planforge.agents.config.agent_config import AgentState, EngineConfig
from planforge.agents.plan import (
    Plan,
    PlanStatus,
    PlanStep,
    StepResult,
    StepStatus,
    TodoUpdate,
)
from planforge.agents.task import Task, TaskStatus
from planforge.agents.task_queue import TaskQueue

__all__ = [
    "AgentState",
    "CancellationToken",
    "Checkpoint",
    "CheckpointStore",
    "EngineConfig",
    "InMemoryCheckpointStore",
    "PLAN_COMPLETE",
    "Plan",
    "PlanSnapshot",
    "PlanStatus",
    "PlanStep",
    "StepResult",
    "StepStatus",
    "Task",
    "TaskQueue",
    "TaskStatus",
    "TodoUpdate",
]
