"""Plan generation and execution for Planforge."""

from planforge.planning.json_extract import extract_json_block, parse_json_object
from planforge.planning.plan_generator import PlanGenerator
from planforge.planning.plan_parser import (
    PlanParser,
    normalize_estimated_time,
    normalize_priority,
)
from planforge.planning.prompt_strategy import (
    DefaultPlanPromptStrategy,
    PlanPromptStrategy,
    StepPromptContext,
)
from planforge.planning.state import ExecutionState, PlanStateStore
from planforge.planning.step_executor import StepExecutor, TaskSync
from planforge.planning.task_sync import ControllerTaskSync

__all__ = [
    "ControllerTaskSync",
    "DefaultPlanPromptStrategy",
    "ExecutionState",
    "PlanGenerator",
    "PlanParser",
    "PlanPromptStrategy",
    "PlanStateStore",
    "StepExecutor",
    "StepPromptContext",
    "TaskSync",
    "extract_json_block",
    "normalize_estimated_time",
    "normalize_priority",
    "parse_json_object",
]
