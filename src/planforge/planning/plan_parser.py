"""
PlanParser — turns completion replies into validated ``Plan`` and
``StepResult`` objects.

There is no text fallback: a reply that does not satisfy the contract is
rejected on the first violation found.
"""

import logging
import math
from typing import Any, Dict, List, Optional

from pydantic import ValidationError

from planforge.agents.errors import PlanValidationError, StepResultError
from planforge.agents.plan import Plan, PlanStatus, PlanStep, StepResult, StepStatus, new_plan_id
from planforge.planning.json_extract import parse_json_object

REQUIRED_STEP_FIELDS = ("title", "description", "instructions", "expectedResult")
PRIORITIES = ("high", "medium", "low")


def normalize_priority(value: Any) -> str:
    """Map anything outside ``high|medium|low`` to ``medium``."""
    if isinstance(value, str) and value.strip().lower() in PRIORITIES:
        return value.strip().lower()
    return "medium"


def normalize_estimated_time(value: Any, default: int = 30) -> int:
    """Coerce an estimate in minutes to a positive integer.

    Numbers and numeric strings are rounded up; anything missing,
    non-numeric, non-finite or below 1 becomes *default*.
    """
    if value is None or isinstance(value, bool):
        return default
    try:
        number = float(value.strip() if isinstance(value, str) else value)
    except (TypeError, ValueError):
        return default
    if not math.isfinite(number) or number < 1:
        return default
    return int(math.ceil(number))


class PlanParser:
    """Parses completion replies into Planforge models."""

    def __init__(
        self,
        logger: Optional[logging.Logger] = None,
        default_estimated_time: int = 30,
    ):
        self._logger = logger or logging.getLogger(__name__)
        self.default_estimated_time = default_estimated_time

    # ------------------------------------------------------------------ #
    # Plans                                                               #
    # ------------------------------------------------------------------ #

    def parse(self, response: str, goal: str = "") -> Plan:
        """Extract, validate and normalize a plan from *response*.

        Raises:
            JsonExtractionError: no JSON object could be extracted.
            PlanValidationError: the object violates the plan contract.
        """
        data = parse_json_object(response)
        plan = self.normalize(data, goal=goal, raw_output=response)
        self._logger.debug(
            "Parsed plan '%s' with %d steps", plan.plan_name, len(plan.todos)
        )
        return plan

    def normalize(
        self,
        data: Dict[str, Any],
        goal: str = "",
        raw_output: Any = None,
    ) -> Plan:
        """Validate a decoded plan payload and build a ``Plan``."""

        def fail(field: str, error: str, message: str) -> PlanValidationError:
            return PlanValidationError(
                message,
                raw_output=raw_output,
                field_errors=[{"field": field, "error": error}],
            )

        plan_name = data.get("planName")
        if not isinstance(plan_name, str) or not plan_name.strip():
            raise fail("planName", "missing or empty", "Invalid plan structure: missing planName")

        todos = data.get("todos")
        if not isinstance(todos, list):
            raise fail("todos", "not an array", "Invalid plan payload: todos must be an array")
        if not todos:
            raise fail("todos", "empty", "Plan must contain at least one step")

        description = data.get("description")
        steps: List[PlanStep] = []
        for index, todo in enumerate(todos):
            if not isinstance(todo, dict):
                raise fail(f"todos[{index}]", "not an object", f"Step {index + 1} is not an object")
            steps.append(self._normalize_step(todo, index, fail))

        plan_id = data.get("id")
        try:
            return Plan(
                id=plan_id if isinstance(plan_id, str) and plan_id.strip() else new_plan_id(),
                plan_name=plan_name.strip(),
                description=description.strip() if isinstance(description, str) else "",
                goal=goal,
                todos=steps,
                status=PlanStatus.DRAFT,
            )
        except ValidationError as e:
            first = e.errors()[0]
            raise fail(
                ".".join(str(p) for p in first["loc"]), first["msg"], f"Invalid plan: {first['msg']}"
            ) from e

    def _normalize_step(self, todo: Dict[str, Any], index: int, fail) -> PlanStep:
        fields: Dict[str, str] = {}
        for name in REQUIRED_STEP_FIELDS:
            value = todo.get(name)
            if not isinstance(value, str) or not value.strip():
                raise fail(
                    f"todos[{index}].{name}",
                    "missing or empty",
                    f"Step {index + 1} has empty required field '{name}'",
                )
            fields[name] = value.strip()

        status = todo.get("status")
        if status not in {s.value for s in StepStatus}:
            status = StepStatus.PENDING.value

        return PlanStep(
            title=fields["title"],
            description=fields["description"],
            instructions=fields["instructions"],
            expected_result=fields["expectedResult"],
            priority=normalize_priority(todo.get("priority")),
            estimated_time=normalize_estimated_time(
                todo.get("estimatedTime"), self.default_estimated_time
            ),
            status=status,
        )

    # ------------------------------------------------------------------ #
    # Step results                                                        #
    # ------------------------------------------------------------------ #

    def parse_step_result(self, response: str, step_index: int) -> StepResult:
        """Extract and validate the step-result JSON from *response*.

        Raises:
            JsonExtractionError: no JSON object could be extracted.
            StepResultError: the object violates the step-result contract.
        """
        data = parse_json_object(response)
        try:
            return StepResult.model_validate(data)
        except ValidationError as e:
            field_errors = [
                {"field": ".".join(str(p) for p in err["loc"]), "error": err["msg"]}
                for err in e.errors()
            ]
            first = field_errors[0]
            raise StepResultError(
                f"Step {step_index + 1}: invalid result field '{first['field']}': {first['error']}",
                step_index=step_index,
                raw_output=response,
                field_errors=field_errors[:1],
            ) from e
