"""
PlanGenerator — turns a goal into a validated ``Plan`` with one completion call.

Responsibilities:
- Build the planning prompt (delegates to ``PlanPromptStrategy``)
- Call the completion service exactly once
- Extract, validate and normalize the plan (delegates to ``PlanParser``)

There are no retries and no silent recovery: every failure propagates to
the caller unchanged, and no partial plan is returned.
"""

import logging
from typing import Any, Callable, Optional

from planforge.agents.config.agent_config import EngineConfig
from planforge.agents.errors import InvalidInputError
from planforge.agents.plan import Plan, PlanStatus
from planforge.llms.base import BaseCompletionService
from planforge.planning.calls import ask_completion, resolve_text
from planforge.planning.plan_parser import PlanParser
from planforge.planning.prompt_strategy import (
    DefaultPlanPromptStrategy,
    PlanPromptStrategy,
)
from planforge.planning.state import PlanStateStore


class PlanGenerator:
    """Creates plans using a completion service.

    Dependencies are passed in explicitly so the generator can be
    unit-tested in isolation.
    """

    def __init__(
        self,
        completion_service: BaseCompletionService,
        config: Optional[EngineConfig] = None,
        logger: Optional[logging.Logger] = None,
        prompt_strategy: Optional[PlanPromptStrategy] = None,
        rules_provider: Optional[Callable[[], Any]] = None,
        state: Optional[PlanStateStore] = None,
    ):
        self.completion_service = completion_service
        self.config = config or EngineConfig()
        self._logger = logger or logging.getLogger(__name__)
        self._prompt_strategy = prompt_strategy or DefaultPlanPromptStrategy()
        self._parser = PlanParser(
            logger=self._logger,
            default_estimated_time=self.config.default_estimated_time,
        )
        self.rules_provider = rules_provider
        self.state = state

    # ------------------------------------------------------------------ #
    # Public API                                                          #
    # ------------------------------------------------------------------ #

    async def generate(self, goal: str) -> Plan:
        """Generate a plan for *goal*.

        Raises:
            InvalidInputError: *goal* is empty after trimming.
            JsonExtractionError: the reply holds no usable JSON.
            PlanValidationError: the JSON violates the plan contract.
            StepTimeoutError: the call exceeded ``completion_timeout``.
        """
        if not isinstance(goal, str) or not goal.strip():
            raise InvalidInputError("Input text is required for plan generation")
        goal = goal.strip()

        self._set_status(PlanStatus.PLANNING)
        try:
            self._logger.info("Starting plan generation for input: %s", goal[:50])
            rules_text = await resolve_text(self.rules_provider)
            prompt = self._prompt_strategy.build_planning_prompt(goal, rules_text)

            response = await ask_completion(
                self.completion_service,
                prompt,
                self.config.model_id,
                self.config.completion_timeout,
            )
            plan = self._parser.parse(response, goal=goal)
        except Exception as e:
            self._logger.error("Failed to generate plan: %s", e)
            self._set_status(PlanStatus.READY)
            raise

        plan.status = PlanStatus.PENDING_CONFIRMATION
        self._logger.info(
            "Plan generated successfully: %s with %d steps",
            plan.plan_name,
            len(plan.todos),
        )
        self._set_status(PlanStatus.READY)
        return plan

    def _set_status(self, status: PlanStatus) -> None:
        if self.state is not None:
            self.state.set_plan_status(status)
