"""
StepExecutor — executes a confirmed plan step-by-step.

Responsibilities:
- Walk through a ``Plan``'s steps sequentially, one completion call per step
- Feed each step the summaries of all previously completed steps
- Record results on the plan in place, sync tasks, write checkpoints
- Stop softly on cancellation; stop hard (and re-raise) on the first failure

Steps are never dispatched in parallel: step ``i + 1`` is only prompted once
step ``i`` has stored its result.
"""

import logging
from typing import Any, Callable, Optional, Protocol, runtime_checkable

from planforge.agents.cancellation import CancellationToken
from planforge.agents.checkpoint import PLAN_COMPLETE, Checkpoint, CheckpointStore
from planforge.agents.config.agent_config import EngineConfig
from planforge.agents.errors import InvalidIndexError
from planforge.agents.plan import Plan, PlanStatus, PlanStep, StepResult, StepStatus
from planforge.agents.task import utcnow
from planforge.llms.base import BaseCompletionService
from planforge.planning.calls import ask_completion, maybe_await, resolve_text
from planforge.planning.plan_parser import PlanParser
from planforge.planning.prompt_strategy import (
    DefaultPlanPromptStrategy,
    PlanPromptStrategy,
    StepHistoryEntry,
    StepPromptContext,
)
from planforge.planning.state import ExecutionState, PlanStateStore


@runtime_checkable
class TaskSync(Protocol):
    """Mirrors step results onto whatever tracks tasks outside the plan."""

    async def update_from_step(
        self, *, step_index: int, step_title: str, result: str, done: bool
    ) -> None:
        """``done`` mirrors the step status: only finished steps complete a task."""
        ...


StepHook = Callable[[int], Any]
ErrorHook = Callable[[int, BaseException], Any]


class StepExecutor:
    """Executes a ``Plan`` against a completion service."""

    def __init__(
        self,
        completion_service: BaseCompletionService,
        config: Optional[EngineConfig] = None,
        logger: Optional[logging.Logger] = None,
        prompt_strategy: Optional[PlanPromptStrategy] = None,
        checkpoint_store: Optional[CheckpointStore] = None,
        task_sync: Optional[TaskSync] = None,
        state: Optional[PlanStateStore] = None,
        rules_provider: Optional[Callable[[], Any]] = None,
        context_builder: Optional[Callable[[], Any]] = None,
        summarizer: Optional[Callable[[str], Any]] = None,
        on_step_start: Optional[StepHook] = None,
        on_step_done: Optional[StepHook] = None,
        on_error: Optional[ErrorHook] = None,
    ):
        self.completion_service = completion_service
        self.config = config or EngineConfig()
        self._logger = logger or logging.getLogger(__name__)
        self._prompt_strategy = prompt_strategy or DefaultPlanPromptStrategy()
        self._parser = PlanParser(
            logger=self._logger,
            default_estimated_time=self.config.default_estimated_time,
        )
        self.checkpoint_store = checkpoint_store
        self.task_sync = task_sync
        self.state = state if state is not None else ExecutionState()
        self.rules_provider = rules_provider
        self.context_builder = context_builder
        self.summarizer = summarizer
        self.on_step_start = on_step_start
        self.on_step_done = on_step_done
        self.on_error = on_error

    # ------------------------------------------------------------------ #
    # Public API                                                          #
    # ------------------------------------------------------------------ #

    async def execute(
        self,
        plan: Plan,
        start_index: int = 0,
        cancel: Optional[CancellationToken] = None,
    ) -> None:
        """Execute ``plan.todos[start_index:]`` in order, mutating *plan*.

        Cancellation is checked before each step. If it fires before any step
        of this call has started, *plan* is left untouched; otherwise the plan
        goes back to ``ready``. Either way the resume index is reported to the
        state store and no exception is raised.

        Raises:
            InvalidIndexError: *start_index* is outside the plan.
            Any step failure, after the step is marked ``failed`` and an error
            checkpoint is attempted.
        """
        total = len(plan.todos)
        if total == 0:
            raise InvalidIndexError("Plan must contain at least one step for execution")
        if not 0 <= start_index < total:
            raise InvalidIndexError(
                f"Invalid start_index: {start_index}. Plan has {total} steps",
                index=start_index,
                size=total,
            )

        cancel = cancel or CancellationToken()
        started = False

        for i in range(start_index, total):
            if cancel.cancelled:
                self._logger.info(
                    "Plan execution cancelled before step %d/%d", i + 1, total
                )
                if started:
                    plan.status = PlanStatus.READY
                self.state.set_plan_status(PlanStatus.READY)
                self.state.set_current_step_index(i)
                return

            if not started:
                started = True
                plan.status = PlanStatus.EXECUTING
                self.state.set_plan_status(PlanStatus.EXECUTING)
                self._logger.info(
                    "Starting plan execution: %s (%d/%d)", plan.plan_name, i + 1, total
                )

            step = plan.todos[i]
            self.state.set_current_step_index(i)
            await self._call_hook(self.on_step_start, i)

            try:
                await self._execute_step(plan, i)
            except Exception as e:
                await self._handle_step_failure(plan, i, e)
                raise

            self.state.set_current_step_index(i + 1)
            self._logger.info("Step %d/%d finished: %s", i + 1, total, step.status.value)
            await self._call_hook(self.on_step_done, i)

        plan.status = PlanStatus.DONE
        self.state.set_plan_status(PlanStatus.DONE)
        self.state.set_current_step_index(PLAN_COMPLETE)
        self._logger.info("Plan execution completed: %s", plan.plan_name)

    async def resume(
        self,
        checkpoint: Checkpoint,
        cancel: Optional[CancellationToken] = None,
    ) -> Plan:
        """Continue execution from the state captured in *checkpoint*.

        Returns the restored plan (a fresh copy), mutated by execution.
        """
        plan, index = checkpoint.restore()
        if index == PLAN_COMPLETE:
            self._logger.info("Checkpoint %s marks a completed plan", checkpoint.id)
            return plan
        await self.execute(plan, index, cancel)
        return plan

    # ------------------------------------------------------------------ #
    # Step execution                                                      #
    # ------------------------------------------------------------------ #

    async def _execute_step(self, plan: Plan, i: int) -> None:
        step = plan.todos[i]
        total = len(plan.todos)
        self._logger.info("Executing step %d/%d: %s", i + 1, total, step.title)

        prompt = await self._build_step_prompt(plan, i)
        response = await ask_completion(
            self.completion_service,
            prompt,
            self.config.model_id,
            self.config.completion_timeout,
        )
        result = self._parser.parse_step_result(response, i)
        summary = await self._compress(result.result_summary)

        self._apply_result(step, result, summary)

        if self.task_sync is not None:
            await maybe_await(
                self.task_sync.update_from_step(
                    step_index=i,
                    step_title=step.title,
                    result=summary,
                    done=step.status == StepStatus.DONE,
                )
            )
            self._logger.debug("Task synced for step %d", i + 1)

        next_index = i + 1 if i + 1 < total else PLAN_COMPLETE
        await self._write_checkpoint(
            Checkpoint.capture(
                plan,
                step_index=i,
                current_step_index=next_index,
                description=f"Plan step {i + 1}/{total}: {step.title}",
            )
        )

    async def _build_step_prompt(self, plan: Plan, i: int) -> str:
        step = plan.todos[i]
        history = [
            StepHistoryEntry(index=idx, result_summary=prior.result_summary)
            for idx, prior in enumerate(plan.todos[:i])
            if prior.status == StepStatus.DONE and prior.result_summary
        ]

        extra_context = ""
        if self.context_builder is not None:
            try:
                extra_context = await resolve_text(self.context_builder)
            except Exception as e:
                self._logger.info("Context builder failed (non-critical): %s", e)

        context = StepPromptContext(
            plan_name=plan.plan_name,
            goal=plan.goal or plan.description,
            step_titles=[t.title for t in plan.todos],
            index=i,
            title=step.title,
            instructions=step.instructions,
            expected_result=step.expected_result,
            history=history,
            rules_text=await resolve_text(self.rules_provider),
            extra_context=extra_context,
        )
        return self._prompt_strategy.build_step_prompt(context)

    async def _compress(self, summary: str) -> str:
        limit = self.config.max_result_chars
        if len(summary) <= limit:
            return summary

        if self.summarizer is not None:
            try:
                compressed = await resolve_text(self.summarizer, summary)
            except Exception as e:
                self._logger.info("Summarizer failed (non-critical): %s", e)
            else:
                if compressed.strip():
                    return compressed[:limit]
        return summary[:limit]

    @staticmethod
    def _apply_result(step: PlanStep, result: StepResult, summary: str) -> None:
        now = utcnow()
        step.status = StepStatus.DONE if result.todo_update.done else StepStatus.PENDING
        step.result_summary = summary
        if step.started_at is None:
            step.started_at = now
        step.finished_at = now

    # ------------------------------------------------------------------ #
    # Failure handling                                                    #
    # ------------------------------------------------------------------ #

    async def _handle_step_failure(self, plan: Plan, i: int, error: Exception) -> None:
        step = plan.todos[i]
        self._logger.error("Step %d failed: %s", i + 1, error)
        await self._call_hook(self.on_error, i, error)

        step.status = StepStatus.FAILED
        step.finished_at = utcnow()
        plan.status = PlanStatus.READY
        self.state.set_plan_status(PlanStatus.READY)

        # current_step_index stays at i so a retry resumes at the failed step
        await self._write_checkpoint(
            Checkpoint.capture(
                plan,
                step_index=i,
                current_step_index=i,
                description=f"Plan step {i + 1} ERROR: {step.title} - {error}",
                error=str(error) or type(error).__name__,
            )
        )

    async def _write_checkpoint(self, checkpoint: Checkpoint) -> None:
        if self.checkpoint_store is None:
            return
        try:
            await maybe_await(self.checkpoint_store.create(checkpoint))
        except Exception as e:
            self._logger.error("Failed to save checkpoint '%s': %s", checkpoint.description, e)
        else:
            self._logger.debug("Checkpoint created for step %d", checkpoint.step_index + 1)

    async def _call_hook(self, hook: Optional[Callable[..., Any]], *args: Any) -> None:
        if hook is None:
            return
        try:
            await maybe_await(hook(*args))
        except Exception as e:
            self._logger.warning("Step hook %r failed: %s", hook, e)
