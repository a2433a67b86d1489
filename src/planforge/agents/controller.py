"""
AgentController — the single public entry point of a Planforge session.

The controller owns one session: its state machine (idle → planning →
executing), the plan awaiting confirmation, and the task queue. It forwards
lifecycle events to an injected ``EventSink`` and snapshots to subscribed
listeners. Run one controller per session; instances share no state.

    idle       --submit_plan-->   planning
    planning   --confirm_plan-->  executing   (plan steps become tasks)
    planning   --reject_plan-->   idle
    executing  --queue drained--> idle
"""

from __future__ import annotations

import logging
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Dict, Iterable, List, Optional, Union

from pydantic import BaseModel, Field

from planforge.agents.actions import ActionCoordinator, FileOperation
from planforge.agents.cancellation import CancellationToken
from planforge.agents.checkpoint import CheckpointStore
from planforge.agents.config.agent_config import AgentState, EngineConfig
from planforge.agents.errors import (
    ActionCoordinatorMissingError,
    NoPendingPlanError,
    SessionNotInitializedError,
    TaskNotFoundError,
)
from planforge.agents.plan import Plan, PlanStatus
from planforge.agents.task import Task, TaskStatus, utcnow
from planforge.agents.task_queue import TaskQueue
from planforge.llms.base import BaseCompletionService
from planforge.memory.task_memory import BaseTaskMemory, MemoryStats
from planforge.planning.plan_generator import PlanGenerator
from planforge.planning.prompt_strategy import PlanPromptStrategy
from planforge.planning.state import ExecutionState, PlanStateStore
from planforge.planning.step_executor import StepExecutor
from planforge.planning.task_sync import ControllerTaskSync
from planforge.streaming.events import (
    AgentEvent,
    AgentEventType,
    EventSink,
    NullEventSink,
)


class ControllerEvent(str, Enum):
    """Reason a snapshot was pushed to listeners."""

    SNAPSHOT = "snapshot"
    STATE_CHANGED = "state_changed"
    PLAN_PENDING = "plan_pending"
    PLAN_CONFIRMED = "plan_confirmed"
    PLAN_REJECTED = "plan_rejected"
    TASKS_UPDATED = "tasks_updated"
    MEMORY_UPDATED = "memory_updated"
    QUEUE_FLUSHED = "queue_flushed"


class AgentSession(BaseModel):
    id: str
    name: Optional[str] = None
    description: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class ControllerSnapshot(BaseModel):
    """Point-in-time copy of everything a UI needs to render the session."""

    session: Optional[AgentSession] = None
    state: AgentState = AgentState.IDLE
    pending_plan: Optional[Plan] = None
    awaiting_confirmation: bool = False
    queue: List[Task] = Field(default_factory=list)
    active_task: Optional[Task] = None
    memory_stats: Optional[MemoryStats] = None
    last_updated: datetime = Field(default_factory=utcnow)


SnapshotListener = Callable[[ControllerEvent, ControllerSnapshot], Any]


class AgentController:
    """Owns one session's plan, queue and state machine."""

    def __init__(
        self,
        completion_service: Optional[BaseCompletionService] = None,
        config: Optional[EngineConfig] = None,
        event_sink: Optional[EventSink] = None,
        memory: Optional[BaseTaskMemory] = None,
        action_coordinator: Optional[ActionCoordinator] = None,
        checkpoint_store: Optional[CheckpointStore] = None,
        rules_provider: Optional[Callable[[], Any]] = None,
        context_builder: Optional[Callable[[], Any]] = None,
        summarizer: Optional[Callable[[str], Any]] = None,
        prompt_strategy: Optional[PlanPromptStrategy] = None,
        logger: Optional[logging.Logger] = None,
    ):
        self.completion_service = completion_service
        self.config = config or EngineConfig()
        self.event_sink: EventSink = event_sink or NullEventSink()
        self.memory = memory
        self.action_coordinator = action_coordinator
        self.checkpoint_store = checkpoint_store
        self.rules_provider = rules_provider
        self.context_builder = context_builder
        self.summarizer = summarizer
        self.prompt_strategy = prompt_strategy
        self._logger = logger or logging.getLogger(__name__)

        self._session: Optional[AgentSession] = None
        self._state = AgentState.IDLE
        self._pending_plan: Optional[Plan] = None
        self._queue = TaskQueue()
        self._plan_task_ids: List[str] = []
        self._plan_id: Optional[str] = None
        self._memory_stats: Optional[MemoryStats] = None
        self._listeners: List[SnapshotListener] = []
        self._last_snapshot: Optional[ControllerSnapshot] = None

    # ------------------------------------------------------------------ #
    # Session lifecycle                                                   #
    # ------------------------------------------------------------------ #

    async def initialize(
        self,
        session: Union[str, AgentSession],
        name: Optional[str] = None,
        description: Optional[str] = None,
    ) -> ControllerSnapshot:
        if isinstance(session, AgentSession):
            self._session = session.model_copy()
        else:
            self._session = AgentSession(id=session, name=name, description=description)

        self._pending_plan = None
        self._plan_task_ids = []
        self._plan_id = None
        self._queue.clear()
        self._state = AgentState.IDLE
        await self.refresh_memory_stats()

        self._emit_event(
            AgentEvent.session_event(
                AgentEventType.SESSION_CREATED,
                self._session.id,
                name=self._session.name,
                description=self._session.description,
            )
        )
        self._logger.info("Session %s initialized", self._session.id)
        return self._notify(ControllerEvent.SNAPSHOT)

    async def shutdown(self) -> ControllerSnapshot:
        if self._session is not None:
            self._emit_event(
                AgentEvent.session_event(AgentEventType.SESSION_CLEARED, self._session.id)
            )
            self._logger.info("Session %s shut down", self._session.id)
        self._session = None
        self._pending_plan = None
        self._plan_task_ids = []
        self._plan_id = None
        self._queue.clear()
        self._state = AgentState.IDLE
        self._memory_stats = None
        return self._notify(ControllerEvent.SNAPSHOT)

    @property
    def session(self) -> Optional[AgentSession]:
        return self._session

    @property
    def state(self) -> AgentState:
        return self._state

    @property
    def pending_plan(self) -> Optional[Plan]:
        return self._pending_plan

    @property
    def queue(self) -> TaskQueue:
        return self._queue

    def get_snapshot(self) -> ControllerSnapshot:
        if self._last_snapshot is None:
            self._last_snapshot = self._build_snapshot()
        return self._last_snapshot

    def subscribe(self, listener: SnapshotListener) -> Callable[[], None]:
        """Register *listener*; it is called at once with the current snapshot."""
        self._listeners.append(listener)
        self._call_listener(listener, ControllerEvent.SNAPSHOT, self.get_snapshot())

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    # ------------------------------------------------------------------ #
    # Plans                                                               #
    # ------------------------------------------------------------------ #

    async def generate_plan(self, goal: str) -> Plan:
        """Generate a plan for *goal* and submit it for confirmation."""
        self._ensure_session()
        if self.completion_service is None:
            raise ValueError("A completion service is required for plan generation")
        generator = PlanGenerator(
            self.completion_service,
            config=self.config,
            logger=self._logger,
            prompt_strategy=self.prompt_strategy,
            rules_provider=self.rules_provider,
        )
        plan = await generator.generate(goal)
        self.submit_plan(plan)
        return plan

    def submit_plan(self, plan: Plan) -> ControllerSnapshot:
        session_id = self._ensure_session()
        plan.status = PlanStatus.PENDING_CONFIRMATION
        self._pending_plan = plan
        self._set_state(AgentState.PLANNING)
        self._emit_event(
            AgentEvent.plan_event(
                AgentEventType.PLAN_SUBMITTED, session_id, plan=plan.to_dict()
            )
        )
        return self._notify(ControllerEvent.PLAN_PENDING)

    def confirm_plan(self, auto_start: Optional[bool] = None) -> ControllerSnapshot:
        """Turn the pending plan's steps into queued tasks, preserving order."""
        session_id = self._ensure_session()
        if self._pending_plan is None:
            raise NoPendingPlanError("No plan awaiting confirmation")
        if auto_start is None:
            auto_start = self.config.auto_start

        plan = self._pending_plan
        tasks = self.plan_to_tasks(plan, session_id, auto_start=auto_start)
        plan.status = PlanStatus.CONFIRMED
        self._pending_plan = None
        self._plan_task_ids = [task.id for task in tasks]
        self._plan_id = plan.id

        if not tasks:
            return self._notify(ControllerEvent.PLAN_CONFIRMED)

        self.enqueue_task(tasks, set_active=auto_start)
        self._emit_event(
            AgentEvent.plan_event(
                AgentEventType.PLAN_CONFIRMED,
                session_id,
                plan=plan.to_dict(),
                tasks=[task.to_dict() for task in self._queue.get_all()],
            )
        )
        self._set_state(AgentState.EXECUTING)
        return self._notify(ControllerEvent.PLAN_CONFIRMED)

    def reject_plan(self) -> ControllerSnapshot:
        session_id = self._ensure_session()
        rejected = self._pending_plan
        self._pending_plan = None
        if rejected is not None:
            rejected.status = PlanStatus.ABORTED
        self._emit_event(
            AgentEvent.plan_event(
                AgentEventType.PLAN_REJECTED,
                session_id,
                plan=rejected.to_dict() if rejected is not None else None,
            )
        )
        self._set_state(AgentState.IDLE)
        return self._notify(ControllerEvent.PLAN_REJECTED)

    @staticmethod
    def plan_to_tasks(plan: Plan, session_id: str, auto_start: bool = True) -> List[Task]:
        """Map each plan step to a task; only the first may start immediately."""
        now = utcnow()
        return [
            Task(
                title=step.title,
                description=step.description,
                goal=step.instructions or plan.description,
                status=(
                    TaskStatus.IN_PROGRESS if auto_start and index == 0 else TaskStatus.PENDING
                ),
                priority=step.priority,
                estimated_time=step.estimated_time,
                created_at=now,
                updated_at=now,
                session_id=session_id,
            )
            for index, step in enumerate(plan.todos)
        ]

    async def execute_plan(
        self,
        plan: Plan,
        start_index: int = 0,
        cancel: Optional[CancellationToken] = None,
        state: Optional[PlanStateStore] = None,
    ) -> PlanStateStore:
        """Run *plan* with a ``StepExecutor``.

        Step results are synced to this session's tasks only when *plan* is the
        last confirmed plan; any other plan runs without touching the queue.
        Returns the state store holding the resume index.
        """
        self._ensure_session()
        if self.completion_service is None:
            raise ValueError("A completion service is required for plan execution")
        task_sync = None
        if self._plan_id is not None and plan.id == self._plan_id:
            task_sync = ControllerTaskSync(self)
        else:
            self._logger.info(
                "Plan %s is not the confirmed plan; executing without task sync", plan.id
            )
        executor = StepExecutor(
            self.completion_service,
            config=self.config,
            logger=self._logger,
            prompt_strategy=self.prompt_strategy,
            checkpoint_store=self.checkpoint_store,
            task_sync=task_sync,
            state=state if state is not None else ExecutionState(),
            rules_provider=self.rules_provider,
            context_builder=self.context_builder,
            summarizer=self.summarizer,
        )
        await executor.execute(plan, start_index, cancel)
        return executor.state

    @property
    def plan_task_ids(self) -> List[str]:
        """Task ids created by the last confirmed plan, in step order."""
        return list(self._plan_task_ids)

    @property
    def confirmed_plan_id(self) -> Optional[str]:
        """Id of the plan whose steps produced ``plan_task_ids``."""
        return self._plan_id

    # ------------------------------------------------------------------ #
    # Queue wrappers                                                      #
    # ------------------------------------------------------------------ #

    def enqueue_task(
        self,
        tasks: Union[Task, Iterable[Task]],
        *,
        set_active: bool = False,
        prevent_duplicates: bool = False,
    ) -> ControllerSnapshot:
        session_id = self._ensure_session()
        incoming = [tasks] if isinstance(tasks, Task) else list(tasks)
        before_ids = {task.id for task in self._queue.get_all()}
        before_active = self._queue.active_task_id

        queue = self._queue.enqueue(
            incoming, prevent_duplicates=prevent_duplicates, set_active=set_active
        )
        self._emit_if_new_active(session_id, before_active)

        for task in queue:
            if task.id not in before_ids and task.status == TaskStatus.PENDING:
                self._emit_event(
                    AgentEvent.task_event(
                        AgentEventType.TASK_UPDATED, session_id, task.to_dict(), "enqueued"
                    )
                )

        if queue and self._state == AgentState.IDLE:
            self._set_state(AgentState.EXECUTING)
        return self._notify(ControllerEvent.TASKS_UPDATED)

    async def update_task(
        self,
        task_id: str,
        updates: Dict[str, Any],
        *,
        suppress_events: bool = False,
    ) -> ControllerSnapshot:
        """Apply *updates* to a task.

        Raises:
            TaskNotFoundError: *task_id* is not in the queue.
        """
        session_id = self._ensure_session()
        previous = self._queue.get(task_id)
        before_active = self._queue.active_task_id
        updated = self._queue.update_task(task_id, updates, suppress_events=suppress_events)
        if updated is None or previous is None:
            raise TaskNotFoundError(task_id)

        if previous.status != updated.status:
            event_type = {
                TaskStatus.COMPLETED: AgentEventType.TASK_COMPLETED,
                TaskStatus.FAILED: AgentEventType.TASK_FAILED,
                TaskStatus.IN_PROGRESS: AgentEventType.TASK_STARTED,
            }.get(updated.status, AgentEventType.TASK_UPDATED)
        else:
            event_type = AgentEventType.TASK_UPDATED
        self._emit_event(AgentEvent.task_event(event_type, session_id, updated.to_dict()))
        if updated.status != TaskStatus.IN_PROGRESS:
            self._emit_if_new_active(session_id, before_active)

        if updated.status == TaskStatus.COMPLETED and previous.status != TaskStatus.COMPLETED:
            await self._record_completion(updated)

        if not self._has_open_tasks():
            self._set_state(AgentState.IDLE)
        return self._notify(ControllerEvent.TASKS_UPDATED)

    def remove_task(self, task_id: str) -> ControllerSnapshot:
        """Remove a task; unknown ids are ignored."""
        session_id = self._ensure_session()
        before_active = self._queue.active_task_id
        removed = self._queue.remove(task_id)
        if removed is None:
            return self.get_snapshot()

        self._emit_event(
            AgentEvent.task_event(
                AgentEventType.TASK_UPDATED, session_id, removed.to_dict(), "removed"
            )
        )
        self._emit_if_new_active(session_id, before_active)

        if not self._queue.has_tasks():
            self._set_state(AgentState.IDLE)
        return self._notify(ControllerEvent.TASKS_UPDATED)

    def clear_queue(self) -> ControllerSnapshot:
        session_id = self._ensure_session()
        removed = self._queue.clear()
        self._plan_task_ids = []
        self._plan_id = None
        if removed:
            self._emit_event(
                AgentEvent.task_event(
                    AgentEventType.TASK_UPDATED, session_id, change="queue_cleared"
                )
            )
        self._set_state(AgentState.IDLE)
        return self._notify(ControllerEvent.QUEUE_FLUSHED)

    # ------------------------------------------------------------------ #
    # Delegated actions                                                   #
    # ------------------------------------------------------------------ #

    async def execute_file_operation(
        self,
        task: Task,
        operation: FileOperation,
        file_path: str,
        content: Optional[str] = None,
    ) -> Any:
        self._ensure_session()
        return await self._coordinator().execute_file_operation(
            task, operation, file_path, content
        )

    async def execute_code(self, task: Task, code: str, language: Optional[str] = None) -> Any:
        self._ensure_session()
        return await self._coordinator().execute_code(task, code, language)

    def get_active_actions(self) -> List[Any]:
        return self._coordinator().get_active_actions()

    def get_action_history(self) -> List[Any]:
        return self._coordinator().get_action_history()

    def clear_completed_actions(self) -> ControllerSnapshot:
        self._coordinator().clear_completed_actions()
        return self._notify(ControllerEvent.TASKS_UPDATED)

    # ------------------------------------------------------------------ #
    # Memory                                                              #
    # ------------------------------------------------------------------ #

    async def refresh_memory_stats(self) -> None:
        if self._session is None or self.memory is None:
            self._memory_stats = None
            return
        try:
            self._memory_stats = await self.memory.get_stats(self._session.id)
        except Exception as e:
            self._logger.warning("Failed to refresh memory stats: %s", e)
            self._emit_event(
                AgentEvent.warning_event(
                    "Failed to refresh agent memory statistics",
                    session_id=self._session.id,
                    scope="memory-stats",
                    error=e,
                )
            )

    async def _record_completion(self, task: Task) -> None:
        if self.action_coordinator is not None:
            try:
                self.action_coordinator.clear_active_for_task(task.id)
            except Exception as e:
                self._logger.warning("Failed to clear actions for task %s: %s", task.id, e)

        if self.memory is None:
            return
        try:
            await self.memory.record_task_completion(task)
        except Exception as e:
            self._logger.error("Failed to record completion of task %s: %s", task.id, e)
            self._emit_event(
                AgentEvent.warning_event(
                    "Failed to record task completion in memory",
                    session_id=task.session_id,
                    scope="memory-record",
                    error=e,
                )
            )
            return
        await self.refresh_memory_stats()
        self._notify(ControllerEvent.MEMORY_UPDATED)

    # ------------------------------------------------------------------ #
    # Helpers                                                             #
    # ------------------------------------------------------------------ #

    def _ensure_session(self) -> str:
        if self._session is None:
            raise SessionNotInitializedError(
                "AgentController is not initialized. Call initialize() first."
            )
        return self._session.id

    def _coordinator(self) -> ActionCoordinator:
        if self.action_coordinator is None:
            raise ActionCoordinatorMissingError("No action coordinator configured")
        return self.action_coordinator

    def _has_open_tasks(self) -> bool:
        return any(
            task.status in (TaskStatus.PENDING, TaskStatus.IN_PROGRESS)
            for task in self._queue.get_all()
        )

    def _emit_if_new_active(self, session_id: str, before_active: Optional[str]) -> None:
        active = self._queue.get_active()
        if active is not None and active.id != before_active:
            self._emit_event(
                AgentEvent.task_event(AgentEventType.TASK_STARTED, session_id, active.to_dict())
            )

    def _set_state(self, state: AgentState) -> None:
        if self._state == state:
            return
        self._state = state
        self._logger.debug("Controller state -> %s", state.value)
        self._emit_event(
            AgentEvent.state_event(self._session.id if self._session else None, state.value)
        )
        self._notify(ControllerEvent.STATE_CHANGED)

    def _emit_event(self, event: AgentEvent) -> None:
        try:
            self.event_sink.emit(event)
        except Exception as e:
            self._logger.error("Event sink failed on %s: %s", event.type, e)

    def _build_snapshot(self) -> ControllerSnapshot:
        return ControllerSnapshot(
            session=self._session.model_copy(deep=True) if self._session is not None else None,
            state=self._state,
            pending_plan=(
                self._pending_plan.model_copy(deep=True) if self._pending_plan is not None else None
            ),
            awaiting_confirmation=self._pending_plan is not None,
            queue=self._queue.get_all(),
            active_task=self._queue.get_active(),
            memory_stats=self._memory_stats,
        )

    def _notify(self, event: ControllerEvent) -> ControllerSnapshot:
        snapshot = self._build_snapshot()
        self._last_snapshot = snapshot
        for listener in list(self._listeners):
            self._call_listener(listener, event, snapshot)
        return snapshot

    def _call_listener(
        self, listener: SnapshotListener, event: ControllerEvent, snapshot: ControllerSnapshot
    ) -> None:
        try:
            listener(event, snapshot)
        except Exception as e:
            self._logger.error("Snapshot listener failed on %s: %s", event.value, e)
