"""
Tests for AgentController.

Covers:
- Session lifecycle and the idle/planning/executing state machine
- Plan submission, confirmation and rejection
- Queue wrappers and their lifecycle events
- Memory recording and memory-failure warnings
- Snapshot listeners
- Delegated actions
- Plan generation and execution through the controller
"""

from unittest.mock import AsyncMock, MagicMock

import pytest

from planforge.agents.config.agent_config import AgentState, EngineConfig
from planforge.agents.controller import AgentController, AgentSession, ControllerEvent
from planforge.agents.errors import (
    ActionCoordinatorMissingError,
    NoPendingPlanError,
    SessionNotInitializedError,
    TaskNotFoundError,
)
from planforge.agents.plan import PlanStatus, StepStatus
from planforge.agents.task import Task, TaskStatus
from planforge.llms.mock_llm import MockCompletionService
from planforge.memory.task_memory import InMemoryTaskMemory
from planforge.streaming.events import AgentEventType, ListEventSink


@pytest.fixture
def sink():
    return ListEventSink()


@pytest.fixture
def controller(sink):
    return AgentController(event_sink=sink, memory=InMemoryTaskMemory())


async def _confirmed(controller, make_plan, **kwargs):
    await controller.initialize("s1")
    controller.submit_plan(make_plan())
    return controller.confirm_plan(**kwargs)


class TestSessionLifecycle:

    @pytest.mark.asyncio
    async def test_initialize(self, controller, sink):
        snapshot = await controller.initialize("s1", name="Demo")

        assert snapshot.session.id == "s1"
        assert snapshot.session.name == "Demo"
        assert snapshot.state == AgentState.IDLE
        assert snapshot.memory_stats.total_memories == 0
        created = sink.of_type(AgentEventType.SESSION_CREATED)
        assert created[0].session_id == "s1"

    @pytest.mark.asyncio
    async def test_initialize_with_session_model(self, controller):
        await controller.initialize(AgentSession(id="s2", description="d"))
        assert controller.session.id == "s2"

    def test_requires_initialize(self, controller, make_plan):
        with pytest.raises(SessionNotInitializedError):
            controller.submit_plan(make_plan())
        with pytest.raises(SessionNotInitializedError):
            controller.clear_queue()

    @pytest.mark.asyncio
    async def test_shutdown(self, controller, sink, make_plan):
        await _confirmed(controller, make_plan)
        snapshot = await controller.shutdown()

        assert snapshot.session is None
        assert snapshot.queue == []
        assert controller.state == AgentState.IDLE
        assert sink.of_type(AgentEventType.SESSION_CLEARED)

    @pytest.mark.asyncio
    async def test_controllers_share_nothing(self, make_plan):
        first, second = AgentController(), AgentController()
        await first.initialize("a")
        await second.initialize("b")
        first.submit_plan(make_plan())
        first.confirm_plan()
        assert len(first.queue) == 3
        assert len(second.queue) == 0


class TestPlanFlow:

    @pytest.mark.asyncio
    async def test_submit_moves_to_planning(self, controller, sink, make_plan):
        await controller.initialize("s1")
        plan = make_plan()
        snapshot = controller.submit_plan(plan)

        assert snapshot.state == AgentState.PLANNING
        assert snapshot.awaiting_confirmation
        assert plan.status == PlanStatus.PENDING_CONFIRMATION
        submitted = sink.of_type(AgentEventType.PLAN_SUBMITTED)
        assert submitted[0].plan["planName"] == "Sorting function"

    @pytest.mark.asyncio
    async def test_confirm_creates_ordered_tasks(self, controller, sink, make_plan):
        await controller.initialize("s1")
        plan = make_plan()
        controller.submit_plan(plan)
        snapshot = controller.confirm_plan()

        assert snapshot.state == AgentState.EXECUTING
        assert not snapshot.awaiting_confirmation
        assert plan.status == PlanStatus.CONFIRMED
        assert [t.title for t in snapshot.queue] == ["Design", "Implement", "Test"]
        assert [t.status for t in snapshot.queue] == [
            TaskStatus.IN_PROGRESS,
            TaskStatus.PENDING,
            TaskStatus.PENDING,
        ]
        assert snapshot.active_task.title == "Design"
        assert all(t.session_id == "s1" for t in snapshot.queue)
        assert snapshot.queue[0].priority == "high"
        assert snapshot.queue[0].estimated_time == 20
        assert controller.plan_task_ids == [t.id for t in snapshot.queue]

        confirmed = sink.of_type(AgentEventType.PLAN_CONFIRMED)
        assert len(confirmed[0].tasks) == 3
        started = sink.of_type(AgentEventType.TASK_STARTED)
        assert [e.task["title"] for e in started] == ["Design"]

    @pytest.mark.asyncio
    async def test_confirm_without_plan(self, controller):
        await controller.initialize("s1")
        with pytest.raises(NoPendingPlanError):
            controller.confirm_plan()

    @pytest.mark.asyncio
    async def test_reject(self, controller, sink, make_plan):
        await controller.initialize("s1")
        plan = make_plan()
        controller.submit_plan(plan)
        snapshot = controller.reject_plan()

        assert snapshot.state == AgentState.IDLE
        assert snapshot.pending_plan is None
        assert snapshot.queue == []
        assert plan.status == PlanStatus.ABORTED
        assert sink.of_type(AgentEventType.PLAN_REJECTED)

    def test_plan_to_tasks(self, make_plan):
        tasks = AgentController.plan_to_tasks(make_plan(), "s1", auto_start=False)
        assert [t.status for t in tasks] == [TaskStatus.PENDING] * 3
        assert tasks[0].goal == "Design: follow the usual approach"

    @pytest.mark.asyncio
    async def test_state_changes_are_emitted(self, controller, sink, make_plan):
        await _confirmed(controller, make_plan)
        states = [e.state for e in sink.of_type(AgentEventType.STATE_CHANGED)]
        assert states == ["planning", "executing"]


class TestQueueWrappers:

    @pytest.mark.asyncio
    async def test_completion_advances_and_records_memory(self, controller, sink, make_plan):
        snapshot = await _confirmed(controller, make_plan)
        first, second, _ = snapshot.queue

        snapshot = await controller.update_task(
            first.id, {"status": TaskStatus.COMPLETED, "result": "Chose quicksort"}
        )

        assert snapshot.active_task.id == second.id
        assert snapshot.queue[0].completed_at is not None
        assert snapshot.memory_stats.total_memories == 1
        assert snapshot.memory_stats.memory_by_type == {"reflection": 1}
        completed = sink.of_type(AgentEventType.TASK_COMPLETED)
        assert completed[0].task["id"] == first.id
        started = sink.of_type(AgentEventType.TASK_STARTED)
        assert started[-1].task["id"] == second.id

    @pytest.mark.asyncio
    async def test_failure_event(self, controller, sink, make_plan):
        snapshot = await _confirmed(controller, make_plan)
        await controller.update_task(
            snapshot.queue[0].id, {"status": TaskStatus.FAILED, "error": "boom"}
        )
        assert sink.of_type(AgentEventType.TASK_FAILED)

    @pytest.mark.asyncio
    async def test_draining_queue_goes_idle(self, controller, make_plan):
        snapshot = await _confirmed(controller, make_plan)
        for task in snapshot.queue:
            await controller.update_task(task.id, {"status": TaskStatus.COMPLETED})
        assert controller.state == AgentState.IDLE
        assert controller.get_snapshot().active_task is None

    @pytest.mark.asyncio
    async def test_unknown_task_raises(self, controller):
        await controller.initialize("s1")
        with pytest.raises(TaskNotFoundError):
            await controller.update_task("missing", {"status": TaskStatus.COMPLETED})

    @pytest.mark.asyncio
    async def test_remove_unknown_is_noop(self, controller, sink, make_plan):
        await _confirmed(controller, make_plan)
        count = len(sink.events)
        snapshot = controller.remove_task("missing")
        assert len(snapshot.queue) == 3
        assert len(sink.events) == count

    @pytest.mark.asyncio
    async def test_remove_last_task_goes_idle(self, controller, sink):
        await controller.initialize("s1")
        task = Task(title="solo", session_id="s1")
        controller.enqueue_task(task)
        assert controller.state == AgentState.EXECUTING

        controller.remove_task(task.id)

        assert controller.state == AgentState.IDLE
        removed = [e for e in sink.events if e.change == "removed"]
        assert removed[0].task["id"] == task.id

    @pytest.mark.asyncio
    async def test_enqueue_emits_pending_tasks(self, controller, sink):
        await controller.initialize("s1")
        a = Task(title="a", session_id="s1")
        b = Task(title="b", session_id="s1")
        controller.enqueue_task([a, b])

        assert [e.task["id"] for e in sink.of_type(AgentEventType.TASK_STARTED)] == [a.id]
        enqueued = [e for e in sink.events if e.change == "enqueued"]
        assert [e.task["id"] for e in enqueued] == [b.id]

    @pytest.mark.asyncio
    async def test_clear_queue(self, controller, sink, make_plan):
        await _confirmed(controller, make_plan)
        events = []
        controller.subscribe(lambda event, snap: events.append(event))

        snapshot = controller.clear_queue()

        assert snapshot.queue == []
        assert snapshot.state == AgentState.IDLE
        assert controller.plan_task_ids == []
        assert events[-1] == ControllerEvent.QUEUE_FLUSHED
        assert [e for e in sink.events if e.change == "queue_cleared"]

    @pytest.mark.asyncio
    async def test_auto_start_false_still_promotes_first_task(self, controller, make_plan):
        snapshot = await _confirmed(controller, make_plan, auto_start=False)
        assert [t.status for t in snapshot.queue].count(TaskStatus.IN_PROGRESS) == 1
        assert snapshot.active_task.title == "Design"


class TestMemory:

    @pytest.mark.asyncio
    async def test_memory_failure_emits_warning(self, sink, make_plan):
        memory = MagicMock()
        memory.get_stats = AsyncMock(return_value=None)
        memory.record_task_completion = AsyncMock(side_effect=RuntimeError("db down"))
        controller = AgentController(event_sink=sink, memory=memory)
        snapshot = await _confirmed(controller, make_plan)

        snapshot = await controller.update_task(
            snapshot.queue[0].id, {"status": TaskStatus.COMPLETED}
        )

        assert snapshot.queue[0].status == TaskStatus.COMPLETED
        warnings = sink.of_type(AgentEventType.WARNING)
        assert warnings[0].scope == "memory-record"
        assert "db down" in warnings[0].error

    @pytest.mark.asyncio
    async def test_stats_failure_emits_warning(self, sink):
        memory = MagicMock()
        memory.get_stats = AsyncMock(side_effect=RuntimeError("timeout"))
        controller = AgentController(event_sink=sink, memory=memory)

        snapshot = await controller.initialize("s1")

        assert snapshot.memory_stats is None
        assert sink.of_type(AgentEventType.WARNING)[0].scope == "memory-stats"

    @pytest.mark.asyncio
    async def test_completion_clears_coordinator_actions(self, sink, make_plan):
        coordinator = MagicMock()
        controller = AgentController(event_sink=sink, action_coordinator=coordinator)
        snapshot = await _confirmed(controller, make_plan)
        task_id = snapshot.queue[0].id

        await controller.update_task(task_id, {"status": TaskStatus.COMPLETED})

        coordinator.clear_active_for_task.assert_called_once_with(task_id)


class TestListenersAndSinks:

    @pytest.mark.asyncio
    async def test_subscribe_receives_current_snapshot(self, controller):
        await controller.initialize("s1")
        received = []
        unsubscribe = controller.subscribe(lambda event, snap: received.append((event, snap)))

        assert received[0][0] == ControllerEvent.SNAPSHOT
        assert received[0][1].session.id == "s1"

        unsubscribe()
        controller.clear_queue()
        assert len(received) == 1

    @pytest.mark.asyncio
    async def test_failing_listener_does_not_break_controller(self, controller, make_plan):
        await controller.initialize("s1")

        def broken(event, snap):
            raise RuntimeError("render failed")

        controller.subscribe(broken)
        controller.submit_plan(make_plan())
        assert controller.state == AgentState.PLANNING

    @pytest.mark.asyncio
    async def test_failing_sink_does_not_break_controller(self, make_plan):
        sink = MagicMock()
        sink.emit.side_effect = RuntimeError("socket closed")
        controller = AgentController(event_sink=sink)
        await controller.initialize("s1")
        controller.submit_plan(make_plan())
        assert controller.state == AgentState.PLANNING


class TestDelegatedActions:

    @pytest.mark.asyncio
    async def test_forwards_to_coordinator(self):
        coordinator = MagicMock()
        coordinator.execute_file_operation = AsyncMock(return_value={"ok": True})
        coordinator.execute_code = AsyncMock(return_value="42")
        coordinator.get_active_actions.return_value = ["a1"]
        coordinator.get_action_history.return_value = ["a0", "a1"]
        controller = AgentController(action_coordinator=coordinator)
        await controller.initialize("s1")
        task = Task(title="t", session_id="s1")

        assert await controller.execute_file_operation(task, "create", "sort.py", "x") == {"ok": True}
        assert await controller.execute_code(task, "print(42)", "python") == "42"
        assert controller.get_active_actions() == ["a1"]
        assert controller.get_action_history() == ["a0", "a1"]
        controller.clear_completed_actions()

        coordinator.execute_file_operation.assert_awaited_once_with(task, "create", "sort.py", "x")
        coordinator.clear_completed_actions.assert_called_once()

    @pytest.mark.asyncio
    async def test_missing_coordinator(self):
        controller = AgentController()
        await controller.initialize("s1")
        with pytest.raises(ActionCoordinatorMissingError):
            controller.get_active_actions()
        with pytest.raises(ActionCoordinatorMissingError):
            await controller.execute_code(Task(title="t", session_id="s1"), "pass")


class TestGenerateAndExecute:

    @pytest.mark.asyncio
    async def test_generate_plan_submits(self, sink, plan_reply):
        service = MockCompletionService([plan_reply()])
        controller = AgentController(completion_service=service, event_sink=sink)
        await controller.initialize("s1")

        plan = await controller.generate_plan("Write a sorting function")

        assert controller.pending_plan is plan
        assert controller.state == AgentState.PLANNING
        assert plan.goal == "Write a sorting function"

    @pytest.mark.asyncio
    async def test_execute_plan_completes_tasks(self, sink, plan_reply, step_reply):
        service = MockCompletionService(
            [plan_reply(), step_reply("Chose quicksort"), step_reply("Wrote sort.py"), step_reply("Tests pass")]
        )
        controller = AgentController(
            completion_service=service,
            event_sink=sink,
            memory=InMemoryTaskMemory(),
            config=EngineConfig(model_id="m"),
        )
        await controller.initialize("s1")
        plan = await controller.generate_plan("Write a sorting function")
        controller.confirm_plan()

        state = await controller.execute_plan(plan)

        assert state.is_complete
        assert plan.status == PlanStatus.DONE
        assert all(s.status == StepStatus.DONE for s in plan.todos)
        snapshot = controller.get_snapshot()
        assert [t.status for t in snapshot.queue] == [TaskStatus.COMPLETED] * 3
        assert [t.result for t in snapshot.queue] == ["Chose quicksort", "Wrote sort.py", "Tests pass"]
        assert snapshot.memory_stats.total_memories == 3
        assert controller.state == AgentState.IDLE

    @pytest.mark.asyncio
    async def test_execute_requires_service(self, make_plan):
        controller = AgentController()
        await controller.initialize("s1")
        with pytest.raises(ValueError):
            await controller.execute_plan(make_plan())

    @pytest.mark.asyncio
    async def test_executing_other_plan_leaves_tasks_alone(self, make_plan, step_reply):
        service = MockCompletionService([step_reply("B done")])
        memory = InMemoryTaskMemory()
        controller = AgentController(completion_service=service, memory=memory)
        await controller.initialize("s1")
        plan_a = make_plan(titles=("A1", "A2"))
        controller.submit_plan(plan_a)
        controller.confirm_plan()
        plan_b = make_plan(titles=("B1",))
        controller.submit_plan(plan_b)
        controller.reject_plan()

        await controller.execute_plan(plan_b)

        assert plan_b.status == PlanStatus.DONE
        assert controller.confirmed_plan_id == plan_a.id
        queue = controller.queue.get_all()
        assert [(t.title, t.status) for t in queue] == [
            ("A1", TaskStatus.IN_PROGRESS),
            ("A2", TaskStatus.PENDING),
        ]
        assert all(t.result is None for t in queue)
        assert memory.records() == []

    @pytest.mark.asyncio
    async def test_unconfirmed_plan_runs_without_sync(self, make_plan, step_reply):
        service = MockCompletionService([step_reply("solo")])
        controller = AgentController(completion_service=service)
        await controller.initialize("s1")
        controller.enqueue_task(Task(title="manual", session_id="s1"))

        await controller.execute_plan(make_plan(titles=("Only",)))

        assert controller.confirmed_plan_id is None
        assert controller.queue.get_all()[0].status == TaskStatus.IN_PROGRESS

    @pytest.mark.asyncio
    async def test_unfinished_step_keeps_task_open(self, make_plan, step_reply):
        service = MockCompletionService([step_reply("partial", done=False)])
        memory = InMemoryTaskMemory()
        controller = AgentController(completion_service=service, memory=memory)
        await controller.initialize("s1")
        plan = make_plan(titles=("Only",))
        controller.submit_plan(plan)
        controller.confirm_plan()

        await controller.execute_plan(plan)

        task = controller.queue.get_all()[0]
        assert plan.todos[0].status == StepStatus.PENDING
        assert task.status == TaskStatus.IN_PROGRESS
        assert task.result == "partial"
        assert task.completed_at is None
        assert memory.records() == []
        assert controller.state == AgentState.EXECUTING


class TestSnapshots:

    @pytest.mark.asyncio
    async def test_snapshot_is_detached_from_live_plan(self, controller, make_plan):
        await controller.initialize("s1", name="Demo")
        plan = make_plan()
        received = []
        controller.subscribe(lambda event, snap: received.append(snap))
        controller.submit_plan(plan)
        snapshot = controller.get_snapshot()

        plan.status = PlanStatus.ABORTED
        plan.todos[0].title = "Changed"
        controller.session.name = "Renamed"

        assert snapshot.pending_plan.status == PlanStatus.PENDING_CONFIRMATION
        assert snapshot.pending_plan.todos[0].title == "Design"
        assert snapshot.session.name == "Demo"
        assert received[-1].pending_plan.todos[0].title == "Design"
