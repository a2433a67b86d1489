"""
TaskQueue — ordered in-memory task list with a single active task.

At most one task is ``in_progress`` at any time: activating a task demotes a
different, previously active ``in_progress`` task back to ``pending``.
Tasks handed out by the queue are copies; mutate them through the queue.
"""

from __future__ import annotations

from typing import Any, Dict, Iterable, List, Optional, Union

from planforge.agents.task import Task, TaskStatus, utcnow


class TaskQueue:
    """Ordered task collection with an active-task pointer."""

    def __init__(self) -> None:
        self._tasks: List[Task] = []
        self._active_id: Optional[str] = None

    # ------------------------------------------------------------------ #
    # Queries                                                             #
    # ------------------------------------------------------------------ #

    def get_all(self) -> List[Task]:
        return [task.model_copy() for task in self._tasks]

    def get(self, task_id: str) -> Optional[Task]:
        index = self._index_of(task_id)
        return None if index is None else self._tasks[index].model_copy()

    def get_active(self) -> Optional[Task]:
        if self._active_id is None:
            return None
        return self.get(self._active_id)

    @property
    def active_task_id(self) -> Optional[str]:
        return self._active_id

    def has_tasks(self) -> bool:
        return bool(self._tasks)

    def __len__(self) -> int:
        return len(self._tasks)

    # ------------------------------------------------------------------ #
    # Mutations                                                           #
    # ------------------------------------------------------------------ #

    def enqueue(
        self,
        tasks: Union[Task, Iterable[Task]],
        *,
        prevent_duplicates: bool = False,
        set_active: bool = False,
    ) -> List[Task]:
        """Append *tasks* and return a copy of the whole queue.

        With ``set_active`` the first newly added task becomes active;
        otherwise, if nothing is active, the next pending task is promoted.
        """
        incoming = [tasks] if isinstance(tasks, Task) else list(tasks)
        now = utcnow()
        prepared = [task.model_copy(update={"updated_at": now}) for task in incoming]

        if prevent_duplicates:
            existing = {task.id for task in self._tasks}
            prepared = [task for task in prepared if task.id not in existing]
            if not prepared:
                return self.get_all()

        self._tasks.extend(prepared)

        if set_active and prepared:
            self.set_active_task(prepared[0].id)
        elif self._active_id is None:
            started = next(
                (t for t in prepared if t.status == TaskStatus.IN_PROGRESS), None
            )
            if started is not None:
                self.set_active_task(started.id)
            else:
                self.promote_next_pending()

        self._demote_stray_in_progress()
        return self.get_all()

    def update_task(
        self,
        task_id: str,
        updates: Dict[str, Any],
        *,
        suppress_events: bool = False,
    ) -> Optional[Task]:
        """Merge *updates* into the task; ``None`` if the id is unknown.

        ``completed_at`` is stamped on the first transition to ``completed``.
        When the active task completes the next pending task is promoted,
        unless ``suppress_events`` is set.
        """
        index = self._index_of(task_id)
        if index is None:
            return None

        previous = self._tasks[index]
        data = previous.model_dump()
        data.update(updates)
        data["id"] = previous.id
        data["updated_at"] = utcnow()
        updated = Task.model_validate(data)

        if updated.status == TaskStatus.COMPLETED and updated.completed_at is None:
            updated.completed_at = utcnow()

        self._tasks[index] = updated

        if updated.status == TaskStatus.IN_PROGRESS and self._active_id != task_id:
            self._demote_active()
            self._active_id = task_id

        if (
            not suppress_events
            and self._active_id == task_id
            and updated.status == TaskStatus.COMPLETED
        ):
            self.promote_next_pending()

        return updated.model_copy()

    def set_active_task(self, task_id: Optional[str]) -> Optional[Task]:
        """Make *task_id* the active task, starting it if it is pending."""
        if task_id is None:
            self._active_id = None
            return None

        index = self._index_of(task_id)
        if index is None:
            return None

        if self._active_id != task_id:
            self._demote_active()

        self._active_id = task_id
        if self._tasks[index].status == TaskStatus.PENDING:
            self.update_task(
                task_id, {"status": TaskStatus.IN_PROGRESS}, suppress_events=True
            )
        return self._tasks[index].model_copy()

    def promote_next_pending(self) -> Optional[Task]:
        next_task = next(
            (task for task in self._tasks if task.status == TaskStatus.PENDING), None
        )
        if next_task is None:
            self._active_id = None
            return None
        return self.set_active_task(next_task.id)

    def remove(self, task_id: str) -> Optional[Task]:
        index = self._index_of(task_id)
        if index is None:
            return None

        removed = self._tasks.pop(index)
        if self._active_id == task_id:
            self._active_id = None
            self.promote_next_pending()
        return removed.model_copy()

    def clear(self) -> List[Task]:
        removed = self._tasks
        self._tasks = []
        self._active_id = None
        return removed

    def reset(
        self,
        tasks: Iterable[Task],
        *,
        prevent_duplicates: bool = False,
        set_active: bool = False,
    ) -> List[Task]:
        self.clear()
        return self.enqueue(
            list(tasks), prevent_duplicates=prevent_duplicates, set_active=set_active
        )

    # ------------------------------------------------------------------ #
    # Helpers                                                             #
    # ------------------------------------------------------------------ #

    def _index_of(self, task_id: str) -> Optional[int]:
        for index, task in enumerate(self._tasks):
            if task.id == task_id:
                return index
        return None

    def _demote_active(self) -> None:
        if self._active_id is None:
            return
        index = self._index_of(self._active_id)
        if index is not None and self._tasks[index].status == TaskStatus.IN_PROGRESS:
            self._tasks[index] = self._tasks[index].model_copy(
                update={"status": TaskStatus.PENDING, "updated_at": utcnow()}
            )

    def _demote_stray_in_progress(self) -> None:
        for index, task in enumerate(self._tasks):
            if task.status == TaskStatus.IN_PROGRESS and task.id != self._active_id:
                self._tasks[index] = task.model_copy(
                    update={"status": TaskStatus.PENDING, "updated_at": utcnow()}
                )
