"""
ControllerTaskSync — mirrors step results onto a controller's queued tasks.

Step ``i`` of the last confirmed plan maps to the ``i``-th task that
``confirm_plan`` created. Steps without a matching task (for example after
the queue was cleared) are skipped. A step that did not report ``done``
only records its result on the task and leaves the task status alone.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Optional

from planforge.agents.task import TaskStatus

if TYPE_CHECKING:
    from planforge.agents.controller import AgentController


class ControllerTaskSync:
    def __init__(
        self,
        controller: "AgentController",
        logger: Optional[logging.Logger] = None,
    ):
        self.controller = controller
        self._logger = logger or logging.getLogger(__name__)

    async def update_from_step(
        self, *, step_index: int, step_title: str, result: str, done: bool = True
    ) -> None:
        task_ids = self.controller.plan_task_ids
        if not 0 <= step_index < len(task_ids):
            self._logger.debug("No task for step %d (%s)", step_index + 1, step_title)
            return

        task_id = task_ids[step_index]
        if self.controller.queue.get(task_id) is None:
            self._logger.debug("Task %s for step %d was removed", task_id, step_index + 1)
            return

        updates = {"result": result}
        if done:
            updates["status"] = TaskStatus.COMPLETED
        await self.controller.update_task(task_id, updates)
