"""
Delegated file/code actions.

The controller forwards these calls to an injected ``ActionCoordinator``;
what an action does, and how it is tracked, is up to the coordinator.
"""

from __future__ import annotations

from typing import Any, List, Literal, Optional, Protocol, runtime_checkable

from planforge.agents.task import Task

FileOperation = Literal["create", "read", "update", "delete"]


@runtime_checkable
class ActionCoordinator(Protocol):
    async def execute_file_operation(
        self,
        task: Task,
        operation: FileOperation,
        file_path: str,
        content: Optional[str] = None,
    ) -> Any:
        ...

    async def execute_code(
        self, task: Task, code: str, language: Optional[str] = None
    ) -> Any:
        ...

    def get_active_actions(self) -> List[Any]:
        ...

    def get_action_history(self) -> List[Any]:
        ...

    def clear_completed_actions(self) -> None:
        ...

    def clear_active_for_task(self, task_id: str) -> None:
        ...
