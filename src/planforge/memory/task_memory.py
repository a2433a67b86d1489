"""
Task memory — records completed tasks and reports per-session statistics.

The controller calls the async methods; failures there are logged by the
controller and never abort a task update.

    Built-in (in-memory)    -> InMemoryTaskMemory
    External store          -> subclass BaseTaskMemory, implement both methods
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections import Counter
from datetime import datetime
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from planforge.agents.task import Task, utcnow

MemoryType = Literal["observation", "reflection"]

_IMPORTANCE = {"high": 8, "medium": 6, "low": 4}


class MemoryRecord(BaseModel):
    session_id: str
    context: str
    type: MemoryType
    importance: int
    metadata: Dict[str, Any] = Field(default_factory=dict)
    timestamp: datetime = Field(default_factory=utcnow)


class MemoryStats(BaseModel):
    total_memories: int = 0
    memory_by_type: Dict[str, int] = Field(default_factory=dict)
    oldest_memory: Optional[datetime] = None
    newest_memory: Optional[datetime] = None


class BaseTaskMemory(BaseModel, ABC):
    """Abstract base for task-completion memory backends."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    @abstractmethod
    async def record_task_completion(self, task: Task) -> None:
        """Store a memory describing the finished *task*."""
        ...

    @abstractmethod
    async def get_stats(self, session_id: str) -> MemoryStats:
        ...

    @staticmethod
    def build_record(task: Task) -> MemoryRecord:
        """Translate a completed task into a memory record."""
        if task.result:
            context = f'Result of task "{task.title}": {task.result}'
        else:
            context = f'Task "{task.title}" completed'
        return MemoryRecord(
            session_id=task.session_id,
            context=context,
            type="observation" if task.error else "reflection",
            importance=_IMPORTANCE.get(task.priority, 6),
            metadata={
                "task_id": task.id,
                "status": task.status.value,
                "error": task.error,
                "actual_time": task.actual_time,
                "estimated_time": task.estimated_time,
            },
        )


class InMemoryTaskMemory(BaseTaskMemory):
    """Keeps every record in process memory."""

    _records: List[MemoryRecord] = []

    def model_post_init(self, __context: Any) -> None:
        self._records = []

    async def record_task_completion(self, task: Task) -> None:
        self._records.append(self.build_record(task))

    async def get_stats(self, session_id: str) -> MemoryStats:
        records = [r for r in self._records if r.session_id == session_id]
        if not records:
            return MemoryStats()
        stamps = [r.timestamp for r in records]
        return MemoryStats(
            total_memories=len(records),
            memory_by_type=dict(Counter(r.type for r in records)),
            oldest_memory=min(stamps),
            newest_memory=max(stamps),
        )

    def records(self, session_id: Optional[str] = None) -> List[MemoryRecord]:
        if session_id is None:
            return list(self._records)
        return [r for r in self._records if r.session_id == session_id]

    def clear(self) -> None:
        self._records.clear()
