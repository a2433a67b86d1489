"""
Planforge Memory Module

Records completed tasks so a session can report what it has learned.
"""

from planforge.memory.task_memory import (
    BaseTaskMemory,
    InMemoryTaskMemory,
    MemoryRecord,
    MemoryStats,
)

__all__ = [
    "BaseTaskMemory",
    "InMemoryTaskMemory",
    "MemoryRecord",
    "MemoryStats",
]
