"""Lifecycle event types for Planforge.

``AgentEvent`` is the **public contract** an ``EventSink`` receives from
``AgentController``. The controller never emits through a global emitter;
every controller owns the sink it was constructed with.
"""

from __future__ import annotations

import logging
from datetime import datetime
from enum import Enum
from typing import Any, List, Optional, Protocol, runtime_checkable

from pydantic import BaseModel, ConfigDict, Field

from planforge.agents.task import utcnow


class AgentEventType(str, Enum):
    """Discriminator for lifecycle events.

    Session events:
        SESSION_CREATED / SESSION_CLEARED

    Plan events:
        PLAN_SUBMITTED / PLAN_CONFIRMED / PLAN_REJECTED

    Task events:
        TASK_STARTED / TASK_UPDATED / TASK_COMPLETED / TASK_FAILED

    Other:
        STATE_CHANGED  – controller moved between idle/planning/executing
        WARNING        – a collaborator failed; execution continued
    """

    SESSION_CREATED = "agent:session:created"
    SESSION_CLEARED = "agent:session:cleared"
    PLAN_SUBMITTED = "agent:plan:submitted"
    PLAN_CONFIRMED = "agent:plan:confirmed"
    PLAN_REJECTED = "agent:plan:rejected"
    TASK_STARTED = "agent:task:started"
    TASK_UPDATED = "agent:task:updated"
    TASK_COMPLETED = "agent:task:completed"
    TASK_FAILED = "agent:task:failed"
    STATE_CHANGED = "agent:state:changed"
    WARNING = "agent:warning"


class AgentEvent(BaseModel):
    """A single lifecycle event.

    Only the fields relevant to ``type`` are populated; the rest
    remain ``None``.
    """

    model_config = ConfigDict(use_enum_values=True)

    type: AgentEventType
    session_id: Optional[str] = None
    timestamp: datetime = Field(default_factory=utcnow)

    # PLAN_*
    plan: Optional[dict[str, Any]] = None

    # TASK_*
    task: Optional[dict[str, Any]] = None
    tasks: Optional[list[dict[str, Any]]] = None
    change: Optional[str] = None

    # STATE_CHANGED
    state: Optional[str] = None

    # WARNING
    message: Optional[str] = None
    source: Optional[str] = None
    scope: Optional[str] = None
    error: Optional[str] = None

    metadata: Optional[dict[str, Any]] = None

    # ------------------------------------------------------------------
    # Convenience constructors
    # ------------------------------------------------------------------

    @classmethod
    def session_event(cls, type: AgentEventType, session_id: str, **extra: Any) -> AgentEvent:
        return cls(type=type, session_id=session_id, metadata=extra or None)

    @classmethod
    def plan_event(
        cls, type: AgentEventType, session_id: str, plan: Optional[dict[str, Any]] = None,
        tasks: Optional[list[dict[str, Any]]] = None,
    ) -> AgentEvent:
        return cls(type=type, session_id=session_id, plan=plan, tasks=tasks)

    @classmethod
    def task_event(
        cls,
        type: AgentEventType,
        session_id: str,
        task: Optional[dict[str, Any]] = None,
        change: Optional[str] = None,
    ) -> AgentEvent:
        return cls(type=type, session_id=session_id, task=task, change=change)

    @classmethod
    def state_event(cls, session_id: Optional[str], state: str) -> AgentEvent:
        return cls(type=AgentEventType.STATE_CHANGED, session_id=session_id, state=state)

    @classmethod
    def warning_event(
        cls,
        message: str,
        *,
        session_id: Optional[str] = None,
        source: str = "agent-controller",
        scope: Optional[str] = None,
        error: Optional[BaseException] = None,
    ) -> AgentEvent:
        return cls(
            type=AgentEventType.WARNING,
            session_id=session_id,
            message=message,
            source=source,
            scope=scope,
            error=repr(error) if error is not None else None,
        )


@runtime_checkable
class EventSink(Protocol):
    """Receives every lifecycle event emitted by a controller."""

    def emit(self, event: AgentEvent) -> None:
        ...


class NullEventSink:
    """Discards events."""

    def emit(self, event: AgentEvent) -> None:
        return None


class ListEventSink:
    """Collects events in order; handy for tests and audit trails."""

    def __init__(self) -> None:
        self.events: List[AgentEvent] = []

    def emit(self, event: AgentEvent) -> None:
        self.events.append(event)

    def of_type(self, type: AgentEventType) -> List[AgentEvent]:
        value = type.value if isinstance(type, AgentEventType) else type
        return [e for e in self.events if e.type == value]

    def clear(self) -> None:
        self.events.clear()


class LoggingEventSink:
    """Writes each event to a logger at INFO (WARNING for warning events)."""

    def __init__(self, logger: Optional[logging.Logger] = None):
        self._logger = logger or logging.getLogger(__name__)

    def emit(self, event: AgentEvent) -> None:
        if event.type == AgentEventType.WARNING.value:
            self._logger.warning("%s: %s (%s)", event.type, event.message, event.error)
        else:
            self._logger.info("%s session=%s", event.type, event.session_id)
