from planforge.streaming.events import (
    AgentEvent,
    AgentEventType,
    EventSink,
    ListEventSink,
    LoggingEventSink,
    NullEventSink,
)

__all__ = [
    "AgentEvent",
    "AgentEventType",
    "EventSink",
    "ListEventSink",
    "LoggingEventSink",
    "NullEventSink",
]
