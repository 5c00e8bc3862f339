"""Event aggregation and observer fan-out."""

from .aggregator import EventAggregator, ObserverChannel
from .models import (
    AgentEventFrame,
    AgentState,
    AgentStatus,
    PoolStateFrame,
    StatusChange,
    TextDelta,
    ToolUse,
    encode_frame,
    parse_event,
    parse_frame,
    parse_pool,
)
from .observer import ConnectionState, ObserverConnection
from .store import AgentEventStore

__all__ = [
    "AgentEventFrame",
    "AgentEventStore",
    "AgentState",
    "AgentStatus",
    "ConnectionState",
    "EventAggregator",
    "ObserverChannel",
    "ObserverConnection",
    "PoolStateFrame",
    "StatusChange",
    "TextDelta",
    "ToolUse",
    "encode_frame",
    "parse_event",
    "parse_frame",
    "parse_pool",
]
