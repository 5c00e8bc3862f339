"""Pub/sub transport: static topics and the shared connection manager."""

from .router import Subscription, TopicMessage, TopicRouter, encode_payload
from .topics import (
    TOPIC_LOG,
    TOPIC_POOL,
    TOPIC_SUPERVISOR,
    AssignmentMessage,
    InterruptRequest,
    OperatorMessage,
    ReportStatus,
    StatusReport,
    TopicSet,
    UnknownAgentError,
)

__all__ = [
    "TOPIC_LOG",
    "TOPIC_POOL",
    "TOPIC_SUPERVISOR",
    "AssignmentMessage",
    "InterruptRequest",
    "OperatorMessage",
    "ReportStatus",
    "StatusReport",
    "Subscription",
    "TopicMessage",
    "TopicRouter",
    "TopicSet",
    "UnknownAgentError",
    "encode_payload",
]
