"""Static topic names and the payloads carried on them.

Topics are fixed at process start from the configured worker count:

- ``epik.supervisor``: control/coordination channel, read by the supervisor
- ``epik.worker.<n>``: one command channel per worker
- ``epik.log``: shared log channel
- ``epik.pool``: pool-state snapshots
- ``epik.events.<agent_id>``: events originated by one agent
"""

from enum import Enum
from typing import Literal

from pydantic import BaseModel, Field

TOPIC_PREFIX = "epik"
TOPIC_SUPERVISOR = f"{TOPIC_PREFIX}.supervisor"
TOPIC_LOG = f"{TOPIC_PREFIX}.log"
TOPIC_POOL = f"{TOPIC_PREFIX}.pool"

SUPERVISOR_ID = "supervisor"


def worker_topic(index: int) -> str:
    return f"{TOPIC_PREFIX}.worker.{index}"


def worker_id(index: int) -> str:
    return f"worker-{index}"


class UnknownAgentError(KeyError):
    """Raised for an agent id that is not part of the static roster."""


class TopicSet:
    """The static set of topics and agent ids for a deployment."""

    def __init__(self, workers: int = 3):
        if workers < 1:
            raise ValueError("At least one worker is required")
        self.workers = workers
        self._command_topics = {SUPERVISOR_ID: TOPIC_SUPERVISOR}
        for index in range(workers):
            self._command_topics[worker_id(index)] = worker_topic(index)

    @property
    def agent_ids(self) -> list[str]:
        """Agent ids in roster order, supervisor first."""
        return list(self._command_topics)

    def has_agent(self, agent_id: str) -> bool:
        return agent_id in self._command_topics

    def command_topic(self, agent_id: str) -> str:
        """Topic an agent listens on for instructions."""
        try:
            return self._command_topics[agent_id]
        except KeyError:
            raise UnknownAgentError(agent_id) from None

    def event_topic(self, agent_id: str) -> str:
        """Topic an agent publishes its event stream on."""
        if agent_id not in self._command_topics:
            raise UnknownAgentError(agent_id)
        return f"{TOPIC_PREFIX}.events.{agent_id}"

    def all_topics(self) -> list[str]:
        topics = list(self._command_topics.values())
        topics.extend(self.event_topic(agent_id) for agent_id in self.agent_ids)
        topics.extend([TOPIC_LOG, TOPIC_POOL])
        return topics


class ReportStatus(str, Enum):
    """Outcome reported by a worker to the supervisor."""

    DONE = "done"
    BLOCKED = "blocked"
    FAILED = "failed"


class AssignmentMessage(BaseModel):
    """Supervisor instruction assigning an issue to a worker."""

    issue: int = Field(..., gt=0, description="GitHub issue number to work on")
    note: str | None = Field(None, description="Extra context, e.g. a CI failure")


class StatusReport(BaseModel):
    """Worker report published on the supervisor topic."""

    status: ReportStatus = Field(..., description="done, blocked or failed")
    pr: int | None = Field(None, description="Pull request number, if one exists")
    issue: int | None = Field(None, description="Issue the report refers to")


class OperatorMessage(BaseModel):
    """Free-text message from an observer to an agent."""

    type: Literal["message"] = "message"
    text: str = Field(..., description="Message text")


class InterruptRequest(BaseModel):
    """Observer request to interrupt an agent's current turn."""

    type: Literal["interrupt"] = "interrupt"
