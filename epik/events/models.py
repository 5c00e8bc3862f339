"""Pydantic models for agent events, pool state and observer frames."""

import json
import logging
from enum import Enum
from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError

logger = logging.getLogger(__name__)


class TextDelta(BaseModel):
    """Fragment of assistant text streamed by an agent."""

    kind: Literal["text_delta"] = "text_delta"
    id: str | None = Field(None, description="Producer-assigned id for de-duplication")
    text: str = Field(..., description="Text fragment")


class ToolUse(BaseModel):
    """A tool invocation made by an agent."""

    kind: Literal["tool_use"] = "tool_use"
    id: str | None = Field(None, description="Producer-assigned id for de-duplication")
    name: str = Field(..., description="Tool name, e.g. 'Bash'")
    input: dict[str, Any] = Field(default_factory=dict, description="Tool arguments")


class StatusChange(BaseModel):
    """An agent's high-level status changed."""

    kind: Literal["status"] = "status"
    id: str | None = Field(None, description="Producer-assigned id for de-duplication")
    status: str = Field(..., description="New status, e.g. 'working'")
    detail: str | None = Field(None, description="Optional human-readable detail")


AnyEvent = TextDelta | ToolUse | StatusChange
AgentEvent = Annotated[AnyEvent, Field(discriminator="kind")]


class AgentState(str, Enum):
    """High-level status of one agent in the pool."""

    IDLE = "idle"
    WORKING = "working"
    BLOCKED = "blocked"


class AgentStatus(BaseModel):
    """Roster entry for one agent."""

    model_config = ConfigDict(populate_by_name=True)

    agent_id: str = Field(..., alias="agentId", description="Agent identity")
    status: AgentState = Field(..., description="idle, working or blocked")
    issue: int | None = Field(None, description="Issue currently assigned")


class PoolStateFrame(BaseModel):
    """Server-to-observer frame carrying the whole pool snapshot."""

    type: Literal["pool_state"] = "pool_state"
    pool: list[AgentStatus] = Field(default_factory=list)


class AgentEventFrame(BaseModel):
    """Server-to-observer frame carrying one agent event."""

    model_config = ConfigDict(populate_by_name=True)

    type: Literal["agent_event"] = "agent_event"
    agent_id: str = Field(..., alias="agentId")
    event: AgentEvent


AnyFrame = PoolStateFrame | AgentEventFrame
ServerFrame = Annotated[AnyFrame, Field(discriminator="type")]

RawPayload = str | bytes | dict[str, Any]

_event_adapter: TypeAdapter[Any] = TypeAdapter(AgentEvent)
_frame_adapter: TypeAdapter[Any] = TypeAdapter(ServerFrame)
_pool_adapter: TypeAdapter[list[AgentStatus]] = TypeAdapter(list[AgentStatus])


def encode_frame(frame: AnyFrame) -> str:
    """Serialize a frame with wire field names (``agentId``)."""
    return frame.model_dump_json(by_alias=True, exclude_none=True)


def _load(raw: RawPayload | list[Any]) -> Any:
    if isinstance(raw, (str, bytes, bytearray)):
        return json.loads(raw)
    return raw


def parse_frame(raw: RawPayload) -> AnyFrame | None:
    """Parse an observer frame. Malformed or unknown frames return None."""
    try:
        return _frame_adapter.validate_python(_load(raw))
    except (ValueError, ValidationError) as e:
        logger.debug(f"Dropping unrecognized frame: {e}")
        return None


def parse_event(raw: RawPayload) -> AnyEvent | None:
    """Parse an agent event payload. Malformed events return None."""
    try:
        return _event_adapter.validate_python(_load(raw))
    except (ValueError, ValidationError) as e:
        logger.debug(f"Dropping malformed agent event: {e}")
        return None


def parse_pool(raw: RawPayload | list[Any]) -> list[AgentStatus] | None:
    """Parse a pool snapshot, either a bare list or ``{"pool": [...]}``."""
    try:
        data = _load(raw)
        if isinstance(data, dict):
            data = data.get("pool")
        return _pool_adapter.validate_python(data)
    except (ValueError, ValidationError) as e:
        logger.debug(f"Dropping malformed pool state: {e}")
        return None
