"""In-memory per-agent event logs and the latest pool snapshot."""

from collections.abc import Iterable

from .models import AgentStatus, AnyEvent


class AgentEventStore:
    """Append-only event log per agent plus a wholesale-replaced pool snapshot.

    Each log is written by exactly one consumer; readers get copies.
    """

    def __init__(self, agent_ids: Iterable[str] = ()):
        self._logs: dict[str, list[AnyEvent]] = {}
        self._seen_ids: dict[str, set[str]] = {}
        self._pool: list[AgentStatus] = []
        for agent_id in agent_ids:
            self._ensure(agent_id)

    def _ensure(self, agent_id: str) -> list[AnyEvent]:
        if agent_id not in self._logs:
            self._logs[agent_id] = []
            self._seen_ids[agent_id] = set()
        return self._logs[agent_id]

    @property
    def agent_ids(self) -> list[str]:
        return list(self._logs)

    @property
    def pool(self) -> list[AgentStatus]:
        return list(self._pool)

    def append(self, agent_id: str, event: AnyEvent) -> bool:
        """Append an event to an agent's log.

        Returns:
            False if the event carries an id already in that agent's log
            (a redelivery), True if it was appended
        """
        log = self._ensure(agent_id)
        if event.id is not None:
            if event.id in self._seen_ids[agent_id]:
                return False
            self._seen_ids[agent_id].add(event.id)
        log.append(event)
        return True

    def replace_pool(self, pool: Iterable[AgentStatus]) -> None:
        """Replace the pool snapshot; last write wins."""
        self._pool = list(pool)

    def events(self, agent_id: str) -> list[AnyEvent]:
        return list(self._logs.get(agent_id, ()))

    def snapshot(self) -> dict[str, list[AnyEvent]]:
        return {agent_id: list(log) for agent_id, log in self._logs.items()}

    def clear(self) -> None:
        """Forget all events and the pool, keeping known agent ids."""
        for agent_id in self._logs:
            self._logs[agent_id] = []
            self._seen_ids[agent_id] = set()
        self._pool = []
