"""Runtime configuration read from environment variables."""

import os

DEFAULT_NATS_URL = "nats://localhost:4222"
DEFAULT_WORKERS = 3
DEFAULT_RECONNECT_DELAY = 1.0


class EpikConfig:
    """Configuration class for the epik services."""

    def __init__(self) -> None:
        """Initialize configuration from environment variables."""
        self.nats_url: str = os.getenv("EPIK_NATS_URL", DEFAULT_NATS_URL)
        self.workers_raw: str = os.getenv("EPIK_WORKERS", str(DEFAULT_WORKERS))
        self.gh_bin: str = os.getenv("EPIK_GH_BIN", "gh")
        self.reconnect_delay_raw: str = os.getenv(
            "EPIK_RECONNECT_DELAY", str(DEFAULT_RECONNECT_DELAY)
        )
        self.repo: str | None = os.getenv("EPIK_REPO")
        self.host: str = os.getenv("EPIK_HOST", "127.0.0.1")
        self.port_raw: str = os.getenv("EPIK_PORT", "8000")

    @property
    def workers(self) -> int:
        return int(self.workers_raw)

    @property
    def reconnect_delay(self) -> float:
        return float(self.reconnect_delay_raw)

    @property
    def port(self) -> int:
        return int(self.port_raw)

    def owner_repo(self, repo: str | None = None) -> tuple[str, str]:
        """Split an ``owner/repo`` slug.

        Args:
            repo: Slug to split. Falls back to ``EPIK_REPO`` when omitted.

        Returns:
            Tuple of (owner, repo)

        Raises:
            ValueError: If no slug is available or it is not ``owner/repo``
        """
        slug = repo or self.repo
        if not slug:
            raise ValueError(
                "Repository is required. Pass --repo OWNER/REPO or set EPIK_REPO."
            )
        parts = slug.split("/")
        if len(parts) != 2 or not parts[0] or not parts[1]:
            raise ValueError(f"Invalid repository '{slug}'. Expected OWNER/REPO.")
        return parts[0], parts[1]

    def validate(self) -> None:
        """Validate configuration and raise error if invalid."""
        problems = []
        try:
            if self.workers < 1:
                problems.append("EPIK_WORKERS must be at least 1")
        except ValueError:
            problems.append(f"EPIK_WORKERS is not an integer: {self.workers_raw!r}")
        try:
            if self.reconnect_delay <= 0:
                problems.append("EPIK_RECONNECT_DELAY must be positive")
        except ValueError:
            problems.append(
                f"EPIK_RECONNECT_DELAY is not a number: {self.reconnect_delay_raw!r}"
            )
        try:
            self.port
        except ValueError:
            problems.append(f"EPIK_PORT is not an integer: {self.port_raw!r}")
        if not self.nats_url:
            problems.append("EPIK_NATS_URL must not be empty")

        if problems:
            raise ValueError(f"Invalid configuration: {'; '.join(problems)}")
