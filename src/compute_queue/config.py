"""Runtime configuration for the compute queue."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path

_LOG_LEVELS = {"CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG"}


@dataclass(slots=True)
class QueueSettings:
    """Claiming and administrative gate settings."""

    max_execution_count: int = 2
    start_submit_paused: bool = False
    start_peek_paused: bool = False


@dataclass(slots=True)
class OrganizationSettings:
    """Organization assigned to tasks without a resolvable component."""

    default_organization_uuid: str = "default-organization"
    default_organization_key: str = "default-organization"
    default_organization_name: str = "Default Organization"


@dataclass(slots=True)
class Settings:
    """Application settings grouped by domain concerns."""

    db_path: Path = Path(".compute_queue.db")
    sqlite_busy_timeout_ms: int = 5_000
    log_level: str = "WARNING"
    queue: QueueSettings = field(default_factory=QueueSettings)
    organization: OrganizationSettings = field(default_factory=OrganizationSettings)

    @classmethod
    def from_env(cls, db_path: Path | None = None) -> Settings:
        """Load settings from environment with sane defaults for local development."""

        return cls(
            db_path=db_path or Path(os.getenv("COMPUTE_QUEUE_DB_PATH", ".compute_queue.db")),
            sqlite_busy_timeout_ms=int(os.getenv("COMPUTE_QUEUE_SQLITE_BUSY_TIMEOUT_MS", "5000")),
            log_level=os.getenv("COMPUTE_QUEUE_LOG_LEVEL", "WARNING").strip().upper(),
            queue=QueueSettings(
                max_execution_count=int(os.getenv("COMPUTE_QUEUE_MAX_EXECUTION_COUNT", "2")),
                start_submit_paused=_env_bool("COMPUTE_QUEUE_SUBMIT_PAUSED", default=False),
                start_peek_paused=_env_bool("COMPUTE_QUEUE_PEEK_PAUSED", default=False),
            ),
            organization=OrganizationSettings(
                default_organization_uuid=os.getenv(
                    "COMPUTE_QUEUE_DEFAULT_ORGANIZATION_UUID",
                    "default-organization",
                ).strip(),
                default_organization_key=os.getenv(
                    "COMPUTE_QUEUE_DEFAULT_ORGANIZATION_KEY",
                    "default-organization",
                ).strip(),
                default_organization_name=os.getenv(
                    "COMPUTE_QUEUE_DEFAULT_ORGANIZATION_NAME",
                    "Default Organization",
                ),
            ),
        )

    def validate(self) -> None:
        """Raise configuration error on values the queue cannot run with."""

        if self.queue.max_execution_count < 1:
            raise ValueError("COMPUTE_QUEUE_MAX_EXECUTION_COUNT must be >= 1.")
        if self.sqlite_busy_timeout_ms <= 0:
            raise ValueError("COMPUTE_QUEUE_SQLITE_BUSY_TIMEOUT_MS must be > 0.")
        if not self.organization.default_organization_uuid:
            raise ValueError("COMPUTE_QUEUE_DEFAULT_ORGANIZATION_UUID must not be empty.")
        if self.log_level not in _LOG_LEVELS:
            raise ValueError(
                f"Invalid COMPUTE_QUEUE_LOG_LEVEL: {self.log_level!r}. "
                f"Expected one of {', '.join(sorted(_LOG_LEVELS))}.",
            )

    def configure_logging(self) -> None:
        logging.basicConfig(
            level=self.log_level,
            format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        )


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "on"}:
        return True
    if normalized in {"0", "false", "no", "off"}:
        return False
    raise ValueError(f"Invalid boolean value for {name}: {value!r}")
