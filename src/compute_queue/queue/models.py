"""Domain models for the compute task queue."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum


class QueueStatus(str, Enum):
    """States of a task still held in the queue store."""

    PENDING = "PENDING"
    IN_PROGRESS = "IN_PROGRESS"


class ActivityStatus(str, Enum):
    """Terminal outcomes recorded in the activity store."""

    SUCCESS = "SUCCESS"
    FAILED = "FAILED"
    CANCELED = "CANCELED"


@dataclass(frozen=True, slots=True)
class TaskSubmission:
    """Caller-built request to enqueue one task; uuid is assigned before persistence."""

    uuid: str
    task_type: str
    component_uuid: str | None = None
    submitter_login: str | None = None


@dataclass(frozen=True, slots=True)
class TaskHandle:
    """Task identity handed to submitters and workers."""

    organization_uuid: str
    uuid: str
    task_type: str
    component_uuid: str | None = None
    component_key: str | None = None
    component_name: str | None = None
    submitter_login: str | None = None


@dataclass(frozen=True, slots=True)
class TaskResult:
    """Outcome payload a worker reports on completion."""

    analysis_uuid: str | None = None


@dataclass(frozen=True, slots=True)
class Organization:
    uuid: str
    key: str
    name: str


@dataclass(frozen=True, slots=True)
class Component:
    uuid: str
    organization_uuid: str
    key: str
    name: str


@dataclass(slots=True)
class QueueEntryView:
    """Readable queue store row."""

    uuid: str
    task_type: str
    component_uuid: str | None
    submitter_login: str | None
    status: QueueStatus
    execution_count: int
    worker_uuid: str | None
    created_at: datetime
    updated_at: datetime


@dataclass(slots=True)
class ActivityView:
    """Readable activity store row."""

    uuid: str
    task_type: str
    component_uuid: str | None
    submitter_login: str | None
    status: ActivityStatus
    execution_count: int
    worker_uuid: str | None
    analysis_uuid: str | None
    error_message: str | None
    error_stacktrace: str | None
    is_last: bool
    submitted_at: datetime
    execution_time_ms: int | None
    created_at: datetime
    updated_at: datetime
