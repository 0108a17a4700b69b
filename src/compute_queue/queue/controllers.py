"""Controllers for queue CLI commands."""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path

from compute_queue.config import Settings
from compute_queue.queue.errors import TaskStateError
from compute_queue.queue.metrics import build_queue_metrics, render_stats_lines
from compute_queue.queue.models import (
    ActivityStatus,
    Component,
    QueueStatus,
    TaskHandle,
    TaskResult,
)
from compute_queue.queue.ports import StaticDefaultOrganizationProvider, Uuid4Factory
from compute_queue.queue.repository import ComponentRepository, QueueRepository
from compute_queue.queue.service import TaskQueueService


@dataclass(slots=True)
class QueueSubmitCommand:
    """CLI input for task submission."""

    db_path: Path | None
    task_type: str
    component_uuid: str | None
    submitter_login: str | None


@dataclass(slots=True)
class QueuePeekCommand:
    """CLI input for claiming one task."""

    db_path: Path | None
    worker_uuid: str


@dataclass(slots=True)
class QueueCompleteCommand:
    """CLI input for recording a task outcome."""

    db_path: Path | None
    uuid: str
    status: str
    analysis_uuid: str | None
    error_message: str | None


@dataclass(slots=True)
class QueueMutateCommand:
    """CLI input for single-task cancel."""

    db_path: Path | None
    uuid: str


@dataclass(slots=True)
class QueueSweepCommand:
    """CLI input for cancel-all / cancel-worn-outs."""

    db_path: Path | None


@dataclass(slots=True)
class QueueListCommand:
    """CLI input for queue listing."""

    db_path: Path | None
    status: str | None


@dataclass(slots=True)
class ActivityListCommand:
    """CLI input for activity listing."""

    db_path: Path | None
    status: str | None
    component_uuid: str | None
    only_last: bool
    limit: int


@dataclass(slots=True)
class QueueStatsCommand:
    """CLI input for queue health stats."""

    db_path: Path | None
    activity_window: int


@dataclass(slots=True)
class ComponentAddCommand:
    """CLI input for component registration."""

    db_path: Path | None
    uuid: str
    key: str
    name: str
    organization_uuid: str | None


@dataclass(slots=True)
class ComponentListCommand:
    db_path: Path | None


class WorkerFailure(Exception):  # noqa: N818
    """Failure reported by a worker through the CLI, stored as the task error."""


class QueueCliController:
    """Coordinates queue mutations and inspection for CLI commands."""

    def submit(self, command: QueueSubmitCommand) -> list[str]:
        with _service(command.db_path) as service:
            task = service.submit(
                service.prepare_submit(
                    command.task_type,
                    component_uuid=command.component_uuid,
                    submitter_login=command.submitter_login,
                ),
            )
        return [f"Task submitted: {_describe_handle(task)}"]

    def peek(self, command: QueuePeekCommand) -> list[str]:
        with _service(command.db_path) as service:
            task = service.peek(command.worker_uuid)
            entry = service.get_entry(task.uuid) if task is not None else None
        if task is None:
            return ["No task available."]
        execution_count = entry.execution_count if entry is not None else "-"
        return [f"Task claimed: {_describe_handle(task)} execution_count={execution_count}"]

    def complete(self, command: QueueCompleteCommand) -> list[str]:
        status = ActivityStatus(command.status.strip().upper())
        error = WorkerFailure(command.error_message) if command.error_message else None
        with _service(command.db_path) as service:
            task = service.find_task(command.uuid)
            if task is None:
                raise TaskStateError(f"Task does not exist anymore: {command.uuid}")
            service.remove(
                task,
                status,
                TaskResult(analysis_uuid=command.analysis_uuid),
                error,
            )
        return [f"Task removed: uuid={command.uuid} status={status.value}"]

    def cancel(self, command: QueueMutateCommand) -> list[str]:
        with _service(command.db_path) as service:
            canceled = service.cancel(command.uuid)
        if not canceled:
            return [f"Task not in queue: {command.uuid}"]
        return [f"Task canceled: {command.uuid}"]

    def cancel_all(self, command: QueueSweepCommand) -> list[str]:
        with _service(command.db_path) as service:
            canceled = service.cancel_all()
        return [f"Pending tasks canceled: {canceled}"]

    def cancel_worn_outs(self, command: QueueSweepCommand) -> list[str]:
        with _service(command.db_path) as service:
            canceled = service.cancel_worn_outs()
        return [f"Worn-out tasks canceled: {canceled}"]

    def list_tasks(self, command: QueueListCommand) -> list[str]:
        status = QueueStatus(command.status.strip().upper()) if command.status else None
        with _service(command.db_path) as service:
            entries = service.list_queue(status=status)

        lines = [f"Tasks: {len(entries)}"]
        for entry in entries:
            lines.append(
                f"  {entry.uuid} type={entry.task_type} status={entry.status.value} "
                f"execution_count={entry.execution_count} worker={entry.worker_uuid or '-'} "
                f"component={entry.component_uuid or '-'} "
                f"created_at={entry.created_at.isoformat()}",
            )
        return lines

    def list_activity(self, command: ActivityListCommand) -> list[str]:
        status = ActivityStatus(command.status.strip().upper()) if command.status else None
        with _service(command.db_path) as service:
            activities = service.list_activity(
                status=status,
                component_uuid=command.component_uuid,
                only_last=command.only_last,
                limit=command.limit,
            )

        lines = [f"Activity: {len(activities)}"]
        for activity in activities:
            lines.append(
                f"  {activity.uuid} type={activity.task_type} status={activity.status.value} "
                f"execution_count={activity.execution_count} "
                f"worker={activity.worker_uuid or '-'} "
                f"component={activity.component_uuid or '-'} "
                f"last={'yes' if activity.is_last else 'no'} "
                f"analysis={activity.analysis_uuid or '-'} "
                f"error={activity.error_message or '-'}",
            )
        return lines

    def stats(self, command: QueueStatsCommand) -> list[str]:
        """Show operator-facing queue health."""

        with _service(command.db_path) as service:
            entries = service.list_queue()
            activities = service.list_activity(limit=command.activity_window)
            max_execution_count = service.max_execution_count

        snapshot = build_queue_metrics(
            entries=entries,
            activities=activities,
            max_execution_count=max_execution_count,
        )
        return render_stats_lines(snapshot=snapshot)


class ComponentCliController:
    """Registers and lists components that tasks can be submitted for."""

    def add(self, command: ComponentAddCommand) -> list[str]:
        settings = Settings.from_env(db_path=command.db_path)
        with _repository(settings) as repository:
            component = ComponentRepository(repository).add_component(
                Component(
                    uuid=command.uuid,
                    organization_uuid=(
                        command.organization_uuid
                        or settings.organization.default_organization_uuid
                    ),
                    key=command.key,
                    name=command.name,
                ),
            )
        return [
            f"Component added: uuid={component.uuid} key={component.key} "
            f"organization={component.organization_uuid}",
        ]

    def list_components(self, command: ComponentListCommand) -> list[str]:
        settings = Settings.from_env(db_path=command.db_path)
        with _repository(settings) as repository:
            components = ComponentRepository(repository).list_components()

        lines = [f"Components: {len(components)}"]
        for component in components:
            lines.append(
                f"  {component.uuid} key={component.key} name={component.name} "
                f"organization={component.organization_uuid}",
            )
        return lines


def _describe_handle(task: TaskHandle) -> str:
    return (
        f"uuid={task.uuid} type={task.task_type} "
        f"organization={task.organization_uuid} "
        f"component={task.component_key or task.component_uuid or '-'} "
        f"submitter={task.submitter_login or '-'}"
    )


@contextmanager
def _service(db_path: Path | None) -> Iterator[TaskQueueService]:
    settings = Settings.from_env(db_path=db_path)
    with _repository(settings) as repository:
        yield TaskQueueService(
            repository,
            uuid_factory=Uuid4Factory(),
            component_resolver=ComponentRepository(repository),
            default_organization_provider=StaticDefaultOrganizationProvider.from_settings(
                settings.organization,
            ),
            max_execution_count=settings.queue.max_execution_count,
            submit_paused=settings.queue.start_submit_paused,
            peek_paused=settings.queue.start_peek_paused,
        )


@contextmanager
def _repository(settings: Settings) -> Iterator[QueueRepository]:
    settings.validate()
    repository = QueueRepository(
        settings.db_path,
        sqlite_busy_timeout_ms=settings.sqlite_busy_timeout_ms,
    )
    repository.init_schema(
        default_organization=StaticDefaultOrganizationProvider.from_settings(
            settings.organization,
        ).get(),
    )
    try:
        yield repository
    finally:
        repository.close()
