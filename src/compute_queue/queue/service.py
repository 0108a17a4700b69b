"""Task queue use cases: submission, claiming, completion and cancellation."""

from __future__ import annotations

import logging
import threading
import traceback
from collections.abc import Callable, Iterable
from datetime import datetime

from compute_queue.queue.errors import SubmissionPausedError, TaskStateError
from compute_queue.queue.models import (
    ActivityStatus,
    ActivityView,
    Component,
    QueueEntryView,
    QueueStatus,
    TaskHandle,
    TaskResult,
    TaskSubmission,
)
from compute_queue.queue.ports import (
    ComponentResolver,
    DefaultOrganizationProvider,
    UuidFactory,
)
from compute_queue.queue.repository import QueueRepository
from compute_queue.queue.status import QueueStatusCounters, QueueStatusSnapshot
from compute_queue.storage.common import utc_now

logger = logging.getLogger(__name__)

DEFAULT_MAX_EXECUTION_COUNT = 2


class TaskQueueService:
    """Authoritative task queue shared by submitters and workers.

    A task is claimable while it is PENDING and has been claimed fewer than
    ``max_execution_count`` times. Completion and cancellation archive the
    queue row into the activity store in a single transaction. Both
    administrative gates belong to the instance and reset with it.
    """

    def __init__(  # noqa: PLR0913
        self,
        repository: QueueRepository,
        *,
        uuid_factory: UuidFactory,
        component_resolver: ComponentResolver,
        default_organization_provider: DefaultOrganizationProvider,
        max_execution_count: int = DEFAULT_MAX_EXECUTION_COUNT,
        clock: Callable[[], datetime] = utc_now,
        status: QueueStatusCounters | None = None,
        submit_paused: bool = False,
        peek_paused: bool = False,
    ) -> None:
        if max_execution_count < 1:
            raise ValueError(f"max_execution_count must be >= 1, got {max_execution_count}")
        self.repository = repository
        self.uuid_factory = uuid_factory
        self.component_resolver = component_resolver
        self.default_organization_provider = default_organization_provider
        self.max_execution_count = max_execution_count
        self.clock = clock
        self.status = status or QueueStatusCounters()
        self._submit_paused = threading.Event()
        self._peek_paused = threading.Event()
        if submit_paused:
            self._submit_paused.set()
        if peek_paused:
            self._peek_paused.set()

    def prepare_submit(
        self,
        task_type: str,
        *,
        component_uuid: str | None = None,
        submitter_login: str | None = None,
    ) -> TaskSubmission:
        """Build a submission with a freshly assigned task uuid."""

        return TaskSubmission(
            uuid=self.uuid_factory.create(),
            task_type=task_type,
            component_uuid=component_uuid,
            submitter_login=submitter_login,
        )

    def submit(self, submission: TaskSubmission) -> TaskHandle:
        """Enqueue one task."""

        self._ensure_submit_open()
        return self._insert(submission)

    def mass_submit(self, submissions: Iterable[TaskSubmission]) -> list[TaskHandle]:
        """Enqueue tasks in order, each in its own transaction."""

        self._ensure_submit_open()
        return [self._insert(submission) for submission in submissions]

    def peek(self, worker_uuid: str) -> TaskHandle | None:
        """Claim the oldest eligible task for ``worker_uuid``, if any."""

        if not worker_uuid:
            raise ValueError("worker_uuid can't be empty")
        if self.is_peek_paused():
            return None

        entry = self.repository.claim_next_pending(
            worker_uuid=worker_uuid,
            max_execution_count=self.max_execution_count,
            now=self.clock(),
        )
        if entry is None:
            return None

        self.status.add_in_progress()
        logger.info(
            "Task claimed: uuid=%s type=%s worker=%s execution_count=%d",
            entry.uuid,
            entry.task_type,
            worker_uuid,
            entry.execution_count,
        )
        return self._to_handle(
            uuid=entry.uuid,
            task_type=entry.task_type,
            component_uuid=entry.component_uuid,
            submitter_login=entry.submitter_login,
            component=self._resolve_component(entry.component_uuid),
        )

    def remove(
        self,
        task: TaskHandle,
        status: ActivityStatus,
        result: TaskResult | None = None,
        error: BaseException | None = None,
    ) -> None:
        """Archive a task with its terminal outcome; fails if it is no longer queued."""

        status = ActivityStatus(status)
        if error is not None and status != ActivityStatus.FAILED:
            raise ValueError("Error can be provided only when status is FAILED")

        while True:
            entry = self.repository.get_entry(task.uuid)
            if entry is None:
                raise TaskStateError(f"Task does not exist anymore: {task.uuid}")
            activity = self._archive(
                entry,
                status=status,
                analysis_uuid=result.analysis_uuid if result is not None else None,
                error=error,
            )
            if activity is not None:
                break
            logger.debug("Task %s changed while being removed, rereading", task.uuid)

        self._record_outcome(entry, activity)
        logger.info(
            "Task removed: uuid=%s status=%s execution_count=%d",
            activity.uuid,
            activity.status.value,
            activity.execution_count,
        )

    def cancel(self, uuid: str) -> bool:
        """Cancel a pending task. Returns False when the task is not queued."""

        while True:
            entry = self.repository.get_entry(uuid)
            if entry is None:
                return False
            if entry.status == QueueStatus.IN_PROGRESS:
                raise TaskStateError(f"Task is in progress and can't be canceled [uuid={uuid}]")
            if self._cancel_pending(entry):
                return True

    def cancel_all(self) -> int:
        """Cancel every pending task; in-progress tasks are left alone."""

        canceled = sum(
            1
            for entry in self.repository.list_entries(status=QueueStatus.PENDING)
            if self._cancel_pending(entry)
        )
        logger.info("Canceled %d pending tasks", canceled)
        return canceled

    def cancel_worn_outs(self) -> int:
        """Cancel pending tasks that exhausted their execution budget."""

        canceled = sum(
            1
            for entry in self.repository.list_entries(
                status=QueueStatus.PENDING,
                min_execution_count=self.max_execution_count,
            )
            if self._cancel_pending(entry)
        )
        if canceled:
            logger.info("Canceled %d worn-out tasks", canceled)
        return canceled

    def pause_submit(self) -> None:
        self._submit_paused.set()
        logger.info("Task submission paused")

    def resume_submit(self) -> None:
        self._submit_paused.clear()
        logger.info("Task submission resumed")

    def is_submit_paused(self) -> bool:
        return self._submit_paused.is_set()

    def pause_peek(self) -> None:
        self._peek_paused.set()
        logger.info("Task claiming paused")

    def resume_peek(self) -> None:
        self._peek_paused.clear()
        logger.info("Task claiming resumed")

    def is_peek_paused(self) -> bool:
        return self._peek_paused.is_set()

    def get_entry(self, uuid: str) -> QueueEntryView | None:
        return self.repository.get_entry(uuid)

    def find_task(self, uuid: str) -> TaskHandle | None:
        """Handle of a queued task rebuilt from its stored entry, None when not queued."""

        entry = self.repository.get_entry(uuid)
        if entry is None:
            return None
        return self._to_handle(
            uuid=entry.uuid,
            task_type=entry.task_type,
            component_uuid=entry.component_uuid,
            submitter_login=entry.submitter_login,
            component=self._resolve_component(entry.component_uuid),
        )

    def get_activity(self, uuid: str) -> ActivityView | None:
        return self.repository.get_activity(uuid)

    def list_queue(self, *, status: QueueStatus | None = None) -> list[QueueEntryView]:
        return self.repository.list_entries(status=status)

    def list_activity(
        self,
        *,
        status: ActivityStatus | None = None,
        component_uuid: str | None = None,
        only_last: bool = False,
        limit: int = 50,
    ) -> list[ActivityView]:
        return self.repository.list_activity(
            status=status,
            component_uuid=component_uuid,
            only_last=only_last,
            limit=limit,
        )

    def queue_status(self) -> QueueStatusSnapshot:
        """Counters of this process with the current persisted pending count."""

        pending = self.repository.count_entries_by_status()[QueueStatus.PENDING]
        return self.status.snapshot(pending_count=pending)

    def _ensure_submit_open(self) -> None:
        if self.is_submit_paused():
            raise SubmissionPausedError("Compute queue does not currently accept new tasks")

    def _insert(self, submission: TaskSubmission) -> TaskHandle:
        if not submission.uuid:
            raise ValueError("Submission uuid can't be empty")
        if not submission.task_type:
            raise ValueError("Submission task_type can't be empty")

        component = self._resolve_component(submission.component_uuid)
        self.repository.insert_entry(submission, now=self.clock())
        self.status.add_received()
        logger.info(
            "Task submitted: uuid=%s type=%s component=%s",
            submission.uuid,
            submission.task_type,
            submission.component_uuid or "-",
        )
        return self._to_handle(
            uuid=submission.uuid,
            task_type=submission.task_type,
            component_uuid=submission.component_uuid,
            submitter_login=submission.submitter_login,
            component=component,
        )

    def _cancel_pending(self, entry: QueueEntryView) -> bool:
        activity = self._archive(
            entry,
            status=ActivityStatus.CANCELED,
            analysis_uuid=None,
            error=None,
        )
        if activity is None:
            return False
        logger.info("Task canceled: uuid=%s execution_count=%d", entry.uuid, entry.execution_count)
        return True

    def _archive(
        self,
        entry: QueueEntryView,
        *,
        status: ActivityStatus,
        analysis_uuid: str | None,
        error: BaseException | None,
    ) -> ActivityView | None:
        now = self.clock()
        execution_time_ms = (
            _elapsed_ms(entry.updated_at, now) if entry.status == QueueStatus.IN_PROGRESS else None
        )
        return self.repository.archive_entry(
            entry,
            status=status,
            analysis_uuid=analysis_uuid,
            error_message=(str(error) or None) if error is not None else None,
            error_stacktrace=_render_stacktrace(error) if error is not None else None,
            execution_time_ms=execution_time_ms,
            now=now,
        )

    def _record_outcome(self, entry: QueueEntryView, activity: ActivityView) -> None:
        if entry.status != QueueStatus.IN_PROGRESS:
            return
        processing_time_ms = activity.execution_time_ms or 0
        if activity.status == ActivityStatus.SUCCESS:
            self.status.add_success(processing_time_ms)
        elif activity.status == ActivityStatus.FAILED:
            self.status.add_error(processing_time_ms)
        else:
            self.status.release_in_progress()

    def _resolve_component(self, component_uuid: str | None) -> Component | None:
        if component_uuid is None:
            return None
        return self.component_resolver.find_by_uuid(component_uuid)

    def _to_handle(
        self,
        *,
        uuid: str,
        task_type: str,
        component_uuid: str | None,
        submitter_login: str | None,
        component: Component | None,
    ) -> TaskHandle:
        if component is None:
            return TaskHandle(
                organization_uuid=self.default_organization_provider.get().uuid,
                uuid=uuid,
                task_type=task_type,
                component_uuid=component_uuid,
                submitter_login=submitter_login,
            )
        return TaskHandle(
            organization_uuid=component.organization_uuid,
            uuid=uuid,
            task_type=task_type,
            component_uuid=component_uuid,
            component_key=component.key,
            component_name=component.name,
            submitter_login=submitter_login,
        )


def _elapsed_ms(start: datetime, end: datetime) -> int:
    return max(0, int((end - start).total_seconds() * 1000))


def _render_stacktrace(error: BaseException) -> str:
    return "".join(traceback.format_exception(type(error), error, error.__traceback__))
