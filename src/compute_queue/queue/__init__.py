"""Task queue: queue store, activity store and the service coordinating them."""

from compute_queue.queue.errors import SubmissionPausedError, TaskStateError
from compute_queue.queue.models import (
    ActivityStatus,
    QueueStatus,
    TaskHandle,
    TaskResult,
    TaskSubmission,
)
from compute_queue.queue.repository import ComponentRepository, QueueRepository
from compute_queue.queue.service import TaskQueueService

__all__ = [
    "ActivityStatus",
    "ComponentRepository",
    "QueueRepository",
    "QueueStatus",
    "SubmissionPausedError",
    "TaskHandle",
    "TaskQueueService",
    "TaskResult",
    "TaskStateError",
    "TaskSubmission",
]
