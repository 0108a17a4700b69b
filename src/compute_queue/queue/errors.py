"""Exceptions raised by queue operations."""

from __future__ import annotations


class TaskStateError(RuntimeError):
    """Operation conflicts with the current state of a task or the queue."""


class SubmissionPausedError(TaskStateError):
    """Submission gate is closed."""
