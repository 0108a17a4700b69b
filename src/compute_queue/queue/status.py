"""In-process queue activity counters for monitoring."""

from __future__ import annotations

import threading
from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class QueueStatusSnapshot:
    """Point-in-time copy of the counters plus the persisted pending count."""

    received_count: int
    pending_count: int
    in_progress_count: int
    success_count: int
    error_count: int
    processing_time_ms: int


class QueueStatusCounters:
    """Thread-safe counters updated by the queue service.

    Counts cover the lifetime of this process only; ``pending_count`` is read
    from the queue store when a snapshot is taken.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._received = 0
        self._in_progress = 0
        self._success = 0
        self._error = 0
        self._processing_time_ms = 0

    def add_received(self, count: int = 1) -> None:
        if count < 0:
            raise ValueError(f"Received count must be >= 0, got {count}")
        with self._lock:
            self._received += count

    def add_in_progress(self) -> None:
        with self._lock:
            self._in_progress += 1

    def add_success(self, processing_time_ms: int) -> None:
        with self._lock:
            self._finish(processing_time_ms)
            self._success += 1

    def add_error(self, processing_time_ms: int) -> None:
        with self._lock:
            self._finish(processing_time_ms)
            self._error += 1

    def release_in_progress(self) -> None:
        """Forget a claimed task that ended without a success or error outcome."""

        with self._lock:
            self._in_progress = max(0, self._in_progress - 1)

    def snapshot(self, *, pending_count: int) -> QueueStatusSnapshot:
        with self._lock:
            return QueueStatusSnapshot(
                received_count=self._received,
                pending_count=pending_count,
                in_progress_count=self._in_progress,
                success_count=self._success,
                error_count=self._error,
                processing_time_ms=self._processing_time_ms,
            )

    def _finish(self, processing_time_ms: int) -> None:
        if processing_time_ms < 0:
            raise ValueError(f"Processing time must be >= 0, got {processing_time_ms}")
        self._in_progress = max(0, self._in_progress - 1)
        self._processing_time_ms += processing_time_ms
