"""Operator-facing queue health metrics."""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass

from compute_queue.queue.models import ActivityStatus, ActivityView, QueueEntryView, QueueStatus


@dataclass(slots=True)
class QueueMetricsSnapshot:
    """Aggregated queue and activity metrics used by the stats command."""

    active_status_counts: dict[str, int]
    active_type_status_counts: dict[str, dict[str, int]]
    worn_out_pending_count: int
    terminal_status_counts: dict[str, int]
    activity_count: int
    mean_execution_count: float | None
    failure_rate: float | None


def build_queue_metrics(
    *,
    entries: list[QueueEntryView],
    activities: list[ActivityView],
    max_execution_count: int,
) -> QueueMetricsSnapshot:
    """Build one metrics snapshot from queue and activity views."""

    active_status_counts = Counter[str]({status.value: 0 for status in QueueStatus})
    active_type_status_counts = Counter[tuple[str, str]]()
    worn_out_pending = 0
    for entry in entries:
        active_status_counts[entry.status.value] += 1
        active_type_status_counts[(entry.task_type, entry.status.value)] += 1
        if (
            entry.status == QueueStatus.PENDING
            and entry.execution_count >= max_execution_count
        ):
            worn_out_pending += 1

    terminal_status_counts = Counter[str]({status.value: 0 for status in ActivityStatus})
    for activity in activities:
        terminal_status_counts[activity.status.value] += 1

    mean_execution_count = (
        sum(activity.execution_count for activity in activities) / len(activities)
        if activities
        else None
    )
    finished = (
        terminal_status_counts[ActivityStatus.SUCCESS.value]
        + terminal_status_counts[ActivityStatus.FAILED.value]
    )
    failure_rate = (
        terminal_status_counts[ActivityStatus.FAILED.value] / finished if finished else None
    )

    by_type: dict[str, dict[str, int]] = {}
    for (task_type, status), count in sorted(active_type_status_counts.items()):
        by_type.setdefault(task_type, {})[status] = count

    return QueueMetricsSnapshot(
        active_status_counts=dict(active_status_counts),
        active_type_status_counts=by_type,
        worn_out_pending_count=worn_out_pending,
        terminal_status_counts=dict(terminal_status_counts),
        activity_count=len(activities),
        mean_execution_count=mean_execution_count,
        failure_rate=failure_rate,
    )


def render_stats_lines(*, snapshot: QueueMetricsSnapshot) -> list[str]:
    lines = [
        "Queue: "
        + " ".join(f"{status}={count}" for status, count in snapshot.active_status_counts.items()),
        f"Worn-out pending: {snapshot.worn_out_pending_count}",
    ]
    for task_type, counts in snapshot.active_type_status_counts.items():
        lines.append(
            f"  {task_type}: "
            + " ".join(f"{status}={count}" for status, count in sorted(counts.items())),
        )
    lines.append(
        f"Activity ({snapshot.activity_count} records): "
        + " ".join(
            f"{status}={count}" for status, count in snapshot.terminal_status_counts.items()
        ),
    )
    lines.append(f"Mean execution count: {_format_optional(snapshot.mean_execution_count)}")
    lines.append(f"Failure rate: {_format_rate(snapshot.failure_rate)}")
    return lines


def _format_optional(value: float | None) -> str:
    if value is None:
        return "-"
    return f"{value:.2f}"


def _format_rate(value: float | None) -> str:
    if value is None:
        return "-"
    return f"{value * 100:.1f}%"
