"""CLI entrypoint for compute-queue."""

from collections.abc import Callable
from pathlib import Path

import rich_click as click

from compute_queue import __version__
from compute_queue.config import Settings
from compute_queue.queue.controllers import (
    ActivityListCommand,
    ComponentAddCommand,
    ComponentCliController,
    ComponentListCommand,
    QueueCliController,
    QueueCompleteCommand,
    QueueListCommand,
    QueueMutateCommand,
    QueuePeekCommand,
    QueueStatsCommand,
    QueueSubmitCommand,
    QueueSweepCommand,
)
from compute_queue.queue.errors import TaskStateError

click.rich_click.USE_MARKDOWN = True
QUEUE_CONTROLLER = QueueCliController()
COMPONENT_CONTROLLER = ComponentCliController()


@click.group()
@click.version_option(version=__version__, prog_name="compute-queue")
def compute_queue() -> None:
    """Compute task queue CLI."""

    Settings.from_env().configure_logging()


@compute_queue.group()
def queue() -> None:
    """Task queue commands."""


@compute_queue.group()
def components() -> None:
    """Component registry commands."""


@queue.command("submit")
@click.option("--db-path", type=click.Path(path_type=Path), default=None, help="SQLite DB path.")
@click.option("--type", "task_type", required=True, help="Task type, for example REPORT.")
@click.option("--component-uuid", default=None, help="Optional owning component uuid.")
@click.option("--submitter", "submitter_login", default=None, help="Optional submitter login.")
def queue_submit(
    db_path: Path | None,
    task_type: str,
    component_uuid: str | None,
    submitter_login: str | None,
) -> None:
    """Submit one task to the queue."""

    _emit_from(
        lambda: QUEUE_CONTROLLER.submit(
            QueueSubmitCommand(
                db_path=db_path,
                task_type=task_type,
                component_uuid=component_uuid,
                submitter_login=submitter_login,
            ),
        ),
    )


@queue.command("peek")
@click.option("--db-path", type=click.Path(path_type=Path), default=None, help="SQLite DB path.")
@click.option("--worker-uuid", required=True, help="Identifier of the claiming worker.")
def queue_peek(db_path: Path | None, worker_uuid: str) -> None:
    """Claim the oldest eligible pending task."""

    _emit_from(
        lambda: QUEUE_CONTROLLER.peek(
            QueuePeekCommand(db_path=db_path, worker_uuid=worker_uuid),
        ),
    )


@queue.command("complete")
@click.option("--db-path", type=click.Path(path_type=Path), default=None, help="SQLite DB path.")
@click.option("--uuid", required=True, help="Task uuid.")
@click.option(
    "--status",
    type=click.Choice(["success", "failed", "canceled"], case_sensitive=False),
    required=True,
    help="Terminal outcome.",
)
@click.option("--analysis-uuid", default=None, help="Analysis produced by the task.")
@click.option(
    "--error-message",
    default=None,
    help="Failure message; only allowed with --status failed.",
)
def queue_complete(
    db_path: Path | None,
    uuid: str,
    status: str,
    analysis_uuid: str | None,
    error_message: str | None,
) -> None:
    """Move a queued task to the activity history."""

    _emit_from(
        lambda: QUEUE_CONTROLLER.complete(
            QueueCompleteCommand(
                db_path=db_path,
                uuid=uuid,
                status=status,
                analysis_uuid=analysis_uuid,
                error_message=error_message,
            ),
        ),
    )


@queue.command("cancel")
@click.option("--db-path", type=click.Path(path_type=Path), default=None, help="SQLite DB path.")
@click.option("--uuid", required=True, help="Task uuid.")
def queue_cancel(db_path: Path | None, uuid: str) -> None:
    """Cancel a pending task."""

    _emit_from(lambda: QUEUE_CONTROLLER.cancel(QueueMutateCommand(db_path=db_path, uuid=uuid)))


@queue.command("cancel-all")
@click.option("--db-path", type=click.Path(path_type=Path), default=None, help="SQLite DB path.")
def queue_cancel_all(db_path: Path | None) -> None:
    """Cancel every pending task."""

    _emit_from(lambda: QUEUE_CONTROLLER.cancel_all(QueueSweepCommand(db_path=db_path)))


@queue.command("cancel-worn-outs")
@click.option("--db-path", type=click.Path(path_type=Path), default=None, help="SQLite DB path.")
def queue_cancel_worn_outs(db_path: Path | None) -> None:
    """Cancel pending tasks that exhausted their execution budget."""

    _emit_from(lambda: QUEUE_CONTROLLER.cancel_worn_outs(QueueSweepCommand(db_path=db_path)))


@queue.command("tasks")
@click.option("--db-path", type=click.Path(path_type=Path), default=None, help="SQLite DB path.")
@click.option(
    "--status",
    type=click.Choice(["pending", "in_progress"], case_sensitive=False),
    default=None,
    help="Optional status filter.",
)
def queue_tasks(db_path: Path | None, status: str | None) -> None:
    """List queued tasks in claim order."""

    _emit_from(
        lambda: QUEUE_CONTROLLER.list_tasks(QueueListCommand(db_path=db_path, status=status)),
    )


@queue.command("activity")
@click.option("--db-path", type=click.Path(path_type=Path), default=None, help="SQLite DB path.")
@click.option(
    "--status",
    type=click.Choice(["success", "failed", "canceled"], case_sensitive=False),
    default=None,
    help="Optional status filter.",
)
@click.option("--component-uuid", default=None, help="Optional component filter.")
@click.option(
    "--only-last/--all",
    default=False,
    show_default=True,
    help="Show only the latest outcome per component.",
)
@click.option(
    "--limit",
    type=click.IntRange(min=1, max=1000),
    default=50,
    show_default=True,
    help="Max records to print.",
)
def queue_activity(
    db_path: Path | None,
    status: str | None,
    component_uuid: str | None,
    only_last: bool,
    limit: int,
) -> None:
    """List finished tasks, most recent first."""

    _emit_from(
        lambda: QUEUE_CONTROLLER.list_activity(
            ActivityListCommand(
                db_path=db_path,
                status=status,
                component_uuid=component_uuid,
                only_last=only_last,
                limit=limit,
            ),
        ),
    )


@queue.command("stats")
@click.option("--db-path", type=click.Path(path_type=Path), default=None, help="SQLite DB path.")
@click.option(
    "--activity-window",
    type=click.IntRange(min=1),
    default=1000,
    show_default=True,
    help="How many recent activity records to aggregate.",
)
def queue_stats(db_path: Path | None, activity_window: int) -> None:
    """Show queue health statistics."""

    _emit_from(
        lambda: QUEUE_CONTROLLER.stats(
            QueueStatsCommand(db_path=db_path, activity_window=activity_window),
        ),
    )


@components.command("add")
@click.option("--db-path", type=click.Path(path_type=Path), default=None, help="SQLite DB path.")
@click.option("--uuid", required=True, help="Component uuid.")
@click.option("--key", required=True, help="Unique component key.")
@click.option("--name", required=True, help="Human-readable component name.")
@click.option(
    "--organization-uuid",
    default=None,
    help="Owning organization; defaults to COMPUTE_QUEUE_DEFAULT_ORGANIZATION_UUID.",
)
def components_add(
    db_path: Path | None,
    uuid: str,
    key: str,
    name: str,
    organization_uuid: str | None,
) -> None:
    """Register a component tasks can be submitted for."""

    _emit_from(
        lambda: COMPONENT_CONTROLLER.add(
            ComponentAddCommand(
                db_path=db_path,
                uuid=uuid,
                key=key,
                name=name,
                organization_uuid=organization_uuid,
            ),
        ),
    )


@components.command("list")
@click.option("--db-path", type=click.Path(path_type=Path), default=None, help="SQLite DB path.")
def components_list(db_path: Path | None) -> None:
    """List registered components."""

    _emit_from(lambda: COMPONENT_CONTROLLER.list_components(ComponentListCommand(db_path=db_path)))


def _emit_from(produce: Callable[[], list[str]]) -> None:
    try:
        lines = produce()
    except (TaskStateError, ValueError) as error:
        raise click.ClickException(str(error)) from error
    _emit_lines(lines)


def _emit_lines(lines: list[str]) -> None:
    for line in lines:
        click.echo(line)


if __name__ == "__main__":  # pragma: no cover
    compute_queue()
