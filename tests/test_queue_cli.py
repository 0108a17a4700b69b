from __future__ import annotations

import re
from pathlib import Path

import allure
import pytest
from click.testing import CliRunner, Result

from compute_queue.main import compute_queue
from compute_queue.queue.models import ActivityStatus, QueueStatus
from compute_queue.queue.repository import QueueRepository

pytestmark = [
    allure.epic("Compute Queue"),
    allure.feature("CLI Ops"),
]


@pytest.fixture(autouse=True)
def _isolated_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in (
        "COMPUTE_QUEUE_DB_PATH",
        "COMPUTE_QUEUE_MAX_EXECUTION_COUNT",
        "COMPUTE_QUEUE_SUBMIT_PAUSED",
        "COMPUTE_QUEUE_PEEK_PAUSED",
        "COMPUTE_QUEUE_DEFAULT_ORGANIZATION_UUID",
        "COMPUTE_QUEUE_LOG_LEVEL",
    ):
        monkeypatch.delenv(name, raising=False)


def _invoke(runner: CliRunner, db_path: Path, *args: str) -> Result:
    group, command, *rest = args
    return runner.invoke(compute_queue, [group, command, "--db-path", str(db_path), *rest])


def _submitted_uuid(output: str) -> str:
    match = re.search(r"Task submitted: uuid=(\S+)", output)
    assert match is not None, output
    return match.group(1)


def test_cli_submit_peek_complete_and_inspect(tmp_path: Path) -> None:
    db_path = tmp_path / "cli.db"
    runner = CliRunner()

    added = _invoke(
        runner,
        db_path,
        "components",
        "add",
        "--uuid",
        "PROJECT_1",
        "--key",
        "my-project",
        "--name",
        "My Project",
    )
    assert added.exit_code == 0, added.output
    assert "Component added: uuid=PROJECT_1 key=my-project organization=default-organization" in (
        added.output
    )

    submit = _invoke(
        runner,
        db_path,
        "queue",
        "submit",
        "--type",
        "REPORT",
        "--component-uuid",
        "PROJECT_1",
        "--submitter",
        "rob",
    )
    assert submit.exit_code == 0, submit.output
    assert "component=my-project submitter=rob" in submit.output
    task_uuid = _submitted_uuid(submit.output)

    tasks = _invoke(runner, db_path, "queue", "tasks", "--status", "pending")
    assert tasks.exit_code == 0
    assert "Tasks: 1" in tasks.output
    assert f"{task_uuid} type=REPORT status=PENDING execution_count=0" in tasks.output

    peek = _invoke(runner, db_path, "queue", "peek", "--worker-uuid", "worker-1")
    assert peek.exit_code == 0, peek.output
    assert f"Task claimed: uuid={task_uuid}" in peek.output
    assert "execution_count=1" in peek.output

    empty = _invoke(runner, db_path, "queue", "peek", "--worker-uuid", "worker-2")
    assert empty.exit_code == 0
    assert "No task available." in empty.output

    complete = _invoke(
        runner,
        db_path,
        "queue",
        "complete",
        "--uuid",
        task_uuid,
        "--status",
        "failed",
        "--error-message",
        "analysis crashed",
    )
    assert complete.exit_code == 0, complete.output
    assert f"Task removed: uuid={task_uuid} status=FAILED" in complete.output

    activity = _invoke(runner, db_path, "queue", "activity", "--only-last")
    assert activity.exit_code == 0
    assert "Activity: 1" in activity.output
    assert "status=FAILED execution_count=1 worker=worker-1" in activity.output
    assert "last=yes" in activity.output
    assert "error=analysis crashed" in activity.output

    repository = QueueRepository(db_path)
    stored = repository.get_activity(task_uuid)
    assert stored is not None
    assert stored.status == ActivityStatus.FAILED
    assert stored.error_stacktrace is not None
    assert "WorkerFailure: analysis crashed" in stored.error_stacktrace
    repository.close()


def test_cli_complete_rejects_error_for_successful_task(tmp_path: Path) -> None:
    db_path = tmp_path / "cli-complete.db"
    runner = CliRunner()
    task_uuid = _submitted_uuid(_invoke(runner, db_path, "queue", "submit", "--type", "X").output)

    result = _invoke(
        runner,
        db_path,
        "queue",
        "complete",
        "--uuid",
        task_uuid,
        "--status",
        "success",
        "--error-message",
        "nope",
    )

    assert result.exit_code == 1
    assert "Error can be provided only when status is FAILED" in result.output


def test_cli_complete_reports_missing_task(tmp_path: Path) -> None:
    result = _invoke(
        CliRunner(),
        tmp_path / "cli-missing.db",
        "queue",
        "complete",
        "--uuid",
        "ghost",
        "--status",
        "success",
    )

    assert result.exit_code == 1
    assert "Task does not exist anymore: ghost" in result.output


def test_cli_cancel_commands(tmp_path: Path) -> None:
    db_path = tmp_path / "cli-cancel.db"
    runner = CliRunner()
    uuids = [
        _submitted_uuid(_invoke(runner, db_path, "queue", "submit", "--type", "X").output)
        for _ in range(4)
    ]

    claimed = _invoke(runner, db_path, "queue", "peek", "--worker-uuid", "w")
    assert f"uuid={uuids[0]}" in claimed.output

    in_progress = _invoke(runner, db_path, "queue", "cancel", "--uuid", uuids[0])
    assert in_progress.exit_code == 1
    assert "Task is in progress and can't be canceled" in in_progress.output

    canceled = _invoke(runner, db_path, "queue", "cancel", "--uuid", uuids[1])
    assert canceled.exit_code == 0
    assert f"Task canceled: {uuids[1]}" in canceled.output

    unknown = _invoke(runner, db_path, "queue", "cancel", "--uuid", "unknown")
    assert unknown.exit_code == 0
    assert "Task not in queue: unknown" in unknown.output

    worn_outs = _invoke(runner, db_path, "queue", "cancel-worn-outs")
    assert worn_outs.exit_code == 0
    assert "Worn-out tasks canceled: 0" in worn_outs.output

    cancel_all = _invoke(runner, db_path, "queue", "cancel-all")
    assert cancel_all.exit_code == 0
    assert "Pending tasks canceled: 2" in cancel_all.output

    repository = QueueRepository(db_path)
    remaining = repository.list_entries()
    assert [entry.uuid for entry in remaining] == [uuids[0]]
    assert remaining[0].status == QueueStatus.IN_PROGRESS
    repository.close()


def test_cli_submit_is_rejected_when_started_paused(
    tmp_path: Path,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    monkeypatch.setenv("COMPUTE_QUEUE_SUBMIT_PAUSED", "true")

    result = _invoke(CliRunner(), tmp_path / "cli-paused.db", "queue", "submit", "--type", "X")

    assert result.exit_code == 1
    assert "does not currently accept new tasks" in result.output


def test_cli_peek_returns_nothing_when_started_paused(
    tmp_path: Path,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    db_path = tmp_path / "cli-peek-paused.db"
    runner = CliRunner()
    _invoke(runner, db_path, "queue", "submit", "--type", "X")
    monkeypatch.setenv("COMPUTE_QUEUE_PEEK_PAUSED", "1")

    result = _invoke(runner, db_path, "queue", "peek", "--worker-uuid", "w")

    assert result.exit_code == 0
    assert "No task available." in result.output


def test_cli_stats_reports_queue_and_activity(tmp_path: Path) -> None:
    db_path = tmp_path / "cli-stats.db"
    runner = CliRunner()
    for _ in range(3):
        _invoke(runner, db_path, "queue", "submit", "--type", "REPORT")
    claimed = _invoke(runner, db_path, "queue", "peek", "--worker-uuid", "w")
    claimed_uuid = re.search(r"uuid=(\S+)", claimed.output)
    assert claimed_uuid is not None
    _invoke(
        runner,
        db_path,
        "queue",
        "complete",
        "--uuid",
        claimed_uuid.group(1),
        "--status",
        "success",
        "--analysis-uuid",
        "A1",
    )
    _invoke(runner, db_path, "queue", "peek", "--worker-uuid", "w")

    stats = _invoke(runner, db_path, "queue", "stats")

    assert stats.exit_code == 0, stats.output
    assert "Queue: PENDING=1 IN_PROGRESS=1" in stats.output
    assert "Worn-out pending: 0" in stats.output
    assert "REPORT: IN_PROGRESS=1 PENDING=1" in stats.output
    assert "Activity (1 records): SUCCESS=1 FAILED=0 CANCELED=0" in stats.output
    assert "Failure rate: 0.0%" in stats.output


def test_cli_components_list_and_unknown_organization(tmp_path: Path) -> None:
    db_path = tmp_path / "cli-components.db"
    runner = CliRunner()

    missing_org = _invoke(
        runner,
        db_path,
        "components",
        "add",
        "--uuid",
        "c1",
        "--key",
        "k1",
        "--name",
        "C1",
        "--organization-uuid",
        "nope",
    )
    assert missing_org.exit_code == 1
    assert "Organization not found: nope" in missing_org.output

    _invoke(runner, db_path, "components", "add", "--uuid", "c2", "--key", "k2", "--name", "C2")
    listed = _invoke(runner, db_path, "components", "list")

    assert listed.exit_code == 0
    assert "Components: 1" in listed.output
    assert "c2 key=k2 name=C2 organization=default-organization" in listed.output


def test_cli_components_add_reports_duplicate_key(tmp_path: Path) -> None:
    db_path = tmp_path / "cli-components-duplicate.db"
    runner = CliRunner()
    _invoke(runner, db_path, "components", "add", "--uuid", "c1", "--key", "k1", "--name", "C1")

    duplicate = _invoke(
        runner,
        db_path,
        "components",
        "add",
        "--uuid",
        "c2",
        "--key",
        "k1",
        "--name",
        "C2",
    )

    assert duplicate.exit_code == 1
    assert "Component already exists: uuid=c2 key=k1" in duplicate.output
    assert "Traceback" not in duplicate.output


def test_cli_complete_keeps_component_details_of_stored_task(tmp_path: Path) -> None:
    db_path = tmp_path / "cli-complete-component.db"
    runner = CliRunner()
    _invoke(runner, db_path, "components", "add", "--uuid", "P1", "--key", "p1", "--name", "P1")
    task_uuid = _submitted_uuid(
        _invoke(runner, db_path, "queue", "submit", "--type", "X", "--component-uuid", "P1").output,
    )

    result = _invoke(runner, db_path, "queue", "complete", "--uuid", task_uuid, "--status", "success")

    assert result.exit_code == 0, result.output
    repository = QueueRepository(db_path)
    activity = repository.get_activity(task_uuid)
    assert activity is not None
    assert activity.component_uuid == "P1"
    assert activity.is_last is True
    repository.close()
