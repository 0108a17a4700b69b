"""Persistent queue and activity stores backed by SQLModel + SQLite."""

from __future__ import annotations

import logging
from datetime import datetime
from pathlib import Path

from sqlalchemy import delete as sa_delete
from sqlalchemy import func
from sqlalchemy import update as sa_update
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, col, select

from compute_queue.queue.models import (
    ActivityStatus,
    ActivityView,
    Component,
    Organization,
    QueueEntryView,
    QueueStatus,
    TaskSubmission,
)
from compute_queue.storage import sqlmodel_models as tables
from compute_queue.storage.alembic_runner import upgrade_head
from compute_queue.storage.common import (
    build_sqlite_engine,
    to_db_datetime,
    to_utc_aware_datetime,
    utc_now,
)

logger = logging.getLogger(__name__)


class QueueRepository:
    """Queue store (unfinished tasks) and activity store (terminal outcomes).

    A task uuid lives in exactly one of the two tables. Every mutation of a
    queue row is a conditional statement on the state that was read, so
    concurrent callers touching the same uuid observe the read-decide-mutate
    sequence as atomic without holding any queue-wide lock.
    """

    def __init__(self, db_path: Path, *, sqlite_busy_timeout_ms: int = 5_000) -> None:
        self.db_path = db_path
        self.engine = build_sqlite_engine(db_path=db_path, busy_timeout_ms=sqlite_busy_timeout_ms)

    def close(self) -> None:
        """Close underlying DB resources."""

        self.engine.dispose()

    def init_schema(self, *, default_organization: Organization | None = None) -> None:
        """Run schema migrations and ensure the default organization exists."""

        upgrade_head(self.db_path)
        if default_organization is not None:
            ComponentRepository(self).ensure_organization(default_organization)

    def insert_entry(self, submission: TaskSubmission, *, now: datetime) -> QueueEntryView:
        """Create a PENDING queue row that has never been claimed."""

        with Session(self.engine) as session:
            row = tables.QueueEntry(
                uuid=submission.uuid,
                task_type=submission.task_type,
                component_uuid=submission.component_uuid,
                submitter_login=submission.submitter_login,
                status=QueueStatus.PENDING.value,
                execution_count=0,
                worker_uuid=None,
                created_at=to_db_datetime(now),
                updated_at=to_db_datetime(now),
            )
            session.add(row)
            session.commit()
            session.refresh(row)
            return _to_entry_view(row)

    def claim_next_pending(
        self,
        *,
        worker_uuid: str,
        max_execution_count: int,
        now: datetime,
    ) -> QueueEntryView | None:
        """Atomically move the oldest eligible PENDING row to IN_PROGRESS."""

        while True:
            with Session(self.engine) as session:
                candidate = session.exec(
                    select(tables.QueueEntry)
                    .where(
                        tables.QueueEntry.status == QueueStatus.PENDING.value,
                        tables.QueueEntry.execution_count < max_execution_count,
                    )
                    .order_by(
                        col(tables.QueueEntry.created_at).asc(),
                        col(tables.QueueEntry.uuid).asc(),
                    )
                    .limit(1),
                ).one_or_none()
                if candidate is None:
                    return None

                candidate_uuid = candidate.uuid
                result = session.exec(
                    sa_update(tables.QueueEntry)
                    .where(
                        col(tables.QueueEntry.uuid) == candidate_uuid,
                        col(tables.QueueEntry.status) == QueueStatus.PENDING.value,
                        col(tables.QueueEntry.execution_count) == candidate.execution_count,
                    )
                    .values(
                        status=QueueStatus.IN_PROGRESS.value,
                        worker_uuid=worker_uuid,
                        execution_count=candidate.execution_count + 1,
                        updated_at=to_db_datetime(now),
                    ),
                )
                if result.rowcount != 1:
                    session.rollback()
                    logger.debug("Lost claim race on task %s, reselecting", candidate_uuid)
                    continue

                claimed = session.exec(
                    select(tables.QueueEntry)
                    .where(tables.QueueEntry.uuid == candidate_uuid)
                    .execution_options(populate_existing=True),
                ).one()
                view = _to_entry_view(claimed)
                session.commit()
                return view

    def archive_entry(  # noqa: PLR0913
        self,
        entry: QueueEntryView,
        *,
        status: ActivityStatus,
        analysis_uuid: str | None,
        error_message: str | None,
        error_stacktrace: str | None,
        execution_time_ms: int | None,
        now: datetime,
    ) -> ActivityView | None:
        """Delete the queue row as it was read and insert its activity record.

        Returns None without side effects when the row no longer matches
        ``entry`` (claimed, archived or otherwise changed concurrently).
        """

        with Session(self.engine) as session:
            worker_filter = (
                col(tables.QueueEntry.worker_uuid).is_(None)
                if entry.worker_uuid is None
                else col(tables.QueueEntry.worker_uuid) == entry.worker_uuid
            )
            result = session.exec(
                sa_delete(tables.QueueEntry).where(
                    col(tables.QueueEntry.uuid) == entry.uuid,
                    col(tables.QueueEntry.status) == entry.status.value,
                    col(tables.QueueEntry.execution_count) == entry.execution_count,
                    worker_filter,
                ),
            )
            if result.rowcount != 1:
                session.rollback()
                return None

            if entry.component_uuid is not None:
                session.exec(
                    sa_update(tables.ActivityRecord)
                    .where(
                        col(tables.ActivityRecord.component_uuid) == entry.component_uuid,
                        col(tables.ActivityRecord.is_last).is_(True),
                    )
                    .values(is_last=False, updated_at=to_db_datetime(now)),
                )

            record = tables.ActivityRecord(
                uuid=entry.uuid,
                task_type=entry.task_type,
                component_uuid=entry.component_uuid,
                submitter_login=entry.submitter_login,
                status=status.value,
                execution_count=entry.execution_count,
                worker_uuid=entry.worker_uuid,
                analysis_uuid=analysis_uuid,
                error_message=error_message,
                error_stacktrace=error_stacktrace,
                is_last=True,
                submitted_at=to_db_datetime(entry.created_at),
                execution_time_ms=execution_time_ms,
                created_at=to_db_datetime(now),
                updated_at=to_db_datetime(now),
            )
            session.add(record)
            session.commit()
            session.refresh(record)
            return _to_activity_view(record)

    def get_entry(self, uuid: str) -> QueueEntryView | None:
        with Session(self.engine) as session:
            row = session.exec(
                select(tables.QueueEntry).where(tables.QueueEntry.uuid == uuid),
            ).one_or_none()
            return _to_entry_view(row) if row is not None else None

    def get_activity(self, uuid: str) -> ActivityView | None:
        with Session(self.engine) as session:
            row = session.exec(
                select(tables.ActivityRecord).where(tables.ActivityRecord.uuid == uuid),
            ).one_or_none()
            return _to_activity_view(row) if row is not None else None

    def list_entries(
        self,
        *,
        status: QueueStatus | None = None,
        min_execution_count: int | None = None,
        limit: int | None = None,
    ) -> list[QueueEntryView]:
        """List queue rows in claim order (oldest first, uuid as tie-break)."""

        statement = select(tables.QueueEntry).order_by(
            col(tables.QueueEntry.created_at).asc(),
            col(tables.QueueEntry.uuid).asc(),
        )
        if status is not None:
            statement = statement.where(tables.QueueEntry.status == status.value)
        if min_execution_count is not None:
            statement = statement.where(tables.QueueEntry.execution_count >= min_execution_count)
        if limit is not None:
            statement = statement.limit(limit)
        with Session(self.engine) as session:
            rows = session.exec(statement).all()
            return [_to_entry_view(row) for row in rows]

    def list_activity(
        self,
        *,
        status: ActivityStatus | None = None,
        component_uuid: str | None = None,
        only_last: bool = False,
        limit: int = 50,
    ) -> list[ActivityView]:
        """List most recent activity records first."""

        statement = (
            select(tables.ActivityRecord)
            .order_by(
                col(tables.ActivityRecord.created_at).desc(),
                col(tables.ActivityRecord.uuid).asc(),
            )
            .limit(limit)
        )
        if status is not None:
            statement = statement.where(tables.ActivityRecord.status == status.value)
        if component_uuid is not None:
            statement = statement.where(tables.ActivityRecord.component_uuid == component_uuid)
        if only_last:
            statement = statement.where(col(tables.ActivityRecord.is_last).is_(True))
        with Session(self.engine) as session:
            rows = session.exec(statement).all()
            return [_to_activity_view(row) for row in rows]

    def count_entries_by_status(self) -> dict[QueueStatus, int]:
        with Session(self.engine) as session:
            rows = session.exec(
                select(tables.QueueEntry.status, func.count()).group_by(tables.QueueEntry.status),
            ).all()
        counts = {status: 0 for status in QueueStatus}
        for status, count in rows:
            counts[QueueStatus(status)] = int(count)
        return counts

    def count_activity_by_status(self) -> dict[ActivityStatus, int]:
        with Session(self.engine) as session:
            rows = session.exec(
                select(tables.ActivityRecord.status, func.count()).group_by(
                    tables.ActivityRecord.status,
                ),
            ).all()
        counts = {status: 0 for status in ActivityStatus}
        for status, count in rows:
            counts[ActivityStatus(status)] = int(count)
        return counts


class ComponentRepository:
    """Organizations and components that own submitted tasks."""

    def __init__(self, repository: QueueRepository) -> None:
        self.engine = repository.engine

    def ensure_organization(self, organization: Organization) -> None:
        with Session(self.engine) as session:
            row = session.exec(
                select(tables.Organization).where(tables.Organization.uuid == organization.uuid),
            ).one_or_none()
            if row is not None:
                return
            session.add(
                tables.Organization(
                    uuid=organization.uuid,
                    key=organization.key,
                    name=organization.name,
                    created_at=utc_now(),
                ),
            )
            session.commit()

    def add_component(self, component: Component) -> Component:
        with Session(self.engine) as session:
            organization = session.exec(
                select(tables.Organization).where(
                    tables.Organization.uuid == component.organization_uuid,
                ),
            ).one_or_none()
            if organization is None:
                raise ValueError(f"Organization not found: {component.organization_uuid}")
            session.add(
                tables.Component(
                    uuid=component.uuid,
                    organization_uuid=component.organization_uuid,
                    key=component.key,
                    name=component.name,
                    created_at=utc_now(),
                ),
            )
            try:
                session.commit()
            except IntegrityError as error:
                session.rollback()
                raise ValueError(
                    f"Component already exists: uuid={component.uuid} key={component.key}",
                ) from error
        return component

    def find_by_uuid(self, uuid: str) -> Component | None:
        with Session(self.engine) as session:
            row = session.exec(
                select(tables.Component).where(tables.Component.uuid == uuid),
            ).one_or_none()
            return _to_component(row) if row is not None else None

    def list_components(self) -> list[Component]:
        with Session(self.engine) as session:
            rows = session.exec(
                select(tables.Component).order_by(col(tables.Component.key).asc()),
            ).all()
            return [_to_component(row) for row in rows]


def _to_component(row: tables.Component) -> Component:
    return Component(
        uuid=row.uuid,
        organization_uuid=row.organization_uuid,
        key=row.key,
        name=row.name,
    )


def _to_entry_view(row: tables.QueueEntry) -> QueueEntryView:
    return QueueEntryView(
        uuid=row.uuid,
        task_type=row.task_type,
        component_uuid=row.component_uuid,
        submitter_login=row.submitter_login,
        status=QueueStatus(row.status),
        execution_count=row.execution_count,
        worker_uuid=row.worker_uuid,
        created_at=to_utc_aware_datetime(row.created_at),
        updated_at=to_utc_aware_datetime(row.updated_at),
    )


def _to_activity_view(row: tables.ActivityRecord) -> ActivityView:
    return ActivityView(
        uuid=row.uuid,
        task_type=row.task_type,
        component_uuid=row.component_uuid,
        submitter_login=row.submitter_login,
        status=ActivityStatus(row.status),
        execution_count=row.execution_count,
        worker_uuid=row.worker_uuid,
        analysis_uuid=row.analysis_uuid,
        error_message=row.error_message,
        error_stacktrace=row.error_stacktrace,
        is_last=bool(row.is_last),
        submitted_at=to_utc_aware_datetime(row.submitted_at),
        execution_time_ms=row.execution_time_ms,
        created_at=to_utc_aware_datetime(row.created_at),
        updated_at=to_utc_aware_datetime(row.updated_at),
    )
