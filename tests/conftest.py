"""Shared test fixtures."""

from __future__ import annotations

from collections.abc import Callable, Iterator
from datetime import UTC, datetime, timedelta
from pathlib import Path

import pytest
from sqlmodel import Session

from compute_queue.queue.models import Component, Organization, QueueEntryView, QueueStatus
from compute_queue.queue.ports import StaticDefaultOrganizationProvider, Uuid4Factory
from compute_queue.queue.repository import ComponentRepository, QueueRepository
from compute_queue.queue.service import TaskQueueService
from compute_queue.storage.common import to_db_datetime
from compute_queue.storage.sqlmodel_models import QueueEntry

DEFAULT_ORGANIZATION = Organization(
    uuid="org-default",
    key="default-organization",
    name="Default Organization",
)
CLOCK_START = datetime(2015, 12, 13, 9, 46, 40, tzinfo=UTC)


class StepClock:
    """Deterministic clock advancing by a fixed step on every reading."""

    def __init__(self, start: datetime = CLOCK_START, step: timedelta = timedelta(seconds=1)):
        self.current = start
        self.step = step

    def __call__(self) -> datetime:
        value = self.current
        self.current += self.step
        return value


@pytest.fixture()
def clock() -> StepClock:
    return StepClock()


@pytest.fixture()
def repository(tmp_path: Path) -> Iterator[QueueRepository]:
    repository = QueueRepository(tmp_path / "queue.db")
    repository.init_schema(default_organization=DEFAULT_ORGANIZATION)
    yield repository
    repository.close()


@pytest.fixture()
def components(repository: QueueRepository) -> ComponentRepository:
    return ComponentRepository(repository)


@pytest.fixture()
def make_service(
    repository: QueueRepository,
    components: ComponentRepository,
    clock: StepClock,
) -> Callable[..., TaskQueueService]:
    def _make(**overrides: object) -> TaskQueueService:
        options: dict[str, object] = {
            "uuid_factory": Uuid4Factory(),
            "component_resolver": components,
            "default_organization_provider": StaticDefaultOrganizationProvider(
                DEFAULT_ORGANIZATION,
            ),
            "clock": clock,
        }
        service_repository = overrides.pop("repository", repository)
        options.update(overrides)
        return TaskQueueService(service_repository, **options)  # type: ignore[arg-type]

    return _make


@pytest.fixture()
def service(make_service: Callable[..., TaskQueueService]) -> TaskQueueService:
    return make_service()


@pytest.fixture()
def project_component(components: ComponentRepository) -> Component:
    return components.add_component(
        Component(
            uuid="PROJECT_1",
            organization_uuid=DEFAULT_ORGANIZATION.uuid,
            key="key_PROJECT_1",
            name="name_PROJECT_1",
        ),
    )


@pytest.fixture()
def insert_entry(
    repository: QueueRepository,
    clock: StepClock,
) -> Callable[..., QueueEntryView]:
    """Insert a queue row directly, bypassing submission rules."""

    def _insert(  # noqa: PLR0913
        uuid: str,
        *,
        status: QueueStatus = QueueStatus.PENDING,
        execution_count: int = 0,
        worker_uuid: str | None = None,
        task_type: str = "foo",
        component_uuid: str | None = None,
        created_at: datetime | None = None,
    ) -> QueueEntryView:
        now = created_at or clock()
        with Session(repository.engine) as session:
            session.add(
                QueueEntry(
                    uuid=uuid,
                    task_type=task_type,
                    component_uuid=component_uuid,
                    status=status.value,
                    execution_count=execution_count,
                    worker_uuid=worker_uuid,
                    created_at=to_db_datetime(now),
                    updated_at=to_db_datetime(now),
                ),
            )
            session.commit()
        entry = repository.get_entry(uuid)
        assert entry is not None
        return entry

    return _insert
