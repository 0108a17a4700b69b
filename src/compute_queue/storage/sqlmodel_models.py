"""SQLModel ORM tables for queue storage."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import Column, DateTime, ForeignKey, Index, Text, text
from sqlmodel import Field, SQLModel


class Organization(SQLModel, table=True):
    __tablename__ = "organizations"  # type: ignore[bad-override]

    uuid: str = Field(primary_key=True)
    key: str = Field(unique=True, index=True)
    name: str
    created_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))


class Component(SQLModel, table=True):
    __tablename__ = "components"  # type: ignore[bad-override]

    uuid: str = Field(primary_key=True)
    organization_uuid: str = Field(
        sa_column=Column(
            ForeignKey("organizations.uuid", ondelete="CASCADE"),
            nullable=False,
            index=True,
        ),
    )
    key: str = Field(unique=True, index=True)
    name: str
    created_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))


class QueueEntry(SQLModel, table=True):
    """Not-yet-finished task: PENDING or IN_PROGRESS."""

    __tablename__ = "ce_queue"  # type: ignore[bad-override]
    __table_args__ = (
        Index("idx_ce_queue_eligibility", "status", "execution_count", "created_at", "uuid"),
    )

    uuid: str = Field(primary_key=True)
    task_type: str = Field(index=True)
    component_uuid: str | None = Field(default=None, index=True)
    submitter_login: str | None = None
    status: str = Field(index=True)
    execution_count: int = Field(default=0)
    worker_uuid: str | None = Field(default=None, index=True)
    created_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))
    updated_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))


class ActivityRecord(SQLModel, table=True):
    """Terminal outcome of a task, never updated except for the is_last flag."""

    __tablename__ = "ce_activity"  # type: ignore[bad-override]
    __table_args__ = (
        Index("idx_ce_activity_component_last", "component_uuid", "is_last"),
        Index("idx_ce_activity_status_time", "status", "created_at"),
        Index(
            "uq_ce_activity_component_is_last",
            "component_uuid",
            unique=True,
            sqlite_where=text("is_last = 1 AND component_uuid IS NOT NULL"),
        ),
    )

    uuid: str = Field(primary_key=True)
    task_type: str = Field(index=True)
    component_uuid: str | None = Field(default=None)
    submitter_login: str | None = None
    status: str = Field(index=True)
    execution_count: int
    worker_uuid: str | None = None
    analysis_uuid: str | None = None
    error_message: str | None = Field(default=None, sa_column=Column(Text))
    error_stacktrace: str | None = Field(default=None, sa_column=Column(Text))
    is_last: bool = Field(default=False)
    submitted_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))
    execution_time_ms: int | None = None
    created_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))
    updated_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))
