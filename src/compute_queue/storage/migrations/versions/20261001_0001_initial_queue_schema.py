"""Initial queue, activity, organization and component tables."""

from __future__ import annotations

import sqlalchemy as sa

from alembic import op

revision = "20261001_0001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "organizations",
        sa.Column("uuid", sa.String(), nullable=False),
        sa.Column("key", sa.String(), nullable=False),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("uuid"),
    )
    op.create_index("ix_organizations_key", "organizations", ["key"], unique=True)

    op.create_table(
        "components",
        sa.Column("uuid", sa.String(), nullable=False),
        sa.Column("organization_uuid", sa.String(), nullable=False),
        sa.Column("key", sa.String(), nullable=False),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["organization_uuid"], ["organizations.uuid"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("uuid"),
    )
    op.create_index("ix_components_key", "components", ["key"], unique=True)
    op.create_index(
        "ix_components_organization_uuid",
        "components",
        ["organization_uuid"],
        unique=False,
    )

    op.create_table(
        "ce_queue",
        sa.Column("uuid", sa.String(), nullable=False),
        sa.Column("task_type", sa.String(), nullable=False),
        sa.Column("component_uuid", sa.String(), nullable=True),
        sa.Column("submitter_login", sa.String(), nullable=True),
        sa.Column("status", sa.String(), nullable=False),
        sa.Column("execution_count", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("worker_uuid", sa.String(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("uuid"),
    )
    op.create_index("ix_ce_queue_task_type", "ce_queue", ["task_type"], unique=False)
    op.create_index("ix_ce_queue_component_uuid", "ce_queue", ["component_uuid"], unique=False)
    op.create_index("ix_ce_queue_status", "ce_queue", ["status"], unique=False)
    op.create_index("ix_ce_queue_worker_uuid", "ce_queue", ["worker_uuid"], unique=False)
    op.create_index(
        "idx_ce_queue_eligibility",
        "ce_queue",
        ["status", "execution_count", "created_at", "uuid"],
        unique=False,
    )

    op.create_table(
        "ce_activity",
        sa.Column("uuid", sa.String(), nullable=False),
        sa.Column("task_type", sa.String(), nullable=False),
        sa.Column("component_uuid", sa.String(), nullable=True),
        sa.Column("submitter_login", sa.String(), nullable=True),
        sa.Column("status", sa.String(), nullable=False),
        sa.Column("execution_count", sa.Integer(), nullable=False),
        sa.Column("worker_uuid", sa.String(), nullable=True),
        sa.Column("analysis_uuid", sa.String(), nullable=True),
        sa.Column("error_message", sa.Text(), nullable=True),
        sa.Column("error_stacktrace", sa.Text(), nullable=True),
        sa.Column("is_last", sa.Boolean(), nullable=False, server_default=sa.text("0")),
        sa.Column("submitted_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("execution_time_ms", sa.Integer(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("uuid"),
    )
    op.create_index("ix_ce_activity_task_type", "ce_activity", ["task_type"], unique=False)
    op.create_index("ix_ce_activity_status", "ce_activity", ["status"], unique=False)
    op.create_index(
        "idx_ce_activity_component_last",
        "ce_activity",
        ["component_uuid", "is_last"],
        unique=False,
    )
    op.create_index(
        "idx_ce_activity_status_time",
        "ce_activity",
        ["status", "created_at"],
        unique=False,
    )
    op.create_index(
        "uq_ce_activity_component_is_last",
        "ce_activity",
        ["component_uuid"],
        unique=True,
        sqlite_where=sa.text("is_last = 1 AND component_uuid IS NOT NULL"),
    )


def downgrade() -> None:
    op.drop_index("uq_ce_activity_component_is_last", table_name="ce_activity")
    op.drop_index("idx_ce_activity_status_time", table_name="ce_activity")
    op.drop_index("idx_ce_activity_component_last", table_name="ce_activity")
    op.drop_index("ix_ce_activity_status", table_name="ce_activity")
    op.drop_index("ix_ce_activity_task_type", table_name="ce_activity")
    op.drop_table("ce_activity")
    op.drop_index("idx_ce_queue_eligibility", table_name="ce_queue")
    op.drop_index("ix_ce_queue_worker_uuid", table_name="ce_queue")
    op.drop_index("ix_ce_queue_status", table_name="ce_queue")
    op.drop_index("ix_ce_queue_component_uuid", table_name="ce_queue")
    op.drop_index("ix_ce_queue_task_type", table_name="ce_queue")
    op.drop_table("ce_queue")
    op.drop_index("ix_components_organization_uuid", table_name="components")
    op.drop_index("ix_components_key", table_name="components")
    op.drop_table("components")
    op.drop_index("ix_organizations_key", table_name="organizations")
    op.drop_table("organizations")
