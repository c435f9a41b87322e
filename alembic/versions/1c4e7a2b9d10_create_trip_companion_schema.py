"""create trip companion schema

Revision ID: 1c4e7a2b9d10
Revises:
Create Date: 2026-10-19

"""

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision: str = "1c4e7a2b9d10"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    ]


def upgrade() -> None:
    op.create_table(
        "identity_user_profile",
        sa.Column("user_id", sa.String(length=64), nullable=False),
        sa.Column("email", sa.String(length=320), nullable=True),
        sa.Column("base_address", sa.String(length=300), nullable=True),
        sa.Column("city", sa.String(length=120), nullable=True),
        sa.Column("country", sa.String(length=120), nullable=True),
        sa.Column("plan_tier", sa.String(length=20), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        op.f("ix_identity_user_profile_user_id"),
        "identity_user_profile",
        ["user_id"],
        unique=True,
    )

    op.create_table(
        "callsheets_job",
        sa.Column("user_id", sa.String(length=64), nullable=False),
        sa.Column(
            "status",
            sa.Enum(
                "CREATED",
                "QUEUED",
                "PROCESSING",
                "DONE",
                "FAILED",
                "NEEDS_REVIEW",
                "CANCELLED",
                name="jobstatus",
                native_enum=False,
            ),
            nullable=False,
        ),
        sa.Column("filename", sa.String(length=512), nullable=False),
        sa.Column("content_type", sa.String(length=200), nullable=True),
        sa.Column("byte_size", sa.Integer(), nullable=False),
        sa.Column("storage_path", sa.String(length=1024), nullable=True),
        sa.Column("error", sa.Text(), nullable=True),
        sa.Column("processing_started_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("processed_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_callsheets_job_user_id"), "callsheets_job", ["user_id"])
    op.create_index(op.f("ix_callsheets_job_status"), "callsheets_job", ["status"])
    op.create_index(
        op.f("ix_callsheets_job_processing_started_at"),
        "callsheets_job",
        ["processing_started_at"],
    )

    op.create_table(
        "callsheets_result",
        sa.Column("job_id", sa.Uuid(), nullable=False),
        sa.Column("date_value", sa.String(length=10), nullable=True),
        sa.Column("project_value", sa.String(length=160), nullable=True),
        sa.Column("producer_value", sa.String(length=200), nullable=True),
        sa.Column("companies", sa.JSON(), nullable=False),
        sa.Column("raw", sa.JSON(), nullable=False),
        *_timestamps(),
        sa.ForeignKeyConstraint(["job_id"], ["callsheets_job.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("job_id"),
    )

    op.create_table(
        "callsheets_location",
        sa.Column("job_id", sa.Uuid(), nullable=False),
        sa.Column("position", sa.Integer(), nullable=False),
        sa.Column("address_raw", sa.String(length=300), nullable=False),
        sa.Column("formatted_address", sa.String(length=500), nullable=True),
        sa.Column("place_id", sa.String(length=300), nullable=True),
        sa.Column("lat", sa.Float(), nullable=True),
        sa.Column("lng", sa.Float(), nullable=True),
        sa.Column("used_fallback", sa.Boolean(), nullable=False),
        *_timestamps(),
        sa.ForeignKeyConstraint(["job_id"], ["callsheets_job.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_callsheets_location_job_id"), "callsheets_location", ["job_id"])

    op.create_table(
        "limits_ai_usage_event",
        sa.Column("user_id", sa.String(length=64), nullable=False),
        sa.Column("kind", sa.String(length=20), nullable=False),
        sa.Column("reference", sa.String(length=64), nullable=False),
        sa.Column("status", sa.String(length=20), nullable=False),
        sa.Column("run_at", sa.DateTime(timezone=True), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("kind", "reference", name="uq_ai_usage_kind_reference"),
    )
    op.create_index(
        op.f("ix_limits_ai_usage_event_user_id"), "limits_ai_usage_event", ["user_id"]
    )
    op.create_index(op.f("ix_limits_ai_usage_event_run_at"), "limits_ai_usage_event", ["run_at"])

    op.create_table(
        "trips_project",
        sa.Column("user_id", sa.String(length=64), nullable=False),
        sa.Column("name", sa.String(length=160), nullable=False),
        sa.Column("name_key", sa.String(length=160), nullable=False),
        sa.Column("producer", sa.String(length=200), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("user_id", "name_key"),
    )
    op.create_index(op.f("ix_trips_project_user_id"), "trips_project", ["user_id"])
    op.create_index(op.f("ix_trips_project_name_key"), "trips_project", ["name_key"])

    op.create_table(
        "trips_trip",
        sa.Column("user_id", sa.String(length=64), nullable=False),
        sa.Column("project_id", sa.Uuid(), nullable=True),
        sa.Column("trip_date", sa.Date(), nullable=False),
        sa.Column("purpose", sa.String(length=300), nullable=True),
        sa.Column("producer", sa.String(length=200), nullable=True),
        sa.Column("locations", sa.JSON(), nullable=False),
        sa.Column("distance_km", sa.Float(), nullable=True),
        sa.Column("source", sa.String(length=20), nullable=False),
        sa.Column("callsheet_job_id", sa.Uuid(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["project_id"], ["trips_project.id"]),
        sa.ForeignKeyConstraint(["callsheet_job_id"], ["callsheets_job.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("callsheet_job_id"),
    )
    op.create_index(op.f("ix_trips_trip_user_id"), "trips_trip", ["user_id"])
    op.create_index(op.f("ix_trips_trip_project_id"), "trips_trip", ["project_id"])

    op.create_table(
        "trips_project_document",
        sa.Column("user_id", sa.String(length=64), nullable=False),
        sa.Column("project_id", sa.Uuid(), nullable=True),
        sa.Column("trip_id", sa.Uuid(), nullable=True),
        sa.Column("name", sa.String(length=512), nullable=False),
        sa.Column("storage_path", sa.String(length=1024), nullable=False),
        sa.Column("type", sa.String(length=20), nullable=False),
        sa.Column("kind", sa.String(length=20), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("user_id", "storage_path"),
    )
    op.create_index(
        op.f("ix_trips_project_document_user_id"), "trips_project_document", ["user_id"]
    )


def downgrade() -> None:
    op.drop_index(op.f("ix_trips_project_document_user_id"), table_name="trips_project_document")
    op.drop_table("trips_project_document")
    op.drop_index(op.f("ix_trips_trip_project_id"), table_name="trips_trip")
    op.drop_index(op.f("ix_trips_trip_user_id"), table_name="trips_trip")
    op.drop_table("trips_trip")
    op.drop_index(op.f("ix_trips_project_name_key"), table_name="trips_project")
    op.drop_index(op.f("ix_trips_project_user_id"), table_name="trips_project")
    op.drop_table("trips_project")
    op.drop_index(op.f("ix_limits_ai_usage_event_run_at"), table_name="limits_ai_usage_event")
    op.drop_index(op.f("ix_limits_ai_usage_event_user_id"), table_name="limits_ai_usage_event")
    op.drop_table("limits_ai_usage_event")
    op.drop_index(op.f("ix_callsheets_location_job_id"), table_name="callsheets_location")
    op.drop_table("callsheets_location")
    op.drop_table("callsheets_result")
    op.drop_index(
        op.f("ix_callsheets_job_processing_started_at"), table_name="callsheets_job"
    )
    op.drop_index(op.f("ix_callsheets_job_status"), table_name="callsheets_job")
    op.drop_index(op.f("ix_callsheets_job_user_id"), table_name="callsheets_job")
    op.drop_table("callsheets_job")
    op.drop_index(op.f("ix_identity_user_profile_user_id"), table_name="identity_user_profile")
    op.drop_table("identity_user_profile")
