"""Create people, KPI, operational, dataset and evaluation tables.

Revision ID: 3f9a1c7e2b10
Revises:
Create Date: 2026-10-19
"""

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects.postgresql import UUID

# revision identifiers, used by Alembic.
revision = "3f9a1c7e2b10"
down_revision = None
branch_labels = None
depends_on = None

_DATASET_ROW_TABLES = (
    ("quiz_results", sa.Column("score", sa.Float(), nullable=False, server_default="0")),
    ("sales_flp", sa.Column("flp_amount", sa.Float(), nullable=False, server_default="0")),
    ("apple_logins", sa.Column("login_count", sa.Integer(), nullable=False, server_default="0")),
    ("apple_points", sa.Column("points", sa.Float(), nullable=False, server_default="0")),
    ("myhero_points", sa.Column("points", sa.Float(), nullable=False, server_default="0")),
    ("prospects", sa.Column("prospect_count", sa.Integer(), nullable=False, server_default="0")),
)


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
    ]


def upgrade() -> None:
    personrole = sa.Enum("admin", "tl", "salesman", name="personrole")
    inputsource = sa.Enum("ADMIN", "TL", "SYSTEM", name="inputsource")
    metrickey = sa.Enum(
        "quantity_activity",
        "sales_flp",
        "attendance",
        "coaching_sessions",
        "briefing_sessions",
        "team_size",
        "quiz_score",
        "training_participation",
        "apple_logins",
        "apple_points",
        "myhero_points",
        "total_prospects",
        "prospect_ratio",
        name="metrickey",
    )
    sessiontype = sa.Enum("coaching", "briefing", name="sessiontype")
    datasettype = sa.Enum(
        "quiz", "sales_flp", "apple_login", "apple_point", "myhero_point", "prospect", name="datasettype"
    )
    datasetstatus = sa.Enum("pending", "processed", "failed", name="datasetstatus")

    op.create_table(
        "people",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column("honda_id", sa.String(length=40), nullable=True, unique=True),
        sa.Column("name", sa.String(length=160), nullable=False),
        sa.Column("job_title", sa.String(length=120), nullable=True),
        sa.Column("role", personrole, nullable=False),
        sa.Column("dealer_code", sa.String(length=40), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        *_timestamps(),
    )
    op.create_index("ix_people_role_active", "people", ["role", "is_active"])
    op.create_index("ix_people_dealer_code", "people", ["dealer_code"])

    op.create_table(
        "pillars",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column("name", sa.String(length=120), nullable=False, unique=True),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("weight", sa.Float(), nullable=False, server_default="0"),
        *_timestamps(),
    )

    op.create_table(
        "kpi_items",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column("pillar_id", UUID(as_uuid=True), sa.ForeignKey("pillars.id"), nullable=False),
        sa.Column("name", sa.String(length=160), nullable=False),
        sa.Column("metric_key", metrickey, nullable=True),
        sa.Column("weight", sa.Float(), nullable=False, server_default="0"),
        sa.Column("target_value", sa.Float(), nullable=True),
        sa.Column("unit", sa.String(length=40), nullable=True),
        sa.Column("frequency", sa.String(length=40), nullable=True),
        sa.Column("input_source", inputsource, nullable=False, server_default="ADMIN"),
        sa.Column("applies_to_tl", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("applies_to_salesman", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("notes", sa.Text(), nullable=True),
        *_timestamps(),
        sa.Column("deleted_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_kpi_items_pillar", "kpi_items", ["pillar_id"])
    op.create_index("ix_kpi_items_applies_to_tl", "kpi_items", ["applies_to_tl"])

    op.create_table(
        "person_kpi_targets",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column("person_id", UUID(as_uuid=True), sa.ForeignKey("people.id"), nullable=False),
        sa.Column("kpi_item_id", UUID(as_uuid=True), sa.ForeignKey("kpi_items.id"), nullable=False),
        sa.Column("period_month", sa.Integer(), nullable=False),
        sa.Column("period_year", sa.Integer(), nullable=False),
        sa.Column("target_value", sa.Float(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
        sa.UniqueConstraint(
            "person_id", "kpi_item_id", "period_month", "period_year", name="uq_person_kpi_target_person_kpi_period"
        ),
    )

    op.create_table(
        "tl_daily_activities",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column("person_id", UUID(as_uuid=True), sa.ForeignKey("people.id"), nullable=False),
        sa.Column("date", sa.DateTime(), nullable=False),
        sa.Column("activity_type", sa.String(length=40), nullable=False),
        sa.Column("location", sa.String(length=200), nullable=True),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("deleted_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_tl_daily_activities_person_date", "tl_daily_activities", ["person_id", "date"])

    op.create_table(
        "tl_sessions",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column("person_id", UUID(as_uuid=True), sa.ForeignKey("people.id"), nullable=False),
        sa.Column("session_type", sessiontype, nullable=False),
        sa.Column("date", sa.DateTime(), nullable=False),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("deleted_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_tl_sessions_person_type_date", "tl_sessions", ["person_id", "session_type", "date"])

    op.create_table(
        "tl_attendance_records",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column("tl_person_id", UUID(as_uuid=True), sa.ForeignKey("people.id"), nullable=False),
        sa.Column("salesman_id", UUID(as_uuid=True), sa.ForeignKey("people.id"), nullable=True),
        sa.Column("date", sa.DateTime(), nullable=False),
        sa.Column("status", sa.String(length=20), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("deleted_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_tl_attendance_tl_date", "tl_attendance_records", ["tl_person_id", "date"])

    op.create_table(
        "tl_training_participations",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column("tl_person_id", UUID(as_uuid=True), sa.ForeignKey("people.id"), nullable=False),
        sa.Column("training_name", sa.String(length=200), nullable=False),
        sa.Column("date", sa.DateTime(), nullable=False),
        sa.Column("status", sa.String(length=20), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("deleted_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_tl_training_tl_date", "tl_training_participations", ["tl_person_id", "date"])

    op.create_table(
        "dashboard_datasets",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column("type", datasettype, nullable=False),
        sa.Column("period_date", sa.Date(), nullable=True),
        sa.Column("period_month", sa.Integer(), nullable=False),
        sa.Column("period_year", sa.Integer(), nullable=False),
        sa.Column("file_name", sa.String(length=255), nullable=True),
        sa.Column("status", datasetstatus, nullable=False, server_default="processed"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index(
        "ix_dashboard_datasets_type_period", "dashboard_datasets", ["type", "period_year", "period_month"]
    )

    for table_name, value_column in _DATASET_ROW_TABLES:
        op.create_table(
            table_name,
            sa.Column("id", UUID(as_uuid=True), primary_key=True),
            sa.Column("dataset_id", UUID(as_uuid=True), sa.ForeignKey("dashboard_datasets.id"), nullable=False),
            sa.Column("person_id", UUID(as_uuid=True), sa.ForeignKey("people.id"), nullable=True),
            sa.Column("honda_id", sa.String(length=40), nullable=True),
            sa.Column("dealer_code", sa.String(length=40), nullable=True),
            value_column,
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
        )
        op.create_index(f"ix_{table_name}_dataset_id", table_name, ["dataset_id"])
        op.create_index(f"ix_{table_name}_person_id", table_name, ["person_id"])

    op.create_table(
        "evaluation_periods",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column("period_month", sa.Integer(), nullable=False),
        sa.Column("period_year", sa.Integer(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
        sa.UniqueConstraint("period_month", "period_year", name="uq_evaluation_period_month_year"),
    )

    op.create_table(
        "evaluations",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column(
            "evaluation_period_id", UUID(as_uuid=True), sa.ForeignKey("evaluation_periods.id"), nullable=False
        ),
        sa.Column("person_id", UUID(as_uuid=True), sa.ForeignKey("people.id"), nullable=False),
        sa.Column("total_score", sa.Float(), nullable=False, server_default="0"),
        *_timestamps(),
        sa.UniqueConstraint("person_id", "evaluation_period_id", name="uq_evaluation_person_period"),
    )
    op.create_index("ix_evaluations_period_score", "evaluations", ["evaluation_period_id", "total_score"])

    op.create_table(
        "evaluation_details",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column(
            "evaluation_id",
            UUID(as_uuid=True),
            sa.ForeignKey("evaluations.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("kpi_item_id", UUID(as_uuid=True), sa.ForeignKey("kpi_items.id"), nullable=False),
        sa.Column("actual_value", sa.Float(), nullable=True),
        sa.Column("achievement_ratio", sa.Float(), nullable=True),
        sa.Column("score", sa.Float(), nullable=False, server_default="0"),
    )
    op.create_index("ix_evaluation_details_evaluation", "evaluation_details", ["evaluation_id"])


def downgrade() -> None:
    op.drop_index("ix_evaluation_details_evaluation", table_name="evaluation_details")
    op.drop_table("evaluation_details")
    op.drop_index("ix_evaluations_period_score", table_name="evaluations")
    op.drop_table("evaluations")
    op.drop_table("evaluation_periods")
    for table_name, _ in reversed(_DATASET_ROW_TABLES):
        op.drop_index(f"ix_{table_name}_person_id", table_name=table_name)
        op.drop_index(f"ix_{table_name}_dataset_id", table_name=table_name)
        op.drop_table(table_name)
    op.drop_index("ix_dashboard_datasets_type_period", table_name="dashboard_datasets")
    op.drop_table("dashboard_datasets")
    op.drop_index("ix_tl_training_tl_date", table_name="tl_training_participations")
    op.drop_table("tl_training_participations")
    op.drop_index("ix_tl_attendance_tl_date", table_name="tl_attendance_records")
    op.drop_table("tl_attendance_records")
    op.drop_index("ix_tl_sessions_person_type_date", table_name="tl_sessions")
    op.drop_table("tl_sessions")
    op.drop_index("ix_tl_daily_activities_person_date", table_name="tl_daily_activities")
    op.drop_table("tl_daily_activities")
    op.drop_table("person_kpi_targets")
    op.drop_index("ix_kpi_items_applies_to_tl", table_name="kpi_items")
    op.drop_index("ix_kpi_items_pillar", table_name="kpi_items")
    op.drop_table("kpi_items")
    op.drop_table("pillars")
    op.drop_index("ix_people_dealer_code", table_name="people")
    op.drop_index("ix_people_role_active", table_name="people")
    op.drop_table("people")

    bind = op.get_bind()
    for enum_name in (
        "datasetstatus",
        "datasettype",
        "sessiontype",
        "metrickey",
        "inputsource",
        "personrole",
    ):
        sa.Enum(name=enum_name).drop(bind, checkfirst=True)
