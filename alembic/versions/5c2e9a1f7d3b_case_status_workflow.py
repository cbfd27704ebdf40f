"""case_status_workflow

Revision ID: 5c2e9a1f7d3b
Revises:
Create Date: 2026-10-19 09:12:41.220311

"""

from collections.abc import Sequence

import sqlalchemy as sa

from alembic import op

revision: str = "5c2e9a1f7d3b"
down_revision: str | Sequence[str] | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    op.create_table(
        "companies",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_table(
        "user_profiles",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("user_id", sa.String(128), nullable=False),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("full_name", sa.String(255), nullable=False),
        sa.Column("role", sa.String(16), nullable=False),
        sa.Column("company_id", sa.Integer(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=True),
        sa.Column("updated_at", sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(["company_id"], ["companies.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_user_profiles_user_id", "user_profiles", ["user_id"], unique=True)
    op.create_table(
        "people",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("full_name", sa.String(255), nullable=False),
        sa.Column("email", sa.String(255), nullable=True),
        sa.Column("cpf", sa.String(14), nullable=True),
        sa.Column("birth_date", sa.String(10), nullable=True),
        sa.Column("nationality", sa.String(128), nullable=True),
        sa.Column("phone_number", sa.String(64), nullable=True),
        sa.Column("marital_status", sa.String(32), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=True),
        sa.Column("updated_at", sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_people_email", "people", ["email"], unique=True)
    op.create_index("ix_people_cpf", "people", ["cpf"], unique=True)
    op.create_table(
        "collective_processes",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("reference_number", sa.String(64), nullable=False),
        sa.Column("company_id", sa.Integer(), nullable=True),
        sa.Column("status", sa.String(64), nullable=True),
        sa.Column("completed_at", sa.DateTime(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=True),
        sa.Column("updated_at", sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(["company_id"], ["companies.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "ix_collective_processes_reference_number", "collective_processes", ["reference_number"]
    )
    op.create_table(
        "case_statuses",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("code", sa.String(64), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("name_en", sa.String(255), nullable=True),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("category", sa.String(32), nullable=True),
        sa.Column("color", sa.String(16), nullable=True),
        sa.Column("sort_order", sa.Integer(), nullable=False),
        sa.Column("order_number", sa.Integer(), nullable=True),
        sa.Column("fillable_fields", sa.JSON(), nullable=True),
        sa.Column("allowed_next_codes", sa.JSON(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=True),
        sa.Column("updated_at", sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_case_statuses_code", "case_statuses", ["code"], unique=True)
    op.create_index("ix_case_statuses_category", "case_statuses", ["category"])
    op.create_index("ix_case_statuses_sort_order", "case_statuses", ["sort_order"])
    op.create_index("ix_case_statuses_order_number", "case_statuses", ["order_number"])
    op.create_index("ix_case_statuses_is_active", "case_statuses", ["is_active"])
    op.create_table(
        "individual_processes",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("collective_process_id", sa.Integer(), nullable=True),
        sa.Column("person_id", sa.Integer(), nullable=False),
        sa.Column("case_status_id", sa.Integer(), nullable=True),
        sa.Column("status", sa.String(64), nullable=True),
        sa.Column("version", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("protocol_number", sa.String(64), nullable=True),
        sa.Column("rnm_number", sa.String(64), nullable=True),
        sa.Column("rnm_deadline", sa.String(10), nullable=True),
        sa.Column("dou_number", sa.String(64), nullable=True),
        sa.Column("dou_section", sa.String(32), nullable=True),
        sa.Column("dou_page", sa.String(32), nullable=True),
        sa.Column("dou_date", sa.String(10), nullable=True),
        sa.Column("mre_office_number", sa.String(64), nullable=True),
        sa.Column("appointment_date_time", sa.String(32), nullable=True),
        sa.Column("deadline_date", sa.String(10), nullable=True),
        sa.Column("date_process", sa.String(10), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=True),
        sa.Column("updated_at", sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(["collective_process_id"], ["collective_processes.id"]),
        sa.ForeignKeyConstraint(["person_id"], ["people.id"]),
        sa.ForeignKeyConstraint(["case_status_id"], ["case_statuses.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "ix_individual_processes_collective_process_id",
        "individual_processes",
        ["collective_process_id"],
    )
    op.create_index("ix_individual_processes_person_id", "individual_processes", ["person_id"])
    op.create_index(
        "ix_individual_processes_case_status_id", "individual_processes", ["case_status_id"]
    )
    op.create_table(
        "individual_process_statuses",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("individual_process_id", sa.Integer(), nullable=False),
        sa.Column("case_status_id", sa.Integer(), nullable=True),
        sa.Column("status_name", sa.String(255), nullable=False),
        sa.Column("date", sa.String(10), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("fillable_fields", sa.JSON(), nullable=True),
        sa.Column("filled_fields_data", sa.JSON(), nullable=True),
        sa.Column("changed_by", sa.String(128), nullable=False),
        sa.Column("changed_at", sa.DateTime(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(["individual_process_id"], ["individual_processes.id"]),
        sa.ForeignKeyConstraint(["case_status_id"], ["case_statuses.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "ix_individual_process_statuses_individual_process_id",
        "individual_process_statuses",
        ["individual_process_id"],
    )
    op.create_index(
        "ix_individual_process_statuses_case_status_id",
        "individual_process_statuses",
        ["case_status_id"],
    )
    op.create_index(
        "ix_individual_process_statuses_changed_at",
        "individual_process_statuses",
        ["changed_at"],
    )
    # At most one active history row per case.
    op.create_index(
        "uq_active_status_per_process",
        "individual_process_statuses",
        ["individual_process_id"],
        unique=True,
        sqlite_where=sa.text("is_active = 1"),
        postgresql_where=sa.text("is_active"),
    )
    op.create_table(
        "activity_logs",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("user_id", sa.String(128), nullable=False),
        sa.Column("action", sa.String(64), nullable=False),
        sa.Column("entity_type", sa.String(64), nullable=False),
        sa.Column("entity_id", sa.String(128), nullable=False),
        sa.Column("details_json", sa.JSON(), nullable=True),
        sa.Column("correlation_id", sa.String(64), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_activity_logs_action", "activity_logs", ["action"])
    op.create_index("ix_activity_logs_correlation_id", "activity_logs", ["correlation_id"])
    op.create_index("ix_activity_logs_entity", "activity_logs", ["entity_type", "entity_id"])
    op.create_table(
        "data_migrations",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("migration_id", sa.String(128), nullable=False),
        sa.Column("applied_at", sa.DateTime(), nullable=True),
        sa.Column("summary_json", sa.JSON(), nullable=True),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("migration_id"),
    )


def downgrade() -> None:
    op.drop_table("data_migrations")
    op.drop_index("ix_activity_logs_entity", table_name="activity_logs")
    op.drop_index("ix_activity_logs_correlation_id", table_name="activity_logs")
    op.drop_index("ix_activity_logs_action", table_name="activity_logs")
    op.drop_table("activity_logs")
    op.drop_index("uq_active_status_per_process", table_name="individual_process_statuses")
    op.drop_table("individual_process_statuses")
    op.drop_table("individual_processes")
    op.drop_table("case_statuses")
    op.drop_table("collective_processes")
    op.drop_table("people")
    op.drop_table("user_profiles")
    op.drop_table("companies")
