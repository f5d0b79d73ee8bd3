"""initial schema

Revision ID: 0001_initial_schema
Revises:
Create Date: 2026-10-19
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


revision: str = "0001_initial_schema"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "custom_categories",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_custom_categories_name", "custom_categories", ["name"], unique=True)

    op.create_table(
        "custom_tests",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("category_id", sa.String(length=36), nullable=False),
        sa.Column("code", sa.String(length=50), nullable=True),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_custom_tests_name", "custom_tests", ["name"], unique=False)
    op.create_index("ix_custom_tests_category_id", "custom_tests", ["category_id"], unique=False)

    op.create_table(
        "patients",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("patient_id", sa.String(length=50), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("date_of_birth", sa.Date(), nullable=True),
        sa.Column("gender", sa.String(length=20), nullable=True),
        sa.Column("phone", sa.String(length=50), nullable=True),
        sa.Column("address", sa.Text(), nullable=True),
        sa.Column("external_record", sa.JSON(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_patients_patient_id", "patients", ["patient_id"], unique=True)
    op.create_index("ix_patients_updated_at", "patients", ["updated_at"], unique=False)

    op.create_table(
        "patient_test_selections",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("patient_id", sa.String(length=36), nullable=False),
        sa.Column("tests", sa.JSON(), nullable=False),
        sa.Column("snapshot_version", sa.Integer(), nullable=False),
        sa.Column("status", sa.String(length=20), nullable=False),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_patient_test_selections_patient_id", "patient_test_selections", ["patient_id"], unique=False)
    op.create_index("ix_patient_test_selections_created_at", "patient_test_selections", ["created_at"], unique=False)


def downgrade() -> None:
    op.drop_index("ix_patient_test_selections_created_at", table_name="patient_test_selections")
    op.drop_index("ix_patient_test_selections_patient_id", table_name="patient_test_selections")
    op.drop_table("patient_test_selections")

    op.drop_index("ix_patients_updated_at", table_name="patients")
    op.drop_index("ix_patients_patient_id", table_name="patients")
    op.drop_table("patients")

    op.drop_index("ix_custom_tests_category_id", table_name="custom_tests")
    op.drop_index("ix_custom_tests_name", table_name="custom_tests")
    op.drop_table("custom_tests")

    op.drop_index("ix_custom_categories_name", table_name="custom_categories")
    op.drop_table("custom_categories")
