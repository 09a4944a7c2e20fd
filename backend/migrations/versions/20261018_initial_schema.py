"""Initial schema: entities, dynamic attributes, metadata, universal transactions

Revision ID: 20261018_initial_schema
Revises:
Create Date: 2026-10-18 09:00:00.000000
"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "20261018_initial_schema"
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        "entities",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("organization_id", sa.String(length=64), nullable=False),
        sa.Column("entity_type", sa.String(length=64), nullable=False),
        sa.Column("entity_name", sa.String(length=255), nullable=False),
        sa.Column("entity_code", sa.String(length=64), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_entities_organization_id", "entities", ["organization_id"], unique=False)
    op.create_index("ix_entities_org_type_created", "entities", ["organization_id", "entity_type", "created_at"], unique=False)
    op.create_index("ix_entities_entity_code", "entities", ["entity_code"], unique=False)

    op.create_table(
        "dynamic_attributes",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("entity_id", sa.String(length=36), nullable=False),
        sa.Column("organization_id", sa.String(length=64), nullable=False),
        sa.Column("field_name", sa.String(length=128), nullable=False),
        sa.Column("field_value", sa.String(length=1024), nullable=True),
        sa.Column("field_type", sa.String(length=16), nullable=False),
        sa.Column("is_encrypted", sa.Boolean(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(["entity_id"], ["entities.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("entity_id", "field_name", name="uq_dynamic_attributes_entity_field"),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_dynamic_attributes_entity_id", "dynamic_attributes", ["entity_id"], unique=False)
    op.create_index("ix_dynamic_attributes_organization_id", "dynamic_attributes", ["organization_id"], unique=False)
    op.create_index("ix_dynamic_attributes_field_lookup", "dynamic_attributes", ["field_name", "field_value"], unique=False)

    op.create_table(
        "metadata_records",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("organization_id", sa.String(length=64), nullable=False),
        sa.Column("subject_type", sa.String(length=32), nullable=False),
        sa.Column("subject_id", sa.String(length=36), nullable=False),
        sa.Column("metadata_type", sa.String(length=64), nullable=False),
        sa.Column("metadata_category", sa.String(length=64), nullable=False),
        sa.Column("metadata_key", sa.String(length=64), nullable=False),
        sa.Column("metadata_value", sa.JSON(), nullable=False),
        sa.Column("is_system_generated", sa.Boolean(), nullable=False),
        sa.Column("created_by", sa.String(length=64), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_metadata_records_organization_id", "metadata_records", ["organization_id"], unique=False)
    op.create_index(
        "ix_metadata_records_subject",
        "metadata_records",
        ["subject_type", "subject_id", "metadata_type", "metadata_key"],
        unique=False,
    )

    op.create_table(
        "universal_transactions",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("organization_id", sa.String(length=64), nullable=False),
        sa.Column("transaction_type", sa.String(length=32), nullable=False),
        sa.Column("transaction_number", sa.String(length=64), nullable=False),
        sa.Column("transaction_date", sa.DateTime(), nullable=False),
        sa.Column("total_amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("currency", sa.String(length=3), nullable=False),
        sa.Column("status", sa.String(length=16), nullable=False),
        sa.Column("reference_id", sa.String(length=64), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.Column("version_id", sa.Integer(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("organization_id", "transaction_number", name="uq_universal_transactions_org_number"),
    )
    op.create_index("ix_universal_transactions_organization_id", "universal_transactions", ["organization_id"], unique=False)
    op.create_index("ix_universal_transactions_status", "universal_transactions", ["status"], unique=False)
    op.create_index("ix_universal_transactions_reference_id", "universal_transactions", ["reference_id"], unique=False)
    op.create_index(
        "ix_universal_transactions_org_type_date",
        "universal_transactions",
        ["organization_id", "transaction_type", "transaction_date"],
        unique=False,
    )

    op.create_table(
        "transaction_lines",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("transaction_id", sa.String(length=36), nullable=False),
        sa.Column("entity_id", sa.String(length=64), nullable=False),
        sa.Column("line_description", sa.String(length=255), nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.Column("unit_price", sa.Numeric(12, 2), nullable=False),
        sa.Column("line_amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("line_order", sa.Integer(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(["transaction_id"], ["universal_transactions.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("transaction_id", "line_order", name="uq_transaction_lines_order"),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_transaction_lines_transaction_id", "transaction_lines", ["transaction_id"], unique=False)

    op.create_table(
        "sequences",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("scope", sa.String(length=64), nullable=False),
        sa.Column("name", sa.String(length=64), nullable=False),
        sa.Column("next_value", sa.Integer(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("scope", "name", name="uq_sequences_scope_name"),
        sqlite_autoincrement=True,
    )

    op.create_table(
        "order_confirmations",
        sa.Column("session_id", sa.String(length=36), nullable=False),
        sa.Column("organization_id", sa.String(length=64), nullable=False),
        sa.Column("transaction_id", sa.String(length=36), nullable=False),
        sa.Column("confirmed_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(["transaction_id"], ["universal_transactions.id"]),
        sa.PrimaryKeyConstraint("session_id"),
        sa.UniqueConstraint("transaction_id"),
    )
    op.create_index("ix_order_confirmations_organization_id", "order_confirmations", ["organization_id"], unique=False)


def downgrade():
    op.drop_table("order_confirmations")
    op.drop_table("sequences")
    op.drop_index("ix_transaction_lines_transaction_id", table_name="transaction_lines")
    op.drop_table("transaction_lines")
    op.drop_index("ix_universal_transactions_org_type_date", table_name="universal_transactions")
    op.drop_index("ix_universal_transactions_reference_id", table_name="universal_transactions")
    op.drop_index("ix_universal_transactions_status", table_name="universal_transactions")
    op.drop_index("ix_universal_transactions_organization_id", table_name="universal_transactions")
    op.drop_table("universal_transactions")
    op.drop_index("ix_metadata_records_subject", table_name="metadata_records")
    op.drop_index("ix_metadata_records_organization_id", table_name="metadata_records")
    op.drop_table("metadata_records")
    op.drop_index("ix_dynamic_attributes_field_lookup", table_name="dynamic_attributes")
    op.drop_index("ix_dynamic_attributes_organization_id", table_name="dynamic_attributes")
    op.drop_index("ix_dynamic_attributes_entity_id", table_name="dynamic_attributes")
    op.drop_table("dynamic_attributes")
    op.drop_index("ix_entities_entity_code", table_name="entities")
    op.drop_index("ix_entities_org_type_created", table_name="entities")
    op.drop_index("ix_entities_organization_id", table_name="entities")
    op.drop_table("entities")
