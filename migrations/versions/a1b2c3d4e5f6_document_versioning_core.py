"""document_versioning_core

Documents, append-only version ledger, per-actor drafts, sequence
counters and the issued document number register.

Revision ID: a1b2c3d4e5f6
Revises:
Create Date: 2026-10-16 09:00:00.000000
"""

from alembic import op
import sqlalchemy as sa


revision = "a1b2c3d4e5f6"
down_revision = None
branch_labels = None
depends_on = None


def _table_names(bind) -> set[str]:
    insp = sa.inspect(bind)
    return set(insp.get_table_names())


def upgrade():
    bind = op.get_bind()
    tables = _table_names(bind)

    if "tenants" not in tables:
        op.create_table(
            "tenants",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("name", sa.String(200), nullable=False),
            sa.Column("slug", sa.String(100), nullable=False, unique=True),
            sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
            sa.Column("settings", sa.JSON(), nullable=True),
            sa.Column("created_at", sa.DateTime(), nullable=True),
            sa.Column("updated_at", sa.DateTime(), nullable=True),
        )

    if "documents" not in tables:
        op.create_table(
            "documents",
            sa.Column("id", sa.String(36), primary_key=True),
            sa.Column("tenant_id", sa.Integer(), sa.ForeignKey("tenants.id", ondelete="CASCADE"), nullable=False),
            sa.Column("document_type", sa.String(30), nullable=False, server_default="consultation"),
            sa.Column("owner_actor_id", sa.String(64), nullable=False),
            sa.Column("status", sa.String(20), nullable=False, server_default="draft"),
            sa.Column("version", sa.Integer(), nullable=False, server_default="1"),
            sa.Column("payload", sa.JSON(), nullable=False),
            sa.Column("completion_percentage", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
            sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
            sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
            sa.CheckConstraint("status IN ('draft', 'completed', 'archived')", name="ck_documents_status"),
            sa.CheckConstraint("version >= 1", name="ck_documents_version_positive"),
        )
        op.create_index("ix_documents_tenant_id", "documents", ["tenant_id"])
        op.create_index("ix_documents_tenant_status", "documents", ["tenant_id", "status"])
        op.create_index("ix_documents_tenant_owner_actor_id", "documents", ["tenant_id", "owner_actor_id"])

    if "document_versions" not in tables:
        op.create_table(
            "document_versions",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("tenant_id", sa.Integer(), sa.ForeignKey("tenants.id", ondelete="CASCADE"), nullable=False),
            sa.Column("document_id", sa.String(36), sa.ForeignKey("documents.id", ondelete="CASCADE"), nullable=False),
            sa.Column("version_number", sa.Integer(), nullable=False),
            sa.Column("snapshot", sa.JSON(), nullable=False),
            sa.Column("changed_fields", sa.JSON(), nullable=False),
            sa.Column("change_summary", sa.String(500), nullable=True),
            sa.Column("actor_id", sa.String(64), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
            sa.UniqueConstraint("document_id", "version_number", name="uq_document_versions_doc_number"),
            sa.CheckConstraint("version_number >= 1", name="ck_document_versions_number_positive"),
        )
        op.create_index("ix_document_versions_tenant_id", "document_versions", ["tenant_id"])
        op.create_index("ix_document_versions_document_id", "document_versions", ["document_id"])

    if "document_drafts" not in tables:
        op.create_table(
            "document_drafts",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("tenant_id", sa.Integer(), sa.ForeignKey("tenants.id", ondelete="CASCADE"), nullable=False),
            sa.Column("document_id", sa.String(36), sa.ForeignKey("documents.id", ondelete="CASCADE"), nullable=False),
            sa.Column("actor_id", sa.String(64), nullable=False),
            sa.Column("baseline_version", sa.Integer(), nullable=False),
            sa.Column("payload_delta", sa.JSON(), nullable=False),
            sa.Column("revision", sa.BigInteger(), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
            sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
            sa.UniqueConstraint("document_id", "actor_id", name="uq_document_drafts_doc_actor"),
        )
        op.create_index("ix_document_drafts_tenant_id", "document_drafts", ["tenant_id"])
        op.create_index("ix_document_drafts_updated_at", "document_drafts", ["updated_at"])

    if "sequence_counters" not in tables:
        op.create_table(
            "sequence_counters",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("tenant_id", sa.Integer(), sa.ForeignKey("tenants.id", ondelete="CASCADE"), nullable=False),
            sa.Column("document_type", sa.String(30), nullable=False),
            sa.Column("next_number", sa.Integer(), nullable=False, server_default="1"),
            sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
            sa.UniqueConstraint("tenant_id", "document_type", name="uq_sequence_counters_tenant_type"),
        )
        op.create_index("ix_sequence_counters_tenant_id", "sequence_counters", ["tenant_id"])

    if "issued_document_numbers" not in tables:
        op.create_table(
            "issued_document_numbers",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("tenant_id", sa.Integer(), sa.ForeignKey("tenants.id", ondelete="CASCADE"), nullable=False),
            sa.Column("document_type", sa.String(30), nullable=False),
            sa.Column("number", sa.Integer(), nullable=False),
            sa.Column("formatted", sa.String(64), nullable=False),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
            sa.UniqueConstraint("tenant_id", "formatted", name="uq_issued_document_numbers_tenant_formatted"),
        )
        op.create_index("ix_issued_document_numbers_tenant_id", "issued_document_numbers", ["tenant_id"])


def downgrade():
    bind = op.get_bind()
    tables = _table_names(bind)
    for name in (
        "issued_document_numbers",
        "sequence_counters",
        "document_drafts",
        "document_versions",
        "documents",
    ):
        if name in tables:
            op.drop_table(name)
