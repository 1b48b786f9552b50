"""Create the captures and export_audit_entries tables.

Revision ID: 20261018_initial_staging_ledger
Revises:
Create Date: 2026-10-18
"""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa


revision = "20261018_initial_staging_ledger"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "captures",
        sa.Column("id", sa.String(length=26), primary_key=True),
        sa.Column("source", sa.String(length=16), nullable=False),
        sa.Column("raw_content", sa.Text(), nullable=False),
        sa.Column("content_hash", sa.String(length=128), nullable=True),
        sa.Column("status", sa.String(length=32), nullable=False),
        sa.Column("metadata", sa.JSON(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint(
            "source IN ('email', 'voice')",
            name="ck_captures_source",
        ),
        sa.CheckConstraint(
            "status IN ('exported', 'exported_duplicate', 'exported_placeholder', "
            "'failed_transcription', 'staged', 'transcribed')",
            name="ck_captures_status",
        ),
        sa.CheckConstraint(
            "content_hash IS NULL OR length(content_hash) > 0",
            name="ck_captures_content_hash_not_empty",
        ),
    )
    op.create_index(
        "ix_captures_content_hash_unique",
        "captures",
        ["content_hash"],
        unique=True,
        sqlite_where=sa.text("content_hash IS NOT NULL"),
    )
    op.create_index("ix_captures_status", "captures", ["status"], unique=False)
    op.create_index("ix_captures_created_at", "captures", ["created_at"], unique=False)

    op.create_table(
        "export_audit_entries",
        sa.Column("id", sa.String(length=26), primary_key=True),
        sa.Column(
            "capture_id",
            sa.String(length=26),
            sa.ForeignKey("captures.id", ondelete="RESTRICT"),
            nullable=False,
        ),
        sa.Column("destination_path", sa.Text(), nullable=False),
        sa.Column("hash_at_export", sa.String(length=128), nullable=True),
        sa.Column("mode", sa.String(length=32), nullable=False),
        sa.Column("error_flag", sa.Boolean(create_constraint=True), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint(
            "mode IN ('duplicate_skip', 'initial', 'placeholder')",
            name="ck_export_audit_mode",
        ),
        sa.CheckConstraint(
            "destination_path <> '' OR mode = 'duplicate_skip'",
            name="ck_export_audit_destination_path",
        ),
        sa.CheckConstraint(
            "hash_at_export IS NULL OR mode <> 'placeholder'",
            name="ck_export_audit_placeholder_hash",
        ),
        sa.CheckConstraint(
            "error_flag = 0 OR mode = 'placeholder'",
            name="ck_export_audit_error_flag",
        ),
    )
    op.create_index(
        "ix_export_audit_entries_capture_id",
        "export_audit_entries",
        ["capture_id"],
        unique=False,
    )
    op.create_index(
        "ix_export_audit_entries_created_at",
        "export_audit_entries",
        ["created_at"],
        unique=False,
    )


def downgrade() -> None:
    op.drop_index("ix_export_audit_entries_created_at", table_name="export_audit_entries")
    op.drop_index("ix_export_audit_entries_capture_id", table_name="export_audit_entries")
    op.drop_table("export_audit_entries")
    op.drop_index("ix_captures_created_at", table_name="captures")
    op.drop_index("ix_captures_status", table_name="captures")
    op.drop_index("ix_captures_content_hash_unique", table_name="captures")
    op.drop_table("captures")
