"""Table definitions for the staging ledger.

Two relations: ``captures`` (one row per captured item) and
``export_audit_entries`` (append-only outcome trail). ``initialize`` is safe to
call on every start-up.
"""

from __future__ import annotations

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Index,
    JSON,
    MetaData,
    String,
    Table,
    Text,
    inspect,
    text,
)
from sqlalchemy.engine import Engine

from ...infra.logging import get_logger
from .errors import storage_errors
from .models import CaptureSource
from .state_machine import ALL_STATUSES, EXPORT_MODE_TARGETS

__all__ = [
    "CAPTURES_TABLE",
    "EXPORT_AUDIT_TABLE",
    "captures",
    "export_audit_entries",
    "initialize",
    "metadata",
]

logger = get_logger(__name__)

CAPTURES_TABLE = "captures"
EXPORT_AUDIT_TABLE = "export_audit_entries"


def _in_list(values) -> str:
    return ", ".join(f"'{value}'" for value in sorted(values))


metadata = MetaData()

captures = Table(
    CAPTURES_TABLE,
    metadata,
    Column("id", String(26), primary_key=True),
    Column("source", String(16), nullable=False),
    Column("raw_content", Text(), nullable=False),
    Column("content_hash", String(128), nullable=True),
    Column("status", String(32), nullable=False),
    Column("metadata", JSON(), nullable=False),
    Column("created_at", DateTime(timezone=True), nullable=False),
    Column("updated_at", DateTime(timezone=True), nullable=False),
    CheckConstraint(
        f"source IN ({_in_list(item.value for item in CaptureSource)})",
        name="ck_captures_source",
    ),
    CheckConstraint(
        f"status IN ({_in_list(ALL_STATUSES)})",
        name="ck_captures_status",
    ),
    CheckConstraint(
        "content_hash IS NULL OR length(content_hash) > 0",
        name="ck_captures_content_hash_not_empty",
    ),
)

Index(
    "ix_captures_content_hash_unique",
    captures.c.content_hash,
    unique=True,
    sqlite_where=text("content_hash IS NOT NULL"),
)
Index("ix_captures_status", captures.c.status)
Index("ix_captures_created_at", captures.c.created_at)

export_audit_entries = Table(
    EXPORT_AUDIT_TABLE,
    metadata,
    Column("id", String(26), primary_key=True),
    Column(
        "capture_id",
        String(26),
        ForeignKey(f"{CAPTURES_TABLE}.id", ondelete="RESTRICT"),
        nullable=False,
    ),
    Column("destination_path", Text(), nullable=False),
    Column("hash_at_export", String(128), nullable=True),
    Column("mode", String(32), nullable=False),
    Column("error_flag", Boolean(create_constraint=True), nullable=False),
    Column("created_at", DateTime(timezone=True), nullable=False),
    CheckConstraint(
        f"mode IN ({_in_list(EXPORT_MODE_TARGETS)})",
        name="ck_export_audit_mode",
    ),
    CheckConstraint(
        "destination_path <> '' OR mode = 'duplicate_skip'",
        name="ck_export_audit_destination_path",
    ),
    CheckConstraint(
        "hash_at_export IS NULL OR mode <> 'placeholder'",
        name="ck_export_audit_placeholder_hash",
    ),
    CheckConstraint(
        "error_flag = 0 OR mode = 'placeholder'",
        name="ck_export_audit_error_flag",
    ),
)

Index("ix_export_audit_entries_capture_id", export_audit_entries.c.capture_id)
Index("ix_export_audit_entries_created_at", export_audit_entries.c.created_at)


def initialize(engine: Engine) -> None:
    """Create both relations and their indexes when they are missing."""

    with storage_errors("initialize_schema"):
        existing = set(inspect(engine).get_table_names())
        metadata.create_all(engine, checkfirst=True)
    created = [
        name for name in (CAPTURES_TABLE, EXPORT_AUDIT_TABLE) if name not in existing
    ]
    logger.info(
        "ledger_schema_initialized",
        extra={"created_tables": created, "database": str(engine.url.database)},
    )
