"""Capture gateway: inbound writes from pollers/transcribers and read accessors."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, List, Mapping, Optional, Union

from sqlalchemy import insert, select, update
from sqlalchemy.engine import Connection, Engine

from ...infra.db import write_transaction
from ...infra.logging import get_logger
from .errors import (
    CaptureNotFoundError,
    StateTransitionError,
    TransitionReason,
    storage_errors,
)
from .models import (
    Capture,
    CaptureError,
    CaptureSource,
    EmailMetadata,
    ExportAudit,
    ExportAuditEntry,
    ExportMode,
    VoiceMetadata,
    new_ulid,
    parse_metadata,
    utcnow,
)
from .schema import captures, export_audit_entries
from .state_machine import (
    NON_TERMINAL_STATUSES,
    CaptureStatus,
    assert_legal_transition,
)

__all__ = [
    "CaptureGateway",
    "INITIAL_STATUSES",
    "append_audit_entry",
    "fetch_capture",
    "transition_capture",
]

logger = get_logger(__name__)

INITIAL_STATUSES = frozenset({CaptureStatus.STAGED, CaptureStatus.TRANSCRIBED})

MetadataInput = Union[VoiceMetadata, EmailMetadata, Mapping[str, Any], None]


class CaptureGateway:
    """SQLAlchemy-backed access to the ``captures`` relation."""

    def __init__(self, engine: Engine) -> None:
        self._engine = engine

    # ------------------------------------------------------------------
    # Inbound: capture creation + transcription outcomes
    # ------------------------------------------------------------------
    def create_capture(
        self,
        *,
        source: str,
        raw_content: str,
        initial_status: str,
        metadata: MetadataInput = None,
        content_hash: Optional[str] = None,
        capture_id: Optional[str] = None,
    ) -> Capture:
        """Insert a new capture.

        ``initial_status`` is the caller's decision: ``staged`` when content
        still needs transcription/extraction, ``transcribed`` when it is
        already text. It is never inferred from ``source``.
        """

        source_value = CaptureSource(source)
        status = CaptureStatus(initial_status)
        if status not in INITIAL_STATUSES:
            raise ValueError(
                f"initial_status must be one of staged, transcribed; got '{status.value}'"
            )
        if raw_content is None:
            raise ValueError("raw_content is required")
        _check_content_hash(content_hash)
        channel_metadata = parse_metadata(source_value.value, metadata)

        timestamp = utcnow()
        capture = Capture(
            id=capture_id or new_ulid(),
            source=source_value,
            raw_content=raw_content,
            content_hash=content_hash,
            status=status,
            metadata=channel_metadata,
            created_at=timestamp,
            updated_at=timestamp,
        )
        stmt = insert(captures).values(
            id=capture.id,
            source=capture.source.value,
            raw_content=capture.raw_content,
            content_hash=capture.content_hash,
            status=capture.status.value,
            metadata=capture.metadata.model_dump(mode="json"),
            created_at=capture.created_at,
            updated_at=capture.updated_at,
        )
        with storage_errors("create_capture", capture_id=capture.id):
            with write_transaction(self._engine) as conn:
                conn.execute(stmt)
        logger.info(
            "capture_created",
            extra={
                "capture_id": capture.id,
                "source": capture.source.value,
                "status": capture.status.value,
                "has_content_hash": capture.content_hash is not None,
            },
        )
        return capture

    def record_transcription_result(
        self,
        capture_id: str,
        *,
        text: str,
        content_hash: Optional[str] = None,
    ) -> Capture:
        """Move a staged capture to ``transcribed`` with its extracted text."""

        if text is None:
            raise ValueError("text is required")
        _check_content_hash(content_hash)
        with storage_errors("record_transcription_result", capture_id=capture_id):
            with write_transaction(self._engine) as conn:
                current = fetch_capture(conn, capture_id)
                timestamp = utcnow()
                transition_capture(
                    conn,
                    current,
                    CaptureStatus.TRANSCRIBED,
                    updated_at=timestamp,
                    raw_content=text,
                    content_hash=content_hash,
                )
                updated = fetch_capture(conn, capture_id)
        logger.info(
            "capture_transcribed",
            extra={
                "capture_id": capture_id,
                "text_length": len(text),
                "has_content_hash": content_hash is not None,
            },
        )
        return updated

    def record_transcription_failure(
        self,
        capture_id: str,
        *,
        error_code: str,
        message: str,
    ) -> Capture:
        """Move a staged capture to ``failed_transcription`` and keep the error."""

        with storage_errors("record_transcription_failure", capture_id=capture_id):
            with write_transaction(self._engine) as conn:
                current = fetch_capture(conn, capture_id)
                timestamp = utcnow()
                failed_metadata = current.metadata.model_copy(
                    update={
                        "attempt_count": current.metadata.attempt_count + 1,
                        "last_error": CaptureError(
                            error_code=error_code,
                            message=message,
                            recorded_at=timestamp,
                        ),
                    }
                )
                transition_capture(
                    conn,
                    current,
                    CaptureStatus.FAILED_TRANSCRIPTION,
                    updated_at=timestamp,
                    metadata=failed_metadata.model_dump(mode="json"),
                )
                updated = fetch_capture(conn, capture_id)
        logger.warning(
            "capture_transcription_failed",
            extra={
                "capture_id": capture_id,
                "error_code": error_code,
                "attempt_count": updated.metadata.attempt_count,
            },
        )
        return updated

    # ------------------------------------------------------------------
    # Outbound: read-only accessors
    # ------------------------------------------------------------------
    def get_capture(self, capture_id: str) -> Capture:
        with storage_errors("get_capture", capture_id=capture_id):
            with self._engine.connect() as conn:
                return fetch_capture(conn, capture_id)

    def list_audit_entries(self, capture_id: str) -> List[ExportAuditEntry]:
        stmt = (
            select(export_audit_entries)
            .where(export_audit_entries.c.capture_id == capture_id)
            .order_by(export_audit_entries.c.created_at, export_audit_entries.c.id)
        )
        with storage_errors("list_audit_entries", capture_id=capture_id):
            with self._engine.connect() as conn:
                rows = conn.execute(stmt).mappings().all()
        return [_row_to_audit_entry(row) for row in rows]

    def list_recoverable_captures(self) -> List[Capture]:
        """Return non-terminal captures, oldest first, for resume after a crash."""

        return self._list_by_status(sorted(NON_TERMINAL_STATUSES))

    def list_failed_transcriptions(self) -> List[Capture]:
        """Return captures waiting for placeholder export, oldest first."""

        return self._list_by_status([CaptureStatus.FAILED_TRANSCRIPTION.value])

    def _list_by_status(self, statuses: List[str]) -> List[Capture]:
        stmt = (
            select(captures)
            .where(captures.c.status.in_(statuses))
            .order_by(captures.c.created_at, captures.c.id)
        )
        with storage_errors("list_captures", statuses=statuses):
            with self._engine.connect() as conn:
                rows = conn.execute(stmt).mappings().all()
        return [_row_to_capture(row) for row in rows]


# ----------------------------------------------------------------------
# Shared transactional helpers (used by the ledger and placeholder services)
# ----------------------------------------------------------------------
def fetch_capture(conn: Connection, capture_id: str) -> Capture:
    stmt = select(captures).where(captures.c.id == capture_id)
    row = conn.execute(stmt).mappings().first()
    if row is None:
        raise CaptureNotFoundError(capture_id)
    return _row_to_capture(row)


def transition_capture(
    conn: Connection,
    current: Capture,
    target: str,
    *,
    updated_at: datetime,
    **values: Any,
) -> None:
    """Validate ``current.status -> target`` and apply it with extra column values.

    The UPDATE is guarded on the status that was read, so a row changed by
    another writer is never overwritten.
    """

    target_status = CaptureStatus(target)
    try:
        assert_legal_transition(current.status, target_status)
    except StateTransitionError as exc:
        exc.capture_id = current.id
        logger.warning(
            "capture_transition_rejected",
            extra={
                "capture_id": current.id,
                "from_status": exc.current,
                "to_status": exc.target,
                "reason": exc.reason,
            },
        )
        raise

    result = conn.execute(
        update(captures)
        .where(
            captures.c.id == current.id,
            captures.c.status == current.status.value,
        )
        .values(status=target_status.value, updated_at=updated_at, **values)
    )
    if result.rowcount != 1:
        raise StateTransitionError(
            f"Capture {current.id} left status {current.status.value} before "
            f"the transition to {target_status.value} was applied",
            current=current.status.value,
            target=target_status.value,
            reason=TransitionReason.ILLEGAL_TRANSITION,
            capture_id=current.id,
        )


def append_audit_entry(
    conn: Connection,
    capture_id: str,
    audit: ExportAudit,
    *,
    created_at: datetime,
) -> ExportAuditEntry:
    entry = ExportAuditEntry(
        id=new_ulid(),
        capture_id=capture_id,
        destination_path=audit.destination_path,
        hash_at_export=audit.hash_at_export,
        mode=ExportMode(audit.mode),
        error_flag=audit.error_flag,
        created_at=created_at,
    )
    conn.execute(
        insert(export_audit_entries).values(
            id=entry.id,
            capture_id=entry.capture_id,
            destination_path=entry.destination_path,
            hash_at_export=entry.hash_at_export,
            mode=entry.mode.value,
            error_flag=entry.error_flag,
            created_at=entry.created_at,
        )
    )
    return entry


def _check_content_hash(content_hash: Optional[str]) -> None:
    if content_hash is not None and not content_hash:
        raise ValueError("content_hash must be a non-empty digest or None")


def _as_utc(value: datetime) -> datetime:
    # SQLite returns naive datetimes; every value written is UTC.
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _row_to_capture(row: Mapping[str, Any]) -> Capture:
    return Capture(
        id=row["id"],
        source=CaptureSource(row["source"]),
        raw_content=row["raw_content"],
        content_hash=row["content_hash"],
        status=CaptureStatus(row["status"]),
        metadata=parse_metadata(row["source"], row["metadata"]),
        created_at=_as_utc(row["created_at"]),
        updated_at=_as_utc(row["updated_at"]),
    )


def _row_to_audit_entry(row: Mapping[str, Any]) -> ExportAuditEntry:
    return ExportAuditEntry(
        id=row["id"],
        capture_id=row["capture_id"],
        destination_path=row["destination_path"],
        hash_at_export=row["hash_at_export"],
        mode=ExportMode(row["mode"]),
        error_flag=bool(row["error_flag"]),
        created_at=_as_utc(row["created_at"]),
    )
