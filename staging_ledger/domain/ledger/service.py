"""Staging ledger service: duplicate lookup and transactional export recording."""

from __future__ import annotations

import time
from typing import Mapping, Optional

from sqlalchemy import select
from sqlalchemy.engine import Engine

from ...infra.db import write_transaction
from ...infra.logging import get_logger
from ...infra.metrics import MetricsSink, NoopMetricsSink
from .errors import storage_errors
from .gateway import append_audit_entry, fetch_capture, transition_capture
from .models import DuplicateCheckResult, ExportAudit, ExportAuditEntry, utcnow
from .schema import captures, export_audit_entries
from .state_machine import CaptureStatus, ExportMode, target_status_for_mode

__all__ = [
    "DEDUP_CHECK_METRIC",
    "DEDUP_HITS_METRIC",
    "DUPLICATE_SOURCE_STATUSES",
    "EXPORTS_METRIC",
    "PLACEHOLDER_EXPORTS_METRIC",
    "StagingLedger",
    "emit_safely",
]

logger = get_logger(__name__)

DEDUP_CHECK_METRIC = "dedup_check_ms"
DEDUP_HITS_METRIC = "dedup_hits_total"
EXPORTS_METRIC = "captures_exported_total"
PLACEHOLDER_EXPORTS_METRIC = "placeholder_exports_total"

DUPLICATE_SOURCE_STATUSES = (
    CaptureStatus.EXPORTED.value,
    CaptureStatus.EXPORTED_DUPLICATE.value,
)


def emit_safely(
    sink: Optional[MetricsSink],
    method: str,
    name: str,
    value: float,
    labels: Optional[Mapping[str, str]] = None,
) -> None:
    """Forward one event to the sink; sink failures are logged, never raised."""

    if sink is None:
        return
    try:
        getattr(sink, method)(name, value, labels)
    except Exception:
        logger.warning(
            "metrics_sink_failed",
            extra={"metric": name, "sink_method": method},
            exc_info=True,
        )


class StagingLedger:
    """Duplicate checks and export recording over the ``captures`` relation."""

    def __init__(self, engine: Engine, *, metrics: Optional[MetricsSink] = None) -> None:
        self._engine = engine
        self._metrics: MetricsSink = metrics if metrics is not None else NoopMetricsSink()

    def check_duplicate(self, content_hash: str) -> DuplicateCheckResult:
        """Report whether an exported capture already carries ``content_hash``.

        Only ``exported`` and ``exported_duplicate`` captures count as
        originals; a capture still in flight never matches itself. The hash
        is an opaque bound parameter; unknown, empty and malformed values all
        come back as ``is_duplicate=False``.
        """

        started = time.perf_counter()
        original_stmt = (
            select(captures.c.id)
            .where(
                captures.c.content_hash == content_hash,
                captures.c.status.in_(DUPLICATE_SOURCE_STATUSES),
            )
            .order_by(captures.c.created_at, captures.c.id)
            .limit(1)
        )
        original_id = None
        export_path = None
        with storage_errors("check_duplicate"):
            with self._engine.connect() as conn:
                # None would compile to IS NULL and match every unhashed capture
                if content_hash:
                    original_id = conn.execute(original_stmt).scalar()
                if original_id is not None:
                    export_path = conn.execute(
                        select(export_audit_entries.c.destination_path)
                        .where(
                            export_audit_entries.c.capture_id == original_id,
                            export_audit_entries.c.destination_path != "",
                        )
                        .order_by(
                            export_audit_entries.c.created_at.desc(),
                            export_audit_entries.c.id.desc(),
                        )
                        .limit(1)
                    ).scalar()

        emit_safely(
            self._metrics,
            "record_duration",
            DEDUP_CHECK_METRIC,
            (time.perf_counter() - started) * 1000.0,
        )
        if original_id is None:
            return DuplicateCheckResult(is_duplicate=False)

        emit_safely(
            self._metrics,
            "increment",
            DEDUP_HITS_METRIC,
            1,
            {"layer": "content_hash"},
        )
        logger.info(
            "ledger_duplicate_detected",
            extra={"original_capture_id": original_id, "has_export_path": bool(export_path)},
        )
        return DuplicateCheckResult(
            is_duplicate=True,
            original_capture_id=original_id,
            original_export_path=export_path,
        )

    def record_export(self, capture_id: str, audit: ExportAudit) -> ExportAuditEntry:
        """Move a capture to its terminal export status and append its audit entry.

        Load, validate, status update and audit insert run in one transaction;
        any failure leaves neither the new status nor the audit row behind.

        Raises ``CaptureNotFoundError``, ``StateTransitionError``,
        ``ConstraintViolationError``/``StorageFault``, or ``ValueError`` for an
        inconsistent audit payload.
        """

        audit = audit.validated()
        target = target_status_for_mode(audit.mode)

        with storage_errors("record_export", capture_id=capture_id):
            with write_transaction(self._engine) as conn:
                capture = fetch_capture(conn, capture_id)
                timestamp = utcnow()
                transition_capture(conn, capture, target, updated_at=timestamp)
                entry = append_audit_entry(conn, capture_id, audit, created_at=timestamp)

        logger.info(
            "ledger_export_recorded",
            extra={
                "capture_id": capture_id,
                "audit_id": entry.id,
                "mode": entry.mode.value,
                "from_status": capture.status.value,
                "to_status": target,
            },
        )
        emit_safely(
            self._metrics, "increment", EXPORTS_METRIC, 1, {"mode": entry.mode.value}
        )
        if entry.mode is ExportMode.PLACEHOLDER:
            emit_safely(self._metrics, "increment", PLACEHOLDER_EXPORTS_METRIC, 1)
        return entry
