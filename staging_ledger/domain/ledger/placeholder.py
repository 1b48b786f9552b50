"""Placeholder finalization for captures whose transcription failed for good."""

from __future__ import annotations

import posixpath
from enum import Enum
from typing import Optional

from sqlalchemy.engine import Engine

from ...infra.db import write_transaction
from ...infra.logging import get_logger
from ...infra.metrics import MetricsSink, NoopMetricsSink
from .errors import StateTransitionError, TransitionReason, storage_errors
from .gateway import append_audit_entry, fetch_capture, transition_capture
from .models import Capture, EmailMetadata, ExportAudit, ExportAuditEntry, VoiceMetadata, utcnow
from .service import EXPORTS_METRIC, PLACEHOLDER_EXPORTS_METRIC, emit_safely
from .state_machine import CaptureStatus, ExportMode, is_terminal

__all__ = [
    "PlaceholderService",
    "TranscriptionErrorType",
    "render_placeholder_markdown",
]

logger = get_logger(__name__)

DEFAULT_INBOX_DIR = "inbox"


class TranscriptionErrorType(str, Enum):
    TIMEOUT = "TIMEOUT"
    CORRUPT_AUDIO = "CORRUPT_AUDIO"
    OOM = "OOM"
    UNSUPPORTED_FORMAT = "UNSUPPORTED_FORMAT"
    FILE_NOT_FOUND = "FILE_NOT_FOUND"
    UNKNOWN = "UNKNOWN"


def render_placeholder_markdown(
    capture: Capture,
    error_type: TranscriptionErrorType | str,
    reason: str,
) -> str:
    """Build the permanent placeholder body written in place of lost content."""

    error_label = getattr(error_type, "value", error_type)
    metadata = capture.metadata
    if isinstance(metadata, VoiceMetadata):
        source_line = f"Audio file: {metadata.file_path}"
    elif isinstance(metadata, EmailMetadata):
        source_line = f"Message-ID: {metadata.message_id}"
    else:  # pragma: no cover - exhaustive over the channel union
        source_line = ""

    return "\n".join(
        [
            f"[TRANSCRIPTION_FAILED: {error_label}]",
            "",
            "---",
            source_line,
            f"Captured at: {capture.created_at.isoformat()}",
            f"Error: {reason}",
            f"Retry count: {metadata.attempt_count}",
            "---",
            "",
            "This placeholder is PERMANENT and cannot be retried.",
            "Original content unavailable due to processing failure.",
        ]
    )


class PlaceholderService:
    """Only path from ``failed_transcription`` to ``exported_placeholder``."""

    def __init__(
        self,
        engine: Engine,
        *,
        metrics: Optional[MetricsSink] = None,
        inbox_dir: str = DEFAULT_INBOX_DIR,
    ) -> None:
        self._engine = engine
        self._metrics: MetricsSink = metrics if metrics is not None else NoopMetricsSink()
        self._inbox_dir = inbox_dir

    def default_destination(self, capture_id: str) -> str:
        return posixpath.join(self._inbox_dir, f"{capture_id}.md")

    def finalize_as_placeholder(
        self,
        capture_id: str,
        placeholder_content: str,
        *,
        destination_path: Optional[str] = None,
    ) -> ExportAuditEntry:
        """Replace a failed capture's content with ``placeholder_content``.

        The content is stored verbatim, ``content_hash`` is cleared, the status
        becomes ``exported_placeholder`` and one ``placeholder`` audit entry is
        appended, all in one transaction. No retry is possible afterwards.
        """

        if placeholder_content is None:
            raise ValueError("placeholder_content is required")
        audit = ExportAudit(
            mode=ExportMode.PLACEHOLDER,
            destination_path=destination_path or self.default_destination(capture_id),
            hash_at_export=None,
            error_flag=True,
        ).validated()

        with storage_errors("finalize_as_placeholder", capture_id=capture_id):
            with write_transaction(self._engine) as conn:
                capture = fetch_capture(conn, capture_id)
                _check_placeholder_source(capture)
                timestamp = utcnow()
                transition_capture(
                    conn,
                    capture,
                    CaptureStatus.EXPORTED_PLACEHOLDER,
                    updated_at=timestamp,
                    raw_content=placeholder_content,
                    content_hash=None,
                )
                entry = append_audit_entry(conn, capture_id, audit, created_at=timestamp)

        logger.info(
            "capture_finalized_as_placeholder",
            extra={
                "capture_id": capture_id,
                "audit_id": entry.id,
                "destination_path": entry.destination_path,
                "attempt_count": capture.metadata.attempt_count,
            },
        )
        emit_safely(
            self._metrics, "increment", EXPORTS_METRIC, 1, {"mode": entry.mode.value}
        )
        emit_safely(self._metrics, "increment", PLACEHOLDER_EXPORTS_METRIC, 1)
        return entry


def _check_placeholder_source(capture: Capture) -> None:
    if capture.status is CaptureStatus.FAILED_TRANSCRIPTION:
        return
    status = capture.status.value
    target = CaptureStatus.EXPORTED_PLACEHOLDER.value
    if is_terminal(status):
        message = (
            f"Cannot finalize capture {capture.id} as placeholder: "
            f"terminal state '{status}'"
        )
        reason = TransitionReason.TERMINAL_STATE
    else:
        message = (
            f"Cannot finalize capture {capture.id} as placeholder: "
            f"invalid source state '{status}' (expected 'failed_transcription')"
        )
        reason = TransitionReason.INVALID_SOURCE_STATE
    logger.warning(
        "placeholder_finalize_rejected",
        extra={"capture_id": capture.id, "from_status": status, "reason": reason},
    )
    raise StateTransitionError(
        message,
        current=status,
        target=target,
        reason=reason,
        capture_id=capture.id,
    )
