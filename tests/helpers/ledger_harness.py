"""Reusable helpers for driving captures through the staging ledger in tests."""

from __future__ import annotations

import itertools
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from sqlalchemy import func, select
from sqlalchemy.engine import Engine

from staging_ledger.domain.capture.hashing import compute_content_hash
from staging_ledger.domain.ledger import schema
from staging_ledger.domain.ledger.gateway import CaptureGateway
from staging_ledger.domain.ledger.models import Capture, ExportAudit, ExportMode
from staging_ledger.domain.ledger.placeholder import PlaceholderService
from staging_ledger.domain.ledger.service import StagingLedger
from staging_ledger.infra.db import create_ledger_engine
from staging_ledger.infra.metrics import InMemoryMetricsSink

__all__ = ["LedgerHarness", "MEMORY_URL"]

MEMORY_URL = "sqlite+pysqlite:///:memory:"

_counter = itertools.count(1)


def _default_metadata(source: str) -> Dict[str, Any]:
    n = next(_counter)
    if source == "voice":
        return {"file_path": f"/captures/voice/memo-{n}.m4a"}
    return {"message_id": f"<msg-{n}@example.com>", "subject": f"Note {n}"}


@dataclass
class LedgerHarness:
    """Engine plus the three ledger entry points sharing one metrics sink."""

    engine: Engine
    gateway: CaptureGateway
    ledger: StagingLedger
    placeholders: PlaceholderService
    metrics: InMemoryMetricsSink = field(default_factory=InMemoryMetricsSink)

    @classmethod
    def create(cls, url: str = MEMORY_URL, **engine_kwargs: Any) -> "LedgerHarness":
        engine = create_ledger_engine(url, **engine_kwargs)
        schema.initialize(engine)
        metrics = InMemoryMetricsSink()
        return cls(
            engine=engine,
            gateway=CaptureGateway(engine),
            ledger=StagingLedger(engine, metrics=metrics),
            placeholders=PlaceholderService(engine, metrics=metrics),
            metrics=metrics,
        )

    # ------------------------------------------------------------------
    # Captures in a given lifecycle state
    # ------------------------------------------------------------------
    def staged(
        self,
        *,
        source: str = "voice",
        content_hash: Optional[str] = None,
        raw_content: str = "",
        metadata: Optional[Dict[str, Any]] = None,
    ) -> Capture:
        return self.gateway.create_capture(
            source=source,
            raw_content=raw_content,
            initial_status="staged",
            metadata=metadata or _default_metadata(source),
            content_hash=content_hash,
        )

    def transcribed(
        self,
        text: Optional[str] = None,
        *,
        source: str = "email",
        content_hash: Optional[str] = None,
    ) -> Capture:
        text = text or f"Remember to renew the passport ({next(_counter)})"
        return self.gateway.create_capture(
            source=source,
            raw_content=text,
            initial_status="transcribed",
            metadata=_default_metadata(source),
            content_hash=content_hash or compute_content_hash(text),
        )

    def failed(
        self,
        *,
        content_hash: Optional[str] = None,
        error_code: str = "TIMEOUT",
        message: str = "transcription timed out after 300s",
    ) -> Capture:
        capture = self.staged(content_hash=content_hash)
        return self.gateway.record_transcription_failure(
            capture.id, error_code=error_code, message=message
        )

    def exported(self, text: Optional[str] = None) -> Capture:
        capture = self.transcribed(text)
        self.ledger.record_export(
            capture.id,
            ExportAudit(
                mode=ExportMode.INITIAL,
                destination_path=f"vault/inbox/{capture.id}.md",
                hash_at_export=capture.content_hash,
            ),
        )
        return self.gateway.get_capture(capture.id)

    def exported_duplicate(self) -> Capture:
        capture = self.staged(content_hash=compute_content_hash(f"dup-{next(_counter)}"))
        self.ledger.record_export(
            capture.id,
            ExportAudit(
                mode=ExportMode.DUPLICATE_SKIP,
                destination_path="",
                hash_at_export=capture.content_hash,
            ),
        )
        return self.gateway.get_capture(capture.id)

    def exported_placeholder(self) -> Capture:
        capture = self.failed()
        self.placeholders.finalize_as_placeholder(capture.id, "[TRANSCRIPTION_FAILED: TIMEOUT]")
        return self.gateway.get_capture(capture.id)

    def in_terminal_status(self, status: str) -> Capture:
        builders = {
            "exported": self.exported,
            "exported_duplicate": self.exported_duplicate,
            "exported_placeholder": self.exported_placeholder,
        }
        return builders[status]()

    # ------------------------------------------------------------------
    # Inspection
    # ------------------------------------------------------------------
    def audit_modes(self, capture_id: str) -> List[str]:
        return [entry.mode.value for entry in self.gateway.list_audit_entries(capture_id)]

    def row_count(self, table_name: str) -> int:
        table = schema.metadata.tables[table_name]
        with self.engine.connect() as conn:
            return int(conn.execute(select(func.count()).select_from(table)).scalar())
