"""Staging ledger: content-addressed capture store with an auditable lifecycle."""

from .domain.ledger import (
    CaptureGateway,
    CaptureNotFoundError,
    CaptureStatus,
    ConstraintViolationError,
    DuplicateCheckResult,
    ExportAudit,
    ExportAuditEntry,
    ExportMode,
    PlaceholderService,
    StagingLedger,
    StagingLedgerError,
    StateTransitionError,
    StorageFault,
    initialize,
)

__all__ = [
    "CaptureGateway",
    "CaptureNotFoundError",
    "CaptureStatus",
    "ConstraintViolationError",
    "DuplicateCheckResult",
    "ExportAudit",
    "ExportAuditEntry",
    "ExportMode",
    "PlaceholderService",
    "StagingLedger",
    "StagingLedgerError",
    "StateTransitionError",
    "StorageFault",
    "initialize",
]
