"""Staging ledger domain package."""

from .errors import (
    CaptureNotFoundError,
    ConstraintViolationError,
    StagingLedgerError,
    StateTransitionError,
    StorageFault,
    TransitionReason,
)
from .gateway import CaptureGateway
from .models import (
    Capture,
    CaptureSource,
    DuplicateCheckResult,
    EmailMetadata,
    ExportAudit,
    ExportAuditEntry,
    VoiceMetadata,
)
from .placeholder import PlaceholderService, TranscriptionErrorType, render_placeholder_markdown
from .reporting import placeholder_export_ratio
from .schema import initialize
from .service import StagingLedger
from .state_machine import (
    CaptureStatus,
    ExportMode,
    assert_legal_transition,
    is_terminal,
    valid_transitions,
)

__all__ = [
    "Capture",
    "CaptureGateway",
    "CaptureNotFoundError",
    "CaptureSource",
    "CaptureStatus",
    "ConstraintViolationError",
    "DuplicateCheckResult",
    "EmailMetadata",
    "ExportAudit",
    "ExportAuditEntry",
    "ExportMode",
    "PlaceholderService",
    "StagingLedger",
    "StagingLedgerError",
    "StateTransitionError",
    "StorageFault",
    "TranscriptionErrorType",
    "TransitionReason",
    "VoiceMetadata",
    "assert_legal_transition",
    "initialize",
    "is_terminal",
    "placeholder_export_ratio",
    "render_placeholder_markdown",
    "valid_transitions",
]
