"""Staging ledger data models: captures, audit entries and channel metadata."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, Any, Dict, Literal, Mapping, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter
from ulid import ULID

from .state_machine import CaptureStatus, ExportMode

__all__ = [
    "Capture",
    "CaptureError",
    "CaptureMetadata",
    "CaptureSource",
    "CaptureStatus",
    "DuplicateCheckResult",
    "EmailMetadata",
    "ExportAudit",
    "ExportAuditEntry",
    "ExportMode",
    "VoiceMetadata",
    "new_ulid",
    "parse_metadata",
    "utcnow",
]


def utcnow() -> datetime:
    """Return timezone-aware UTC timestamp."""

    return datetime.now(timezone.utc)


def new_ulid() -> str:
    """Return a new lexically sortable identifier."""

    return str(ULID())


class CaptureSource(str, Enum):
    VOICE = "voice"
    EMAIL = "email"


# ---------------------------------------------------------------------------
# Channel metadata
# ---------------------------------------------------------------------------
class CaptureError(BaseModel):
    """Last processing failure recorded against a capture."""

    model_config = ConfigDict(frozen=True)

    error_code: str
    message: str
    recorded_at: datetime


class VoiceMetadata(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    channel: Literal["voice"] = "voice"
    file_path: str = Field(min_length=1)
    audio_fingerprint: Optional[str] = None
    duration_seconds: Optional[float] = Field(default=None, ge=0)
    attempt_count: int = Field(default=0, ge=0)
    last_error: Optional[CaptureError] = None


class EmailMetadata(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    channel: Literal["email"] = "email"
    message_id: str = Field(min_length=1)
    thread_id: Optional[str] = None
    from_address: Optional[str] = None
    subject: Optional[str] = None
    received_at: Optional[datetime] = None
    attempt_count: int = Field(default=0, ge=0)
    last_error: Optional[CaptureError] = None


CaptureMetadata = Annotated[
    Union[VoiceMetadata, EmailMetadata], Field(discriminator="channel")
]
_METADATA_ADAPTER: TypeAdapter[Union[VoiceMetadata, EmailMetadata]] = TypeAdapter(
    CaptureMetadata
)


def parse_metadata(
    source: str, raw: Union[VoiceMetadata, EmailMetadata, Mapping[str, Any], None]
) -> Union[VoiceMetadata, EmailMetadata]:
    """Validate channel metadata and check it belongs to `source`.

    Raises ``ValueError`` (pydantic ``ValidationError`` included) when the
    payload does not match the channel schema.
    """

    source_value = CaptureSource(source).value
    if isinstance(raw, (VoiceMetadata, EmailMetadata)):
        metadata = raw
    else:
        payload: Dict[str, Any] = dict(raw or {})
        payload.setdefault("channel", source_value)
        metadata = _METADATA_ADAPTER.validate_python(payload)
    if metadata.channel != source_value:
        raise ValueError(
            f"metadata channel '{metadata.channel}' does not match source '{source_value}'"
        )
    return metadata


# ---------------------------------------------------------------------------
# Records
# ---------------------------------------------------------------------------
@dataclass(frozen=True)
class Capture:
    """Represents a stored `captures` row."""

    id: str
    source: CaptureSource
    raw_content: str
    content_hash: Optional[str]
    status: CaptureStatus
    metadata: Union[VoiceMetadata, EmailMetadata]
    created_at: datetime
    updated_at: datetime


@dataclass(frozen=True)
class ExportAuditEntry:
    """Represents an append-only `export_audit_entries` row."""

    id: str
    capture_id: str
    destination_path: str
    hash_at_export: Optional[str]
    mode: ExportMode
    error_flag: bool
    created_at: datetime


@dataclass(frozen=True)
class ExportAudit:
    """Outcome a caller asks the ledger to record for one capture."""

    mode: ExportMode
    destination_path: str
    hash_at_export: Optional[str] = None
    error_flag: bool = False

    def validated(self) -> "ExportAudit":
        """Return a copy with `mode` coerced, raising ``ValueError`` on bad combinations."""

        mode = ExportMode(self.mode)
        if self.destination_path is None:
            raise ValueError("destination_path is required")
        if self.destination_path == "" and mode is not ExportMode.DUPLICATE_SKIP:
            raise ValueError("destination_path may be empty only for duplicate_skip")
        if self.error_flag and mode is not ExportMode.PLACEHOLDER:
            raise ValueError("error_flag is reserved for placeholder exports")
        if mode is ExportMode.PLACEHOLDER and self.hash_at_export is not None:
            raise ValueError("hash_at_export must be absent for placeholder exports")
        return ExportAudit(
            mode=mode,
            destination_path=self.destination_path,
            hash_at_export=self.hash_at_export,
            error_flag=mode is ExportMode.PLACEHOLDER,
        )


@dataclass(frozen=True)
class DuplicateCheckResult:
    is_duplicate: bool
    original_capture_id: Optional[str] = None
    original_export_path: Optional[str] = None
