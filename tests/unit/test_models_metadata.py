"""Tests for channel metadata validation and ledger record models."""

from __future__ import annotations

from datetime import datetime, timezone

import pytest
from pydantic import ValidationError

from staging_ledger.domain.ledger.models import (
    CaptureError,
    DuplicateCheckResult,
    EmailMetadata,
    ExportAudit,
    ExportMode,
    VoiceMetadata,
    new_ulid,
    parse_metadata,
)

pytestmark = [pytest.mark.ledger]


def test_parse_metadata_infers_channel_from_source():
    voice = parse_metadata("voice", {"file_path": "/memo.m4a", "audio_fingerprint": "abc"})
    email = parse_metadata("email", {"message_id": "<a@example.com>", "thread_id": "t-1"})

    assert isinstance(voice, VoiceMetadata)
    assert voice.channel == "voice"
    assert voice.audio_fingerprint == "abc"
    assert isinstance(email, EmailMetadata)
    assert email.thread_id == "t-1"


def test_parse_metadata_round_trips_stored_json():
    original = EmailMetadata(
        message_id="<a@example.com>",
        received_at=datetime(2026, 10, 18, 9, 30, tzinfo=timezone.utc),
        attempt_count=2,
        last_error=CaptureError(
            error_code="PARSE",
            message="bad mime",
            recorded_at=datetime(2026, 10, 18, 9, 31, tzinfo=timezone.utc),
        ),
    )

    restored = parse_metadata("email", original.model_dump(mode="json"))

    assert restored == original


def test_parse_metadata_rejects_channel_mismatch():
    with pytest.raises(ValueError, match="does not match source 'email'"):
        parse_metadata("email", VoiceMetadata(file_path="/memo.m4a"))


def test_parse_metadata_rejects_unknown_fields():
    with pytest.raises(ValidationError):
        parse_metadata("voice", {"file_path": "/memo.m4a", "message_id": "<x@example.com>"})


def test_parse_metadata_rejects_negative_attempts():
    with pytest.raises(ValidationError):
        parse_metadata("voice", {"file_path": "/memo.m4a", "attempt_count": -1})


def test_metadata_models_are_frozen():
    metadata = VoiceMetadata(file_path="/memo.m4a")

    with pytest.raises(ValidationError):
        metadata.file_path = "/other.m4a"


def test_export_audit_validated_coerces_mode_and_sets_error_flag():
    audit = ExportAudit(mode="placeholder", destination_path="inbox/x.md").validated()

    assert audit.mode is ExportMode.PLACEHOLDER
    assert audit.error_flag is True
    assert ExportAudit(mode="initial", destination_path="a.md").validated().error_flag is False


def test_export_audit_rejects_unknown_mode():
    with pytest.raises(ValueError):
        ExportAudit(mode="retry", destination_path="a.md").validated()


def test_duplicate_check_result_defaults():
    result = DuplicateCheckResult(is_duplicate=False)

    assert result.original_capture_id is None
    assert result.original_export_path is None


def test_new_ulid_is_26_char_crockford_base32():
    value = new_ulid()

    assert len(value) == 26
    assert set(value) <= set("0123456789ABCDEFGHJKMNPQRSTVWXYZ")
    assert new_ulid() != value
