"""Content hashing used as the ledger's deduplication key.

Pollers and transcribers call these before ``StagingLedger.check_duplicate``
so equal content always maps to the same digest regardless of line endings or
surrounding whitespace.
"""

from __future__ import annotations

import hashlib
from typing import Optional

CONTENT_HASH_ALGO = "sha256(normalized_text)"
EMAIL_HASH_ALGO = "sha256(message_id|normalized_body)"

__all__ = [
    "CONTENT_HASH_ALGO",
    "EMAIL_HASH_ALGO",
    "compute_content_hash",
    "compute_email_hash",
    "normalize_text",
]


def normalize_text(text: Optional[str]) -> str:
    """Unify line endings to LF and strip surrounding whitespace."""

    if text is None:
        return ""
    return text.replace("\r\n", "\n").replace("\r", "\n").strip()


def compute_content_hash(text: Optional[str]) -> str:
    return hashlib.sha256(normalize_text(text).encode("utf-8")).hexdigest()


def compute_email_hash(message_id: str, body: Optional[str]) -> str:
    """Hash an email by Message-ID plus normalized body."""

    if not message_id:
        raise ValueError("message_id must not be empty")
    payload = f"{message_id}|{normalize_text(body)}"
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()
