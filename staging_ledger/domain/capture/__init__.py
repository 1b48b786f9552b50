"""Capture-side helpers shared by pollers and transcribers."""

from .hashing import compute_content_hash, compute_email_hash, normalize_text

__all__ = ["compute_content_hash", "compute_email_hash", "normalize_text"]
