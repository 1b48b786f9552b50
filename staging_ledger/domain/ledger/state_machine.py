"""Capture lifecycle state machine.

Pure module: no I/O. Every mutating ledger operation
asks it whether ``current -> target`` is legal before writing anything.

    staged ──────────────┬─> transcribed ──┬─> exported
                         │                 └─> exported_duplicate
                         ├─> exported_duplicate
                         └─> failed_transcription ─> exported_placeholder
"""

from __future__ import annotations

from enum import Enum
from typing import Dict, FrozenSet, Tuple

from .errors import StateTransitionError, TransitionReason

__all__ = [
    "ALL_STATUSES",
    "CaptureStatus",
    "ExportMode",
    "EXPORT_MODE_TARGETS",
    "NON_TERMINAL_STATUSES",
    "STATUS_TRANSITIONS",
    "TERMINAL_STATUSES",
    "assert_legal_transition",
    "is_legal_transition",
    "is_terminal",
    "target_status_for_mode",
    "valid_transitions",
]


class CaptureStatus(str, Enum):
    """Capture lifecycle states; the last three are terminal."""

    STAGED = "staged"
    TRANSCRIBED = "transcribed"
    FAILED_TRANSCRIPTION = "failed_transcription"
    EXPORTED = "exported"
    EXPORTED_DUPLICATE = "exported_duplicate"
    EXPORTED_PLACEHOLDER = "exported_placeholder"


class ExportMode(str, Enum):
    """Why a capture left the ledger the way it did."""

    INITIAL = "initial"
    DUPLICATE_SKIP = "duplicate_skip"
    PLACEHOLDER = "placeholder"


STATUS_TRANSITIONS: Dict[str, Tuple[str, ...]] = {
    CaptureStatus.STAGED.value: (
        CaptureStatus.TRANSCRIBED.value,
        CaptureStatus.FAILED_TRANSCRIPTION.value,
        CaptureStatus.EXPORTED_DUPLICATE.value,
    ),
    CaptureStatus.TRANSCRIBED.value: (
        CaptureStatus.EXPORTED.value,
        CaptureStatus.EXPORTED_DUPLICATE.value,
    ),
    CaptureStatus.FAILED_TRANSCRIPTION.value: (
        CaptureStatus.EXPORTED_PLACEHOLDER.value,
    ),
    CaptureStatus.EXPORTED.value: (),
    CaptureStatus.EXPORTED_DUPLICATE.value: (),
    CaptureStatus.EXPORTED_PLACEHOLDER.value: (),
}

ALL_STATUSES: FrozenSet[str] = frozenset(STATUS_TRANSITIONS)
TERMINAL_STATUSES: FrozenSet[str] = frozenset(
    status for status, targets in STATUS_TRANSITIONS.items() if not targets
)
NON_TERMINAL_STATUSES: FrozenSet[str] = ALL_STATUSES - TERMINAL_STATUSES

EXPORT_MODE_TARGETS: Dict[str, str] = {
    ExportMode.INITIAL.value: CaptureStatus.EXPORTED.value,
    ExportMode.DUPLICATE_SKIP.value: CaptureStatus.EXPORTED_DUPLICATE.value,
    ExportMode.PLACEHOLDER.value: CaptureStatus.EXPORTED_PLACEHOLDER.value,
}


def _value(status: str) -> str:
    # str-Enum members and plain strings both reduce to the stored value
    return getattr(status, "value", status)


def is_terminal(status: str) -> bool:
    """Return True for exported, exported_duplicate and exported_placeholder.

    Unknown statuses are not terminal; they simply have no legal transitions.
    """

    return _value(status) in TERMINAL_STATUSES


def valid_transitions(status: str) -> Tuple[str, ...]:
    """Return the legal targets for `status` (empty for terminal or unknown)."""

    return STATUS_TRANSITIONS.get(_value(status), tuple())


def is_legal_transition(current: str, target: str) -> bool:
    return _value(target) in valid_transitions(current)


def assert_legal_transition(current: str, target: str) -> None:
    """Raise ``StateTransitionError`` unless ``current -> target`` is legal."""

    current_value = _value(current)
    target_value = _value(target)
    if is_terminal(current_value):
        raise StateTransitionError(
            f"Cannot transition from terminal state: {current_value}",
            current=current_value,
            target=target_value,
            reason=TransitionReason.TERMINAL_STATE,
        )
    if not is_legal_transition(current_value, target_value):
        allowed = ", ".join(valid_transitions(current_value)) or "none"
        raise StateTransitionError(
            f"Invalid transition: {current_value} -> {target_value}. "
            f"Valid transitions: {allowed}",
            current=current_value,
            target=target_value,
            reason=TransitionReason.ILLEGAL_TRANSITION,
        )


def target_status_for_mode(mode: str) -> str:
    """Map an export mode onto the terminal status it produces."""

    try:
        return EXPORT_MODE_TARGETS[_value(mode)]
    except KeyError:
        raise ValueError(f"unknown export mode '{_value(mode)}'") from None
