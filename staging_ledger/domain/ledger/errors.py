"""Error taxonomy for staging ledger operations."""

from __future__ import annotations

from contextlib import contextmanager
from typing import Any, Iterator, Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from ...infra.logging import get_logger

__all__ = [
    "CaptureNotFoundError",
    "ConstraintViolationError",
    "StagingLedgerError",
    "StateTransitionError",
    "StorageFault",
    "TransitionReason",
    "storage_errors",
]

logger = get_logger(__name__)


class TransitionReason:
    TERMINAL_STATE = "terminal_state"
    ILLEGAL_TRANSITION = "illegal_transition"
    INVALID_SOURCE_STATE = "invalid_source_state"


class StagingLedgerError(Exception):
    """Base class for every error raised by the staging ledger."""


class CaptureNotFoundError(StagingLedgerError, LookupError):
    def __init__(self, capture_id: str) -> None:
        super().__init__(f"Capture {capture_id!r} not found")
        self.capture_id = capture_id


class StateTransitionError(StagingLedgerError, ValueError):
    """Raised for an illegal transition or any attempt to leave a terminal state.

    Always fatal to the caller's unit of work: a correctly sequenced pipeline
    never triggers it.
    """

    def __init__(
        self,
        message: str,
        *,
        current: str,
        target: str,
        reason: str,
        capture_id: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        self.current = current
        self.target = target
        self.reason = reason
        self.capture_id = capture_id

    @property
    def is_terminal(self) -> bool:
        return self.reason == TransitionReason.TERMINAL_STATE


class StorageFault(StagingLedgerError, RuntimeError):
    """The embedded store itself failed (I/O, locking, unexpected SQL error)."""

    def __init__(self, operation: str, detail: str) -> None:
        super().__init__(f"{operation} failed: {detail}")
        self.operation = operation
        self.detail = detail


class ConstraintViolationError(StorageFault):
    """A schema constraint rejected the write; the input was bad, not the disk."""


@contextmanager
def storage_errors(operation: str, **context: Any) -> Iterator[None]:
    """Translate SQLAlchemy failures raised inside the block into ledger errors.

    Domain errors pass through untouched.
    """

    try:
        yield
    except IntegrityError as exc:
        logger.warning(
            "ledger_constraint_violation",
            extra={"operation": operation, "error": str(exc.orig), **context},
        )
        raise ConstraintViolationError(operation, str(exc.orig)) from exc
    except SQLAlchemyError as exc:
        logger.error(
            "ledger_storage_fault",
            extra={"operation": operation, **context},
            exc_info=True,
        )
        raise StorageFault(operation, str(exc)) from exc
