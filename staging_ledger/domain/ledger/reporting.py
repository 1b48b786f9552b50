"""Read-only ledger reports."""

from __future__ import annotations

from datetime import date, datetime, time, timedelta, timezone
from typing import Optional

from sqlalchemy import case, func, select
from sqlalchemy.engine import Engine

from .errors import storage_errors
from .schema import export_audit_entries
from .state_machine import ExportMode

__all__ = ["placeholder_export_ratio"]


def placeholder_export_ratio(engine: Engine, day: Optional[date] = None) -> float:
    """Return the share (0-100) of a UTC day's exports that were placeholders.

    Days without any export report 0.0.
    """

    day = day or datetime.now(timezone.utc).date()
    start = datetime.combine(day, time.min, tzinfo=timezone.utc)
    end = start + timedelta(days=1)
    table = export_audit_entries
    stmt = select(
        func.count(),
        func.coalesce(
            func.sum(case((table.c.mode == ExportMode.PLACEHOLDER.value, 1), else_=0)),
            0,
        ),
    ).where(table.c.created_at >= start, table.c.created_at < end)

    with storage_errors("placeholder_export_ratio", day=day.isoformat()):
        with engine.connect() as conn:
            total, placeholders = conn.execute(stmt).one()

    if not total:
        return 0.0
    return (placeholders / total) * 100.0
