"""Logger stand-in for asserting on structured ledger log events."""

from __future__ import annotations

from typing import Any, Dict, List


class RecordingLogger:
    """Records ``logger.<level>(event, extra={...})`` calls instead of emitting them.

    Patch it over a module's ``logger`` attribute with ``monkeypatch.setattr``.
    """

    def __init__(self) -> None:
        self.records: List[Dict[str, Any]] = []

    def _record(self, level: str, message: str, *args: Any, **kwargs: Any) -> None:
        self.records.append(
            {
                "level": level,
                "message": message,
                "args": args,
                "kwargs": kwargs,
                "extra": dict(kwargs.get("extra") or {}),
            }
        )

    def __getattr__(self, level: str):
        if level not in {"debug", "info", "warning", "error", "exception", "critical"}:
            raise AttributeError(level)

        def log(message: str, *args: Any, **kwargs: Any) -> None:
            self._record(level, message, *args, **kwargs)

        return log

    def events(self, level: str | None = None) -> List[str]:
        return [
            record["message"]
            for record in self.records
            if level is None or record["level"] == level
        ]


def find_log(
    records: List[Dict[str, Any]], *, level: str, message: str
) -> Dict[str, Any]:
    for record in records:
        if record["level"] == level and record["message"] == message:
            return record
    seen = [(record["level"], record["message"]) for record in records]
    raise AssertionError(f"Log '{message}' at level '{level}' not recorded; saw {seen}")


def assert_extra_contains(record: Dict[str, Any], **expected: Any) -> None:
    extra = record.get("extra") or {}
    for key, value in expected.items():
        assert extra.get(key) == value, (
            f"Expected extra['{key}'] == {value!r}, found {extra.get(key)!r}"
        )
