"""Metrics sink capability injected into the ledger services."""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass, field
from typing import DefaultDict, List, Mapping, Optional, Protocol, Tuple

from .logging import get_logger

logger = get_logger(__name__)

__all__ = [
    "InMemoryMetricsSink",
    "MetricsSink",
    "NoopMetricsSink",
    "label_key",
]

LabelKey = Tuple[Tuple[str, str], ...]


def label_key(labels: Optional[Mapping[str, str]]) -> LabelKey:
    """Return a hashable, order-independent key for a label set."""

    return tuple(sorted((labels or {}).items()))


class MetricsSink(Protocol):  # pragma: no cover - interface only
    """Observer for ledger timings and counters."""

    def record_duration(
        self,
        name: str,
        value_ms: float,
        labels: Optional[Mapping[str, str]] = None,
    ) -> None: ...

    def increment(
        self,
        name: str,
        value: int = 1,
        labels: Optional[Mapping[str, str]] = None,
    ) -> None: ...


class NoopMetricsSink:
    """Default sink; discards every event."""

    def record_duration(
        self,
        name: str,
        value_ms: float,
        labels: Optional[Mapping[str, str]] = None,
    ) -> None:
        return None

    def increment(
        self,
        name: str,
        value: int = 1,
        labels: Optional[Mapping[str, str]] = None,
    ) -> None:
        return None


@dataclass
class InMemoryMetricsSink:
    """Metrics sink used in dev/test builds."""

    counters: DefaultDict[Tuple[str, LabelKey], int] = field(
        default_factory=lambda: defaultdict(int)
    )
    durations: DefaultDict[str, List[float]] = field(
        default_factory=lambda: defaultdict(list)
    )

    def record_duration(
        self,
        name: str,
        value_ms: float,
        labels: Optional[Mapping[str, str]] = None,
    ) -> None:
        self.durations[name].append(value_ms)
        logger.debug(
            "metrics_duration",
            extra={"metric": name, "value_ms": value_ms, "labels": dict(labels or {})},
        )

    def increment(
        self,
        name: str,
        value: int = 1,
        labels: Optional[Mapping[str, str]] = None,
    ) -> None:
        self.counters[(name, label_key(labels))] += value
        logger.info(
            "metrics_increment",
            extra={"metric": name, "value": value, "labels": dict(labels or {})},
        )

    def counter(self, name: str, labels: Optional[Mapping[str, str]] = None) -> int:
        return self.counters.get((name, label_key(labels)), 0)

    def counter_total(self, name: str) -> int:
        """Sum a counter across every label set."""

        return sum(value for (metric, _), value in self.counters.items() if metric == name)
