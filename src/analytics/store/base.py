"""
Abstract event store interface.

The analytics core depends only on this contract. Every time range is
half-open: `start` inclusive, `end` exclusive.
"""

from abc import ABC, abstractmethod
from collections.abc import Iterator, Sequence
from typing import Any

from ..models import (
    AnomalyFilter,
    AnomalyRecord,
    BatchIngestResult,
    EventFilter,
    LogEvent,
    WindowAggregate,
)

# Columns a store can group by in `top_values`
GROUPABLE_FIELDS = ("service", "response_code", "level")


class EventStore(ABC):
    """Append-only store of log events plus the anomaly table

    Implementations must be safe to call from several threads at once.
    Read and write failures surface as StoreUnavailable.
    """

    @abstractmethod
    def append(self, events: Sequence[LogEvent]) -> BatchIngestResult:
        """Append events, accepting each one independently

        Returns:
            Result whose item errors are indexed by position in `events`
        """
        pass

    @abstractmethod
    def count(self, event_filter: EventFilter) -> int:
        pass

    @abstractmethod
    def aggregate(self, event_filter: EventFilter) -> WindowAggregate:
        """Total count, error count and latency statistics for the filter"""
        pass

    @abstractmethod
    def scan(self, event_filter: EventFilter) -> Iterator[LogEvent]:
        """Iterate matching events in ascending timestamp order"""
        pass

    @abstractmethod
    def top_values(
        self, event_filter: EventFilter, field: str, limit: int | None
    ) -> list[tuple[Any, int]]:
        """Group matching events by `field` and count them

        Null values are excluded. Ordered by count descending.
        """
        pass

    @abstractmethod
    def recent(self, event_filter: EventFilter, limit: int) -> list[LogEvent]:
        """Most recent matching events, newest first"""
        pass

    @abstractmethod
    def save_anomaly(self, record: AnomalyRecord) -> AnomalyRecord:
        """Persist a record and return it with its assigned id"""
        pass

    @abstractmethod
    def query_anomalies(
        self, anomaly_filter: AnomalyFilter, limit: int | None, offset: int = 0
    ) -> list[AnomalyRecord]:
        """Anomalies ordered newest first; `limit=None` returns every match"""
        pass

    def check_health(self) -> bool:
        return True

    def close(self):
        pass

    @staticmethod
    def validate_field(field: str) -> None:
        if field not in GROUPABLE_FIELDS:
            available = ", ".join(GROUPABLE_FIELDS)
            raise ValueError(f"Cannot group by '{field}'. Available fields: {available}")
