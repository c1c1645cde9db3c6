"""
In-memory event store.

Keeps events and anomalies in lists guarded by a lock. Suitable for tests,
demos and low-volume embedding where persistence is not required.
"""

import threading
from collections import Counter
from collections.abc import Iterator, Sequence
from dataclasses import replace
from typing import Any

from ..models import (
    AnomalyFilter,
    AnomalyRecord,
    BatchIngestResult,
    EventFilter,
    LogEvent,
    WindowAggregate,
)
from .base import EventStore


class InMemoryEventStore(EventStore):
    """EventStore backed by Python lists"""

    def __init__(self):
        self._events: list[LogEvent] = []
        self._anomalies: list[AnomalyRecord] = []
        self._next_anomaly_id = 1
        self._lock = threading.Lock()

    def _select(self, event_filter: EventFilter) -> list[LogEvent]:
        with self._lock:
            return [e for e in self._events if event_filter.matches(e)]

    def append(self, events: Sequence[LogEvent]) -> BatchIngestResult:
        result = BatchIngestResult()
        with self._lock:
            for index, event in enumerate(events):
                if not isinstance(event, LogEvent):
                    result.reject(index, f"expected LogEvent, got {type(event).__name__}")
                    continue
                self._events.append(event)
                result.accepted_count += 1
        return result

    def count(self, event_filter: EventFilter) -> int:
        return len(self._select(event_filter))

    def aggregate(self, event_filter: EventFilter) -> WindowAggregate:
        events = self._select(event_filter)
        latencies = [e.latency_ms for e in events if e.latency_ms is not None]
        return WindowAggregate(
            total_count=len(events),
            error_count=sum(1 for e in events if e.is_error),
            avg_latency=sum(latencies) / len(latencies) if latencies else None,
            min_latency=min(latencies) if latencies else None,
            max_latency=max(latencies) if latencies else None,
        )

    def scan(self, event_filter: EventFilter) -> Iterator[LogEvent]:
        yield from sorted(self._select(event_filter), key=lambda e: e.timestamp)

    def top_values(
        self, event_filter: EventFilter, field: str, limit: int | None
    ) -> list[tuple[Any, int]]:
        self.validate_field(field)
        counter: Counter = Counter()
        for event in self._select(event_filter):
            value = getattr(event, field)
            if value is None:
                continue
            counter[value.value if field == "level" else value] += 1
        return counter.most_common(limit)

    def recent(self, event_filter: EventFilter, limit: int) -> list[LogEvent]:
        events = sorted(self._select(event_filter), key=lambda e: e.timestamp, reverse=True)
        return events[:limit]

    def save_anomaly(self, record: AnomalyRecord) -> AnomalyRecord:
        with self._lock:
            stored = replace(record, id=self._next_anomaly_id)
            self._next_anomaly_id += 1
            self._anomalies.append(stored)
        return stored

    def query_anomalies(
        self, anomaly_filter: AnomalyFilter, limit: int | None, offset: int = 0
    ) -> list[AnomalyRecord]:
        with self._lock:
            matches = [a for a in self._anomalies if anomaly_filter.matches(a)]
        # Newest first; id breaks ties between records created in the same instant
        matches.sort(key=lambda a: (a.created_at, a.id), reverse=True)
        if limit is None:
            return matches[offset:]
        return matches[offset : offset + limit]
