"""
Counts and aggregates over half-open time windows.
"""

from datetime import datetime

from .bucketizer import validate_range
from .models import EventFilter, LogLevel, WindowAggregate
from .store.base import EventStore


class WindowStats:
    """Read-only window queries scoped by service and optional org

    Windows are half-open: `start` inclusive, `end` exclusive, so adjacent
    windows never count a boundary event twice. A `service` of None widens
    the scope to every service.
    """

    def __init__(self, store: EventStore):
        self.store = store

    def count(
        self,
        service: str | None,
        start: datetime,
        end: datetime,
        org: str | None = None,
        level: LogLevel | None = None,
    ) -> int:
        validate_range(start, end)
        return self.store.count(
            EventFilter(service=service, org=org, level=level, start=start, end=end)
        )

    def aggregate(
        self,
        service: str | None,
        start: datetime,
        end: datetime,
        org: str | None = None,
    ) -> WindowAggregate:
        validate_range(start, end)
        return self.store.aggregate(EventFilter(service=service, org=org, start=start, end=end))
