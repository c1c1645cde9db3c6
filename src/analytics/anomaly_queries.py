"""
Listing and summarizing detected anomalies.
"""

from collections import Counter
from collections.abc import Callable
from datetime import datetime, timedelta

from .config import AnalyticsConfig
from .detector import utcnow
from .errors import InvalidParameter
from .metrics import validate_hours
from .models import AnomalyFilter, AnomalyRecord, AnomalyStats
from .store.base import EventStore


class AnomalyQueries:
    """Read-only access to the anomaly table"""

    def __init__(
        self,
        store: EventStore,
        config: AnalyticsConfig,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.store = store
        self.config = config
        self.clock = clock

    def list_anomalies(
        self,
        org: str | None = None,
        service: str | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> list[AnomalyRecord]:
        """Anomalies newest first

        Raises:
            InvalidParameter: If limit or offset is out of bounds
        """
        low, high = self.config.min_page_limit, self.config.max_page_limit
        if isinstance(limit, bool) or not isinstance(limit, int) or not low <= limit <= high:
            raise InvalidParameter(f"Limit must be between {low} and {high}")
        if isinstance(offset, bool) or not isinstance(offset, int) or offset < 0:
            raise InvalidParameter("Offset must be non-negative")

        return self.store.query_anomalies(AnomalyFilter(service=service, org=org), limit, offset)

    def anomaly_stats(self, org: str | None = None, hours: int = 24) -> AnomalyStats:
        """Count, average error rate and score, and top services over the last `hours`"""
        validate_hours(hours, self.config.max_hours)
        since = self.clock() - timedelta(hours=hours)
        records = self.store.query_anomalies(AnomalyFilter(org=org, since=since), None)

        if not records:
            return AnomalyStats(
                total_anomalies=0, avg_error_rate=None, avg_score=None, top_services=[]
            )

        by_service = Counter(record.service for record in records)
        return AnomalyStats(
            total_anomalies=len(records),
            avg_error_rate=sum(r.error_rate for r in records) / len(records),
            avg_score=sum(r.score for r in records) / len(records),
            top_services=by_service.most_common(),
        )
