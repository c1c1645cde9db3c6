"""
Read-side metrics for dashboards.

Every operation is a pure read against the event store: no locks, no side
effects, safe to run concurrently with ingestion and with each other.
"""

from collections.abc import Callable
from datetime import datetime, timedelta

import structlog

from .bucketizer import bucketize, validate_interval
from .config import AnalyticsConfig
from .detector import utcnow
from .errors import InvalidParameter
from .models import (
    DashboardMetrics,
    EventFilter,
    LogLevel,
    MetricsBucket,
    RealTimeSnapshot,
    ResponseCodeCount,
    ServiceMetrics,
    ServiceVolume,
    error_rate,
)
from .store.base import EventStore
from .window_stats import WindowStats

logger = structlog.get_logger(__name__)

TOP_SERVICES_LIMIT = 10
TREND_HOURS = 6
TREND_INTERVAL_SECONDS = 30 * 60
TIMELINE_INTERVAL_SECONDS = 5 * 60
REALTIME_WINDOW_SECONDS = 5 * 60
REALTIME_FEED_SIZE = 10


def validate_hours(hours: int, max_hours: int) -> int:
    if isinstance(hours, bool) or not isinstance(hours, int):
        raise InvalidParameter("Hours must be an integer")
    if not 1 <= hours <= max_hours:
        raise InvalidParameter(f"Hours must be between 1 and {max_hours}")
    return hours


class MetricsEngine:
    """Time series, dashboard, per-service and real-time metrics"""

    def __init__(
        self,
        store: EventStore,
        config: AnalyticsConfig,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.store = store
        self.config = config
        self.clock = clock
        self.stats = WindowStats(store)

    def time_series(
        self,
        start: datetime,
        end: datetime,
        interval_seconds: int = 60,
        service: str | None = None,
        org: str | None = None,
        by_service: bool = False,
    ) -> list[MetricsBucket]:
        """Bucketed counts over [start, end)

        Raises:
            InvalidParameter: If the interval is out of bounds or start >= end
        """
        validate_interval(
            interval_seconds,
            self.config.min_interval_seconds,
            self.config.max_interval_seconds,
        )
        if start >= end:
            raise InvalidParameter("start must be before end")

        events = self.store.scan(EventFilter(service=service, org=org, start=start, end=end))
        buckets = bucketize(
            events, start, end, interval_seconds, service=service, by_service=by_service
        )
        logger.debug(
            "Time series computed",
            service=service,
            org=org,
            interval_seconds=interval_seconds,
            buckets=len(buckets),
        )
        return buckets

    def dashboard(self, org: str | None = None, hours: int = 24) -> DashboardMetrics:
        """Totals, top services and a 6 hour trend"""
        validate_hours(hours, self.config.max_hours)
        now = self.clock()
        since = now - timedelta(hours=hours)

        totals = self.stats.aggregate(None, since, now, org=org)

        top_services = []
        window = EventFilter(org=org, start=since, end=now)
        for service, count in self.store.top_values(window, "service", TOP_SERVICES_LIMIT):
            errors = self.stats.count(service, since, now, org=org, level=LogLevel.ERROR)
            top_services.append(
                ServiceVolume(service=service, count=count, error_rate=error_rate(errors, count))
            )

        trend = self.time_series(
            now - timedelta(hours=TREND_HOURS), now, TREND_INTERVAL_SECONDS, org=org
        )

        return DashboardMetrics(
            total_logs=totals.total_count,
            total_errors=totals.error_count,
            error_rate=totals.error_rate,
            avg_latency=totals.avg_latency,
            top_services=top_services,
            recent_trend=trend,
        )

    def service_detail(
        self, service: str, org: str | None = None, hours: int = 24
    ) -> ServiceMetrics:
        """Totals, latency spread, response codes and a 5 minute timeline for one service"""
        if not service:
            raise InvalidParameter("Service is required")
        validate_hours(hours, self.config.max_hours)
        now = self.clock()
        since = now - timedelta(hours=hours)

        totals = self.stats.aggregate(service, since, now, org=org)
        window = EventFilter(service=service, org=org, start=since, end=now)
        response_codes = [
            ResponseCodeCount(code=code, count=count)
            for code, count in self.store.top_values(window, "response_code", None)
        ]
        timeline = self.time_series(
            since, now, TIMELINE_INTERVAL_SECONDS, service=service, org=org
        )

        return ServiceMetrics(
            service=service,
            total_logs=totals.total_count,
            error_count=totals.error_count,
            error_rate=totals.error_rate,
            avg_latency=totals.avg_latency,
            min_latency=totals.min_latency,
            max_latency=totals.max_latency,
            response_codes=response_codes,
            timeline=timeline,
        )

    def real_time(self, org: str | None = None) -> RealTimeSnapshot:
        """Activity over the trailing five minutes with a live feed"""
        now = self.clock()
        since = now - timedelta(seconds=REALTIME_WINDOW_SECONDS)

        totals = self.stats.aggregate(None, since, now, org=org)
        latest = self.store.recent(EventFilter(org=org, start=since, end=now), REALTIME_FEED_SIZE)

        return RealTimeSnapshot(
            event_count=totals.total_count,
            error_count=totals.error_count,
            avg_latency=totals.avg_latency,
            latest_events=latest,
            timestamp=now,
        )
