"""
Tests for MetricsEngine.
"""

from datetime import timedelta
from unittest.mock import patch

import pytest

from src.analytics.errors import InvalidParameter, StoreUnavailable
from src.analytics.metrics import MetricsEngine
from src.analytics.models import LogLevel, ResponseCodeCount, ServiceVolume


@pytest.fixture
def engine(memory_store, analytics_config, clock):
    return MetricsEngine(memory_store, analytics_config, clock=clock)


class TestTimeSeries:
    """Tests for time_series."""

    def test_buckets(self, engine, add_events, now):
        start = now - timedelta(minutes=2)
        add_events(start, total=90, errors=30)

        buckets = engine.time_series(start, now, 30)

        assert [b.total_count for b in buckets] == [30, 30, 30]
        assert [b.error_count for b in buckets] == [30, 0, 0]
        assert buckets[0].bucket_start == start

    def test_scoped_to_service_and_org(self, engine, add_events, now):
        start = now - timedelta(minutes=1)
        add_events(start, total=4, service="auth", org="acme")
        add_events(start, total=6, service="auth", org="globex")
        add_events(start, total=8, service="payment-service", org="acme")

        buckets = engine.time_series(start, now, 60, service="auth", org="acme")

        assert len(buckets) == 1
        assert buckets[0].service == "auth"
        assert buckets[0].total_count == 4

    def test_by_service(self, engine, add_events, now):
        start = now - timedelta(minutes=1)
        add_events(start, total=4, service="auth")
        add_events(start, total=6, service="payment-service")

        buckets = engine.time_series(start, now, 60, by_service=True)

        assert [(b.service, b.total_count) for b in buckets] == [
            ("auth", 4),
            ("payment-service", 6),
        ]

    @pytest.mark.parametrize("interval", [0, 3601])
    def test_interval_out_of_bounds(self, engine, now, interval):
        with pytest.raises(InvalidParameter):
            engine.time_series(now - timedelta(hours=1), now, interval)

    def test_empty_range(self, engine, now):
        with pytest.raises(InvalidParameter, match="start must be before end"):
            engine.time_series(now, now, 60)

    def test_store_failure_propagates(self, engine, memory_store, now):
        with patch.object(memory_store, "scan", side_effect=StoreUnavailable("down")):
            with pytest.raises(StoreUnavailable):
                engine.time_series(now - timedelta(hours=1), now, 60)


class TestDashboard:
    """Tests for dashboard."""

    def test_summary(self, engine, add_events, now):
        add_events(now - timedelta(hours=1), total=10, errors=2, service="api", spacing_seconds=60)
        add_events(now - timedelta(hours=2), total=5, service="auth", spacing_seconds=60)
        add_events(now - timedelta(hours=3), total=1, service="billing")
        add_events(now - timedelta(hours=10), total=1, service="billing")

        metrics = engine.dashboard(hours=24)

        assert metrics.total_logs == 17
        assert metrics.total_errors == 2
        assert metrics.error_rate == pytest.approx(2 / 17)
        assert metrics.avg_latency is None
        assert metrics.top_services == [
            ServiceVolume(service="api", count=10, error_rate=0.2),
            ServiceVolume(service="auth", count=5, error_rate=0.0),
            ServiceVolume(service="billing", count=2, error_rate=0.0),
        ]
        # The trend only covers the last six hours
        assert sum(b.total_count for b in metrics.recent_trend) == 16

    def test_hours_window(self, engine, add_events, now):
        add_events(now - timedelta(minutes=30), total=3)
        add_events(now - timedelta(hours=5), total=4)

        assert engine.dashboard(hours=1).total_logs == 3

    def test_org_filter(self, engine, add_events, now):
        add_events(now - timedelta(minutes=30), total=3, org="acme")
        add_events(now - timedelta(minutes=30), total=4, org="globex")

        metrics = engine.dashboard(org="acme")

        assert metrics.total_logs == 3
        assert metrics.top_services[0].count == 3

    def test_empty(self, engine):
        metrics = engine.dashboard()

        assert metrics.total_logs == 0
        assert metrics.error_rate == 0.0
        assert metrics.top_services == []
        assert metrics.recent_trend == []

    @pytest.mark.parametrize("hours", [0, 169, -1])
    def test_hours_out_of_bounds(self, engine, hours):
        with pytest.raises(InvalidParameter):
            engine.dashboard(hours=hours)


class TestServiceDetail:
    """Tests for service_detail."""

    def test_detail(self, engine, memory_store, make_event, now):
        codes = [200, 200, 200, 500, 500, 404]
        memory_store.append(
            [
                make_event(
                    timestamp=now - timedelta(minutes=i + 1),
                    level=LogLevel.ERROR if code == 500 else LogLevel.INFO,
                    response_code=code,
                    latency_ms=(i + 1) * 100,
                )
                for i, code in enumerate(codes)
            ]
            + [make_event(service="auth", timestamp=now - timedelta(minutes=1))]
        )

        detail = engine.service_detail("payment-service", hours=1)

        assert detail.service == "payment-service"
        assert detail.total_logs == 6
        assert detail.error_count == 2
        assert detail.error_rate == pytest.approx(1 / 3)
        assert detail.avg_latency == 350.0
        assert (detail.min_latency, detail.max_latency) == (100, 600)
        assert detail.response_codes == [
            ResponseCodeCount(code=200, count=3),
            ResponseCodeCount(code=500, count=2),
            ResponseCodeCount(code=404, count=1),
        ]
        assert sum(b.total_count for b in detail.timeline) == 6
        assert all(b.service == "payment-service" for b in detail.timeline)

    def test_service_required(self, engine):
        with pytest.raises(InvalidParameter, match="Service is required"):
            engine.service_detail("")

    def test_unknown_service(self, engine):
        detail = engine.service_detail("missing")

        assert detail.total_logs == 0
        assert detail.min_latency is None
        assert detail.response_codes == []
        assert detail.timeline == []


class TestRealTime:
    """Tests for real_time."""

    def test_snapshot(self, engine, add_events, now):
        add_events(now - timedelta(minutes=10), total=1)
        recent = add_events(now - timedelta(seconds=12), total=12, errors=2)

        snapshot = engine.real_time()

        assert snapshot.event_count == 12
        assert snapshot.error_count == 2
        assert snapshot.timestamp == now
        assert len(snapshot.latest_events) == 10
        assert snapshot.latest_events[0] == recent[-1]
        timestamps = [e.timestamp for e in snapshot.latest_events]
        assert timestamps == sorted(timestamps, reverse=True)

    def test_org_filter(self, engine, add_events, now):
        add_events(now - timedelta(seconds=5), total=2, org="acme")
        add_events(now - timedelta(seconds=5), total=3, org="globex")

        snapshot = engine.real_time(org="globex")

        assert snapshot.event_count == 3
        assert all(e.org == "globex" for e in snapshot.latest_events)
