"""
Tests for AnomalyQueries.
"""

from datetime import timedelta

import pytest

from src.analytics.anomaly_queries import AnomalyQueries
from src.analytics.errors import InvalidParameter
from src.analytics.models import AnomalyRecord


@pytest.fixture
def queries(memory_store, analytics_config, clock):
    return AnomalyQueries(memory_store, analytics_config, clock=clock)


@pytest.fixture
def save_record(memory_store, now):
    def _save_record(
        service="payment-service", org="acme", age_minutes=0, error_rate=0.5, score=10.0
    ):
        created_at = now - timedelta(minutes=age_minutes)
        return memory_store.save_anomaly(
            AnomalyRecord(
                service=service,
                org=org,
                window_start=created_at - timedelta(minutes=2),
                window_end=created_at,
                error_count=5,
                total_count=10,
                error_rate=error_rate,
                baseline_rate=0.05,
                score=score,
                evidence={"reason": "spike", "nested": {"baseline_total": 100}},
                created_at=created_at,
            )
        )

    return _save_record


class TestListAnomalies:
    """Tests for list_anomalies."""

    def test_newest_first(self, queries, save_record):
        old = save_record(age_minutes=30)
        new = save_record(age_minutes=1)
        middle = save_record(age_minutes=10)

        assert queries.list_anomalies() == [new, middle, old]

    def test_same_instant_ordered_by_id(self, queries, save_record):
        first = save_record()
        second = save_record()

        assert queries.list_anomalies() == [second, first]

    def test_pagination(self, queries, save_record):
        records = [save_record(age_minutes=minutes) for minutes in range(5)]

        page = queries.list_anomalies(limit=2, offset=2)

        assert page == records[2:4]

    def test_filters(self, queries, save_record):
        save_record(service="auth", org="acme")
        save_record(service="payment-service", org="globex")
        match = save_record(service="payment-service", org="acme")

        assert queries.list_anomalies(org="acme", service="payment-service") == [match]

    def test_round_trip(self, queries, save_record):
        """Test a stored record reads back with every field intact."""
        stored = save_record()

        (loaded,) = queries.list_anomalies()

        assert loaded == stored
        assert loaded.evidence["nested"] == {"baseline_total": 100}

    @pytest.mark.parametrize("limit", [0, 1001, -5, True])
    def test_invalid_limit(self, queries, limit):
        with pytest.raises(InvalidParameter, match="Limit must be between 1 and 1000"):
            queries.list_anomalies(limit=limit)

    def test_invalid_offset(self, queries):
        with pytest.raises(InvalidParameter, match="Offset must be non-negative"):
            queries.list_anomalies(offset=-1)


class TestAnomalyStats:
    """Tests for anomaly_stats."""

    def test_summary(self, queries, save_record):
        save_record(service="auth", error_rate=0.2, score=4.0)
        save_record(service="payment-service", error_rate=0.4, score=8.0)
        save_record(service="payment-service", error_rate=0.6, score=12.0)
        save_record(service="auth", age_minutes=60 * 30, error_rate=0.9, score=90.0)

        stats = queries.anomaly_stats(hours=24)

        assert stats.total_anomalies == 3
        assert stats.avg_error_rate == pytest.approx(0.4)
        assert stats.avg_score == pytest.approx(8.0)
        assert stats.top_services == [("payment-service", 2), ("auth", 1)]

    def test_org_filter(self, queries, save_record):
        save_record(org="acme")
        save_record(org="globex")

        assert queries.anomaly_stats(org="globex").total_anomalies == 1

    def test_empty(self, queries):
        stats = queries.anomaly_stats()

        assert stats.total_anomalies == 0
        assert stats.avg_error_rate is None
        assert stats.avg_score is None
        assert stats.top_services == []

    def test_hours_out_of_bounds(self, queries):
        with pytest.raises(InvalidParameter):
            queries.anomaly_stats(hours=169)
