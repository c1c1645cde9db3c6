"""
Pytest configuration and shared fixtures.
"""

from datetime import UTC, datetime, timedelta

import pytest

from src.analytics.config import AnalyticsConfig
from src.analytics.models import LogEvent, LogLevel
from src.analytics.store.memory import InMemoryEventStore

# A minute-aligned instant used as "now" by the clock fixture
NOW = datetime(2025, 10, 2, 12, 0, 0, tzinfo=UTC)


@pytest.fixture
def now():
    return NOW


@pytest.fixture
def clock():
    """Fixed clock returning NOW."""
    return lambda: NOW


@pytest.fixture
def analytics_config():
    """Default configuration for testing."""
    return AnalyticsConfig(
        postgres_database="test_db",
        postgres_user="test_user",
        postgres_password="test_password",
        kafka_topic="test-topic",
        kafka_group_id="test-group",
        batch_size=10,
        commit_interval_seconds=1.0,
    )


@pytest.fixture
def memory_store():
    return InMemoryEventStore()


@pytest.fixture
def make_event():
    """Factory for log events with sensible defaults."""

    def _make_event(
        service="payment-service",
        level=LogLevel.INFO,
        timestamp=NOW,
        org=None,
        latency_ms=None,
        response_code=None,
        message=None,
    ):
        return LogEvent(
            service=service,
            level=level,
            timestamp=timestamp,
            org=org,
            latency_ms=latency_ms,
            response_code=response_code,
            message=message,
        )

    return _make_event


@pytest.fixture
def add_events(memory_store, make_event):
    """Append `total` evenly spaced events, the first `errors` of them ERROR."""

    def _add_events(start, total, errors=0, spacing_seconds=1, service="payment-service", org=None):
        events = [
            make_event(
                service=service,
                org=org,
                level=LogLevel.ERROR if i < errors else LogLevel.INFO,
                timestamp=start + timedelta(seconds=i * spacing_seconds),
            )
            for i in range(total)
        ]
        memory_store.append(events)
        return events

    return _add_events
