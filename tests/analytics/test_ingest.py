"""
Tests for IngestService.
"""

from dataclasses import replace
from unittest.mock import MagicMock, call, patch

import pytest

from src.analytics.errors import InvalidParameter, StoreUnavailable
from src.analytics.ingest import IngestService
from src.analytics.models import BatchIngestResult, ItemError


def payload(service="payment-service", org="acme", level="INFO", **extra):
    return {
        "service": service,
        "orgId": org,
        "level": level,
        "timestamp": "2025-10-02T11:59:00Z",
        **extra,
    }


@pytest.fixture
def trigger():
    return MagicMock()


@pytest.fixture
def ingest(memory_store, analytics_config, trigger):
    return IngestService(memory_store, analytics_config, trigger=trigger)


class TestIngestService:
    """Tests for IngestService."""

    def test_single_event(self, ingest, memory_store, trigger):
        result = ingest.ingest(payload())

        assert result.accepted_count == 1
        assert result.rejected_count == 0
        assert len(memory_store._events) == 1
        trigger.notify.assert_called_once_with("payment-service", "acme")

    def test_partial_batch(self, ingest, memory_store, trigger):
        """Test invalid items are reported by index and valid ones stored."""
        batch = [
            payload(service="auth"),
            payload(level="FATAL"),
            payload(service="auth", level="ERROR"),
            payload(latencyMs=-5),
            payload(service="billing", org="globex"),
        ]

        result = ingest.ingest(batch)

        assert result.accepted_count == 3
        assert result.rejected_count == 2
        assert result.partial_failure
        assert [e.index for e in result.errors] == [1, 3]
        assert "level must be one of" in result.errors[0].error
        assert len(memory_store._events) == 3
        # One notify per distinct partition, in arrival order
        assert trigger.notify.call_args_list == [
            call("auth", "acme"),
            call("billing", "globex"),
        ]

    def test_all_invalid(self, ingest, memory_store, trigger):
        result = ingest.ingest([payload(level="FATAL"), {"service": "auth"}])

        assert result.accepted_count == 0
        assert result.rejected_count == 2
        assert memory_store._events == []
        trigger.notify.assert_not_called()

    def test_accepts_log_events(self, ingest, make_event, trigger):
        result = ingest.ingest([make_event(org="acme")])

        assert result.accepted_count == 1
        trigger.notify.assert_called_once_with("payment-service", "acme")

    def test_empty_batch(self, ingest):
        with pytest.raises(InvalidParameter, match="between 1 and"):
            ingest.ingest([])

    def test_batch_too_large(self, memory_store, analytics_config, trigger):
        ingest = IngestService(memory_store, replace(analytics_config, max_batch_size=2), trigger)

        with pytest.raises(InvalidParameter):
            ingest.ingest([payload()] * 3)

    def test_store_unavailable(self, ingest, memory_store, trigger):
        """Test a failed append propagates and triggers nothing."""
        with patch.object(memory_store, "append", side_effect=StoreUnavailable("down")):
            with pytest.raises(StoreUnavailable):
                ingest.ingest([payload()])

        trigger.notify.assert_not_called()

    def test_store_rejections_mapped_to_batch_index(self, analytics_config, trigger):
        """Test row errors from the store point at the caller's positions."""
        store = MagicMock()
        store.append.return_value = BatchIngestResult(
            accepted_count=1, rejected_count=1, errors=[ItemError(index=0, error="value too long")]
        )
        ingest = IngestService(store, analytics_config, trigger=trigger)

        result = ingest.ingest(
            [
                payload(level="FATAL"),
                payload(service="auth"),
                payload(service="billing"),
            ]
        )

        assert len(store.append.call_args.args[0]) == 2
        assert [(e.index, e.error) for e in result.errors] == [
            (0, result.errors[0].error),
            (1, "value too long"),
        ]
        assert result.accepted_count == 1
        assert result.rejected_count == 2
        trigger.notify.assert_called_once_with("billing", "acme")

    def test_trigger_failure_does_not_fail_ingest(self, ingest, trigger):
        trigger.notify.side_effect = RuntimeError("scheduler gone")

        result = ingest.ingest([payload(service="auth"), payload(service="billing")])

        assert result.accepted_count == 2
        assert trigger.notify.call_count == 2

    def test_without_trigger(self, memory_store, analytics_config):
        ingest = IngestService(memory_store, analytics_config)

        assert ingest.ingest(payload()).accepted_count == 1
