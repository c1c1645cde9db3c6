"""
Batch ingestion of log events.

Validates each item independently, appends the valid ones, and only after
the append has committed notifies the detection trigger once per distinct
(service, org) partition among the accepted events.
"""

from collections.abc import Sequence
from typing import Any

import structlog

from .config import AnalyticsConfig
from .errors import InvalidParameter
from .models import BatchIngestResult, LogEvent
from .scheduler import DetectionTrigger
from .store.base import EventStore

logger = structlog.get_logger(__name__)


class IngestService:
    """Validates, stores and announces batches of log events"""

    def __init__(
        self,
        store: EventStore,
        config: AnalyticsConfig,
        trigger: DetectionTrigger | None = None,
    ):
        self.store = store
        self.config = config
        self.trigger = trigger

    def ingest(self, payload: dict[str, Any] | Sequence[Any]) -> BatchIngestResult:
        """Ingest a single event or a batch

        Args:
            payload: One raw event mapping, or a list of mappings / LogEvents

        Returns:
            Accepted and rejected counts with per-item reasons

        Raises:
            InvalidParameter: If the batch is empty or larger than the configured bound
            StoreUnavailable: If the store cannot take the batch at all
        """
        items = list(payload) if isinstance(payload, (list, tuple)) else [payload]
        if not 1 <= len(items) <= self.config.max_batch_size:
            raise InvalidParameter(
                f"Batch must contain between 1 and {self.config.max_batch_size} events"
            )

        result = BatchIngestResult()
        events: list[LogEvent] = []
        positions: list[int] = []
        for index, item in enumerate(items):
            try:
                event = item if isinstance(item, LogEvent) else LogEvent.from_dict(item)
            except InvalidParameter as e:
                result.reject(index, str(e))
                continue
            events.append(event)
            positions.append(index)

        accepted: list[LogEvent] = []
        if events:
            stored = self.store.append(events)
            failed = {error.index for error in stored.errors}
            for error in stored.errors:
                result.reject(positions[error.index], error.error)
            result.errors.sort(key=lambda error: error.index)
            result.accepted_count = stored.accepted_count
            accepted = [event for i, event in enumerate(events) if i not in failed]

        logger.info(
            "Batch ingested",
            total=len(items),
            accepted=result.accepted_count,
            rejected=result.rejected_count,
        )

        self._notify(accepted)
        return result

    def _notify(self, events: list[LogEvent]):
        """Fire one detection per distinct partition, after the commit"""
        if self.trigger is None:
            return

        for service, org in dict.fromkeys(event.partition for event in events):
            try:
                self.trigger.notify(service, org)
            except Exception as e:
                # The batch is already committed; a trigger failure must not fail ingestion
                logger.error(
                    "Failed to trigger detection", service=service, org=org, error=str(e)
                )
