"""
Kafka consumer that feeds application log events into the ingestion service.
"""

import json
import time
from typing import Any

import structlog
from kafka import KafkaConsumer

from .config import AnalyticsConfig
from .errors import InvalidParameter, StoreUnavailable
from .ingest import IngestService
from .scheduler import DetectionScheduler

logger = structlog.get_logger(__name__)


class LogEventConsumer:
    """Consumes JSON log events from Kafka and ingests them in batches"""

    def __init__(
        self,
        config: AnalyticsConfig,
        ingest: IngestService,
        scheduler: DetectionScheduler | None = None,
    ):
        self.config = config
        self.ingest = ingest
        self.scheduler = scheduler

        try:
            self.consumer = KafkaConsumer(
                config.kafka_topic,
                bootstrap_servers=config.kafka_bootstrap_servers,
                group_id=config.kafka_group_id,
                auto_offset_reset=config.kafka_auto_offset_reset,
                enable_auto_commit=False,
                max_poll_records=config.max_poll_records,
            )
            logger.info(
                "Kafka consumer initialized",
                bootstrap_servers=config.kafka_bootstrap_servers,
                topic=config.kafka_topic,
                group_id=config.kafka_group_id,
            )
        except Exception as e:
            logger.error("Failed to initialize Kafka consumer", error=str(e))
            raise

        self.batch: list[dict[str, Any]] = []
        self.last_commit_time = time.time()

        self.stats = {
            "total_consumed": 0,
            "accepted": 0,
            "rejected": 0,
            "parse_errors": 0,
            "store_errors": 0,
            "flushes": 0,
        }

    def _parse_and_buffer(self, raw: bytes) -> bool:
        """Decode a message and add it to the pending batch"""
        try:
            message = json.loads(raw.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            logger.warning("Failed to decode message", error=str(e))
            self.stats["parse_errors"] += 1
            return False

        if not isinstance(message, dict):
            logger.warning("Message is not a JSON object", type=type(message).__name__)
            self.stats["parse_errors"] += 1
            return False

        self.batch.append(message)
        return True

    def _flush_batch(self) -> int:
        """Ingest the pending batch in chunks no larger than the batch bound"""
        if not self.batch:
            return 0

        accepted = 0
        chunk_size = self.config.max_batch_size
        for offset in range(0, len(self.batch), chunk_size):
            chunk = self.batch[offset : offset + chunk_size]
            try:
                result = self.ingest.ingest(chunk)
            except StoreUnavailable as e:
                logger.error("Failed to store batch", count=len(chunk), error=str(e))
                self.stats["store_errors"] += len(chunk)
                continue
            except InvalidParameter as e:
                logger.error("Batch rejected", count=len(chunk), error=str(e))
                self.stats["rejected"] += len(chunk)
                continue

            accepted += result.accepted_count
            self.stats["accepted"] += result.accepted_count
            self.stats["rejected"] += result.rejected_count
            for error in result.errors[:5]:
                logger.debug("Event rejected", index=offset + error.index, error=error.error)

        self.stats["flushes"] += 1
        self.batch.clear()
        return accepted

    def _should_commit(self) -> bool:
        """Check if we should commit based on batch size or time"""
        time_elapsed = time.time() - self.last_commit_time
        return (
            len(self.batch) >= self.config.batch_size
            or time_elapsed >= self.config.commit_interval_seconds
        )

    def _commit(self):
        self._flush_batch()
        self.consumer.commit()
        self.last_commit_time = time.time()

    def run(self, duration_seconds: int = None):
        """Run the consumer continuously or for a specified duration

        Args:
            duration_seconds: Optional duration in seconds. If None, runs indefinitely.
        """
        logger.info(
            "Starting log event consumer",
            topic=self.config.kafka_topic,
            duration=duration_seconds if duration_seconds else "indefinite",
        )

        start_time = time.time()
        last_log_time = start_time

        try:
            for message in self.consumer:
                self.stats["total_consumed"] += 1

                self._parse_and_buffer(message.value)

                if self._should_commit():
                    self._commit()

                # Log stats every 30 seconds
                elapsed = time.time() - start_time
                if time.time() - last_log_time >= 30:
                    rate = self.stats["total_consumed"] / elapsed if elapsed > 0 else 0
                    logger.info(
                        "Consumer stats",
                        **self.stats,
                        rate_per_sec=round(rate, 1),
                        elapsed_sec=round(elapsed, 1),
                    )
                    last_log_time = time.time()

                if duration_seconds and elapsed >= duration_seconds:
                    logger.info("Duration limit reached", duration_seconds=duration_seconds)
                    break

        except KeyboardInterrupt:
            logger.info("Received interrupt signal, stopping consumer")

        except Exception as e:
            logger.error("Consumer error", error=str(e), exc_info=True)
            raise

        finally:
            logger.info("Flushing remaining events")
            try:
                self._commit()
            finally:
                self.consumer.close()
                if self.scheduler is not None:
                    self.scheduler.shutdown(wait=True)

            elapsed = time.time() - start_time
            rate = self.stats["total_consumed"] / elapsed if elapsed > 0 else 0
            logger.info(
                "Consumer stopped",
                **self.stats,
                elapsed_sec=round(elapsed, 1),
                avg_rate_per_sec=round(rate, 1),
            )
