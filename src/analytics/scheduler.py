"""
Post-commit detection dispatch.

The ingestion path calls `notify` once per (service, org) partition touched
by a committed batch. Detections run on a worker pool so ingestion never
waits for them, and a keyed in-flight set allows at most one running
detection per partition.

A notify for a partition whose detection is still running is dropped
(coalesced): the running detection reads the same windows, and the next
ingestion burst triggers a fresh run.
"""

import threading
from concurrent.futures import ThreadPoolExecutor
from typing import Protocol

import structlog

from .detector import AnomalyDetector

logger = structlog.get_logger(__name__)

Partition = tuple[str, str | None]


class DetectionTrigger(Protocol):
    """Fire-and-forget hook called after each successful commit"""

    def notify(self, service: str, org: str | None = None) -> bool: ...


class DetectionScheduler:
    """Runs anomaly detections on a thread pool, single-flight per partition"""

    def __init__(self, detector: AnomalyDetector, max_workers: int = 4):
        self.detector = detector
        self._executor = ThreadPoolExecutor(
            max_workers=max_workers, thread_name_prefix="anomaly-detection"
        )
        self._in_flight: set[Partition] = set()
        self._lock = threading.Lock()
        self._closed = False

        self.stats = {
            "scheduled": 0,
            "coalesced": 0,
            "completed": 0,
            "anomalies_detected": 0,
            "failed": 0,
        }

        logger.info("Detection scheduler initialized", max_workers=max_workers)

    def notify(self, service: str, org: str | None = None) -> bool:
        """Schedule a detection for the partition unless one is already running

        Returns:
            True if a detection was scheduled, False if coalesced or shut down
        """
        partition = (service, org)
        with self._lock:
            if self._closed:
                logger.warning("Scheduler is shut down, ignoring notify", service=service, org=org)
                return False
            if partition in self._in_flight:
                self.stats["coalesced"] += 1
                logger.debug("Detection already in flight, coalesced", service=service, org=org)
                return False

            self._in_flight.add(partition)
            self.stats["scheduled"] += 1
            self._executor.submit(self._run, partition)
        return True

    def is_in_flight(self, service: str, org: str | None = None) -> bool:
        with self._lock:
            return (service, org) in self._in_flight

    def _run(self, partition: Partition) -> bool | None:
        service, org = partition
        try:
            detected = self.detector.detect(service, org)
        except Exception as e:
            # Keep one partition's failure away from the pool and the other partitions
            logger.error(
                "Detection task failed", service=service, org=org, error=str(e), exc_info=True
            )
            detected = None

        with self._lock:
            self._in_flight.discard(partition)
            if detected is None:
                self.stats["failed"] += 1
            else:
                self.stats["completed"] += 1
                if detected:
                    self.stats["anomalies_detected"] += 1
        return detected

    def shutdown(self, wait: bool = True):
        """Stop accepting notifies and optionally wait for running detections"""
        with self._lock:
            self._closed = True
        self._executor.shutdown(wait=wait)
        logger.info("Detection scheduler stopped", **self.stats)
