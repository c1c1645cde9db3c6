"""
Log Analytics Core

Error-rate anomaly detection and time-bucketed metrics over a stream of
application log events.

Architecture:
- Ingestion: Validates batches, appends them to the event store, then
  notifies the detection scheduler once per (service, org) partition
- Detection: Compares a recent window's error rate against the preceding
  baseline window and records anomalies
- Metrics: Read-only time series, dashboard, per-service and real-time views

Usage:
    # Consume log events from Kafka with live detection
    python -m src.analytics.consume

    # Run a single detection
    python -m src.analytics.detect --service payment-service
"""

from .anomaly_queries import AnomalyQueries
from .config import AnalyticsConfig
from .detector import AnomalyDetector, DetectionOutcome
from .errors import AnalyticsError, InvalidParameter, StoreUnavailable
from .ingest import IngestService
from .metrics import MetricsEngine
from .models import AnomalyRecord, LogEvent, LogLevel, MetricsBucket, WindowAggregate
from .scheduler import DetectionScheduler
from .window_stats import WindowStats

__all__ = [
    "AnalyticsConfig",
    "AnalyticsError",
    "AnomalyDetector",
    "AnomalyQueries",
    "AnomalyRecord",
    "DetectionOutcome",
    "DetectionScheduler",
    "IngestService",
    "InvalidParameter",
    "LogEvent",
    "LogLevel",
    "MetricsBucket",
    "MetricsEngine",
    "StoreUnavailable",
    "WindowAggregate",
    "WindowStats",
]
