"""
Immutable configuration for the analytics core.

Built once at startup (directly or from the environment) and passed
explicitly to the detector, metrics engine, ingestion and consumers.
"""

import os
from dataclasses import dataclass
from typing import Optional

from dotenv import load_dotenv

from .errors import InvalidParameter


@dataclass(frozen=True)
class AnalyticsConfig:
    """Configuration for anomaly detection, metrics and ingestion"""

    # Anomaly detection
    recent_window_seconds: int = 120
    baseline_window_seconds: int = 3600
    anomaly_factor: float = 3.0
    min_errors_threshold: int = 3
    anomaly_cooldown_seconds: int = 0  # 0 disables alert suppression

    # Query bounds
    min_interval_seconds: int = 1
    max_interval_seconds: int = 3600
    min_page_limit: int = 1
    max_page_limit: int = 1000
    max_hours: int = 168  # one week

    # Ingestion
    max_batch_size: int = 1000
    detection_workers: int = 4

    # PostgreSQL settings
    postgres_host: str = "localhost"
    postgres_port: int = 5432
    postgres_database: str = "logpilot"
    postgres_user: str = "logpilot"
    postgres_password: str = "logpilot_password"

    # Kafka settings (ingestion consumer)
    kafka_bootstrap_servers: str = "localhost:9092"
    kafka_topic: str = "application-logs"
    kafka_group_id: str = "logpilot-ingest-group"
    kafka_auto_offset_reset: str = "earliest"
    batch_size: int = 200
    commit_interval_seconds: float = 5.0
    max_poll_records: int = 500

    # Redis settings (alert cooldown)
    redis_host: str = "localhost"
    redis_port: int = 6379
    redis_db: int = 0
    redis_password: Optional[str] = None

    def __post_init__(self):
        if self.recent_window_seconds <= 0 or self.baseline_window_seconds <= 0:
            raise InvalidParameter("Anomaly windows must be positive")
        if self.anomaly_factor <= 0:
            raise InvalidParameter("anomaly_factor must be positive")
        if self.min_errors_threshold < 0 or self.anomaly_cooldown_seconds < 0:
            raise InvalidParameter("Thresholds must be non-negative")
        if not 1 <= self.min_interval_seconds <= self.max_interval_seconds:
            raise InvalidParameter("Invalid interval bounds")
        if not 1 <= self.min_page_limit <= self.max_page_limit:
            raise InvalidParameter("Invalid pagination bounds")
        if self.max_batch_size < 1 or self.detection_workers < 1:
            raise InvalidParameter("max_batch_size and detection_workers must be at least 1")

    @classmethod
    def from_env(cls, **overrides) -> "AnalyticsConfig":
        """Build configuration from environment variables (and a .env file)

        Keyword overrides take precedence over the environment.
        """
        load_dotenv()

        values = {
            "recent_window_seconds": int(os.getenv("ANOMALY_WINDOW_SECONDS", "120")),
            "baseline_window_seconds": int(os.getenv("ANOMALY_BASELINE_SECONDS", "3600")),
            "anomaly_factor": float(os.getenv("ANOMALY_FACTOR", "3.0")),
            "min_errors_threshold": int(os.getenv("ANOMALY_MIN_ERRORS", "3")),
            "anomaly_cooldown_seconds": int(os.getenv("ANOMALY_COOLDOWN_SECONDS", "0")),
            "max_batch_size": int(os.getenv("BATCH_SIZE_LIMIT", "1000")),
            "detection_workers": int(os.getenv("DETECTION_WORKERS", "4")),
            "postgres_host": os.getenv("POSTGRES_HOST", "localhost"),
            "postgres_port": int(os.getenv("POSTGRES_PORT", "5432")),
            "postgres_database": os.getenv("POSTGRES_DB", "logpilot"),
            "postgres_user": os.getenv("POSTGRES_USER", "logpilot"),
            "postgres_password": os.getenv("POSTGRES_PASSWORD", "logpilot_password"),
            "kafka_bootstrap_servers": os.getenv("KAFKA_BOOTSTRAP_SERVERS", "localhost:9092"),
            "kafka_topic": os.getenv("KAFKA_TOPIC", "application-logs"),
            "redis_host": os.getenv("REDIS_HOST", "localhost"),
            "redis_port": int(os.getenv("REDIS_PORT", "6379")),
            "redis_db": int(os.getenv("REDIS_DB", "0")),
            "redis_password": os.getenv("REDIS_PASSWORD") or None,
        }
        values.update(overrides)
        return cls(**values)
