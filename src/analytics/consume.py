"""
Log ingestion consumer - CLI Entry Point
Consumes application log events from Kafka, stores them in PostgreSQL and
runs anomaly detection for every partition touched by a committed batch.

Usage:
    python -m src.analytics.consume [options]
"""

import argparse
import logging
import os
import sys

import structlog

from src.core.logger import setup_logging

from .config import AnalyticsConfig
from .consumer import LogEventConsumer
from .cooldown import AlertCooldown
from .detector import AnomalyDetector
from .ingest import IngestService
from .scheduler import DetectionScheduler
from .store.postgres import PostgresEventStore

logger = structlog.get_logger(__name__)


def parse_arguments(argv=None):
    """Parse command-line arguments"""
    parser = argparse.ArgumentParser(
        description="Log ingestion consumer with real-time anomaly detection",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
        Examples:
        # Basic usage with defaults (environment / .env)
        python -m src.analytics.consume

        # Custom Kafka and PostgreSQL settings
        python -m src.analytics.consume --kafka-servers kafka:9092 --postgres-host postgres

        # Stricter detection, suppress repeated alerts for 10 minutes
        python -m src.analytics.consume --anomaly-factor 5 --cooldown 600
        """,
    )

    # Kafka settings
    parser.add_argument(
        "--kafka-servers",
        default=os.getenv("KAFKA_BOOTSTRAP_SERVERS", "localhost:9092"),
        help="Kafka bootstrap servers (default: localhost:9092 or KAFKA_BOOTSTRAP_SERVERS env var)",
    )
    parser.add_argument(
        "--topic",
        default=os.getenv("KAFKA_TOPIC", "application-logs"),
        help="Kafka topic name (default: application-logs or KAFKA_TOPIC env var)",
    )
    parser.add_argument(
        "--group-id",
        default="logpilot-ingest-group",
        help="Kafka consumer group ID (default: logpilot-ingest-group)",
    )
    parser.add_argument(
        "--offset-reset",
        choices=["earliest", "latest"],
        default="earliest",
        help="Auto offset reset strategy (default: earliest)",
    )

    # PostgreSQL settings
    parser.add_argument("--postgres-host", default=None, help="PostgreSQL host")
    parser.add_argument("--postgres-port", type=int, default=None, help="PostgreSQL port")
    parser.add_argument("--postgres-db", default=None, help="PostgreSQL database")
    parser.add_argument("--postgres-user", default=None, help="PostgreSQL user")
    parser.add_argument("--postgres-password", default=None, help="PostgreSQL password")

    # Detection settings
    parser.add_argument(
        "--anomaly-factor",
        type=float,
        default=None,
        help="Recent/baseline error rate multiple that triggers an anomaly (default: 3.0)",
    )
    parser.add_argument(
        "--min-errors",
        type=int,
        default=None,
        help="Minimum errors in the recent window before alerting (default: 3)",
    )
    parser.add_argument(
        "--cooldown",
        type=int,
        default=None,
        help="Suppress repeated alerts per partition for N seconds via Redis (default: 0, off)",
    )
    parser.add_argument(
        "--workers",
        type=int,
        default=None,
        help="Concurrent detection workers (default: 4)",
    )

    # Consumer behavior
    parser.add_argument(
        "--batch-size",
        type=int,
        default=200,
        help="Events to buffer before committing (default: 200)",
    )
    parser.add_argument(
        "--commit-interval",
        type=float,
        default=5.0,
        help="Max seconds between commits (default: 5.0)",
    )

    # Runtime settings
    parser.add_argument(
        "--duration",
        type=int,
        help="Duration to run in seconds (default: infinite)",
    )
    parser.add_argument(
        "--init-schema",
        action="store_true",
        help="Create the log_events and anomalies tables before consuming",
    )

    # Logging
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        default=os.getenv("LOG_LEVEL", "INFO"),
        help="Logging level (default: INFO or LOG_LEVEL env var)",
    )
    parser.add_argument(
        "--json-logs",
        action="store_true",
        help="Emit logs as JSON lines",
    )

    return parser.parse_args(argv)


def build_config_from_args(args) -> AnalyticsConfig:
    """Build the configuration from the environment, overridden by arguments"""
    overrides = {
        "kafka_bootstrap_servers": args.kafka_servers,
        "kafka_topic": args.topic,
        "kafka_group_id": args.group_id,
        "kafka_auto_offset_reset": args.offset_reset,
        "batch_size": args.batch_size,
        "commit_interval_seconds": args.commit_interval,
        "postgres_host": args.postgres_host,
        "postgres_port": args.postgres_port,
        "postgres_database": args.postgres_db,
        "postgres_user": args.postgres_user,
        "postgres_password": args.postgres_password,
        "anomaly_factor": args.anomaly_factor,
        "min_errors_threshold": args.min_errors,
        "anomaly_cooldown_seconds": args.cooldown,
        "detection_workers": args.workers,
    }
    config = AnalyticsConfig.from_env(
        **{key: value for key, value in overrides.items() if value is not None}
    )

    logger.info(
        "Configuration built from arguments",
        topic=config.kafka_topic,
        postgres_host=config.postgres_host,
        factor=config.anomaly_factor,
        min_errors=config.min_errors_threshold,
        cooldown=config.anomaly_cooldown_seconds,
    )
    return config


def main(argv=None):
    """Main entry point"""
    args = parse_arguments(argv)

    log_level = getattr(logging, args.log_level)
    setup_logging(level=log_level, json_logs=args.json_logs)

    logger.info("Starting log ingestion consumer")

    try:
        config = build_config_from_args(args)

        store = PostgresEventStore(config)
        if not store.check_health():
            raise RuntimeError("Database health check failed")
        if args.init_schema:
            store.ensure_schema()

        cooldown = AlertCooldown(config) if config.anomaly_cooldown_seconds > 0 else None
        detector = AnomalyDetector(store, config, cooldown=cooldown)
        scheduler = DetectionScheduler(detector, max_workers=config.detection_workers)
        ingest = IngestService(store, config, trigger=scheduler)

        consumer = LogEventConsumer(config, ingest, scheduler=scheduler)
        try:
            consumer.run(duration_seconds=args.duration)
        finally:
            store.close()

        logger.info("Consumer completed successfully")
        return 0

    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        return 0

    except Exception as e:
        logger.error("Consumer failed", error=str(e), exc_info=True)
        return 1


if __name__ == "__main__":
    sys.exit(main())
