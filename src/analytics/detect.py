"""
CLI for a one-shot anomaly detection on a single partition.

Usage:
    python -m src.analytics.detect --service payment-service [--org acme]
"""

import argparse
import json
import logging
import os
import sys

import structlog

from src.core.logger import setup_logging

from .config import AnalyticsConfig
from .cooldown import AlertCooldown
from .detector import AnomalyDetector
from .store.postgres import PostgresEventStore

logger = structlog.get_logger(__name__)


def parse_arguments(argv=None):
    """Parse command-line arguments"""
    parser = argparse.ArgumentParser(
        description="Run anomaly detection once for a service",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
        Examples:
        # Check a service across all organizations
        python -m src.analytics.detect --service payment-service

        # Check one tenant with a wider recent window
        python -m src.analytics.detect --service payment-service --org acme --recent-window 300
        """,
    )
    parser.add_argument("--service", required=True, help="Service to check")
    parser.add_argument("--org", default=None, help="Organization (default: all)")
    parser.add_argument(
        "--recent-window",
        type=int,
        default=None,
        help="Recent window in seconds (default: 120 or ANOMALY_WINDOW_SECONDS)",
    )
    parser.add_argument(
        "--baseline-window",
        type=int,
        default=None,
        help="Baseline window in seconds (default: 3600 or ANOMALY_BASELINE_SECONDS)",
    )
    parser.add_argument(
        "--cooldown",
        type=int,
        default=None,
        help="Suppress repeated alerts per partition for N seconds via Redis "
        "(default: 0 or ANOMALY_COOLDOWN_SECONDS, off)",
    )
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default=os.getenv("LOG_LEVEL", "INFO"),
        help="Logging level (default: INFO)",
    )
    return parser.parse_args(argv)


def build_config(args) -> AnalyticsConfig:
    """Build configuration from arguments"""
    overrides = {
        "recent_window_seconds": args.recent_window,
        "baseline_window_seconds": args.baseline_window,
        "anomaly_cooldown_seconds": args.cooldown,
    }
    return AnalyticsConfig.from_env(
        **{key: value for key, value in overrides.items() if value is not None}
    )


def _summary(outcome) -> str:
    if not outcome.is_anomaly:
        return "No anomaly detected for the current time window"
    if outcome.suppressed:
        return "Anomaly detected but suppressed by cooldown"
    return "Anomaly detected and recorded"

def main(argv=None):
    """Main entry point"""
    args = parse_arguments(argv)

    log_level = getattr(logging, args.log_level)
    setup_logging(level=log_level)

    try:
        config = build_config(args)
        store = PostgresEventStore(config)
        try:
            cooldown = AlertCooldown(config) if config.anomaly_cooldown_seconds > 0 else None
            detector = AnomalyDetector(store, config, cooldown=cooldown)
            outcome = detector.evaluate(args.service, args.org)
        finally:
            store.close()

        print(
            json.dumps(
                {
                    "service": args.service,
                    "org": args.org,
                    "anomaly_detected": outcome.is_anomaly,
                    "reason": outcome.reason,
                    "recent_rate": outcome.recent_rate,
                    "baseline_rate": outcome.baseline_rate,
                    "anomaly_id": outcome.record.id if outcome.record else None,
                    "suppressed": outcome.suppressed,
                    "message": _summary(outcome),
                },
                indent=2,
            )
        )
        return 0

    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        return 0

    except Exception as e:
        logger.error("Detection failed", error=str(e), exc_info=True)
        return 1


if __name__ == "__main__":
    sys.exit(main())
