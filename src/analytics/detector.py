"""
Windowed error-rate anomaly detector.

Compares the error rate of a short recent window against the longer window
immediately preceding it:

    recent   = [now - recent_seconds, now)
    baseline = [now - recent_seconds - baseline_seconds, now - recent_seconds)

The detector is stateless across calls; everything it needs is read from the
event store on each invocation.
"""

from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta

import structlog

from .config import AnalyticsConfig
from .cooldown import AlertCooldown
from .models import AnomalyRecord, LogLevel, WindowAggregate, error_rate
from .store.base import EventStore
from .window_stats import WindowStats

logger = structlog.get_logger(__name__)

FIRST_ERRORS_REASON = "first errors observed"


def utcnow() -> datetime:
    return datetime.now(UTC)


def decide(
    recent_errors: int,
    recent_total: int,
    baseline_errors: int,
    baseline_total: int,
    factor: float,
    min_errors: int,
) -> str | None:
    """Apply the rate-ratio decision rule

    The ratio is compared on cross-multiplied counts so that a recent rate of
    exactly factor x baseline triggers.

    Returns:
        The anomaly reason, or None when the windows look normal
    """
    if recent_errors < min_errors or recent_total <= 0:
        return None
    recent_rate = error_rate(recent_errors, recent_total)
    baseline_rate = error_rate(baseline_errors, baseline_total)
    if baseline_rate == 0:
        return FIRST_ERRORS_REASON if recent_rate > 0 else None
    if recent_errors * baseline_total >= factor * baseline_errors * recent_total:
        return f"error rate {recent_rate * 100:.2f}% is {recent_rate / baseline_rate:.1f}x baseline"
    return None


@dataclass
class DetectionOutcome:
    """Everything one detection run observed and decided"""

    service: str
    org: str | None
    window_start: datetime
    window_end: datetime
    recent: WindowAggregate
    recent_errors: int
    baseline: WindowAggregate
    baseline_errors: int
    recent_rate: float
    baseline_rate: float
    reason: str | None = None
    record: AnomalyRecord | None = None
    suppressed: bool = False

    @property
    def is_anomaly(self) -> bool:
        return self.reason is not None


class AnomalyDetector:
    """Detects error-rate spikes for a (service, org) partition"""

    def __init__(
        self,
        store: EventStore,
        config: AnalyticsConfig,
        cooldown: AlertCooldown | None = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.store = store
        self.config = config
        self.cooldown = cooldown
        self.clock = clock
        self.stats = WindowStats(store)

        logger.debug(
            "Anomaly detector initialized",
            recent_window_seconds=config.recent_window_seconds,
            baseline_window_seconds=config.baseline_window_seconds,
            factor=config.anomaly_factor,
            min_errors=config.min_errors_threshold,
            cooldown=cooldown is not None,
        )

    def evaluate(self, service: str, org: str | None = None) -> DetectionOutcome:
        """Run one detection and persist an AnomalyRecord if triggered

        Raises:
            StoreUnavailable: If a window read or the anomaly write fails
        """
        now = self.clock()
        recent_start = now - timedelta(seconds=self.config.recent_window_seconds)
        baseline_start = recent_start - timedelta(seconds=self.config.baseline_window_seconds)

        recent = self.stats.aggregate(service, recent_start, now, org=org)
        recent_errors = self.stats.count(service, recent_start, now, org=org, level=LogLevel.ERROR)
        baseline = self.stats.aggregate(service, baseline_start, recent_start, org=org)
        baseline_errors = self.stats.count(
            service, baseline_start, recent_start, org=org, level=LogLevel.ERROR
        )

        # Separate reads can interleave with ingestion; keep errors <= total
        recent_errors = min(recent_errors, recent.total_count)
        baseline_errors = min(baseline_errors, baseline.total_count)

        outcome = DetectionOutcome(
            service=service,
            org=org,
            window_start=recent_start,
            window_end=now,
            recent=recent,
            recent_errors=recent_errors,
            baseline=baseline,
            baseline_errors=baseline_errors,
            recent_rate=error_rate(recent_errors, recent.total_count),
            baseline_rate=error_rate(baseline_errors, baseline.total_count),
        )
        outcome.reason = decide(
            recent_errors,
            recent.total_count,
            baseline_errors,
            baseline.total_count,
            self.config.anomaly_factor,
            self.config.min_errors_threshold,
        )

        if not outcome.is_anomaly:
            logger.debug(
                "No anomaly",
                service=service,
                org=org,
                recent_rate=round(outcome.recent_rate, 4),
                baseline_rate=round(outcome.baseline_rate, 4),
                recent_errors=recent_errors,
            )
            return outcome

        if self.cooldown is not None and not self.cooldown.try_acquire(service, org):
            outcome.suppressed = True
            logger.info(
                "Anomaly suppressed by cooldown",
                service=service,
                org=org,
                reason=outcome.reason,
            )
            return outcome

        outcome.record = self.store.save_anomaly(self._build_record(outcome, now))

        logger.warning(
            "Anomaly detected",
            service=service,
            org=org,
            reason=outcome.reason,
            score=round(outcome.record.score, 3),
            error_rate=round(outcome.recent_rate, 4),
            baseline_rate=round(outcome.baseline_rate, 4),
        )
        return outcome

    def detect(self, service: str, org: str | None = None) -> bool:
        """Best-effort detection: failures are logged and reported as no anomaly"""
        try:
            return self.evaluate(service, org).is_anomaly
        except Exception as e:
            logger.error(
                "Anomaly detection failed",
                service=service,
                org=org,
                error=str(e),
                exc_info=True,
            )
            return False

    def _build_record(self, outcome: DetectionOutcome, now: datetime) -> AnomalyRecord:
        return AnomalyRecord(
            service=outcome.service,
            org=outcome.org,
            window_start=outcome.window_start,
            window_end=outcome.window_end,
            error_count=outcome.recent_errors,
            total_count=outcome.recent.total_count,
            error_rate=outcome.recent_rate,
            baseline_rate=outcome.baseline_rate,
            score=AnomalyRecord.compute_score(outcome.recent_rate, outcome.baseline_rate),
            evidence={
                "reason": outcome.reason,
                "recent_window_seconds": self.config.recent_window_seconds,
                "baseline_window_seconds": self.config.baseline_window_seconds,
                "factor": self.config.anomaly_factor,
                "avg_latency": outcome.recent.avg_latency,
                "baseline_total": outcome.baseline.total_count,
                "baseline_errors": outcome.baseline_errors,
            },
            created_at=now,
        )
