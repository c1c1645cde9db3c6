"""
Data models for log events, window aggregates, anomalies and metrics.
"""

import json
from dataclasses import asdict, dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any

from .errors import InvalidParameter

# Floor applied to the baseline rate when computing an anomaly score
SCORE_EPSILON = 0.001

MAX_SERVICE_LENGTH = 100
MAX_ORG_LENGTH = 100
MAX_MESSAGE_LENGTH = 1000
LATENCY_RANGE = (0, 60000)
RESPONSE_CODE_RANGE = (100, 599)

# Accepted payload keys, camelCase (wire) and snake_case (python) spellings
_FIELD_ALIASES = {
    "service": "service",
    "level": "level",
    "timestamp": "timestamp",
    "message": "message",
    "metadata": "metadata",
    "org": "org",
    "orgId": "org",
    "org_id": "org",
    "latencyMs": "latency_ms",
    "latency_ms": "latency_ms",
    "responseCode": "response_code",
    "response_code": "response_code",
}


class LogLevel(Enum):
    """Severity levels accepted by ingestion"""

    INFO = "INFO"
    WARN = "WARN"
    ERROR = "ERROR"
    DEBUG = "DEBUG"


def ensure_utc(value: datetime) -> datetime:
    """Return an aware UTC datetime, treating naive values as UTC"""
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def parse_timestamp(value: Any) -> datetime:
    """Parse an ISO-8601 string (a trailing 'Z' is accepted) or a datetime"""
    if isinstance(value, datetime):
        return ensure_utc(value)
    if not isinstance(value, str):
        raise InvalidParameter(f"timestamp must be an ISO-8601 string, got {type(value).__name__}")
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError as e:
        raise InvalidParameter(f"timestamp is not a valid date-time: {value!r}") from e
    return ensure_utc(parsed)


def error_rate(error_count: int, total_count: int) -> float:
    """Fraction of errors in a window, 0 for an empty window"""
    return error_count / total_count if total_count > 0 else 0.0


def _optional_int(payload: dict, key: str, bounds: tuple[int, int]) -> int | None:
    value = payload.get(key)
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidParameter(f"{key} must be an integer")
    low, high = bounds
    if not low <= value <= high:
        raise InvalidParameter(f"{key} must be between {low} and {high}")
    return value


def _optional_str(payload: dict, key: str, max_length: int) -> str | None:
    value = payload.get(key)
    if value is None:
        return None
    if not isinstance(value, str):
        raise InvalidParameter(f"{key} must be a string")
    if len(value) > max_length:
        raise InvalidParameter(f"{key} must be at most {max_length} characters")
    if "\x00" in value:
        raise InvalidParameter(f"{key} must not contain NUL characters")
    return value


@dataclass(frozen=True)
class LogEvent:
    """A single structured application log event"""

    service: str
    level: LogLevel
    timestamp: datetime
    org: str | None = None
    latency_ms: int | None = None
    response_code: int | None = None
    message: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    @property
    def partition(self) -> tuple[str, str | None]:
        return (self.service, self.org)

    @property
    def is_error(self) -> bool:
        return self.level is LogLevel.ERROR

    @classmethod
    def from_dict(cls, payload: Any) -> "LogEvent":
        """Build a LogEvent from a raw ingestion payload

        Args:
            payload: Mapping using either wire (camelCase) or python field names

        Returns:
            A validated LogEvent

        Raises:
            InvalidParameter: If a field is missing, unknown or out of range
        """
        if not isinstance(payload, dict):
            raise InvalidParameter("log event must be an object")

        normalized: dict[str, Any] = {}
        for key, value in payload.items():
            if key not in _FIELD_ALIASES:
                raise InvalidParameter(f"unknown field: {key}")
            normalized[_FIELD_ALIASES[key]] = value

        for required in ("service", "level", "timestamp"):
            if normalized.get(required) is None:
                raise InvalidParameter(f"missing required field: {required}")

        service = _optional_str(normalized, "service", MAX_SERVICE_LENGTH)
        if not service:
            raise InvalidParameter("service must not be empty")

        try:
            level = LogLevel(normalized["level"])
        except ValueError as e:
            allowed = ", ".join(member.value for member in LogLevel)
            raise InvalidParameter(f"level must be one of: {allowed}") from e

        metadata = normalized.get("metadata") or {}
        if not isinstance(metadata, dict):
            raise InvalidParameter("metadata must be an object")

        return cls(
            service=service,
            level=level,
            timestamp=parse_timestamp(normalized["timestamp"]),
            org=_optional_str(normalized, "org", MAX_ORG_LENGTH),
            latency_ms=_optional_int(normalized, "latency_ms", LATENCY_RANGE),
            response_code=_optional_int(normalized, "response_code", RESPONSE_CODE_RANGE),
            message=_optional_str(normalized, "message", MAX_MESSAGE_LENGTH),
            metadata=metadata,
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to a JSON-ready dict"""
        return {
            "service": self.service,
            "org": self.org,
            "level": self.level.value,
            "timestamp": self.timestamp.isoformat(),
            "latency_ms": self.latency_ms,
            "response_code": self.response_code,
            "message": self.message,
            "metadata": dict(self.metadata),
        }


@dataclass(frozen=True)
class EventFilter:
    """Selects log events; the time range is half-open [start, end)"""

    service: str | None = None
    org: str | None = None
    level: LogLevel | None = None
    start: datetime | None = None
    end: datetime | None = None

    def matches(self, event: LogEvent) -> bool:
        if self.service is not None and event.service != self.service:
            return False
        if self.org is not None and event.org != self.org:
            return False
        if self.level is not None and event.level is not self.level:
            return False
        if self.start is not None and event.timestamp < self.start:
            return False
        if self.end is not None and event.timestamp >= self.end:
            return False
        return True


@dataclass(frozen=True)
class AnomalyFilter:
    """Selects anomaly records"""

    service: str | None = None
    org: str | None = None
    since: datetime | None = None

    def matches(self, record: "AnomalyRecord") -> bool:
        if self.service is not None and record.service != self.service:
            return False
        if self.org is not None and record.org != self.org:
            return False
        if self.since is not None and record.created_at < self.since:
            return False
        return True


@dataclass(frozen=True)
class WindowAggregate:
    """Aggregate counts over a time window"""

    total_count: int = 0
    error_count: int = 0
    avg_latency: float | None = None
    min_latency: int | None = None
    max_latency: int | None = None

    @property
    def error_rate(self) -> float:
        return error_rate(self.error_count, self.total_count)


@dataclass(frozen=True)
class AnomalyRecord:
    """A detected error-rate anomaly, written once and never mutated"""

    service: str
    org: str | None
    window_start: datetime
    window_end: datetime
    error_count: int
    total_count: int
    error_rate: float
    baseline_rate: float
    score: float
    evidence: dict[str, Any]
    created_at: datetime
    id: int | None = None

    def __post_init__(self):
        if self.window_start >= self.window_end:
            raise InvalidParameter("window_start must be before window_end")

    @staticmethod
    def compute_score(recent_rate: float, baseline_rate: float) -> float:
        """Ratio of recent to baseline error rate, floor-protected against zero"""
        return recent_rate / max(baseline_rate, SCORE_EPSILON)

    def to_db_dict(self) -> dict[str, Any]:
        """Convert to dict for database insertion"""
        return {
            "service": self.service,
            "org": self.org,
            "window_start": self.window_start,
            "window_end": self.window_end,
            "error_count": self.error_count,
            "total_count": self.total_count,
            "error_rate": self.error_rate,
            "baseline_rate": self.baseline_rate,
            "score": self.score,
            "evidence": json.dumps(self.evidence),
            "created_at": self.created_at,
        }

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class MetricsBucket:
    """Aggregates for one aligned time slot"""

    bucket_start: datetime
    service: str | None
    total_count: int
    error_count: int
    avg_latency: float | None = None

    @property
    def error_rate(self) -> float:
        return error_rate(self.error_count, self.total_count)


@dataclass(frozen=True)
class ItemError:
    """Why one item of a batch was rejected"""

    index: int
    error: str


@dataclass
class BatchIngestResult:
    """Outcome of a batch append

    A batch with rejected items is a partial failure, not an error: accepted
    items stay stored and each rejection is reported with its batch index.
    """

    accepted_count: int = 0
    rejected_count: int = 0
    errors: list[ItemError] = field(default_factory=list)

    @property
    def partial_failure(self) -> bool:
        return self.rejected_count > 0 and self.accepted_count > 0

    def reject(self, index: int, error: str) -> None:
        self.rejected_count += 1
        self.errors.append(ItemError(index=index, error=error))

    def to_dict(self) -> dict[str, Any]:
        return {
            "accepted": self.accepted_count,
            "rejected": self.rejected_count,
            "errors": [asdict(e) for e in self.errors],
        }


@dataclass(frozen=True)
class ServiceVolume:
    service: str
    count: int
    error_rate: float


@dataclass(frozen=True)
class ResponseCodeCount:
    code: int
    count: int


@dataclass
class DashboardMetrics:
    """Organization-wide summary for the dashboard"""

    total_logs: int
    total_errors: int
    error_rate: float
    avg_latency: float | None
    top_services: list[ServiceVolume]
    recent_trend: list[MetricsBucket]


@dataclass
class ServiceMetrics:
    """Detail view for a single service"""

    service: str
    total_logs: int
    error_count: int
    error_rate: float
    avg_latency: float | None
    min_latency: int | None
    max_latency: int | None
    response_codes: list[ResponseCodeCount]
    timeline: list[MetricsBucket]


@dataclass
class RealTimeSnapshot:
    """Activity over the trailing few minutes"""

    event_count: int
    error_count: int
    avg_latency: float | None
    latest_events: list[LogEvent]
    timestamp: datetime


@dataclass
class AnomalyStats:
    """Summary of anomalies created over a lookback period"""

    total_anomalies: int
    avg_error_rate: float | None
    avg_score: float | None
    top_services: list[tuple[str, int]]
