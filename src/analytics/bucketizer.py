"""
Time bucketing for metrics time series.

Bucket boundaries are computed relative to the start of the minute that
contains each event:

    bucket_start = minute_floor(ts) + floor((ts - minute_floor(ts)) / interval) * interval

Alignment therefore resets every minute instead of following the epoch.
Intervals that do not divide 60 produce a short trailing bucket each minute,
and intervals of 60 seconds or more place every event at its minute floor.
Existing dashboards depend on this layout, so it must stay as is.
"""

from collections.abc import Iterable, Iterator
from dataclasses import dataclass
from datetime import datetime, timedelta

import pandas as pd

from .errors import InvalidParameter
from .models import LogEvent, MetricsBucket

MIN_INTERVAL_SECONDS = 1
MAX_INTERVAL_SECONDS = 3600

_MICROSECOND = timedelta(microseconds=1)
_MINUTE = timedelta(minutes=1)

FRAME_COLUMNS = ["total_count", "error_count", "avg_latency", "error_rate"]


def validate_interval(
    interval_seconds: int,
    min_interval: int = MIN_INTERVAL_SECONDS,
    max_interval: int = MAX_INTERVAL_SECONDS,
) -> int:
    """Check that an interval is an integer number of seconds within bounds

    Raises:
        InvalidParameter: If the interval is not an int or is out of range
    """
    if isinstance(interval_seconds, bool) or not isinstance(interval_seconds, int):
        raise InvalidParameter("Interval must be an integer number of seconds")
    if not min_interval <= interval_seconds <= max_interval:
        raise InvalidParameter(
            f"Interval must be between {min_interval} and {max_interval} seconds"
        )
    return interval_seconds


def validate_range(start: datetime, end: datetime) -> None:
    if start > end:
        raise InvalidParameter("start must not be after end")


def minute_floor(ts: datetime) -> datetime:
    return ts.replace(second=0, microsecond=0)


def bucket_start(ts: datetime, interval_seconds: int) -> datetime:
    """Start of the bucket containing `ts`, aligned to its minute"""
    floor = minute_floor(ts)
    offset_us = (ts - floor) // _MICROSECOND
    width_us = interval_seconds * 1_000_000
    return floor + (offset_us // width_us) * width_us * _MICROSECOND


def aligned_slots(start: datetime, end: datetime, interval_seconds: int) -> Iterator[datetime]:
    """Every bucket start whose slot overlaps [start, end), in order"""
    width = timedelta(seconds=interval_seconds)
    offsets = range(0, 60, interval_seconds) if interval_seconds < 60 else range(0, 1)
    minute = minute_floor(start)
    while minute < end:
        for offset in offsets:
            slot = minute + timedelta(seconds=offset)
            if slot >= end:
                break
            if slot + width > start:
                yield slot
        minute += _MINUTE


@dataclass
class _Accumulator:
    total: int = 0
    errors: int = 0
    latency_sum: int = 0
    latency_count: int = 0

    def add(self, event: LogEvent) -> None:
        self.total += 1
        if event.is_error:
            self.errors += 1
        if event.latency_ms is not None:
            self.latency_sum += event.latency_ms
            self.latency_count += 1

    @property
    def avg_latency(self) -> float | None:
        return self.latency_sum / self.latency_count if self.latency_count else None


def bucketize(
    events: Iterable[LogEvent],
    start: datetime,
    end: datetime,
    interval_seconds: int,
    service: str | None = None,
    by_service: bool = False,
) -> list[MetricsBucket]:
    """Group events into aligned buckets over [start, end)

    Args:
        events: Events in any order; those outside the range are ignored
        start: Inclusive range start
        end: Exclusive range end
        interval_seconds: Bucket width in seconds, within [1, 3600]
        service: Only count events of this service
        by_service: Key buckets by (bucket_start, service) instead of bucket_start

    Returns:
        Non-empty buckets ordered by start (then service). Empty slots are
        omitted; use `buckets_to_frame` for a dense series.
    """
    validate_interval(interval_seconds)
    validate_range(start, end)

    accumulators: dict[tuple[datetime, str | None], _Accumulator] = {}
    for event in events:
        if not start <= event.timestamp < end:
            continue
        if service is not None and event.service != service:
            continue
        key = (
            bucket_start(event.timestamp, interval_seconds),
            event.service if by_service else service,
        )
        accumulators.setdefault(key, _Accumulator()).add(event)

    return [
        MetricsBucket(
            bucket_start=slot,
            service=bucket_service,
            total_count=acc.total,
            error_count=acc.errors,
            avg_latency=acc.avg_latency,
        )
        for (slot, bucket_service), acc in sorted(
            accumulators.items(), key=lambda item: (item[0][0], item[0][1] or "")
        )
    ]


def buckets_to_frame(
    buckets: list[MetricsBucket],
    start: datetime,
    end: datetime,
    interval_seconds: int,
) -> pd.DataFrame:
    """Densify a sparse bucket series into a zero-filled DataFrame

    The index holds every aligned slot overlapping [start, end). Counts of
    missing slots are 0 and their average latency is NaN.

    Raises:
        InvalidParameter: If the buckets hold more than one series per slot
    """
    validate_interval(interval_seconds)
    validate_range(start, end)

    starts = [b.bucket_start for b in buckets]
    if len(set(starts)) != len(starts):
        raise InvalidParameter(
            "Dense frames need one bucket per slot; bucketize without by_service"
        )

    slots = list(aligned_slots(start, end, interval_seconds))
    index = pd.DatetimeIndex(slots, name="bucket_start")
    frame = pd.DataFrame(
        [
            {
                "bucket_start": b.bucket_start,
                "total_count": b.total_count,
                "error_count": b.error_count,
                "avg_latency": b.avg_latency,
            }
            for b in buckets
        ],
        columns=["bucket_start", "total_count", "error_count", "avg_latency"],
    )
    frame = frame.set_index("bucket_start").reindex(index)
    frame["total_count"] = frame["total_count"].fillna(0).astype(int)
    frame["error_count"] = frame["error_count"].fillna(0).astype(int)
    frame["avg_latency"] = frame["avg_latency"].astype(float)
    frame["error_rate"] = (frame["error_count"] / frame["total_count"]).where(
        frame["total_count"] > 0, 0.0
    )
    return frame[FRAME_COLUMNS]
