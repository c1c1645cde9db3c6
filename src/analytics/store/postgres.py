"""
PostgreSQL event store.

Handles:
- Appending log events with independent per-row acceptance
- Window counts and aggregates
- Grouped counts, recent events and raw scans for bucketing
- Inserting and querying detected anomalies
"""

from collections.abc import Iterator, Sequence
from contextlib import contextmanager
from dataclasses import replace
from typing import Any

import psycopg2
import psycopg2.extras
import structlog
from psycopg2 import sql

from src.core.database import PostgresConnection

from ..config import AnalyticsConfig
from ..errors import StoreUnavailable
from ..models import (
    AnomalyFilter,
    AnomalyRecord,
    BatchIngestResult,
    EventFilter,
    LogEvent,
    LogLevel,
    WindowAggregate,
    ensure_utc,
)
from .base import EventStore

logger = structlog.get_logger(__name__)

SCHEMA = """
    CREATE TABLE IF NOT EXISTS log_events (
        id BIGSERIAL PRIMARY KEY,
        org VARCHAR(100),
        service VARCHAR(100) NOT NULL,
        level VARCHAR(10) NOT NULL,
        timestamp TIMESTAMPTZ NOT NULL,
        message VARCHAR(1000),
        latency_ms INTEGER,
        response_code INTEGER,
        metadata JSONB,
        created_at TIMESTAMPTZ DEFAULT NOW()
    );

    CREATE INDEX IF NOT EXISTS idx_log_events_partition
    ON log_events(service, org, timestamp);

    CREATE INDEX IF NOT EXISTS idx_log_events_timestamp
    ON log_events(timestamp);

    CREATE TABLE IF NOT EXISTS anomalies (
        id BIGSERIAL PRIMARY KEY,
        org VARCHAR(100),
        service VARCHAR(100) NOT NULL,
        window_start TIMESTAMPTZ NOT NULL,
        window_end TIMESTAMPTZ NOT NULL,
        error_count INTEGER NOT NULL,
        total_count INTEGER NOT NULL,
        error_rate DOUBLE PRECISION NOT NULL,
        baseline_rate DOUBLE PRECISION NOT NULL,
        score DOUBLE PRECISION NOT NULL,
        evidence JSONB NOT NULL,
        created_at TIMESTAMPTZ NOT NULL
    );

    CREATE INDEX IF NOT EXISTS idx_anomalies_created
    ON anomalies(created_at DESC);
"""

_INSERT_EVENT = """
    INSERT INTO log_events (
        org, service, level, timestamp, message,
        latency_ms, response_code, metadata
    ) VALUES (
        %(org)s, %(service)s, %(level)s, %(timestamp)s, %(message)s,
        %(latency_ms)s, %(response_code)s, %(metadata)s
    )
"""

_EVENT_COLUMNS = "org, service, level, timestamp, message, latency_ms, response_code, metadata"

_INSERT_ANOMALY = """
    INSERT INTO anomalies (
        org, service, window_start, window_end, error_count, total_count,
        error_rate, baseline_rate, score, evidence, created_at
    ) VALUES (
        %(org)s, %(service)s, %(window_start)s, %(window_end)s, %(error_count)s, %(total_count)s,
        %(error_rate)s, %(baseline_rate)s, %(score)s, %(evidence)s, %(created_at)s
    )
    RETURNING id
"""

_ANOMALY_COLUMNS = """
    id, org, service, window_start, window_end, error_count, total_count,
    error_rate, baseline_rate, score, evidence, created_at
"""


def _event_where(event_filter: EventFilter) -> tuple[str, dict[str, Any]]:
    """Build a WHERE clause from fixed fragments and bound parameters"""
    clauses = []
    params: dict[str, Any] = {}
    if event_filter.service is not None:
        clauses.append("service = %(service)s")
        params["service"] = event_filter.service
    if event_filter.org is not None:
        clauses.append("org = %(org)s")
        params["org"] = event_filter.org
    if event_filter.level is not None:
        clauses.append("level = %(level)s")
        params["level"] = event_filter.level.value
    if event_filter.start is not None:
        clauses.append("timestamp >= %(start)s")
        params["start"] = event_filter.start
    if event_filter.end is not None:
        clauses.append("timestamp < %(end)s")
        params["end"] = event_filter.end
    where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
    return where, params


def _anomaly_where(anomaly_filter: AnomalyFilter) -> tuple[str, dict[str, Any]]:
    clauses = []
    params: dict[str, Any] = {}
    if anomaly_filter.service is not None:
        clauses.append("service = %(service)s")
        params["service"] = anomaly_filter.service
    if anomaly_filter.org is not None:
        clauses.append("org = %(org)s")
        params["org"] = anomaly_filter.org
    if anomaly_filter.since is not None:
        clauses.append("created_at >= %(since)s")
        params["since"] = anomaly_filter.since
    where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
    return where, params


def _row_to_event(row: dict[str, Any]) -> LogEvent:
    return LogEvent(
        service=row["service"],
        level=LogLevel(row["level"]),
        timestamp=ensure_utc(row["timestamp"]),
        org=row["org"],
        latency_ms=row["latency_ms"],
        response_code=row["response_code"],
        message=row["message"],
        metadata=row["metadata"] or {},
    )


def _row_to_anomaly(row: dict[str, Any]) -> AnomalyRecord:
    return AnomalyRecord(
        id=row["id"],
        service=row["service"],
        org=row["org"],
        window_start=ensure_utc(row["window_start"]),
        window_end=ensure_utc(row["window_end"]),
        error_count=row["error_count"],
        total_count=row["total_count"],
        error_rate=row["error_rate"],
        baseline_rate=row["baseline_rate"],
        score=row["score"],
        evidence=row["evidence"],
        created_at=ensure_utc(row["created_at"]),
    )


class PostgresEventStore(PostgresConnection, EventStore):
    """EventStore backed by PostgreSQL"""

    def __init__(self, config: AnalyticsConfig):
        super().__init__(
            host=config.postgres_host,
            port=config.postgres_port,
            database=config.postgres_database,
            user=config.postgres_user,
            password=config.postgres_password,
        )
        self.config = config

    @contextmanager
    def _store_errors(self, operation: str, **context):
        """Translate driver errors into StoreUnavailable"""
        try:
            yield
        except psycopg2.Error as e:
            logger.error(
                "Event store operation failed", operation=operation, error=str(e), **context
            )
            raise StoreUnavailable(f"{operation} failed: {e}") from e

    def ensure_schema(self):
        """Create the log_events and anomalies tables if they don't exist"""
        with self._store_errors("ensure_schema"), self.get_cursor() as cursor:
            cursor.execute(SCHEMA)
        logger.info("Ensured analytics tables exist")

    # ========================================
    # Log events
    # ========================================

    def append(self, events: Sequence[LogEvent]) -> BatchIngestResult:
        """Insert events; a failing row is rolled back to its savepoint only"""
        result = BatchIngestResult()
        if not events:
            return result

        with self._store_errors("append", count=len(events)), self.get_cursor() as cursor:
            for index, event in enumerate(events):
                cursor.execute("SAVEPOINT log_event_row")
                try:
                    cursor.execute(_INSERT_EVENT, self._event_params(event))
                except (psycopg2.DataError, psycopg2.IntegrityError, ValueError) as e:
                    # ValueError: client-side adaptation failure, e.g. NUL in a string
                    cursor.execute("ROLLBACK TO SAVEPOINT log_event_row")
                    result.reject(index, str(e).strip())
                    continue
                cursor.execute("RELEASE SAVEPOINT log_event_row")
                result.accepted_count += 1

        logger.debug(
            "Log events appended",
            accepted=result.accepted_count,
            rejected=result.rejected_count,
        )
        return result

    @staticmethod
    def _event_params(event: LogEvent) -> dict[str, Any]:
        return {
            "org": event.org,
            "service": event.service,
            "level": event.level.value,
            "timestamp": event.timestamp,
            "message": event.message,
            "latency_ms": event.latency_ms,
            "response_code": event.response_code,
            "metadata": psycopg2.extras.Json(event.metadata) if event.metadata else None,
        }

    def count(self, event_filter: EventFilter) -> int:
        where, params = _event_where(event_filter)
        query = f"SELECT COUNT(*) FROM log_events {where}"
        with self._store_errors("count"), self.get_cursor() as cursor:
            cursor.execute(query, params)
            return cursor.fetchone()[0]

    def aggregate(self, event_filter: EventFilter) -> WindowAggregate:
        where, params = _event_where(event_filter)
        query = f"""
            SELECT
                COUNT(*) AS total_count,
                COUNT(*) FILTER (WHERE level = 'ERROR') AS error_count,
                AVG(latency_ms) AS avg_latency,
                MIN(latency_ms) AS min_latency,
                MAX(latency_ms) AS max_latency
            FROM log_events
            {where}
        """
        with self._store_errors("aggregate"), self.get_cursor(dict_rows=True) as cursor:
            cursor.execute(query, params)
            row = cursor.fetchone()

        return WindowAggregate(
            total_count=row["total_count"],
            error_count=row["error_count"],
            avg_latency=float(row["avg_latency"]) if row["avg_latency"] is not None else None,
            min_latency=row["min_latency"],
            max_latency=row["max_latency"],
        )

    def scan(self, event_filter: EventFilter) -> Iterator[LogEvent]:
        where, params = _event_where(event_filter)
        query = f"SELECT {_EVENT_COLUMNS} FROM log_events {where} ORDER BY timestamp ASC"
        with self._store_errors("scan"), self.get_cursor(dict_rows=True) as cursor:
            cursor.execute(query, params)
            rows = cursor.fetchall()
        return (_row_to_event(row) for row in rows)

    def top_values(
        self, event_filter: EventFilter, field: str, limit: int | None
    ) -> list[tuple[Any, int]]:
        self.validate_field(field)
        where, params = _event_where(event_filter)
        not_null = sql.SQL("{field} IS NOT NULL").format(field=sql.Identifier(field))
        where_sql = (
            sql.SQL("{where} AND {not_null}").format(where=sql.SQL(where), not_null=not_null)
            if where
            else sql.SQL("WHERE {not_null}").format(not_null=not_null)
        )
        query = sql.SQL(
            """
            SELECT {field} AS value, COUNT(*) AS count
            FROM log_events
            {where}
            GROUP BY {field}
            ORDER BY count DESC, value ASC
            LIMIT %(limit)s
            """
        ).format(field=sql.Identifier(field), where=where_sql)
        params["limit"] = limit

        with self._store_errors("top_values", field=field), self.get_cursor() as cursor:
            cursor.execute(query, params)
            return [(value, count) for value, count in cursor.fetchall()]

    def recent(self, event_filter: EventFilter, limit: int) -> list[LogEvent]:
        where, params = _event_where(event_filter)
        query = f"""
            SELECT {_EVENT_COLUMNS} FROM log_events {where}
            ORDER BY timestamp DESC, id DESC
            LIMIT %(limit)s
        """
        params["limit"] = limit
        with self._store_errors("recent"), self.get_cursor(dict_rows=True) as cursor:
            cursor.execute(query, params)
            return [_row_to_event(row) for row in cursor.fetchall()]

    # ========================================
    # Anomalies
    # ========================================

    def save_anomaly(self, record: AnomalyRecord) -> AnomalyRecord:
        with (
            self._store_errors("save_anomaly", service=record.service, org=record.org),
            self.get_cursor() as cursor,
        ):
            cursor.execute(_INSERT_ANOMALY, record.to_db_dict())
            anomaly_id = cursor.fetchone()[0]

        logger.debug("Anomaly inserted", id=anomaly_id, service=record.service, org=record.org)
        return replace(record, id=anomaly_id)

    def query_anomalies(
        self, anomaly_filter: AnomalyFilter, limit: int | None, offset: int = 0
    ) -> list[AnomalyRecord]:
        where, params = _anomaly_where(anomaly_filter)
        query = f"""
            SELECT {_ANOMALY_COLUMNS} FROM anomalies {where}
            ORDER BY created_at DESC, id DESC
            LIMIT %(limit)s OFFSET %(offset)s
        """
        params.update(limit=limit, offset=offset)
        with self._store_errors("query_anomalies"), self.get_cursor(dict_rows=True) as cursor:
            cursor.execute(query, params)
            return [_row_to_anomaly(row) for row in cursor.fetchall()]
