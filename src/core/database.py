"""
Generic PostgreSQL connection management.
Shared by the event store and the CLIs.
"""

import threading
from contextlib import contextmanager

import psycopg2
import psycopg2.extras
import structlog

logger = structlog.get_logger(__name__)


class PostgresConnection:
    """Base class for PostgreSQL connection management

    A single connection is shared between threads; `get_cursor` holds a lock
    for the lifetime of each transaction so concurrent callers never
    interleave statements on the same connection.
    """

    def __init__(
        self,
        host: str,
        port: int,
        database: str,
        user: str,
        password: str,
    ):
        self.host = host
        self.port = port
        self.database = database
        self.user = user
        self.password = password
        self.connection = None
        self._lock = threading.RLock()
        self._connect()

    def _connect(self):
        """Establish connection to PostgreSQL"""
        try:
            self.connection = psycopg2.connect(
                host=self.host,
                port=self.port,
                database=self.database,
                user=self.user,
                password=self.password,
                connect_timeout=10,
            )
            logger.info(
                "PostgreSQL connection established",
                host=self.host,
                database=self.database,
            )
        except Exception as e:
            logger.error("Failed to connect to PostgreSQL", error=str(e))
            raise

    @contextmanager
    def get_cursor(self, dict_rows: bool = False):
        """Context manager for database cursor with automatic commit/rollback

        Args:
            dict_rows: Return rows as dicts keyed by column name
        """
        with self._lock:
            cursor_factory = psycopg2.extras.RealDictCursor if dict_rows else None
            cursor = self.connection.cursor(cursor_factory=cursor_factory)
            try:
                yield cursor
                self.connection.commit()
            except Exception as e:
                self.connection.rollback()
                logger.error("Database operation failed", error=str(e))
                raise
            finally:
                cursor.close()

    def check_health(self) -> bool:
        """Check if database connection is healthy"""
        try:
            with self.get_cursor() as cursor:
                cursor.execute("SELECT 1")
                return cursor.fetchone()[0] == 1
        except Exception as e:
            logger.error("Database health check failed", error=str(e))
            return False

    def close(self):
        """Close database connection"""
        if self.connection:
            self.connection.close()
            logger.info("PostgreSQL connection closed")
