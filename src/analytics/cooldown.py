"""
Redis-backed suppression window for repeated anomaly alerts.
"""

import redis
import structlog

from .config import AnalyticsConfig

logger = structlog.get_logger(__name__)


class AlertCooldown:
    """Allows at most one alert per partition within the cooldown window"""

    def __init__(self, config: AnalyticsConfig, client: redis.Redis | None = None):
        self.ttl = config.anomaly_cooldown_seconds
        try:
            self.redis = client or redis.Redis(
                host=config.redis_host,
                port=config.redis_port,
                db=config.redis_db,
                password=config.redis_password,
                decode_responses=True,
            )
            self.redis.ping()  # Test connection
            logger.info(
                "Alert cooldown initialized",
                host=config.redis_host,
                port=config.redis_port,
                ttl=self.ttl,
            )
        except Exception as e:
            logger.error("Failed to initialize Redis", error=str(e))
            raise

    def try_acquire(self, service: str, org: str | None) -> bool:
        """Claim the alert slot for a partition

        Returns:
            True if no alert was raised for the partition within the window.
            Redis failures also return True so that alerts are never lost.
        """
        key = self._make_key(service, org)
        try:
            return bool(self.redis.set(key, "1", nx=True, ex=self.ttl))
        except redis.RedisError as e:
            logger.error("Failed to check alert cooldown", key=key, error=str(e))
            return True

    def _make_key(self, service: str, org: str | None) -> str:
        """Generate Redis key"""
        return f"anomaly:cooldown:{org or '*'}:{service}"
