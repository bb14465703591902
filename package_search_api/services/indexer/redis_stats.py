import uuid
import logging
from datetime import date, timedelta
from typing import Optional

import redis

from package_search_api.services.search.models.package import DownloadStats

logger = logging.getLogger(__name__)

TRENDING_KEY = 'downloads:trending'
MONTHLY_WINDOW_DAYS = 30

class RedisPopularitySource:
    """Download counters, faver counts and trending scores kept in Redis."""

    def __init__(self, redis_client: redis.Redis, today=date.today):
        self.redis = redis_client
        self.today = today

    def get_downloads(self, package_id: int) -> DownloadStats:
        """Total downloads plus the sum of the last 30 daily counters."""
        day = self.today()
        daily_keys = [
            f"dl:{package_id}:{(day - timedelta(days=offset)).strftime('%Y%m%d')}"
            for offset in range(MONTHLY_WINDOW_DAYS)
        ]
        total = self.redis.get(f"dl:{package_id}")
        daily = self.redis.mget(daily_keys)
        return DownloadStats(
            total=int(total or 0),
            monthly=sum(int(value) for value in daily if value),
        )

    def get_faver_count(self, package_id: int) -> int:
        return int(self.redis.zcard(f"pkg:{package_id}:fav") or 0)

    def get_trending_score(self, package_id: int) -> Optional[float]:
        return self.redis.zscore(TRENDING_KEY, package_id)

class RedisLocker:
    """Named run lock shared by every indexer instance."""

    # Only the holder's token may release the lock
    RELEASE_SCRIPT = """
        if redis.call('get', KEYS[1]) == ARGV[1] then
            return redis.call('del', KEYS[1])
        end
        return 0
    """

    REFRESH_SCRIPT = """
        if redis.call('get', KEYS[1]) == ARGV[1] then
            return redis.call('expire', KEYS[1], ARGV[2])
        end
        return 0
    """

    def __init__(self, redis_client: redis.Redis, ttl: int = 3600):
        self.redis = redis_client
        self.ttl = ttl
        self.tokens = {}

    @staticmethod
    def _key(name: str) -> str:
        return f"lock:{name}"

    def lock_command(self, name: str) -> bool:
        token = uuid.uuid4().hex
        acquired = self.redis.set(self._key(name), token, nx=True, ex=self.ttl)
        if acquired:
            self.tokens[name] = token
            logger.info(f"Acquired lock {name}")
        return bool(acquired)

    def refresh_command(self, name: str) -> bool:
        """Restart the TTL of a lock this instance holds."""
        token = self.tokens.get(name)
        if token is None:
            return False
        refreshed = self.redis.eval(self.REFRESH_SCRIPT, 1, self._key(name), token, self.ttl)
        if not refreshed:
            logger.warning(f"Lock {name} expired before it could be refreshed")
        return bool(refreshed)

    def unlock_command(self, name: str) -> None:
        token = self.tokens.pop(name, None)
        if token is None:
            return
        self.redis.eval(self.RELEASE_SCRIPT, 1, self._key(name), token)
        logger.info(f"Released lock {name}")
