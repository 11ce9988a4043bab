import json
import logging
from typing import List, Optional

import redis

from paperstats.core.config import settings

logger = logging.getLogger(__name__)

redis_client = redis.Redis.from_url(settings.REDIS_URL, decode_responses=True)

LEADERBOARD_KEY = "leaderboard:v1"


class LeaderboardCache:
    """Short-lived snapshot of the ranked leaderboard.

    Every method is best effort: a Redis failure is logged and reported as a
    miss so callers fall back to the store.
    """

    def __init__(self, client: redis.Redis, ttl: int = settings.LEADERBOARD_CACHE_TTL, key: str = LEADERBOARD_KEY):
        self.client = client
        self.ttl = ttl
        self.key = key

    def get(self) -> Optional[List[dict]]:
        try:
            raw = self.client.get(self.key)
        except redis.RedisError as e:
            logger.warning("Leaderboard cache read failed: %s", e)
            return None
        if not raw:
            return None
        try:
            return json.loads(raw)
        except (json.JSONDecodeError, TypeError):
            logger.warning("Discarding unreadable leaderboard snapshot")
            return None

    def set(self, entries: List[dict]) -> None:
        try:
            self.client.set(self.key, json.dumps(entries), ex=self.ttl)
        except redis.RedisError as e:
            logger.warning("Leaderboard cache write failed: %s", e)

    def invalidate(self) -> None:
        try:
            self.client.delete(self.key)
        except redis.RedisError as e:
            logger.warning("Leaderboard cache invalidate failed: %s", e)


def get_leaderboard_cache() -> Optional[LeaderboardCache]:
    if not settings.LEADERBOARD_CACHE_ENABLED:
        return None
    return LeaderboardCache(redis_client)
