"""Redis cache for computed driving routes."""
import json
import logging
from typing import Any, Dict, Optional

import redis

from app.config import settings

logger = logging.getLogger(__name__)


class RouteCache:
    """Route summaries stored as JSON under ``route:<digest>`` keys.

    A Redis outage turns every lookup into a miss and every store into a
    no-op; routing keeps working without the cache.
    """

    def __init__(self, client: Optional[redis.Redis] = None, ttl_seconds: Optional[int] = None):
        self.client = client or redis.Redis(
            host=settings.redis_host,
            port=settings.redis_port,
            db=settings.redis_db,
            password=settings.redis_password,
            decode_responses=True,
            socket_timeout=2,
        )
        self.ttl_seconds = ttl_seconds if ttl_seconds is not None else settings.route_cache_ttl_seconds

    def load(self, key: str) -> Optional[Dict[str, Any]]:
        try:
            raw = self.client.get(key)
        except redis.RedisError as e:
            logger.warning(f"Route cache read failed for {key}: {e}")
            return None
        if not raw:
            return None
        try:
            return json.loads(raw)
        except ValueError:
            logger.warning(f"Dropping unreadable route cache entry {key}")
            return None

    def store(self, key: str, route: Dict[str, Any]) -> bool:
        try:
            self.client.setex(key, self.ttl_seconds, json.dumps(route))
        except redis.RedisError as e:
            logger.warning(f"Route cache write failed for {key}: {e}")
            return False
        return True

    def ping(self) -> bool:
        try:
            return bool(self.client.ping())
        except redis.RedisError:
            return False


route_cache = RouteCache()
