import json
import logging
import os
import time
from typing import Any, Dict, Optional, Tuple

import redis
from redis import exceptions as redis_exceptions

logger = logging.getLogger(__name__)


class RedisStorageManager:
    """TTL key/value storage on Redis, or process-local memory when Redis is not configured"""

    def __init__(self, redis_url: Optional[str] = None, use_local_redis: bool = False):
        self.local_storage: Dict[str, Tuple[Any, Optional[float]]] = {}
        self.redis_client = None

        if redis_url or use_local_redis:
            self.redis_client = self._get_redis_client(redis_url)

        if self.redis_client:
            logger.info("Using Redis for cached provider data")
        else:
            logger.info("Using local storage for cached provider data")

    @property
    def use_redis(self) -> bool:
        return self.redis_client is not None

    def _get_redis_client(self, redis_url: Optional[str]):
        """Get Redis client for production or local development"""
        try:
            if redis_url:
                client = redis.from_url(redis_url, decode_responses=True)
            else:
                client = redis.Redis(
                    host=os.getenv('REDIS_HOST', 'localhost'),
                    port=int(os.getenv('REDIS_PORT', 6379)),
                    db=0,
                    decode_responses=True
                )
            client.ping()
            return client
        except redis_exceptions.RedisError as e:
            logger.warning(f"Failed to connect to Redis: {e}, falling back to local storage")
            return None

    def set_data(self, key: str, value: Any, ttl: Optional[int] = None):
        """
        Stores generic data with an optional Time-To-Live (TTL).

        Args:
            key (str): The unique key to store the data under.
            value (Any): The data to store. Must be JSON-serializable.
            ttl (Optional[int]): The time-to-live in seconds. If None, no expiration is set.
        """
        if self.redis_client:
            try:
                json_value = json.dumps(value)
                if ttl:
                    self.redis_client.setex(key, ttl, json_value)
                else:
                    self.redis_client.set(key, json_value)
                return
            except redis_exceptions.RedisError as e:
                logger.warning(f"Redis set_data error for key '{key}': {e}, falling back to local storage.")

        expires_at = time.monotonic() + ttl if ttl else None
        self.local_storage[key] = (value, expires_at)

    def get_data(self, key: str) -> Optional[Any]:
        """
        Retrieves generic data by key.

        Returns:
            Optional[Any]: The retrieved data, deserialized from JSON, or None if missing or expired.
        """
        if self.redis_client:
            try:
                json_value = self.redis_client.get(key)
                if json_value:
                    return json.loads(json_value)  # type: ignore
                return None
            except (redis_exceptions.RedisError, json.JSONDecodeError) as e:
                logger.warning(f"Redis get_data error for key '{key}': {e}, falling back to local storage.")

        entry = self.local_storage.get(key)
        if entry is None:
            return None
        value, expires_at = entry
        if expires_at is not None and expires_at <= time.monotonic():
            del self.local_storage[key]
            return None
        return value

    def delete_data(self, key: str):
        if self.redis_client:
            try:
                self.redis_client.delete(key)
            except redis_exceptions.RedisError as e:
                logger.warning(f"Redis delete error for key '{key}': {e}")
        self.local_storage.pop(key, None)
