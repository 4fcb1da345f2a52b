"""
Redis Progress Cache backend (ElastiCache in production).

Connection problems surface as CacheBackendError and are absorbed by
ProgressCache, so a Redis outage only costs extra Job Store reads.
"""

from typing import Optional

import redis

from .progress import CacheBackendError, ProgressCache, DEFAULT_PROGRESS_TTL, DEFAULT_LIST_TTL


class RedisProgressCache(ProgressCache):
    """Progress cache stored in Redis with per-key expiry."""

    def __init__(
        self,
        url: str,
        progress_ttl: int = DEFAULT_PROGRESS_TTL,
        list_ttl: int = DEFAULT_LIST_TTL,
        client: Optional[redis.Redis] = None,
    ):
        super().__init__(progress_ttl, list_ttl)
        self._client = client or redis.Redis.from_url(
            url,
            decode_responses=True,
            socket_timeout=5,
            socket_connect_timeout=5,
            health_check_interval=30,
            retry_on_timeout=True,
        )

    def _get_raw(self, key: str) -> Optional[str]:
        try:
            return self._client.get(key)
        except redis.RedisError as e:
            raise CacheBackendError(str(e)) from e

    def _set_raw(self, key: str, value: str, ttl: int) -> None:
        try:
            self._client.set(key, value, ex=ttl)
        except redis.RedisError as e:
            raise CacheBackendError(str(e)) from e

    def _add_raw(self, key: str, value: str, ttl: int) -> bool:
        try:
            return bool(self._client.set(key, value, ex=ttl, nx=True))
        except redis.RedisError as e:
            raise CacheBackendError(str(e)) from e

    def _delete_raw(self, key: str) -> None:
        try:
            self._client.delete(key)
        except redis.RedisError as e:
            raise CacheBackendError(str(e)) from e

    def _ping(self) -> None:
        try:
            self._client.ping()
        except redis.RedisError as e:
            raise CacheBackendError(str(e)) from e
