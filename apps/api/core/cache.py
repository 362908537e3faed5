"""
Redis cache for computed per-user payloads.

Values are stored as JSON. When Redis is down every call degrades to a
miss (reads return None, writes return False) so requests still succeed.
"""
import json
import logging
from typing import Any, Callable, Optional, TypeVar

import redis
from redis.exceptions import RedisError

from core.config import settings

logger = logging.getLogger(__name__)

T = TypeVar("T")

_redis_client: Optional[redis.Redis] = None


def get_redis_client() -> Optional[redis.Redis]:
    """Shared client, or None while Redis cannot be reached."""
    global _redis_client
    if _redis_client is not None:
        return _redis_client

    client = redis.from_url(
        settings.REDIS_URL,
        decode_responses=True,
        socket_connect_timeout=2,
        socket_timeout=2,
        health_check_interval=30,
    )
    try:
        client.ping()
    except RedisError as e:
        logger.warning(f"Redis unavailable, caching disabled: {e}")
        return None
    _redis_client = client
    return client


def _with_client(op: str, key: str, fn: Callable[[redis.Redis], T], default: T) -> T:
    client = get_redis_client()
    if client is None:
        return default
    try:
        return fn(client)
    except RedisError as e:
        logger.warning(f"Cache {op} failed for {key}: {e}")
        return default


def cache_key(prefix: str, *parts) -> str:
    return ":".join([prefix, *(str(p) for p in parts if p is not None)])


def get_cache(key: str) -> Optional[Any]:
    raw = _with_client("get", key, lambda c: c.get(key), None)
    return json.loads(raw) if raw else None


def set_cache(key: str, value: Any, ttl: Optional[int] = None) -> bool:
    ttl = ttl or settings.CACHE_TTL_DEFAULT
    payload = json.dumps(value, default=str)
    return _with_client("set", key, lambda c: bool(c.setex(key, ttl, payload)), False)


def delete_cache(key: str) -> bool:
    return _with_client("delete", key, lambda c: c.delete(key) >= 0, False)


def stats_cache_key(user_id) -> str:
    return cache_key("couchproof:stats", user_id)


def invalidate_user_stats(user_id) -> bool:
    """Call whenever a user's activities are added, changed or removed."""
    return delete_cache(stats_cache_key(user_id))
