# backend/booking_core/redis_client.py
"""
Shared Redis client.

Redis is optional: without REDIS_URL the engine still serializes
reservations through the database row lock, and booking events are
simply not published.
"""

from redis import Redis

from .config import settings


def create_redis_client(url: str | None) -> Redis | None:
    if not url:
        return None
    return Redis.from_url(url, socket_timeout=2.0)


redis_client: Redis | None = create_redis_client(settings.redis_url)
