"""
backend/booking_core/services/events.py

Event emitter: pushes booking events to Redis for the notification consumer.

Queue:
- events:p2p: instant delivery (booking created / rescheduled)

Publishing is best effort: the booking is already committed when an event
is emitted, so failures are logged and never raised.
"""

import json
import time
import logging

from redis import Redis
from redis.exceptions import RedisError

from ..redis_client import redis_client

logger = logging.getLogger(__name__)

P2P_QUEUE = "events:p2p"


def emit_event(event_type: str, payload: dict, redis: Redis | None = None) -> bool:
    """
    Emit a p2p event (instant delivery).

    Returns:
        True if the event was pushed, False if Redis is not configured or failed.
    """
    client = redis if redis is not None else redis_client
    if client is None:
        logger.debug(f"Redis not configured, event {event_type} not published")
        return False

    event = {
        "type": event_type,
        **payload,
        "ts": int(time.time()),
    }
    try:
        client.rpush(P2P_QUEUE, json.dumps(event))
        logger.info(f"Event emitted: {event_type} → {P2P_QUEUE}")
        return True
    except RedisError as e:
        logger.error(f"Failed to emit event {event_type}: {e}")
        return False
