from __future__ import annotations

import logging

from flask import current_app
from flask_socketio import SocketIO

logger = logging.getLogger(__name__)

# Real-time gateway shared by the HTTP routes and sockets.py
socketio = SocketIO()


def get_redis():
    """Get the Redis client registered on the current app"""
    return current_app.config.get("redis_client")


def connect_redis(redis_url: str | None):
    if not redis_url:
        logger.warning("REDIS_URL not configured - OTP features will be disabled")
        return None

    import redis  # lazy import

    return redis.Redis.from_url(redis_url, decode_responses=True)


def emit_safely(event: str, payload, room: str) -> None:
    """Emit a Socket.IO event; delivery is best effort."""
    try:
        socketio.emit(event, payload, to=room)
    except Exception as e:  # pylint: disable=broad-except
        logger.error("Error emitting %s to %s: %s", event, room, e)
