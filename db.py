from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

from bson import ObjectId
from bson.errors import InvalidId
from flask import current_app
from pymongo import ASCENDING, DESCENDING

logger = logging.getLogger(__name__)

COLLECTIONS = (
    "users",
    "categories",
    "products",
    "orders",
    "cart_items",
    "vouchers",
    "ratings",
    "notifications",
    "support_conversations",
    "support_messages",
    "hometown_posts",
    "chat_messages",
)


@dataclass
class DbStatus:
    enabled: bool
    ok: bool
    message: str


def connect(mongodb_uri: str, db_name: str):
    """Open the Mongo database; datetimes come back timezone aware."""
    from pymongo import MongoClient  # lazy import

    client = MongoClient(mongodb_uri, serverSelectionTimeoutMS=5000, tz_aware=True)
    return client[db_name]


def create_indexes(db) -> None:
    db["users"].create_index("email", unique=True)
    db["users"].create_index("username", unique=True, sparse=True)
    db["users"].create_index([("role", ASCENDING), ("active", ASCENDING)])
    db["categories"].create_index("slug", unique=True)
    db["products"].create_index("slug", unique=True)
    db["products"].create_index("category_id")
    db["products"].create_index("status")
    db["orders"].create_index("order_number", unique=True)
    db["orders"].create_index([("user_id", ASCENDING), ("status", ASCENDING)])
    db["orders"].create_index([("created_at", DESCENDING)])
    db["orders"].create_index("items.product_id")
    db["cart_items"].create_index([("user_id", ASCENDING), ("product_id", ASCENDING)], unique=True)
    db["vouchers"].create_index("code", unique=True)
    db["ratings"].create_index([("product_id", ASCENDING), ("user_id", ASCENDING)])
    db["notifications"].create_index([("recipient_id", ASCENDING), ("created_at", DESCENDING)])
    db["support_conversations"].create_index("conversationId", unique=True)
    db["support_conversations"].create_index([("status", ASCENDING), ("lastMessageAt", DESCENDING)])
    db["support_messages"].create_index([("conversationId", ASCENDING), ("createdAt", DESCENDING)])
    db["hometown_posts"].create_index("slug", unique=True)
    db["chat_messages"].create_index([("userId", ASCENDING), ("sessionId", ASCENDING)])


def mongo_status(db) -> DbStatus:
    if db is None:
        return DbStatus(enabled=False, ok=True, message="MongoDB disabled (MONGODB_URI not set)")

    try:
        db.command("ping")
        return DbStatus(enabled=True, ok=True, message="MongoDB connected")
    except Exception as e:  # pylint: disable=broad-except
        return DbStatus(enabled=True, ok=False, message=f"MongoDB error: {e}")


def redis_status(client) -> DbStatus:
    if client is None:
        return DbStatus(enabled=False, ok=True, message="Redis disabled (REDIS_URL not set)")

    try:
        client.ping()
        return DbStatus(enabled=True, ok=True, message="Redis connected")
    except Exception as e:  # pylint: disable=broad-except
        return DbStatus(enabled=True, ok=False, message=f"Redis error: {e}")


def get_collection(name: str):
    """Get a MongoDB collection registered on the current app"""
    return current_app.config.get(f"db_{name}")


def parse_object_id(value: Any) -> ObjectId | None:
    """Return an ObjectId, or None when the value is not a valid id"""
    if isinstance(value, ObjectId):
        return value
    try:
        return ObjectId(str(value))
    except (InvalidId, TypeError):
        return None


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def ensure_utc(value: datetime | None) -> datetime | None:
    # pymongo (and mongomock) may hand back naive datetimes stored as UTC
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def isoformat(value: Any) -> str | None:
    if value is None:
        return None
    if isinstance(value, datetime):
        return ensure_utc(value).isoformat()
    return str(value)


def parse_datetime(value: Any, default: datetime | None = None) -> datetime | None:
    """Parse ISO-8601 strings coming from query strings and JSON bodies"""
    if value is None or value == "":
        return default
    if isinstance(value, datetime):
        return ensure_utc(value)
    try:
        parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except ValueError:
        return default
    return ensure_utc(parsed)


def serialize(value: Any) -> Any:
    """Make a raw Mongo document JSON safe"""
    if isinstance(value, ObjectId):
        return str(value)
    if isinstance(value, datetime):
        return isoformat(value)
    if isinstance(value, dict):
        return {key: serialize(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [serialize(item) for item in value]
    return value
