"""
MongoDB access: client construction, index setup and id helpers.
"""
import logging
from typing import Any, Optional

from bson import ObjectId
from bson.errors import InvalidId
from pymongo import ASCENDING, DESCENDING, MongoClient
from pymongo.database import Database
from pymongo.errors import (
    AutoReconnect,
    ExecutionTimeout,
    NetworkTimeout,
    ServerSelectionTimeoutError,
)

from settings import Settings

logger = logging.getLogger("blog.database")

USERS = "user"
POSTS = "post"
COMMENTS = "comment"

# pymongo errors that mean "no answer in time", reported to callers as retryable
TIMEOUT_ERRORS = (ServerSelectionTimeoutError, NetworkTimeout, ExecutionTimeout, AutoReconnect)


def connect(settings: Settings) -> Database:
    """Build a client with bounded timeouts. Connection is lazy."""
    client: MongoClient = MongoClient(
        settings.database_url,
        timeoutMS=settings.database_timeout_ms,
        serverSelectionTimeoutMS=settings.database_timeout_ms,
        connectTimeoutMS=settings.database_timeout_ms,
        tz_aware=True,
    )
    return client[settings.database_name]


def ensure_indexes(db: Database) -> None:
    # emails are stored lowercased, so this index is case-insensitive uniqueness
    db[USERS].create_index("email", unique=True)
    db[POSTS].create_index([("author", ASCENDING), ("created_at", DESCENDING)])
    db[POSTS].create_index([("status", ASCENDING), ("is_published", ASCENDING)])
    db[COMMENTS].create_index([("post", ASCENDING), ("created_at", DESCENDING)])
    db[COMMENTS].create_index([("author", ASCENDING), ("created_at", DESCENDING)])
    db[COMMENTS].create_index("parent_comment")
    logger.info("indexes ensured on %s", db.name)


def to_object_id(value: Any) -> Optional[ObjectId]:
    """Parse an id string; None when it is not a valid ObjectId."""
    if isinstance(value, ObjectId):
        return value
    try:
        return ObjectId(str(value))
    except (InvalidId, TypeError):
        return None
