"""
MongoDB access for the DevConnector API.

The connection is configured from DATABASE_URL / DATABASE_NAME. When either is
missing, `db` stays None and data access fails with DatabaseUnavailable.
"""

import logging
import os
from datetime import datetime, timezone
from typing import Optional

from bson import ObjectId
from pymongo import ASCENDING, MongoClient

logger = logging.getLogger(__name__)

DATABASE_URL = os.getenv("DATABASE_URL")
DATABASE_NAME = os.getenv("DATABASE_NAME")
# Applied to server selection, connect and socket reads so a stalled store
# fails the request instead of hanging it.
MONGO_TIMEOUT_MS = int(os.getenv("MONGO_TIMEOUT_MS", "5000"))

_client: Optional[MongoClient] = None
db = None


class DatabaseUnavailable(RuntimeError):
    pass


def connect(url: Optional[str] = None, name: Optional[str] = None):
    global _client, db
    url = url or DATABASE_URL
    name = name or DATABASE_NAME
    if not url or not name:
        logger.warning("DATABASE_URL/DATABASE_NAME not set, running without a database")
        return None
    _client = MongoClient(
        url,
        serverSelectionTimeoutMS=MONGO_TIMEOUT_MS,
        connectTimeoutMS=MONGO_TIMEOUT_MS,
        socketTimeoutMS=MONGO_TIMEOUT_MS,
    )
    db = _client[name]
    logger.info("Connected to MongoDB database %s", name)
    return db


def close():
    global _client, db
    if _client is not None:
        _client.close()
    _client = None
    db = None


def get_db():
    """FastAPI dependency returning the live database handle."""
    if db is None:
        raise DatabaseUnavailable("Database not available. Check DATABASE_URL and DATABASE_NAME.")
    return db


def ensure_indexes(database):
    # One profile per user is enforced here, not in application code.
    database["profile"].create_index([("user", ASCENDING)], unique=True)
    database["post"].create_index([("user", ASCENDING)])
    database["session"].create_index([("token", ASCENDING)], unique=True)
    database["user"].create_index([("email", ASCENDING)], unique=True)


def _now():
    return datetime.now(timezone.utc)


def create_document(database, collection_name: str, data) -> str:
    if hasattr(data, "model_dump"):
        data_dict = data.model_dump()
    else:
        data_dict = dict(data)
    data_dict["created_at"] = _now()
    data_dict["updated_at"] = _now()
    result = database[collection_name].insert_one(data_dict)
    return str(result.inserted_id)


def get_documents(database, collection_name: str, filter_dict: Optional[dict] = None, limit: Optional[int] = None):
    cursor = database[collection_name].find(filter_dict or {})
    if limit:
        cursor = cursor.limit(limit)
    return list(cursor)


def to_public(doc):
    """Make a stored document JSON ready: `_id` becomes `id`, ObjectIds and datetimes become strings."""
    if isinstance(doc, list):
        return [to_public(d) for d in doc]
    if isinstance(doc, ObjectId):
        return str(doc)
    if not isinstance(doc, dict):
        if hasattr(doc, "isoformat"):
            return doc.isoformat()
        return doc
    d = {}
    for k, v in doc.items():
        if k == "_id":
            d["id"] = str(v)
        else:
            d[k] = to_public(v)
    return d
