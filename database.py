import logging
from typing import Optional

from bson import ObjectId
from pymongo import ASCENDING, DESCENDING, MongoClient
from pymongo.database import Database

from config import Settings

logger = logging.getLogger(__name__)

PRODUCTS = "products"
ORDERS = "orders"
USERS = "users"


def get_database(settings: Settings) -> Database:
    client = MongoClient(
        settings.database_url,
        serverSelectionTimeoutMS=settings.db_timeout_ms,
        socketTimeoutMS=settings.db_timeout_ms,
        tz_aware=True,
    )
    return client[settings.database_name]


def ensure_indexes(db: Database):
    # one order per gateway payment; COD orders carry no payment sub-document
    db[ORDERS].create_index(
        [("payment.gateway_payment_id", ASCENDING)], unique=True, sparse=True
    )
    db[ORDERS].create_index([("created_at", DESCENDING)])
    db[ORDERS].create_index([("user_id", ASCENDING), ("created_at", DESCENDING)])
    db[USERS].create_index([("uid", ASCENDING)])
    logger.info("Indexes ensured on %s", db.name)


def object_id(value) -> Optional[ObjectId]:
    """Parse a client-supplied id; None when it cannot be a document id"""
    if isinstance(value, ObjectId):
        return value
    if isinstance(value, str) and ObjectId.is_valid(value):
        return ObjectId(value)
    return None


def serialize(doc: Optional[dict]) -> Optional[dict]:
    if doc is None:
        return None
    doc = dict(doc)
    doc["id"] = str(doc.pop("_id"))
    return doc
