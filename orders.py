import logging
from datetime import datetime, timezone
from typing import List, Optional

from pymongo import DESCENDING, ReturnDocument
from pymongo.database import Database

from database import ORDERS, object_id, serialize
from errors import InvalidPayload, OrderNotFound
from schemas import Order, OrderStatus

logger = logging.getLogger(__name__)

DEFAULT_LIST_LIMIT = 100
MAX_LIST_LIMIT = 200


class OrderWriter:
    """
    Persists orders. An order's items and total are written once, on
    create; afterwards only `status` and `updated_at` ever change.
    """

    def __init__(self, db: Database):
        self.collection = db[ORDERS]

    def create(self, order: Order) -> dict:
        doc = order.model_dump()
        res = self.collection.insert_one(doc)
        logger.info("Order %s created for user %s, total %d", res.inserted_id, order.user_id, order.total)
        return serialize({**doc, "_id": res.inserted_id})

    def get(self, order_id: str) -> dict:
        oid = object_id(order_id)
        doc = self.collection.find_one({"_id": oid}) if oid is not None else None
        if doc is None:
            raise OrderNotFound(order_id)
        return serialize(doc)

    def find_by_payment_id(self, gateway_payment_id: str) -> Optional[dict]:
        return serialize(self.collection.find_one({"payment.gateway_payment_id": gateway_payment_id}))

    def update_status(self, order_id: str, status: str) -> dict:
        allowed = [s.value for s in OrderStatus]
        if status not in allowed:
            raise InvalidPayload(f"Invalid status, expected one of: {', '.join(allowed)}")
        oid = object_id(order_id)
        doc = None
        if oid is not None:
            doc = self.collection.find_one_and_update(
                {"_id": oid},
                {"$set": {"status": status, "updated_at": datetime.now(timezone.utc)}},
                return_document=ReturnDocument.AFTER,
            )
        if doc is None:
            raise OrderNotFound(order_id)
        logger.info("Order %s status set to %s", order_id, status)
        return serialize(doc)

    def list_recent(self, limit: Optional[int] = None) -> List[dict]:
        if not limit or limit <= 0:
            limit = DEFAULT_LIST_LIMIT
        limit = min(limit, MAX_LIST_LIMIT)
        cursor = self.collection.find().sort([("created_at", DESCENDING)]).limit(limit)
        return [serialize(o) for o in cursor]

    def list_for_user(self, user_id: str) -> List[dict]:
        cursor = self.collection.find({"user_id": user_id}).sort([("created_at", DESCENDING)])
        return [serialize(o) for o in cursor]
