import logging
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, Optional

from pymongo import ReturnDocument
from pymongo.database import Database

from database import PRODUCTS, object_id, serialize
from errors import InsufficientInventory, ProductInactive, ProductNotFound
from schemas import Product

logger = logging.getLogger(__name__)


def is_tracked(product: dict) -> bool:
    inventory = product.get("inventory")
    return isinstance(inventory, int) and not isinstance(inventory, bool)


class ProductLedger:
    """Reads and writes product documents"""

    def __init__(self, db: Database):
        self.collection = db[PRODUCTS]

    def get(self, product_id: str) -> Optional[dict]:
        oid = object_id(product_id)
        if oid is None:
            return None
        return serialize(self.collection.find_one({"_id": oid}))

    def get_many(self, product_ids: Iterable[str]) -> Dict[str, dict]:
        """Fetch products by id in one round-trip, keyed by string id"""
        oids = [oid for oid in (object_id(pid) for pid in set(product_ids)) if oid is not None]
        if not oids:
            return {}
        return {
            str(doc["_id"]): serialize(doc)
            for doc in self.collection.find({"_id": {"$in": oids}})
        }

    def create(self, fields: Dict[str, Any]) -> dict:
        now = datetime.now(timezone.utc)
        product = Product(**{**fields, "created_at": now, "updated_at": now})
        doc = product.model_dump()
        if not doc.get("thumbnail_url"):
            doc["thumbnail_url"] = doc.get("image_url")
        res = self.collection.insert_one(doc)
        logger.info("Product %s created: %s", res.inserted_id, product.name)
        return serialize({**doc, "_id": res.inserted_id})

    def update(self, product_id: str, fields: Dict[str, Any]) -> dict:
        oid = object_id(product_id)
        update = {**fields, "updated_at": datetime.now(timezone.utc)}
        doc = None
        if oid is not None:
            doc = self.collection.find_one_and_update(
                {"_id": oid}, {"$set": update}, return_document=ReturnDocument.AFTER
            )
        if doc is None:
            raise ProductNotFound(product_id)
        return serialize(doc)

    def deactivate(self, product_id: str) -> dict:
        return self.update(product_id, {"is_active": False})

    def purge(self, product_id: str):
        oid = object_id(product_id)
        res = self.collection.delete_one({"_id": oid}) if oid is not None else None
        if res is None or res.deleted_count == 0:
            raise ProductNotFound(product_id)
        logger.warning("Product %s purged", product_id)

    def decrement_inventory(self, product_id: str, quantity: int) -> Optional[int]:
        """
        Atomically take `quantity` units of an active product.

        Returns the remaining inventory, or None when the product does not
        track inventory. Never drives inventory below zero: when the
        conditional update matches nothing the product is re-read to report
        why.
        """
        oid = object_id(product_id)
        if oid is None:
            raise ProductNotFound(product_id)

        doc = self.collection.find_one_and_update(
            {"_id": oid, "is_active": True, "inventory": {"$gte": quantity}},
            {
                "$inc": {"inventory": -quantity},
                "$set": {"updated_at": datetime.now(timezone.utc)},
            },
            return_document=ReturnDocument.AFTER,
        )
        if doc is not None:
            return doc["inventory"]

        current = self.collection.find_one({"_id": oid})
        if current is None:
            raise ProductNotFound(product_id)
        if not current.get("is_active", False):
            raise ProductInactive(product_id)
        if not is_tracked(current):
            return None
        raise InsufficientInventory(product_id, current.get("name"))
