"""
Persistence for the order and payment flows.

A MongoStore is created per request. Inside `unit_of_work()` every call runs in
the same MongoDB transaction when transactions are enabled; otherwise each
write is atomic on its own document only and callers compensate.
"""
import logging
from contextlib import contextmanager
from typing import Dict, Iterable, List, Optional

from pymongo import DESCENDING, ReturnDocument

from database import serialize_doc, to_object_id, utcnow
from schemas import Order

logger = logging.getLogger(__name__)

BOOK_SNAPSHOT_FIELDS = {"reviews": 0}


class MongoStore:
    def __init__(self, database, use_transactions: bool = False):
        self.db = database
        self.use_transactions = use_transactions
        self._session = None

    @property
    def _session_kwargs(self) -> dict:
        return {"session": self._session} if self._session is not None else {}

    @property
    def transactional(self) -> bool:
        return self._session is not None

    @contextmanager
    def unit_of_work(self):
        if not self.use_transactions or self._session is not None:
            yield self
            return
        with self.db.client.start_session() as session:
            with session.start_transaction():
                self._session = session
                try:
                    yield self
                finally:
                    self._session = None

    # ----------------------- Books -----------------------
    def get_books(self, book_ids: Iterable[str]) -> Dict[str, dict]:
        oids = [oid for oid in (to_object_id(b) for b in book_ids) if oid is not None]
        if not oids:
            return {}
        docs = self.db["book"].find({"_id": {"$in": oids}}, BOOK_SNAPSHOT_FIELDS, **self._session_kwargs)
        return {d["id"]: d for d in (serialize_doc(doc) for doc in docs)}

    def adjust_stock(self, book_id: str, stock_delta: int, sales_delta: int = 0) -> Optional[dict]:
        """Apply stock/sales deltas with $inc and bring inStock in line.

        Stock is not clamped; a negative count marks an oversold book. The
        inStock write is filtered on the current count.
        """
        oid = to_object_id(book_id)
        if oid is None:
            return None
        doc = self.db["book"].find_one_and_update(
            {"_id": oid},
            {"$inc": {"stockCount": stock_delta, "salesCount": sales_delta}, "$set": {"updatedAt": utcnow()}},
            projection=BOOK_SNAPSHOT_FIELDS,
            return_document=ReturnDocument.AFTER,
            **self._session_kwargs,
        )
        if doc is None:
            return None
        in_stock = doc["stockCount"] > 0
        if doc.get("inStock") != in_stock:
            count_filter = {"$gt": 0} if in_stock else {"$lte": 0}
            self.db["book"].update_one(
                {"_id": oid, "stockCount": count_filter},
                {"$set": {"inStock": in_stock}},
                **self._session_kwargs,
            )
            doc["inStock"] = in_stock
        return serialize_doc(doc)


    # ----------------------- Orders -----------------------
    def next_order_sequence(self) -> int:
        counter = self.db["counter"].find_one_and_update(
            {"_id": "orderNumber"},
            {"$inc": {"seq": 1}},
            upsert=True,
            return_document=ReturnDocument.AFTER,
            **self._session_kwargs,
        )
        return counter["seq"]

    def get_order(self, order_id: str) -> Optional[Order]:
        oid = to_object_id(order_id)
        if oid is None:
            return None
        doc = self.db["order"].find_one({"_id": oid}, **self._session_kwargs)
        return self._to_order(doc)

    def find_order_by_gateway_id(self, gateway_order_id: str) -> Optional[Order]:
        doc = self.db["order"].find_one({"paymentDetails.razorpayOrderId": gateway_order_id}, **self._session_kwargs)
        return self._to_order(doc)

    def find_orders(self, filt: Optional[dict] = None, skip: int = 0, limit: int = 20) -> List[Order]:
        cursor = self.db["order"].find(filt or {}, **self._session_kwargs)
        cursor = cursor.sort("createdAt", DESCENDING).skip(skip).limit(limit)
        return [self._to_order(doc) for doc in cursor]

    def count_orders(self, filt: Optional[dict] = None) -> int:
        return self.db["order"].count_documents(filt or {}, **self._session_kwargs)

    def order_stats(self) -> List[dict]:
        pipeline = [{"$group": {
            "_id": "$orderStatus",
            "count": {"$sum": 1},
            "totalValue": {"$sum": "$orderSummary.total"},
        }}]
        return [
            {"status": row["_id"], "count": row["count"], "totalValue": row["totalValue"]}
            for row in self.db["order"].aggregate(pipeline, **self._session_kwargs)
        ]

    def insert_order(self, order: Order) -> str:
        doc = order.to_document()
        now = utcnow()
        doc["createdAt"] = now
        doc["updatedAt"] = now
        result = self.db["order"].insert_one(doc, **self._session_kwargs)
        order.id = str(result.inserted_id)
        order.created_at = now
        order.updated_at = now
        return order.id

    def save_order(self, order: Order, expected_status: Optional[str] = None, unless_paid: bool = False) -> bool:
        """Replace the stored order.

        With `expected_status` the write only happens while the stored
        orderStatus still equals it; with `unless_paid` only while the stored
        payment is not yet paid. Returns False when the precondition failed.
        """
        filt = {"_id": to_object_id(order.id)}
        if expected_status is not None:
            filt["orderStatus"] = expected_status
        if unless_paid:
            filt["paymentDetails.status"] = {"$ne": "paid"}
        order.updated_at = utcnow()
        doc = order.to_document()
        result = self.db["order"].replace_one(filt, doc, **self._session_kwargs)
        return result.matched_count == 1

    @staticmethod
    def _to_order(doc: Optional[dict]) -> Optional[Order]:
        if not doc:
            return None
        return Order.model_validate({**doc, "id": str(doc["_id"])})
