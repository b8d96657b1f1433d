"""
MongoDB connection and small document helpers shared by the route handlers.

`db` is None when DATABASE_URL / DATABASE_NAME are not set; handlers that need
it raise ServiceUnavailable instead of failing on attribute access.
"""
import logging
from datetime import datetime, timezone
from typing import Any, Optional, Union

from bson import ObjectId
from pydantic import BaseModel
from pymongo import ASCENDING, DESCENDING, TEXT, MongoClient

from config import DATABASE_NAME, DATABASE_URL
from errors import ServiceUnavailable

logger = logging.getLogger(__name__)

client: Optional[MongoClient] = None
db = None

if DATABASE_URL and DATABASE_NAME:
    client = MongoClient(DATABASE_URL, tz_aware=True)
    db = client[DATABASE_NAME]
else:
    logger.warning("DATABASE_URL / DATABASE_NAME not set, running without a database")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def to_object_id(value: Any) -> Optional[ObjectId]:
    if isinstance(value, ObjectId):
        return value
    if isinstance(value, str) and ObjectId.is_valid(value):
        return ObjectId(value)
    return None


def _serialize_value(value):
    if isinstance(value, ObjectId):
        return str(value)
    if isinstance(value, datetime):
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value.isoformat()
    if isinstance(value, dict):
        return serialize_doc(value)
    if isinstance(value, list):
        return [_serialize_value(v) for v in value]
    return value


def serialize_doc(doc):
    if not doc:
        return doc
    doc = dict(doc)
    _id = doc.pop("_id", None)
    if _id is not None:
        doc["id"] = str(_id)
    for k, v in list(doc.items()):
        doc[k] = _serialize_value(v)
    return doc


def create_document(collection_name: str, data: Union[BaseModel, dict], database=None) -> str:
    database = database if database is not None else db
    if database is None:
        raise RuntimeError("Database not configured")
    if isinstance(data, BaseModel):
        data_dict = data.model_dump(by_alias=True, exclude_none=True)
    else:
        data_dict = dict(data)
    now = utcnow()
    data_dict.setdefault("createdAt", now)
    data_dict["updatedAt"] = now
    result = database[collection_name].insert_one(data_dict)
    return str(result.inserted_id)


def ensure_indexes(database=None):
    database = database if database is not None else db
    if database is None:
        return
    database["book"].create_index("isbn", unique=True)
    database["book"].create_index([("title", TEXT), ("author", TEXT), ("description", TEXT)])
    database["book"].create_index([("category", ASCENDING)])
    database["book"].create_index([("salesCount", DESCENDING)])
    database["user"].create_index("email", unique=True, sparse=True)
    database["user"].create_index("phoneNumber", unique=True, sparse=True)
    database["order"].create_index("orderNumber", unique=True)
    database["order"].create_index([("user", ASCENDING), ("createdAt", DESCENDING)])
    database["order"].create_index([("paymentDetails.razorpayOrderId", ASCENDING)])
    database["ratelimit"].create_index("expiresAt", expireAfterSeconds=0)
    logger.info("Indexes ensured on %s", database.name)


def get_db():
    if db is None:
        raise ServiceUnavailable("Database not configured")
    return db
