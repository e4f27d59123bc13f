"""
MongoDB access for the lab storefront.

The client is created once at import from DATABASE_URL / DATABASE_NAME.
Handlers go through `collection()` so a missing database surfaces as a 503
instead of an AttributeError deep in a route.
"""
import os
import re
import logging
from datetime import datetime
from typing import Optional, Dict, Any, List

from bson import ObjectId
from dotenv import load_dotenv
from fastapi import HTTPException
from pymongo import MongoClient
from pymongo.errors import PyMongoError

load_dotenv()

logger = logging.getLogger(__name__)

DATABASE_URL = os.getenv("DATABASE_URL")
DATABASE_NAME = os.getenv("DATABASE_NAME", "lab_storefront")
OBJECT_ID_RE = re.compile(r"^[0-9a-fA-F]{24}$")


def ensure_indexes(database) -> None:
    """Unique keys; a colliding insert or update raises DuplicateKeyError."""
    database["user"].create_index("email", unique=True)
    database["offer"].create_index("coupon_code", unique=True)


db = None
if DATABASE_URL:
    try:
        client = MongoClient(DATABASE_URL)
        db = client[DATABASE_NAME]
    except Exception as e:
        logger.error("Could not create MongoDB client: %s", e)
        db = None
if db is not None:
    try:
        ensure_indexes(db)
    except PyMongoError as e:
        logger.warning("Could not create indexes: %s", e)


def collection(name: str):
    if db is None:
        raise HTTPException(status_code=503, detail="Database not available")
    return db[name]


def to_object_id(value) -> Optional[ObjectId]:
    """Parse an id from a path or body; None when it is not a valid ObjectId."""
    if isinstance(value, ObjectId):
        return value
    if not isinstance(value, str) or not OBJECT_ID_RE.match(value):
        return None
    return ObjectId(value)


def find_by_id(collection_name: str, doc_id) -> Optional[dict]:
    oid = to_object_id(doc_id)
    if oid is None:
        return None
    return collection(collection_name).find_one({"_id": oid})


def serialize(doc: Optional[dict]) -> Optional[dict]:
    if doc is None:
        return None
    doc = dict(doc)
    if "_id" in doc:
        doc["id"] = str(doc.pop("_id"))
    return doc


def create_document(collection_name: str, data) -> str:
    """Insert a document (dict or pydantic model) with timestamps; returns the new id."""
    if hasattr(data, "model_dump"):
        data = data.model_dump()
    doc = dict(data)
    now = datetime.utcnow()
    doc.setdefault("created_at", now)
    doc["updated_at"] = now
    result = collection(collection_name).insert_one(doc)
    return str(result.inserted_id)


def get_documents(collection_name: str, filter_dict: Optional[Dict[str, Any]] = None,
                  sort: Optional[List] = None, skip: int = 0, limit: Optional[int] = None) -> List[dict]:
    cursor = collection(collection_name).find(filter_dict or {})
    if sort:
        cursor = cursor.sort(sort)
    if skip:
        cursor = cursor.skip(skip)
    if limit:
        cursor = cursor.limit(limit)
    return [serialize(d) for d in cursor]


def update_document(collection_name: str, doc_id, update: Dict[str, Any]) -> Optional[dict]:
    """$set the given fields and return the updated document, or None if it does not exist."""
    oid = to_object_id(doc_id)
    if oid is None:
        return None
    update = dict(update)
    update["updated_at"] = datetime.utcnow()
    coll = collection(collection_name)
    res = coll.update_one({"_id": oid}, {"$set": update})
    if res.matched_count == 0:
        return None
    return coll.find_one({"_id": oid})
