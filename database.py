"""
MongoDB access helpers

The connection is configured from DATABASE_URL / DATABASE_NAME. When either is
missing `db` stays None and request handlers answer "Database not configured".
"""
import logging
import os
from datetime import datetime, timezone
from typing import Union

from bson import ObjectId
from bson.errors import InvalidId
from fastapi import HTTPException
from pydantic import BaseModel
from pymongo import ASCENDING, MongoClient

logger = logging.getLogger(__name__)

DATABASE_URL = os.getenv("DATABASE_URL")
DATABASE_NAME = os.getenv("DATABASE_NAME")

db = None
if DATABASE_URL and DATABASE_NAME:
    client = MongoClient(DATABASE_URL)
    db = client[DATABASE_NAME]


def get_db():
    if db is None:
        raise HTTPException(status_code=500, detail="Database not configured")
    return db


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def create_document(db, collection_name: str, data: Union[BaseModel, dict]) -> str:
    """Insert a document stamped with created_at / updated_at and return its id."""
    if isinstance(data, BaseModel):
        doc = data.model_dump()
    else:
        doc = dict(data)
    now = utcnow()
    doc.setdefault("created_at", now)
    doc["updated_at"] = now
    result = db[collection_name].insert_one(doc)
    return str(result.inserted_id)


def to_object_id(value: str, what: str = "Resource") -> ObjectId:
    try:
        return ObjectId(value)
    except (InvalidId, TypeError):
        raise HTTPException(status_code=404, detail=f"{what} not found")


def as_utc(value: datetime) -> datetime:
    # pymongo hands back naive datetimes that are already UTC
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _plain(value):
    if isinstance(value, ObjectId):
        return str(value)
    if isinstance(value, datetime):
        return as_utc(value).isoformat()
    if isinstance(value, list):
        return [_plain(v) for v in value]
    if isinstance(value, dict):
        return {k: _plain(v) for k, v in value.items()}
    return value


def serialize_doc(doc):
    if not doc:
        return doc
    doc = dict(doc)
    _id = doc.pop("_id", None)
    if _id is not None:
        doc["id"] = str(_id)
    return {k: _plain(v) for k, v in doc.items()}


def ensure_indexes(db):
    db["user"].create_index([("email", ASCENDING)], unique=True)
    db["category"].create_index([("name", ASCENDING)], unique=True)
    db["category"].create_index([("slug", ASCENDING)], unique=True)
    db["product"].create_index([("slug", ASCENDING)], unique=True)
    db["product"].create_index([("category", ASCENDING), ("active", ASCENDING)])
    db["order"].create_index([("created_at", ASCENDING)])
    db["order"].create_index([("user_id", ASCENDING)])
    db["sitesetting"].create_index([("domain", ASCENDING)], unique=True)
    db["wishlist"].create_index([("user_id", ASCENDING), ("product_id", ASCENDING)], unique=True)
    logger.info("Indexes ensured on %s", getattr(db, "name", "database"))
