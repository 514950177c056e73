"""
Database access

A single MongoDB client is created from the DATABASE_URL / DATABASE_NAME
environment variables. Handlers receive the database through the `get_db`
dependency so tests can swap in an in-memory database.
"""

import logging
import os
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, Optional, Union

from bson import ObjectId
from fastapi import HTTPException
from pydantic import BaseModel
from pymongo import ASCENDING, DESCENDING, MongoClient
from pymongo.database import Database

logger = logging.getLogger(__name__)

DATABASE_URL = os.getenv("DATABASE_URL")
DATABASE_NAME = os.getenv("DATABASE_NAME", "brelis")

client: Optional[MongoClient] = None
db: Optional[Database] = None

if DATABASE_URL:
    client = MongoClient(DATABASE_URL)
    db = client[DATABASE_NAME]


def get_db() -> Database:
    if db is None:
        raise HTTPException(status_code=503, detail="Database not configured")
    return db


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def oid(id_str: str) -> ObjectId:
    try:
        return ObjectId(id_str)
    except Exception:
        raise HTTPException(status_code=400, detail="Invalid ID format")


def create_document(database: Database, collection_name: str, data: Union[BaseModel, Dict[str, Any]]) -> str:
    """Insert a document, stamping created_at/updated_at. Returns the new id."""
    if isinstance(data, BaseModel):
        doc = data.model_dump()
    else:
        doc = dict(data)
    now = utcnow()
    doc.setdefault("created_at", now)
    doc["updated_at"] = now
    result = database[collection_name].insert_one(doc)
    return str(result.inserted_id)


def update_fields(payload: BaseModel, nullable: Iterable[str] = ()) -> Dict[str, Any]:
    """The fields a partial update sent. A null only clears fields listed in `nullable`."""
    return {
        key: value
        for key, value in payload.model_dump(exclude_unset=True).items()
        if value is not None or key in nullable
    }


def _clean(value: Any) -> Any:
    if isinstance(value, ObjectId):
        return str(value)
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, dict):
        return {k: _clean(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_clean(v) for v in value]
    return value


def serialize(doc: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    if not doc:
        return doc
    doc = dict(doc)
    doc["id"] = str(doc.pop("_id")) if doc.get("_id") else None
    return _clean(doc)


def ensure_indexes(database: Database) -> None:
    database["user"].create_index("email", unique=True)
    database["user"].create_index("role")
    database["cart"].create_index("user_id", unique=True)
    database["product"].create_index([("category", ASCENDING), ("is_active", ASCENDING)])
    database["product"].create_index([("is_featured", ASCENDING), ("is_active", ASCENDING)])
    database["product"].create_index([("total_sold", DESCENDING)])
    database["product"].create_index("sku", unique=True, sparse=True)
    database["order"].create_index("order_number", unique=True)
    database["order"].create_index([("user_id", ASCENDING), ("created_at", DESCENDING)])
    database["order"].create_index("status")
    database["cointransaction"].create_index([("user_id", ASCENDING), ("created_at", DESCENDING)])
    database["cointransaction"].create_index("order_id")
    database["review"].create_index([("product_id", ASCENDING), ("created_at", DESCENDING)])
    database["lookbook"].create_index([("category", ASCENDING), ("is_active", ASCENDING), ("sort_order", ASCENDING)])
    database["session"].create_index("token", unique=True)
    logger.info("Database indexes ensured on %s", database.name)
