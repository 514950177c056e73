import logging
from typing import Any, Dict, List, Optional, Tuple

from bson import ObjectId
from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, Field
from pymongo import ASCENDING, DESCENDING
from pymongo.database import Database

from database import create_document, get_db, oid, serialize, update_fields, utcnow
from inventory import current_price
from responses import PageParams, ok, pagination, skip_for
from schemas import Lookbook, LookbookCategory
from security import require_admin

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/lookbook", tags=["lookbook"])

ORDERING = [("sort_order", ASCENDING), ("created_at", DESCENDING)]


class LookbookRequest(BaseModel):
    title: str = Field(..., min_length=1, max_length=100)
    description: str = Field(..., min_length=1, max_length=500)
    image: str = Field(..., min_length=1)
    products: List[str] = Field(default_factory=list)
    category: LookbookCategory = "Street Inspirations"
    is_active: bool = True
    sort_order: int = 0
    tags: List[str] = Field(default_factory=list)


class LookbookUpdate(BaseModel):
    title: Optional[str] = Field(None, min_length=1, max_length=100)
    description: Optional[str] = Field(None, min_length=1, max_length=500)
    image: Optional[str] = Field(None, min_length=1)
    products: Optional[List[str]] = None
    category: Optional[LookbookCategory] = None
    is_active: Optional[bool] = None
    sort_order: Optional[int] = None
    tags: Optional[List[str]] = None


def present_look(db: Database, doc: Dict[str, Any]) -> Dict[str, Any]:
    """Serialize with a short summary of each linked product."""
    data = serialize(doc)
    ids = [ObjectId(p) for p in doc.get("products", []) if ObjectId.is_valid(p)]
    products = db["product"].find({"_id": {"$in": ids}}) if ids else []
    data["products"] = [
        {
            "id": str(p["_id"]),
            "name": p.get("name"),
            "current_price": current_price(p),
            "image": (p.get("images") or [{}])[0].get("url"),
        }
        for p in products
    ]
    return data


def _load(db: Database, look_id: str) -> Dict[str, Any]:
    doc = db["lookbook"].find_one({"_id": oid(look_id)})
    if not doc:
        raise HTTPException(status_code=404, detail="Lookbook item not found")
    return doc


def _page(db: Database, query: Dict[str, Any], page: int, limit: int) -> Dict[str, Any]:
    total = db["lookbook"].count_documents(query)
    cursor = db["lookbook"].find(query).sort(ORDERING).skip(skip_for(page, limit)).limit(limit)
    return {"items": [present_look(db, d) for d in cursor], "pagination": pagination(page, limit, total)}


@router.get("")
def list_looks(
    category: Optional[LookbookCategory] = None,
    paging: Tuple[int, int] = Depends(PageParams(default_limit=12)),
    db: Database = Depends(get_db),
):
    page, limit = paging
    query: Dict[str, Any] = {"is_active": True}
    if category:
        query["category"] = category
    return ok(_page(db, query, page, limit))


@router.get("/categories")
def categories(db: Database = Depends(get_db)):
    rows = db["lookbook"].aggregate([
        {"$match": {"is_active": True}},
        {"$group": {"_id": "$category", "count": {"$sum": 1}}},
        {"$sort": {"_id": 1}},
    ])
    return ok({"categories": [{"name": r["_id"], "count": r["count"]} for r in rows]})


@router.get("/search")
def search_looks(
    q: str = Query(..., min_length=1),
    paging: Tuple[int, int] = Depends(PageParams(default_limit=12)),
    db: Database = Depends(get_db),
):
    page, limit = paging
    query = {
        "is_active": True,
        "$or": [
            {"title": {"$regex": q, "$options": "i"}},
            {"description": {"$regex": q, "$options": "i"}},
            {"tags": {"$regex": q, "$options": "i"}},
        ],
    }
    return ok(_page(db, query, page, limit))


@router.get("/category/{category}")
def looks_by_category(
    category: LookbookCategory,
    paging: Tuple[int, int] = Depends(PageParams(default_limit=12)),
    db: Database = Depends(get_db),
):
    page, limit = paging
    return ok(_page(db, {"is_active": True, "category": category}, page, limit))


@router.get("/{look_id}")
def get_look(look_id: str, db: Database = Depends(get_db)):
    return ok({"item": present_look(db, _load(db, look_id))})


@router.post("", status_code=201)
def create_look(
    payload: LookbookRequest,
    admin: Dict[str, Any] = Depends(require_admin),
    db: Database = Depends(get_db),
):
    look = Lookbook(**payload.model_dump(), created_by=str(admin["_id"]), updated_by=str(admin["_id"]))
    look_id = create_document(db, "lookbook", look)
    logger.info("Lookbook item %s created", look_id)
    return ok({"item": present_look(db, _load(db, look_id))}, "Lookbook item created successfully")


@router.put("/{look_id}")
def update_look(
    look_id: str,
    payload: LookbookUpdate,
    admin: Dict[str, Any] = Depends(require_admin),
    db: Database = Depends(get_db),
):
    doc = _load(db, look_id)
    changes = update_fields(payload)
    db["lookbook"].update_one(
        {"_id": doc["_id"]},
        {"$set": dict(changes, updated_by=str(admin["_id"]), updated_at=utcnow())},
    )
    return ok({"item": present_look(db, _load(db, look_id))}, "Lookbook item updated successfully")


@router.delete("/{look_id}")
def delete_look(look_id: str, admin: Dict[str, Any] = Depends(require_admin), db: Database = Depends(get_db)):
    doc = _load(db, look_id)
    db["lookbook"].delete_one({"_id": doc["_id"]})
    logger.info("Lookbook item %s deleted", look_id)
    return ok(message="Lookbook item deleted successfully")


@router.patch("/{look_id}/toggle")
def toggle_look(look_id: str, admin: Dict[str, Any] = Depends(require_admin), db: Database = Depends(get_db)):
    doc = _load(db, look_id)
    active = not doc.get("is_active", True)
    db["lookbook"].update_one(
        {"_id": doc["_id"]},
        {"$set": {"is_active": active, "updated_by": str(admin["_id"]), "updated_at": utcnow()}},
    )
    state = "activated" if active else "deactivated"
    return ok({"item": present_look(db, _load(db, look_id))}, f"Lookbook item {state} successfully")
