import logging
from typing import Any, Dict, List, Literal, Optional, Tuple

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, Field
from pymongo import ASCENDING, DESCENDING
from pymongo.database import Database

from database import create_document, get_db, oid, update_fields, utcnow
from inventory import generate_sku, present_product
from responses import PageParams, ok, pagination, skip_for
from schemas import Category, Fit, Product, ProductImage, ProductSize
from security import require_admin

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/products", tags=["products"])

SortKey = Literal["newest", "price_asc", "price_desc", "rating", "popularity"]

SORTS: Dict[str, List[Tuple[str, int]]] = {
    "newest": [("created_at", DESCENDING)],
    "price_asc": [("base_price", ASCENDING)],
    "price_desc": [("base_price", DESCENDING)],
    "rating": [("rating", DESCENDING), ("review_count", DESCENDING)],
    "popularity": [("total_sold", DESCENDING)],
}


class ProductUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=3, max_length=100)
    description: Optional[str] = Field(None, max_length=1000)
    category: Optional[Category] = None
    subcategory: Optional[str] = None
    brand: Optional[str] = None
    images: Optional[List[ProductImage]] = None
    sizes: Optional[List[ProductSize]] = None
    base_price: Optional[float] = Field(None, ge=0)
    sale_price: Optional[float] = Field(None, ge=0)
    fabric: Optional[str] = None
    gsm: Optional[str] = None
    fit: Optional[Fit] = None
    wash_care: Optional[str] = None
    tags: Optional[List[str]] = None
    is_active: Optional[bool] = None
    is_featured: Optional[bool] = None


# Optional on the stored product, so an explicit null removes the value.
CLEARABLE_FIELDS = ("sale_price",)


def search_filter(q: str) -> Dict[str, Any]:
    return {"$or": [
        {"name": {"$regex": q, "$options": "i"}},
        {"description": {"$regex": q, "$options": "i"}},
        {"tags": {"$regex": q, "$options": "i"}},
    ]}


def price_filter(min_price: Optional[float], max_price: Optional[float]) -> Dict[str, Any]:
    """Match on the effective price: sale price when set, else base price."""
    bounds: Dict[str, float] = {}
    if min_price is not None:
        bounds["$gte"] = min_price
    if max_price is not None:
        bounds["$lte"] = max_price
    return {"$or": [
        {"sale_price": dict(bounds, **{"$gt": 0})},
        {"sale_price": {"$in": [None, 0]}, "base_price": bounds},
    ]}


def combine(conditions: List[Dict[str, Any]]) -> Dict[str, Any]:
    if not conditions:
        return {}
    if len(conditions) == 1:
        return conditions[0]
    return {"$and": conditions}


def page_of_products(
    db: Database, query: Dict[str, Any], page: int, limit: int, sort: str = "newest"
) -> Dict[str, Any]:
    total = db["product"].count_documents(query)
    cursor = db["product"].find(query).sort(SORTS[sort]).skip(skip_for(page, limit)).limit(limit)
    return {
        "products": [present_product(doc) for doc in cursor],
        "pagination": pagination(page, limit, total),
    }


def load_product(db: Database, product_id: str, active_only: bool = True) -> Dict[str, Any]:
    doc = db["product"].find_one({"_id": oid(product_id)})
    if not doc or (active_only and not doc.get("is_active", True)):
        raise HTTPException(status_code=404, detail="Product not found")
    return doc


def create_product(db: Database, payload: Product) -> Dict[str, Any]:
    data = payload.model_dump()
    data.update(rating=0, review_count=0, total_sold=0, stock_version=0)
    if not data.get("sku"):
        data["sku"] = generate_sku(data["category"], data["name"])
    product_id = create_document(db, "product", data)
    logger.info("Created product %s (%s)", product_id, data["sku"])
    return db["product"].find_one({"_id": oid(product_id)})


def update_product(db: Database, product_id: str, payload: ProductUpdate) -> Dict[str, Any]:
    load_product(db, product_id, active_only=False)
    changes = update_fields(payload, nullable=CLEARABLE_FIELDS)
    update: Dict[str, Any] = {"$set": dict(changes, updated_at=utcnow())}
    if "sizes" in changes:
        # Invalidates any stock write that read the old sizes.
        update["$inc"] = {"stock_version": 1}
    db["product"].update_one({"_id": oid(product_id)}, update)
    logger.info("Updated product %s fields %s", product_id, sorted(changes))
    return db["product"].find_one({"_id": oid(product_id)})


def deactivate_product(db: Database, product_id: str) -> None:
    load_product(db, product_id, active_only=False)
    db["product"].update_one({"_id": oid(product_id)}, {"$set": {"is_active": False, "updated_at": utcnow()}})
    logger.info("Deactivated product %s", product_id)


@router.get("")
def list_products(
    category: Optional[Category] = None,
    min_price: Optional[float] = Query(None, ge=0),
    max_price: Optional[float] = Query(None, ge=0),
    size: Optional[str] = None,
    featured: Optional[bool] = None,
    search: Optional[str] = None,
    sort: SortKey = "newest",
    paging: Tuple[int, int] = Depends(PageParams(default_limit=12)),
    db: Database = Depends(get_db),
):
    page, limit = paging
    conditions: List[Dict[str, Any]] = [{"is_active": True}]
    if category:
        conditions.append({"category": category})
    if featured is not None:
        conditions.append({"is_featured": featured})
    if size:
        conditions.append({"sizes": {"$elemMatch": {"size": size, "stock": {"$gt": 0}}}})
    if min_price is not None or max_price is not None:
        conditions.append(price_filter(min_price, max_price))
    if search:
        conditions.append(search_filter(search))
    return ok(page_of_products(db, combine(conditions), page, limit, sort))


@router.get("/featured")
def featured_products(limit: int = Query(8, ge=1, le=50), db: Database = Depends(get_db)):
    cursor = db["product"].find({"is_active": True, "is_featured": True}).sort("created_at", DESCENDING).limit(limit)
    return ok({"products": [present_product(doc) for doc in cursor]})


@router.get("/bestsellers")
def bestsellers(limit: int = Query(8, ge=1, le=50), db: Database = Depends(get_db)):
    cursor = db["product"].find({"is_active": True}).sort("total_sold", DESCENDING).limit(limit)
    return ok({"products": [present_product(doc) for doc in cursor]})


@router.get("/category/{category}")
def products_by_category(
    category: Category,
    sort: SortKey = "newest",
    paging: Tuple[int, int] = Depends(PageParams(default_limit=12)),
    db: Database = Depends(get_db),
):
    page, limit = paging
    return ok(page_of_products(db, {"is_active": True, "category": category}, page, limit, sort))


@router.get("/search")
def search_products(
    q: str = Query(..., min_length=2),
    paging: Tuple[int, int] = Depends(PageParams(default_limit=12)),
    db: Database = Depends(get_db),
):
    page, limit = paging
    query = combine([{"is_active": True}, search_filter(q)])
    return ok(page_of_products(db, query, page, limit))


@router.get("/categories/stats")
def category_stats(db: Database = Depends(get_db)):
    stats = db["product"].aggregate([
        {"$match": {"is_active": True}},
        {"$group": {
            "_id": "$category",
            "count": {"$sum": 1},
            "avg_price": {"$avg": "$base_price"},
            "total_sold": {"$sum": "$total_sold"},
        }},
        {"$sort": {"count": -1}},
    ])
    return ok({"categories": [
        {
            "category": s["_id"],
            "count": s["count"],
            "avg_price": round(s["avg_price"] or 0, 2),
            "total_sold": s["total_sold"],
        }
        for s in stats
    ]})


@router.get("/{product_id}")
def get_product(product_id: str, db: Database = Depends(get_db)):
    return ok({"product": present_product(load_product(db, product_id))})


@router.get("/{product_id}/related")
def related_products(product_id: str, limit: int = Query(4, ge=1, le=20), db: Database = Depends(get_db)):
    product = load_product(db, product_id)
    cursor = db["product"].find({
        "_id": {"$ne": product["_id"]},
        "category": product["category"],
        "is_active": True,
    }).sort("total_sold", DESCENDING).limit(limit)
    return ok({"products": [present_product(doc) for doc in cursor]})


@router.post("", status_code=201)
def create(payload: Product, db: Database = Depends(get_db), admin: Dict[str, Any] = Depends(require_admin)):
    return ok({"product": present_product(create_product(db, payload))}, "Product created successfully")


@router.put("/{product_id}")
def update(
    product_id: str,
    payload: ProductUpdate,
    db: Database = Depends(get_db),
    admin: Dict[str, Any] = Depends(require_admin),
):
    return ok({"product": present_product(update_product(db, product_id, payload))}, "Product updated successfully")


@router.delete("/{product_id}")
def delete(product_id: str, db: Database = Depends(get_db), admin: Dict[str, Any] = Depends(require_admin)):
    deactivate_product(db, product_id)
    return ok(message="Product deleted successfully")
