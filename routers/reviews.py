import logging
from typing import Any, Dict, Optional, Tuple

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field
from pymongo import DESCENDING
from pymongo.database import Database

import reviews
from database import create_document, get_db, oid, serialize, utcnow
from errors import Forbidden
from inventory import present_product
from responses import PageParams, ok, pagination, skip_for
from routers.admin import user_names
from routers.products import load_product
from schemas import Review
from security import get_current_user

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/reviews", tags=["reviews"])


class ReviewRequest(BaseModel):
    rating: int = Field(..., ge=1, le=5)
    comment: str = Field(..., min_length=1, max_length=500)


class ReviewUpdate(BaseModel):
    rating: Optional[int] = Field(None, ge=1, le=5)
    comment: Optional[str] = Field(None, min_length=1, max_length=500)


def _load_review(db: Database, review_id: str) -> Dict[str, Any]:
    doc = db["review"].find_one({"_id": oid(review_id)})
    if not doc:
        raise HTTPException(status_code=404, detail="Review not found")
    return doc


def _has_bought(db: Database, user_id: str, product_id: str) -> bool:
    return db["order"].count_documents(
        {"user_id": user_id, "status": "delivered", "items.product_id": product_id}
    ) > 0


def _page_of_reviews(db: Database, product_id: str, page: int, limit: int) -> Dict[str, Any]:
    query = {"product_id": product_id, "reported": {"$ne": True}}
    total = db["review"].count_documents(query)
    docs = list(db["review"].find(query).sort("created_at", DESCENDING).skip(skip_for(page, limit)).limit(limit))
    authors = user_names(db, [d["user_id"] for d in docs])
    items = []
    for doc in docs:
        item = serialize(doc)
        author = authors.get(doc["user_id"])
        item["user_name"] = author["name"] if author else "Anonymous"
        items.append(item)
    return {"reviews": items, "pagination": pagination(page, limit, total)}


@router.get("/product/{product_id}")
def product_reviews(
    product_id: str,
    paging: Tuple[int, int] = Depends(PageParams(default_limit=10)),
    db: Database = Depends(get_db),
):
    page, limit = paging
    return ok(_page_of_reviews(db, product_id, page, limit))


@router.get("/product/{product_id}/with-reviews")
def product_with_reviews(
    product_id: str,
    paging: Tuple[int, int] = Depends(PageParams(default_limit=10)),
    db: Database = Depends(get_db),
):
    """The product page in one call: the product and its newest reviews."""
    page, limit = paging
    product = load_product(db, product_id)
    return ok(dict(_page_of_reviews(db, product_id, page, limit), product=present_product(product)))


@router.get("/product/{product_id}/stats")
def review_stats(product_id: str, db: Database = Depends(get_db)):
    product = load_product(db, product_id, active_only=False)
    return ok({
        "average_rating": product.get("rating", 0),
        "total_reviews": product.get("review_count", 0),
        "distribution": reviews.rating_distribution(db, product_id),
    })


@router.post("/product/{product_id}", status_code=201)
def create_review(
    product_id: str,
    payload: ReviewRequest,
    user: Dict[str, Any] = Depends(get_current_user),
    db: Database = Depends(get_db),
):
    load_product(db, product_id)
    user_id = str(user["_id"])
    review = Review(
        user_id=user_id,
        product_id=product_id,
        rating=payload.rating,
        comment=payload.comment,
        is_verified=_has_bought(db, user_id, product_id),
    )
    review_id = create_document(db, "review", review)
    summary = reviews.recompute_rating(db, product_id)
    logger.info("User %s reviewed product %s (%s stars)", user_id, product_id, payload.rating)
    return ok(
        {"review": serialize(_load_review(db, review_id)), "product": summary},
        "Review added successfully",
    )


@router.get("/product/{product_id}/user")
def my_reviews(product_id: str, user: Dict[str, Any] = Depends(get_current_user), db: Database = Depends(get_db)):
    docs = db["review"].find({"product_id": product_id, "user_id": str(user["_id"])}).sort("created_at", DESCENDING)
    return ok({"reviews": [serialize(d) for d in docs]})


@router.put("/{review_id}")
def update_review(
    review_id: str,
    payload: ReviewUpdate,
    user: Dict[str, Any] = Depends(get_current_user),
    db: Database = Depends(get_db),
):
    review = _load_review(db, review_id)
    if review["user_id"] != str(user["_id"]):
        raise Forbidden("You can only update your own reviews")
    changes = payload.model_dump(exclude_unset=True, exclude_none=True)
    if changes:
        db["review"].update_one({"_id": review["_id"]}, {"$set": dict(changes, updated_at=utcnow())})
    summary = reviews.recompute_rating(db, review["product_id"])
    return ok(
        {"review": serialize(_load_review(db, review_id)), "product": summary},
        "Review updated successfully",
    )


@router.delete("/{review_id}")
def delete_review(review_id: str, user: Dict[str, Any] = Depends(get_current_user), db: Database = Depends(get_db)):
    review = _load_review(db, review_id)
    if review["user_id"] != str(user["_id"]) and user.get("role") != "admin":
        raise Forbidden("You can only delete your own reviews")
    db["review"].delete_one({"_id": review["_id"]})
    summary = reviews.recompute_rating(db, review["product_id"])
    return ok({"product": summary}, "Review deleted successfully")
