"""Product review aggregation."""

import logging
from typing import Any, Dict

from bson import ObjectId
from pymongo.database import Database

from database import utcnow

logger = logging.getLogger(__name__)


def recompute_rating(db: Database, product_id: str) -> Dict[str, Any]:
    """Re-average every review of the product and store rating/review_count."""
    ratings = [r["rating"] for r in db["review"].find({"product_id": product_id}, {"rating": 1})]
    if ratings:
        rating = round(sum(ratings) / len(ratings), 1)
    else:
        rating = 0
    db["product"].update_one(
        {"_id": ObjectId(product_id)},
        {"$set": {"rating": rating, "review_count": len(ratings), "updated_at": utcnow()}},
    )
    logger.debug("Product %s rating now %s over %d reviews", product_id, rating, len(ratings))
    return {"rating": rating, "review_count": len(ratings)}


def rating_distribution(db: Database, product_id: str) -> Dict[str, Dict[str, int]]:
    counts = {stat["_id"]: stat["count"] for stat in db["review"].aggregate([
        {"$match": {"product_id": product_id}},
        {"$group": {"_id": "$rating", "count": {"$sum": 1}}},
    ])}
    total = sum(counts.values())
    distribution = {}
    for star in range(5, 0, -1):
        count = counts.get(star, 0)
        distribution[str(star)] = {
            "count": count,
            "percentage": round(count / total * 100) if total else 0,
        }
    return distribution
