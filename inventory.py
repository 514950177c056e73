"""
Product pricing and per-size stock.

Stock writes are compare-and-set on `stock_version`: a writer reads the
product, computes the new `sizes` list and only wins if nobody else bumped
the version in between. Losers re-read and retry.
"""

import logging
import time
from typing import Any, Dict, List, Optional

from bson import ObjectId
from pymongo.database import Database

from database import serialize, utcnow

logger = logging.getLogger(__name__)

MAX_STOCK_RETRIES = 5


def current_price(product: Dict[str, Any]) -> float:
    return product.get("sale_price") or product.get("base_price", 0)


def discount_percentage(product: Dict[str, Any]) -> int:
    base = product.get("base_price") or 0
    sale = product.get("sale_price")
    if not sale or not base or sale >= base:
        return 0
    return round((base - sale) / base * 100)


def size_entry(product: Dict[str, Any], size: str) -> Optional[Dict[str, Any]]:
    for entry in product.get("sizes", []):
        if entry.get("size") == size:
            return entry
    return None


def stock_for_size(product: Dict[str, Any], size: str) -> int:
    entry = size_entry(product, size)
    return entry.get("stock", 0) if entry else 0


def is_size_available(product: Dict[str, Any], size: str) -> bool:
    return stock_for_size(product, size) > 0


def available_sizes(product: Dict[str, Any]) -> List[str]:
    return [s["size"] for s in product.get("sizes", []) if s.get("stock", 0) > 0]


def total_stock(product: Dict[str, Any]) -> int:
    return sum(s.get("stock", 0) for s in product.get("sizes", []))


def present_product(product: Dict[str, Any]) -> Dict[str, Any]:
    """Serialize a product document with its derived fields."""
    data = serialize(product)
    data.pop("stock_version", None)
    data["current_price"] = current_price(product)
    data["discount_percentage"] = discount_percentage(product)
    data["total_stock"] = total_stock(product)
    data["is_in_stock"] = data["total_stock"] > 0
    data["available_sizes"] = available_sizes(product)
    return data


def generate_sku(category: str, name: str) -> str:
    timestamp = str(int(time.time() * 1000))[-6:]
    return f"{category[:3].upper()}{name[:3].upper()}{timestamp}"


def find_product(db: Database, product_id: str) -> Optional[Dict[str, Any]]:
    try:
        _id = ObjectId(product_id)
    except Exception:
        return None
    return db["product"].find_one({"_id": _id})


def _version_filter(product: Dict[str, Any]) -> Dict[str, Any]:
    if "stock_version" in product:
        return {"_id": product["_id"], "stock_version": product["stock_version"]}
    return {"_id": product["_id"], "stock_version": {"$exists": False}}


def _adjust_stock(db: Database, product_id: str, size: str, delta: int) -> bool:
    """Apply `delta` to one size's stock. Returns False if the size is missing
    or the result would be negative."""
    for _ in range(MAX_STOCK_RETRIES):
        product = find_product(db, product_id)
        if not product or size_entry(product, size) is None:
            return False
        if stock_for_size(product, size) + delta < 0:
            return False
        sizes = [
            dict(s, stock=s.get("stock", 0) + delta) if s.get("size") == size else s
            for s in product.get("sizes", [])
        ]
        total_sold = max(0, product.get("total_sold", 0) - delta)
        result = db["product"].update_one(
            _version_filter(product),
            {
                "$set": {"sizes": sizes, "total_sold": total_sold, "updated_at": utcnow()},
                "$inc": {"stock_version": 1},
            },
        )
        if result.matched_count:
            return True
        logger.debug("Stock write lost race for product %s size %s, retrying", product_id, size)
    logger.warning("Gave up adjusting stock for product %s size %s", product_id, size)
    return False


def reserve_stock(db: Database, product_id: str, size: str, quantity: int) -> bool:
    """Take `quantity` units of `size` out of stock and count them as sold."""
    return _adjust_stock(db, product_id, size, -quantity)


def release_stock(db: Database, product_id: str, size: str, quantity: int) -> bool:
    """Put `quantity` units back, e.g. when an order is cancelled."""
    released = _adjust_stock(db, product_id, size, quantity)
    if not released:
        logger.warning("Could not restore %s x %s for product %s", quantity, size, product_id)
    return released
