"""
Shopping cart, one per user.

Totals are derived on read. Coupon and coins discounts are re-derived from
the current subtotal after every item change so a discount computed for an
earlier cart never outlives it.
"""

import logging
import math
from typing import Any, Dict, List, Optional

from bson import ObjectId
from pymongo.database import Database

from database import create_document, serialize, utcnow
from errors import BadRequest, InsufficientCoins, NotFound
from inventory import current_price
from schemas import Cart

logger = logging.getLogger(__name__)

MAX_LINE_QUANTITY = 10

COUPONS: Dict[str, Dict[str, Any]] = {
    "WELCOME10": {"discount": 10, "min_amount": 1000},
    "SAVE20": {"discount": 20, "min_amount": 2000},
    "FREESHIP": {"discount": 0, "min_amount": 1500, "free_shipping": True},
}


def get_or_create_cart(db: Database, user_id: str) -> Dict[str, Any]:
    cart = db["cart"].find_one({"user_id": user_id})
    if cart is None:
        create_document(db, "cart", Cart(user_id=user_id))
        cart = db["cart"].find_one({"user_id": user_id})
    return cart


def subtotal(cart: Dict[str, Any]) -> float:
    return round(sum(i["price"] * i["quantity"] for i in cart.get("items", [])), 2)


def item_count(cart: Dict[str, Any]) -> int:
    return sum(i["quantity"] for i in cart.get("items", []))


def total(cart: Dict[str, Any]) -> float:
    discounts = cart.get("discount_amount", 0) + cart.get("coins_discount", 0)
    return round(max(0, subtotal(cart) - discounts), 2)


def coupon_rule(code: Optional[str]) -> Optional[Dict[str, Any]]:
    if not code:
        return None
    return COUPONS.get(code.strip().upper())


def has_free_shipping(cart: Dict[str, Any]) -> bool:
    rule = coupon_rule(cart.get("coupon_code"))
    return bool(rule and rule.get("free_shipping"))


def _coupon_discount(rule: Dict[str, Any], amount: float) -> float:
    return round(amount * rule["discount"] / 100, 2) if rule["discount"] > 0 else 0


def _rederive_discounts(cart: Dict[str, Any]) -> None:
    amount = subtotal(cart)
    rule = coupon_rule(cart.get("coupon_code"))
    if rule is None or amount < rule["min_amount"]:
        if cart.get("coupon_code"):
            logger.info("Dropping coupon %s from cart of user %s", cart["coupon_code"], cart["user_id"])
        cart["coupon_code"] = None
        cart["discount_amount"] = 0
    else:
        cart["discount_amount"] = _coupon_discount(rule, amount)
    coins_used = min(cart.get("coins_used", 0), math.floor(amount))
    cart["coins_used"] = coins_used
    cart["coins_discount"] = coins_used


def _save(db: Database, cart: Dict[str, Any]) -> Dict[str, Any]:
    now = utcnow()
    db["cart"].update_one(
        {"_id": cart["_id"]},
        {
            "$set": {
                "items": cart["items"],
                "coupon_code": cart.get("coupon_code"),
                "discount_amount": cart.get("discount_amount", 0),
                "coins_used": cart.get("coins_used", 0),
                "coins_discount": cart.get("coins_discount", 0),
                "last_updated": now,
                "updated_at": now,
            }
        },
    )
    return db["cart"].find_one({"_id": cart["_id"]})


def _find_line(cart: Dict[str, Any], product_id: str, size: str) -> Optional[Dict[str, Any]]:
    for item in cart["items"]:
        if item["product_id"] == product_id and item["size"] == size:
            return item
    return None


def add_item(db: Database, cart: Dict[str, Any], product_id: str, size: str, quantity: int, price: float) -> Dict[str, Any]:
    line = _find_line(cart, product_id, size)
    if line:
        line["quantity"] = min(MAX_LINE_QUANTITY, line["quantity"] + quantity)
        line["price"] = price
    else:
        cart["items"].append(
            {"product_id": product_id, "size": size, "quantity": min(MAX_LINE_QUANTITY, quantity), "price": price}
        )
    _rederive_discounts(cart)
    return _save(db, cart)


def update_item_quantity(db: Database, cart: Dict[str, Any], product_id: str, size: str, quantity: int) -> Dict[str, Any]:
    line = _find_line(cart, product_id, size)
    if line is None:
        raise NotFound("Item not found in cart")
    if quantity <= 0:
        cart["items"] = [i for i in cart["items"] if i is not line]
    else:
        line["quantity"] = min(MAX_LINE_QUANTITY, quantity)
    _rederive_discounts(cart)
    return _save(db, cart)


def remove_item(db: Database, cart: Dict[str, Any], product_id: str, size: str) -> Dict[str, Any]:
    cart["items"] = [
        i for i in cart["items"] if not (i["product_id"] == product_id and i["size"] == size)
    ]
    _rederive_discounts(cart)
    return _save(db, cart)


def clear(db: Database, cart: Dict[str, Any]) -> Dict[str, Any]:
    cart["items"] = []
    cart["coupon_code"] = None
    cart["discount_amount"] = 0
    cart["coins_used"] = 0
    cart["coins_discount"] = 0
    return _save(db, cart)


def apply_coupon(db: Database, cart: Dict[str, Any], code: str) -> Dict[str, Any]:
    normalized = code.strip().upper()
    rule = COUPONS.get(normalized)
    if rule is None:
        raise BadRequest("Invalid coupon code")
    amount = subtotal(cart)
    if amount < rule["min_amount"]:
        raise BadRequest(f"Minimum order amount of ₹{rule['min_amount']} required for this coupon")
    cart["coupon_code"] = normalized
    cart["discount_amount"] = _coupon_discount(rule, amount)
    return _save(db, cart)


def remove_coupon(db: Database, cart: Dict[str, Any]) -> Dict[str, Any]:
    cart["coupon_code"] = None
    cart["discount_amount"] = 0
    return _save(db, cart)


def apply_coins(db: Database, cart: Dict[str, Any], user: Dict[str, Any], coins: int) -> Dict[str, Any]:
    """1 coin = 1 INR. Coins beyond the subtotal are not taken."""
    if coins < 0:
        raise BadRequest("Invalid coins amount")
    if coins == 0:
        return remove_coins(db, cart)
    if user.get("coins", 0) < coins:
        raise InsufficientCoins()
    usable = min(coins, math.floor(subtotal(cart)))
    cart["coins_used"] = usable
    cart["coins_discount"] = usable
    return _save(db, cart)


def remove_coins(db: Database, cart: Dict[str, Any]) -> Dict[str, Any]:
    cart["coins_used"] = 0
    cart["coins_discount"] = 0
    return _save(db, cart)


def present_cart(db: Database, cart: Dict[str, Any]) -> Dict[str, Any]:
    """Serialize with derived totals and a product summary on each line."""
    product_ids: List[ObjectId] = []
    for item in cart.get("items", []):
        if ObjectId.is_valid(item["product_id"]):
            product_ids.append(ObjectId(item["product_id"]))
    products = {
        str(p["_id"]): p for p in db["product"].find({"_id": {"$in": product_ids}})
    } if product_ids else {}

    data = serialize(cart)
    for item in data["items"]:
        product = products.get(item["product_id"])
        if product:
            images = product.get("images") or []
            primary = next((img for img in images if img.get("is_primary")), images[0] if images else None)
            item["product"] = {
                "id": item["product_id"],
                "name": product.get("name"),
                "image": primary.get("url") if primary else None,
                "current_price": current_price(product),
                "is_active": product.get("is_active", True),
            }
        else:
            item["product"] = None
    data["subtotal"] = subtotal(cart)
    data["item_count"] = item_count(cart)
    data["total"] = total(cart)
    data["free_shipping"] = has_free_shipping(cart)
    return data
