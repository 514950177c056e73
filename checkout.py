"""
Checkout: turns the user's cart into an order.

Every check runs before the first write. The writes then go in order
(reserve stock, insert order, debit coins, clear cart) and each completed
step is undone if a later one fails, so a failed checkout leaves stock,
orders and coins as they were.
"""

import logging
import math
import random
import time
from typing import Any, Dict, List, Optional, Tuple

from bson import ObjectId
from pymongo.database import Database

import carts
import coins
from database import create_document
from errors import BadRequest, InsufficientCoins, OutOfStock
from inventory import find_product, is_size_available, release_stock, reserve_stock, stock_for_size
from schemas import Order, OrderItem, Payment, ShippingAddress, StoreSettings

logger = logging.getLogger(__name__)

FREE_SHIPPING_THRESHOLD = 2000
SHIPPING_FLAT_RATE = 150
COINS_EARN_RATE = 0.01


def shipping_cost(subtotal: float) -> int:
    if subtotal > FREE_SHIPPING_THRESHOLD:
        return 0
    return SHIPPING_FLAT_RATE


def coins_earned_for(total: float) -> int:
    return math.floor(total * COINS_EARN_RATE)


def generate_order_number() -> str:
    timestamp = str(int(time.time() * 1000))[-8:]
    return f"BRL{timestamp}{random.randint(0, 999):03d}"


def _primary_image(product: Dict[str, Any]) -> Optional[str]:
    images = product.get("images") or []
    for image in images:
        if image.get("is_primary"):
            return image.get("url")
    return images[0].get("url") if images else None


def _check_lines(db: Database, cart: Dict[str, Any]) -> List[Tuple[Dict[str, Any], Dict[str, Any]]]:
    lines = []
    for item in cart["items"]:
        product = find_product(db, item["product_id"])
        if not product or not product.get("is_active", True):
            name = product.get("name") if product else "Unknown"
            raise BadRequest(f"Product {name} is no longer available")
        if not is_size_available(product, item["size"]):
            raise BadRequest(f"Size {item['size']} is not available for {product['name']}")
        stock = stock_for_size(product, item["size"])
        if stock < item["quantity"]:
            raise OutOfStock(f"Only {stock} items available in size {item['size']} for {product['name']}")
        lines.append((item, product))
    return lines


def _check_payment(method: str, amount: float, settings: StoreSettings) -> None:
    payment = settings.payment
    if method == "cod" and not payment.cod_enabled:
        raise BadRequest("Cash on delivery is currently unavailable")
    if method == "upi" and not payment.upi_enabled:
        raise BadRequest("UPI payments are currently unavailable")
    if amount < payment.min_order_amount:
        raise BadRequest(f"Minimum order amount is ₹{payment.min_order_amount:g}")
    if amount > payment.max_order_amount:
        raise BadRequest(f"Maximum order amount is ₹{payment.max_order_amount:g}")


def place_order(
    db: Database,
    user: Dict[str, Any],
    shipping_address: ShippingAddress,
    payment_method: str,
    settings: StoreSettings,
    upi_id: Optional[str] = None,
    notes: Optional[str] = None,
) -> Dict[str, Any]:
    user_id = str(user["_id"])
    cart = carts.get_or_create_cart(db, user_id)
    if not cart.get("items"):
        raise BadRequest("Cart is empty")

    lines = _check_lines(db, cart)

    subtotal = carts.subtotal(cart)
    shipping = shipping_cost(subtotal)
    total = round(carts.total(cart) + shipping, 2)
    coins_used = cart.get("coins_used", 0)

    _check_payment(payment_method, total, settings)
    fresh_user = db["user"].find_one({"_id": user["_id"]}) or user
    if coins_used > fresh_user.get("coins", 0):
        raise InsufficientCoins()

    order = Order(
        order_number=generate_order_number(),
        user_id=user_id,
        items=[
            OrderItem(
                product_id=item["product_id"],
                name=product["name"],
                image=_primary_image(product),
                size=item["size"],
                quantity=item["quantity"],
                price=item["price"],
                total=round(item["price"] * item["quantity"], 2),
            )
            for item, product in lines
        ],
        shipping_address=shipping_address,
        payment=Payment(method=payment_method, amount=total, upi_id=upi_id),
        subtotal=subtotal,
        shipping_cost=shipping,
        discount_amount=cart.get("discount_amount", 0),
        coupon_code=cart.get("coupon_code"),
        coins_used=coins_used,
        coins_discount=cart.get("coins_discount", 0),
        coins_earned=coins_earned_for(total),
        total=total,
        notes=notes,
    )

    reserved: List[Dict[str, Any]] = []
    order_id: Optional[str] = None
    try:
        for item, product in lines:
            if not reserve_stock(db, item["product_id"], item["size"], item["quantity"]):
                stock = stock_for_size(find_product(db, item["product_id"]) or {}, item["size"])
                raise OutOfStock(f"Only {stock} items available in size {item['size']} for {product['name']}")
            reserved.append(item)

        order_id = create_document(db, "order", order)
        order_doc = db["order"].find_one({"_id": ObjectId(order_id)})

        if coins_used > 0:
            coins.debit(db, user_id, coins_used, "Applied to order", order_doc)
    except Exception:
        logger.warning("Checkout failed for user %s, rolling back %d reservations", user_id, len(reserved))
        if order_id:
            db["order"].delete_one({"_id": ObjectId(order_id)})
        for item in reserved:
            release_stock(db, item["product_id"], item["size"], item["quantity"])
        raise

    carts.clear(db, cart)

    logger.info(
        "Order created %s (%s) for user %s total %s",
        order_doc["order_number"], order_id, user_id, order_doc["total"],
    )
    return order_doc
