from typing import Any, Dict

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from pymongo.database import Database

import carts
from database import get_db
from errors import BadRequest, NotFound
from inventory import current_price, find_product, is_size_available, stock_for_size
from responses import ok
from schemas import Size
from security import get_current_user

router = APIRouter(prefix="/cart", tags=["cart"])


class CartItemRequest(BaseModel):
    product_id: str
    size: Size
    quantity: int = Field(1, ge=1, le=carts.MAX_LINE_QUANTITY)


class CartItemUpdate(BaseModel):
    size: Size
    quantity: int = Field(..., ge=0, le=carts.MAX_LINE_QUANTITY)


class CouponRequest(BaseModel):
    code: str = Field(..., min_length=1)


class CoinsRequest(BaseModel):
    coins: int


def _user_cart(db: Database, user: Dict[str, Any]) -> Dict[str, Any]:
    return carts.get_or_create_cart(db, str(user["_id"]))


@router.get("")
def get_cart(user: Dict[str, Any] = Depends(get_current_user), db: Database = Depends(get_db)):
    return ok({"cart": carts.present_cart(db, _user_cart(db, user))})


@router.post("")
def add_to_cart(
    payload: CartItemRequest,
    user: Dict[str, Any] = Depends(get_current_user),
    db: Database = Depends(get_db),
):
    product = find_product(db, payload.product_id)
    if not product:
        raise NotFound("Product not found")
    if not product.get("is_active", True):
        raise BadRequest("Product is not available")
    if not is_size_available(product, payload.size):
        raise BadRequest(f"Size {payload.size} is not available")
    stock = stock_for_size(product, payload.size)
    if stock < payload.quantity:
        raise BadRequest(f"Only {stock} items available in size {payload.size}")
    cart = carts.add_item(
        db, _user_cart(db, user), payload.product_id, payload.size, payload.quantity, current_price(product)
    )
    return ok({"cart": carts.present_cart(db, cart)}, "Item added to cart")


@router.delete("")
def clear_cart(user: Dict[str, Any] = Depends(get_current_user), db: Database = Depends(get_db)):
    cart = carts.clear(db, _user_cart(db, user))
    return ok({"cart": carts.present_cart(db, cart)}, "Cart cleared")


@router.post("/coupon")
def apply_coupon(
    payload: CouponRequest,
    user: Dict[str, Any] = Depends(get_current_user),
    db: Database = Depends(get_db),
):
    cart = carts.apply_coupon(db, _user_cart(db, user), payload.code)
    return ok({"cart": carts.present_cart(db, cart)}, "Coupon applied successfully")


@router.delete("/coupon")
def remove_coupon(user: Dict[str, Any] = Depends(get_current_user), db: Database = Depends(get_db)):
    cart = carts.remove_coupon(db, _user_cart(db, user))
    return ok({"cart": carts.present_cart(db, cart)}, "Coupon removed")


@router.post("/coins")
def apply_coins(
    payload: CoinsRequest,
    user: Dict[str, Any] = Depends(get_current_user),
    db: Database = Depends(get_db),
):
    cart = carts.apply_coins(db, _user_cart(db, user), user, payload.coins)
    return ok({"cart": carts.present_cart(db, cart)}, "Coins applied successfully")


@router.delete("/coins")
def remove_coins(user: Dict[str, Any] = Depends(get_current_user), db: Database = Depends(get_db)):
    cart = carts.remove_coins(db, _user_cart(db, user))
    return ok({"cart": carts.present_cart(db, cart)}, "Coins discount removed")


@router.put("/{product_id}")
def update_cart_item(
    product_id: str,
    payload: CartItemUpdate,
    user: Dict[str, Any] = Depends(get_current_user),
    db: Database = Depends(get_db),
):
    cart = _user_cart(db, user)
    product = find_product(db, product_id)
    if product and payload.quantity > 0:
        stock = stock_for_size(product, payload.size)
        if stock < payload.quantity:
            raise BadRequest(f"Only {stock} items available in size {payload.size}")
    cart = carts.update_item_quantity(db, cart, product_id, payload.size, payload.quantity)
    return ok({"cart": carts.present_cart(db, cart)}, "Cart updated")


@router.delete("/{product_id}")
def remove_from_cart(
    product_id: str,
    size: Size,
    user: Dict[str, Any] = Depends(get_current_user),
    db: Database = Depends(get_db),
):
    cart = carts.remove_item(db, _user_cart(db, user), product_id, size)
    return ok({"cart": carts.present_cart(db, cart)}, "Item removed from cart")
