import logging
from typing import Any, Dict, List, Optional, Tuple

from bson import ObjectId
from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from pymongo import DESCENDING
from pymongo.database import Database

import coins
from database import get_db, update_fields, utcnow
from errors import NotFound
from inventory import find_product, present_product
from responses import PageParams, ok, pagination, skip_for
from routers.admin import AdminUserUpdate, CoinAdjustment, adjust_coins, apply_user_update, page_of_users, user_detail
from routers.auth import ProfileUpdate, save_profile
from schemas import PHONE_PATTERN, Address
from security import get_current_user, present_user, require_admin

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/user", tags=["user"])


class AddressUpdate(BaseModel):
    first_name: Optional[str] = Field(None, min_length=1)
    last_name: Optional[str] = Field(None, min_length=1)
    phone: Optional[str] = Field(None, pattern=PHONE_PATTERN)
    street: Optional[str] = Field(None, min_length=1)
    city: Optional[str] = Field(None, min_length=1)
    state: Optional[str] = Field(None, min_length=1)
    zip_code: Optional[str] = Field(None, min_length=1)
    country: Optional[str] = None
    is_default: Optional[bool] = None


class WishlistRequest(BaseModel):
    product_id: str


class RedeemRequest(BaseModel):
    coins: int = Field(..., ge=1)
    description: str = Field("Coins redeemed", max_length=200)


class AddCoinsRequest(CoinAdjustment):
    user_id: str


def _save_addresses(db: Database, user: Dict[str, Any], addresses: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    # Exactly one default while the book is non-empty.
    if addresses and not any(a.get("is_default") for a in addresses):
        addresses[0]["is_default"] = True
    db["user"].update_one({"_id": user["_id"]}, {"$set": {"addresses": addresses, "updated_at": utcnow()}})
    return addresses


def _make_default(addresses: List[Dict[str, Any]], address_id: str) -> None:
    for address in addresses:
        address["is_default"] = address["id"] == address_id


@router.get("/profile")
def get_profile(user: Dict[str, Any] = Depends(get_current_user)):
    return ok({"user": present_user(user)})


@router.put("/profile")
def update_profile(
    payload: ProfileUpdate,
    user: Dict[str, Any] = Depends(get_current_user),
    db: Database = Depends(get_db),
):
    return ok({"user": present_user(save_profile(db, user, payload))}, "Profile updated successfully")


@router.get("/addresses")
def list_addresses(user: Dict[str, Any] = Depends(get_current_user)):
    return ok({"addresses": user.get("addresses", [])})


@router.post("/addresses", status_code=201)
def add_address(payload: Address, user: Dict[str, Any] = Depends(get_current_user), db: Database = Depends(get_db)):
    addresses = list(user.get("addresses", []))
    address = payload.model_dump()
    address["id"] = str(ObjectId())
    addresses.append(address)
    if address["is_default"]:
        _make_default(addresses, address["id"])
    return ok({"addresses": _save_addresses(db, user, addresses)}, "Address added successfully")


@router.put("/addresses/{address_id}")
def update_address(
    address_id: str,
    payload: AddressUpdate,
    user: Dict[str, Any] = Depends(get_current_user),
    db: Database = Depends(get_db),
):
    addresses = list(user.get("addresses", []))
    address = next((a for a in addresses if a.get("id") == address_id), None)
    if address is None:
        raise NotFound("Address not found")
    changes = update_fields(payload)
    address.update(changes)
    if changes.get("is_default"):
        _make_default(addresses, address_id)
    return ok({"addresses": _save_addresses(db, user, addresses)}, "Address updated successfully")


@router.delete("/addresses/{address_id}")
def delete_address(address_id: str, user: Dict[str, Any] = Depends(get_current_user), db: Database = Depends(get_db)):
    addresses = [a for a in user.get("addresses", []) if a.get("id") != address_id]
    if len(addresses) == len(user.get("addresses", [])):
        raise NotFound("Address not found")
    return ok({"addresses": _save_addresses(db, user, addresses)}, "Address deleted successfully")


@router.get("/wishlist")
def get_wishlist(user: Dict[str, Any] = Depends(get_current_user), db: Database = Depends(get_db)):
    ids = [ObjectId(pid) for pid in user.get("wishlist", []) if ObjectId.is_valid(pid)]
    products = db["product"].find({"_id": {"$in": ids}, "is_active": True}) if ids else []
    return ok({"wishlist": [present_product(p) for p in products]})


@router.post("/wishlist")
def add_to_wishlist(
    payload: WishlistRequest,
    user: Dict[str, Any] = Depends(get_current_user),
    db: Database = Depends(get_db),
):
    if not find_product(db, payload.product_id):
        raise NotFound("Product not found")
    db["user"].update_one({"_id": user["_id"]}, {"$addToSet": {"wishlist": payload.product_id}})
    return ok(message="Product added to wishlist")


@router.delete("/wishlist/{product_id}")
def remove_from_wishlist(
    product_id: str,
    user: Dict[str, Any] = Depends(get_current_user),
    db: Database = Depends(get_db),
):
    db["user"].update_one({"_id": user["_id"]}, {"$pull": {"wishlist": product_id}})
    return ok(message="Product removed from wishlist")


@router.get("/coins")
def get_coins(user: Dict[str, Any] = Depends(get_current_user)):
    return ok({"coins": user.get("coins", 0)})


@router.get("/coins/transactions")
def coin_transactions(
    paging: Tuple[int, int] = Depends(PageParams(default_limit=20)),
    user: Dict[str, Any] = Depends(get_current_user),
    db: Database = Depends(get_db),
):
    page, limit = paging
    query = {"user_id": str(user["_id"])}
    total = db["cointransaction"].count_documents(query)
    cursor = (
        db["cointransaction"].find(query).sort("created_at", DESCENDING).skip(skip_for(page, limit)).limit(limit)
    )
    return ok({
        "transactions": [coins.present_transaction(doc) for doc in cursor],
        "pagination": pagination(page, limit, total),
    })


@router.post("/coins/redeem")
def redeem_coins(
    payload: RedeemRequest,
    user: Dict[str, Any] = Depends(get_current_user),
    db: Database = Depends(get_db),
):
    entry = coins.debit(db, str(user["_id"]), payload.coins, payload.description)
    return ok({"transaction": entry, "coins": entry["balance_after"]}, "Coins redeemed successfully")


@router.post("/coins/welcome")
def welcome_coins(user: Dict[str, Any] = Depends(get_current_user), db: Database = Depends(get_db)):
    entry = coins.grant_welcome_bonus(db, str(user["_id"]))
    return ok({"transaction": entry, "coins": entry["balance_after"]}, "Welcome coins added successfully")


@router.post("/coins/add")
def add_coins(
    payload: AddCoinsRequest,
    admin: Dict[str, Any] = Depends(require_admin),
    db: Database = Depends(get_db),
):
    entry = adjust_coins(db, payload.user_id, payload, admin)
    return ok({"transaction": entry, "coins": entry["balance_after"]}, "Coins updated successfully")


@router.get("/admin/all")
def all_users(
    search: Optional[str] = None,
    paging: Tuple[int, int] = Depends(PageParams(default_limit=20)),
    admin: Dict[str, Any] = Depends(require_admin),
    db: Database = Depends(get_db),
):
    page, limit = paging
    return ok(page_of_users(db, page, limit, search=search))


@router.get("/admin/{user_id}")
def get_user(user_id: str, admin: Dict[str, Any] = Depends(require_admin), db: Database = Depends(get_db)):
    return ok({"user": user_detail(db, user_id)})


@router.put("/admin/{user_id}")
def update_user(
    user_id: str,
    payload: AdminUserUpdate,
    admin: Dict[str, Any] = Depends(require_admin),
    db: Database = Depends(get_db),
):
    return ok({"user": apply_user_update(db, user_id, payload)}, "User updated successfully")
