"""
Back-office endpoints. Every route requires an admin bearer token.

Statistics are computed with simple $group pipelines plus a little Python
for day bucketing, so they run the same against a real server and an
in-memory one.
"""

import logging
from collections import defaultdict
from datetime import datetime, timedelta
from typing import Any, Dict, List, Literal, Optional, Tuple

from bson import ObjectId
from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Query
from pydantic import BaseModel, Field
from pymongo import DESCENDING
from pymongo.database import Database

import coins
from database import get_db, oid, update_fields, utcnow
from errors import BadRequest
from inventory import present_product
from responses import PageParams, ok, pagination, skip_for
from routers.orders import (
    StatusUpdate,
    admin_order_query,
    change_status,
    load_order,
    page_of_orders,
    present_order,
)
from routers.products import (
    ProductUpdate,
    combine,
    create_product,
    deactivate_product,
    load_product,
    search_filter,
    update_product,
)
from schemas import Category, OrderStatus, PaymentStatus, Product, StoreSettings
from security import present_user, require_admin
from settings_store import get_store_settings

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin", tags=["admin"], dependencies=[Depends(require_admin)])

TimeRange = Literal["7d", "30d", "90d", "1y"]
RANGE_DAYS = {"7d": 7, "30d": 30, "90d": 90, "1y": 365}


class AdminUserUpdate(BaseModel):
    first_name: Optional[str] = Field(None, min_length=1, max_length=50)
    last_name: Optional[str] = Field(None, min_length=1, max_length=50)
    phone: Optional[str] = None
    role: Optional[Literal["user", "admin"]] = None
    is_active: Optional[bool] = None
    email_verified: Optional[bool] = None


class CoinAdjustment(BaseModel):
    amount: int = Field(..., ge=1)
    action: Literal["add", "remove"] = "add"
    reason: Optional[str] = Field(None, max_length=200)


class PaymentUpdate(BaseModel):
    status: PaymentStatus
    transaction_id: Optional[str] = None


def _naive(dt: datetime) -> datetime:
    # Stored datetimes come back naive UTC.
    return dt.replace(tzinfo=None)


def user_names(db: Database, user_ids: List[str]) -> Dict[str, Dict[str, Any]]:
    ids = [ObjectId(u) for u in set(user_ids) if ObjectId.is_valid(u)]
    if not ids:
        return {}
    return {
        str(u["_id"]): {
            "name": f"{u.get('first_name', '')} {u.get('last_name', '')}".strip(),
            "email": u.get("email"),
        }
        for u in db["user"].find({"_id": {"$in": ids}}, {"first_name": 1, "last_name": 1, "email": 1})
    }


def _load_user(db: Database, user_id: str) -> Dict[str, Any]:
    user = db["user"].find_one({"_id": oid(user_id)})
    if not user:
        raise HTTPException(status_code=404, detail="User not found")
    return user


def page_of_users(
    db: Database,
    page: int,
    limit: int,
    search: Optional[str] = None,
    role: Optional[str] = None,
    is_active: Optional[bool] = None,
) -> Dict[str, Any]:
    query: Dict[str, Any] = {}
    if search:
        query["$or"] = [
            {"first_name": {"$regex": search, "$options": "i"}},
            {"last_name": {"$regex": search, "$options": "i"}},
            {"email": {"$regex": search, "$options": "i"}},
        ]
    if role:
        query["role"] = role
    if is_active is not None:
        query["is_active"] = is_active
    total = db["user"].count_documents(query)
    cursor = db["user"].find(query).sort("created_at", DESCENDING).skip(skip_for(page, limit)).limit(limit)
    return {"users": [present_user(u) for u in cursor], "pagination": pagination(page, limit, total)}


def user_detail(db: Database, user_id: str) -> Dict[str, Any]:
    user = _load_user(db, user_id)
    orders = list(db["order"].find({"user_id": user_id}, {"total": 1, "status": 1}))
    data = present_user(user)
    data["order_stats"] = {
        "total_orders": len(orders),
        "total_spent": round(sum(o["total"] for o in orders if o["status"] != "cancelled"), 2),
    }
    return data


def apply_user_update(db: Database, user_id: str, payload: AdminUserUpdate) -> Dict[str, Any]:
    _load_user(db, user_id)
    changes = update_fields(payload, nullable=("phone",))
    if changes:
        db["user"].update_one({"_id": oid(user_id)}, {"$set": dict(changes, updated_at=utcnow())})
        logger.info("Admin updated user %s fields %s", user_id, sorted(changes))
    return present_user(_load_user(db, user_id))


def adjust_coins(db: Database, user_id: str, payload: CoinAdjustment, admin: Dict[str, Any]) -> Dict[str, Any]:
    _load_user(db, user_id)
    if payload.action == "add":
        description = payload.reason or "Added by admin"
        entry = coins.credit(db, user_id, payload.amount, description)
    else:
        description = payload.reason or "Removed by admin"
        entry = coins.debit(db, user_id, payload.amount, description)
    logger.info("Admin %s %s %s coins for user %s", admin["_id"], payload.action, payload.amount, user_id)
    return entry


def _top_products(db: Database, match: Dict[str, Any], limit: int = 5) -> List[Dict[str, Any]]:
    return [
        {
            "product_id": row["_id"],
            "name": row["name"],
            "sold": row["sold"],
            "revenue": round(row["revenue"], 2),
        }
        for row in db["order"].aggregate([
            {"$match": match},
            {"$unwind": "$items"},
            {"$group": {
                "_id": "$items.product_id",
                "name": {"$first": "$items.name"},
                "sold": {"$sum": "$items.quantity"},
                "revenue": {"$sum": "$items.total"},
            }},
            {"$sort": {"sold": -1}},
            {"$limit": limit},
        ])
    ]


def _daily(docs: List[Dict[str, Any]], value_key: Optional[str] = None) -> List[Dict[str, Any]]:
    buckets: Dict[str, Dict[str, float]] = defaultdict(lambda: {"count": 0, "value": 0})
    for doc in docs:
        bucket = buckets[doc["created_at"].strftime("%Y-%m-%d")]
        bucket["count"] += 1
        if value_key:
            bucket["value"] += doc.get(value_key, 0)
    return [
        {"date": day, "count": b["count"], "value": round(b["value"], 2)}
        for day, b in sorted(buckets.items())
    ]


def _sales_breakdown(db: Database, match: Dict[str, Any]) -> Dict[str, float]:
    sales = {"total": 0, "delivered": 0, "not_delivered": 0, "cancelled": 0}
    for stat in db["order"].aggregate([
        {"$match": match},
        {"$group": {"_id": "$status", "total_sales": {"$sum": "$total"}, "count": {"$sum": 1}}},
    ]):
        sales["total"] += stat["total_sales"]
        if stat["_id"] == "delivered":
            sales["delivered"] += stat["total_sales"]
        elif stat["_id"] == "cancelled":
            sales["cancelled"] += stat["total_sales"]
        else:
            sales["not_delivered"] += stat["total_sales"]
    return {k: round(v, 2) for k, v in sales.items()}


# ----- Dashboard -----

@router.get("/dashboard/stats")
def dashboard_stats(db: Database = Depends(get_db)):
    since = _naive(utcnow() - timedelta(days=7))
    recent = list(db["order"].find(
        {"created_at": {"$gte": since}, "status": {"$ne": "cancelled"}}, {"created_at": 1, "total": 1}
    ))
    return ok({
        "sales": _sales_breakdown(db, {}),
        "counts": {
            "orders": db["order"].count_documents({}),
            "users": db["user"].count_documents({"role": "user"}),
            "products": db["product"].count_documents({"is_active": True}),
        },
        "trends": {
            "recent_sales": [
                {"date": d["date"], "sales": d["value"], "orders": d["count"]} for d in _daily(recent, "total")
            ],
            "top_products": _top_products(db, {}),
        },
    })


@router.get("/analytics")
def analytics(time_range: TimeRange = Query("30d", alias="timeRange"), db: Database = Depends(get_db)):
    now = utcnow()
    start = _naive(now - timedelta(days=RANGE_DAYS[time_range]))
    in_range = {"created_at": {"$gte": start}}

    orders = list(db["order"].find(in_range, {"created_at": 1, "total": 1, "status": 1}))
    paid = [o for o in orders if o["status"] != "cancelled"]
    revenue = sum(o["total"] for o in paid)

    status_counts: Dict[str, int] = defaultdict(int)
    for o in orders:
        status_counts[o["status"]] += 1

    new_users = list(db["user"].find(dict(in_range, role="user"), {"created_at": 1}))
    active_since = _naive(now - timedelta(days=30))

    category_counts = {
        row["_id"]: row["count"]
        for row in db["product"].aggregate([
            {"$match": {"is_active": True}},
            {"$group": {"_id": "$category", "count": {"$sum": 1}}},
        ])
    }
    total_products = sum(category_counts.values())

    return ok({
        "time_range": time_range,
        "sales": dict(
            _sales_breakdown(db, in_range),
            daily=[{"date": d["date"], "sales": d["value"], "orders": d["count"]} for d in _daily(paid, "total")],
        ),
        "orders": {
            "total": len(orders),
            "average_order_value": round(revenue / len(paid), 2) if paid else 0,
            "status_breakdown": [
                {"status": s, "count": c, "percentage": round(c / len(orders) * 100)}
                for s, c in sorted(status_counts.items())
            ],
        },
        "users": {
            "total": db["user"].count_documents({"role": "user"}),
            "active_users": db["user"].count_documents({"role": "user", "last_login": {"$gte": active_since}}),
            "new_users": len(new_users),
            "daily": [{"date": d["date"], "count": d["count"]} for d in _daily(new_users)],
        },
        "products": {
            "total": total_products,
            "categories": [
                {"category": c, "count": n, "percentage": round(n / total_products * 100)}
                for c, n in sorted(category_counts.items(), key=lambda item: -item[1])
            ],
            "top_products": _top_products(db, dict(in_range, status={"$ne": "cancelled"})),
        },
    })


# ----- Users -----

@router.get("/users")
def list_users(
    search: Optional[str] = None,
    role: Optional[Literal["user", "admin"]] = None,
    is_active: Optional[bool] = None,
    paging: Tuple[int, int] = Depends(PageParams(default_limit=20)),
    db: Database = Depends(get_db),
):
    page, limit = paging
    return ok(page_of_users(db, page, limit, search=search, role=role, is_active=is_active))


@router.get("/users/{user_id}")
def get_user(user_id: str, db: Database = Depends(get_db)):
    return ok({"user": user_detail(db, user_id)})


@router.put("/users/{user_id}")
def update_user(user_id: str, payload: AdminUserUpdate, db: Database = Depends(get_db)):
    return ok({"user": apply_user_update(db, user_id, payload)}, "User updated successfully")


@router.delete("/users/{user_id}")
def deactivate_user(user_id: str, admin: Dict[str, Any] = Depends(require_admin), db: Database = Depends(get_db)):
    if user_id == str(admin["_id"]):
        raise BadRequest("You cannot deactivate your own account")
    _load_user(db, user_id)
    db["user"].update_one({"_id": oid(user_id)}, {"$set": {"is_active": False, "updated_at": utcnow()}})
    db["session"].delete_many({"user_id": user_id})
    logger.info("Admin %s deactivated user %s", admin["_id"], user_id)
    return ok(message="User deactivated successfully")


@router.post("/users/{user_id}/coins")
def adjust_user_coins(
    user_id: str,
    payload: CoinAdjustment,
    admin: Dict[str, Any] = Depends(require_admin),
    db: Database = Depends(get_db),
):
    entry = adjust_coins(db, user_id, payload, admin)
    done = "added" if payload.action == "add" else "removed"
    return ok({"coins": entry["balance_after"], "transaction": entry}, f"Coins {done} successfully")


# ----- Orders -----

@router.get("/orders")
def list_orders(
    status: Optional[OrderStatus] = None,
    search: Optional[str] = None,
    paging: Tuple[int, int] = Depends(PageParams(default_limit=20)),
    db: Database = Depends(get_db),
):
    page, limit = paging
    data = page_of_orders(db, admin_order_query(status, search), page, limit)
    customers = user_names(db, [o["user_id"] for o in data["orders"]])
    for order in data["orders"]:
        order["customer"] = customers.get(order["user_id"])
    return ok(data)


@router.get("/orders/{order_id}")
def get_order(order_id: str, db: Database = Depends(get_db)):
    order = present_order(load_order(db, order_id))
    order["customer"] = user_names(db, [order["user_id"]]).get(order["user_id"])
    return ok({"order": order})


@router.put("/orders/{order_id}/status")
def update_order_status(
    order_id: str,
    payload: StatusUpdate,
    background_tasks: BackgroundTasks,
    admin: Dict[str, Any] = Depends(require_admin),
    db: Database = Depends(get_db),
    settings: StoreSettings = Depends(get_store_settings),
):
    updated = change_status(db, order_id, payload, background_tasks, settings, admin)
    return ok({"order": present_order(updated)}, "Order status updated successfully")


@router.put("/orders/{order_id}/payment")
def update_payment_status(order_id: str, payload: PaymentUpdate, db: Database = Depends(get_db)):
    order = load_order(db, order_id)
    changes: Dict[str, Any] = {"payment.status": payload.status, "updated_at": utcnow()}
    if payload.transaction_id:
        changes["payment.transaction_id"] = payload.transaction_id
    db["order"].update_one({"_id": order["_id"]}, {"$set": changes})
    logger.info("Payment of order %s set to %s", order["order_number"], payload.status)
    return ok({"order": present_order(load_order(db, order_id))}, "Payment status updated successfully")


# ----- Products -----

@router.get("/products")
def list_products(
    search: Optional[str] = None,
    category: Optional[Category] = None,
    is_active: Optional[bool] = None,
    paging: Tuple[int, int] = Depends(PageParams(default_limit=20)),
    db: Database = Depends(get_db),
):
    page, limit = paging
    conditions: List[Dict[str, Any]] = []
    if search:
        conditions.append(search_filter(search))
    if category:
        conditions.append({"category": category})
    if is_active is not None:
        conditions.append({"is_active": is_active})
    query = combine(conditions)
    total = db["product"].count_documents(query)
    cursor = db["product"].find(query).sort("created_at", DESCENDING).skip(skip_for(page, limit)).limit(limit)
    return ok({"products": [present_product(p) for p in cursor], "pagination": pagination(page, limit, total)})


@router.get("/products/{product_id}")
def get_product(product_id: str, db: Database = Depends(get_db)):
    return ok({"product": present_product(load_product(db, product_id, active_only=False))})


@router.post("/products", status_code=201)
def create(payload: Product, db: Database = Depends(get_db)):
    return ok({"product": present_product(create_product(db, payload))}, "Product created successfully")


@router.put("/products/{product_id}")
def update(product_id: str, payload: ProductUpdate, db: Database = Depends(get_db)):
    return ok({"product": present_product(update_product(db, product_id, payload))}, "Product updated successfully")


@router.delete("/products/{product_id}")
def delete(product_id: str, db: Database = Depends(get_db)):
    deactivate_product(db, product_id)
    return ok(message="Product deleted successfully")


# ----- Coins -----

@router.get("/coins/transactions")
def coin_transactions(
    type: Optional[Literal["earned", "redeemed"]] = None,
    user_id: Optional[str] = None,
    paging: Tuple[int, int] = Depends(PageParams(default_limit=20)),
    db: Database = Depends(get_db),
):
    page, limit = paging
    query: Dict[str, Any] = {}
    if type:
        query["type"] = type
    if user_id:
        query["user_id"] = user_id
    total = db["cointransaction"].count_documents(query)
    docs = list(
        db["cointransaction"].find(query).sort("created_at", DESCENDING).skip(skip_for(page, limit)).limit(limit)
    )
    users = user_names(db, [d["user_id"] for d in docs])
    transactions = []
    for doc in docs:
        entry = coins.present_transaction(doc)
        entry["user"] = users.get(doc["user_id"])
        transactions.append(entry)
    return ok({"transactions": transactions, "pagination": pagination(page, limit, total)})


@router.get("/coins/users")
def coin_users(paging: Tuple[int, int] = Depends(PageParams(default_limit=50)), db: Database = Depends(get_db)):
    page, limit = paging
    total = db["user"].count_documents({})
    users = list(db["user"].find({}).sort("coins", DESCENDING).skip(skip_for(page, limit)).limit(limit))
    ids = [str(u["_id"]) for u in users]
    totals: Dict[str, Dict[str, int]] = defaultdict(lambda: {"earned": 0, "redeemed": 0, "count": 0})
    for row in db["cointransaction"].aggregate([
        {"$match": {"user_id": {"$in": ids}}},
        {"$group": {"_id": {"user_id": "$user_id", "type": "$type"}, "amount": {"$sum": "$amount"}, "count": {"$sum": 1}}},
    ]):
        stats = totals[row["_id"]["user_id"]]
        stats[row["_id"]["type"]] += row["amount"]
        stats["count"] += row["count"]
    return ok({
        "users": [
            {
                "id": str(u["_id"]),
                "first_name": u.get("first_name"),
                "last_name": u.get("last_name"),
                "email": u.get("email"),
                "coins": u.get("coins", 0),
                "total_earned": totals[str(u["_id"])]["earned"],
                "total_redeemed": totals[str(u["_id"])]["redeemed"],
                "transaction_count": totals[str(u["_id"])]["count"],
            }
            for u in users
        ],
        "pagination": pagination(page, limit, total),
    })


@router.get("/coins/stats")
def coin_stats(db: Database = Depends(get_db)):
    earned = redeemed = count = 0
    for row in db["cointransaction"].aggregate([
        {"$group": {"_id": "$type", "amount": {"$sum": "$amount"}, "count": {"$sum": 1}}},
    ]):
        count += row["count"]
        if row["_id"] == "earned":
            earned = row["amount"]
        else:
            redeemed = row["amount"]
    holders = db["user"].count_documents({"coins": {"$gt": 0}})
    circulating = sum(row["total"] for row in db["user"].aggregate([
        {"$group": {"_id": None, "total": {"$sum": "$coins"}}},
    ]))
    return ok({"stats": {
        "total_coins_in_circulation": circulating,
        "total_users_with_coins": holders,
        "total_transactions": count,
        "total_earned": earned,
        "total_redeemed": redeemed,
        "average_coins_per_user": round(circulating / holders, 2) if holders else 0,
    }})
