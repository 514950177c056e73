import logging
from datetime import datetime
from typing import Any, Dict, Optional, Tuple

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Query
from pydantic import BaseModel, Field
from pymongo import DESCENDING
from pymongo.database import Database

import checkout
import mailer
import order_status
from database import get_db, oid, serialize
from errors import Forbidden
from responses import PageParams, ok, pagination, skip_for
from schemas import OrderStatus, PaymentMethod, ShippingAddress, StoreSettings
from security import get_current_user, require_admin
from settings_store import get_store_settings

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/orders", tags=["orders"])


class CreateOrderRequest(BaseModel):
    shipping_address: ShippingAddress
    payment_method: PaymentMethod
    upi_id: Optional[str] = None
    notes: Optional[str] = Field(None, max_length=500)


class CancelRequest(BaseModel):
    reason: Optional[str] = Field(None, max_length=500)


class StatusUpdate(BaseModel):
    status: OrderStatus
    notes: Optional[str] = Field(None, max_length=500)
    tracking_number: Optional[str] = None
    estimated_delivery: Optional[datetime] = None
    reason: Optional[str] = None


def present_order(doc: Dict[str, Any]) -> Dict[str, Any]:
    data = serialize(doc)
    data["status_display"] = order_status.STATUS_DISPLAY.get(doc["status"], doc["status"])
    data["item_count"] = sum(i["quantity"] for i in doc.get("items", []))
    return data


def load_order(db: Database, order_id: str) -> Dict[str, Any]:
    doc = db["order"].find_one({"_id": oid(order_id)})
    if not doc:
        raise HTTPException(status_code=404, detail="Order not found")
    return doc


def order_customer(db: Database, order: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    return db["user"].find_one({"_id": oid(order["user_id"])})


def page_of_orders(db: Database, query: Dict[str, Any], page: int, limit: int) -> Dict[str, Any]:
    total = db["order"].count_documents(query)
    cursor = db["order"].find(query).sort("created_at", DESCENDING).skip(skip_for(page, limit)).limit(limit)
    return {"orders": [present_order(doc) for doc in cursor], "pagination": pagination(page, limit, total)}


def admin_order_query(status: Optional[str], search: Optional[str]) -> Dict[str, Any]:
    query: Dict[str, Any] = {}
    if status:
        query["status"] = status
    if search:
        query["order_number"] = {"$regex": search, "$options": "i"}
    return query


def change_status(
    db: Database,
    order_id: str,
    payload: StatusUpdate,
    background_tasks: BackgroundTasks,
    settings: StoreSettings,
    admin: Dict[str, Any],
) -> Dict[str, Any]:
    order = load_order(db, order_id)
    previous = order["status"]
    updated = order_status.transition(
        db,
        order,
        payload.status,
        actor="admin",
        notes=payload.notes,
        reason=payload.reason,
        tracking_number=payload.tracking_number,
        estimated_delivery=payload.estimated_delivery,
    )
    if updated["status"] != previous:
        customer = order_customer(db, updated)
        if customer:
            background_tasks.add_task(mailer.send_order_status_update, settings, customer, updated)
    logger.info("Admin %s set order %s to %s", admin["_id"], updated["order_number"], updated["status"])
    return updated


@router.post("", status_code=201)
def create_order(
    payload: CreateOrderRequest,
    background_tasks: BackgroundTasks,
    user: Dict[str, Any] = Depends(get_current_user),
    db: Database = Depends(get_db),
    settings: StoreSettings = Depends(get_store_settings),
):
    order = checkout.place_order(
        db,
        user,
        payload.shipping_address,
        payload.payment_method,
        settings,
        upi_id=payload.upi_id,
        notes=payload.notes,
    )
    background_tasks.add_task(mailer.send_order_confirmation, settings, user, order)
    return ok({"order": present_order(order)}, "Order created successfully")


@router.get("")
def my_orders(
    status: Optional[OrderStatus] = None,
    paging: Tuple[int, int] = Depends(PageParams(default_limit=10)),
    user: Dict[str, Any] = Depends(get_current_user),
    db: Database = Depends(get_db),
):
    page, limit = paging
    query: Dict[str, Any] = {"user_id": str(user["_id"])}
    if status:
        query["status"] = status
    return ok(page_of_orders(db, query, page, limit))


@router.get("/admin/all")
def all_orders(
    status: Optional[OrderStatus] = None,
    search: Optional[str] = None,
    paging: Tuple[int, int] = Depends(PageParams(default_limit=20)),
    admin: Dict[str, Any] = Depends(require_admin),
    db: Database = Depends(get_db),
):
    page, limit = paging
    return ok(page_of_orders(db, admin_order_query(status, search), page, limit))


@router.get("/admin/recent")
def recent_orders(
    limit: int = Query(10, ge=1, le=50),
    admin: Dict[str, Any] = Depends(require_admin),
    db: Database = Depends(get_db),
):
    cursor = db["order"].find({}).sort("created_at", DESCENDING).limit(limit)
    return ok({"orders": [present_order(doc) for doc in cursor]})


@router.get("/{order_id}")
def get_order(order_id: str, user: Dict[str, Any] = Depends(get_current_user), db: Database = Depends(get_db)):
    order = load_order(db, order_id)
    if order["user_id"] != str(user["_id"]) and user.get("role") != "admin":
        raise Forbidden("Access denied")
    return ok({"order": present_order(order)})


@router.put("/{order_id}/cancel")
def cancel_order(
    order_id: str,
    payload: Optional[CancelRequest] = None,
    user: Dict[str, Any] = Depends(get_current_user),
    db: Database = Depends(get_db),
):
    order = load_order(db, order_id)
    reason = payload.reason if payload else None
    updated = order_status.cancel_by_customer(db, order, str(user["_id"]), reason)
    return ok({"order": present_order(updated)}, "Order cancelled successfully")


@router.put("/{order_id}/return")
def request_return(order_id: str, user: Dict[str, Any] = Depends(get_current_user), db: Database = Depends(get_db)):
    order = load_order(db, order_id)
    updated = order_status.request_return(db, order, str(user["_id"]))
    return ok({"order": present_order(updated)}, "Return requested successfully")


@router.put("/{order_id}/status")
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
