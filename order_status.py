"""
Order status state machine.

Every status change goes through `transition`, which checks the move
against TRANSITIONS, swaps the status with a compare-and-set and then runs
the side effects for the new status. Effects are guarded by flags on the
order (coins_credited, coins_debited, coins_refunded, stock_restored) so
each one happens at most once per order. If an effect fails, the order
document goes back to how it was before the move, including timestamps,
payment status and any stock that was released. Coins that already moved
stay moved and keep their flag.
"""

import copy
import logging
from datetime import datetime
from typing import Any, Dict, Optional

from pymongo.database import Database

import coins
from database import utcnow
from errors import Conflict, Forbidden, InvalidTransition
from inventory import release_stock, reserve_stock

logger = logging.getLogger(__name__)

TRANSITIONS = {
    "pending": {"confirmed", "processing", "cancelled"},
    "confirmed": {"processing", "shipped", "cancelled"},
    "processing": {"shipped", "cancelled"},
    "shipped": {"delivered", "returned"},
    "delivered": {"return_pending", "returned"},
    "return_pending": {"returned", "delivered"},
    "cancelled": set(),
    "returned": set(),
}

CUSTOMER_CANCELLABLE = {"pending", "confirmed"}

COIN_FLAGS = ("coins_credited", "coins_debited", "coins_refunded")

STATUS_DISPLAY = {
    "pending": "Pending",
    "confirmed": "Confirmed",
    "processing": "Processing",
    "shipped": "Shipped",
    "delivered": "Delivered",
    "return_pending": "Return Pending",
    "cancelled": "Cancelled",
    "returned": "Returned",
}

DELIVERY_DESCRIPTION = "Purchase completed"
RETURN_DESCRIPTION = "Order returned - coins debited"
REFUND_DESCRIPTION = "Order cancelled - coins refunded"


def can_transition(current: str, new: str) -> bool:
    return new in TRANSITIONS.get(current, set())


def _set(db: Database, order: Dict[str, Any], fields: Dict[str, Any]) -> None:
    fields["updated_at"] = utcnow()
    db["order"].update_one({"_id": order["_id"]}, {"$set": fields})
    order.update(fields)


def _set_payment_status(db: Database, order: Dict[str, Any], status: str) -> None:
    db["order"].update_one({"_id": order["_id"]}, {"$set": {"payment.status": status, "updated_at": utcnow()}})
    order["payment"]["status"] = status


def _refund_payment(db: Database, order: Dict[str, Any]) -> None:
    if order.get("payment", {}).get("status") == "completed":
        _set_payment_status(db, order, "refunded")


def _on_delivered(db: Database, order: Dict[str, Any]) -> None:
    _set(db, order, {"delivered_at": utcnow()})
    payment = order.get("payment", {})
    if payment.get("method") == "cod" and payment.get("status") == "pending":
        _set_payment_status(db, order, "completed")
    if order.get("coins_earned", 0) > 0 and not order.get("coins_credited"):
        coins.credit(db, order["user_id"], order["coins_earned"], DELIVERY_DESCRIPTION, order)
        _set(db, order, {"coins_credited": True})


def _on_cancelled(db: Database, order: Dict[str, Any], actor: str, reason: Optional[str]) -> None:
    _set(db, order, {"cancelled_at": utcnow(), "cancelled_by": actor, "cancellation_reason": reason})
    if not order.get("stock_restored"):
        for item in order.get("items", []):
            release_stock(db, item["product_id"], item["size"], item["quantity"])
        _set(db, order, {"stock_restored": True})
    if order.get("coins_used", 0) > 0 and not order.get("coins_refunded"):
        coins.credit(db, order["user_id"], order["coins_used"], REFUND_DESCRIPTION, order)
        _set(db, order, {"coins_refunded": True})
    _refund_payment(db, order)


def _on_returned(db: Database, order: Dict[str, Any]) -> None:
    if order.get("coins_credited") and not order.get("coins_debited") and order.get("coins_earned", 0) > 0:
        coins.debit(db, order["user_id"], order["coins_earned"], RETURN_DESCRIPTION, order)
        _set(db, order, {"coins_debited": True})
    _set(db, order, {"returned_at": utcnow()})
    _refund_payment(db, order)


def _on_return_pending(db: Database, order: Dict[str, Any]) -> None:
    _set(db, order, {"return_requested_at": utcnow()})


def _roll_back(db: Database, order: Dict[str, Any], before: Dict[str, Any]) -> None:
    """Put the order document back as it was and take released stock again.

    Coin movements are already in the ledger, so their flags are kept and
    a retried transition does not repeat them.
    """
    if order.get("stock_restored") and not before.get("stock_restored"):
        for item in order.get("items", []):
            if not reserve_stock(db, item["product_id"], item["size"], item["quantity"]):
                logger.warning(
                    "Could not take back %s x %s for order %s", item["quantity"], item["size"], order["order_number"]
                )
    restored = {k: v for k, v in before.items() if k != "_id"}
    for flag in COIN_FLAGS:
        if order.get(flag):
            restored[flag] = True
    restored["updated_at"] = utcnow()
    update: Dict[str, Any] = {"$set": restored}
    added = [k for k in order if k not in restored and k != "_id"]
    if added:
        update["$unset"] = {k: "" for k in added}
    db["order"].update_one({"_id": order["_id"], "status": order["status"]}, update)


def transition(
    db: Database,
    order: Dict[str, Any],
    new_status: str,
    actor: str = "admin",
    notes: Optional[str] = None,
    reason: Optional[str] = None,
    tracking_number: Optional[str] = None,
    estimated_delivery: Optional[datetime] = None,
) -> Dict[str, Any]:
    """Move `order` to `new_status`. Returns the updated order document."""
    current = order["status"]
    extra: Dict[str, Any] = {}
    if notes:
        extra["notes"] = notes
    if tracking_number:
        extra["tracking_number"] = tracking_number
    if estimated_delivery:
        extra["estimated_delivery"] = estimated_delivery

    if new_status == current:
        if extra:
            _set(db, order, extra)
        return db["order"].find_one({"_id": order["_id"]})

    if not can_transition(current, new_status):
        raise InvalidTransition(f"Cannot change order status from {current} to {new_status}")

    before = copy.deepcopy(order)
    result = db["order"].update_one(
        {"_id": order["_id"], "status": current},
        {"$set": dict(extra, status=new_status, updated_at=utcnow())},
    )
    if not result.matched_count:
        raise Conflict("Order was updated by someone else, please retry")
    order["status"] = new_status
    order.update(extra)

    try:
        if new_status == "delivered":
            _on_delivered(db, order)
        elif new_status == "cancelled":
            _on_cancelled(db, order, actor, reason)
        elif new_status == "returned":
            _on_returned(db, order)
        elif new_status == "return_pending":
            _on_return_pending(db, order)
    except Exception:
        _roll_back(db, order, before)
        logger.warning("Rolled back order %s from %s to %s", order["order_number"], new_status, current)
        raise

    logger.info("Order %s moved %s -> %s by %s", order["order_number"], current, new_status, actor)
    return db["order"].find_one({"_id": order["_id"]})


def cancel_by_customer(db: Database, order: Dict[str, Any], user_id: str, reason: Optional[str]) -> Dict[str, Any]:
    if order["user_id"] != user_id:
        raise Forbidden("Access denied")
    if order["status"] not in CUSTOMER_CANCELLABLE:
        raise InvalidTransition("Order cannot be cancelled at this stage")
    return transition(db, order, "cancelled", actor="customer", reason=reason)


def request_return(db: Database, order: Dict[str, Any], user_id: str) -> Dict[str, Any]:
    if order["user_id"] != user_id:
        raise Forbidden("Access denied")
    if order["status"] != "delivered":
        raise InvalidTransition("Only delivered orders can be returned")
    return transition(db, order, "return_pending", actor="customer")
