"""
Loyalty coins ledger.

The balance lives on the user document and is changed with a single atomic
update; the ledger entry is written right after, using the balance returned
by that update as `balance_after`.
"""

import logging
from typing import Any, Dict, Optional

from bson import ObjectId
from pymongo import ReturnDocument
from pymongo.database import Database

from database import create_document, serialize, utcnow
from errors import BadRequest, InsufficientCoins, NotFound
from schemas import CoinTransaction

logger = logging.getLogger(__name__)

WELCOME_BONUS = 100
WELCOME_BONUS_DESCRIPTION = "First-time buyer welcome bonus"


def _record(
    db: Database,
    user: Dict[str, Any],
    tx_type: str,
    amount: int,
    description: str,
    order: Optional[Dict[str, Any]] = None,
) -> Dict[str, Any]:
    entry = CoinTransaction(
        user_id=str(user["_id"]),
        type=tx_type,
        amount=amount,
        description=description,
        order_id=str(order["_id"]) if order else None,
        order_number=order.get("order_number") if order else None,
        balance_after=user.get("coins", 0),
    )
    tx_id = create_document(db, "cointransaction", entry)
    return present_transaction(db["cointransaction"].find_one({"_id": ObjectId(tx_id)}))


def credit(
    db: Database,
    user_id: str,
    amount: int,
    description: str,
    order: Optional[Dict[str, Any]] = None,
) -> Dict[str, Any]:
    if amount <= 0:
        raise BadRequest("Amount must be a positive number")
    user = db["user"].find_one_and_update(
        {"_id": ObjectId(user_id)},
        {"$inc": {"coins": amount}, "$set": {"updated_at": utcnow()}},
        return_document=ReturnDocument.AFTER,
    )
    if user is None:
        raise NotFound("User not found")
    logger.info("Credited %s coins to user %s (%s), balance %s", amount, user_id, description, user["coins"])
    return _record(db, user, "earned", amount, description, order)


def debit(
    db: Database,
    user_id: str,
    amount: int,
    description: str,
    order: Optional[Dict[str, Any]] = None,
) -> Dict[str, Any]:
    """Take coins from a user. Fails without touching anything if the
    balance is short."""
    if amount <= 0:
        raise BadRequest("Amount must be a positive number")
    user = db["user"].find_one_and_update(
        {"_id": ObjectId(user_id), "coins": {"$gte": amount}},
        {"$inc": {"coins": -amount}, "$set": {"updated_at": utcnow()}},
        return_document=ReturnDocument.AFTER,
    )
    if user is None:
        if db["user"].count_documents({"_id": ObjectId(user_id)}) == 0:
            raise NotFound("User not found")
        raise InsufficientCoins()
    logger.info("Debited %s coins from user %s (%s), balance %s", amount, user_id, description, user["coins"])
    return _record(db, user, "redeemed", amount, description, order)


def grant_welcome_bonus(db: Database, user_id: str) -> Dict[str, Any]:
    already = db["cointransaction"].find_one(
        {"user_id": user_id, "type": "earned", "description": WELCOME_BONUS_DESCRIPTION}
    )
    if already:
        raise BadRequest("Welcome coins already received")
    return credit(db, user_id, WELCOME_BONUS, WELCOME_BONUS_DESCRIPTION)


def present_transaction(doc: Dict[str, Any]) -> Dict[str, Any]:
    data = serialize(doc)
    data["type_display"] = "Earned" if doc["type"] == "earned" else "Redeemed"
    data["formatted_amount"] = f"{'+' if doc['type'] == 'earned' else '-'}{doc['amount']}"
    return data
