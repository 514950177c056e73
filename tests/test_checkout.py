import pytest

import checkout
import coins
from conftest import SHIPPING, add_to_cart, coins_of, make_product, place_order, set_coins, stock_of
from errors import InsufficientCoins


def test_empty_cart_creates_no_order(client, db, user):
    res = place_order(client, user["headers"])
    assert res.status_code == 400
    assert res.json()["message"] == "Cart is empty"
    assert db["order"].count_documents({}) == 0


def test_checkout_decrements_stock_per_size(client, db, user):
    pid = make_product(db, price=800, stock={"M": 5, "L": 4})
    add_to_cart(client, user["headers"], pid, size="M", quantity=2)
    add_to_cart(client, user["headers"], pid, size="L", quantity=3)
    res = place_order(client, user["headers"])
    assert res.status_code == 201, res.text
    assert stock_of(db, pid, "M") == 3
    assert stock_of(db, pid, "L") == 1
    assert db["product"].find_one({})["total_sold"] == 5


def test_checkout_clears_cart(client, db, user):
    pid = make_product(db, price=800)
    add_to_cart(client, user["headers"], pid)
    place_order(client, user["headers"])
    cart = client.get("/api/cart", headers=user["headers"]).json()["data"]["cart"]
    assert cart["items"] == []


def test_save20_example(client, db, user):
    pid = make_product(db, price=2500)
    add_to_cart(client, user["headers"], pid)
    client.post("/api/cart/coupon", json={"code": "SAVE20"}, headers=user["headers"])
    order = place_order(client, user["headers"]).json()["data"]["order"]
    assert order["subtotal"] == 2500
    assert order["discount_amount"] == 500
    assert order["shipping_cost"] == 0
    assert order["total"] == 2000
    assert order["coins_earned"] == 20
    assert order["status"] == "pending"
    assert order["order_number"].startswith("BRL")


def test_small_order_pays_flat_shipping(client, db, user):
    pid = make_product(db, price=1200)
    add_to_cart(client, user["headers"], pid)
    order = place_order(client, user["headers"]).json()["data"]["order"]
    assert order["shipping_cost"] == 150
    assert order["total"] == 1350
    assert order["coins_earned"] == 13


def test_freeship_coupon_keeps_flat_shipping(client, db, user):
    pid = make_product(db, price=1600)
    add_to_cart(client, user["headers"], pid)
    client.post("/api/cart/coupon", json={"code": "FREESHIP"}, headers=user["headers"])
    order = place_order(client, user["headers"]).json()["data"]["order"]
    assert order["shipping_cost"] == 150
    assert order["total"] == 1750
    assert order["coins_earned"] == 17


def test_coins_debited_with_ledger_entry(client, db, user):
    pid = make_product(db, price=1500)
    add_to_cart(client, user["headers"], pid)
    set_coins(db, user["id"], 200)
    client.post("/api/cart/coins", json={"coins": 100}, headers=user["headers"])
    order = place_order(client, user["headers"]).json()["data"]["order"]
    assert order["coins_used"] == 100
    assert order["total"] == 1550
    assert coins_of(db, user["id"]) == 100
    entry = db["cointransaction"].find_one({"user_id": user["id"]})
    assert entry["type"] == "redeemed"
    assert entry["amount"] == 100
    assert entry["balance_after"] == 100
    assert entry["order_number"] == order["order_number"]


def test_insufficient_coins_at_checkout_changes_nothing(client, db, user):
    pid = make_product(db, price=1500, stock={"M": 5})
    add_to_cart(client, user["headers"], pid)
    set_coins(db, user["id"], 200)
    client.post("/api/cart/coins", json={"coins": 200}, headers=user["headers"])
    set_coins(db, user["id"], 50)

    res = place_order(client, user["headers"])

    assert res.status_code == 400
    assert res.json()["message"] == "Insufficient coins"
    assert db["order"].count_documents({}) == 0
    assert stock_of(db, pid, "M") == 5
    assert coins_of(db, user["id"]) == 50
    assert db["cointransaction"].count_documents({}) == 0


def test_out_of_stock_after_cart_add(client, db, user):
    pid = make_product(db, price=1000, stock={"M": 5})
    add_to_cart(client, user["headers"], pid, quantity=4)
    db["product"].update_one({}, {"$set": {"sizes": [{"size": "M", "stock": 2, "price": 1000, "colors": ["black"]}]}})
    res = place_order(client, user["headers"])
    assert res.status_code == 400
    assert res.json()["message"] == "Only 2 items available in size M for Shadow Hoodie"
    assert db["order"].count_documents({}) == 0


def test_inactive_product_blocks_checkout(client, db, user):
    pid = make_product(db, price=1000)
    add_to_cart(client, user["headers"], pid)
    db["product"].update_one({}, {"$set": {"is_active": False}})
    res = place_order(client, user["headers"])
    assert res.status_code == 400
    assert res.json()["message"] == "Product Shadow Hoodie is no longer available"


def test_failed_reservation_releases_earlier_lines(client, db, user, monkeypatch):
    first = make_product(db, name="First Tee", price=700, stock={"M": 5})
    second = make_product(db, name="Second Tee", price=700, stock={"M": 5})
    add_to_cart(client, user["headers"], first, quantity=2)
    add_to_cart(client, user["headers"], second, quantity=2)

    real_reserve = checkout.reserve_stock
    calls = []

    def flaky_reserve(database, product_id, size, quantity):
        calls.append(product_id)
        if product_id == second:
            return False
        return real_reserve(database, product_id, size, quantity)

    monkeypatch.setattr(checkout, "reserve_stock", flaky_reserve)
    res = place_order(client, user["headers"])

    assert res.status_code == 400
    assert calls == [first, second]
    assert stock_of(db, first, "M") == 5
    assert stock_of(db, second, "M") == 5
    assert db["order"].count_documents({}) == 0
    cart = client.get("/api/cart", headers=user["headers"]).json()["data"]["cart"]
    assert len(cart["items"]) == 2


def test_failed_coin_debit_rolls_back_order_and_stock(client, db, user, monkeypatch):
    pid = make_product(db, price=1500, stock={"M": 5})
    add_to_cart(client, user["headers"], pid, quantity=2)
    set_coins(db, user["id"], 100)
    client.post("/api/cart/coins", json={"coins": 100}, headers=user["headers"])

    def racing_debit(*args, **kwargs):
        raise InsufficientCoins()

    monkeypatch.setattr(coins, "debit", racing_debit)
    res = place_order(client, user["headers"])

    assert res.status_code == 400
    assert db["order"].count_documents({}) == 0
    assert stock_of(db, pid, "M") == 5
    assert coins_of(db, user["id"]) == 100


def test_cod_disabled_rejected(client, db, user, admin):
    client.put("/api/settings/payment", json={"cod_enabled": False}, headers=admin["headers"])
    pid = make_product(db, price=1000)
    add_to_cart(client, user["headers"], pid)
    res = place_order(client, user["headers"], payment_method="cod")
    assert res.status_code == 400
    assert res.json()["message"] == "Cash on delivery is currently unavailable"


def test_order_below_minimum_amount_rejected(client, db, user):
    pid = make_product(db, price=2100)
    add_to_cart(client, user["headers"], pid)
    set_coins(db, user["id"], 2050)
    client.post("/api/cart/coins", json={"coins": 2050}, headers=user["headers"])
    res = place_order(client, user["headers"])
    assert res.status_code == 400
    assert res.json()["message"] == "Minimum order amount is ₹100"


def test_invalid_shipping_address_is_validation_error(client, user):
    address = dict(SHIPPING, city="")
    res = client.post("/api/orders", json={"shipping_address": address, "payment_method": "cod"}, headers=user["headers"])
    assert res.status_code == 400
    body = res.json()
    assert body["message"] == "Validation failed"
    assert body["errors"][0]["field"] == "shipping_address.city"


@pytest.mark.parametrize("total, expected", [(1350, 13), (2000, 20), (99.99, 0)])
def test_coins_earned_is_one_percent_floored(total, expected):
    assert checkout.coins_earned_for(total) == expected


def test_shipping_threshold_is_exclusive():
    assert checkout.shipping_cost(2000) == 150
    assert checkout.shipping_cost(2000.01) == 0
