from conftest import add_to_cart, coins_of, make_product, place_order, register


def deliver(client, admin, order_id):
    for status in ("confirmed", "shipped", "delivered"):
        client.put(f"/api/admin/orders/{order_id}/status", json={"status": status}, headers=admin["headers"])


def buy(client, db, user, price=2500, quantity=1, name="Shadow Hoodie"):
    pid = make_product(db, name=name, price=price)
    add_to_cart(client, user["headers"], pid, quantity=quantity)
    return place_order(client, user["headers"]).json()["data"]["order"]


def test_admin_routes_reject_customers(client, user):
    assert client.get("/api/admin/dashboard/stats", headers=user["headers"]).status_code == 403
    res = client.get("/api/admin/users", headers=user["headers"])
    assert res.json()["message"] == "User role user is not authorized to access this route"


def test_dashboard_stats(client, db, user, admin):
    delivered = buy(client, db, user, price=2500)
    deliver(client, admin, delivered["id"])
    cancelled = buy(client, db, user, price=1000, name="Cargo Pants")
    client.put(f"/api/orders/{cancelled['id']}/cancel", headers=user["headers"])

    stats = client.get("/api/admin/dashboard/stats", headers=admin["headers"]).json()["data"]
    assert stats["counts"] == {"orders": 2, "users": 1, "products": 2}
    assert stats["sales"]["delivered"] == 2500
    assert stats["sales"]["cancelled"] == 1150
    assert stats["sales"]["total"] == 3650
    assert len(stats["trends"]["recent_sales"]) == 1
    assert stats["trends"]["recent_sales"][0]["orders"] == 1
    top = stats["trends"]["top_products"]
    assert {p["name"] for p in top} == {"Shadow Hoodie", "Cargo Pants"}


def test_analytics(client, db, user, admin):
    buy(client, db, user, price=2500, quantity=2)
    data = client.get("/api/admin/analytics?timeRange=7d", headers=admin["headers"]).json()["data"]
    assert data["time_range"] == "7d"
    assert data["orders"]["total"] == 1
    assert data["orders"]["average_order_value"] == 5000
    assert data["orders"]["status_breakdown"] == [{"status": "pending", "count": 1, "percentage": 100}]
    assert data["users"]["new_users"] == 1
    assert data["products"]["categories"] == [{"category": "hoodies", "count": 1, "percentage": 100}]
    assert data["products"]["top_products"][0]["sold"] == 2


def test_analytics_rejects_unknown_range(client, admin):
    assert client.get("/api/admin/analytics?timeRange=2w", headers=admin["headers"]).status_code == 400


def test_user_listing_and_detail(client, db, user, admin):
    register(client, email="kabir@example.com", first_name="Kabir", last_name="Shah")
    res = client.get("/api/admin/users?search=kabir", headers=admin["headers"])
    users = res.json()["data"]["users"]
    assert [u["email"] for u in users] == ["kabir@example.com"]
    assert "password_hash" not in users[0]

    buy(client, db, user, price=2500)
    detail = client.get(f"/api/admin/users/{user['id']}", headers=admin["headers"]).json()["data"]["user"]
    assert detail["order_stats"] == {"total_orders": 1, "total_spent": 2500}


def test_admin_updates_role(client, user, admin):
    res = client.put(f"/api/admin/users/{user['id']}", json={"role": "admin"}, headers=admin["headers"])
    assert res.json()["data"]["user"]["role"] == "admin"
    assert client.get("/api/admin/users", headers=user["headers"]).status_code == 200


def test_deactivating_user_ends_sessions(client, user, admin):
    res = client.delete(f"/api/admin/users/{user['id']}", headers=admin["headers"])
    assert res.status_code == 200
    assert client.get("/api/auth/me", headers=user["headers"]).status_code == 401


def test_admin_cannot_deactivate_self(client, admin):
    res = client.delete(f"/api/admin/users/{admin['id']}", headers=admin["headers"])
    assert res.status_code == 400
    assert res.json()["message"] == "You cannot deactivate your own account"


def test_coin_adjustments(client, db, user, admin):
    res = client.post(f"/api/admin/users/{user['id']}/coins", json={"amount": 50}, headers=admin["headers"])
    assert res.json()["message"] == "Coins added successfully"
    assert res.json()["data"]["coins"] == 50

    res = client.post(
        f"/api/admin/users/{user['id']}/coins",
        json={"amount": 20, "action": "remove", "reason": "Chargeback"},
        headers=admin["headers"],
    )
    assert res.json()["message"] == "Coins removed successfully"
    assert coins_of(db, user["id"]) == 30

    res = client.post(
        f"/api/admin/users/{user['id']}/coins", json={"amount": 500, "action": "remove"}, headers=admin["headers"]
    )
    assert res.status_code == 400
    assert coins_of(db, user["id"]) == 30


def test_coin_reports(client, db, user, admin):
    client.post(f"/api/admin/users/{user['id']}/coins", json={"amount": 80}, headers=admin["headers"])
    client.post(f"/api/admin/users/{user['id']}/coins", json={"amount": 30, "action": "remove"}, headers=admin["headers"])

    stats = client.get("/api/admin/coins/stats", headers=admin["headers"]).json()["data"]["stats"]
    assert stats == {
        "total_coins_in_circulation": 50,
        "total_users_with_coins": 1,
        "total_transactions": 2,
        "total_earned": 80,
        "total_redeemed": 30,
        "average_coins_per_user": 50,
    }

    users = client.get("/api/admin/coins/users", headers=admin["headers"]).json()["data"]["users"]
    top = users[0]
    assert top["id"] == user["id"]
    assert (top["total_earned"], top["total_redeemed"], top["transaction_count"]) == (80, 30, 2)

    history = client.get("/api/admin/coins/transactions?type=redeemed", headers=admin["headers"]).json()["data"]
    assert history["pagination"]["total"] == 1
    assert history["transactions"][0]["user"]["name"] == "Asha Rao"


def test_payment_status_update(client, db, user, admin):
    order = buy(client, db, user)
    res = client.put(
        f"/api/admin/orders/{order['id']}/payment",
        json={"status": "completed", "transaction_id": "UPI-991"},
        headers=admin["headers"],
    )
    payment = res.json()["data"]["order"]["payment"]
    assert payment == dict(payment, status="completed", transaction_id="UPI-991")


def test_admin_order_listing_includes_customer(client, db, user, admin):
    buy(client, db, user)
    orders = client.get("/api/admin/orders", headers=admin["headers"]).json()["data"]["orders"]
    assert orders[0]["customer"] == {"name": "Asha Rao", "email": "asha@example.com"}


def test_admin_sees_inactive_products(client, db, admin):
    make_product(db, name="Retired Tee", is_active=False)
    res = client.get("/api/admin/products?is_active=false", headers=admin["headers"])
    assert [p["name"] for p in res.json()["data"]["products"]] == ["Retired Tee"]


def test_null_fields_in_user_update_are_ignored(client, user, admin):
    res = client.put(
        f"/api/admin/users/{user['id']}",
        json={"is_active": None, "role": None, "first_name": None},
        headers=admin["headers"],
    )
    updated = res.json()["data"]["user"]
    assert (updated["is_active"], updated["role"], updated["first_name"]) == (True, "user", "Asha")
    assert client.get("/api/auth/me", headers=user["headers"]).status_code == 200
