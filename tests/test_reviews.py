from conftest import add_to_cart, auth, make_product, place_order, register


def post_review(client, headers, pid, rating, comment="Great fit"):
    return client.post(f"/api/reviews/product/{pid}", json={"rating": rating, "comment": comment}, headers=headers)


def test_reviews_update_product_rating(client, db, user):
    pid = make_product(db)
    other, _ = register(client, email="kabir@example.com", first_name="Kabir")
    post_review(client, user["headers"], pid, 5)
    res = post_review(client, auth(other), pid, 4)
    assert res.status_code == 201
    assert res.json()["data"]["product"] == {"rating": 4.5, "review_count": 2}

    product = client.get(f"/api/products/{pid}").json()["data"]["product"]
    assert product["rating"] == 4.5
    assert product["review_count"] == 2


def test_review_listing_includes_author_name(client, db, user):
    pid = make_product(db)
    post_review(client, user["headers"], pid, 5)
    data = client.get(f"/api/reviews/product/{pid}").json()["data"]
    assert data["pagination"]["total"] == 1
    assert data["reviews"][0]["user_name"] == "Asha Rao"
    assert data["reviews"][0]["is_verified"] is False


def test_reported_reviews_hidden(client, db, user):
    pid = make_product(db)
    post_review(client, user["headers"], pid, 2)
    db["review"].update_many({}, {"$set": {"reported": True}})
    assert client.get(f"/api/reviews/product/{pid}").json()["data"]["reviews"] == []


def test_product_with_reviews(client, db, user):
    pid = make_product(db, price=1800)
    post_review(client, user["headers"], pid, 4, comment="Runs a bit large")
    res = client.get(f"/api/reviews/product/{pid}/with-reviews")
    assert res.status_code == 200
    data = res.json()["data"]
    assert data["product"]["name"] == "Shadow Hoodie"
    assert data["product"]["rating"] == 4
    assert data["product"]["current_price"] == 1800
    assert [r["comment"] for r in data["reviews"]] == ["Runs a bit large"]
    assert data["reviews"][0]["user_name"] == "Asha Rao"
    assert data["pagination"]["total"] == 1


def test_product_with_reviews_hides_inactive_product(client, db):
    pid = make_product(db, is_active=False)
    res = client.get(f"/api/reviews/product/{pid}/with-reviews")
    assert res.status_code == 404
    assert res.json()["message"] == "Product not found"


def test_review_stats_distribution(client, db, user):
    pid = make_product(db)
    other, _ = register(client, email="kabir@example.com")
    post_review(client, user["headers"], pid, 5)
    post_review(client, auth(other), pid, 3)
    stats = client.get(f"/api/reviews/product/{pid}/stats").json()["data"]
    assert stats["average_rating"] == 4
    assert stats["total_reviews"] == 2
    assert stats["distribution"]["5"] == {"count": 1, "percentage": 50}
    assert stats["distribution"]["4"] == {"count": 0, "percentage": 0}


def test_review_after_delivery_is_verified(client, db, user, admin):
    pid = make_product(db)
    add_to_cart(client, user["headers"], pid)
    order = place_order(client, user["headers"]).json()["data"]["order"]
    for status in ("confirmed", "shipped", "delivered"):
        client.put(f"/api/orders/{order['id']}/status", json={"status": status}, headers=admin["headers"])
    review = post_review(client, user["headers"], pid, 5).json()["data"]["review"]
    assert review["is_verified"] is True


def test_only_author_updates_review(client, db, user):
    pid = make_product(db)
    review_id = post_review(client, user["headers"], pid, 2).json()["data"]["review"]["id"]
    other, _ = register(client, email="kabir@example.com")
    res = client.put(f"/api/reviews/{review_id}", json={"rating": 5}, headers=auth(other))
    assert res.status_code == 403
    assert res.json()["message"] == "You can only update your own reviews"

    res = client.put(f"/api/reviews/{review_id}", json={"rating": 4}, headers=user["headers"])
    assert res.json()["data"]["product"]["rating"] == 4


def test_admin_deletes_review_and_rating_resets(client, db, user, admin):
    pid = make_product(db)
    review_id = post_review(client, user["headers"], pid, 3).json()["data"]["review"]["id"]
    res = client.delete(f"/api/reviews/{review_id}", headers=admin["headers"])
    assert res.status_code == 200
    assert res.json()["data"]["product"] == {"rating": 0, "review_count": 0}


def test_review_needs_login_and_valid_rating(client, db, user):
    pid = make_product(db)
    assert client.post(f"/api/reviews/product/{pid}", json={"rating": 5, "comment": "Nice"}).status_code == 401
    assert post_review(client, user["headers"], pid, 6).status_code == 400
