from conftest import SHIPPING, coins_of, make_product, set_coins

ADDRESS = dict(SHIPPING)


def test_first_address_becomes_default(client, user):
    res = client.post("/api/user/addresses", json=ADDRESS, headers=user["headers"])
    assert res.status_code == 201
    addresses = res.json()["data"]["addresses"]
    assert len(addresses) == 1
    assert addresses[0]["is_default"] is True
    assert addresses[0]["id"]


def test_single_default_address(client, user):
    client.post("/api/user/addresses", json=ADDRESS, headers=user["headers"])
    res = client.post("/api/user/addresses", json=dict(ADDRESS, city="Pune", is_default=True), headers=user["headers"])
    addresses = res.json()["data"]["addresses"]
    assert [a["is_default"] for a in addresses] == [False, True]

    first_id = addresses[0]["id"]
    res = client.put(f"/api/user/addresses/{first_id}", json={"is_default": True}, headers=user["headers"])
    assert [a["is_default"] for a in res.json()["data"]["addresses"]] == [True, False]


def test_deleting_default_promotes_next(client, user):
    client.post("/api/user/addresses", json=ADDRESS, headers=user["headers"])
    added = client.post("/api/user/addresses", json=dict(ADDRESS, city="Pune"), headers=user["headers"])
    first_id = added.json()["data"]["addresses"][0]["id"]
    res = client.delete(f"/api/user/addresses/{first_id}", headers=user["headers"])
    addresses = res.json()["data"]["addresses"]
    assert len(addresses) == 1
    assert addresses[0]["city"] == "Pune"
    assert addresses[0]["is_default"] is True


def test_unknown_address_is_404(client, user):
    res = client.delete("/api/user/addresses/nope", headers=user["headers"])
    assert res.status_code == 404


def test_invalid_phone_rejected(client, user):
    res = client.post("/api/user/addresses", json=dict(ADDRESS, phone="12345"), headers=user["headers"])
    assert res.status_code == 400


def test_wishlist_add_and_remove(client, db, user):
    pid = make_product(db)
    client.post("/api/user/wishlist", json={"product_id": pid}, headers=user["headers"])
    client.post("/api/user/wishlist", json={"product_id": pid}, headers=user["headers"])
    wishlist = client.get("/api/user/wishlist", headers=user["headers"]).json()["data"]["wishlist"]
    assert [p["id"] for p in wishlist] == [pid]

    client.delete(f"/api/user/wishlist/{pid}", headers=user["headers"])
    assert client.get("/api/user/wishlist", headers=user["headers"]).json()["data"]["wishlist"] == []


def test_wishlist_unknown_product(client, user):
    res = client.post("/api/user/wishlist", json={"product_id": "5f0000000000000000000000"}, headers=user["headers"])
    assert res.status_code == 404


def test_welcome_bonus_only_once(client, db, user):
    res = client.post("/api/user/coins/welcome", headers=user["headers"])
    assert res.status_code == 200
    assert res.json()["data"]["coins"] == 100
    again = client.post("/api/user/coins/welcome", headers=user["headers"])
    assert again.status_code == 400
    assert again.json()["message"] == "Welcome coins already received"
    assert coins_of(db, user["id"]) == 100


def test_redeem_more_than_balance_changes_nothing(client, db, user):
    set_coins(db, user["id"], 40)
    res = client.post("/api/user/coins/redeem", json={"coins": 50}, headers=user["headers"])
    assert res.status_code == 400
    assert res.json()["message"] == "Insufficient coins"
    assert coins_of(db, user["id"]) == 40
    assert db["cointransaction"].count_documents({}) == 0


def test_redeem_writes_ledger(client, db, user):
    set_coins(db, user["id"], 40)
    res = client.post("/api/user/coins/redeem", json={"coins": 15}, headers=user["headers"])
    assert res.json()["data"]["coins"] == 25
    history = client.get("/api/user/coins/transactions", headers=user["headers"]).json()["data"]
    assert history["pagination"]["total"] == 1
    entry = history["transactions"][0]
    assert entry["type_display"] == "Redeemed"
    assert entry["formatted_amount"] == "-15"
    assert entry["balance_after"] == 25


def test_coin_balance(client, db, user):
    set_coins(db, user["id"], 70)
    assert client.get("/api/user/coins", headers=user["headers"]).json()["data"]["coins"] == 70


def test_admin_adds_coins(client, db, user, admin):
    res = client.post(
        "/api/user/coins/add",
        json={"user_id": user["id"], "amount": 30, "reason": "Festive gift"},
        headers=admin["headers"],
    )
    assert res.status_code == 200
    assert coins_of(db, user["id"]) == 30
    assert db["cointransaction"].find_one({})["description"] == "Festive gift"


def test_only_admin_adds_coins(client, user):
    res = client.post("/api/user/coins/add", json={"user_id": user["id"], "amount": 30}, headers=user["headers"])
    assert res.status_code == 403


def test_null_address_fields_keep_stored_values(client, user):
    created = client.post("/api/user/addresses", json=ADDRESS, headers=user["headers"]).json()["data"]["addresses"][0]
    res = client.put(
        f"/api/user/addresses/{created['id']}",
        json={"city": None, "street": None, "is_default": None},
        headers=user["headers"],
    )
    address = res.json()["data"]["addresses"][0]
    assert (address["city"], address["street"], address["is_default"]) == (ADDRESS["city"], ADDRESS["street"], True)
