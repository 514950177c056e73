import os
import uuid

os.environ.pop("DATABASE_URL", None)
os.environ["PASSWORD_HASH_ITERATIONS"] = "1000"

import mongomock
import pytest
from bson import ObjectId
from fastapi.testclient import TestClient

from database import create_document, get_db
from main import app
from schemas import Product


@pytest.fixture
def db():
    return mongomock.MongoClient()[f"brelis_test_{uuid.uuid4().hex[:8]}"]


@pytest.fixture
def client(db):
    app.dependency_overrides[get_db] = lambda: db
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


def auth(token):
    return {"Authorization": f"Bearer {token}"}


def register(client, email="asha@example.com", password="secret123", first_name="Asha", last_name="Rao"):
    res = client.post("/api/auth/register", json={
        "first_name": first_name,
        "last_name": last_name,
        "email": email,
        "password": password,
    })
    assert res.status_code == 201, res.text
    data = res.json()["data"]
    return data["token"], data["user"]["id"]


def set_coins(db, user_id, coins):
    db["user"].update_one({"_id": ObjectId(user_id)}, {"$set": {"coins": coins}})


def make_product(db, name="Shadow Hoodie", price=1000, stock=None, category="hoodies", **extra):
    sizes = stock if stock is not None else {"M": 10, "L": 10}
    product = Product(
        name=name,
        description=f"{name} for tests",
        category=category,
        base_price=price,
        sizes=[{"size": s, "stock": n, "price": price} for s, n in sizes.items()],
        **extra,
    )
    return create_document(db, "product", product)


def stock_of(db, product_id, size):
    doc = db["product"].find_one({"_id": ObjectId(product_id)})
    return next(s["stock"] for s in doc["sizes"] if s["size"] == size)


def coins_of(db, user_id):
    return db["user"].find_one({"_id": ObjectId(user_id)})["coins"]


@pytest.fixture
def user(client):
    token, user_id = register(client)
    return {"token": token, "id": user_id, "headers": auth(token)}


@pytest.fixture
def admin(client, db):
    token, user_id = register(client, email="admin@brelis.in", first_name="Store", last_name="Admin")
    db["user"].update_one({"_id": ObjectId(user_id)}, {"$set": {"role": "admin"}})
    return {"token": token, "id": user_id, "headers": auth(token)}


SHIPPING = {
    "first_name": "Asha",
    "last_name": "Rao",
    "phone": "9876543210",
    "street": "12 MG Road",
    "city": "Bengaluru",
    "state": "Karnataka",
    "zip_code": "560001",
}


def add_to_cart(client, headers, product_id, size="M", quantity=1):
    res = client.post("/api/cart", json={"product_id": product_id, "size": size, "quantity": quantity}, headers=headers)
    assert res.status_code == 200, res.text
    return res.json()["data"]["cart"]


def place_order(client, headers, payment_method="cod"):
    return client.post("/api/orders", json={"shipping_address": SHIPPING, "payment_method": payment_method}, headers=headers)
