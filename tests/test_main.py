import smtplib

import pytest
from fastapi.testclient import TestClient

import mailer
from main import DEMO_PRODUCTS, app
from schemas import StoreSettings


class FakeSMTP:
    sent = []
    opened = []

    def __init__(self, host, port, timeout=None):
        self.host = host
        self.port = port
        self.closed = False
        FakeSMTP.opened.append(self)

    def starttls(self):
        pass

    def login(self, user, password):
        self.user = user

    def send_message(self, message):
        FakeSMTP.sent.append(message)

    def close(self):
        self.closed = True

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False


def test_root_and_health(client):
    assert client.get("/").json()["brand"] == "BRELIS"
    health = client.get("/health").json()
    assert health["status"] == "ok"
    assert health["database"] is False


def test_data_routes_answer_503_without_database():
    with TestClient(app) as plain:
        res = plain.get("/api/products")
    assert res.status_code == 503
    assert res.json() == {"success": False, "message": "Database not configured"}


def test_unknown_route_uses_error_envelope(client):
    res = client.get("/api/nothing-here")
    assert res.status_code == 404
    assert res.json()["success"] is False


def test_seed_runs_once(client, db):
    res = client.post("/api/seed")
    assert res.json()["data"]["count"] == len(DEMO_PRODUCTS)
    assert all(doc["sku"] for doc in db["product"].find({}))

    again = client.post("/api/seed")
    assert again.json()["message"] == "Already seeded"
    assert db["product"].count_documents({}) == len(DEMO_PRODUCTS)

    featured = client.get("/api/products/featured").json()["data"]["products"]
    assert {p["name"] for p in featured} == {"Shadow Oversized Hoodie", "Concrete Graphic Tee"}


def test_contact_message_sends_two_mails(client, monkeypatch):
    monkeypatch.setenv("EMAIL_USER", "shop@brelis.in")
    monkeypatch.setenv("EMAIL_PASS", "app-pass")
    monkeypatch.setattr(smtplib, "SMTP", FakeSMTP)
    FakeSMTP.sent = []

    res = client.post("/api/contact", json={
        "name": "Asha",
        "email": "asha@example.com",
        "subject": "Sizing",
        "message": "Does the hoodie run large?",
    })

    assert res.status_code == 200
    assert res.json()["message"] == "Thank you for your message. We will get back to you soon."
    assert [m["To"] for m in FakeSMTP.sent] == ["brelisbrelis1@gmail.com", "asha@example.com"]


def test_contact_message_validated(client):
    res = client.post("/api/contact", json={"name": "Asha", "email": "nope", "subject": "Hi", "message": "short"})
    assert res.status_code == 400
    fields = {e["field"] for e in res.json()["errors"]}
    assert fields == {"email", "message"}


def test_send_email_skips_when_unconfigured(monkeypatch):
    monkeypatch.delenv("EMAIL_USER", raising=False)
    monkeypatch.delenv("EMAIL_PASS", raising=False)

    assert mailer.send_email(StoreSettings(), "asha@example.com", "Hello", "<p>Hi</p>") is False


class RejectingSMTP(FakeSMTP):
    def login(self, user, password):
        raise smtplib.SMTPAuthenticationError(535, b"Username and Password not accepted")


def test_failed_login_closes_connection(monkeypatch):
    monkeypatch.setenv("EMAIL_USER", "shop@brelis.in")
    monkeypatch.setenv("EMAIL_PASS", "wrong")
    monkeypatch.setattr(smtplib, "SMTP", RejectingSMTP)
    FakeSMTP.opened = []

    assert mailer.send_email(StoreSettings(), "asha@example.com", "Hello", "<p>Hi</p>") is False
    assert [server.closed for server in FakeSMTP.opened] == [True]


def test_check_connection_raises_after_closing(monkeypatch):
    monkeypatch.setenv("EMAIL_USER", "shop@brelis.in")
    monkeypatch.setenv("EMAIL_PASS", "wrong")
    monkeypatch.setattr(smtplib, "SMTP", RejectingSMTP)
    FakeSMTP.opened = []

    with pytest.raises(smtplib.SMTPAuthenticationError):
        mailer.check_connection(StoreSettings().email)
    assert FakeSMTP.opened[0].closed is True
