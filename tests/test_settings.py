import time


def test_settings_require_admin(client, user):
    assert client.get("/api/settings", headers=user["headers"]).status_code == 403
    assert client.get("/api/settings").status_code == 401


def test_defaults_with_secrets_hidden(client, admin):
    settings = client.get("/api/settings", headers=admin["headers"]).json()["data"]["settings"]
    assert settings["general"]["store_name"] == "BRELIS Streetwear"
    assert settings["payment"]["min_order_amount"] == 100
    assert settings["security"]["session_timeout"] == 604800
    assert settings["email"]["email_pass"] == "[HIDDEN]"
    assert settings["system"]["cloudinary_api_secret"] == "[HIDDEN]"


def test_section_update_merges_and_persists(client, db, admin):
    res = client.put("/api/settings/general", json={"store_name": "BRELIS Drop"}, headers=admin["headers"])
    assert res.status_code == 200
    data = res.json()["data"]
    assert data["section"] == "general"
    assert data["settings"]["store_name"] == "BRELIS Drop"
    assert data["settings"]["city"] == "Mumbai"

    stored = db["settings"].find_one({"_id": "store"})
    assert stored["general"]["store_name"] == "BRELIS Drop"
    assert stored["updated_by"] == "admin@brelis.in"


def test_unknown_field_rejected(client, admin):
    res = client.put("/api/settings/payment", json={"paypal_enabled": True}, headers=admin["headers"])
    assert res.status_code == 400
    assert res.json()["message"].startswith("Invalid payment settings")


def test_bad_enum_value_rejected(client, admin):
    res = client.put("/api/settings/general", json={"currency": "GBP"}, headers=admin["headers"])
    assert res.status_code == 400


def test_unknown_section_rejected(client, admin):
    assert client.get("/api/settings/shipping", headers=admin["headers"]).status_code == 400
    res = client.put("/api/settings", json={"shipping": {"flat_rate": 10}}, headers=admin["headers"])
    assert res.status_code == 400


def test_bulk_update_is_all_or_nothing(client, db, admin):
    res = client.put(
        "/api/settings",
        json={"general": {"store_name": "New Name"}, "email": {"email_port": 0}},
        headers=admin["headers"],
    )
    assert res.status_code == 400
    settings = client.get("/api/settings", headers=admin["headers"]).json()["data"]["settings"]
    assert settings["general"]["store_name"] == "BRELIS Streetwear"


def test_empty_bulk_update_rejected(client, admin):
    res = client.put("/api/settings", json={}, headers=admin["headers"])
    assert res.status_code == 400
    assert res.json()["message"] == "No settings to update"


def test_hidden_placeholder_keeps_secret(client, db, admin):
    client.put("/api/settings/email", json={"email_user": "shop@brelis.in", "email_pass": "app-pass"}, headers=admin["headers"])
    client.put("/api/settings/email", json={"email_pass": "[HIDDEN]", "email_port": 465}, headers=admin["headers"])
    stored = db["settings"].find_one({"_id": "store"})["email"]
    assert stored["email_pass"] == "app-pass"
    assert stored["email_port"] == 465


def test_export_then_import_keeps_secrets(client, db, admin):
    client.put("/api/settings/system", json={"cloudinary_api_secret": "cloud-secret"}, headers=admin["headers"])
    exported = client.get("/api/settings/export", headers=admin["headers"]).json()["data"]["settings"]
    exported["general"]["store_name"] = "Imported Store"

    res = client.post("/api/settings/import", json={"settings": exported}, headers=admin["headers"])
    assert res.status_code == 200, res.text
    stored = db["settings"].find_one({"_id": "store"})
    assert stored["general"]["store_name"] == "Imported Store"
    assert stored["system"]["cloudinary_api_secret"] == "cloud-secret"


def test_import_without_sections_rejected(client, admin):
    res = client.post("/api/settings/import", json={"settings": {"nothing": 1}}, headers=admin["headers"])
    assert res.status_code == 400
    assert res.json()["message"] == "Invalid import data"


def test_reset_one_section(client, admin):
    client.put("/api/settings/general", json={"store_name": "Temp"}, headers=admin["headers"])
    client.put("/api/settings/payment", json={"cod_enabled": False}, headers=admin["headers"])
    res = client.post("/api/settings/reset", json={"section": "general"}, headers=admin["headers"])
    assert res.json()["message"] == "general settings reset to defaults"
    settings = res.json()["data"]["settings"]
    assert settings["general"]["store_name"] == "BRELIS Streetwear"
    assert settings["payment"]["cod_enabled"] is False


def test_reset_everything(client, admin):
    client.put("/api/settings/payment", json={"cod_enabled": False}, headers=admin["headers"])
    res = client.post("/api/settings/reset", headers=admin["headers"])
    assert res.json()["message"] == "All settings reset to defaults"
    assert res.json()["data"]["settings"]["payment"]["cod_enabled"] is True


def test_phonepe_connection_needs_credentials(client, admin):
    res = client.post("/api/settings/test-connection", json={"type": "phonepe"}, headers=admin["headers"])
    assert res.status_code == 400
    assert res.json()["message"] == "PhonePe merchant id and key are not configured"

    client.put(
        "/api/settings/payment",
        json={"phonepe_merchant_id": "M123", "phonepe_merchant_key": "key"},
        headers=admin["headers"],
    )
    res = client.post("/api/settings/test-connection", json={"type": "phonepe"}, headers=admin["headers"])
    assert res.json()["data"] == {"type": "phonepe", "connected": True}


def test_session_timeout_controls_token_lifetime(client, db, admin):
    client.put("/api/settings/security", json={"session_timeout": 3600}, headers=admin["headers"])
    before = time.time()
    res = client.post("/api/auth/login", json={"email": "admin@brelis.in", "password": "secret123"})
    assert res.status_code == 200
    shortest = db["session"].find_one({}, sort=[("expires_at", 1)])
    assert before + 3590 <= shortest["expires_at"] <= time.time() + 3600
