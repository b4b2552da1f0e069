from site_settings import load_settings


def test_settings_created_once_on_first_access(db):
    first = load_settings(db, "shop.test")
    second = load_settings(db, "shop.test")
    assert first["_id"] == second["_id"]
    assert db["sitesetting"].count_documents({}) == 1
    assert first["payment"]["instructions"].startswith("Scan QR and pay")
    assert first["shipping"]["shiprocket"]["channel_id"] == "TEST_CHANNEL_001"


def test_domains_are_separate(db):
    load_settings(db, "a.example")
    load_settings(db, "b.example")
    assert db["sitesetting"].count_documents({}) == 2


def test_public_payment_settings(client):
    res = client.get("/settings/payment")
    assert res.status_code == 200
    data = res.json()["data"]
    assert set(data) == {"upiQrImage", "upiId", "beneficiaryName", "instructions"}
    assert data["upiId"] == ""


def test_admin_updates_merge(client, admin_headers):
    res = client.put(
        "/admin/settings",
        json={"payment": {"upiId": "uni10@upi", "beneficiaryName": "Uni10 Apparel"}},
        headers=admin_headers,
    )
    assert res.status_code == 200
    payment = res.json()["data"]["payment"]
    assert payment["upiId"] == "uni10@upi"
    assert payment["beneficiaryName"] == "Uni10 Apparel"
    assert payment["instructions"].startswith("Scan QR and pay")

    res = client.put("/admin/settings", json={"shiprocket": {"enabled": False}}, headers=admin_headers)
    shiprocket = res.json()["data"]["shipping"]["shiprocket"]
    assert shiprocket["enabled"] is False
    assert shiprocket["apiKey"] == "ship_test_key_123456"

    assert client.get("/settings/payment").json()["data"]["upiId"] == "uni10@upi"


def test_settings_admin_guard_and_empty_update(client, customer, admin_headers):
    _, headers = customer
    assert client.get("/admin/settings", headers=headers).status_code == 403
    assert client.put("/admin/settings", json={}, headers=admin_headers).status_code == 400
