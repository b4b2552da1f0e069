from fastapi.testclient import TestClient

from database import get_db
from main import app, validation_message


def test_root_and_health(client):
    assert client.get("/").status_code == 200
    health = client.get("/test").json()
    assert health["backend"] == "✅ Running"


def test_missing_database_is_reported():
    app.dependency_overrides.clear()
    res = TestClient(app).get("/categories")
    assert res.status_code == 500
    assert res.json() == {"ok": False, "message": "Database not configured"}


def test_unexpected_errors_use_the_envelope():
    class BrokenDb:
        def __getitem__(self, name):
            raise RuntimeError("connection reset")

    app.dependency_overrides[get_db] = lambda: BrokenDb()
    try:
        res = TestClient(app, raise_server_exceptions=False).get("/categories")
    finally:
        app.dependency_overrides.clear()
    assert res.status_code == 500
    assert res.json() == {"ok": False, "message": "Server error"}


def test_unknown_route_uses_the_envelope(client):
    res = client.get("/nowhere")
    assert res.status_code == 404
    assert res.json()["ok"] is False


def test_validation_message_formatting():
    assert validation_message([]) == "Invalid request"
    assert validation_message([{"type": "value_error", "msg": "Value error, payer name required", "loc": ("body",)}]) == (
        "payer name required"
    )
    assert validation_message([{"type": "missing", "msg": "Field required", "loc": ("body", "COD", "phone")}]) == (
        "COD.phone: Field required"
    )


def test_seed_is_idempotent(client, db):
    res = client.post("/seed")
    assert res.json()["data"]["seeded"] is True
    assert db["user"].count_documents({"role": "admin"}) == 1
    summer = db["category"].find_one({"name": "Summer Wear!"})
    assert summer["slug"] == "summer-wear"
    tee = db["product"].find_one({"slug": "classic-crew-tee"})
    assert tee["sizes"] == ["S", "M", "L", "XL"]
    assert tee["image_url"] == tee["images"][0]

    assert client.post("/seed").json()["data"]["seeded"] is False
