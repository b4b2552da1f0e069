import mongomock
import pytest
from fastapi.testclient import TestClient

import auth
from database import create_document, ensure_indexes, get_db
from main import app
from schemas import User


def make_user(db, email, role="user", name="Test User"):
    user = User(name=name, email=email, password_hash=auth.hash_password("secret123"), role=role)
    user_id = create_document(db, "user", user)
    token = auth.create_token({"id": user_id, "email": email, "role": role})
    return user_id, {"Authorization": f"Bearer {token}"}


@pytest.fixture
def db():
    mdb = mongomock.MongoClient()["storefront_test"]
    ensure_indexes(mdb)
    return mdb


@pytest.fixture
def client(db):
    app.dependency_overrides[get_db] = lambda: db
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def admin_headers(db):
    return make_user(db, "admin@uni10.in", role="admin", name="Admin")[1]


@pytest.fixture
def customer(db):
    return make_user(db, "asha@uni10.in", name="Asha")


@pytest.fixture
def cod_payload():
    return {
        "name": "Asha",
        "phone": "9876543210",
        "address": "12 MG Road",
        "city": "Pune",
        "state": "MH",
        "pincode": "411001",
        "paymentMethod": "COD",
        "items": [
            {"id": "p1", "title": "Classic Crew Tee", "price": 499, "qty": 2, "image": "/t.png", "variant": {"size": "M"}},
            {"id": "p2", "title": "Hoodie", "price": 1299, "qty": 1},
        ],
        "total": 2297,
    }


@pytest.fixture
def upi_payload():
    return {
        "name": "A",
        "phone": "999",
        "address": "X",
        "paymentMethod": "UPI",
        "payerName": "A Kumar",
        "items": [{"price": 100, "qty": 2}],
        "total": 200,
    }
