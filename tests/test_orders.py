import pytest
from bson import ObjectId

import orders
from conftest import make_user


def test_cod_order_starts_cash_pending(client, db, cod_payload):
    res = client.post("/orders", json=cod_payload)
    assert res.status_code == 201
    body = res.json()
    assert body["ok"] is True
    assert body["data"]["status"] == "cod_pending"
    assert body["data"]["total"] == 2297

    stored = db["order"].find_one({"_id": ObjectId(body["data"]["id"])})
    assert stored["status"] == "cod_pending"
    assert stored["payment_method"] == "COD"
    assert stored["upi"] is None
    assert stored["user_id"] is None
    assert stored["items"][0]["variant"] == {"size": "M"}
    assert stored["created_at"] is not None


def test_upi_order_without_payer_name_is_rejected(client, db, upi_payload):
    upi_payload.pop("payerName")
    res = client.post("/orders", json=upi_payload)
    assert res.status_code == 400
    assert res.json() == {"ok": False, "message": "payer name required"}
    assert db["order"].count_documents({}) == 0


def test_upi_order_with_payer_name_awaits_verification(client, db, upi_payload):
    res = client.post("/orders", json=upi_payload)
    assert res.status_code == 201
    data = res.json()["data"]
    assert data["status"] == "pending_verification"
    assert data["total"] == 200

    stored = db["order"].find_one({"_id": ObjectId(data["id"])})
    assert stored["upi"] == {"payer_name": "A Kumar", "transaction_id": None, "paid_amount": None}


@pytest.mark.parametrize(
    "items, expected",
    [
        ([{"price": 100, "qty": 2}], 200),
        ([{"price": 19.99, "qty": 3}, {"price": 0.01, "qty": 1}], 59.98),
        ([{"price": 499, "quantity": 1}, {"price": 250.5, "qty": 2}], 1000.0),
    ],
)
def test_total_is_sum_of_line_items(client, db, cod_payload, items, expected):
    cod_payload["items"] = items
    cod_payload.pop("total")
    res = client.post("/orders", json=cod_payload)
    assert res.status_code == 201
    stored = db["order"].find_one({"_id": ObjectId(res.json()["data"]["id"])})
    assert stored["total"] == pytest.approx(expected)
    assert stored["total"] == pytest.approx(sum(i["price"] * i["qty"] for i in stored["items"]))


def test_total_that_disagrees_with_items_is_rejected(client, cod_payload):
    cod_payload["total"] = 10
    res = client.post("/orders", json=cod_payload)
    assert res.status_code == 400
    assert res.json()["message"] == "total does not match line items"


@pytest.mark.parametrize("field", ["name", "phone", "address"])
def test_blank_customer_field_is_rejected(client, cod_payload, field):
    cod_payload[field] = "   "
    res = client.post("/orders", json=cod_payload)
    assert res.status_code == 400
    assert res.json()["message"] == f"{field} is required"


def test_missing_customer_field_is_rejected(client, cod_payload):
    cod_payload.pop("phone")
    res = client.post("/orders", json=cod_payload)
    assert res.status_code == 400
    assert res.json()["ok"] is False
    assert "phone" in res.json()["message"]


def test_empty_cart_is_rejected(client, cod_payload):
    cod_payload["items"] = []
    cod_payload.pop("total")
    res = client.post("/orders", json=cod_payload)
    assert res.status_code == 400
    assert res.json()["message"] == "Cart is empty"


@pytest.mark.parametrize("method", ["Card", "cod", None])
def test_unknown_payment_method_is_rejected(client, cod_payload, method):
    cod_payload["paymentMethod"] = method
    res = client.post("/orders", json=cod_payload)
    assert res.status_code == 400
    assert res.json()["ok"] is False


def test_zero_quantity_is_rejected(client, cod_payload):
    cod_payload["items"] = [{"price": 10, "qty": 0}]
    cod_payload.pop("total")
    assert client.post("/orders", json=cod_payload).status_code == 400


def test_signed_in_checkout_records_user(client, db, customer, cod_payload):
    user_id, headers = customer
    res = client.post("/orders", json=cod_payload, headers=headers)
    order_id = res.json()["data"]["id"]
    assert db["order"].find_one({"_id": ObjectId(order_id)})["user_id"] == user_id

    mine = client.get("/orders/mine", headers=headers).json()["data"]
    assert [o["id"] for o in mine] == [order_id]


def test_bad_token_on_checkout_is_rejected(client, cod_payload):
    res = client.post("/orders", json=cod_payload, headers={"Authorization": "Bearer nope"})
    assert res.status_code == 401


def test_items_are_a_snapshot(client, db, admin_headers, cod_payload):
    product = client.post(
        "/admin/products", json={"title": "Classic Crew Tee", "price": 499}, headers=admin_headers
    ).json()["data"]
    cod_payload["items"] = [{"id": product["id"], "title": "Classic Crew Tee", "price": 499, "qty": 1}]
    cod_payload["total"] = 499
    order_id = client.post("/orders", json=cod_payload).json()["data"]["id"]

    client.put(f"/admin/products/{product['id']}", json={"price": 899, "title": "Renamed Tee"}, headers=admin_headers)

    detail = client.get(f"/orders/{order_id}").json()["data"]
    assert detail["items"][0]["price"] == 499
    assert detail["items"][0]["title"] == "Classic Crew Tee"
    assert detail["totals"]["total"] == 499


def test_repricing_uses_live_catalogue_price(client, db, admin_headers, cod_payload, monkeypatch):
    monkeypatch.setattr(orders, "ORDER_REPRICE", True)
    product = client.post(
        "/admin/products", json={"title": "Fleece Hoodie", "price": 1299}, headers=admin_headers
    ).json()["data"]
    cod_payload["items"] = [
        {"id": product["id"], "title": "tampered", "price": 1, "qty": 2},
        {"id": "freeform", "title": "Gift wrap", "price": 50, "qty": 1},
    ]
    cod_payload["total"] = 52
    res = client.post("/orders", json=cod_payload)
    assert res.status_code == 201
    assert res.json()["data"]["total"] == 2648

    stored = db["order"].find_one({"_id": ObjectId(res.json()["data"]["id"])})
    assert stored["items"][0]["title"] == "Fleece Hoodie"
    assert stored["items"][0]["price"] == 1299
    assert stored["items"][1]["price"] == 50


def test_detail_view_separates_shipping_and_items(client, cod_payload):
    order_id = client.post("/orders", json=cod_payload).json()["data"]["id"]
    detail = client.get(f"/orders/{order_id}").json()["data"]
    assert detail["id"] == order_id
    assert detail["paymentMethod"] == "COD"
    assert detail["shipping"] == {
        "name": "Asha",
        "phone": "9876543210",
        "address1": "12 MG Road",
        "address2": "",
        "city": "Pune",
        "state": "MH",
        "pincode": "411001",
    }
    assert detail["items"][0] == {
        "productId": "p1",
        "title": "Classic Crew Tee",
        "image": "/t.png",
        "price": 499.0,
        "qty": 2,
        "variant": {"size": "M"},
    }
    assert detail["upi"] is None
    assert detail["createdAt"].endswith("+00:00")


def test_detail_view_defaults_missing_fields(db):
    doc = {"_id": ObjectId(), "payment_method": "UPI", "items": [{"price": "12.5"}]}
    detail = orders.order_detail(doc)
    assert detail["status"] == "pending"
    assert detail["totals"] == {"total": 0.0}
    assert detail["shipping"]["city"] == ""
    assert detail["items"] == [{"productId": "", "title": "Item", "image": "", "price": 12.5, "qty": 0, "variant": None}]
    assert detail["upi"] == {"payerName": "", "transactionId": "", "paidAmount": None}
    assert detail["createdAt"] is None


def test_owned_order_hidden_from_other_users(client, db, customer, admin_headers, cod_payload):
    _, headers = customer
    order_id = client.post("/orders", json=cod_payload, headers=headers).json()["data"]["id"]
    _, other = make_user(db, "ravi@uni10.in")

    assert client.get(f"/orders/{order_id}", headers=other).status_code == 403
    assert client.get(f"/orders/{order_id}").status_code == 403
    assert client.get(f"/orders/{order_id}", headers=headers).status_code == 200
    assert client.get(f"/orders/{order_id}", headers=admin_headers).status_code == 200


def test_unknown_and_malformed_order_ids(client):
    assert client.get(f"/orders/{ObjectId()}").status_code == 404
    res = client.get("/orders/not-an-id")
    assert res.status_code == 404
    assert res.json() == {"ok": False, "message": "Order not found"}


def test_admin_order_list(client, customer, admin_headers, cod_payload, upi_payload):
    client.post("/orders", json=cod_payload)
    client.post("/orders", json=upi_payload)
    _, headers = customer

    assert client.get("/orders", headers=headers).status_code == 403

    everything = client.get("/orders", headers=admin_headers).json()["data"]
    assert len(everything) == 2
    waiting = client.get("/orders", params={"status": "pending_verification"}, headers=admin_headers).json()["data"]
    assert [o["paymentMethod"] for o in waiting] == ["UPI"]
    assert client.get("/orders", params={"status": "lost"}, headers=admin_headers).status_code == 400
