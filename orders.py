"""
Order workflow: checkout, status transitions, UPI proof and the detail view.

Orders hold copies of everything they need (customer details, item price and
title). Nothing here reads the catalogue after an order is stored.

Status changes overwrite the `status` field by id. Two admins acting on the
same order at once is last-write-wins; no version token is kept.
"""
import logging
import os
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from fastapi import APIRouter, Body, Depends, HTTPException, Query
from pydantic import AliasChoices, BaseModel, Field, field_validator, model_validator

from auth import get_current_user, get_optional_user, is_admin, require_admin
from database import as_utc, create_document, get_db, to_object_id, utcnow
from schemas import Order as OrderSchema, OrderItem, OrderStatus, UpiProof

logger = logging.getLogger(__name__)

ORDER_REPRICE = os.getenv("ORDER_REPRICE", "").strip().lower() in ("1", "true", "yes")

router = APIRouter(prefix="/orders", tags=["orders"])


# ----------------------- Status machine -----------------------
TRANSITIONS = {
    OrderStatus.PENDING: {OrderStatus.PAID, OrderStatus.SHIPPED, OrderStatus.DELIVERED, OrderStatus.CANCELLED},
    OrderStatus.COD_PENDING: {OrderStatus.SHIPPED, OrderStatus.DELIVERED, OrderStatus.CANCELLED},
    OrderStatus.PENDING_VERIFICATION: {OrderStatus.PAID, OrderStatus.CANCELLED},
    OrderStatus.PAID: {OrderStatus.SHIPPED, OrderStatus.CANCELLED},
    OrderStatus.SHIPPED: {OrderStatus.DELIVERED, OrderStatus.CANCELLED},
    OrderStatus.DELIVERED: set(),
    OrderStatus.CANCELLED: set(),
}

TERMINAL_STATUSES = frozenset(s for s, targets in TRANSITIONS.items() if not targets)

STATUS_ALIASES = {"verified": OrderStatus.PAID}

# Customers may only submit UPI proof while the payment is still unverified
PROOF_OPEN_STATUSES = frozenset({OrderStatus.PENDING, OrderStatus.PENDING_VERIFICATION})


class TransitionError(ValueError):
    pass


def parse_status(value) -> OrderStatus:
    if isinstance(value, OrderStatus):
        return value
    key = str(value or "").strip().lower()
    if key in STATUS_ALIASES:
        return STATUS_ALIASES[key]
    return OrderStatus(key)


def stored_status(order: dict) -> OrderStatus:
    # Unrecognised values from older data count as the generic pending state
    try:
        return parse_status(order.get("status"))
    except ValueError:
        return OrderStatus.PENDING


def initial_status(payment_method: str) -> OrderStatus:
    if payment_method == "UPI":
        return OrderStatus.PENDING_VERIFICATION
    return OrderStatus.COD_PENDING


def next_status(current, requested) -> OrderStatus:
    """Return the status to store, or raise TransitionError.

    Asking for the current status again is allowed and changes nothing.
    """
    current = parse_status(current)
    requested = parse_status(requested)
    if requested == current:
        return current
    if requested not in TRANSITIONS[current]:
        raise TransitionError(f"Cannot change order status from {current.value} to {requested.value}")
    return requested


# ----------------------- Request models -----------------------
class CheckoutItem(BaseModel):
    product_id: str = Field("", validation_alias=AliasChoices("id", "productId", "product_id"))
    title: Optional[str] = ""
    price: float = Field(..., ge=0)
    qty: int = Field(..., ge=1, validation_alias=AliasChoices("qty", "quantity"))
    image: Optional[str] = ""
    variant: Optional[Dict[str, Any]] = None

    @field_validator("product_id", mode="before")
    @classmethod
    def id_as_text(cls, v):
        return "" if v is None else str(v)


def items_total(items) -> float:
    return round(sum(it.price * it.qty for it in items), 2)


class CheckoutBase(BaseModel):
    name: str
    phone: str
    address: str
    city: str = ""
    state: str = ""
    pincode: str = ""
    items: List[CheckoutItem]
    total: Optional[float] = None

    @field_validator("name", "phone", "address")
    @classmethod
    def required_text(cls, v, info):
        v = v.strip()
        if not v:
            raise ValueError(f"{info.field_name} is required")
        return v

    @field_validator("items")
    @classmethod
    def cart_not_empty(cls, v):
        if not v:
            raise ValueError("Cart is empty")
        return v

    @model_validator(mode="after")
    def total_matches_items(self):
        if self.total is not None and abs(self.total - items_total(self.items)) > 0.009:
            raise ValueError("total does not match line items")
        return self


class CodCheckout(CheckoutBase):
    payment_method: Literal["COD"] = Field(alias="paymentMethod")


class UpiCheckout(CheckoutBase):
    payment_method: Literal["UPI"] = Field(alias="paymentMethod")
    payer_name: str = Field("", alias="payerName")
    transaction_id: Optional[str] = Field(None, alias="transactionId")

    @model_validator(mode="after")
    def payer_required(self):
        if not self.payer_name.strip():
            raise ValueError("payer name required")
        return self


CheckoutBody = Annotated[Union[CodCheckout, UpiCheckout], Body(discriminator="payment_method")]


class UpiProofBody(BaseModel):
    transaction_id: Optional[str] = Field(None, alias="transactionId")
    payer_name: Optional[str] = Field(None, alias="payerName")
    paid_amount: Optional[float] = Field(None, alias="paidAmount", ge=0)


class OrderUpdateBody(BaseModel):
    status: Optional[str] = None
    upi: Optional[UpiProofBody] = None
    name: Optional[str] = None
    phone: Optional[str] = None
    address: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    pincode: Optional[str] = None


SHIPPING_FIELDS = ("name", "phone", "address", "city", "state", "pincode")
REQUIRED_SHIPPING_FIELDS = ("name", "phone", "address")


# ----------------------- Creation -----------------------
def reprice_items(db, items: List[OrderItem]) -> List[OrderItem]:
    """Swap in the live catalogue price and title for items that name a product."""
    repriced = []
    for it in items:
        product = None
        if it.product_id:
            try:
                product = db["product"].find_one({"_id": to_object_id(it.product_id), "active": True})
            except HTTPException:
                product = None
        if product:
            it = it.model_copy(update={"price": float(product.get("price", it.price)), "title": product.get("title") or it.title})
        repriced.append(it)
    return repriced


def build_order(db, body: Union[CodCheckout, UpiCheckout], user: Optional[dict]) -> OrderSchema:
    items = [
        OrderItem(
            product_id=it.product_id,
            title=(it.title or "").strip(),
            price=it.price,
            qty=it.qty,
            image=it.image or "",
            variant=it.variant,
        )
        for it in body.items
    ]
    if ORDER_REPRICE:
        items = reprice_items(db, items)

    upi = None
    if body.payment_method == "UPI":
        upi = UpiProof(payer_name=body.payer_name.strip(), transaction_id=body.transaction_id or None)

    return OrderSchema(
        user_id=user["id"] if user else None,
        name=body.name,
        phone=body.phone,
        address=body.address,
        city=body.city.strip(),
        state=body.state.strip(),
        pincode=body.pincode.strip(),
        payment_method=body.payment_method,
        items=items,
        total=items_total(items),
        status=initial_status(body.payment_method),
        upi=upi,
    )


# ----------------------- Detail view -----------------------
def _iso(value):
    return as_utc(value).isoformat() if value else None


def order_detail(doc: dict) -> dict:
    """Reshape a stored order for display; missing fields become empty values."""
    items = doc.get("items") if isinstance(doc.get("items"), list) else []
    detail = {
        "id": str(doc["_id"]),
        "userId": str(doc["user_id"]) if doc.get("user_id") else None,
        "createdAt": _iso(doc.get("created_at")),
        "updatedAt": _iso(doc.get("updated_at")),
        "status": doc.get("status") or OrderStatus.PENDING.value,
        "paymentMethod": doc.get("payment_method") or "COD",
        "totals": {"total": float(doc.get("total") or 0)},
        "shipping": {
            "name": doc.get("name") or "",
            "phone": doc.get("phone") or "",
            "address1": doc.get("address") or "",
            "address2": "",
            "city": doc.get("city") or "",
            "state": doc.get("state") or "",
            "pincode": doc.get("pincode") or "",
        },
        "items": [
            {
                "productId": it.get("product_id") or it.get("id") or "",
                "title": it.get("title") or it.get("name") or "Item",
                "image": it.get("image") or "",
                "price": float(it.get("price") or 0),
                "qty": int(it.get("qty") or 0),
                "variant": it.get("variant") or None,
            }
            for it in items
        ],
        "upi": None,
    }
    if detail["paymentMethod"] == "UPI":
        upi = doc.get("upi") or {}
        detail["upi"] = {
            "payerName": upi.get("payer_name") or "",
            "transactionId": upi.get("transaction_id") or "",
            "paidAmount": upi.get("paid_amount"),
        }
    return detail


# ----------------------- Helpers -----------------------
def load_order(db, order_id: str) -> dict:
    order = db["order"].find_one({"_id": to_object_id(order_id, "Order")})
    if not order:
        raise HTTPException(status_code=404, detail="Order not found")
    return order


def ensure_can_access(order: dict, user: Optional[dict]):
    if is_admin(user) or not order.get("user_id"):
        return
    if not user or user["id"] != str(order["user_id"]):
        raise HTTPException(status_code=403, detail="Not allowed")


def upi_updates(order: dict, proof: UpiProofBody) -> dict:
    if order.get("payment_method") != "UPI":
        raise HTTPException(status_code=400, detail="UPI proof only applies to UPI orders")
    updates = {}
    if proof.transaction_id is not None:
        updates["upi.transaction_id"] = proof.transaction_id.strip()
    if proof.payer_name is not None:
        updates["upi.payer_name"] = proof.payer_name.strip()
    if proof.paid_amount is not None:
        updates["upi.paid_amount"] = proof.paid_amount
    return updates


def save_updates(db, order: dict, updates: dict) -> dict:
    updates["updated_at"] = utcnow()
    db["order"].update_one({"_id": order["_id"]}, {"$set": updates})
    return db["order"].find_one({"_id": order["_id"]})


# ----------------------- Routes -----------------------
@router.post("", status_code=201)
def create_order(body: CheckoutBody, db=Depends(get_db), user=Depends(get_optional_user)):
    order = build_order(db, body, user)
    order_id = create_document(db, "order", order)
    logger.info("Order %s created: %s %.2f (%s)", order_id, order.payment_method, order.total, order.status)
    return {"ok": True, "data": {"id": order_id, "total": order.total, "status": order.status}}


@router.get("/mine")
def my_orders(db=Depends(get_db), user=Depends(get_current_user)):
    docs = db["order"].find({"user_id": user["id"]}).sort("created_at", -1)
    return {"ok": True, "data": [order_detail(d) for d in docs]}


@router.get("")
def list_orders(
    status: Optional[str] = None,
    limit: int = Query(100, ge=1, le=500),
    db=Depends(get_db),
    admin=Depends(require_admin),
):
    filt = {}
    if status:
        try:
            filt["status"] = parse_status(status).value
        except ValueError:
            raise HTTPException(status_code=400, detail="Invalid status")
    docs = db["order"].find(filt).sort("created_at", -1).limit(limit)
    return {"ok": True, "data": [order_detail(d) for d in docs]}


@router.get("/{order_id}")
def get_order(order_id: str, db=Depends(get_db), user=Depends(get_optional_user)):
    order = load_order(db, order_id)
    ensure_can_access(order, user)
    return {"ok": True, "data": order_detail(order)}


@router.put("/{order_id}/upi")
def attach_upi_proof(order_id: str, body: UpiProofBody, db=Depends(get_db), user=Depends(get_optional_user)):
    order = load_order(db, order_id)
    ensure_can_access(order, user)
    if not (body.transaction_id or "").strip():
        raise HTTPException(status_code=400, detail="transactionId is required")
    updates = upi_updates(order, body)
    status = stored_status(order)
    if status not in PROOF_OPEN_STATUSES:
        raise HTTPException(status_code=409, detail=f"Order is {status.value}")
    updated = save_updates(db, order, updates)
    logger.info("UPI proof attached to order %s", order_id)
    return {"ok": True, "data": order_detail(updated)}


@router.put("/{order_id}")
def update_order(order_id: str, body: OrderUpdateBody, db=Depends(get_db), admin=Depends(require_admin)):
    order = load_order(db, order_id)
    updates = {}
    for field in SHIPPING_FIELDS:
        value = getattr(body, field)
        if value is None:
            continue
        value = value.strip()
        if not value and field in REQUIRED_SHIPPING_FIELDS:
            raise HTTPException(status_code=400, detail=f"{field} is required")
        updates[field] = value
    if body.upi is not None:
        updates.update(upi_updates(order, body.upi))
    if body.status is not None:
        try:
            updates["status"] = next_status(stored_status(order), body.status).value
        except TransitionError as e:
            raise HTTPException(status_code=409, detail=str(e))
        except ValueError:
            raise HTTPException(status_code=400, detail="Invalid status")
    if not updates:
        raise HTTPException(status_code=400, detail="No updates provided")

    updated = save_updates(db, order, updates)
    if "status" in updates and updates["status"] != order.get("status"):
        logger.info("Order %s status %s -> %s by %s", order_id, order.get("status"), updates["status"], admin["id"])
    return {"ok": True, "data": order_detail(updated)}
