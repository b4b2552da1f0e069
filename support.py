import logging
from typing import Literal, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field

from auth import get_current_user, is_admin, require_admin
from database import create_document, get_db, serialize_doc, to_object_id, utcnow
from schemas import SupportTicket, TicketReply

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/support", tags=["support"])

TicketStatus = Literal["open", "pending", "closed"]


class TicketCreateBody(BaseModel):
    subject: str
    message: str
    orderId: Optional[str] = None
    productId: Optional[str] = None


class ReplyBody(BaseModel):
    message: str = Field(..., min_length=1)


class TicketUpdateBody(BaseModel):
    status: Optional[TicketStatus] = None
    reply: Optional[str] = None


def load_ticket(db, ticket_id: str) -> dict:
    ticket = db["supportticket"].find_one({"_id": to_object_id(ticket_id, "Ticket")})
    if not ticket:
        raise HTTPException(status_code=404, detail="Ticket not found")
    return ticket


def ensure_ticket_access(ticket: dict, user: dict):
    if not is_admin(user) and ticket.get("user_id") != user["id"]:
        raise HTTPException(status_code=403, detail="Not allowed")


def reply_entry(author_id: str, message: str) -> dict:
    reply = TicketReply(author_id=author_id, message=message.strip())
    return {**reply.model_dump(), "created_at": utcnow()}


@router.post("/tickets", status_code=201)
def create_ticket(body: TicketCreateBody, db=Depends(get_db), user=Depends(get_current_user)):
    subject, message = body.subject.strip(), body.message.strip()
    if not subject or not message:
        raise HTTPException(status_code=400, detail="Subject and message are required")
    if body.orderId:
        if not db["order"].find_one({"_id": to_object_id(body.orderId, "Order")}):
            raise HTTPException(status_code=404, detail="Order not found")
    if body.productId:
        if not db["product"].find_one({"_id": to_object_id(body.productId, "Product")}):
            raise HTTPException(status_code=404, detail="Product not found")
    ticket = SupportTicket(
        user_id=user["id"],
        subject=subject,
        message=message,
        order_id=body.orderId,
        product_id=body.productId,
    )
    ticket_id = create_document(db, "supportticket", ticket)
    logger.info("Support ticket %s opened by %s", ticket_id, user["id"])
    return {"ok": True, "data": serialize_doc(db["supportticket"].find_one({"_id": to_object_id(ticket_id)}))}


@router.get("/tickets")
def my_tickets(db=Depends(get_db), user=Depends(get_current_user)):
    docs = db["supportticket"].find({"user_id": user["id"]}).sort("created_at", -1)
    return {"ok": True, "data": [serialize_doc(d) for d in docs]}


@router.get("/tickets/{ticket_id}")
def get_ticket(ticket_id: str, db=Depends(get_db), user=Depends(get_current_user)):
    ticket = load_ticket(db, ticket_id)
    ensure_ticket_access(ticket, user)
    return {"ok": True, "data": serialize_doc(ticket)}


@router.post("/tickets/{ticket_id}/replies")
def add_reply(ticket_id: str, body: ReplyBody, db=Depends(get_db), user=Depends(get_current_user)):
    ticket = load_ticket(db, ticket_id)
    ensure_ticket_access(ticket, user)
    if not body.message.strip():
        raise HTTPException(status_code=400, detail="Reply cannot be empty")
    db["supportticket"].update_one(
        {"_id": ticket["_id"]},
        {"$push": {"replies": reply_entry(user["id"], body.message)}, "$set": {"updated_at": utcnow()}},
    )
    return {"ok": True, "data": serialize_doc(db["supportticket"].find_one({"_id": ticket["_id"]}))}


@router.get("/admin/tickets")
def admin_list_tickets(status: Optional[TicketStatus] = None, db=Depends(get_db), admin=Depends(require_admin)):
    filt = {"status": status} if status else {}
    docs = db["supportticket"].find(filt).sort("created_at", -1)
    return {"ok": True, "data": [serialize_doc(d) for d in docs]}


@router.get("/admin/tickets/{ticket_id}")
def admin_get_ticket(ticket_id: str, db=Depends(get_db), admin=Depends(require_admin)):
    return {"ok": True, "data": serialize_doc(load_ticket(db, ticket_id))}


@router.put("/admin/tickets/{ticket_id}")
def admin_update_ticket(ticket_id: str, body: TicketUpdateBody, db=Depends(get_db), admin=Depends(require_admin)):
    ticket = load_ticket(db, ticket_id)
    reply = (body.reply or "").strip()
    if not reply and (body.status is None or body.status == ticket.get("status")):
        raise HTTPException(status_code=400, detail="Please add a reply or change the status")
    update = {"$set": {"updated_at": utcnow()}}
    if body.status is not None:
        update["$set"]["status"] = body.status
    if reply:
        update["$push"] = {"replies": reply_entry(admin["id"], reply)}
    db["supportticket"].update_one({"_id": ticket["_id"]}, update)
    logger.info("Ticket %s updated by %s", ticket_id, admin["id"])
    return {"ok": True, "data": serialize_doc(db["supportticket"].find_one({"_id": ticket["_id"]}))}
