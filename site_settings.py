import logging
import os
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, ConfigDict, Field
from pymongo import ReturnDocument
from pymongo.errors import DuplicateKeyError

from auth import require_admin
from database import get_db, serialize_doc, utcnow
from schemas import SiteSetting

logger = logging.getLogger(__name__)

SITE_DOMAIN = os.getenv("SITE_DOMAIN", "www.uni10.in")

router = APIRouter(tags=["settings"])


class PaymentSettingsUpdate(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    upi_qr_image: Optional[str] = Field(None, alias="upiQrImage")
    upi_id: Optional[str] = Field(None, alias="upiId")
    beneficiary_name: Optional[str] = Field(None, alias="beneficiaryName")
    instructions: Optional[str] = None


class ShiprocketSettingsUpdate(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    enabled: Optional[bool] = None
    email: Optional[str] = None
    password: Optional[str] = None
    api_key: Optional[str] = Field(None, alias="apiKey")
    secret: Optional[str] = None
    channel_id: Optional[str] = Field(None, alias="channelId")


class SettingsUpdateBody(BaseModel):
    payment: Optional[PaymentSettingsUpdate] = None
    shiprocket: Optional[ShiprocketSettingsUpdate] = None


def load_settings(db, domain: str = SITE_DOMAIN) -> dict:
    """Return the settings document for `domain`, creating it with defaults on first access."""
    defaults = SiteSetting(domain=domain).model_dump(exclude={"domain"})
    now = utcnow()
    try:
        return db["sitesetting"].find_one_and_update(
            {"domain": domain},
            {"$setOnInsert": {**defaults, "created_at": now, "updated_at": now}},
            upsert=True,
            return_document=ReturnDocument.AFTER,
        )
    except DuplicateKeyError:
        # Another request inserted it first
        return db["sitesetting"].find_one({"domain": domain})


def payment_view(doc: dict) -> dict:
    payment = doc.get("payment") or {}
    return {
        "upiQrImage": payment.get("upi_qr_image", ""),
        "upiId": payment.get("upi_id", ""),
        "beneficiaryName": payment.get("beneficiary_name", ""),
        "instructions": payment.get("instructions", ""),
    }


def settings_view(doc: dict) -> dict:
    out = serialize_doc(doc)
    shiprocket = (doc.get("shipping") or {}).get("shiprocket") or {}
    out["payment"] = payment_view(doc)
    out["shipping"] = {
        "shiprocket": {
            "enabled": bool(shiprocket.get("enabled", False)),
            "email": shiprocket.get("email", ""),
            "password": shiprocket.get("password", ""),
            "apiKey": shiprocket.get("api_key", ""),
            "secret": shiprocket.get("secret", ""),
            "channelId": shiprocket.get("channel_id", ""),
        }
    }
    return out


@router.get("/settings/payment")
def get_payment_settings(db=Depends(get_db)):
    return {"ok": True, "data": payment_view(load_settings(db))}


@router.get("/admin/settings")
def get_settings(db=Depends(get_db), admin=Depends(require_admin)):
    return {"ok": True, "data": settings_view(load_settings(db))}


@router.put("/admin/settings")
def update_settings(body: SettingsUpdateBody, db=Depends(get_db), admin=Depends(require_admin)):
    updates = {}
    if body.payment is not None:
        for key, value in body.payment.model_dump(exclude_none=True).items():
            updates[f"payment.{key}"] = value
    if body.shiprocket is not None:
        for key, value in body.shiprocket.model_dump(exclude_none=True).items():
            updates[f"shipping.shiprocket.{key}"] = value
    if not updates:
        raise HTTPException(status_code=400, detail="No updates provided")

    doc = load_settings(db)
    updates["updated_at"] = utcnow()
    db["sitesetting"].update_one({"_id": doc["_id"]}, {"$set": updates})
    logger.info("Site settings updated for %s: %s", doc["domain"], sorted(updates))
    return {"ok": True, "data": settings_view(db["sitesetting"].find_one({"_id": doc["_id"]}))}
