from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field
from pymongo.errors import DuplicateKeyError

from auth import get_current_user
from database import create_document, get_db, serialize_doc, to_object_id
from schemas import WishlistItem

router = APIRouter(prefix="/wishlist", tags=["wishlist"])


class WishlistBody(BaseModel):
    productId: str = Field(..., min_length=1)


@router.get("")
def get_wishlist(db=Depends(get_db), user=Depends(get_current_user)):
    items = db["wishlist"].find({"user_id": user["id"]}).sort("created_at", -1)
    return {"ok": True, "data": [serialize_doc(i) for i in items]}


@router.post("", status_code=201)
def add_to_wishlist(body: WishlistBody, db=Depends(get_db), user=Depends(get_current_user)):
    product_id = body.productId.strip()
    if not db["product"].find_one({"_id": to_object_id(product_id, "Product")}):
        raise HTTPException(status_code=404, detail="Product not found")
    try:
        item_id = create_document(db, "wishlist", WishlistItem(user_id=user["id"], product_id=product_id))
    except DuplicateKeyError:
        raise HTTPException(status_code=409, detail="Already in wishlist")
    return {"ok": True, "data": {"id": item_id, "product_id": product_id}}


@router.delete("/{product_id}")
def remove_from_wishlist(product_id: str, db=Depends(get_db), user=Depends(get_current_user)):
    res = db["wishlist"].delete_one({"user_id": user["id"], "product_id": product_id})
    if res.deleted_count == 0:
        raise HTTPException(status_code=404, detail="Not in wishlist")
    return {"ok": True}
