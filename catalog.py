import logging
import re
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, Field
from pymongo.errors import DuplicateKeyError
from slugify import slugify

from auth import require_admin
from database import create_document, get_db, serialize_doc, to_object_id, utcnow
from schemas import Category as CategorySchema, Product as ProductSchema, normalize_sizes

logger = logging.getLogger(__name__)

router = APIRouter(tags=["catalog"])


# ----------------------- Models -----------------------
class CategoryCreateBody(BaseModel):
    name: str
    description: str = ""
    active: bool = True


class CategoryUpdateBody(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None
    active: Optional[bool] = None


class ProductCreateBody(BaseModel):
    title: str = ""
    price: float = 0
    category: Optional[str] = None
    categoryId: Optional[str] = None
    description: Optional[str] = None
    stock: int = 0
    image_url: Optional[str] = None
    images: Optional[List[str]] = None
    sizes: List[Any] = []
    attributes: Dict[str, Any] = {}
    active: bool = True


class ProductUpdateBody(BaseModel):
    title: Optional[str] = None
    slug: Optional[str] = None
    price: Optional[float] = Field(None, gt=0)
    category: Optional[str] = None
    categoryId: Optional[str] = None
    description: Optional[str] = None
    stock: Optional[int] = None
    image_url: Optional[str] = None
    images: Optional[List[str]] = None
    sizes: Optional[List[Any]] = None
    attributes: Optional[Dict[str, Any]] = None
    active: Optional[bool] = None


# ----------------------- Helpers -----------------------
def parse_active(value: Optional[str]) -> Optional[bool]:
    if value is None:
        return None
    value = value.strip().lower()
    if value in ("true", "1"):
        return True
    if value in ("false", "0"):
        return False
    return None


def category_filter(active: Optional[str], q: Optional[str]) -> dict:
    filt = {}
    flag = parse_active(active)
    if flag is not None:
        filt["active"] = flag
    if q and q.strip():
        pattern = re.escape(q.strip())
        filt["$or"] = [
            {"name": {"$regex": pattern, "$options": "i"}},
            {"slug": {"$regex": pattern, "$options": "i"}},
        ]
    return filt


def resolve_category_name(db, category_id: str) -> str:
    try:
        _id = to_object_id(category_id, "Category")
    except HTTPException:
        raise HTTPException(status_code=400, detail="Category not found")
    doc = db["category"].find_one({"_id": _id})
    if not doc:
        raise HTTPException(status_code=400, detail="Category not found")
    return doc["name"]


def find_product(db, id_or_slug: str) -> Optional[dict]:
    doc = db["product"].find_one({"slug": id_or_slug})
    if doc:
        return doc
    try:
        return db["product"].find_one({"_id": to_object_id(id_or_slug, "Product")})
    except HTTPException:
        return None


# ----------------------- Categories -----------------------
@router.get("/categories")
def list_categories(db=Depends(get_db)):
    docs = db["category"].find({"active": True}).sort("name", 1)
    return {"ok": True, "data": [serialize_doc(d) for d in docs]}


@router.get("/admin/categories")
def admin_list_categories(
    active: Optional[str] = None,
    q: Optional[str] = None,
    db=Depends(get_db),
    admin=Depends(require_admin),
):
    docs = db["category"].find(category_filter(active, q)).sort("name", 1)
    return {"ok": True, "data": [serialize_doc(d) for d in docs]}


@router.post("/admin/categories", status_code=201)
def create_category(body: CategoryCreateBody, db=Depends(get_db), admin=Depends(require_admin)):
    name = body.name.strip()
    if not name:
        raise HTTPException(status_code=400, detail="Name is required")
    category = CategorySchema(name=name, description=body.description.strip(), active=body.active)
    try:
        category_id = create_document(db, "category", category)
    except DuplicateKeyError:
        raise HTTPException(status_code=409, detail="Category already exists")
    logger.info("Category %s created (%s)", category.name, category_id)
    return {"ok": True, "data": serialize_doc(db["category"].find_one({"_id": to_object_id(category_id)}))}


@router.patch("/admin/categories/{category_id}")
def update_category(category_id: str, body: CategoryUpdateBody, db=Depends(get_db), admin=Depends(require_admin)):
    _id = to_object_id(category_id, "Category")
    updates = {}
    if body.name is not None:
        name = body.name.strip()
        if not name:
            raise HTTPException(status_code=400, detail="Name is required")
        updates["name"] = name
        updates["slug"] = slugify(name)
    if body.description is not None:
        updates["description"] = body.description.strip()
    if body.active is not None:
        updates["active"] = body.active
    if not updates:
        raise HTTPException(status_code=400, detail="No updates provided")
    updates["updated_at"] = utcnow()
    try:
        res = db["category"].update_one({"_id": _id}, {"$set": updates})
    except DuplicateKeyError:
        raise HTTPException(status_code=409, detail="Category already exists")
    if res.matched_count == 0:
        raise HTTPException(status_code=404, detail="Category not found")
    return {"ok": True, "data": serialize_doc(db["category"].find_one({"_id": _id}))}


@router.delete("/admin/categories/{category_id}")
def delete_category(category_id: str, db=Depends(get_db), admin=Depends(require_admin)):
    # Products keep their denormalized category name.
    _id = to_object_id(category_id, "Category")
    doc = db["category"].find_one_and_delete({"_id": _id})
    if not doc:
        raise HTTPException(status_code=404, detail="Category not found")
    logger.info("Category %s deleted", doc.get("name"))
    return {"ok": True, "data": serialize_doc(doc)}


# ----------------------- Products -----------------------
@router.get("/products")
def list_products(
    q: Optional[str] = None,
    category: Optional[str] = None,
    limit: int = Query(100, ge=1, le=500),
    db=Depends(get_db),
):
    filt = {"active": True}
    if q and q.strip():
        filt["title"] = {"$regex": re.escape(q.strip()), "$options": "i"}
    if category:
        filt["category"] = category
    items = db["product"].find(filt).limit(limit)
    return {"ok": True, "data": [serialize_doc(i) for i in items]}


@router.get("/products/{id_or_slug}")
def get_product(id_or_slug: str, db=Depends(get_db)):
    item = find_product(db, id_or_slug)
    if not item:
        raise HTTPException(status_code=404, detail="Product not found")
    return {"ok": True, "data": serialize_doc(item)}


@router.post("/admin/products", status_code=201)
def create_product(body: ProductCreateBody, db=Depends(get_db), admin=Depends(require_admin)):
    title = body.title.strip()
    if not title:
        raise HTTPException(status_code=400, detail="Name is required")
    if body.price <= 0:
        raise HTTPException(status_code=400, detail="Price must be greater than zero")

    category_name = (body.category or "").strip() or None
    if body.categoryId:
        category_name = resolve_category_name(db, body.categoryId)

    product = ProductSchema(
        title=title,
        price=body.price,
        category=category_name,
        category_id=body.categoryId,
        description=body.description,
        stock=body.stock,
        image_url=body.image_url,
        images=body.images or [],
        sizes=body.sizes,
        attributes=body.attributes,
        active=body.active,
    )
    try:
        product_id = create_document(db, "product", product)
    except DuplicateKeyError:
        raise HTTPException(status_code=409, detail="A product with this slug already exists")
    logger.info("Product %s created (%s)", product.slug, product_id)
    return {"ok": True, "data": serialize_doc(db["product"].find_one({"_id": to_object_id(product_id)}))}


@router.put("/admin/products/{product_id}")
def update_product(product_id: str, body: ProductUpdateBody, db=Depends(get_db), admin=Depends(require_admin)):
    _id = to_object_id(product_id, "Product")
    update = body.model_dump(exclude_none=True)
    if "slug" in update:
        update["slug"] = slugify(update["slug"])
    if "title" in update:
        update["title"] = update["title"].strip()
        if not update["title"]:
            raise HTTPException(status_code=400, detail="Name is required")
        if not update.get("slug"):
            update["slug"] = slugify(update["title"])
    elif "slug" in update and not update["slug"]:
        current = db["product"].find_one({"_id": _id}, {"title": 1})
        if current is None:
            raise HTTPException(status_code=404, detail="Product not found")
        update["slug"] = slugify(current.get("title") or "")
    if "sizes" in update:
        update["sizes"] = normalize_sizes(update["sizes"])
    category_id = update.pop("categoryId", None)
    if category_id:
        update["category"] = resolve_category_name(db, category_id)
        update["category_id"] = category_id
    if update.get("images") and not update.get("image_url"):
        update["image_url"] = update["images"][0]
    if not update:
        raise HTTPException(status_code=400, detail="No updates provided")
    update["updated_at"] = utcnow()
    try:
        res = db["product"].update_one({"_id": _id}, {"$set": update})
    except DuplicateKeyError:
        raise HTTPException(status_code=409, detail="A product with this slug already exists")
    if res.matched_count == 0:
        raise HTTPException(status_code=404, detail="Product not found")
    return {"ok": True, "data": serialize_doc(db["product"].find_one({"_id": _id}))}


@router.delete("/admin/products/{product_id}")
def delete_product(product_id: str, db=Depends(get_db), admin=Depends(require_admin)):
    _id = to_object_id(product_id, "Product")
    res = db["product"].delete_one({"_id": _id})
    if res.deleted_count == 0:
        raise HTTPException(status_code=404, detail="Product not found")
    return {"ok": True}
