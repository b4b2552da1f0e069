"""
Database Schemas for the storefront

Each Pydantic model corresponds to one MongoDB collection.
Collection name is the lowercase of the class name:
- User -> "user"
- Category -> "category"
- Product -> "product"
- Order -> "order"
- SiteSetting -> "sitesetting"
- SupportTicket -> "supportticket"
- WishlistItem -> "wishlist"

Derived fields (slugs, normalized sizes, primary image) are computed when the
model is built, so every write path goes through the same normalization.
"""
from enum import Enum
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator, model_validator
from slugify import slugify

ALLOWED_SIZES = ["S", "M", "L", "XL", "XXL"]


def normalize_sizes(sizes) -> List[str]:
    """Uppercase, trim, keep known sizes only and drop repeats (first one wins)."""
    if not isinstance(sizes, list):
        return []
    result = []
    for item in sizes:
        size = str(item or "").upper().strip()
        if size in ALLOWED_SIZES and size not in result:
            result.append(size)
    return result


class User(BaseModel):
    name: str = Field(..., description="Full name")
    email: EmailStr
    password_hash: str = Field(..., description="Hashed password")
    role: Literal["user", "admin"] = "user"


class Category(BaseModel):
    name: str
    slug: str = ""
    description: str = ""
    active: bool = True

    @model_validator(mode="after")
    def derive_slug(self):
        self.slug = slugify(self.name)
        return self


class Product(BaseModel):
    title: str
    slug: str = ""
    price: float = Field(..., gt=0)
    images: List[str] = []
    image_url: Optional[str] = None
    description: Optional[str] = None
    category: Optional[str] = None
    category_id: Optional[str] = None
    sizes: List[str] = []
    stock: int = 0
    attributes: Dict[str, Any] = {}
    active: bool = True

    @field_validator("sizes", mode="before")
    @classmethod
    def clean_sizes(cls, v):
        return normalize_sizes(v)

    @model_validator(mode="after")
    def derive_fields(self):
        if not self.slug:
            self.slug = slugify(self.title)
        if not self.images and self.image_url:
            self.images = [self.image_url]
        if not self.image_url and self.images:
            self.image_url = self.images[0]
        return self


class OrderStatus(str, Enum):
    PENDING = "pending"
    COD_PENDING = "cod_pending"
    PENDING_VERIFICATION = "pending_verification"
    PAID = "paid"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"


class OrderItem(BaseModel):
    """Snapshot of a line item at purchase time"""
    product_id: str = ""
    title: str = ""
    price: float = Field(..., ge=0)
    qty: int = Field(..., ge=1)
    image: str = ""
    variant: Optional[Dict[str, Any]] = None


class UpiProof(BaseModel):
    payer_name: str = ""
    transaction_id: Optional[str] = None
    paid_amount: Optional[float] = Field(None, ge=0)


class Order(BaseModel):
    model_config = ConfigDict(use_enum_values=True)

    user_id: Optional[str] = None
    name: str
    phone: str
    address: str
    city: str = ""
    state: str = ""
    pincode: str = ""
    payment_method: Literal["COD", "UPI"]
    items: List[OrderItem]
    total: float = Field(..., ge=0)
    status: OrderStatus
    upi: Optional[UpiProof] = None


class PaymentSettings(BaseModel):
    upi_qr_image: str = ""
    upi_id: str = ""
    beneficiary_name: str = ""
    instructions: str = "Scan QR and pay. Enter UTR/Txn ID on next step."


class ShiprocketSettings(BaseModel):
    enabled: bool = True
    email: str = "logistics@uni10.in"
    password: str = "Test@1234"
    api_key: str = "ship_test_key_123456"
    secret: str = "ship_test_secret_abcdef"
    channel_id: str = "TEST_CHANNEL_001"


class ShippingSettings(BaseModel):
    shiprocket: ShiprocketSettings = Field(default_factory=ShiprocketSettings)


class SiteSetting(BaseModel):
    """One document per domain"""
    domain: str
    payment: PaymentSettings = Field(default_factory=PaymentSettings)
    shipping: ShippingSettings = Field(default_factory=ShippingSettings)


class TicketReply(BaseModel):
    author_id: str
    message: str = Field(..., min_length=1)


class SupportTicket(BaseModel):
    user_id: str
    subject: str
    message: str
    status: Literal["open", "pending", "closed"] = "open"
    order_id: Optional[str] = None
    product_id: Optional[str] = None
    replies: List[dict] = []


class WishlistItem(BaseModel):
    user_id: str
    product_id: str
