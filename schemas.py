"""
Database Schemas for the Storefront

Each record model corresponds to one document collection:
Product -> "product", Order -> "order", User -> "user".
Money is carried as Decimal and persisted as a decimal string.
"""
from datetime import datetime
from decimal import Decimal
from typing import List, Literal, Optional, Union

from pydantic import BaseModel, EmailStr, Field, field_validator
from pydantic import ValidationError as PydanticValidationError

from errors import ValidationError

OrderStatus = Literal["pending", "verified", "rejected"]

PENDING = "pending"
VERIFIED = "verified"
REJECTED = "rejected"
TERMINAL_STATUSES = frozenset({VERIFIED, REJECTED})


def normalize_tags(value: Union[str, List[str], None]) -> List[str]:
    """Split, trim and dedupe tags, keeping the first occurrence of each."""
    if value is None:
        return []
    parts = value.split(",") if isinstance(value, str) else list(value)
    tags: List[str] = []
    for part in parts:
        tag = str(part).strip()
        if tag and tag not in tags:
            tags.append(tag)
    return tags


class User(BaseModel):
    display_name: str = Field("", description="Full name")
    email: EmailStr
    password_hash: str = Field(..., description="Hashed password")


class ProductFields(BaseModel):
    name: str = Field(..., min_length=1)
    price: Decimal = Field(..., ge=0, description="Price in INR")
    description: str = ""
    tags: List[str] = Field(default_factory=list)
    qr_code_url: str = Field(..., min_length=1, description="Payment QR code image URL")

    @field_validator("name", "qr_code_url", "description", mode="before")
    @classmethod
    def _strip(cls, v):
        return v.strip() if isinstance(v, str) else v

    @field_validator("tags", mode="before")
    @classmethod
    def _tags(cls, v):
        return normalize_tags(v)


class ProductPatch(BaseModel):
    """Partial product edit; only the supplied fields are checked."""

    name: Optional[str] = Field(None, min_length=1)
    price: Optional[Decimal] = Field(None, ge=0)
    description: Optional[str] = None
    tags: Optional[List[str]] = None
    qr_code_url: Optional[str] = Field(None, min_length=1)

    @field_validator("name", "qr_code_url", "description", mode="before")
    @classmethod
    def _strip(cls, v):
        return v.strip() if isinstance(v, str) else v

    @field_validator("tags", mode="before")
    @classmethod
    def _tags(cls, v):
        return None if v is None else normalize_tags(v)


class Product(ProductFields):
    id: str
    images: List[str] = Field(default_factory=list)
    created_at: datetime
    updated_at: Optional[datetime] = None


class CheckoutFields(BaseModel):
    product_id: str = Field(..., min_length=1)
    quantity: int = Field(1, ge=1)
    receiver_name: str = Field(..., min_length=1)
    phone: str = Field(..., min_length=1)
    address: str = Field(..., min_length=1)
    utr: str = Field(..., min_length=1, description="Payment reference")

    @field_validator("product_id", "receiver_name", "phone", "address", "utr", mode="before")
    @classmethod
    def _strip(cls, v):
        return v.strip() if isinstance(v, str) else v


class Order(BaseModel):
    id: str
    product_id: str
    product_name: str
    amount: Decimal
    quantity: int = 1
    user_id: str
    user_name: str
    receiver_name: str
    user_email: str
    phone: str
    address: str
    utr: str
    screenshot_url: str
    status: OrderStatus = PENDING
    created_at: datetime


def parse_fields(model_cls, data: dict):
    """Build ``model_cls`` from ``data`` or raise the storefront ValidationError."""
    try:
        return model_cls(**data)
    except PydanticValidationError as e:
        problems = "; ".join(
            "%s: %s" % (".".join(str(p) for p in err["loc"]) or "body", err["msg"])
            for err in e.errors()
        )
        raise ValidationError(problems) from e


def format_decimal(value: Decimal) -> str:
    """Plain positional notation, never exponent form ("1E+2" -> "100")."""
    return format(value, "f")


def to_document(model: BaseModel, exclude=None) -> dict:
    doc = model.model_dump(exclude=exclude or {"id"})
    for k, v in list(doc.items()):
        if isinstance(v, Decimal):
            doc[k] = format_decimal(v)
    return doc
