"""
Storefront resource models.
"""

import re
from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator


_PHONE = re.compile(r"^[\d\-()\s]+$")
_EMAIL = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ProductCategory(str, Enum):
    BAKERY = "bakery"
    DAIRY = "dairy"
    PRODUCE = "produce"
    MEAT = "meat"
    PANTRY = "pantry"
    FROZEN = "frozen"
    BEVERAGES = "beverages"
    HOUSEHOLD = "household"


class ProductStatus(str, Enum):
    ACTIVE = "active"
    OUT_OF_STOCK = "out-of-stock"
    HIDDEN = "hidden"


class ProductBase(BaseModel):
    name: str = Field(min_length=1)
    price: float = Field(ge=0)
    category: ProductCategory
    emoji: str = "📦"
    description: Optional[str] = None
    status: ProductStatus = ProductStatus.ACTIVE
    is_taxable: bool = False

    @field_validator("name", "description")
    @classmethod
    def strip_text(cls, v: Optional[str]) -> Optional[str]:
        return v.strip() if v is not None else v


class ProductCreate(ProductBase):
    pass


class ProductUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1)
    price: Optional[float] = Field(default=None, ge=0)
    category: Optional[ProductCategory] = None
    emoji: Optional[str] = None
    description: Optional[str] = None
    status: Optional[ProductStatus] = None
    is_taxable: Optional[bool] = None


class Product(ProductBase):
    id: str
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class StoreSettings(BaseModel):
    business_name: str = "Hometown Grocery Delivery"
    phone: str = "555-123-4567"
    email: str = "info@hometowndelivery.com"
    address: str = "123 Main Street, Your Town, State 12345"
    delivery_fee: float = Field(default=5.0, ge=0)
    minimum_order: float = Field(default=20.0, ge=0)
    tax_rate: float = Field(default=0.065, ge=0, le=1)
    average_delivery_time: str = "2 hours"
    delivery_radius: str = "10 miles"


class SettingsUpdate(BaseModel):
    business_name: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[str] = None
    address: Optional[str] = None
    delivery_fee: Optional[float] = Field(default=None, ge=0)
    minimum_order: Optional[float] = Field(default=None, ge=0)
    tax_rate: Optional[float] = Field(default=None, ge=0, le=1)
    average_delivery_time: Optional[str] = None
    delivery_radius: Optional[str] = None

    @field_validator("phone")
    @classmethod
    def validate_phone(cls, v: Optional[str]) -> Optional[str]:
        if v is not None and not _PHONE.match(v):
            raise ValueError("Invalid phone number format")
        return v

    @field_validator("email")
    @classmethod
    def validate_email(cls, v: Optional[str]) -> Optional[str]:
        if v is not None and not _EMAIL.match(v):
            raise ValueError("Invalid email format")
        return v


class OrderStatus(str, Enum):
    PLACED = "placed"
    CONFIRMED = "confirmed"
    SHOPPING = "shopping"
    DELIVERING = "delivering"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"


class CustomerInfo(BaseModel):
    name: str = Field(min_length=1)
    phone: str = Field(min_length=7)
    email: Optional[str] = None
    address: str = Field(min_length=1)


class OrderItemRequest(BaseModel):
    product_id: str
    quantity: int = Field(ge=1)


class OrderCreate(BaseModel):
    customer: CustomerInfo
    items: List[OrderItemRequest] = Field(min_length=1)


class OrderItem(BaseModel):
    product_id: str
    name: str
    price: float
    emoji: str
    quantity: int
    is_taxable: bool = False


class OrderPricing(BaseModel):
    subtotal: float
    delivery_fee: float
    tax: float
    total: float


class Order(BaseModel):
    order_id: str
    customer: CustomerInfo
    items: List[OrderItem]
    pricing: OrderPricing
    status: OrderStatus = OrderStatus.PLACED
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class OrderStatusUpdate(BaseModel):
    status: OrderStatus
