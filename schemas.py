"""
Database Schemas for the Restaurant Ordering System

Each record model below corresponds to a MongoDB collection:
Category -> "categories", MenuItem -> "menuItems", Reservation -> "reservations",
Order -> "orders", User -> "users". Documents use camelCase field names; the
models expose snake_case attributes and serialize back to camelCase.

The *Create / *Update models are the validated request payloads handed to the
gateway.
"""
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field
from pydantic.alias_generators import to_camel

Role = Literal["client", "owner", "livreur"]
StaffRole = Literal["owner", "livreur"]


class OrderStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    PREPARING = "preparing"
    READY = "ready"
    DELIVERING = "delivering"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (OrderStatus.DELIVERED, OrderStatus.CANCELLED)


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ===================== Records =====================
class Category(CamelModel):
    id: str
    name: str
    description: Optional[str] = None
    order: int = 0


class MenuItem(CamelModel):
    id: str
    name: str
    description: Optional[str] = None
    price: str = Field(..., description="Decimal amount kept as a string")
    delivery_fee: str = "0"
    category_id: str
    image_url: Optional[str] = None
    available: bool = True
    popular: bool = False


class Reservation(CamelModel):
    id: str
    name: str
    email: str
    phone: str
    date: str
    time: str
    party_size: int
    special_requests: Optional[str] = None
    status: str = "pending"
    created_at: datetime


class OrderLineRecord(CamelModel):
    menu_item_id: str
    name: Optional[str] = None
    quantity: int
    price: str = Field(..., description="Unit price at the time of ordering")


class Order(CamelModel):
    id: str
    user_id: Optional[int] = Field(None, description="Customer placing the order (None for guests)")
    customer_name: str
    customer_email: str
    customer_phone: str
    items: List[OrderLineRecord]
    total_amount: str
    order_type: str
    delivery_address: Optional[str] = None
    notes: Optional[str] = None
    status: OrderStatus = OrderStatus.PENDING
    livreur_id: Optional[int] = Field(None, description="Courier who claimed the order")
    created_at: datetime
    updated_at: datetime


class User(CamelModel):
    id: int
    email: str
    password: str = Field(..., description="BCrypt password hash")
    name: str
    phone: Optional[str] = None
    role: Role = "client"
    active: bool = True
    created_at: datetime

    def public(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude={"password"})


# ===================== Payloads =====================
class CategoryCreate(CamelModel):
    name: str = Field(..., min_length=1)
    description: Optional[str] = None
    order: int = 0


class MenuItemCreate(CamelModel):
    name: str = Field(..., min_length=1)
    description: str
    price: Decimal = Field(..., ge=0)
    delivery_fee: Decimal = Field(Decimal("0"), ge=0)
    category_id: str
    image_url: Optional[str] = None
    available: bool = True
    popular: bool = False


class MenuItemUpdate(CamelModel):
    name: Optional[str] = Field(None, min_length=1)
    description: Optional[str] = None
    price: Optional[Decimal] = Field(None, ge=0)
    delivery_fee: Optional[Decimal] = Field(None, ge=0)
    category_id: Optional[str] = None
    image_url: Optional[str] = None
    available: Optional[bool] = None
    popular: Optional[bool] = None


class ReservationCreate(CamelModel):
    name: str = Field(..., min_length=1)
    email: EmailStr
    phone: str
    date: str
    time: str
    party_size: int = Field(..., gt=0)
    special_requests: Optional[str] = None


class OrderLine(CamelModel):
    menu_item_id: str
    name: str
    quantity: int = Field(..., gt=0)
    price: Decimal = Field(..., ge=0)


class OrderCreate(CamelModel):
    customer_name: str = Field(..., min_length=1)
    customer_email: EmailStr
    customer_phone: str
    items: List[OrderLine] = Field(..., min_length=1)
    total_amount: Decimal = Field(..., ge=0)
    order_type: Literal["delivery", "pickup"]
    delivery_address: Optional[str] = None
    notes: Optional[str] = None


class OrderUpdate(CamelModel):
    status: Optional[OrderStatus] = None
    livreur_id: Optional[int] = None


class StaffCreate(CamelModel):
    email: EmailStr
    password: str = Field(..., min_length=6)
    name: str = Field(..., min_length=1)
    phone: Optional[str] = None
    role: StaffRole


class UserUpdate(CamelModel):
    name: Optional[str] = None
    phone: Optional[str] = None
    role: Optional[Role] = None
    active: Optional[bool] = None
