"""
Document <-> record mapping.

Documents coming back from the store are loosely typed: money can be a number
or a string, timestamps can be native datetimes, bson Timestamps or plain
strings, and optional fields may be missing altogether. The *_from_doc
functions turn a raw document into a record from schemas.py with every optional
field resolved to None. They never validate; a document missing required
fields still maps.

The new_*_document and *_update_document functions build what gets written.
Update documents only carry the fields the caller actually supplied.
"""
import logging
import re
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Iterable, Optional, Union

from bson.decimal128 import Decimal128
from bson.timestamp import Timestamp
from pydantic import BaseModel

from schemas import (
    Category,
    MenuItem,
    Order,
    OrderLineRecord,
    OrderStatus,
    Reservation,
    User,
)

logger = logging.getLogger(__name__)

Document = Dict[str, Any]

MONEY_FIELDS = ("price", "deliveryFee", "totalAmount")

MENU_ITEM_FIELDS = ("name", "description", "price", "deliveryFee", "categoryId", "imageUrl", "available", "popular")
ORDER_FIELDS = ("status", "livreurId", "notes", "deliveryAddress")
USER_FIELDS = ("email", "password", "name", "phone", "role", "active")


def _to_dict(data: Union[BaseModel, dict], partial: bool = False) -> dict:
    if isinstance(data, BaseModel):
        return data.model_dump(by_alias=True, exclude_unset=partial)
    return dict(data)


def to_money(value: Any) -> Optional[str]:
    """Normalize a monetary amount to its decimal string, keeping exact digits."""
    if value is None:
        return None
    if isinstance(value, str):
        return value.strip()
    if isinstance(value, Decimal128):
        value = value.to_decimal()
    if isinstance(value, float):
        # repr gives the shortest string that round-trips, i.e. what was typed
        value = Decimal(repr(value))
    try:
        return format(Decimal(value), "f")
    except (InvalidOperation, TypeError, ValueError):
        return str(value)


def to_datetime(value: Any) -> Optional[datetime]:
    """Normalize a stored timestamp to an aware UTC datetime."""
    if value is None:
        return None
    if isinstance(value, Timestamp):
        return value.as_datetime()
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        # epoch milliseconds
        return datetime.fromtimestamp(value / 1000, tz=timezone.utc)
    if isinstance(value, str):
        try:
            parsed = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
        except ValueError:
            logger.warning(f"Unparseable timestamp {value!r}")
            return None
        return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)
    logger.warning(f"Unsupported timestamp type {type(value).__name__}")
    return None


def slugify(name: str) -> str:
    return re.sub(r"\s+", "-", name.strip().lower())


def _status(value: Any) -> Union[OrderStatus, str]:
    if not value:
        return OrderStatus.PENDING
    try:
        return OrderStatus(value)
    except ValueError:
        return value


def _partial(payload: dict, fields: Iterable[str], nullable: Iterable[str]) -> Document:
    nullable = set(nullable)
    update = {}
    for key in fields:
        if key not in payload:
            continue
        value = payload[key]
        if key in MONEY_FIELDS:
            value = to_money(value)
        elif isinstance(value, OrderStatus):
            value = value.value
        if value is None and key not in nullable:
            continue
        update[key] = value
    return update


# ===================== Categories =====================
def category_from_doc(doc_id: str, doc: Document) -> Category:
    return Category.model_construct(
        id=doc_id,
        name=doc.get("name"),
        description=doc.get("description") or None,
        order=doc.get("order", 0),
    )


def new_category_document(data: Union[BaseModel, dict]) -> Document:
    payload = _to_dict(data)
    return {
        "name": payload.get("name"),
        "description": payload.get("description"),
        "order": payload.get("order") or 0,
    }


# ===================== Menu items =====================
def menu_item_from_doc(doc_id: str, doc: Document) -> MenuItem:
    return MenuItem.model_construct(
        id=doc_id,
        name=doc.get("name"),
        description=doc.get("description"),
        price=to_money(doc.get("price")),
        delivery_fee=to_money(doc.get("deliveryFee")) or "0",
        category_id=doc.get("categoryId"),
        image_url=doc.get("imageUrl") or None,
        available=doc.get("available") is not False,
        popular=bool(doc.get("popular", False)),
    )


def new_menu_item_document(data: Union[BaseModel, dict]) -> Document:
    payload = _to_dict(data)
    return {
        "name": payload.get("name"),
        "description": payload.get("description"),
        "price": to_money(payload.get("price")),
        "deliveryFee": to_money(payload.get("deliveryFee")) or "0",
        "categoryId": payload.get("categoryId"),
        "imageUrl": payload.get("imageUrl"),
        "available": payload.get("available") is not False,
        "popular": bool(payload.get("popular", False)),
    }


def menu_item_update_document(data: Union[BaseModel, dict]) -> Document:
    return _partial(_to_dict(data, partial=True), MENU_ITEM_FIELDS, nullable=("imageUrl", "description"))


# ===================== Reservations =====================
def reservation_from_doc(doc_id: str, doc: Document) -> Reservation:
    return Reservation.model_construct(
        id=doc_id,
        name=doc.get("name"),
        email=doc.get("email"),
        phone=doc.get("phone"),
        date=doc.get("date"),
        time=doc.get("time"),
        party_size=doc.get("partySize"),
        special_requests=doc.get("specialRequests") or None,
        status=doc.get("status") or "pending",
        created_at=to_datetime(doc.get("createdAt")),
    )


def new_reservation_document(data: Union[BaseModel, dict], now: datetime) -> Document:
    payload = _to_dict(data)
    return {
        "name": payload.get("name"),
        "email": payload.get("email"),
        "phone": payload.get("phone"),
        "date": payload.get("date"),
        "time": payload.get("time"),
        "partySize": payload.get("partySize"),
        "specialRequests": payload.get("specialRequests"),
        "status": "pending",
        "createdAt": now,
    }


# ===================== Orders =====================
def _line_from_doc(line: Document) -> OrderLineRecord:
    return OrderLineRecord.model_construct(
        menu_item_id=line.get("menuItemId"),
        name=line.get("name"),
        quantity=line.get("quantity"),
        price=to_money(line.get("price")),
    )


def _line_document(line: Union[BaseModel, dict]) -> Document:
    payload = _to_dict(line)
    return {
        "menuItemId": payload.get("menuItemId"),
        "name": payload.get("name"),
        "quantity": int(payload.get("quantity") or 0),
        "price": to_money(payload.get("price")),
    }


def order_from_doc(doc_id: str, doc: Document) -> Order:
    created_at = to_datetime(doc.get("createdAt"))
    return Order.model_construct(
        id=doc_id,
        user_id=doc.get("userId"),
        customer_name=doc.get("customerName"),
        customer_email=doc.get("customerEmail"),
        customer_phone=doc.get("customerPhone"),
        items=[_line_from_doc(line) for line in doc.get("items") or []],
        total_amount=to_money(doc.get("totalAmount")),
        order_type=doc.get("orderType"),
        delivery_address=doc.get("deliveryAddress") or None,
        notes=doc.get("notes") or None,
        status=_status(doc.get("status")),
        livreur_id=doc.get("livreurId"),
        created_at=created_at,
        updated_at=to_datetime(doc.get("updatedAt")) or created_at,
    )


def new_order_document(data: Union[BaseModel, dict], now: datetime) -> Document:
    payload = _to_dict(data)
    return {
        "userId": payload.get("userId"),
        "customerName": payload.get("customerName"),
        "customerEmail": payload.get("customerEmail"),
        "customerPhone": payload.get("customerPhone"),
        "items": [_line_document(line) for line in payload.get("items") or []],
        "totalAmount": to_money(payload.get("totalAmount")),
        "orderType": payload.get("orderType"),
        "deliveryAddress": payload.get("deliveryAddress"),
        "notes": payload.get("notes"),
        "status": OrderStatus.PENDING.value,
        "livreurId": None,
        "createdAt": now,
        "updatedAt": now,
    }


def order_update_document(data: Union[BaseModel, dict], now: datetime) -> Document:
    """Partial order update; updatedAt is always stamped."""
    update = _partial(_to_dict(data, partial=True), ORDER_FIELDS, nullable=("livreurId", "notes", "deliveryAddress"))
    update["updatedAt"] = now
    return update


# ===================== Users =====================
def user_from_doc(doc_id: int, doc: Document) -> User:
    return User.model_construct(
        id=doc_id,
        email=doc.get("email"),
        password=doc.get("password"),
        name=doc.get("name"),
        phone=doc.get("phone") or None,
        role=doc.get("role") or "client",
        active=doc.get("active") is not False,
        created_at=to_datetime(doc.get("createdAt")),
    )


def new_user_document(data: Union[BaseModel, dict], now: datetime) -> Document:
    payload = _to_dict(data)
    return {
        "email": payload.get("email"),
        "password": payload.get("password"),
        "name": payload.get("name"),
        "phone": payload.get("phone"),
        "role": payload.get("role") or "client",
        "active": True,
        "createdAt": now,
    }


def user_update_document(data: Union[BaseModel, dict]) -> Document:
    return _partial(_to_dict(data, partial=True), USER_FIELDS, nullable=("phone",))
