"""
In-memory gateway backend.

Holds raw documents in per-collection dictionaries and maps them through the
same functions as the MongoDB backend. Used by the test-suite and when no
database is configured; nothing survives a restart.
"""
import copy
import logging
import threading
import uuid
from datetime import datetime, timezone
from typing import Callable, Dict, Iterable

from errors import EmailAlreadyRegistered
from mapper import (
    category_from_doc,
    menu_item_from_doc,
    menu_item_update_document,
    new_category_document,
    new_menu_item_document,
    new_order_document,
    new_reservation_document,
    new_user_document,
    order_from_doc,
    order_update_document,
    reservation_from_doc,
    slugify,
    user_from_doc,
    user_update_document,
)
from storage import COLLECTIONS, DEFAULT_CATEGORIES, Payload, RecordList, default_user_payloads

logger = logging.getLogger(__name__)

_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


def _newest_first(docs: Iterable[tuple]) -> list:
    # reversed() so that documents written later win ties on createdAt
    return sorted(reversed(list(docs)), key=lambda pair: pair[1].get("createdAt") or _EPOCH, reverse=True)


class MemoryStorage:
    def __init__(self):
        self._collections: Dict[str, dict] = {name: {} for name in COLLECTIONS}
        self._user_seq = 0
        self._lock = threading.RLock()

    def _snapshot(self, name: str) -> list:
        """Copies of every (id, document) pair, taken while holding the lock."""
        with self._lock:
            return [(doc_id, copy.deepcopy(doc)) for doc_id, doc in self._collections[name].items()]

    def _records(self, to_record: Callable, docs: Iterable[tuple]) -> RecordList:
        return RecordList(to_record(doc_id, doc) for doc_id, doc in docs)

    def _one(self, name: str, doc_id, to_record: Callable):
        with self._lock:
            doc = copy.deepcopy(self._collections[name].get(doc_id))
        return to_record(doc_id, doc) if doc is not None else None

    def _insert(self, name: str, doc_id, doc: dict):
        with self._lock:
            self._collections[name][doc_id] = copy.deepcopy(doc)

    def _merge(self, name: str, doc_id, update: dict) -> bool:
        with self._lock:
            doc = self._collections[name].get(doc_id)
            if doc is None:
                return False
            doc.update(copy.deepcopy(update))
            return True

    def initialize(self) -> None:
        with self._lock:
            if not self._collections["categories"]:
                logger.info("Seeding default categories")
                for category in DEFAULT_CATEGORIES:
                    self._insert("categories", category["id"], new_category_document(category))
            for user in default_user_payloads():
                if self.get_user_by_email(user["email"]) is None:
                    self.create_user(user)

    def ping(self) -> bool:
        return True

    # ===================== Categories =====================
    def get_categories(self) -> RecordList:
        docs = sorted(self._snapshot("categories"), key=lambda pair: pair[1].get("order") or 0)
        return self._records(category_from_doc, docs)

    def create_category(self, data: Payload):
        doc = new_category_document(data)
        category_id = slugify(doc["name"])
        self._insert("categories", category_id, doc)
        return category_from_doc(category_id, doc)

    # ===================== Menu items =====================
    def get_menu_items(self) -> RecordList:
        return self._records(menu_item_from_doc, self._snapshot("menuItems"))

    def get_menu_item(self, item_id: str):
        return self._one("menuItems", item_id, menu_item_from_doc)

    def create_menu_item(self, data: Payload):
        item_id = str(uuid.uuid4())
        doc = new_menu_item_document(data)
        self._insert("menuItems", item_id, doc)
        return menu_item_from_doc(item_id, doc)

    def update_menu_item(self, item_id: str, data: Payload):
        if not self._merge("menuItems", item_id, menu_item_update_document(data)):
            return None
        return self.get_menu_item(item_id)

    def delete_menu_item(self, item_id: str) -> None:
        with self._lock:
            self._collections["menuItems"].pop(item_id, None)

    # ===================== Reservations =====================
    def get_reservations(self) -> RecordList:
        docs = _newest_first(self._snapshot("reservations"))
        return self._records(reservation_from_doc, docs)

    def create_reservation(self, data: Payload):
        reservation_id = str(uuid.uuid4())
        doc = new_reservation_document(data, datetime.now(timezone.utc))
        self._insert("reservations", reservation_id, doc)
        return reservation_from_doc(reservation_id, doc)

    # ===================== Orders =====================
    def _orders_where(self, predicate: Callable[[dict], bool]) -> RecordList:
        docs = [(doc_id, doc) for doc_id, doc in self._snapshot("orders") if predicate(doc)]
        return self._records(order_from_doc, _newest_first(docs))

    def get_orders(self) -> RecordList:
        return self._orders_where(lambda doc: True)

    def get_order(self, order_id: str):
        return self._one("orders", order_id, order_from_doc)

    def create_order(self, data: Payload):
        order_id = str(uuid.uuid4())
        doc = new_order_document(data, datetime.now(timezone.utc))
        self._insert("orders", order_id, doc)
        return order_from_doc(order_id, doc)

    def update_order(self, order_id: str, data: Payload):
        if not self._merge("orders", order_id, order_update_document(data, datetime.now(timezone.utc))):
            return None
        return self.get_order(order_id)

    def claim_order(self, order_id: str, courier_id: int, data: Payload):
        update = order_update_document(data, datetime.now(timezone.utc))
        update["livreurId"] = courier_id
        with self._lock:
            doc = self._collections["orders"].get(order_id)
            if doc is None or doc.get("livreurId") is not None:
                return None
            doc.update(update)
            return self.get_order(order_id)

    def get_orders_by_user(self, user_id: int) -> RecordList:
        return self._orders_where(lambda doc: doc.get("userId") == user_id)

    def get_orders_by_courier(self, courier_id: int) -> RecordList:
        return self._orders_where(lambda doc: doc.get("livreurId") == courier_id)

    def get_pending_orders(self) -> RecordList:
        return self._orders_where(lambda doc: doc.get("status") == "pending" and doc.get("livreurId") is None)

    # ===================== Users =====================
    def get_users(self) -> RecordList:
        return self._records(user_from_doc, sorted(self._snapshot("users")))

    def get_user(self, user_id: int):
        return self._one("users", user_id, user_from_doc)

    def get_user_by_email(self, email: str):
        with self._lock:
            for user_id, doc in self._collections["users"].items():
                if doc.get("email") == email:
                    return user_from_doc(user_id, copy.deepcopy(doc))
        return None

    def create_user(self, data: Payload):
        doc = new_user_document(data, datetime.now(timezone.utc))
        with self._lock:
            if self.get_user_by_email(doc["email"]) is not None:
                raise EmailAlreadyRegistered(doc["email"])
            self._user_seq += 1
            user_id = self._user_seq
            self._insert("users", user_id, doc)
        return user_from_doc(user_id, doc)

    def update_user(self, user_id: int, data: Payload):
        update = user_update_document(data)
        with self._lock:
            email = update.get("email")
            if email is not None:
                existing = self.get_user_by_email(email)
                if existing is not None and existing.id != user_id:
                    raise EmailAlreadyRegistered(email)
            if not self._merge("users", user_id, update):
                return None
        return self.get_user(user_id)
