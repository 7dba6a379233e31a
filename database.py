"""
MongoDB gateway backend.

One collection per entity: categories, menuItems, reservations, orders and
users. Document ids are our own identifiers (uuid strings, category slugs,
numeric user ids), stored as ``_id``. Filters and sorts run server-side.

Read failures are logged and degrade to an empty RecordList flagged
``degraded``; write failures are logged and raised as StorageError.
"""
import logging
import os
import uuid
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Callable, Optional

from dotenv import load_dotenv
from pymongo import ASCENDING, DESCENDING, MongoClient, ReturnDocument
from pymongo.errors import DuplicateKeyError, PyMongoError

from errors import EmailAlreadyRegistered, StorageError
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
from storage import DEFAULT_CATEGORIES, Payload, RecordList, default_user_payloads

# Load environment variables from .env file
load_dotenv()

logger = logging.getLogger(__name__)

_client = None
db = None

database_url = os.getenv("DATABASE_URL")
database_name = os.getenv("DATABASE_NAME")

if database_url and database_name:
    _client = MongoClient(database_url, tz_aware=True)
    db = _client[database_name]

NEWEST_FIRST = [("createdAt", DESCENDING)]


def _now() -> datetime:
    # BSON dates keep milliseconds; match what a re-read returns
    now = datetime.now(timezone.utc)
    return now.replace(microsecond=now.microsecond // 1000 * 1000)


class MongoStorage:
    def __init__(self, database):
        self.db = database
        self.categories = database["categories"]
        self.menu_items = database["menuItems"]
        self.reservations = database["reservations"]
        self.orders = database["orders"]
        self.users = database["users"]
        self.counters = database["counters"]

    # ===================== Helpers =====================
    def _find(self, collection, to_record: Callable, operation: str, filter_dict: Optional[dict] = None, sort: Optional[list] = None) -> RecordList:
        try:
            cursor = collection.find(filter_dict or {})
            if sort:
                cursor = cursor.sort(sort)
            return RecordList(to_record(doc["_id"], doc) for doc in cursor)
        except PyMongoError:
            logger.error(f"Error fetching {operation} from MongoDB", exc_info=True)
            return RecordList(degraded=True)

    def _find_one(self, collection, filter_dict: dict, to_record: Callable, operation: str):
        try:
            doc = collection.find_one(filter_dict)
        except PyMongoError:
            logger.error(f"Error fetching {operation} from MongoDB", exc_info=True)
            return None
        return to_record(doc["_id"], doc) if doc else None

    @contextmanager
    def _writing(self, operation: str):
        try:
            yield
        except DuplicateKeyError:
            raise
        except PyMongoError as exc:
            logger.error(f"Error trying to {operation} in MongoDB", exc_info=True)
            raise StorageError(operation) from exc

    def _set(self, collection, doc_id, update: dict, operation: str) -> bool:
        """$set ``update`` on one document; False when it does not exist."""
        with self._writing(operation):
            if not update:
                return collection.count_documents({"_id": doc_id}, limit=1) > 0
            result = collection.update_one({"_id": doc_id}, {"$set": update})
        return result.matched_count > 0

    def _next_user_id(self) -> int:
        counter = self.counters.find_one_and_update(
            {"_id": "users"},
            {"$inc": {"seq": 1}},
            upsert=True,
            return_document=ReturnDocument.AFTER,
        )
        return counter["seq"]

    # ===================== Lifecycle =====================
    def initialize(self) -> None:
        with self._writing("initialize the database"):
            self.users.create_index("email", unique=True)
            self.orders.create_index([("userId", ASCENDING), ("createdAt", DESCENDING)])
            self.orders.create_index([("livreurId", ASCENDING), ("createdAt", DESCENDING)])
            self.orders.create_index([("status", ASCENDING), ("livreurId", ASCENDING), ("createdAt", DESCENDING)])
            self.reservations.create_index(NEWEST_FIRST)

            if self.categories.count_documents({}, limit=1) == 0:
                logger.info("Seeding default categories in MongoDB")
                for category in DEFAULT_CATEGORIES:
                    self.categories.update_one(
                        {"_id": category["id"]},
                        {"$setOnInsert": new_category_document(category)},
                        upsert=True,
                    )

        for user in default_user_payloads():
            if self.get_user_by_email(user["email"]) is None:
                try:
                    self.create_user(user)
                except EmailAlreadyRegistered:
                    # another process seeded it first
                    pass

    def ping(self) -> bool:
        try:
            self.db.client.admin.command("ping")
            return True
        except PyMongoError:
            logger.error("MongoDB ping failed", exc_info=True)
            return False

    # ===================== Categories =====================
    def get_categories(self) -> RecordList:
        return self._find(self.categories, category_from_doc, "categories", sort=[("order", ASCENDING)])

    def create_category(self, data: Payload):
        doc = new_category_document(data)
        category_id = slugify(doc["name"])
        with self._writing("create category"):
            self.categories.replace_one({"_id": category_id}, doc, upsert=True)
        return category_from_doc(category_id, doc)

    # ===================== Menu items =====================
    def get_menu_items(self) -> RecordList:
        return self._find(self.menu_items, menu_item_from_doc, "menu items")

    def get_menu_item(self, item_id: str):
        return self._find_one(self.menu_items, {"_id": item_id}, menu_item_from_doc, "menu item")

    def create_menu_item(self, data: Payload):
        item_id = str(uuid.uuid4())
        doc = new_menu_item_document(data)
        with self._writing("create menu item"):
            self.menu_items.insert_one({"_id": item_id, **doc})
        return menu_item_from_doc(item_id, doc)

    def update_menu_item(self, item_id: str, data: Payload):
        if not self._set(self.menu_items, item_id, menu_item_update_document(data), "update menu item"):
            return None
        return self.get_menu_item(item_id)

    def delete_menu_item(self, item_id: str) -> None:
        with self._writing("delete menu item"):
            self.menu_items.delete_one({"_id": item_id})

    # ===================== Reservations =====================
    def get_reservations(self) -> RecordList:
        return self._find(self.reservations, reservation_from_doc, "reservations", sort=NEWEST_FIRST)

    def create_reservation(self, data: Payload):
        reservation_id = str(uuid.uuid4())
        doc = new_reservation_document(data, _now())
        with self._writing("create reservation"):
            self.reservations.insert_one({"_id": reservation_id, **doc})
        return reservation_from_doc(reservation_id, doc)

    # ===================== Orders =====================
    def _find_orders(self, filter_dict: dict, operation: str) -> RecordList:
        return self._find(self.orders, order_from_doc, operation, filter_dict, sort=NEWEST_FIRST)

    def get_orders(self) -> RecordList:
        return self._find_orders({}, "orders")

    def get_order(self, order_id: str):
        return self._find_one(self.orders, {"_id": order_id}, order_from_doc, "order")

    def create_order(self, data: Payload):
        order_id = str(uuid.uuid4())
        doc = new_order_document(data, _now())
        with self._writing("create order"):
            self.orders.insert_one({"_id": order_id, **doc})
        return order_from_doc(order_id, doc)

    def update_order(self, order_id: str, data: Payload):
        update = order_update_document(data, _now())
        if not self._set(self.orders, order_id, update, "update order"):
            return None
        return self.get_order(order_id)

    def claim_order(self, order_id: str, courier_id: int, data: Payload):
        update = order_update_document(data, _now())
        update["livreurId"] = courier_id
        with self._writing("claim order"):
            doc = self.orders.find_one_and_update(
                {"_id": order_id, "livreurId": None},
                {"$set": update},
                return_document=ReturnDocument.AFTER,
            )
        return order_from_doc(doc["_id"], doc) if doc else None

    def get_orders_by_user(self, user_id: int) -> RecordList:
        return self._find_orders({"userId": user_id}, "user orders")

    def get_orders_by_courier(self, courier_id: int) -> RecordList:
        return self._find_orders({"livreurId": courier_id}, "courier orders")

    def get_pending_orders(self) -> RecordList:
        # livreurId: None also matches documents without the field
        return self._find_orders({"status": "pending", "livreurId": None}, "pending orders")

    # ===================== Users =====================
    def get_users(self) -> RecordList:
        return self._find(self.users, user_from_doc, "users", sort=[("_id", ASCENDING)])

    def get_user(self, user_id: int):
        return self._find_one(self.users, {"_id": user_id}, user_from_doc, "user")

    def get_user_by_email(self, email: str):
        return self._find_one(self.users, {"email": email}, user_from_doc, "user")

    def create_user(self, data: Payload):
        doc = new_user_document(data, _now())
        try:
            with self._writing("create user"):
                user_id = self._next_user_id()
                self.users.insert_one({"_id": user_id, **doc})
        except DuplicateKeyError as exc:
            raise EmailAlreadyRegistered(doc["email"]) from exc
        return user_from_doc(user_id, doc)

    def update_user(self, user_id: int, data: Payload):
        update = user_update_document(data)
        try:
            found = self._set(self.users, user_id, update, "update user")
        except DuplicateKeyError as exc:
            raise EmailAlreadyRegistered(update.get("email")) from exc
        if not found:
            return None
        return self.get_user(user_id)
