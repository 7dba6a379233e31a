"""
Persistence gateway interface.

Every backend exposes the same narrow, per-entity operations:

- reads return records, or None when an identifier does not exist;
- list reads return a RecordList, which is empty and flagged ``degraded`` when
  the backend could not be reached, so "no data" and "store down" stay
  distinguishable;
- writes raise errors.StorageError when the backend rejects them;
- deletes do not report whether the document existed.
"""
from typing import Iterable, Optional, Protocol, Union

from pydantic import BaseModel

from schemas import Category, MenuItem, Order, Reservation, User
from security import hash_password

Payload = Union[BaseModel, dict]

COLLECTIONS = ("categories", "menuItems", "reservations", "orders", "users")

DEFAULT_CATEGORIES = [
    {"id": "crepe", "name": "Crêpe", "description": "Délicieuses crêpes artisanales", "order": 1},
    {"id": "cheesecake", "name": "Cheesecake", "description": "Cheesecakes onctueux et savoureux", "order": 2},
    {"id": "donuts", "name": "Donuts", "description": "Donuts moelleux et gourmands", "order": 3},
    {"id": "mini-pancakes", "name": "Mini-Pancakes", "description": "Mini-pancakes délicieux", "order": 4},
    {"id": "fondant", "name": "Fondant", "description": "Fondants au chocolat fondant", "order": 5},
    {"id": "tiramisu", "name": "Tiramisu", "description": "Tiramisu traditionnel et créatif", "order": 6},
    {"id": "boissons-fraiches", "name": "Boissons Fraîches", "description": "Jus de fruits frais", "order": 7},
    {"id": "boissons-chaudes", "name": "Boissons Chaudes", "description": "Café, thé et boissons chaudes", "order": 8},
]

DEFAULT_USERS = [
    {"email": "test@test.com", "password": "password123", "name": "Test User", "phone": None, "role": "client"},
]


def default_user_payloads() -> Iterable[dict]:
    for user in DEFAULT_USERS:
        yield {**user, "password": hash_password(user["password"])}


class RecordList(list):
    """A list of records that remembers whether the read behind it failed."""

    def __init__(self, records: Iterable = (), degraded: bool = False):
        super().__init__(records)
        self.degraded = degraded


class Storage(Protocol):
    def initialize(self) -> None:
        """Create indexes and seed default categories and users when missing."""

    def ping(self) -> bool: ...

    # Categories
    def get_categories(self) -> RecordList: ...
    def create_category(self, data: Payload) -> Category: ...

    # Menu items
    def get_menu_items(self) -> RecordList: ...
    def get_menu_item(self, item_id: str) -> Optional[MenuItem]: ...
    def create_menu_item(self, data: Payload) -> MenuItem: ...
    def update_menu_item(self, item_id: str, data: Payload) -> Optional[MenuItem]: ...
    def delete_menu_item(self, item_id: str) -> None: ...

    # Reservations
    def get_reservations(self) -> RecordList: ...
    def create_reservation(self, data: Payload) -> Reservation: ...

    # Orders
    def get_orders(self) -> RecordList: ...
    def get_order(self, order_id: str) -> Optional[Order]: ...
    def create_order(self, data: Payload) -> Order: ...
    def update_order(self, order_id: str, data: Payload) -> Optional[Order]: ...

    def claim_order(self, order_id: str, courier_id: int, data: Payload) -> Optional[Order]:
        """Apply ``data`` and assign the courier only if the order is still unassigned.

        Returns None when the order is missing or another courier got there first.
        """

    def get_orders_by_user(self, user_id: int) -> RecordList: ...
    def get_orders_by_courier(self, courier_id: int) -> RecordList: ...

    def get_pending_orders(self) -> RecordList:
        """Pending orders no courier has claimed yet."""

    # Users
    def get_users(self) -> RecordList: ...
    def get_user(self, user_id: int) -> Optional[User]: ...
    def get_user_by_email(self, email: str) -> Optional[User]: ...
    def create_user(self, data: Payload) -> User: ...
    def update_user(self, user_id: int, data: Payload) -> Optional[User]: ...
