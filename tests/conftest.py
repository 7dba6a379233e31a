"""
Test configuration and fixtures.
"""
import os

# Keep the app on the in-memory backend and make bcrypt cheap before importing it
os.environ["DATABASE_URL"] = ""
os.environ["DATABASE_NAME"] = ""
os.environ["BCRYPT_ROUNDS"] = "4"

from decimal import Decimal
from typing import Generator

import pytest
from fastapi.testclient import TestClient

from assets import STORAGE_PREFIX, LocalAssetStore
from main import app, get_assets, get_storage
from memory import MemoryStorage
from schemas import MenuItemCreate, OrderCreate, User
from security import hash_password


@pytest.fixture
def storage() -> MemoryStorage:
    store = MemoryStorage()
    store.initialize()
    return store


@pytest.fixture
def asset_store(tmp_path) -> LocalAssetStore:
    return LocalAssetStore(tmp_path / "assets")


@pytest.fixture
def stored_asset(asset_store: LocalAssetStore):
    """Put a file in the asset store and return its /storage/ URL."""
    def _store(key: str, content: bytes) -> str:
        path = asset_store.root / key
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(content)
        return STORAGE_PREFIX + key

    return _store


@pytest.fixture
def client(storage: MemoryStorage, asset_store: LocalAssetStore) -> Generator[TestClient, None, None]:
    """Create test client wired to the in-memory storage."""
    app.dependency_overrides[get_storage] = lambda: storage
    app.dependency_overrides[get_assets] = lambda: asset_store

    with TestClient(app) as c:
        yield c

    app.dependency_overrides.clear()


def _user(storage: MemoryStorage, email: str, name: str, role: str) -> User:
    return storage.create_user({
        "email": email,
        "password": hash_password("testpassword123"),
        "name": name,
        "role": role,
    })


@pytest.fixture
def owner(storage) -> User:
    return _user(storage, "owner@example.com", "Owner", "owner")


@pytest.fixture
def courier_one(storage) -> User:
    return _user(storage, "courier1@example.com", "Courier One", "livreur")


@pytest.fixture
def courier_two(storage) -> User:
    return _user(storage, "courier2@example.com", "Courier Two", "livreur")


@pytest.fixture
def customer(storage) -> User:
    return _user(storage, "customer@example.com", "Customer", "client")


def headers_for(user: User) -> dict:
    return {"X-User-Id": str(user.id)}


@pytest.fixture
def order_payload() -> OrderCreate:
    return OrderCreate(
        customer_name="Amina",
        customer_email="amina@example.com",
        customer_phone="+33600000000",
        items=[
            {"menu_item_id": "item-1", "name": "Crêpe Nutella", "quantity": 2, "price": Decimal("6.50")},
        ],
        total_amount=Decimal("13.00"),
        order_type="delivery",
        delivery_address="12 rue des Lilas",
    )


@pytest.fixture
def menu_item_payload() -> MenuItemCreate:
    return MenuItemCreate(
        name="Tiramisu Classique",
        description="Mascarpone et café",
        price=Decimal("7.50"),
        category_id="tiramisu",
        image_url="/storage/menu-items/tiramisu.jpg",
    )


@pytest.fixture
def auth():
    """Headers that authenticate requests as the given user."""
    return headers_for
