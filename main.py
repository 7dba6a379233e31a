import logging
import os
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import Depends, FastAPI, Header, HTTPException, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, EmailStr

from assets import LocalAssetStore, asset_key, discard_asset, media_type
from database import MongoStorage, db
from errors import RestaurantError
from memory import MemoryStorage
from order_rules import place_order, update_order, visible_orders
from schemas import (
    CategoryCreate,
    MenuItemCreate,
    MenuItemUpdate,
    OrderCreate,
    OrderUpdate,
    ReservationCreate,
    StaffCreate,
    User,
    UserUpdate,
)
from security import hash_password, verify_password
from storage import RecordList, Storage

logging.basicConfig(level=os.getenv("LOG_LEVEL", "INFO"))
logger = logging.getLogger(__name__)

if db is not None:
    storage: Storage = MongoStorage(db)
else:
    logger.warning("DATABASE_URL/DATABASE_NAME not set, using in-memory storage; data will not persist")
    storage = MemoryStorage()

asset_store = LocalAssetStore(os.getenv("ASSET_ROOT", "attached_assets"))


def get_storage() -> Storage:
    return storage


def get_assets() -> LocalAssetStore:
    return asset_store


@asynccontextmanager
async def lifespan(app: FastAPI):
    try:
        storage.initialize()
    except RestaurantError:
        logger.error("Storage initialization failed", exc_info=True)
    yield


app = FastAPI(title="Restaurant Ordering API", version="1.0.0", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=os.getenv("CORS_ORIGINS", "*").split(","),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(RestaurantError)
async def restaurant_error_handler(request: Request, exc: RestaurantError):
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    logger.error(f"Unhandled exception: {exc}", exc_info=True)
    return JSONResponse(status_code=500, content={"detail": "An unexpected error occurred"})


def _listing(response: Response, records: RecordList) -> RecordList:
    if records.degraded:
        response.headers["X-Degraded"] = "true"
    return records


# ============ Auth (tokenless: the client sends X-User-Id) ==========
class SignupRequest(BaseModel):
    name: str
    email: EmailStr
    password: str
    phone: Optional[str] = None


class LoginRequest(BaseModel):
    email: EmailStr
    password: str


class LoginResponse(BaseModel):
    user_id: int
    name: str
    email: EmailStr
    role: str


def get_optional_user(x_user_id: Optional[int] = Header(None), storage: Storage = Depends(get_storage)) -> Optional[User]:
    if x_user_id is None:
        return None
    user = storage.get_user(x_user_id)
    if user is None or not user.active:
        raise HTTPException(status_code=401, detail="Not authenticated")
    return user


def get_current_user(user: Optional[User] = Depends(get_optional_user)) -> User:
    if user is None:
        raise HTTPException(status_code=401, detail="Not authenticated")
    return user


def require_owner(user: User = Depends(get_current_user)) -> User:
    if user.role != "owner":
        raise HTTPException(status_code=403, detail="Owner access required")
    return user


# ===================== Public Endpoints =====================
@app.get("/")
def root():
    return {"message": "Restaurant Ordering API running"}


@app.get("/health")
def health(storage: Storage = Depends(get_storage)):
    reachable = storage.ping()
    return {
        "backend": "✅ Running",
        "storage": type(storage).__name__,
        "database": "✅ Available" if reachable else "❌ Not Available",
        "database_url": "✅ Set" if os.getenv("DATABASE_URL") else "❌ Not Set",
        "database_name": "✅ Set" if os.getenv("DATABASE_NAME") else "❌ Not Set",
    }


# ===================== Auth =====================
@app.post("/auth/signup", response_model=LoginResponse, status_code=201)
def signup(payload: SignupRequest, storage: Storage = Depends(get_storage)):
    if storage.get_user_by_email(payload.email) is not None:
        raise HTTPException(status_code=400, detail="Email already registered")
    user = storage.create_user({
        "email": payload.email,
        "password": hash_password(payload.password),
        "name": payload.name,
        "phone": payload.phone,
        "role": "client",
    })
    return LoginResponse(user_id=user.id, name=user.name, email=user.email, role=user.role)


@app.post("/auth/login", response_model=LoginResponse)
def login(payload: LoginRequest, storage: Storage = Depends(get_storage)):
    user = storage.get_user_by_email(payload.email)
    if user is None or not verify_password(payload.password, user.password):
        raise HTTPException(status_code=401, detail="Invalid credentials")
    if not user.active:
        raise HTTPException(status_code=403, detail="Account disabled")
    return LoginResponse(user_id=user.id, name=user.name, email=user.email, role=user.role)


@app.get("/auth/me")
def me(user: User = Depends(get_current_user)):
    return user.public()


# ===================== Categories =====================
@app.get("/categories")
def list_categories(response: Response, storage: Storage = Depends(get_storage)):
    return _listing(response, storage.get_categories())


@app.post("/categories", status_code=201)
def create_category(payload: CategoryCreate, owner: User = Depends(require_owner), storage: Storage = Depends(get_storage)):
    return storage.create_category(payload)


# ===================== Menu Items =====================
@app.get("/menu-items")
def list_menu_items(response: Response, storage: Storage = Depends(get_storage)):
    return _listing(response, storage.get_menu_items())


@app.get("/menu-items/{item_id}")
def get_menu_item(item_id: str, storage: Storage = Depends(get_storage)):
    item = storage.get_menu_item(item_id)
    if item is None:
        raise HTTPException(status_code=404, detail="Menu item not found")
    return item


@app.post("/menu-items", status_code=201)
def create_menu_item(payload: MenuItemCreate, owner: User = Depends(require_owner), storage: Storage = Depends(get_storage)):
    item = storage.create_menu_item(payload)
    logger.info(f"Menu item created: {item.id}")
    return item


@app.patch("/menu-items/{item_id}")
def update_menu_item(
    item_id: str,
    payload: MenuItemUpdate,
    owner: User = Depends(require_owner),
    storage: Storage = Depends(get_storage),
    assets: LocalAssetStore = Depends(get_assets),
):
    current = storage.get_menu_item(item_id)
    if current is None:
        raise HTTPException(status_code=404, detail="Menu item not found")

    updated = storage.update_menu_item(item_id, payload)
    if updated is None:
        raise HTTPException(status_code=404, detail="Menu item not found")

    if "image_url" in payload.model_fields_set and current.image_url != updated.image_url:
        discard_asset(assets, current.image_url)
    return updated


@app.delete("/menu-items/{item_id}")
def delete_menu_item(
    item_id: str,
    owner: User = Depends(require_owner),
    storage: Storage = Depends(get_storage),
    assets: LocalAssetStore = Depends(get_assets),
):
    item = storage.get_menu_item(item_id)
    if item is None:
        raise HTTPException(status_code=404, detail="Menu item not found")
    storage.delete_menu_item(item_id)
    discard_asset(assets, item.image_url)
    return {"success": True}


@app.delete("/menu-items/{item_id}/image")
def remove_menu_item_image(
    item_id: str,
    owner: User = Depends(require_owner),
    storage: Storage = Depends(get_storage),
    assets: LocalAssetStore = Depends(get_assets),
):
    item = storage.get_menu_item(item_id)
    if item is None:
        raise HTTPException(status_code=404, detail="Menu item not found")
    updated = storage.update_menu_item(item_id, {"imageUrl": None})
    if updated is None:
        raise HTTPException(status_code=404, detail="Menu item not found")
    discard_asset(assets, item.image_url)
    return {"success": True, "item": updated}


# ===================== Assets =====================
@app.get("/storage/{folder}/{filename}")
def serve_asset(folder: str, filename: str, assets: LocalAssetStore = Depends(get_assets)):
    key = asset_key(f"/storage/{folder}/{filename}")
    try:
        content = assets.read(key)
    except (OSError, ValueError):
        raise HTTPException(status_code=404, detail="Image not found")
    return Response(content=content, media_type=media_type(key))


# ===================== Reservations =====================
@app.get("/reservations")
def list_reservations(response: Response, storage: Storage = Depends(get_storage)):
    return _listing(response, storage.get_reservations())


@app.post("/reservations", status_code=201)
def create_reservation(payload: ReservationCreate, storage: Storage = Depends(get_storage)):
    return storage.create_reservation(payload)


# ===================== Orders =====================
@app.get("/orders")
def list_orders(response: Response, user: User = Depends(get_current_user), storage: Storage = Depends(get_storage)):
    return _listing(response, visible_orders(storage, user))


@app.post("/orders", status_code=201)
def create_order(payload: OrderCreate, user: Optional[User] = Depends(get_optional_user), storage: Storage = Depends(get_storage)):
    return place_order(storage, payload, user)


@app.patch("/orders/{order_id}")
def patch_order(order_id: str, payload: OrderUpdate, user: User = Depends(get_current_user), storage: Storage = Depends(get_storage)):
    return update_order(storage, user, order_id, payload)


# ===================== Users =====================
@app.get("/users")
def list_users(owner: User = Depends(require_owner), storage: Storage = Depends(get_storage)):
    return [user.public() for user in storage.get_users()]


@app.post("/users/create-staff", status_code=201)
def create_staff(payload: StaffCreate, owner: User = Depends(require_owner), storage: Storage = Depends(get_storage)):
    if storage.get_user_by_email(payload.email) is not None:
        raise HTTPException(status_code=400, detail="Email already registered")
    user = storage.create_user({
        "email": payload.email,
        "password": hash_password(payload.password),
        "name": payload.name,
        "phone": payload.phone,
        "role": payload.role,
    })
    logger.info(f"Staff user {user.id} created with role {user.role}")
    return user.public()


@app.patch("/users/{user_id}")
def update_user(user_id: int, payload: UserUpdate, owner: User = Depends(require_owner), storage: Storage = Depends(get_storage)):
    user = storage.update_user(user_id, payload)
    if user is None:
        raise HTTPException(status_code=404, detail="User not found")
    return user.public()


if __name__ == "__main__":
    import uvicorn
    port = int(os.getenv("PORT", 8000))
    uvicorn.run(app, host="0.0.0.0", port=port)
