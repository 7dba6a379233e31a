"""
Integration tests for the HTTP API, run against the in-memory backend.
"""
from errors import StorageError
from order_rules import place_order
from storage import RecordList


def _order_json():
    return {
        "customerName": "Amina",
        "customerEmail": "amina@example.com",
        "customerPhone": "+33600000000",
        "items": [{"menuItemId": "item-1", "name": "Crêpe Nutella", "quantity": 2, "price": "6.50"}],
        "totalAmount": "13.00",
        "orderType": "delivery",
        "deliveryAddress": "12 rue des Lilas",
    }


def _menu_item_json(**overrides):
    return {
        "name": "Cheesecake Fraise",
        "description": "Fraises fraîches",
        "price": 6,
        "categoryId": "cheesecake",
        **overrides,
    }


class TestHealth:
    def test_root(self, client):
        assert client.get("/").status_code == 200

    def test_health_reports_storage(self, client):
        data = client.get("/health").json()
        assert data["storage"] == "MemoryStorage"
        assert data["database"] == "✅ Available"


class TestAuth:
    def test_signup_then_login(self, client):
        response = client.post("/auth/signup", json={"name": "Nora", "email": "nora@example.com", "password": "secret123"})
        assert response.status_code == 201
        assert response.json()["role"] == "client"

        response = client.post("/auth/login", json={"email": "nora@example.com", "password": "secret123"})
        assert response.status_code == 200
        assert response.json()["name"] == "Nora"

    def test_seeded_user_can_login(self, client):
        response = client.post("/auth/login", json={"email": "test@test.com", "password": "password123"})
        assert response.status_code == 200

    def test_wrong_password(self, client):
        response = client.post("/auth/login", json={"email": "test@test.com", "password": "nope"})
        assert response.status_code == 401

    def test_duplicate_signup(self, client):
        response = client.post("/auth/signup", json={"name": "Dup", "email": "test@test.com", "password": "x"})
        assert response.status_code == 400

    def test_me_hides_password(self, client, customer, auth):
        data = client.get("/auth/me", headers=auth(customer)).json()
        assert data["email"] == customer.email
        assert "password" not in data

    def test_unknown_user_header(self, client):
        assert client.get("/auth/me", headers={"X-User-Id": "999"}).status_code == 401


class TestCategories:
    def test_list_seeded_categories(self, client):
        response = client.get("/categories")

        assert response.status_code == 200
        assert [c["order"] for c in response.json()] == list(range(1, 9))
        assert "X-Degraded" not in response.headers

    def test_owner_creates_category(self, client, owner, auth):
        response = client.post("/categories", json={"name": "Gaufres Maison", "order": 9}, headers=auth(owner))

        assert response.status_code == 201
        assert response.json()["id"] == "gaufres-maison"


class TestMenuItems:
    def test_owner_creates_item(self, client, owner, auth):
        response = client.post("/menu-items", json=_menu_item_json(), headers=auth(owner))

        assert response.status_code == 201
        data = response.json()
        assert data["price"] == "6"
        assert data["deliveryFee"] == "0"
        assert data["available"] is True
        assert data["popular"] is False
        assert data["imageUrl"] is None

    def test_string_and_numeric_price_match(self, client, owner, auth):
        numeric = client.post("/menu-items", json=_menu_item_json(price=12), headers=auth(owner)).json()
        text = client.post("/menu-items", json=_menu_item_json(price="12"), headers=auth(owner)).json()

        assert numeric["price"] == text["price"] == "12"

    def test_client_cannot_create(self, client, customer, auth):
        response = client.post("/menu-items", json=_menu_item_json(), headers=auth(customer))
        assert response.status_code == 403

    def test_invalid_payload(self, client, owner, auth):
        response = client.post("/menu-items", json={"name": "No price"}, headers=auth(owner))
        assert response.status_code == 422

    def test_partial_update(self, client, owner, auth):
        created = client.post("/menu-items", json=_menu_item_json(imageUrl="/storage/menu-items/a.jpg"), headers=auth(owner)).json()

        response = client.patch(f"/menu-items/{created['id']}", json={"available": False}, headers=auth(owner))

        assert response.status_code == 200
        data = response.json()
        assert data["available"] is False
        assert data["name"] == created["name"]
        assert data["price"] == created["price"]
        assert data["imageUrl"] == "/storage/menu-items/a.jpg"

    def test_image_replacement_discards_old_asset(self, client, owner, auth, asset_store, stored_asset):
        old_url = stored_asset("menu-items/old.jpg", b"old")
        created = client.post("/menu-items", json=_menu_item_json(imageUrl=old_url), headers=auth(owner)).json()

        response = client.patch(
            f"/menu-items/{created['id']}",
            json={"imageUrl": "/storage/menu-items/new.jpg"},
            headers=auth(owner),
        )

        assert response.json()["imageUrl"] == "/storage/menu-items/new.jpg"
        assert not (asset_store.root / "menu-items" / "old.jpg").exists()

    def test_delete_twice_is_not_found_twice(self, client, owner, auth):
        assert client.delete("/menu-items/ghost", headers=auth(owner)).status_code == 404
        assert client.delete("/menu-items/ghost", headers=auth(owner)).status_code == 404

    def test_delete_removes_item_and_image(self, client, owner, auth, asset_store, stored_asset):
        url = stored_asset("menu-items/cake.png", b"png")
        created = client.post("/menu-items", json=_menu_item_json(imageUrl=url), headers=auth(owner)).json()

        assert client.delete(f"/menu-items/{created['id']}", headers=auth(owner)).json() == {"success": True}
        assert client.get(f"/menu-items/{created['id']}").status_code == 404
        assert not (asset_store.root / "menu-items" / "cake.png").exists()

    def test_delete_proceeds_when_asset_is_missing(self, client, owner, auth):
        created = client.post(
            "/menu-items",
            json=_menu_item_json(imageUrl="/storage/menu-items/gone.jpg"),
            headers=auth(owner),
        ).json()

        response = client.delete(f"/menu-items/{created['id']}", headers=auth(owner))

        assert response.status_code == 200

    def test_remove_image(self, client, owner, auth, asset_store, stored_asset):
        url = stored_asset("menu-items/donut.webp", b"img")
        created = client.post("/menu-items", json=_menu_item_json(imageUrl=url), headers=auth(owner)).json()

        data = client.delete(f"/menu-items/{created['id']}/image", headers=auth(owner)).json()

        assert data["success"] is True
        assert data["item"]["imageUrl"] is None
        assert data["item"]["name"] == created["name"]
        assert not (asset_store.root / "menu-items" / "donut.webp").exists()

    def test_failed_delete_keeps_item_and_image(self, client, owner, auth, storage, asset_store, stored_asset, monkeypatch):
        url = stored_asset("menu-items/cake.png", b"png")
        created = client.post("/menu-items", json=_menu_item_json(imageUrl=url), headers=auth(owner)).json()

        def fail(item_id):
            raise StorageError("delete menu item")

        monkeypatch.setattr(storage, "delete_menu_item", fail)
        response = client.delete(f"/menu-items/{created['id']}", headers=auth(owner))

        assert response.status_code == 500
        assert response.json()["detail"] == "Failed to delete menu item"
        assert storage.get_menu_item(created["id"]).image_url == url
        assert (asset_store.root / "menu-items" / "cake.png").exists()

    def test_failed_image_removal_keeps_image(self, client, owner, auth, storage, asset_store, stored_asset, monkeypatch):
        url = stored_asset("menu-items/donut.webp", b"img")
        created = client.post("/menu-items", json=_menu_item_json(imageUrl=url), headers=auth(owner)).json()

        def fail(item_id, data):
            raise StorageError("update menu item")

        monkeypatch.setattr(storage, "update_menu_item", fail)
        response = client.delete(f"/menu-items/{created['id']}/image", headers=auth(owner))

        assert response.status_code == 500
        assert storage.get_menu_item(created["id"]).image_url == url
        assert (asset_store.root / "menu-items" / "donut.webp").exists()


class TestAssets:
    def test_serve_asset(self, client, stored_asset):
        stored_asset("menu-items/logo.png", b"\x89PNG")

        response = client.get("/storage/menu-items/logo.png")

        assert response.status_code == 200
        assert response.headers["content-type"] == "image/png"
        assert response.content == b"\x89PNG"

    def test_missing_asset(self, client):
        assert client.get("/storage/menu-items/none.png").status_code == 404


class TestReservations:
    def test_created_reservation_is_listed_first(self, client):
        payload = {"name": "Lea", "email": "lea@example.com", "phone": "0600", "date": "2024-06-01", "time": "20:00", "partySize": 3}
        first = client.post("/reservations", json=payload).json()
        second = client.post("/reservations", json={**payload, "name": "Max"}).json()

        listed = client.get("/reservations").json()

        assert [r["id"] for r in listed] == [second["id"], first["id"]]
        assert listed[0]["status"] == "pending"
        assert listed[0]["specialRequests"] is None

    def test_party_size_must_be_positive(self, client):
        payload = {"name": "Lea", "email": "lea@example.com", "phone": "0600", "date": "2024-06-01", "time": "20:00", "partySize": 0}
        assert client.post("/reservations", json=payload).status_code == 422


class TestOrders:
    def test_guest_order(self, client):
        response = client.post("/orders", json=_order_json())

        assert response.status_code == 201
        data = response.json()
        assert data["userId"] is None
        assert data["status"] == "pending"
        assert data["livreurId"] is None
        assert data["totalAmount"] == "13.00"

    def test_listing_requires_auth(self, client):
        assert client.get("/orders").status_code == 401

    def test_client_sees_own_orders(self, client, customer, auth):
        mine = client.post("/orders", json=_order_json(), headers=auth(customer)).json()
        client.post("/orders", json=_order_json())

        listed = client.get("/orders", headers=auth(customer)).json()

        assert [o["id"] for o in listed] == [mine["id"]]

    def test_courier_claims_order(self, client, courier_one, auth):
        order = client.post("/orders", json=_order_json()).json()

        response = client.patch(f"/orders/{order['id']}", json={"status": "confirmed"}, headers=auth(courier_one))

        assert response.status_code == 200
        assert response.json()["livreurId"] == courier_one.id
        assert response.json()["status"] == "confirmed"

    def test_second_courier_is_forbidden(self, client, courier_one, courier_two, auth):
        order = client.post("/orders", json=_order_json()).json()
        client.patch(f"/orders/{order['id']}", json={"status": "confirmed"}, headers=auth(courier_one))

        response = client.patch(f"/orders/{order['id']}", json={"status": "delivering"}, headers=auth(courier_two))

        assert response.status_code == 403
        listed = client.get("/orders", headers=auth(courier_one)).json()
        assert listed[0]["livreurId"] == courier_one.id

    def test_courier_cannot_move_unclaimed_confirmed_order(self, client, owner, courier_one, auth, storage):
        order = client.post("/orders", json=_order_json()).json()
        client.patch(f"/orders/{order['id']}", json={"status": "confirmed"}, headers=auth(owner))

        response = client.patch(f"/orders/{order['id']}", json={"status": "delivering"}, headers=auth(courier_one))

        assert response.status_code == 403
        assert storage.get_order(order["id"]).livreur_id is None

    def test_client_update_forbidden(self, client, customer, auth, storage):
        order = client.post("/orders", json=_order_json(), headers=auth(customer)).json()

        response = client.patch(f"/orders/{order['id']}", json={"status": "cancelled"}, headers=auth(customer))

        assert response.status_code == 403
        assert storage.get_order(order["id"]).status == "pending"

    def test_unknown_order(self, client, owner, auth):
        response = client.patch("/orders/missing", json={"status": "confirmed"}, headers=auth(owner))
        assert response.status_code == 404
        assert response.json() == {"detail": "Order not found"}

    def test_invalid_transition(self, client, owner, auth):
        order = client.post("/orders", json=_order_json()).json()

        response = client.patch(f"/orders/{order['id']}", json={"status": "delivered"}, headers=auth(owner))

        assert response.status_code == 409
        assert response.json() == {"detail": "Cannot move order from 'pending' to 'delivered'"}

    def test_unknown_status_rejected(self, client, owner, auth):
        order = client.post("/orders", json=_order_json()).json()

        response = client.patch(f"/orders/{order['id']}", json={"status": "teleported"}, headers=auth(owner))

        assert response.status_code == 422

    def test_degraded_listing_sets_header(self, client, owner, auth, storage, monkeypatch):
        monkeypatch.setattr(storage, "get_orders", lambda: RecordList(degraded=True))

        response = client.get("/orders", headers=auth(owner))

        assert response.status_code == 200
        assert response.json() == []
        assert response.headers["X-Degraded"] == "true"

    def test_owner_sees_all(self, client, owner, customer, auth, storage, order_payload):
        place_order(storage, order_payload)
        place_order(storage, order_payload, customer)

        assert len(client.get("/orders", headers=auth(owner)).json()) == 2


class TestStaff:
    def test_owner_creates_courier(self, client, owner, auth):
        response = client.post(
            "/users/create-staff",
            json={"email": "new.courier@example.com", "password": "secret123", "name": "Yanis", "role": "livreur"},
            headers=auth(owner),
        )

        assert response.status_code == 201
        data = response.json()
        assert data["role"] == "livreur"
        assert "password" not in data

        users = client.get("/users", headers=auth(owner)).json()
        assert "new.courier@example.com" in [u["email"] for u in users]
        assert all("password" not in u for u in users)

    def test_client_role_rejected(self, client, owner, auth):
        response = client.post(
            "/users/create-staff",
            json={"email": "x@example.com", "password": "secret123", "name": "X", "role": "client"},
            headers=auth(owner),
        )
        assert response.status_code == 422

    def test_duplicate_email(self, client, owner, auth):
        response = client.post(
            "/users/create-staff",
            json={"email": "test@test.com", "password": "secret123", "name": "X", "role": "owner"},
            headers=auth(owner),
        )
        assert response.status_code == 400

    def test_non_owner_forbidden(self, client, courier_one, auth):
        assert client.get("/users", headers=auth(courier_one)).status_code == 403

    def test_owner_deactivates_courier(self, client, owner, courier_one, auth):
        response = client.patch(f"/users/{courier_one.id}", json={"active": False}, headers=auth(owner))

        assert response.status_code == 200
        assert response.json()["active"] is False
        assert response.json()["name"] == courier_one.name
        assert client.get("/orders", headers=auth(courier_one)).status_code == 401

    def test_update_unknown_user(self, client, owner, auth):
        assert client.patch("/users/999", json={"name": "Ghost"}, headers=auth(owner)).status_code == 404
