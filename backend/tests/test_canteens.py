from decimal import Decimal

from sqlalchemy.exc import OperationalError

from app.errors import PersistenceFailure
from app.models.order import OrderLine
from app.repositories.canteen_repo import CanteenRepository
from app.services.cart_service import CartDraft
from app.services.order_service import OrderService
from conftest import ADMIN, CUSTOMER, STAFF_X, STAFF_Y, draft_item, headers_for

NEW_STAFF = {"X-User-Id": "staff-new", "X-User-Role": "canteen_staff"}


def _register(client, headers=NEW_STAFF, **extra):
    payload = {"name": "Hostel Mess", "location": "Hostel 3", "opening_hours": "7-22", **extra}
    return client.post("/api/canteens", json=payload, headers=headers)


def test_staff_registers_canteen_unapproved(client):
    r = _register(client)
    assert r.status_code == 201, r.text
    body = r.json()
    assert body["is_approved"] is False
    assert body["staff_user_id"] == "staff-new"

    mine = client.get("/api/canteens/mine", headers=NEW_STAFF)
    assert mine.json()["id"] == body["id"]
    # unapproved canteens are hidden from the public list
    assert body["id"] not in [c["id"] for c in client.get("/api/canteens").json()]


def test_one_canteen_per_staff_user(client):
    assert _register(client).status_code == 201
    r = _register(client, name="Second")
    assert r.status_code == 409


def test_only_staff_can_register(client):
    assert _register(client, headers=headers_for(CUSTOMER)).status_code == 403
    assert _register(client, headers={}).status_code == 401


def test_missing_required_fields(client):
    r = client.post("/api/canteens", json={"name": "", "location": ""}, headers=NEW_STAFF)
    assert r.status_code == 400


def test_admin_approval_flow(client):
    cid = _register(client).json()["id"]

    pending = client.get("/api/admin/canteens/pending", headers=headers_for(ADMIN)).json()
    assert [c["id"] for c in pending] == [cid]
    assert client.get("/api/admin/canteens/pending", headers=NEW_STAFF).status_code == 403

    assert client.post(f"/api/canteens/{cid}/approve", headers=NEW_STAFF).status_code == 403
    r = client.post(f"/api/canteens/{cid}/approve", headers=headers_for(ADMIN))
    assert r.status_code == 200
    assert r.json()["is_approved"] is True
    # approving twice is harmless
    assert client.post(f"/api/canteens/{cid}/approve", headers=headers_for(ADMIN)).json()["is_approved"]
    assert cid in [c["id"] for c in client.get("/api/canteens").json()]
    assert client.post("/api/canteens/999/approve", headers=headers_for(ADMIN)).status_code == 404


def test_admin_lists_all_canteens(client, canteens):
    cid = _register(client).json()["id"]
    ids = [c["id"] for c in client.get("/api/canteens", headers=headers_for(ADMIN)).json()]
    assert set(ids) == {cid, canteens["X"], canteens["Y"]}


def test_menu_management_is_owner_only(client, canteens):
    x = canteens["X"]
    item = {"name": "Dosa", "price": "60.50", "category": "Breakfast", "is_vegetarian": True}
    assert client.post(f"/api/canteens/{x}/menu", json=item, headers=headers_for(STAFF_Y)).status_code == 403

    r = client.post(f"/api/canteens/{x}/menu", json=item, headers=headers_for(STAFF_X))
    assert r.status_code == 201, r.text
    item_id = r.json()["id"]
    assert Decimal(r.json()["price"]) == Decimal("60.50")

    r = client.patch(f"/api/menu-items/{item_id}", json={"price": "65"}, headers=headers_for(STAFF_X))
    assert Decimal(r.json()["price"]) == Decimal("65")
    assert client.patch(f"/api/menu-items/{item_id}", json={"price": "1"}, headers=headers_for(STAFF_Y)).status_code == 403

    r = client.post(f"/api/menu-items/{item_id}/toggle", headers=headers_for(STAFF_X))
    assert r.json()["is_available"] is False
    public = [m["id"] for m in client.get(f"/api/canteens/{x}/menu").json()]
    assert item_id not in public
    owner_view = client.get(
        f"/api/canteens/{x}/menu", params={"include_unavailable": True}, headers=headers_for(STAFF_X)
    ).json()
    assert item_id in [m["id"] for m in owner_view]

    assert client.delete(f"/api/menu-items/{item_id}", headers=headers_for(STAFF_X)).status_code == 200
    assert client.delete(f"/api/menu-items/{item_id}", headers=headers_for(STAFF_X)).status_code == 404


def test_menu_price_must_be_positive(client, canteens):
    r = client.post(
        f"/api/canteens/{canteens['X']}/menu",
        json={"name": "Free lunch", "price": "0"},
        headers=headers_for(STAFF_X),
    )
    assert r.status_code == 422


def test_ordered_items_cannot_be_deleted(client, db, canteens):
    draft = CartDraft("tok", owner_id=CUSTOMER.id)
    draft.add_item(draft_item(canteens, "A", "X", "280"))
    OrderService(db).submit_cart(CUSTOMER, draft)
    assert db.query(OrderLine).count() == 1

    r = client.delete(f"/api/menu-items/{canteens['A']}", headers=headers_for(STAFF_X))
    assert r.status_code == 409


def test_menu_of_unapproved_canteen_is_hidden(client):
    cid = _register(client).json()["id"]
    assert client.get(f"/api/canteens/{cid}/menu").status_code == 404
    assert client.get(f"/api/canteens/{cid}/menu", headers=NEW_STAFF).status_code == 200


def test_database_failure_on_read_returns_generic_error(client, monkeypatch):
    def broken_list(self, approved_only=True):
        raise OperationalError("SELECT canteens", {}, Exception("disk I/O error"))

    monkeypatch.setattr(CanteenRepository, "list", broken_list)
    r = client.get("/api/canteens")
    assert r.status_code == 500
    assert r.json() == {"detail": PersistenceFailure.default_message}
