"""Fixtures shared by the API and service tests."""
import os
import tempfile
from decimal import Decimal

# point the app at a throwaway database before anything imports app.config
_DB_DIR = tempfile.mkdtemp(prefix="canteen-tests-")
os.environ["DATABASE_URL"] = f"sqlite:///{os.path.join(_DB_DIR, 'test.db')}"
os.environ["AUTO_ADVANCE_ENABLED"] = "false"
os.environ["LOG_LEVEL"] = "WARNING"

import pytest
from fastapi.testclient import TestClient

from app.db import SessionLocal, init_db
from app.identity import Actor, Role
from app.models.canteen import Canteen
from app.models.menu_item import MenuItem
from app.realtime.change_feed import ChangeFeed
from app.services.cart_service import CartDraftItem, cart_store

CUSTOMER = Actor(id="cust-1", role=Role.CUSTOMER)
OTHER_CUSTOMER = Actor(id="cust-2", role=Role.CUSTOMER)
STAFF_X = Actor(id="staff-x", role=Role.CANTEEN_STAFF)
STAFF_Y = Actor(id="staff-y", role=Role.CANTEEN_STAFF)
ADMIN = Actor(id="admin-1", role=Role.ADMIN)


def headers_for(actor: Actor) -> dict:
    return {"X-User-Id": actor.id, "X-User-Role": actor.role.value}


@pytest.fixture(autouse=True)
def fresh_db():
    init_db(reset=True)
    cart_store.reset()
    yield


@pytest.fixture
def db():
    s = SessionLocal()
    try:
        yield s
    finally:
        s.close()


@pytest.fixture
def client():
    from app.main import app

    return TestClient(app)


@pytest.fixture
def feed():
    return ChangeFeed()


@pytest.fixture
def canteens(db):
    """Two approved canteens, X (staff-x) and Y (staff-y), with a small menu each."""
    x = Canteen(name="Canteen X", location="Block A", staff_user_id=STAFF_X.id, is_approved=True)
    y = Canteen(name="Canteen Y", location="Block B", staff_user_id=STAFF_Y.id, is_approved=True)
    db.add_all([x, y])
    db.flush()
    items = {
        "A": MenuItem(canteen_id=x.id, name="Thali", price=Decimal("280"), description="Full meal"),
        "B": MenuItem(canteen_id=x.id, name="Lassi", price=Decimal("120")),
        "C": MenuItem(canteen_id=y.id, name="Sandwich", price=Decimal("90")),
        "D": MenuItem(canteen_id=y.id, name="Soup", price=Decimal("70"), is_available=False),
    }
    db.add_all(items.values())
    db.commit()
    return {
        "X": x.id,
        "Y": y.id,
        **{key: item.id for key, item in items.items()},
    }


def draft_item(ids: dict, key: str, canteen: str, price: str, name: str = None) -> CartDraftItem:
    return CartDraftItem(
        item_id=ids[key],
        name=name or key,
        unit_price=Decimal(price),
        canteen_id=ids[canteen],
        canteen_name=f"Canteen {canteen}",
    )
