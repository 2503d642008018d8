from datetime import datetime, timedelta
from decimal import Decimal

import pytest
from sqlalchemy.exc import OperationalError

from app.errors import EmptyCart, PersistenceFailure, Unauthenticated
from app.models.order import Order, OrderLine
from app.realtime.change_feed import ORDER_LINES_TABLE, ORDERS_TABLE
from app.repositories.order_repo import OrderRepository
from app.services.cart_service import CartDraft
from app.services.order_service import OrderService
from conftest import CUSTOMER, draft_item, headers_for

T0 = datetime(2024, 3, 1, 12, 0, 0)


def _draft(*items):
    d = CartDraft("tok", owner_id=CUSTOMER.id)
    for it in items:
        d.add_item(it)
    return d


def test_single_canteen_cart_yields_one_order(db, canteens):
    draft = _draft(draft_item(canteens, "A", "X", "280"), draft_item(canteens, "B", "X", "120"))
    draft.update_quantity(canteens["A"], 2)

    result = OrderService(db).submit_cart(CUSTOMER, draft, now=T0)

    assert result.complete
    assert len(result.orders) == 1
    order = result.orders[0]
    assert order.total_amount == Decimal("680")
    assert order.status == "pending"
    assert order.customer_id == CUSTOMER.id
    assert order.canteen_id == canteens["X"]
    assert order.notes == "Cash on pickup"
    assert order.estimated_pickup_time == T0 + timedelta(minutes=30)
    assert order.created_at == T0
    assert len(order.lines) == 2
    assert {(l.menu_item_id, l.quantity, l.unit_price) for l in order.lines} == {
        (canteens["A"], 2, Decimal("280")),
        (canteens["B"], 1, Decimal("120")),
    }
    assert draft.is_empty


def test_multi_canteen_cart_yields_one_order_per_canteen(db, canteens):
    draft = _draft(
        draft_item(canteens, "A", "X", "280"),
        draft_item(canteens, "C", "Y", "90"),
        draft_item(canteens, "B", "X", "120"),
    )
    result = OrderService(db).submit_cart(CUSTOMER, draft, now=T0)

    assert len(result.orders) == 2
    by_canteen = {o.canteen_id: o for o in result.orders}
    assert by_canteen[canteens["X"]].total_amount == Decimal("400")
    assert by_canteen[canteens["Y"]].total_amount == Decimal("90")
    assert len(by_canteen[canteens["Y"]].lines) == 1
    assert db.query(Order).count() == 2


def test_two_items_two_canteens_scenario(db, canteens):
    draft = _draft(draft_item(canteens, "A", "X", "280"), draft_item(canteens, "C", "Y", "90"))
    result = OrderService(db).submit_cart(CUSTOMER, draft)
    assert sorted(len(o.lines) for o in result.orders) == [1, 1]
    assert {o.canteen_id for o in result.orders} == {canteens["X"], canteens["Y"]}


def test_total_uses_captured_price_not_menu_price(db, canteens):
    draft = _draft(draft_item(canteens, "A", "X", "250"))
    order = OrderService(db).submit_cart(CUSTOMER, draft).orders[0]
    assert order.total_amount == Decimal("250")
    assert order.lines[0].unit_price == Decimal("250")


def test_order_numbers_are_unique_and_increasing(db, canteens):
    svc = OrderService(db)
    numbers = []
    for _ in range(3):
        draft = _draft(draft_item(canteens, "A", "X", "280"), draft_item(canteens, "C", "Y", "90"))
        numbers += [o.order_number for o in svc.submit_cart(CUSTOMER, draft).orders]
    assert numbers == sorted(numbers)
    assert len(set(numbers)) == len(numbers) == 6


def test_unauthenticated_submission_leaves_draft(db, canteens):
    draft = _draft(draft_item(canteens, "A", "X", "280"))
    with pytest.raises(Unauthenticated):
        OrderService(db).submit_cart(None, draft)
    assert draft.total_items == 1
    assert db.query(Order).count() == 0


def test_empty_cart_rejected(db):
    with pytest.raises(EmptyCart):
        OrderService(db).submit_cart(CUSTOMER, CartDraft("tok"))


def test_failed_group_rolls_back_and_stays_in_cart(db, canteens, monkeypatch):
    real_insert_lines = OrderRepository.insert_lines

    def flaky_insert_lines(self, order_id, lines):
        if any(l["menu_item_id"] == canteens["C"] for l in lines):
            raise OperationalError("INSERT INTO order_lines", {}, Exception("disk I/O error"))
        return real_insert_lines(self, order_id, lines)

    monkeypatch.setattr(OrderRepository, "insert_lines", flaky_insert_lines)
    draft = _draft(draft_item(canteens, "A", "X", "280"), draft_item(canteens, "C", "Y", "90"))

    result = OrderService(db).submit_cart(CUSTOMER, draft)

    assert not result.complete
    assert [o.canteen_id for o in result.orders] == [canteens["X"]]
    assert [f.canteen_id for f in result.failures] == [canteens["Y"]]
    # no orphan header for the failed canteen
    assert db.query(Order).filter(Order.canteen_id == canteens["Y"]).count() == 0
    assert [i.item_id for i in draft.items] == [canteens["C"]]


def test_all_groups_failing_raises_and_keeps_draft(db, canteens, monkeypatch):
    def broken(self, order_id, lines):
        raise OperationalError("INSERT INTO order_lines", {}, Exception("locked"))

    monkeypatch.setattr(OrderRepository, "insert_lines", broken)
    draft = _draft(draft_item(canteens, "A", "X", "280"))
    with pytest.raises(PersistenceFailure):
        OrderService(db).submit_cart(CUSTOMER, draft)
    assert draft.total_items == 1
    assert db.query(Order).count() == 0
    assert db.query(OrderLine).count() == 0


def test_submission_publishes_change_events(db, canteens, feed):
    sub = feed.subscribe([ORDERS_TABLE, ORDER_LINES_TABLE])
    draft = _draft(draft_item(canteens, "A", "X", "280"), draft_item(canteens, "B", "X", "120"))
    OrderService(db, feed=feed).submit_cart(CUSTOMER, draft)
    events = sub.drain()
    assert [e.table for e in events] == [ORDERS_TABLE, ORDER_LINES_TABLE, ORDER_LINES_TABLE]
    assert {e.event_type for e in events} == {"INSERT"}


# HTTP


def test_checkout_api(client, canteens):
    h = headers_for(CUSTOMER)
    client.post("/api/cart/items", json={"menu_item_id": canteens["A"]}, headers=h)
    client.post("/api/cart/items", json={"menu_item_id": canteens["A"]}, headers=h)
    client.post("/api/cart/items", json={"menu_item_id": canteens["B"]}, headers=h)
    client.post("/api/cart/items", json={"menu_item_id": canteens["C"]}, headers=h)

    r = client.post("/api/cart/checkout", headers=h)
    assert r.status_code == 201, r.text
    body = r.json()
    assert body["message"] == "Order placed successfully!"
    assert body["failed_canteens"] == []
    assert body["cart"]["items"] == []
    totals = sorted(Decimal(o["total_amount"]) for o in body["orders"])
    assert totals == [Decimal("90"), Decimal("680")]
    for o in body["orders"]:
        assert o["status"] == "pending"
        assert o["allowed_next"] == ["preparing", "cancelled"]


def test_checkout_requires_sign_in(client, canteens):
    h = headers_for(CUSTOMER)
    client.post("/api/cart/items", json={"menu_item_id": canteens["A"]}, headers=h)
    r = client.post("/api/cart/checkout")
    assert r.status_code == 401
    assert client.get("/api/cart", headers=h).json()["total_items"] == 1


def test_checkout_empty_cart(client):
    r = client.post("/api/cart/checkout", headers=headers_for(CUSTOMER))
    assert r.status_code == 400
    assert r.json()["detail"] == "Cart is empty"
