import pytest
from sqlalchemy import select

import apps.teashop.app.stock as stock
from apps.teashop.app.db import TenantScope
from apps.teashop.app.errors import InsufficientStock, NotFound
from apps.teashop.app.models import InventoryItem, StockIn, Supplier


def _item(client, shop, **overrides):
    payload = {"name": "Assam leaves", "category": "tea-leaves", "unit": "kg", "currentStock": 5, "minStock": 5}
    payload.update(overrides)
    r = client.post("/api/inventory", json=payload, headers=shop.headers())
    assert r.status_code == 201, r.text
    return r.json()


def _supplier(client, shop, name="Leaf Co"):
    r = client.post(
        "/api/suppliers",
        json={"name": name, "contactPerson": "L", "email": "leaf@example.com", "phone": "123"},
        headers=shop.headers(),
    )
    assert r.status_code == 201, r.text
    return r.json()


def test_low_stock_alert_and_insufficient_stock(client, shop, events):
    item = _item(client, shop)

    r = client.patch(
        f"/api/inventory/{item['id']}/stock", json={"quantity": 1, "operation": "subtract"}, headers=shop.headers()
    )
    assert r.status_code == 200
    assert r.json()["currentStock"] == 4
    alerts = [e for e in events if e[1] == "low-stock-alert"]
    assert alerts == [(shop.shop_id, "low-stock-alert", {"item": "Assam leaves", "currentStock": 4, "minStock": 5})]

    r = client.patch(
        f"/api/inventory/{item['id']}/stock", json={"quantity": 10, "operation": "subtract"}, headers=shop.headers()
    )
    assert r.status_code == 400
    assert r.json()["message"] == "Insufficient stock"
    assert client.get(f"/api/inventory/{item['id']}", headers=shop.headers()).json()["currentStock"] == 4


def test_add_refreshes_last_restocked_without_alert_above_min(client, shop, events):
    item = _item(client, shop, currentStock=1, minStock=2)
    r = client.patch(
        f"/api/inventory/{item['id']}/stock", json={"quantity": 10, "operation": "add"}, headers=shop.headers()
    )
    assert r.status_code == 200
    assert r.json()["currentStock"] == 11
    assert r.json()["isLowStock"] is False
    assert r.json()["lastRestocked"] >= item["lastRestocked"]
    assert not [e for e in events if e[1] == "low-stock-alert"]


def test_stock_quantity_must_be_positive(client, shop):
    item = _item(client, shop)
    for qty in (0, -3):
        r = client.patch(
            f"/api/inventory/{item['id']}/stock", json={"quantity": qty, "operation": "add"}, headers=shop.headers()
        )
        assert r.status_code == 400


def test_stock_never_goes_negative(session):
    scope = TenantScope(session, "1234")
    item = scope.add(InventoryItem(name="Cups", category="cups", unit="pieces", current_stock=3, min_stock=0))
    session.commit()

    stock.adjust_stock(scope, item.id, 3, "subtract")
    assert item.current_stock == 0
    with pytest.raises(InsufficientStock):
        stock.adjust_stock(scope, item.id, 0.5, "subtract")
    session.refresh(item)
    assert item.current_stock == 0


def test_low_stock_listing(client, shop):
    low = _item(client, shop, name="Sugar", category="sugar", currentStock=1, minStock=2)
    _item(client, shop, name="Milk", category="milk", unit="l", currentStock=50, minStock=2)

    alerts = client.get("/api/inventory/alerts/low-stock", headers=shop.headers()).json()
    assert [i["id"] for i in alerts] == [low["id"]]
    listed = client.get("/api/inventory", params={"lowStock": "true"}, headers=shop.headers()).json()
    assert [i["id"] for i in listed] == [low["id"]]
    by_cat = client.get("/api/inventory", params={"category": "milk"}, headers=shop.headers()).json()
    assert [i["name"] for i in by_cat] == ["Milk"]


def test_update_does_not_touch_current_stock(client, shop):
    item = _item(client, shop)
    r = client.put(f"/api/inventory/{item['id']}", json={"currentStock": 999, "minStock": 1}, headers=shop.headers())
    assert r.status_code == 200
    assert r.json()["currentStock"] == 5
    assert r.json()["minStock"] == 1


def test_stock_in_updates_inventory_and_supplier(client, shop):
    item = _item(client, shop, currentStock=2)
    sup = _supplier(client, shop)

    r = client.post(
        "/api/stockin",
        json={"supplier": sup["id"], "product": item["id"], "quantity": 8, "unitPrice": 2.5, "totalPrice": 20},
        headers=shop.headers(),
    )
    assert r.status_code == 201, r.text
    body = r.json()
    assert body["unit"] == "kg"
    assert body["product"]["id"] == item["id"]

    assert client.get(f"/api/inventory/{item['id']}", headers=shop.headers()).json()["currentStock"] == 10
    s = client.get(f"/api/suppliers/{sup['id']}", headers=shop.headers()).json()
    assert s["totalOrders"] == 1
    assert s["totalAmount"] == 20
    assert s["lastOrder"] is not None

    listed = client.get("/api/stockin", params={"supplier": sup["id"]}, headers=shop.headers()).json()
    assert [x["id"] for x in listed] == [body["id"]]


def test_stock_in_requires_existing_refs(client, shop):
    item = _item(client, shop)
    r = client.post(
        "/api/stockin",
        json={"supplier": "missing", "product": item["id"], "quantity": 1, "unitPrice": 1, "totalPrice": 1},
        headers=shop.headers(),
    )
    assert r.status_code == 404
    assert client.get(f"/api/inventory/{item['id']}", headers=shop.headers()).json()["currentStock"] == 5


def test_stock_in_rolls_back_all_writes_on_failure(session, monkeypatch):
    scope = TenantScope(session, "1234")
    item = scope.add(InventoryItem(name="Milk", category="milk", unit="l", current_stock=1, min_stock=0))
    sup = scope.add(Supplier(name="Dairy", contact_person="D", email="d@x.com", phone="1"))
    session.commit()

    def boom(**kwargs):
        raise RuntimeError("disk full")

    monkeypatch.setattr(stock, "StockIn", boom)
    req = stock.StockInCreate(supplier=sup.id, product=item.id, quantity=5, unit_price=1, total_price=5)
    with pytest.raises(RuntimeError):
        stock.record_stock_in(scope, req)

    session.refresh(item)
    session.refresh(sup)
    assert item.current_stock == 1
    assert sup.total_orders == 0
    assert sup.total_amount == 0
    assert session.execute(select(StockIn)).first() is None


def test_stock_in_defaults_total_price(session):
    scope = TenantScope(session, "1234")
    item = scope.add(InventoryItem(name="Milk", category="milk", unit="l", current_stock=0, min_stock=0))
    sup = scope.add(Supplier(name="Dairy", contact_person="D", email="d@x.com", phone="1"))
    session.commit()

    rec = stock.record_stock_in(scope, stock.StockInCreate(supplier=sup.id, product=item.id, quantity=4, unit_price=1.25))
    assert rec.total_price == 5.0
    assert rec.shop_id == "1234"


def test_stock_in_from_other_shop_is_not_found(session):
    mine = TenantScope(session, "1111")
    theirs = TenantScope(session, "2222")
    item = theirs.add(InventoryItem(name="Milk", category="milk", unit="l", current_stock=0, min_stock=0))
    sup = mine.add(Supplier(name="Dairy", contact_person="D", email="d@x.com", phone="1"))
    session.commit()
    with pytest.raises(NotFound):
        stock.record_stock_in(mine, stock.StockInCreate(supplier=sup.id, product=item.id, quantity=1, unit_price=1))
