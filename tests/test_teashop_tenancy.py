import pytest

from apps.teashop.app.db import TenantScope
from apps.teashop.app.errors import NotFound
from apps.teashop.app.models import Customer


def _create(client, headers, path, payload):
    r = client.post(path, json=payload, headers=headers)
    assert r.status_code == 201, r.text
    return r.json()["id"]


def test_foreign_ids_never_resolve_across_shops(client, make_shop):
    a = make_shop("Shop A")
    b = make_shop("Shop B")
    assert a.shop_id != b.shop_id

    ids = {
        "/api/customers": _create(client, b.headers(), "/api/customers", {"name": "Cee", "phone": "100"}),
        "/api/menu": _create(
            client, b.headers(), "/api/menu", {"name": "Chai", "category": "tea", "price": 2.5, "cost": 1}
        ),
        "/api/inventory": _create(
            client, b.headers(), "/api/inventory", {"name": "Milk", "category": "milk", "unit": "l", "currentStock": 5}
        ),
        "/api/tables": _create(client, b.headers(), "/api/tables", {"number": "1", "capacity": 4}),
        "/api/suppliers": _create(
            client,
            b.headers(),
            "/api/suppliers",
            {"name": "Dairy", "contactPerson": "D", "email": "d@x.com", "phone": "1"},
        ),
    }

    for path, obj_id in ids.items():
        assert client.get(f"{path}/{obj_id}", headers=a.headers()).status_code == 404, path
        assert client.delete(f"{path}/{obj_id}", headers=a.headers()).status_code == 404, path
        # still there for the owner
        assert client.get(f"{path}/{obj_id}", headers=b.headers()).status_code == 200, path

    r = client.put(f"/api/menu/{ids['/api/menu']}", json={"price": 0.01}, headers=a.headers())
    assert r.status_code == 404
    assert client.get(f"/api/menu/{ids['/api/menu']}", headers=b.headers()).json()["price"] == 2.5

    r = client.patch(
        f"/api/inventory/{ids['/api/inventory']}/stock",
        json={"quantity": 1, "operation": "subtract"},
        headers=a.headers(),
    )
    assert r.status_code == 404


def test_lists_only_show_own_shop(client, make_shop):
    a = make_shop("Shop A")
    b = make_shop("Shop B")
    _create(client, a.headers(), "/api/customers", {"name": "Mine", "phone": "1"})
    _create(client, b.headers(), "/api/customers", {"name": "Theirs", "phone": "2"})

    names = [c["name"] for c in client.get("/api/customers", headers=a.headers()).json()]
    assert names == ["Mine"]


def test_same_phone_allowed_in_different_shops(client, make_shop):
    a = make_shop("Shop A")
    b = make_shop("Shop B")
    _create(client, a.headers(), "/api/customers", {"name": "X", "phone": "555"})
    _create(client, b.headers(), "/api/customers", {"name": "Y", "phone": "555"})
    r = client.post("/api/customers", json={"name": "Z", "phone": "555"}, headers=a.headers())
    assert r.status_code == 400


def test_order_cannot_reference_foreign_menu_item(client, make_shop):
    a = make_shop("Shop A")
    b = make_shop("Shop B")
    foreign = _create(client, b.headers(), "/api/menu", {"name": "Chai", "category": "tea", "price": 2, "cost": 1})
    r = client.post(
        "/api/orders",
        json={"items": [{"menuItem": foreign, "quantity": 1}], "orderType": "takeaway", "paymentMethod": "cash"},
        headers=a.headers(),
    )
    assert r.status_code == 404


def test_tenant_scope_filters_every_lookup(session):
    scope_a = TenantScope(session, "1111")
    scope_b = TenantScope(session, "2222")
    c = scope_b.add(Customer(name="B", phone="9"))
    session.commit()

    assert scope_a.get(Customer, c.id) is None
    assert scope_b.get(Customer, c.id) is not None
    with pytest.raises(NotFound):
        scope_a.get_or_404(Customer, c.id, "Customer")
    with pytest.raises(NotFound):
        scope_a.delete(c)
    assert scope_a.all(scope_a.select(Customer)) == []
    # add() always stamps the scope's shop
    other = scope_a.add(Customer(name="A", phone="9", shop_id="2222"))
    assert other.shop_id == "1111"
