from apps.teashop.app.reports import loyalty_bucket


def _menu(client, shop, name, category, price):
    return client.post(
        "/api/menu", json={"name": name, "category": category, "price": price, "cost": 1}, headers=shop.headers()
    ).json()


def _order(client, shop, lines, payment="cash", status=None):
    r = client.post(
        "/api/orders",
        json={
            "items": [{"menuItem": m["id"], "quantity": q} for m, q in lines],
            "orderType": "takeaway",
            "paymentMethod": payment,
        },
        headers=shop.headers(),
    )
    assert r.status_code == 201, r.text
    order = r.json()
    if status:
        client.patch(f"/api/orders/{order['id']}/status", json={"status": status}, headers=shop.headers())
    return order


def _seed(client, shop):
    chai = _menu(client, shop, "Chai", "tea", 2.0)
    cake = _menu(client, shop, "Cake", "desserts", 5.0)
    _order(client, shop, [(chai, 3), (cake, 1)], payment="cash", status="completed")  # 11
    _order(client, shop, [(chai, 1)], payment="card", status="completed")  # 2
    _order(client, shop, [(cake, 4)], payment="card")  # pending, excluded
    _order(client, shop, [(chai, 10)], status="cancelled")  # excluded
    return chai, cake


def test_sales_report_counts_completed_orders_only(client, shop):
    _seed(client, shop)
    r = client.get("/api/reports/sales", headers=shop.headers())
    assert r.status_code == 200
    body = r.json()
    assert body["totalSales"] == {"total": 13.0, "count": 2}

    by_cat = {row["category"]: row for row in body["salesByCategory"]}
    assert by_cat["tea"] == {"category": "tea", "total": 8.0, "quantity": 4}
    assert by_cat["desserts"] == {"category": "desserts", "total": 5.0, "quantity": 1}

    by_pay = {row["paymentMethod"]: row for row in body["salesByPayment"]}
    assert by_pay["cash"]["total"] == 11.0
    assert by_pay["card"]["count"] == 1

    assert len(body["dailySales"]) == 1
    assert body["dailySales"][0]["total"] == 13.0
    assert body["dailySales"][0]["count"] == 2


def test_date_window_needs_both_bounds(client, shop):
    _seed(client, shop)
    only_start = client.get("/api/reports/sales", params={"startDate": "2999-01-01"}, headers=shop.headers()).json()
    assert only_start["totalSales"]["count"] == 2
    future = client.get(
        "/api/reports/sales", params={"startDate": "2999-01-01", "endDate": "2999-12-31"}, headers=shop.headers()
    ).json()
    assert future["totalSales"] == {"total": 0.0, "count": 0}
    assert future["dailySales"] == []


def test_products_report_ranks_by_quantity(client, shop):
    chai, cake = _seed(client, shop)
    rows = client.get("/api/reports/products", headers=shop.headers()).json()
    assert [r["name"] for r in rows] == ["Chai", "Cake"]
    assert rows[0] == {"menuItem": chai["id"], "name": "Chai", "totalQuantity": 4, "totalRevenue": 8.0, "avgPrice": 2.0}


def test_financial_report(client, shop):
    _seed(client, shop)
    body = client.get("/api/reports/financial", headers=shop.headers()).json()
    assert body["summary"] == {"totalRevenue": 13.0, "totalTax": 0.0, "totalDiscount": 0.0, "orderCount": 2}
    assert len(body["monthlyRevenue"]) == 1
    assert body["monthlyRevenue"][0]["revenue"] == 13.0
    assert body["monthlyRevenue"][0]["orders"] == 2


def test_inventory_report_valuation(client, shop):
    for name, stock, minimum, cost in (("Milk", 10, 2, 1.5), ("Sugar", 1, 5, 2.0)):
        client.post(
            "/api/inventory",
            json={"name": name, "category": "others", "unit": "kg", "currentStock": stock, "minStock": minimum, "costPerUnit": cost},
            headers=shop.headers(),
        )
    body = client.get("/api/reports/inventory", headers=shop.headers()).json()
    assert body["totalValue"] == 17.0
    assert [i["name"] for i in body["inventoryLevels"]] == ["Milk", "Sugar"]
    assert [i["name"] for i in body["lowStockItems"]] == ["Sugar"]


def test_customers_report_loyalty_buckets(client, shop):
    for phone, points in (("1", 0), ("2", 50), ("3", 150), ("4", 7000)):
        c = client.post("/api/customers", json={"name": f"C{phone}", "phone": phone}, headers=shop.headers()).json()
        if points:
            client.patch(
                f"/api/customers/{c['id']}/loyalty", json={"points": points, "operation": "add"}, headers=shop.headers()
            )
    body = client.get("/api/reports/customers", headers=shop.headers()).json()
    assert body["loyaltyDistribution"] == [
        {"bucket": 0, "count": 2},
        {"bucket": 100, "count": 1},
        {"bucket": "Other", "count": 1},
    ]
    assert len(body["topCustomers"]) == 4
    assert sum(m["newCustomers"] for m in body["customerAcquisition"]) == 4


def test_loyalty_bucket_boundaries():
    assert loyalty_bucket(0) == 0
    assert loyalty_bucket(99) == 0
    assert loyalty_bucket(100) == 100
    assert loyalty_bucket(4999) == 1000
    assert loyalty_bucket(5000) == "Other"
    assert loyalty_bucket(-1) == "Other"


def test_reports_are_tenant_scoped(client, make_shop):
    a = make_shop("A")
    b = make_shop("B")
    _seed(client, b)
    assert client.get("/api/reports/sales", headers=a.headers()).json()["totalSales"] == {"total": 0.0, "count": 0}


def test_reports_keep_lines_of_deleted_menu_items(client, shop):
    chai, cake = _seed(client, shop)
    assert client.delete(f"/api/menu/{cake['id']}", headers=shop.headers()).status_code == 200

    rows = client.get("/api/reports/products", headers=shop.headers()).json()
    assert {r["name"]: r["totalQuantity"] for r in rows} == {"Chai": 4, "Cake": 1}

    by_cat = {r["category"]: r for r in client.get("/api/reports/sales", headers=shop.headers()).json()["salesByCategory"]}
    assert by_cat["desserts"]["total"] == 5.0
