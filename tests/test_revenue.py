from datetime import datetime, timedelta, timezone

from routes.revenue import build_series, period_key, period_keys


def _utc(*args):
    return datetime(*args, tzinfo=timezone.utc)


def test_period_key_uses_vietnam_calendar():
    late_evening_utc = _utc(2025, 3, 1, 18, 0)
    assert period_key(late_evening_utc, "day") == "2025-03-02"
    assert period_key(late_evening_utc, "month") == "2025-03"


def test_week_labels_follow_iso_weeks():
    assert period_key(_utc(2024, 12, 30, 5), "week") == "2025-W01"
    assert period_keys(_utc(2025, 1, 1), _utc(2025, 1, 14), "week") == ["2025-W01", "2025-W02", "2025-W03"]


def test_series_zero_fills_every_day():
    orders = [
        {"created_at": _utc(2025, 1, 30, 3), "total_amount": 100000},
        {"created_at": _utc(2025, 1, 30, 4), "total_amount": 50000},
        {"created_at": _utc(2025, 2, 2, 1), "total_amount": 70000},
    ]
    series = build_series(orders, "day", _utc(2025, 1, 30), _utc(2025, 2, 2, 12))

    assert [row["period"] for row in series] == ["2025-01-30", "2025-01-31", "2025-02-01", "2025-02-02"]
    assert [row["revenue"] for row in series] == [150000, 0, 0, 70000]
    assert [row["orders"] for row in series] == [2, 0, 0, 1]


def test_monthly_series_spans_year_boundary():
    keys = [row["period"] for row in build_series([], "month", _utc(2024, 11, 15), _utc(2025, 2, 1))]
    assert keys == ["2024-11", "2024-12", "2025-01", "2025-02"]


def _insert_order(db, created_at, amount, status="delivered", items=None):
    db["orders"].insert_one({
        "order_number": f"ORD{int(created_at.timestamp() * 1000)}{amount}",
        "user_id": "u1",
        "status": status,
        "total_amount": amount,
        "items": items or [],
        "shipping_info": {"name": "An"},
        "created_at": created_at,
    })


def test_revenue_route_excludes_cancelled(client, db, seller_headers):
    _insert_order(db, _utc(2025, 3, 1, 2), 100000)
    _insert_order(db, _utc(2025, 3, 2, 2), 200000, status="cancelled")
    _insert_order(db, _utc(2025, 3, 3, 2), 300000, status="pending")

    resp = client.get("/api/revenue?period=day&start=2025-03-01T00:00:00Z&end=2025-03-03T12:00:00Z",
                      headers=seller_headers)
    body = resp.get_json()
    assert resp.status_code == 200
    assert [row["revenue"] for row in body["data"]] == [100000, 0, 300000]
    assert body["summary"] == {"revenue": 400000, "orders": 2}

    cancelled = client.get("/api/revenue?period=day&status=cancelled&start=2025-03-01T00:00:00Z"
                           "&end=2025-03-03T12:00:00Z", headers=seller_headers).get_json()
    assert cancelled["summary"]["revenue"] == 200000


def test_revenue_rejects_unknown_period(client, seller_headers):
    assert client.get("/api/revenue?period=year", headers=seller_headers).status_code == 400


def test_revenue_is_seller_only(client, auth_headers):
    assert client.get("/api/revenue", headers=auth_headers).status_code == 403


def test_new_orders_and_summary(client, db, seller_headers):
    now = datetime.now(timezone.utc)
    _insert_order(db, now - timedelta(hours=1), 120000, status="pending")
    _insert_order(db, now - timedelta(days=3), 80000, status="pending")

    new_orders = client.get("/api/revenue/new-orders", headers=seller_headers).get_json()
    assert new_orders["count"] == 1
    assert new_orders["data"][0]["total_amount"] == 120000

    summary = client.get("/api/revenue/summary", headers=seller_headers).get_json()["data"]
    assert summary["newOrders"] == 1
    assert summary["today"]["revenue"] in (0, 120000)


def test_top_products_by_revenue(client, db, seller_headers):
    now = datetime.now(timezone.utc)
    _insert_order(db, now, 300000, items=[
        {"product_id": "p1", "product_name": "Cá ngừ", "quantity": 1, "total": 250000},
        {"product_id": "p2", "product_name": "Bánh tráng", "quantity": 5, "total": 50000},
    ])

    by_quantity = client.get("/api/revenue/top-products", headers=seller_headers).get_json()["data"]
    assert by_quantity[0]["product_id"] == "p2"

    by_revenue = client.get("/api/revenue/top-products?sortBy=revenue", headers=seller_headers).get_json()["data"]
    assert by_revenue[0]["product_id"] == "p1"


def test_revenue_range_bounds_are_inclusive(client, db, seller_headers):
    _insert_order(db, _utc(2025, 2, 28, 16, 59), 50000)
    _insert_order(db, _utc(2025, 2, 28, 17), 100000)
    _insert_order(db, _utc(2025, 3, 1, 12), 200000)
    _insert_order(db, _utc(2025, 3, 1, 12, 1), 400000)

    resp = client.get("/api/revenue?period=day&start=2025-02-28T17:00:00Z&end=2025-03-01T12:00:00Z",
                      headers=seller_headers)
    assert resp.get_json()["summary"] == {"revenue": 300000, "orders": 2}


def test_new_orders_newest_first(client, db, seller_headers):
    now = datetime.now(timezone.utc)
    _insert_order(db, now - timedelta(hours=5), 100000, status="pending")
    _insert_order(db, now - timedelta(hours=1), 200000, status="pending")

    data = client.get("/api/revenue/new-orders", headers=seller_headers).get_json()["data"]
    assert [row["total_amount"] for row in data] == [200000, 100000]
