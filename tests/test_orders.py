from datetime import datetime, timedelta, timezone

import pytest

from db import parse_object_id
from models.order import check_transition
from routes import orders as orders_routes
from routes.orders import auto_confirm_orders


def _create(client, headers, items, shipping_info, **extra):
    return client.post("/api/orders", json={"items": items, "shipping_info": shipping_info, **extra},
                       headers=headers)


def _advance(client, headers, order_id, *statuses):
    for status in statuses:
        resp = client.put(f"/api/orders/{order_id}/shipping", json={"status": status}, headers=headers)
        assert resp.status_code == 200, resp.get_json()
    return resp


def test_create_order_totals_and_stock(client, db, auth_headers, shipping_info, make_product, make_voucher):
    fish = make_product(name="Cá ngừ", price=100000, stock=10)
    cake = make_product(name="Bánh tráng", price=50000, sale_price=40000, stock=5)
    make_voucher("GIAM10", discount_value=10, isPercent=True)
    make_voucher("SHIP20", voucher_type="FREESHIP", discount_value=20000)

    resp = _create(client, auth_headers,
                   [{"product_id": fish._id, "quantity": 2}, {"product_id": cake._id, "quantity": 5}],
                   shipping_info, voucherCodes={"discount": "GIAM10", "freeship": "SHIP20"})

    assert resp.status_code == 201
    order = resp.get_json()["order"]
    subtotal = 2 * 100000 + 5 * 40000
    assert order["subtotal"] == subtotal
    assert order["discount_value"] == subtotal * 0.1
    assert order["freeship_value"] == 20000
    assert order["total_amount"] == sum(i["total"] for i in order["items"]) + 30000 - order["discount_value"] - 20000
    assert order["status"] == "pending"
    assert order["order_number"].startswith("ORD")

    assert db["products"].find_one({"_id": parse_object_id(fish._id)})["stock_quantity"] == 8
    sold_out = db["products"].find_one({"_id": parse_object_id(cake._id)})
    assert sold_out["stock_quantity"] == 0
    assert sold_out["status"] == "out_of_stock"
    assert db["vouchers"].find_one({"code": "GIAM10"})["usedCount"] == 1


def test_create_order_notifies_sellers(client, db, auth_headers, seller, shipping_info, product):
    _create(client, auth_headers, [{"product_id": product._id, "quantity": 1}], shipping_info)
    assert db["notifications"].count_documents({"recipient_id": seller._id, "type": "new_order"}) == 1


def test_create_order_removes_cart_lines(client, db, auth_headers, shipping_info, product):
    client.post("/api/cart", json={"product_id": product._id, "quantity": 1}, headers=auth_headers)
    _create(client, auth_headers, [{"product_id": product._id, "quantity": 1}], shipping_info)
    assert db["cart_items"].count_documents({}) == 0


def test_create_order_insufficient_stock(client, auth_headers, shipping_info, product):
    resp = _create(client, auth_headers, [{"product_id": product._id, "quantity": 99}], shipping_info)
    assert resp.status_code == 400


def test_create_order_requires_shipping_info(client, auth_headers, product):
    resp = _create(client, auth_headers, [{"product_id": product._id, "quantity": 1}], {"name": "An"})
    assert resp.status_code == 400


def test_create_order_with_unknown_voucher(client, auth_headers, shipping_info, product):
    resp = _create(client, auth_headers, [{"product_id": product._id, "quantity": 1}], shipping_info,
                   voucherCodes={"discount": "KHONGCO"})
    assert resp.status_code == 404


@pytest.mark.parametrize("current,target,allowed", [
    ("pending", "confirmed", True),
    ("confirmed", "processing", True),
    ("pending", "shipped", False),
    ("shipped", "processing", False),
    ("pending", "cancelled", False),
    ("processing", "cancelled", False),
    ("shipped", "cancelled", False),
    ("cancel_request", "cancelled", True),
    ("cancel_request", "shipped", False),
    ("cancelled", "pending", False),
])
def test_check_transition(current, target, allowed):
    assert (check_transition(current, target) is None) is allowed


def test_seller_advances_status_step_by_step(client, db, auth_headers, seller_headers, shipping_info,
                                             product, email_service):
    order = _create(client, auth_headers, [{"product_id": product._id, "quantity": 2}], shipping_info) \
        .get_json()["order"]
    order_id = order["_id"]

    skip = client.put(f"/api/orders/{order_id}/shipping", json={"status": "shipped"}, headers=seller_headers)
    assert skip.status_code == 400

    resp = _advance(client, seller_headers, order_id, "confirmed", "processing", "shipped", "delivered")
    delivered = resp.get_json()["order"]
    assert delivered["status"] == "delivered"
    assert delivered["payment_status"] == "paid"
    assert delivered["delivered_at"] is not None
    assert [h["status"] for h in delivered["history"]] == ["pending", "confirmed", "processing", "shipped",
                                                           "delivered"]

    back = client.put(f"/api/orders/{order_id}/shipping", json={"status": "shipped"}, headers=seller_headers)
    assert back.status_code == 400

    stored = db["products"].find_one({"_id": parse_object_id(product._id)})
    assert stored["sold_quantity"] == 2
    assert stored["purchase_count"] == 2
    assert len(email_service.status_mails) == 4


def test_shipping_update_without_changes(client, auth_headers, seller_headers, shipping_info, product):
    order = _create(client, auth_headers, [{"product_id": product._id, "quantity": 1}], shipping_info) \
        .get_json()["order"]
    resp = client.put(f"/api/orders/{order['_id']}/shipping", json={}, headers=seller_headers)
    assert resp.status_code == 400


def test_customer_cancels_within_window(client, db, auth_headers, shipping_info, product):
    order = _create(client, auth_headers, [{"product_id": product._id, "quantity": 3}], shipping_info) \
        .get_json()["order"]

    resp = client.put(f"/api/orders/{order['_id']}/cancel", json={"reason": "Đổi ý"}, headers=auth_headers)
    assert resp.status_code == 200
    assert resp.get_json()["order"]["status"] == "cancelled"
    assert db["products"].find_one({"_id": parse_object_id(product._id)})["stock_quantity"] == 10


def test_cancel_after_window_fails(client, db, auth_headers, shipping_info, product):
    order = _create(client, auth_headers, [{"product_id": product._id, "quantity": 1}], shipping_info) \
        .get_json()["order"]
    db["orders"].update_one({"_id": parse_object_id(order["_id"])},
                            {"$set": {"created_at": datetime.now(timezone.utc) - timedelta(minutes=31)}})

    resp = client.put(f"/api/orders/{order['_id']}/cancel", headers=auth_headers)
    assert resp.status_code == 400


def test_cancel_processing_order_becomes_request(client, auth_headers, seller_headers, shipping_info, product):
    order = _create(client, auth_headers, [{"product_id": product._id, "quantity": 1}], shipping_info) \
        .get_json()["order"]
    _advance(client, seller_headers, order["_id"], "confirmed", "processing")

    resp = client.put(f"/api/orders/{order['_id']}/cancel", headers=auth_headers)
    assert resp.get_json()["order"]["status"] == "cancel_request"

    approve = client.put(f"/api/orders/{order['_id']}/shipping", json={"status": "cancelled"},
                         headers=seller_headers)
    assert approve.get_json()["order"]["status"] == "cancelled"


def test_orders_are_private(client, auth_headers, other_headers, seller_headers, shipping_info, product):
    order = _create(client, auth_headers, [{"product_id": product._id, "quantity": 1}], shipping_info) \
        .get_json()["order"]

    assert client.get(f"/api/orders/{order['_id']}", headers=other_headers).status_code == 404
    assert client.get(f"/api/orders/{order['_id']}", headers=seller_headers).status_code == 200
    by_number = client.get(f"/api/orders/{order['order_number']}", headers=auth_headers)
    assert by_number.get_json()["timeline"][0]["status"] == "pending"


def test_user_orders_stats(client, auth_headers, shipping_info, product):
    for _ in range(2):
        _create(client, auth_headers, [{"product_id": product._id, "quantity": 1}], shipping_info)

    body = client.get("/api/orders/user", headers=auth_headers).get_json()
    assert body["stats"]["pending"] == 2
    assert body["stats"]["total"] == 2
    assert body["pagination"]["total"] == 2


def test_reorder_adds_available_items(client, auth_headers, seller_headers, shipping_info, product):
    order = _create(client, auth_headers, [{"product_id": product._id, "quantity": 2}], shipping_info) \
        .get_json()["order"]
    client.put(f"/api/orders/{order['_id']}/cancel", headers=auth_headers)

    resp = client.post(f"/api/orders/{order['_id']}/reorder", headers=auth_headers)
    assert resp.status_code == 200
    assert resp.get_json()["added"][0]["quantity"] == 2


def test_auto_confirm_orders(app, client, db, auth_headers, shipping_info, product):
    order = _create(client, auth_headers, [{"product_id": product._id, "quantity": 1}], shipping_info) \
        .get_json()["order"]

    with app.app_context():
        assert auto_confirm_orders() == 0
        assert auto_confirm_orders(now=datetime.now(timezone.utc) + timedelta(minutes=31)) == 1

    assert db["orders"].find_one({"_id": parse_object_id(order["_id"])})["status"] == "confirmed"


def test_seller_cannot_cancel_without_request(client, db, auth_headers, seller_headers, shipping_info, product):
    order = _create(client, auth_headers, [{"product_id": product._id, "quantity": 2}], shipping_info) \
        .get_json()["order"]
    _advance(client, seller_headers, order["_id"], "confirmed")

    resp = client.put(f"/api/orders/{order['_id']}/shipping", json={"status": "cancelled"}, headers=seller_headers)
    assert resp.status_code == 400
    stored = db["orders"].find_one({"_id": parse_object_id(order["_id"])})
    assert stored["status"] == "confirmed"
    assert db["products"].find_one({"_id": parse_object_id(product._id)})["stock_quantity"] == 8


def test_cancel_request_only_accepts_cancellation(client, auth_headers, seller_headers, shipping_info, product):
    order = _create(client, auth_headers, [{"product_id": product._id, "quantity": 1}], shipping_info) \
        .get_json()["order"]
    _advance(client, seller_headers, order["_id"], "confirmed", "processing")
    client.put(f"/api/orders/{order['_id']}/cancel", headers=auth_headers)

    resp = client.put(f"/api/orders/{order['_id']}/shipping", json={"carrier": "GHN", "tracking_number": "GHN1"},
                      headers=seller_headers)
    assert resp.status_code == 400


def test_stale_cancel_does_not_restore_stock_twice(client, db, auth_headers, shipping_info, product,
                                                   monkeypatch):
    order = _create(client, auth_headers, [{"product_id": product._id, "quantity": 3}], shipping_info) \
        .get_json()["order"]
    stale = db["orders"].find_one({"_id": parse_object_id(order["_id"])})
    assert client.put(f"/api/orders/{order['_id']}/cancel", headers=auth_headers).status_code == 200

    monkeypatch.setattr(orders_routes, "find_order", lambda order_id: stale)
    resp = client.put(f"/api/orders/{order['_id']}/cancel", headers=auth_headers)

    assert resp.status_code == 409
    assert db["products"].find_one({"_id": parse_object_id(product._id)})["stock_quantity"] == 10


def test_stale_seller_update_is_rejected(client, db, auth_headers, seller_headers, shipping_info, product,
                                         monkeypatch):
    order = _create(client, auth_headers, [{"product_id": product._id, "quantity": 1}], shipping_info) \
        .get_json()["order"]
    stale = db["orders"].find_one({"_id": parse_object_id(order["_id"])})
    client.put(f"/api/orders/{order['_id']}/cancel", headers=auth_headers)

    monkeypatch.setattr(orders_routes, "find_order", lambda order_id: stale)
    resp = client.put(f"/api/orders/{order['_id']}/shipping", json={"status": "confirmed"}, headers=seller_headers)

    assert resp.status_code == 409
    assert db["orders"].find_one({"_id": parse_object_id(order["_id"])})["status"] == "cancelled"
