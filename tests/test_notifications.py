from utils.notification_service import create_notification


def _notify(app, user, count=1):
    with app.app_context():
        return [create_notification(user._id, "order_status", "Cập nhật đơn hàng", f"Tin {i}")
                for i in range(count)]


def test_list_notifications(app, client, customer, auth_headers):
    _notify(app, customer, count=3)

    body = client.get("/api/notifications", headers=auth_headers).get_json()
    assert body["unreadCount"] == 3
    assert body["pagination"]["total"] == 3
    assert sorted(n["message"] for n in body["data"]) == ["Tin 0", "Tin 1", "Tin 2"]


def test_mark_one_read(app, client, customer, auth_headers):
    first, _ = _notify(app, customer, count=2)

    resp = client.patch(f"/api/notifications/{first['_id']}/read", headers=auth_headers)
    assert resp.status_code == 200
    assert resp.get_json()["count"] == 1
    assert client.get("/api/notifications/unread-count", headers=auth_headers).get_json()["count"] == 1


def test_cannot_read_someone_elses_notification(app, client, customer, other_headers):
    (notification,) = _notify(app, customer)
    resp = client.patch(f"/api/notifications/{notification['_id']}/read", headers=other_headers)
    assert resp.status_code == 404


def test_mark_all_read(app, client, customer, auth_headers):
    _notify(app, customer, count=4)

    resp = client.patch("/api/notifications/read-all", headers=auth_headers)
    assert resp.get_json()["modifiedCount"] == 4
    assert client.get("/api/notifications?unread=true", headers=auth_headers).get_json()["data"] == []


def test_status_update_notifies_customer(client, db, customer, auth_headers, seller_headers, shipping_info,
                                         product):
    order = client.post("/api/orders", json={"items": [{"product_id": product._id, "quantity": 1}],
                                             "shipping_info": shipping_info}, headers=auth_headers).get_json()["order"]
    client.put(f"/api/orders/{order['_id']}/shipping", json={"status": "confirmed"}, headers=seller_headers)

    notification = db["notifications"].find_one({"recipient_id": customer._id, "type": "order_status"})
    assert order["order_number"] in notification["message"]
