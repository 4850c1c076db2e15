import json
from datetime import datetime, timezone
from urllib.parse import parse_qs, urlparse

import pytest

from bson import ObjectId

from utils import zalopay_helper
from utils.vnpay_helper import VNPayHelper, encode_params, format_vnp_date
from utils.zalopay_helper import hmac_sha256, make_app_trans_id


class FakeResponse:
    def __init__(self, payload, status_code=200):
        self.payload = payload
        self.status_code = status_code
        self.ok = status_code < 400

    def json(self):
        return self.payload


@pytest.fixture
def order(client, auth_headers, shipping_info, product):
    resp = client.post("/api/orders", json={
        "items": [{"product_id": product._id, "quantity": 1}],
        "shipping_info": shipping_info,
        "payment_method": "vnpay",
    }, headers=auth_headers)
    assert resp.status_code == 201
    return resp.get_json()["order"]


def _payment_status(db, order):
    return db["orders"].find_one({"_id": ObjectId(order["_id"])})["payment_status"]


def test_vnp_date_is_vietnam_time():
    assert format_vnp_date(datetime(2025, 3, 1, 18, 30, tzinfo=timezone.utc)) == "20250302013000"


def test_encode_params_sorts_and_uses_plus_for_spaces():
    assert encode_params({"b": "Thanh toan", "a": "x/y"}) == "a=x%2Fy&b=Thanh+toan"


def test_payment_url_is_signed(settings):
    url = VNPayHelper(settings).build_payment_url("ORD1", 130000)
    query = parse_qs(urlparse(url).query)

    assert query["vnp_Amount"] == ["13000000"]
    assert query["vnp_TmnCode"] == ["TESTTMN1"]
    params = {key: values[0] for key, values in query.items()}
    assert VNPayHelper(settings).verify_return(params)


def test_vnpay_payment_route(client, auth_headers, order):
    resp = client.post("/api/vnpay/payment", json={"orderId": order["_id"], "amount": order["total_amount"]},
                       headers=auth_headers)
    assert resp.status_code == 201
    assert "vnp_SecureHash=" in resp.get_json()["paymentUrl"]


def test_vnpay_payment_uses_order_total(client, auth_headers, order):
    resp = client.post("/api/vnpay/payment", json={"orderId": order["_id"], "amount": 1}, headers=auth_headers)

    assert resp.status_code == 201
    query = parse_qs(urlparse(resp.get_json()["paymentUrl"]).query)
    assert query["vnp_Amount"] == [str(int(order["total_amount"] * 100))]
    assert query["vnp_TxnRef"] == [order["order_number"]]


def test_vnpay_payment_requires_order(client, auth_headers):
    assert client.post("/api/vnpay/payment", json={}, headers=auth_headers).status_code == 400


def test_vnpay_payment_for_another_users_order(client, other_headers, order):
    resp = client.post("/api/vnpay/payment", json={"orderId": order["_id"]}, headers=other_headers)
    assert resp.status_code == 404


def _signed_return(settings, order, response_code="00"):
    params = {
        "vnp_TxnRef": order["order_number"],
        "vnp_Amount": str(int(order["total_amount"] * 100)),
        "vnp_ResponseCode": response_code,
        "vnp_TransactionNo": "14000001",
        "vnp_OrderInfo": f"Thanh toan don hang {order['order_number']}",
    }
    params["vnp_SecureHash"] = VNPayHelper(settings).sign(encode_params(params))
    return params


def test_vnpay_return_marks_order_paid(client, db, settings, order):
    resp = client.get("/api/vnpay/return", query_string=_signed_return(settings, order))

    assert resp.status_code == 302
    location = urlparse(resp.headers["Location"])
    assert location.path == "/checkout"
    assert parse_qs(location.query)["success"] == ["true"]
    assert _payment_status(db, order) == "paid"


def test_vnpay_return_with_failed_code(client, db, settings, order):
    resp = client.get("/api/vnpay/return", query_string=_signed_return(settings, order, response_code="24"))
    assert parse_qs(urlparse(resp.headers["Location"]).query)["success"] == ["false"]
    assert _payment_status(db, order) == "failed"


def test_vnpay_return_rejects_tampered_signature(client, db, settings, order):
    params = _signed_return(settings, order)
    params["vnp_Amount"] = "100"

    resp = client.get("/api/vnpay/return", query_string=params)
    assert parse_qs(urlparse(resp.headers["Location"]).query)["success"] == ["false"]
    assert _payment_status(db, order) == "pending"


def test_app_trans_id_format():
    now = datetime(2025, 3, 1, 18, 0, tzinfo=timezone.utc)
    assert make_app_trans_id("65f1a2b3c4d5e6f700112233", now) == "250302_112233"
    assert make_app_trans_id("abc", now) == "250302_000000"


def test_zalopay_create_stores_trans_id(client, db, auth_headers, order, monkeypatch):
    sent = {}

    def fake_post(url, data=None, timeout=None):
        sent.update(data)
        return FakeResponse({"return_code": 1, "order_url": "https://sb.zalopay.vn/pay"})

    monkeypatch.setattr(zalopay_helper.requests, "post", fake_post)
    resp = client.post("/api/zalopay/payment", json={"orderId": order["_id"], "amount": 1},
                       headers=auth_headers)

    assert resp.status_code == 200
    data = resp.get_json()["data"]
    assert data["order_url"] == "https://sb.zalopay.vn/pay"
    assert sent["app_id"] == "2553"
    assert sent["amount"] == str(int(order["total_amount"]))
    assert db["orders"].find_one({"_id": ObjectId(order["_id"])})["app_trans_id"] == data["app_trans_id"]


def test_zalopay_create_rejected(client, auth_headers, order, monkeypatch):
    monkeypatch.setattr(zalopay_helper.requests, "post",
                        lambda url, data=None, timeout=None: FakeResponse({"return_code": 2,
                                                                            "return_message": "Giao dịch thất bại"}))
    resp = client.post("/api/zalopay/payment", json={"orderId": order["_id"]},
                       headers=auth_headers)
    assert resp.status_code == 400
    assert resp.get_json()["message"] == "Giao dịch thất bại"


def _callback_body(order, key="zp-key-2"):
    data = json.dumps({
        "app_trans_id": "250302_112233",
        "amount": order["total_amount"],
        "embed_data": json.dumps({"orderId": order["_id"]}),
    })
    return {"data": data, "mac": hmac_sha256(data, key)}


def test_zalopay_callback_marks_order_paid(client, db, order):
    resp = client.post("/api/zalopay/callback", json=_callback_body(order))

    assert resp.get_json()["return_code"] == 1
    assert _payment_status(db, order) == "paid"


def test_zalopay_callback_rejects_bad_mac(client, db, order):
    resp = client.post("/api/zalopay/callback", json=_callback_body(order, key="wrong"))

    assert resp.get_json()["return_code"] == -1
    assert _payment_status(db, order) == "pending"


def test_zalopay_query_requires_trans_id(client, auth_headers):
    assert client.get("/api/zalopay/query", headers=auth_headers).status_code == 400


def test_zalopay_payment_for_another_users_order(client, other_headers, order, monkeypatch):
    def fake_post(url, data=None, timeout=None):
        raise AssertionError("ZaloPay must not be called")

    monkeypatch.setattr(zalopay_helper.requests, "post", fake_post)
    resp = client.post("/api/zalopay/payment", json={"orderId": order["_id"]}, headers=other_headers)
    assert resp.status_code == 404


def test_vnpay_return_with_wrong_amount(client, db, settings, order):
    params = _signed_return(settings, order)
    del params["vnp_SecureHash"]
    params["vnp_Amount"] = "100"
    params["vnp_SecureHash"] = VNPayHelper(settings).sign(encode_params(params))

    resp = client.get("/api/vnpay/return", query_string=params)

    assert parse_qs(urlparse(resp.headers["Location"]).query)["success"] == ["false"]
    assert _payment_status(db, order) == "failed"


def test_zalopay_callback_with_wrong_amount(client, db, order):
    data = json.dumps({
        "app_trans_id": "250302_112233",
        "amount": 1000,
        "embed_data": json.dumps({"orderId": order["_id"]}),
    })
    resp = client.post("/api/zalopay/callback", json={"data": data, "mac": hmac_sha256(data, "zp-key-2")})

    assert resp.get_json()["return_code"] == -1
    assert _payment_status(db, order) == "failed"
