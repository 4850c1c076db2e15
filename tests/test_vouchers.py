from datetime import datetime, timedelta, timezone

import pytest

from models.voucher import Voucher


def _voucher(**kwargs):
    now = datetime.now(timezone.utc)
    kwargs.setdefault("startDate", now - timedelta(days=1))
    kwargs.setdefault("endDate", now + timedelta(days=1))
    return Voucher(**kwargs)


@pytest.mark.parametrize("is_percent,value,max_discount,order_value,expected", [
    (True, 10, None, 200000, 20000),
    (True, 50, 30000, 200000, 30000),
    (False, 50000, None, 200000, 50000),
    (False, 50000, None, 20000, 20000),
])
def test_compute_discount(is_percent, value, max_discount, order_value, expected):
    voucher = _voucher(code="SALE", type="DISCOUNT", discountValue=value, isPercent=is_percent,
                       maxDiscount=max_discount)
    assert voucher.compute_discount(order_value) == expected


def test_freeship_capped_by_shipping_fee():
    voucher = _voucher(code="SHIP", type="FREESHIP", discountValue=50000)
    assert voucher.compute_freeship(30000) == 30000


def test_usability_checks():
    now = datetime.now(timezone.utc)
    assert _voucher(code="OLD", type="DISCOUNT", discountValue=1, endDate=now - timedelta(hours=1),
                    startDate=now - timedelta(days=2)).usability_error(100000)
    assert _voucher(code="USED", type="DISCOUNT", discountValue=1, usageLimit=2,
                    usedCount=2).usability_error(100000)
    assert _voucher(code="MIN", type="DISCOUNT", discountValue=1,
                    minOrderValue=500000).usability_error(100000)
    assert _voucher(code="OFF", type="DISCOUNT", discountValue=1, active=False).usability_error(100000)
    assert _voucher(code="OK", type="DISCOUNT", discountValue=1).usability_error(100000) is None


def test_code_is_upper_cased():
    assert _voucher(code=" tet2025 ", type="discount", discountValue=1).code == "TET2025"


def test_seller_creates_voucher(client, db, seller_headers):
    db["vouchers"].create_index("code", unique=True)
    payload = {
        "code": "phuyen10", "type": "DISCOUNT", "discountValue": 10, "isPercent": True,
        "maxDiscount": 50000, "startDate": "2025-01-01T00:00:00Z", "endDate": "2030-01-01T00:00:00Z",
    }
    resp = client.post("/api/vouchers", json=payload, headers=seller_headers)
    assert resp.status_code == 201
    assert resp.get_json()["data"]["code"] == "PHUYEN10"

    dup = client.post("/api/vouchers", json=payload, headers=seller_headers)
    assert dup.status_code == 409


def test_create_voucher_rejects_inverted_dates(client, seller_headers):
    payload = {"code": "BAD", "type": "DISCOUNT", "discountValue": 1000,
               "startDate": "2026-02-01T00:00:00Z", "endDate": "2026-01-01T00:00:00Z"}
    assert client.post("/api/vouchers", json=payload, headers=seller_headers).status_code == 400


def test_customer_cannot_create_voucher(client, auth_headers):
    assert client.post("/api/vouchers", json={}, headers=auth_headers).status_code == 403


def test_apply_discount(client, auth_headers, make_voucher):
    make_voucher("GIAM20", discount_value=20, isPercent=True, maxDiscount=30000)
    resp = client.post("/api/vouchers/apply", json={"code": "giam20", "orderValue": 100000, "shippingFee": 30000},
                       headers=auth_headers)
    assert resp.status_code == 200
    data = resp.get_json()["data"]
    assert data["discount"] == 20000
    assert data["finalPrice"] == 110000


def test_apply_unknown_code(client, auth_headers):
    resp = client.post("/api/vouchers/apply", json={"code": "NOPE", "orderValue": 100000}, headers=auth_headers)
    assert resp.status_code == 404


def test_apply_refuses_freeship_code(client, auth_headers, make_voucher):
    make_voucher("FREESHIP30", voucher_type="FREESHIP", discount_value=30000)
    resp = client.post("/api/vouchers/apply", json={"code": "FREESHIP30", "orderValue": 100000},
                       headers=auth_headers)
    assert resp.status_code == 400


def test_apply_freeship_picks_largest_saving(client, auth_headers, make_voucher):
    make_voucher("SHIP10", voucher_type="FREESHIP", discount_value=10000)
    make_voucher("SHIP25", voucher_type="FREESHIP", discount_value=25000)
    make_voucher("SHIPBIG", voucher_type="FREESHIP", discount_value=50000, minOrderValue=1000000)

    resp = client.post("/api/vouchers/apply/freeship", json={"orderValue": 200000, "shippingFee": 30000},
                       headers=auth_headers)
    assert resp.get_json()["data"] == {"code": "SHIP25", "freeship": 25000}


def test_apply_freeship_without_candidates(client, auth_headers):
    resp = client.post("/api/vouchers/apply/freeship", json={"orderValue": 200000, "shippingFee": 30000},
                       headers=auth_headers)
    assert resp.status_code == 200
    assert resp.get_json()["data"]["code"] is None
