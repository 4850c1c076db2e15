from dataclasses import replace
from datetime import datetime, timedelta, timezone

import fakeredis
import mongomock
import pytest

from app import create_app
from config import get_settings
from models.category import Category
from models.product import Product
from models.user import User, UserRole
from models.voucher import Voucher
from utils.tokens import create_access_token

PASSWORD = "Secret123"


class FakeEmailService:
    """Records outgoing mail instead of talking to SMTP"""

    def __init__(self):
        self.enabled = True
        self.otps = []
        self.status_mails = []

    def send_otp(self, to_email, code, purpose='register', name=''):
        self.otps.append({'email': to_email, 'code': code, 'purpose': purpose})
        return True

    def send_order_status(self, to_email, order):
        self.status_mails.append({'email': to_email, 'order': order})
        return True

    def send_email(self, to_email, subject, html_body, text_body=None):
        return True


@pytest.fixture
def settings():
    return replace(
        get_settings(),
        mongodb_uri=None,
        redis_url=None,
        debug=True,
        client_url="http://localhost:5173",
        access_token_key="test-access-key",
        refresh_token_key="test-refresh-key",
        smtp_user="",
        smtp_password="",
        cloudinary_cloud_name=None,
        cloudinary_api_key=None,
        cloudinary_api_secret=None,
        vnp_tmn_code="TESTTMN1",
        vnp_hash_secret="VNPAYTESTSECRET",
        vnp_url="https://sandbox.vnpayment.vn/paymentv2/vpcpay.html",
        vnp_return_url="http://localhost:3000/api/vnpay/return",
        zp_app_id="2553",
        zp_key1="zp-key-1",
        zp_key2="zp-key-2",
        groq_api_key=None,
        shipping_fee=30000,
    )


@pytest.fixture
def db():
    return mongomock.MongoClient(tz_aware=True)["phuyen_store_test"]


@pytest.fixture
def redis_client():
    return fakeredis.FakeRedis(decode_responses=True)


@pytest.fixture
def email_service():
    return FakeEmailService()


@pytest.fixture
def app(settings, db, redis_client, email_service):
    app = create_app(settings, db=db, redis_client=redis_client)
    app.config["TESTING"] = True
    app.config["email_service"] = email_service
    return app


@pytest.fixture
def client(app):
    return app.test_client()


def _insert_user(db, name, email, role=UserRole.USER, active=True):
    user = User(name=name, email=email, password_hash=User.hash_password(PASSWORD), role=role, active=active)
    user._id = str(db["users"].insert_one(user.to_dict(include_password=True)).inserted_id)
    return user


def _headers(settings, user):
    role = user.role.value if isinstance(user.role, UserRole) else user.role
    token = create_access_token(settings, user._id, user.email, role)
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def customer(db):
    return _insert_user(db, "Nguyễn Văn An", "an@example.com")


@pytest.fixture
def other_customer(db):
    return _insert_user(db, "Trần Thị Bình", "binh@example.com")


@pytest.fixture
def seller(db):
    return _insert_user(db, "Chủ Cửa Hàng", "seller@example.com", role=UserRole.SELLER)


@pytest.fixture
def auth_headers(settings, customer):
    return _headers(settings, customer)


@pytest.fixture
def other_headers(settings, other_customer):
    return _headers(settings, other_customer)


@pytest.fixture
def seller_headers(settings, seller):
    return _headers(settings, seller)


@pytest.fixture
def make_headers(settings):
    return lambda user: _headers(settings, user)


@pytest.fixture
def category(db):
    category = Category(name="Hải sản", slug="hai-san", description="Đặc sản biển")
    category._id = str(db["categories"].insert_one(category.to_dict()).inserted_id)
    return category


@pytest.fixture
def make_product(db, category):
    def _make(name="Cá ngừ đại dương", price=100000, sale_price=None, stock=10, **extra):
        slug = extra.pop("slug", name.lower().replace(" ", "-"))
        product = Product(name=name, slug=slug, price=price, sale_price=sale_price,
                          stock_quantity=stock, category_id=category._id, unit="kg", **extra)
        product._id = str(db["products"].insert_one(product.to_dict()).inserted_id)
        return product
    return _make


@pytest.fixture
def product(make_product):
    return make_product()


@pytest.fixture
def make_voucher(db):
    def _make(code, voucher_type="DISCOUNT", discount_value=10000, **extra):
        now = datetime.now(timezone.utc)
        extra.setdefault("startDate", now - timedelta(days=1))
        extra.setdefault("endDate", now + timedelta(days=30))
        voucher = Voucher(code=code, type=voucher_type, discountValue=discount_value, **extra)
        voucher._id = str(db["vouchers"].insert_one(voucher.to_dict()).inserted_id)
        return voucher
    return _make


@pytest.fixture
def shipping_info():
    return {"name": "Nguyễn Văn An", "phone": "0912345678", "address": "12 Lê Lợi, Tuy Hòa, Phú Yên"}
