from models.user import User


def _register(client, email="moi@example.com", password="Secret123"):
    return client.post("/api/auth/register", json={"name": "Lê Văn Mới", "email": email, "password": password})


def test_register_creates_inactive_user_and_sends_otp(client, db, email_service, redis_client):
    resp = _register(client)

    assert resp.status_code == 201
    body = resp.get_json()
    assert body["success"] is True
    assert body["otpSent"] is True
    assert body["user"]["active"] is False
    assert "password_hash" not in body["user"]

    doc = db["users"].find_one({"email": "moi@example.com"})
    assert doc["active"] is False
    assert User.verify_password("Secret123", doc["password_hash"])
    assert email_service.otps[-1]["email"] == "moi@example.com"
    assert redis_client.get("otp:register:moi@example.com") == email_service.otps[-1]["code"]


def test_register_rejects_duplicate_email(client, customer):
    resp = _register(client, email=customer.email)
    assert resp.status_code == 400


def test_register_validates_password(client):
    resp = _register(client, password="short")
    assert resp.status_code == 400
    assert resp.get_json()["errors"]


def test_login_requires_verified_account(client, email_service):
    _register(client)
    resp = client.post("/api/auth/login", json={"email": "moi@example.com", "password": "Secret123"})
    assert resp.status_code == 401

    code = email_service.otps[-1]["code"]
    resp = client.post("/api/auth/register/verify-otp", json={"email": "moi@example.com", "otp": code})
    assert resp.status_code == 200

    resp = client.post("/api/auth/login", json={"email": "moi@example.com", "password": "Secret123"})
    assert resp.status_code == 200
    body = resp.get_json()
    assert body["accessToken"] and body["refreshToken"]
    assert body["user"]["active"] is True


def test_verify_otp_rejects_wrong_code(client, email_service):
    _register(client)
    code = email_service.otps[-1]["code"]
    wrong = "000000" if code != "000000" else "111111"
    resp = client.post("/api/auth/register/verify-otp", json={"email": "moi@example.com", "otp": wrong})
    assert resp.status_code == 400


def test_resend_otp_respects_cooldown(client):
    _register(client)
    resp = client.post("/api/auth/register/resend-otp", json={"email": "moi@example.com"})
    assert resp.status_code == 429


def test_login_wrong_password(client, customer):
    resp = client.post("/api/auth/login", json={"email": customer.email, "password": "Wrong1234"})
    assert resp.status_code == 401


def test_login_unknown_email(client):
    resp = client.post("/api/auth/login", json={"email": "nobody@example.com", "password": "Secret123"})
    assert resp.status_code == 404


def test_refresh_token_rotates(client, customer):
    login = client.post("/api/auth/login", json={"email": customer.email, "password": "Secret123"}).get_json()
    old_refresh = login["refreshToken"]

    resp = client.post("/api/auth/refresh-token", json={"refreshToken": old_refresh})
    assert resp.status_code == 200
    new_refresh = resp.get_json()["refreshToken"]
    assert new_refresh != old_refresh

    reused = client.post("/api/auth/refresh-token", json={"refreshToken": old_refresh})
    assert reused.status_code == 403

    again = client.post("/api/auth/refresh-token", json={"refreshToken": new_refresh})
    assert again.status_code == 200


def test_protected_route_requires_token(client):
    assert client.get("/api/auth/get-user").status_code == 401


def test_invalid_token_is_forbidden(client):
    resp = client.get("/api/auth/get-user", headers={"Authorization": "Bearer not-a-token"})
    assert resp.status_code == 403


def test_get_user(client, customer, auth_headers):
    resp = client.get("/api/auth/get-user", headers=auth_headers)
    assert resp.status_code == 200
    assert resp.get_json()["user"]["email"] == customer.email


def test_seller_only_route_rejects_customer(client, auth_headers, seller_headers):
    assert client.get("/api/users/admin/list", headers=auth_headers).status_code == 403
    assert client.get("/api/users/admin/list", headers=seller_headers).status_code == 200


def test_forgot_password_flow(client, customer, email_service):
    resp = client.post("/api/auth/forgot-password/send-otp", json={"email": customer.email})
    assert resp.status_code == 200
    code = email_service.otps[-1]["code"]

    resp = client.post("/api/auth/forgot-password/reset", json={"email": customer.email, "newPassword": "NewPass123"})
    assert resp.status_code == 400

    resp = client.post("/api/auth/forgot-password/verify-otp", json={"email": customer.email, "otp": code})
    assert resp.status_code == 200

    resp = client.post("/api/auth/forgot-password/reset", json={"email": customer.email, "newPassword": "NewPass123"})
    assert resp.status_code == 200

    resp = client.post("/api/auth/login", json={"email": customer.email, "password": "NewPass123"})
    assert resp.status_code == 200
