ADDRESS = {"full_name": "Nguyễn Văn An", "phone": "0912345678", "street": "12 Lê Lợi",
           "province": {"code": "54", "name": "Phú Yên"}}


def test_first_address_becomes_default(client, auth_headers):
    resp = client.post("/api/address", json=ADDRESS, headers=auth_headers)
    assert resp.status_code == 201
    addresses = resp.get_json()["addresses"]
    assert len(addresses) == 1
    assert addresses[0]["is_default"] is True


def test_only_one_default_address(client, auth_headers):
    first = client.post("/api/address", json=ADDRESS, headers=auth_headers).get_json()["address"]
    second = client.post("/api/address", json={**ADDRESS, "is_default": True}, headers=auth_headers).get_json()

    defaults = [a for a in second["addresses"] if a["is_default"]]
    assert len(defaults) == 1
    assert defaults[0]["_id"] == second["address"]["_id"]

    resp = client.patch(f"/api/address/{first['_id']}/default", headers=auth_headers)
    defaults = [a for a in resp.get_json()["addresses"] if a["is_default"]]
    assert [a["_id"] for a in defaults] == [first["_id"]]


def test_deleting_default_promotes_remaining(client, auth_headers):
    first = client.post("/api/address", json=ADDRESS, headers=auth_headers).get_json()["address"]
    client.post("/api/address", json={**ADDRESS, "street": "5 Trần Hưng Đạo"}, headers=auth_headers)

    resp = client.delete(f"/api/address/{first['_id']}", headers=auth_headers)
    assert resp.status_code == 200
    remaining = resp.get_json()["addresses"]
    assert len(remaining) == 1
    assert remaining[0]["is_default"] is True


def test_address_requires_valid_phone(client, auth_headers):
    resp = client.post("/api/address", json={**ADDRESS, "phone": "12345"}, headers=auth_headers)
    assert resp.status_code == 400


def test_add_to_cart_merges_lines(client, auth_headers, product):
    client.post("/api/cart", json={"product_id": product._id, "quantity": 2}, headers=auth_headers)
    resp = client.post("/api/cart", json={"product_id": product._id, "quantity": 3}, headers=auth_headers)

    assert resp.status_code == 201
    data = resp.get_json()["data"]
    assert len(data["items"]) == 1
    assert data["items"][0]["quantity"] == 5
    assert data["total_items"] == 5
    assert data["subtotal"] == 5 * 100000


def test_cart_uses_sale_price(client, auth_headers, make_product):
    product = make_product(name="Bánh tráng", price=45000, sale_price=39000, stock=20)
    resp = client.post("/api/cart", json={"product_id": product._id, "quantity": 2}, headers=auth_headers)
    assert resp.get_json()["data"]["subtotal"] == 78000


def test_add_to_cart_checks_stock(client, auth_headers, product):
    resp = client.post("/api/cart", json={"product_id": product._id, "quantity": 11}, headers=auth_headers)
    assert resp.status_code == 400


def test_add_to_cart_invalid_product_id(client, auth_headers):
    resp = client.post("/api/cart", json={"product_id": "not-an-id"}, headers=auth_headers)
    assert resp.status_code == 400


def test_update_to_zero_removes_line(client, auth_headers, product):
    data = client.post("/api/cart", json={"product_id": product._id}, headers=auth_headers).get_json()["data"]
    item_id = data["items"][0]["_id"]

    resp = client.put(f"/api/cart/{item_id}", json={"quantity": 0}, headers=auth_headers)
    assert resp.status_code == 200
    assert resp.get_json()["data"]["items"] == []


def test_cart_lines_are_private(client, auth_headers, other_headers, product):
    data = client.post("/api/cart", json={"product_id": product._id}, headers=auth_headers).get_json()["data"]
    item_id = data["items"][0]["_id"]

    assert client.delete(f"/api/cart/{item_id}", headers=other_headers).status_code == 404
    assert client.get("/api/cart", headers=other_headers).get_json()["data"]["items"] == []


def test_batch_delete(client, auth_headers, product, make_product):
    other = make_product(name="Mật ong rừng", price=280000, stock=5)
    client.post("/api/cart", json={"product_id": product._id}, headers=auth_headers)
    data = client.post("/api/cart", json={"product_id": other._id}, headers=auth_headers).get_json()["data"]
    ids = [item["_id"] for item in data["items"]]

    resp = client.delete("/api/cart/items/batch", json={"itemIds": ids}, headers=auth_headers)
    assert resp.get_json()["deletedCount"] == 2
