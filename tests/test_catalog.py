from seed_data import seed


def test_create_product_sets_slug_and_status(client, db, seller_headers, category, customer):
    resp = client.post("/api/products", json={
        "name": "Bánh tráng nước dừa",
        "price": 45000,
        "category_id": category._id,
        "stock_quantity": 0,
        "images": ["https://img.example/a.jpg", "https://img.example/b.jpg"],
    }, headers=seller_headers)

    assert resp.status_code == 201
    data = resp.get_json()["data"]
    assert data["slug"] == "banh-trang-nuoc-dua"
    assert data["status"] == "out_of_stock"
    assert [i["is_primary"] for i in data["images"]] == [True, False]
    assert db["notifications"].count_documents({"recipient_id": customer._id, "type": "new_product"}) == 1


def test_create_product_validation(client, seller_headers, auth_headers, category):
    payload = {"name": "Mắm ruốc", "price": 50000, "sale_price": 60000, "category_id": category._id}
    assert client.post("/api/products", json=payload, headers=seller_headers).status_code == 400
    assert client.post("/api/products", json={"name": "Mắm", "price": 1, "category_id": "nope"},
                       headers=seller_headers).status_code == 400
    assert client.post("/api/products", json=payload, headers=auth_headers).status_code == 403


def test_search_ignores_accents(client, make_product):
    make_product(name="Cá ngừ đại dương")
    make_product(name="Bánh hỏi lòng heo")

    data = client.get("/api/products?search=ca ngu").get_json()["data"]
    assert [p["name"] for p in data] == ["Cá ngừ đại dương"]


def test_view_counts(client, make_product, auth_headers):
    product = make_product(slug="ca-ngu-dai-duong")
    client.get(f"/api/products/{product.slug}", headers=auth_headers)
    client.get(f"/api/products/{product._id}", headers=auth_headers)
    data = client.get(f"/api/products/{product._id}").get_json()["data"]

    assert data["view_count"] == 3
    assert data["unique_view_count"] == 1


def test_toggle_favorite(client, product, auth_headers):
    first = client.post(f"/api/products/{product._id}/favorite", headers=auth_headers).get_json()
    assert first["is_favorited"] is True
    assert first["favorite_count"] == 1

    favorites = client.get("/api/products/favorites", headers=auth_headers).get_json()["data"]
    assert [p["_id"] for p in favorites] == [product._id]

    second = client.post(f"/api/products/{product._id}/favorite", headers=auth_headers).get_json()
    assert second["is_favorited"] is False


def test_update_product_recomputes_status(client, seller_headers, product):
    resp = client.put(f"/api/products/{product._id}", json={"stock_quantity": 0}, headers=seller_headers)
    assert resp.get_json()["data"]["status"] == "out_of_stock"


def test_category_crud(client, seller_headers, category, product):
    assert client.post("/api/categories", json={"name": "Hải sản"}, headers=seller_headers).status_code == 400

    listed = client.get("/api/categories").get_json()["data"]
    assert listed[0]["product_count"] == 1

    assert client.delete(f"/api/categories/{category._id}", headers=seller_headers).status_code == 400
    client.delete(f"/api/products/{product._id}", headers=seller_headers)
    assert client.delete(f"/api/categories/{category._id}", headers=seller_headers).status_code == 200


def test_seed_is_idempotent(db, seller):
    first = seed(db)
    assert first["categories"] == 3
    assert first["products"] > 0
    assert first["posts"] > 0

    again = seed(db)
    assert again["products"] == 0
    assert again["posts"] == 0


def test_seed_without_seller_skips_posts(db):
    assert seed(db)["posts"] == 0
    assert db["hometown_posts"].count_documents({}) == 0


def test_home_lists_clamp_limit(client, make_product):
    make_product(name="Cá ngừ đại dương")
    make_product(name="Bánh hỏi lòng heo")
    make_product(name="Mắm ruốc", price=60000, sale_price=50000)
    make_product(name="Nước mắm", price=80000, sale_price=60000)

    assert len(client.get("/api/products/newest?limit=0").get_json()["data"]) == 1
    assert len(client.get("/api/products/best-sellers?limit=-5").get_json()["data"]) == 1
    assert len(client.get("/api/products/discounts?limit=0").get_json()["data"]) == 1
