import pytest

from db import parse_object_id


@pytest.fixture
def delivered_order(db, customer, product):
    db["orders"].insert_one({
        "order_number": "ORD1700000000000ABCD",
        "user_id": customer._id,
        "status": "delivered",
        "items": [{"product_id": product._id, "product_name": product.name, "quantity": 1,
                   "price": product.price, "original_price": product.price, "total": product.price}],
        "total_amount": product.price,
    })


def _rate(client, headers, product_id, stars=5, content="Cá tươi, giao nhanh"):
    return client.post("/api/ratings", json={"product_id": product_id, "rating": stars, "content": content},
                       headers=headers)


def test_rating_requires_delivered_order(client, auth_headers, product):
    assert _rate(client, auth_headers, product._id).status_code == 403


def test_create_rating_once(client, db, auth_headers, seller, product, delivered_order):
    resp = _rate(client, auth_headers, product._id)
    assert resp.status_code == 201
    assert resp.get_json()["data"]["rating"] == 5

    assert _rate(client, auth_headers, product._id).status_code == 400
    assert db["notifications"].count_documents({"recipient_id": seller._id, "type": "new_rating"}) == 1


def test_inactive_account_cannot_rate(client, db, customer, auth_headers, product, delivered_order):
    db["users"].update_one({"_id": parse_object_id(customer._id)}, {"$set": {"active": False}})
    assert _rate(client, auth_headers, product._id).status_code == 403


def test_rating_value_is_validated(client, auth_headers, product, delivered_order):
    assert _rate(client, auth_headers, product._id, stars=6).status_code == 400


def test_average_and_distribution(client, db, customer, other_customer, auth_headers, other_headers, product,
                                  delivered_order):
    db["orders"].insert_one({"user_id": other_customer._id, "status": "delivered",
                             "items": [{"product_id": product._id, "quantity": 1}]})
    _rate(client, auth_headers, product._id, stars=5)
    _rate(client, other_headers, product._id, stars=2)

    data = client.get(f"/api/ratings/average/{product._id}").get_json()["data"]
    assert data["averageRating"] == 3.5
    assert data["totalRatings"] == 2
    assert data["distribution"]["5"] == 1
    assert data["distribution"]["2"] == 1


def test_hidden_and_inactive_ratings_are_not_listed(client, db, other_customer, auth_headers, other_headers,
                                                    seller_headers, product, delivered_order):
    db["orders"].insert_one({"user_id": other_customer._id, "status": "delivered",
                             "items": [{"product_id": product._id, "quantity": 1}]})
    mine = _rate(client, auth_headers, product._id, stars=4).get_json()["data"]
    _rate(client, other_headers, product._id, stars=1)

    resp = client.put(f"/api/ratings/{mine['_id']}", json={"status": "hidden"}, headers=seller_headers)
    assert resp.status_code == 200
    db["users"].update_one({"_id": parse_object_id(other_customer._id)}, {"$set": {"active": False}})

    body = client.get(f"/api/ratings/{product._id}").get_json()
    assert body["totalRatings"] == 0
    assert body["data"] == []


def test_customer_cannot_hide_rating(client, auth_headers, product, delivered_order):
    mine = _rate(client, auth_headers, product._id).get_json()["data"]
    resp = client.put(f"/api/ratings/{mine['_id']}", json={"status": "hidden"}, headers=auth_headers)
    assert resp.status_code == 403


def test_only_owner_or_seller_deletes(client, auth_headers, other_headers, product, delivered_order):
    mine = _rate(client, auth_headers, product._id).get_json()["data"]
    assert client.delete(f"/api/ratings/{mine['_id']}", headers=other_headers).status_code == 403
    assert client.delete(f"/api/ratings/{mine['_id']}", headers=auth_headers).status_code == 200


def test_seller_lists_ratings_by_user(client, auth_headers, seller_headers, product, delivered_order):
    _rate(client, auth_headers, product._id)
    body = client.get("/api/ratings?searchUser=an@example", headers=seller_headers).get_json()
    assert len(body["data"]) == 1
    assert body["pagination"]["total"] == 1
