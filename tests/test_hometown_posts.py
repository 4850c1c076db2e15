from urllib.parse import quote

import pytest


@pytest.fixture
def make_post(client, seller_headers):
    def _make(title, category="tourism", status="published", district="Tuy An", content=None):
        payload = {
            "title": title,
            "category": category,
            "status": status,
            "content": content or f"# {title}\n\nBài viết về {title} ở Phú Yên.",
            "location": {"district": district, "specific_place": title},
        }
        resp = client.post("/api/hometown-posts", json=payload, headers=seller_headers)
        assert resp.status_code == 201, resp.get_json()
        return resp.get_json()["data"]
    return _make


def test_create_post_builds_slug_and_excerpt(make_post):
    post = make_post("Gành Đá Đĩa")
    assert post["slug"] == "ganh-da-dia"
    assert post["excerpt"].startswith("# Gành Đá Đĩa")


def test_duplicate_titles_get_unique_slugs(make_post):
    assert make_post("Tháp Nhạn")["slug"] == "thap-nhan"
    assert make_post("Tháp Nhạn")["slug"] == "thap-nhan-1"


def test_customer_cannot_create_post(client, auth_headers):
    resp = client.post("/api/hometown-posts", json={"title": "x", "content": "y", "category": "food"},
                       headers=auth_headers)
    assert resp.status_code == 403


def test_invalid_category_rejected(client, seller_headers):
    resp = client.post("/api/hometown-posts", json={"title": "Bài", "content": "Nội dung", "category": "sport"},
                       headers=seller_headers)
    assert resp.status_code == 400
    assert client.get("/api/hometown-posts/category/sport").status_code == 400


def test_drafts_hidden_from_public(client, seller_headers, make_post):
    make_post("Bài nháp", status="draft")
    make_post("Bài công khai")

    public = client.get("/api/hometown-posts").get_json()
    assert [p["title"] for p in public["data"]] == ["Bài công khai"]

    seller_view = client.get("/api/hometown-posts", headers=seller_headers).get_json()
    assert seller_view["pagination"]["total"] == 2

    assert client.get("/api/hometown-posts/bai-nhap").status_code == 404
    assert client.get("/api/hometown-posts/bai-nhap", headers=seller_headers).status_code == 200


def test_get_post_counts_views_and_lists_related(client, make_post):
    post = make_post("Gành Đá Đĩa")
    make_post("Bãi Xép")
    make_post("Bánh canh hẹ", category="food")

    first = client.get("/api/hometown-posts/ganh-da-dia").get_json()["data"]
    second = client.get(f"/api/hometown-posts/{post['_id']}").get_json()["data"]
    assert first["views"] == 1
    assert second["views"] == 2
    assert [p["title"] for p in second["related"]] == ["Bãi Xép"]
    assert second["author"]["name"] == "Chủ Cửa Hàng"


def test_search_ignores_accents(client, make_post):
    make_post("Gành Đá Đĩa")
    make_post("Hội đua ngựa Gò Thì Thùng", category="festival")

    resp = client.get("/api/hometown-posts/search?q=ganh da dia")
    assert resp.get_json()["data"][0]["title"] == "Gành Đá Đĩa"
    assert client.get("/api/hometown-posts/search").status_code == 400


def test_filter_by_location(client, make_post):
    make_post("Vũng Rô", district="Đông Hòa")
    make_post("Gành Đá Đĩa", district="Tuy An")

    data = client.get(f"/api/hometown-posts/location/{quote('Đông Hòa')}").get_json()["data"]
    assert [p["title"] for p in data] == ["Vũng Rô"]


def test_update_regenerates_slug(client, seller_headers, make_post):
    post = make_post("Mũi Điện")
    resp = client.put(f"/api/hometown-posts/{post['_id']}", json={"title": "Mũi Đại Lãnh"}, headers=seller_headers)
    assert resp.get_json()["data"]["slug"] == "mui-dai-lanh"


def test_delete_post(client, seller_headers, make_post):
    post = make_post("Núi Nhạn")
    assert client.delete(f"/api/hometown-posts/{post['_id']}", headers=seller_headers).status_code == 200
    assert client.delete(f"/api/hometown-posts/{post['_id']}", headers=seller_headers).status_code == 404
