from dataclasses import replace
import io

import cloudinary.uploader
import pytest

from bson import ObjectId

from utils import cloudinary_helper
from utils.cloudinary_helper import allowed_file, get_optimized_url, upload_image


def _image(name="photo.png"):
    return io.BytesIO(b"\x89PNG fake image bytes"), name


@pytest.fixture
def uploads(monkeypatch):
    calls = {"upload": [], "delete": []}

    def fake_upload(file, upload_type="general", user_id=None):
        calls["upload"].append((file.filename, upload_type, user_id))
        public_id = f"user-avatars/user-{user_id}" if user_id else f"{upload_type}/{file.filename}"
        return True, {"url": f"https://res.cloudinary.com/demo/image/upload/{public_id}", "publicId": public_id}, \
            public_id

    def fake_delete(public_id):
        calls["delete"].append(public_id)
        return True, "Đã xóa ảnh"

    monkeypatch.setattr(cloudinary_helper, "upload_image", fake_upload)
    monkeypatch.setattr(cloudinary_helper, "delete_image", fake_delete)
    return calls


@pytest.mark.parametrize("filename,allowed", [
    ("a.PNG", True), ("b.webp", True), ("c.gif", True), ("d.pdf", False), ("noext", False),
])
def test_allowed_file(filename, allowed):
    assert allowed_file(filename) is allowed


def test_upload_single(client, uploads):
    resp = client.post("/api/upload", data={"image": _image(), "type": "product"},
                       content_type="multipart/form-data")
    assert resp.status_code == 200
    assert resp.get_json()["data"]["publicId"] == "product/photo.png"


def test_upload_rejects_non_images(client, uploads):
    resp = client.post("/api/upload", data={"image": _image("notes.txt")}, content_type="multipart/form-data")
    assert resp.status_code == 400
    assert uploads["upload"] == []


def test_upload_requires_file(client):
    assert client.post("/api/upload", data={}, content_type="multipart/form-data").status_code == 400


def test_avatar_replaces_previous_image(client, db, customer, auth_headers, uploads):
    db["users"].update_one({"_id": ObjectId(customer._id)}, {"$set": {"avatar_public_id": "user-avatars/old"}})

    resp = client.post("/api/upload/avatar", data={"avatar": _image()}, headers=auth_headers,
                       content_type="multipart/form-data")

    assert resp.status_code == 200
    assert uploads["delete"] == ["user-avatars/old"]
    user = db["users"].find_one({"_id": ObjectId(customer._id)})
    assert user["avatar_public_id"] == f"user-avatars/user-{customer._id}"
    assert user["avatar"].endswith(user["avatar_public_id"])


def test_avatar_requires_login(client, uploads):
    resp = client.post("/api/upload/avatar", data={"image": _image()}, content_type="multipart/form-data")
    assert resp.status_code == 401


def test_upload_multiple_limit(client, uploads):
    resp = client.post("/api/upload/multiple", data={"images": [_image(f"p{i}.jpg") for i in range(6)]},
                       content_type="multipart/form-data")
    assert resp.status_code == 400

    resp = client.post("/api/upload/multiple", data={"images": [_image("a.jpg"), _image("b.jpg")]},
                       content_type="multipart/form-data")
    assert resp.status_code == 200
    assert len(resp.get_json()["data"]) == 2


def test_delete_requires_public_id(client, auth_headers, uploads):
    assert client.delete("/api/upload", json={}, headers=auth_headers).status_code == 400
    assert client.delete("/api/upload", json={"publicId": "products/a"}, headers=auth_headers).status_code == 200
    assert uploads["delete"] == ["products/a"]


def test_unconfigured_cloudinary(client):
    resp = client.post("/api/upload", data={"image": _image()}, content_type="multipart/form-data")
    assert resp.status_code == 500
    assert client.get("/api/upload/optimize?publicId=products/a").status_code == 503


@pytest.fixture
def configured(app, settings):
    app.config["settings"] = replace(settings, cloudinary_cloud_name="demo-cloud", cloudinary_api_key="key",
                                     cloudinary_api_secret="secret")
    return app


def test_upload_image_uses_sdk_options(configured, monkeypatch):
    sent = {}

    def fake_sdk_upload(file, **options):
        sent.update(options)
        return {"secure_url": "https://res.cloudinary.com/demo-cloud/image/upload/user-avatars/user-u1.png",
                "public_id": "user-avatars/user-u1", "width": 300, "height": 300}

    monkeypatch.setattr(cloudinary.uploader, "upload", fake_sdk_upload)
    with configured.app_context():
        success, result, public_id = upload_image("https://img.example/a.png", "avatar", "u1")

    assert success is True
    assert public_id == "user-avatars/user-u1"
    assert result["publicId"] == public_id
    assert sent["folder"] == "user-avatars"
    assert sent["public_id"] == "user-u1"
    assert sent["overwrite"] is True
    assert sent["transformation"][1] == {"radius": "max"}


def test_upload_image_reports_sdk_errors(configured, monkeypatch):
    def failing_upload(file, **options):
        raise RuntimeError("Invalid image file")

    monkeypatch.setattr(cloudinary.uploader, "upload", failing_upload)
    with configured.app_context():
        success, message, public_id = upload_image("https://img.example/a.png", "product")

    assert success is False
    assert "Invalid image file" in message
    assert public_id == ""


def test_delete_image_checks_result(configured, monkeypatch):
    monkeypatch.setattr(cloudinary.uploader, "destroy", lambda public_id: {"result": "not found"})
    with configured.app_context():
        assert cloudinary_helper.delete_image("products/a") == (False, "Xóa ảnh thất bại: not found")


def test_optimized_url(configured):
    with configured.app_context():
        url = get_optimized_url("products/a", width=400)

    assert url.startswith("https://res.cloudinary.com/demo-cloud/image/upload/")
    assert "w_400" in url
    assert url.endswith("products/a")
