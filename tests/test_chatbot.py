from types import SimpleNamespace

import pytest

from utils.chatbot_service import FALLBACK_RESPONSE, detect_intent


class FakeCompletions:
    def __init__(self, content="Bạn có thể thử cá ngừ đại dương."):
        self.content = content
        self.calls = []

    def create(self, **kwargs):
        self.calls.append(kwargs)
        message = SimpleNamespace(content=self.content)
        return SimpleNamespace(choices=[SimpleNamespace(message=message)])


class FailingCompletions:
    def create(self, **kwargs):
        raise ConnectionError("provider down")


@pytest.fixture
def completions(app):
    completions = FakeCompletions()
    app.config["groq_client"] = SimpleNamespace(chat=SimpleNamespace(completions=completions))
    return completions


@pytest.mark.parametrize("query,intent", [
    ("Sản phẩm nào rẻ nhất?", "price_low"),
    ("Món nào bán chạy?", "popular"),
    ("Có hàng mới không", "newest"),
    ("Đặc sản Phú Yên", "featured"),
    ("Sản phẩm dưới 100", "price_range"),
    ("Cá ngừ", "general"),
])
def test_detect_intent(query, intent):
    assert detect_intent(query) == intent


def test_anonymous_message(client, db, completions, product):
    resp = client.post("/api/chatbot/message", json={"message": "Sản phẩm nào rẻ nhất?"})

    assert resp.status_code == 200
    data = resp.get_json()["data"]
    assert data["response"] == "Bạn có thể thử cá ngừ đại dương."
    assert data["sessionId"]
    assert data["metadata"]["searchType"] == "price_low"
    assert [p["_id"] for p in data["products"]] == [product._id]
    assert "DANH SÁCH SẢN PHẨM" in completions.calls[0]["messages"][1]["content"]
    assert db["chat_messages"].count_documents({}) == 0


def test_logged_in_exchange_is_saved(client, completions, auth_headers, product):
    resp = client.post("/api/chatbot/message", json={"message": "Có cá ngừ không?", "sessionId": "s-1"},
                       headers=auth_headers)
    assert resp.get_json()["data"]["sessionId"] == "s-1"

    history = client.get("/api/chatbot/history/s-1", headers=auth_headers).get_json()["data"]
    assert len(history) == 1
    assert history[0]["message"] == "Có cá ngừ không?"


def test_history_is_per_user(client, completions, auth_headers, other_headers):
    client.post("/api/chatbot/message", json={"message": "Xin chào", "sessionId": "s-2"}, headers=auth_headers)
    assert client.get("/api/chatbot/history/s-2", headers=other_headers).get_json()["data"] == []


def test_provider_failure_returns_apology(app, client):
    app.config["groq_client"] = SimpleNamespace(chat=SimpleNamespace(completions=FailingCompletions()))
    resp = client.post("/api/chatbot/message", json={"message": "Xin chào"})

    assert resp.status_code == 200
    data = resp.get_json()["data"]
    assert data["response"] == FALLBACK_RESPONSE
    assert data["metadata"]["error"] is True


@pytest.mark.parametrize("message", ["", "   ", "x" * 1001])
def test_message_validation(client, message):
    assert client.post("/api/chatbot/message", json={"message": message}).status_code == 400
