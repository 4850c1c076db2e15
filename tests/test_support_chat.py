import pytest

from extensions import socketio
from utils.tokens import create_access_token


@pytest.fixture
def conversation(client, auth_headers):
    resp = client.post("/api/support-chat/conversation/start", headers=auth_headers)
    assert resp.status_code == 200
    return resp.get_json()["conversation"]


def _send(client, headers, conversation_id, message="Xin chào shop"):
    return client.post("/api/support-chat/message/send", json={"conversationId": conversation_id,
                                                              "message": message}, headers=headers)


def _messages(client, headers, conversation_id):
    return client.get(f"/api/support-chat/conversation/{conversation_id}/messages", headers=headers)


def test_start_reuses_active_conversation(client, auth_headers, conversation):
    again = client.post("/api/support-chat/conversation/start", headers=auth_headers).get_json()
    assert again["conversation"]["conversationId"] == conversation["conversationId"]


def test_seller_cannot_start_conversation(client, seller_headers):
    assert client.post("/api/support-chat/conversation/start", headers=seller_headers).status_code == 400


def test_unread_counters(client, auth_headers, seller_headers, conversation):
    conversation_id = conversation["conversationId"]
    assert _send(client, auth_headers, conversation_id).status_code == 201
    _send(client, auth_headers, conversation_id, "Còn cá ngừ không?")

    stats = client.get("/api/support-chat/stats", headers=seller_headers).get_json()["data"]
    assert stats["totalUnread"] == 2

    body = _messages(client, seller_headers, conversation_id).get_json()
    assert sorted(m["message"] for m in body["messages"]) == ["Còn cá ngừ không?", "Xin chào shop"]
    assert body["conversation"]["unreadCountSeller"] == 0

    _send(client, seller_headers, conversation_id, "Còn bạn nhé")
    body = _messages(client, auth_headers, conversation_id).get_json()
    assert body["conversation"]["unreadCountCustomer"] == 0
    assert any(m["senderModel"] == "Seller" for m in body["messages"])


def test_other_customer_is_forbidden(client, other_headers, conversation):
    assert _send(client, other_headers, conversation["conversationId"]).status_code == 403
    assert _messages(client, other_headers, conversation["conversationId"]).status_code == 403


def test_empty_message_rejected(client, auth_headers, conversation):
    assert _send(client, auth_headers, conversation["conversationId"], "   ").status_code == 400


def test_unknown_conversation(client, auth_headers):
    assert _send(client, auth_headers, "missing").status_code == 404


def test_closed_conversation_rejects_customer_messages(client, auth_headers, seller_headers, conversation):
    conversation_id = conversation["conversationId"]
    resp = client.put(f"/api/support-chat/conversation/{conversation_id}/close", headers=seller_headers)
    assert resp.get_json()["conversation"]["status"] == "closed"

    assert _send(client, auth_headers, conversation_id).status_code == 400
    listed = client.get("/api/support-chat/conversations?status=closed", headers=seller_headers).get_json()
    assert len(listed["conversations"]) == 1


def test_socket_refuses_missing_or_bad_token(app):
    assert not socketio.test_client(app).is_connected()
    assert not socketio.test_client(app, auth={"token": "garbage"}).is_connected()


def test_socket_refuses_inactive_user(app, settings, db, customer):
    db["users"].update_one({"email": customer.email}, {"$set": {"active": False}})
    token = create_access_token(settings, customer._id, customer.email, "user")
    assert not socketio.test_client(app, auth={"token": token}).is_connected()


def test_socket_support_room(app, client, settings, customer, other_customer, auth_headers, conversation):
    conversation_id = conversation["conversationId"]
    token = create_access_token(settings, customer._id, customer.email, "user")
    sock = socketio.test_client(app, auth={"token": token})
    assert sock.is_connected()

    sock.emit("join_support_room", {"conversationId": conversation_id})
    assert "joined_support_room" in [event["name"] for event in sock.get_received()]

    _send(client, auth_headers, conversation_id, "Shop ơi")
    received = sock.get_received()
    new_messages = [event for event in received if event["name"] == "support_new_message"]
    assert new_messages[0]["args"][0]["message"] == "Shop ơi"

    intruder_token = create_access_token(settings, other_customer._id, other_customer.email, "user")
    intruder = socketio.test_client(app, query_string=f"token={intruder_token}")
    intruder.emit("join_support_room", {"conversationId": conversation_id})
    assert [event["name"] for event in intruder.get_received()] == ["support_error"]
