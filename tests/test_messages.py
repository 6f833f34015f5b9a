import io

from conftest import auth_headers, make_user
from propertyhub.models import Message


def send(client, sender, recipients, content="Rent reminder", **extra):
    payload = {"recipient_ids": [str(r.id) for r in recipients], "content": content, **extra}
    return client.post("/api/messages", json=payload, headers=auth_headers(sender))


def test_direct_message_and_conversation_key(client, landlord, tenant):
    response = send(client, landlord, [tenant], subject="June rent")
    body = response.get_json()["message"]

    assert response.status_code == 201
    assert body["type"] == "direct"
    assert body["conversation"] == Message.conversation_key([tenant.id, landlord.id])
    assert [r["id"] for r in body["recipients"]] == [str(tenant.id)]


def test_group_message(client, landlord, tenant, manager):
    body = send(client, landlord, [tenant, manager]).get_json()["message"]
    assert body["type"] == "group"
    assert len(body["recipients"]) == 2


def test_validation(client, landlord, tenant):
    assert send(client, landlord, []).status_code == 400
    assert send(client, landlord, [tenant], content="   ").status_code == 400
    response = client.post("/api/messages", json={"recipient_ids": ["6c1b2c2e-8f0a-4b9e-9a57-3b0b9f6d2d11"],
                                                  "content": "hi"}, headers=auth_headers(landlord))
    assert response.get_json()["message"] == "One or more recipients not found"
    assert send(client, landlord, [tenant], related_to="party").status_code == 400


def test_attachment_only_message(client, landlord, tenant):
    response = client.post(
        "/api/messages",
        data={"recipient_ids": str(tenant.id), "attachments": (io.BytesIO(b"%PDF-1.4"), "inspection.pdf")},
        content_type="multipart/form-data",
        headers=auth_headers(landlord),
    )
    body = response.get_json()["message"]
    assert response.status_code == 201
    assert body["attachments"][0]["filename"] == "inspection.pdf"


def test_unread_flow(client, landlord, tenant):
    first = send(client, landlord, [tenant]).get_json()["message"]
    send(client, landlord, [tenant], content="Second note")

    unread = client.get("/api/messages/unread/count", headers=auth_headers(tenant)).get_json()
    assert unread["unread_count"] == 2
    # sent messages never count as unread for the sender
    assert client.get("/api/messages/unread/count", headers=auth_headers(landlord)).get_json()["unread_count"] == 0

    assert client.put(f"/api/messages/{first['id']}/read", headers=auth_headers(landlord)).status_code == 403
    assert client.put(f"/api/messages/{first['id']}/read", headers=auth_headers(tenant)).status_code == 200
    assert client.get("/api/messages/unread/count", headers=auth_headers(tenant)).get_json()["unread_count"] == 1

    marked = client.put(f"/api/messages/conversation/{first['conversation']}/read", headers=auth_headers(tenant))
    assert marked.get_json()["message"] == "1 messages marked as read"
    assert client.get("/api/messages/unread/count", headers=auth_headers(tenant)).get_json()["unread_count"] == 0


def test_conversations_and_history(client, landlord, tenant, manager):
    send(client, landlord, [tenant], content="one")
    send(client, tenant, [landlord], content="two")
    send(client, landlord, [manager], content="three")

    conversations = client.get("/api/messages/conversations", headers=auth_headers(landlord)).get_json()
    assert conversations["count"] == 2

    history = client.get(f"/api/messages?user_id={tenant.id}", headers=auth_headers(landlord)).get_json()
    assert [m["content"] for m in history["messages"]] == ["one", "two"]

    paged = client.get(f"/api/messages?user_id={tenant.id}&limit=1&skip=1", headers=auth_headers(landlord))
    assert [m["content"] for m in paged.get_json()["messages"]] == ["two"]

    outsider_view = client.get("/api/messages", headers=auth_headers(make_user("tenant"))).get_json()
    assert outsider_view["count"] == 0


def test_search(client, landlord, tenant):
    send(client, landlord, [tenant], content="The boiler service is booked")
    send(client, landlord, [tenant], content="Rent is due")

    found = client.get("/api/messages/search?query=BOILER", headers=auth_headers(tenant)).get_json()
    assert found["count"] == 1
    assert client.get("/api/messages/search", headers=auth_headers(tenant)).status_code == 400


def test_only_sender_deletes(client, landlord, tenant):
    message_id = send(client, landlord, [tenant]).get_json()["message"]["id"]
    assert client.delete(f"/api/messages/{message_id}", headers=auth_headers(tenant)).status_code == 403
    assert client.delete(f"/api/messages/{message_id}", headers=auth_headers(landlord)).status_code == 200
    assert Message.query.count() == 0
