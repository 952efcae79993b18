from core.models import Message
from core.services import conversation_store


def test_chat_routes_require_token(client):
    assert client.post("/chats").status_code == 401
    response = client.get("/chats", headers={"Authorization": "Bearer not-a-token"})
    assert response.status_code == 401
    assert response.json()["error"] == "unauthorized"


def test_non_ascii_token_is_unauthorized(client):
    response = client.get("/chats", headers={"Authorization": "Bearer abc.\u00e9".encode("latin-1")})

    assert response.status_code == 401


def test_create_and_fetch_chat(client, make_user, auth_headers):
    user = make_user()
    headers = auth_headers(user)

    created = client.post("/chats", headers=headers)
    assert created.status_code == 201
    body = created.json()
    assert set(body) == {"id", "createdAt", "updatedAt"}

    fetched = client.get(f"/chats/{body['id']}", headers=headers)
    assert fetched.status_code == 200
    assert fetched.json()["messages"] == []


def test_list_chats_with_preview(client, db_session, make_user, auth_headers):
    user = make_user()
    headers = auth_headers(user)
    empty_id = client.post("/chats", headers=headers).json()["id"]
    busy_id = client.post("/chats", headers=headers).json()["id"]
    client.post(f"/messages/{busy_id}", json={"content": "Hello"}, headers=headers)

    response = client.get("/chats", headers=headers)

    assert response.status_code == 200
    chats = response.json()
    assert [c["id"] for c in chats] == [busy_id, empty_id]
    assert chats[0]["previewMessage"]["sender"] == "ai"
    assert chats[0]["previewMessage"]["content"] == "Hi there!"
    assert "previewMessage" not in chats[1]


def test_foreign_chat_is_not_found(client, make_user, auth_headers):
    owner = make_user()
    intruder = make_user()
    chat_id = client.post("/chats", headers=auth_headers(owner)).json()["id"]

    assert client.get(f"/chats/{chat_id}", headers=auth_headers(intruder)).status_code == 404
    assert client.delete(f"/chats/{chat_id}", headers=auth_headers(intruder)).status_code == 404
    assert client.get("/chats", headers=auth_headers(intruder)).json() == []
    assert client.get(f"/chats/{chat_id}", headers=auth_headers(owner)).status_code == 200


def test_delete_chat_cascades(client, db_session, make_user, auth_headers):
    user = make_user()
    headers = auth_headers(user)
    chat_id = client.post("/chats", headers=headers).json()["id"]
    client.post(f"/messages/{chat_id}", json={"content": "one"}, headers=headers)
    client.post(f"/messages/{chat_id}", json={"content": "two"}, headers=headers)
    assert len(conversation_store.list_messages(db_session, chat_id)) == 4

    response = client.delete(f"/chats/{chat_id}", headers=headers)

    assert response.status_code == 200
    assert response.json() == {"status": "deleted", "id": chat_id}
    assert client.get(f"/chats/{chat_id}", headers=headers).status_code == 404
    assert db_session.query(Message).filter(Message.chat_id == chat_id).count() == 0


def test_root_and_health(client):
    root = client.get("/")
    assert root.status_code == 200
    assert root.json()["service"] == "Chatline"

    health = client.get("/health")
    assert health.status_code == 200
    body = health.json()
    assert body["database"]["ok"] is True
    assert body["model_provider"]["provider"] == "fake"
    assert body["model_provider"]["status"] == "ready"


def test_health_reports_missing_database(client):
    from core.db import DB

    DB.engine = None

    response = client.get("/health")

    assert response.status_code == 503
