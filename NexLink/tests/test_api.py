from fastapi.testclient import TestClient

from NexLink.api import main as api
from NexLink.core.responder import LLMReply, ScriptedLLMSimulator
from NexLink.core.store import AI_USER_ID, SocialStore


def reset_api_state(replies=None) -> TestClient:
    api._stop_heartbeat()
    api.store = SocialStore()
    api.llm_adapter = ScriptedLLMSimulator(replies)
    return TestClient(api.app)


def _headers():
    return {"X-API-Key": api.settings.NEXLINK_API_KEY}


def _signup(client, name):
    response = client.post(
        "/auth/signup",
        json={"name": name, "email": f"{name.lower()}@x.com", "password": "pw"},
        headers=_headers(),
    )
    assert response.status_code == 201
    return response.json()


def test_health_is_public():
    client = reset_api_state()
    assert client.get("/health").json()["status"] == "ok"


def test_missing_or_wrong_api_key_denied():
    client = reset_api_state()
    assert client.get("/posts").status_code == 401
    assert client.get("/posts", headers={"X-API-Key": "nope"}).status_code == 401


def test_signup_login_and_duplicate():
    client = reset_api_state()
    user = _signup(client, "Alice")
    assert "password" not in user
    assert user["online"] is True

    duplicate = client.post(
        "/auth/signup",
        json={"name": "Other", "email": "alice@x.com", "password": "pw"},
        headers=_headers(),
    )
    assert duplicate.status_code == 409

    ok = client.post("/auth/login", json={"email": "alice@x.com", "password": "pw"}, headers=_headers())
    bad = client.post("/auth/login", json={"email": "alice@x.com", "password": "no"}, headers=_headers())
    assert ok.status_code == 200
    assert ok.json()["id"] == user["id"]
    assert bad.status_code == 401


def test_banned_user_cannot_login():
    client = reset_api_state()
    _signup(client, "Alice")
    client.post("/tools/ban_user", json={"identifier": "Alice"}, headers=_headers())

    response = client.post("/auth/login", json={"email": "alice@x.com", "password": "pw"}, headers=_headers())

    assert response.status_code == 401
    assert response.json()["detail"] == "Invalid email or password"


def test_post_like_and_notifications():
    client = reset_api_state()
    alice, bob = _signup(client, "Alice"), _signup(client, "Bob")

    post = client.post("/posts", json={"user_id": alice["id"], "content": "hi @Bob"}, headers=_headers())
    assert post.status_code == 201
    post_id = post.json()["id"]

    liked = client.post(f"/posts/{post_id}/like", json={"user_id": bob["id"]}, headers=_headers())
    assert liked.json()["like_count"] == 1

    bob_notes = client.get(f"/users/{bob['id']}/notifications", headers=_headers()).json()
    assert [n["type"] for n in bob_notes] == ["mention"]
    marked = client.post(f"/users/{bob['id']}/notifications/read", headers=_headers())
    assert marked.json() == {"marked": 1}

    assert client.post("/posts/missing/like", json={"user_id": bob["id"]}, headers=_headers()).status_code == 404


def test_unknown_tool_reports_failure():
    client = reset_api_state()
    response = client.post("/tools/launch_rockets", json={}, headers=_headers())
    assert response.status_code == 200
    assert response.json() == {"success": False, "message": "Unknown tool"}


def test_create_account_tool_returns_password():
    client = reset_api_state()
    response = client.post("/tools/create_account", json={"name": "Bot", "email": "bot@x.com"}, headers=_headers())
    body = response.json()
    assert body["success"] is True
    assert len(body["password"]) == 8


def test_message_to_assistant_gets_background_reply():
    client = reset_api_state([LLMReply(text="Hi from Nexus")])
    alice = _signup(client, "Alice")
    chat = client.post("/chats", json={"members": [alice["id"], AI_USER_ID]}, headers=_headers()).json()

    sent = client.post(
        f"/chats/{chat['id']}/messages",
        json={"sender_id": alice["id"], "content": "hello"},
        headers=_headers(),
    )
    assert sent.status_code == 201

    messages = client.get(f"/chats/{chat['id']}/messages", headers=_headers()).json()
    assert [m["content"] for m in messages] == ["hello", "Hi from Nexus"]
    assert messages[1]["sender_id"] == AI_USER_ID


def test_private_chat_reused_over_http():
    client = reset_api_state()
    alice, bob = _signup(client, "Alice"), _signup(client, "Bob")
    first = client.post("/chats", json={"members": [alice["id"], bob["id"]]}, headers=_headers()).json()
    second = client.post("/chats", json={"members": [bob["id"], alice["id"]]}, headers=_headers()).json()
    assert first["id"] == second["id"]

    missing = client.post("/chats/missing/messages", json={"sender_id": alice["id"]}, headers=_headers())
    assert missing.status_code == 404


def test_login_starts_heartbeat_and_logout_stops_it():
    client = reset_api_state()
    _signup(client, "Alice")
    assert api.heartbeat_timer is not None and api.heartbeat_timer.running

    client.post("/auth/logout", headers=_headers())
    assert api.heartbeat_timer is None

    client.post("/auth/login", json={"email": "alice@x.com", "password": "pw"}, headers=_headers())
    timer = api.heartbeat_timer
    assert timer.running
    assert timer.store is api.store

    client.post("/auth/logout", headers=_headers())
    assert timer.running is False


def test_second_signup_does_not_restart_heartbeat():
    client = reset_api_state()
    _signup(client, "Alice")
    first = api.heartbeat_timer

    _signup(client, "Bob")

    assert api.heartbeat_timer is first
    api._stop_heartbeat()


def test_private_chat_with_wrong_member_count_is_rejected():
    client = reset_api_state()
    alice = _signup(client, "Alice")
    response = client.post("/chats", json={"members": [alice["id"]]}, headers=_headers())
    assert response.status_code == 422
