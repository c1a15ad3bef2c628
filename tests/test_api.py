"""
End-to-end tests through the Flask test client and the Socket.IO test client.

Tests cover:
- registration, login and token handling (raw token in Authorization)
- error bodies and status codes
- HTTP sends reaching authenticated sockets
- typing relay and presence broadcast
- group routes
"""

import gc

import pytest


def _register_and_login(client, username, password="pw-secret", **names):
    resp = client.post("/register", json=dict(username=username, password=password, **names))
    assert resp.status_code == 200, resp.get_json()
    resp = client.post("/login", json={"username": username, "password": password})
    assert resp.status_code == 200
    body = resp.get_json()
    return body["id"], body["token"]


def _auth(token):
    return {"Authorization": token}


@pytest.fixture
def alice(client):
    return _register_and_login(client, "alice", firstName="Alice", lastName="Smith")


@pytest.fixture
def bob(client):
    return _register_and_login(client, "bob", firstName="Bob")


@pytest.fixture
def connect(app, socketio, client):
    opened = []

    def _connect(token=None):
        sock = socketio.test_client(app, flask_test_client=client)
        opened.append(sock)
        if token is not None:
            ack = sock.emit("authenticate", token, callback=True)
            assert ack["success"] is True
        sock.get_received()
        return sock

    yield _connect
    for sock in opened:
        if sock.is_connected():
            sock.disconnect()


def _events(sock, name):
    return [e["args"][0] for e in sock.get_received() if e["name"] == name]


# ───── HTTP: auth ─────

def test_health(client):
    body = client.get("/health").get_json()
    assert body["status"] == "ok"
    assert body["online"] == 0


def test_missing_and_invalid_token(client):
    resp = client.get("/chats")
    assert resp.status_code == 401
    assert resp.get_json()["success"] is False
    assert resp.get_json()["error"] == "auth"

    resp = client.get("/chats", headers=_auth("not-a-jwt"))
    assert resp.status_code == 401
    assert resp.get_json()["error"] == "auth"


def test_relogin_revokes_previous_token(client, alice):
    _, old_token = alice
    assert client.get("/profile", headers=_auth(old_token)).status_code == 200
    resp = client.post("/login", json={"username": "alice", "password": "pw-secret"})
    new_token = resp.get_json()["token"]

    assert client.get("/profile", headers=_auth(old_token)).status_code == 401
    assert client.get("/profile", headers=_auth(new_token)).status_code == 200


def test_register_errors(client, alice):
    resp = client.post("/register", json={"username": "alice", "password": "x"})
    assert resp.status_code == 409
    assert resp.get_json()["error"] == "conflict"

    resp = client.post("/register", json={"username": "", "password": "x"})
    assert resp.status_code == 400
    assert resp.get_json()["error"] == "validation"

    resp = client.post("/login", json={"username": "alice", "password": "wrong"})
    assert resp.status_code == 401


def test_profile_routes(client, alice, bob):
    a_id, a_token = alice
    b_id, b_token = bob
    client.post("/block", json={"userId": a_id}, headers=_auth(b_token))

    resp = client.post("/updateProfile", json={"bio": "hi there"}, headers=_auth(a_token))
    assert resp.get_json()["profile"]["bio"] == "hi there"

    mine = client.get("/profile", headers=_auth(b_token)).get_json()
    assert mine["blockedUsers"] == [a_id]

    public = client.get(f"/profile/{b_id}", headers=_auth(a_token)).get_json()
    assert "blockedUsers" not in public
    assert public["online"] is False
    assert public["firstName"] == "Bob"

    found = client.get("/search?username=bob", headers=_auth(a_token)).get_json()
    assert found["id"] == b_id


def test_auth_routes_work_with_rate_limiting_disabled(client):
    # The limiter must outlive create_app even when it is disabled.
    gc.collect()
    assert client.post("/register", json={"username": "gc", "password": "pw"}).status_code == 200
    assert client.post("/login", json={"username": "gc", "password": "pw"}).status_code == 200


# ───── HTTP: chats and messages ─────

def test_add_chat_and_offline_message(client, alice, bob):
    a_id, a_token = alice
    b_id, b_token = bob

    resp = client.post("/addChat", json={"username": "bob"}, headers=_auth(a_token))
    assert resp.get_json()["chat"]["id"] == b_id
    chats = client.get("/chats", headers=_auth(b_token)).get_json()
    assert [c["id"] for c in chats] == [a_id]

    resp = client.post("/sendMessage", json={"chatId": b_id, "text": "hello"}, headers=_auth(a_token))
    assert resp.status_code == 200
    msg_id = resp.get_json()["message"]["id"]

    listed = client.get(f"/messages/{a_id}", headers=_auth(b_token)).get_json()
    assert [(m["id"], m["sent"]) for m in listed] == [(msg_id, False)]

    resp = client.post("/mark-read", json={"chatId": a_id}, headers=_auth(b_token))
    assert resp.get_json()["updated"] == 1


def test_add_chat_when_blocked(client, alice, bob):
    a_id, _ = alice
    _, b_token = bob
    client.post("/block", json={"userId": a_id}, headers=_auth(b_token))
    _, a_token = alice
    resp = client.post("/addChat", json={"username": "bob"}, headers=_auth(a_token))
    assert resp.status_code == 403
    assert resp.get_json()["message"] == "blocked"


def test_send_message_validation(client, alice, bob):
    _, a_token = alice
    b_id, _ = bob
    resp = client.post("/sendMessage", json={"chatId": b_id, "text": "   "}, headers=_auth(a_token))
    assert resp.status_code == 400
    resp = client.post("/sendMessage", json={"text": "hi"}, headers=_auth(a_token))
    assert resp.status_code == 400
    resp = client.post("/sendMessage", json={"chatId": "ghost", "text": "hi"}, headers=_auth(a_token))
    assert resp.status_code == 404


def test_edit_and_delete_routes(client, alice, bob, clock):
    _, a_token = alice
    b_id, b_token = bob
    msg = client.post("/sendMessage", json={"chatId": b_id, "text": "tpyo"}, headers=_auth(a_token)).get_json()["message"]

    resp = client.patch(f"/message/{msg['id']}", json={"chatId": b_id, "text": "typo"}, headers=_auth(a_token))
    assert resp.get_json()["message"]["edited"] is True

    clock.advance(minutes=31)
    resp = client.patch(f"/message/{msg['id']}", json={"chatId": b_id, "text": "late"}, headers=_auth(a_token))
    assert resp.status_code == 403
    assert resp.get_json()["error"] == "forbidden"

    resp = client.delete(f"/message/{msg['id']}", json={"chatId": b_id}, headers=_auth(b_token))
    assert resp.status_code == 403
    resp = client.delete(f"/message/{msg['id']}", json={"chatId": b_id}, headers=_auth(a_token))
    assert resp.status_code == 200

    resp = client.patch("/message/missing", json={"chatId": b_id, "text": "x"}, headers=_auth(a_token))
    assert resp.status_code == 404


def test_stickers(client, alice):
    _, token = alice
    resp = client.post("/add-sticker", json={"sticker": "data:image/webp;base64,AA"}, headers=_auth(token))
    assert resp.get_json()["count"] == 1
    assert client.get("/get-stickers", headers=_auth(token)).get_json() == ["data:image/webp;base64,AA"]
    assert client.post("/add-sticker", json={}, headers=_auth(token)).status_code == 400


# ───── Socket.IO ─────

def test_socket_authenticate_rejects_bad_token(connect):
    sock = connect()
    assert sock.emit("authenticate", "garbage", callback=True) == {"success": False, "error": "auth"}
    assert sock.emit("authenticate", None, callback=True) == {"success": False, "error": "auth"}


def test_socket_authenticate_accepts_token_object(connect, alice):
    a_id, token = alice
    sock = connect()
    assert sock.emit("authenticate", {"token": token}, callback=True) == {"success": True, "userId": a_id}


def test_online_delivery_and_echo(client, connect, alice, bob):
    a_id, a_token = alice
    b_id, b_token = bob
    a_sock = connect(a_token)
    b_sock = connect(b_token)
    a_sock.get_received()

    client.post("/sendMessage", json={"chatId": b_id, "text": "live"}, headers=_auth(a_token))

    to_b = _events(b_sock, "new-message")
    to_a = _events(a_sock, "new-message")
    assert len(to_b) == 1 and to_b[0]["chatId"] == a_id and to_b[0]["message"]["sent"] is False
    assert len(to_a) == 1 and to_a[0]["chatId"] == b_id and to_a[0]["message"]["sent"] is True

    client.post("/mark-read", json={"chatId": a_id}, headers=_auth(b_token))
    assert _events(a_sock, "message-read") == [{"chatId": b_id}]


def test_presence_broadcast_and_profile_online(client, connect, alice, bob):
    a_id, a_token = alice
    _, b_token = bob
    watcher = connect()

    a_sock = connect(a_token)
    assert {"userId": a_id, "online": True} in _events(watcher, "user-status")
    assert client.get(f"/profile/{a_id}", headers=_auth(b_token)).get_json()["online"] is True

    a_sock.disconnect()
    assert {"userId": a_id, "online": False} in _events(watcher, "user-status")
    assert client.get(f"/profile/{a_id}", headers=_auth(b_token)).get_json()["online"] is False


def test_typing_relay(connect, alice, bob):
    a_id, a_token = alice
    b_id, b_token = bob
    a_sock = connect(a_token)
    b_sock = connect(b_token)
    a_sock.get_received()

    a_sock.emit("typing", {"chatId": b_id})
    a_sock.emit("stop-typing", {"chatId": b_id})

    received = [(e["name"], e["args"][0]) for e in b_sock.get_received() if e["name"] != "user-status"]
    assert received == [
        ("user-typing", {"userId": a_id, "chatId": a_id}),
        ("user-stop-typing", {"userId": a_id, "chatId": a_id}),
    ]


def test_second_connection_replaces_first(client, connect, alice, bob):
    a_id, a_token = alice
    b_id, b_token = bob
    first = connect(a_token)
    second = connect(a_token)
    first.get_received()

    client.post("/sendMessage", json={"chatId": a_id, "text": "which tab?"}, headers=_auth(b_token))
    assert _events(first, "new-message") == []
    assert len(_events(second, "new-message")) == 1

    first.disconnect()
    assert client.get(f"/profile/{a_id}", headers=_auth(b_token)).get_json()["online"] is True


# ───── groups ─────

def test_group_flow(client, connect, alice, bob):
    a_id, a_token = alice
    b_id, b_token = bob

    resp = client.post("/createGroup", json={"name": "Trip", "members": [b_id]}, headers=_auth(a_token))
    gid = resp.get_json()["groupId"]

    detail = client.get(f"/group/{gid}", headers=_auth(b_token)).get_json()
    assert [m["id"] for m in detail["members"]] == [a_id, b_id]

    b_sock = connect(b_token)
    resp = client.post(f"/group/{gid}/sendMessage", json={"text": "hi all"}, headers=_auth(a_token))
    msg = resp.get_json()["message"]
    pushed = _events(b_sock, "new-message")
    assert pushed == [{"chatId": gid, "message": dict(msg, sent=False)}]

    resp = client.post("/react", json={"chatId": gid, "messageId": msg["id"], "emoji": "🎉"}, headers=_auth(b_token))
    assert resp.get_json()["reactions"] == [{"emoji": "🎉", "users": [b_id]}]

    listed = client.get(f"/group/{gid}/messages", headers=_auth(b_token)).get_json()
    assert listed[0]["reactions"] == [{"emoji": "🎉", "users": [b_id]}]

    resp = client.patch(f"/group/{gid}/update", json={"name": "Renamed"}, headers=_auth(b_token))
    assert resp.status_code == 403

    resp = client.post(f"/group/{gid}/leave", headers=_auth(b_token))
    assert resp.get_json()["username"] == "bob"
    resp = client.get(f"/group/{gid}/messages", headers=_auth(b_token))
    assert resp.status_code == 403


def test_group_not_found(client, alice):
    _, token = alice
    assert client.get("/group/missing", headers=_auth(token)).status_code == 404
    resp = client.post("/group/missing/sendMessage", json={"text": "x"}, headers=_auth(token))
    assert resp.status_code == 404


def test_malformed_fields_are_client_errors(client, alice, bob):
    a_id, token = alice
    b_id, _ = bob

    resp = client.post("/sendMessage", json={"chatId": b_id, "text": 5}, headers=_auth(token))
    assert resp.status_code == 400
    resp = client.post("/createGroup", json={"name": 5}, headers=_auth(token))
    assert resp.status_code == 400
    resp = client.post("/createGroup", json={"name": "Trip", "members": [{"id": b_id}]}, headers=_auth(token))
    assert resp.status_code == 400
    resp = client.post("/createGroup", json={"name": "Trip", "members": ["ghost"]}, headers=_auth(token))
    assert resp.status_code == 404
    assert resp.get_json()["error"] == "not_found"

    assert client.get("/chats", headers=_auth(token)).get_json() == []
