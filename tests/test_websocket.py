"""
Tests for the /ws/chat and /ws/reviews endpoints.
"""

import json

import pytest
from conftest import auth_headers, create_game, register_user
from starlette.websockets import WebSocketDisconnect

from gametrackr.db import SessionLocal
from gametrackr.models import User
from gametrackr.websocket import chat_manager, review_manager


class TestChatSocket:
    """Real-time chat."""

    def test_rejects_missing_or_bad_token(self, client):
        for url in ("/ws/chat", "/ws/chat?token=garbage"):
            with pytest.raises(WebSocketDisconnect) as excinfo:
                with client.websocket_connect(url) as ws:
                    ws.receive_json()
            assert excinfo.value.code == 1008

    def test_welcome_and_join(self, client):
        token, _ = register_user(client)

        with client.websocket_connect(f"/ws/chat?token={token}") as ws:
            welcome = ws.receive_json()
            joined = ws.receive_json()

            assert welcome["type"] == "system"
            assert welcome["content"] == "Welcome to the chat!"
            assert "timestamp" in welcome
            assert joined["userId"] == 0
            assert joined["username"] == "System"
            assert joined["content"] == "alice has joined the chat"
            assert len(chat_manager) == 1

    def test_messages_are_stored_and_broadcast(self, client):
        alice, _ = register_user(client, "alice")
        bob, _ = register_user(client, "bob")

        with client.websocket_connect(f"/ws/chat?token={alice}") as alice_ws:
            alice_ws.receive_json()
            alice_ws.receive_json()
            with client.websocket_connect(f"/ws/chat?token={bob}") as bob_ws:
                bob_ws.receive_json()
                bob_ws.receive_json()
                assert alice_ws.receive_json()["content"] == "bob has joined the chat"

                alice_ws.send_json({"type": "message", "content": "gg"})

                for ws in (alice_ws, bob_ws):
                    frame = ws.receive_json()
                    assert frame["type"] == "message"
                    assert frame["username"] == "alice"
                    assert frame["content"] == "gg"

            assert alice_ws.receive_json()["content"] == "bob has left the chat"

        history = client.get("/api/chat/messages").json()
        assert [message["content"] for message in history] == ["gg"]

    def test_heartbeat_and_bad_frames(self, client):
        token, _ = register_user(client)

        with client.websocket_connect(f"/ws/chat?token={token}") as ws:
            ws.receive_json()
            ws.receive_json()

            ws.send_json({"type": "heartbeat"})
            assert ws.receive_json() == {"type": "pong"}

            ws.send_text("{not json")
            assert ws.receive_json()["type"] == "error"

            ws.send_json({"type": "message", "content": "   "})
            assert ws.receive_json()["type"] == "error"

            ws.send_json({"type": "heartbeat"})
            assert ws.receive_json() == {"type": "pong"}

    def test_non_text_content_is_rejected(self, client):
        token, _ = register_user(client)

        with client.websocket_connect(f"/ws/chat?token={token}") as ws:
            ws.receive_json()
            ws.receive_json()

            for content in ({"text": "hi"}, ["hi"], 42, "bad \ud800"):
                ws.send_text(json.dumps({"type": "message", "content": content}))
                frame = ws.receive_json()
                assert frame["type"] == "error"
                assert frame["message"] == "Message content must be text"

        assert client.get("/api/chat/messages").json() == []

    def test_deleted_user_gets_error_then_close(self, client):
        token, user = register_user(client)

        with client.websocket_connect(f"/ws/chat?token={token}") as ws:
            ws.receive_json()
            ws.receive_json()
            with SessionLocal() as db:
                db.delete(db.get(User, user["id"]))
                db.commit()

            ws.send_json({"type": "message", "content": "still here?"})

            frame = ws.receive_json()
            assert frame["type"] == "error"
            assert frame["message"] == "User no longer exists"
            with pytest.raises(WebSocketDisconnect) as excinfo:
                ws.receive_json()
            assert excinfo.value.code == 1008

        assert len(chat_manager) == 0

    def test_rest_messages_reach_sockets(self, client):
        token, _ = register_user(client)

        with client.websocket_connect(f"/ws/chat?token={token}") as ws:
            ws.receive_json()
            ws.receive_json()

            client.post("/api/chat/messages", json={"content": "from rest"}, headers=auth_headers(token))

            frame = ws.receive_json()
            assert frame["type"] == "message"
            assert frame["content"] == "from rest"


class TestReviewSocket:
    """Review notifications."""

    def test_anonymous_connection(self, client):
        with client.websocket_connect("/ws/reviews") as ws:
            welcome = ws.receive_json()

            assert welcome["type"] == "system"
            assert welcome["message"] == "Connected to review notification system"
            assert len(review_manager) == 1

    def test_invalid_token_still_connects(self, client):
        with client.websocket_connect("/ws/reviews?token=garbage") as ws:
            assert ws.receive_json()["type"] == "system"
            ws.send_json({"type": "heartbeat"})
            assert ws.receive_json() == {"type": "pong"}

    def test_new_and_deleted_reviews_are_pushed(self, client):
        token, _ = register_user(client)
        game = create_game(client, token, "Hades")

        with client.websocket_connect(f"/ws/reviews?token={token}") as ws:
            ws.receive_json()

            created = client.post(
                "/api/reviews/",
                json={"gameId": game["id"], "rating": 5, "content": "Great"},
                headers=auth_headers(token),
            ).json()["review"]
            notification = ws.receive_json()

            assert notification["type"] == "new_review"
            assert notification["gameId"] == game["id"]
            assert notification["review"]["id"] == created["id"]
            assert notification["review"]["username"] == "alice"

            client.delete(f"/api/reviews/{created['id']}", headers=auth_headers(token))
            deleted = ws.receive_json()

            assert deleted == {"type": "review_deleted", "gameId": game["id"], "reviewId": created["id"]}

    def test_nested_game_review_is_pushed(self, client):
        token, _ = register_user(client)
        game = create_game(client, token, "Hades")

        with client.websocket_connect("/ws/reviews") as ws:
            ws.receive_json()
            client.post(
                f"/api/games/{game['id']}/reviews",
                json={"rating": 4, "content": "Nice"},
                headers=auth_headers(token),
            )

            assert ws.receive_json()["type"] == "new_review"
