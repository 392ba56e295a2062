"""Integration tests for the WebSocket endpoint.

These drive full sessions through the test client with JSON text frames,
using the real coordinator, SQLite store and fuzzy judge.
"""

from unittest.mock import patch

import pytest
from starlette.websockets import WebSocketDisconnect

from battle.server import websocket as ws_module
from battle.tests.helpers.websocket import (
    answer_for,
    create_session,
    join_session,
    recv_until,
    recv_ws,
    send_ws,
)


def _join(ws, user_id: int, session_id: int) -> None:
    send_ws(ws, {"type": "join", "userId": user_id, "sessionId": session_id})


def _submit(ws, answer: str, question_index: int, seconds: float = 5) -> None:
    send_ws(
        ws,
        {"type": "submit-answer", "answer": answer, "timeToAnswerSeconds": seconds, "questionIndex": question_index},
    )


class TestWebSocketSession:
    def test_two_players_play_a_round(self, client):
        created = create_session(client)
        join_session(client, created["sessionCode"], 2)
        session_id = created["id"]

        with client.websocket_connect("/ws") as ws1, client.websocket_connect("/ws") as ws2:
            _join(ws1, 1, session_id)
            assert recv_ws(ws1)["type"] == "user-joined"
            _join(ws2, 2, session_id)
            assert recv_ws(ws2)["type"] == "user-joined"
            assert recv_ws(ws1)["userId"] == 2

            send_ws(ws1, {"type": "ready"})
            assert recv_ws(ws1)["type"] == "player-ready"
            assert recv_ws(ws2)["allReady"] is False
            send_ws(ws2, {"type": "ready"})
            started = recv_until(ws1, "game-started")[-1]
            recv_until(ws2, "game-started")

            assert started["questionIndex"] == 0
            assert started["timePerQuestion"] == 30
            assert "answer" not in started["currentQuestion"]

            _submit(ws1, answer_for(started["currentQuestion"]), 0)
            submitted = recv_ws(ws1)
            assert submitted["type"] == "answer-submitted"
            assert submitted["isCorrect"] is True
            assert recv_ws(ws2)["userId"] == 1

            _submit(ws2, "nope", 0)
            messages = recv_until(ws2, "next-question")
            assert [m["type"] for m in messages] == ["answer-submitted", "battle-moves", "next-question"]
            assert messages[0]["correctAnswer"] == answer_for(started["currentQuestion"])
            next_question = messages[-1]
            assert next_question["questionIndex"] == 1
            assert next_question["correctAnswer"] == answer_for(started["currentQuestion"])
            recv_until(ws1, "next-question")

            send_ws(ws1, {"type": "battle-action", "action": "attack"})
            result = recv_ws(ws2)
            assert result["type"] == "battle-result"
            assert result["targetId"] == 2
            assert result["targetHP"] == 35  # 50 - 5 wrong answer - 10 attack
            assert recv_ws(ws1)["type"] == "battle-result"

    def test_bot_match(self, client):
        created = create_session(client, withBot=True)
        bot = next(p for p in created["participants"] if p["isBot"])

        with client.websocket_connect("/ws") as ws:
            _join(ws, 1, created["id"])
            recv_ws(ws)
            send_ws(ws, {"type": "ready"})
            recv_until(ws, "game-started")
            bot_answer = recv_until(ws, "answer-submitted")[-1]
            assert bot_answer["userId"] == bot["userId"]

    def test_sprite_selection_is_broadcast(self, client):
        created = create_session(client)
        with client.websocket_connect("/ws") as ws:
            _join(ws, 1, created["id"])
            recv_ws(ws)
            send_ws(ws, {"type": "select-sprite", "spriteType": "tank"})
            msg = recv_ws(ws)
            assert msg == {"type": "sprite-selected", "userId": 1, "spriteType": "tank", "timestamp": msg["timestamp"]}

        session = client.get(f"/sessions/{created['id']}").json()
        assert session["participants"][0]["hp"] == 100

    def test_disconnect_notifies_others(self, client):
        created = create_session(client)
        join_session(client, created["sessionCode"], 2)
        with client.websocket_connect("/ws") as ws1:
            _join(ws1, 1, created["id"])
            recv_ws(ws1)
            with client.websocket_connect("/ws") as ws2:
                _join(ws2, 2, created["id"])
                recv_ws(ws2)
                recv_ws(ws1)
            left = recv_ws(ws1)
            assert left["type"] == "user-left"
            assert left["userId"] == 2

        session = client.get(f"/sessions/{created['id']}").json()
        assert all(p["leftAt"] is not None for p in session["participants"])


class TestWebSocketErrors:
    def test_intent_before_join(self, client):
        with client.websocket_connect("/ws") as ws:
            send_ws(ws, {"type": "ready"})
            msg = recv_ws(ws)
            assert msg["type"] == "error"
            assert msg["message"] == "Join a session first"

    def test_invalid_json_keeps_connection(self, client):
        with client.websocket_connect("/ws") as ws:
            ws.send_text("{oops")
            error = recv_ws(ws)
            assert error["type"] == "error"
            assert error["message"].startswith("Invalid message format")

            send_ws(ws, {"type": "dance"})
            assert recv_ws(ws)["message"].startswith("Invalid message")

    def test_binary_frame_gets_error_and_keeps_participant(self, client):
        created = create_session(client)
        with client.websocket_connect("/ws") as ws:
            _join(ws, 1, created["id"])
            recv_ws(ws)

            ws.send_bytes(b'{"type": "ready"}')
            error = recv_ws(ws)
            assert error["type"] == "error"
            assert error["message"].startswith("Binary frames are not supported")

            send_ws(ws, {"type": "select-sprite", "spriteType": "tank"})
            assert recv_ws(ws)["type"] == "sprite-selected"

        session = client.get(f"/sessions/{created['id']}").json()
        assert session["participants"][0]["spriteType"] == "tank"

    def test_binary_frames_count_as_decode_errors(self, client):
        with patch.object(ws_module, "_MAX_DECODE_ERRORS", 2), client.websocket_connect("/ws") as ws:
            for _ in range(2):
                ws.send_bytes(b"\x00\x01")
                recv_ws(ws)
            with pytest.raises(WebSocketDisconnect) as exc_info:
                ws.receive_text()
            assert exc_info.value.code == 4004

    def test_repeated_decode_errors_disconnect(self, client):
        with patch.object(ws_module, "_MAX_DECODE_ERRORS", 3), client.websocket_connect("/ws") as ws:
            for _ in range(3):
                ws.send_text("[1, 2, 3]")
                recv_ws(ws)
            with pytest.raises(WebSocketDisconnect) as exc_info:
                ws.receive_text()
            assert exc_info.value.code == 4004

    def test_decode_error_counter_resets_on_valid_message(self, client):
        with patch.object(ws_module, "_MAX_DECODE_ERRORS", 3), client.websocket_connect("/ws") as ws:
            for _ in range(2):
                ws.send_text("not json")
                recv_ws(ws)
            send_ws(ws, {"type": "ready"})
            recv_ws(ws)
            for _ in range(2):
                ws.send_text("not json")
                recv_ws(ws)
            send_ws(ws, {"type": "ready"})
            assert recv_ws(ws)["message"] == "Join a session first"
