import asyncio

from conftest import CANNED_REPLY
from livechat.api.ws import _mark_offline
from livechat.database import SessionLocal
from livechat.services import admin_settings
from livechat.services.relay import Relay


def _start(client, name="Jane"):
    return client.post("/api/chat/session", json={"name": name}).json()["session"]["session_id"]


def _join(ws, sid, role="customer"):
    ws.send_json({"type": "join_session", "session_id": sid, "role": role})
    ack = ws.receive_json()
    assert ack == {"type": "session_joined", "session_id": sid, "role": role}


def test_jane_is_handed_off_to_a_technician(client, stub_bot):
    sid = _start(client, "Jane")

    with client.websocket_connect("/ws?api_key=alice-key") as admin, client.websocket_connect("/ws") as jane:
        _join(jane, sid)

        jane.send_json({"type": "send_message", "session_id": sid, "message": "my email is down"})
        echo = jane.receive_json()
        reply = jane.receive_json()
        assert echo["type"] == "message_sent"
        assert echo["message"]["sender"] == "customer"
        assert echo["message"]["message"] == "my email is down"
        assert reply["type"] == "new_message"
        assert reply["message"]["sender"] == "bot"
        assert reply["message"]["message"] == CANNED_REPLY

        jane.send_json({"type": "transfer_to_human", "session_id": sid})
        transferred = jane.receive_json()
        assert transferred["type"] == "chat_transferred"
        assert transferred["session"]["status"] == "transferred"

        notice = admin.receive_json()
        assert notice["type"] == "new_transfer"
        assert notice["session"]["customer_name"] == "Jane"
        assert notice["session"]["session_id"] == sid

        _join(admin, sid, role="admin")
        admin.send_json({"type": "send_message", "session_id": sid, "message": "I'm looking into it now"})
        assert admin.receive_json()["type"] == "message_sent"
        delivered = jane.receive_json()
        assert delivered["type"] == "new_message"
        assert delivered["message"]["sender"] == "admin"
        assert delivered["message"]["message"] == "I'm looking into it now"

        jane.send_json({"type": "send_message", "session_id": sid, "message": "thank you!"})
        assert jane.receive_json()["type"] == "message_sent"
        assert admin.receive_json()["message"]["message"] == "thank you!"

    assert stub_bot.calls == ["my email is down"]
    session = client.get(f"/api/chat/session/{sid}").json()
    assert session["admin_id"] == "alice"


def test_rejoining_after_reconnect_sees_the_same_history(client, alice):
    sid = _start(client)

    with client.websocket_connect("/ws") as jane:
        _join(jane, sid)
        jane.send_json({"type": "send_message", "session_id": sid, "message": "hello"})
        jane.receive_json()
        jane.receive_json()
        before = client.get(f"/api/chat/session/{sid}/messages").json()

    # sent while the customer was disconnected
    client.post(f"/api/admin/chat/session/{sid}/messages", json={"message": "Are you still there?"}, headers=alice)

    with client.websocket_connect("/ws") as jane:
        _join(jane, sid)
        after = client.get(f"/api/chat/session/{sid}/messages").json()

    assert after[: len(before)] == before
    assert after[-1]["message"] == "Are you still there?"


def test_typing_is_relayed_to_the_customer(client, fake_redis):
    sid = _start(client)

    with client.websocket_connect("/ws?api_key=bob-key") as admin, client.websocket_connect("/ws") as jane:
        _join(jane, sid)
        _join(admin, sid, role="admin")

        admin.send_json({"type": "agent_typing", "session_id": sid})
        assert jane.receive_json() == {"type": "agent_typing", "session_id": sid}
        assert fake_redis.exists(f"typing:admin:{sid}")

        admin.send_json({"type": "agent_stopped_typing", "session_id": sid})
        assert jane.receive_json() == {"type": "agent_stopped_typing", "session_id": sid}
        assert not fake_redis.exists(f"typing:admin:{sid}")


def test_admin_presence_is_broadcast_and_persisted(client, alice):
    with client.websocket_connect("/ws?api_key=alice-key") as first, client.websocket_connect("/ws?api_key=bob-key") as second:
        first.send_json({"type": "admin_online"})
        assert first.receive_json() == {"type": "admin_online", "admin_id": "alice"}
        assert second.receive_json() == {"type": "admin_online", "admin_id": "alice"}

        first.send_json({"type": "admin_offline"})
        assert first.receive_json() == {"type": "admin_offline", "admin_id": "alice"}
        assert second.receive_json() == {"type": "admin_offline", "admin_id": "alice"}

    assert client.get("/api/admin/chat/settings", headers=alice).json()["is_online"] is False



def test_closing_the_last_admin_socket_takes_the_admin_offline(client, alice):
    with client.websocket_connect("/ws?api_key=alice-key") as console:
        with client.websocket_connect("/ws?api_key=alice-key") as second_tab:
            console.send_json({"type": "admin_online"})
            assert console.receive_json() == {"type": "admin_online", "admin_id": "alice"}
            assert second_tab.receive_json() == {"type": "admin_online", "admin_id": "alice"}

        # another console is still open
        assert client.get("/api/admin/chat/settings", headers=alice).json()["is_online"] is True

    assert client.get("/api/admin/chat/settings", headers=alice).json()["is_online"] is False


def test_mark_offline_broadcasts_to_the_other_admins(db, make_socket):
    admin_settings.set_online(db, "alice", True)
    relay = Relay()
    bob_ws = make_socket()
    relay.register_admin(relay.connect(bob_ws, admin_id="bob"))

    asyncio.run(_mark_offline(relay, "alice"))
    # already offline, nothing more to announce
    asyncio.run(_mark_offline(relay, "alice"))

    assert bob_ws.sent == [{"type": "admin_offline", "admin_id": "alice"}]
    with SessionLocal() as fresh:
        assert admin_settings.get_settings(fresh, "alice").is_online is False


def test_customers_cannot_act_as_admins(client):
    sid = _start(client)

    with client.websocket_connect("/ws") as intruder:
        intruder.send_json({"type": "join_session", "session_id": sid, "role": "admin"})
        assert intruder.receive_json()["type"] == "error"
        intruder.send_json({"type": "admin_online"})
        assert intruder.receive_json()["type"] == "error"
        intruder.send_json({"type": "agent_typing", "session_id": sid})
        assert intruder.receive_json()["type"] == "error"


def test_bad_frames_get_an_error_and_keep_the_connection(client):
    sid = _start(client)

    with client.websocket_connect("/ws") as jane:
        jane.send_text("{not json")
        assert jane.receive_json()["type"] == "error"
        jane.send_json({"type": "bot_response", "session_id": sid})
        assert jane.receive_json()["type"] == "error"
        jane.send_json({"type": "join_session", "session_id": "missing"})
        error = jane.receive_json()
        assert error["type"] == "error"
        assert "not found" in error["detail"]

        _join(jane, sid)
