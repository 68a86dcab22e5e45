import asyncio
from datetime import datetime

import pytest

from conftest import CANNED_REPLY, StubBot
from livechat import models
from livechat.database import SessionLocal
from livechat.errors import InvalidTransition
from livechat.schemas import AdminChatSettingsUpdate, CustomerInfo
from livechat.services import admin_settings, message_log, registry
from livechat.services.handoff import HandoffController
from livechat.services.relay import ROLE_CUSTOMER, Relay

# a Wednesday
MIDDAY = datetime(2024, 5, 15, 12, 0)
MIDNIGHT = datetime(2024, 5, 15, 23, 30)


def _controller(db, bot=None, now=MIDDAY):
    return HandoffController(db, Relay(), bot or StubBot(), clock=lambda: now)


def _start(controller, name="Jane"):
    chat, _ = asyncio.run(controller.start_session(CustomerInfo(name=name)))
    return chat


def test_start_session_posts_welcome(db):
    controller = _controller(db)
    chat, messages = asyncio.run(controller.start_session(CustomerInfo(name="Jane")))

    assert [m.sender for m in messages] == ["bot"]
    assert messages[0].message.startswith("Hi Jane!")
    assert message_log.list_messages(db, chat.session_id)[0].id == messages[0].id


def test_bot_answers_while_active(db):
    bot = StubBot()
    controller = _controller(db, bot)
    chat = _start(controller)

    message, reply = asyncio.run(controller.customer_message(chat.session_id, "my email is down"))

    assert message.sender == "customer"
    assert message.sender_name == "Jane"
    assert reply.sender == "bot"
    assert reply.message == CANNED_REPLY
    assert bot.calls == ["my email is down"]


def test_bot_stays_silent_after_transfer(db):
    bot = StubBot()
    controller = _controller(db, bot)
    chat = _start(controller)
    asyncio.run(controller.request_transfer(chat.session_id))

    _, reply = asyncio.run(controller.customer_message(chat.session_id, "hello? anyone?"))

    assert reply is None
    assert bot.calls == []


def test_bot_reply_is_dropped_if_transfer_happens_meanwhile(db):
    chat = _start(_controller(db))

    def transfer_elsewhere():
        with SessionLocal() as other:
            registry.transfer_session(other, chat.session_id)

    bot = StubBot(on_call=transfer_elsewhere)
    _, reply = asyncio.run(_controller(db, bot).customer_message(chat.session_id, "my email is down"))

    assert reply is None
    assert bot.calls == ["my email is down"]
    assert "bot" not in [m.sender for m in message_log.list_messages(db, chat.session_id)[1:]]


def test_bot_failure_becomes_fallback_message(db):
    bot = StubBot(error=RuntimeError("upstream 500"))
    controller = _controller(db, bot)
    chat = _start(controller)

    _, reply = asyncio.run(controller.customer_message(chat.session_id, "help"))

    assert reply.message == bot.fallback_message
    assert "(305) 814-4461" in reply.message


def test_closed_session_rejects_messages(db):
    controller = _controller(db)
    chat = _start(controller)
    asyncio.run(controller.close(chat.session_id))

    with pytest.raises(InvalidTransition):
        asyncio.run(controller.customer_message(chat.session_id, "still there?"))
    with pytest.raises(InvalidTransition):
        asyncio.run(controller.admin_message(chat.session_id, "alice", "hi"))


def test_transfer_notifies_session_and_admins(db, make_socket):
    controller = _controller(db)
    chat = _start(controller)
    customer_ws, admin_ws, muted_ws = make_socket(), make_socket(), make_socket()
    relay = controller.relay
    relay.join(relay.connect(customer_ws), chat.session_id, ROLE_CUSTOMER)
    relay.register_admin(relay.connect(admin_ws, admin_id="alice"))
    relay.register_admin(relay.connect(muted_ws, admin_id="bob"))
    admin_settings.update_settings(db, "bob", AdminChatSettingsUpdate(notifications_enabled=False))
    admin_settings.update_settings(db, "alice", AdminChatSettingsUpdate(is_online=True))

    asyncio.run(controller.request_transfer(chat.session_id))
    asyncio.run(controller.request_transfer(chat.session_id))

    assert customer_ws.types() == ["chat_transferred"]
    assert customer_ws.sent[0]["session"]["status"] == "transferred"
    assert customer_ws.sent[0]["message"]["sender"] == "system"
    assert admin_ws.types() == ["new_transfer"]
    assert admin_ws.sent[0]["session"]["customer_name"] == "Jane"
    assert muted_ws.sent == []


def test_away_message_when_nobody_is_available(db, make_socket):
    controller = _controller(db, now=MIDNIGHT)
    chat = _start(controller)
    admin_settings.update_settings(
        db, "alice", AdminChatSettingsUpdate(is_online=True, away_message="We're closed, back at 9am.")
    )
    customer_ws = make_socket()
    controller.relay.join(controller.relay.connect(customer_ws), chat.session_id, ROLE_CUSTOMER)

    asyncio.run(controller.request_transfer(chat.session_id))

    assert customer_ws.types() == ["chat_transferred", "new_message"]
    assert customer_ws.sent[1]["message"]["message"] == "We're closed, back at 9am."


def test_blank_away_message_does_not_fail_the_transfer(db, make_socket):
    controller = _controller(db, now=MIDNIGHT)
    chat = _start(controller)
    row = admin_settings.set_online(db, "alice", True)
    # rows written before away messages were validated
    row.away_message = "   "
    db.commit()
    customer_ws = make_socket()
    controller.relay.join(controller.relay.connect(customer_ws), chat.session_id, ROLE_CUSTOMER)

    transferred = asyncio.run(controller.request_transfer(chat.session_id))

    assert transferred.status == models.STATUS_TRANSFERRED
    assert customer_ws.types() == ["chat_transferred"]
    senders = [m.sender for m in message_log.list_messages(db, chat.session_id)]
    assert senders == ["bot", "system"]


def test_no_away_message_when_an_admin_is_available(db, make_socket):
    controller = _controller(db, now=MIDDAY)
    chat = _start(controller)
    admin_settings.update_settings(db, "alice", AdminChatSettingsUpdate(is_online=True))

    asyncio.run(controller.request_transfer(chat.session_id))

    senders = [m.sender for m in message_log.list_messages(db, chat.session_id)]
    assert senders == ["bot", "system"]


def test_admin_reply_assigns_and_silences_bot(db, make_socket):
    bot = StubBot()
    controller = _controller(db, bot)
    chat = _start(controller)
    customer_ws = make_socket()
    controller.relay.join(controller.relay.connect(customer_ws), chat.session_id, ROLE_CUSTOMER)

    message = asyncio.run(controller.admin_message(chat.session_id, "alice", "I'm looking into it now"))
    _, reply = asyncio.run(controller.customer_message(chat.session_id, "thanks"))

    db.refresh(chat)
    assert chat.admin_id == "alice"
    assert chat.status == models.STATUS_TRANSFERRED
    assert message.sender == "admin"
    assert reply is None
    assert bot.calls == []
    assert customer_ws.types() == ["chat_transferred", "new_message", "new_message"]


def test_close_posts_notice(db, make_socket):
    controller = _controller(db)
    chat = _start(controller)
    customer_ws = make_socket()
    controller.relay.join(controller.relay.connect(customer_ws), chat.session_id, ROLE_CUSTOMER)

    closed = asyncio.run(controller.close(chat.session_id))
    asyncio.run(controller.close(chat.session_id))

    assert closed.status == models.STATUS_CLOSED
    assert customer_ws.types() == ["chat_closed"]
