"""Hand-off Controller: message flow and the active -> transferred -> closed lifecycle.

Every customer message goes through :meth:`HandoffController.customer_message`,
which decides server-side whether the Bot Responder may answer. The bot is
only consulted while the session is ``active``; once a human has taken over
(or the chat is closed) it stays silent whatever the client believes.
"""

import logging
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Tuple

from sqlalchemy.orm import Session

from .. import models
from ..bot.telegram_bot import notify_new_transfer
from ..config import get_settings
from ..errors import InvalidTransition
from ..schemas import ChatSessionOut, CustomerInfo, MessageOut
from . import admin_settings, message_log, presence, registry
from .bot import BotResponder
from .relay import Relay, Subscriber

logger = logging.getLogger(__name__)


def message_payload(message: models.ChatMessage) -> Dict[str, Any]:
    return MessageOut.model_validate(message).model_dump(mode="json")


def session_payload(chat: models.ChatSession) -> Dict[str, Any]:
    return ChatSessionOut.model_validate(chat).model_dump(mode="json")


class HandoffController:
    def __init__(
        self,
        db: Session,
        relay: Relay,
        bot: BotResponder,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.db = db
        self.relay = relay
        self.bot = bot
        self.clock = clock
        self.settings = get_settings()

    # ------------------------------------------------------------------ #
    # Customer side
    # ------------------------------------------------------------------ #
    async def start_session(self, customer: CustomerInfo) -> Tuple[models.ChatSession, List[models.ChatMessage]]:
        chat = registry.create_session(self.db, customer)
        welcome = message_log.append_message(
            self.db, chat, models.SENDER_BOT, self.bot.display_name, self.bot.welcome_message(chat.customer_name)
        )
        return chat, [welcome]

    async def customer_message(
        self,
        session_id: str,
        text: str,
        sender_name: Optional[str] = None,
        origin: Optional[Subscriber] = None,
    ) -> Tuple[models.ChatMessage, Optional[models.ChatMessage]]:
        chat = registry.get_session(self.db, session_id)
        if chat.status == models.STATUS_CLOSED:
            raise InvalidTransition(session_id, chat.status, "send a message to")

        message = message_log.append_message(
            self.db, chat, models.SENDER_CUSTOMER, sender_name or chat.customer_name, text
        )
        presence.clear_typing(session_id, models.SENDER_CUSTOMER)
        await self._publish_message(chat, message, origin)

        if not self._bot_may_answer(chat):
            return message, None

        reply = await self.bot.respond(session_id, message.message)

        # a transfer may have happened while the bot was thinking
        self.db.refresh(chat)
        if not self._bot_may_answer(chat):
            logger.info("Discarding bot reply for chat %s, session is %s", session_id, chat.status)
            return message, None

        bot_message = message_log.append_message(self.db, chat, models.SENDER_BOT, self.bot.display_name, reply)
        await self._publish_message(chat, bot_message)
        return message, bot_message

    async def request_transfer(self, session_id: str) -> models.ChatSession:
        chat = registry.get_session(self.db, session_id)
        already_transferred = chat.status == models.STATUS_TRANSFERRED
        chat = registry.transfer_session(self.db, session_id)
        if already_transferred:
            return chat
        await self._announce_transfer(chat, notify_admins=True)
        return chat

    # ------------------------------------------------------------------ #
    # Admin side
    # ------------------------------------------------------------------ #
    async def admin_message(
        self,
        session_id: str,
        admin_id: str,
        text: str,
        sender_name: Optional[str] = None,
        origin: Optional[Subscriber] = None,
    ) -> models.ChatMessage:
        chat = registry.get_session(self.db, session_id)
        if chat.status == models.STATUS_CLOSED:
            raise InvalidTransition(session_id, chat.status, "send a message to")
        if chat.admin_id is None or chat.status == models.STATUS_ACTIVE:
            chat = await self.assign(session_id, admin_id)

        message = message_log.append_message(
            self.db, chat, models.SENDER_ADMIN, sender_name or self.settings.support_name, text
        )
        presence.clear_typing(session_id, models.SENDER_ADMIN)
        await self._publish_message(chat, message, origin)
        return message

    async def assign(self, session_id: str, admin_id: str) -> models.ChatSession:
        chat = registry.get_session(self.db, session_id)
        was_active = chat.status == models.STATUS_ACTIVE
        chat = registry.assign_admin(self.db, session_id, admin_id)
        logger.info("Chat session %s assigned to admin %s", session_id, admin_id)
        if was_active:
            await self._announce_transfer(chat, notify_admins=False)
        return chat

    async def close(self, session_id: str) -> models.ChatSession:
        chat = registry.get_session(self.db, session_id)
        if chat.status == models.STATUS_CLOSED:
            return chat
        chat = registry.close_session(self.db, session_id)
        notice = message_log.append_message(
            self.db,
            chat,
            models.SENDER_SYSTEM,
            "System",
            "This chat has been closed. Thank you for contacting us!",
        )
        await self.relay.publish(
            session_id,
            {"type": "chat_closed", "session": session_payload(chat), "message": message_payload(notice)},
        )
        return chat

    # ------------------------------------------------------------------ #
    # Helpers
    # ------------------------------------------------------------------ #
    def _bot_may_answer(self, chat: models.ChatSession) -> bool:
        return chat.status == models.STATUS_ACTIVE

    async def _publish_message(
        self,
        chat: models.ChatSession,
        message: models.ChatMessage,
        origin: Optional[Subscriber] = None,
    ) -> None:
        payload = message_payload(message)
        await self.relay.publish(
            chat.session_id,
            {"type": "new_message", "message": payload},
            origin=origin,
            origin_event={"type": "message_sent", "message": payload} if origin is not None else None,
        )

    async def _announce_transfer(self, chat: models.ChatSession, notify_admins: bool) -> None:
        notice = message_log.append_message(
            self.db,
            chat,
            models.SENDER_SYSTEM,
            "System",
            "You've been connected with our support team. A technician will be with you shortly.",
        )
        await self.relay.publish(
            chat.session_id,
            {"type": "chat_transferred", "session": session_payload(chat), "message": message_payload(notice)},
        )
        if not notify_admins:
            return

        all_settings = admin_settings.list_settings(self.db)
        muted = {s.admin_id for s in all_settings if not s.notifications_enabled}
        await self.relay.publish_to_admins(
            {"type": "new_transfer", "session": session_payload(chat)},
            predicate=lambda sub: sub.admin_id not in muted,
        )
        await notify_new_transfer(chat.session_id, chat.customer_name, self._last_customer_text(chat))

        now = self.clock()
        if any(admin_settings.is_available(s, now) for s in all_settings):
            return
        responder = next(
            (s for s in all_settings if s.auto_response_enabled and (s.away_message or "").strip()), None
        )
        if responder is None:
            return
        away = message_log.append_message(
            self.db, chat, models.SENDER_SYSTEM, self.settings.support_name, responder.away_message
        )
        await self._publish_message(chat, away)

    def _last_customer_text(self, chat: models.ChatSession) -> Optional[str]:
        last = (
            self.db.query(models.ChatMessage)
            .filter(
                models.ChatMessage.chat_session_id == chat.id,
                models.ChatMessage.sender == models.SENDER_CUSTOMER,
            )
            .order_by(models.ChatMessage.created_at.desc(), models.ChatMessage.id.desc())
            .first()
        )
        return last.message if last else None
