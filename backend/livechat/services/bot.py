"""Bot Responder: one stateless completion per customer message."""

import asyncio
import logging
from typing import Optional

from openai import AsyncOpenAI

from ..config import Settings, get_settings
from ..errors import BotUnavailable

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = (
    "You are {assistant}, the website assistant of an IT services company that has been "
    "supporting small businesses for over 27 years. Help visitors with IT questions such as "
    "email problems, networking, backups, security and computer repairs. Keep answers short "
    "and practical. If the problem needs hands-on work, suggest speaking with one of our "
    "technicians, reachable at {phone} or {email}."
)


class BotResponder:
    def __init__(self, settings: Optional[Settings] = None, client: Optional[AsyncOpenAI] = None):
        self.settings = settings or get_settings()
        self._client = client

    @property
    def display_name(self) -> str:
        return self.settings.bot_display_name

    @property
    def fallback_message(self) -> str:
        return (
            "I'm having trouble processing your request right now. Would you like to speak with "
            f"one of our technicians? You can call us at {self.settings.support_phone} or email "
            f"{self.settings.support_email} for immediate assistance."
        )

    def welcome_message(self, customer_name: str) -> str:
        return (
            f"Hi {customer_name}! I'm the {self.display_name}. I'm here to help you with any IT "
            "questions or concerns. How can I assist you today?"
        )

    def _get_client(self) -> AsyncOpenAI:
        if self._client is None:
            if not self.settings.openai_api_key:
                raise BotUnavailable("OPENAI_API_KEY is not configured")
            self._client = AsyncOpenAI(
                api_key=self.settings.openai_api_key,
                base_url=self.settings.openai_base_url,
                timeout=self.settings.bot_timeout_seconds,
            )
        return self._client

    async def _complete(self, customer_text: str) -> str:
        client = self._get_client()
        prompt = SYSTEM_PROMPT.format(
            assistant=self.display_name,
            phone=self.settings.support_phone,
            email=self.settings.support_email,
        )
        resp = await client.chat.completions.create(
            model=self.settings.bot_model,
            messages=[
                {"role": "system", "content": prompt},
                {"role": "user", "content": customer_text},
            ],
            max_tokens=500,
        )
        text = (resp.choices[0].message.content or "").strip() if resp.choices else ""
        if not text:
            raise BotUnavailable("Empty completion")
        return text

    async def respond(self, session_id: str, customer_text: str) -> str:
        """Return the bot's reply, or the fallback text if anything goes wrong."""
        try:
            return await asyncio.wait_for(
                self._complete(customer_text),
                timeout=self.settings.bot_timeout_seconds,
            )
        except asyncio.TimeoutError:
            logger.warning("Bot reply for chat %s timed out after %.1fs", session_id, self.settings.bot_timeout_seconds)
        except BotUnavailable as exc:
            logger.warning("Bot unavailable for chat %s: %s", session_id, exc)
        except Exception as exc:
            logger.error("Bot reply for chat %s failed: %s", session_id, exc, exc_info=True)
        return self.fallback_message
