import logging
from typing import Optional

from aiogram import Bot, Dispatcher, types
from aiogram.client.default import DefaultBotProperties
from aiogram.enums import ParseMode
from aiogram.types import InlineKeyboardButton, InlineKeyboardMarkup, WebAppInfo
from aiogram.utils.text_decorations import html_decoration

from ..config import get_settings

logger = logging.getLogger(__name__)

dp = Dispatcher()
_bot: Optional[Bot] = None


def get_bot() -> Optional[Bot]:
    global _bot
    token = get_settings().telegram_bot_token
    if not token:
        return None
    if _bot is None:
        _bot = Bot(token=token, default=DefaultBotProperties(parse_mode=ParseMode.HTML))
    return _bot


@dp.message()
async def cmd_start(message: types.Message):
    await message.answer(
        f"✅ Live chat notifications are on. Your chat id is <code>{message.chat.id}</code>."
    )


async def start_telegram_bot():
    bot = get_bot()
    if bot is None:
        return
    logger.info("Starting Telegram operator bot")
    await dp.start_polling(bot, handle_signals=False)


async def notify_new_transfer(session_id: str, customer_name: str, last_message: Optional[str] = None) -> int:
    """Tell every operator chat that a customer is waiting for a technician."""
    bot = get_bot()
    if bot is None:
        return 0
    settings = get_settings()
    console_url = f"{settings.webhook_host}/admin/live-chat?session_id={session_id}"
    keyboard = InlineKeyboardMarkup(inline_keyboard=[
        [InlineKeyboardButton(text="💬 Open chat", web_app=WebAppInfo(url=console_url))]
    ])

    text = f"🙋 <b>{html_decoration.quote(customer_name)}</b> asked to speak with a technician."
    if last_message:
        text += f"\n\n{html_decoration.quote(last_message)}"
    text += f"\n\nSession: <code>{session_id}</code>"

    sent = 0
    for op_id in settings.operator_chat_id_list:
        try:
            await bot.send_message(op_id, text, reply_markup=keyboard)
            sent += 1
        except Exception as exc:
            logger.warning("Telegram notification to %s failed: %s", op_id, exc)
    return sent
