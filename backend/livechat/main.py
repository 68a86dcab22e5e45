# backend/livechat/main.py
import asyncio
import logging
from contextlib import asynccontextmanager
from datetime import timedelta

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .api import admin, chat, ws
from .bot.telegram_bot import start_telegram_bot
from .config import get_settings
from .database import SessionLocal, init_db
from .models import utcnow
from .services import registry
from .services.relay import Relay
from .utils.logging import configure_logging

settings = get_settings()
configure_logging(settings.log_level)
logger = logging.getLogger(__name__)


async def cleanup_inactive_chats():
    while True:
        await asyncio.sleep(3600)
        cutoff = utcnow() - timedelta(days=settings.chat_inactive_days)
        try:
            with SessionLocal() as db:
                registry.close_inactive(db, cutoff)
        except Exception as exc:
            logger.error("Inactive chat cleanup failed: %s", exc, exc_info=True)


@asynccontextmanager
async def lifespan(app: FastAPI):
    init_db()
    app.state.relay = Relay()
    tasks = []
    if settings.telegram_bot_token:
        tasks.append(asyncio.create_task(start_telegram_bot()))
    tasks.append(asyncio.create_task(cleanup_inactive_chats()))
    yield
    for t in tasks:
        t.cancel()
    app.state.relay.clear()


app = FastAPI(
    title="Live Chat Backend",
    description="Customer live chat with bot replies and hand-off to human technicians.",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# API
app.include_router(chat.router, prefix="/api")
app.include_router(admin.router, prefix="/api")
app.include_router(ws.router)


@app.get("/health")
async def health():
    return {"status": "ok"}
