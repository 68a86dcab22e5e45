# backend/livechat/config.py
from functools import lru_cache
from typing import Dict, List, Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    database_url: str = "sqlite:///./livechat.db"
    redis_url: str = "redis://localhost:6379/0"

    # comma separated, e.g. "https://example.com,https://www.example.com"
    cors_origins: str = ""

    # comma separated admin_id:key pairs
    operator_api_keys: str = ""

    # --- Telegram operator notifications ---
    telegram_bot_token: Optional[str] = None
    operator_chat_ids: str = ""
    webhook_host: str = "http://localhost:8000"

    # --- Bot Responder ---
    openai_api_key: Optional[str] = None
    openai_base_url: Optional[str] = None
    bot_model: str = "gpt-4o-mini"
    bot_timeout_seconds: float = 15.0
    bot_display_name: str = "AramisTech Assistant"
    support_name: str = "AramisTech Support"
    support_phone: str = "(305) 814-4461"
    support_email: str = "info@aramistech.com"

    chat_inactive_days: int = 3
    log_level: str = "INFO"

    @property
    def cors_origins_list(self) -> List[str]:
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]

    @property
    def operator_keys(self) -> Dict[str, str]:
        """Maps API key -> admin id."""
        keys = {}
        for pair in self.operator_api_keys.split(","):
            admin_id, sep, key = pair.strip().partition(":")
            if sep and admin_id and key:
                keys[key] = admin_id
        return keys

    @property
    def operator_chat_id_list(self) -> List[int]:
        return [int(chat_id) for chat_id in self.operator_chat_ids.split(",") if chat_id.strip()]


@lru_cache()
def get_settings() -> Settings:
    return Settings()
