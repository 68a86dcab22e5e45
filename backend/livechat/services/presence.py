"""Typing indicators and admin heartbeats kept in Redis with short TTLs."""

import logging
from typing import List

import redis

from ..config import get_settings

logger = logging.getLogger(__name__)

TYPING_TTL = 3
HEARTBEAT_TTL = 35

redis_client = redis.from_url(get_settings().redis_url, decode_responses=True)


def _typing_key(role: str, session_id: str) -> str:
    return f"typing:{role}:{session_id}"


def set_typing(session_id: str, role: str) -> None:
    try:
        redis_client.setex(_typing_key(role, session_id), TYPING_TTL, "1")
    except redis.RedisError as exc:
        logger.warning("Could not store typing state for chat %s: %s", session_id, exc)


def clear_typing(session_id: str, role: str) -> None:
    try:
        redis_client.delete(_typing_key(role, session_id))
    except redis.RedisError as exc:
        logger.warning("Could not clear typing state for chat %s: %s", session_id, exc)


def is_typing(session_id: str, role: str) -> bool:
    try:
        return bool(redis_client.exists(_typing_key(role, session_id)))
    except redis.RedisError as exc:
        logger.warning("Could not read typing state for chat %s: %s", session_id, exc)
        return False


def heartbeat(admin_id: str) -> None:
    try:
        redis_client.setex(f"admin_online:{admin_id}", HEARTBEAT_TTL, "1")
    except redis.RedisError as exc:
        logger.warning("Could not store heartbeat for admin %s: %s", admin_id, exc)


def online_admins() -> List[str]:
    try:
        keys = redis_client.keys("admin_online:*")
    except redis.RedisError as exc:
        logger.warning("Could not list online admins: %s", exc)
        return []
    return sorted(key.split(":", 1)[1] for key in keys)
