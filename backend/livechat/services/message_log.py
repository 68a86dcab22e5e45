"""Message Log: append-only, per-session ordered chat history."""

from typing import List

from sqlalchemy.orm import Session

from .. import models
from ..errors import ValidationFailure
from .registry import get_session


def append_message(
    db: Session,
    chat: models.ChatSession,
    sender: str,
    sender_name: str,
    body: str,
) -> models.ChatMessage:
    if sender not in models.SENDERS:
        raise ValidationFailure(f"Unknown sender role: {sender}")
    text = (body or "").strip()
    if not text:
        raise ValidationFailure("Message text is required")

    message = models.ChatMessage(
        chat_session_id=chat.id,
        sender=sender,
        sender_name=sender_name,
        message=text,
        message_type="text",
    )
    db.add(message)
    db.flush()
    chat.last_message_at = message.created_at
    db.commit()
    db.refresh(message)
    return message


def list_messages(db: Session, session_id: str) -> List[models.ChatMessage]:
    chat = get_session(db, session_id)
    return (
        db.query(models.ChatMessage)
        .filter(models.ChatMessage.chat_session_id == chat.id)
        .order_by(models.ChatMessage.created_at.asc(), models.ChatMessage.id.asc())
        .all()
    )


def mark_read(db: Session, chat: models.ChatSession, reader: str) -> int:
    """Mark everything the other parties sent as read by ``reader``."""
    updated = (
        db.query(models.ChatMessage)
        .filter(
            models.ChatMessage.chat_session_id == chat.id,
            models.ChatMessage.sender != reader,
            models.ChatMessage.is_read.is_(False),
        )
        .update({models.ChatMessage.is_read: True}, synchronize_session=False)
    )
    db.commit()
    return updated


def unread_count(db: Session, chat: models.ChatSession, reader: str) -> int:
    return (
        db.query(models.ChatMessage)
        .filter(
            models.ChatMessage.chat_session_id == chat.id,
            models.ChatMessage.sender != reader,
            models.ChatMessage.is_read.is_(False),
        )
        .count()
    )
