"""Session Registry: chat session records and their status transitions."""

import logging
from datetime import datetime
from typing import List
from uuid import uuid4

from sqlalchemy.orm import Session

from .. import models
from ..errors import InvalidTransition, SessionNotFound, ValidationFailure
from ..schemas import CustomerInfo

logger = logging.getLogger(__name__)


def create_session(db: Session, customer: CustomerInfo) -> models.ChatSession:
    name = (customer.name or "").strip()
    if not name:
        raise ValidationFailure("Customer name is required")
    chat = models.ChatSession(
        session_id=str(uuid4()),
        customer_name=name,
        customer_email=customer.email or None,
        customer_phone=customer.phone or None,
        status=models.STATUS_ACTIVE,
    )
    db.add(chat)
    db.commit()
    db.refresh(chat)
    logger.info("Created chat session %s for %s", chat.session_id, chat.customer_name)
    return chat


def get_session(db: Session, session_id: str) -> models.ChatSession:
    chat = db.query(models.ChatSession).filter(models.ChatSession.session_id == session_id).first()
    if chat is None:
        raise SessionNotFound(session_id)
    return chat


def transfer_session(db: Session, session_id: str) -> models.ChatSession:
    """Hand the session over to a human. A no-op when already transferred."""
    chat = get_session(db, session_id)
    if chat.status == models.STATUS_CLOSED:
        raise InvalidTransition(session_id, chat.status, "transfer")
    if chat.status == models.STATUS_TRANSFERRED:
        return chat
    chat.status = models.STATUS_TRANSFERRED
    chat.transferred_at = models.utcnow()
    db.commit()
    db.refresh(chat)
    logger.info("Chat session %s transferred to a human", session_id)
    return chat


def assign_admin(db: Session, session_id: str, admin_id: str) -> models.ChatSession:
    chat = get_session(db, session_id)
    if chat.status == models.STATUS_CLOSED:
        raise InvalidTransition(session_id, chat.status, "assign")
    if chat.status == models.STATUS_ACTIVE:
        chat.status = models.STATUS_TRANSFERRED
        chat.transferred_at = models.utcnow()
    if chat.admin_id and chat.admin_id != admin_id:
        logger.info("Chat session %s reassigned from %s to %s", session_id, chat.admin_id, admin_id)
    chat.admin_id = admin_id
    db.commit()
    db.refresh(chat)
    return chat


def close_session(db: Session, session_id: str) -> models.ChatSession:
    chat = get_session(db, session_id)
    if chat.status == models.STATUS_CLOSED:
        return chat
    chat.status = models.STATUS_CLOSED
    chat.closed_at = models.utcnow()
    db.commit()
    db.refresh(chat)
    logger.info("Chat session %s closed", session_id)
    return chat


def list_active_sessions(db: Session, unassigned_only: bool = False) -> List[models.ChatSession]:
    query = db.query(models.ChatSession).filter(
        models.ChatSession.status.in_([models.STATUS_ACTIVE, models.STATUS_TRANSFERRED])
    )
    if unassigned_only:
        query = query.filter(models.ChatSession.admin_id.is_(None))
    return query.order_by(models.ChatSession.last_message_at.desc(), models.ChatSession.id.desc()).all()


def list_admin_sessions(db: Session, admin_id: str) -> List[models.ChatSession]:
    return (
        db.query(models.ChatSession)
        .filter(models.ChatSession.admin_id == admin_id)
        .order_by(models.ChatSession.last_message_at.desc(), models.ChatSession.id.desc())
        .all()
    )


def close_inactive(db: Session, cutoff: datetime) -> int:
    now = models.utcnow()
    closed = (
        db.query(models.ChatSession)
        .filter(
            models.ChatSession.last_message_at < cutoff,
            models.ChatSession.status != models.STATUS_CLOSED,
        )
        .update(
            {models.ChatSession.status: models.STATUS_CLOSED, models.ChatSession.closed_at: now},
            synchronize_session=False,
        )
    )
    db.commit()
    if closed:
        logger.info("Closed %d inactive chat sessions", closed)
    return closed
