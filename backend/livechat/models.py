# backend/livechat/models.py
from datetime import datetime, timezone

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.orm import relationship

from .database import Base

STATUS_ACTIVE = "active"
STATUS_TRANSFERRED = "transferred"
STATUS_CLOSED = "closed"

SENDER_CUSTOMER = "customer"
SENDER_BOT = "bot"
SENDER_ADMIN = "admin"
SENDER_SYSTEM = "system"
SENDERS = (SENDER_CUSTOMER, SENDER_BOT, SENDER_ADMIN, SENDER_SYSTEM)


def utcnow():
    return datetime.now(timezone.utc)


class ChatSession(Base):
    __tablename__ = "chat_sessions"
    id = Column(Integer, primary_key=True, index=True)
    session_id = Column(String(64), unique=True, index=True, nullable=False)
    customer_name = Column(String(255), nullable=False)
    customer_email = Column(String(255), nullable=True)
    customer_phone = Column(String(64), nullable=True)
    status = Column(String(20), nullable=False, default=STATUS_ACTIVE, index=True)
    admin_id = Column(String(64), nullable=True, index=True)
    transferred_at = Column(DateTime(timezone=True), nullable=True)
    closed_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    last_message_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    messages = relationship(
        "ChatMessage",
        back_populates="session",
        order_by="ChatMessage.id",
    )

    @property
    def is_human_transfer(self) -> bool:
        # transferred_at is only ever set by the transfer transition
        return self.transferred_at is not None


class ChatMessage(Base):
    __tablename__ = "chat_messages"
    id = Column(Integer, primary_key=True, index=True)
    chat_session_id = Column(Integer, ForeignKey("chat_sessions.id"), nullable=False, index=True)
    sender = Column(String(20), nullable=False)
    sender_name = Column(String(255), nullable=False)
    message = Column(Text, nullable=False)
    message_type = Column(String(20), nullable=False, default="text")
    is_read = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    session = relationship("ChatSession", back_populates="messages")

    @property
    def session_id(self) -> str:
        return self.session.session_id


class AdminChatSettings(Base):
    __tablename__ = "admin_chat_settings"
    id = Column(Integer, primary_key=True, index=True)
    admin_id = Column(String(64), unique=True, index=True, nullable=False)
    is_online = Column(Boolean, nullable=False, default=False)
    away_message = Column(
        Text,
        nullable=False,
        default="Our technicians are currently away. Leave your message and we'll get back to you shortly.",
    )
    notifications_enabled = Column(Boolean, nullable=False, default=True)
    auto_response_enabled = Column(Boolean, nullable=False, default=True)
    working_hours_start = Column(String(5), nullable=False, default="09:00")
    working_hours_end = Column(String(5), nullable=False, default="17:00")
    weekend_available = Column(Boolean, nullable=False, default=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)
