from pydantic import BaseModel, Field, TypeAdapter, field_validator
from typing import Annotated, Optional, List, Literal, Union
from datetime import datetime


class CustomerInfo(BaseModel):
    name: str
    email: Optional[str] = None
    phone: Optional[str] = None

    @field_validator("name")
    @classmethod
    def name_required(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("Customer name is required")
        return v.strip()


class MessageCreate(BaseModel):
    message: str = Field(min_length=1)
    sender_name: Optional[str] = None


class MessageOut(BaseModel):
    id: int
    session_id: str
    sender: str
    sender_name: str
    message: str
    message_type: str
    is_read: bool
    created_at: datetime

    class Config:
        from_attributes = True


class ChatSessionOut(BaseModel):
    id: int
    session_id: str
    customer_name: str
    customer_email: Optional[str]
    customer_phone: Optional[str]
    status: str
    is_human_transfer: bool
    admin_id: Optional[str]
    transferred_at: Optional[datetime]
    closed_at: Optional[datetime]
    created_at: datetime
    last_message_at: datetime

    class Config:
        from_attributes = True


class AdminSessionOut(ChatSessionOut):
    unread_count: int = 0


class StartSessionOut(BaseModel):
    session: ChatSessionOut
    messages: List[MessageOut]


class PostMessageOut(BaseModel):
    customer_message: MessageOut
    bot_message: Optional[MessageOut] = None


class AdminChatSettingsOut(BaseModel):
    admin_id: str
    is_online: bool
    away_message: str
    notifications_enabled: bool
    auto_response_enabled: bool
    working_hours_start: str
    working_hours_end: str
    weekend_available: bool

    class Config:
        from_attributes = True


class AdminChatSettingsUpdate(BaseModel):
    is_online: Optional[bool] = None
    away_message: Optional[str] = None
    notifications_enabled: Optional[bool] = None
    auto_response_enabled: Optional[bool] = None
    working_hours_start: Optional[str] = Field(None, pattern=r"^([01]\d|2[0-3]):[0-5]\d$")
    working_hours_end: Optional[str] = Field(None, pattern=r"^([01]\d|2[0-3]):[0-5]\d$")
    weekend_available: Optional[bool] = None

    @field_validator("away_message")
    @classmethod
    def away_message_not_blank(cls, v: Optional[str]) -> Optional[str]:
        if v is not None and not v.strip():
            raise ValueError("Away message cannot be blank")
        return v.strip() if v is not None else v


# === WebSocket frames (client -> server) ===

class JoinSession(BaseModel):
    type: Literal["join_session"]
    session_id: str
    role: Literal["customer", "admin"] = "customer"


class SendMessage(BaseModel):
    type: Literal["send_message"]
    session_id: str
    message: str
    sender_name: Optional[str] = None


class TransferToHuman(BaseModel):
    type: Literal["transfer_to_human"]
    session_id: str


class AdminPresence(BaseModel):
    type: Literal["admin_online", "admin_offline"]


class AgentTyping(BaseModel):
    type: Literal["agent_typing", "agent_stopped_typing"]
    session_id: str


ClientFrame = Annotated[
    Union[JoinSession, SendMessage, TransferToHuman, AdminPresence, AgentTyping],
    Field(discriminator="type"),
]
client_frame_adapter = TypeAdapter(ClientFrame)
