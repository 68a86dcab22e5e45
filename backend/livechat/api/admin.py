from typing import List

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from .. import models, schemas
from ..database import get_db
from ..errors import ChatError
from ..services import admin_settings, message_log, presence, registry
from ..services.handoff import HandoffController
from .auth import verify_operator
from .deps import get_controller, http_error

router = APIRouter(prefix="/admin/chat", tags=["admin chat"])


def _with_unread(db: Session, sessions: List[models.ChatSession]) -> List[schemas.AdminSessionOut]:
    out = []
    for chat in sessions:
        item = schemas.AdminSessionOut.model_validate(chat)
        item.unread_count = message_log.unread_count(db, chat, models.SENDER_ADMIN)
        out.append(item)
    return out


@router.get("/sessions", response_model=List[schemas.AdminSessionOut])
def list_sessions(
    unassigned: bool = False,
    db: Session = Depends(get_db),
    admin_id: str = Depends(verify_operator),
):
    return _with_unread(db, registry.list_active_sessions(db, unassigned_only=unassigned))


@router.get("/sessions/mine", response_model=List[schemas.AdminSessionOut])
def list_my_sessions(db: Session = Depends(get_db), admin_id: str = Depends(verify_operator)):
    return _with_unread(db, registry.list_admin_sessions(db, admin_id))


@router.put("/session/{session_id}/assign", response_model=schemas.ChatSessionOut)
async def assign_session(
    session_id: str,
    admin_id: str = Depends(verify_operator),
    controller: HandoffController = Depends(get_controller),
):
    try:
        return await controller.assign(session_id, admin_id)
    except ChatError as exc:
        raise http_error(exc)


@router.post("/session/{session_id}/messages", response_model=schemas.MessageOut)
async def reply_to_chat(
    session_id: str,
    body: schemas.MessageCreate,
    admin_id: str = Depends(verify_operator),
    controller: HandoffController = Depends(get_controller),
):
    try:
        return await controller.admin_message(session_id, admin_id, body.message, body.sender_name)
    except ChatError as exc:
        raise http_error(exc)


@router.post("/session/{session_id}/close", response_model=schemas.ChatSessionOut)
async def close_chat(
    session_id: str,
    admin_id: str = Depends(verify_operator),
    controller: HandoffController = Depends(get_controller),
):
    try:
        return await controller.close(session_id)
    except ChatError as exc:
        raise http_error(exc)


@router.post("/session/{session_id}/read")
def mark_read(session_id: str, db: Session = Depends(get_db), admin_id: str = Depends(verify_operator)):
    try:
        chat = registry.get_session(db, session_id)
    except ChatError as exc:
        raise http_error(exc)
    return {"marked": message_log.mark_read(db, chat, models.SENDER_ADMIN)}


@router.get("/settings", response_model=schemas.AdminChatSettingsOut)
def get_settings(db: Session = Depends(get_db), admin_id: str = Depends(verify_operator)):
    return admin_settings.get_settings(db, admin_id)


@router.put("/settings", response_model=schemas.AdminChatSettingsOut)
def update_settings(
    changes: schemas.AdminChatSettingsUpdate,
    db: Session = Depends(get_db),
    admin_id: str = Depends(verify_operator),
):
    return admin_settings.update_settings(db, admin_id, changes)


# === ONLINE ===
@router.post("/heartbeat")
def heartbeat(admin_id: str = Depends(verify_operator)):
    presence.heartbeat(admin_id)
    return {"status": "ok", "online_admins": presence.online_admins()}
